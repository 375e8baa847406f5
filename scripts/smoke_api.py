"""
Smoke checks for the H Connect API endpoints.
Run the API server first: python -m hconnect.api.app
Then run this: python scripts/smoke_api.py you@example.com secret
"""

import json
import sys
import traceback

import requests

BASE_URL = "http://localhost:8000"


def banner(title):
    print("\n" + "=" * 50)
    print(title)
    print("=" * 50)


def show(response):
    print(f"Status Code: {response.status_code}")
    try:
        print(f"Response: {json.dumps(response.json(), indent=2)}")
    except ValueError:
        print(f"Response: {response.text[:200]}")


def check_health():
    banner("CHECK: Health")
    response = requests.get(f"{BASE_URL}/health")
    show(response)
    return response.status_code == 200


def check_anonymous_redirect():
    banner("CHECK: Protected page without token")
    response = requests.get(f"{BASE_URL}/pages/patient", allow_redirects=False)
    show(response)
    return response.status_code == 302 and response.headers.get("Location") == "/pages/auth"


def check_login(email, password):
    banner("CHECK: Login")
    response = requests.post(f"{BASE_URL}/api/auth/login", json={"email": email, "password": password})
    show(response)
    if response.status_code == 200:
        return response.json().get("session", {}).get("access_token")
    return None


def check_landing(token):
    banner("CHECK: Session + landing page")
    headers = {"Authorization": f"Bearer {token}"}
    session = requests.get(f"{BASE_URL}/api/session", headers=headers)
    show(session)
    landing = session.json().get("landing_path", "/auth")
    page = requests.get(f"{BASE_URL}/pages{landing}", headers=headers, allow_redirects=False)
    show(page)
    return page.status_code == 200


def check_logout(token):
    banner("CHECK: Logout")
    response = requests.post(f"{BASE_URL}/api/auth/logout", headers={"Authorization": f"Bearer {token}"})
    show(response)
    return response.status_code == 200


def main():
    banner("H Connect API Smoke Checks")
    print(f"Base URL: {BASE_URL}")
    print("Make sure the API server is running!")

    if len(sys.argv) < 3:
        print("ERROR: usage: smoke_api.py EMAIL PASSWORD")
        sys.exit(1)
    email, password = sys.argv[1], sys.argv[2]

    results = {}
    try:
        results["health"] = check_health()
        results["anonymous_redirect"] = check_anonymous_redirect()
        token = check_login(email, password)
        results["login"] = token is not None
        if token:
            results["landing"] = check_landing(token)
            results["logout"] = check_logout(token)
        else:
            print("\nERROR: Could not login. Remaining checks skipped.")
    except Exception as e:
        print(f"\n\nERROR: {e}")
        traceback.print_exc()

    banner("SUMMARY")
    for name, ok in results.items():
        print(f"  {'PASS' if ok else 'FAIL'}  {name}")
    sys.exit(0 if results and all(results.values()) else 1)


if __name__ == "__main__":
    main()
