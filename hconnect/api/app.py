"""
Flask application factory and server entry-point.
"""

import os
import sys
import traceback

from flask import Flask
from flask_cors import CORS

from hconnect.config import API_HOST, API_PORT, SUPABASE_KEY_VAR, SUPABASE_URL_VAR, get_env
from hconnect.identity import connect
from hconnect.api.routes import register_routes


def default_connect():
    """Per-request client constructor bound to the hosted backend."""
    url = get_env(SUPABASE_URL_VAR)
    api_key = get_env(SUPABASE_KEY_VAR)

    async def connect_backend():
        # No storage: the server only ever holds the caller's own token.
        return await connect(url, api_key)

    return connect_backend


def create_app(connect_backend=None):
    """Build and return a fully configured Flask application."""
    app = Flask(__name__)
    CORS(app)

    # ── Backend clients ──────────────────────────────────────────────
    if connect_backend is None:
        try:
            print("[init] Connecting to hosted backend...")
            connect_backend = default_connect()
            print("[init] ✓ API server ready")
        except Exception as e:
            print(f"[FATAL] Failed to initialize: {e}", file=sys.stderr)
            traceback.print_exc()
            sys.exit(1)

    app.config["HCONNECT_CONNECT"] = connect_backend

    # ── Register routes ──────────────────────────────────────────────
    register_routes(app)

    return app


def main():
    """Run the development server."""
    print("=" * 60)
    print("H Connect – REST API Server")
    print("=" * 60)

    app = create_app()

    host = API_HOST
    port = API_PORT
    debug = os.getenv("FLASK_ENV") == "development"

    print(f"\n[server] Starting Flask API on {host}:{port}")
    print(f"[server] Debug mode: {debug}")
    print("[server] CORS enabled: True")
    print("\nAPI Endpoints:")
    print(f"  - POST http://{host}:{port}/api/auth/login")
    print(f"  - POST http://{host}:{port}/api/auth/signup")
    print(f"  - POST http://{host}:{port}/api/auth/otp")
    print(f"  - POST http://{host}:{port}/api/auth/verify")
    print(f"  - POST http://{host}:{port}/api/auth/logout")
    print(f"  - GET  http://{host}:{port}/api/session")
    print(f"  - GET  http://{host}:{port}/pages/<path>")
    print(f"  - POST http://{host}:{port}/pages/<path>/actions/<name>")
    print(f"  - GET  http://{host}:{port}/health")
    print("\n" + "=" * 60)

    app.run(host=host, port=port, debug=debug, threaded=True)


if __name__ == "__main__":
    main()
