"""
Interactive CLI for H Connect.
Sign in, then move through the role's screens and run their actions.
"""

import asyncio
import json
from typing import Any, Dict, Optional

import pandas as pd

from hconnect.config import SESSION_FILE, SUPABASE_KEY_VAR, SUPABASE_URL_VAR, get_env
from hconnect.errors import ValidationError
from hconnect.identity import connect
from hconnect.navigation import NavigationShell
from hconnect.notify import Notifier
from hconnect.pages import NOT_FOUND, open_page
from hconnect.rbac import REDIRECT
from hconnect.resolver import SessionStore
from hconnect.screens.auth import AuthScreen

MAX_PREVIEW_ROWS = 20
MAX_REDIRECTS = 3


async def ask(prompt: str) -> Optional[str]:
    """Read a line without blocking the event loop; None on EOF / Ctrl-C."""
    try:
        return (await asyncio.to_thread(input, prompt)).strip()
    except (EOFError, KeyboardInterrupt):
        return None


def print_notification(note) -> None:
    tag = "[ok]" if note.level == "success" else "[error]"
    print(f"{tag} {note.message}")


def print_view(view: Dict[str, Any]) -> None:
    print(f"\n=== {view.get('title') or view.get('path')} ===")
    for key, value in view.items():
        if key in {"title", "path", "params"}:
            continue
        if isinstance(value, list) and value and isinstance(value[0], dict):
            df = pd.json_normalize(value)
            print(f"\n[{key}] ({len(df)} rows)")
            print(df.head(MAX_PREVIEW_ROWS).to_string(index=False))
        elif isinstance(value, list):
            print(f"\n[{key}] " + (", ".join(str(v) for v in value) or "(none)"))
        elif isinstance(value, dict):
            print(f"\n[{key}]")
            for k, v in value.items():
                print(f"  {k}: {v}")
        else:
            print(f"[{key}] {value}")


def parse_arg(raw: str) -> Any:
    """JSON for lists/objects (charges, prescriptions); plain text otherwise."""
    if raw[:1] in {"[", "{"}:
        try:
            return json.loads(raw)
        except ValueError as e:
            raise ValidationError(f"Invalid JSON: {e}")
    return raw


async def prompt_action(screen) -> bool:
    """Let the user run actions on the current screen until they go back."""
    actions = screen.actions()
    if not actions:
        return True
    while True:
        print("\nActions: " + ", ".join(sorted(actions)) + "  (b = back, q = quit)")
        choice = await ask("action> ")
        if choice is None or choice.lower() in {"q", "quit", "exit"}:
            return False
        if not choice or choice.lower() in {"b", "back"}:
            return True
        if choice not in actions:
            print(f"[error] Unknown action: {choice}")
            continue

        kwargs = {}
        try:
            for arg in actions[choice]:
                raw = await ask(f"  {arg}: ")
                if raw is None:
                    return False
                if raw:
                    kwargs[arg] = parse_arg(raw)
            await screen.perform(choice, **kwargs)
        except ValidationError as e:
            print(f"[error] {e.message}")
            continue

        print_view(screen.render())
        if screen.redirect_to:
            return True


async def visit(location: str, store, gateway, notifier, shell) -> bool:
    """Open a location, following guard redirects. Returns False to quit."""
    for _ in range(MAX_REDIRECTS):
        outcome = await open_page(location, store, gateway, notifier)
        if outcome.decision.action == NOT_FOUND:
            print(f"[nav] No page at {location}")
            return True
        if outcome.decision.action == REDIRECT:
            print(f"[nav] {location} -> {outcome.decision.target}")
            location = outcome.decision.target
            continue
        screen = outcome.screen
        shell.navigate(outcome.page.path)
        print_view(screen.render())
        try:
            keep_going = await prompt_action(screen)
        finally:
            screen.unmount()
        if keep_going and screen.redirect_to:
            location = screen.redirect_to
            continue
        return keep_going
    return True


async def auth_menu(store, gateway, notifier) -> bool:
    print("\n1) Sign in   2) Sign in with email code   3) Create account   q) Quit")
    choice = await ask("> ")
    if choice is None or choice.lower() in {"q", "quit", "exit"}:
        return False

    screen = AuthScreen(store, gateway, notifier)
    if choice == "1":
        screen.alive = True
        await screen.sign_in(await ask("Email: ") or "", await ask("Password: ") or "")
    elif choice == "2":
        screen.alive = True
        email = await ask("Email: ") or ""
        if await screen.request_code(email):
            await screen.verify_code(email, await ask("Code: ") or "")
    elif choice == "3":
        await screen.mount()
        role = (await ask("Role [patient/doctor/admin]: ") or "patient").lower()
        hospital_id = specialty = None
        if role == "doctor":
            for h in screen.data.get("hospitals", []):
                print(f"  {h['id']}: {h['name']}")
            hospital_id = await ask("Hospital id: ")
            specialty = await ask("Specialty [General]: ")
        await screen.sign_up(
            full_name=await ask("Full name: ") or "",
            email=await ask("Email: ") or "",
            password=await ask("Password: ") or "",
            role=role,
            hospital_id=hospital_id,
            specialty=specialty,
        )
    screen.unmount()
    if store.identity is not None and store.role is None:
        print("[auth] Signed in, but no role is assigned to this account yet.")
    return True


async def run() -> None:
    print("=== H Connect: hospital appointments, consultations and billing ===\n")

    url = get_env(SUPABASE_URL_VAR)
    api_key = get_env(SUPABASE_KEY_VAR)

    auth, gateway = await connect(url, api_key, storage_path=SESSION_FILE)
    notifier = Notifier(on_notify=print_notification)
    store = SessionStore(auth, gateway)

    print("[init] Restoring session...")
    await store.start()
    shell = NavigationShell(store)

    try:
        while True:
            await store.settle()
            state = store.state
            if state.identity is None or state.role is None:
                if not await auth_menu(store, gateway, notifier):
                    break
                continue

            view = shell.render(state)
            print(f"\n[auth] {view['user_name']} ({view['role']})")
            for i, item in enumerate(view["items"], 1):
                print(f"  {i}) {item['label']:<20} {item['path']}")
            print("  o) Sign out   q) Quit   or type a path")

            choice = await ask("> ")
            if choice is None or choice.lower() in {"q", "quit", "exit"}:
                break
            if choice.lower() == "o":
                await shell.sign_out()
                print("[auth] Signed out.")
                continue
            if choice.isdigit() and 1 <= int(choice) <= len(view["items"]):
                location = view["items"][int(choice) - 1]["path"]
            elif choice.startswith("/"):
                location = choice
            else:
                continue
            if not await visit(location, store, gateway, notifier, shell):
                break
    finally:
        shell.close()
        await store.close()
    print("Goodbye.")


def main():
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        print("\nExiting.")


if __name__ == "__main__":
    main()
