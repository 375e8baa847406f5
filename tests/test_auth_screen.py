"""
Tests for the sign in / sign up screen and the post-auth routing it drives.
"""

import asyncio

from hconnect.notify import Notifier
from hconnect.pages import open_page
from hconnect.rbac import REDIRECT, RENDER
from hconnect.resolver import SessionStore
from hconnect.screens.auth import AuthScreen

from fakes import FakeAuth, FakeGateway, seed_user, signup_trigger


async def anonymous(gateway=None, auth=None):
    gateway = gateway if gateway is not None else FakeGateway()
    auth = auth or FakeAuth()
    auth.on_sign_up = auth.on_sign_up or signup_trigger(gateway)
    store = SessionStore(auth, gateway)
    await store.start()
    notifier = Notifier()
    screen = AuthScreen(store, gateway, notifier)
    screen.alive = True
    return screen, store, auth, gateway, notifier


# ── Sign up ──────────────────────────────────────────────────────────

def test_doctor_signup_without_hospital_makes_no_network_call():
    async def scenario():
        screen, store, auth, gateway, notifier = await anonymous()
        calls_before = list(auth.calls)
        ok = await screen.sign_up("Dr. Who", "who@example.com", "secret1", role="doctor")
        assert ok is False
        assert notifier.messages("error") == ["Please select a hospital"]
        assert auth.calls == calls_before
        assert gateway.queries == []

    asyncio.run(scenario())


def test_short_password_is_rejected_locally():
    async def scenario():
        screen, _, auth, _, notifier = await anonymous()
        assert await screen.sign_up("Pat", "pat@example.com", "123") is False
        assert "at least 6" in notifier.messages("error")[0]
        assert "sign_up" not in auth.calls

    asyncio.run(scenario())


def test_patient_signup_routes_to_patient_area():
    async def scenario():
        screen, store, _, gateway, notifier = await anonymous()
        ok = await screen.sign_up("Pat Smith", "pat@example.com", "secret1", role="patient")
        assert ok is True
        assert store.role == "patient"
        assert screen.redirect_to == "/patient"
        assert "Account created! Redirecting..." in notifier.messages("success")

        outcome = await open_page("/doctor", store, gateway, notifier)
        assert (outcome.decision.action, outcome.decision.target) == (REDIRECT, "/patient")

        outcome = await open_page("/patient", store, gateway, notifier)
        assert outcome.decision.action == RENDER
        assert outcome.screen.data["patient"]["user_id"] == store.identity.id

    asyncio.run(scenario())


def test_doctor_signup_creates_doctor_row_with_default_specialty():
    async def scenario():
        screen, store, _, gateway, _ = await anonymous()
        ok = await screen.sign_up("Dr. Jo", "jo@example.com", "secret1", role="doctor", hospital_id="h1")
        assert ok is True
        rows = gateway.rows("doctors")
        assert len(rows) == 1
        assert rows[0]["user_id"] == store.identity.id
        assert rows[0]["hospital_id"] == "h1"
        assert rows[0]["specialty"] == "General"
        assert screen.redirect_to == "/doctor"

    asyncio.run(scenario())


def test_doctor_signup_accepts_numeric_hospital_id():
    async def scenario():
        screen, _, _, gateway, notifier = await anonymous()
        ok = await screen.sign_up("Dr. Jo", "jo@example.com", "secret1", role="doctor", hospital_id=42)
        assert ok is True
        assert gateway.rows("doctors")[0]["hospital_id"] == "42"
        assert notifier.messages("error") == []

    asyncio.run(scenario())


def test_blank_hospital_id_is_rejected():
    async def scenario():
        screen, _, auth, _, notifier = await anonymous()
        assert await screen.sign_up("Dr. Jo", "jo@example.com", "secret1", role="doctor", hospital_id="  ") is False
        assert notifier.messages("error") == ["Please select a hospital"]
        assert "sign_up" not in auth.calls

    asyncio.run(scenario())


def test_doctor_insert_failure_falls_back_to_upsert():
    async def scenario():
        gateway = FakeGateway()
        screen, _, _, gateway, notifier = await anonymous(gateway)
        gateway.fail("POST", "doctors", "duplicate key", code="23505")
        await screen.sign_up("Dr. Jo", "jo@example.com", "secret1", role="doctor",
                             hospital_id="h1", specialty="Cardiology")
        doctor_writes = [q for q in gateway.writes() if q.table == "doctors"]
        assert len(doctor_writes) == 2
        assert doctor_writes[1].param("on_conflict") == "user_id"
        assert doctor_writes[1].body["specialty"] == "Cardiology"

    asyncio.run(scenario())


def test_signup_pending_confirmation_does_not_redirect():
    async def scenario():
        auth = FakeAuth()
        auth.confirm_email = True
        screen, store, _, _, notifier = await anonymous(auth=auth)
        assert await screen.sign_up("Pat", "pat@example.com", "secret1") is True
        assert store.identity is None
        assert screen.redirect_to is None
        assert "confirm" in notifier.messages("success")[0]

    asyncio.run(scenario())


def test_duplicate_signup_error_is_shown_verbatim():
    async def scenario():
        auth = FakeAuth()
        auth.add_user("pat@example.com", "secret1")
        screen, _, _, _, notifier = await anonymous(auth=auth)
        assert await screen.sign_up("Pat", "pat@example.com", "secret1") is False
        assert notifier.messages("error") == ["User already registered"]

    asyncio.run(scenario())


# ── Sign in ──────────────────────────────────────────────────────────

def test_sign_in_redirects_to_role_landing_page():
    async def scenario():
        gateway = FakeGateway()
        auth = FakeAuth()
        identity = auth.add_user("admin@example.com", "pw123456")
        seed_user(gateway, identity.id, "admin", "Ada")
        screen, store, _, _, _ = await anonymous(gateway, auth)
        assert await screen.sign_in("admin@example.com", "pw123456") is True
        assert store.role == "admin"
        assert screen.redirect_to == "/admin"

        outcome = await open_page("/auth", store, gateway, Notifier())
        assert outcome.decision.target == "/admin"

    asyncio.run(scenario())


def test_sign_in_without_role_stays_on_auth():
    async def scenario():
        gateway = FakeGateway()
        auth = FakeAuth()
        identity = auth.add_user("norole@example.com", "pw123456")
        seed_user(gateway, identity.id, None)
        screen, store, _, _, _ = await anonymous(gateway, auth)
        assert await screen.sign_in("norole@example.com", "pw123456") is True
        assert store.identity is not None and store.role is None
        assert screen.redirect_to is None

        outcome = await open_page("/patient", store, gateway, Notifier())
        assert outcome.decision.target == "/auth"

    asyncio.run(scenario())


def test_bad_credentials_become_notification():
    async def scenario():
        screen, store, _, _, notifier = await anonymous()
        assert await screen.sign_in("who@example.com", "wrong") is False
        assert notifier.messages("error") == ["Invalid login credentials"]
        assert store.identity is None

    asyncio.run(scenario())


def test_one_time_code_flow():
    async def scenario():
        gateway = FakeGateway()
        auth = FakeAuth()
        identity = auth.add_user("doc@example.com", "pw123456")
        seed_user(gateway, identity.id, "doctor")
        screen, store, _, _, notifier = await anonymous(gateway, auth)

        assert await screen.request_code("doc@example.com") is True
        assert await screen.verify_code("doc@example.com", "000000") is False
        assert notifier.messages("error") == ["Token has expired or is invalid"]

        assert await screen.verify_code("doc@example.com", "123456") is True
        assert screen.redirect_to == "/doctor"

    asyncio.run(scenario())


def test_hospital_choices_load_on_mount():
    async def scenario():
        gateway = FakeGateway({"hospitals": [{"id": "h2", "name": "Zeta"}, {"id": "h1", "name": "Alpha"}]})
        store = SessionStore(FakeAuth(), gateway)
        await store.start()
        screen = AuthScreen(store, gateway, Notifier())
        await screen.mount()
        assert [h["name"] for h in screen.data["hospitals"]] == ["Alpha", "Zeta"]

    asyncio.run(scenario())
