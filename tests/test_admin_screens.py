"""
Tests for the admin screens – dashboard, doctors, appointments, billing, settings.
"""

import asyncio
from datetime import date

import pytest

from hconnect.errors import ValidationError
from hconnect.notify import Notifier
from hconnect.resolver import SessionStore
from hconnect.screens.admin import (
    AdminDashboard,
    AppointmentManagement,
    Billing,
    DoctorManagement,
    HospitalSettings,
)
from hconnect.screens.base import Screen, action

from fakes import FakeAuth, FakeGateway, make_session, seed_user

TODAY = date.today().isoformat()


def admin_world() -> FakeGateway:
    gateway = FakeGateway({
        "hospitals": [{"id": "h1", "name": "City General", "city": "Springfield"}],
        "doctors": [
            {"id": "d-admin", "user_id": "adm", "hospital_id": "h1", "specialty": "Hospital Admin"},
            {"id": "d1", "user_id": "u-d1", "hospital_id": "h1", "specialty": "General"},
            {"id": "d2", "user_id": "u-d2", "hospital_id": None, "specialty": "Cardiology"},
            {"id": "d3", "user_id": "u-d3", "hospital_id": "h9", "specialty": "Neurology"},
        ],
        "appointments": [
            {"id": "a1", "hospital_id": "h1", "patient_id": "p1", "doctor_id": "d1",
             "appointment_date": TODAY, "appointment_time": "10:00", "status": "pending"},
            {"id": "a2", "hospital_id": "h1", "patient_id": "p1", "doctor_id": "d1",
             "appointment_date": "2024-03-01", "appointment_time": "09:00", "status": "completed"},
            {"id": "a3", "hospital_id": "h1", "patient_id": "p2", "doctor_id": "d1",
             "appointment_date": "2024-03-02", "appointment_time": "09:30", "status": "approved"},
            {"id": "a9", "hospital_id": "h9", "patient_id": "p9", "doctor_id": "d3",
             "appointment_date": TODAY, "appointment_time": "10:00", "status": "pending"},
        ],
        "invoices": [
            {"id": "i1", "hospital_id": "h1", "patient_id": "p1", "appointment_id": "a2",
             "total": 150.0, "status": "paid", "created_at": "2024-03-02"},
            {"id": "i2", "hospital_id": "h1", "patient_id": "p1", "appointment_id": "a2",
             "total": 40.5, "status": "draft", "created_at": "2024-03-03"},
            {"id": "i9", "hospital_id": "h9", "patient_id": "p9", "appointment_id": "a9",
             "total": 999.0, "status": "paid", "created_at": "2024-03-01"},
        ],
        "doctor_requests": [
            {"id": "r1", "hospital_id": "h1", "doctor_id": "d2", "status": "pending"},
        ],
    })
    seed_user(gateway, "adm", "admin", "Ada Admin")
    return gateway


async def open_screen(cls, gateway, params=None, user="adm"):
    store = SessionStore(FakeAuth(make_session(user)), gateway)
    await store.start()
    notifier = Notifier()
    screen = cls(store, gateway, notifier, params)
    await screen.mount()
    return screen, notifier


# ── Dashboard ────────────────────────────────────────────────────────

def test_dashboard_stats_are_scoped_to_hospital():
    async def scenario():
        screen, _ = await open_screen(AdminDashboard, admin_world())
        assert screen.data["hospital_id"] == "h1"
        assert screen.data["stats"] == {
            "appointments": 3,
            "doctors": 2,
            "patients": 2,
            "revenue": 150.0,
        }
        assert [a["id"] for a in screen.data["today"]] == ["a1"]

    asyncio.run(scenario())


def test_admin_without_hospital_gets_guidance():
    async def scenario():
        gateway = FakeGateway()
        seed_user(gateway, "lonely", "admin")
        screen, notifier = await open_screen(AdminDashboard, gateway, user="lonely")
        assert screen.data["hospital_id"] is None
        assert "Hospital settings" in screen.data["message"]
        assert notifier.items == []

    asyncio.run(scenario())


# ── Doctor management ────────────────────────────────────────────────

def test_doctor_lists():
    async def scenario():
        screen, _ = await open_screen(DoctorManagement, admin_world())
        assert sorted(d["id"] for d in screen.data["doctors"]) == ["d-admin", "d1"]
        assert sorted(d["id"] for d in screen.data["available_doctors"]) == ["d2", "d3"]
        assert [r["id"] for r in screen.data["pending_requests"]] == ["r1"]

    asyncio.run(scenario())


def test_duplicate_request_message():
    async def scenario():
        gateway = admin_world()
        gateway.fail("POST", "doctor_requests", "duplicate key value", code="23505")
        screen, notifier = await open_screen(DoctorManagement, gateway)
        assert await screen.perform("send_request", doctor_id="d2") is False
        assert notifier.messages("error") == ["Request already sent to this doctor"]

    asyncio.run(scenario())


def test_send_and_cancel_request():
    async def scenario():
        gateway = admin_world()
        screen, notifier = await open_screen(DoctorManagement, gateway)
        assert await screen.perform("send_request", doctor_id="d3") is True
        assert sorted(r["doctor_id"] for r in screen.data["pending_requests"]) == ["d2", "d3"]

        assert await screen.perform("cancel_request", request_id="r1") is True
        assert [r["doctor_id"] for r in screen.data["pending_requests"]] == ["d3"]
        assert notifier.messages("success") == ["Request sent to doctor!", "Request cancelled"]

    asyncio.run(scenario())


def test_edit_and_remove_doctor():
    async def scenario():
        gateway = admin_world()
        screen, _ = await open_screen(DoctorManagement, gateway)
        await screen.perform("edit_specialty", doctor_id="d1", specialty="Pediatrics")
        d1 = next(d for d in gateway.rows("doctors") if d["id"] == "d1")
        assert d1["specialty"] == "Pediatrics"

        await screen.perform("remove_doctor", doctor_id="d1")
        assert d1["hospital_id"] is None
        assert [d["id"] for d in screen.data["doctors"]] == ["d-admin"]

    asyncio.run(scenario())


def test_failed_write_leaves_list_untouched():
    async def scenario():
        gateway = admin_world()
        screen, notifier = await open_screen(DoctorManagement, gateway)
        before = screen.render()
        gateway.fail("PATCH", "doctors", "permission denied for table doctors")
        assert await screen.perform("edit_specialty", doctor_id="d1", specialty="X") is False
        assert screen.render() == before
        assert notifier.messages("error") == ["permission denied for table doctors"]

    asyncio.run(scenario())


# ── Appointment management ───────────────────────────────────────────

def test_filter_by_status():
    async def scenario():
        screen, notifier = await open_screen(AppointmentManagement, admin_world())
        assert [a["id"] for a in screen.data["appointments"]] == ["a1", "a3", "a2"]
        await screen.perform("filter", status="completed")
        assert [a["id"] for a in screen.data["appointments"]] == ["a2"]
        assert await screen.perform("filter", status="bogus") is False
        assert screen.data["filter"] == "completed"

    asyncio.run(scenario())


def test_approve_pending_appointment():
    async def scenario():
        gateway = admin_world()
        screen, notifier = await open_screen(AppointmentManagement, gateway)
        assert await screen.perform("approve", appointment_id="a1") is True
        a1 = next(a for a in gateway.rows("appointments") if a["id"] == "a1")
        assert a1["status"] == "approved"
        assert notifier.messages("success") == ["Appointment approved"]

    asyncio.run(scenario())


def test_only_pending_appointments_change():
    async def scenario():
        gateway = admin_world()
        screen, notifier = await open_screen(AppointmentManagement, gateway)
        assert await screen.perform("cancel", appointment_id="a2") is False
        assert notifier.messages("error") == ["Only pending appointments can be changed"]
        assert not any(q.method == "PATCH" for q in gateway.queries)

        # Other hospitals' appointments are invisible.
        assert await screen.perform("cancel", appointment_id="a9") is False
        a9 = next(a for a in gateway.rows("appointments") if a["id"] == "a9")
        assert a9["status"] == "pending"

    asyncio.run(scenario())


def test_refresh_is_idempotent():
    async def scenario():
        screen, _ = await open_screen(AppointmentManagement, admin_world())
        await screen.refresh()
        once = screen.render()
        await screen.refresh()
        assert screen.render() == once

    asyncio.run(scenario())


# ── Billing ──────────────────────────────────────────────────────────

def test_billing_lists_and_summary():
    async def scenario():
        screen, _ = await open_screen(Billing, admin_world())
        assert [i["id"] for i in screen.data["invoices"]] == ["i2", "i1"]
        assert [a["id"] for a in screen.data["completed_appointments"]] == ["a2"]
        assert screen.data["summary"] == {
            "draft": {"count": 1, "total": 40.5},
            "paid": {"count": 1, "total": 150.0},
        }

    asyncio.run(scenario())


def test_create_invoice_sums_charges():
    async def scenario():
        gateway = admin_world()
        screen, notifier = await open_screen(Billing, gateway)
        ok = await screen.perform("create_invoice", appointment_id="a2", charges=[
            {"description": "Consultation", "amount": 80},
            {"description": "Lab work", "amount": "25.50"},
            {"description": "", "amount": 0},
        ])
        assert ok is True
        invoice = gateway.rows("invoices")[-1]
        assert invoice["total"] == 105.5
        assert invoice["status"] == "draft"
        assert invoice["patient_id"] == "p1"
        assert invoice["hospital_id"] == "h1"
        assert len(invoice["charges"]) == 2
        assert notifier.messages("success") == ["Invoice created!"]

    asyncio.run(scenario())


def test_invoice_needs_completed_appointment_and_charges():
    async def scenario():
        gateway = admin_world()
        screen, notifier = await open_screen(Billing, gateway)
        assert await screen.perform("create_invoice", appointment_id="a1",
                                    charges=[{"description": "x", "amount": 1}]) is False
        assert await screen.perform("create_invoice", appointment_id="a2", charges=[]) is False
        assert notifier.messages("error") == ["Please select a completed appointment", "Add at least one charge"]
        assert gateway.writes() == []

    asyncio.run(scenario())


def test_invoice_status_moves_forward_only():
    async def scenario():
        gateway = admin_world()
        screen, notifier = await open_screen(Billing, gateway)
        assert await screen.perform("mark_paid", invoice_id="i2") is False
        assert notifier.messages("error") == ["Cannot mark a draft invoice as paid"]

        assert await screen.perform("mark_sent", invoice_id="i2") is True
        assert await screen.perform("mark_paid", invoice_id="i2") is True
        i2 = next(i for i in gateway.rows("invoices") if i["id"] == "i2")
        assert i2["status"] == "paid"

    asyncio.run(scenario())


# ── Hospital settings ────────────────────────────────────────────────

def test_update_existing_hospital():
    async def scenario():
        gateway = admin_world()
        screen, notifier = await open_screen(HospitalSettings, gateway)
        assert screen.data["hospital"]["name"] == "City General"
        assert await screen.perform("save", name="City General East", city="Shelbyville") is True
        assert gateway.rows("hospitals")[0]["name"] == "City General East"
        assert notifier.messages("success") == ["Hospital updated!"]

    asyncio.run(scenario())


def test_create_hospital_links_admin():
    async def scenario():
        gateway = FakeGateway()
        seed_user(gateway, "founder", "admin")
        screen, notifier = await open_screen(HospitalSettings, gateway, user="founder")
        assert screen.data["hospital"] is None

        assert await screen.perform("save", name="") is False
        assert notifier.messages("error") == ["Hospital name is required"]

        assert await screen.perform("save", name="Hope Clinic", city="Riverside") is True
        hospital = gateway.rows("hospitals")[0]
        doctor = gateway.rows("doctors")[0]
        assert doctor["user_id"] == "founder"
        assert doctor["hospital_id"] == hospital["id"]
        assert doctor["specialty"] == "Hospital Admin"
        assert screen.data["hospital"]["name"] == "Hope Clinic"
        assert "Hospital created!" in notifier.messages("success")

    asyncio.run(scenario())


class Relabel(Screen):
    path = "/admin/relabel"

    async def load(self):
        return {}

    @action
    async def rename(self, name, action_name=""):
        self.data = {"name": name, "action_name": action_name}
        return True


def test_action_arguments_may_reuse_perform_parameter_names():
    async def scenario():
        screen, _ = await open_screen(Relabel, admin_world())
        assert await screen.perform("rename", name="Ward B", action_name="relabel") is True
        assert screen.data == {"name": "Ward B", "action_name": "relabel"}

        with pytest.raises(ValidationError):
            await screen.perform("rename", action_name="relabel")

    asyncio.run(scenario())
