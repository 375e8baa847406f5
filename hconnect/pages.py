"""
Routing surface – path table and page opening (guard, then mount).
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple, Type
from urllib.parse import parse_qsl, urlsplit

from hconnect.gateway import DataGateway
from hconnect.notify import Notifier
from hconnect.rbac import RENDER, GuardDecision, evaluate_auth_page, evaluate_guard
from hconnect.resolver import SessionStore
from hconnect.screens import admin, auth, doctor, patient
from hconnect.screens.base import Screen

NOT_FOUND = "not_found"


@dataclass(frozen=True)
class Page:
    path: str
    screen: Type[Screen]
    allowed_roles: Optional[Tuple[str, ...]] = None
    public: bool = False


PAGES: Dict[str, Page] = {p.path: p for p in (
    Page("/", auth.LandingScreen, public=True),
    Page("/auth", auth.AuthScreen, public=True),

    Page("/patient", patient.PatientDashboard, ("patient",)),
    Page("/patient/book", patient.BookAppointment, ("patient",)),
    Page("/patient/history", patient.MedicalHistory, ("patient",)),
    Page("/patient/profile", patient.PatientProfile, ("patient",)),

    Page("/doctor", doctor.DoctorDashboard, ("doctor",)),
    Page("/doctor/consult", doctor.Consultation, ("doctor",)),
    Page("/doctor/records", doctor.PatientRecords, ("doctor",)),
    Page("/doctor/requests", doctor.HospitalRequests, ("doctor",)),

    Page("/admin", admin.AdminDashboard, ("admin",)),
    Page("/admin/doctors", admin.DoctorManagement, ("admin",)),
    Page("/admin/appointments", admin.AppointmentManagement, ("admin",)),
    Page("/admin/billing", admin.Billing, ("admin",)),
    Page("/admin/hospital", admin.HospitalSettings, ("admin",)),
)}


def split_location(location: str) -> Tuple[str, Dict[str, str]]:
    """'/doctor/consult?appointment=7' -> ('/doctor/consult', {'appointment': '7'})"""
    parts = urlsplit(location or "/")
    path = parts.path.rstrip("/") or "/"
    return path, dict(parse_qsl(parts.query))


def resolve_page(location: str) -> Optional[Page]:
    path, _ = split_location(location)
    return PAGES.get(path)


def guard_page(page: Page, store: SessionStore) -> GuardDecision:
    state = store.state
    if page.path == "/auth":
        return evaluate_auth_page(state)
    if page.public:
        return GuardDecision(RENDER)
    return evaluate_guard(state, page.allowed_roles)


@dataclass
class PageOutcome:
    decision: GuardDecision
    page: Optional[Page] = None
    screen: Optional[Screen] = None


async def open_page(location: str, store: SessionStore, gateway: DataGateway,
                    notifier: Notifier) -> PageOutcome:
    """Guard the location, then mount its screen when the guard says render."""
    path, params = split_location(location)
    page = PAGES.get(path)
    if page is None:
        return PageOutcome(GuardDecision(NOT_FOUND))

    decision = guard_page(page, store)
    if decision.action != RENDER:
        return PageOutcome(decision, page)

    screen = page.screen(store, gateway, notifier, params)
    await screen.mount()
    return PageOutcome(decision, page, screen)
