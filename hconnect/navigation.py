"""
Navigation shell – the role-scoped menu.
"""

from typing import Callable, Dict, List, Optional, Tuple

from hconnect.models import AuthState, NavItem
from hconnect.resolver import SessionStore

NAV_ITEMS: Dict[str, Tuple[NavItem, ...]] = {
    "patient": (
        NavItem("Dashboard", "/patient"),
        NavItem("Book Appointment", "/patient/book"),
        NavItem("Medical History", "/patient/history"),
        NavItem("Profile", "/patient/profile"),
    ),
    "doctor": (
        NavItem("Dashboard", "/doctor"),
        NavItem("Consultations", "/doctor/consult"),
        NavItem("Patient Records", "/doctor/records"),
        NavItem("Hospital Requests", "/doctor/requests"),
    ),
    "admin": (
        NavItem("Dashboard", "/admin"),
        NavItem("Doctors", "/admin/doctors"),
        NavItem("Appointments", "/admin/appointments"),
        NavItem("Billing", "/admin/billing"),
        NavItem("Hospital", "/admin/hospital"),
    ),
}


def nav_items(role: Optional[str]) -> List[NavItem]:
    if role is None:
        return []
    return list(NAV_ITEMS.get(role, ()))


def render_shell(state: AuthState, current_path: Optional[str] = None) -> dict:
    """Project the session state onto the sidebar/header view model."""
    return {
        "role": state.role,
        "user_name": (state.profile.full_name if state.profile else "") or "User",
        "items": [
            {"label": item.label, "path": item.path, "active": item.path == current_path}
            for item in nav_items(state.role)
        ],
    }


class NavigationShell:
    """Keeps a rendered menu in sync with the store's role."""

    def __init__(self, store: SessionStore, on_render: Optional[Callable[[dict], None]] = None):
        self.store = store
        self.on_render = on_render
        self.current_path: Optional[str] = None
        self.view = render_shell(store.state)
        self._unsubscribe = store.subscribe(self._on_state)

    def _on_state(self, state: AuthState) -> None:
        # Re-render only when the role (or the displayed name) changes.
        name = (state.profile.full_name if state.profile else "") or "User"
        if state.role == self.view["role"] and name == self.view["user_name"]:
            return
        self.render(state)

    def navigate(self, path: str) -> None:
        self.current_path = path
        self.render(self.store.state)

    def render(self, state: Optional[AuthState] = None) -> dict:
        self.view = render_shell(state or self.store.state, self.current_path)
        if self.on_render is not None:
            self.on_render(self.view)
        return self.view

    async def sign_out(self) -> None:
        """Sign out and drop back to the unauthenticated menu."""
        self.current_path = None
        await self.store.sign_out()

    def close(self) -> None:
        self._unsubscribe()
