"""
Role-Based Access Control – landing paths and route guard decisions.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from hconnect.config import LANDING_PATHS, UNAUTHENTICATED_PATH
from hconnect.models import AuthState

LOADING = "loading"
REDIRECT = "redirect"
RENDER = "render"


@dataclass(frozen=True)
class GuardDecision:
    """Outcome of evaluating a page against the current session state."""
    action: str                 # LOADING, REDIRECT or RENDER
    target: Optional[str] = None


def default_path(role: Optional[str]) -> str:
    """Every role has exactly one home; no role means the sign-in page."""
    if role is None:
        return UNAUTHENTICATED_PATH
    return LANDING_PATHS.get(role, UNAUTHENTICATED_PATH)


def evaluate_guard(state: AuthState, allowed_roles: Optional[Iterable[str]] = None) -> GuardDecision:
    """Decide whether a protected page renders or redirects.

    Evaluated fresh on every render. Misrouted access always redirects;
    there is no "access denied" outcome.
    """
    if state.loading:
        return GuardDecision(LOADING)
    if state.identity is None:
        return GuardDecision(REDIRECT, UNAUTHENTICATED_PATH)
    if state.role is None:
        return GuardDecision(REDIRECT, UNAUTHENTICATED_PATH)
    if allowed_roles is not None and state.role not in set(allowed_roles):
        return GuardDecision(REDIRECT, default_path(state.role))
    return GuardDecision(RENDER)


def evaluate_auth_page(state: AuthState) -> GuardDecision:
    """The sign-in page sends an already routed user to their landing page."""
    if not state.loading and state.identity is not None and state.role is not None:
        return GuardDecision(REDIRECT, default_path(state.role))
    return GuardDecision(RENDER)
