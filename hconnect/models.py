"""
Domain dataclasses used across the application.
"""

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from hconnect.config import ROLES


@dataclass
class Identity:
    """The signed-in user as known to the identity provider."""
    id: str
    email: Optional[str] = None


@dataclass
class Session:
    """Tokens issued by the identity provider for one Identity."""
    access_token: str
    refresh_token: Optional[str]
    identity: Identity
    expires_at: Optional[int] = None   # unix seconds

    def is_expired(self, margin: int = 0, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        now = time.time() if now is None else now
        return now + margin >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at,
            "user": {"id": self.identity.id, "email": self.identity.email},
        }


@dataclass
class Profile:
    """Display data stored in the `profiles` table."""
    full_name: str
    phone: Optional[str] = None
    avatar_url: Optional[str] = None


@dataclass(frozen=True)
class AuthState:
    """Immutable snapshot of the session store."""
    session: Optional[Session]
    identity: Optional[Identity]
    role: Optional[str]                # "patient", "doctor", "admin" or None
    profile: Optional[Profile]
    loading: bool

    @property
    def user_id(self) -> Optional[str]:
        return self.identity.id if self.identity else None


@dataclass(frozen=True)
class NavItem:
    label: str
    path: str


@dataclass
class ChargeItem:
    description: str
    amount: float = 0.0


@dataclass
class PrescriptionEntry:
    medicine_name: str = ""
    dosage: str = ""
    duration: str = ""


@dataclass
class Notification:
    """A transient, dismissible message shown to the user."""
    level: str                         # "success" or "error"
    message: str
    id: int = 0


def parse_role(value: Any) -> Optional[str]:
    """Normalise a role value from the backend; unknown values become None."""
    if value is None:
        return None
    role = str(value).strip().lower()
    return role if role in ROLES else None
