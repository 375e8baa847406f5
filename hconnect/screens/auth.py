"""
Public screens – landing page and sign in / sign up.
"""

import logging
from typing import Any, Dict, Optional

from hconnect.config import DEFAULT_SPECIALTY, MIN_PASSWORD_LENGTH, ROLES
from hconnect.errors import AuthError, GatewayError, ValidationError
from hconnect.rbac import default_path
from hconnect.screens.base import Screen, action, require

logger = logging.getLogger(__name__)


class LandingScreen(Screen):
    path = "/"
    title = "H Connect"

    async def load(self) -> Dict[str, Any]:
        state = self.store.state
        signed_in = state.identity is not None and state.role is not None
        return {
            "headline": "Healthcare, connected.",
            "features": [
                "Book appointments with doctors at partner hospitals",
                "Digital consultations and prescriptions",
                "Hospital administration and billing",
            ],
            "cta": default_path(state.role) if signed_in else "/auth",
        }


class AuthScreen(Screen):
    path = "/auth"
    title = "Sign in"

    async def load(self) -> Dict[str, Any]:
        res = await self.gateway.table("hospitals").select("id, name").order("name").execute()
        return {"hospitals": res.data or [], "roles": list(ROLES)}

    async def _after_sign_in(self) -> None:
        # Role arrives through the store's deferred fetch.
        await self.store.settle()
        if self.store.role is not None:
            self.redirect_to = default_path(self.store.role)

    async def _auth_call(self, operation) -> bool:
        try:
            await operation()
        except (AuthError, ValidationError) as e:
            self.notifier.error(e.message)
            return False
        return True

    @action
    async def sign_in(self, email: str, password: str) -> bool:
        async def run():
            await self.store.auth.sign_in_with_password(
                require(email, "Email is required"), require(password, "Password is required"))
        if not await self._auth_call(run):
            return False
        await self._after_sign_in()
        return True

    @action
    async def request_code(self, email: str) -> bool:
        async def run():
            await self.store.auth.sign_in_with_otp(require(email, "Email is required"))
        if not await self._auth_call(run):
            return False
        self.notifier.success("Check your email for the sign-in code")
        return True

    @action
    async def verify_code(self, email: str, code: str) -> bool:
        async def run():
            await self.store.auth.verify_otp(require(email, "Email is required"),
                                             require(code, "Code is required"))
        if not await self._auth_call(run):
            return False
        await self._after_sign_in()
        return True

    @action
    async def sign_up(self, full_name: str, email: str, password: str, role: str = "patient",
                      hospital_id: Optional[str] = None, specialty: Optional[str] = None) -> bool:
        try:
            validate_sign_up(full_name, email, password, role, hospital_id)
        except ValidationError as e:
            self.notifier.error(e.message)
            return False

        try:
            result = await self.store.auth.sign_up(
                email.strip(), password, data={"full_name": full_name.strip(), "role": role})
        except AuthError as e:
            self.notifier.error(e.message)
            return False

        if role == "doctor":
            await self._create_doctor_row(result.identity.id, hospital_id, specialty)

        if result.session is None:
            self.notifier.success("Account created! Check your email to confirm it.")
            return True
        self.notifier.success("Account created! Redirecting...")
        await self.store.settle()
        self.redirect_to = default_path(role)
        return True

    async def _create_doctor_row(self, user_id: str, hospital_id: str, specialty: Optional[str]) -> None:
        row = {
            "user_id": user_id,
            "hospital_id": str(hospital_id).strip(),
            "specialty": str(specialty or "").strip() or DEFAULT_SPECIALTY,
        }
        try:
            await self.gateway.table("doctors").insert(row).execute()
            return
        except GatewayError as e:
            # A signup trigger may already have created the row.
            logger.warning("doctor insert failed, retrying as upsert: %s", e)
        try:
            await self.gateway.table("doctors").upsert(row, on_conflict="user_id").execute()
        except GatewayError as e:
            logger.warning("doctor upsert failed for %s: %s", user_id, e)
            self.notifier.error(f"Could not save doctor details: {e.message}")


def validate_sign_up(full_name: str, email: str, password: str, role: str,
                     hospital_id: Optional[str]) -> None:
    require(full_name, "Full name is required")
    require(email, "Email is required")
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if role not in ROLES:
        raise ValidationError(f"Unknown role: {role}")
    if role == "doctor" and not str(hospital_id or "").strip():
        raise ValidationError("Please select a hospital")
