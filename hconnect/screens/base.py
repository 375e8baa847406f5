"""
Shared screen machinery – mount, load, act, refresh.

Every feature screen follows the same loop: resolve the caller's domain
identity, issue reads scoped by it, render, perform an action, write, and on
success re-issue the same reads. Failures become notifications and leave the
previously loaded data untouched.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from hconnect.errors import GatewayError, HConnectError, ValidationError
from hconnect.gateway import DataGateway
from hconnect.notify import Notifier
from hconnect.resolver import SessionStore

logger = logging.getLogger(__name__)


def action(fn):
    """Mark a coroutine method as a user-invokable screen action."""
    fn.is_action = True
    return fn


class Screen:
    path = ""
    title = ""

    def __init__(self, store: SessionStore, gateway: DataGateway, notifier: Notifier,
                 params: Optional[Dict[str, str]] = None):
        self.store = store
        self.gateway = gateway
        self.notifier = notifier
        self.params: Dict[str, str] = dict(params or {})
        self.data: Dict[str, Any] = {}
        self.alive = False
        self.redirect_to: Optional[str] = None

    # ── Lifecycle ────────────────────────────────────────────────────

    async def mount(self) -> None:
        self.alive = True
        await self.refresh()

    def unmount(self) -> None:
        # Reads still in flight are dropped when they land.
        self.alive = False

    async def refresh(self) -> bool:
        try:
            data = await self.load()
        except GatewayError as e:
            logger.warning("%s: load failed: %s", self.path, e)
            if self.alive:
                self.notifier.error(e.message)
            return False
        if not self.alive:
            return False
        self.data = data
        return True

    async def load(self) -> Dict[str, Any]:
        raise NotImplementedError

    # ── Rendering / actions ──────────────────────────────────────────

    @property
    def user_id(self) -> Optional[str]:
        return self.store.identity.id if self.store.identity else None

    def render(self) -> Dict[str, Any]:
        view = {"path": self.path, "title": self.title, "params": dict(self.params)}
        view.update(self.data)
        if self.redirect_to:
            view["redirect"] = self.redirect_to
        return view

    def actions(self) -> Dict[str, List[str]]:
        """Action name -> argument names."""
        found = {}
        for name, member in inspect.getmembers(self, inspect.ismethod):
            if getattr(member, "is_action", False):
                found[name] = list(inspect.signature(member).parameters)
        return found

    async def perform(self, action_name: str, /, **kwargs) -> bool:
        """Run an action by name; *kwargs* are the action's own arguments."""
        if action_name not in self.actions():
            raise ValidationError(f"Unknown action: {action_name}")
        method = getattr(self, action_name)
        try:
            inspect.signature(method).bind(**kwargs)
        except TypeError as e:
            raise ValidationError(f"Invalid arguments for {action_name}: {e}") from e
        try:
            return bool(await method(**kwargs))
        except ValidationError as e:
            self.notifier.error(e.message)
            return False

    async def mutate(self, operation: Callable[[], Awaitable[Any]], success: Optional[str] = None,
                     refresh: bool = True) -> bool:
        """Run a write; notify the outcome and reload on success."""
        try:
            await operation()
        except HConnectError as e:
            logger.warning("%s: action failed: %s", self.path, e)
            self.notifier.error(self.describe_error(e))
            return False
        if success:
            self.notifier.success(success)
        if refresh and self.alive:
            await self.refresh()
        return True

    def describe_error(self, error: HConnectError) -> str:
        return error.message

    # ── Domain identity lookups ──────────────────────────────────────

    async def patient_row(self, columns: str = "id") -> Optional[Dict[str, Any]]:
        res = await self.gateway.table("patients").select(columns).eq("user_id", self.user_id) \
            .maybe_single().execute()
        return res.data

    async def doctor_row(self, columns: str = "id, hospital_id") -> Optional[Dict[str, Any]]:
        res = await self.gateway.table("doctors").select(columns).eq("user_id", self.user_id) \
            .maybe_single().execute()
        return res.data

    async def admin_hospital_id(self) -> Optional[str]:
        """The admin's hospital is the one on their own doctors row."""
        doctor = await self.doctor_row("hospital_id")
        return doctor.get("hospital_id") if doctor else None


def require(value: Any, message: str) -> Any:
    """Local form check; raises before any network call is made."""
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(message)
    return value.strip() if isinstance(value, str) else value
