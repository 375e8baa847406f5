"""
Session/role resolver – the single source of truth for who is signed in.

``SessionStore`` is created once at application start and passed to the
guard, the navigation shell and the screens::

    store = SessionStore(auth, gateway)
    await store.start()          # loading flips to False exactly once
    ...
    await store.close()

Start-up order matters: the store subscribes to auth changes *before* the
initial session fetch so no transition is missed, and it resolves role and
profile *before* clearing ``loading`` so the guard never sees an
authenticated user without a role on first paint.
"""

import asyncio
import logging
from typing import Callable, List, Optional, Set

from hconnect.errors import AuthError, GatewayError
from hconnect.gateway import DataGateway
from hconnect.identity import AuthSubscription, IdentityProvider
from hconnect.models import AuthState, Identity, Profile, Session, parse_role

logger = logging.getLogger(__name__)

StateListener = Callable[[AuthState], None]


class SessionStore:
    """Observable ``{session, identity, role, profile, loading}`` state."""

    def __init__(self, auth: IdentityProvider, gateway: DataGateway):
        self.auth = auth
        self.gateway = gateway
        self.session: Optional[Session] = None
        self.identity: Optional[Identity] = None
        self.role: Optional[str] = None
        self.profile: Optional[Profile] = None
        self.loading = True
        self._alive = False
        self._subscription: Optional[AuthSubscription] = None
        self._listeners: List[StateListener] = []
        self._pending: Set[asyncio.Task] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    # ── Observation ──────────────────────────────────────────────────

    @property
    def state(self) -> AuthState:
        return AuthState(
            session=self.session,
            identity=self.identity,
            role=self.role,
            profile=self.profile,
            loading=self.loading,
        )

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call *listener* after every state change; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.state
        for listener in list(self._listeners):
            listener(snapshot)

    # ── Lifecycle ────────────────────────────────────────────────────

    async def start(self) -> None:
        """Subscribe to auth changes, then perform the initial fetch."""
        if self._alive:
            return
        self._alive = True
        self._loop = asyncio.get_running_loop()
        self._subscription = self.auth.on_auth_state_change(self._on_auth_change)

        try:
            try:
                session = await self.auth.get_session()
            except AuthError as e:
                logger.warning("initial session fetch failed: %s", e)
                session = None
            if not self._alive:
                return
            self._apply_session(session)
            if session is not None:
                await self._resolve(session.identity.id)
        finally:
            if self._alive and self.loading:
                self.loading = False
                self._notify()

    async def close(self) -> None:
        """Stop listening. In-flight fetches finish but no longer write state."""
        self._alive = False
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self._listeners.clear()

    async def settle(self) -> None:
        """Wait until deferred role/profile fetches have finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def sign_out(self) -> None:
        try:
            await self.auth.sign_out()
        except AuthError as e:
            logger.warning("sign-out failed: %s", e)
        finally:
            self._apply_session(None)

    # ── Auth change handling ─────────────────────────────────────────

    def _on_auth_change(self, event: str, session: Optional[Session]) -> None:
        # Runs inside the provider's own call: update synchronously, and
        # queue the role/profile fetch to run after the callback returns.
        if not self._alive:
            return
        logger.debug("auth event %s", event)
        self._apply_session(session)
        if session is not None:
            self._defer_resolve(session.identity.id)

    def _defer_resolve(self, user_id: str) -> None:
        task = self._loop.create_task(self._resolve(user_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _apply_session(self, session: Optional[Session]) -> None:
        previous = self.identity.id if self.identity else None
        self.session = session
        self.identity = session.identity if session else None
        current = self.identity.id if self.identity else None
        if current != previous:
            self.role = None
            self.profile = None
        self._notify()

    async def _resolve(self, user_id: str) -> None:
        """Fetch role and profile for *user_id*; failures leave the fields null."""
        role_query = self.gateway.table("user_roles").select("role").eq("user_id", user_id).maybe_single()
        profile_query = (
            self.gateway.table("profiles")
            .select("full_name, phone, avatar_url")
            .eq("user_id", user_id)
            .maybe_single()
        )
        role_res, profile_res = await asyncio.gather(
            role_query.execute(), profile_query.execute(), return_exceptions=True,
        )
        for res in (role_res, profile_res):
            # Only cancellation and exits propagate.
            if isinstance(res, BaseException) and not isinstance(res, Exception):
                raise res

        if not self._alive or self.identity is None or self.identity.id != user_id:
            return

        if isinstance(role_res, GatewayError):
            logger.warning("role lookup failed for %s: %s", user_id, role_res)
        elif isinstance(role_res, Exception):
            logger.error("unexpected role lookup failure for %s", user_id, exc_info=role_res)
        elif role_res.data:
            self.role = parse_role(role_res.data.get("role"))

        if isinstance(profile_res, GatewayError):
            logger.warning("profile lookup failed for %s: %s", user_id, profile_res)
        elif isinstance(profile_res, Exception):
            logger.error("unexpected profile lookup failure for %s", user_id, exc_info=profile_res)
        elif profile_res.data:
            row = profile_res.data
            self.profile = Profile(
                full_name=row.get("full_name") or "",
                phone=row.get("phone"),
                avatar_url=row.get("avatar_url"),
            )
        self._notify()
