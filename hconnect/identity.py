"""
Identity provider client – sessions, sign-in flows and auth change events.

Every session transition is announced to subscribers with one of the events
below, including the transition caused by the first ``get_session()`` call.
Subscriber callbacks run synchronously inside the provider call that caused
the transition; they must not await provider methods themselves.
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import jwt
from supabase import AsyncClient, acreate_client
from supabase import AuthError as SupabaseAuthError
from supabase.lib.client_options import AsyncClientOptions

from hconnect.config import REQUEST_TIMEOUT, TOKEN_EXPIRY_MARGIN_SECONDS
from hconnect.errors import AuthError
from hconnect.gateway import DataGateway
from hconnect.models import Identity, Session

logger = logging.getLogger(__name__)

INITIAL_SESSION = "INITIAL_SESSION"
SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
TOKEN_REFRESHED = "TOKEN_REFRESHED"

AuthCallback = Callable[[str, Optional[Session]], None]


@dataclass
class SignUpResult:
    identity: Identity
    session: Optional[Session]   # None when email confirmation is pending


class AuthSubscription:
    """Handle returned by ``on_auth_state_change``."""

    def __init__(self, provider: "IdentityProvider", callback: AuthCallback):
        self._provider = provider
        self.callback = callback

    def unsubscribe(self) -> None:
        self._provider._remove_listener(self.callback)


class IdentityProvider:
    """Listener bookkeeping shared by every identity provider implementation."""

    def __init__(self):
        self._listeners: List[AuthCallback] = []
        self._session: Optional[Session] = None

    @property
    def current_session(self) -> Optional[Session]:
        return self._session

    @property
    def access_token(self) -> Optional[str]:
        return self._session.access_token if self._session else None

    def on_auth_state_change(self, callback: AuthCallback) -> AuthSubscription:
        self._listeners.append(callback)
        return AuthSubscription(self, callback)

    def _remove_listener(self, callback: AuthCallback) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _emit(self, event: str, session: Optional[Session]) -> None:
        for callback in list(self._listeners):
            callback(event, session)

    async def adopt(self, access_token: str, refresh_token: Optional[str] = None) -> Session:
        """Use an already-issued token (from an Authorization header) as the session."""
        raise NotImplementedError

    async def get_session(self) -> Optional[Session]:
        raise NotImplementedError

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        raise NotImplementedError

    async def sign_up(self, email: str, password: str, data: Optional[dict] = None) -> SignUpResult:
        raise NotImplementedError

    async def sign_in_with_otp(self, email: str) -> None:
        raise NotImplementedError

    async def verify_otp(self, email: str, token: str) -> Session:
        raise NotImplementedError

    async def sign_out(self) -> None:
        raise NotImplementedError


def decode_claims(access_token: str) -> Dict[str, Any]:
    """Read the JWT claims of an access token.

    The signature is not checked here; the hosted backend verifies it on
    every request made with the token.
    """
    try:
        return jwt.decode(access_token, options={"verify_signature": False})
    except jwt.InvalidTokenError as e:
        raise AuthError(f"Invalid access token: {e}", status=401) from e


def session_from_token(access_token: str, refresh_token: Optional[str] = None) -> Session:
    """Build a Session from a bare access token (e.g. an Authorization header)."""
    claims = decode_claims(access_token)
    if not claims.get("sub"):
        raise AuthError("Access token has no subject", status=401)
    return Session(
        access_token=access_token,
        refresh_token=refresh_token,
        identity=Identity(id=str(claims["sub"]), email=claims.get("email")),
        expires_at=claims.get("exp"),
    )


def session_from_client(session: Any) -> Optional[Session]:
    """Convert a session object returned by the hosted client."""
    if session is None:
        return None
    user = getattr(session, "user", None)
    if user is None:
        return session_from_token(session.access_token, session.refresh_token)
    return Session(
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        identity=Identity(id=str(user.id), email=user.email),
        expires_at=session.expires_at,
    )


def _auth_error(error: SupabaseAuthError) -> AuthError:
    return AuthError(getattr(error, "message", None) or str(error), status=getattr(error, "status", None))


class SupabaseAuth(IdentityProvider):
    """Identity provider backed by the hosted client's auth module.

    The client announces its own transitions (``SIGNED_IN``, ``TOKEN_REFRESHED``,
    ``SIGNED_OUT``); they are converted and re-emitted to subscribers. The
    ``INITIAL_SESSION`` event is emitted here, once, by the first ``get_session()``.
    """

    def __init__(self, client: AsyncClient, storage_path: Optional[str] = None):
        super().__init__()
        self.client = client
        self.storage_path = Path(storage_path).expanduser() if storage_path else None
        self._initialized = False
        self._restored = False
        self._restoring = False
        self._client_subscription = client.auth.on_auth_state_change(self._forward)

    def _forward(self, event: str, session: Any) -> None:
        if event == INITIAL_SESSION:
            return
        session = session_from_client(session)
        if self._restoring:
            # Announced as INITIAL_SESSION once get_session() finishes.
            self._session = session
            self._store(session)
            return
        self._set_session(session, event)

    def _set_session(self, session: Optional[Session], event: str) -> None:
        self._session = session
        self._store(session)
        self._emit(event, session)

    # ── Session handling ─────────────────────────────────────────────

    async def adopt(self, access_token: str, refresh_token: Optional[str] = None) -> Session:
        if refresh_token:
            try:
                await self.client.auth.set_session(access_token, refresh_token)
            except SupabaseAuthError as e:
                raise _auth_error(e) from e
        else:
            session = session_from_token(access_token)
            if session.is_expired():
                raise AuthError("Access token has expired", status=401)
            self.client.postgrest.auth(access_token)
            self._session = session
        if self._session is None:
            raise AuthError("Access token was not accepted", status=401)
        self._restored = True
        return self._session

    async def get_session(self) -> Optional[Session]:
        if not self._restored:
            self._restored = True
            await self._restore()
        elif self._session is not None and self._session.is_expired(margin=TOKEN_EXPIRY_MARGIN_SECONDS):
            await self._refresh()

        if not self._initialized:
            self._initialized = True
            self._emit(INITIAL_SESSION, self._session)
        return self._session

    async def _restore(self) -> None:
        stored = self._load_stored()
        if stored is None:
            return
        self._restoring = True
        try:
            # Refreshes first when the stored access token has expired.
            await self.client.auth.set_session(stored["access_token"], stored.get("refresh_token") or "")
        except SupabaseAuthError as e:
            logger.warning("stored session could not be restored: %s", e)
            self._restoring = False
            self._set_session(None, SIGNED_OUT)
        finally:
            self._restoring = False

    async def _refresh(self) -> None:
        try:
            await self.client.auth.refresh_session(self._session.refresh_token)
        except SupabaseAuthError as e:
            logger.warning("session refresh failed: %s", e)
            self._set_session(None, SIGNED_OUT)

    def _load_stored(self) -> Optional[Dict[str, Any]]:
        if not self.storage_path or not self.storage_path.exists():
            return None
        try:
            raw = json.loads(self.storage_path.read_text())
        except ValueError as e:
            logger.warning("ignoring unreadable session file %s: %s", self.storage_path, e)
            return None
        if not isinstance(raw, dict) or not raw.get("access_token"):
            logger.warning("ignoring session file %s without an access token", self.storage_path)
            return None
        return raw

    def _store(self, session: Optional[Session]) -> None:
        if not self.storage_path:
            return
        if session is None:
            if self.storage_path.exists():
                self.storage_path.unlink()
            return
        self.storage_path.parent.mkdir(parents=True, exist_ok=True)
        # Holds a refresh token: owner read/write only.
        fd = os.open(self.storage_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w") as f:
            json.dump(session.to_dict(), f, indent=2)
        os.chmod(self.storage_path, 0o600)

    # ── Sign-in flows ────────────────────────────────────────────────

    async def _call(self, operation: Awaitable[Any]) -> Any:
        try:
            return await operation
        except SupabaseAuthError as e:
            raise _auth_error(e) from e

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        response = await self._call(self.client.auth.sign_in_with_password(
            {"email": email, "password": password}))
        return self._session or session_from_client(response.session)

    async def sign_up(self, email: str, password: str, data: Optional[dict] = None) -> SignUpResult:
        response = await self._call(self.client.auth.sign_up(
            {"email": email, "password": password, "options": {"data": data or {}}}))
        if response.user is None:
            raise AuthError("Sign up returned no user")
        identity = Identity(id=str(response.user.id), email=response.user.email)
        # No session while email confirmation is pending.
        session = (self._session or session_from_client(response.session)) if response.session else None
        return SignUpResult(identity=identity, session=session)

    async def sign_in_with_otp(self, email: str) -> None:
        await self._call(self.client.auth.sign_in_with_otp(
            {"email": email, "options": {"should_create_user": False}}))

    async def verify_otp(self, email: str, token: str) -> Session:
        response = await self._call(self.client.auth.verify_otp(
            {"email": email, "token": token, "type": "email"}))
        session = self._session or session_from_client(response.session)
        if session is None:
            raise AuthError("Verification returned no session")
        return session

    async def sign_out(self) -> None:
        try:
            await self.client.auth.sign_out()
        except SupabaseAuthError as e:
            # The local session is dropped regardless.
            logger.warning("remote sign-out failed: %s", e)
        finally:
            if self._session is not None:
                self._set_session(None, SIGNED_OUT)


async def connect(url: str, api_key: str,
                  storage_path: Optional[str] = None) -> Tuple[SupabaseAuth, DataGateway]:
    """Create one hosted client and return the identity provider and gateway sharing it."""
    client = await acreate_client(url, api_key, options=AsyncClientOptions(
        auto_refresh_token=False,
        persist_session=False,
        postgrest_client_timeout=REQUEST_TIMEOUT,
    ))
    return SupabaseAuth(client, storage_path=storage_path), DataGateway(client)
