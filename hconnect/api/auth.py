"""
Bearer-token handling and the per-request session for the Flask API.

The server keeps no sessions of its own: every request adopts the caller's
access token, starts a fresh ``SessionStore`` (role and profile resolved
before the view runs) and closes it when the view returns.
"""

from dataclasses import dataclass
from functools import wraps
from typing import Optional

from flask import current_app, g, jsonify, request

from hconnect.errors import AuthError
from hconnect.gateway import DataGateway
from hconnect.identity import IdentityProvider
from hconnect.notify import Notifier
from hconnect.resolver import SessionStore


@dataclass
class RequestSession:
    auth: IdentityProvider
    gateway: DataGateway
    store: SessionStore
    notifier: Notifier


def bearer_token() -> Optional[str]:
    """Return the token from ``Authorization: Bearer <token>`` (or None)."""
    header = request.headers.get("Authorization", "")
    if not header:
        return None
    parts = header.split(" ")
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1]:
        raise AuthError("Invalid authorization header format", status=401)
    return parts[1]


async def open_request_session() -> RequestSession:
    token = bearer_token()
    auth, gateway = await current_app.config["HCONNECT_CONNECT"]()
    if token:
        await auth.adopt(token, request.headers.get("X-Refresh-Token"))
    store = SessionStore(auth, gateway)
    await store.start()
    return RequestSession(auth=auth, gateway=gateway, store=store, notifier=Notifier())


def with_session(f):
    """Decorator that attaches a started RequestSession as ``g.hc``."""
    @wraps(f)
    async def decorated(*args, **kwargs):
        try:
            g.hc = await open_request_session()
        except AuthError as e:
            return jsonify({"error": e.message}), e.status or 401
        try:
            return await f(*args, **kwargs)
        finally:
            await g.hc.store.close()

    return decorated


def session_required(f):
    """Like ``with_session`` but rejects anonymous callers."""
    @wraps(f)
    async def decorated(*args, **kwargs):
        if g.hc.store.identity is None:
            return jsonify({"error": "Authentication token is missing or expired"}), 401
        return await f(*args, **kwargs)

    return with_session(decorated)
