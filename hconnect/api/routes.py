"""
Flask route handlers for the REST API.
"""

import sys
import traceback
from dataclasses import asdict

from flask import g, jsonify, request

from hconnect.errors import ValidationError
from hconnect.navigation import render_shell
from hconnect.pages import NOT_FOUND, PAGES, open_page
from hconnect.rbac import LOADING, REDIRECT, default_path
from hconnect.screens.auth import AuthScreen
from hconnect.api.auth import session_required, with_session


def _state_payload(store) -> dict:
    state = store.state
    return {
        "authenticated": state.identity is not None,
        "user": {"id": state.identity.id, "email": state.identity.email} if state.identity else None,
        "role": state.role,
        "profile": asdict(state.profile) if state.profile else None,
        "landing_path": default_path(state.role),
        "navigation": render_shell(state),
    }


def _notifications() -> list:
    return [asdict(n) for n in g.hc.notifier.drain()]


def _auth_screen() -> AuthScreen:
    # Mounted without loading the hospital list; only its actions are used.
    screen = AuthScreen(g.hc.store, g.hc.gateway, g.hc.notifier)
    screen.alive = True
    return screen


def _json_body() -> dict:
    if not request.is_json:
        raise ValidationError("Content-Type must be application/json")
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValidationError("JSON body must be an object")
    return body


def _auth_response(screen: AuthScreen, ok: bool):
    session = g.hc.auth.current_session
    payload = {
        "success": ok,
        "notifications": _notifications(),
        "redirect": screen.redirect_to,
        "state": _state_payload(g.hc.store),
    }
    if ok and session is not None:
        payload["session"] = session.to_dict()
    return jsonify(payload), 200 if ok else 401


def register_routes(app):
    """Register all API routes on the Flask *app*."""

    # ── Health / info ────────────────────────────────────────────────

    @app.route("/", methods=["GET"])
    def index():
        return jsonify({
            "service": "H Connect API",
            "version": "1.0.0",
            "status": "running",
            "endpoints": {
                "login": "/api/auth/login",
                "signup": "/api/auth/signup",
                "otp": "/api/auth/otp",
                "verify": "/api/auth/verify",
                "logout": "/api/auth/logout",
                "session": "/api/session",
                "pages": "/pages/<path>",
                "health": "/health",
            },
        })

    @app.route("/health", methods=["GET"])
    def health():
        checks = {
            "backend": app.config.get("HCONNECT_CONNECT") is not None,
            "pages": len(PAGES) > 0,
        }
        all_healthy = all(checks.values())
        return jsonify({
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
        }), 200 if all_healthy else 503

    # ── Auth ─────────────────────────────────────────────────────────

    @app.route("/api/auth/login", methods=["POST"])
    @with_session
    async def login():
        data = _json_body()
        screen = _auth_screen()
        ok = await screen.sign_in(data.get("email", ""), data.get("password", ""))
        return _auth_response(screen, ok)

    @app.route("/api/auth/signup", methods=["POST"])
    @with_session
    async def signup():
        data = _json_body()
        screen = _auth_screen()
        ok = await screen.sign_up(
            full_name=data.get("full_name", ""),
            email=data.get("email", ""),
            password=data.get("password", ""),
            role=data.get("role", "patient"),
            hospital_id=data.get("hospital_id"),
            specialty=data.get("specialty"),
        )
        return _auth_response(screen, ok)

    @app.route("/api/auth/otp", methods=["POST"])
    @with_session
    async def request_otp():
        data = _json_body()
        screen = _auth_screen()
        ok = await screen.request_code(data.get("email", ""))
        return jsonify({"success": ok, "notifications": _notifications()}), 200 if ok else 400

    @app.route("/api/auth/verify", methods=["POST"])
    @with_session
    async def verify_otp():
        data = _json_body()
        screen = _auth_screen()
        ok = await screen.verify_code(data.get("email", ""), data.get("code", ""))
        return _auth_response(screen, ok)

    @app.route("/api/auth/logout", methods=["POST"])
    @session_required
    async def logout():
        await g.hc.store.sign_out()
        return jsonify({"success": True, "message": "Logged out successfully"}), 200

    # ── Session ──────────────────────────────────────────────────────

    @app.route("/api/session", methods=["GET"])
    @with_session
    async def get_session():
        payload = _state_payload(g.hc.store)
        session = g.hc.auth.current_session
        if session is not None:
            payload["session"] = session.to_dict()
        return jsonify(payload), 200

    # ── Pages ────────────────────────────────────────────────────────

    def _location(subpath: str) -> str:
        location = "/" + subpath
        if request.query_string:
            location += "?" + request.query_string.decode()
        return location

    def _guard_response(outcome):
        if outcome.decision.action == NOT_FOUND:
            return jsonify({"error": "Page not found"}), 404
        if outcome.decision.action == LOADING:
            return jsonify({"loading": True}), 503
        if outcome.decision.action == REDIRECT:
            target = outcome.decision.target
            resp = jsonify({"redirect": target})
            resp.status_code = 302
            resp.headers["Location"] = "/pages" + target
            return resp
        return None

    @app.route("/pages/", defaults={"subpath": ""}, methods=["GET"])
    @app.route("/pages/<path:subpath>", methods=["GET"])
    @with_session
    async def get_page(subpath):
        outcome = await open_page(_location(subpath), g.hc.store, g.hc.gateway, g.hc.notifier)
        guarded = _guard_response(outcome)
        if guarded is not None:
            return guarded
        screen = outcome.screen
        try:
            return jsonify({
                "view": screen.render(),
                "actions": screen.actions(),
                "navigation": render_shell(g.hc.store.state, outcome.page.path),
                "notifications": _notifications(),
            }), 200
        finally:
            screen.unmount()

    @app.route("/pages/actions/<name>", defaults={"subpath": ""}, methods=["POST"])
    @app.route("/pages/<path:subpath>/actions/<name>", methods=["POST"])
    @with_session
    async def page_action(subpath, name):
        body = _json_body() if request.content_length else {}
        outcome = await open_page(_location(subpath), g.hc.store, g.hc.gateway, g.hc.notifier)
        guarded = _guard_response(outcome)
        if guarded is not None:
            return guarded
        screen = outcome.screen
        try:
            if name not in screen.actions():
                return jsonify({"error": f"Unknown action: {name}"}), 404
            ok = await screen.perform(name, **body)
            return jsonify({
                "success": ok,
                "view": screen.render(),
                "notifications": _notifications(),
            }), 200 if ok else 400
        finally:
            screen.unmount()

    # ── Error handlers ───────────────────────────────────────────────

    @app.errorhandler(ValidationError)
    def validation_error(e):
        return jsonify({"error": e.message}), 400

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Endpoint not found", "message": str(e)}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed", "message": str(e)}), 405

    @app.errorhandler(500)
    def internal_error(e):
        print(f"[ERROR] Unhandled error: {e}", file=sys.stderr)
        traceback.print_exc()
        return jsonify({"error": "Internal server error", "message": str(e)}), 500
