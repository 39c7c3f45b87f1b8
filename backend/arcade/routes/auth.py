# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

- POST /register: owner self-registration (email + password)
- POST /login: username or email + password, returns a bearer token
- POST /logout: revoke the presented token
- GET  /me: current account
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, bearer_token
from ..services import auth_service, session_service
from ..services.auth_service import AuthError, PasswordValidationError


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _login_payload(user, session, token) -> dict:
    return {
        "user": user.to_dict(),
        "token": token,
        "session": session.to_dict(),
        "store_id": user.staff_store_id,
    }


@auth_bp.post("/register")
def register_route():
    data = request.get_json(silent=True) or {}
    try:
        user = auth_service.register_owner(
            email=data.get("email"),
            password=data.get("password"),
            name=data.get("name"),
        )
    except PasswordValidationError as exc:
        return jsonify({"error": str(exc)}), 400
    except AuthError as exc:
        return jsonify({"error": str(exc)}), exc.status
    except Exception:
        current_app.logger.exception("Failed to register user")
        return jsonify({"error": "Internal server error"}), 500

    session, token = session_service.create_session(
        user_id=user.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    return jsonify({**_login_payload(user, session, token), "message": "Registration successful"}), 201


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included in Authorization header for protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username") or data.get("email")
        password = data.get("password")

        if not all([username, password]):
            return jsonify({"error": "username/email and password required"}), 400

        user = auth_service.authenticate(username, password)
        if not user:
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        return jsonify({**_login_payload(user, session, token), "message": "Login successful"}), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
def logout_route():
    token = bearer_token()
    if not token:
        return jsonify({"error": "Authorization header required"}), 401

    if not session_service.revoke_session(token, reason="User logout"):
        return jsonify({"error": "Invalid or expired token"}), 401

    return jsonify({"message": "Logout successful"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    user = g.current_user
    payload = user.to_dict()
    payload["store"] = user.staff_store.to_dict() if user.staff_store else None
    return jsonify(payload), 200
