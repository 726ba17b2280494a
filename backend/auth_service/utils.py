"""
Shared authentication helpers.
Provides token creation, verification, and role enforcement.
"""

import os
import logging
from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Tuple, Optional, Callable, Any

import jwt
from flask import jsonify, request, g, Response
from dotenv import load_dotenv
from pymongo.errors import PyMongoError

from backend.database.db_connection import get_db

# Load .env only once here
load_dotenv()

# Load secrets & configs
ACCESS_TOKEN_SECRET = os.getenv("ACCESS_TOKEN_SECRET")
if not ACCESS_TOKEN_SECRET:
    raise RuntimeError("ACCESS_TOKEN_SECRET is missing. Set it in .env")

TOKEN_EXPIRATION_MINUTES = int(os.getenv("TOKEN_EXPIRATION_MINUTES", 60))  # Default 1 hour

VALID_ROLES = ["admin", "organizer", "attendee"]


# --- JWT CREATION ---
def create_token(email: str) -> str:
    """
    Generates a new JWT for a given user.

    Args:
        email (str): The email the user signed in with.

    Returns:
        str: Encoded JWT string.
    """
    now = datetime.now(timezone.utc)

    payload = {
        "email": email,
        "exp": now + timedelta(minutes=TOKEN_EXPIRATION_MINUTES),
        "iat": now
    }

    return jwt.encode(payload, ACCESS_TOKEN_SECRET, algorithm="HS256")


def lookup_role(email: str) -> Optional[str]:
    """
    Fetch the stored role for a user.

    Returns:
        str: The role, or None if the user does not exist or has none.
    """
    user = get_db()["users"].find_one({"email": email}, {"role": 1})
    if not user:
        return None
    return user.get("role")


# --- JWT VALIDATION ---
def verify_token_from_request(required_roles: Optional[list] = None) -> Tuple[Optional[str], Optional[str], Optional[Response], Optional[int]]:
    """
    Verify the JWT in the Authorization header.

    The token only carries the email. When required_roles is given, the
    caller's role is read from the users collection on every call, so a
    role change takes effect without issuing a new token.

    Args:
        required_roles (list, optional): List of allowed roles.

    Returns:
        tuple: (email, role, error_response, status_code)
               If successful, error_response and status_code are None.
               If failed, email and role are None.
    """

    auth = request.headers.get("Authorization", "")

    if not auth.startswith("Bearer "):
        return None, None, jsonify({"error": "missing token"}), 401

    token = auth.split(" ", 1)[1]

    try:
        payload = jwt.decode(token, ACCESS_TOKEN_SECRET, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        return None, None, jsonify({"error": "token expired"}), 401
    except jwt.InvalidTokenError:
        return None, None, jsonify({"error": "invalid token"}), 401

    email = payload.get("email")
    if not email:
        return None, None, jsonify({"error": "invalid token"}), 401

    if not required_roles:
        return email, None, None, None

    try:
        role = lookup_role(email)
    except PyMongoError as e:
        logging.error(f"Database error looking up role for {email}: {e}")
        return None, None, jsonify({"error": "Failed to verify permissions"}), 500

    if role not in required_roles:
        return None, None, jsonify({"error": "permission denied"}), 403

    return email, role, None, None


def verify_token(token: str) -> Optional[str]:
    """
    Validate a JWT manually (optional usage).

    Args:
        token (str): JWT string.

    Returns:
        str: email if valid, None otherwise.
    """
    try:
        payload = jwt.decode(token, ACCESS_TOKEN_SECRET, algorithms=["HS256"])
        return payload.get("email")
    except jwt.InvalidTokenError:
        return None


# --- ROUTE DECORATORS ---
def token_required(view: Callable[..., Any]) -> Callable[..., Any]:
    """
    Reject the request with 401 unless it carries a valid bearer token.
    The decoded email is available to the view as g.email.
    """
    @wraps(view)
    def wrapper(*args, **kwargs):
        email, _, err, code = verify_token_from_request()
        if err:
            return err, code
        g.email = email
        g.role = None
        return view(*args, **kwargs)

    return wrapper


def roles_required(*roles: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Role guard: 401 without a valid token, 403 unless the caller's stored
    role is one of `roles`. Sets g.email and g.role for the view.

    Usage:
        @bp.route("/users", methods=["GET"])
        @roles_required("admin")
        def list_users(): ...
    """
    def decorator(view: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(view)
        def wrapper(*args, **kwargs):
            email, role, err, code = verify_token_from_request(required_roles=list(roles))
            if err:
                return err, code
            g.email = email
            g.role = role
            return view(*args, **kwargs)

        return wrapper

    return decorator
