"""
Authentication and user route handlers.

Provides routes for:
- Token issuance (/jwt)
- User creation on first login (/users POST)
- User listing and lookup
- Role lookup by email
- Admin role assignment

All JWT logic is delegated to `auth_service.utils`.
"""

import logging
from typing import Tuple, Dict, Any

from flask import Blueprint, request, jsonify, Response
from pymongo.errors import DuplicateKeyError, PyMongoError

from backend.database.db_connection import get_db
from backend.database.documents import (
    parse_object_id,
    request_json,
    result_to_dict,
    serialize_doc,
    serialize_docs,
    string_field,
)
from backend.auth_service.utils import VALID_ROLES, create_token, roles_required

auth_bp = Blueprint("auth", __name__)

# Roles a user may pick for themselves at sign-up
SELF_ASSIGNABLE_ROLES = ["organizer", "attendee"]
USER_FIELDS = ["name", "photo"]


# --- ISSUE TOKEN ---
@auth_bp.route("/jwt", methods=["POST"])
def issue_token() -> Tuple[Response, int]:
    """
    Issue a JWT for a signed-in user.

    Expects a JSON body with:
    - email (str)

    Returns:
        200: { "token": str }
        400: Missing email.
    """
    data: Dict[str, Any] = request_json()
    email = string_field(data, "email")
    if email is None:
        return jsonify({"error": "email must be a string"}), 400
    email = email.lower()

    if not email:
        return jsonify({"error": "Email required"}), 400

    return jsonify({"token": create_token(email)}), 200


# --- CREATE USER ---
@auth_bp.route("/users", methods=["POST"])
def create_user() -> Tuple[Response, int]:
    """
    Save a user the first time they log in.

    Expects a JSON body with:
    - email (str): Unique email address.
    - name (str, optional)
    - photo (str, optional)
    - role (str, optional): "organizer" or "attendee"; defaults to attendee.

    The insert is a single upsert with $setOnInsert, so two concurrent
    requests for the same email cannot both create a document.

    Returns:
        201: Insert result with insertedId.
        200: { "message": "user already exists", "insertedId": null }
        400: Missing email or invalid role.
        500: Database error.
    """
    data: Dict[str, Any] = request_json()
    email = string_field(data, "email")
    if email is None:
        return jsonify({"error": "email must be a string"}), 400
    email = email.lower()

    if not email:
        return jsonify({"error": "Email required"}), 400

    role = data.get("role") or "attendee"
    if role not in SELF_ASSIGNABLE_ROLES:
        return jsonify({"error": f"role must be one of: {', '.join(SELF_ASSIGNABLE_ROLES)}"}), 400

    doc = {k: data[k] for k in USER_FIELDS if k in data}
    doc.update({"email": email, "role": role})

    existing = {"message": "user already exists", "insertedId": None}

    try:
        result = get_db()["users"].update_one(
            {"email": email},
            {"$setOnInsert": doc},
            upsert=True,
        )
    except DuplicateKeyError:
        # Lost an upsert race against an identical request
        return jsonify(existing), 200
    except PyMongoError as e:
        logging.error(f"Database error creating user: {e}")
        return jsonify({"error": "Failed to create user"}), 500

    if result.upserted_id is None:
        return jsonify(existing), 200

    return jsonify({"acknowledged": result.acknowledged, "insertedId": str(result.upserted_id)}), 201


# --- LIST USERS (ADMIN ONLY) ---
@auth_bp.route("/users", methods=["GET"])
@roles_required("admin")
def list_users() -> Tuple[Response, int]:
    """
    Admin-only endpoint to list all users, optionally filtered by ?role=.

    Returns:
        200: List of user objects.
        401/403: Unauthorized (not an admin).
        500: Database error.
    """
    query = {}
    role = request.args.get("role")
    if role:
        query["role"] = role

    try:
        users = serialize_docs(get_db()["users"].find(query))
    except PyMongoError as e:
        logging.error(f"Error listing users: {e}")
        return jsonify({"error": "Failed to retrieve users"}), 500

    return jsonify(users), 200


# --- GET USER ---
@auth_bp.route("/users/<user_id>", methods=["GET"])
def get_user(user_id: str) -> Tuple[Response, int]:
    """
    Retrieve a single user by id.

    Returns:
        200: User object.
        400: Malformed id.
        404: User not found.
        500: Database error.
    """
    oid = parse_object_id(user_id)
    if oid is None:
        return jsonify({"error": "Invalid id"}), 400

    try:
        user = get_db()["users"].find_one({"_id": oid})
    except PyMongoError as e:
        logging.error(f"Database error getting user {user_id}: {e}")
        return jsonify({"error": "Could not retrieve user"}), 500

    if not user:
        return jsonify({"error": "User not found"}), 404

    return jsonify(serialize_doc(user)), 200


# --- GET ROLE ---
@auth_bp.route("/users/role/<email>", methods=["GET"])
def get_user_role(email: str) -> Tuple[Response, int]:
    """
    Return the stored role for an email so the client can pick a dashboard.

    Returns:
        200: { "role": str | null }
        404: User not found.
        500: Database error.
    """
    try:
        user = get_db()["users"].find_one({"email": email.strip().lower()}, {"role": 1})
    except PyMongoError as e:
        logging.error(f"Database error getting role for {email}: {e}")
        return jsonify({"error": "Could not retrieve role"}), 500

    if not user:
        return jsonify({"error": "User not found"}), 404

    return jsonify({"role": user.get("role")}), 200


# --- SET ROLE (ADMIN ONLY) ---
@auth_bp.route("/users/<user_id>", methods=["PATCH"])
@roles_required("admin")
def set_role(user_id: str) -> Tuple[Response, int]:
    """
    Admin-only endpoint to promote or demote a user's role.

    Expects JSON:
        { "role": "attendee" | "organizer" | "admin" }

    Returns:
        200: Update result.
        400: Invalid role or id.
        401/403: Unauthorized.
        404: User not found.
        500: Database error.
    """
    oid = parse_object_id(user_id)
    if oid is None:
        return jsonify({"error": "Invalid id"}), 400

    data: Dict[str, Any] = request_json()
    new_role = data.get("role")

    if new_role not in VALID_ROLES:
        return jsonify({"error": f"role must be one of: {', '.join(VALID_ROLES)}"}), 400

    try:
        result = get_db()["users"].update_one({"_id": oid}, {"$set": {"role": new_role}})
    except PyMongoError as e:
        logging.error(f"Database error updating role for {user_id}: {e}")
        return jsonify({"error": "Failed to update role"}), 500

    if result.matched_count == 0:
        return jsonify({"error": "User not found"}), 404

    return jsonify(result_to_dict(result)), 200
