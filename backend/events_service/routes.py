"""
Events service routes: create, read, update, delete events, plus the
paginated listing used by the admin dashboard and status moderation.
"""

import logging
from typing import Tuple, Dict, Any

from flask import Blueprint, request, jsonify, Response, g
from pymongo import DESCENDING
from pymongo.errors import PyMongoError

from backend.database.db_connection import get_db
from backend.database.documents import (
    parse_object_id,
    parse_pagination,
    request_json,
    result_to_dict,
    serialize_doc,
    serialize_docs,
    total_pages,
)
from backend.auth_service.utils import roles_required

events_bp = Blueprint("events", __name__)

# --- CONSTANTS FOR VALIDATION ---
NAME_MAX_LENGTH = 200
VALID_STATUSES = ["pending", "approved", "rejected"]
EVENT_FIELDS = [
    "name", "description", "image", "date", "time", "location",
    "category", "ticketQuantity", "price", "status", "email",
]
# Owner email comes from the token, status from /update-event
UPDATABLE_FIELDS = [k for k in EVENT_FIELDS if k not in ("status", "email")]
STRING_FIELDS = ["name", "description", "image", "date", "time", "location", "category"]
REQUIRED_FIELDS = ["name", "date"]
# Equality filters accepted by GET /events, first match wins
LIST_FILTERS = ["email", "category", "status"]


def validate_event_fields(data: Dict[str, Any]) -> str:
    """
    Check the values of whichever event fields are present.

    Returns:
        str: An error message, or "" if the fields are valid.
    """
    for key in STRING_FIELDS:
        if data.get(key) is not None and not isinstance(data[key], str):
            return f"{key} must be a string"

    if "name" in data:
        name = data.get("name")
        if not name or not name.strip():
            return "name cannot be empty"
        if len(name) > NAME_MAX_LENGTH:
            return f"name must be {NAME_MAX_LENGTH} characters or less."

    if "status" in data and data.get("status") not in VALID_STATUSES:
        return f"status must be one of: {', '.join(VALID_STATUSES)}"

    for key in ("price", "ticketQuantity"):
        if key in data:
            value = data[key]
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
                return f"{key} must be a non-negative number"

    return ""


@events_bp.route("/events", methods=["GET"])
def list_events() -> Tuple[Response, int]:
    """
    Return all events, optionally narrowed by one equality filter
    (?email=, ?category= or ?status=).

    Returns:
        200: List of event objects.
        500: Database error.
    """
    query = {}
    for key in LIST_FILTERS:
        value = request.args.get(key)
        if value:
            query[key] = value
            break

    try:
        events = serialize_docs(get_db()["events"].find(query))
    except PyMongoError as e:
        logging.error(f"Database error listing events: {e}")
        return jsonify({"error": "Failed to retrieve events"}), 500

    return jsonify(events), 200


@events_bp.route("/all-events", methods=["GET"])
def list_events_paginated() -> Tuple[Response, int]:
    """
    Paginated event listing.

    Query:
        currentPage (int, default 1), pageSize (int, default 10),
        status (optional equality filter).

    Returns:
        200: { "items", "totalPages", "currentPage", "totalCount" }
        400: Non-numeric or non-positive pagination values.
        500: Database error.
    """
    try:
        page, page_size = parse_pagination(request.args)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    query = {}
    status = request.args.get("status")
    if status:
        query["status"] = status

    try:
        collection = get_db()["events"]
        total_count = collection.count_documents(query)
        cursor = (
            collection.find(query)
            .sort("_id", DESCENDING)
            .skip((page - 1) * page_size)
            .limit(page_size)
        )
        items = serialize_docs(cursor)
    except PyMongoError as e:
        logging.error(f"Database error paginating events: {e}")
        return jsonify({"error": "Failed to retrieve events"}), 500

    return jsonify({
        "items": items,
        "totalPages": total_pages(total_count, page_size),
        "currentPage": page,
        "totalCount": total_count,
    }), 200


@events_bp.route("/events/<event_id>", methods=["GET"])
def get_event(event_id: str) -> Tuple[Response, int]:
    """
    Get a single event by ID.

    Returns:
        200: Event object.
        400: Malformed id.
        404: Event not found.
    """
    oid = parse_object_id(event_id)
    if oid is None:
        return jsonify({"error": "Invalid id"}), 400

    try:
        event = get_db()["events"].find_one({"_id": oid})
    except PyMongoError as e:
        logging.error(f"Database error getting event {event_id}: {e}")
        return jsonify({"error": "Failed to retrieve event"}), 500

    if not event:
        return jsonify({"error": "Event not found"}), 404

    return jsonify(serialize_doc(event)), 200


@events_bp.route("/events", methods=["POST"])
@roles_required("organizer")
def create_event() -> Tuple[Response, int]:
    """
    Create an event. Organizers only.

    The owner email is taken from the caller's token. New events always
    start as "pending" until an admin approves them.

    Returns:
        201: Insert result with insertedId.
        400: Validation error.
        401/403: Auth failure.
        500: Server error.
    """
    data: Dict[str, Any] = request_json()

    # --- START VALIDATION ---
    error = validate_event_fields(data)
    if error:
        return jsonify({"error": error}), 400

    missing = [k for k in REQUIRED_FIELDS if not data.get(k)]
    if missing:
        return jsonify({"error": f"{', '.join(missing)} required"}), 400
    # --- END VALIDATION ---

    doc = {k: data[k] for k in UPDATABLE_FIELDS if k in data}
    doc["email"] = g.email
    doc["status"] = "pending"

    try:
        result = get_db()["events"].insert_one(doc)
    except PyMongoError as e:
        logging.error(f"Database error creating event: {e}")
        return jsonify({"error": "Failed to create event"}), 500

    return jsonify(result_to_dict(result)), 201


@events_bp.route("/events/<event_id>", methods=["PATCH"])
@roles_required("organizer", "admin")
def update_event(event_id: str) -> Tuple[Response, int]:
    """
    Update the given fields of an event. Organizers and admins only.

    Fields not in the body are left unchanged. Status changes go through
    /update-event and the owner email is fixed at creation.

    Returns:
        200: Update result.
        400: Validation error, a status in the body, or nothing to update.
        401/403: Auth failure.
        404: Event not found.
    """
    oid = parse_object_id(event_id)
    if oid is None:
        return jsonify({"error": "Invalid id"}), 400

    data: Dict[str, Any] = request_json()
    if "status" in data:
        return jsonify({"error": "status can only be changed through /update-event"}), 400

    fields = {k: data[k] for k in UPDATABLE_FIELDS if k in data}

    if not fields:
        return jsonify({"error": "No valid fields to update"}), 400

    error = validate_event_fields(fields)
    if error:
        return jsonify({"error": error}), 400

    try:
        result = get_db()["events"].update_one({"_id": oid}, {"$set": fields})
    except PyMongoError as e:
        logging.error(f"Database error updating event {event_id}: {e}")
        return jsonify({"error": "Failed to update event"}), 500

    if result.matched_count == 0:
        return jsonify({"error": "Event not found"}), 404

    return jsonify(result_to_dict(result)), 200


@events_bp.route("/update-event/<event_id>", methods=["PATCH"])
@roles_required("admin")
def update_event_status(event_id: str) -> Tuple[Response, int]:
    """
    Admin-only: approve or reject an event.

    Expects JSON: { "status": "pending" | "approved" | "rejected" }
    """
    oid = parse_object_id(event_id)
    if oid is None:
        return jsonify({"error": "Invalid id"}), 400

    data: Dict[str, Any] = request_json()
    status = data.get("status")

    if status not in VALID_STATUSES:
        return jsonify({"error": f"status must be one of: {', '.join(VALID_STATUSES)}"}), 400

    try:
        result = get_db()["events"].update_one({"_id": oid}, {"$set": {"status": status}})
    except PyMongoError as e:
        logging.error(f"Database error updating status of event {event_id}: {e}")
        return jsonify({"error": "Failed to update event"}), 500

    if result.matched_count == 0:
        return jsonify({"error": "Event not found"}), 404

    return jsonify(result_to_dict(result)), 200


@events_bp.route("/events/<event_id>", methods=["DELETE"])
@roles_required("organizer", "admin")
def delete_event(event_id: str) -> Tuple[Response, int]:
    """
    Delete an event. Organizers and admins only.
    """
    oid = parse_object_id(event_id)
    if oid is None:
        return jsonify({"error": "Invalid id"}), 400

    try:
        result = get_db()["events"].delete_one({"_id": oid})
    except PyMongoError as e:
        logging.error(f"Database error deleting event {event_id}: {e}")
        return jsonify({"error": "Failed to delete event"}), 500

    if result.deleted_count == 0:
        return jsonify({"error": "Event not found"}), 404

    return jsonify(result_to_dict(result)), 200
