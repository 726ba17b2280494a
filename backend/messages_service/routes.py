"""
Messages service route handlers.
Contact-form submissions and the admin inbox.
"""

import logging
from datetime import datetime, timezone

from flask import Blueprint, request, jsonify
from pymongo import DESCENDING
from pymongo.errors import PyMongoError

from backend.database.db_connection import get_db
from backend.database.documents import (
    parse_object_id,
    request_json,
    result_to_dict,
    serialize_docs,
    string_field,
)
from backend.auth_service.utils import roles_required

messages_bp = Blueprint("messages", __name__)

VALID_STATUSES = ["seen", "unseen"]


@messages_bp.route("/messages", methods=["GET"])
@roles_required("admin")
def list_messages():
    """
    Admin-only: all messages, newest first. Optional ?status=seen|unseen.
    """
    query = {}
    status = request.args.get("status")
    if status:
        if status not in VALID_STATUSES:
            return jsonify({"error": f"status must be one of: {', '.join(VALID_STATUSES)}"}), 400
        query["status"] = status

    try:
        messages = serialize_docs(get_db()["messages"].find(query).sort("date", DESCENDING))
    except PyMongoError as e:
        logging.error(f"Error listing messages: {e}")
        return jsonify({"error": "Failed to list messages"}), 500

    return jsonify(messages), 200


@messages_bp.route("/messages/unseen-count", methods=["GET"])
@roles_required("admin")
def unseen_count():
    """
    Admin-only: number of unread messages, for the inbox badge.
    """
    try:
        count = get_db()["messages"].count_documents({"status": "unseen"})
    except PyMongoError as e:
        logging.error(f"Error counting messages: {e}")
        return jsonify({"error": "Failed to count messages"}), 500

    return jsonify({"count": count}), 200


@messages_bp.route("/messages", methods=["POST"])
def create_message():
    """
    Public contact form. The server sets status and date.
    """
    data = request_json()
    fields = {k: string_field(data, k) for k in ("name", "email", "message")}

    bad = [k for k, v in fields.items() if v is None]
    if bad:
        return jsonify({"error": f"{', '.join(bad)} must be text"}), 400

    message, email = fields["message"], fields["email"]
    if not message or not email:
        return jsonify({"error": "Email and message are required"}), 400

    doc = {
        "name": fields["name"] or None,
        "email": email,
        "message": message,
        "status": "unseen",
        "date": datetime.now(timezone.utc).isoformat(),
    }

    try:
        result = get_db()["messages"].insert_one(doc)
    except PyMongoError as e:
        logging.error(f"Error creating message: {e}")
        return jsonify({"error": "Failed to send message"}), 500

    return jsonify(result_to_dict(result)), 201


@messages_bp.route("/messages", methods=["PATCH"])
@roles_required("admin")
def mark_all_seen():
    """
    Admin-only: mark every unseen message as seen.
    """
    try:
        result = get_db()["messages"].update_many(
            {"status": "unseen"}, {"$set": {"status": "seen"}}
        )
    except PyMongoError as e:
        logging.error(f"Error marking messages seen: {e}")
        return jsonify({"error": "Failed to update messages"}), 500

    return jsonify(result_to_dict(result)), 200


@messages_bp.route("/messages/<message_id>", methods=["PATCH"])
@roles_required("admin")
def mark_seen(message_id):
    """
    Admin-only: mark one message as seen.
    """
    oid = parse_object_id(message_id)
    if oid is None:
        return jsonify({"error": "Invalid id"}), 400

    try:
        result = get_db()["messages"].update_one({"_id": oid}, {"$set": {"status": "seen"}})
    except PyMongoError as e:
        logging.error(f"Error updating message {message_id}: {e}")
        return jsonify({"error": "Failed to update message"}), 500

    if result.matched_count == 0:
        return jsonify({"error": "Message not found"}), 404

    return jsonify(result_to_dict(result)), 200


@messages_bp.route("/messages/<message_id>", methods=["DELETE"])
@roles_required("admin")
def delete_message(message_id):
    """
    Admin-only: delete a message.
    """
    oid = parse_object_id(message_id)
    if oid is None:
        return jsonify({"error": "Invalid id"}), 400

    try:
        result = get_db()["messages"].delete_one({"_id": oid})
    except PyMongoError as e:
        logging.error(f"Error deleting message {message_id}: {e}")
        return jsonify({"error": "Failed to delete message"}), 500

    if result.deleted_count == 0:
        return jsonify({"error": "Message not found"}), 404

    return jsonify(result_to_dict(result)), 200
