"""
Feedback service route handlers.
User feedback with moderation; published entries double as testimonials.
"""

import logging

from flask import Blueprint, request, jsonify, g
from pymongo.errors import PyMongoError

from backend.database.db_connection import get_db
from backend.database.documents import (
    parse_object_id,
    request_json,
    result_to_dict,
    serialize_doc,
    serialize_docs,
    string_field,
)
from backend.auth_service.utils import roles_required, token_required

feedback_bp = Blueprint("feedback", __name__)

VALID_STATUSES = ["pending", "published"]
FEEDBACK_FIELDS = ["name", "email", "photo", "feedback", "rating", "status"]
TEXT_FIELDS = ["name", "email", "photo", "feedback"]


def validate_feedback_fields(data):
    for key in TEXT_FIELDS:
        if key in data and string_field(data, key) is None:
            return f"{key} must be a string"
    if "feedback" in data and not string_field(data, "feedback"):
        return "feedback cannot be empty"
    if "status" in data and data.get("status") not in VALID_STATUSES:
        return f"status must be one of: {', '.join(VALID_STATUSES)}"
    if "rating" in data:
        rating = data.get("rating")
        if isinstance(rating, bool) or not isinstance(rating, int) or not (1 <= rating <= 5):
            return "rating must be an integer between 1 and 5"
    return ""


@feedback_bp.route("/feedback", methods=["GET"])
def list_feedback():
    """
    All feedback, optionally filtered by ?status=.
    """
    query = {}
    status = request.args.get("status")
    if status:
        query["status"] = status

    try:
        items = serialize_docs(get_db()["feedbacks"].find(query))
    except PyMongoError as e:
        logging.error(f"Error listing feedback: {e}")
        return jsonify({"error": "Failed to list feedback"}), 500

    return jsonify(items), 200


@feedback_bp.route("/testimonial", methods=["GET"])
def list_testimonials():
    """
    Published feedback only, for the landing page.
    """
    try:
        items = serialize_docs(get_db()["feedbacks"].find({"status": "published"}))
    except PyMongoError as e:
        logging.error(f"Error listing testimonials: {e}")
        return jsonify({"error": "Failed to list testimonials"}), 500

    return jsonify(items), 200


@feedback_bp.route("/feedback/<feedback_id>", methods=["GET"])
def get_feedback(feedback_id):
    oid = parse_object_id(feedback_id)
    if oid is None:
        return jsonify({"error": "Invalid id"}), 400

    try:
        item = get_db()["feedbacks"].find_one({"_id": oid})
    except PyMongoError as e:
        logging.error(f"Error getting feedback {feedback_id}: {e}")
        return jsonify({"error": "Failed to retrieve feedback"}), 500

    if not item:
        return jsonify({"error": "Feedback not found"}), 404

    return jsonify(serialize_doc(item)), 200


@feedback_bp.route("/feedback", methods=["POST"])
@token_required
def create_feedback():
    """
    Submit feedback. Any signed-in user; status always starts as pending.
    """
    data = request_json()

    doc = {k: data[k] for k in FEEDBACK_FIELDS if k in data}
    doc["status"] = "pending"
    doc.setdefault("email", g.email)

    error = validate_feedback_fields(doc)
    if error:
        return jsonify({"error": error}), 400

    if not string_field(doc, "feedback"):
        return jsonify({"error": "feedback is required"}), 400

    try:
        result = get_db()["feedbacks"].insert_one(doc)
    except PyMongoError as e:
        logging.error(f"Error creating feedback: {e}")
        return jsonify({"error": "Failed to create feedback"}), 500

    return jsonify(result_to_dict(result)), 201


@feedback_bp.route("/feedback/<feedback_id>", methods=["PATCH"])
@roles_required("admin")
def update_feedback(feedback_id):
    """
    Admin-only: edit or publish feedback.
    """
    oid = parse_object_id(feedback_id)
    if oid is None:
        return jsonify({"error": "Invalid id"}), 400

    data = request_json()
    fields = {k: data[k] for k in FEEDBACK_FIELDS if k in data}
    if not fields:
        return jsonify({"error": "No valid fields to update"}), 400

    error = validate_feedback_fields(fields)
    if error:
        return jsonify({"error": error}), 400

    try:
        result = get_db()["feedbacks"].update_one({"_id": oid}, {"$set": fields})
    except PyMongoError as e:
        logging.error(f"Error updating feedback {feedback_id}: {e}")
        return jsonify({"error": "Failed to update feedback"}), 500

    if result.matched_count == 0:
        return jsonify({"error": "Feedback not found"}), 404

    return jsonify(result_to_dict(result)), 200


@feedback_bp.route("/feedback/<feedback_id>", methods=["DELETE"])
@roles_required("admin")
def delete_feedback(feedback_id):
    oid = parse_object_id(feedback_id)
    if oid is None:
        return jsonify({"error": "Invalid id"}), 400

    try:
        result = get_db()["feedbacks"].delete_one({"_id": oid})
    except PyMongoError as e:
        logging.error(f"Error deleting feedback {feedback_id}: {e}")
        return jsonify({"error": "Failed to delete feedback"}), 500

    if result.deleted_count == 0:
        return jsonify({"error": "Feedback not found"}), 404

    return jsonify(result_to_dict(result)), 200
