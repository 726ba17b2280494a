"""
Favorites service route handlers.
One likedEvents document per user, keyed by email as `username`.
"""

import logging
from typing import Tuple, Dict, Any

from flask import Blueprint, jsonify, Response
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

favorites_bp = Blueprint("favorites", __name__)


@favorites_bp.route("/addToLiked", methods=["POST"])
def add_to_liked() -> Tuple[Response, int]:
    """
    Replace a user's liked-event list with the submitted one.

    Expects JSON: { "username": str, "likedEventIds": [str, ...] }

    Upserts in a single operation, so repeating the call leaves exactly the
    last submitted list and never creates a second document.

    Returns:
        200: Update result (upsertedId set when the document was created).
        400: Missing username or likedEventIds is not a list of strings.
    """
    data: Dict[str, Any] = request_json()
    username = string_field(data, "username")
    liked = data.get("likedEventIds")

    if username is None:
        return jsonify({"error": "username must be a string"}), 400
    username = username.lower()
    if not username:
        return jsonify({"error": "username is required"}), 400
    if not isinstance(liked, list) or not all(isinstance(i, str) for i in liked):
        return jsonify({"error": "likedEventIds must be a list of event ids"}), 400

    try:
        result = get_db()["likedEvents"].update_one(
            {"username": username},
            {"$set": {"likedEventIds": liked}},
            upsert=True,
        )
    except PyMongoError as e:
        logging.error(f"Database error saving favorites for {username}: {e}")
        return jsonify({"error": "Failed to save favorites"}), 500

    return jsonify(result_to_dict(result)), 200


@favorites_bp.route("/liked/<email>", methods=["GET"])
def get_liked(email: str) -> Tuple[Response, int]:
    try:
        doc = get_db()["likedEvents"].find_one({"username": email.strip().lower()})
    except PyMongoError as e:
        logging.error(f"Database error getting favorites for {email}: {e}")
        return jsonify({"error": "Failed to retrieve favorites"}), 500

    if not doc:
        return jsonify({"error": "Favorites not found"}), 404

    return jsonify(serialize_doc(doc)), 200


@favorites_bp.route("/likedEvents/<email>", methods=["GET"])
def get_liked_events(email: str) -> Tuple[Response, int]:
    """
    Resolve a user's liked ids to full event documents.
    Ids that are malformed or no longer exist are skipped.
    """
    try:
        db = get_db()
        doc = db["likedEvents"].find_one({"username": email.strip().lower()})
        if not doc:
            return jsonify([]), 200

        oids = [oid for oid in map(parse_object_id, doc.get("likedEventIds", [])) if oid]
        events = serialize_docs(db["events"].find({"_id": {"$in": oids}}))
    except PyMongoError as e:
        logging.error(f"Database error resolving favorites for {email}: {e}")
        return jsonify({"error": "Failed to retrieve favorite events"}), 500

    return jsonify(events), 200


@favorites_bp.route("/allLiked", methods=["GET"])
def all_liked() -> Tuple[Response, int]:
    try:
        docs = serialize_docs(get_db()["likedEvents"].find())
    except PyMongoError as e:
        logging.error(f"Database error listing favorites: {e}")
        return jsonify({"error": "Failed to retrieve favorites"}), 500

    return jsonify(docs), 200


@favorites_bp.route("/allLikedEventIds", methods=["GET"])
def all_liked_event_ids() -> Tuple[Response, int]:
    """
    Every liked id across all users in one flat list. Duplicates are kept
    so the client can count popularity.
    """
    try:
        docs = get_db()["likedEvents"].find({}, {"likedEventIds": 1, "_id": 0})
        ids = [event_id for doc in docs for event_id in doc.get("likedEventIds", [])]
    except PyMongoError as e:
        logging.error(f"Database error collecting liked ids: {e}")
        return jsonify({"error": "Failed to retrieve liked event ids"}), 500

    return jsonify(ids), 200


@favorites_bp.route("/deleteFavEvent/<username>/<event_id>", methods=["DELETE"])
def delete_fav_event(username: str, event_id: str) -> Tuple[Response, int]:
    """
    Remove one event id from a user's list, leaving the others in place.
    """
    try:
        result = get_db()["likedEvents"].update_one(
            {"username": username.strip().lower()},
            {"$pull": {"likedEventIds": event_id}},
        )
    except PyMongoError as e:
        logging.error(f"Database error removing favorite {event_id} for {username}: {e}")
        return jsonify({"error": "Failed to remove favorite"}), 500

    if result.matched_count == 0:
        return jsonify({"error": "Favorites not found"}), 404

    return jsonify(result_to_dict(result)), 200
