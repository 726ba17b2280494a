"""
Payments service route handlers.

Order flow:
    POST /order                      -> pending payment record + gateway URL
    POST /payments/success/<trx_id>  -> paidStatus = true
    POST /payments/fail/<trx_id>     -> record removed
    POST /payments/ipn               -> out-of-band confirmation from the gateway

Every order gets its own transaction id, and the callback routes are
registered once with the blueprint.
"""

import os
import logging
from datetime import datetime, timezone
from typing import Tuple, Dict, Any, Union

from bson import ObjectId
from flask import Blueprint, request, jsonify, redirect, Response
from pymongo.errors import PyMongoError
from dotenv import load_dotenv

from backend.database.db_connection import get_db
from backend.database.documents import (
    parse_object_id,
    request_json,
    serialize_docs,
    string_field,
)
from backend.payments_service.gateway import (
    PaymentGatewayError,
    SSLCommerzClient,
    build_session_payload,
)

load_dotenv()

payments_bp = Blueprint("payments", __name__)

CLIENT_URL = os.getenv("CLIENT_URL", "http://localhost:5173").rstrip("/")
IPN_VALID_STATUSES = ["VALID", "VALIDATED"]


def new_transaction_id() -> str:
    return str(ObjectId())


@payments_bp.route("/order", methods=["POST"])
def create_order() -> Tuple[Response, int]:
    """
    Start a ticket purchase.

    Expects JSON:
    - eventId (str)
    - name, email, address, phone (str): buyer details
    - postcode, city, country, currency (str, optional)
    - quantity (int, optional, default 1)

    Returns:
        200: { "url": GatewayPageURL, "transactionId": str }
        400: Missing/invalid input, or the event has no price.
        404: Event not found.
        502: Gateway refused or unreachable.
        500: Database error.
    """
    data: Dict[str, Any] = request_json()

    oid = parse_object_id(data.get("eventId"))
    if oid is None:
        return jsonify({"error": "A valid eventId is required"}), 400

    email = string_field(data, "email")
    if email is None:
        return jsonify({"error": "email must be a string"}), 400
    email = email.lower()
    if not email:
        return jsonify({"error": "Buyer email is required"}), 400

    quantity = data.get("quantity", 1)
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        return jsonify({"error": "quantity must be a positive integer"}), 400

    try:
        event = get_db()["events"].find_one({"_id": oid})
    except PyMongoError as e:
        logging.error(f"Database error loading event for order: {e}")
        return jsonify({"error": "Failed to create order"}), 500

    if not event:
        return jsonify({"error": "Event not found"}), 404

    price = event.get("price")
    if isinstance(price, bool) or not isinstance(price, (int, float)) or price <= 0:
        return jsonify({"error": "Event has no ticket price"}), 400

    amount = price * quantity
    transaction_id = new_transaction_id()
    payload = build_session_payload(event, {**data, "email": email}, transaction_id, amount)

    try:
        gateway_url = SSLCommerzClient.from_env().create_session(payload)
    except PaymentGatewayError as e:
        logging.error(f"Payment gateway error for transaction {transaction_id}: {e}")
        return jsonify({"error": "Payment gateway unavailable"}), 502

    record = {
        "event": event,
        "transactionId": transaction_id,
        "email": email,
        "paidStatus": False,
        "amount": amount,
        "quantity": quantity,
        "currency": payload["currency"],
        "createdAt": datetime.now(timezone.utc),
    }

    try:
        get_db()["payments"].insert_one(record)
    except PyMongoError as e:
        logging.error(f"Database error saving pending payment {transaction_id}: {e}")
        return jsonify({"error": "Failed to create order"}), 500

    logging.info(f"Payment {transaction_id} pending for {email}")
    return jsonify({"url": gateway_url, "transactionId": transaction_id}), 200


@payments_bp.route("/payments/success/<trx_id>", methods=["POST"])
def payment_success(trx_id: str) -> Union[Response, Tuple[Response, int]]:
    """
    Gateway redirect after a successful payment. Marks the record paid and
    sends the buyer to the client's success page.
    """
    try:
        result = get_db()["payments"].update_one(
            {"transactionId": trx_id},
            {"$set": {"paidStatus": True, "paidAt": datetime.now(timezone.utc)}},
        )
    except PyMongoError as e:
        logging.error(f"Database error confirming payment {trx_id}: {e}")
        return jsonify({"error": "Failed to confirm payment"}), 500

    if result.matched_count == 0:
        return jsonify({"error": "Payment not found"}), 404

    logging.info(f"Payment {trx_id} confirmed")
    return redirect(f"{CLIENT_URL}/payment/success/{trx_id}")


@payments_bp.route("/payments/fail/<trx_id>", methods=["POST"])
def payment_fail(trx_id: str) -> Union[Response, Tuple[Response, int]]:
    """
    Gateway redirect after a failed or cancelled payment. The pending
    record is deleted.
    """
    try:
        result = get_db()["payments"].delete_one({"transactionId": trx_id})
    except PyMongoError as e:
        logging.error(f"Database error removing payment {trx_id}: {e}")
        return jsonify({"error": "Failed to cancel payment"}), 500

    if result.deleted_count == 0:
        return jsonify({"error": "Payment not found"}), 404

    logging.info(f"Payment {trx_id} failed; pending record removed")
    return redirect(f"{CLIENT_URL}/payment/fail/{trx_id}")


@payments_bp.route("/payments/ipn", methods=["POST"])
def payment_ipn() -> Tuple[Response, int]:
    """
    Instant payment notification from the gateway.

    The posted status is not trusted: the val_id is checked against the
    gateway's validation API, and the payment is marked paid only when that
    reply is VALID/VALIDATED for the same tran_id.

    Returns:
        200: { "status": "paid" | "ignored" | "unknown transaction" }
        400: tran_id or val_id missing.
        502: Validation call failed.
        500: Database error.
    """
    # The gateway posts form data; JSON is accepted for manual replays
    data = request.form or request_json()
    trx_id = data.get("tran_id")
    val_id = data.get("val_id")

    if not trx_id or not val_id:
        return jsonify({"error": "tran_id and val_id are required"}), 400

    try:
        validation = SSLCommerzClient.from_env().validate(val_id)
    except PaymentGatewayError as e:
        logging.error(f"Could not validate IPN for {trx_id}: {e}")
        return jsonify({"error": "Payment validation unavailable"}), 502

    status = validation.get("status")
    if status not in IPN_VALID_STATUSES or validation.get("tran_id") != trx_id:
        logging.warning(
            f"IPN for {trx_id} not confirmed by gateway "
            f"(status {status}, tran_id {validation.get('tran_id')}); no change"
        )
        return jsonify({"status": "ignored"}), 200

    try:
        result = get_db()["payments"].update_one(
            {"transactionId": trx_id},
            {"$set": {"paidStatus": True, "paidAt": datetime.now(timezone.utc)}},
        )
    except PyMongoError as e:
        logging.error(f"Database error handling IPN for {trx_id}: {e}")
        return jsonify({"error": "Failed to record notification"}), 500

    if result.matched_count == 0:
        logging.info(f"IPN for unknown transaction {trx_id}")
        return jsonify({"status": "unknown transaction"}), 200

    return jsonify({"status": "paid"}), 200


@payments_bp.route("/payments", methods=["GET"])
def list_payments() -> Tuple[Response, int]:
    """
    All payment records, optionally for one buyer (?email=).
    """
    query = {}
    email = request.args.get("email")
    if email:
        query["email"] = email.strip().lower()

    try:
        payments = serialize_docs(get_db()["payments"].find(query))
    except PyMongoError as e:
        logging.error(f"Database error listing payments: {e}")
        return jsonify({"error": "Failed to retrieve payments"}), 500

    return jsonify(payments), 200


@payments_bp.route("/getPaidStatusCount", methods=["GET"])
def paid_status_count() -> Tuple[Response, int]:
    try:
        payments = get_db()["payments"]
        paid = payments.count_documents({"paidStatus": True})
        unpaid = payments.count_documents({"paidStatus": False})
    except PyMongoError as e:
        logging.error(f"Database error counting payments: {e}")
        return jsonify({"error": "Failed to count payments"}), 500

    return jsonify({"paidCount": paid, "unpaidCount": unpaid}), 200


@payments_bp.route("/payments/registeredevents", methods=["GET"])
def registered_events() -> Tuple[Response, int]:
    """
    Events with a completed payment, optionally for one buyer (?email=).
    Returns the event snapshots stored on the payment records.
    """
    query: Dict[str, Any] = {"paidStatus": True}
    email = request.args.get("email")
    if email:
        query["email"] = email.strip().lower()

    try:
        payments = get_db()["payments"].find(query, {"event": 1})
        events = serialize_docs(p["event"] for p in payments if p.get("event"))
    except PyMongoError as e:
        logging.error(f"Database error listing registered events: {e}")
        return jsonify({"error": "Failed to retrieve registered events"}), 500

    return jsonify(events), 200
