import pytest
from unittest.mock import MagicMock
from bson import ObjectId
import requests
from pymongo.results import DeleteResult, InsertOneResult, UpdateResult

EVENT_ID = "64b7f0c2a1b2c3d4e5f60750"
GATEWAY_URL = "https://sandbox.sslcommerz.com/EasyCheckOut/testcde"

EVENT = {
    "_id": ObjectId(EVENT_ID),
    "name": "Rock Night",
    "category": "Music",
    "price": 500,
    "status": "approved",
    "email": "org@example.com",
}

ORDER = {
    "eventId": EVENT_ID,
    "name": "Buyer",
    "email": "buyer@example.com",
    "address": "Road 1",
    "phone": "01700000000",
}


@pytest.fixture
def gateway_post(mocker):
    """
    Patch the HTTP call to SSLCommerz with a successful session response.
    """
    response = MagicMock()
    response.json.return_value = {"status": "SUCCESS", "GatewayPageURL": GATEWAY_URL}
    return mocker.patch("backend.payments_service.gateway.requests.post", return_value=response)


def test_create_order(client, mock_db, gateway_post):
    mock_db["events"].find_one.return_value = EVENT
    mock_db["payments"].insert_one.return_value = InsertOneResult(ObjectId(), True)

    response = client.post("/order", json=ORDER)

    assert response.status_code == 200
    data = response.get_json()
    assert data["url"] == GATEWAY_URL
    trx_id = data["transactionId"]

    # Exactly one pending record for this transaction
    mock_db["payments"].insert_one.assert_called_once()
    record = mock_db["payments"].insert_one.call_args[0][0]
    assert record["transactionId"] == trx_id
    assert record["paidStatus"] is False
    assert record["email"] == "buyer@example.com"
    assert record["amount"] == 500
    assert record["event"]["name"] == "Rock Night"

    # Gateway payload carries credentials, amount and per-transaction callbacks
    sent = gateway_post.call_args[1]["data"]
    assert sent["store_id"] == "teststore"
    assert sent["tran_id"] == trx_id
    assert sent["total_amount"] == 500
    assert sent["success_url"].endswith(f"/payments/success/{trx_id}")
    assert sent["fail_url"].endswith(f"/payments/fail/{trx_id}")

def test_each_order_gets_new_transaction_id(client, mock_db, gateway_post):
    mock_db["events"].find_one.return_value = EVENT

    first = client.post("/order", json=ORDER).get_json()["transactionId"]
    second = client.post("/order", json=ORDER).get_json()["transactionId"]

    assert first != second

def test_create_order_quantity_multiplies_price(client, mock_db, gateway_post):
    mock_db["events"].find_one.return_value = EVENT

    client.post("/order", json={**ORDER, "quantity": 3})

    record = mock_db["payments"].insert_one.call_args[0][0]
    assert record["amount"] == 1500

def test_create_order_invalid_event_id(client, mock_db, gateway_post):
    response = client.post("/order", json={**ORDER, "eventId": "nope"})

    assert response.status_code == 400
    gateway_post.assert_not_called()

def test_create_order_event_not_found(client, mock_db, gateway_post):
    mock_db["events"].find_one.return_value = None

    response = client.post("/order", json=ORDER)

    assert response.status_code == 404
    gateway_post.assert_not_called()

def test_create_order_free_event(client, mock_db, gateway_post):
    mock_db["events"].find_one.return_value = {**EVENT, "price": 0}

    response = client.post("/order", json=ORDER)
    assert response.status_code == 400

def test_create_order_gateway_down(client, mock_db, mocker):
    mock_db["events"].find_one.return_value = EVENT
    mocker.patch(
        "backend.payments_service.gateway.requests.post",
        side_effect=requests.ConnectionError("unreachable"),
    )

    response = client.post("/order", json=ORDER)

    assert response.status_code == 502
    mock_db["payments"].insert_one.assert_not_called()

def test_payment_success(client, mock_db):
    mock_db["payments"].update_one.return_value = UpdateResult({"n": 1, "nModified": 1}, True)

    response = client.post("/payments/success/abc123")

    assert response.status_code == 302
    assert response.headers["Location"].endswith("/payment/success/abc123")
    args, _ = mock_db["payments"].update_one.call_args
    assert args[0] == {"transactionId": "abc123"}
    assert args[1]["$set"]["paidStatus"] is True

def test_payment_success_unknown_transaction(client, mock_db):
    mock_db["payments"].update_one.return_value = UpdateResult({"n": 0, "nModified": 0}, True)

    response = client.post("/payments/success/missing")
    assert response.status_code == 404

def test_payment_fail_removes_record(client, mock_db):
    mock_db["payments"].delete_one.return_value = DeleteResult({"n": 1}, True)

    response = client.post("/payments/fail/abc123")

    assert response.status_code == 302
    assert response.headers["Location"].endswith("/payment/fail/abc123")
    mock_db["payments"].delete_one.assert_called_once_with({"transactionId": "abc123"})

def test_payment_fail_unknown_transaction(client, mock_db):
    mock_db["payments"].delete_one.return_value = DeleteResult({"n": 0}, True)

    response = client.post("/payments/fail/missing")
    assert response.status_code == 404

def test_order_flow_success_then_fail(client, mock_db, gateway_post):
    """
    Walk the pending -> paid and pending -> removed transitions against an
    in-memory payments collection.
    """
    records = {}
    payments = mock_db["payments"]
    mock_db["events"].find_one.return_value = EVENT

    def insert_one(doc):
        records[doc["transactionId"]] = dict(doc)
        return InsertOneResult(ObjectId(), True)

    def update_one(query, update):
        rec = records.get(query["transactionId"])
        if rec is None:
            return UpdateResult({"n": 0, "nModified": 0}, True)
        rec.update(update["$set"])
        return UpdateResult({"n": 1, "nModified": 1}, True)

    def delete_one(query):
        removed = records.pop(query["transactionId"], None)
        return DeleteResult({"n": 1 if removed else 0}, True)

    payments.insert_one.side_effect = insert_one
    payments.update_one.side_effect = update_one
    payments.delete_one.side_effect = delete_one

    paid_trx = client.post("/order", json=ORDER).get_json()["transactionId"]
    failed_trx = client.post("/order", json=ORDER).get_json()["transactionId"]
    assert len(records) == 2
    assert all(r["paidStatus"] is False for r in records.values())

    client.post(f"/payments/success/{paid_trx}")
    client.post(f"/payments/fail/{failed_trx}")

    assert list(records) == [paid_trx]
    assert records[paid_trx]["paidStatus"] is True

def test_create_order_gateway_non_object_reply(client, mock_db, mocker):
    mock_db["events"].find_one.return_value = EVENT
    response = MagicMock()
    response.json.return_value = ["unexpected"]
    mocker.patch("backend.payments_service.gateway.requests.post", return_value=response)

    result = client.post("/order", json=ORDER)

    assert result.status_code == 502
    mock_db["payments"].insert_one.assert_not_called()

def test_create_order_non_string_email(client, mock_db, gateway_post):
    response = client.post("/order", json={**ORDER, "email": 5})

    assert response.status_code == 400
    gateway_post.assert_not_called()
    mock_db["payments"].insert_one.assert_not_called()

def test_create_order_non_string_event_id(client, mock_db, gateway_post):
    response = client.post("/order", json={**ORDER, "eventId": 12345})

    assert response.status_code == 400
    gateway_post.assert_not_called()

def test_create_order_sends_normalized_email(client, mock_db, gateway_post):
    mock_db["events"].find_one.return_value = EVENT

    client.post("/order", json={**ORDER, "email": "  Buyer@Example.COM "})

    sent = gateway_post.call_args[1]["data"]
    assert sent["cus_email"] == "buyer@example.com"
    record = mock_db["payments"].insert_one.call_args[0][0]
    assert record["email"] == "buyer@example.com"


@pytest.fixture
def gateway_validate(mocker):
    """
    Patch the SSLCommerz validation call; tests set the returned record.
    """
    response = MagicMock()
    response.json.return_value = {"status": "VALID", "tran_id": "abc123"}
    return mocker.patch("backend.payments_service.gateway.requests.get", return_value=response)


def test_ipn_validated_marks_paid(client, mock_db, gateway_validate):
    mock_db["payments"].update_one.return_value = UpdateResult({"n": 1, "nModified": 1}, True)

    response = client.post("/payments/ipn", data={"tran_id": "abc123", "val_id": "v1", "status": "VALID"})

    assert response.status_code == 200
    assert response.get_json()["status"] == "paid"
    assert gateway_validate.call_args[1]["params"]["val_id"] == "v1"
    args, _ = mock_db["payments"].update_one.call_args
    assert args[0] == {"transactionId": "abc123"}
    assert args[1]["$set"]["paidStatus"] is True

def test_ipn_posted_status_not_trusted(client, mock_db, gateway_validate):
    gateway_validate.return_value.json.return_value = {"status": "INVALID_TRANSACTION"}

    response = client.post("/payments/ipn", data={"tran_id": "abc123", "val_id": "forged", "status": "VALID"})

    assert response.status_code == 200
    assert response.get_json()["status"] == "ignored"
    mock_db["payments"].update_one.assert_not_called()

def test_ipn_validation_for_other_transaction(client, mock_db, gateway_validate):
    gateway_validate.return_value.json.return_value = {"status": "VALID", "tran_id": "other"}

    response = client.post("/payments/ipn", data={"tran_id": "abc123", "val_id": "v1", "status": "VALID"})

    assert response.get_json()["status"] == "ignored"
    mock_db["payments"].update_one.assert_not_called()

def test_ipn_unknown_transaction(client, mock_db, gateway_validate):
    mock_db["payments"].update_one.return_value = UpdateResult({"n": 0, "nModified": 0}, True)

    response = client.post("/payments/ipn", data={"tran_id": "abc123", "val_id": "v1"})

    assert response.status_code == 200
    assert response.get_json()["status"] == "unknown transaction"

def test_ipn_validation_unavailable(client, mock_db, mocker):
    mocker.patch(
        "backend.payments_service.gateway.requests.get",
        side_effect=requests.Timeout("slow"),
    )

    response = client.post("/payments/ipn", data={"tran_id": "abc123", "val_id": "v1"})

    assert response.status_code == 502
    mock_db["payments"].update_one.assert_not_called()

@pytest.mark.parametrize("form", [{"status": "VALID", "val_id": "v1"}, {"tran_id": "abc123", "status": "VALID"}])
def test_ipn_missing_ids(client, mock_db, gateway_validate, form):
    response = client.post("/payments/ipn", data=form)

    assert response.status_code == 400
    gateway_validate.assert_not_called()

def test_list_payments_by_email(client, mock_db):
    mock_db["payments"].find.return_value = [
        {"_id": ObjectId(), "transactionId": "t1", "event": EVENT, "paidStatus": True}
    ]

    response = client.get("/payments?email=Buyer@Example.com")

    assert response.status_code == 200
    data = response.get_json()
    assert data[0]["event"]["_id"] == EVENT_ID
    args, _ = mock_db["payments"].find.call_args
    assert args[0] == {"email": "buyer@example.com"}

def test_paid_status_count(client, mock_db):
    mock_db["payments"].count_documents.side_effect = lambda query: 7 if query["paidStatus"] else 2

    response = client.get("/getPaidStatusCount")

    assert response.status_code == 200
    assert response.get_json() == {"paidCount": 7, "unpaidCount": 2}

def test_registered_events(client, mock_db):
    mock_db["payments"].find.return_value = [{"event": EVENT}, {"_id": ObjectId()}]

    response = client.get("/payments/registeredevents?email=buyer@example.com")

    assert response.status_code == 200
    data = response.get_json()
    assert len(data) == 1
    assert data[0]["name"] == "Rock Night"
    args, _ = mock_db["payments"].find.call_args
    assert args[0] == {"paidStatus": True, "email": "buyer@example.com"}
