"""
SSLCommerz payment gateway client.

Wraps the session-initiation call (gwprocess/v4/api.php) and the order
validation call used to confirm IPN notifications, and builds the request
payload for an event ticket order.
"""

import os
import logging
from typing import Dict, Any, Optional

import requests
from dotenv import load_dotenv

load_dotenv()

SANDBOX_URL = "https://sandbox.sslcommerz.com/gwprocess/v4/api.php"
LIVE_URL = "https://securepay.sslcommerz.com/gwprocess/v4/api.php"
SANDBOX_VALIDATION_URL = "https://sandbox.sslcommerz.com/validator/api/validationserverAPI.php"
LIVE_VALIDATION_URL = "https://securepay.sslcommerz.com/validator/api/validationserverAPI.php"

SERVER_URL = os.getenv("SERVER_URL", "http://localhost:5000").rstrip("/")

# The gateway requires shipping details even for digital tickets
SHIPPING_PLACEHOLDER = {
    "shipping_method": "Courier",
    "ship_name": "Customer Name",
    "ship_add1": "Dhaka",
    "ship_add2": "Dhaka",
    "ship_city": "Dhaka",
    "ship_state": "Dhaka",
    "ship_postcode": "1000",
    "ship_country": "Bangladesh",
}


class PaymentGatewayError(Exception):
    """Raised when the gateway is unreachable, replies with something other
    than a JSON object, or refuses a request."""


def _json_object(resp: requests.Response) -> Dict[str, Any]:
    try:
        body = resp.json()
    except ValueError as e:
        raise PaymentGatewayError("Gateway returned a non-JSON response") from e
    if not isinstance(body, dict):
        raise PaymentGatewayError(f"Gateway returned {type(body).__name__} instead of an object")
    return body


class SSLCommerzClient:
    """
    Minimal SSLCommerz session client.

    Args:
        store_id (str): Merchant store id (STORE_ID).
        store_pass (str): Merchant store password (STORE_PASS).
        is_live (bool): Use the live host instead of the sandbox.
        timeout (float): Seconds to wait for the gateway.
    """

    def __init__(self, store_id: str, store_pass: str, is_live: bool = False, timeout: float = 30):
        self.store_id = store_id
        self.store_pass = store_pass
        self.api_url = LIVE_URL if is_live else SANDBOX_URL
        self.validation_url = LIVE_VALIDATION_URL if is_live else SANDBOX_VALIDATION_URL
        self.timeout = timeout

    @classmethod
    def from_env(cls) -> "SSLCommerzClient":
        return cls(
            store_id=os.getenv("STORE_ID", ""),
            store_pass=os.getenv("STORE_PASS", ""),
            is_live=os.getenv("SSLCOMMERZ_LIVE", "false").lower() in {"1", "true", "yes"},
            timeout=float(os.getenv("SSLCOMMERZ_TIMEOUT", 30)),
        )

    def create_session(self, payload: Dict[str, Any]) -> str:
        """
        Open a payment session.

        Args:
            payload (dict): Session fields without store credentials.

        Returns:
            str: The GatewayPageURL to redirect the buyer to.

        Raises:
            PaymentGatewayError: On network failure, a reply that is not a
                JSON object, or a reply without a gateway URL.
        """
        self._require_credentials()

        data = dict(payload)
        data["store_id"] = self.store_id
        data["store_passwd"] = self.store_pass

        try:
            resp = requests.post(self.api_url, data=data, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise PaymentGatewayError(f"Gateway request failed: {e}") from e

        body = _json_object(resp)
        url = body.get("GatewayPageURL")
        if body.get("status") != "SUCCESS" or not url:
            reason = body.get("failedreason") or "no gateway URL returned"
            raise PaymentGatewayError(f"Gateway refused session: {reason}")

        return url

    def validate(self, val_id: str) -> Dict[str, Any]:
        """
        Ask the gateway to confirm a notified payment.

        Args:
            val_id (str): Validation id from the IPN form.

        Returns:
            dict: The gateway's record of the order; its "status" is VALID
            or VALIDATED for a completed payment and "tran_id" names the
            transaction.

        Raises:
            PaymentGatewayError: On network failure or a reply that is not a
                JSON object.
        """
        self._require_credentials()

        params = {
            "val_id": val_id,
            "store_id": self.store_id,
            "store_passwd": self.store_pass,
            "format": "json",
        }

        try:
            resp = requests.get(self.validation_url, params=params, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise PaymentGatewayError(f"Validation request failed: {e}") from e

        return _json_object(resp)

    def _require_credentials(self) -> None:
        if not self.store_id or not self.store_pass:
            raise PaymentGatewayError("STORE_ID and STORE_PASS must be configured")


def callback_urls(transaction_id: str, base_url: Optional[str] = None) -> Dict[str, str]:
    """
    Success/fail/cancel/IPN URLs for one transaction.
    Cancel shares the fail route: an abandoned payment is removed like a failed one.
    """
    base = (base_url or SERVER_URL).rstrip("/")
    return {
        "success_url": f"{base}/payments/success/{transaction_id}",
        "fail_url": f"{base}/payments/fail/{transaction_id}",
        "cancel_url": f"{base}/payments/fail/{transaction_id}",
        "ipn_url": f"{base}/payments/ipn",
    }


def build_session_payload(
    event: Dict[str, Any],
    order: Dict[str, Any],
    transaction_id: str,
    amount: float,
) -> Dict[str, Any]:
    """
    Assemble the gateway request for an event ticket order.

    Args:
        event (dict): The event document being paid for.
        order (dict): The order body (buyer details).
        transaction_id (str): Fresh id for this order.
        amount (float): Total charge.

    Returns:
        dict: Session fields, ready for SSLCommerzClient.create_session.
    """
    payload = {
        "total_amount": amount,
        "currency": order.get("currency") or "BDT",
        "tran_id": transaction_id,
        "product_name": event.get("name") or "Event ticket",
        "product_category": event.get("category") or "Event",
        "product_profile": "non-physical-goods",
        "num_of_item": order.get("quantity") or 1,
        "cus_name": order.get("name") or "Customer",
        "cus_email": order.get("email"),
        "cus_add1": order.get("address") or "Dhaka",
        "cus_add2": order.get("address") or "Dhaka",
        "cus_city": order.get("city") or "Dhaka",
        "cus_state": order.get("city") or "Dhaka",
        "cus_postcode": order.get("postcode") or "1000",
        "cus_country": order.get("country") or "Bangladesh",
        "cus_phone": order.get("phone") or "",
        "cus_fax": order.get("phone") or "",
    }
    payload.update(SHIPPING_PLACEHOLDER)
    payload.update(callback_urls(transaction_id))
    logging.debug(f"Built SSLCommerz payload for transaction {transaction_id}")
    return payload
