"""Midtrans Core API client used as the order payment gateway."""
import hashlib
import hmac
import logging
from typing import Dict, Any, Optional

import requests

from kasir.exceptions import PaymentFailedError

logger = logging.getLogger(__name__)


class MidtransClient:
    """Client for the Midtrans Core API (QRIS charges)."""

    SANDBOX_URL = "https://api.sandbox.midtrans.com"
    PRODUCTION_URL = "https://api.midtrans.com"

    def __init__(self, server_key: str, is_production: bool = False, timeout: int = 10):
        """
        Initialize Midtrans client.

        Args:
            server_key: Midtrans server key (HTTP basic auth username and signature secret)
            is_production: Use the production endpoint instead of the sandbox
            timeout: Seconds before a gateway call is abandoned
        """
        self.server_key = server_key or ''
        self.base_url = self.PRODUCTION_URL if is_production else self.SANDBOX_URL
        self.timeout = timeout
        self.headers = {
            'Accept': 'application/json',
            'Content-Type': 'application/json'
        }

    @classmethod
    def from_config(cls, config) -> 'MidtransClient':
        return cls(
            server_key=config.get('MIDTRANS_SERVER_KEY', ''),
            is_production=config.get('MIDTRANS_IS_PRODUCTION', False),
            timeout=config.get('MIDTRANS_TIMEOUT', 10)
        )

    def _post(self, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not self.server_key:
            raise PaymentFailedError("MIDTRANS_SERVER_KEY is not configured")

        url = f"{self.base_url}{path}"
        try:
            response = requests.post(
                url,
                json=payload or {},
                headers=self.headers,
                auth=(self.server_key, ''),
                timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()
        except requests.HTTPError as e:
            logger.error(f"[MIDTRANS] HTTP error calling {path}: {e.response.text}")
            raise PaymentFailedError(f"Payment gateway rejected the request: {e}") from e
        except (requests.RequestException, ValueError) as e:
            logger.error(f"[MIDTRANS] Request to {path} failed: {e}")
            raise PaymentFailedError(f"Payment gateway unavailable: {e}") from e

        # Midtrans reports business errors with HTTP 200 and a status_code in the body
        status_code = str(data.get('status_code', '200'))
        if not status_code.startswith('2'):
            logger.error(f"[MIDTRANS] {path} returned {status_code}: {data.get('status_message')}")
            raise PaymentFailedError(
                f"Payment gateway error {status_code}: {data.get('status_message', 'unknown error')}"
            )
        return data

    def create_charge(self, order_id: str, amount: int) -> Dict[str, Any]:
        """
        Create a QRIS charge for an order.

        Args:
            order_id: Order id, used as the Midtrans order_id
            amount: Gross amount in minor currency units

        Returns:
            Dict with transaction_id, actions, expiry_time, qr_string and gross_amount

        Raises:
            PaymentFailedError: If the gateway call fails
        """
        payload = {
            "payment_type": "qris",
            "transaction_details": {
                "order_id": str(order_id),
                "gross_amount": int(amount)
            }
        }

        logger.info(f"[MIDTRANS] Creating QRIS charge for order {order_id} ({amount})")
        data = self._post("/v2/charge", payload)
        logger.info(f"[MIDTRANS] Charge created: {data.get('transaction_id')} for order {order_id}")

        return {
            'transaction_id': data.get('transaction_id'),
            'order_id': data.get('order_id', str(order_id)),
            'gross_amount': data.get('gross_amount'),
            'actions': data.get('actions', []),
            'qr_string': data.get('qr_string'),
            'expiry_time': data.get('expiry_time'),
        }

    def cancel(self, order_id: str) -> Dict[str, Any]:
        """
        Cancel the gateway transaction of an order.

        Raises:
            PaymentFailedError: If the transaction could not be cancelled
        """
        logger.info(f"[MIDTRANS] Cancelling transaction for order {order_id}")
        data = self._post(f"/v2/{order_id}/cancel")
        logger.info(f"[MIDTRANS] Transaction cancelled for order {order_id}")
        return data

    def verify_signature(self, payload: Dict[str, Any]) -> bool:
        """
        Verify a notification signature.

        signature_key = SHA512(order_id + status_code + gross_amount + server_key)
        """
        if not self.server_key:
            logger.warning("Cannot verify Midtrans notification: MIDTRANS_SERVER_KEY not configured")
            return False

        signature = payload.get('signature_key') or ''
        if not signature:
            logger.warning("Missing signature_key in Midtrans notification")
            return False

        raw = (
            f"{payload.get('order_id', '')}"
            f"{payload.get('status_code', '')}"
            f"{payload.get('gross_amount', '')}"
            f"{self.server_key}"
        )
        expected_signature = hashlib.sha512(raw.encode('utf-8')).hexdigest()

        is_valid = hmac.compare_digest(signature, expected_signature)
        if not is_valid:
            logger.warning(f"Invalid Midtrans signature for order {payload.get('order_id')}")
        return is_valid
