# Overview: Midtrans Core API client (QRIS charge) and notification signature check.

"""
Only the two calls the order flow needs:

- charge_qris(order_id, gross_amount): POST /v2/charge with payment_type qris
- verify_signature(payload, server_key): sha512(order_id + status_code +
  gross_amount + server_key) compared with signature_key

The client is attached as app.extensions["payment_gateway"] (None when no
server key is configured).
"""

from __future__ import annotations

import hashlib
import hmac

import httpx
from flask import current_app

from ..errors import PaymentGatewayError

SANDBOX_BASE_URL = "https://api.sandbox.midtrans.com"
PRODUCTION_BASE_URL = "https://api.midtrans.com"

# Midtrans answers a created charge with status_code "201"
CHARGE_OK_STATUS_CODES = {"200", "201"}


class MidtransClient:
    def __init__(
        self,
        server_key: str,
        *,
        is_production: bool = False,
        timeout: float = 15.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.server_key = server_key
        self.base_url = PRODUCTION_BASE_URL if is_production else SANDBOX_BASE_URL
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.base_url,
            auth=(self.server_key, ""),
            timeout=self.timeout,
            transport=self._transport,
            headers={"Accept": "application/json"},
        )

    def charge_qris(self, order_id: str, gross_amount: int) -> dict:
        """
        Create a QRIS charge for an order.

        Raises:
            PaymentGatewayError: transport failure, non-JSON body, or a
                rejected charge
        """
        body = {
            "payment_type": "qris",
            "transaction_details": {
                "order_id": order_id,
                "gross_amount": gross_amount,
            },
        }
        try:
            with self._client() as client:
                resp = client.post("/v2/charge", json=body)
        except httpx.HTTPError as exc:
            raise PaymentGatewayError(f"Midtrans request failed: {exc}") from exc

        try:
            data = resp.json()
        except ValueError as exc:
            raise PaymentGatewayError(f"Midtrans returned a non-JSON response (HTTP {resp.status_code})") from exc

        status_code = str(data.get("status_code", resp.status_code))
        if resp.status_code >= 400 or status_code not in CHARGE_OK_STATUS_CODES:
            message = data.get("status_message") or f"HTTP {resp.status_code}"
            raise PaymentGatewayError(f"Midtrans rejected the charge: {message}")
        return data


def notification_signature(order_id: str, status_code: str, gross_amount: str, server_key: str) -> str:
    raw = f"{order_id}{status_code}{gross_amount}{server_key}"
    return hashlib.sha512(raw.encode("utf-8")).hexdigest()


def verify_signature(payload: dict, server_key: str) -> bool:
    if not server_key:
        return False
    expected = notification_signature(
        str(payload.get("order_id") or ""),
        str(payload.get("status_code") or ""),
        str(payload.get("gross_amount") or ""),
        server_key,
    )
    return hmac.compare_digest(expected, str(payload.get("signature_key") or ""))


def build_gateway(config, logger) -> MidtransClient | None:
    server_key = config.get("MIDTRANS_SERVER_KEY") or ""
    if not server_key:
        logger.warning("MIDTRANS_SERVER_KEY not set; QRIS payments are disabled")
        return None
    return MidtransClient(server_key, is_production=bool(config.get("MIDTRANS_IS_PROD")))


def get_gateway():
    gateway = current_app.extensions.get("payment_gateway")
    if gateway is None:
        raise PaymentGatewayError("Payment gateway is not configured")
    return gateway
