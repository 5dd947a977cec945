# Overview: PIX payment gateway adapter (Mercado Pago); charge creation and webhook handling.

"""
Payment Service

WHY: A sale can be paid by PIX. The seller's Mercado Pago access token is used
to create the charge; the provider later calls our webhook with the payment
status.

DESIGN PRINCIPLES:
- Charge creation failures propagate (ExternalServiceError): no payment
  means the sale must not be presented as payable
- Every request carries a fresh X-Idempotency-Key
- Webhook bodies are only a hint: the status applied to sales is the one
  Mercado Pago returns for GET /v1/payments/{id} with the seller's token
- When the seller stored a webhook secret, the x-signature header must match
- Webhook mapping: provider status "approved" -> sale confirmed,
  anything else -> sale pending
"""

from __future__ import annotations

import hashlib
import hmac
import uuid
from dataclasses import dataclass

import httpx
from flask import current_app

from ..extensions import db
from ..models import Sale, Seller
from ..models.sales import SALE_STATUS_CONFIRMED, SALE_STATUS_PENDING
from .errors import ExternalServiceError


PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_APPROVED = "approved"
PAYMENT_STATUS_REJECTED = "rejected"

WEBHOOK_ACTION_UPDATED = "payment.updated"


@dataclass(frozen=True)
class PixCharge:
    pix_code: str
    payment_id: str
    status: str

    def to_dict(self) -> dict:
        return {"pix_code": self.pix_code, "payment_id": self.payment_id, "status": self.status}


def _make_client(timeout: float) -> httpx.Client:
    return httpx.Client(timeout=timeout)


def _payments_url(path: str = "") -> str:
    return current_app.config["MERCADOPAGO_API_URL"].rstrip("/") + "/v1/payments" + path


def create_pix_charge(
    seller: Seller,
    amount_cents: int,
    description: str,
    payer: dict,
) -> PixCharge:
    """
    Create a PIX charge.

    Args:
        seller: owner of the Mercado Pago credentials
        amount_cents: charge amount (sent to the provider in reais)
        description: text shown to the payer
        payer: {"name": ..., "email": ...}

    Raises:
        ExternalServiceError: token missing, transport failure, provider error,
        or a response without the PIX payload
    """
    logger = current_app.logger

    if not seller.mercadopago_token:
        raise ExternalServiceError("Mercado Pago token not configured")

    if amount_cents <= 0:
        raise ExternalServiceError("PIX amount must be positive", details={"amount_cents": amount_cents})

    body = {
        "transaction_amount": round(amount_cents / 100, 2),
        "description": description,
        "payment_method_id": "pix",
        "payer": {
            "email": payer.get("email") or "",
            "first_name": payer.get("name") or "",
            "last_name": "",
        },
    }
    headers = {
        "Authorization": f"Bearer {seller.mercadopago_token}",
        "X-Idempotency-Key": str(uuid.uuid4()),
    }
    url = _payments_url()

    logger.info("Creating PIX payment seller_id=%s amount_cents=%s", seller.id, amount_cents)

    try:
        with _make_client(current_app.config.get("EXTERNAL_HTTP_TIMEOUT", 10.0)) as client:
            response = client.post(url, json=body, headers=headers)
    except httpx.HTTPError as exc:
        logger.error("Mercado Pago unreachable seller_id=%s: %s", seller.id, exc)
        raise ExternalServiceError("Payment provider unreachable") from exc

    try:
        data = response.json()
    except ValueError:
        data = {}

    if not response.is_success:
        logger.error(
            "Mercado Pago payment error seller_id=%s status=%s body=%s",
            seller.id, response.status_code, data,
        )
        raise ExternalServiceError(
            data.get("message") or "Erro ao gerar pagamento PIX",
            details={"provider_status": response.status_code},
        )

    try:
        pix_code = data["point_of_interaction"]["transaction_data"]["qr_code_base64"]
        payment_id = str(data["id"])
    except (KeyError, TypeError) as exc:
        logger.error("Mercado Pago response missing PIX data seller_id=%s", seller.id)
        raise ExternalServiceError("Payment provider response missing PIX data") from exc

    status = data.get("status") or PAYMENT_STATUS_PENDING
    logger.info("PIX payment created seller_id=%s payment_id=%s status=%s", seller.id, payment_id, status)
    return PixCharge(pix_code=pix_code, payment_id=payment_id, status=status)


def fetch_payment_status(seller: Seller, payment_id: str) -> str:
    """
    Current status of a payment, as reported by Mercado Pago.

    Raises:
        ExternalServiceError: token missing, transport failure, provider error,
        or a response without a status
    """
    logger = current_app.logger

    if not seller.mercadopago_token:
        raise ExternalServiceError("Mercado Pago token not configured")

    headers = {"Authorization": f"Bearer {seller.mercadopago_token}"}
    try:
        with _make_client(current_app.config.get("EXTERNAL_HTTP_TIMEOUT", 10.0)) as client:
            response = client.get(_payments_url(f"/{payment_id}"), headers=headers)
    except httpx.HTTPError as exc:
        logger.error("Mercado Pago unreachable seller_id=%s: %s", seller.id, exc)
        raise ExternalServiceError("Payment provider unreachable") from exc

    try:
        data = response.json()
    except ValueError:
        data = {}

    if not response.is_success:
        logger.error(
            "Mercado Pago lookup error seller_id=%s payment_id=%s status=%s body=%s",
            seller.id, payment_id, response.status_code, data,
        )
        raise ExternalServiceError(
            data.get("message") or "Payment lookup failed",
            details={"provider_status": response.status_code, "payment_id": payment_id},
        )

    status = data.get("status")
    if not status:
        raise ExternalServiceError("Payment provider response missing status", details={"payment_id": payment_id})
    return str(status)


def webhook_data_id(payload) -> str | None:
    if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
        value = payload["data"].get("id")
        return str(value) if value else None
    return None


def verify_webhook_signature(
    secret: str,
    signature_header: str | None,
    request_id: str | None,
    data_id: str | None,
) -> bool:
    """
    Check Mercado Pago's x-signature header ("ts=...,v1=...").

    v1 is the hex HMAC-SHA256, keyed by the seller's webhook secret, of the
    manifest "id:{data.id};request-id:{x-request-id};ts:{ts};". A missing
    request id is left out of the manifest; alphanumeric ids are lowercased.
    """
    if not signature_header or not data_id:
        return False

    parts = {}
    for part in signature_header.split(","):
        key, sep, value = part.strip().partition("=")
        if sep:
            parts[key.strip()] = value.strip()

    ts = parts.get("ts")
    received = parts.get("v1")
    if not ts or not received:
        return False

    data_id = str(data_id)
    if data_id.isalnum():
        data_id = data_id.lower()

    manifest = f"id:{data_id};"
    if request_id:
        manifest += f"request-id:{request_id};"
    manifest += f"ts:{ts};"

    expected = hmac.new(secret.encode("utf-8"), manifest.encode("utf-8"), hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, received)


def parse_webhook(payload) -> tuple[str, str] | None:
    """
    Extract (provider_payment_id, status) from a webhook body.

    Only "payment.updated" notifications carry a status; anything else, or a
    malformed body, yields None.
    """
    if not isinstance(payload, dict):
        return None
    data = payload.get("data")
    if not isinstance(data, dict):
        return None

    payment_id = data.get("id")
    status = data.get("status") if payload.get("action") == WEBHOOK_ACTION_UPDATED else None
    if not payment_id or not status:
        return None
    return str(payment_id), str(status)


def sale_status_for_payment(status: str) -> str:
    return SALE_STATUS_CONFIRMED if status == PAYMENT_STATUS_APPROVED else SALE_STATUS_PENDING


def handle_webhook(seller_id: int, payload) -> int:
    """
    Apply a provider callback. Returns the number of sales updated.

    Invalid payloads and payments with no matching sale are logged and
    ignored (0). Otherwise the payment is looked up at Mercado Pago and the
    provider's status is applied, whatever status the body claims.
    ExternalServiceError propagates so the provider retries the callback.
    """
    from .sales_service import apply_payment_status

    logger = current_app.logger
    parsed = parse_webhook(payload)
    if parsed is None:
        logger.warning("Invalid webhook data seller_id=%s payload=%s", seller_id, payload)
        return 0

    payment_id, claimed_status = parsed
    matched = (
        db.session.query(Sale.id)
        .filter(Sale.seller_id == seller_id, Sale.payment_id == payment_id)
        .count()
    )
    if not matched:
        logger.info("Webhook for unknown payment seller_id=%s payment_id=%s", seller_id, payment_id)
        return 0

    seller = db.session.get(Seller, seller_id)
    status = fetch_payment_status(seller, payment_id)
    if status != claimed_status:
        logger.warning(
            "Webhook status differs from provider seller_id=%s payment_id=%s claimed=%s provider=%s",
            seller_id, payment_id, claimed_status, status,
        )

    updated = apply_payment_status(seller_id, payment_id, status)
    logger.info(
        "Payment status updated seller_id=%s payment_id=%s status=%s sales=%s",
        seller_id, payment_id, status, updated,
    )
    return updated
