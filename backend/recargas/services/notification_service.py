# Overview: WhatsApp notification adapter; message templates and best-effort delivery.

"""
Notification Service

Order confirmation and code delivery messages go to the customer's phone
through the seller's WhatsApp gateway account (form-encoded POST).

DELIVERY POLICY:
- Messages are rendered inside the request (needs DB + app context)
- Sending is fire-and-forget: it runs on a small thread pool, or inline
  when NOTIFICATIONS_ASYNC is false; the outcome is only logged
- Nothing here ever fails a sale operation
- resend is the exception: it sends inline and reports the delivered flag
"""

from __future__ import annotations

import re
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass

import httpx
from flask import current_app

from ..extensions import db
from ..models import App, Customer, Sale, Seller
from recargas.time_utils import format_currency_brl, format_datetime_br
from .errors import ExternalServiceError

KIND_ORDER_CONFIRMATION = "order_confirmation"
KIND_ORDER_CODES = "order_codes"

DEFAULT_APP_NAME = "Aplicativo"

_executor: ThreadPoolExecutor | None = None
_executor_lock = threading.Lock()


@dataclass(frozen=True)
class OutboundMessage:
    """Everything a send needs, detached from the DB session."""
    kind: str
    sale_id: int
    secret: str | None
    account: str | None
    phone: str
    message: str
    api_url: str
    timeout: float


def normalize_phone(phone: str | None) -> str:
    return re.sub(r"\D", "", phone or "")


def _make_client(timeout: float) -> httpx.Client:
    return httpx.Client(timeout=timeout)


def send_text(
    *,
    secret: str | None,
    account: str | None,
    phone: str,
    message: str,
    api_url: str,
    timeout: float,
    logger=None,
) -> bool:
    """
    POST one text message to the WhatsApp gateway.

    Returns False when credentials or recipient are missing, or the gateway
    answers without success. Raises ExternalServiceError on transport errors.
    """
    logger = logger or current_app.logger

    if not secret or not account:
        logger.warning("WhatsApp config missing; message not sent")
        return False

    recipient = normalize_phone(phone)
    if not recipient:
        logger.warning("Customer has no phone number; message not sent")
        return False

    form = {
        "secret": secret,
        "account": account,
        "priority": "1",
        "recipient": recipient,
        "type": "text",
        "message": message,
    }

    try:
        with _make_client(timeout) as client:
            response = client.post(api_url, data=form)
    except httpx.HTTPError as exc:
        raise ExternalServiceError("WhatsApp gateway unreachable", details={"reason": str(exc)}) from exc

    try:
        result = response.json()
    except ValueError:
        logger.warning("WhatsApp gateway returned non-JSON response (HTTP %s)", response.status_code)
        return False

    logger.info("WhatsApp API response status=%s body=%s", response.status_code, result)
    return response.is_success or bool(isinstance(result, dict) and result.get("success"))


def _item_name(apps_by_id: dict[int, App], app_id: int) -> str:
    app = apps_by_id.get(app_id)
    return app.name if app else DEFAULT_APP_NAME


def build_order_confirmation_message(sale: Sale, customer: Customer, apps_by_id: dict[int, App]) -> str:
    lines = "\n".join(
        f"{_item_name(apps_by_id, item.app_id)} x{item.quantity} - "
        f"{format_currency_brl(item.price_cents * item.quantity)}"
        for item in sale.items
    )
    return (
        f"Olá {customer.name}! 🎉\n\n"
        "Seu pedido foi confirmado com sucesso!\n\n"
        "*Detalhes do Pedido:*\n"
        f"Data: {format_datetime_br(sale.created_at)}\n"
        f"{lines}\n\n"
        f"*Total: {format_currency_brl(sale.total_price_cents)}*\n\n"
        "Os códigos serão enviados em breve.\n\n"
        "Agradecemos a preferência! 🙏"
    )


def build_order_codes_message(sale: Sale, customer: Customer, apps_by_id: dict[int, App]) -> str:
    blocks = []
    for item in sale.items:
        codes = item.codes
        block = f"{_item_name(apps_by_id, item.app_id)} x{item.quantity}"
        if codes:
            block += "\nCódigos:\n" + "\n".join(codes)
        blocks.append(block)

    return (
        f"Olá {customer.name}! 🎉\n\n"
        "Aqui estão os códigos do seu pedido:\n\n"
        + "\n\n".join(blocks)
        + "\n\nAproveite! 🎮\n\n"
        "Em caso de dúvidas, estamos à disposição.\n"
        "Obrigado pela preferência! 🙏"
    )


def _prepare(sale: Sale, kind: str) -> OutboundMessage:
    seller = db.session.get(Seller, sale.seller_id)
    customer = db.session.get(Customer, sale.customer_id)
    if seller is None or customer is None:
        raise ExternalServiceError("Sale has no seller or customer to notify")

    app_ids = {item.app_id for item in sale.items}
    apps_by_id = {a.id: a for a in db.session.query(App).filter(App.id.in_(app_ids)).all()} if app_ids else {}

    if kind == KIND_ORDER_CODES:
        message = build_order_codes_message(sale, customer, apps_by_id)
    else:
        message = build_order_confirmation_message(sale, customer, apps_by_id)

    return OutboundMessage(
        kind=kind,
        sale_id=sale.id,
        secret=seller.whatsapp_secret,
        account=seller.whatsapp_account,
        phone=customer.phone or "",
        message=message,
        api_url=current_app.config["WHATSAPP_API_URL"],
        timeout=current_app.config.get("EXTERNAL_HTTP_TIMEOUT", 10.0),
    )


def _deliver(outbound: OutboundMessage, logger) -> bool:
    """Send and log. Never raises."""
    try:
        delivered = send_text(
            secret=outbound.secret,
            account=outbound.account,
            phone=outbound.phone,
            message=outbound.message,
            api_url=outbound.api_url,
            timeout=outbound.timeout,
            logger=logger,
        )
    except Exception:
        logger.exception("Failed to send %s message for sale %s", outbound.kind, outbound.sale_id)
        return False

    if delivered:
        logger.info("Sent %s message for sale %s", outbound.kind, outbound.sale_id)
    else:
        logger.warning("%s message for sale %s was not delivered", outbound.kind, outbound.sale_id)
    return delivered


def _get_executor(workers: int) -> ThreadPoolExecutor:
    global _executor
    with _executor_lock:
        if _executor is None:
            _executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="notify")
        return _executor


def dispatch_best_effort(sale: Sale, kind: str) -> Future | None:
    """
    Fire-and-forget notification for `sale`.

    Returns the Future when sent on the pool (None when sent inline or when
    the message could not even be prepared). Errors are logged, never raised.
    """
    logger = current_app.logger
    try:
        outbound = _prepare(sale, kind)
    except Exception:
        logger.exception("Failed to prepare %s message for sale %s", kind, sale.id)
        return None

    if not current_app.config.get("NOTIFICATIONS_ASYNC", True):
        _deliver(outbound, logger)
        return None

    executor = _get_executor(current_app.config.get("NOTIFICATION_WORKERS", 2))
    return executor.submit(_deliver, outbound, logger)


def send_order_codes_now(sale: Sale) -> bool:
    """Inline code delivery used by resend; failures come back as False."""
    logger = current_app.logger
    try:
        outbound = _prepare(sale, KIND_ORDER_CODES)
    except ExternalServiceError:
        logger.exception("Failed to prepare codes message for sale %s", sale.id)
        return False
    return _deliver(outbound, logger)
