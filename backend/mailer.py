"""Transactional email through Resend."""
import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple

import resend
from flask import current_app, render_template
from jinja2 import TemplateError

logger = logging.getLogger(__name__)


def send_email_via_resend(payload: Dict[str, object], api_key: str) -> Tuple[bool, Optional[str]]:
    configured_api_key = (api_key or "").strip()
    if not configured_api_key:
        return False, "Resend API key is not configured."

    previous_api_key = getattr(resend, "api_key", None)
    resend.api_key = configured_api_key
    try:
        response = resend.Emails.send(payload)
    except Exception as exc:
        return False, str(exc)
    finally:
        resend.api_key = previous_api_key

    if not isinstance(response, dict) or not response.get("id"):
        return False, str(response)

    return True, None


def render_email(template_name: str, **context) -> Tuple[Optional[str], Optional[str]]:
    try:
        return render_template(template_name, **context), None
    except TemplateError as exc:
        logger.warning("Email template %s could not be rendered: %s", template_name, exc)
        return None, f"Email template {template_name} could not be rendered."


def normalize_order_email_items(items: List[Dict]) -> List[Dict]:
    normalized_items: List[Dict] = []
    for entry in items or []:
        if not isinstance(entry, dict):
            continue
        quantity = int(entry.get("quantity", 1) or 1)
        price_value = round(float(entry.get("price", 0) or 0), 2)
        name = str(entry.get("name") or "").strip() or "Item"
        if entry.get("variantLabel"):
            name = f"{name} ({entry['variantLabel']})"
        normalized_items.append(
            {
                "name": name,
                "quantity": quantity,
                "price": price_value,
                "line_total": round(price_value * quantity, 2),
            }
        )
    return normalized_items


def send_order_confirmation(order_document: Dict[str, object]) -> Tuple[bool, Optional[str]]:
    config = current_app.config
    recipient_email = str(order_document.get("email") or "").strip()
    if not recipient_email:
        return False, "Missing customer email for the order receipt."

    store_name = config["STORE_NAME"]
    items = normalize_order_email_items(order_document.get("items"))
    total_value = round(float(order_document.get("subtotal", 0) or 0), 2)
    currency_code = str(order_document.get("currency") or "USD").upper()
    order_identifier = str(order_document.get("order_id") or "Order")
    created_at = order_document.get("created_at")
    if not isinstance(created_at, datetime):
        created_at = datetime.utcnow()

    html_body, render_error = render_email(
        "emails/order_confirmation.html",
        store_name=store_name,
        order_id=order_identifier,
        customer_name=order_document.get("customer_name", ""),
        items=items,
        total=total_value,
        currency=currency_code,
        created_at=created_at,
    )
    if render_error:
        return False, render_error
    item_lines = ", ".join(
        f"{item['name']} x{item['quantity']} ({currency_code} {item['price']:.2f})"
        for item in items
    )
    text_body = (
        f"Thank you for your order! Order {order_identifier} on "
        f"{created_at.strftime('%Y-%m-%d %H:%M')}.\n"
        f"Items: {item_lines}.\n"
        f"Total: {currency_code} {total_value:.2f}.\n\n"
        f"{store_name} Team"
    )

    payload: Dict[str, object] = {
        "from": f"{store_name} <{config['ORDER_SENDER_EMAIL']}>",
        "to": [recipient_email],
        "subject": f"Your {store_name} order {order_identifier}",
        "html": html_body,
        "text": text_body,
    }
    sent, error = send_email_via_resend(payload, config.get("RESEND_API_KEY", ""))
    if not sent:
        logger.warning("Order confirmation for %s not sent: %s", order_identifier, error)
    return sent, error


def send_quote_request(quote: Dict[str, object]) -> Tuple[bool, Optional[str]]:
    config = current_app.config
    recipient_email = (config.get("STORE_CONTACT_EMAIL") or "").strip()
    if not recipient_email:
        return False, "STORE_CONTACT_EMAIL is not configured."

    store_name = config["STORE_NAME"]
    html_body, render_error = render_email("emails/quote_request.html", store_name=store_name, quote=quote)
    if render_error:
        return False, render_error
    text_body = (
        f"Quote request for {quote.get('productName') or 'a custom order'}\n"
        f"From: {quote.get('name')} <{quote.get('email')}>\n"
        f"Company: {quote.get('company') or '-'}\n"
        f"Quantity: {quote.get('quantity')}\n\n"
        f"{quote.get('message')}"
    )
    payload: Dict[str, object] = {
        "from": f"{store_name} <{config['ORDER_SENDER_EMAIL']}>",
        "to": [recipient_email],
        "reply_to": str(quote.get("email") or ""),
        "subject": f"Quote request: {quote.get('productName') or 'Custom order'}",
        "html": html_body,
        "text": text_body,
    }
    sent, error = send_email_via_resend(payload, config.get("RESEND_API_KEY", ""))
    if not sent:
        logger.warning("Quote request notification not sent: %s", error)
    return sent, error
