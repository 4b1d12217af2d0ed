"""EasyPost shipping rates over the REST API."""
import logging
import os
from typing import Dict, List, Optional

import requests

logger = logging.getLogger(__name__)

EASYPOST_BASE_URL = "https://api.easypost.com/v2"
REQUEST_TIMEOUT_SECONDS = 30


class ShippingError(RuntimeError):
    pass


def get_easypost_api_key() -> str:
    return (os.getenv("EASYPOST_API_KEY") or "").strip()


def warn_if_unconfigured(api_key: Optional[str]) -> None:
    if not api_key:
        logger.warning("EASYPOST_API_KEY is not set. EasyPost integration will not work.")


def _compact(payload: Dict) -> Dict:
    return {key: value for key, value in (payload or {}).items() if value not in (None, "")}


def _error_messages(response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason or f"HTTP {response.status_code}"

    error = body.get("error") if isinstance(body, dict) else None
    if not isinstance(error, dict):
        return str(body)
    messages: List[str] = []
    if error.get("message"):
        messages.append(str(error["message"]))
    for detail in error.get("errors") or []:
        if isinstance(detail, dict) and detail.get("message"):
            field = detail.get("field")
            messages.append(f"{field}: {detail['message']}" if field else str(detail["message"]))
    return ", ".join(messages) or f"HTTP {response.status_code}"


def serialize_rate(rate: Dict) -> Dict:
    delivery_days = rate.get("delivery_days")
    return {
        "id": str(rate.get("id", "")),
        "carrier": str(rate.get("carrier", "")),
        "service": str(rate.get("service", "")),
        "rate": str(rate.get("rate", "")),
        "currency": str(rate.get("currency", "")),
        "delivery_days": int(delivery_days) if delivery_days is not None else None,
    }


def create_shipment(
    to_address: Dict,
    from_address: Dict,
    parcel: Dict,
    api_key: Optional[str] = None,
) -> Dict:
    """Create a shipment and return its id with the quoted rates."""
    api_key = api_key or get_easypost_api_key()
    if not api_key:
        raise ShippingError("EasyPost Error: EASYPOST_API_KEY is not configured.")

    payload = {
        "shipment": {
            "to_address": _compact(to_address),
            "from_address": _compact(from_address),
            "parcel": _compact(parcel),
        }
    }

    try:
        response = requests.post(
            f"{EASYPOST_BASE_URL}/shipments",
            json=payload,
            auth=(api_key, ""),
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
    except requests.RequestException as exc:
        logger.error("EasyPost API Error: %s", exc)
        raise ShippingError(f"EasyPost Error: {exc}") from exc

    if not response.ok:
        messages = _error_messages(response)
        logger.error("EasyPost API Error: %s", messages)
        raise ShippingError(f"EasyPost Error: {messages}")

    shipment = response.json()
    return {
        "id": str(shipment.get("id", "")),
        "rates": [serialize_rate(rate) for rate in shipment.get("rates") or []],
    }
