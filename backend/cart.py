"""
Server-side carts and checkout.

A cart is a document in ``carts`` keyed by an opaque token the client keeps.
Placing an order snapshots the cart lines into ``orders`` and empties the cart.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional
from uuid import uuid4

from catalog import get_product_by_id, resolve_variant_image, resolve_variant_price

logger = logging.getLogger(__name__)

CARTS = "carts"
ORDERS = "orders"


class EmptyCartError(ValueError):
    pass


def new_cart_token() -> str:
    return uuid4().hex


def cart_item_id(product_id: str, variant_id: Optional[str] = None) -> str:
    return f"{product_id}-{variant_id}" if variant_id else product_id


def summarize_items(items: List[Dict]) -> Dict[str, float]:
    count = 0
    total = 0.0
    for item in items:
        quantity = int(item.get("quantity", 0) or 0)
        count += quantity
        total += float(item.get("price", 0) or 0) * quantity
    return {"count": count, "total": round(total, 2)}


def _load_items(db, token: str) -> List[Dict]:
    document = db[CARTS].find_one({"token": token})
    if not document:
        return []
    return list(document.get("items") or [])


def _save_items(db, token: str, items: List[Dict]) -> None:
    db[CARTS].update_one(
        {"token": token},
        {"$set": {"token": token, "items": items, "updated_at": datetime.utcnow()}},
        upsert=True,
    )


def serialize_cart(token: str, items: List[Dict]) -> Dict:
    return {"token": token, "items": items, **summarize_items(items)}


def get_cart(db, token: str) -> Dict:
    return serialize_cart(token, _load_items(db, token))


def add_to_cart(
    db,
    token: str,
    product: Dict,
    variant_id: Optional[str] = None,
    variant_label: Optional[str] = None,
    quantity: int = 1,
) -> Dict:
    items = _load_items(db, token)
    line_id = cart_item_id(product["id"], variant_id)
    quantity = max(1, int(quantity or 1))

    for item in items:
        if item.get("id") == line_id:
            item["quantity"] = int(item.get("quantity", 0) or 0) + quantity
            break
    else:
        items.append(
            {
                "id": line_id,
                "productId": product["id"],
                "name": product.get("name", ""),
                "quantity": quantity,
                "variantId": variant_id,
                "variantLabel": variant_label,
                "price": round(resolve_variant_price(product, variant_id), 2),
                "image": resolve_variant_image(product, variant_id),
            }
        )

    _save_items(db, token, items)
    return serialize_cart(token, items)


def remove_from_cart(db, token: str, item_id: str) -> Dict:
    items = [item for item in _load_items(db, token) if item.get("id") != item_id]
    _save_items(db, token, items)
    return serialize_cart(token, items)


def update_quantity(db, token: str, item_id: str, quantity: int) -> Dict:
    if quantity <= 0:
        return remove_from_cart(db, token, item_id)

    items = _load_items(db, token)
    for item in items:
        if item.get("id") == item_id:
            item["quantity"] = quantity
    _save_items(db, token, items)
    return serialize_cart(token, items)


def clear_cart(db, token: str) -> Dict:
    _save_items(db, token, [])
    return serialize_cart(token, [])


def generate_order_id() -> str:
    return f"CC-{uuid4().hex[:10].upper()}"


def serialize_order(order_document) -> Dict:
    if not order_document:
        return {}
    created_at = order_document.get("created_at")
    return {
        "id": str(order_document.get("_id")),
        "order_id": order_document.get("order_id", ""),
        "items": order_document.get("items") or [],
        "subtotal": order_document.get("subtotal", 0),
        "total_items": order_document.get("total_items", 0),
        "currency": order_document.get("currency", "USD"),
        "email": order_document.get("email", ""),
        "customer_name": order_document.get("customer_name", ""),
        "shipping_address": order_document.get("shipping_address") or {},
        "payment_status": order_document.get("payment_status", ""),
        "payment_method": order_document.get("payment_method", ""),
        "card_last4": order_document.get("card_last4", ""),
        "created_at": created_at.isoformat() + "Z"
        if isinstance(created_at, datetime)
        else None,
    }


def reprice_items(db, items: List[Dict]) -> List[Dict]:
    """Price lines from the current catalog, dropping products no longer on sale."""
    priced: List[Dict] = []
    for item in items:
        product = get_product_by_id(db, str(item.get("productId") or ""))
        if not product or product.get("status") != "active":
            logger.warning("Dropping unavailable product %s from order", item.get("productId"))
            continue
        variant_id = item.get("variantId")
        priced.append(
            {
                **item,
                "name": product.get("name") or item.get("name", ""),
                "price": round(resolve_variant_price(product, variant_id), 2),
            }
        )
    return priced


def place_order(db, token: str, form: Dict, currency: str = "USD") -> Dict:
    """Record an order for the cart behind ``token`` and empty the cart.

    Payment is simulated: only the last four card digits are kept.
    """
    items = _load_items(db, token)
    if not items:
        raise EmptyCartError("Your cart is empty.")

    items = reprice_items(db, items)
    if not items:
        raise EmptyCartError("The items in your cart are no longer available.")

    totals = summarize_items(items)
    order_document = {
        "order_id": generate_order_id(),
        "cart_token": token,
        "items": items,
        "subtotal": totals["total"],
        "total_items": totals["count"],
        "currency": currency,
        "email": str(form.get("email", "")).strip().lower(),
        "customer_name": str(form.get("name", "")).strip(),
        "shipping_address": {
            "line1": form.get("address", ""),
            "city": form.get("city", ""),
            "zip": form.get("zip", ""),
        },
        "payment_status": "paid",
        "payment_method": "SIMULATED",
        "card_last4": str(form.get("cardNumber", ""))[-4:],
        "created_at": datetime.utcnow(),
    }
    result = db[ORDERS].insert_one(order_document)
    order_document["_id"] = result.inserted_id
    clear_cart(db, token)

    logger.info("Placed order %s (%d items)", order_document["order_id"], totals["count"])
    return order_document
