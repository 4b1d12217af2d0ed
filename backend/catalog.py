"""
Catalog data layer: products, collections and customers.

Thin pass-through CRUD over the Mongo collections ``products``,
``collections`` and ``customers``. Every function takes the database handle
so the same code runs against Flask-PyMongo in the app and mongomock in tests.
"""
import itertools
import logging
import random
import re
import unicodedata
from typing import Dict, Iterable, List, Optional

from bson import ObjectId
from bson.errors import InvalidId

logger = logging.getLogger(__name__)

PRODUCTS = "products"
COLLECTIONS = "collections"
CUSTOMERS = "customers"


class NotFoundError(LookupError):
    pass


def placeholder_image_url() -> str:
    return f"https://picsum.photos/600/600?random={random.randint(0, 999)}"


def normalize_object_id(value) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def slugify(value: Optional[str]) -> str:
    condensed = " ".join(str(value or "").split()).lower()
    ascii_value = (
        unicodedata.normalize("NFKD", condensed).encode("ascii", "ignore").decode("ascii")
    )
    return re.sub(r"[^a-z0-9]+", "-", ascii_value).strip("-")


def serialize_document(document) -> Optional[Dict]:
    if not document:
        return None
    serialized = {key: value for key, value in document.items() if key != "_id"}
    serialized["id"] = str(document.get("_id"))
    return serialized


def to_product(document) -> Optional[Dict]:
    product = serialize_document(document)
    if product is None:
        return None
    images = product.get("images")
    if not isinstance(images, list) or not images:
        product["images"] = [placeholder_image_url()]
    return product


def _strip_id(data: Dict) -> Dict:
    return {key: value for key, value in (data or {}).items() if key not in ("id", "_id")}


# --- Products ---


def get_products(db) -> List[Dict]:
    return [to_product(document) for document in db[PRODUCTS].find()]


def get_active_products(db) -> List[Dict]:
    return [to_product(document) for document in db[PRODUCTS].find({"status": "active"})]


def get_products_by_category(db, category_name: str, active_only: bool = True) -> List[Dict]:
    query: Dict[str, object] = {"category": category_name}
    if active_only:
        query["status"] = "active"
    return [to_product(document) for document in db[PRODUCTS].find(query)]


def get_product_by_id(db, product_id: str) -> Optional[Dict]:
    object_id = normalize_object_id(product_id)
    if object_id is None:
        return None
    return to_product(db[PRODUCTS].find_one({"_id": object_id}))


def get_product_by_slug(db, slug: str) -> Optional[Dict]:
    return to_product(db[PRODUCTS].find_one({"handle": slug}))


def prepare_new_product(product: Dict) -> Dict:
    document = _strip_id(product)
    document.setdefault("compareAtPrice", None)
    document.setdefault("costPerItem", None)
    if not document.get("handle"):
        document["handle"] = slugify(document.get("name"))
    if not document.get("images"):
        document["images"] = [placeholder_image_url()]
    return document


def add_product(db, product: Dict) -> str:
    result = db[PRODUCTS].insert_one(prepare_new_product(product))
    return str(result.inserted_id)


def import_products(db, products: Iterable[Dict]) -> List[str]:
    documents = [prepare_new_product(product) for product in products]
    if not documents:
        return []
    result = db[PRODUCTS].insert_many(documents)
    logger.info("Imported %d products", len(result.inserted_ids))
    return [str(inserted_id) for inserted_id in result.inserted_ids]


def update_product(db, product_id: str, product_data: Dict) -> None:
    object_id = normalize_object_id(product_id)
    if object_id is None:
        raise NotFoundError("Product not found")

    update_data = _strip_id(product_data)
    # An emptied gallery still needs something to render.
    if isinstance(update_data.get("images"), list) and not update_data["images"]:
        update_data["images"] = [placeholder_image_url()]

    if not update_data:
        if db[PRODUCTS].count_documents({"_id": object_id}) == 0:
            raise NotFoundError("Product not found")
        return

    result = db[PRODUCTS].update_one({"_id": object_id}, {"$set": update_data})
    if result.matched_count == 0:
        raise NotFoundError("Product not found")


def delete_product(db, product_id: str) -> bool:
    object_id = normalize_object_id(product_id)
    if object_id is None:
        return False
    return db[PRODUCTS].delete_one({"_id": object_id}).deleted_count > 0


def build_inventory(
    variants: List[Dict], base_price: float, existing: Optional[List[Dict]] = None
) -> List[Dict]:
    """Expand variant options into one inventory line per combination.

    Lines that already exist keep their price and stock; new combinations
    start at ``base_price`` with no stock.
    """
    option_groups = []
    for variant in variants or []:
        if not isinstance(variant, dict):
            continue
        values = [
            str(option.get("value"))
            for option in variant.get("options") or []
            if isinstance(option, dict) and option.get("value")
        ]
        if variant.get("type") and values:
            option_groups.append(values)

    if not option_groups:
        return []

    existing_by_id = {
        item.get("id"): item for item in existing or [] if isinstance(item, dict)
    }
    inventory = []
    for combination in itertools.product(*option_groups):
        combination_id = "-".join(combination)
        previous = existing_by_id.get(combination_id, {})
        inventory.append(
            {
                "id": combination_id,
                "price": previous.get("price", base_price or 0),
                "stock": previous.get("stock", 0),
            }
        )
    return inventory


def resolve_variant_price(product: Dict, variant_id: Optional[str]) -> float:
    if variant_id:
        for item in product.get("inventory") or []:
            if item.get("id") == variant_id:
                return float(item.get("price", product.get("price", 0)) or 0)
    return float(product.get("price", 0) or 0)


def resolve_variant_image(product: Dict, variant_id: Optional[str]) -> str:
    if variant_id:
        values = set(variant_id.split("-"))
        for variant in product.get("variants") or []:
            for option in variant.get("options") or []:
                if option.get("value") in values and option.get("image"):
                    return option["image"]
    images = product.get("images") or []
    return images[0] if images else ""


# --- Collections ---


def get_collections(db) -> List[Dict]:
    collections = [serialize_document(document) for document in db[COLLECTIONS].find()]
    return sorted(collections, key=lambda item: str(item.get("name", "")).lower())


def get_collection_by_id(db, collection_id: str) -> Optional[Dict]:
    object_id = normalize_object_id(collection_id)
    if object_id is None:
        return None
    return serialize_document(db[COLLECTIONS].find_one({"_id": object_id}))


def add_collection(db, collection_data: Dict) -> str:
    result = db[COLLECTIONS].insert_one(_strip_id(collection_data))
    return str(result.inserted_id)


def update_collection(db, collection_id: str, collection_data: Dict) -> int:
    """Update a collection and carry a rename through to its products.

    Products reference collections by name, so a rename rewrites the
    ``category`` of every product that used the old name. Returns how many
    products were re-pointed.
    """
    object_id = normalize_object_id(collection_id)
    existing = db[COLLECTIONS].find_one({"_id": object_id}) if object_id else None
    if not existing:
        raise NotFoundError("Collection not found")

    update_data = _strip_id(collection_data)
    old_name = existing.get("name")
    new_name = update_data.get("name")

    if update_data:
        db[COLLECTIONS].update_one({"_id": object_id}, {"$set": update_data})

    if not new_name or new_name == old_name:
        return 0

    result = db[PRODUCTS].update_many(
        {"category": old_name}, {"$set": {"category": new_name}}
    )
    logger.info(
        "Renamed collection %r to %r (%d products updated)",
        old_name,
        new_name,
        result.modified_count,
    )
    return result.modified_count


def delete_collection(db, collection_id: str) -> bool:
    object_id = normalize_object_id(collection_id)
    if object_id is None:
        return False
    return db[COLLECTIONS].delete_one({"_id": object_id}).deleted_count > 0


# --- Customers ---


def get_customers(db) -> List[Dict]:
    return [serialize_document(document) for document in db[CUSTOMERS].find()]


def get_customer_by_id(db, customer_id: str) -> Optional[Dict]:
    object_id = normalize_object_id(customer_id)
    if object_id is None:
        return None
    return serialize_document(db[CUSTOMERS].find_one({"_id": object_id}))


def add_customer(db, customer: Dict) -> str:
    result = db[CUSTOMERS].insert_one(_strip_id(customer))
    return str(result.inserted_id)


def update_customer(db, customer_id: str, customer_data: Dict) -> None:
    object_id = normalize_object_id(customer_id)
    if object_id is None:
        raise NotFoundError("Customer not found")
    update_data = _strip_id(customer_data)
    if not update_data:
        return
    result = db[CUSTOMERS].update_one({"_id": object_id}, {"$set": update_data})
    if result.matched_count == 0:
        raise NotFoundError("Customer not found")


def delete_customer(db, customer_id: str) -> bool:
    object_id = normalize_object_id(customer_id)
    if object_id is None:
        return False
    return db[CUSTOMERS].delete_one({"_id": object_id}).deleted_count > 0


def import_customers(db, customers: Iterable[Dict]) -> List[str]:
    documents = [_strip_id(customer) for customer in customers]
    if not documents:
        return []
    result = db[CUSTOMERS].insert_many(documents)
    logger.info("Imported %d customers", len(result.inserted_ids))
    return [str(inserted_id) for inserted_id in result.inserted_ids]
