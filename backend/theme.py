"""Storefront theme settings, colour palettes and builder pages."""
import copy
import logging
from typing import Dict, List, Optional

from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)

SETTINGS_COLLECTION = "config"
THEME_DOCUMENT_ID = "theme"

DEFAULT_SETTINGS: Dict[str, object] = {
    "palette": "default",
    "headlineFont": "poppins",
    "bodyFont": "pt-sans",
    "logoUrl": "",
    "logoWidth": 140,
    "menuItems": [
        {"label": "Home", "href": "/"},
        {"label": "All Products", "href": "/products"},
    ],
    "headerType": "standard",
    "pages": [],
    "sections": [
        {
            "id": "hero-1",
            "type": "hero",
            "props": {
                "title": "Welcome to CommerceCraft",
                "subtitle": "Discover a new era of online shopping. Quality products, seamless experience.",
                "imageUrl": "https://picsum.photos/1920/1080",
                "buttonLabel": "Shop Now",
                "buttonHref": "#products",
            },
        },
        {
            "id": "featured-products-1",
            "type": "featured-products",
            "props": {
                "title": "Featured Products",
                "subtitle": "Check out our latest collection of hand-picked items.",
                "count": 8,
            },
        },
    ],
}

PALETTES: List[Dict[str, str]] = [
    {"name": "Default", "primary": "#3F51B5", "accent": "#FF9800", "bg": "#E8EAF6"},
    {"name": "Forest", "primary": "#2E7D32", "accent": "#FFC107", "bg": "#E8F5E9"},
    {"name": "Royal", "primary": "#6A1B9A", "accent": "#EC407A", "bg": "#F3E5F5"},
    {"name": "Mono", "primary": "#212121", "accent": "#757575", "bg": "#F5F5F5"},
]

FONTS: Dict[str, Dict[str, str]] = {
    "poppins": {"name": "Poppins", "css": '"Poppins", sans-serif'},
    "inter": {"name": "Inter", "css": '"Inter", sans-serif'},
    "lato": {"name": "Lato", "css": '"Lato", sans-serif'},
    "roboto": {"name": "Roboto", "css": '"Roboto", sans-serif'},
    "pt-sans": {"name": "PT Sans", "css": '"PT Sans", sans-serif'},
    "open-sans": {"name": "Open Sans", "css": '"Open Sans", sans-serif'},
    "source-sans": {"name": "Source Sans 3", "css": '"Source Sans 3", sans-serif'},
}


def default_settings() -> Dict[str, object]:
    return copy.deepcopy(DEFAULT_SETTINGS)


def get_theme_settings(db) -> Dict[str, object]:
    defaults = default_settings()
    try:
        document = db[SETTINGS_COLLECTION].find_one({"_id": THEME_DOCUMENT_ID})
    except PyMongoError as exc:
        logger.error("Error fetching theme settings, returning defaults: %s", exc)
        return defaults

    if not document:
        return defaults

    stored = {key: value for key, value in document.items() if key != "_id"}
    merged = {**defaults, **stored}
    merged["sections"] = stored.get("sections") or defaults["sections"]
    return merged


def update_theme_settings(db, settings: Dict[str, object]) -> None:
    values = {key: value for key, value in (settings or {}).items() if key != "_id"}
    if not values:
        return
    db[SETTINGS_COLLECTION].update_one(
        {"_id": THEME_DOCUMENT_ID}, {"$set": values}, upsert=True
    )


def find_page(settings: Dict[str, object], slug: str) -> Optional[Dict]:
    path = "/" + str(slug or "").strip("/")
    for page in settings.get("pages") or []:
        if isinstance(page, dict) and page.get("path") == path:
            return page
    return None


def get_palette(name: Optional[str]) -> Dict[str, str]:
    lowered = str(name or "").strip().lower()
    for palette in PALETTES:
        if palette["name"].lower() == lowered:
            return palette
    return PALETTES[0]
