"""
Document and payload schemas for the CommerceCraft store.

Each model mirrors a MongoDB document or a request/response body. Field names
stay camelCase so documents round-trip to the storefront unchanged; the Mongo
``_id`` is exposed as ``id`` and never stored inside the document.
"""
from __future__ import annotations

import re
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator


def reject_null(value):
    """Partial updates may omit a field but never blank a required one."""
    if value is None:
        raise ValueError("may not be null")
    return value


# --- Catalog ---


class VariantOption(BaseModel):
    value: str = Field(..., min_length=1, description='e.g. "Small", "Red"')
    image: Optional[str] = Field(None, description="Swatch image for this option")


class Variant(BaseModel):
    type: str = Field(..., min_length=1, description='e.g. "Size", "Color"')
    options: List[VariantOption] = Field(..., min_length=1)


class InventoryItem(BaseModel):
    id: str = Field(..., description='Combination of variant values, e.g. "Small-Red"')
    price: float = Field(..., ge=0, allow_inf_nan=False)
    stock: int = Field(0, ge=0)
    sku: Optional[str] = None
    barcode: Optional[str] = None
    grams: Optional[float] = None


class ProductBase(BaseModel):
    name: str
    handle: str = ""
    description: str = ""
    longDescription: str = ""
    price: float = Field(..., ge=0, allow_inf_nan=False)
    images: List[str] = Field(default_factory=list)
    category: str = ""
    vendor: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    variants: List[Variant] = Field(default_factory=list)
    inventory: List[InventoryItem] = Field(default_factory=list)
    status: Literal["active", "draft"] = "active"
    compareAtPrice: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    costPerItem: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    isTaxable: bool = True
    trackQuantity: bool = False
    allowOutOfStockPurchase: bool = False
    seoTitle: Optional[str] = None
    seoDescription: Optional[str] = None


class ProductCreate(ProductBase):
    """Admin product form; stricter than what imports accept."""

    name: str = Field(..., min_length=2)
    description: str = Field(..., min_length=10)
    longDescription: str = Field(..., min_length=20)
    price: float = Field(..., ge=0.01, allow_inf_nan=False)
    category: str = Field(..., min_length=1)


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2)
    handle: Optional[str] = None
    description: Optional[str] = None
    longDescription: Optional[str] = None
    price: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    images: Optional[List[str]] = None
    category: Optional[str] = None
    vendor: Optional[str] = None
    tags: Optional[List[str]] = None
    variants: Optional[List[Variant]] = None
    inventory: Optional[List[InventoryItem]] = None
    status: Optional[Literal["active", "draft"]] = None
    compareAtPrice: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    costPerItem: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    isTaxable: Optional[bool] = None
    trackQuantity: Optional[bool] = None
    allowOutOfStockPurchase: Optional[bool] = None
    seoTitle: Optional[str] = None
    seoDescription: Optional[str] = None

    @field_validator(
        "name",
        "handle",
        "description",
        "longDescription",
        "price",
        "images",
        "category",
        "tags",
        "variants",
        "inventory",
        "status",
        "isTaxable",
        "trackQuantity",
        "allowOutOfStockPurchase",
    )
    @classmethod
    def required_fields_not_null(cls, value):
        return reject_null(value)


class Product(ProductBase):
    id: str


class CollectionCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    imageUrl: Optional[str] = None


class CollectionUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    imageUrl: Optional[str] = None

    @field_validator("name")
    @classmethod
    def name_not_null(cls, value):
        return reject_null(value)


# --- Customers ---


class Contact(BaseModel):
    name: str = ""
    email: str = ""
    phone: str = ""
    role: Literal["Primary", "Billing", "Shipping", "Other"] = "Primary"


class CustomerBase(BaseModel):
    clientType: Literal["ORGANIZATION", "INDIVIDUAL"]
    company: Optional[str] = None
    contacts: List[Contact] = Field(default_factory=list)
    billingStreet: str
    billingCity: str = ""
    billingState: str = ""
    billingZip: str = ""
    shippingStreet: str = ""
    shippingCity: str = ""
    shippingState: str = ""
    shippingZip: str = ""
    taxExempt: bool = False
    taxExemptionNumber: Optional[str] = None
    gstNumber: Optional[str] = None


class CustomerUpdate(BaseModel):
    clientType: Optional[Literal["ORGANIZATION", "INDIVIDUAL"]] = None
    company: Optional[str] = None
    contacts: Optional[List[Contact]] = None
    billingStreet: Optional[str] = None
    billingCity: Optional[str] = None
    billingState: Optional[str] = None
    billingZip: Optional[str] = None
    shippingStreet: Optional[str] = None
    shippingCity: Optional[str] = None
    shippingState: Optional[str] = None
    shippingZip: Optional[str] = None
    taxExempt: Optional[bool] = None
    taxExemptionNumber: Optional[str] = None
    gstNumber: Optional[str] = None

    @field_validator("clientType", "billingStreet", "contacts", "taxExempt")
    @classmethod
    def required_fields_not_null(cls, value):
        return reject_null(value)


# --- Cart, checkout, quotes ---


class CartItemInput(BaseModel):
    productId: str = Field(..., min_length=1)
    variantId: Optional[str] = None
    variantLabel: Optional[str] = None
    quantity: int = Field(1, ge=1)


class QuantityUpdate(BaseModel):
    quantity: int


class CheckoutForm(BaseModel):
    name: str = Field(..., min_length=2)
    email: EmailStr
    address: str = Field(..., min_length=5)
    city: str = Field(..., min_length=2)
    zip: str = Field(..., pattern=r"^\d{5}$")
    cardName: str = Field(..., min_length=2)
    cardNumber: str = Field(..., pattern=r"^\d{16}$")
    expDate: str = Field(..., pattern=r"^(0[1-9]|1[0-2])/\d{2}$")
    cvc: str = Field(..., pattern=r"^\d{3}$")

    @field_validator("cardNumber", mode="before")
    @classmethod
    def strip_card_spacing(cls, value):
        if isinstance(value, str):
            return re.sub(r"[\s-]", "", value)
        return value


class QuoteRequest(BaseModel):
    productName: str = ""
    name: str = Field(..., min_length=2)
    email: EmailStr
    company: Optional[str] = None
    quantity: int = Field(..., ge=1)
    message: str = Field(..., min_length=10)


# --- Theme / pages ---


class MenuItemChild(BaseModel):
    label: str
    href: str
    description: Optional[str] = None


class MegaMenuColumn(BaseModel):
    title: str
    children: List[MenuItemChild] = Field(default_factory=list)


class MenuItem(BaseModel):
    label: str
    href: str
    menuType: Optional[Literal["none", "simple", "mega"]] = None
    children: Optional[List[MenuItemChild]] = None
    megaMenu: Optional[List[MegaMenuColumn]] = None


SectionType = Literal[
    "hero",
    "featured-products",
    "testimonials",
    "image-with-text",
    "faq",
    "collections",
    "spacer",
]


class PageSection(BaseModel):
    id: str
    type: SectionType
    props: Dict[str, Any] = Field(default_factory=dict)


class Page(BaseModel):
    id: str
    name: str
    path: str
    sections: List[PageSection] = Field(default_factory=list)


class ThemeSettingsUpdate(BaseModel):
    palette: Optional[str] = None
    headlineFont: Optional[str] = None
    bodyFont: Optional[str] = None
    logoUrl: Optional[str] = None
    logoWidth: Optional[int] = Field(None, ge=0)
    menuItems: Optional[List[MenuItem]] = None
    headerType: Optional[
        Literal["standard", "centered", "split", "minimalist", "logo-top"]
    ] = None
    pages: Optional[List[Page]] = None
    sections: Optional[List[PageSection]] = None

    @field_validator(
        "palette",
        "headlineFont",
        "bodyFont",
        "logoWidth",
        "menuItems",
        "headerType",
        "pages",
        "sections",
    )
    @classmethod
    def settings_not_null(cls, value):
        return reject_null(value)


# --- Product designer ---


class Position(BaseModel):
    x: float
    y: float


class Size(BaseModel):
    width: float = Field(..., gt=0)
    height: float = Field(..., gt=0)


class TextElement(BaseModel):
    id: str
    type: Literal["text"] = "text"
    rotation: float = 0
    position: Position
    text: str
    fontSize: float = Field(..., gt=0)


class ImageElement(BaseModel):
    id: str
    type: Literal["image"] = "image"
    rotation: float = 0
    position: Position
    src: str
    size: Size
    aspectRatio: float = Field(..., gt=0)


class DesignViewState(BaseModel):
    textElements: List[TextElement] = Field(default_factory=list)
    imageElements: List[ImageElement] = Field(default_factory=list)


# --- Shipping ---


class Address(BaseModel):
    street1: str
    street2: Optional[str] = None
    city: str
    state: str
    zip: str
    country: str
    company: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None


class Parcel(BaseModel):
    length: float = Field(..., gt=0)
    width: float = Field(..., gt=0)
    height: float = Field(..., gt=0)
    weight: float = Field(..., gt=0, description="Weight in ounces")


class Rate(BaseModel):
    id: str
    carrier: str
    service: str
    rate: str
    currency: str
    delivery_days: Optional[int] = None


class CreateShipmentInput(BaseModel):
    toAddress: Address
    fromAddress: Address
    parcel: Parcel


class CreateShipmentOutput(BaseModel):
    id: str
    rates: List[Rate] = Field(default_factory=list)


# --- AI flows ---


class GenerateCollectionDescriptionInput(BaseModel):
    collectionName: str = Field(..., min_length=1, description="The name of the collection.")


class GenerateCollectionDescriptionOutput(BaseModel):
    description: str = Field(..., description="The generated description for the collection.")


class GenerateFilenameInput(BaseModel):
    context: str = Field(
        ...,
        min_length=1,
        description="The text to derive the filename from (product name, prompt, source URL).",
    )


class GenerateFilenameOutput(BaseModel):
    filename: str = Field(..., description="SEO-friendly filename ending in .jpg")


class GenerateHeroTextInput(BaseModel):
    topic: str = Field(..., min_length=1, description="Theme of the hero section.")
    existingTitle: Optional[str] = Field(
        None, description="Existing title when only a subtitle is needed."
    )


class GenerateHeroTextOutput(BaseModel):
    title: Optional[str] = None
    subtitle: Optional[str] = None


class GenerateImageInput(BaseModel):
    prompt: str = Field(..., min_length=1)


class GenerateImageOutput(BaseModel):
    imageUrl: str = Field(..., description="Data URI of the generated image.")


class GenerateProductDetailsInput(BaseModel):
    productName: str = Field(..., min_length=1)


class GenerateProductDetailsOutput(BaseModel):
    description: str = Field(..., description="Short, catchy marketing description.")
    longDescription: str = Field(..., description="Detailed description of features and benefits.")
    seoTitle: str = Field(..., description="SEO title, under 60 characters.")
    seoDescription: str = Field(..., description="Meta description, under 160 characters.")


class IntelligentProductImportInput(BaseModel):
    csvData: str = Field(..., min_length=1, description="Raw text of the CSV file.")


class IntelligentProductImportOutput(BaseModel):
    products: List[ProductBase] = Field(default_factory=list)


class ScrapeProductUrlInput(BaseModel):
    url: str = Field(..., pattern=r"^https?://", description="Product page to scrape.")


class ScrapeProductUrlOutput(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    longDescription: Optional[str] = None
    images: Optional[List[str]] = None
    variants: Optional[List[Variant]] = None


class FetchAndUploadImageInput(BaseModel):
    url: str = Field(..., pattern=r"^https?://")


class FetchAndUploadImageOutput(BaseModel):
    newUrl: str


class ProductRecommendationsInput(BaseModel):
    viewingHistory: List[str] = Field(..., min_length=1, description="Recently viewed product ids.")


class ProductRecommendationsOutput(BaseModel):
    recommendedProducts: List[str] = Field(default_factory=list)
