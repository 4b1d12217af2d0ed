"""
AI flows for the admin console and storefront.

Each flow validates its input model, renders a prompt, asks the generative
client for JSON and validates the answer against the output model. Any
failure surfaces as a single ``FlowError`` carrying a message fit for the UI.

- generate_collection_description - marketing copy for a collection
- generate_filename - SEO-friendly image filename
- generate_hero_text - hero section title and/or subtitle
- generate_image - product photo from a text prompt
- generate_product_details - descriptions and SEO fields for a product
- intelligent_product_import - any CSV into the product schema
- scrape_product_url - product fields from a live product page
- fetch_and_upload_image - copy a remote image into our storage
- create_shipment_flow - shipping rates for a parcel
- product_recommendations - related products from viewing history
"""
import base64
import json
import logging
import re
from typing import Callable, Dict, List, Optional
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup
from pydantic import BaseModel, ValidationError

from ai_client import GenerationError
from schemas import (
    CreateShipmentInput,
    CreateShipmentOutput,
    FetchAndUploadImageInput,
    FetchAndUploadImageOutput,
    GenerateCollectionDescriptionInput,
    GenerateCollectionDescriptionOutput,
    GenerateFilenameInput,
    GenerateFilenameOutput,
    GenerateHeroTextInput,
    GenerateHeroTextOutput,
    GenerateImageInput,
    GenerateImageOutput,
    GenerateProductDetailsInput,
    GenerateProductDetailsOutput,
    IntelligentProductImportInput,
    ProductBase,
    ProductRecommendationsInput,
    ProductRecommendationsOutput,
    ScrapeProductUrlInput,
    ScrapeProductUrlOutput,
)
from shipping import ShippingError, create_shipment

logger = logging.getLogger(__name__)

FETCH_TIMEOUT_SECONDS = 20
MAX_PAGE_TEXT_CHARS = 12000
MAX_PAGE_IMAGES = 40
MAX_FETCH_BYTES = 16 * 1024 * 1024
USER_AGENT = "Mozilla/5.0 (compatible; CommerceCraftBot/1.0)"

STYLE_GUIDE = """
- Primary color: Deep blue (#3F51B5) to evoke trust and stability.
- Background color: Very light blue (#E8EAF6) to maintain a clean and calm backdrop.
- Accent color: Vibrant orange (#FF9800) for calls to action and important highlights.
- Headline font: 'Poppins' (sans-serif), modern and legible for headlines and short content blocks.
- Body font: 'PT Sans' (sans-serif), readable and approachable for product descriptions and body text.
- Use clean, outline-style icons for navigation and product categories.
"""

PRODUCT_TYPE_DEFINITION = """
{
  "name": string,
  "handle": string,                 // URL slug, shared by all rows of one product
  "description": string,
  "longDescription": string,
  "price": number,
  "images": string[],               // absolute URLs
  "category": string,
  "vendor": string (optional),
  "tags": string[] (optional),
  "variants": [{"type": string, "options": [{"value": string, "image": string (optional)}]}],
  "inventory": [{"id": string, "price": number, "stock": number,
                 "sku": string (optional), "barcode": string (optional), "grams": number (optional)}],
  "status": "active" | "draft",
  "compareAtPrice": number | null (optional),
  "costPerItem": number | null (optional),
  "isTaxable": boolean,
  "trackQuantity": boolean,
  "allowOutOfStockPurchase": boolean,
  "seoTitle": string (optional),
  "seoDescription": string (optional)
}
"""


class FlowError(RuntimeError):
    pass


def _run_prompt(client, prompt: str, output_model, failure_message: str):
    try:
        data = client.generate_json(prompt)
    except GenerationError as exc:
        raise FlowError(f"{failure_message} {exc}".strip()) from exc
    if not data:
        raise FlowError(failure_message)
    try:
        return output_model.model_validate(data)
    except ValidationError as exc:
        logger.error("Model output failed validation: %s", exc)
        raise FlowError(failure_message) from exc


def _dump(model: BaseModel) -> Dict:
    return model.model_dump(exclude_none=True)


def generate_collection_description(client, payload: Dict) -> Dict:
    params = GenerateCollectionDescriptionInput.model_validate(payload)
    prompt = (
        "You are a marketing expert for an e-commerce website.\n\n"
        "Your task is to write a short, compelling description for a product collection.\n"
        "The description should be engaging and make the user want to explore the "
        "products within that collection.\n\n"
        f"Collection Name: {params.collectionName}\n\n"
        'Respond with a JSON object: {"description": "..."}'
    )
    result = _run_prompt(
        client,
        prompt,
        GenerateCollectionDescriptionOutput,
        "Could not generate description. Please try again.",
    )
    return _dump(result)


def sanitize_filename(value: str) -> str:
    stem = re.sub(r"\.jpe?g$", "", str(value or "").strip().lower())
    stem = re.sub(r"[^a-z0-9]+", "-", stem).strip("-")
    if not stem:
        return ""
    return f"{stem}.jpg"


def generate_filename(client, payload: Dict) -> Dict:
    params = GenerateFilenameInput.model_validate(payload)
    prompt = (
        "You are an SEO expert. Convert the given text into a URL-safe, SEO-friendly filename.\n\n"
        "Follow these rules:\n"
        "1. Make the filename lowercase.\n"
        "2. Replace spaces and special characters with hyphens (-).\n"
        "3. Keep it concise, ideally 3-5 words.\n"
        "4. Ensure it ends with the .jpg extension.\n\n"
        f"Context: {params.context}\n\n"
        'Respond with a JSON object: {"filename": "..."}'
    )
    result = _run_prompt(client, prompt, GenerateFilenameOutput, "Could not generate a filename.")
    filename = sanitize_filename(result.filename)
    if not filename:
        raise FlowError("Could not generate a filename.")
    return {"filename": filename}


def filename_generator(client) -> Callable[[str], str]:
    def generate(context: str) -> str:
        return generate_filename(client, {"context": context})["filename"]

    return generate


def generate_hero_text(client, payload: Dict) -> Dict:
    params = GenerateHeroTextInput.model_validate(payload)
    if params.existingTitle:
        instructions = (
            f'The title is: "{params.existingTitle}". Generate a matching subtitle for the '
            f'topic: "{params.topic}".\n'
            "The subtitle should be short, catchy, and complement the title. "
            "Only generate the subtitle.\n"
            'Respond with a JSON object: {"subtitle": "..."}'
        )
    else:
        instructions = (
            f'The topic for the hero section is: "{params.topic}".\n'
            "Generate a short, catchy title and a compelling one-sentence subtitle that fits "
            "this topic. Make it exciting and inviting for a potential customer.\n"
            'Respond with a JSON object: {"title": "...", "subtitle": "..."}'
        )
    prompt = (
        "You are a creative marketing assistant for an e-commerce website.\n\n"
        "Your task is to generate compelling text for a hero section.\n\n" + instructions
    )
    result = _run_prompt(
        client, prompt, GenerateHeroTextOutput, "Could not generate hero text. Please try again."
    )
    if params.existingTitle:
        result.title = None
    return _dump(result)


def generate_image(client, payload: Dict) -> Dict:
    params = GenerateImageInput.model_validate(payload)
    prompt = (
        f"Apply the following style guide: {STYLE_GUIDE}. "
        "A high-quality, professional e-commerce product photo for a custom printing "
        f"business: {params.prompt}"
    )
    try:
        image_url = client.generate_image(prompt)
    except GenerationError as exc:
        raise FlowError(f"Image generation failed. {exc}") from exc
    if not image_url:
        raise FlowError("Image generation failed to return a URL.")
    return _dump(GenerateImageOutput(imageUrl=image_url))


def generate_product_details(client, payload: Dict) -> Dict:
    params = GenerateProductDetailsInput.model_validate(payload)
    prompt = (
        "You are an expert e-commerce copywriter and SEO specialist.\n\n"
        "Your task is to generate compelling marketing and SEO content for a product.\n\n"
        f'The product name is: "{params.productName}".\n\n'
        "Based on the product name, generate the following:\n"
        "1. description: a short, catchy marketing description.\n"
        "2. longDescription: a detailed, informative full description highlighting "
        "potential features and benefits.\n"
        "3. seoTitle: an SEO-friendly title (less than 60 characters).\n"
        "4. seoDescription: an SEO-friendly meta description (less than 160 characters).\n\n"
        'Respond with a JSON object with exactly the keys "description", '
        '"longDescription", "seoTitle" and "seoDescription".'
    )
    result = _run_prompt(
        client,
        prompt,
        GenerateProductDetailsOutput,
        "Could not generate product details. Please try again.",
    )
    result.seoTitle = result.seoTitle[:60]
    result.seoDescription = result.seoDescription[:160]
    return _dump(result)


def intelligent_product_import(client, payload: Dict, store_name: str = "CommerceCraft") -> Dict:
    params = IntelligentProductImportInput.model_validate(payload)
    prompt = f"""You are a highly specialized backend agent for the e-commerce company "{store_name}". Your only role is to reliably transform any CSV file into an array of valid {store_name} Product objects.

This is the strict target JSON structure for each product. Do NOT generate an "id" for the product; the database assigns it.

TARGET PRODUCT SCHEMA:
{PRODUCT_TYPE_DEFINITION}

Your requirements:
1. Analyze the CSV headers and data to determine which columns map to which schema fields.
   - Group multiple rows into a single product when they share a common "handle" or product name.
   - Combine all detected image columns (e.g. "Image 1", "Image 2", "Image Src") into a single "images" array.
   - Build the "variants" and "inventory" arrays from option columns like "Size", "Color", "Option1 Name", "Option1 Value". Each inventory "id" MUST be the hyphen-joined variant option values (e.g. "Small-Red").
2. If required fields are missing from the CSV, use these defaults:
   - status: "draft"
   - isTaxable: true
   - For other missing optional fields use empty strings, nulls or empty arrays as the schema allows.
3. Skip any row that cannot be reliably and completely mapped to a valid Product.
4. Do not hallucinate or guess values. If a value is not in the CSV, use a default or omit it if optional.
5. Your output must be exactly a JSON object: {{"products": [ ...validProductObjects ]}}.

CSV DATA:
{params.csvData}
"""
    failure_message = (
        "The AI model could not process the file. Please ensure the CSV is formatted correctly."
    )
    try:
        data = client.generate_json(prompt, temperature=0)
    except GenerationError as exc:
        logger.error("Error in intelligent product import: %s", exc)
        raise FlowError(f"{failure_message} Server error: {exc}") from exc

    raw_products = data.get("products") if isinstance(data, dict) else None
    if not isinstance(raw_products, list):
        raise FlowError(
            "The AI model failed to process the CSV data. It might be in an unsupported format or empty."
        )

    products: List[Dict] = []
    for index, raw_product in enumerate(raw_products):
        if not isinstance(raw_product, dict):
            logger.warning("Skipping imported product %d: not an object", index)
            continue
        raw_product = {**raw_product}
        # Imports stay off the storefront until an admin publishes them.
        if raw_product.get("status") is None:
            raw_product["status"] = "draft"
        if raw_product.get("isTaxable") is None:
            raw_product["isTaxable"] = True
        try:
            product = ProductBase.model_validate(raw_product)
        except ValidationError as exc:
            logger.warning("Skipping imported product %d: %s", index, exc.errors()[:3])
            continue
        products.append(product.model_dump())
    return {"products": products}


def extract_page_content(html: str, base_url: str) -> Dict[str, object]:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript", "svg"]):
        tag.decompose()

    title = soup.title.get_text(strip=True) if soup.title else ""
    images: List[str] = []
    og_image = soup.find("meta", attrs={"property": "og:image"})
    if og_image and og_image.get("content"):
        images.append(urljoin(base_url, og_image["content"]))
    for img in soup.find_all("img"):
        source = img.get("src") or img.get("data-src")
        if not source or source.startswith("data:"):
            continue
        absolute = urljoin(base_url, source)
        if absolute not in images:
            images.append(absolute)
        if len(images) >= MAX_PAGE_IMAGES:
            break

    text = " ".join(soup.get_text(separator=" ").split())
    return {"title": title, "text": text[:MAX_PAGE_TEXT_CHARS], "images": images}


def scrape_product_url(client, payload: Dict) -> Dict:
    params = ScrapeProductUrlInput.model_validate(payload)
    try:
        response = requests.get(
            params.url, headers={"User-Agent": USER_AGENT}, timeout=FETCH_TIMEOUT_SECONDS
        )
        response.raise_for_status()
    except requests.RequestException as exc:
        raise FlowError(f"Could not load the product page. {exc}") from exc

    page = extract_page_content(response.text, params.url)
    prompt = (
        "You are an expert e-commerce data extraction agent. Extract key product "
        "information from the product page below into a JSON object.\n\n"
        f"Page URL: {params.url}\n"
        f"Page title: {page['title']}\n"
        f"Image URLs found on the page:\n{json.dumps(page['images'], indent=0)}\n\n"
        f"Visible page text:\n{page['text']}\n\n"
        "Extract ONLY the following:\n"
        '- "name": the product name\n'
        '- "description": a short marketing description, and "longDescription": a longer, '
        "more detailed description\n"
        '- "images": the product image URLs from the list above, highest resolution first\n'
        '- "variants": product variants such as Size or Color as '
        '[{"type": "Size", "options": [{"value": "Small", "image": "<optional url>"}]}]\n\n'
        "If a piece of information is not available, omit the field."
    )
    result = _run_prompt(
        client,
        prompt,
        ScrapeProductUrlOutput,
        "The AI model failed to extract any data from the provided URL. "
        "Please check the URL and try again.",
    )
    data = _dump(result)
    if not data:
        raise FlowError(
            "The AI model failed to extract any data from the provided URL. "
            "Please check the URL and try again."
        )
    return data


def read_limited(response, max_bytes: int) -> bytes:
    chunks: List[bytes] = []
    received = 0
    for chunk in response.iter_content(chunk_size=64 * 1024):
        if not chunk:
            continue
        received += len(chunk)
        if received > max_bytes:
            raise FlowError(f"Image is larger than {max_bytes // (1024 * 1024)} MB.")
        chunks.append(chunk)
    return b"".join(chunks)


def fetch_and_upload_image(
    storage, name_generator, payload: Dict, max_bytes: int = MAX_FETCH_BYTES
) -> Dict:
    params = FetchAndUploadImageInput.model_validate(payload)
    try:
        response = requests.get(
            params.url,
            headers={"User-Agent": USER_AGENT},
            timeout=FETCH_TIMEOUT_SECONDS,
            stream=True,
        )
        try:
            if not response.ok:
                raise FlowError(f"Failed to fetch image: {response.reason}")
            content_length = response.headers.get("content-length")
            if content_length and content_length.isdigit() and int(content_length) > max_bytes:
                raise FlowError(f"Image is larger than {max_bytes // (1024 * 1024)} MB.")
            content = read_limited(response, max_bytes)
        finally:
            response.close()
        content_type = response.headers.get("content-type", "image/jpeg").split(";")[0]
        encoded = base64.b64encode(content).decode("ascii")
        data_url = f"data:{content_type};base64,{encoded}"
        new_url = storage.upload_image_with_generated_name(
            data_url, "products", params.url, name_generator
        )
    except (requests.RequestException, ValueError, FlowError) as exc:
        logger.error("Failed to process image from URL %s: %s", params.url, exc)
        raise FlowError(f"Failed to fetch and upload image. {exc}") from exc

    return _dump(FetchAndUploadImageOutput(newUrl=new_url))


def create_shipment_flow(payload: Dict, api_key: Optional[str] = None) -> Dict:
    params = CreateShipmentInput.model_validate(payload)
    try:
        shipment = create_shipment(
            params.toAddress.model_dump(exclude_none=True),
            params.fromAddress.model_dump(exclude_none=True),
            params.parcel.model_dump(),
            api_key=api_key,
        )
    except ShippingError as exc:
        raise FlowError(str(exc)) from exc

    shipment["rates"] = [{**rate, "rate": str(rate["rate"])} for rate in shipment["rates"]]
    return CreateShipmentOutput.model_validate(shipment).model_dump()


def product_recommendations(client, payload: Dict, catalog: List[Dict]) -> Dict:
    params = ProductRecommendationsInput.model_validate(payload)
    summary = [
        {"id": product["id"], "name": product.get("name", ""), "category": product.get("category", "")}
        for product in catalog
    ]
    prompt = (
        "You are a product recommendation engine for an e-commerce store.\n\n"
        "A shopper recently viewed these product ids (most recent first):\n"
        f"{json.dumps(params.viewingHistory)}\n\n"
        "Here is the catalog:\n"
        f"{json.dumps(summary)}\n\n"
        "Recommend products from the catalog the shopper is likely to want next. "
        "Prefer related categories and do not repeat viewed products.\n"
        'Respond with a JSON object: {"recommendedProducts": ["<product id>", ...]}'
    )
    result = _run_prompt(
        client, prompt, ProductRecommendationsOutput, "Could not load recommendations."
    )
    return _dump(result)
