"""Template CSV imports for products and customers."""
import csv
import io
import json
import logging
import math
from typing import Dict, List

logger = logging.getLogger(__name__)

PRODUCTS_TEMPLATE_HEADERS = "name,description,longDescription,price,category,images,variants,inventory"
PRODUCTS_TEMPLATE = (
    PRODUCTS_TEMPLATE_HEADERS
    + "\n"
    + '"Example T-Shirt","A cool example shirt.","This is a longer description for the cool example shirt.",'
    + '19.99,"Apparel","https://picsum.photos/400/400?random=1,https://picsum.photos/400/400?random=2",'
    + '"{""type"":""Size"",""options"":[{""value"":""S""},{""value"":""M""},{""value"":""L""}]};'
    + '{""type"":""Color"",""options"":[{""value"":""Red""},{""value"":""Blue""}]}",'
    + '"{""id"":""S-Red"",""price"":21.99,""stock"":10};{""id"":""M-Blue"",""price"":22.99,""stock"":5}"'
    + "\n"
)

CUSTOMERS_TEMPLATE_HEADERS = (
    "clientType,company,contacts,billingStreet,billingCity,billingState,billingZip,"
    "shippingStreet,shippingCity,shippingState,shippingZip,taxExempt,taxExemptionNumber,gstNumber"
)
CUSTOMERS_TEMPLATE = (
    CUSTOMERS_TEMPLATE_HEADERS
    + "\n"
    + 'ORGANIZATION,"Acme Inc.","[{""name"":""Jane Doe"",""email"":""jane@acme.com"",'
    + '""phone"":""555-0100"",""role"":""Primary""}]",'
    + '"1 Main St","Springfield","IL","62701","1 Main St","Springfield","IL","62701",FALSE,,'
    + "\n"
)

TEMPLATES = {
    "products": PRODUCTS_TEMPLATE,
    "customers": CUSTOMERS_TEMPLATE,
}


class CsvImportError(ValueError):
    pass


def read_rows(text: str) -> List[Dict[str, str]]:
    if not str(text or "").strip():
        raise CsvImportError("The CSV file is empty.")
    reader = csv.DictReader(io.StringIO(str(text).lstrip("\ufeff")), strict=True)
    if not reader.fieldnames:
        raise CsvImportError("The CSV file has no header row.")
    try:
        rows = [
            {str(key).strip(): (value or "").strip() for key, value in row.items() if key}
            for row in reader
            if any((value or "").strip() for value in row.values() if isinstance(value, str))
        ]
    except csv.Error as exc:
        raise CsvImportError(f"CSV parsing error on line {reader.line_num}: {exc}") from exc
    return rows


def _loads_lenient(candidate: str):
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        # Spreadsheet exports sometimes leave the CSV quote doubling in place.
        return json.loads(candidate.replace('""', '"'))


def parse_json_objects(value: str) -> List[Dict]:
    """Parse ``;``-separated JSON objects, as exported by the products template."""
    candidate = (value or "").strip()
    if not candidate:
        return []
    if not candidate.startswith("["):
        candidate = "[" + candidate.replace("};{", "},{") + "]"
    parsed = _loads_lenient(candidate)
    if not isinstance(parsed, list):
        return []
    return [entry for entry in parsed if isinstance(entry, dict)]


def parse_products_csv(text: str) -> List[Dict]:
    products: List[Dict] = []
    for line_number, row in enumerate(read_rows(text), start=2):
        try:
            price = float(row.get("price", ""))
        except ValueError:
            price = math.nan
        if not math.isfinite(price):
            logger.warning("Skipping row %d with invalid price: %r", line_number, row.get("price"))
            continue

        try:
            variants = parse_json_objects(row.get("variants", ""))
            inventory = parse_json_objects(row.get("inventory", ""))
        except json.JSONDecodeError as exc:
            raise CsvImportError(
                f"Row {line_number} has invalid variants or inventory JSON: {exc.msg}"
            ) from exc

        images = [url.strip() for url in row.get("images", "").split(",") if url.strip()]
        products.append(
            {
                "name": row.get("name") or "Untitled Product",
                "description": row.get("description", ""),
                "longDescription": row.get("longDescription", ""),
                "price": price,
                "category": row.get("category") or "Uncategorized",
                "images": images,
                "variants": variants,
                "inventory": inventory,
            }
        )
    return products


def parse_contacts(value: str) -> List[Dict]:
    candidate = (value or "").strip()
    if not candidate:
        return []
    try:
        parsed = _loads_lenient(candidate)
    except json.JSONDecodeError:
        logger.warning("Failed to parse contacts field: %r", value)
        return []
    if not isinstance(parsed, list):
        return []
    return [contact for contact in parsed if isinstance(contact, dict)]


def parse_customers_csv(text: str) -> List[Dict]:
    customers: List[Dict] = []
    for line_number, row in enumerate(read_rows(text), start=2):
        if not row.get("clientType") or not row.get("billingStreet"):
            logger.warning("Skipping row %d with missing required fields", line_number)
            continue
        customer = dict(row)
        customer["clientType"] = row["clientType"].upper()
        customer["taxExempt"] = row.get("taxExempt", "").upper() == "TRUE"
        customer["contacts"] = parse_contacts(row.get("contacts", ""))
        for optional_field in ("company", "taxExemptionNumber", "gstNumber"):
            if not customer.get(optional_field):
                customer.pop(optional_field, None)
        customers.append(customer)
    return customers
