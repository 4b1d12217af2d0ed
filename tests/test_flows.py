"""
Tests for the AI flows with a fake generative client.
"""

from unittest.mock import MagicMock, patch

import pytest
import requests
from pydantic import ValidationError

import flows
from ai_client import GenerationError
from shipping import ShippingError


@pytest.fixture
def model():
    return MagicMock()


class TestTextFlows:
    def test_collection_description(self, model):
        model.generate_json.return_value = {"description": "Everyday mugs for everyone."}
        result = flows.generate_collection_description(model, {"collectionName": "Mugs"})
        assert result == {"description": "Everyday mugs for everyone."}
        assert "Collection Name: Mugs" in model.generate_json.call_args[0][0]

    def test_collection_description_requires_name(self, model):
        with pytest.raises(ValidationError):
            flows.generate_collection_description(model, {})
        model.generate_json.assert_not_called()

    def test_model_failure_becomes_flow_error(self, model):
        model.generate_json.side_effect = GenerationError("quota exceeded")
        with pytest.raises(flows.FlowError, match="Could not generate description"):
            flows.generate_collection_description(model, {"collectionName": "Mugs"})

    def test_hero_text_with_existing_title_keeps_subtitle_only(self, model):
        model.generate_json.return_value = {"title": "Ignored", "subtitle": "Warm drinks, warm hearts."}
        result = flows.generate_hero_text(model, {"topic": "winter", "existingTitle": "Cozy Season"})
        assert result == {"subtitle": "Warm drinks, warm hearts."}

    def test_hero_text_full(self, model):
        model.generate_json.return_value = {"title": "Cozy Season", "subtitle": "Warm drinks."}
        assert flows.generate_hero_text(model, {"topic": "winter"}) == {
            "title": "Cozy Season",
            "subtitle": "Warm drinks.",
        }

    def test_product_details_truncates_seo_fields(self, model):
        model.generate_json.return_value = {
            "description": "Short.",
            "longDescription": "Long.",
            "seoTitle": "T" * 80,
            "seoDescription": "D" * 200,
        }
        result = flows.generate_product_details(model, {"productName": "Mug"})
        assert len(result["seoTitle"]) == 60
        assert len(result["seoDescription"]) == 160

    def test_product_details_missing_keys(self, model):
        model.generate_json.return_value = {"description": "Short."}
        with pytest.raises(flows.FlowError):
            flows.generate_product_details(model, {"productName": "Mug"})


class TestFilenames:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("Red Ceramic Mug.jpg", "red-ceramic-mug.jpg"),
            ("red_mug.JPEG", "red-mug.jpg"),
            ("  --  ", ""),
        ],
    )
    def test_sanitize_filename(self, raw, expected):
        assert flows.sanitize_filename(raw) == expected

    def test_generate_filename(self, model):
        model.generate_json.return_value = {"filename": "Red Mug!.jpg"}
        assert flows.generate_filename(model, {"context": "A red mug"}) == {"filename": "red-mug.jpg"}

    def test_filename_generator(self, model):
        model.generate_json.return_value = {"filename": "blue-cap.jpg"}
        assert flows.filename_generator(model)("Blue cap") == "blue-cap.jpg"

    def test_unusable_filename(self, model):
        model.generate_json.return_value = {"filename": "???"}
        with pytest.raises(flows.FlowError):
            flows.generate_filename(model, {"context": "A red mug"})


class TestImageFlows:
    def test_generate_image_applies_style_guide(self, model):
        model.generate_image.return_value = "data:image/png;base64,aGk="
        assert flows.generate_image(model, {"prompt": "a mug"}) == {"imageUrl": "data:image/png;base64,aGk="}
        prompt = model.generate_image.call_args[0][0]
        assert "#3F51B5" in prompt and prompt.endswith("a mug")

    def test_generate_image_without_result(self, model):
        model.generate_image.return_value = ""
        with pytest.raises(flows.FlowError, match="failed to return a URL"):
            flows.generate_image(model, {"prompt": "a mug"})

    def test_fetch_and_upload_image(self):
        response = MagicMock(ok=True, headers={"content-type": "image/jpeg; charset=binary"})
        response.iter_content.return_value = [b"jpeg", b"bytes"]
        storage = MagicMock()
        storage.upload_image_with_generated_name.return_value = "http://store.test/uploads/products/mug.jpg"
        namer = MagicMock()

        with patch("flows.requests.get", return_value=response):
            result = flows.fetch_and_upload_image(storage, namer, {"url": "https://cdn.example.com/mug.jpg"})

        assert result == {"newUrl": "http://store.test/uploads/products/mug.jpg"}
        data_url, folder, context, generator = storage.upload_image_with_generated_name.call_args[0]
        assert data_url == "data:image/jpeg;base64,anBlZ2J5dGVz"
        assert folder == "products"
        assert context == "https://cdn.example.com/mug.jpg"
        assert generator is namer
        response.close.assert_called_once()

    def test_fetch_and_upload_image_http_error(self):
        response = MagicMock(ok=False, reason="Not Found")
        with patch("flows.requests.get", return_value=response):
            with pytest.raises(flows.FlowError, match="Not Found"):
                flows.fetch_and_upload_image(MagicMock(), MagicMock(), {"url": "https://cdn.example.com/x.jpg"})

    def test_fetch_and_upload_image_stops_at_size_cap(self):
        response = MagicMock(ok=True, headers={"content-type": "image/png"})
        response.iter_content.return_value = [b"x" * 1024] * 4
        storage = MagicMock()
        with patch("flows.requests.get", return_value=response) as get:
            with pytest.raises(flows.FlowError, match="larger than"):
                flows.fetch_and_upload_image(
                    storage, MagicMock(), {"url": "https://cdn.example.com/huge.png"}, max_bytes=2048
                )
        assert get.call_args.kwargs["stream"] is True
        storage.upload_image_with_generated_name.assert_not_called()

    def test_fetch_and_upload_image_rejects_large_content_length(self):
        response = MagicMock(ok=True, headers={"content-length": str(32 * 1024 * 1024)})
        with patch("flows.requests.get", return_value=response):
            with pytest.raises(flows.FlowError, match="larger than 16 MB"):
                flows.fetch_and_upload_image(MagicMock(), MagicMock(), {"url": "https://cdn.example.com/huge.png"})
        response.iter_content.assert_not_called()


class TestIntelligentImport:
    def test_invalid_products_are_dropped(self, model):
        model.generate_json.return_value = {
            "products": [
                {"name": "Tee", "price": 20, "category": "Apparel", "status": "draft"},
                {"name": "No price"},
            ]
        }
        result = flows.intelligent_product_import(model, {"csvData": "Title,Price\nTee,20"})

        assert [product["name"] for product in result["products"]] == ["Tee"]
        assert result["products"][0]["status"] == "draft"
        assert model.generate_json.call_args.kwargs["temperature"] == 0

    def test_imported_products_default_to_draft_and_taxable(self, model):
        model.generate_json.return_value = {
            "products": [
                {"name": "Mug", "price": 12, "category": "Kitchen"},
                {"name": "Cap", "price": 9, "category": "Apparel", "status": None, "isTaxable": None},
                {"name": "Scarf", "price": 15, "category": "Apparel", "status": "active", "isTaxable": False},
            ]
        }
        result = flows.intelligent_product_import(model, {"csvData": "Title,Price\nMug,12"})

        assert [(p["status"], p["isTaxable"]) for p in result["products"]] == [
            ("draft", True),
            ("draft", True),
            ("active", False),
        ]

    def test_missing_products_key(self, model):
        model.generate_json.return_value = {"rows": []}
        with pytest.raises(flows.FlowError, match="failed to process the CSV"):
            flows.intelligent_product_import(model, {"csvData": "a,b"})

    def test_model_error(self, model):
        model.generate_json.side_effect = GenerationError("timeout")
        with pytest.raises(flows.FlowError, match="Server error: timeout"):
            flows.intelligent_product_import(model, {"csvData": "a,b"})


class TestScrape:
    HTML = """
    <html><head><title>Red Mug | Shop</title>
    <meta property="og:image" content="/img/hero.jpg"></head>
    <body><script>var x = 1;</script>
    <h1>Red Mug</h1><p>Holds 12oz.</p>
    <img src="/img/hero.jpg"><img src="https://cdn.example.com/side.jpg"><img src="data:image/gif;base64,R0l">
    </body></html>
    """

    def test_extract_page_content(self):
        page = flows.extract_page_content(self.HTML, "https://shop.example.com/products/red-mug")
        assert page["title"] == "Red Mug | Shop"
        assert page["images"] == ["https://shop.example.com/img/hero.jpg", "https://cdn.example.com/side.jpg"]
        assert "var x" not in page["text"]
        assert "Holds 12oz." in page["text"]

    def test_scrape_product_url(self, model):
        model.generate_json.return_value = {"name": "Red Mug", "images": ["https://cdn.example.com/side.jpg"]}
        response = MagicMock(text=self.HTML)
        with patch("flows.requests.get", return_value=response):
            result = flows.scrape_product_url(model, {"url": "https://shop.example.com/products/red-mug"})
        assert result == {"name": "Red Mug", "images": ["https://cdn.example.com/side.jpg"]}

    def test_scrape_nothing_extracted(self, model):
        model.generate_json.return_value = {"unrelated": True}
        with patch("flows.requests.get", return_value=MagicMock(text="<html></html>")):
            with pytest.raises(flows.FlowError, match="failed to extract"):
                flows.scrape_product_url(model, {"url": "https://shop.example.com/x"})

    def test_scrape_page_unreachable(self, model):
        with patch("flows.requests.get", side_effect=requests.Timeout("slow")):
            with pytest.raises(flows.FlowError, match="Could not load the product page"):
                flows.scrape_product_url(model, {"url": "https://shop.example.com/x"})

    def test_scrape_rejects_non_http_url(self, model):
        with pytest.raises(ValidationError):
            flows.scrape_product_url(model, {"url": "ftp://shop.example.com/x"})


class TestShipmentFlow:
    PAYLOAD = {
        "toAddress": {"street1": "1 Main St", "city": "Springfield", "state": "IL", "zip": "62701", "country": "US"},
        "fromAddress": {"street1": "9 Elm St", "city": "Chicago", "state": "IL", "zip": "60601", "country": "US"},
        "parcel": {"length": 10, "width": 8, "height": 4, "weight": 16},
    }

    def test_rates_are_returned(self):
        shipment = {"id": "shp_1", "rates": [{"id": "r1", "carrier": "USPS", "service": "Priority", "rate": "7.58", "currency": "USD", "delivery_days": 2}]}
        with patch("flows.create_shipment", return_value=shipment) as create:
            result = flows.create_shipment_flow(self.PAYLOAD, api_key="ep-key")
        assert result["id"] == "shp_1"
        assert result["rates"][0]["carrier"] == "USPS"
        assert create.call_args.kwargs["api_key"] == "ep-key"

    def test_shipping_errors_become_flow_errors(self):
        with patch("flows.create_shipment", side_effect=ShippingError("EasyPost Error: bad zip")):
            with pytest.raises(flows.FlowError, match="bad zip"):
                flows.create_shipment_flow(self.PAYLOAD)

    def test_invalid_parcel(self):
        payload = {**self.PAYLOAD, "parcel": {"length": 0, "width": 8, "height": 4, "weight": 16}}
        with pytest.raises(ValidationError):
            flows.create_shipment_flow(payload)


class TestRecommendations:
    def test_prompt_contains_catalog(self, model):
        model.generate_json.return_value = {"recommendedProducts": ["b"]}
        catalog = [{"id": "a", "name": "Mug", "category": "Kitchen"}, {"id": "b", "name": "Cup", "category": "Kitchen"}]
        assert flows.product_recommendations(model, {"viewingHistory": ["a"]}, catalog) == {"recommendedProducts": ["b"]}
        assert '"Cup"' in model.generate_json.call_args[0][0]

    def test_history_required(self, model):
        with pytest.raises(ValidationError):
            flows.product_recommendations(model, {"viewingHistory": []}, [])
