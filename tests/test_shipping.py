"""
Tests for EasyPost shipment rates.
"""

from unittest.mock import MagicMock, patch

import pytest
import requests

import shipping

TO_ADDRESS = {"street1": "1 Main St", "city": "Springfield", "state": "IL", "zip": "62701", "country": "US"}
FROM_ADDRESS = {"street1": "9 Elm St", "city": "Chicago", "state": "IL", "zip": "60601", "country": "US", "street2": None}
PARCEL = {"length": 10, "width": 8, "height": 4, "weight": 16}


def make_response(status_code, body):
    response = MagicMock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.json.return_value = body
    response.text = str(body)
    response.reason = "Unprocessable Entity"
    return response


class TestCreateShipment:
    def test_returns_rates(self):
        body = {
            "id": "shp_123",
            "rates": [
                {"id": "rate_1", "carrier": "USPS", "service": "Priority", "rate": "7.58", "currency": "USD", "delivery_days": 2},
                {"id": "rate_2", "carrier": "UPS", "service": "Ground", "rate": "9.10", "currency": "USD", "delivery_days": None},
            ],
        }
        with patch("shipping.requests.post", return_value=make_response(201, body)) as post:
            shipment = shipping.create_shipment(TO_ADDRESS, FROM_ADDRESS, PARCEL, api_key="ep-key")

        assert shipment["id"] == "shp_123"
        assert shipment["rates"][0]["rate"] == "7.58"
        assert shipment["rates"][1]["delivery_days"] is None

        _, kwargs = post.call_args
        assert post.call_args[0][0] == "https://api.easypost.com/v2/shipments"
        assert kwargs["auth"] == ("ep-key", "")
        assert "street2" not in kwargs["json"]["shipment"]["from_address"]

    def test_api_errors_are_joined(self):
        body = {
            "error": {
                "message": "Wrong parameter type.",
                "errors": [{"field": "to_address.zip", "message": "is invalid"}, {"message": "bad parcel"}],
            }
        }
        with patch("shipping.requests.post", return_value=make_response(422, body)):
            with pytest.raises(shipping.ShippingError) as excinfo:
                shipping.create_shipment(TO_ADDRESS, FROM_ADDRESS, PARCEL, api_key="ep-key")

        assert str(excinfo.value) == (
            "EasyPost Error: Wrong parameter type., to_address.zip: is invalid, bad parcel"
        )

    def test_network_failure(self):
        with patch("shipping.requests.post", side_effect=requests.ConnectionError("refused")):
            with pytest.raises(shipping.ShippingError, match="refused"):
                shipping.create_shipment(TO_ADDRESS, FROM_ADDRESS, PARCEL, api_key="ep-key")

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("EASYPOST_API_KEY", raising=False)
        with patch("shipping.requests.post") as post:
            with pytest.raises(shipping.ShippingError, match="not configured"):
                shipping.create_shipment(TO_ADDRESS, FROM_ADDRESS, PARCEL)
        post.assert_not_called()
