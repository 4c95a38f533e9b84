"""
Reverse geocoding tests: address lookup with coordinate fallback.
"""

from unittest.mock import MagicMock, patch

import pytest
import requests

from commissioning.integrations.geocoding import format_coordinates, reverse_geocode


def _session(body=None, status=200, exc=None):
    session = MagicMock()
    if exc is not None:
        session.get.side_effect = exc
        return session
    resp = MagicMock()
    resp.status_code = status
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status} error")
    resp.json.return_value = body
    session.get.return_value = resp
    return session


class TestReverseGeocode:
    def test_returns_display_name(self):
        session = _session({"display_name": "1 Harbour Rd, Sydney"})
        assert reverse_geocode(-33.8568, 151.2153, session) == "1 Harbour Rd, Sydney"

        _, kwargs = session.get.call_args
        assert kwargs["params"] == {"lat": -33.8568, "lon": 151.2153, "format": "json"}
        assert kwargs["headers"]["User-Agent"]

    def test_uses_app_config(self, app):
        session = _session({"display_name": "x"})
        reverse_geocode(1.0, 2.0, session)
        args, kwargs = session.get.call_args
        assert args[0] == app.config["GEOCODER_URL"]
        assert kwargs["timeout"] == app.config["GEOCODER_TIMEOUT"]

    @pytest.mark.parametrize("session", [
        _session(exc=requests.ConnectionError("offline")),
        _session(exc=requests.Timeout()),
        _session(status=503),
        _session({}),
        _session({"display_name": ""}),
        _session(["not", "an", "object"]),
    ])
    def test_failures_fall_back_to_coordinates(self, session):
        assert reverse_geocode(37.5665, 126.978, session) == "37.566500, 126.978000"

    def test_non_json_body(self):
        session = _session()
        session.get.return_value.json.side_effect = ValueError("no json")
        assert reverse_geocode(0, 0, session) == format_coordinates(0, 0)


@pytest.mark.integration
class TestGeocodeApi:
    def test_reverse(self, client):
        with patch("commissioning.blueprints.geocode_bp.reverse_geocode", return_value="Seoul City Hall") as mock_geo:
            res = client.get("/api/v1/geocode/reverse?lat=37.5665&lng=126.978")
        assert res.status_code == 200
        assert res.get_json() == {"address": "Seoul City Hall", "lat": 37.5665, "lng": 126.978}
        mock_geo.assert_called_once_with(37.5665, 126.978)

    @pytest.mark.parametrize("query", ["", "?lat=1", "?lat=abc&lng=2"])
    def test_missing_or_bad_params(self, client, query):
        assert client.get(f"/api/v1/geocode/reverse{query}").status_code == 400

    def test_out_of_range(self, client):
        assert client.get("/api/v1/geocode/reverse?lat=91&lng=0").status_code == 422
