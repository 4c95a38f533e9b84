"""
Geocode Blueprint: reverse geocoding proxy.

Endpoint:
  GET /api/v1/geocode/reverse?lat=37.56&lng=126.97
      → {"address": "...", "lat": 37.56, "lng": 126.97}

Lookup failures still answer 200 with the raw coordinates as the address.
"""

from flask import Blueprint, jsonify, request

from commissioning.integrations.geocoding import reverse_geocode
from commissioning.utils.errors import E, api_error

geocode_bp = Blueprint("geocode", __name__, url_prefix="/api/v1/geocode")


@geocode_bp.route("/reverse", methods=["GET"])
def reverse():
    try:
        lat = float(request.args["lat"])
        lng = float(request.args["lng"])
    except (KeyError, ValueError):
        return api_error(E.VALIDATION_REQUIRED, "lat and lng query parameters are required numbers")
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        return api_error(E.VALIDATION_INVALID, "Coordinates out of range")

    return jsonify({"address": reverse_geocode(lat, lng), "lat": lat, "lng": lng}), 200
