"""
Template Blueprint: the shared checklist structure.

Endpoints:
  GET  /api/v1/template: Current template (seeds the default on an empty store)
  PUT  /api/v1/template: Replace the template (edit capability required)
  POST /api/v1/template/seed: Seed the bundled default template (admin)

PUT body:
    {
        "categories": [{"id", "name", "items": [{"id", "text", "product_type",
                        "reference_images"}]}],
        "product_types": ["Multi V", ...],
        "version": 3          # optional; stale versions get 409
    }
"""

import logging

from flask import Blueprint, jsonify, request

from commissioning.auth import require_edit, require_role
from commissioning.blueprints import request_actor
from commissioning.services import template_service
from commissioning.utils.errors import E, api_error

logger = logging.getLogger(__name__)

template_bp = Blueprint("template", __name__, url_prefix="/api/v1/template")


@template_bp.route("", methods=["GET"])
def get_template():
    return jsonify(template_service.load_or_seed_template()), 200


@template_bp.route("", methods=["PUT"])
@require_edit
def put_template():
    data = request.get_json(silent=True) or {}
    if "categories" not in data or "product_types" not in data:
        return api_error(E.VALIDATION_REQUIRED, "categories and product_types are required")

    template = template_service.save_template(
        data["categories"],
        data["product_types"],
        expected_version=data.get("version"),
        actor=request_actor(),
    )
    return jsonify(template), 200


@template_bp.route("/seed", methods=["POST"])
@require_role("admin")
def seed_template():
    seeded = template_service.seed_default_template()
    status = 201 if seeded else 200
    return jsonify({"seeded": seeded, "template": template_service.load_template()}), status
