"""
Report export endpoints.

    POST /api/v1/export/html   body: editor snapshot → printable HTML file
    POST /api/v1/export/xlsx   body: editor snapshot → Excel workbook

The snapshot is what ReportEditor.export_snapshot() returns: report fields,
products, categories with merged item results, and the active
``product_filter``. Content is rendered in memory, no temp files.
"""

import logging

from flask import Blueprint, Response, request

from commissioning.services.export_service import (
    export_filename,
    export_report_xlsx,
    render_report_html,
)
from commissioning.utils.errors import E, api_error

logger = logging.getLogger(__name__)

export_bp = Blueprint("export", __name__, url_prefix="/api/v1/export")

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _snapshot():
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data.get("categories"):
        return None
    return data


@export_bp.route("/html", methods=["POST"])
def export_html():
    snapshot = _snapshot()
    if snapshot is None:
        return api_error(E.VALIDATION_REQUIRED, "Report snapshot with categories is required")

    html = render_report_html(snapshot)
    filename = export_filename(snapshot, "html")
    logger.info("HTML export %s", filename)
    return Response(
        html,
        mimetype="text/html",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@export_bp.route("/xlsx", methods=["POST"])
def export_xlsx():
    snapshot = _snapshot()
    if snapshot is None:
        return api_error(E.VALIDATION_REQUIRED, "Report snapshot with categories is required")

    buf = export_report_xlsx(snapshot)
    filename = export_filename(snapshot, "xlsx")
    logger.info("XLSX export %s", filename)
    return Response(
        buf.getvalue(),
        mimetype=XLSX_MIMETYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
