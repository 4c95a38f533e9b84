import io
import logging
import re
from datetime import datetime, timezone

from jinja2 import Environment, PackageLoader, select_autoescape
from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from commissioning.core.exceptions import ValidationError
from commissioning.data.default_template import DEFAULT_REPORT_TITLE
from commissioning.models.template import COMMON_PRODUCT_TYPE

logger = logging.getLogger(__name__)

STATUS_FILLS = {
    "OK": PatternFill(start_color="27AE60", end_color="27AE60", fill_type="solid"),
    "NG": PatternFill(start_color="E74C3C", end_color="E74C3C", fill_type="solid"),
}
WHITE_FONT = Font(color="FFFFFF", bold=True)
HEADER_FILL = PatternFill(start_color="A50034", end_color="A50034", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True, size=11)
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)
WRAP = Alignment(wrap_text=True, vertical="top")

# Leading characters spreadsheet apps read as the start of a formula
FORMULA_PREFIXES = ("=", "+", "-", "@")

_env = Environment(
    loader=PackageLoader("commissioning", "templates"),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)


# ── Snapshot normalisation ──────────────────────────────────────────────────


def _status(item: dict) -> str:
    if item.get("ok"):
        return "OK"
    if item.get("ng"):
        return "NG"
    return ""


def prepare_snapshot(snapshot: dict) -> dict:
    """Validate an editor snapshot and apply its product filter.

    Returns a new dict with ``categories`` restricted to the selected product
    types (Common items always kept) and a ``summary`` of item statuses.

    Raises:
        ValidationError: the snapshot is not an object, its categories,
            products or filter are not lists, or a category or item is malformed.
    """
    if not isinstance(snapshot, dict):
        raise ValidationError("Snapshot must be an object")
    categories = snapshot.get("categories") or []
    products = snapshot.get("products") or []
    selected = snapshot.get("product_filter") or []
    for name, value in (("categories", categories), ("products", products), ("product_filter", selected)):
        if not isinstance(value, list):
            raise ValidationError(f"{name} must be a list", details={name: "not a list"})

    selected = {str(s) for s in selected}
    visible = []
    summary = {"total": 0, "ok": 0, "ng": 0, "unchecked": 0}
    for cat in categories:
        if not isinstance(cat, dict):
            raise ValidationError("Each category must be an object", details={"categories": "not an object"})
        cat_items = cat.get("items") or []
        if not isinstance(cat_items, list):
            raise ValidationError("Category items must be a list", details={"items": "not a list"})
        items = []
        for item in cat_items:
            if not isinstance(item, dict):
                raise ValidationError("Each item must be an object", details={"items": "not an object"})
            if not isinstance(item.get("images") or [], list):
                raise ValidationError("Item images must be a list", details={"images": "not a list"})
            product_type = str(item.get("product_type") or COMMON_PRODUCT_TYPE)
            if selected and product_type != COMMON_PRODUCT_TYPE and product_type not in selected:
                continue
            status = _status(item)
            summary["total"] += 1
            summary[status.lower() or "unchecked"] += 1
            items.append({**item, "product_type": product_type, "status": status})
        visible.append({"id": cat.get("id"), "name": cat.get("name", ""), "items": items})

    return {
        **snapshot,
        "title": snapshot.get("title") or DEFAULT_REPORT_TITLE,
        "products": [p for p in products if isinstance(p, dict)],
        "categories": visible,
        "product_filter": sorted(selected),
        "summary": summary,
    }


def export_filename(snapshot: dict, extension: str) -> str:
    """``<project>_<date>.<ext>`` with unsafe characters replaced."""
    stem = str(snapshot.get("project_name") or snapshot.get("title") or "report")
    stem = re.sub(r"[^A-Za-z0-9._-]+", "_", stem).strip("_") or "report"
    date_str = datetime.now(timezone.utc).strftime("%Y%m%d")
    return f"{stem}_{date_str}.{extension}"


# ── HTML ────────────────────────────────────────────────────────────────────


def render_report_html(snapshot: dict) -> str:
    """Render a self-contained printable HTML report.

    Evidence photos, reference photos and signatures are embedded as the
    data URLs they already are, so the file has no external references.
    """
    data = prepare_snapshot(snapshot)
    html = _env.get_template("report.html").render(
        report=data,
        generated_at=datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC"),
    )
    logger.info("Rendered HTML report: %d items", data["summary"]["total"])
    return html


# ── XLSX ────────────────────────────────────────────────────────────────────


def _text_cell(ws, row: int, column: int, value):
    """Write user-entered text as a plain string cell, never a formula."""
    text = ILLEGAL_CHARACTERS_RE.sub("", "" if value is None else str(value))
    cell = ws.cell(row=row, column=column, value=text)
    if text.startswith(FORMULA_PREFIXES):
        cell.data_type = "s"
    return cell


def _header_row(ws, row: int, headers: list[str]) -> None:
    for col, header in enumerate(headers, 1):
        cell = ws.cell(row=row, column=col, value=header)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = THIN_BORDER


def export_report_xlsx(snapshot: dict) -> io.BytesIO:
    """
    Generate a styled Excel workbook from an editor snapshot.
    Returns a BytesIO buffer ready for Flask send_file.
    """
    data = prepare_snapshot(snapshot)
    wb = Workbook()

    # ── Sheet 1: Report ───────────────────────────────────────────────
    ws = wb.active
    ws.title = "Report"
    ws.merge_cells("A1:D1")
    _text_cell(ws, 1, 1, data["title"])
    ws["A1"].font = Font(size=16, bold=True)
    ws["A2"] = f"Generated: {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M UTC')}"
    ws["A2"].font = Font(size=10, italic=True, color="666666")

    info = [
        ("Project Name", data.get("project_name", "")),
        ("Opportunity Number", data.get("opportunity_number", "")),
        ("Address", data.get("address", "")),
        ("Inspection Date", data.get("inspection_date", "")),
        ("Product Types", ", ".join(data["product_filter"]) or "All"),
    ]
    row = 4
    for label, value in info:
        ws.cell(row=row, column=1, value=label).font = Font(bold=True)
        _text_cell(ws, row, 2, value)
        row += 1

    row += 1
    _header_row(ws, row, ["Product", "Model Name", "Quantity"])
    for product in data["products"]:
        row += 1
        _text_cell(ws, row, 1, product.get("name", "")).border = THIN_BORDER
        _text_cell(ws, row, 2, product.get("model_name", "")).border = THIN_BORDER
        _text_cell(ws, row, 3, product.get("quantity", "")).border = THIN_BORDER

    row += 2
    summary = data["summary"]
    for label, key in (("Items", "total"), ("OK", "ok"), ("NG", "ng"), ("Unchecked", "unchecked")):
        ws.cell(row=row, column=1, value=label).font = Font(bold=True)
        ws.cell(row=row, column=2, value=summary[key])
        row += 1

    for col, width in enumerate([22, 40, 12, 12], 1):
        ws.column_dimensions[get_column_letter(col)].width = width

    # ── Sheet 2: Checklist ────────────────────────────────────────────
    ws2 = wb.create_sheet("Checklist")
    headers = ["Category", "#", "Item", "Product Type", "Status", "Issue", "Photos"]
    _header_row(ws2, 1, headers)
    row = 1
    for cat in data["categories"]:
        for index, item in enumerate(cat["items"], 1):
            row += 1
            values = [
                cat["name"], index, item.get("text", ""), item["product_type"],
                item["status"], item.get("issue", ""), len(item.get("images") or []),
            ]
            for col, value in enumerate(values, 1):
                if isinstance(value, int):
                    cell = ws2.cell(row=row, column=col, value=value)
                else:
                    cell = _text_cell(ws2, row, col, value)
                cell.border = THIN_BORDER
                cell.alignment = WRAP
            status_cell = ws2.cell(row=row, column=5)
            if item["status"] in STATUS_FILLS:
                status_cell.fill = STATUS_FILLS[item["status"]]
                status_cell.font = WHITE_FONT
            status_cell.alignment = Alignment(horizontal="center", vertical="top")

    for col, width in enumerate([22, 5, 60, 14, 10, 40, 8], 1):
        ws2.column_dimensions[get_column_letter(col)].width = width
    ws2.freeze_panes = "A2"

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    logger.info("Exported XLSX report: %d items", summary["total"])
    return buf
