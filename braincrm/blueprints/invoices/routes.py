"""
Invoices, invoice lines and PDF rendering.

Routes (JSON unless noted):
- /api/invoices[/<id>]
- POST /api/invoices/<id>/mark-paid
- /api/invoices/<id>/lines            GET list (creation order), POST add
- /api/invoices/<id>/lines/<line_id>  PATCH, DELETE
- POST /api/invoices/generate-pdf     {"invoiceId": ...} -> {"pdf": base64, "filename": ...}
- GET  /api/invoices/<id>/pdf         application/pdf download

The generate-pdf endpoint answers CORS pre-flight requests and is CSRF-exempt
(it only reads data).
"""

import base64
from io import BytesIO

from flask import Blueprint, jsonify, make_response, request, send_file

from ...extensions import csrf
from ...pdf import InvoicePdfError, generate_invoice_pdf
from ...permissions import current_context, permission_required
from ...services import invoice_lines, invoices
from ...services.base import ValidationError
from ..api import failed, get_json_or_error, not_found, ok, register_crud

invoices_bp = Blueprint("invoices", __name__, url_prefix="/api")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}

register_crud(invoices_bp, invoices, "invoices", "/invoices", "invoices")


def _with_cors(response, status: int = 200):
    response = make_response(response, status)
    response.headers.update(CORS_HEADERS)
    return response


# ---------------------------------------------------------------------
# STATUS
# ---------------------------------------------------------------------

@invoices_bp.route("/invoices/<int:invoice_id>/mark-paid", methods=["POST"])
@permission_required("invoices", "edit")
def mark_paid(invoice_id: int):
    if invoices.get(invoice_id) is None:
        return not_found("Facture introuvable.")
    obj = invoices.mark_paid(current_context(), invoice_id)
    if obj is None:
        return failed(invoices.messages["update_error"], 400)
    return ok(item=invoices.snapshot(obj))


# ---------------------------------------------------------------------
# LINES
# ---------------------------------------------------------------------

@invoices_bp.route("/invoices/<int:invoice_id>/lines")
@permission_required("invoices", "view")
def list_lines(invoice_id: int):
    if invoices.get(invoice_id) is None:
        return not_found("Facture introuvable.")
    return ok(items=invoice_lines.for_invoice(invoice_id))


@invoices_bp.route("/invoices/<int:invoice_id>/lines", methods=["POST"])
@permission_required("invoices", "edit")
def add_line(invoice_id: int):
    data, error = get_json_or_error()
    if error:
        return error
    if invoices.get(invoice_id) is None:
        return not_found("Facture introuvable.")

    try:
        line = invoice_lines.create(current_context(), {**data, "invoice_id": invoice_id})
    except ValidationError as e:
        return failed(str(e), 400)
    if line is None:
        return failed(invoice_lines.messages["create_error"], 400)
    return ok(201, item=invoice_lines.snapshot(line), invoice=invoices.snapshot(invoices.get(invoice_id)))


def _line_of(invoice_id: int, line_id: int):
    line = invoice_lines.get(line_id)
    if line is None or line.invoice_id != invoice_id:
        return None
    return line


@invoices_bp.route("/invoices/<int:invoice_id>/lines/<int:line_id>", methods=["PATCH", "PUT"])
@permission_required("invoices", "edit")
def update_line(invoice_id: int, line_id: int):
    data, error = get_json_or_error()
    if error:
        return error
    if _line_of(invoice_id, line_id) is None:
        return not_found("Ligne introuvable.")

    try:
        line = invoice_lines.update(current_context(), line_id, data)
    except ValidationError as e:
        return failed(str(e), 400)
    if line is None:
        return failed(invoice_lines.messages["update_error"], 400)
    return ok(item=invoice_lines.snapshot(line), invoice=invoices.snapshot(invoices.get(invoice_id)))


@invoices_bp.route("/invoices/<int:invoice_id>/lines/<int:line_id>", methods=["DELETE"])
@permission_required("invoices", "edit")
def delete_line(invoice_id: int, line_id: int):
    if _line_of(invoice_id, line_id) is None:
        return not_found("Ligne introuvable.")
    if not invoice_lines.delete(current_context(), line_id):
        return failed(invoice_lines.messages["delete_error"], 400)
    return ok(invoice=invoices.snapshot(invoices.get(invoice_id)))


# ---------------------------------------------------------------------
# PDF
# ---------------------------------------------------------------------

@invoices_bp.route("/invoices/generate-pdf", methods=["POST", "OPTIONS"])
@csrf.exempt
def generate_pdf():
    """Render an invoice and return it base64-encoded."""
    if request.method == "OPTIONS":
        return _with_cors("", 200)

    ctx = current_context()
    if not ctx.is_authenticated:
        return _with_cors(jsonify({"error": "Authentification requise."}), 401)
    if not ctx.can_view("invoices"):
        return _with_cors(jsonify({"error": "Accès refusé."}), 403)

    data = request.get_json(silent=True)
    invoice_id = data.get("invoiceId") if isinstance(data, dict) else None
    try:
        pdf = generate_invoice_pdf(invoice_id)
    except InvoicePdfError as e:
        return _with_cors(jsonify({"error": str(e)}), e.status)

    return _with_cors(
        jsonify(
            {
                "pdf": base64.b64encode(pdf.content).decode("ascii"),
                "filename": pdf.filename,
                "pages": pdf.page_count,
            }
        )
    )


@invoices_bp.route("/invoices/<int:invoice_id>/pdf")
@permission_required("invoices", "view")
def download_pdf(invoice_id: int):
    try:
        pdf = generate_invoice_pdf(invoice_id)
    except InvoicePdfError as e:
        return failed(str(e), e.status)
    return send_file(
        BytesIO(pdf.content),
        mimetype="application/pdf",
        as_attachment=True,
        download_name=pdf.filename,
    )
