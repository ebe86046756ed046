"""
PDF documents.

Only invoices are rendered today; FlowLayout is shared by every renderer.
"""

from .invoice import InvoicePdf, InvoicePdfError, generate_invoice_pdf  # noqa: F401
from .layout import LOW_WATER_MARK, FlowLayout  # noqa: F401
