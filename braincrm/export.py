"""
braincrm/export.py

Data export: selected tables, optional creation-date range, one file.

Formats:
- json: {"<table>": [row, ...], ...}, indented
- csv:  per non-empty table a "=== TABLE ===" marker, a header line, then rows
- sql:  INSERT INTO public.<table> (...) VALUES (...); per row

Rules:
- An empty or unknown selection is rejected before any query runs.
- A table whose query fails is skipped (error notification), the rest is exported.
- The export itself is audited (action "export").
"""

from __future__ import annotations

import csv
import io
import json
import logging
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, NamedTuple, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from .audit import json_value, log_action
from .extensions import db
from .models import (
    Candidate,
    Client,
    Contract,
    Invoice,
    InvoiceLine,
    JobOffer,
    Mission,
    Payroll,
    Personnel,
    Training,
    TrainingParticipant,
)
from .notifications import notify_error, notify_success
from .permissions import UserContext
from .services.base import ValidationError
from .utils import parse_date

logger = logging.getLogger(__name__)


class ExportTable(NamedTuple):
    id: str
    label: str
    model: Any
    date_column: str = "created_at"


TABLES = {
    t.id: t
    for t in (
        ExportTable("clients", "Clients", Client),
        ExportTable("personnel", "Personnel", Personnel),
        ExportTable("contracts", "Contrats", Contract),
        ExportTable("invoices", "Factures", Invoice),
        ExportTable("invoice_lines", "Lignes de facture", InvoiceLine),
        ExportTable("payrolls", "Paies", Payroll),
        ExportTable("trainings", "Formations", Training),
        ExportTable("training_participants", "Participants formations", TrainingParticipant),
        ExportTable("missions", "Missions", Mission),
        ExportTable("job_offers", "Offres d'emploi", JobOffer),
        ExportTable("candidates", "Candidatures", Candidate, date_column="applied_at"),
    )
}

FORMATS = {
    "json": ("json", "application/json"),
    "csv": ("csv", "text/csv"),
    "sql": ("sql", "application/sql"),
}


class ExportResult(NamedTuple):
    content: str
    filename: str
    mimetype: str


Rows = list[Dict[str, Any]]


# ---------------------------------------------------------------------
# Serializers
# ---------------------------------------------------------------------
def _csv_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, default=json_value)
    return str(value)


def rows_to_csv(rows: Rows) -> str:
    """
    Header line (column names of the first row), then one line per row.

    A field is quoted when it holds a comma, a double quote or a newline;
    embedded quotes are doubled. None becomes an empty field.
    """
    if not rows:
        return ""
    headers = list(rows[0].keys())
    out = io.StringIO()
    writer = csv.writer(out, lineterminator="\n", quoting=csv.QUOTE_MINIMAL)
    writer.writerow(headers)
    for row in rows:
        writer.writerow([_csv_text(row.get(h)) for h in headers])
    return out.getvalue().rstrip("\n")


def sql_literal(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if isinstance(value, list):
        return f"ARRAY[{','.join(sql_literal(v) for v in value)}]"
    if isinstance(value, dict):
        text = json.dumps(value, ensure_ascii=False, default=json_value)
    elif isinstance(value, (datetime, date)):
        text = value.isoformat()
    else:
        text = str(value)
    return "'" + text.replace("'", "''") + "'"


def rows_to_sql(table: str, rows: Rows) -> str:
    if not rows:
        return ""
    columns = list(rows[0].keys())
    return "\n".join(
        f"INSERT INTO public.{table} ({', '.join(columns)}) "
        f"VALUES ({', '.join(sql_literal(row.get(c)) for c in columns)});"
        for row in rows
    )


def render_json(data: Dict[str, Rows]) -> str:
    native = {table: [{k: json_value(v) for k, v in row.items()} for row in rows] for table, rows in data.items()}
    return json.dumps(native, indent=2, ensure_ascii=False)


def render_csv(data: Dict[str, Rows]) -> str:
    combined = ""
    for table, rows in data.items():
        if rows:
            combined += f"\n=== {table.upper()} ===\n"
            combined += rows_to_csv(rows)
            combined += "\n"
    return combined.strip()


def render_sql(data: Dict[str, Rows], selected: Iterable[str], generated_at: datetime) -> str:
    app_name = current_app.config.get("APP_NAME", "BrainCRM")
    content = (
        f"-- {app_name} Database Export\n"
        f"-- Generated: {generated_at.isoformat()}\n"
        f"-- Tables: {', '.join(selected)}\n\n"
    )
    for table, rows in data.items():
        if rows:
            content += f"-- Table: {table}\n"
            content += rows_to_sql(table, rows)
            content += "\n\n"
    return content.strip()


# ---------------------------------------------------------------------
# Fetch + export
# ---------------------------------------------------------------------
def _validate(tables: Any, fmt: Any) -> list[str]:
    if not tables or not isinstance(tables, (list, tuple)):
        raise ValidationError("Veuillez sélectionner au moins une table")
    unknown = [t for t in tables if t not in TABLES]
    if unknown:
        raise ValidationError(f"Table(s) inconnue(s): {', '.join(map(str, unknown))}")
    if fmt not in FORMATS:
        raise ValidationError(f"Format d'export invalide (attendu: {', '.join(FORMATS)})")
    return list(dict.fromkeys(tables))


def fetch_rows(spec: ExportTable, start: Optional[date], end: Optional[date]) -> Rows:
    model = spec.model
    q = model.query
    column = getattr(model, spec.date_column)
    if start is not None:
        q = q.filter(column >= datetime.combine(start, time.min))
    if end is not None:
        q = q.filter(column <= datetime.combine(end, time.max))
    columns = [c.name for c in model.__table__.columns]
    return [{name: getattr(obj, name) for name in columns} for obj in q.order_by(model.id.asc()).all()]


def export_tables(
    ctx: UserContext,
    tables: Any,
    fmt: Any = "json",
    start: Any = None,
    end: Any = None,
) -> ExportResult:
    """Build one export file. Raises ValidationError on a bad request (before any query)."""
    selected = _validate(tables, fmt)

    start_day, end_day = parse_date(start), parse_date(end)
    if start not in (None, "") and start_day is None:
        raise ValidationError("Date de début invalide")
    if end not in (None, "") and end_day is None:
        raise ValidationError("Date de fin invalide")
    if start_day and end_day and end_day < start_day:
        raise ValidationError("La date de fin doit être postérieure à la date de début")

    data: Dict[str, Rows] = {}
    for table in selected:
        try:
            data[table] = fetch_rows(TABLES[table], start_day, end_day)
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("export of %s failed", table)
            notify_error(f"Erreur lors de l'export de {table}")

    now = datetime.now(timezone.utc)
    if fmt == "json":
        content = render_json(data)
    elif fmt == "csv":
        content = render_csv(data)
    else:
        content = render_sql(data, selected, now)

    ext, mimetype = FORMATS[fmt]
    prefix = current_app.config.get("EXPORT_PREFIX", "braincrm-export")
    filename = f"{prefix}-{now.date().isoformat()}.{ext}"

    try:
        log_action(
            ctx,
            "export",
            "report",
            new_data={
                "tables": selected,
                "format": fmt,
                "start_date": start_day.isoformat() if start_day else None,
                "end_date": end_day.isoformat() if end_day else None,
                "rows": {table: len(rows) for table, rows in data.items()},
            },
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("export audit entry could not be written")

    logger.info("export %s by user %s: %s", fmt, ctx.user_id, ", ".join(data))
    notify_success("Export terminé avec succès")
    return ExportResult(content=content, filename=filename, mimetype=mimetype)
