"""
Shared JSON API helpers for the blueprints.

Every response carries the pending notifications (flash messages) so the client
can show the same success / error toasts the services emitted.
"""

from __future__ import annotations

from typing import Any

from flask import Blueprint, jsonify, request

from ..notifications import pop_notifications
from ..permissions import current_context, permission_required
from ..services.base import EntityService, ValidationError


def get_json_or_error(object_only: bool = True):
    """
    Get JSON from request body with null check (a JSON object unless object_only=False).

    Returns (data, error_response). Caller pattern:
        data, error = get_json_or_error()
        if error:
            return error
    """
    data = request.get_json(silent=True)
    if data is None or (object_only and not isinstance(data, dict)):
        return None, failed("Corps JSON invalide ou manquant.", 400)
    return data, None


def ok(status: int = 200, **payload: Any):
    body = {"success": True, **payload, "notifications": pop_notifications()}
    return jsonify(body), status


def failed(error: str | None = None, status: int = 400, **payload: Any):
    body = {"success": False, "error": error, **payload, "notifications": pop_notifications()}
    return jsonify(body), status


def not_found(error: str = "Ressource introuvable."):
    return failed(error, 404)


def query_filters() -> dict:
    """Query-string filters as a plain dict (single values)."""
    return {key: value for key, value in request.args.items()}


def register_crud(bp: Blueprint, service: EntityService, module: str, url: str, name: str) -> None:
    """
    Register list / get / create / update / delete endpoints for one service.

    GET    <url>           list (query string = equality / __gte / __lte filters)
    GET    <url>/<id>      one record
    POST   <url>           create
    PATCH  <url>/<id>      partial update (PUT accepted)
    DELETE <url>/<id>      delete
    """

    @permission_required(module, "view")
    def list_view():
        try:
            items = service.list(query_filters())
        except ValidationError as e:
            return failed(str(e), 400)
        return ok(items=items)

    @permission_required(module, "view")
    def get_view(entity_id: int):
        obj = service.get(entity_id)
        if obj is None:
            return not_found()
        return ok(item=service.snapshot(obj))

    @permission_required(module, "create")
    def create_view():
        data, error = get_json_or_error()
        if error:
            return error
        try:
            obj = service.create(current_context(), data)
        except ValidationError as e:
            return failed(str(e), 400)
        if obj is None:
            return failed(service.messages["create_error"], 400)
        return ok(201, item=service.snapshot(obj))

    @permission_required(module, "edit")
    def update_view(entity_id: int):
        data, error = get_json_or_error()
        if error:
            return error
        if service.get(entity_id) is None:
            return not_found()
        try:
            obj = service.update(current_context(), entity_id, data)
        except ValidationError as e:
            return failed(str(e), 400)
        if obj is None:
            return failed(service.messages["update_error"], 400)
        return ok(item=service.snapshot(obj))

    @permission_required(module, "delete")
    def delete_view(entity_id: int):
        if service.get(entity_id) is None:
            return not_found()
        try:
            done = service.delete(current_context(), entity_id)
        except ValidationError as e:
            return failed(str(e), 400)
        if not done:
            return failed(service.messages["delete_error"], 400)
        return ok()

    bp.add_url_rule(url, f"list_{name}", list_view, methods=["GET"])
    bp.add_url_rule(url, f"create_{name}", create_view, methods=["POST"])
    bp.add_url_rule(f"{url}/<int:entity_id>", f"get_{name}", get_view, methods=["GET"])
    bp.add_url_rule(f"{url}/<int:entity_id>", f"update_{name}", update_view, methods=["PATCH", "PUT"])
    bp.add_url_rule(f"{url}/<int:entity_id>", f"delete_{name}", delete_view, methods=["DELETE"])
