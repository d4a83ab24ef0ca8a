"""
Helpers shared by the API blueprints:
- request body parsing/validation against pydantic schemas
- list pagination (page/limit -> pagination block)
- small parsing helpers for query-string values
"""

from __future__ import annotations

import math
from typing import Any, Type, TypeVar

from flask import jsonify, request
from pydantic import BaseModel

T = TypeVar("T", bound=BaseModel)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def parse_body(schema: Type[T]) -> T:
    """
    Validate the JSON body against `schema`.

    pydantic.ValidationError propagates; the app turns it into
    400 {"error": "Invalid input", "details": [...]}.
    """
    payload = request.get_json(silent=True)
    if payload is None:
        payload = {}
    return schema.model_validate(payload)


def apply_updates(instance: Any, changes: dict) -> dict:
    """
    Copy `changes` onto model attributes; returns {field: (old, new)} for fields
    whose value actually changed.
    """
    changed = {}
    for field, value in changes.items():
        old = getattr(instance, field)
        if old != value:
            setattr(instance, field, value)
            changed[field] = (old, value)
    return changed


def parse_optional_int(value: Any) -> int | None:
    if value is None:
        return None
    s = str(value).strip()
    if not s:
        return None
    try:
        return int(s)
    except ValueError:
        return None


def search_term() -> str | None:
    term = (request.args.get("search") or "").strip()
    return f"%{term}%" if term else None


def page_args() -> tuple[int, int]:
    page = max(parse_optional_int(request.args.get("page")) or 1, 1)
    limit = parse_optional_int(request.args.get("limit")) or DEFAULT_PAGE_SIZE
    limit = min(max(limit, 1), MAX_PAGE_SIZE)
    return page, limit


def paginated(query, key: str, serializer=None) -> dict:
    """
    Run `query` for the requested page.

    Returns {key: [...], "pagination": {page, limit, total, totalPages}}.
    """
    page, limit = page_args()
    total = query.order_by(None).count()
    rows = query.offset((page - 1) * limit).limit(limit).all()
    serializer = serializer or (lambda row: row.to_dict())
    return {
        key: [serializer(row) for row in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": math.ceil(total / limit) if total else 0,
        },
    }


def not_found(entity: str):
    return jsonify({"error": f"{entity} not found"}), 404


def bad_request(message: str):
    return jsonify({"error": message}), 400


def column_changes(instance: Any, data: BaseModel) -> dict:
    """
    Fields explicitly sent in an update body that map to columns of `instance`.

    null for a NOT NULL column means "leave as is".
    """
    columns = instance.__table__.columns
    return {
        field: value
        for field, value in data.model_dump(exclude_unset=True).items()
        if field in columns and not (value is None and not columns[field].nullable)
    }
