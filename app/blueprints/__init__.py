"""
Worktrack Platform
Blueprint registry and shared request helpers.
"""

from flask import request

from app.core.exceptions import ValidationError


def paginate_query(query, default_limit=50, max_limit=200):
    """Apply limit/offset pagination to a SQLAlchemy query.

    Query params:
        limit : max items (default 50, capped at max_limit)
        offset: starting position (default 0)

    Returns:
        (items_list, total_count, limit, offset)
    """
    total = query.count()
    try:
        limit = max(min(int(request.args.get("limit", default_limit)), max_limit), 1)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    items = query.limit(limit).offset(offset).all()
    return items, total, limit, offset


def json_body() -> dict:
    """Request JSON object, or ValidationError for anything else."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def arg_int(name: str):
    """Optional integer query param; ValidationError when malformed."""
    raw = request.args.get(name)
    if raw in (None, ""):
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer", {"field": name})


def arg_bool(name: str):
    raw = request.args.get(name)
    if raw in (None, ""):
        return None
    lowered = raw.lower()
    if lowered in ("true", "1", "yes"):
        return True
    if lowered in ("false", "0", "no"):
        return False
    raise ValidationError(f"{name} must be true or false", {"field": name})
