"""
Helpers shared by the route handlers for turning MongoDB documents and
driver results into JSON, and for parsing ids, pagination parameters and
JSON request bodies.
"""

import math
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from flask import request
from pymongo.results import DeleteResult, InsertOneResult, UpdateResult

DEFAULT_PAGE_SIZE = 10


def _to_json_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _to_json_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_json_value(v) for v in value]
    return value


def serialize_doc(doc: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    Convert a MongoDB document to a JSON-safe dict.

    ObjectIds become hex strings and datetimes become ISO-8601 strings,
    including inside nested documents such as a payment's event snapshot.
    """
    if doc is None:
        return None
    return _to_json_value(dict(doc))


def serialize_docs(docs: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    return [serialize_doc(d) for d in docs]


def parse_object_id(value: str) -> Optional[ObjectId]:
    """
    Parse a path parameter into an ObjectId.

    Returns:
        ObjectId, or None if the value is not a valid 24-hex id.
    """
    # ObjectId(None) would generate a new id
    if not isinstance(value, str):
        return None
    try:
        return ObjectId(value)
    except InvalidId:
        return None


def result_to_dict(result: Any) -> Dict[str, Any]:
    """
    Render a pymongo write result with the field names clients expect
    (acknowledged, insertedId, matchedCount, modifiedCount, upsertedId,
    deletedCount).
    """
    if isinstance(result, InsertOneResult):
        return {
            "acknowledged": result.acknowledged,
            "insertedId": _to_json_value(result.inserted_id),
        }
    if isinstance(result, UpdateResult):
        return {
            "acknowledged": result.acknowledged,
            "matchedCount": result.matched_count,
            "modifiedCount": result.modified_count,
            "upsertedId": _to_json_value(result.upserted_id),
            "upsertedCount": 1 if result.upserted_id is not None else 0,
        }
    if isinstance(result, DeleteResult):
        return {
            "acknowledged": result.acknowledged,
            "deletedCount": result.deleted_count,
        }
    raise TypeError(f"Unsupported result type: {type(result).__name__}")


def parse_pagination(
    args: Mapping[str, str],
    page_key: str = "currentPage",
    size_key: str = "pageSize",
    default_size: int = DEFAULT_PAGE_SIZE,
) -> Tuple[int, int]:
    """
    Read page number and page size from query arguments.

    Missing values default to page 1 and `default_size`.

    Raises:
        ValueError: If either value is non-numeric or less than 1.
    """
    raw_page = args.get(page_key)
    raw_size = args.get(size_key)

    try:
        page = int(raw_page) if raw_page not in (None, "") else 1
        size = int(raw_size) if raw_size not in (None, "") else default_size
    except (TypeError, ValueError):
        raise ValueError(f"{page_key} and {size_key} must be integers")

    if page < 1 or size < 1:
        raise ValueError(f"{page_key} and {size_key} must be positive")

    return page, size


def total_pages(total_count: int, page_size: int) -> int:
    return math.ceil(total_count / page_size) if page_size else 0


def request_json() -> Dict[str, Any]:
    """
    The request's JSON body as a dict. A missing, malformed or non-object
    body gives {}.
    """
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def string_field(data: Mapping[str, Any], key: str) -> Optional[str]:
    """
    Read a string field from a JSON body.

    Returns:
        The stripped value, "" if the key is missing or null, or None if the
        value is not a string.
    """
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        return None
    return value.strip()
