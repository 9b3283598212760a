"""Parser - Normalizes decoded Trading API responses.

A decoded response (see ``xml_body.xml_to_tree``) goes through these steps,
in order:

1. unwrap the ``<Verb>Response`` element
2. fail on an ``Error``/``Failure`` acknowledgement
3. flatten ``{"value": ...}`` leaves, casting booleans, dates and numbers
4. drop extraneous top-level keys
5. fold ``PaginationResult`` into ``pagination``
6. fold ``*Array`` / ``*List`` nodes into ``results``

All functions are pure; none of them mutate their input.
"""

from __future__ import annotations

import math
import re
from datetime import datetime
from typing import Any

from ebay_fluent.definitions import get_definitions
from ebay_fluent.errors import ApiError, NoResponseWrapperError
from ebay_fluent.models import DefinitionTables, PaginationInfo

ITERABLE_KEY = re.compile(r"Array|List")
FAILED_ACKS = frozenset({"Error", "Failure"})
PAGINATION_NODE = "PaginationResult"


def normalize(
    tree: dict[str, Any],
    verb: str,
    tables: DefinitionTables | None = None,
) -> dict[str, Any]:
    """Normalize a decoded response for *verb* into a plain result dict.

    Args:
        tree: Output of ``xml_to_tree``: ``{"<Verb>Response": {...}}``.
        verb: The call name the response answers.
        tables: Definition tables; the process-wide ones if None.

    Returns:
        Flat result fields, plus ``results`` (always a list) when the response
        carried a collection and ``pagination`` when it carried paging metadata.

    Raises:
        NoResponseWrapperError: If the ``<Verb>Response`` element is missing.
        ApiError: If the call was acknowledged with ``Error`` or ``Failure``.
    """
    if tables is None:
        tables = get_definitions()
    body = unwrap(tree, verb)
    check_ack(body, tables)
    return clean(flatten(body, tables=tables), tables)


def unwrap(tree: Any, verb: str) -> dict[str, Any]:
    """Return the contents of the ``<Verb>Response`` element."""
    wrapper = f"{verb}Response"
    if not isinstance(tree, dict) or wrapper not in tree:
        found = list(tree) if isinstance(tree, dict) else []
        raise NoResponseWrapperError(wrapper, found)
    body = tree[wrapper]
    return body if isinstance(body, dict) else {}


def check_ack(body: dict[str, Any], tables: DefinitionTables | None = None) -> None:
    """Raise ApiError when the response acknowledges a failure."""
    ack = flatten(body.get("Ack"), "Ack", tables)
    if ack in FAILED_ACKS:
        raise ApiError(flatten(body.get("Errors"), "Errors", tables))


def cast(value: Any, key: str | None = None, tables: DefinitionTables | None = None) -> Any:
    """Cast a text leaf to a Python value.

    Priority: ``"true"``/``"false"`` become booleans; keys in the date table
    become datetimes; keys in the numeric table become int/float when the text
    is numeric. Everything else is returned unchanged. Key lookups ignore case.
    """
    if not isinstance(value, str):
        return value
    if value == "true":
        return True
    if value == "false":
        return False

    if key:
        if tables is None:
            tables = get_definitions()
        lowered = key.lower()
        if lowered in tables.date_nodes:
            return _parse_date(value)
        if lowered in tables.numeric_nodes:
            number = _parse_number(value)
            if number is not None:
                return number

    return value


def _parse_date(value: str) -> datetime | str:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return value


def _parse_number(value: str) -> int | float | None:
    try:
        return int(value)
    except ValueError:
        pass
    try:
        number = float(value)
    except ValueError:
        return None
    # "NaN" and "Infinity" are text, not counts.
    return number if math.isfinite(number) else None


def flatten(node: Any, key: str | None = None, tables: DefinitionTables | None = None) -> Any:
    """Recursively collapse ``{"value": text}`` leaves into cast values.

    Lists are flattened element-wise and every element is cast by the key the
    list is stored under (repeated ``<ItemID>`` elements are all ItemIDs).
    """
    if isinstance(node, dict):
        if "value" in node:
            return cast(node["value"], key, tables)
        return {child_key: flatten(child, child_key, tables) for child_key, child in node.items()}
    if isinstance(node, list):
        return [flatten(item, key, tables) for item in node]
    return cast(node, key, tables)


def clean(result: dict[str, Any], tables: DefinitionTables | None = None) -> dict[str, Any]:
    """Drop extraneous keys and fold pagination and list nodes.

    Safe to apply to an already-normalized result: without a
    ``PaginationResult`` node no ``pagination`` is added.
    """
    if tables is None:
        tables = get_definitions()

    remaining = {key: value for key, value in result.items() if key not in tables.extraneous}
    pagination = _pop_pagination(remaining)

    cleaned: dict[str, Any] = {}
    for key, value in remaining.items():
        if ITERABLE_KEY.search(key) and (value is None or isinstance(value, dict)):
            node = dict(value or {})
            nested = _pop_pagination(node)
            if pagination is None:
                pagination = nested
            cleaned["results"] = get_list(node)
            continue
        cleaned[key] = value

    if pagination is not None:
        cleaned["pagination"] = pagination
    return cleaned


def _pop_pagination(node: dict[str, Any]) -> dict[str, int] | None:
    """Remove ``PaginationResult`` from *node* and return it as {pages, length}."""
    if PAGINATION_NODE not in node:
        return None
    raw = node.pop(PAGINATION_NODE)
    if not isinstance(raw, dict):
        raw = {}
    info = PaginationInfo(
        pages=_count(raw.get("TotalNumberOfPages")),
        length=_count(raw.get("TotalNumberOfEntries")),
    )
    return info.model_dump()


def _count(value: Any) -> int:
    """Non-negative integer from a cast or raw count; 0 when absent or garbage."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, str):
        value = _parse_number(value)
    if isinstance(value, (int, float)) and math.isfinite(value):
        return max(int(value), 0)
    return 0


def get_list(node: dict[str, Any]) -> list[Any]:
    """Extract the entries of a collection node as a list.

    The wrapper is the last child whose name contains ``Array`` (or the node
    itself); its first child holds the entries. A single entry is wrapped in a
    one-element list and an empty collection yields ``[]``.
    """
    parent = _matching_child(node, "Array")
    if isinstance(parent, list):
        entries: Any = parent
    elif isinstance(parent, dict) and parent:
        entries = next(iter(parent.values()))
    else:
        entries = None

    if entries is None:
        return []
    return entries if isinstance(entries, list) else [entries]


def _matching_child(node: dict[str, Any], substring: str) -> Any:
    for key in reversed(list(node)):
        if substring in key:
            return node[key]
    return node
