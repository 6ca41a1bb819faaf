"""Decode aggregated node rows into Node records.

Each row yields one Node per title variant: the primary title first, then
every alias in decoded order. All variants share the node's other fields,
including the full alias list.
"""
import json
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from pydantic import ValidationError

from roam_nodes.exceptions import DecodeError, ErrorCode
from roam_nodes.models.schema import Node, Ref

logger = logging.getLogger(__name__)


def _value_or(row: Mapping[str, Any], column: str, default: Any) -> Any:
    value = row.get(column)
    return default if value is None else value


def _load_json(row: Mapping[str, Any], column: str, default: Any) -> Any:
    raw = row.get(column)
    if raw is None or raw == "":
        return default
    if not isinstance(raw, str):
        # Already decoded by the driver or the caller
        return raw
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise DecodeError(
            f"Column '{column}' is not valid JSON",
            node_id=row.get("id"),
            column=column,
            code=ErrorCode.DECODE_MALFORMED_LIST,
        ) from e


def decode_string_list(row: Mapping[str, Any], column: str) -> Tuple[str, ...]:
    """Decode a list of strings, dropping the nulls left by outer joins."""
    values = _load_json(row, column, [])
    if not isinstance(values, list):
        raise DecodeError(
            f"Column '{column}' does not hold a list",
            node_id=row.get("id"),
            column=column,
            code=ErrorCode.DECODE_MALFORMED_LIST,
        )
    return tuple(str(value) for value in values if value is not None)


def decode_refs(row: Mapping[str, Any], column: str = "refs") -> Tuple[Ref, ...]:
    """Decode the list of [type, ref] pairs, keeping order and dropping repeats."""
    pairs = _load_json(row, column, [])
    if not isinstance(pairs, list):
        raise DecodeError(
            f"Column '{column}' does not hold a list",
            node_id=row.get("id"),
            column=column,
            code=ErrorCode.DECODE_MALFORMED_LIST,
        )

    refs: List[Ref] = []
    seen = set()
    for pair in pairs:
        if not isinstance(pair, list) or len(pair) != 2:
            raise DecodeError(
                f"Malformed reference entry {pair!r}",
                node_id=row.get("id"),
                column=column,
                code=ErrorCode.DECODE_MALFORMED_LIST,
            )
        ref_type, value = pair
        if ref_type is None and value is None:
            continue
        key = (ref_type, value)
        if key in seen:
            continue
        seen.add(key)
        refs.append(Ref(type=str(ref_type), value=str(value)))
    return tuple(refs)


def _decode_properties(row: Mapping[str, Any]) -> Dict[str, str]:
    properties = _load_json(row, "properties", {})
    if not isinstance(properties, dict):
        raise DecodeError(
            "Column 'properties' does not hold a mapping",
            node_id=row.get("id"),
            column="properties",
        )
    return {str(k): str(v) for k, v in properties.items()}


def decode_row(row: Mapping[str, Any]) -> List[Node]:
    """Decode one aggregated row into one Node per title variant.

    Args:
        row: Mapping with the columns listed in ``node_query.NODE_COLUMNS``.

    Returns:
        Nodes for the primary title and each alias, in that order.

    Raises:
        DecodeError: If a list column or a JSON column is malformed.
    """
    node_id: Optional[str] = row.get("id")
    olp = _load_json(row, "olp", [])
    if not isinstance(olp, list):
        raise DecodeError(
            "Column 'olp' does not hold a list", node_id=node_id, column="olp"
        )

    try:
        base = Node(
            id=node_id,
            file=row.get("file"),
            file_title=row.get("file_title"),
            point=_value_or(row, "point", 1),
            level=_value_or(row, "level", 0),
            olp=tuple(str(part) for part in olp),
            title=row.get("title"),
            todo=row.get("todo"),
            priority=row.get("priority"),
            scheduled=row.get("scheduled"),
            deadline=row.get("deadline"),
            properties=_decode_properties(row),
            file_atime=row.get("file_atime"),
            file_mtime=row.get("file_mtime"),
            tags=decode_string_list(row, "tags"),
            aliases=decode_string_list(row, "aliases"),
            refs=decode_refs(row),
        )
    except ValidationError as e:
        raise DecodeError(
            f"Row does not describe a valid node: {e.error_count()} error(s)",
            node_id=node_id,
        ) from e

    return [base.with_title(title) for title in base.title_variants()]


def decode_rows(rows: Iterable[Mapping[str, Any]]) -> List[Node]:
    """Decode every row, preserving row order."""
    nodes: List[Node] = []
    for row in rows:
        nodes.extend(decode_row(row))
    return nodes
