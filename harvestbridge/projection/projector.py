from __future__ import annotations
import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from harvestbridge.errors import MalformedResponseError
from harvestbridge.routing.models import Operation, RecordList

logger = logging.getLogger(__name__)


def envelope_key(structure: str) -> str:
    """Key Harvest nests a list response under: 'Time Entries' → 'time_entries'."""
    return structure.replace(" ", "_").lower()


def stringify(value: Any) -> str:
    """
    Strings pass through; everything else becomes compact JSON text.

    5 → "5", True → "true", None → "null", {"id": 1} → '{"id":1}'
    """
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


class ResponseProjector:
    """
    Turns decoded Harvest payloads into uniform records.

    Every record holds only the requested fields, in the requested order,
    and every value is a string. With no fields requested, the keys of the
    first object (search) or the sole object (retrieve) are used.
    """

    def project(
        self,
        payload: Any,
        operation: Operation | str,
        fields: Optional[Sequence[str]] = None,
        structure: str = "",
    ) -> Any:
        operation = Operation(operation)
        if operation is Operation.COUNT:
            return self.count(payload)
        if operation is Operation.RETRIEVE:
            return self.retrieve(payload, fields)
        return self.search(payload, structure, fields)

    def count(self, payload: Any) -> int:
        total = payload.get("total_entries") if isinstance(payload, dict) else None
        # bool is an int subclass; "true" is not a count
        if not isinstance(total, int) or isinstance(total, bool):
            raise MalformedResponseError(
                f"Count response has no integral 'total_entries' (got {total!r})"
            )
        return total

    def retrieve(self, payload: Any, fields: Optional[Sequence[str]] = None) -> Dict[str, str]:
        if not isinstance(payload, dict):
            raise MalformedResponseError(
                f"Retrieve response must be a JSON object, got {type(payload).__name__}"
            )
        keys = list(fields) if fields else list(payload.keys())
        return _project_object(payload, keys)

    def search(
        self,
        payload: Any,
        structure: str,
        fields: Optional[Sequence[str]] = None,
    ) -> RecordList:
        key = envelope_key(structure)
        objects = payload.get(key) if isinstance(payload, dict) else None
        if not isinstance(objects, list):
            raise MalformedResponseError(
                f"Search response for '{structure}' has no '{key}' array"
            )

        keys: List[str] = list(fields or [])
        if not keys and objects:
            first = objects[0]
            if not isinstance(first, dict):
                raise MalformedResponseError(f"'{key}' must contain JSON objects")
            keys = list(first.keys())

        records = []
        for obj in objects:
            if not isinstance(obj, dict):
                raise MalformedResponseError(f"'{key}' must contain JSON objects")
            records.append(_project_object(obj, keys))

        logger.debug("Projected %d %s record(s) onto %d field(s)", len(records), key, len(keys))
        return RecordList(fields=keys, records=records)


def _project_object(obj: Dict[str, Any], keys: Sequence[str]) -> Dict[str, str]:
    return {k: stringify(obj[k]) for k in keys if k in obj}
