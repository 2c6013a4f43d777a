from __future__ import annotations
import logging
from typing import Dict, Mapping, Optional

from harvestbridge.errors import SortUnsupportedError
from harvestbridge.query.codec import serialize_query
from harvestbridge.routing.models import Operation

logger = logging.getLogger(__name__)

HARVEST_MAX_PAGE_SIZE = 100


class RequestAssembler:
    """
    Joins a routed path, its residual parameters and connector metadata into
    the final request URL.

    - metadata["page"] overrides any caller-supplied page
    - per_page is capped at max_page_size (Harvest rejects more than 100)
    - metadata["order"] is refused for searches; Harvest has no sort parameter
    """

    def __init__(self, base_url: str, max_page_size: int = HARVEST_MAX_PAGE_SIZE) -> None:
        self._base_url = base_url.rstrip("/")
        self._max_page_size = min(max_page_size, HARVEST_MAX_PAGE_SIZE)

    def assemble(
        self,
        path: str,
        params: Mapping[str, str],
        metadata: Optional[Mapping[str, Optional[str]]] = None,
        operation: Operation | str = Operation.SEARCH,
    ) -> str:
        metadata = metadata or {}
        self.validate_metadata(metadata, operation)

        merged: Dict[str, str] = dict(params)
        if metadata.get("page") is not None:
            merged["page"] = str(metadata["page"])
        if "per_page" in merged:
            merged["per_page"] = self._cap_page_size(merged["per_page"])

        url = self._base_url + path
        if merged:
            url += "?" + serialize_query(merged)
        return url

    def validate_metadata(
        self,
        metadata: Optional[Mapping[str, Optional[str]]],
        operation: Operation | str,
    ) -> None:
        if Operation(operation) is Operation.SEARCH and (metadata or {}).get("order") is not None:
            raise SortUnsupportedError()

    def _cap_page_size(self, value: str) -> str:
        try:
            requested = int(value)
        except (TypeError, ValueError):
            return value  # left for Harvest to reject
        if requested > self._max_page_size:
            logger.debug("per_page=%d exceeds limit, capping at %d", requested, self._max_page_size)
            return str(self._max_page_size)
        return value
