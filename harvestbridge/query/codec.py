from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Mapping
from urllib.parse import unquote_plus, urlencode

from harvestbridge.errors import DuplicateParameterError


@dataclass(frozen=True)
class ParsedQuery:
    """
    A literal query split into its API path and its parameters.

    'projects?is_active=true&client_id=7' →
        path="projects", params={"is_active": "true", "client_id": "7"}

    params keeps the order in which keys appeared in the raw string.
    """

    path: str
    params: Dict[str, str] = field(default_factory=dict)


def parse_query(raw: str) -> ParsedQuery:
    """
    Split a literal query string on its first '?' and decode the parameters.

    Raises:
        DuplicateParameterError: a key appears twice in the query string.
    """
    head, _, tail = (raw or "").partition("?")
    params: Dict[str, str] = {}

    for segment in tail.split("&"):
        if not segment.strip():
            continue
        key, _, value = segment.partition("=")
        key = unquote_plus(key).strip()
        if key in params:
            raise DuplicateParameterError(key)
        params[key] = unquote_plus(value).strip()

    return ParsedQuery(path=head.strip().strip("/"), params=params)


def serialize_query(params: Mapping[str, str]) -> str:
    """
    Canonical query string: form-encoded pairs ordered by key.

    Insertion order never matters, so equal parameter sets always produce
    byte-identical URLs.
    """
    return urlencode(sorted((str(k), str(v)) for k, v in params.items()))
