from __future__ import annotations
import re
from typing import Callable, List, Mapping, Optional

from harvestbridge.errors import UnresolvedParameterError

# <%=parameter["Name"]%>, whitespace tolerated inside the markers.
_PLACEHOLDER = re.compile(r'<%=\s*parameter\[\s*"(.*?)"\s*\]\s*%>')


def encode_parameter(value: Optional[str]) -> str:
    """Backslash-escape the two characters that would break a quoted literal."""
    if value is None:
        return ""
    return value.replace("\\", "\\\\").replace('"', '\\"')


def placeholders(template: str) -> List[str]:
    """Parameter names referenced by a template, in order of first appearance."""
    names: List[str] = []
    for match in _PLACEHOLDER.finditer(template or ""):
        if match.group(1) not in names:
            names.append(match.group(1))
    return names


def resolve(
    template: str,
    parameters: Mapping[str, Optional[str]],
    encoder: Callable[[Optional[str]], str] = encode_parameter,
) -> str:
    """
    Substitute runtime parameter values into a query template.

    'projects?is_active=<%=parameter["Is Active"]%>' with
    {"Is Active": "true"} becomes 'projects?is_active=true'.

    Values are inserted once; text coming from a value is never re-scanned
    for placeholders.

    Raises:
        UnresolvedParameterError: a placeholder names a key absent from parameters.
    """

    def _substitute(match: re.Match) -> str:
        name = match.group(1)
        if name not in parameters:
            raise UnresolvedParameterError(name)
        return encoder(parameters[name])

    return _PLACEHOLDER.sub(_substitute, template or "")
