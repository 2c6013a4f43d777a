from __future__ import annotations
import re
from dataclasses import dataclass, field
from functools import cached_property
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

_PATH_PARAM = re.compile(r"\{(\w+)\}")


class Operation(str, Enum):
    COUNT = "count"
    RETRIEVE = "retrieve"
    SEARCH = "search"


@dataclass(frozen=True)
class ResourceRoute:
    """
    How one (structure, operation) pair maps onto a Harvest endpoint.

    path_template holds '{param}' slots for identifiers embedded in the path.
    Every slot is a required parameter. When parent_param is set and present
    in the request, parent_path_template is used instead and parent_param is
    consumed as well:

        Task Assignments / search
            path_template        = "/task_assignments"
            parent_param         = "project_id"
            parent_path_template = "/projects/{project_id}/task_assignments"
    """

    structure: str
    operation: Operation
    path_template: str
    parent_param: Optional[str] = None
    parent_path_template: Optional[str] = None

    @property
    def required_params(self) -> Tuple[str, ...]:
        return tuple(_PATH_PARAM.findall(self.path_template))

    def templates(self) -> List[str]:
        """Candidate path templates, most specific first."""
        if self.parent_path_template:
            return [self.parent_path_template, self.path_template]
        return [self.path_template]

    @cached_property
    def path_patterns(self) -> Tuple[re.Pattern, ...]:
        """templates() compiled for fullmatch against a literal path, same order."""
        return tuple(_template_regex(t) for t in self.templates())


class QueryRequest(BaseModel):
    """One caller request: structure, query template, parameters, fields, metadata."""

    model_config = ConfigDict(frozen=True)

    structure: str
    query: str = ""
    parameters: Dict[str, Optional[str]] = Field(default_factory=dict)
    fields: List[str] = Field(default_factory=list)
    metadata: Dict[str, Optional[str]] = Field(default_factory=dict)


@dataclass
class RecordList:
    """Search result: the effective field list and one record per returned object."""

    fields: List[str] = field(default_factory=list)
    records: List[Dict[str, str]] = field(default_factory=list)


def _template_regex(template: str) -> re.Pattern:
    """'/projects/{project_id}' → r'/projects/(?P<project_id>[^/]+)'"""
    parts = _PATH_PARAM.split(template)
    pattern = ""
    for i, part in enumerate(parts):
        # re.split with one group alternates literal, name, literal, ...
        pattern += f"(?P<{part}>[^/]+)" if i % 2 else re.escape(part)
    return re.compile(pattern)
