from __future__ import annotations
import logging
import re
from typing import Dict, Iterable, List, Mapping, Optional, Tuple
from urllib.parse import quote, unquote

from harvestbridge.errors import (
    DuplicateParameterError,
    InvalidStructureError,
    MissingRequiredParameterError,
    UnsupportedOperationError,
)
from harvestbridge.routing.models import Operation, ResourceRoute

logger = logging.getLogger(__name__)

_PATH_PARAM = re.compile(r"\{(\w+)\}")


def _routes(
    structure: str,
    collection: str,
    retrieve: Optional[str] = None,
    parent: Optional[Tuple[str, str]] = None,
) -> List[ResourceRoute]:
    """count + search share the collection route; retrieve only when given."""
    parent_param, parent_path = parent if parent else (None, None)
    routes = [
        ResourceRoute(structure, op, collection, parent_param, parent_path)
        for op in (Operation.COUNT, Operation.SEARCH)
    ]
    if retrieve:
        routes.append(ResourceRoute(structure, Operation.RETRIEVE, retrieve))
    return routes


_ROUTE_TABLE: List[ResourceRoute] = [
    *_routes("Contacts", "/contacts", "/contacts/{contact_id}"),
    *_routes("Clients", "/clients", "/clients/{client_id}"),
    *_routes("Invoices", "/invoices", "/invoices/{invoice_id}"),
    *_routes("Invoice Messages", "/invoices/{invoice_id}/messages"),
    *_routes("Invoice Payments", "/invoices/{invoice_id}/payments"),
    *_routes(
        "Invoice Item Categories", "/invoice_item_categories",
        "/invoice_item_categories/{invoice_item_category_id}",
    ),
    *_routes("Estimates", "/estimates", "/estimates/{estimate_id}"),
    *_routes("Estimate Messages", "/estimates/{estimate_id}/messages"),
    *_routes(
        "Estimate Item Categories", "/estimate_item_categories",
        "/estimate_item_categories/{estimate_item_category_id}",
    ),
    *_routes("Expenses", "/expenses", "/expenses/{expense_id}"),
    *_routes(
        "Expense Categories", "/expense_categories",
        "/expense_categories/{expense_category_id}",
    ),
    *_routes("Tasks", "/tasks", "/tasks/{task_id}"),
    *_routes("Time Entries", "/time_entries", "/time_entries/{time_entry_id}"),
    *_routes("Projects", "/projects", "/projects/{project_id}"),
    *_routes(
        "Task Assignments", "/task_assignments",
        "/projects/{project_id}/task_assignments/{task_assignment_id}",
        parent=("project_id", "/projects/{project_id}/task_assignments"),
    ),
    *_routes(
        "User Assignments", "/user_assignments",
        "/projects/{project_id}/user_assignments/{user_assignment_id}",
        parent=("project_id", "/projects/{project_id}/user_assignments"),
    ),
    *_routes("Project Assignments", "/users/{user_id}/project_assignments"),
    *_routes("Roles", "/roles", "/roles/{role_id}"),
    *_routes("Billable Rates", "/billable_rates"),
    *_routes("Cost Rates", "/cost_rates"),
    *_routes("Users", "/users", "/users/{user_id}"),
]

ROUTES: Dict[Tuple[str, Operation], ResourceRoute] = {
    (r.structure, r.operation): r for r in _ROUTE_TABLE
}

VALID_STRUCTURES: List[str] = list(dict.fromkeys(r.structure for r in _ROUTE_TABLE))


class EndpointRouter:
    """
    Maps a structure + operation + parsed parameters onto a concrete API path.

    Dispatch is a table lookup on (structure, operation); each ResourceRoute
    describes the path template and which parameters it consumes. Consumed
    parameters are removed from the residual mapping returned alongside the
    path, the rest are left for the query string.
    """

    def __init__(self, routes: Optional[Iterable[ResourceRoute]] = None) -> None:
        if routes is None:
            self._routes = dict(ROUTES)
        else:
            self._routes = {(r.structure, r.operation): r for r in routes}
        self._structures = set(s for s, _ in self._routes)

    @property
    def structures(self) -> List[str]:
        return sorted(self._structures)

    def lookup(self, structure: str, operation: Operation | str) -> ResourceRoute:
        """
        Raises:
            InvalidStructureError: structure is not served by this router.
            UnsupportedOperationError: structure has no route for operation.
        """
        operation = Operation(operation)
        if structure not in self._structures:
            raise InvalidStructureError(structure)
        resource_route = self._routes.get((structure, operation))
        if resource_route is None:
            raise UnsupportedOperationError(structure, operation.value)
        return resource_route

    def route(
        self,
        structure: str,
        operation: Operation | str,
        params: Mapping[str, str],
        template_path: str = "",
    ) -> Tuple[str, Dict[str, str]]:
        """
        Produce (path, residual_params) for one request.

        template_path is the path part of the caller's literal query. When it
        has the shape of the route (e.g. 'projects/42' for Projects/retrieve)
        the identifiers it carries are used as if passed as parameters.

        Raises:
            InvalidStructureError, UnsupportedOperationError,
            MissingRequiredParameterError, DuplicateParameterError
        """
        resource_route = self.lookup(structure, operation)
        params = dict(params)
        if template_path:
            self._lift_path_params(resource_route, template_path, params)

        missing = [p for p in resource_route.required_params if not params.get(p)]
        if missing:
            raise MissingRequiredParameterError(
                structure, resource_route.operation.value, missing
            )

        template = resource_route.path_template
        consumed = set(resource_route.required_params)
        parent = resource_route.parent_param
        if parent and params.get(parent):
            template = resource_route.parent_path_template
            consumed.update(_PATH_PARAM.findall(template))

        path = _PATH_PARAM.sub(lambda m: quote(str(params[m.group(1)]), safe=""), template)
        residual = {k: v for k, v in params.items() if k not in consumed}
        return path, residual

    # ------------------------------------------------------------------
    # Path-embedded identifiers
    # ------------------------------------------------------------------

    def _lift_path_params(
        self,
        resource_route: ResourceRoute,
        template_path: str,
        params: Dict[str, str],
    ) -> None:
        candidate = "/" + template_path.strip().strip("/")
        for pattern in resource_route.path_patterns:
            match = pattern.fullmatch(candidate)
            if not match:
                continue
            for key, raw_value in match.groupdict().items():
                value = unquote(raw_value)
                if key in params and params[key] != value:
                    raise DuplicateParameterError(key)
                params[key] = value
            return

        logger.debug(
            "Query path %r does not match %s/%s; routing on parameters only",
            template_path, resource_route.structure, resource_route.operation.value,
        )
