"""Tests for HarvestConnector (fake transport, no real API calls)."""
import pytest

from harvestbridge.config.models import BridgeConfig
from harvestbridge.connectors.harvest import HarvestConnector
from harvestbridge.errors import (
    AuthenticationError,
    InvalidStructureError,
    MalformedResponseError,
    MissingRequiredParameterError,
    RemoteError,
    ResourceNotFoundError,
    SortUnsupportedError,
    UnresolvedParameterError,
    UnsupportedOperationError,
)
from harvestbridge.routing.models import QueryRequest

BASE = "https://api.harvestapp.com/v2"

_PROJECTS_QUERY = (
    'projects?is_active=<%=parameter["Is Active"]%>'
    '&client_id=<%=parameter["Client Id"]%>'
)
_PROJECTS_PAGE = {
    "projects": [
        {"id": 14308069, "name": "Online Store", "is_billable": True,
         "budget": 200.0, "client": {"id": 5735776, "name": "123 Industries"}},
        {"id": 14307913, "name": "Marketing Website", "is_billable": True,
         "budget": None, "client": {"id": 5735776, "name": "123 Industries"}},
    ],
    "per_page": 100,
    "total_pages": 1,
    "total_entries": 2,
    "page": 1,
}


def _connector(cfg, transport):
    return HarvestConnector(cfg, transport=transport)


# ---------------------------------------------------------------------------
# count
# ---------------------------------------------------------------------------

class TestCount:
    @pytest.mark.asyncio
    async def test_count(self, bridge_config, make_transport):
        transport = make_transport(body=_PROJECTS_PAGE)
        conn = _connector(bridge_config, transport)
        count = await conn.count("Projects", "projects")
        assert count == 2
        assert transport.last_url == f"{BASE}/projects"

    @pytest.mark.asyncio
    async def test_count_with_parameter(self, bridge_config, make_transport):
        transport = make_transport(body={"total_entries": 17})
        conn = _connector(bridge_config, transport)
        count = await conn.count(
            "Projects", 'projects?is_active=<%=parameter["Is Active"]%>', {"Is Active": "true"}
        )
        assert count == 17
        assert transport.last_url == f"{BASE}/projects?is_active=true"

    @pytest.mark.asyncio
    async def test_count_non_integral(self, bridge_config, make_transport):
        conn = _connector(bridge_config, make_transport(body={"total_entries": "17"}))
        with pytest.raises(MalformedResponseError):
            await conn.count("Projects", "projects")

    @pytest.mark.asyncio
    async def test_count_allows_order_metadata(self, bridge_config, make_transport):
        conn = _connector(bridge_config, make_transport(body={"total_entries": 1}))
        assert await conn.count("Clients", "clients", {}, {"order": "name:ASC"}) == 1


# ---------------------------------------------------------------------------
# retrieve
# ---------------------------------------------------------------------------

class TestRetrieve:
    @pytest.mark.asyncio
    async def test_retrieve_from_path_identifier(self, bridge_config, make_transport):
        transport = make_transport(body=_PROJECTS_PAGE["projects"][0])
        conn = _connector(bridge_config, transport)
        record = await conn.retrieve(
            "Projects", 'projects/<%=parameter["Project Id"]%>',
            {"Project Id": "14308069"}, ["name", "id", "client"],
        )
        assert transport.last_url == f"{BASE}/projects/14308069"
        assert record == {
            "name": "Online Store",
            "id": "14308069",
            "client": '{"id":5735776,"name":"123 Industries"}',
        }

    @pytest.mark.asyncio
    async def test_retrieve_from_query_identifier(self, bridge_config, make_transport):
        transport = make_transport(body={"id": 1075388, "first_name": "Bob"})
        conn = _connector(bridge_config, transport)
        record = await conn.retrieve("Users", "users?user_id=1075388")
        assert transport.last_url == f"{BASE}/users/1075388"
        assert record == {"id": "1075388", "first_name": "Bob"}

    @pytest.mark.asyncio
    async def test_retrieve_missing_identifier(self, bridge_config, make_transport):
        transport = make_transport()
        conn = _connector(bridge_config, transport)
        with pytest.raises(MissingRequiredParameterError):
            await conn.retrieve("Clients", "clients")
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_retrieve_unsupported(self, bridge_config, make_transport):
        conn = _connector(bridge_config, make_transport())
        with pytest.raises(UnsupportedOperationError):
            await conn.retrieve("Cost Rates", "cost_rates")


# ---------------------------------------------------------------------------
# search
# ---------------------------------------------------------------------------

class TestSearch:
    @pytest.mark.asyncio
    async def test_search(self, bridge_config, make_transport):
        transport = make_transport(body=_PROJECTS_PAGE)
        conn = _connector(bridge_config, transport)
        result = await conn.search(
            "Projects", _PROJECTS_QUERY,
            {"Is Active": "true", "Client Id": "5735776"}, ["id", "budget"],
        )
        assert transport.last_url == f"{BASE}/projects?client_id=5735776&is_active=true"
        assert result.fields == ["id", "budget"]
        assert result.records == [
            {"id": "14308069", "budget": "200.0"},
            {"id": "14307913", "budget": "null"},
        ]

    @pytest.mark.asyncio
    async def test_search_empty_fields_returns_everything(self, bridge_config, make_transport):
        conn = _connector(bridge_config, make_transport(body=_PROJECTS_PAGE))
        result = await conn.search(
            "Projects", _PROJECTS_QUERY, {"Is Active": "true", "Client Id": "1"}
        )
        assert result.fields == ["id", "name", "is_billable", "budget", "client"]
        assert result.records[0]["is_billable"] == "true"

    @pytest.mark.asyncio
    async def test_search_page_and_per_page_cap(self, bridge_config, make_transport):
        transport = make_transport(body={"users": []})
        conn = _connector(bridge_config, transport)
        await conn.search(
            "Users",
            'users?per_page=<%=parameter["Per Page"]%>&is_active=<%=parameter["Is Active"]%>',
            {"Per Page": "150", "Is Active": "false"},
            ["id", "first_name"],
            {"page": "2"},
        )
        assert transport.last_url == f"{BASE}/users?is_active=false&page=2&per_page=100"

    @pytest.mark.asyncio
    async def test_search_nested_assignments(self, bridge_config, make_transport):
        transport = make_transport(body={"task_assignments": [{"id": 1, "billable": True}]})
        conn = _connector(bridge_config, transport)
        result = await conn.search(
            "Task Assignments", 'task_assignments?project_id=<%=parameter["Project"]%>',
            {"Project": "42"}, ["billable"],
        )
        assert transport.last_url == f"{BASE}/projects/42/task_assignments"
        assert result.records == [{"billable": "true"}]

    @pytest.mark.asyncio
    async def test_search_order_rejected(self, bridge_config, make_transport):
        transport = make_transport()
        conn = _connector(bridge_config, transport)
        with pytest.raises(SortUnsupportedError):
            await conn.search("Users", "users", {}, ["id"], {"page": "1", "order": "DESC"})
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_search_order_rejected_before_structure_check(self, bridge_config, make_transport):
        conn = _connector(bridge_config, make_transport())
        with pytest.raises(SortUnsupportedError):
            await conn.search("Widgets", "widgets", {}, [], {"order": "ASC"})

    @pytest.mark.asyncio
    async def test_search_invalid_structure(self, bridge_config, make_transport):
        conn = _connector(bridge_config, make_transport())
        with pytest.raises(InvalidStructureError):
            await conn.search("Widgets", "widgets")

    @pytest.mark.asyncio
    async def test_search_unresolved_parameter(self, bridge_config, make_transport):
        conn = _connector(bridge_config, make_transport())
        with pytest.raises(UnresolvedParameterError):
            await conn.search("Projects", _PROJECTS_QUERY, {"Is Active": "true"})


# ---------------------------------------------------------------------------
# Transport contract: headers and status mapping
# ---------------------------------------------------------------------------

class TestTransportContract:
    @pytest.mark.asyncio
    async def test_headers(self, bridge_config, make_transport):
        transport = make_transport(body={"total_entries": 0})
        await _connector(bridge_config, transport).count("Clients", "clients")
        headers = transport.calls[0][1]
        assert headers["Authorization"] == "Bearer tok_123"
        assert headers["Harvest-Account-ID"] == "987"
        assert headers["Accept"] == "application/json"
        assert headers["Content-Type"] == "application/json"

    @pytest.mark.asyncio
    async def test_env_token(self, monkeypatch, make_transport):
        monkeypatch.setenv("HARVEST_TEST_TOKEN", "from_env")
        cfg = BridgeConfig(bridge_id="env", access_token="env://HARVEST_TEST_TOKEN")
        transport = make_transport(body={"total_entries": 0})
        await _connector(cfg, transport).count("Clients", "clients")
        assert transport.calls[0][1]["Authorization"] == "Bearer from_env"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,error", [
        (404, ResourceNotFoundError),
        (401, AuthenticationError),
        (403, RemoteError),
        (500, RemoteError),
    ])
    async def test_status_mapping(self, bridge_config, make_transport, status, error):
        conn = _connector(bridge_config, make_transport(status=status, body="nope"))
        with pytest.raises(error):
            await conn.count("Clients", "clients")

    @pytest.mark.asyncio
    async def test_remote_error_carries_status_and_body(self, bridge_config, make_transport):
        conn = _connector(bridge_config, make_transport(status=422, body='{"message":"bad"}'))
        with pytest.raises(RemoteError) as exc_info:
            await conn.search("Clients", "clients")
        assert exc_info.value.status == 422
        assert exc_info.value.body == '{"message":"bad"}'

    @pytest.mark.asyncio
    async def test_invalid_json(self, bridge_config, make_transport):
        conn = _connector(bridge_config, make_transport(body="<html>"))
        with pytest.raises(MalformedResponseError):
            await conn.search("Clients", "clients")


# ---------------------------------------------------------------------------
# execute / lifecycle
# ---------------------------------------------------------------------------

class TestExecute:
    @pytest.mark.asyncio
    async def test_execute_dispatches(self, bridge_config, make_transport):
        conn = _connector(bridge_config, make_transport(body=_PROJECTS_PAGE))
        req = QueryRequest(structure="Projects", query="projects", fields=["id"])
        assert await conn.execute("count", req) == 2
        result = await conn.execute("search", req)
        assert [r["id"] for r in result.records] == ["14308069", "14307913"]

    def test_build_url_is_deterministic(self, bridge_config, make_transport):
        conn = _connector(bridge_config, make_transport())
        a = conn.build_url("search", "Clients", "clients?is_active=true&updated_since=2024-01-01")
        b = conn.build_url("search", "Clients", "clients?updated_since=2024-01-01&is_active=true")
        assert a == b

    @pytest.mark.asyncio
    async def test_close_leaves_injected_transport_open(self, bridge_config, make_transport):
        transport = make_transport()
        await _connector(bridge_config, transport).close()
        assert transport.closed is False
