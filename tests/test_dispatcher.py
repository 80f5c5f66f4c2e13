import json

import pytest

from bizdata.core import schemas
from bizdata.core.protocol.catalog import Catalog, DEFAULT_TOOLS, ResourceSpec
from bizdata.core.protocol.dispatcher import ProtocolDispatcher
from bizdata.core.protocol.errors import ErrorCode, UnknownToolError
from bizdata.core.protocol.gateway import DataGateway
from conftest import FailingStore, fixed_clock


class ExplodingGateway:
    async def read(self, entity, query):
        raise RuntimeError("disk on fire")


def assert_error(envelope, code):
    assert isinstance(envelope, schemas.ErrorEnvelope)
    assert envelope.error.code == int(code)
    # Exactly one of result/error on the wire
    assert set(envelope.model_dump()) == {"error"}


# =========================
# Catalog
# =========================
def test_catalog_lists_tools_with_input_schema():
    catalog = Catalog()
    names = [tool.name for tool in catalog.tools()]

    assert names == [
        "query_customers",
        "analyze_sales",
        "query_products",
        "generate_financial_report",
        "get_business_overview",
    ]
    sales_schema = catalog.tools()[1].input_schema
    assert set(sales_schema["properties"]) >= {"period", "startDate", "endDate"}


def test_catalog_rejects_duplicates():
    with pytest.raises(ValueError):
        Catalog(tools=[DEFAULT_TOOLS[0], DEFAULT_TOOLS[0]], resources=[])

    dangling = ResourceSpec("business://x", "X", "x", "no_such_tool", {})
    with pytest.raises(ValueError):
        Catalog(resources=[dangling])


def test_catalog_validate():
    catalog = Catalog()
    query = catalog.validate("query_products", {"lowStock": True, "limit": 5})
    assert query.low_stock is True and query.limit == 5

    with pytest.raises(UnknownToolError) as exc_info:
        catalog.validate("does_not_exist", {})
    assert str(exc_info.value) == "Unknown tool: does_not_exist"


# =========================
# Listing
# =========================
@pytest.mark.asyncio
async def test_tools_list(dispatcher):
    envelope = await dispatcher.handle("tools/list", {})

    assert isinstance(envelope, schemas.ResultEnvelope)
    tools = envelope.result["tools"]
    assert len(tools) == 5
    assert set(tools[0]) == {"name", "description", "inputSchema"}


@pytest.mark.asyncio
async def test_resources_list(dispatcher):
    envelope = await dispatcher.handle("resources/list")

    uris = [r["uri"] for r in envelope.result["resources"]]
    assert uris == [
        "business://database/customers",
        "business://database/products",
        "business://database/sales",
        "business://database/finances",
    ]
    assert envelope.result["resources"][0]["mimeType"] == "application/json"


# =========================
# tools/call
# =========================
@pytest.mark.asyncio
async def test_call_tool(dispatcher):
    envelope = await dispatcher.handle(
        "tools/call", {"name": "query_customers", "arguments": {"limit": 2}}
    )

    assert isinstance(envelope, schemas.ResultEnvelope)
    assert set(envelope.model_dump()) == {"result"}
    result = envelope.result
    assert result["source"] == "primary"
    assert result["total"] == 3
    assert len(result["payload"]["customers"]) == 2
    # JSON-ready: datetimes are strings
    assert isinstance(result["payload"]["customers"][0]["created_at"], str)


@pytest.mark.asyncio
async def test_call_tool_degraded_is_still_a_result(snapshot):
    gateway = DataGateway(FailingStore(), snapshot, clock=fixed_clock)
    dispatcher = ProtocolDispatcher(Catalog(), gateway)

    envelope = await dispatcher.handle("tools/call", {"name": "analyze_sales", "arguments": {}})

    assert isinstance(envelope, schemas.ResultEnvelope)
    assert envelope.result["source"] == "secondary"


@pytest.mark.asyncio
async def test_unknown_tool(dispatcher):
    envelope = await dispatcher.handle(
        "tools/call", {"name": "does_not_exist", "arguments": {}}
    )
    assert_error(envelope, ErrorCode.INVALID_PARAMS)
    assert "Unknown tool: does_not_exist" in envelope.error.message


@pytest.mark.asyncio
async def test_missing_tool_name(dispatcher):
    envelope = await dispatcher.handle("tools/call", {"arguments": {}})
    assert_error(envelope, ErrorCode.INVALID_PARAMS)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "arguments",
    [
        {"limit": 0},
        {"limit": "many"},
        {"unexpected": True},
        {"filter": {"nickname": "x"}},
    ],
)
async def test_bad_customer_arguments(dispatcher, arguments):
    envelope = await dispatcher.handle(
        "tools/call", {"name": "query_customers", "arguments": arguments}
    )
    assert_error(envelope, ErrorCode.INVALID_PARAMS)
    assert envelope.error.message.startswith("Invalid arguments for query_customers")


@pytest.mark.asyncio
async def test_inverted_window_is_invalid(dispatcher):
    envelope = await dispatcher.handle(
        "tools/call",
        {
            "name": "analyze_sales",
            "arguments": {"startDate": "2024-06-01T00:00:00", "endDate": "2024-05-01T00:00:00"},
        },
    )
    assert_error(envelope, ErrorCode.INVALID_PARAMS)


@pytest.mark.asyncio
async def test_unknown_method(dispatcher):
    envelope = await dispatcher.handle("prompts/list", {})
    assert_error(envelope, ErrorCode.METHOD_NOT_FOUND)
    assert envelope.error.message == "Method not found: prompts/list"


@pytest.mark.asyncio
async def test_malformed_params(dispatcher):
    envelope = await dispatcher.handle("tools/call", {"name": 42})
    assert_error(envelope, ErrorCode.INVALID_PARAMS)


@pytest.mark.asyncio
async def test_gateway_failure_becomes_internal_error():
    dispatcher = ProtocolDispatcher(Catalog(), ExplodingGateway())

    envelope = await dispatcher.handle("tools/call", {"name": "query_products", "arguments": {}})
    assert_error(envelope, ErrorCode.INTERNAL_ERROR)
    assert envelope.error.message == "Internal error: disk on fire"

    envelope = await dispatcher.handle("resources/read", {"uri": "business://database/sales"})
    assert_error(envelope, ErrorCode.INTERNAL_ERROR)


@pytest.mark.asyncio
async def test_handle_request(dispatcher):
    request = schemas.ProtocolRequest(method="tools/list")
    envelope = await dispatcher.handle_request(request)
    assert isinstance(envelope, schemas.ResultEnvelope)


# =========================
# resources/read
# =========================
@pytest.mark.asyncio
async def test_read_resource(dispatcher):
    envelope = await dispatcher.handle(
        "resources/read", {"uri": "business://database/finances"}
    )

    contents = envelope.result["contents"]
    assert len(contents) == 1
    assert contents[0]["uri"] == "business://database/finances"
    assert contents[0]["mimeType"] == "application/json"

    body = json.loads(contents[0]["text"])
    assert body["source"] == "primary"
    assert set(body["payload"]) >= {"sales", "expenses", "profitability"}


@pytest.mark.asyncio
async def test_read_unknown_resource(dispatcher):
    envelope = await dispatcher.handle("resources/read", {"uri": "business://database/payroll"})
    assert_error(envelope, ErrorCode.INVALID_PARAMS)
    assert envelope.error.message == "Unknown resource: business://database/payroll"


@pytest.mark.asyncio
@pytest.mark.parametrize("method", [["tools/list"], None, 7])
async def test_non_string_method_is_method_not_found(dispatcher, method):
    envelope = await dispatcher.handle(method, {})
    assert_error(envelope, ErrorCode.METHOD_NOT_FOUND)
