from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Type

from pydantic import BaseModel

from bizdata.core import schemas
from bizdata.core.protocol.errors import UnknownResourceError, UnknownToolError


# -----------------------------------------------------------------------------
# CATALOG MODULE
# Purpose: the fixed list of tools and resources the dispatcher will serve.
# Each tool carries the pydantic model its arguments must satisfy and the
# gateway entity that answers it. Built once, never mutated.
# -----------------------------------------------------------------------------


class ToolSpec(NamedTuple):
    name: str
    description: str
    input_model: Type[schemas.ToolInput]
    entity: str


class ResourceSpec(NamedTuple):
    uri: str
    name: str
    description: str
    tool: str
    default_arguments: Dict[str, Any]
    mime_type: str = "application/json"


DEFAULT_TOOLS: Sequence[ToolSpec] = (
    ToolSpec(
        "query_customers",
        "Search and retrieve customer data with optional filtering",
        schemas.CustomerQuery,
        "customers",
    ),
    ToolSpec(
        "analyze_sales",
        "Perform sales analysis for specified time period",
        schemas.SalesAnalysisQuery,
        "sales",
    ),
    ToolSpec(
        "query_products",
        "Retrieve product data with inventory information",
        schemas.ProductQuery,
        "products",
    ),
    ToolSpec(
        "generate_financial_report",
        "Generate revenue, expense and profitability rollups",
        schemas.FinancialReportQuery,
        "finances",
    ),
    ToolSpec(
        "get_business_overview",
        "Get a comprehensive overview of business metrics",
        schemas.BusinessOverviewQuery,
        "overview",
    ),
)

DEFAULT_RESOURCES: Sequence[ResourceSpec] = (
    ResourceSpec(
        "business://database/customers",
        "Customer Database",
        "Access to customer data and management operations",
        "query_customers",
        {"limit": 100},
    ),
    ResourceSpec(
        "business://database/products",
        "Product Database",
        "Access to product catalog and inventory data",
        "query_products",
        {"limit": 100},
    ),
    ResourceSpec(
        "business://database/sales",
        "Sales Database",
        "Access to sales transactions and analytics",
        "analyze_sales",
        {"period": "month"},
    ),
    ResourceSpec(
        "business://database/finances",
        "Financial Database",
        "Access to financial data and reports",
        "generate_financial_report",
        {"period": "month", "includeExpenses": True, "includeSales": True},
    ),
)


class Catalog:
    def __init__(
        self,
        tools: Sequence[ToolSpec] = DEFAULT_TOOLS,
        resources: Sequence[ResourceSpec] = DEFAULT_RESOURCES,
    ):
        self._tools: Dict[str, ToolSpec] = {}
        for spec in tools:
            if spec.name in self._tools:
                raise ValueError(f"Duplicate tool name: {spec.name}")
            self._tools[spec.name] = spec

        self._resources: Dict[str, ResourceSpec] = {}
        for spec in resources:
            if spec.uri in self._resources:
                raise ValueError(f"Duplicate resource uri: {spec.uri}")
            if spec.tool not in self._tools:
                raise ValueError(f"Resource {spec.uri} points at unknown tool {spec.tool}")
            self._resources[spec.uri] = spec

        # Descriptors are derived once; the JSON schema comes from the input model
        self._tool_descriptors = tuple(
            schemas.ToolDescriptor(
                name=spec.name,
                description=spec.description,
                input_schema=spec.input_model.model_json_schema(),
            )
            for spec in self._tools.values()
        )
        self._resource_descriptors = tuple(
            schemas.ResourceDescriptor(
                uri=spec.uri,
                name=spec.name,
                description=spec.description,
                mime_type=spec.mime_type,
            )
            for spec in self._resources.values()
        )

    def tools(self) -> List[schemas.ToolDescriptor]:
        return list(self._tool_descriptors)

    def resources(self) -> List[schemas.ResourceDescriptor]:
        return list(self._resource_descriptors)

    def tool(self, name: Optional[str]) -> ToolSpec:
        spec = self._tools.get(name) if name else None
        if spec is None:
            raise UnknownToolError(str(name))
        return spec

    def resource(self, uri: Optional[str]) -> ResourceSpec:
        spec = self._resources.get(uri) if uri else None
        if spec is None:
            raise UnknownResourceError(str(uri))
        return spec

    def validate(self, name: Optional[str], arguments: Optional[Dict[str, Any]]) -> BaseModel:
        """
        Parse tool arguments into the tool's input model.

        Raises UnknownToolError for names outside the catalog and
        pydantic.ValidationError for malformed arguments.
        """
        spec = self.tool(name)
        return spec.input_model.model_validate(arguments or {})
