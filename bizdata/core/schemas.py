from datetime import datetime
from typing import Optional, List, Dict, Any, Union
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


# =========================
# Enums
# =========================
class Period(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"


class Timeframe(str, Enum):
    CURRENT = "current"
    PREVIOUS = "previous"


class DataSource(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


class Intent(str, Enum):
    DASHBOARD_OVERVIEW = "dashboard-overview"
    CUSTOMER_MANAGEMENT = "customer-management"
    SALES_ANALYSIS = "sales-analysis"
    INVENTORY_MANAGEMENT = "inventory-management"
    FINANCIAL_REPORT = "financial-report"
    BUSINESS_INSIGHTS = "business-insights"
    REPORT_GENERATION = "report-generation"
    GENERAL_QUERY = "general-query"


class Capability(str, Enum):
    DATA_ANALYSIS = "data-analysis"
    REPORT_GENERATION = "report-generation"
    CUSTOMER_INSIGHTS = "customer-insights"
    SALES_FORECASTING = "sales-forecasting"
    INVENTORY_OPTIMIZATION = "inventory-optimization"
    FINANCIAL_ANALYSIS = "financial-analysis"


# =========================
# TIME WINDOW
# =========================
class TimeWindow(BaseModel):
    """
    Concrete date range resolved from a phrase like "this quarter".
    Both ends are inclusive.
    """

    period: Period
    timeframe: Timeframe
    start: datetime
    end: datetime
    original_expression: str

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )

    def describe(self) -> str:
        return f"{self.timeframe.value} {self.period.value}"

    def tool_arguments(self) -> Dict[str, str]:
        """Arguments understood by the time-bounded tools."""
        return {
            "period": self.period.value,
            "startDate": self.start.isoformat(),
            "endDate": self.end.isoformat(),
        }


# =========================
# TOOL INPUTS
# =========================
class ToolInput(BaseModel):
    # Unknown keys are a validation failure, not something to ignore
    model_config = ConfigDict(
        extra="forbid", alias_generator=to_camel, populate_by_name=True
    )


class DateWindowInput(ToolInput):
    period: Period = Period.MONTH
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def to_local_naive(cls, value: Optional[datetime]) -> Optional[datetime]:
        # Stored timestamps are naive local time
        if value is not None and value.tzinfo is not None:
            return value.astimezone().replace(tzinfo=None)
        return value

    @model_validator(mode="after")
    def check_window(self):
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("startDate must not be after endDate")
        return self


class CustomerFilter(ToolInput):
    name: Optional[str] = None
    email: Optional[str] = None
    company: Optional[str] = None


class CustomerQuery(ToolInput):
    limit: int = Field(default=10, ge=1, le=1000)
    filter: Optional[CustomerFilter] = None


class SalesAnalysisQuery(DateWindowInput):
    pass


class ProductQuery(ToolInput):
    limit: int = Field(default=10, ge=1, le=1000)
    category: Optional[str] = None
    low_stock: Optional[bool] = None


class FinancialReportQuery(DateWindowInput):
    include_expenses: bool = True
    include_sales: bool = True


class BusinessOverviewQuery(DateWindowInput):
    include_customers: bool = True
    include_sales: bool = True
    include_inventory: bool = True
    include_finances: bool = True


# =========================
# CATALOG
# =========================
class ToolDescriptor(BaseModel):
    name: str
    description: str
    input_schema: Dict[str, Any]

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )


class ResourceDescriptor(BaseModel):
    uri: str
    name: str
    description: str
    mime_type: str = "application/json"

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )


class ResourceContent(BaseModel):
    uri: str
    mime_type: str
    text: str

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =========================
# PROTOCOL WIRE SHAPE
# =========================
class ProtocolParams(BaseModel):
    name: Optional[str] = None
    arguments: Optional[Dict[str, Any]] = None
    uri: Optional[str] = None


class ProtocolRequest(BaseModel):
    method: str
    # Shape errors in params are reported inside the envelope, not as HTTP 422
    params: Any = None


class ProtocolError(BaseModel):
    code: int
    message: str


class ResultEnvelope(BaseModel):
    result: Any
    model_config = ConfigDict(extra="forbid")


class ErrorEnvelope(BaseModel):
    error: ProtocolError
    model_config = ConfigDict(extra="forbid")


# Exactly one of result/error, enforced by the type
Envelope = Union[ResultEnvelope, ErrorEnvelope]


# =========================
# DATA ANSWERS
# =========================
class DataAnswer(BaseModel):
    """
    What every gateway read returns.

    `source` has no default: an answer that cannot say where it came from
    does not validate.
    """

    payload: Any = None
    source: DataSource
    total: Optional[int] = None
    summary: Optional[Dict[str, Any]] = None

    @property
    def degraded(self) -> bool:
        return self.source == DataSource.SECONDARY


class CollectionError(BaseModel):
    message: str
    timestamp: datetime


class BusinessDataBag(BaseModel):
    customers: Optional[DataAnswer] = None
    sales: Optional[DataAnswer] = None
    inventory: Optional[DataAnswer] = None
    finances: Optional[DataAnswer] = None
    overview: Optional[DataAnswer] = None
    error: Optional[CollectionError] = None

    def answers(self) -> Dict[str, DataAnswer]:
        """Populated entries only, keyed by slot name."""
        slots = ("customers", "sales", "inventory", "finances", "overview")
        return {key: getattr(self, key) for key in slots if getattr(self, key)}


# =========================
# ASSISTANT
# =========================
class QueryRequest(BaseModel):
    query: str = Field(min_length=1, max_length=2000)


class QueryContext(BaseModel):
    """Everything the narration step needs for one query."""

    query: str
    intent: Intent
    capabilities: List[Capability]
    time_window: Optional[TimeWindow] = None
    time_description: Optional[str] = None
    business_data: BusinessDataBag
    tools: List[str] = []
    resources: List[str] = []
    error: Optional[CollectionError] = None
    collection_log: Dict[str, Any] = {}
