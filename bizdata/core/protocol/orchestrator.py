import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Sequence, Union

from bizdata.core.schemas import (
    BusinessDataBag,
    Capability,
    CollectionError,
    DataAnswer,
    TimeWindow,
)
from bizdata.core.protocol.client import ProtocolClient


# -----------------------------------------------------------------------------
# ORCHESTRATOR MODULE
# Purpose: turn a list of capabilities into tool calls, run them side by side,
# and gather whatever came back into one BusinessDataBag.
# A failing call costs only its own slot; the rest of the bag still fills.
# -----------------------------------------------------------------------------

logger = logging.getLogger(__name__)


class PlannedCall(NamedTuple):
    key: str
    tool: str
    arguments: Dict[str, Any]


class CollectionLogger:
    """Step log for one collection pass."""

    def __init__(self, label: str = "collect"):
        self.label = label
        self.start_time = datetime.now()
        self.logs: List[Dict[str, Any]] = []

    def log(self, step: str, message: str, level: str = "info"):
        log_entry = {
            "timestamp": datetime.now().isoformat(),
            "step": step,
            "message": message,
            "level": level,
            "elapsed_seconds": (datetime.now() - self.start_time).total_seconds(),
        }
        self.logs.append(log_entry)

        # Also log to console
        if level == "error":
            logger.error(f"[{self.label}] {step}: {message}")
        elif level == "warning":
            logger.warning(f"[{self.label}] {step}: {message}")
        else:
            logger.info(f"[{self.label}] {step}: {message}")

    def get_summary(self) -> Dict[str, Any]:
        end_time = datetime.now()
        return {
            "label": self.label,
            "start_time": self.start_time.isoformat(),
            "end_time": end_time.isoformat(),
            "duration_seconds": (end_time - self.start_time).total_seconds(),
            "total_logs": len(self.logs),
            "logs": self.logs,
        }


class DataCollector:
    """
    Fan-out/fan-in over the protocol client.

    Every planned call owns one slot of the bag, so concurrent calls never
    write to the same place and completion order cannot change the result.
    When several calls fail, `bag.error` holds the failure of the call that
    comes last in plan order (customers, sales, inventory, finances, overview).
    """

    def __init__(
        self,
        client: ProtocolClient,
        overview_threshold: int = 2,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.client = client
        self.overview_threshold = overview_threshold
        self.clock = clock

    def plan(
        self, capabilities: Sequence[Capability], window: Optional[TimeWindow] = None
    ) -> List[PlannedCall]:
        wanted = set(capabilities)
        window_args = window.tool_arguments() if window else {"period": "month"}

        calls: List[PlannedCall] = []
        if Capability.CUSTOMER_INSIGHTS in wanted:
            calls.append(PlannedCall("customers", "query_customers", {"limit": 10, "filter": {}}))
        if Capability.SALES_FORECASTING in wanted:
            calls.append(PlannedCall("sales", "analyze_sales", dict(window_args)))
        if Capability.INVENTORY_OPTIMIZATION in wanted:
            calls.append(
                PlannedCall("inventory", "query_products", {"limit": 10, "lowStock": True})
            )
        if Capability.FINANCIAL_ANALYSIS in wanted:
            calls.append(
                PlannedCall(
                    "finances",
                    "generate_financial_report",
                    {**window_args, "includeExpenses": True, "includeSales": True},
                )
            )

        # Broad questions also get one consolidated payload
        if len(wanted) > self.overview_threshold:
            calls.append(
                PlannedCall(
                    "overview",
                    "get_business_overview",
                    {
                        **window_args,
                        "includeCustomers": Capability.CUSTOMER_INSIGHTS in wanted,
                        "includeSales": Capability.SALES_FORECASTING in wanted,
                        "includeInventory": Capability.INVENTORY_OPTIMIZATION in wanted,
                        "includeFinances": Capability.FINANCIAL_ANALYSIS in wanted,
                    },
                )
            )
        return calls

    async def collect(
        self,
        capabilities: Sequence[Capability],
        window: Optional[TimeWindow] = None,
        collection_logger: Optional[CollectionLogger] = None,
    ) -> BusinessDataBag:
        run_log = collection_logger or CollectionLogger()
        calls = self.plan(capabilities, window)
        bag = BusinessDataBag()

        if not calls:
            run_log.log("plan", "No data collection needed")
            return bag

        run_log.log("plan", f"Issuing {len(calls)} call(s): {', '.join(c.tool for c in calls)}")
        outcomes = await asyncio.gather(*(self._run(call, run_log) for call in calls))

        for call, outcome in zip(calls, outcomes):
            if isinstance(outcome, CollectionError):
                bag.error = outcome
            else:
                setattr(bag, call.key, outcome)

        run_log.log(
            "done",
            f"Collected {len(bag.answers())}/{len(calls)} entries",
            "warning" if bag.error else "info",
        )
        return bag

    async def _run(
        self, call: PlannedCall, run_log: CollectionLogger
    ) -> Union[DataAnswer, CollectionError]:
        try:
            result = await self.client.invoke_tool(call.tool, call.arguments)
            answer = DataAnswer.model_validate(result)
        except Exception as error:
            run_log.log(call.key, f"{call.tool} failed: {error}", "error")
            return CollectionError(message=f"{call.tool} failed: {error}", timestamp=self.clock())

        run_log.log(call.key, f"{call.tool} answered from {answer.source.value}")
        return answer
