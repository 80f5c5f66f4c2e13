"""Query processing layer.

Flow:
1. Classify intent
2. Resolve required capabilities
3. Parse a time reference, if any
4. Collect data through the protocol client
5. Hand the context to the narration step (outside this package)
"""
from datetime import datetime
from typing import Optional

from bizdata.core import schemas
from bizdata.core.protocol.client import ProtocolClient
from bizdata.core.protocol.intents import IntentClassifier, capabilities_for
from bizdata.core.protocol.orchestrator import CollectionLogger, DataCollector
from bizdata.core.protocol.temporal import TemporalParser


class BusinessQueryService:
    def __init__(
        self,
        classifier: IntentClassifier,
        temporal_parser: TemporalParser,
        collector: DataCollector,
        client: ProtocolClient,
    ):
        self.classifier = classifier
        self.temporal_parser = temporal_parser
        self.collector = collector
        self.client = client

    async def process(
        self, query: str, now: Optional[datetime] = None
    ) -> schemas.QueryContext:
        intent = self.classifier.classify(query)
        capabilities = capabilities_for(intent)
        window = self.temporal_parser.parse(query, now)

        run_log = CollectionLogger(label=intent.value)
        run_log.log("intent", f"{intent.value} -> {[c.value for c in capabilities]}")
        if window:
            run_log.log(
                "time",
                f"'{window.original_expression}' -> {window.start.date()}..{window.end.date()}",
            )

        bag = await self.collector.collect(capabilities, window, run_log)

        tools = await self.client.list_tools()
        resources = await self.client.list_resources()

        return schemas.QueryContext(
            query=query,
            intent=intent,
            capabilities=capabilities,
            time_window=window,
            time_description=window.describe() if window else None,
            business_data=bag,
            tools=[tool.name for tool in tools],
            resources=[resource.uri for resource in resources],
            error=bag.error,
            collection_log=run_log.get_summary(),
        )
