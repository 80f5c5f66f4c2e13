from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bizdata.ai_feature.service import BusinessQueryService
from bizdata.core.config import Settings
from bizdata.core.protocol.catalog import Catalog
from bizdata.core.protocol.client import ProtocolClient
from bizdata.core.protocol.dispatcher import ProtocolDispatcher
from bizdata.core.protocol.gateway import DataGateway
from bizdata.core.protocol.intents import IntentClassifier
from bizdata.core.protocol.orchestrator import DataCollector
from bizdata.core.protocol.stores import PrimaryStore, SecondarySnapshot
from bizdata.core.protocol.temporal import TemporalParser


class Services:
    """Everything the API needs, wired once per app from Settings."""

    def __init__(
        self,
        config: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        snapshot: SecondarySnapshot = None,
    ):
        self.catalog = Catalog()
        self.gateway = DataGateway(
            primary=PrimaryStore(session_factory),
            snapshot=snapshot or SecondarySnapshot.from_directory(config.SNAPSHOT_DIR),
            primary_timeout=config.PRIMARY_TIMEOUT_SECONDS,
            low_stock_threshold=config.LOW_STOCK_THRESHOLD,
            sales_sample_limit=config.SALES_SAMPLE_LIMIT,
        )
        self.dispatcher = ProtocolDispatcher(self.catalog, self.gateway)
        self.client = ProtocolClient(self.dispatcher, timeout=config.CALL_TIMEOUT_SECONDS)
        self.query_service = BusinessQueryService(
            classifier=IntentClassifier.for_locales(config.LOCALES),
            temporal_parser=TemporalParser.for_locales(config.LOCALES),
            collector=DataCollector(
                self.client, overview_threshold=config.OVERVIEW_CAPABILITY_THRESHOLD
            ),
            client=self.client,
        )


# The "Bridge" that gives routes access to the services built in lifespan
def get_dispatcher(request: Request) -> ProtocolDispatcher:
    return request.app.state.services.dispatcher


def get_query_service(request: Request) -> BusinessQueryService:
    return request.app.state.services.query_service
