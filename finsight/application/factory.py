"""Wiring for host applications: logging, storage and the transaction store client"""

from finsight.application.analytics import AnalyticsService
from finsight.config import Settings, settings as default_settings
from finsight.infrastructure.clients.transactions import TransactionSourceClient
from finsight.infrastructure.database.session import SessionLocal, init_db
from finsight.infrastructure.observability.logging import setup_logging


def get_transaction_client(config: Settings = default_settings) -> TransactionSourceClient:
    """Provide transaction store client instance"""
    return TransactionSourceClient(base_url=config.transaction_api_base, timeout=config.http_timeout_seconds)


def create_service(config: Settings = default_settings, create_tables: bool = True) -> AnalyticsService:
    """Create and configure the analytics service"""
    setup_logging(config.log_level)
    if create_tables:
        init_db()
    return AnalyticsService(
        source=get_transaction_client(config),
        session_factory=SessionLocal,
        config=config,
    )
