# src/community_ledger/main.py
"""Service wiring for the community ledger.

Build one :class:`LedgerServices` at process start and pass it to whatever
needs it; nothing here is a module-level singleton.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session, sessionmaker

from community_ledger.core.settings import Settings, settings as default_settings
from community_ledger.db.session import build_engine, build_session_factory
from community_ledger.schemas.community import Community
from community_ledger.schemas.user import UserSummary
from community_ledger.services.backfill import BackfillEngine
from community_ledger.services.membership import MembershipLedger
from community_ledger.services.registry import CommunityRegistry
from community_ledger.storage.base import DocumentStore
from community_ledger.storage.sql_store import SqlDocumentStore

logger = logging.getLogger(__name__)


@dataclass
class LedgerServices:
    """The registry, ledger and backfill engine sharing one store."""

    settings: Settings
    store: DocumentStore
    registry: CommunityRegistry
    ledger: MembershipLedger
    backfill: BackfillEngine

    def onboard_creator(self, creator: UserSummary, activity_id: str | None = None) -> Community:
        """Return the creator's community, creating it and their membership if needed."""
        return self.registry.get_or_create_community(
            creator,
            activity_id,
            seed_creator=self.ledger.seed_creator_membership,
        )


def configure_logging(config: Settings | None = None) -> None:
    """Apply the configured log level to the root logger."""
    config = config or default_settings
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def build_services(
    config: Settings | None = None,
    session_factory: sessionmaker[Session] | None = None,
) -> LedgerServices:
    """Wire the services against the configured database.

    Args:
        config: Settings to use; defaults to the environment-derived settings.
        session_factory: Existing session factory, e.g. one bound to a test
            engine. A new engine is created from ``config`` when omitted.
    """
    config = config or default_settings
    if session_factory is None:
        session_factory = build_session_factory(build_engine(config))

    store = SqlDocumentStore(session_factory, max_batch_size=config.storage_batch_limit)
    registry = CommunityRegistry(store, settings=config)
    ledger = MembershipLedger(store, registry)
    backfill = BackfillEngine(store, settings=config)
    logger.info("%s services ready", config.app_name)
    return LedgerServices(
        settings=config,
        store=store,
        registry=registry,
        ledger=ledger,
        backfill=backfill,
    )
