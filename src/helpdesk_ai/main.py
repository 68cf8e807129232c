"""
Helpdesk AI - Application Bootstrap
===================================

Wires the knowledge base, triage pipeline, suggestions and escalation
engine into one running service.

Clean Architecture Layers:
- Application: Services and DTOs
- Domain: Entities, value objects and rules
- Infrastructure: Database, LLM, vector store, notifications
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncGenerator, Optional

# Configuration
from helpdesk_ai.config import Settings, settings as default_settings

# Infrastructure
from helpdesk_ai.infrastructure.database import (
    close_database,
    create_tables,
    get_session_maker,
    init_database,
)
from helpdesk_ai.infrastructure.vectorstore import MilvusSearchBackend
from helpdesk_ai.shared.infrastructure.audit import SQLAlchemyAuditLog
from helpdesk_ai.shared.infrastructure.notifications import (
    INotificationSink,
    LoggingNotificationSink,
    NotificationDispatcher,
    WebhookNotificationSink,
)

# Knowledge
from helpdesk_ai.knowledge.application import (
    ArticleIndexer,
    AvailabilityProbe,
    ContextBuilder,
    RetrievalOrchestrator,
    SimilarityStore,
)
from helpdesk_ai.knowledge.domain import Vectorizer
from helpdesk_ai.knowledge.infrastructure.repositories import (
    SQLAlchemyArticleRepository,
    SQLAlchemyEmbeddingRepository,
)

# Tickets, suggestions, triage, escalation
from helpdesk_ai.tickets.infrastructure.repositories import SQLAlchemyTicketRepository, SQLAlchemyUserDirectory
from helpdesk_ai.suggestions.application import SuggestionService
from helpdesk_ai.suggestions.infrastructure.repositories import SQLAlchemySuggestionRepository
from helpdesk_ai.triage.application import TriageWorkflow
from helpdesk_ai.triage.infrastructure.external import build_llm_provider
from helpdesk_ai.escalation.application import EscalationService
from helpdesk_ai.escalation.infrastructure import EscalationConfigManager, EscalationScheduler

# Logging
from helpdesk_ai.shared.infrastructure.logging import get_logger, setup_logging

logger = get_logger(__name__)


@dataclass
class Services:
    """Service instances shared by the entry points."""
    settings: Settings
    articles: SQLAlchemyArticleRepository
    tickets: SQLAlchemyTicketRepository
    users: SQLAlchemyUserDirectory
    audit_log: SQLAlchemyAuditLog
    notifier: NotificationDispatcher
    store: SimilarityStore
    indexer: ArticleIndexer
    orchestrator: RetrievalOrchestrator
    suggestions: SuggestionService
    escalation: EscalationService
    workflow: TriageWorkflow
    config_manager: EscalationConfigManager
    scheduler: Optional[EscalationScheduler] = None


def build_notification_sink(config: Settings) -> INotificationSink:
    if config.notification_webhook_url:
        return WebhookNotificationSink(config.notification_webhook_url, config.notification_timeout_seconds)
    logger.info("Notification webhook not configured - notifications go to the log")
    return LoggingNotificationSink()


def build_services(config: Settings) -> Services:
    """
    Construct every service on top of an initialized database.

    The Milvus backend is only wired when ``milvus_uri`` is set; retrieval
    otherwise runs its local tiers.
    """
    session_maker = get_session_maker()

    articles = SQLAlchemyArticleRepository(session_maker)
    embeddings = SQLAlchemyEmbeddingRepository(session_maker)
    tickets = SQLAlchemyTicketRepository(session_maker)
    users = SQLAlchemyUserDirectory(session_maker)
    suggestion_repo = SQLAlchemySuggestionRepository(session_maker)
    audit_log = SQLAlchemyAuditLog(session_maker)
    notifier = NotificationDispatcher(build_notification_sink(config), config.notification_queue_size)

    backend = None
    if config.milvus_uri:
        backend = MilvusSearchBackend(
            uri=config.milvus_uri,
            token=config.milvus_token,
            collection_name=config.milvus_collection_name,
            dimension=config.embedding_dimension,
        )
    else:
        logger.info("Milvus not configured - retrieval uses local tiers only")

    store = SimilarityStore(
        articles,
        embeddings,
        vectorizer=Vectorizer(config.embedding_dimension),
        backend=backend,
        model_tag=config.embedding_model_tag,
    )
    probe = None
    if backend is not None:
        probe = AvailabilityProbe(
            check=backend.is_available,
            ttl=config.backend_probe_ttl_seconds,
            timeout=config.backend_probe_timeout_seconds,
        )
    orchestrator = RetrievalOrchestrator(
        articles,
        store,
        backend=backend,
        probe=probe,
        hybrid_weight=config.hybrid_weight,
        similarity_threshold=config.similarity_threshold,
    )

    config_manager = EscalationConfigManager()
    config_manager.load(config.escalation_config_path)

    suggestions = SuggestionService(suggestion_repo, tickets, audit_log, notifier)
    escalation = EscalationService(
        tickets,
        suggestion_repo,
        users,
        audit_log,
        notifier,
        config_provider=config_manager,
        sweep_limit=config.escalation_sweep_limit,
    )
    workflow = TriageWorkflow(
        tickets,
        users,
        build_llm_provider(config.llm_provider),
        orchestrator,
        suggestions,
        audit_log,
        notifier,
        escalation_service=escalation,
        context_builder=ContextBuilder(config.max_context_tokens),
        auto_close_enabled=config.auto_close_enabled,
        auto_close_threshold=config.auto_close_threshold,
        low_confidence_threshold=config.low_confidence_threshold,
        retrieval_limit=config.retrieval_limit,
        max_retries=config.triage_max_retries,
    )

    return Services(
        settings=config,
        articles=articles,
        tickets=tickets,
        users=users,
        audit_log=audit_log,
        notifier=notifier,
        store=store,
        indexer=ArticleIndexer(store),
        orchestrator=orchestrator,
        suggestions=suggestions,
        escalation=escalation,
        workflow=workflow,
        config_manager=config_manager,
    )


@asynccontextmanager
async def application(
    config: Optional[Settings] = None,
    start_scheduler: bool = True,
) -> AsyncGenerator[Services, None]:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and create tables
    3. Build services, load escalation config
    4. Start notification worker and config watcher
    5. Start escalation scheduler

    SHUTDOWN (reverse order):
    1. Stop scheduler and config watcher
    2. Wait for background indexing, drain notifications
    3. Close database connections
    """
    config = config or default_settings

    # === STARTUP ===
    setup_logging(config.log_level, config.environment)
    logger.info("Starting Helpdesk AI", extra={
        "version": config.app_version,
        "environment": config.environment,
    })

    init_database(config.database_url)
    # Development convenience; production schemas are managed by migrations
    await create_tables()

    services = build_services(config)
    services.notifier.start()
    services.config_manager.start_watching()

    if start_scheduler and config.escalation_enabled:
        services.scheduler = EscalationScheduler(interval_seconds=config.escalation_sweep_interval)
        await services.scheduler.start(services.escalation.run_periodic_sweep)

    logger.info("Helpdesk AI started")
    try:
        yield services
    finally:
        # === SHUTDOWN ===
        logger.info("Shutting down Helpdesk AI")
        if services.scheduler is not None:
            await services.scheduler.stop()
        services.config_manager.stop_watching()
        await services.indexer.wait_idle()
        await services.notifier.stop()
        await close_database()
