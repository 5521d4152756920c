import logging
from typing import Optional, Tuple

from application.services import LinkingWorkflow
from config import Config, load_config
from domain.repositories import AccountStorage, AuditSink
from infrastructure.db.account_repository_sqlite import SqliteAccountStorage
from infrastructure.discord.role_synchronizer import DiscordRoleSynchronizer
from infrastructure.discord.webhook_logger import DiscordWebhookAuditLogger, LoggingAuditLogger

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_storage(config: Config) -> AccountStorage:
    """Postgres when DATABASE_URL is set, SQLite at DB_PATH otherwise."""

    if config.database_url:
        from infrastructure.db.account_repository_postgres import PostgresAccountStorage

        return PostgresAccountStorage(config.database_url)
    return SqliteAccountStorage(config.db_path)


def build_audit_sink(config: Config) -> AuditSink:
    if config.log_webhook_url:
        return DiscordWebhookAuditLogger(config.log_webhook_url)
    logger.warning("LOG_WEBHOOK_URL is not set; audit entries go to the log only.")
    return LoggingAuditLogger()


def build_workflow(config: Optional[Config] = None) -> Tuple[LinkingWorkflow, AccountStorage]:
    """
    Wire configuration, storage, role authority and audit sink together.

    The HTTP layer keeps the returned storage for the lifetime of the process
    and passes it to each workflow call.
    """

    if config is None:
        config = load_config()
    configure_logging(config.log_level)

    workflow = LinkingWorkflow(
        config,
        DiscordRoleSynchronizer(config.role_rules),
        build_audit_sink(config),
    )
    return workflow, build_storage(config)
