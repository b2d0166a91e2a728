"""Litestar application assembly for Herald."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from advanced_alchemy.config import EngineConfig
from advanced_alchemy.extensions.litestar import AsyncSessionConfig, SQLAlchemyAsyncConfig, SQLAlchemyPlugin
from litestar import Litestar
from litestar.datastructures import State
from litestar.exceptions import HTTPException
from litestar.logging import LoggingConfig

from herald.auth.permissions import Authorizer, RoleAuthorizer
from herald.config import Settings, get_settings
from herald.controllers import AlertPluginInstanceController
from herald.db.base import Base
from herald.db.services.membership_service import GroupLockRegistry, MembershipSynchronizer
from herald.db.stores import SQLGroupStore, SQLInstanceStore
from herald.lib.exceptions import GroupNotFoundError, http_exception_handler, internal_server_error_handler

logger = logging.getLogger(__name__)

EXCEPTION_HANDLERS: dict[type[Exception], Any] = {
    HTTPException: http_exception_handler,
    Exception: internal_server_error_handler,
}


def build_db_config(settings: Settings) -> SQLAlchemyAsyncConfig:
    """Build the SQLAlchemy async database configuration."""
    if "sqlite" in settings.db.url:
        engine_config = EngineConfig(echo=settings.db.echo)
    else:
        engine_config = EngineConfig(
            pool_size=settings.db.pool_size,
            max_overflow=settings.db.pool_overflow,
            pool_timeout=settings.db.pool_timeout,
            pool_pre_ping=settings.db.pool_pre_ping,
            echo=settings.db.echo,
        )

    return SQLAlchemyAsyncConfig(
        connection_string=settings.db.url,
        metadata=Base.metadata,
        create_all=False,
        session_config=AsyncSessionConfig(expire_on_commit=False),
        engine_config=engine_config,
    )


def build_logging_config(settings: Settings) -> LoggingConfig:
    level = "DEBUG" if settings.debug else settings.logging.level.upper()
    return LoggingConfig(root={"level": level, "handlers": ["queue_listener"]})


def create_app(
    settings: Settings | None = None,
    *,
    middleware: Sequence[Any] = (),
    authorizer: Authorizer | None = None,
) -> Litestar:
    """Create the Herald API application.

    Args:
        settings: Settings to use; defaults to ``get_settings()``
        middleware: Middleware to install, typically the deployment's
            authentication middleware that sets ``scope["user"]`` to a Principal
        authorizer: Permission check; defaults to :class:`RoleAuthorizer`
    """
    settings = settings or get_settings()
    db_config = build_db_config(settings)

    async def on_startup(_app: Litestar) -> None:
        """Check that the configured global alert group exists."""
        if not settings.alerts.validate_global_group_on_startup:
            return
        async with db_config.get_session() as session:
            synchronizer = MembershipSynchronizer(
                SQLGroupStore(session),
                SQLInstanceStore(session),
                global_group_id=settings.alerts.global_alert_group_id,
            )
            try:
                await synchronizer.validate_global_group()
            except GroupNotFoundError:
                logger.error(
                    "Configured global alert group %s does not exist; set alerts.global_alert_group_id",
                    settings.alerts.global_alert_group_id,
                )
                raise

    return Litestar(
        route_handlers=[AlertPluginInstanceController],
        plugins=[SQLAlchemyPlugin(config=db_config)],
        middleware=list(middleware),
        on_startup=[on_startup],
        exception_handlers=EXCEPTION_HANDLERS,
        logging_config=build_logging_config(settings),
        state=State(
            {
                "settings": settings,
                "authorizer": authorizer or RoleAuthorizer(),
                "group_locks": GroupLockRegistry(),
            }
        ),
        debug=settings.debug,
    )
