"""
Structured logging for NeoMed: JSON lines on stdout, optional Sentry.
"""

import logging
import sys
from typing import Any, Dict, Optional
import structlog
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from neomed.core.config import Settings


def configure_logging(settings: Settings):
    level = logging.DEBUG if settings.debug else getattr(logging, settings.log_level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", level=level, stream=sys.stdout)

    # SQL echo only in debug; pool and outbound HTTP chatter stays quiet
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if settings.debug else logging.WARNING)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    if settings.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            integrations=[FastApiIntegration(), SqlalchemyIntegration()],
            traces_sample_rate=0.1 if settings.is_production else 1.0,
            environment=settings.app_env,
            release=settings.app_version,
        )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


class AuditLogger:
    """Who did what: registrations, logins, data saves, emergency and document events.

    ``owner_id`` is the account whose tenant documents the action touched,
    when that differs from the acting user.
    """

    def __init__(self):
        self.logger = get_logger("audit")

    def log_user_action(
        self,
        user_id: str,
        action: str,
        entity: str,
        entity_id: Optional[str] = None,
        owner_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.logger.info(
            action,
            user_id=user_id,
            entity=entity,
            entity_id=entity_id,
            owner_id=owner_id,
            details=details or {},
        )

    def log_security_event(
        self,
        event_type: str,
        user_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        """Failed logins, rejected roles and the reserved admin being restored."""
        self.logger.warning(
            event_type,
            user_id=user_id,
            ip_address=ip_address,
            details=details or {},
        )


audit_logger = AuditLogger()


class RequestLogger:
    def __init__(self):
        self.logger = get_logger("requests")

    def log_request(self, request, response, process_time: float):
        self.logger.info(
            "HTTP request",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            process_time=round(process_time, 4),
        )


request_logger = RequestLogger()
