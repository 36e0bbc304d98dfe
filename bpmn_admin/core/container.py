"""
Service container

Process-wide collaborators are built once at startup and handed to the
per-request business objects together with the request's Session.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ..config import Settings, get_settings
from ..integrations.register_client import RegisterClient
from .audit import AuditLogger
from .circuit_breaker import CircuitBreaker
from .sandbox import FunctionLiteralDetector
from .staging_cache import StagedCopyStore
from .xml_converter import XmlJsConverter

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    staged_copies: StagedCopyStore
    register_client: RegisterClient
    function_detector: FunctionLiteralDetector
    xml_converter: XmlJsConverter
    audit: AuditLogger

    @classmethod
    def build(cls, settings: Optional[Settings] = None) -> "ServiceContainer":
        settings = settings or get_settings()

        container = cls(
            settings=settings,
            staged_copies=StagedCopyStore.from_url(settings.redis_url, ttl=settings.copy_staging_ttl),
            register_client=RegisterClient(
                base_url=settings.register_service_url,
                timeout=settings.register_timeout,
                circuit_breaker=CircuitBreaker(name="register", failure_threshold=5, timeout=60),
            ),
            function_detector=FunctionLiteralDetector(),
            xml_converter=XmlJsConverter(),
            audit=AuditLogger(),
        )
        logger.info("Service container initialized")
        return container
