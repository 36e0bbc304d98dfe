"""
Configuration for BPMN Admin

All settings come from environment variables (optionally loaded from a .env
file). Use get_settings() to obtain the process-wide instance.
"""

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool = False) -> bool:
    return os.getenv(name, "true" if default else "false").strip().lower() in ("1", "true", "yes")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value not in (None, "") else default


@dataclass(frozen=True)
class Settings:
    """
    Runtime settings.

    Attributes:
        database_url: SQLAlchemy URL of the templates database
        redis_url: Redis URL (staged copies, Celery broker)
        register_service_url: Base URL of the register service
        register_keys_limit: Max register keys fetched to validate imports
        register_timeout: Register service request timeout (seconds)
        auto_save_version_after: Auto-save debounce window (seconds)
        copy_staging_ttl: Lifetime of a prepared copy (seconds)
        copy_id_allocation_attempts: Retries when a copy's new ID collides
        max_workflow_template_id: Workflow template ID ceiling
        copy_name_prefix: Prefix added to name/description of a copy
        workflow_editor_disabled: Reject every editor mutation when True
    """
    database_url: str = "sqlite:///./bpmn_admin.db"
    redis_url: str = "redis://localhost:6379/0"
    register_service_url: Optional[str] = None
    register_keys_limit: int = 100000
    register_timeout: int = 10
    auto_save_version_after: int = 60
    copy_staging_ttl: int = 15 * 60
    copy_id_allocation_attempts: int = 3
    max_workflow_template_id: int = 999999
    copy_name_prefix: str = "Копія - "
    workflow_editor_disabled: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        database_url = os.getenv("DATABASE_URL", cls.database_url)
        if database_url.startswith("postgres://"):
            # Railway-style URL (postgres:// -> postgresql://)
            database_url = database_url.replace("postgres://", "postgresql://", 1)

        return cls(
            database_url=database_url,
            redis_url=os.getenv("REDIS_URL", cls.redis_url),
            register_service_url=os.getenv("REGISTER_SERVICE_URL"),
            register_keys_limit=_env_int("REGISTER_KEYS_LIMIT", cls.register_keys_limit),
            register_timeout=_env_int("REGISTER_TIMEOUT", cls.register_timeout),
            auto_save_version_after=_env_int("AUTO_SAVE_VERSION_AFTER", cls.auto_save_version_after),
            copy_staging_ttl=_env_int("COPY_STAGING_TTL", cls.copy_staging_ttl),
            copy_id_allocation_attempts=_env_int("COPY_ID_ALLOCATION_ATTEMPTS", cls.copy_id_allocation_attempts),
            max_workflow_template_id=_env_int("MAX_WORKFLOW_TEMPLATE_ID", cls.max_workflow_template_id),
            copy_name_prefix=os.getenv("COPY_NAME_PREFIX", cls.copy_name_prefix),
            workflow_editor_disabled=_env_bool("WORKFLOW_EDITOR_DISABLED"),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings (read once)"""
    return Settings.from_env()
