"""
Workflow template versioning

Every explicit save, auto-save, import and copy appends a WorkflowHistory row
with a semantic version and marks it as the current version of the template.

Bump rules (from the last version-bearing row):
    no history        → 1.0.0
    "major"           → (M+1).0.0
    "minor"           → M.(m+1).0
    anything else     → M.m.(p+1)   (save path only; import never bumps patch)

Legacy rows store a bare integer ("7"), read as 1.0.7.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..models import WorkflowHistory
from ..repositories import WorkflowHistoryRepository
from .graph_resolver import GraphResolver
from .serialization import parse_int

logger = logging.getLogger(__name__)

INITIAL_VERSION = "1.0.0"
SYSTEM_USER_ID = "SYSTEM"

BUMP_MAJOR = "major"
BUMP_MINOR = "minor"
BUMP_PATCH = "patch"

_SEMVER = re.compile(r"^[0-9]+\.[0-9]+\.[0-9]+$")


@dataclass
class UserContext:
    """Acting user and request metadata stored with every history row"""
    user_id: Optional[str] = None
    name: Optional[str] = None
    remote_address: Optional[str] = None
    x_forwarded_for: Optional[str] = None
    user_agent: Optional[str] = None

    def to_meta(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "name": self.name,
            "remoteAddress": self.remote_address,
            "xForwardedFor": self.x_forwarded_for,
            "userAgent": self.user_agent,
        }


def parse_version(version: Any) -> Tuple[int, int, int]:
    """
    "1.2.3" → (1, 2, 3); legacy "7" → (1, 0, 7)
    """
    value = str(version).strip()
    if not _SEMVER.match(value):
        value = f"1.0.{value}"

    # "1.0.<legacy>" always has at least three parts
    numbers = []
    for part, default in zip(value.split("."), (1, 0, 0)):
        parsed = parse_int(part)
        numbers.append(parsed if parsed is not None else default)
    return numbers[0], numbers[1], numbers[2]


def bump_version(current: Optional[Any], bump_type: Optional[str] = None, increment_patch: bool = True) -> str:
    """
    Next version after `current`.

    Args:
        current: Last stored version (None when there is no history)
        bump_type: "major", "minor" or None
        increment_patch: Bump patch when bump_type is neither major nor minor.
            Import passes False, so its default is a minor bump.

    Returns:
        Version string "major.minor.patch"
    """
    if current is None:
        return INITIAL_VERSION

    major, minor, patch = parse_version(current)

    if bump_type == BUMP_MAJOR:
        return f"{major + 1}.0.0"
    if bump_type == BUMP_MINOR or not increment_patch:
        return f"{major}.{minor + 1}.0"
    return f"{major}.{minor}.{patch + 1}"


class VersionManager:
    """
    Computes and commits workflow template versions.

    Works inside the caller's session: commit_version only flushes, so the
    history row lands in the same transaction as the mutation it records.
    """

    def __init__(self, db: Session, resolver: GraphResolver, auto_save_version_after: int = 60):
        self.db = db
        self.resolver = resolver
        self.auto_save_version_after = auto_save_version_after
        self.histories = WorkflowHistoryRepository(db)

    def compute_next_version(
        self,
        workflow_template_id: int,
        bump_type: Optional[str] = None,
        increment_patch: bool = True
    ) -> str:
        last = self.histories.find_last_version_by_workflow_template_id(workflow_template_id)
        return bump_version(last.version if last else None, bump_type, increment_patch)

    def commit_version(
        self,
        workflow_template_id: int,
        data: Dict[str, Any],
        version: str,
        user: Optional[UserContext] = None,
        name: Optional[str] = None,
        description: Optional[str] = None
    ) -> WorkflowHistory:
        """
        Clear the current-version flag of the template and append a new
        current row. Does not commit.
        """
        user = user or UserContext()

        self.histories.delete_is_current_version_by_workflow_template_id(workflow_template_id)
        history = self.histories.insert(WorkflowHistory(
            workflow_template_id=workflow_template_id,
            user_id=user.user_id or SYSTEM_USER_ID,
            data=data,
            version=version,
            is_current_version=True,
            meta=user.to_meta(),
            name=name,
            description=description,
        ))

        logger.info(
            f"Workflow template {workflow_template_id} committed as version {version}",
            extra={"workflow_template_id": workflow_template_id, "version": version, "history_id": history.id}
        )
        return history

    def save_version(
        self,
        workflow_template_id: int,
        bump_type: Optional[str] = None,
        name: Optional[str] = None,
        description: Optional[str] = None,
        user: Optional[UserContext] = None
    ) -> WorkflowHistory:
        """
        Snapshot the resolved graph as a new version and commit.

        Raises:
            NotFoundError: If the workflow template doesn't exist
            InvalidXmlError: If its BPMN schema is invalid
        """
        try:
            graph = self.resolver.resolve(workflow_template_id)
            version = self.compute_next_version(workflow_template_id, bump_type)
            history = self.commit_version(
                workflow_template_id,
                graph.to_dict(),
                version,
                user=user,
                name=name,
                description=description,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        return history

    def should_auto_save(self, last: WorkflowHistory, user: UserContext, now: Optional[datetime] = None) -> bool:
        """
        Debounce policy: a new auto-save version is needed if the user or the
        X-Forwarded-For changed, or the last row is older than the delay.
        """
        now = now or datetime.utcnow()
        meta = last.meta or {}

        if last.user_id != (user.user_id or SYSTEM_USER_ID):
            return True
        if last.meta and meta.get("xForwardedFor") != user.x_forwarded_for:
            return True
        return now > last.created_at + timedelta(seconds=self.auto_save_version_after)

    def auto_save_version(
        self,
        workflow_template_id: int,
        user: Optional[UserContext] = None,
        now: Optional[datetime] = None
    ) -> Optional[WorkflowHistory]:
        """
        Save a patch version unless debounced.

        Returns:
            New WorkflowHistory, or None when the call was debounced
        """
        user = user or UserContext()
        last = self.histories.find_last_by_workflow_template_id(workflow_template_id)

        if last is not None and not self.should_auto_save(last, user, now):
            logger.debug(
                f"Auto-save of workflow template {workflow_template_id} debounced",
                extra={"workflow_template_id": workflow_template_id, "last_history_id": last.id}
            )
            return None

        return self.save_version(workflow_template_id, user=user)

    def get_versions(self, workflow_template_id: int) -> List[WorkflowHistory]:
        return self.histories.get_versions_by_workflow_template_id(workflow_template_id)

    def find_version(self, workflow_template_id: int, version: str) -> Optional[WorkflowHistory]:
        return self.histories.find_version_by_workflow_template_id_and_version(workflow_template_id, version)

    def find_last(self, workflow_template_id: int) -> Optional[WorkflowHistory]:
        return self.histories.find_last_by_workflow_template_id(workflow_template_id)
