"""
Custom Exceptions for BPMN Admin

Domain errors carry the HTTP status the API layer answers with and whether
the caller may retry.

Exception Hierarchy:
- BpmnAdminException (base)
  - NotFoundError (don't retry)
  - WorkflowError (don't retry)
    - InvalidXmlError
    - ConstraintError
    - WorkflowImportError (aggregate of WorkflowError)
  - AlreadyCommittedError (don't retry, needs explicit force)
  - InvalidDataError (don't retry)
  - StaleVersionError (reload and retry)
  - StagedCopyNotFoundError (restart copy preparation)
  - IdAllocationError (retry)
  - AccessError (don't retry)
  - ExternalServiceError (retry)
"""

from typing import Any, List, Optional


class BpmnAdminException(Exception):
    """Base exception for all BPMN Admin errors"""

    http_status = 500

    def __init__(
        self,
        message: str,
        retry_allowed: bool = True,
        details: Optional[List[Any]] = None,
        http_status: Optional[int] = None
    ):
        super().__init__(message)
        self.message = message
        self.retry_allowed = retry_allowed
        self.details = details or []
        if http_status is not None:
            self.http_status = http_status


# ============================================================================
# LOOKUP ERRORS
# ============================================================================

class NotFoundError(BpmnAdminException):
    """Referenced template does not exist"""

    http_status = 404

    class Messages:
        WORKFLOW_TEMPLATE = "Workflow template not found."
        WORKFLOW_HISTORY = "Workflow history not found."
        TAG = "Workflow template tag not found."

    def __init__(self, message: str = Messages.WORKFLOW_TEMPLATE):
        super().__init__(message, retry_allowed=False)


# ============================================================================
# WORKFLOW ERRORS
# ============================================================================

class WorkflowError(BpmnAdminException):
    """Workflow template is structurally or semantically invalid"""

    http_status = 400

    class Messages:
        INVALID_XML = "Invalid XML."
        CONSTRAINT = "Some process has already started from this template."
        IMPORT = "Workflow import failed."

    def __init__(self, message: str, details: Optional[List[Any]] = None):
        super().__init__(message, retry_allowed=False, details=details)


class InvalidXmlError(WorkflowError):
    """
    BPMN schema does not parse or lacks definitions/process.
    Callers that only need dependents (deletion) fall back to the bare row.
    """

    def __init__(self, message: str = WorkflowError.Messages.INVALID_XML):
        super().__init__(message)


class ConstraintError(WorkflowError):
    """Template is still referenced by workflow instances"""

    http_status = 409

    def __init__(self, message: str = WorkflowError.Messages.CONSTRAINT):
        super().__init__(message)


class WorkflowImportError(WorkflowError):
    """
    Import rows were created but reference registers, units or number
    templates missing in this environment. Carries every problem at once.
    """

    def __init__(self, errors: List[WorkflowError], message: str = WorkflowError.Messages.IMPORT):
        super().__init__(message, details=[error.message for error in errors])
        self.errors = errors


# ============================================================================
# REQUEST ERRORS
# ============================================================================

class AlreadyCommittedError(BpmnAdminException):
    """Entity with the same ID (tag: name) already exists and no force flag was given"""

    http_status = 409

    class Messages:
        WORKFLOW = "Workflow template with this ID already exists."
        TAG = "Workflow template tag with this name already exists."

    def __init__(self, message: str = Messages.WORKFLOW):
        super().__init__(message, retry_allowed=False)


class InvalidDataError(BpmnAdminException):
    """Malformed request payload"""

    http_status = 400

    def __init__(self, message: str = "Invalid data."):
        super().__init__(message, retry_allowed=False)


class StaleVersionError(BpmnAdminException):
    """
    Last-Workflow-History-Id header doesn't match the latest history row.
    Raised before any mutating work starts.
    """

    http_status = 409

    def __init__(self, last_workflow_history: Optional[dict] = None):
        super().__init__(
            "Header Last-Workflow-History-Id expired.",
            retry_allowed=False,
            details=[{"lastWorkflowHistory": last_workflow_history}] if last_workflow_history else None
        )


class StagedCopyNotFoundError(BpmnAdminException):
    """Prepared copy expired or never existed; prepare the copy again"""

    http_status = 404

    def __init__(self, message: str = "Saved workflow template wasn't found. Prepare the copy again."):
        super().__init__(message, retry_allowed=False)


class IdAllocationError(BpmnAdminException):
    """No free workflow template ID could be allocated"""

    http_status = 409

    def __init__(self, message: str):
        super().__init__(message, retry_allowed=True)


class AccessError(BpmnAdminException):
    """Operation is disabled for this deployment"""

    http_status = 403

    class Messages:
        WORKFLOW_EDITOR = "Workflow editor is disabled."

    def __init__(self, message: str = Messages.WORKFLOW_EDITOR):
        super().__init__(message, retry_allowed=False)


# ============================================================================
# EXTERNAL SERVICE ERRORS
# ============================================================================

class ExternalServiceError(BpmnAdminException):
    """
    Register service (or another dependency) unreachable or failing.
    Should be retried.
    """

    http_status = 502

    def __init__(self, message: str, service: Optional[str] = None):
        super().__init__(message, retry_allowed=True)
        self.service = service
