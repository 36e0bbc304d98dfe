"""
Pydantic schemas for API request/response validation

Field names follow the camelCase document format used by exports and
history snapshots.
"""

from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List


# ============================================================================
# WORKFLOW TEMPLATE SCHEMAS
# ============================================================================

class WorkflowTemplateBase(BaseModel):
    name: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    xmlBpmnSchema: Optional[str] = Field(None, description="BPMN 2.0 XML")
    data: Optional[Dict[str, Any]] = Field(None, description="Editor data, e.g. {\"numberTemplateId\": 7}")
    isActive: Optional[bool] = None
    workflowTemplateCategoryId: Optional[int] = None
    accessUnits: Optional[List[int]] = None


class WorkflowTemplateCreate(WorkflowTemplateBase):
    """Schema for creating a workflow template (ID defaults to latest + 1)"""
    id: Optional[int] = Field(None, gt=0)

    class Config:
        json_schema_extra = {
            "example": {
                "name": "Vacation request",
                "xmlBpmnSchema": "<bpmn:definitions>...</bpmn:definitions>",
                "data": {"numberTemplateId": 7},
            }
        }


class WorkflowTemplateUpdate(WorkflowTemplateBase):
    """Schema for replacing a workflow template"""


class SaveVersionRequest(BaseModel):
    type: Optional[str] = Field(None, pattern="^(major|minor|patch)$", description="Version bump")
    name: Optional[str] = Field(None, max_length=255, description="Commit message title")
    description: Optional[str] = None


class CopyRequest(BaseModel):
    requestToken: str = Field(..., min_length=1)
    excludedDiffIds: List[str] = Field(default_factory=list, description="Diffs to leave unrewritten")


class ErrorsSubscriptionRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)


# ============================================================================
# TAG SCHEMAS
# ============================================================================

class TagCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    color: Optional[str] = Field(None, max_length=32, description="e.g. #1E88E5")
    description: Optional[str] = None


class TagUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    color: Optional[str] = Field(None, max_length=32)
    description: Optional[str] = None


class WorkflowTemplateTagsRequest(BaseModel):
    tagIds: List[int] = Field(default_factory=list, description="Replaces the current tags (10 at most)")


# ============================================================================
# RESPONSES
# ============================================================================

class DiffResponse(BaseModel):
    id: str
    type: str
    templateId: int
    index: int
    beforeReplacing: str
    afterReplacing: str


class CopyPreparationResponse(BaseModel):
    requestToken: str
    diffs: List[DiffResponse]
    diffCount: int


class CopyResponse(BaseModel):
    newWorkflowTemplateId: int


class WorkflowHistoryResponse(BaseModel):
    id: int
    workflowTemplateId: int
    userId: Optional[str] = None
    version: Optional[str] = None
    isCurrentVersion: bool
    meta: Optional[Dict[str, Any]] = None
    name: Optional[str] = None
    description: Optional[str] = None
    createdAt: Optional[str] = None
    data: Optional[Dict[str, Any]] = None


class MessageResponse(BaseModel):
    message: str
