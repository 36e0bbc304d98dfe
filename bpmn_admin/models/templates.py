"""
Dependent Template Models
Task, document, gateway, event and number templates
"""

from sqlalchemy import Column, Integer, String, Text, JSON, DateTime, ForeignKey
from datetime import datetime
from . import Base, SerializableMixin


class DocumentTemplate(SerializableMixin, Base):
    """Form definition (JSON schema) filled in by a task performer"""
    __tablename__ = "document_templates"

    __serialized__ = {
        "id": "id",
        "name": "name",
        "json_schema": "jsonSchema",
        "json_schema_raw": "jsonSchemaRaw",
        "html_template": "htmlTemplate",
        "additional_data_to_sign": "additionalDataToSign",
        "created_at": "createdAt",
        "updated_at": "updatedAt",
    }

    id = Column(Integer, primary_key=True, autoincrement=False, index=True)
    name = Column(String(255), nullable=True)
    json_schema = Column(JSON, nullable=True)
    json_schema_raw = Column(Text, nullable=True)
    html_template = Column(Text, nullable=True)
    additional_data_to_sign = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<DocumentTemplate(id={self.id}, name='{self.name}')>"


class TaskTemplate(SerializableMixin, Base):
    """
    Task Template Model

    A BPMN task node (task-<id>). Owns exactly one document template.
    """
    __tablename__ = "task_templates"

    __serialized__ = {
        "id": "id",
        "name": "name",
        "document_template_id": "documentTemplateId",
        "json_schema": "jsonSchema",
        "json_schema_raw": "jsonSchemaRaw",
        "html_template": "htmlTemplate",
        "created_at": "createdAt",
        "updated_at": "updatedAt",
    }

    id = Column(Integer, primary_key=True, autoincrement=False, index=True)
    name = Column(String(255), nullable=True)
    document_template_id = Column(Integer, ForeignKey("document_templates.id"), nullable=True, index=True)

    # Example: {"setPermissions": [{"performerUnits": [1000002]}], ...}
    json_schema = Column(JSON, nullable=True)
    json_schema_raw = Column(Text, nullable=True)
    html_template = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<TaskTemplate(id={self.id}, document_template_id={self.document_template_id})>"


class GatewayTemplate(SerializableMixin, Base):
    """A BPMN gateway node (gateway-<id>)"""
    __tablename__ = "gateway_templates"

    __serialized__ = {
        "id": "id",
        "name": "name",
        "gateway_type_id": "gatewayTypeId",
        "json_schema": "jsonSchema",
        "json_schema_raw": "jsonSchemaRaw",
        "created_at": "createdAt",
        "updated_at": "updatedAt",
    }

    id = Column(Integer, primary_key=True, autoincrement=False, index=True)
    name = Column(String(255), nullable=True)
    gateway_type_id = Column(Integer, nullable=True)
    json_schema = Column(JSON, nullable=True)
    json_schema_raw = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<GatewayTemplate(id={self.id}, name='{self.name}')>"


class EventTemplate(SerializableMixin, Base):
    """A BPMN event node (event-<id>)"""
    __tablename__ = "event_templates"

    __serialized__ = {
        "id": "id",
        "name": "name",
        "event_type_id": "eventTypeId",
        "json_schema": "jsonSchema",
        "json_schema_raw": "jsonSchemaRaw",
        "html_template": "htmlTemplate",
        "created_at": "createdAt",
        "updated_at": "updatedAt",
    }

    id = Column(Integer, primary_key=True, autoincrement=False, index=True)
    name = Column(String(255), nullable=True)
    event_type_id = Column(Integer, nullable=True)
    json_schema = Column(JSON, nullable=True)
    json_schema_raw = Column(Text, nullable=True)
    html_template = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<EventTemplate(id={self.id}, name='{self.name}')>"


class NumberTemplate(SerializableMixin, Base):
    """Document number format referenced by workflowTemplate.data.numberTemplateId"""
    __tablename__ = "number_templates"

    __serialized__ = {
        "id": "id",
        "name": "name",
        "template": "template",
        "created_at": "createdAt",
        "updated_at": "updatedAt",
    }

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=True)
    template = Column(String(255), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<NumberTemplate(id={self.id}, template='{self.template}')>"
