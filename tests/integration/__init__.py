"""
Integration Tests for BPMN Admin

Integration tests cover end-to-end scenarios:
- REST API flows over an in-memory database
- Export/import and copy across the whole template graph
- Celery audit task persistence
"""
