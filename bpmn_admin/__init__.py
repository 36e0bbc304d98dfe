"""
BPMN Admin - workflow template administration service
"""

__version__ = "0.1.0"
