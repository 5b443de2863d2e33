# src/change_assistant/__init__.py
"""
Visual Change Assistant: confidence-driven code changes from visual edits.
"""

__version__ = "0.1.0"
__author__ = "Visual Change Assistant Team"

from change_assistant.core.reasoning_engine import ReasoningOrchestrator, create_orchestrator
from change_assistant.core.confidence_engine import ChangeConfidenceEngine
from change_assistant.core.validation_engine import SmartValidationEngine
from change_assistant.api.client import HttpGenerationBackend, GenerationBackend, GenerationResult

__all__ = [
    'ReasoningOrchestrator',
    'create_orchestrator',
    'ChangeConfidenceEngine',
    'SmartValidationEngine',
    'HttpGenerationBackend',
    'GenerationBackend',
    'GenerationResult'
]
