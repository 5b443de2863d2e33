# src/change_assistant/core/__init__.py
"""
Core modules for the Visual Change Assistant.
"""

from change_assistant.core.change_models import (
    ChangeApproach,
    ChangeAssistantError,
    ChangeConfidenceAssessment,
    ChangeImpactAnalysis,
    ChangeRequest,
    ChangeResult,
    ModelLoadError,
    ReasoningError,
    RepoSymbolicModel,
    TargetComponent,
    ValidationResult
)
from change_assistant.core.events import EventReporter, LoggingEventSink, RecordingEventSink, NullEventSink
from change_assistant.core.confidence_engine import ChangeConfidenceEngine
from change_assistant.core.prompt_builder import ContextualPromptBuilder, PromptContext
from change_assistant.core.validation_engine import SmartValidationEngine
from change_assistant.core.adaptive_engine import AdaptiveChangeEngine
from change_assistant.core.bundle_loader import BundleLoader, ChangeBundle
from change_assistant.core.reasoning_engine import ReasoningOrchestrator

__all__ = [
    'ChangeApproach',
    'ChangeAssistantError',
    'ChangeConfidenceAssessment',
    'ChangeImpactAnalysis',
    'ChangeRequest',
    'ChangeResult',
    'ModelLoadError',
    'ReasoningError',
    'RepoSymbolicModel',
    'TargetComponent',
    'ValidationResult',
    'EventReporter',
    'LoggingEventSink',
    'RecordingEventSink',
    'NullEventSink',
    'ChangeConfidenceEngine',
    'ContextualPromptBuilder',
    'PromptContext',
    'SmartValidationEngine',
    'AdaptiveChangeEngine',
    'BundleLoader',
    'ChangeBundle',
    'ReasoningOrchestrator'
]
