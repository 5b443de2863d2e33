# src/change_assistant/api/__init__.py
"""
Generation backend clients.
"""

from change_assistant.api.client import (
    FailureKind,
    GenerationBackend,
    GenerationResult,
    HttpGenerationBackend
)

__all__ = [
    'FailureKind',
    'GenerationBackend',
    'GenerationResult',
    'HttpGenerationBackend'
]
