# src/change_assistant/config.py
"""
Configuration loading: config.yaml plus .env files.

Defaults are filled with setdefault so a partial config.yaml is enough.
"""

import copy
import os
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, Optional

import yaml
from dotenv import load_dotenv

from change_assistant.core.change_models import ValidationLevel

logger = logging.getLogger(__name__)

API_KEY_ENV = "CHANGE_ASSISTANT_API_KEY"


def load_env() -> Optional[Path]:
    """Try to load .env file from multiple locations. Returns the loaded path."""
    possible_paths = [
        Path.cwd() / ".env",                                   # Current directory
        Path(__file__).parent.parent.parent / ".env",          # Project root from config.py
        Path.home() / ".change-assistant.env",                 # User home directory
    ]

    for env_path in possible_paths:
        if env_path.exists():
            load_dotenv(dotenv_path=env_path)
            logger.debug(f"Loaded .env from: {env_path}")
            return env_path

    logger.debug("No .env file found in standard locations")
    return None


def load_config(config_path: str = "config.yaml") -> Dict[str, Any]:
    """Load configuration from YAML file with defaults."""
    path = Path(config_path)
    config: Dict[str, Any] = {}

    if path.exists():
        with open(path, 'r', encoding='utf-8') as f:
            config = yaml.safe_load(f) or {}
        logger.info(f"Loaded configuration from {path}")
    else:
        logger.info(f"Config file {config_path} not found, using defaults")

    # Ensure required structure
    if not isinstance(config, dict):
        config = {}

    return apply_defaults(config)


def apply_defaults(config: Dict[str, Any]) -> Dict[str, Any]:
    """Fill missing sections and keys with defaults. Mutates and returns config."""
    config.setdefault('backend', {})
    config['backend'].setdefault('base_url', 'https://api.deepseek.com')
    config['backend'].setdefault('model', 'deepseek-chat')
    config['backend'].setdefault('api_key', '${' + API_KEY_ENV + '}')
    config['backend'].setdefault('timeout', 60.0)
    config['backend'].setdefault('max_tokens', 8192)
    config['backend'].setdefault('temperature', 0.1)

    config.setdefault('confidence', {})
    config['confidence'].setdefault('high', 0.8)
    config['confidence'].setdefault('medium', 0.6)
    config['confidence'].setdefault('low', 0.4)

    config.setdefault('strategies', {})
    config['strategies'].setdefault('max_retries', 3)
    config['strategies'].setdefault('fallback_enabled', True)
    config['strategies'].setdefault('max_rate_limit_waits', 5)
    config['strategies'].setdefault('default_retry_after', 1.0)
    config['strategies'].setdefault('length_guard_ratio', 0.8)
    config['strategies'].setdefault('feedback_retry', True)

    config.setdefault('validation', {})
    config['validation'].setdefault('level', None)

    config.setdefault('performance', {})
    config['performance'].setdefault('max_context_tokens', 8000)

    return config


def resolve_api_key(config: Dict[str, Any]) -> Optional[str]:
    """Get API key: first from environment, then from config (with ${VAR} templating)."""
    api_key = os.getenv(API_KEY_ENV)
    if api_key:
        return api_key

    api_key = config.get('backend', {}).get('api_key')
    if isinstance(api_key, str) and api_key.startswith('${') and api_key.endswith('}'):
        api_key = os.getenv(api_key[2:-1])

    if not api_key or api_key == "your_api_key_here":
        return None
    return api_key


@dataclass(frozen=True)
class AssistantSettings:
    """Typed view of the engine-related configuration."""
    high_confidence: float = 0.8
    medium_confidence: float = 0.6
    low_confidence: float = 0.4
    max_retries: int = 3
    fallback_enabled: bool = True
    max_rate_limit_waits: int = 5
    default_retry_after: float = 1.0
    length_guard_ratio: float = 0.8
    feedback_retry: bool = True
    validation_level: Optional[ValidationLevel] = None
    max_context_tokens: int = 8000

    def __post_init__(self):
        if not 0.0 < self.low_confidence < self.medium_confidence < self.high_confidence <= 1.0:
            raise ValueError(
                "Confidence thresholds must satisfy 0 < low < medium < high <= 1, got "
                f"{self.low_confidence}/{self.medium_confidence}/{self.high_confidence}"
            )
        if self.max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {self.max_retries}")

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'AssistantSettings':
        """Build settings from a loaded config dict."""
        config = apply_defaults(copy.deepcopy(config))
        level = config['validation'].get('level')
        return cls(
            high_confidence=float(config['confidence']['high']),
            medium_confidence=float(config['confidence']['medium']),
            low_confidence=float(config['confidence']['low']),
            max_retries=int(config['strategies']['max_retries']),
            fallback_enabled=bool(config['strategies']['fallback_enabled']),
            max_rate_limit_waits=int(config['strategies']['max_rate_limit_waits']),
            default_retry_after=float(config['strategies']['default_retry_after']),
            length_guard_ratio=float(config['strategies']['length_guard_ratio']),
            feedback_retry=bool(config['strategies']['feedback_retry']),
            validation_level=ValidationLevel(level) if level else None,
            max_context_tokens=int(config['performance']['max_context_tokens'])
        )

    @classmethod
    def from_file(cls, config_path: str = "config.yaml") -> 'AssistantSettings':
        return cls.from_config(load_config(config_path))
