# src/change_assistant/api/client.py
"""
Generation backend: the single capability the execution engine needs.

`generate` never raises transport errors. Every failure comes back as a
typed GenerationResult so the engine can decide between waiting, escalating
and aborting.
"""

import copy
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable
import logging

import httpx

from change_assistant.config import apply_defaults, load_config, load_env, resolve_api_key, API_KEY_ENV

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a careful front-end engineer. You modify source files exactly as "
    "instructed and return complete file contents without commentary."
)


class FailureKind(str, Enum):
    """How a failed generation call should be treated."""
    RATE_LIMITED = "rate-limited"  # wait and call again
    TRANSIENT = "transient"        # escalate to the next strategy
    PERMANENT = "permanent"        # stop the chain
    CANCELLED = "cancelled"        # escalate to the next strategy


@dataclass(frozen=True)
class GenerationResult:
    """Success text or a typed failure."""
    content: Optional[str] = None
    failure: Optional[FailureKind] = None
    message: str = ""
    retry_after: Optional[float] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls, content: str) -> 'GenerationResult':
        return cls(content=content)

    @classmethod
    def failed(cls, kind: FailureKind, message: str,
               retry_after: Optional[float] = None) -> 'GenerationResult':
        return cls(failure=kind, message=message, retry_after=retry_after)


@runtime_checkable
class GenerationBackend(Protocol):
    """Anything that turns an instruction into proposed file content."""

    async def generate(self, instruction: str, *, file_path: str,
                       current_content: str) -> GenerationResult:
        ...


def failure_from_error(error: 'GenerationBackendError') -> GenerationResult:
    """Map a backend exception onto a typed failure."""
    if isinstance(error, RateLimitError):
        return GenerationResult.failed(FailureKind.RATE_LIMITED, str(error), error.retry_after)
    if isinstance(error, (AuthenticationError, ConfigurationError, ContextTooLargeError)):
        return GenerationResult.failed(FailureKind.PERMANENT, str(error))
    if isinstance(error, APIError) and error.status_code is not None and error.status_code < 500:
        return GenerationResult.failed(FailureKind.PERMANENT, str(error))
    return GenerationResult.failed(FailureKind.TRANSIENT, str(error))


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class HttpGenerationBackend:
    """OpenAI-compatible chat completions backend over httpx."""

    def __init__(self, config: Optional[Dict[str, Any]] = None, config_path: str = "config.yaml",
                 api_key: Optional[str] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        load_env()

        if config is not None:
            self.config = apply_defaults(copy.deepcopy(config))
        else:
            self.config = load_config(config_path)

        self.api_key = api_key or resolve_api_key(self.config)
        if not self.api_key:
            raise ConfigurationError(
                f"{API_KEY_ENV} not configured. Please set it in .env file or config.yaml")

        backend = self.config['backend']
        self.base_url = backend['base_url'].rstrip('/')
        self.model = backend['model']
        self.max_tokens = int(backend['max_tokens'])
        self.temperature = float(backend['temperature'])
        self.headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }
        self.client = httpx.AsyncClient(timeout=float(backend['timeout']), transport=transport)

    async def generate(self, instruction: str, *, file_path: str,
                       current_content: str) -> GenerationResult:
        """Send one instruction. Failures are returned, not raised."""
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": instruction},
        ]
        logger.debug(f"Generating for {file_path} ({len(current_content)} chars, {len(instruction)} char prompt)")

        try:
            content = await self.chat_completion(messages)
        except GenerationBackendError as e:
            result = failure_from_error(e)
            logger.warning(f"Generation for {file_path} failed ({result.failure.value}): {e}")
            return result

        if not content or not content.strip():
            return GenerationResult.failed(FailureKind.TRANSIENT, "Empty response from backend")
        return GenerationResult.success(content)

    async def chat_completion(self, messages: List[Dict[str, str]], max_tokens: Optional[int] = None,
                              temperature: Optional[float] = None) -> str:
        """Send a non-streaming chat completion request and return the message text."""
        payload = {
            "model": self.model,
            "messages": messages,
            "max_tokens": max_tokens if max_tokens is not None else self.max_tokens,
            "temperature": temperature if temperature is not None else self.temperature,
            "stream": False
        }

        try:
            response = await self.client.post(
                f"{self.base_url}/chat/completions",
                headers=self.headers,
                json=payload
            )
        except httpx.TimeoutException:
            raise APIError("Request timeout")
        except httpx.RequestError as e:
            raise APIError(f"Request failed: {str(e)}")

        if response.status_code == 401:
            raise AuthenticationError("Invalid API key")
        elif response.status_code == 429:
            raise RateLimitError("Rate limit exceeded",
                                 retry_after=_parse_retry_after(response.headers.get("Retry-After")))
        elif response.status_code == 400 and "context" in response.text.lower():
            raise ContextTooLargeError(f"Context too large: {response.text[:200]}")
        elif response.status_code >= 400:
            raise APIError(f"API error: {response.status_code}", response.status_code)

        try:
            data = response.json()
            return data["choices"][0]["message"]["content"] or ""
        except (json.JSONDecodeError, KeyError, IndexError, TypeError) as e:
            raise APIError(f"Malformed response: {e}")

    async def test_connection(self) -> bool:
        """Test if API connection works."""
        logger.info(f"Testing connection to {self.base_url} with model {self.model}")
        try:
            await self.chat_completion([{"role": "user", "content": "Hello"}], max_tokens=10)
        except GenerationBackendError as e:
            logger.error(f"Connection test failed: {e}")
            return False
        logger.info("Connection successful")
        return True

    async def close(self):
        """Close the HTTP client"""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


# Error classes
class GenerationBackendError(Exception):
    """Base exception for generation backend errors."""
    pass

class AuthenticationError(GenerationBackendError):
    """Raised when API authentication fails."""
    pass

class RateLimitError(GenerationBackendError):
    """Raised when rate limit is exceeded."""
    def __init__(self, message, retry_after=None):
        self.retry_after = retry_after
        super().__init__(message)

class APIError(GenerationBackendError):
    """Raised for general API errors."""
    def __init__(self, message, status_code=None):
        self.status_code = status_code
        super().__init__(message)

class ConfigurationError(GenerationBackendError):
    """Raised for configuration errors."""
    pass

class ContextTooLargeError(GenerationBackendError):
    """Raised when context exceeds token limits."""
    pass
