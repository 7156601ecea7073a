"""OpenAI-compatible adapter that turns a prompt into one candidate script."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

import openai
from openai import OpenAI

from gptxt.prompt_builder import Prompt

DEFAULT_TEMPERATURE = 0.25
DEFAULT_MAX_TOKENS = 512
MIN_TEMPERATURE = 0.05
MAX_TEMPERATURE = 1.0


class GenerationError(RuntimeError):
    """Backend call failed; fatal to the session."""


class TransportError(GenerationError):
    """Network failure, timeout, or non-auth HTTP error from the backend."""


class AuthenticationFailure(GenerationError):
    """Backend rejected the API key."""


class EmptyResponseError(GenerationError):
    """Backend answered without usable script text."""


@dataclass(frozen=True)
class GenerationSettings:
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS


@dataclass(frozen=True)
class Candidate:
    """One generated (or user-edited) script and the settings that produced it."""

    script: str
    settings: GenerationSettings
    edited: bool = False
    prompt_tokens: int = 0
    completion_tokens: int = 0

    def with_script(self, script: str) -> "Candidate":
        """Replacement candidate holding user-edited text."""

        return replace(self, script=script, edited=True)


class GenerationClient:
    """Single round-trip chat completion wrapper; retries are the caller's call."""

    def __init__(self, llm_client, model_name: str = "gpt-4o-mini", request_timeout: Optional[float] = None) -> None:
        self.llm = llm_client
        self.model = model_name
        self.request_timeout = request_timeout

    def generate(self, prompt: Prompt, settings: GenerationSettings) -> Candidate:
        kwargs = {
            "model": self.model,
            "messages": prompt.messages(),
            "temperature": settings.temperature,
            "max_tokens": settings.max_tokens,
        }
        if self.request_timeout:
            kwargs["timeout"] = self.request_timeout

        try:
            response = self.llm.chat.completions.create(**kwargs)
        except (openai.AuthenticationError, openai.PermissionDeniedError) as exc:
            raise AuthenticationFailure(f"Authentication with the API failed: {_error_text(exc)}") from exc
        except openai.APITimeoutError as exc:
            raise TransportError("Request to the API timed out.") from exc
        except openai.APIConnectionError as exc:
            raise TransportError(f"Could not reach the API: {_error_text(exc)}") from exc
        except openai.APIStatusError as exc:
            raise TransportError(f"API returned HTTP {exc.status_code}: {_error_text(exc)}") from exc
        except openai.APIError as exc:
            raise EmptyResponseError(f"Malformed API response: {_error_text(exc)}") from exc

        script = _extract_script(response)
        usage = getattr(response, "usage", None)
        prompt_tokens = int(getattr(usage, "prompt_tokens", 0) or 0) if usage is not None else 0
        completion_tokens = int(getattr(usage, "completion_tokens", 0) or 0) if usage is not None else 0
        return Candidate(
            script=script,
            settings=settings,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
        )


def _extract_script(response) -> str:
    choices = getattr(response, "choices", None)
    if not choices:
        raise EmptyResponseError("API response contained no choices.")

    message = getattr(choices[0], "message", None)
    content = getattr(message, "content", None)
    if not isinstance(content, str):
        raise EmptyResponseError("API response did not contain message text.")
    if not content.strip():
        raise EmptyResponseError("API returned an empty program.")
    return content


def _error_text(exc: Exception) -> str:
    message = getattr(exc, "message", None) or str(exc)
    return str(message).strip() or type(exc).__name__


def build_openai_client(api_key: str, base_url: Optional[str] = None, timeout: Optional[float] = None) -> OpenAI:
    """Construct the OpenAI SDK client used by GenerationClient."""

    # One request per generate() call; the SDK retries by default.
    client_kwargs = {"api_key": api_key, "max_retries": 0}
    if base_url:
        client_kwargs["base_url"] = base_url
    if timeout:
        client_kwargs["timeout"] = timeout
    return OpenAI(**client_kwargs)
