import json
import re
from abc import ABC, abstractmethod
from typing import Any

import httpx
import openai

_PLACEHOLDER_KEY = "your_openai_api_key"


class LLMError(Exception):
    """Base error for chat-completion calls."""


class LLMConfigurationError(LLMError):
    """The credential is missing, malformed or rejected; an operator must fix it."""


class LLMAuthenticationError(LLMConfigurationError):
    pass


class LLMRateLimitError(LLMError):
    pass


class LLMRequestError(LLMError):
    pass


class LLMBadRequestError(LLMRequestError):
    pass


class LLMNetworkError(LLMError):
    pass


class LLMResponseError(LLMError):
    pass


class CompletionClient(ABC):
    """Narrow seam over a chat-completion endpoint."""

    @abstractmethod
    def check_credentials(self) -> None:
        """Raise LLMConfigurationError if the client cannot authenticate."""

    @abstractmethod
    def complete(
        self,
        *,
        model: str,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        temperature: float = 0.0,
        json_mode: bool = False,
    ) -> str:
        """Return the first choice's message content."""


class OpenAICompletionClient(CompletionClient):
    def __init__(
        self,
        *,
        api_key: str,
        timeout_seconds: int,
        base_url: str | None = None,
        key_pattern: str = r"^sk-",
    ) -> None:
        self._api_key = api_key
        self._key_pattern = re.compile(key_pattern)
        # Retries are disabled: every failure is handled once by the caller.
        self._client = openai.OpenAI(
            api_key=api_key,
            timeout=timeout_seconds,
            base_url=base_url,
            max_retries=0,
        )

    def check_credentials(self) -> None:
        key = self._api_key.strip()
        if not key or _PLACEHOLDER_KEY in key or not self._key_pattern.match(key):
            raise LLMConfigurationError(
                "Invalid or missing OpenAI API key in server configuration"
            )

    def complete(
        self,
        *,
        model: str,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        temperature: float = 0.0,
        json_mode: bool = False,
    ) -> str:
        kwargs: dict[str, Any] = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        try:
            response = self._client.chat.completions.create(
                model=model,
                temperature=temperature,
                max_tokens=max_tokens,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                **kwargs,
            )
        except openai.AuthenticationError as exc:
            raise LLMAuthenticationError(
                "OpenAI API authentication failed: Invalid API key"
            ) from exc
        except openai.RateLimitError as exc:
            raise LLMRateLimitError(
                "OpenAI API rate limit exceeded: Too many requests"
            ) from exc
        except openai.BadRequestError as exc:
            raise LLMBadRequestError(
                f"OpenAI API error: {_provider_message(exc) or 'Bad request'}"
            ) from exc
        except openai.APIStatusError as exc:
            raise LLMRequestError(
                f"OpenAI API error ({exc.status_code}): "
                f"{_provider_message(exc) or 'Unknown error'}"
            ) from exc
        except (openai.APIConnectionError, httpx.TransportError) as exc:
            raise LLMNetworkError(
                "Network error: No response from OpenAI API. "
                "Check your internet connection."
            ) from exc
        except openai.OpenAIError as exc:
            raise LLMError(f"OpenAI API error: {exc}") from exc

        if not response.choices:
            raise LLMResponseError("OpenAI API returned no choices")
        content = response.choices[0].message.content
        if not content:
            raise LLMResponseError("OpenAI API returned an empty response")
        return content


def _provider_message(exc: openai.APIStatusError) -> str | None:
    body = exc.body
    if isinstance(body, dict):
        error = body.get("error", body)
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
    return None


def _extract_json_object(raw: str) -> str | None:
    """Return the first balanced {...} substring in raw, handling nested objects."""
    start = raw.find("{")
    if start == -1:
        return None
    depth = 0
    in_string = False
    escape_next = False
    for i in range(start, len(raw)):
        ch = raw[i]
        if escape_next:
            escape_next = False
            continue
        if ch == "\\" and in_string:
            escape_next = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return raw[start : i + 1]
    return None


def parse_json_object(raw: str) -> dict[str, Any] | None:
    """Parse a model reply into a dict, tolerating prose around the object."""
    try:
        obj: Any = json.loads(raw)
    except json.JSONDecodeError:
        extracted = _extract_json_object(raw)
        if extracted is None:
            return None
        try:
            obj = json.loads(extracted)
        except json.JSONDecodeError:
            return None
    return obj if isinstance(obj, dict) else None
