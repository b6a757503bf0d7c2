"""Text generation backends for narrative flavor and build advisories.

The HTTP backend speaks the OpenAI-compatible Chat Completions contract so any
vendor exposing that API can be plugged in.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Protocol
from urllib import error, request


class TextGenerationError(RuntimeError):
    """Raised when a text generation backend fails or returns nothing usable."""


class TextGenerator(Protocol):
    """Blocking text completion; callers run it in a worker thread."""

    def complete(self, prompt: str) -> str:
        """Return generated text for the prompt."""


@dataclass(slots=True)
class OpenAICompatibleGenerator:
    """Chat Completions client over ``urllib``."""

    api_key: str
    model: str = "gpt-4o-mini"
    base_url: str = "https://api.openai.com/v1"
    max_tokens: int = 150
    temperature: float = 0.7
    request_timeout_seconds: float = 10.0

    def complete(self, prompt: str) -> str:
        body = json.dumps(
            {
                "model": self.model,
                "messages": [{"role": "user", "content": prompt}],
                "max_tokens": self.max_tokens,
                "temperature": self.temperature,
            }
        ).encode("utf-8")
        req = request.Request(
            f"{self.base_url.rstrip('/')}/chat/completions",
            data=body,
            method="POST",
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self.api_key}",
            },
        )
        try:
            with request.urlopen(req, timeout=self.request_timeout_seconds) as response:
                payload = json.loads(response.read().decode("utf-8"))
        except (error.URLError, TimeoutError, json.JSONDecodeError) as exc:
            raise TextGenerationError(f"{type(exc).__name__}: {exc}") from exc

        try:
            content = payload["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise TextGenerationError("Malformed chat completion payload") from exc
        if not isinstance(content, str) or not content.strip():
            raise TextGenerationError("Empty chat completion")
        return content.strip()


class StaticGenerator:
    """Returns a fixed response; used for local demos and tests."""

    def __init__(self, response: str) -> None:
        self.response = response
        self.calls: list[str] = []

    def complete(self, prompt: str) -> str:
        self.calls.append(prompt)
        return self.response
