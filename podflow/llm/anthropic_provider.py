"""Anthropic messages provider; JSON is requested in the prompt and parsed from text."""

from typing import Any

from anthropic import Anthropic

from podflow.llm.base import T, parse_json_reply


class AnthropicProvider:
    def __init__(
        self,
        api_key: str | None = None,
        model: str = "claude-3-5-sonnet-20241022",
        timeout: float = 60.0,
        max_tokens: int = 1500,
    ):
        self._client = Anthropic(api_key=api_key, timeout=timeout, max_retries=0)
        self._model = model
        self._max_tokens = max_tokens

    def close(self) -> None:
        self._client.close()

    def complete(self, prompt: str, *, system: str | None = None, **kwargs: Any) -> str:
        request: dict[str, Any] = {
            "model": kwargs.get("model") or self._model,
            "max_tokens": kwargs.get("max_tokens", self._max_tokens),
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            request["system"] = system
        response = self._client.messages.create(**request)
        return "".join(block.text for block in response.content if getattr(block, "type", "") == "text")

    def complete_json(self, prompt: str, schema: type[T], *, system: str | None = None, **kwargs: Any) -> T:
        raw = self.complete(
            f"{prompt}\n\nReply with the raw JSON object and nothing else.",
            system=system,
            **kwargs,
        )
        return parse_json_reply(raw, schema)
