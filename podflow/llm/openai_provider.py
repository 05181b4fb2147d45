"""OpenAI chat provider using JSON mode for structured replies."""

from typing import Any

from openai import OpenAI

from podflow.llm.base import T, parse_json_reply


class OpenAIProvider:
    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-4o-mini",
        timeout: float = 60.0,
        temperature: float = 0.7,
    ):
        # Retries belong to the orchestrator's content policy.
        self._client = OpenAI(api_key=api_key, timeout=timeout, max_retries=0)
        self._model = model
        self._temperature = temperature

    def close(self) -> None:
        self._client.close()

    def complete(self, prompt: str, *, system: str | None = None, **kwargs: Any) -> str:
        messages = [{"role": "system", "content": system}] if system else []
        messages.append({"role": "user", "content": prompt})
        kwargs.setdefault("temperature", self._temperature)
        response = self._client.chat.completions.create(
            model=kwargs.pop("model", None) or self._model,
            messages=messages,
            **kwargs,
        )
        return response.choices[0].message.content or ""

    def complete_json(self, prompt: str, schema: type[T], *, system: str | None = None, **kwargs: Any) -> T:
        # JSON mode requires the word "JSON" somewhere in the messages.
        raw = self.complete(
            f"{prompt}\n\nAnswer with a JSON object only.",
            system=system,
            response_format={"type": "json_object"},
            **kwargs,
        )
        return parse_json_reply(raw, schema)
