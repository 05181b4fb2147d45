"""Text-generation provider protocol and JSON reply parsing."""

import json
import re
from typing import Any, Protocol, TypeVar

from pydantic import BaseModel

T = TypeVar("T", bound=BaseModel)

_FENCE_RE = re.compile(r"^```\w*\s*(.*?)\s*```$", re.DOTALL)


class LLMProvider(Protocol):
    """A chat model that can answer with a JSON object."""

    def complete(self, prompt: str, *, system: str | None = None, **kwargs: Any) -> str: ...

    def complete_json(self, prompt: str, schema: type[T], *, system: str | None = None, **kwargs: Any) -> T:
        """Return the reply validated against ``schema``.

        Raises ``json.JSONDecodeError`` or ``pydantic.ValidationError`` on a malformed reply;
        SDK errors propagate unchanged.
        """
        ...


def parse_json_reply(raw: str, schema: type[T]) -> T:
    """Validate a model reply that should hold one JSON object.

    Tolerates a markdown fence and chatter around the object.
    """
    text = raw.strip()
    fenced = _FENCE_RE.match(text)
    if fenced:
        text = fenced.group(1)
    if not text.startswith("{"):
        start, end = text.find("{"), text.rfind("}")
        if 0 <= start < end:
            text = text[start:end + 1]
    return schema.model_validate(json.loads(text))
