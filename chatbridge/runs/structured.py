from __future__ import annotations

import json
import re
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from chatbridge.errors import StructuredOutputError

ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_structured(raw_text: str, schema: type[ModelT]) -> ModelT:
    stripped = raw_text.strip()
    if stripped.startswith("{") and stripped.endswith("}"):
        candidate = stripped
    else:
        # Recover from wrappers like markdown fences.
        match = re.search(r"\{.*\}", raw_text, flags=re.DOTALL)
        if not match:
            raise StructuredOutputError(f"No JSON object in model output: {stripped[:200]}")
        candidate = match.group(0)

    try:
        payload = json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise StructuredOutputError(f"Model output is not valid JSON: {exc}") from exc
    try:
        return schema.model_validate(payload)
    except ValidationError as exc:
        raise StructuredOutputError(f"Model output does not match {schema.__name__}: {exc}") from exc
