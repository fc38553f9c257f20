"""Versioned envelope for opaque payloads (schedule inputs, cached data)."""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel

CURRENT_FORMAT_VERSION = 1


class Payload(BaseModel):
    format_version: int = CURRENT_FORMAT_VERSION
    data: Any = None

    @classmethod
    def wrap(cls, data: Any) -> Payload:
        if isinstance(data, Payload):
            return data
        return cls(data=data)

    def dumps(self) -> str:
        return self.model_dump_json()

    @classmethod
    def loads(cls, raw: str | None) -> Payload:
        """Decode stored JSON. Rows written before the envelope existed hold the bare value."""
        if not raw:
            return cls()
        decoded = json.loads(raw)
        if isinstance(decoded, dict) and "format_version" in decoded and "data" in decoded:
            return cls.model_validate(decoded)
        return cls(data=decoded)
