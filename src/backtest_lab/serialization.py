"""JSON-ready payloads for service responses and reports."""

from __future__ import annotations

import math
from dataclasses import fields, is_dataclass
from enum import Enum
from typing import Any


def camel_case(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def _float(value: float) -> Any:
    if math.isnan(value):
        return None
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    return value


def to_payload(obj: Any) -> Any:
    """Dataclass fields become camelCase keys; mapping keys are kept as given.

    Strategy parameter names in mappings (``ema_period``) must survive a round
    trip back into a request, so only dataclass field names are rewritten.
    """
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, bool) or obj is None or isinstance(obj, (int, str)):
        return obj
    if isinstance(obj, float):
        return _float(obj)
    if is_dataclass(obj) and not isinstance(obj, type):
        return {camel_case(item.name): to_payload(getattr(obj, item.name)) for item in fields(obj)}
    if isinstance(obj, dict):
        return {str(key): to_payload(value) for key, value in obj.items()}
    if isinstance(obj, (list, tuple, set, frozenset)):
        return [to_payload(item) for item in obj]
    return obj
