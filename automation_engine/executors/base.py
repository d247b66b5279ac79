"""Helpers shared by the built-in node executors."""

from datetime import datetime, timezone
from typing import Any, Dict, List


def as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def as_list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def as_str(value: Any, fallback: str) -> str:
    return value if isinstance(value, str) else fallback


def as_number(value: Any, fallback: float) -> float:
    # bool is an int subclass but never a meaningful duration or timeout
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    return fallback


def timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()
