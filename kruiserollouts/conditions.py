"""Helpers for the conditions list in a rollout's status."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

CONDITION_TRUE = "True"
CONDITION_FALSE = "False"
CONDITION_UNKNOWN = "Unknown"


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def new_rollout_condition(cond_type: str, status: str, reason: str, message: str) -> dict[str, Any]:
    """Create a rollout condition stamped with the current time."""
    now = _now()
    return {
        "type": cond_type,
        "status": status,
        "lastUpdateTime": now,
        "lastTransitionTime": now,
        "reason": reason,
        "message": message,
    }


def get_rollout_condition(status: dict[str, Any], cond_type: str) -> dict[str, Any] | None:
    """Return a copy of the condition of the given type, or None."""
    for condition in status.get("conditions") or []:
        if condition.get("type") == cond_type:
            return dict(condition)
    return None


def _without(conditions: list[dict[str, Any]], cond_type: str) -> list[dict[str, Any]]:
    return [c for c in conditions if c.get("type") != cond_type]


def set_rollout_condition(status: dict[str, Any], condition: dict[str, Any]) -> bool:
    """Put a condition into the status; return False if nothing changed."""
    current = get_rollout_condition(status, condition.get("type"))
    if (
        current is not None
        and current.get("status") == condition.get("status")
        and current.get("reason") == condition.get("reason")
    ):
        return False
    condition = dict(condition)
    if current is not None and current.get("status") == condition.get("status"):
        condition["lastTransitionTime"] = current.get("lastTransitionTime")
    status["conditions"] = _without(status.get("conditions") or [], condition.get("type")) + [condition]
    return True


def remove_rollout_condition(status: dict[str, Any], cond_type: str) -> None:
    """Drop every condition of the given type from the status."""
    status["conditions"] = _without(status.get("conditions") or [], cond_type)