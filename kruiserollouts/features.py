"""Feature gates and process-wide switches for the rollout controllers."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Mapping


class PreRelease(str, Enum):
    """Maturity level of a feature."""

    ALPHA = "ALPHA"
    BETA = "BETA"
    GA = ""
    DEPRECATED = "DEPRECATED"


@dataclass(frozen=True)
class FeatureSpec:
    """Default state and maturity of a feature."""

    default: bool
    pre_release: PreRelease = PreRelease.ALPHA


_TRUE_WORDS = {"1", "t", "true"}
_FALSE_WORDS = {"0", "f", "false"}


def _parse_bool(text: str) -> bool:
    lowered = text.lower()
    if lowered in _TRUE_WORDS:
        return True
    if lowered in _FALSE_WORDS:
        return False
    raise ValueError(f"invalid boolean value {text!r}")


class FeatureGate:
    """A registry of known features and their current on/off state."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._known: dict[str, FeatureSpec] = {}
        self._enabled: dict[str, bool] = {}

    def add(self, features: Mapping[str, FeatureSpec]) -> None:
        """Register features; re-registering with a different spec is an error."""
        with self._lock:
            for name, spec in features.items():
                existing = self._known.get(name)
                if existing is not None:
                    if existing == spec:
                        continue
                    raise ValueError(
                        f"feature gate {name!r} with different spec already exists: {existing}"
                    )
            self._known.update(features)

    def enabled(self, key: str) -> bool:
        """Return whether a registered feature is on."""
        with self._lock:
            if key in self._enabled:
                return self._enabled[key]
            spec = self._known.get(key)
        if spec is None:
            raise KeyError(f"feature {key!r} is not registered in FeatureGate")
        return spec.default

    def set(self, key: str, value: str) -> None:
        """Parse a ``name=bool,name=bool`` string and apply it.

        ``key`` is the comma-separated assignment list; ``value`` is ignored
        when empty, otherwise it is the value for a single feature named ``key``.
        """
        text = key if not value else f"{key}={value}"
        parsed: dict[str, bool] = {}
        for part in text.split(","):
            part = part.strip()
            if not part:
                continue
            name, sep, raw = part.partition("=")
            name = name.strip()
            if not sep:
                raise ValueError(f"missing bool value for {name}")
            try:
                parsed[name] = _parse_bool(raw.strip())
            except ValueError as exc:
                raise ValueError(f"invalid value of {name}={raw.strip()}, err: {exc}") from exc
        self.set_from_map(parsed)

    def set_from_map(self, values: Mapping[str, bool]) -> None:
        """Enable or disable known features by name."""
        with self._lock:
            for name in values:
                if name not in self._known:
                    raise ValueError(f"unrecognized feature gate: {name}")
            for name, on in values.items():
                self._enabled[name] = bool(on)


ROLLOUT_HISTORY_GATE = "RolloutHistoryGate"

DEFAULT_FEATURE_GATES: dict[str, FeatureSpec] = {
    ROLLOUT_HISTORY_GATE: FeatureSpec(default=False, pre_release=PreRelease.ALPHA),
}

DEFAULT_FEATURE_GATE = FeatureGate()
DEFAULT_FEATURE_GATE.add(DEFAULT_FEATURE_GATES)

_filter_workload_type = True


def need_filter_workload_type() -> bool:
    """Whether unsupported workload kinds are filtered out (default on)."""
    return _filter_workload_type


def set_filter_workload_type(value: bool) -> None:
    """Turn the workload-kind filter on or off."""
    global _filter_workload_type
    _filter_workload_type = bool(value)