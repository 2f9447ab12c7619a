"""An in-memory object store with label selectors, used as the cluster client."""

from __future__ import annotations

import copy
import re
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping

from .constants import parse_group_version

ALL_NAMESPACES_NAMESPACE = "__all_namespaces"


class NotFoundError(LookupError):
    """Raised when a requested object does not exist."""

    def __init__(self, kind: str, namespace: str, name: str) -> None:
        self.kind = kind
        self.namespace = namespace
        self.name = name
        where = f"{namespace}/{name}" if namespace else name
        super().__init__(f"{kind} {where!r} not found")


class ConflictError(Exception):
    """Raised when a write clashes with the stored state of an object."""


class _Operator(str, Enum):
    EQUALS = "="
    DOUBLE_EQUALS = "=="
    NOT_EQUALS = "!="
    IN = "in"
    NOT_IN = "notin"
    EXISTS = "exists"
    DOES_NOT_EXIST = "!"
    GREATER_THAN = "gt"
    LESS_THAN = "lt"


_SINGLE_VALUE_OPS = {_Operator.EQUALS, _Operator.DOUBLE_EQUALS, _Operator.NOT_EQUALS}
_SET_OPS = {_Operator.IN, _Operator.NOT_IN}
_NO_VALUE_OPS = {_Operator.EXISTS, _Operator.DOES_NOT_EXIST}
_NUMERIC_OPS = {_Operator.GREATER_THAN, _Operator.LESS_THAN}

_NAME_RE = re.compile(r"^([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9]$")
_DNS_SUBDOMAIN_RE = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$")
_LABEL_VALUE_RE = re.compile(r"^(([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9])?$")


def _validate_key(key: str) -> None:
    prefix, sep, name = key.rpartition("/")
    if sep:
        if not prefix or len(prefix) > 253 or not _DNS_SUBDOMAIN_RE.match(prefix):
            raise ValueError(f"invalid label key {key!r}: bad prefix")
    if not name or len(name) > 63 or not _NAME_RE.match(name):
        raise ValueError(f"invalid label key {key!r}")


def _validate_value(value: str) -> None:
    if len(value) > 63 or not _LABEL_VALUE_RE.match(value):
        raise ValueError(f"invalid label value {value!r}")


@dataclass(frozen=True)
class _Requirement:
    key: str
    operator: _Operator
    values: tuple[str, ...] = ()

    @classmethod
    def create(cls, key: str, operator: _Operator, values: Iterable[str]) -> "_Requirement":
        _validate_key(key)
        values = tuple(values)
        if operator in _SET_OPS and not values:
            raise ValueError("for 'in', 'notin' operators, values set can't be empty")
        if operator in _SINGLE_VALUE_OPS and len(values) != 1:
            raise ValueError("exact-match compatibility requires one single value")
        if operator in _NO_VALUE_OPS and values:
            raise ValueError("values set must be empty for exists and does not exist")
        if operator in _NUMERIC_OPS:
            if len(values) != 1:
                raise ValueError("for 'Gt', 'Lt' operators, exactly one value is required")
            try:
                int(values[0])
            except ValueError as exc:
                raise ValueError(f"for 'Gt', 'Lt' operators, the value must be an integer: {values[0]!r}") from exc
        else:
            for value in values:
                _validate_value(value)
        return cls(key, operator, tuple(sorted(set(values))))

    def matches(self, labels: Mapping[str, str]) -> bool:
        present = self.key in labels
        op = self.operator
        if op in (_Operator.IN, _Operator.EQUALS, _Operator.DOUBLE_EQUALS):
            return present and labels[self.key] in self.values
        if op in (_Operator.NOT_IN, _Operator.NOT_EQUALS):
            return not present or labels[self.key] not in self.values
        if op is _Operator.EXISTS:
            return present
        if op is _Operator.DOES_NOT_EXIST:
            return not present
        if not present:
            return False
        try:
            actual = int(labels[self.key])
        except ValueError:
            return False
        expected = int(self.values[0])
        return actual > expected if op is _Operator.GREATER_THAN else actual < expected

    def __str__(self) -> str:
        op = self.operator
        if op is _Operator.DOES_NOT_EXIST:
            return f"!{self.key}"
        if op is _Operator.EXISTS:
            return self.key
        if op in _SET_OPS:
            return f"{self.key} {op.value} ({','.join(self.values)})"
        if op is _Operator.GREATER_THAN:
            return f"{self.key}>{self.values[0]}"
        if op is _Operator.LESS_THAN:
            return f"{self.key}<{self.values[0]}"
        return f"{self.key}{op.value}{self.values[0]}"


_SYMBOLS = {"==", "!=", "=", "!", "(", ")", ",", "<", ">"}
_WS_RE = re.compile(r"\s*")
_TOKEN_RE = re.compile(r"==|!=|=|!|\(|\)|,|<|>|[^\s,=!()<>]+")


def _tokenize(text: str) -> list[str]:
    tokens: list[str] = []
    pos = 0
    while True:
        pos = _WS_RE.match(text, pos).end()
        if pos >= len(text):
            return tokens
        match = _TOKEN_RE.match(text, pos)
        if match is None:
            raise ValueError(f"unable to parse selector {text!r} at position {pos}")
        tokens.append(match.group())
        pos = match.end()


class _SelectorParser:
    def __init__(self, text: str) -> None:
        self._tokens = _tokenize(text)
        self._pos = 0

    def _peek(self) -> str | None:
        return self._tokens[self._pos] if self._pos < len(self._tokens) else None

    def _next(self) -> str | None:
        token = self._peek()
        if token is not None:
            self._pos += 1
        return token

    def _identifier(self) -> str:
        token = self._next()
        if token is None or token in _SYMBOLS:
            raise ValueError(f"found {token or ''!r}, expected: identifier")
        return token

    def parse(self) -> list[_Requirement]:
        if not self._tokens:
            return []
        requirements = []
        while True:
            requirements.append(self._requirement())
            token = self._next()
            if token is None:
                return requirements
            if token != ",":
                raise ValueError(f"found {token!r}, expected: ','")

    def _requirement(self) -> _Requirement:
        token = self._peek()
        if token == "!":
            self._next()
            return _Requirement.create(self._identifier(), _Operator.DOES_NOT_EXIST, ())
        key = self._identifier()
        op_token = self._peek()
        if op_token is None or op_token == ",":
            return _Requirement.create(key, _Operator.EXISTS, ())
        self._next()
        if op_token in ("=", "==", "!="):
            value = self._peek()
            if value is None or value == ",":
                value = ""
            elif value in _SYMBOLS:
                raise ValueError(f"found {value!r}, expected: identifier")
            else:
                self._next()
            return _Requirement.create(key, _Operator(op_token), (value,))
        if op_token in ("in", "notin"):
            return _Requirement.create(key, _Operator(op_token), self._value_set())
        if op_token in (">", "<"):
            op = _Operator.GREATER_THAN if op_token == ">" else _Operator.LESS_THAN
            return _Requirement.create(key, op, (self._identifier(),))
        raise ValueError(f"found {op_token!r}, expected: operator")

    def _value_set(self) -> list[str]:
        if self._next() != "(":
            raise ValueError("found non-'(' token, expected: '('")
        values: list[str] = []
        if self._peek() == ")":
            self._next()
            return values
        while True:
            values.append(self._identifier())
            token = self._next()
            if token == ")":
                return values
            if token != ",":
                raise ValueError(f"found {token or ''!r}, expected: ',' or ')'")


_EXPRESSION_OPERATORS = {
    "In": _Operator.IN,
    "NotIn": _Operator.NOT_IN,
    "Exists": _Operator.EXISTS,
    "DoesNotExist": _Operator.DOES_NOT_EXIST,
}


@dataclass(frozen=True)
class Selector:
    """A label selector: a conjunction of requirements on an object's labels."""

    requirements: tuple[_Requirement, ...] = ()
    matches_nothing: bool = False

    @classmethod
    def parse(cls, text: str) -> "Selector":
        """Parse the textual form, e.g. ``app=demo,tier in (a,b),!legacy``."""
        requirements = _SelectorParser(text).parse()
        return cls(tuple(sorted(requirements, key=lambda r: r.key)))

    @classmethod
    def from_label_selector(cls, label_selector: Mapping[str, Any] | None) -> "Selector":
        """Build from a ``matchLabels``/``matchExpressions`` mapping.

        ``None`` selects nothing; an empty mapping selects everything.
        """
        if label_selector is None:
            return cls(matches_nothing=True)
        match_labels = label_selector.get("matchLabels") or {}
        expressions = label_selector.get("matchExpressions") or []
        requirements = [
            _Requirement.create(key, _Operator.EQUALS, (value,)) for key, value in match_labels.items()
        ]
        for expression in expressions:
            raw_op = expression.get("operator", "")
            op = _EXPRESSION_OPERATORS.get(raw_op)
            if op is None:
                raise ValueError(f"{raw_op!r} is not a valid pod selector operator")
            requirements.append(_Requirement.create(expression.get("key", ""), op, expression.get("values") or ()))
        return cls(tuple(sorted(requirements, key=lambda r: r.key)))

    def matches(self, labels: Mapping[str, str] | None) -> bool:
        """Whether the given labels satisfy every requirement."""
        if self.matches_nothing:
            return False
        labels = labels or {}
        return all(requirement.matches(labels) for requirement in self.requirements)

    def is_empty(self) -> bool:
        """True when the selector matches every object."""
        return not self.matches_nothing and not self.requirements

    def __str__(self) -> str:
        if self.matches_nothing:
            return ""
        return ",".join(str(requirement) for requirement in self.requirements)


def requires_exact_match(field_selector: str) -> tuple[str, str, bool]:
    """Check a field selector has the form ``k=v`` or ``k==v``.

    Returns ``(field, value, True)`` on success, ``("", "", False)`` otherwise.
    """
    parts = [part for part in field_selector.split(",") if part.strip()]
    if len(parts) != 1:
        return "", "", False
    part = parts[0]
    if "!=" in part:
        return "", "", False
    if "==" in part:
        name, _, value = part.partition("==")
    elif "=" in part:
        name, _, value = part.partition("=")
    else:
        return "", "", False
    return name.strip(), value.strip(), True


def field_index_name(field: str) -> str:
    """Name of the index over the given field."""
    return "field:" + field


def key_to_namespaced_key(namespace: str, base_key: str) -> str:
    """Prefix an index key with its namespace, or the all-namespaces marker."""
    if namespace:
        return f"{namespace}/{base_key}"
    return f"{ALL_NAMESPACES_NAMESPACE}/{base_key}"


_Key = tuple[str, str, str, str]


def _object_key(obj: Mapping[str, Any]) -> _Key:
    kind = obj.get("kind")
    if not kind:
        raise ValueError("object has no kind")
    metadata = obj.get("metadata") or {}
    name = metadata.get("name")
    if not name:
        raise ValueError(f"{kind} object has no name")
    group, _ = parse_group_version(obj.get("apiVersion", ""))
    return group, kind, metadata.get("namespace", "") or "", name


def _as_selector(label_selector: Any) -> Selector | None:
    if label_selector is None:
        return None
    if isinstance(label_selector, Selector):
        return label_selector
    if isinstance(label_selector, str):
        return Selector.parse(label_selector)
    if isinstance(label_selector, Mapping):
        return Selector.from_label_selector(label_selector)
    raise TypeError(f"unsupported label selector {label_selector!r}")


@dataclass
class InMemoryClient:
    """A cluster client holding objects (plain mappings) in memory.

    Objects are addressed by API group, kind, namespace and name; the API
    version is not part of the address, so one object can be read under any
    version of its group. Reads return deep copies.
    """

    objects: Iterable[Mapping[str, Any]] = ()
    _store: dict[_Key, dict[str, Any]] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)
    _version: int = field(default=0, init=False, repr=False)

    def __post_init__(self) -> None:
        for obj in self.objects:
            self.create(obj)
        self.objects = ()

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    def get(self, api_version: str, kind: str, namespace: str, name: str) -> dict[str, Any]:
        """Return a copy of the named object, or raise NotFoundError."""
        group, _ = parse_group_version(api_version)
        with self._lock:
            stored = self._store.get((group, kind, namespace or "", name))
            if stored is None:
                raise NotFoundError(kind, namespace, name)
            return copy.deepcopy(stored)

    def list(
        self,
        api_version: str,
        kind: str,
        namespace: str = "",
        label_selector: Any = None,
        limit: int = 0,
    ) -> list[dict[str, Any]]:
        """Copies of matching objects, ordered by namespace and name.

        An empty namespace lists across all namespaces. ``label_selector`` may
        be a Selector, its textual form, or a ``matchLabels`` mapping; a
        positive ``limit`` caps the number of results.
        """
        group, _ = parse_group_version(api_version)
        selector = _as_selector(label_selector)
        with self._lock:
            candidates = sorted(
                (key, obj)
                for key, obj in self._store.items()
                if key[0] == group and key[1] == kind and (not namespace or key[2] == namespace)
            )
            result = []
            for _, obj in candidates:
                if limit > 0 and len(result) >= limit:
                    break
                labels = (obj.get("metadata") or {}).get("labels") or {}
                if selector is not None and not selector.matches(labels):
                    continue
                result.append(copy.deepcopy(obj))
            return result

    def create(self, obj: Mapping[str, Any]) -> dict[str, Any]:
        """Store a new object; raise ConflictError if it already exists."""
        key = _object_key(obj)
        with self._lock:
            if key in self._store:
                raise ConflictError(f"{key[1]} {key[2]}/{key[3]!r} already exists")
            stored = copy.deepcopy(dict(obj))
            stored.setdefault("metadata", {})["resourceVersion"] = self._next_version()
            self._store[key] = stored
            return copy.deepcopy(stored)

    def _check_version(self, key: _Key, obj: Mapping[str, Any]) -> dict[str, Any]:
        stored = self._store.get(key)
        if stored is None:
            raise NotFoundError(key[1], key[2], key[3])
        wanted = (obj.get("metadata") or {}).get("resourceVersion")
        if wanted and wanted != stored["metadata"].get("resourceVersion"):
            raise ConflictError(
                f"{key[1]} {key[2]}/{key[3]!r} has been modified; apply changes to the latest version"
            )
        return stored

    def update(self, obj: Mapping[str, Any]) -> dict[str, Any]:
        """Replace an object's metadata and spec, keeping its stored status."""
        key = _object_key(obj)
        with self._lock:
            stored = self._check_version(key, obj)
            updated = copy.deepcopy(dict(obj))
            updated.pop("status", None)
            if "status" in stored:
                updated["status"] = copy.deepcopy(stored["status"])
            updated.setdefault("metadata", {})["resourceVersion"] = self._next_version()
            self._store[key] = updated
            return copy.deepcopy(updated)

    def update_status(self, obj: Mapping[str, Any]) -> dict[str, Any]:
        """Replace only an object's status."""
        key = _object_key(obj)
        with self._lock:
            stored = copy.deepcopy(self._check_version(key, obj))
            if "status" in obj:
                stored["status"] = copy.deepcopy(obj["status"])
            else:
                stored.pop("status", None)
            stored["metadata"]["resourceVersion"] = self._next_version()
            self._store[key] = stored
            return copy.deepcopy(stored)

    def delete(self, obj: Mapping[str, Any]) -> None:
        """Remove an object; raise NotFoundError if it is absent."""
        key = _object_key(obj)
        with self._lock:
            if self._store.pop(key, None) is None:
                raise NotFoundError(key[1], key[2], key[3])