"""Content pattern compiler and evaluator.

A pattern is a nested JSON object mirroring the event envelope.  Each
leaf is a non-empty list of alternatives; an alternative is either an
exact scalar (``"delete"``, ``42``, ``null``) or ``{"prefix": "<str>"}``.
All leaves must match (conjunction); any alternative of a leaf may match
(disjunction).  Compilation fails fast with ``ConfigurationError``;
evaluation of a compiled pattern never raises.
"""

from __future__ import annotations

from typing import Any

from auditbus.core.errors import ConfigurationError

_MISSING = object()

_SCALARS = (str, int, float, bool, type(None))


def resolve_path(document: Any, path: tuple[str, ...]) -> Any:
    """Walk *path* through nested dicts; return ``_MISSING`` if absent."""
    current = document
    for segment in path:
        if not isinstance(current, dict) or segment not in current:
            return _MISSING
        current = current[segment]
    return current


def is_missing(value: Any) -> bool:
    return value is _MISSING


def _scalar_equal(expected: Any, actual: Any) -> bool:
    # True == 1 in Python; patterns treat booleans as their own type.
    if isinstance(expected, bool) or isinstance(actual, bool):
        return type(expected) is type(actual) and expected == actual
    if isinstance(expected, str) or isinstance(actual, str):
        return isinstance(expected, str) and isinstance(actual, str) and expected == actual
    return expected == actual


class Alternative:
    """One acceptable value for a field: exact match or string prefix."""

    __slots__ = ("op", "value")

    def __init__(self, op: str, value: Any) -> None:
        self.op = op
        self.value = value

    def matches(self, actual: Any) -> bool:
        if self.op == "prefix":
            return isinstance(actual, str) and actual.startswith(self.value)
        return _scalar_equal(self.value, actual)

    def __repr__(self) -> str:
        if self.op == "prefix":
            return f"prefix({self.value!r})"
        return repr(self.value)


class FieldTest:
    """A leaf of a compiled pattern: a path and its alternatives."""

    __slots__ = ("path", "alternatives")

    def __init__(self, path: tuple[str, ...], alternatives: tuple[Alternative, ...]) -> None:
        self.path = path
        self.alternatives = alternatives

    def matches(self, document: Any) -> bool:
        actual = resolve_path(document, self.path)
        if actual is _MISSING:
            return False
        candidates = actual if isinstance(actual, list) else [actual]
        return any(
            alt.matches(value)
            for value in candidates
            if isinstance(value, _SCALARS)
            for alt in self.alternatives
        )

    def describe(self) -> str:
        return f"{'.'.join(self.path)} in {list(self.alternatives)!r}"


class CompiledPattern:
    """An immutable conjunction of field tests."""

    __slots__ = ("tests",)

    def __init__(self, tests: tuple[FieldTest, ...]) -> None:
        self.tests = tests

    def matches(self, document: Any) -> bool:
        return all(test.matches(document) for test in self.tests)

    def describe(self) -> str:
        if not self.tests:
            return "<matches everything>"
        return " AND ".join(test.describe() for test in self.tests)


def _compile_alternative(raw: Any, where: str) -> Alternative:
    if isinstance(raw, _SCALARS):
        return Alternative("equals", raw)
    if isinstance(raw, dict):
        if set(raw) != {"prefix"}:
            raise ConfigurationError(
                f"{where}: unsupported matcher {sorted(raw)!r}; only 'prefix' is allowed"
            )
        prefix = raw["prefix"]
        if not isinstance(prefix, str):
            raise ConfigurationError(f"{where}: prefix must be a string, got {prefix!r}")
        return Alternative("prefix", prefix)
    raise ConfigurationError(f"{where}: invalid matcher {raw!r}")


def _compile_node(node: dict[str, Any], prefix: tuple[str, ...], where: str) -> list[FieldTest]:
    tests: list[FieldTest] = []
    for key, value in node.items():
        if not isinstance(key, str) or not key:
            raise ConfigurationError(f"{where}: pattern keys must be non-empty strings")
        path = prefix + (key,)
        here = f"{where} at {'.'.join(path)}"
        if isinstance(value, dict):
            if not value:
                raise ConfigurationError(f"{here}: nested pattern must not be empty")
            tests.extend(_compile_node(value, path, where))
        elif isinstance(value, list):
            if not value:
                raise ConfigurationError(f"{here}: alternative list must not be empty")
            tests.append(
                FieldTest(path, tuple(_compile_alternative(v, here) for v in value))
            )
        else:
            raise ConfigurationError(
                f"{here}: expected a list of alternatives or a nested object, got {value!r}"
            )
    return tests


def compile_pattern(pattern: Any, *, rule_name: str = "<anonymous>") -> CompiledPattern:
    """Compile a content pattern, failing fast on malformed input.

    An empty pattern places no constraint and matches every event.
    """
    where = f"Rule {rule_name!r}"
    if not isinstance(pattern, dict):
        raise ConfigurationError(f"{where}: pattern must be an object, got {type(pattern).__name__}")
    return CompiledPattern(tuple(_compile_node(pattern, (), where)))
