"""Forbidden-value scanner.

Walks the output values of a pipeline run looking for instances of types that
retain heavy host state (modules, frames, open files, sockets, threads,
database connections, ...). A cached output that holds one of these defeats
incremental caching and keeps the host object alive between runs.

Traversal rules:
- explicit LIFO work stack, no recursion (deep graphs cannot blow the stack)
- visited set keyed by identity, so cycles terminate and shared substructure
  is reported once
- depth cap and violation cap bound the work on pathological graphs; both are
  truncations, not errors
- safe leaves (numbers, text, enums, decimal, date/time, UUID, ranges) stop
  descent; other members are always walked whatever their annotation says
- collections are walked by position, mappings by key, everything else by
  its instance members (``__slots__`` + ``__dict__``) or a registered inspector
"""

from __future__ import annotations

import io
import logging
import socket
import sqlite3
import threading
import types
from collections.abc import Mapping, Sequence, Set
from dataclasses import dataclass
from datetime import date, time, timedelta, tzinfo
from decimal import Decimal
from enum import Enum
from fractions import Fraction
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from cacheproof.config import VerifierSettings
from cacheproof.kernel.trace import PipelineRun

logger = logging.getLogger(__name__)


DEFAULT_FORBIDDEN_TYPES: Tuple[type, ...] = (
    types.ModuleType,
    types.FrameType,
    types.TracebackType,
    types.CodeType,
    types.GeneratorType,
    types.CoroutineType,
    types.AsyncGeneratorType,
    io.IOBase,
    socket.socket,
    threading.Thread,
    sqlite3.Connection,
    sqlite3.Cursor,
)

# Immutable scalars with no identity semantics worth tracking
_VALUE_TYPES: Tuple[type, ...] = (bool, int, float, complex, str, bytes)

SAFE_LEAF_TYPES: Tuple[type, ...] = _VALUE_TYPES + (
    bytearray,
    Decimal,
    Fraction,
    date,  # datetime is a subclass
    time,
    timedelta,
    tzinfo,
    UUID,
    Enum,
    range,  # Elements are ints; never materialized
    memoryview,
)

# Callables and classes are code, not cached data
_OPAQUE_TYPES: Tuple[type, ...] = (
    type,
    types.FunctionType,
    types.BuiltinFunctionType,
    types.WrapperDescriptorType,
    types.MethodWrapperType,
    types.MethodDescriptorType,
)

_SKIPPED_SLOTS = frozenset({"__dict__", "__weakref__"})

_ENUMERATION_ERRORS = (
    TypeError, ValueError, RuntimeError, NotImplementedError, OverflowError, MemoryError,
)


@dataclass(frozen=True)
class ForbiddenTypeViolation:
    """A forbidden value found in a step's output graph."""
    step_name: str
    forbidden_type: type  # Runtime type of the offending value
    path: str  # e.g. "Output.items[2].inner"

    @property
    def type_name(self) -> str:
        """Fully-qualified name of the offending type."""
        return f"{self.forbidden_type.__module__}.{self.forbidden_type.__qualname__}"

    def sort_key(self) -> Tuple[str, str]:
        return (self.step_name, self.path)


# ---------------------------------------------------------------------------
# Structural inspection
# ---------------------------------------------------------------------------

Inspector = Callable[[Any], Iterable[Tuple[str, Any]]]

_INSPECTORS: Dict[type, Inspector] = {}
_INSPECTOR_LOCK = threading.Lock()


def register_inspector(cls: type, inspector: Inspector) -> None:
    """Register a function exposing the traversable members of ``cls`` instances.

    The inspector returns ``(member_name, value)`` pairs. It replaces the
    default ``__slots__``/``__dict__`` enumeration for ``cls`` and its
    subclasses. Registrations are append-only; re-registering a type raises.
    """
    with _INSPECTOR_LOCK:
        if cls in _INSPECTORS:
            raise ValueError(f"Inspector already registered for {cls.__qualname__}")
        _INSPECTORS[cls] = inspector


def _find_inspector(cls: type) -> Optional[Inspector]:
    if not _INSPECTORS:
        return None
    for base in cls.__mro__:
        inspector = _INSPECTORS.get(base)
        if inspector is not None:
            return inspector
    return None


@dataclass(frozen=True)
class _MemberPlan:
    """Cached per-type member layout."""
    slots: Tuple[Tuple[str, str], ...]  # (display name, attribute name)


_PLAN_CACHE: Dict[type, _MemberPlan] = {}
_PLAN_LOCK = threading.Lock()


def _mangle(cls: type, name: str) -> str:
    if name.startswith("__") and not name.endswith("__"):
        return f"_{cls.__name__.lstrip('_')}{name}"
    return name


def _build_plan(cls: type) -> _MemberPlan:
    slots: List[Tuple[str, str]] = []
    seen = set()
    for base in reversed(cls.__mro__):
        declared = base.__dict__.get("__slots__", ())
        if isinstance(declared, str):
            declared = (declared,)
        for name in declared:
            if name in _SKIPPED_SLOTS or name in seen:
                continue
            seen.add(name)
            slots.append((name, _mangle(base, name)))
    return _MemberPlan(slots=tuple(slots))


def member_plan(cls: type) -> _MemberPlan:
    """Return the cached member layout for ``cls``, building it on first use."""
    plan = _PLAN_CACHE.get(cls)
    if plan is not None:
        return plan
    built = _build_plan(cls)
    with _PLAN_LOCK:
        return _PLAN_CACHE.setdefault(cls, built)


def _object_members(value: Any) -> List[Tuple[str, Any]]:
    cls = type(value)
    inspector = _find_inspector(cls)
    if inspector is not None:
        return list(inspector(value))

    plan = member_plan(cls)
    members: List[Tuple[str, Any]] = []
    for display_name, attr_name in plan.slots:
        try:
            members.append((display_name, object.__getattribute__(value, attr_name)))
        except AttributeError:
            continue  # Unset slot

    instance_dict = getattr(value, "__dict__", None)
    if isinstance(instance_dict, dict):
        members.extend(instance_dict.items())

    if isinstance(value, types.MethodType):
        members.append(("__self__", value.__self__))
    return members


def _key_label(key: Any, index: int) -> str:
    """Path label for a mapping key; falls back to type and position when repr fails."""
    try:
        return repr(key)
    except Exception:
        return f"<{type(key).__qualname__}#{index}>"


def _enumerate(value: Any) -> Optional[List[Any]]:
    """Materialize a collection, or None if it refuses enumeration."""
    try:
        return list(value)
    except _ENUMERATION_ERRORS as exc:
        logger.debug("Skipping non-enumerable %s: %s", type(value).__qualname__, exc)
        return None


def _mapping_items(value: Mapping) -> Optional[List[Tuple[Any, Any]]]:
    try:
        return list(value.items())
    except _ENUMERATION_ERRORS as exc:
        logger.debug("Skipping non-enumerable mapping %s: %s", type(value).__qualname__, exc)
        return None


# ---------------------------------------------------------------------------
# Scan
# ---------------------------------------------------------------------------

_Entry = Tuple[str, Any, str, int]  # (step_name, value, path, depth)


def scan_run(
    run: PipelineRun,
    settings: Optional[VerifierSettings] = None,
    forbidden_types: Optional[Iterable[type]] = None,
) -> List[ForbiddenTypeViolation]:
    """Find forbidden values in every output of every tracked step of ``run``.

    Args:
        run: The run whose step outputs are scanned (normally the first run).
        settings: Depth and violation caps; defaults to ``VerifierSettings()``.
        forbidden_types: Types to flag (instances and subclasses). Defaults to
            ``DEFAULT_FORBIDDEN_TYPES``.

    Returns:
        Violations in traversal order, at most ``settings.max_violations``.
    """
    if run is None:
        raise ValueError("run is required")
    if settings is None:
        settings = VerifierSettings()
    forbidden = tuple(forbidden_types) if forbidden_types is not None else DEFAULT_FORBIDDEN_TYPES

    seeds: List[_Entry] = [
        (step_name, output.value, "Output", 0)
        for step_name, output in run.iter_outputs()
    ]
    stack: List[_Entry] = list(reversed(seeds))
    return _walk(stack, forbidden, settings.max_depth, settings.max_violations)


def _walk(
    stack: List[_Entry],
    forbidden: Tuple[type, ...],
    max_depth: int,
    max_violations: int,
) -> List[ForbiddenTypeViolation]:
    violations: List[ForbiddenTypeViolation] = []
    visited: Dict[int, Any] = {}  # id -> object, keeps ids stable for the scan
    truncated = 0

    while stack:
        step_name, value, path, depth = stack.pop()
        if value is None:
            continue
        if depth >= max_depth:
            truncated += 1
            continue

        if not isinstance(value, _VALUE_TYPES):
            key = id(value)
            if key in visited:
                continue
            visited[key] = value

        if forbidden and isinstance(value, forbidden):
            violations.append(ForbiddenTypeViolation(step_name, type(value), path))
            if len(violations) >= max_violations:
                logger.warning(
                    "Forbidden-value scan stopped at cap of %d violations", max_violations
                )
                return violations
            continue

        if isinstance(value, SAFE_LEAF_TYPES) or isinstance(value, _OPAQUE_TYPES):
            continue

        children: List[_Entry] = []
        next_depth = depth + 1

        if isinstance(value, Mapping):
            items = _mapping_items(value)
            if items is None:
                continue
            for index, (item_key, item_value) in enumerate(items):
                if not isinstance(item_key, SAFE_LEAF_TYPES):
                    children.append((step_name, item_key, f"{path}.keys()[{index}]", next_depth))
                children.append((step_name, item_value, f"{path}[{_key_label(item_key, index)}]", next_depth))
        elif isinstance(value, (Sequence, Set)):
            elements = _enumerate(value)
            if elements is None:
                continue
            for index, element in enumerate(elements):
                children.append((step_name, element, f"{path}[{index}]", next_depth))
        else:
            for name, member in _object_members(value):
                children.append((step_name, member, f"{path}.{name}", next_depth))

        stack.extend(reversed(children))

    if truncated:
        logger.debug("Forbidden-value scan truncated %d nodes at depth %d", truncated, max_depth)
    return violations
