"""Shared plumbing for structure adapters."""

from collections.abc import Callable, Iterable
from typing import Any, Protocol, TypeVar

T = TypeVar("T")

Value = str | bytes


class Executor(Protocol):
    """Runs an operation now (the store) or later (transactions, pipelines)."""

    async def execute(self, keys: Iterable[str], op: Callable[..., T], *args: Any) -> T:
        """Run ``op(store, *args)`` under the locks of ``keys``."""
        ...


class _Empty:
    """Result of popping from an empty list or sorted set."""

    _instance: "_Empty | None" = None

    def __new__(cls) -> "_Empty":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "EMPTY"

    def __reduce__(self) -> str:
        return "EMPTY"


EMPTY = _Empty()


def check_key(key: Any) -> str:
    if not isinstance(key, str):
        raise TypeError(f"Key must be a str, got {type(key).__name__}")
    return key


def check_value(value: Any) -> Value:
    if not isinstance(value, (str, bytes)):
        raise TypeError(f"Value must be str or bytes, got {type(value).__name__}")
    return value


def check_values(values: Iterable[Any]) -> tuple[Value, ...]:
    checked = tuple(check_value(v) for v in values)
    if not checked:
        raise ValueError("At least one value is required")
    return checked


def check_number(value: Any, name: str = "value") -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"{name} must be a number, got {type(value).__name__}")
    return value


def check_int(value: Any, name: str = "value") -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}")
    return value


class Operations:
    """Base class binding an adapter to an executor."""

    def __init__(self, executor: Executor) -> None:
        self._executor = executor

    async def _run(self, keys: Iterable[str], op: Callable[..., T], *args: Any) -> T:
        return await self._executor.execute(keys, op, *args)
