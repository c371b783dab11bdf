from __future__ import annotations
from typing import Any, Callable, ContextManager, Optional, TypeVar
from .errors import StackDefect
from .stack import CleanupStack

A = TypeVar("A")


def acquire(stack: CleanupStack, make: Callable[[], A], release: Callable[[A], Any], label: Optional[str] = None) -> A:
    """Acquire a resource and register its release in one step.

    If ``make`` raises nothing is registered. If the stack has no room left
    the fresh resource is released on the spot before the defect propagates.

    Example:
        ```python
        conn = acquire(stack, lambda: db.connect(url), lambda c: c.close())
        ```
    """
    res = make()
    def fin() -> None: release(res)
    try:
        stack.push(fin, label or getattr(release, "__qualname__", None))
    except StackDefect:
        release(res)
        raise
    return res


def closing(stack: CleanupStack, obj: A, label: Optional[str] = None) -> A:
    return acquire(stack, lambda: obj, lambda o: o.close(), label or f"{type(obj).__qualname__}.close")  # type: ignore[attr-defined]


def enter_context(stack: CleanupStack, cm: ContextManager[A], label: Optional[str] = None) -> A:
    """Enter ``cm`` and register its exit as a cleanup action."""
    value = cm.__enter__()
    def fin() -> None: cm.__exit__(None, None, None)
    try:
        stack.push(fin, label or type(cm).__qualname__)
    except StackDefect:
        cm.__exit__(None, None, None)
        raise
    return value
