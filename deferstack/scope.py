from __future__ import annotations
from contextlib import contextmanager
from typing import Any, Iterator, NoReturn, Optional
from .errors import ActivationReturn, CleanupFailed, ExitBlock
from .stack import CleanupAction, CleanupStack

ScopeBoundary = int


def begin_scope(stack: CleanupStack) -> ScopeBoundary:
    """Open a scope: its boundary is the current stack height."""
    return stack.height()


def end_scope(stack: CleanupStack, boundary: ScopeBoundary) -> None:
    """Partial unwind: release everything registered since ``boundary``.

    Actions registered by outer, still-open scopes stay pending. Calling it
    again for an already closed scope is a no-op.
    """
    stack.unwind_to(boundary)


def end_scope_and_exit_block(stack: CleanupStack, boundary: ScopeBoundary) -> NoReturn:
    """Close the scope and leave the innermost enclosing ``block()``.

    Example:
        ```python
        with block():
            for path in paths:
                b = begin_scope(stack)
                f = open(path); stack.push(f.close)
                if not f.readline():
                    end_scope_and_exit_block(stack, b)  # stops the loop
                end_scope(stack, b)
        ```
    """
    end_scope(stack, boundary)
    raise ExitBlock()


def end_scope_and_return(stack: CleanupStack, value: Any = None) -> NoReturn:
    """Full unwind of every open scope, then return ``value`` from the activation.

    Boundaries are ignored: the stack is drained to zero, innermost actions
    first. The value reaches the caller through the enclosing ``activation``
    wrapper, which catches the ``ActivationReturn`` signal.
    """
    stack.unwind_to(0)
    raise ActivationReturn(value)


@contextmanager
def block() -> Iterator[None]:
    """Exit point for ``end_scope_and_exit_block``; swallows only that signal."""
    try:
        yield
    except ExitBlock:
        pass


class Scope:
    """Context-manager form of a scope on a cleanup stack.

    The boundary is taken on entry. Leaving the ``with`` body, normally or
    through an exception, unwinds back to it, so the resources of the scope
    are released in LIFO order while outer scopes keep theirs.

    Args:
        stack: The activation's cleanup stack

    Example:
        ```python
        for name in names:
            with Scope(stack) as s:
                buf = lib.alloc(4096)
                s.push(lambda: lib.free(buf))
                if not lib.fill(buf, name):
                    s.exit_block()   # needs an enclosing block()
                if fatal(buf):
                    s.return_(-1)    # full unwind, activation returns -1
        ```
    """
    def __init__(self, stack: CleanupStack):
        self.stack = stack
        self.boundary: Optional[ScopeBoundary] = None

    def __enter__(self) -> "Scope":
        self.boundary = begin_scope(self.stack)
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        assert self.boundary is not None
        if exc_type is None:
            end_scope(self.stack, self.boundary)
            return False
        if issubclass(exc_type, ActivationReturn) or self.stack.height() < self.boundary:
            return False
        try:
            end_scope(self.stack, self.boundary)
        except CleanupFailed:
            # already logged; keep the exception that is leaving the scope
            pass
        return False

    def push(self, action: CleanupAction, label: Optional[str] = None) -> None:
        self.stack.push(action, label)

    def exit_block(self) -> NoReturn:
        assert self.boundary is not None
        end_scope_and_exit_block(self.stack, self.boundary)

    def return_(self, value: Any = None) -> NoReturn:
        end_scope_and_return(self.stack, value)


def scope(stack: CleanupStack) -> Scope:
    return Scope(stack)
