from __future__ import annotations
import functools
import inspect
from typing import Any, Callable, Optional, TypeVar
import anyio
from .errors import ActivationReturn, CleanupFailed, ExitBlock, StrayExitBlock, UnbalancedActivation
from .logger import ConsoleLogger
from .stack import CleanupStack

A = TypeVar("A")


def _drain(stack: CleanupStack) -> None:
    # an exception is already leaving the activation; cleanup failures were logged
    try:
        stack.unwind_to(0)
    except CleanupFailed:
        pass


def _is_cancellation(ex: BaseException) -> bool:
    try:
        return isinstance(ex, anyio.get_cancelled_exc_class())
    except RuntimeError:
        # no async library running this coroutine
        return False


def _stray_exit(stack: CleanupStack, log: ConsoleLogger, name: str) -> StrayExitBlock:
    log.error("exit_block signal left the activation", pending=stack.height())
    _drain(stack)
    return StrayExitBlock(name)


def _settle(stack: CleanupStack, log: ConsoleLogger, name: str, result: A) -> A:
    pending = stack.height()
    if not pending:
        return result
    log.error("activation returned with pending cleanup actions", pending=pending)
    try:
        stack.unwind_to(0)
    except CleanupFailed as cf:
        raise UnbalancedActivation(name, pending) from cf
    raise UnbalancedActivation(name, pending)


def activation(capacity: int, logger: Optional[ConsoleLogger] = None, raise_errors: bool = True) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Give every call of the decorated function its own cleanup stack.

    The stack is passed as the first positional argument. Whatever path the
    call takes out of the function, the stack is empty afterwards:

    - ``end_scope_and_return(stack, v)`` makes the call return ``v``
    - any other exception (including task cancellation) drains the stack
      and then propagates
    - returning while actions are still pending drains them and raises
      ``UnbalancedActivation``, since some scope was never closed
    - an ``ExitBlock`` with no ``block()`` inside the function drains the
      stack and raises ``StrayExitBlock``; it never reaches the caller's loop

    Coroutine functions are supported; each task awaiting the wrapper gets
    a separate stack.

    Args:
        capacity: Capacity of each per-call stack
        logger: Logger handed to the stack
        raise_errors: Passed through to ``CleanupStack``

    Example:
        ```python
        @activation(capacity=2)
        def copy(stack, src, dst):
            fin = open(src, "rb"); stack.push(fin.close)
            fout = open(dst, "wb"); stack.push(fout.close)
            data = fin.read()
            if not data:
                end_scope_and_return(stack, 0)
            fout.write(data)
            end_scope(stack, 0)
            return len(data)
        ```
    """
    def deco(fn: Callable[..., Any]) -> Callable[..., Any]:
        name = getattr(fn, "__qualname__", repr(fn))
        def new_stack() -> CleanupStack:
            return CleanupStack(capacity, logger=logger, raise_errors=raise_errors)

        if inspect.iscoroutinefunction(fn):
            @functools.wraps(fn)
            async def arun(*args: Any, **kwargs: Any) -> Any:
                stack = new_stack()
                log = stack.logger.bind(activation=name)
                try:
                    result = await fn(stack, *args, **kwargs)
                except ActivationReturn as r:
                    stack.unwind_to(0)
                    return r.value
                except ExitBlock as sig:
                    raise _stray_exit(stack, log, name) from sig
                except BaseException as ex:
                    pending = stack.height()
                    _drain(stack)
                    if _is_cancellation(ex):
                        log.warn("activation cancelled", pending=pending)
                    raise
                return _settle(stack, log, name, result)
            return arun

        @functools.wraps(fn)
        def run(*args: Any, **kwargs: Any) -> Any:
            stack = new_stack()
            log = stack.logger.bind(activation=name)
            try:
                result = fn(stack, *args, **kwargs)
            except ActivationReturn as r:
                stack.unwind_to(0)
                return r.value
            except ExitBlock as sig:
                raise _stray_exit(stack, log, name) from sig
            except BaseException:
                _drain(stack)
                raise
            return _settle(stack, log, name, result)
        return run
    return deco

