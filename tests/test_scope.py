import unittest

from deferstack.stack import CleanupStack
from deferstack.scope import (
    Scope,
    block,
    begin_scope,
    end_scope,
    end_scope_and_exit_block,
    end_scope_and_return,
)
from deferstack.errors import ActivationReturn, ExitBlock, StackUnderflow
from deferstack.activation import activation


class TestScopeController(unittest.TestCase):
    def test_scenario_a_partial_unwind(self):
        ran: list[str] = []
        s = CleanupStack(3)
        s.push(lambda: ran.append("a"))
        s.push(lambda: ran.append("b"))
        b = begin_scope(s)
        self.assertEqual(b, 2)
        s.push(lambda: ran.append("c"))
        end_scope(s, b)
        self.assertEqual(ran, ["c"])
        self.assertEqual(s.height(), 2)

    def test_scenario_b_full_unwind_returns_value(self):
        ran: list[str] = []

        @activation(capacity=3)
        def proc(stack):
            stack.push(lambda: ran.append("a"))
            stack.push(lambda: ran.append("b"))
            stack.push(lambda: ran.append("c"))
            end_scope_and_return(stack, 0)
            ran.append("unreachable")

        self.assertEqual(proc(), 0)
        self.assertEqual(ran, ["c", "b", "a"])

    def test_scenario_d_loop_with_induced_failure(self):
        freed: list[int] = []
        heights: list[int] = []
        seen: dict = {}

        @activation(capacity=2)
        def proc(stack):
            seen["stack"] = stack
            root = begin_scope(stack)
            stack.push(lambda: freed.append(-1))
            for i in range(3):
                b = begin_scope(stack)
                stack.push(lambda i=i: freed.append(i))
                if i == 2:
                    end_scope_and_return(stack, "failed")
                end_scope(stack, b)
                heights.append(stack.height())
            end_scope(stack, root)
            return "ok"

        self.assertEqual(proc(), "failed")
        self.assertEqual(freed, [0, 1, 2, -1])
        self.assertEqual(heights, [1, 1])
        self.assertEqual(seen["stack"].height(), 0)

    def test_end_scope_is_idempotent(self):
        ran: list[str] = []
        s = CleanupStack(2)
        s.push(lambda: ran.append("a"))
        b = begin_scope(s)
        s.push(lambda: ran.append("b"))
        end_scope(s, b)
        end_scope(s, b)
        self.assertEqual(ran, ["b"])
        self.assertEqual(s.height(), 1)

    def test_end_scope_after_outer_unwind_is_underflow(self):
        s = CleanupStack(2)
        s.push(lambda: None)
        b = begin_scope(s)
        s.unwind_to(0)
        with self.assertRaises(StackUnderflow):
            end_scope(s, b)

    def test_boundary_restoration_across_nesting(self):
        s = CleanupStack(6)
        s.push(lambda: None)
        outer = begin_scope(s)
        for _ in range(2):
            s.push(lambda: None)
        inner = begin_scope(s)
        for _ in range(3):
            s.push(lambda: None)
        end_scope(s, inner)
        self.assertEqual(s.height(), 3)
        end_scope(s, outer)
        self.assertEqual(s.height(), 1)

    def test_no_double_execution_across_modes(self):
        counts = [0, 0, 0, 0]
        s = CleanupStack(4)
        def mk(i):
            def fin(): counts[i] += 1
            return fin
        s.push(mk(0))
        b1 = begin_scope(s)
        s.push(mk(1))
        b2 = begin_scope(s)
        s.push(mk(2)); s.push(mk(3))
        end_scope(s, b2)
        end_scope(s, b2)
        with self.assertRaises(ActivationReturn) as cm:
            end_scope_and_return(s, "v")
        self.assertEqual(cm.exception.value, "v")
        end_scope(s, 0)
        self.assertEqual(counts, [1, 1, 1, 1])
        self.assertEqual(s.height(), 0)
        self.assertEqual(b1, 1)


class TestExitBlock(unittest.TestCase):
    def test_exit_block_leaves_loop_keeps_outer(self):
        ran: list[str] = []
        visited: list[int] = []
        s = CleanupStack(3)
        s.push(lambda: ran.append("root"))
        with block():
            for i in range(5):
                b = begin_scope(s)
                s.push(lambda i=i: ran.append(f"it{i}"))
                visited.append(i)
                if i == 1:
                    end_scope_and_exit_block(s, b)
                end_scope(s, b)
        self.assertEqual(visited, [0, 1])
        self.assertEqual(ran, ["it0", "it1"])
        self.assertEqual(s.height(), 1)

    def test_exit_block_propagates_without_block(self):
        s = CleanupStack(1)
        with self.assertRaises(ExitBlock):
            end_scope_and_exit_block(s, 0)

    def test_block_does_not_swallow_other_errors(self):
        with self.assertRaises(ValueError):
            with block():
                raise ValueError("x")


class TestScopeContextManager(unittest.TestCase):
    def test_normal_exit_unwinds_to_boundary(self):
        ran: list[str] = []
        s = CleanupStack(3)
        s.push(lambda: ran.append("outer"))
        with Scope(s) as sc:
            self.assertEqual(sc.boundary, 1)
            sc.push(lambda: ran.append("x"))
            sc.push(lambda: ran.append("y"))
        self.assertEqual(ran, ["y", "x"])
        self.assertEqual(s.height(), 1)

    def test_exception_unwinds_scope_and_propagates(self):
        ran: list[str] = []
        s = CleanupStack(3)
        s.push(lambda: ran.append("outer"))
        with self.assertRaises(KeyError):
            with Scope(s) as sc:
                sc.push(lambda: ran.append("inner"))
                raise KeyError("k")
        self.assertEqual(ran, ["inner"])
        self.assertEqual(s.height(), 1)

    def test_cleanup_failure_does_not_mask_exception(self):
        s = CleanupStack(2, raise_errors=True)
        with self.assertRaises(KeyError):
            with Scope(s) as sc:
                sc.push(_boom, "boom")
                raise KeyError("k")
        self.assertEqual(s.height(), 0)

    def test_exit_block_method(self):
        ran: list[str] = []
        s = CleanupStack(2)
        with block():
            for i in range(3):
                with Scope(s) as sc:
                    sc.push(lambda i=i: ran.append(f"r{i}"))
                    if i == 1:
                        sc.exit_block()
        self.assertEqual(ran, ["r0", "r1"])
        self.assertEqual(s.height(), 0)

    def test_return_method_unwinds_nested_scopes(self):
        ran: list[str] = []

        @activation(capacity=3)
        def proc(stack):
            with Scope(stack) as outer:
                outer.push(lambda: ran.append("a"))
                with Scope(stack) as inner:
                    inner.push(lambda: ran.append("b"))
                    inner.push(lambda: ran.append("c"))
                    inner.return_(42)
            return 0

        self.assertEqual(proc(), 42)
        self.assertEqual(ran, ["c", "b", "a"])


def _boom():
    raise ValueError("boom")
