from __future__ import annotations

import functools
import importlib.util
import operator
import unittest


JAX_AVAILABLE = importlib.util.find_spec("jax") is not None


def add(a, b):
    return a + b


def sum_all(values):
    return sum(values)


def shift_and_sum(values, delta):
    total = 0
    for i in range(len(values)):
        values[i] -= delta
        total += values[i]
    return total


class Counter:
    def __init__(self, v: int = 2) -> None:
        self.v = v

    def f(self) -> int:
        return self.v

    def g(self, x: int) -> int:
        return self.v + x

    def h(self, a: int, b: int) -> int:
        return a * self.v + b


@unittest.skipUnless(JAX_AVAILABLE, "jax is required for invoke_forall tests")
class InvokeForallExamplesTests(unittest.TestCase):
    def test_scalar_operands_make_a_single_direct_call(self) -> None:
        from forall_jax import invoke_forall

        self.assertEqual(invoke_forall(operator.add, 2, 3), 5)
        self.assertEqual(invoke_forall(operator.mul, 7, 13), 91)
        self.assertEqual(invoke_forall(operator.neg, 5), -5)
        self.assertEqual(invoke_forall(lambda: 42), 42)

    def test_scalar_path_returns_result_unwrapped(self) -> None:
        from forall_jax import FixedArray, invoke_forall

        out = invoke_forall(divmod, 17, 5)
        self.assertEqual(out, divmod(17, 5))
        self.assertIs(type(out), tuple)
        self.assertNotIsInstance(out, FixedArray)
        self.assertIsNone(invoke_forall(lambda x: None, 1))

    def test_two_tuples_of_equal_arity(self) -> None:
        from forall_jax import FixedArray, invoke_forall

        out = invoke_forall(operator.add, (1, 2, 3), (10, 20, 30))
        self.assertIsInstance(out, FixedArray)
        self.assertEqual(out, (11, 22, 33))
        self.assertIs(out.element_type, int)

    def test_scalar_is_reused_at_every_position(self) -> None:
        from forall_jax import invoke_forall

        self.assertEqual(invoke_forall(operator.add, 10, (1, 2, 3)), (11, 12, 13))
        self.assertEqual(invoke_forall(lambda s, t: s * t, 10, (4, 5, 6)), (40, 50, 60))
        self.assertEqual(invoke_forall(operator.add, (1, 2), 3), (4, 5))

    def test_elementwise_and_scalar_mix(self) -> None:
        from forall_jax import invoke_forall

        out = invoke_forall(lambda a, b, s: a * b + s, (1, 2, 3), (4, 5, 6), 100)
        self.assertEqual(out, (104, 110, 118))

    def test_string_scalar_against_tuple_of_strings(self) -> None:
        from forall_jax import invoke_forall

        out = invoke_forall(
            lambda s1, s2: len(s1) * len(s2),
            "aaa",
            ("abacaba", "ab", "c"),
        )
        self.assertEqual(out, (21, 6, 3))

    def test_variable_length_containers_are_scalars(self) -> None:
        from forall_jax import invoke_forall, protect

        fn = lambda s, items: len(s) * len(items)  # noqa: E731
        self.assertEqual(invoke_forall(fn, ("aa", "bbb"), [1, 2, 3, 4, 5]), (10, 15))
        self.assertEqual(invoke_forall(fn, ("abc", "bbab"), [1, 2, 3, 4, 5]), (15, 20))
        self.assertEqual(invoke_forall(fn, ("aa", "bbb"), protect([1, 2, 3, 4, 5])), (10, 15))

    def test_heterogeneous_elements_give_a_plain_tuple(self) -> None:
        from forall_jax import FixedArray, invoke_forall

        out = invoke_forall(lambda a: a, (1, 2.5, "abc"))
        self.assertNotIsInstance(out, FixedArray)
        self.assertIs(type(out), tuple)
        self.assertEqual(out, (1, 2.5, "abc"))
        self.assertIsInstance(out[0], int)
        self.assertIsInstance(out[2], str)

    def test_tuple_of_operations_broadcasts_over_the_operation(self) -> None:
        from forall_jax import FixedArray, invoke_forall

        out = invoke_forall((lambda: 1, lambda: 2, lambda: 3))
        self.assertIsInstance(out, FixedArray)
        self.assertEqual(out, (1, 2, 3))

        mixed = invoke_forall(
            (lambda x: x + 1, lambda x: chr(ord("a") + x), lambda x: (x, x % 5)),
            16,
        )
        self.assertEqual(mixed, (17, "q", (16, 1)))

        self.assertEqual(
            invoke_forall((operator.sub, add, min), (20, 10, 0), (5, 10, 15)),
            (15, 20, 0),
        )

    def test_unbound_methods_act_on_elements(self) -> None:
        from forall_jax import invoke_forall

        objs = (Counter(1), Counter(2), Counter(3))
        self.assertEqual(invoke_forall(Counter.f, objs), (1, 2, 3))
        self.assertEqual(invoke_forall(Counter.g, objs, 10), (11, 12, 13))
        self.assertEqual(
            invoke_forall((Counter.h, Counter.h), (Counter(2), Counter(3)), (5, 15), (2, 4)),
            (2 * 5 + 2, 3 * 15 + 4),
        )
        self.assertEqual(invoke_forall((Counter.g, Counter.g), (Counter(2), Counter(3)), 20), (22, 23))

    def test_variadic_operation_sees_each_selection(self) -> None:
        from forall_jax import invoke_forall

        out = invoke_forall(lambda *ts: ts, 0, (1, 2, 3), ("a", None, 4.5), False)
        self.assertEqual(
            tuple(out),
            ((0, 1, "a", False), (0, 2, None, False), (0, 3, 4.5, False)),
        )

    def test_protected_collection_is_passed_whole(self) -> None:
        from forall_jax import invoke_forall, protect

        calls: list[object] = []

        def record(values):
            calls.append(values)
            return sum(values)

        data = (1, 2, 3)
        self.assertEqual(invoke_forall(record, protect(data)), 6)
        self.assertEqual(len(calls), 1)
        self.assertIs(calls[0], data)

        self.assertEqual(invoke_forall(len, protect(())), 0)
        self.assertEqual(invoke_forall(lambda t: t[0], protect((5,))), 5)

    def test_protected_operand_next_to_elementwise_ones(self) -> None:
        from forall_jax import invoke_forall, protect

        out = invoke_forall(
            lambda f, x, arr: functools.reduce(f, arr, x),
            (operator.add, operator.mul),
            (0, 1),
            protect((1, 2, 3, 4)),
        )
        self.assertEqual(out, (10, 24))

        getters = (operator.itemgetter(2), operator.itemgetter(0))
        picked = invoke_forall(getters, protect((10, 20.5, "hello")))
        self.assertEqual(picked, ("hello", 10))

    def test_protected_mutable_operand_is_shared_across_positions(self) -> None:
        from forall_jax import invoke_forall, protect

        values = [4, 5, 6]
        self.assertEqual(invoke_forall(shift_and_sum, protect(values), (1, 2, 3)), (12, 6, -3))
        self.assertEqual(values, [-2, -1, 0])
        self.assertEqual(invoke_forall(sum_all, protect(values)), -3)

    def test_protected_operation(self) -> None:
        from forall_jax import invoke_forall, protect

        self.assertEqual(invoke_forall(protect(add), 3, 5), 8)
        self.assertEqual(invoke_forall(protect(add), (1, 2), 5), (6, 7))

    def test_void_results_become_unit_placeholders(self) -> None:
        from forall_jax import UNIT, FixedArray, Ref, Unit, invoke_forall

        data = [1, 2, 3]
        refs = tuple(Ref.item(data, i) for i in range(3))
        out = invoke_forall(lambda r: r.set(r.get() + 5), refs)

        self.assertEqual(data, [6, 7, 8])
        self.assertIsInstance(out, FixedArray)
        self.assertEqual(len(out), 3)
        self.assertIs(out.element_type, Unit)
        self.assertTrue(all(item == UNIT for item in out))
        self.assertEqual(out[0], out[2])

    def test_shared_mutable_scalar_sees_every_position_in_order(self) -> None:
        from forall_jax import invoke_forall

        seen: list[int] = []
        invoke_forall(lambda x, log: log.append(x), (3, 1, 2), seen)
        self.assertEqual(seen, [3, 1, 2])

    def test_results_compose_as_elementwise_operands(self) -> None:
        from forall_jax import invoke_forall

        first = invoke_forall(operator.add, (1, 2), (3, 4))
        self.assertEqual(invoke_forall(operator.mul, first, 2), (8, 12))

    def test_named_tuples_are_elementwise(self) -> None:
        from collections import namedtuple

        from forall_jax import invoke_forall

        Pair = namedtuple("Pair", "first second")
        self.assertEqual(invoke_forall(operator.add, Pair(1, 2), (3, 4)), (4, 6))

    def test_debug_logging_reports_arity(self) -> None:
        from forall_jax import invoke_forall

        with self.assertLogs("forall_jax.engine", level="DEBUG") as captured:
            invoke_forall(operator.add, (1, 2, 3), 1)
        self.assertTrue(any("arity=3" in line for line in captured.output))


if __name__ == "__main__":
    unittest.main()
