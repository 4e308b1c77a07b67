"""solhorn symbolic layer tests: sorts, SSA variables, context, SMT-001 through SMT-005."""

import pytest
import z3

from solhorn.ast_nodes import VariableDeclaration
from solhorn.errors import InternalError
from solhorn.smt.sorts import smt_sort, zero_value, type_constraints, wrap, max_value
from solhorn.smt.symbolic import SymbolicVariable, EncodingContext
from solhorn.smt.terms import free_constants, conjunction
from solhorn.types import (
    UINT256, INT256, BOOL, ADDRESS, IntegerType, MappingType,
)


def prove(formula):
    solver = z3.Solver()
    solver.add(z3.Not(formula))
    return solver.check() == z3.unsat


def declaration(name, typ):
    return VariableDeclaration(name=name, type=typ)


class TestSorts:
    """SMT-001: Types map to sorts and domains."""

    def test_sorts(self):
        assert smt_sort(UINT256) == z3.IntSort()
        assert smt_sort(BOOL) == z3.BoolSort()
        assert smt_sort(ADDRESS) == z3.IntSort()
        nested = MappingType(ADDRESS, MappingType(ADDRESS, UINT256))
        assert smt_sort(nested) == z3.ArraySort(z3.IntSort(), z3.ArraySort(z3.IntSort(), z3.IntSort()))

    def test_zero_values(self):
        assert prove(zero_value(UINT256) == 0)
        assert prove(zero_value(BOOL) == False)  # noqa: E712
        m = zero_value(MappingType(ADDRESS, UINT256))
        k = z3.Int("k")
        assert prove(z3.ForAll([k], z3.Select(m, k) == 0))

    def test_type_constraints(self):
        x = z3.Int("x")
        assert prove(z3.Implies(type_constraints(x, IntegerType(8, False)), x <= 255))
        assert prove(z3.Implies(type_constraints(x, IntegerType(8, True)), x >= -128))
        assert z3.is_true(type_constraints(z3.Bool("b"), BOOL))
        assert max_value(ADDRESS) == 2 ** 160 - 1

    def test_wrap(self):
        assert prove(wrap(z3.IntVal(256), IntegerType(8, False)) == 0)
        assert prove(wrap(z3.IntVal(128), IntegerType(8, True)) == -128)
        assert prove(wrap(z3.IntVal(-1), UINT256) == 2 ** 256 - 1)


class TestSymbolicVariable:
    """SMT-002: SSA indices."""

    def test_indices(self):
        v = SymbolicVariable("x_0", UINT256)
        assert v.current_value().decl().name() == "x_0_0"
        v.increase_index()
        v.increase_index()
        assert v.index == 2 and v.next_free == 3
        assert v.value_at_index(1).decl().name() == "x_0_1"

    def test_reset(self):
        v = SymbolicVariable("x_0", INT256)
        v.increase_index()
        v.reset_index()
        assert v.index == 0 and v.next_free == 1

    def test_sort_follows_type(self):
        assert SymbolicVariable("b", BOOL).current_value().sort() == z3.BoolSort()


class TestEncodingContext:
    """SMT-003: Variables, assertions and path conditions."""

    def test_create_is_idempotent(self):
        ctx = EncodingContext()
        d = declaration("x", UINT256)
        assert ctx.create_variable(d) is ctx.create_variable(d)
        assert ctx.known_variable(d)

    def test_names_are_distinct_for_same_identifier(self):
        ctx = EncodingContext()
        a, b = declaration("x", UINT256), declaration("x", UINT256)
        assert ctx.create_variable(a).name != ctx.create_variable(b).name

    def test_unknown_variable(self):
        with pytest.raises(InternalError):
            EncodingContext().variable(declaration("ghost", UINT256))

    def test_new_value_and_zero(self):
        ctx = EncodingContext()
        d = declaration("x", UINT256)
        ctx.create_variable(d)
        ctx.set_zero_value(d)
        assert ctx.variable(d).index == 1
        assert prove(z3.Implies(ctx.assertions(), ctx.current_value(d) == 0))

    def test_unknown_value_is_range_constrained(self):
        ctx = EncodingContext()
        d = declaration("small", IntegerType(8, False))
        ctx.create_variable(d)
        ctx.set_unknown_value(d)
        assert prove(z3.Implies(ctx.assertions(), ctx.current_value(d) <= 255))

    def test_fresh_values_differ(self):
        ctx = EncodingContext()
        a = ctx.fresh_value("call", UINT256)
        b = ctx.fresh_value("call", UINT256)
        assert a.decl().name() != b.decl().name()
        assert ctx.assertion_count() == 2

    def test_true_is_not_recorded(self):
        ctx = EncodingContext()
        ctx.add_assertion(z3.BoolVal(True))
        assert ctx.assertion_count() == 0
        assert z3.is_true(ctx.assertions())

    def test_restore_assertions(self):
        ctx = EncodingContext()
        ctx.add_assertion(z3.Bool("p"))
        mark = ctx.assertion_count()
        ctx.add_assertion(z3.Bool("q"))
        ctx.restore_assertions(mark)
        assert ctx.assertion_count() == 1

    def test_path_conditions(self):
        ctx = EncodingContext()
        p, q = z3.Bools("p q")
        ctx.push_path_condition(p)
        ctx.push_path_condition(q)
        assert prove(ctx.current_path_conditions() == z3.And(p, q))
        ctx.pop_path_condition()
        ctx.pop_path_condition()
        assert z3.is_true(ctx.current_path_conditions())
        with pytest.raises(InternalError):
            ctx.pop_path_condition()

    def test_reset_keeps_variables(self):
        ctx = EncodingContext()
        d = declaration("x", UINT256)
        ctx.create_variable(d)
        ctx.add_assertion(z3.Bool("p"))
        ctx.push_path_condition(z3.Bool("q"))
        ctx.reset()
        assert ctx.assertion_count() == 0
        assert z3.is_true(ctx.current_path_conditions())
        assert ctx.known_variable(d)
        ctx.clear_variables()
        assert not ctx.known_variable(d)


class TestTerms:
    """SMT-004: Free constants of a rule."""

    def test_collects_in_order_without_duplicates(self):
        x, y = z3.Ints("x y")
        found = free_constants(z3.And(x > y, x < 3))
        assert [c.decl().name() for c in found] == ["x", "y"]

    def test_excludes_relations_and_literals(self):
        x = z3.Int("x")
        inv = z3.Function("inv", z3.IntSort(), z3.BoolSort())
        err = z3.Function("err", z3.BoolSort())
        rule = z3.Implies(z3.And(inv(x), x > 5), err())
        found = free_constants(rule, exclude={"inv", "err"})
        assert [c.decl().name() for c in found] == ["x"]

    def test_inside_arrays(self):
        m = z3.Array("m", z3.IntSort(), z3.IntSort())
        k = z3.Int("k")
        found = free_constants(z3.Select(z3.Store(m, k, 1), k) == 1)
        assert {c.decl().name() for c in found} == {"m", "k"}


class TestConjunction:
    """SMT-005: Conjunction drops trivially true parts."""

    def test_empty(self):
        assert z3.is_true(conjunction([]))

    def test_single(self):
        p = z3.Bool("p")
        assert conjunction([z3.BoolVal(True), p]).eq(p)

    def test_many(self):
        p, q = z3.Bools("p q")
        assert z3.is_and(conjunction([p, q]))
