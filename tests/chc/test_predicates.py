"""solhorn predicate arena and sort builder tests, PRED-001 through PRED-003."""

import pytest
import z3

from solhorn.ast_nodes import Block, FunctionDefinition, VariableDeclaration
from solhorn.engines.predicates import PredicateArena, PredicateKind
from solhorn.engines.sorts import SortBuilder
from solhorn.errors import InternalError
from solhorn.types import UINT256, BOOL, ADDRESS, MappingType


INT = z3.IntSort()
BOOL_SORT = z3.BoolSort()


def var(name, typ):
    return VariableDeclaration(name=name, type=typ)


class TestArena:
    """PRED-001: Allocation, lookup and application checks."""

    def test_create_and_lookup(self):
        block = Block()
        arena = PredicateArena()
        p = arena.create("block_0_f", [INT, BOOL_SORT], PredicateKind.BLOCK, node=block)
        assert p.arity == 2
        assert arena.get(p.handle) is p
        assert arena.for_node(block) == [p]
        assert arena.names() == ["block_0_f"]
        assert arena.of_kind(PredicateKind.BLOCK) == [p]
        assert len(arena) == 1

    def test_handles_are_stable(self):
        arena = PredicateArena()
        first = arena.create("a", [], PredicateKind.GENESIS)
        second = arena.create("b", [], PredicateKind.ERROR)
        assert (first.handle, second.handle) == (0, 1)
        assert list(arena) == [first, second]

    def test_duplicate_name(self):
        arena = PredicateArena()
        arena.create("interface_C", [INT], PredicateKind.INTERFACE)
        with pytest.raises(InternalError):
            arena.create("interface_C", [INT], PredicateKind.INTERFACE)

    def test_on_create_callback(self):
        seen = []
        arena = PredicateArena(on_create=seen.append)
        p = arena.create("summary_f", [INT, INT], PredicateKind.SUMMARY)
        assert seen == [p]


class TestApplication:
    """PRED-002: Arity and sorts are checked on application."""

    def test_apply(self):
        p = PredicateArena().create("p", [INT, BOOL_SORT], PredicateKind.BLOCK)
        app = p(z3.IntVal(1), z3.BoolVal(True))
        assert z3.is_app(app) and app.decl().name() == "p"

    def test_zero_arity(self):
        err = PredicateArena().create("error_1", [], PredicateKind.ERROR)
        assert err().decl().arity() == 0

    def test_wrong_arity(self):
        p = PredicateArena().create("p", [INT], PredicateKind.BLOCK)
        with pytest.raises(InternalError):
            p()

    def test_wrong_sort(self):
        p = PredicateArena().create("p", [INT], PredicateKind.BLOCK)
        with pytest.raises(InternalError):
            p(z3.BoolVal(True))

    def test_python_value_rejected(self):
        p = PredicateArena().create("p", [INT], PredicateKind.BLOCK)
        with pytest.raises(InternalError):
            p(3)


class TestSortBuilder:
    """PRED-003: Predicate domains."""

    def setup_method(self):
        self.balance = var("balance", MappingType(ADDRESS, UINT256))
        self.flag = var("flag", BOOL)
        self.builder = SortBuilder()
        self.builder.set_state_variables([self.balance, self.flag])
        self.function = FunctionDefinition(
            name="f",
            parameters=[var("a", UINT256)],
            return_parameters=[var("r", BOOL)],
        )
        self.array = z3.ArraySort(INT, INT)

    def test_interface_and_constructor(self):
        assert self.builder.interface_sort() == [self.array, BOOL_SORT]
        assert self.builder.constructor_sort() == [self.array, BOOL_SORT]

    def test_function_sort(self):
        assert self.builder.function_sort(self.function) == [
            self.array, BOOL_SORT, INT,              # entry snapshot
            self.array, BOOL_SORT, INT, BOOL_SORT,   # current values
        ]

    def test_summary_sort(self):
        assert self.builder.summary_sort(self.function) == [
            self.array, BOOL_SORT, INT, BOOL_SORT, self.array, BOOL_SORT,
        ]

    def test_block_sort_adds_locals_and_is_cached(self):
        node = Block()
        local = var("i", UINT256)
        carried, sorts = self.builder.block_sort(node, self.function, [local])
        assert carried == [local]
        assert sorts == self.builder.function_sort(self.function) + [INT]
        again = self.builder.block_sort(node, self.function, [])
        assert again == (carried, sorts)

    def test_block_outside_function_is_state_only(self):
        carried, sorts = self.builder.block_sort(Block(), None, [var("i", UINT256)])
        assert carried == []
        assert sorts == [self.array, BOOL_SORT]

    def test_reset(self):
        self.builder.reset()
        assert self.builder.interface_sort() == []
