"""SSA-indexed symbolic variables and the per-block encoding context.

Each program variable owns a sequence of z3 constants `name_0, name_1, ...`.
Index 0 is reserved for the value a function was entered with; every write
moves the variable to the next free index. Constants are never reused for a
different value inside one rule, so a rule body reads as straight-line SSA.
"""

from __future__ import annotations

import itertools
import logging
from typing import Optional

import z3

from solhorn.ast_nodes import VariableDeclaration
from solhorn.errors import InternalError
from solhorn.types import SolType
from solhorn.smt.sorts import smt_sort, type_constraints, zero_value


logger = logging.getLogger(__name__)


class SymbolicVariable:
    """A program variable in SSA form."""

    def __init__(self, name: str, typ: Optional[SolType]):
        self.name = name
        self.type = typ
        self.sort = smt_sort(typ)
        self.index = 0
        self.next_free = 1

    def value_at_index(self, index: int) -> z3.ExprRef:
        return z3.Const(f"{self.name}_{index}", self.sort)

    def current_value(self) -> z3.ExprRef:
        return self.value_at_index(self.index)

    def increase_index(self) -> z3.ExprRef:
        self.index = self.next_free
        self.next_free += 1
        return self.current_value()

    def reset_index(self) -> None:
        self.index = 0
        self.next_free = 1

    def __repr__(self) -> str:
        return f"SymbolicVariable({self.name}, {self.type}, index={self.index})"


class EncodingContext:
    """Variables, side assertions and path conditions of the block being encoded.

    `assertions` collects what is known since the current block started
    (definitions of SSA values, type constraints of fresh values, required
    conditions). The CFG encoder folds them into the body of every rule
    leaving the block and clears them when a new block becomes current.
    """

    def __init__(self) -> None:
        self.variables: dict[VariableDeclaration, SymbolicVariable] = {}
        self._assertions: list[z3.BoolRef] = []
        self._path_conditions: list[z3.BoolRef] = []
        self._fresh = itertools.count()
        self._variable_ids = itertools.count()

    # -------------------------------------------------------------------
    # Variables
    # -------------------------------------------------------------------

    def create_variable(self, declaration: VariableDeclaration) -> SymbolicVariable:
        if declaration in self.variables:
            return self.variables[declaration]
        variable = SymbolicVariable(
            f"{declaration.name}_{next(self._variable_ids)}", declaration.type,
        )
        self.variables[declaration] = variable
        return variable

    def known_variable(self, declaration: VariableDeclaration) -> bool:
        return declaration in self.variables

    def variable(self, declaration: VariableDeclaration) -> SymbolicVariable:
        try:
            return self.variables[declaration]
        except KeyError:
            raise InternalError(
                f"No symbolic variable for '{declaration.name}' (node {declaration.id})"
            ) from None

    def current_value(self, declaration: VariableDeclaration) -> z3.ExprRef:
        return self.variable(declaration).current_value()

    def new_value(self, declaration: VariableDeclaration) -> z3.ExprRef:
        return self.variable(declaration).increase_index()

    def set_zero_value(self, declaration: VariableDeclaration) -> None:
        variable = self.variable(declaration)
        self.add_assertion(variable.increase_index() == zero_value(variable.type))

    def set_unknown_value(self, declaration: VariableDeclaration) -> None:
        variable = self.variable(declaration)
        self.add_assertion(type_constraints(variable.increase_index(), variable.type))

    def clear_variables(self) -> None:
        self.variables = {}

    # -------------------------------------------------------------------
    # Fresh values
    # -------------------------------------------------------------------

    def fresh_value(self, prefix: str, typ: Optional[SolType]) -> z3.ExprRef:
        """A new unconstrained constant restricted to the range of `typ`."""
        value = z3.Const(f"{prefix}_fresh_{next(self._fresh)}", smt_sort(typ))
        self.add_assertion(type_constraints(value, typ))
        return value

    # -------------------------------------------------------------------
    # Assertions
    # -------------------------------------------------------------------

    def add_assertion(self, expr: z3.BoolRef) -> None:
        if z3.is_true(expr):
            return
        self._assertions.append(expr)

    def assertions(self) -> z3.BoolRef:
        if not self._assertions:
            return z3.BoolVal(True)
        if len(self._assertions) == 1:
            return self._assertions[0]
        return z3.And(*self._assertions)

    def reset_assertions(self) -> None:
        self._assertions = []

    def assertion_count(self) -> int:
        return len(self._assertions)

    def restore_assertions(self, count: int) -> None:
        del self._assertions[count:]

    # -------------------------------------------------------------------
    # Path conditions
    # -------------------------------------------------------------------

    def push_path_condition(self, condition: z3.BoolRef) -> None:
        self._path_conditions.append(condition)

    def pop_path_condition(self) -> None:
        if not self._path_conditions:
            raise InternalError("Path condition stack underflow")
        self._path_conditions.pop()

    def current_path_conditions(self) -> z3.BoolRef:
        if not self._path_conditions:
            return z3.BoolVal(True)
        return z3.And(*self._path_conditions)

    def reset(self) -> None:
        """Forget assertions and path conditions; variables keep their objects."""
        self._assertions = []
        self._path_conditions = []
        logger.debug("encoding context reset (%d variables)", len(self.variables))
