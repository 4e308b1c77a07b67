"""SMT encoding of Solidity expressions and straight-line statements.

SMTEncoder walks statements and expressions with isinstance dispatch and
turns them into z3 terms over SSA-indexed variables (see smt/symbolic.py).
Everything that changes control flow (branches, loops, jumps, returns,
assertions, calls into other functions) is delegated to hooks that the
Horn-clause encoder overrides.

Arithmetic follows the compiler version named by the `pragma solidity`
line: checked (overflow reverts) from 0.8 on, wrap-around before that.
Constructs the encoder cannot model are over-approximated by fresh values
of the right type and reported as warnings.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import Optional, Union

import z3

from solhorn.ast_nodes import (
    SourceUnit, ContractDefinition, FunctionDefinition, VariableDeclaration,
    Statement, Block, VariableDeclarationStatement, ExpressionStatement,
    IfStatement, WhileStatement, ForStatement, Break, Continue, Return,
    EmitStatement,
    Expression, Literal, Identifier, BinaryOperation, UnaryOperation,
    Assignment, Conditional, IndexAccess, MemberAccess, TupleExpression,
    FunctionCall, CallKind, Node,
)
from solhorn.errors import ErrorReporter, InternalError
from solhorn.smt.sorts import type_constraints, wrap, zero_value
from solhorn.smt.symbolic import EncodingContext
from solhorn.smt.terms import conjunction
from solhorn.types import (
    SolType, IntegerType, MappingType, TupleType, UINT256, is_integer,
)


logger = logging.getLogger(__name__)

Value = Union[z3.ExprRef, list]

_VERSION = re.compile(r"0\.(\d+)")


def _abs(value: z3.ArithRef) -> z3.ArithRef:
    return z3.If(value >= 0, value, -value)


def uses_checked_arithmetic(unit: SourceUnit) -> bool:
    """True unless every `pragma solidity` allows only versions before 0.8."""
    minors: list[int] = []
    for pragma in unit.pragmas:
        if not pragma.startswith("solidity"):
            continue
        minors.extend(int(m) for m in _VERSION.findall(pragma))
    if not minors:
        return True
    return max(minors) >= 8


class SMTEncoder(ABC):
    """Base encoder: expressions, assignments and non-branching statements."""

    def __init__(self, reporter: Optional[ErrorReporter] = None):
        self.reporter = reporter or ErrorReporter()
        self.context = EncodingContext()
        self.checked_arithmetic = True
        self._contract: Optional[ContractDefinition] = None
        self._function: Optional[FunctionDefinition] = None
        self._locals_in_scope: list[VariableDeclaration] = []

    # -------------------------------------------------------------------
    # Diagnostics
    # -------------------------------------------------------------------

    def _unsupported(self, node: Node, what: str, typ: Optional[SolType]) -> z3.ExprRef:
        self.reporter.warning(
            node.location,
            f"Assertion checker does not yet support {what}.",
            construct=what,
        )
        return self.context.fresh_value("unsupported", typ)

    # -------------------------------------------------------------------
    # Statements
    # -------------------------------------------------------------------

    def statement(self, stmt: Statement) -> None:
        if isinstance(stmt, Block):
            self.visit_block(stmt)
        elif isinstance(stmt, VariableDeclarationStatement):
            self.visit_variable_declaration(stmt)
        elif isinstance(stmt, ExpressionStatement):
            self.expression(stmt.expression)
        elif isinstance(stmt, IfStatement):
            self.visit_if(stmt)
        elif isinstance(stmt, WhileStatement):
            self.visit_while(stmt)
        elif isinstance(stmt, ForStatement):
            self.visit_for(stmt)
        elif isinstance(stmt, Break):
            self.visit_break(stmt)
        elif isinstance(stmt, Continue):
            self.visit_continue(stmt)
        elif isinstance(stmt, Return):
            self.visit_return(stmt)
        elif isinstance(stmt, EmitStatement):
            for argument in stmt.event_call.arguments:
                self.expression(argument)
        else:
            raise InternalError(f"Unknown statement {type(stmt).__name__}")

    def visit_block(self, block: Block) -> None:
        depth = len(self._locals_in_scope)
        for stmt in block.statements:
            self.statement(stmt)
        del self._locals_in_scope[depth:]

    def visit_variable_declaration(self, stmt: VariableDeclarationStatement) -> None:
        declaration = stmt.declaration
        if stmt.initial_value is not None:
            value = self.expression(stmt.initial_value)
            value = self._single(value, stmt.initial_value)
        else:
            value = zero_value(declaration.type)
        self.assign_variable(declaration, value)
        self._locals_in_scope.append(declaration)

    @abstractmethod
    def visit_if(self, stmt: IfStatement) -> None:
        """Branch on the condition and merge both arms."""

    @abstractmethod
    def visit_while(self, stmt: WhileStatement) -> None:
        """Loop header, body and exit; covers do-while."""

    @abstractmethod
    def visit_for(self, stmt: ForStatement) -> None:
        """Loop with initialisation and post expression."""

    @abstractmethod
    def visit_break(self, stmt: Break) -> None:
        """Jump to the innermost loop exit."""

    @abstractmethod
    def visit_continue(self, stmt: Continue) -> None:
        """Jump to the innermost loop's continue target."""

    def visit_return(self, stmt: Return) -> None:
        """Assign the returned values to the return parameters."""
        if stmt.expression is None or self._function is None:
            return
        returns = self._function.return_parameters
        if isinstance(stmt.expression, TupleExpression):
            values = [self._single(self.expression(c), c) for c in stmt.expression.components]
        else:
            value = self.expression(stmt.expression)
            values = value if isinstance(value, list) else [value]
        if len(values) != len(returns):
            raise InternalError(
                f"Return of {len(values)} values from '{self._function.name}' "
                f"declaring {len(returns)}"
            )
        for declaration, value in zip(returns, values):
            self.assign_variable(declaration, value)

    # -------------------------------------------------------------------
    # Expressions
    # -------------------------------------------------------------------

    def expression(self, expr: Expression) -> Value:
        if isinstance(expr, Literal):
            return self.literal(expr)
        if isinstance(expr, Identifier):
            return self.identifier(expr)
        if isinstance(expr, BinaryOperation):
            return self.binary_operation(expr)
        if isinstance(expr, UnaryOperation):
            return self.unary_operation(expr)
        if isinstance(expr, Assignment):
            return self.assignment(expr)
        if isinstance(expr, Conditional):
            return self.conditional(expr)
        if isinstance(expr, IndexAccess):
            return self.index_access(expr)
        if isinstance(expr, MemberAccess):
            return self.member_access(expr)
        if isinstance(expr, TupleExpression):
            return [self._single(self.expression(c), c) for c in expr.components]
        if isinstance(expr, FunctionCall):
            return self.function_call(expr)
        raise InternalError(f"Unknown expression {type(expr).__name__}")

    def _single(self, value: Value, expr: Expression) -> z3.ExprRef:
        if isinstance(value, list):
            if len(value) == 1:
                return value[0]
            return self._unsupported(expr, "tuples in this position", expr.type)
        return value

    def literal(self, expr: Literal) -> z3.ExprRef:
        if expr.kind == "bool":
            return z3.BoolVal(bool(expr.value))
        if expr.kind == "number":
            return z3.IntVal(expr.value)
        return self.context.fresh_value("string", None)

    def identifier(self, expr: Identifier) -> z3.ExprRef:
        declaration = expr.declaration
        if isinstance(declaration, VariableDeclaration):
            if declaration.is_constant and declaration.value is not None:
                return self._single(self.expression(declaration.value), declaration.value)
            return self.context.current_value(declaration)
        if expr.name in ("now", "this"):
            return self.context.fresh_value(expr.name, expr.type)
        return self._unsupported(expr, f"identifier '{expr.name}'", expr.type)

    def binary_operation(self, expr: BinaryOperation) -> z3.ExprRef:
        op = expr.op
        if op in ("&&", "||"):
            left = self._single(self.expression(expr.left), expr.left)
            self.context.push_path_condition(left if op == "&&" else z3.Not(left))
            right = self._single(self.expression(expr.right), expr.right)
            self.context.pop_path_condition()
            return z3.And(left, right) if op == "&&" else z3.Or(left, right)

        left = self._single(self.expression(expr.left), expr.left)
        right = self._single(self.expression(expr.right), expr.right)
        if op in ("==", "!="):
            if left.sort() != right.sort() or isinstance(expr.left.type, MappingType):
                return self._unsupported(expr, f"comparison of {expr.left.type}", expr.type)
            return left == right if op == "==" else left != right
        if op == "<":
            return left < right
        if op == "<=":
            return left <= right
        if op == ">":
            return left > right
        if op == ">=":
            return left >= right
        if op in ("+", "-", "*", "/", "%"):
            return self.arithmetic(op, left, right, expr.type)
        return self._unsupported(expr, f"operator '{op}'", expr.type)

    def unary_operation(self, expr: UnaryOperation) -> z3.ExprRef:
        op = expr.op
        if op == "!":
            return z3.Not(self._single(self.expression(expr.operand), expr.operand))
        if op == "delete":
            self.assign(expr.operand, zero_value(expr.operand.type))
            return []
        if op in ("++", "--"):
            before = self._single(self.expression(expr.operand), expr.operand)
            after = self.arithmetic("+" if op == "++" else "-", before, z3.IntVal(1), expr.operand.type)
            self.assign(expr.operand, after)
            return after if expr.prefix else before
        if op == "-":
            if isinstance(expr.operand, Literal):
                return z3.IntVal(-expr.operand.value)
            operand = self._single(self.expression(expr.operand), expr.operand)
            return self.arithmetic("-", z3.IntVal(0), operand, expr.type)
        return self._unsupported(expr, f"operator '{op}'", expr.type)

    def arithmetic(self, op: str, left: z3.ArithRef, right: z3.ArithRef,
                   typ: Optional[SolType]) -> z3.ArithRef:
        if not isinstance(typ, IntegerType):
            typ = UINT256
        if op == "+":
            value = left + right
        elif op == "-":
            value = left - right
        elif op == "*":
            value = left * right
        else:
            quotient, remainder = self._division_with_slacks(left, right, typ)
            if op == "%":
                # The remainder always fits into the type.
                return remainder
            value = quotient

        if self.checked_arithmetic:
            self.add_path_implied(type_constraints(value, typ))
            return value
        return self._wrap(op, value, typ)

    def _division_with_slacks(self, left: z3.ArithRef, right: z3.ArithRef,
                              typ: IntegerType) -> tuple[z3.ArithRef, z3.ArithRef]:
        """Quotient and remainder of `left / right` as fresh values.

        Horn solvers reject `div` and `mod` by non-constant divisors, so the
        result is described by `left == right * q + r` with the remainder
        bounded by the divisor. Division truncates towards zero and the
        remainder takes the sign of the dividend.
        """
        quotient = self.context.fresh_value("div_quotient", None)
        remainder = self.context.fresh_value("div_remainder", None)
        constraints = [right != 0, left == right * quotient + remainder]
        if typ.signed:
            constraints.append(z3.If(left >= 0, remainder >= 0, remainder <= 0))
            constraints.append(_abs(remainder) < _abs(right))
        else:
            constraints.append(remainder >= 0)
            constraints.append(remainder < right)
        self.add_path_implied(conjunction(constraints))
        return quotient, remainder

    @staticmethod
    def _wrap(op: str, value: z3.ArithRef, typ: IntegerType) -> z3.ArithRef:
        modulus = 2 ** typ.bits
        if op == "+" and not typ.signed:
            return z3.If(value > typ.max_value, value - modulus, value)
        if op == "-" and not typ.signed:
            return z3.If(value < 0, value + modulus, value)
        if op in ("+", "-"):
            return z3.If(value > typ.max_value, value - modulus,
                         z3.If(value < typ.min_value, value + modulus, value))
        return wrap(value, typ)

    def conditional(self, expr: Conditional) -> z3.ExprRef:
        condition = self._single(self.expression(expr.condition), expr.condition)
        before = self._snapshot_indices()

        self.context.push_path_condition(condition)
        true_value = self._single(self.expression(expr.true_expression), expr.true_expression)
        self.context.pop_path_condition()
        after_true = self._snapshot_indices()
        self._restore_indices(before)

        self.context.push_path_condition(z3.Not(condition))
        false_value = self._single(self.expression(expr.false_expression), expr.false_expression)
        self.context.pop_path_condition()
        after_false = self._snapshot_indices()

        self._merge_variables(condition, after_true, after_false)
        return z3.If(condition, true_value, false_value)

    def _snapshot_indices(self) -> dict[VariableDeclaration, int]:
        return {d: v.index for d, v in self.context.variables.items()}

    def _restore_indices(self, indices: dict[VariableDeclaration, int]) -> None:
        for declaration, index in indices.items():
            self.context.variable(declaration).index = index

    def _merge_variables(self, condition: z3.BoolRef,
                         after_true: dict[VariableDeclaration, int],
                         after_false: dict[VariableDeclaration, int]) -> None:
        for declaration, true_index in after_true.items():
            false_index = after_false[declaration]
            if true_index == false_index:
                continue
            variable = self.context.variable(declaration)
            merged = z3.If(condition,
                           variable.value_at_index(true_index),
                           variable.value_at_index(false_index))
            self.context.add_assertion(variable.increase_index() == merged)

    def index_access(self, expr: IndexAccess) -> z3.ExprRef:
        if not isinstance(expr.base.type, MappingType):
            return self._unsupported(expr, "index access on this type", expr.type)
        base = self._single(self.expression(expr.base), expr.base)
        index = self._single(self.expression(expr.index), expr.index)
        value = z3.Select(base, index)
        self.context.add_assertion(type_constraints(value, expr.type))
        return value

    def member_access(self, expr: MemberAccess) -> z3.ExprRef:
        base = expr.expression
        if isinstance(base, Identifier) and base.name in ("msg", "block", "tx"):
            return self.context.fresh_value(f"{base.name}_{expr.member}", expr.type)
        if expr.member == "balance":
            self.expression(base)
            return self.context.fresh_value("balance", expr.type)
        return self._unsupported(expr, f"member '{expr.member}'", expr.type)

    # -------------------------------------------------------------------
    # Calls
    # -------------------------------------------------------------------

    def function_call(self, expr: FunctionCall) -> Value:
        kind = expr.kind
        if kind == CallKind.ASSERT:
            self.visit_assert(expr)
            return []
        if kind == CallKind.REQUIRE:
            condition = self._single(self.expression(expr.arguments[0]), expr.arguments[0])
            for argument in expr.arguments[1:]:
                self.expression(argument)
            self.add_path_implied(condition)
            return []
        if kind == CallKind.REVERT:
            for argument in expr.arguments:
                self.expression(argument)
            self.add_path_implied(z3.BoolVal(False))
            return []
        if kind == CallKind.TYPE_CONVERSION:
            return self.type_conversion(expr)
        if kind == CallKind.INTERNAL:
            return self.internal_function_call(expr)
        if kind == CallKind.EXTERNAL:
            return self.unknown_function_call(expr)
        if kind == CallKind.BUILTIN:
            for argument in expr.arguments:
                self.expression(argument)
            return self.fresh_values("builtin", expr.type)
        return self._unsupported(expr, "this kind of call", expr.type)

    def type_conversion(self, expr: FunctionCall) -> z3.ExprRef:
        argument = expr.arguments[0]
        value = self._single(self.expression(argument), argument)
        target, source = expr.type, argument.type
        if isinstance(target, IntegerType) and is_integer(source) and source != target:
            if isinstance(argument, Literal):
                return value
            if source.min_value < target.min_value or source.max_value > target.max_value:
                return wrap(value, target)
        return value

    def fresh_values(self, prefix: str, typ: Optional[SolType]) -> Value:
        if isinstance(typ, TupleType):
            if not typ.components:
                return []
            return [self.context.fresh_value(prefix, t) for t in typ.components]
        return self.context.fresh_value(prefix, typ)

    @abstractmethod
    def visit_assert(self, expr: FunctionCall) -> None:
        """Record `expr` as a verification target."""

    @abstractmethod
    def internal_function_call(self, expr: FunctionCall) -> Value:
        """Call into a function of the current contract."""

    @abstractmethod
    def unknown_function_call(self, expr: FunctionCall) -> Value:
        """Call into code that is not analysed."""

    # -------------------------------------------------------------------
    # Assignment
    # -------------------------------------------------------------------

    def assignment(self, expr: Assignment) -> Value:
        if isinstance(expr.target, TupleExpression):
            value = self.expression(expr.value)
            values = value if isinstance(value, list) else [value]
            components = expr.target.components
            if len(values) != len(components):
                return self._unsupported(expr, "tuple assignment of different arity", None)
            for component, component_value in zip(components, values):
                self.assign(component, component_value)
            return values

        value = self._single(self.expression(expr.value), expr.value)
        if expr.op != "=":
            current = self._single(self.expression(expr.target), expr.target)
            value = self.arithmetic(expr.op[0], current, value, expr.target.type)
        self.assign(expr.target, value)
        return value

    def assign(self, target: Expression, value: z3.ExprRef) -> None:
        if isinstance(target, Identifier) and isinstance(target.declaration, VariableDeclaration):
            self.assign_variable(target.declaration, value)
        elif isinstance(target, IndexAccess) and isinstance(target.base.type, MappingType):
            base = self._single(self.expression(target.base), target.base)
            index = self._single(self.expression(target.index), target.index)
            self.assign(target.base, z3.Store(base, index, value))
        else:
            self._unsupported(target, "assignment to this expression", target.type)

    def assign_variable(self, declaration: VariableDeclaration, value: z3.ExprRef) -> None:
        variable = self.context.variable(declaration)
        if value.sort() != variable.sort:
            raise InternalError(
                f"Assigning {value.sort()} to '{declaration.name}' of sort {variable.sort}"
            )
        self.context.add_assertion(variable.increase_index() == value)

    def add_path_implied(self, expr: z3.BoolRef) -> None:
        """Record `expr` as holding whenever the current path conditions do."""
        conditions = self.context.current_path_conditions()
        if z3.is_true(conditions):
            self.context.add_assertion(expr)
        else:
            self.context.add_assertion(z3.Implies(conditions, expr))
