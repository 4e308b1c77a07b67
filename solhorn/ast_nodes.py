"""solhorn AST node definitions.

A resolved Solidity-subset AST. The parser fills in the syntactic fields;
the resolver fills in the annotations (referenced declarations, expression
types, call kinds, linearised bases).

Nodes compare and hash by identity: the model checker keys predicates and
verification targets by node.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Optional, Any

from solhorn.errors import SourceLocation
from solhorn.types import SolType


_node_ids = itertools.count(1)


def next_node_id() -> int:
    return next(_node_ids)


@dataclass(eq=False)
class Node:
    location: Optional[SourceLocation] = None
    id: int = field(default_factory=next_node_id)


# ---------------------------------------------------------------------------
# Type Names (in source)
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class TypeName(Node):
    """`uint256`, `address`, `Token` or `mapping(K => V)`."""
    name: str = ""
    key: Optional[TypeName] = None
    value: Optional[TypeName] = None

    def __str__(self) -> str:
        if self.name == "mapping":
            return f"mapping({self.key} => {self.value})"
        return self.name


# ---------------------------------------------------------------------------
# Expressions
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class Expression(Node):
    type: Optional[SolType] = None


@dataclass(eq=False)
class Literal(Expression):
    """Number, bool or string literal; `kind` is "number", "bool" or "string"."""
    value: Any = None
    kind: str = "number"


@dataclass(eq=False)
class Identifier(Expression):
    name: str = ""
    declaration: Optional[Node] = None


@dataclass(eq=False)
class BinaryOperation(Expression):
    op: str = ""
    left: Expression = field(default_factory=Expression)
    right: Expression = field(default_factory=Expression)


@dataclass(eq=False)
class UnaryOperation(Expression):
    """`!x`, `-x`, `++x`, `x--`, `delete x`."""
    op: str = ""
    operand: Expression = field(default_factory=Expression)
    prefix: bool = True


@dataclass(eq=False)
class Assignment(Expression):
    """`target op value` where op is `=` or a compound `+=`, `-=`, ..."""
    op: str = "="
    target: Expression = field(default_factory=Expression)
    value: Expression = field(default_factory=Expression)


@dataclass(eq=False)
class Conditional(Expression):
    condition: Expression = field(default_factory=Expression)
    true_expression: Expression = field(default_factory=Expression)
    false_expression: Expression = field(default_factory=Expression)


@dataclass(eq=False)
class IndexAccess(Expression):
    base: Expression = field(default_factory=Expression)
    index: Expression = field(default_factory=Expression)


@dataclass(eq=False)
class MemberAccess(Expression):
    expression: Expression = field(default_factory=Expression)
    member: str = ""


@dataclass(eq=False)
class TupleExpression(Expression):
    components: list[Expression] = field(default_factory=list)


class CallKind(Enum):
    UNRESOLVED = auto()
    ASSERT = auto()
    REQUIRE = auto()
    REVERT = auto()
    INTERNAL = auto()
    EXTERNAL = auto()
    TYPE_CONVERSION = auto()
    BUILTIN = auto()      # gasleft(), blockhash(...): opaque values


@dataclass(eq=False)
class FunctionCall(Expression):
    callee: Expression = field(default_factory=Expression)
    arguments: list[Expression] = field(default_factory=list)
    kind: CallKind = CallKind.UNRESOLVED
    function: Optional[FunctionDefinition] = None


# ---------------------------------------------------------------------------
# Statements
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class Statement(Node):
    pass


@dataclass(eq=False)
class Block(Statement):
    statements: list[Statement] = field(default_factory=list)


@dataclass(eq=False)
class VariableDeclarationStatement(Statement):
    declaration: VariableDeclaration = field(default_factory=lambda: VariableDeclaration())
    initial_value: Optional[Expression] = None


@dataclass(eq=False)
class ExpressionStatement(Statement):
    expression: Expression = field(default_factory=Expression)


@dataclass(eq=False)
class IfStatement(Statement):
    condition: Expression = field(default_factory=Expression)
    true_body: Statement = field(default_factory=Block)
    false_body: Optional[Statement] = None


@dataclass(eq=False)
class WhileStatement(Statement):
    condition: Expression = field(default_factory=Expression)
    body: Statement = field(default_factory=Block)
    is_do_while: bool = False


@dataclass(eq=False)
class ForStatement(Statement):
    initialization: Optional[Statement] = None
    condition: Optional[Expression] = None
    loop_expression: Optional[ExpressionStatement] = None
    body: Statement = field(default_factory=Block)


@dataclass(eq=False)
class Break(Statement):
    pass


@dataclass(eq=False)
class Continue(Statement):
    pass


@dataclass(eq=False)
class Return(Statement):
    expression: Optional[Expression] = None


@dataclass(eq=False)
class EmitStatement(Statement):
    event_call: FunctionCall = field(default_factory=FunctionCall)


# ---------------------------------------------------------------------------
# Declarations
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class VariableDeclaration(Node):
    name: str = ""
    type_name: TypeName = field(default_factory=TypeName)
    value: Optional[Expression] = None
    is_state_variable: bool = False
    visibility: str = "internal"
    is_constant: bool = False
    type: Optional[SolType] = None
    scope: Optional[Node] = None


@dataclass(eq=False)
class FunctionDefinition(Node):
    name: str = ""
    parameters: list[VariableDeclaration] = field(default_factory=list)
    return_parameters: list[VariableDeclaration] = field(default_factory=list)
    body: Optional[Block] = None
    visibility: str = "public"
    state_mutability: str = "nonpayable"
    is_constructor: bool = False
    contract: Optional[ContractDefinition] = None
    # Filled by the resolver: every local declared in the body, in source order.
    local_variables: list[VariableDeclaration] = field(default_factory=list)

    @property
    def is_implemented(self) -> bool:
        return self.body is not None

    @property
    def is_public(self) -> bool:
        return self.visibility in ("public", "external")

    @property
    def display_name(self) -> str:
        return "constructor" if self.is_constructor else self.name


@dataclass(eq=False)
class EventDefinition(Node):
    name: str = ""
    parameters: list[VariableDeclaration] = field(default_factory=list)


@dataclass(eq=False)
class ContractDefinition(Node):
    name: str = ""
    kind: str = "contract"   # "contract" | "interface" | "library"
    is_abstract: bool = False
    base_names: list[str] = field(default_factory=list)
    state_variables: list[VariableDeclaration] = field(default_factory=list)
    functions: list[FunctionDefinition] = field(default_factory=list)
    events: list[EventDefinition] = field(default_factory=list)
    # Filled by the resolver, most derived first (this contract is element 0).
    linearized_bases: list[ContractDefinition] = field(default_factory=list)

    @property
    def constructor(self) -> Optional[FunctionDefinition]:
        for function in self.functions:
            if function.is_constructor:
                return function
        return None

    def state_variables_including_inherited(self) -> list[VariableDeclaration]:
        """State variables of the whole hierarchy, most base contract first."""
        result: list[VariableDeclaration] = []
        for contract in reversed(self.linearized_bases or [self]):
            result.extend(v for v in contract.state_variables if not v.is_constant)
        return result

    def defined_functions(self) -> list[FunctionDefinition]:
        """Non-constructor functions visible in this contract, overrides resolved."""
        seen: set[str] = set()
        result: list[FunctionDefinition] = []
        for contract in self.linearized_bases or [self]:
            for function in contract.functions:
                if function.is_constructor or function.name in seen:
                    continue
                seen.add(function.name)
                result.append(function)
        return result

    def resolve_virtual(self, function: FunctionDefinition) -> FunctionDefinition:
        """Most derived implementation of `function` in this contract."""
        for contract in self.linearized_bases or [self]:
            for candidate in contract.functions:
                if (not candidate.is_constructor
                        and candidate.name == function.name
                        and len(candidate.parameters) == len(function.parameters)):
                    return candidate
        return function


@dataclass(eq=False)
class SourceUnit(Node):
    contracts: list[ContractDefinition] = field(default_factory=list)
    filename: str = "<stdin>"
    pragmas: list[str] = field(default_factory=list)

    def contract(self, name: str) -> Optional[ContractDefinition]:
        for contract in self.contracts:
            if contract.name == name:
                return contract
        return None
