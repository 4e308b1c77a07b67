"""solhorn Resolver — name binding, type annotation and call classification.

Runs after parsing and before model checking:

  1. Linearise every contract's bases (C3, Solidity order: the rightmost
     base in `is A, B` is the most derived).
  2. Resolve declared types of state variables, parameters and locals.
  3. Bind every Identifier to its declaration and annotate expression types.
  4. Classify calls: assert / require / revert, internal, external,
     type conversion, opaque builtins.

All diagnostics of a source unit are collected and raised together in one
CompileError.
"""

from __future__ import annotations

from typing import Optional

from solhorn.ast_nodes import (
    SourceUnit, ContractDefinition, FunctionDefinition, EventDefinition,
    VariableDeclaration, TypeName, Node,
    Statement, Block, VariableDeclarationStatement, ExpressionStatement,
    IfStatement, WhileStatement, ForStatement, Break, Continue, Return,
    EmitStatement,
    Expression, Literal, Identifier, BinaryOperation, UnaryOperation,
    Assignment, Conditional, IndexAccess, MemberAccess, TupleExpression,
    FunctionCall, CallKind,
)
from solhorn.errors import (
    Diagnostic, CompileError, declaration_error, type_error, unsupported,
)
from solhorn.types import (
    SolType, BoolType, AddressType, ContractType, MappingType, TupleType,
    UINT256, INT256, BOOL, ADDRESS, STRING, EMPTY_TUPLE,
    elementary_type, is_integer, is_address_like, common_type,
)


ARITHMETIC_OPS = ("+", "-", "*", "/", "%")
BITWISE_OPS = ("&", "|", "^", "<<", ">>")
COMPARISON_OPS = ("<", ">", "<=", ">=")

MAGIC_MEMBERS: dict[str, dict[str, SolType]] = {
    "msg": {"sender": ADDRESS, "value": UINT256, "sig": UINT256},
    "block": {
        "timestamp": UINT256, "number": UINT256, "coinbase": ADDRESS,
        "difficulty": UINT256, "prevrandao": UINT256, "gaslimit": UINT256,
        "chainid": UINT256, "basefee": UINT256,
    },
    "tx": {"origin": ADDRESS, "gasprice": UINT256},
}

# Builtin functions whose results are modelled as opaque values.
OPAQUE_BUILTINS: dict[str, SolType] = {
    "gasleft": UINT256,
    "blockhash": UINT256,
    "keccak256": UINT256,
    "sha256": UINT256,
    "ripemd160": UINT256,
    "addmod": UINT256,
    "mulmod": UINT256,
    "ecrecover": ADDRESS,
    "selfdestruct": EMPTY_TUPLE,
}

ADDRESS_CALL_MEMBERS: dict[str, SolType] = {
    "transfer": EMPTY_TUPLE,
    "send": BOOL,
    "call": TupleType((BOOL, STRING)),
    "delegatecall": TupleType((BOOL, STRING)),
    "staticcall": TupleType((BOOL, STRING)),
}


class LinearizationError(Exception):
    pass


def c3_linearize(contract: ContractDefinition,
                 contracts: dict[str, ContractDefinition],
                 _visiting: Optional[set[str]] = None) -> list[ContractDefinition]:
    """C3 linearisation, most derived first."""
    visiting = _visiting or set()
    if contract.name in visiting:
        raise LinearizationError(f"Cyclic inheritance involving '{contract.name}'")
    visiting = visiting | {contract.name}

    bases = [contracts[name] for name in reversed(contract.base_names)]
    sequences = [c3_linearize(base, contracts, visiting) for base in bases]
    sequences.append(list(bases))

    result = [contract]
    while any(sequences):
        for sequence in sequences:
            if not sequence:
                continue
            head = sequence[0]
            if not any(head in other[1:] for other in sequences):
                break
        else:
            raise LinearizationError(
                f"Linearization of inheritance graph impossible for '{contract.name}'"
            )
        result.append(head)
        for sequence in sequences:
            if sequence and sequence[0] is head:
                del sequence[0]
    return result


def _is_number_literal(expr: Expression) -> bool:
    if isinstance(expr, Literal) and expr.kind == "number":
        return True
    return (isinstance(expr, UnaryOperation) and expr.op == "-"
            and _is_number_literal(expr.operand))


class Resolver:
    """Binds names and annotates types over a parsed SourceUnit."""

    def __init__(self) -> None:
        self.errors: list[Diagnostic] = []
        self.contracts: dict[str, ContractDefinition] = {}
        self._contract: Optional[ContractDefinition] = None
        self._function: Optional[FunctionDefinition] = None
        self._scopes: list[dict[str, VariableDeclaration]] = []

    def _error(self, diagnostic: Diagnostic) -> None:
        self.errors.append(diagnostic)

    # -------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------

    def resolve(self, unit: SourceUnit) -> SourceUnit:
        for contract in unit.contracts:
            if contract.name in self.contracts:
                self._error(declaration_error(
                    contract.name, f"Contract '{contract.name}' is declared twice",
                    contract.location,
                ))
            self.contracts[contract.name] = contract

        for contract in unit.contracts:
            missing = [b for b in contract.base_names if b not in self.contracts]
            for name in missing:
                self._error(declaration_error(
                    name, f"Base contract '{name}' is not declared", contract.location,
                ))
        if self.errors:
            raise CompileError(self.errors)

        for contract in unit.contracts:
            try:
                contract.linearized_bases = c3_linearize(contract, self.contracts)
            except LinearizationError as e:
                self._error(declaration_error(contract.name, str(e), contract.location))
        if self.errors:
            raise CompileError(self.errors)

        for contract in unit.contracts:
            self._declare_contract(contract)
        for contract in unit.contracts:
            self._resolve_contract(contract)

        if self.errors:
            raise CompileError(self.errors)
        return unit

    # -------------------------------------------------------------------
    # Declarations
    # -------------------------------------------------------------------

    def _type_of(self, type_name: TypeName) -> Optional[SolType]:
        if type_name.name == "mapping":
            key = self._type_of(type_name.key)
            value = self._type_of(type_name.value)
            if key is None or value is None:
                return None
            if not key.is_value_type():
                self._error(unsupported(f"mapping key type '{key}'", type_name.location))
                return None
            return MappingType(key, value)
        if type_name.name == "address payable":
            return AddressType(payable=True)
        typ = elementary_type(type_name.name)
        if typ is not None:
            return typ
        if type_name.name in self.contracts:
            return ContractType(type_name.name)
        if type_name.name.startswith("bytes") or type_name.name in ("fixed", "ufixed"):
            self._error(unsupported(f"type '{type_name.name}'", type_name.location))
            return None
        self._error(declaration_error(
            type_name.name, f"Undeclared type '{type_name.name}'", type_name.location,
        ))
        return None

    def _declare_variable(self, declaration: VariableDeclaration) -> None:
        declaration.type = self._type_of(declaration.type_name)

    def _declare_contract(self, contract: ContractDefinition) -> None:
        names: set[str] = set()
        for variable in contract.state_variables:
            self._declare_variable(variable)
            if variable.name in names:
                self._error(declaration_error(
                    variable.name, f"Identifier '{variable.name}' already declared",
                    variable.location,
                ))
            names.add(variable.name)
        for function in contract.functions:
            for parameter in function.parameters + function.return_parameters:
                self._declare_variable(parameter)
                if isinstance(parameter.type, MappingType):
                    self._error(unsupported("mapping parameter", parameter.location))
        for event in contract.events:
            for parameter in event.parameters:
                self._declare_variable(parameter)

        overloads: dict[str, FunctionDefinition] = {}
        for function in contract.functions:
            if function.is_constructor:
                continue
            if function.name in overloads:
                self._error(unsupported(f"overloaded function '{function.name}'", function.location))
            overloads[function.name] = function

    # -------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------

    def _lookup_state_variable(self, name: str) -> Optional[VariableDeclaration]:
        for contract in self._contract.linearized_bases:
            for variable in contract.state_variables:
                if variable.name == name:
                    return variable
        return None

    def _lookup_function(self, name: str) -> Optional[FunctionDefinition]:
        for contract in self._contract.linearized_bases:
            for function in contract.functions:
                if function.name == name and not function.is_constructor:
                    return function
        return None

    def _lookup_event(self, name: str) -> Optional[EventDefinition]:
        for contract in self._contract.linearized_bases:
            for event in contract.events:
                if event.name == name:
                    return event
        return None

    def _lookup(self, name: str) -> Optional[Node]:
        for scope in reversed(self._scopes):
            if name in scope:
                return scope[name]
        return (self._lookup_state_variable(name)
                or self._lookup_function(name)
                or self._lookup_event(name)
                or self.contracts.get(name))

    def _declare_local(self, declaration: VariableDeclaration) -> None:
        if not declaration.name:
            return
        scope = self._scopes[-1]
        if declaration.name in scope:
            self._error(declaration_error(
                declaration.name, f"Identifier '{declaration.name}' already declared",
                declaration.location,
            ))
        scope[declaration.name] = declaration

    # -------------------------------------------------------------------
    # Contracts and functions
    # -------------------------------------------------------------------

    def _resolve_contract(self, contract: ContractDefinition) -> None:
        self._contract = contract
        self._function = None
        self._scopes = []
        for variable in contract.state_variables:
            if variable.value is not None:
                self._expression(variable.value)
            elif variable.is_constant:
                self._error(type_error(
                    f"Constant '{variable.name}' must be initialized", variable.location,
                ))
        for function in contract.functions:
            self._resolve_function(function)
        self._contract = None

    def _resolve_function(self, function: FunctionDefinition) -> None:
        self._function = function
        function.local_variables = []
        self._scopes = [{}]
        for parameter in function.parameters + function.return_parameters:
            parameter.scope = function
            self._declare_local(parameter)
        if function.body is not None:
            if function.contract is not None and function.contract.kind == "interface":
                self._error(type_error(
                    "Functions in interfaces cannot have an implementation",
                    function.location,
                ))
            self._statement(function.body)
        self._scopes = []
        self._function = None

    # -------------------------------------------------------------------
    # Statements
    # -------------------------------------------------------------------

    def _statement(self, stmt: Statement) -> None:
        if isinstance(stmt, Block):
            self._scopes.append({})
            for inner in stmt.statements:
                self._statement(inner)
            self._scopes.pop()
        elif isinstance(stmt, VariableDeclarationStatement):
            declaration = stmt.declaration
            self._declare_variable(declaration)
            if isinstance(declaration.type, MappingType):
                self._error(unsupported("local mapping variable", declaration.location))
            if stmt.initial_value is not None:
                self._expression(stmt.initial_value)
            declaration.scope = self._function
            self._function.local_variables.append(declaration)
            self._declare_local(declaration)
        elif isinstance(stmt, ExpressionStatement):
            self._expression(stmt.expression)
        elif isinstance(stmt, IfStatement):
            self._condition(stmt.condition)
            self._scoped(stmt.true_body)
            if stmt.false_body is not None:
                self._scoped(stmt.false_body)
        elif isinstance(stmt, WhileStatement):
            self._condition(stmt.condition)
            self._scoped(stmt.body)
        elif isinstance(stmt, ForStatement):
            self._scopes.append({})
            if stmt.initialization is not None:
                self._statement(stmt.initialization)
            if stmt.condition is not None:
                self._condition(stmt.condition)
            if stmt.loop_expression is not None:
                self._statement(stmt.loop_expression)
            self._scoped(stmt.body)
            self._scopes.pop()
        elif isinstance(stmt, Return):
            self._return(stmt)
        elif isinstance(stmt, EmitStatement):
            self._expression(stmt.event_call)
        elif isinstance(stmt, (Break, Continue)):
            pass

    def _scoped(self, stmt: Statement) -> None:
        self._scopes.append({})
        self._statement(stmt)
        self._scopes.pop()

    def _condition(self, expr: Expression) -> None:
        typ = self._expression(expr)
        if typ is not None and not isinstance(typ, BoolType):
            self._error(type_error(
                "Condition must be boolean", expr.location,
                expected_type="bool", actual_type=str(typ),
            ))

    def _return(self, stmt: Return) -> None:
        returns = self._function.return_parameters
        if stmt.expression is None:
            return
        self._expression(stmt.expression)
        count = (len(stmt.expression.components)
                 if isinstance(stmt.expression, TupleExpression) else 1)
        if count != len(returns):
            self._error(type_error(
                f"Return has {count} value(s), function declares {len(returns)}",
                stmt.location,
            ))

    # -------------------------------------------------------------------
    # Expressions
    # -------------------------------------------------------------------

    def _expression(self, expr: Expression) -> Optional[SolType]:
        typ = self._expression_type(expr)
        expr.type = typ
        return typ

    def _expression_type(self, expr: Expression) -> Optional[SolType]:
        if isinstance(expr, Literal):
            if expr.kind == "bool":
                return BOOL
            if expr.kind == "string":
                return STRING
            return UINT256
        if isinstance(expr, Identifier):
            return self._identifier(expr)
        if isinstance(expr, BinaryOperation):
            return self._binary(expr)
        if isinstance(expr, UnaryOperation):
            return self._unary(expr)
        if isinstance(expr, Assignment):
            return self._assignment(expr)
        if isinstance(expr, Conditional):
            self._condition(expr.condition)
            true_type = self._expression(expr.true_expression)
            false_type = self._expression(expr.false_expression)
            if _is_number_literal(expr.true_expression):
                return false_type
            if _is_number_literal(expr.false_expression):
                return true_type
            if is_integer(true_type) and is_integer(false_type):
                return common_type(true_type, false_type)
            return true_type
        if isinstance(expr, IndexAccess):
            base = self._expression(expr.base)
            self._expression(expr.index)
            if isinstance(base, MappingType):
                return base.value
            self._error(unsupported("index access on non-mapping", expr.location))
            return None
        if isinstance(expr, MemberAccess):
            return self._member_access(expr)
        if isinstance(expr, TupleExpression):
            return TupleType(tuple(self._expression(c) or UINT256 for c in expr.components))
        if isinstance(expr, FunctionCall):
            return self._call(expr)
        return None

    def _identifier(self, expr: Identifier) -> Optional[SolType]:
        name = expr.name
        if name in MAGIC_MEMBERS:
            return None
        if name == "this":
            return ContractType(self._contract.name)
        if name == "now":
            return UINT256
        if name in ("assert", "require", "revert", "super") or name in OPAQUE_BUILTINS:
            return None
        if elementary_type(name) is not None or name == "payable":
            return None

        declaration = self._lookup(name)
        if declaration is None:
            self._error(declaration_error(name, f"Undeclared identifier '{name}'", expr.location))
            return None
        expr.declaration = declaration
        if isinstance(declaration, VariableDeclaration):
            if declaration.is_state_variable and not declaration.is_constant \
                    and self._function is not None \
                    and self._function.state_mutability == "pure":
                self._error(type_error(
                    f"Pure function '{self._function.name}' reads state variable '{name}'",
                    expr.location,
                ))
            return declaration.type
        return None

    def _binary(self, expr: BinaryOperation) -> Optional[SolType]:
        left = self._expression(expr.left)
        right = self._expression(expr.right)
        op = expr.op
        if op in ("&&", "||"):
            for side, typ in ((expr.left, left), (expr.right, right)):
                if typ is not None and not isinstance(typ, BoolType):
                    self._error(type_error(
                        f"Operator '{op}' needs boolean operands", side.location,
                        expected_type="bool", actual_type=str(typ),
                    ))
            return BOOL
        if op in ("==", "!="):
            return BOOL
        operand = self._operand_type(expr, left, right)
        if op in COMPARISON_OPS:
            return BOOL
        if op in ARITHMETIC_OPS + BITWISE_OPS:
            return operand
        return None

    def _operand_type(self, expr: BinaryOperation,
                      left: Optional[SolType], right: Optional[SolType]) -> Optional[SolType]:
        for typ, side in ((left, expr.left), (right, expr.right)):
            if typ is not None and not is_integer(typ):
                self._error(type_error(
                    f"Operator '{expr.op}' needs integer operands", side.location,
                    expected_type="integer", actual_type=str(typ),
                ))
                return None
        if _is_number_literal(expr.left) and not _is_number_literal(expr.right):
            return right
        if _is_number_literal(expr.right) and not _is_number_literal(expr.left):
            return left
        if _is_number_literal(expr.left) and _is_number_literal(expr.right):
            return INT256 if self._literal_is_negative(expr) else UINT256
        return common_type(left, right)

    @staticmethod
    def _literal_is_negative(expr: BinaryOperation) -> bool:
        return any(isinstance(side, UnaryOperation) for side in (expr.left, expr.right))

    def _unary(self, expr: UnaryOperation) -> Optional[SolType]:
        operand = self._expression(expr.operand)
        if expr.op == "!":
            if operand is not None and not isinstance(operand, BoolType):
                self._error(type_error(
                    "Operator '!' needs a boolean operand", expr.location,
                    expected_type="bool", actual_type=str(operand),
                ))
            return BOOL
        if expr.op == "delete":
            self._check_lvalue(expr.operand)
            return EMPTY_TUPLE
        if expr.op in ("++", "--"):
            self._check_lvalue(expr.operand)
        if expr.op == "-" and _is_number_literal(expr.operand):
            return INT256
        if operand is not None and not is_integer(operand):
            self._error(type_error(
                f"Operator '{expr.op}' needs an integer operand", expr.location,
                expected_type="integer", actual_type=str(operand),
            ))
            return None
        return operand

    def _assignment(self, expr: Assignment) -> Optional[SolType]:
        target = self._expression(expr.target)
        self._expression(expr.value)
        if isinstance(expr.target, TupleExpression):
            if expr.op != "=":
                self._error(type_error("Compound assignment to a tuple", expr.location))
            for component in expr.target.components:
                self._check_lvalue(component)
            return EMPTY_TUPLE
        self._check_lvalue(expr.target)
        if isinstance(target, MappingType):
            self._error(unsupported("assignment of a whole mapping", expr.location))
        if expr.op != "=" and target is not None and not is_integer(target):
            self._error(type_error(
                f"Operator '{expr.op}' needs an integer target", expr.location,
                expected_type="integer", actual_type=str(target),
            ))
        return target

    def _check_lvalue(self, expr: Expression) -> None:
        if isinstance(expr, Identifier) and isinstance(expr.declaration, VariableDeclaration):
            if expr.declaration.is_constant:
                self._error(type_error(
                    f"Cannot assign to constant '{expr.name}'", expr.location,
                ))
            return
        if isinstance(expr, IndexAccess):
            self._check_lvalue(expr.base)
            return
        self._error(type_error("Expression is not assignable", expr.location))

    def _member_access(self, expr: MemberAccess) -> Optional[SolType]:
        base = expr.expression
        if isinstance(base, Identifier) and base.name in MAGIC_MEMBERS:
            members = MAGIC_MEMBERS[base.name]
            if expr.member in members:
                return members[expr.member]
            self._error(unsupported(f"'{base.name}.{expr.member}'", expr.location))
            return None
        base_type = self._expression(base)
        if is_address_like(base_type) and expr.member == "balance":
            return UINT256
        # Remaining members are only meaningful as call targets.
        return None

    # -------------------------------------------------------------------
    # Calls
    # -------------------------------------------------------------------

    def _call(self, expr: FunctionCall) -> Optional[SolType]:
        callee = expr.callee
        argument_types = [self._expression(a) for a in expr.arguments]

        if isinstance(callee, Identifier):
            return self._identifier_call(expr, callee, argument_types)
        if isinstance(callee, MemberAccess):
            return self._member_call(expr, callee)
        self._error(unsupported("call of a computed expression", expr.location))
        return None

    def _identifier_call(self, expr: FunctionCall, callee: Identifier,
                         argument_types: list[Optional[SolType]]) -> Optional[SolType]:
        name = callee.name
        if name == "assert":
            expr.kind = CallKind.ASSERT
            self._check_arity(expr, 1, 1)
            if expr.arguments:
                self._check_bool_argument(expr.arguments[0], argument_types[0])
            return EMPTY_TUPLE
        if name == "require":
            expr.kind = CallKind.REQUIRE
            self._check_arity(expr, 1, 2)
            if expr.arguments:
                self._check_bool_argument(expr.arguments[0], argument_types[0])
            return EMPTY_TUPLE
        if name == "revert":
            expr.kind = CallKind.REVERT
            self._check_arity(expr, 0, 1)
            return EMPTY_TUPLE
        if name in OPAQUE_BUILTINS:
            expr.kind = CallKind.BUILTIN
            return OPAQUE_BUILTINS[name]

        target = elementary_type(name)
        if name == "payable":
            target = AddressType(payable=True)
        if target is None and name in self.contracts and self._lookup_function(name) is None:
            target = ContractType(name)
        if target is not None:
            expr.kind = CallKind.TYPE_CONVERSION
            self._check_arity(expr, 1, 1)
            return target

        declaration = self._lookup(name)
        if declaration is None:
            self._expression(callee)
            return None
        callee.declaration = declaration
        if isinstance(declaration, EventDefinition):
            expr.kind = CallKind.BUILTIN
            return EMPTY_TUPLE
        if isinstance(declaration, FunctionDefinition):
            expr.kind = CallKind.INTERNAL
            expr.function = declaration
            if declaration.visibility == "external":
                self._error(type_error(
                    f"External function '{name}' cannot be called internally",
                    expr.location,
                ))
            self._check_arity(expr, len(declaration.parameters), len(declaration.parameters))
            return self._returns_type(declaration)
        self._error(type_error(f"'{name}' is not callable", expr.location))
        return None

    def _member_call(self, expr: FunctionCall, callee: MemberAccess) -> Optional[SolType]:
        base = callee.expression
        if isinstance(base, Identifier) and base.name == "super":
            self._error(unsupported("super call", expr.location))
            return None
        if isinstance(base, Identifier) and base.name in MAGIC_MEMBERS:
            self._error(unsupported(f"'{base.name}.{callee.member}'", expr.location))
            return None

        base_type = self._expression(base)
        expr.kind = CallKind.EXTERNAL
        if isinstance(base_type, ContractType):
            contract = self.contracts.get(base_type.name)
            if contract is not None:
                for candidate in contract.linearized_bases:
                    for function in candidate.functions:
                        if function.name == callee.member and not function.is_constructor:
                            return self._returns_type(function)
            if callee.member in ADDRESS_CALL_MEMBERS:
                return ADDRESS_CALL_MEMBERS[callee.member]
            self._error(declaration_error(
                callee.member,
                f"Member '{callee.member}' not found in contract '{base_type.name}'",
                expr.location,
            ))
            return None
        if isinstance(base_type, AddressType) and callee.member in ADDRESS_CALL_MEMBERS:
            return ADDRESS_CALL_MEMBERS[callee.member]
        self._error(unsupported(f"call of member '{callee.member}'", expr.location))
        return None

    @staticmethod
    def _returns_type(function: FunctionDefinition) -> SolType:
        returns = [p.type or UINT256 for p in function.return_parameters]
        if not returns:
            return EMPTY_TUPLE
        if len(returns) == 1:
            return returns[0]
        return TupleType(tuple(returns))

    def _check_arity(self, expr: FunctionCall, low: int, high: int) -> None:
        count = len(expr.arguments)
        if count < low or count > high:
            expected = str(low) if low == high else f"{low} to {high}"
            self._error(type_error(
                f"Wrong argument count: expected {expected}, got {count}",
                expr.location,
            ))

    def _check_bool_argument(self, argument: Expression, typ: Optional[SolType]) -> None:
        if typ is not None and not isinstance(typ, BoolType):
            self._error(type_error(
                "Argument must be boolean", argument.location,
                expected_type="bool", actual_type=str(typ),
            ))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def resolve(unit: SourceUnit) -> SourceUnit:
    """Resolve names and types in place. Raises CompileError."""
    return Resolver().resolve(unit)
