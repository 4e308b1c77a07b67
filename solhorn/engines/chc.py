"""Constrained Horn Clause encoding of contracts.

Based on:
  Bjørner, Gurfinkel, McMillan, Rybalchenko. "Horn Clause Solvers for
  Program Verification." Fields of Logic and Computation II, 2015.
  Marescotti, Otoni, Alt, Eugster, Hyvärinen, Sharygina. "Accurate Smart
  Contract Verification through Direct Modelling." ISoLA 2020.

Every reachable program point becomes a relation over the program state;
every control-flow edge becomes a rule `from ∧ constraints ⇒ to`. A user
assertion holds iff its error relation is not derivable, which a Horn
solver (z3 Spacer) decides by synthesising inductive invariants for the
loop headers, function summaries and the contract interface.

Per contract the encoding has the following shape:

    genesis ⇒ constructor(zero state)
    constructor ... initialisers, constructors (most base first) ⇒ interface(s)
    interface(s) ⇒ entry_f(s, p)                          for public f
    entry_f ⇒ body_f ⇒ ... ⇒ summary_f(s, p, r, s')
    interface(s) ∧ summary_f(s, p, r, s') ⇒ interface(s')  for public f
    block ∧ ¬cond ⇒ error_i                                for assert(cond)

Internal calls use the callee's summary as a black box and add a
call-context rule into the callee's entry block; unknown calls erase all
knowledge about the state.
"""

from __future__ import annotations

import itertools
import logging
import re
from typing import Optional

import z3

from solhorn.ast_nodes import (
    SourceUnit, ContractDefinition, FunctionDefinition, VariableDeclaration,
    IfStatement, WhileStatement, ForStatement, Break, Continue, Return,
    FunctionCall, Node,
)
from solhorn.engines.encoder import SMTEncoder, Value, uses_checked_arithmetic
from solhorn.engines.predicates import Predicate, PredicateArena, PredicateKind
from solhorn.engines.sorts import SortBuilder
from solhorn.errors import ErrorReporter, InternalError, SourceLocation
from solhorn.smt.chc_interface import (
    CHCSolverInterface, CheckResult, SolverChoice, make_chc_interface,
    DEFAULT_TIMEOUT_MS,
)
from solhorn.smt.callback import ReadCallback
from solhorn.smt.sorts import type_constraints, zero_value
from solhorn.smt.terms import conjunction
from solhorn.types import TupleType


logger = logging.getLogger(__name__)

_NON_IDENTIFIER = re.compile(r"[^A-Za-z0-9_]")


class CHC(SMTEncoder):
    """Horn-clause model checker over a resolved SourceUnit."""

    def __init__(
        self,
        reporter: Optional[ErrorReporter] = None,
        responses: Optional[dict[str, str]] = None,
        read_callback: Optional[ReadCallback] = None,
        solver_choice: SolverChoice = SolverChoice(),
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        interface: Optional[CHCSolverInterface] = None,
        contracts: Optional[list[str]] = None,
    ):
        super().__init__(reporter)
        self.interface = interface or make_chc_interface(
            solver_choice, responses=responses, read_callback=read_callback,
            timeout_ms=timeout_ms,
        )
        self.contract_filter = list(contracts or [])
        self.sorts = SortBuilder()
        self.predicates = PredicateArena(on_create=self._register)

        self._block_counter = itertools.count()
        self._rule_count = 0
        self._genesis = self._create_predicate("genesis", [], PredicateKind.GENESIS)
        self.add_rule(self._genesis(), "genesis")

        self._safe_assertions: set[FunctionCall] = set()
        self._failed_assertions: set[FunctionCall] = set()
        self._all_targets: list[FunctionCall] = []
        self.reset()

    # -------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------

    def analyze(self, unit: SourceUnit) -> None:
        """Encode every contract of `unit` and query all of its assertions."""
        self._safe_assertions = set()
        self._failed_assertions = set()
        self._all_targets = []
        self.checked_arithmetic = uses_checked_arithmetic(unit)
        try:
            for contract in unit.contracts:
                if self.should_visit_contract(contract):
                    self.visit_contract(contract)
        except InternalError:
            self._safe_assertions = set()
            raise

    def safe_assertions(self) -> set[FunctionCall]:
        return set(self._safe_assertions)

    def verification_targets(self) -> list[FunctionCall]:
        """Every assertion that was queried, in encoding order."""
        return list(self._all_targets)

    def unhandled_queries(self) -> list[str]:
        return self.interface.unhandled_queries()

    @property
    def rule_count(self) -> int:
        return self._rule_count

    def reset(self) -> None:
        """Forget the current symbolic position; emitted rules stay."""
        self.sorts.reset()
        self.context.reset()
        self.context.clear_variables()
        self._state_variables: list[VariableDeclaration] = []
        self._verification_targets: list[FunctionCall] = []
        self._error_relations: dict[FunctionCall, Predicate] = {}
        self._unknown_call_seen = False
        self._loop_destinations: list[tuple[Predicate, Predicate]] = []
        self._current_block: z3.BoolRef = z3.BoolVal(True)
        self._current_predicate: Optional[Predicate] = None
        self._interface_predicate: Optional[Predicate] = None
        self._constructor_predicate: Optional[Predicate] = None
        self._summaries: dict[FunctionDefinition, Predicate] = {}
        self._entries: dict[FunctionDefinition, Predicate] = {}
        self._constructor_exit: Optional[Predicate] = None
        self._contract = None
        self._function = None
        self._locals_in_scope = []

    def should_visit_contract(self, contract: ContractDefinition) -> bool:
        if contract.kind == "interface" or contract.is_abstract:
            return False
        if self.contract_filter and contract.name not in self.contract_filter:
            return False
        return True

    @staticmethod
    def should_visit_function(function: FunctionDefinition) -> bool:
        return function.is_implemented

    # -------------------------------------------------------------------
    # Contracts
    # -------------------------------------------------------------------

    def visit_contract(self, contract: ContractDefinition) -> None:
        self.reset()
        self._contract = contract
        self._state_variables = contract.state_variables_including_inherited()
        self.sorts.set_state_variables(self._state_variables)
        for declaration in self._state_variables:
            self.context.create_variable(declaration)

        self._interface_predicate = self._create_predicate(
            f"interface_{contract.name}", self.sorts.interface_sort(),
            PredicateKind.INTERFACE, contract,
        )
        self._constructor_predicate = self._create_predicate(
            f"implicit_constructor_{contract.name}", self.sorts.constructor_sort(),
            PredicateKind.CONSTRUCTOR, contract,
        )

        functions = [f for f in contract.defined_functions() if self.should_visit_function(f)]
        constructors = [c.constructor for c in reversed(contract.linearized_bases)
                        if c.constructor is not None and self.should_visit_function(c.constructor)]
        for function in constructors + functions:
            self._declare_function_variables(function)
        for function in functions:
            self._summaries[function] = self.create_summary_block(function)
            self._function = function
            self._entries[function] = self.create_block(function, "function_entry")
            self._function = None

        self._encode_constructor(contract, constructors)
        for function in functions:
            self.visit_function(function)
        self.end_visit_contract(contract)

    def end_visit_contract(self, contract: ContractDefinition) -> None:
        # An assertion queried in several contracts is safe only if every query proves it.
        for target in self._verification_targets:
            if target not in self._all_targets:
                self._all_targets.append(target)
            error = self._error_relations[target]
            safe = self.query(error(), target.location)
            if safe and target not in self._failed_assertions:
                self._safe_assertions.add(target)
            elif not safe:
                self._failed_assertions.add(target)
                self._safe_assertions.discard(target)
            logger.debug("assertion at %s in %s: %s", target.location, contract.name,
                         "safe" if safe else "not proved")
        if self._unknown_call_seen:
            self.reporter.info(
                contract.location,
                f"Calls to unknown code in '{contract.name}' are modelled as arbitrary state changes.",
                contract=contract.name,
            )
        self._contract = None

    def _declare_function_variables(self, function: FunctionDefinition) -> None:
        for declaration in function.parameters + function.return_parameters + function.local_variables:
            self.context.create_variable(declaration)

    def _encode_constructor(self, contract: ContractDefinition,
                            constructors: list[FunctionDefinition]) -> None:
        self._function = None
        self.clear_indices(contract)
        zero_state = [zero_value(d.type) for d in self._state_variables]
        self.connect_blocks(self._genesis(), self._constructor_predicate(*zero_state))
        self.set_current_block(self._constructor_predicate)

        by_contract = {c.contract: c for c in constructors}
        for base in reversed(contract.linearized_bases):
            for declaration in base.state_variables:
                if declaration.value is not None and not declaration.is_constant:
                    value = self._single(self.expression(declaration.value), declaration.value)
                    self.assign_variable(declaration, value)
            if base in by_contract:
                self._encode_explicit_constructor(by_contract[base])

        self.connect_blocks(self._current_block, self.interface_application())

    def _encode_explicit_constructor(self, constructor: FunctionDefinition) -> None:
        state = self.current_state_variables()
        self._function = constructor
        entry = self.create_block(constructor, "constructor_entry")
        self.clear_indices(self._contract, constructor)
        params = [self.context.variable(p).value_at_index(0) for p in constructor.parameters]
        for declaration, value in zip(constructor.parameters, params):
            self.context.add_assertion(type_constraints(value, declaration.type))
        self.connect_blocks(self._current_block, entry(*(state + params + state + params)))

        body = self.create_block(constructor.body, "constructor_body")
        self.set_current_block(entry)
        self.connect_blocks(self._current_block, self.predicate(body))
        self.set_current_block(body)

        self._function = None
        self._constructor_exit = self.create_block(constructor, "constructor_exit")
        self._function = constructor
        self.visit_block(constructor.body)
        self.connect_blocks(self._current_block, self._exit_application())

        self._function = None
        self.set_current_block(self._constructor_exit)
        self._constructor_exit = None

    # -------------------------------------------------------------------
    # Functions
    # -------------------------------------------------------------------

    def visit_function(self, function: FunctionDefinition) -> None:
        self._function = function
        self._locals_in_scope = []
        self.clear_indices(self._contract, function)
        if function.is_public:
            self._connect_interface_to_entry(function)

        entry = self._entries[function]
        body = self.create_block(function.body, "function_body")
        self.set_current_block(entry)
        self.connect_blocks(self._current_block, self.predicate(body))
        self.set_current_block(body)
        self.visit_block(function.body)
        self.end_visit_function(function)

    def end_visit_function(self, function: FunctionDefinition) -> None:
        self.connect_blocks(self._current_block, self._exit_application())
        if function.is_public:
            self._connect_summary_to_interface(function)
        self._function = None

    def _connect_interface_to_entry(self, function: FunctionDefinition) -> None:
        """interface(s) ⇒ entry_f(s, p, s, p, 0)"""
        state = self.state_variables_at_index(0)
        params = [self.context.variable(p).value_at_index(0) for p in function.parameters]
        returns = [zero_value(r.type) for r in function.return_parameters]
        constraints = [type_constraints(v, p.type) for v, p in zip(params, function.parameters)]
        entry = self._entries[function]
        rule = z3.Implies(
            z3.And(self._interface_predicate(*state), *constraints),
            entry(*(state + params + state + params + returns)),
        )
        self.add_rule(rule, f"{self._interface_predicate.name}_to_{entry.name}")

    def _connect_summary_to_interface(self, function: FunctionDefinition) -> None:
        """interface(s) ∧ summary_f(s, p, r, s') ⇒ interface(s')"""
        pre = self.state_variables_at_index(0)
        post = self.state_variables_at_index(1)
        params = [self.context.variable(p).value_at_index(0) for p in function.parameters]
        returns = [self.context.variable(r).value_at_index(1) for r in function.return_parameters]
        summary = self._summaries[function]
        rule = z3.Implies(
            z3.And(self._interface_predicate(*pre), summary(*(pre + params + returns + post))),
            self._interface_predicate(*post),
        )
        self.add_rule(rule, f"{summary.name}_to_{self._interface_predicate.name}")

    def _exit_application(self) -> z3.BoolRef:
        if self._function is not None and self._function.is_constructor:
            return self._constructor_exit(*self.current_state_variables())
        return self.summary(self._function)

    # -------------------------------------------------------------------
    # Control flow
    # -------------------------------------------------------------------

    def visit_if(self, stmt: IfStatement) -> None:
        condition = self._single(self.expression(stmt.condition), stmt.condition)
        true_block = self.create_block(stmt.true_body, "if_true")
        false_block = (self.create_block(stmt.false_body, "if_false")
                       if stmt.false_body is not None else None)
        after_block = self.create_block(stmt, "if_after")

        self.connect_blocks(self._current_block, self.predicate(true_block), condition)
        self.connect_blocks(
            self._current_block,
            self.predicate(false_block if false_block is not None else after_block),
            z3.Not(condition),
        )

        self.set_current_block(true_block)
        self._scoped_statement(stmt.true_body)
        self.connect_blocks(self._current_block, self.predicate(after_block))

        if false_block is not None:
            self.set_current_block(false_block)
            self._scoped_statement(stmt.false_body)
            self.connect_blocks(self._current_block, self.predicate(after_block))

        self.set_current_block(after_block)

    def visit_while(self, stmt: WhileStatement) -> None:
        header = self.create_block(stmt, "while_header")
        body = self.create_block(stmt.body, "while_body")
        after = self.create_block(stmt, "while_after")

        if stmt.is_do_while:
            self.connect_blocks(self._current_block, self.predicate(body))
        else:
            self.connect_blocks(self._current_block, self.predicate(header))
            self._check_loop_condition(stmt, header, body, after)

        self.set_current_block(body)
        self._loop_destinations.append((after, header))
        self._scoped_statement(stmt.body)
        self._loop_destinations.pop()
        self.connect_blocks(self._current_block, self.predicate(header))

        if stmt.is_do_while:
            self._check_loop_condition(stmt, header, body, after)
        self.set_current_block(after)

    def _check_loop_condition(self, stmt: WhileStatement, header: Predicate,
                              body: Predicate, after: Predicate) -> None:
        self.set_current_block(header)
        condition = self._single(self.expression(stmt.condition), stmt.condition)
        self.connect_blocks(self._current_block, self.predicate(body), condition)
        self.connect_blocks(self._current_block, self.predicate(after), z3.Not(condition))

    def visit_for(self, stmt: ForStatement) -> None:
        depth = len(self._locals_in_scope)
        if stmt.initialization is not None:
            self.statement(stmt.initialization)

        header = self.create_block(stmt, "for_header")
        body = self.create_block(stmt.body, "for_body")
        post = (self.create_block(stmt.loop_expression, "for_post")
                if stmt.loop_expression is not None else None)
        after = self.create_block(stmt, "for_after")

        self.connect_blocks(self._current_block, self.predicate(header))
        self.set_current_block(header)
        condition = z3.BoolVal(True)
        if stmt.condition is not None:
            condition = self._single(self.expression(stmt.condition), stmt.condition)
        self.connect_blocks(self._current_block, self.predicate(body), condition)
        self.connect_blocks(self._current_block, self.predicate(after), z3.Not(condition))

        continue_target = post if post is not None else header
        self.set_current_block(body)
        self._loop_destinations.append((after, continue_target))
        self._scoped_statement(stmt.body)
        self._loop_destinations.pop()
        self.connect_blocks(self._current_block, self.predicate(continue_target))

        if post is not None:
            self.set_current_block(post)
            self.statement(stmt.loop_expression)
            self.connect_blocks(self._current_block, self.predicate(header))

        self.set_current_block(after)
        del self._locals_in_scope[depth:]

    def visit_break(self, stmt: Break) -> None:
        if not self._loop_destinations:
            raise InternalError("'break' outside of a loop")
        break_target, _ = self._loop_destinations[-1]
        self.connect_blocks(self._current_block, self.predicate(break_target))
        self._continue_in_ghost_block(stmt, "break_ghost")

    def visit_continue(self, stmt: Continue) -> None:
        if not self._loop_destinations:
            raise InternalError("'continue' outside of a loop")
        _, continue_target = self._loop_destinations[-1]
        self.connect_blocks(self._current_block, self.predicate(continue_target))
        self._continue_in_ghost_block(stmt, "continue_ghost")

    def visit_return(self, stmt: Return) -> None:
        super().visit_return(stmt)
        self.connect_blocks(self._current_block, self._exit_application())
        self._continue_in_ghost_block(stmt, "return_ghost")

    def _continue_in_ghost_block(self, node: Node, tag: str) -> None:
        """Code after a jump is unreachable: continue in a block without incoming edges."""
        ghost = self.create_block(node, tag)
        self.set_current_block(ghost)

    def _scoped_statement(self, stmt) -> None:
        depth = len(self._locals_in_scope)
        self.statement(stmt)
        del self._locals_in_scope[depth:]

    # -------------------------------------------------------------------
    # Assertions and calls
    # -------------------------------------------------------------------

    def visit_assert(self, expr: FunctionCall) -> None:
        argument = expr.arguments[0]
        condition = self._single(self.expression(argument), argument)
        error = self.create_error_block(expr)
        if expr not in self._verification_targets:
            self._verification_targets.append(expr)
        self.connect_blocks(
            self._current_block, error(),
            z3.And(self.context.current_path_conditions(), z3.Not(condition)),
        )
        self.add_path_implied(condition)

    def internal_function_call(self, expr: FunctionCall) -> Value:
        function = self._contract.resolve_virtual(expr.function)
        if function not in self._summaries:
            return self.unknown_function_call(expr)

        arguments = [self._single(self.expression(a), a) for a in expr.arguments]
        path = self.context.current_path_conditions()
        pre = self.current_state_variables()

        # The callee is analysed for every context it is called in.
        entry = self._entries[function]
        returns_zero = [zero_value(r.type) for r in function.return_parameters]
        self.connect_blocks(
            self._current_block,
            entry(*(pre + arguments + pre + arguments + returns_zero)),
            path,
        )

        returns = [self.context.fresh_value(f"{function.name}_return", r.type)
                   for r in function.return_parameters]
        for declaration in self._state_variables:
            self.context.new_value(declaration)
        post = self.current_state_variables()
        summary = self._summaries[function](*(pre + arguments + returns + post))
        if z3.is_true(path):
            self.context.add_assertion(summary)
        else:
            self.context.add_assertion(z3.Implies(path, summary))
            unchanged = conjunction(a == b for a, b in zip(post, pre))
            self.context.add_assertion(z3.Implies(z3.Not(path), unchanged))

        if isinstance(expr.type, TupleType):
            return returns
        return returns[0] if len(returns) == 1 else returns

    def unknown_function_call(self, expr: FunctionCall) -> Value:
        callee = expr.callee
        if hasattr(callee, "expression"):
            self.expression(callee.expression)
        for argument in expr.arguments:
            self.expression(argument)

        in_constructor = self._function is None or self._function.is_constructor
        if not in_constructor:
            # The callee may re-enter any public function from the current state.
            self.connect_blocks(
                self._current_block, self.interface_application(),
                self.context.current_path_conditions(),
            )
        self.erase_knowledge()
        self._unknown_call_seen = True
        return self.fresh_values("call_result", expr.type)

    def erase_knowledge(self) -> None:
        for declaration in self._state_variables:
            self.context.set_unknown_value(declaration)

    # -------------------------------------------------------------------
    # Predicates and blocks
    # -------------------------------------------------------------------

    def unique_prefix(self) -> str:
        return str(next(self._block_counter))

    def _create_predicate(self, tag: str, domain: list[z3.SortRef], kind: PredicateKind,
                          node: Optional[Node] = None,
                          local_variables: Optional[list[VariableDeclaration]] = None,
                          ) -> Predicate:
        name = f"{kind.value}_{self.unique_prefix()}_{_NON_IDENTIFIER.sub('_', tag)}"
        return self.predicates.create(name, domain, kind, node, local_variables)

    def _register(self, predicate: Predicate) -> None:
        self.interface.register_relation(predicate.relation)

    def predicate_name(self, tag: str) -> str:
        contract = self._contract.name if self._contract is not None else ""
        if self._function is not None:
            return f"{tag}_{self._function.display_name}_{contract}"
        return f"{tag}_{contract}"

    def create_block(self, node: Node, tag: str = "") -> Predicate:
        local_variables, domain = self.sorts.block_sort(
            (node, tag), self._function, self._locals_in_scope,
        )
        return self._create_predicate(
            self.predicate_name(tag), domain, PredicateKind.BLOCK, node, local_variables,
        )

    def create_summary_block(self, function: FunctionDefinition) -> Predicate:
        return self._create_predicate(
            f"summary_{function.display_name}_{self._contract.name}",
            self.sorts.summary_sort(function), PredicateKind.SUMMARY, function,
        )

    def create_error_block(self, assertion: FunctionCall) -> Predicate:
        """The error relation of `assertion` in the current contract, created once."""
        if assertion in self._error_relations:
            return self._error_relations[assertion]
        index = len(self._error_relations)
        error = self._create_predicate(
            f"target_{self._contract.name}_{index}", [], PredicateKind.ERROR, assertion,
        )
        self._error_relations[assertion] = error
        return error

    def interface_application(self) -> z3.BoolRef:
        return self._interface_predicate(*self.current_state_variables())

    def summary(self, function: FunctionDefinition) -> z3.BoolRef:
        """summary_f(state at entry, params at entry, current returns, current state)"""
        params = [self.context.variable(p).value_at_index(0) for p in function.parameters]
        returns = [self.context.current_value(r) for r in function.return_parameters]
        return self._summaries[function](
            *(self.state_variables_at_index(0) + params + returns + self.current_state_variables())
        )

    def predicate(self, block: Predicate, arguments: Optional[list[z3.ExprRef]] = None) -> z3.BoolRef:
        if arguments is None:
            arguments = self.current_block_variables(block)
        return block(*arguments)

    # -------------------------------------------------------------------
    # Variables
    # -------------------------------------------------------------------

    def state_variables_at_index(self, index: int) -> list[z3.ExprRef]:
        return [self.context.variable(d).value_at_index(index) for d in self._state_variables]

    def current_state_variables(self) -> list[z3.ExprRef]:
        return [self.context.current_value(d) for d in self._state_variables]

    def current_function_variables(self) -> list[z3.ExprRef]:
        if self._function is None:
            return self.current_state_variables()
        params = self._function.parameters
        returns = self._function.return_parameters
        initial = (self.state_variables_at_index(0)
                   + [self.context.variable(p).value_at_index(0) for p in params])
        current = (self.current_state_variables()
                   + [self.context.current_value(p) for p in params]
                   + [self.context.current_value(r) for r in returns])
        return initial + current

    def current_block_variables(self, block: Predicate) -> list[z3.ExprRef]:
        return (self.current_function_variables()
                + [self.context.current_value(d) for d in block.local_variables])

    def clear_indices(self, contract: Optional[ContractDefinition],
                      function: Optional[FunctionDefinition] = None) -> None:
        """Every variable back to index 1; index 0 keeps the entry snapshot."""
        declarations = list(self._state_variables)
        if function is not None:
            declarations += function.parameters + function.return_parameters + function.local_variables
        for declaration in declarations:
            variable = self.context.variable(declaration)
            variable.reset_index()
            variable.increase_index()

    def set_current_block(self, block: Predicate,
                          arguments: Optional[list[z3.ExprRef]] = None) -> None:
        self.context.reset()
        self.clear_indices(self._contract, self._function)
        self._current_predicate = block
        self._current_block = self.predicate(block, arguments)

    # -------------------------------------------------------------------
    # Rules and queries
    # -------------------------------------------------------------------

    def connect_blocks(self, source: z3.BoolRef, target: z3.BoolRef,
                       constraints: Optional[z3.BoolRef] = None) -> None:
        """source ∧ current assertions ∧ constraints ⇒ target"""
        body = conjunction([source, self.context.assertions(),
                            constraints if constraints is not None else z3.BoolVal(True)])
        self.add_rule(z3.Implies(body, target), f"{self._rule_name(source)}_to_{self._rule_name(target)}")

    @staticmethod
    def _rule_name(application: z3.BoolRef) -> str:
        if z3.is_app(application) and application.decl().kind() == z3.Z3_OP_UNINTERPRETED:
            return application.decl().name()
        return "true"

    def add_rule(self, rule: z3.BoolRef, name: str) -> None:
        self.interface.add_rule(rule, name)
        self._rule_count += 1
        logger.debug("rule %s", name)

    def query(self, expr: z3.BoolRef, location: Optional[SourceLocation]) -> bool:
        """True iff `expr` is proved unreachable."""
        result, _ = self.interface.query(expr)
        if result == CheckResult.UNSATISFIABLE:
            return True
        if result == CheckResult.ERROR:
            self.reporter.warning(location, "Error trying to invoke SMT solver.")
        elif result == CheckResult.CONFLICTING:
            self.reporter.warning(
                location,
                "At least two SMT solvers provided conflicting answers. Results might not be sound.",
            )
        return False
