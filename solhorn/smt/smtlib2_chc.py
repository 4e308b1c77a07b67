"""Out-of-process backend: Horn clauses as SMT-LIB2 text.

Uses the z3 fixedpoint dialect:

    (declare-rel interface_3_C (Int Bool))
    (declare-var x_0_1 Int)
    (rule (=> (and (interface_3_C x_0_1 b_1_1) ...) (error_7_C)) rule_12)
    (query error_7_C)

A query is answered, in order, from the cached responses (keyed by the
SHA-256 of the full query text), by the read callback, or not at all: in
that case the text is kept in `unhandled_queries()` and the answer is
`unknown`, so the caller can solve it offline and feed the response back
on the next run.
"""

from __future__ import annotations

import logging
from typing import Optional

import z3

from solhorn.errors import InternalError
from solhorn.responses import query_hash
from solhorn.smt.callback import ReadCallback, SMT_QUERY
from solhorn.smt.chc_interface import CHCSolverInterface, CheckResult
from solhorn.smt.terms import free_constants


logger = logging.getLogger(__name__)


def parse_response(response: str) -> CheckResult:
    """Interpret a solver answer by its first line."""
    lines = response.strip().splitlines()
    first = lines[0].strip() if lines else ""
    if first == "sat":
        return CheckResult.SATISFIABLE
    if first == "unsat":
        return CheckResult.UNSATISFIABLE
    if first == "unknown":
        return CheckResult.UNKNOWN
    return CheckResult.ERROR


class SmtLib2CHCInterface(CHCSolverInterface):

    def __init__(self, responses: Optional[dict[str, str]] = None,
                 read_callback: Optional[ReadCallback] = None):
        self.responses = dict(responses or {})
        self.read_callback = read_callback
        self._relations: dict[str, str] = {}
        self._variables: dict[str, str] = {}
        self._rules: list[str] = []
        self._unhandled: list[str] = []

    def register_relation(self, relation: z3.FuncDeclRef) -> None:
        name = relation.name()
        if name in self._relations:
            return
        domain = " ".join(relation.domain(i).sexpr() for i in range(relation.arity()))
        self._relations[name] = f"(declare-rel {name} ({domain}))"

    def add_rule(self, rule: z3.BoolRef, name: str) -> None:
        for constant in free_constants(rule, exclude=self._relations):
            var_name = constant.decl().name()
            if var_name not in self._variables:
                self._variables[var_name] = f"(declare-var {var_name} {constant.sort().sexpr()})"
        self._rules.append(f"(rule {rule.sexpr()} {name})")

    def to_smtlib2(self, relation_name: str) -> str:
        lines = list(self._relations.values())
        lines.extend(self._variables.values())
        lines.extend(self._rules)
        lines.append(f"(query {relation_name})")
        return "\n".join(lines) + "\n"

    def query(self, expr: z3.BoolRef) -> tuple[CheckResult, list[str]]:
        if not z3.is_app(expr) or expr.decl().name() not in self._relations:
            raise InternalError(f"Query target is not a registered relation: {expr}")
        text = self.to_smtlib2(expr.decl().name())
        digest = query_hash(text)

        if digest in self.responses:
            logger.debug("cached response used for query %s", digest[:12])
            return parse_response(self.responses[digest]), []

        response = self._ask(text)
        if response is None:
            self._unhandled.append(text)
            return CheckResult.UNKNOWN, []
        return parse_response(response), []

    def _ask(self, text: str) -> Optional[str]:
        if self.read_callback is None:
            return None
        result = self.read_callback(SMT_QUERY, text)
        if not result.success:
            logger.info("solver callback failed: %s", result.response_or_error)
            return None
        return result.response_or_error

    def unhandled_queries(self) -> list[str]:
        return list(self._unhandled)


class ExportOnlyCHCInterface(SmtLib2CHCInterface):
    """Builds the same text but never solves; cached responses still apply."""

    def __init__(self, responses: Optional[dict[str, str]] = None):
        super().__init__(responses=responses, read_callback=None)
