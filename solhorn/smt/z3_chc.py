"""In-process backend: z3's fixedpoint engine running Spacer.

Relations are registered with the fixedpoint object as they are created;
each rule is closed by universally quantifying its free constants.
"""

from __future__ import annotations

import logging

import z3

from solhorn.smt.chc_interface import CHCSolverInterface, CheckResult, DEFAULT_TIMEOUT_MS
from solhorn.smt.terms import free_constants


logger = logging.getLogger(__name__)


class Z3CHCInterface(CHCSolverInterface):

    def __init__(self, timeout_ms: int = DEFAULT_TIMEOUT_MS):
        self.timeout_ms = timeout_ms
        self._fixedpoint = z3.Fixedpoint()
        self._fixedpoint.set(engine="spacer")
        self._fixedpoint.set("timeout", timeout_ms)
        self._relations: set[str] = set()

    def register_relation(self, relation: z3.FuncDeclRef) -> None:
        name = relation.name()
        if name in self._relations:
            return
        self._relations.add(name)
        self._fixedpoint.register_relation(relation)

    def add_rule(self, rule: z3.BoolRef, name: str) -> None:
        variables = free_constants(rule, exclude=self._relations)
        if variables:
            rule = z3.ForAll(variables, rule)
        self._fixedpoint.add_rule(rule, name=name)
        logger.debug("rule %s added (%d variables)", name, len(variables))

    def query(self, expr: z3.BoolRef) -> tuple[CheckResult, list[str]]:
        try:
            answer = self._fixedpoint.query(expr)
        except z3.Z3Exception as e:
            logger.warning("z3 fixedpoint query failed: %s", e)
            return CheckResult.ERROR, []

        if answer == z3.unsat:
            return CheckResult.UNSATISFIABLE, []
        if answer == z3.sat:
            return CheckResult.SATISFIABLE, []
        logger.debug("z3 answered unknown: %s", self._fixedpoint.reason_unknown())
        return CheckResult.UNKNOWN, []
