"""Pipeline facade: source text in, verification verdicts out.

    source ──► parse ──► resolve ──► CHC ──► VerificationResult

The facade owns the wiring the core leaves to its caller: picking the
solver backends from the configuration, loading cached responses and
turning the set of proved assertions into user-facing diagnostics.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from solhorn.ast_nodes import FunctionCall, SourceUnit
from solhorn.config import SolhornConfig
from solhorn.engines.chc import CHC
from solhorn.errors import CompileError, Diagnostic, ErrorReporter
from solhorn.frontend import analyze_source
from solhorn.responses import load_responses
from solhorn.smt.callback import ReadCallback, command_callback


logger = logging.getLogger(__name__)


@dataclass
class VerificationResult:
    safe: list[FunctionCall] = field(default_factory=list)
    unproven: list[FunctionCall] = field(default_factory=list)
    unhandled_queries: list[str] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)

    @property
    def verified(self) -> bool:
        return not self.unproven and not self.has_errors

    @property
    def has_errors(self) -> bool:
        return any(d.is_error for d in self.diagnostics)

    @property
    def summary(self) -> str:
        total = len(self.safe) + len(self.unproven)
        if self.has_errors:
            return f"❌ CHC: source rejected with {sum(d.is_error for d in self.diagnostics)} error(s)"
        if not self.unproven:
            return f"✅ CHC: {total} assertion(s) proved"
        text = f"⚠️ CHC: {len(self.unproven)} of {total} assertion(s) not proved"
        if self.unhandled_queries:
            text += f", {len(self.unhandled_queries)} query(ies) left for an external solver"
        return text


class ModelChecker:
    """Runs the Horn-clause engine over a source unit and reports the outcome."""

    def __init__(self, reporter: Optional[ErrorReporter] = None,
                 responses: Optional[dict[str, str]] = None,
                 read_callback: Optional[ReadCallback] = None,
                 config: Optional[SolhornConfig] = None):
        self.config = config or SolhornConfig()
        self.reporter = reporter or ErrorReporter()
        if responses is None and self.config.responses:
            responses = load_responses(self.config.responses)
        if read_callback is None and self.config.solver_choice().smtlib2 and self.config.solver_command:
            read_callback = command_callback(self.config.solver_command)
        self.chc = CHC(
            reporter=self.reporter,
            responses=responses,
            read_callback=read_callback,
            solver_choice=self.config.solver_choice(),
            timeout_ms=self.config.timeout_ms,
            contracts=self.config.contracts,
        )

    def analyze(self, unit: SourceUnit) -> VerificationResult:
        self.chc.analyze(unit)
        safe_set = self.chc.safe_assertions()
        targets = self.chc.verification_targets()
        safe = [t for t in targets if t in safe_set]
        unproven = [t for t in targets if t not in safe_set]

        if self.config.report_unproven:
            for assertion in unproven:
                self.reporter.warning(
                    assertion.location,
                    "CHC: Assertion violation might happen here.",
                    check="assert",
                )
        unhandled = self.chc.unhandled_queries()
        if unhandled:
            self.reporter.warning(
                None,
                f"CHC: {len(unhandled)} verification condition(s) could not be proved "
                "because no solver answered them. Solve the exported queries and "
                "pass the responses back in.",
                unhandled=len(unhandled),
            )
        logger.debug("%d assertion(s) safe, %d not proved", len(safe), len(unproven))
        return VerificationResult(
            safe=safe,
            unproven=unproven,
            unhandled_queries=unhandled,
            diagnostics=list(self.reporter.diagnostics),
        )


def check_source(source: str, filename: str = "<stdin>",
                 config: Optional[SolhornConfig] = None,
                 responses: Optional[dict[str, str]] = None,
                 read_callback: Optional[ReadCallback] = None) -> VerificationResult:
    """Parse, resolve and model-check `source`.

    Front-end errors do not raise: they come back as diagnostics of a
    result with no assertions.
    """
    reporter = ErrorReporter()
    try:
        unit = analyze_source(source, filename)
    except CompileError as e:
        for diagnostic in e.errors:
            reporter.report(diagnostic)
        return VerificationResult(diagnostics=list(reporter.diagnostics))
    checker = ModelChecker(reporter=reporter, responses=responses,
                           read_callback=read_callback, config=config)
    return checker.analyze(unit)
