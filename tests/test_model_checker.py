"""solhorn pipeline facade tests, MC-001 through MC-004."""

from solhorn import check_source, SolhornConfig
from solhorn.errors import DiagnosticKind
from solhorn.responses import answer_queries


SAFE = """
pragma solidity ^0.8.0;
contract Counter {
    uint x;
    function inc() public { if (x < 5) { x = x + 1; } }
    function check() public view { assert(x <= 5); }
}
"""

UNSAFE = """
pragma solidity ^0.8.0;
contract Counter {
    uint x;
    function set(uint v) public { x = v; }
    function check() public view { assert(x <= 5); }
}
"""


def assertion_warnings(result):
    return [d for d in result.diagnostics if d.details.get("check") == "assert"]


class TestVerdicts:
    """MC-001: Proved and unproven assertions."""

    def test_safe(self):
        result = check_source(SAFE)
        assert result.verified
        assert len(result.safe) == 1
        assert result.summary == "✅ CHC: 1 assertion(s) proved"
        assert assertion_warnings(result) == []

    def test_unsafe_warns_at_assertion(self):
        result = check_source(UNSAFE, filename="Counter.sol")
        assert not result.verified
        (warning,) = assertion_warnings(result)
        assert warning.kind == DiagnosticKind.WARNING
        assert warning.message == "CHC: Assertion violation might happen here."
        assert warning.location.file == "Counter.sol"
        assert warning.location.line == 6
        assert result.summary == "⚠️ CHC: 1 of 1 assertion(s) not proved"

    def test_warning_can_be_suppressed(self):
        result = check_source(UNSAFE, config=SolhornConfig(report_unproven=False))
        assert len(result.unproven) == 1
        assert assertion_warnings(result) == []


class TestRejectedSource:
    """MC-002: Front-end errors come back as diagnostics."""

    def test_compile_error(self):
        result = check_source("contract C { function f() public { y = 1; } }")
        assert result.has_errors
        assert result.safe == [] and result.unproven == []
        assert result.summary.startswith("❌ CHC: source rejected with")


class TestExportWorkflow:
    """MC-003: Export queries, answer them, rerun."""

    def test_two_phase(self):
        offline = SolhornConfig(solvers=[])
        first = check_source(SAFE, config=offline)
        assert len(first.unhandled_queries) == 1
        assert "left for an external solver" in first.summary
        assert any(d.details.get("unhandled") == 1 for d in first.diagnostics)

        responses = answer_queries(first.unhandled_queries, "unsat\n")
        second = check_source(SAFE, config=offline, responses=responses)
        assert second.verified
        assert second.unhandled_queries == []

    def test_responses_file_from_config(self, tmp_path):
        from solhorn.responses import save_responses

        offline = SolhornConfig(solvers=[])
        first = check_source(SAFE, config=offline)
        path = tmp_path / "responses.json"
        save_responses(path, answer_queries(first.unhandled_queries, "unsat\n"))
        second = check_source(SAFE, config=SolhornConfig(solvers=[], responses=str(path)))
        assert second.verified


class TestContractSelection:
    """MC-004: Only the configured contracts are analysed."""

    SOURCE = """
    pragma solidity ^0.8.0;
    contract Good { function f() public pure { assert(1 + 1 == 2); } }
    contract Bad { function f(uint a) public pure { assert(a == 2); } }
    """

    def test_all(self):
        result = check_source(self.SOURCE)
        assert (len(result.safe), len(result.unproven)) == (1, 1)

    def test_filtered(self):
        result = check_source(self.SOURCE, config=SolhornConfig(contracts=["Good"]))
        assert result.verified
        assert len(result.safe) == 1
