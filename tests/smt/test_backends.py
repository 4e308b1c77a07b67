"""solhorn solver backend tests: SMT-LIB2 text, callbacks, response cache, BK-001 through BK-006."""

import json
import sys

import pytest
import z3

from solhorn.errors import InternalError
from solhorn.responses import query_hash, load_responses, save_responses, answer_queries
from solhorn.smt import (
    CheckResult, SolverChoice, make_chc_interface, ReadResult, SMT_QUERY,
    SmtLib2CHCInterface, ExportOnlyCHCInterface, Z3CHCInterface, command_callback,
)
from solhorn.smt.smtlib2_chc import parse_response


def tiny_system(interface, safe=True):
    """inv(0); inv(x) ∧ x < 5 ⇒ inv(x + 1); inv(x) ∧ x > bound ⇒ err."""
    inv = z3.Function("inv", z3.IntSort(), z3.BoolSort())
    err = z3.Function("err", z3.BoolSort())
    interface.register_relation(inv)
    interface.register_relation(err)
    x = z3.Int("x")
    bound = 5 if safe else 3
    interface.add_rule(inv(0), "init")
    interface.add_rule(z3.Implies(z3.And(inv(x), x < 5), inv(x + 1)), "step")
    interface.add_rule(z3.Implies(z3.And(inv(x), x > bound), err()), "bad")
    return err()


class RecordingCallback:
    def __init__(self, answer="unsat\n", success=True):
        self.answer = answer
        self.success = success
        self.calls = []

    def __call__(self, kind, data):
        self.calls.append((kind, data))
        return ReadResult(self.success, self.answer)


class TestParseResponse:
    """BK-001: Answers are read from their first line."""

    @pytest.mark.parametrize("text, expected", [
        ("unsat\n", CheckResult.UNSATISFIABLE),
        ("sat\n(model ...)", CheckResult.SATISFIABLE),
        ("unknown", CheckResult.UNKNOWN),
        ("  unsat  \n", CheckResult.UNSATISFIABLE),
        ("(error \"line 1\")", CheckResult.ERROR),
        ("", CheckResult.ERROR),
    ])
    def test_first_line(self, text, expected):
        assert parse_response(text) == expected


class TestSmtLib2Text:
    """BK-002: Relations, variables and rules in the fixedpoint dialect."""

    def test_script_shape(self):
        iface = ExportOnlyCHCInterface()
        query = tiny_system(iface)
        text = iface.to_smtlib2("err")
        assert "(declare-rel inv (Int))" in text
        assert "(declare-rel err ())" in text
        assert "(declare-var x Int)" in text
        assert text.count("(rule ") == 3
        assert text.rstrip().endswith("(query err)")
        assert text.index("declare-rel") < text.index("declare-var") < text.index("(rule ")
        assert query.decl().name() == "err"

    def test_relation_names_not_declared_as_variables(self):
        iface = ExportOnlyCHCInterface()
        tiny_system(iface)
        text = iface.to_smtlib2("err")
        assert "(declare-var err" not in text
        assert "(declare-var inv" not in text

    def test_query_target_must_be_relation(self):
        iface = ExportOnlyCHCInterface()
        with pytest.raises(InternalError):
            iface.query(z3.Bool("not_a_relation"))


class TestSmtLib2Query:
    """BK-003: Cache, then callback, then unhandled."""

    def test_export_only_records_unhandled(self):
        iface = ExportOnlyCHCInterface()
        result, _ = iface.query(tiny_system(iface))
        assert result == CheckResult.UNKNOWN
        (text,) = iface.unhandled_queries()
        assert text == iface.to_smtlib2("err")

    def test_cached_response_wins(self):
        first = ExportOnlyCHCInterface()
        first.query(tiny_system(first))
        responses = answer_queries(first.unhandled_queries(), "unsat\n")

        callback = RecordingCallback(answer="sat\n")
        second = SmtLib2CHCInterface(responses=responses, read_callback=callback)
        result, _ = second.query(tiny_system(second))
        assert result == CheckResult.UNSATISFIABLE
        assert callback.calls == []
        assert second.unhandled_queries() == []

    def test_callback_used(self):
        callback = RecordingCallback(answer="sat\n")
        iface = SmtLib2CHCInterface(read_callback=callback)
        result, _ = iface.query(tiny_system(iface))
        assert result == CheckResult.SATISFIABLE
        (kind, data), = callback.calls
        assert kind == SMT_QUERY
        assert data.rstrip().endswith("(query err)")

    def test_failed_callback_is_unhandled(self):
        callback = RecordingCallback(answer="solver crashed", success=False)
        iface = SmtLib2CHCInterface(read_callback=callback)
        result, _ = iface.query(tiny_system(iface))
        assert result == CheckResult.UNKNOWN
        assert len(iface.unhandled_queries()) == 1


class TestZ3Backend:
    """BK-004: In-process Spacer."""

    def test_safe_system(self):
        iface = Z3CHCInterface()
        result, _ = iface.query(tiny_system(iface, safe=True))
        assert result == CheckResult.UNSATISFIABLE

    def test_unsafe_system(self):
        iface = Z3CHCInterface()
        result, _ = iface.query(tiny_system(iface, safe=False))
        assert result == CheckResult.SATISFIABLE

    def test_no_unhandled_queries(self):
        iface = Z3CHCInterface()
        iface.query(tiny_system(iface))
        assert iface.unhandled_queries() == []


class TestBackendSelection:
    """BK-005: Configuration picks the backend."""

    def test_z3_first(self):
        assert isinstance(make_chc_interface(SolverChoice()), Z3CHCInterface)

    def test_smtlib2_needs_callback(self):
        choice = SolverChoice(z3=False, smtlib2=True)
        assert type(make_chc_interface(choice)) is ExportOnlyCHCInterface
        with_callback = make_chc_interface(choice, read_callback=RecordingCallback())
        assert type(with_callback) is SmtLib2CHCInterface

    def test_none_is_export_only(self):
        iface = make_chc_interface(SolverChoice.none(), responses={"h": "unsat"})
        assert isinstance(iface, ExportOnlyCHCInterface)
        assert iface.responses == {"h": "unsat"}

    def test_from_names(self):
        assert SolverChoice.from_names(["smtlib2"]) == SolverChoice(z3=False, smtlib2=True)
        assert SolverChoice.from_names([]) == SolverChoice.none()


class TestResponsesAndCallbacks:
    """BK-006: Response files and process callbacks."""

    def test_hash_is_sha256(self):
        assert query_hash("") == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"

    def test_round_trip_file(self, tmp_path):
        path = tmp_path / "nested" / "responses.json"
        save_responses(path, {"b": "sat\n", "a": "unsat\n"})
        data = json.loads(path.read_text())
        assert data["version"] == 1
        assert list(data["responses"]) == ["a", "b"]
        assert load_responses(path) == {"a": "unsat\n", "b": "sat\n"}

    def test_plain_mapping_accepted(self, tmp_path):
        path = tmp_path / "r.json"
        path.write_text(json.dumps({"abc": "unsat"}))
        assert load_responses(path) == {"abc": "unsat"}

    def test_missing_or_malformed(self, tmp_path):
        assert load_responses(tmp_path / "absent.json") == {}
        bad = tmp_path / "bad.json"
        bad.write_text("{not json")
        assert load_responses(bad) == {}

    def test_command_callback(self):
        script = "import sys; sys.stdin.read(); print('unsat')"
        callback = command_callback([sys.executable, "-c", script])
        result = callback(SMT_QUERY, "(query err)\n")
        assert result.success
        assert parse_response(result.response_or_error) == CheckResult.UNSATISFIABLE

    def test_command_callback_missing_binary(self):
        callback = command_callback(["solhorn-no-such-solver-binary"])
        result = callback(SMT_QUERY, "(query err)\n")
        assert not result.success

    def test_command_callback_rejects_other_kinds(self):
        callback = command_callback([sys.executable, "-c", "print('unsat')"])
        assert not callback("file", "x.sol").success
