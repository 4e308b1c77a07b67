"""solhorn configuration loading tests, CFG-001 through CFG-003."""

import json

from solhorn.config import SolhornConfig, load_config, find_config
from solhorn.smt import SolverChoice
from solhorn.smt.chc_interface import DEFAULT_TIMEOUT_MS


class TestDefaults:
    """CFG-001: No file means defaults."""

    def test_defaults(self):
        config = SolhornConfig()
        assert config.solvers == ["z3", "smtlib2"]
        assert config.timeout_ms == DEFAULT_TIMEOUT_MS
        assert config.contracts == []
        assert config.report_unproven
        assert config.solver_choice() == SolverChoice()

    def test_missing_explicit_path(self, tmp_path):
        assert load_config(str(tmp_path / "absent.yml")) == SolhornConfig()


class TestLoading:
    """CFG-002: YAML and JSON files."""

    def test_yaml(self, tmp_path):
        path = tmp_path / ".solhornrc.yml"
        path.write_text(
            "solvers:\n  - smtlib2\n"
            "timeout_ms: 2500\n"
            "contracts: [Vault]\n"
            "solver_command: z3 -in -smt2\n"
            "responses: out/responses.json\n"
            "report_unproven: false\n"
        )
        config = load_config(str(path))
        assert config.solver_choice() == SolverChoice(z3=False, smtlib2=True)
        assert config.timeout_ms == 2500
        assert config.contracts == ["Vault"]
        assert config.solver_command == ["z3", "-in", "-smt2"]
        assert config.responses == "out/responses.json"
        assert config.report_unproven is False

    def test_json(self, tmp_path):
        path = tmp_path / ".solhornrc.json"
        path.write_text(json.dumps({"solvers": [], "solver_command": ["eld", "-ssol"]}))
        config = load_config(str(path))
        assert config.solver_choice() == SolverChoice.none()
        assert config.solver_command == ["eld", "-ssol"]

    def test_unknown_keys_and_bad_values_ignored(self, tmp_path):
        path = tmp_path / ".solhornrc.yml"
        path.write_text("colour: blue\ntimeout_ms: soon\ncontracts: Vault\n")
        config = load_config(str(path))
        assert config.timeout_ms == DEFAULT_TIMEOUT_MS
        assert config.contracts == []

    def test_malformed_file_gives_defaults(self, tmp_path):
        path = tmp_path / ".solhornrc.json"
        path.write_text("{broken")
        assert load_config(str(path)) == SolhornConfig()

    def test_non_mapping_gives_defaults(self, tmp_path):
        path = tmp_path / ".solhornrc.yml"
        path.write_text("- just\n- a list\n")
        assert load_config(str(path)) == SolhornConfig()


class TestDiscovery:
    """CFG-003: The nearest config file above the start directory wins."""

    def test_found_in_parent(self, tmp_path):
        (tmp_path / ".solhornrc.yml").write_text("timeout_ms: 42\n")
        nested = tmp_path / "contracts" / "tokens"
        nested.mkdir(parents=True)
        assert find_config(str(nested)) == str(tmp_path / ".solhornrc.yml")
        assert load_config(start_dir=str(nested)).timeout_ms == 42

    def test_priority_order(self, tmp_path):
        (tmp_path / ".solhornrc.json").write_text(json.dumps({"timeout_ms": 1}))
        (tmp_path / ".solhornrc.yml").write_text("timeout_ms: 2\n")
        assert load_config(start_dir=str(tmp_path)).timeout_ms == 2

    def test_closer_file_wins(self, tmp_path):
        (tmp_path / ".solhornrc.yml").write_text("timeout_ms: 1\n")
        inner = tmp_path / "inner"
        inner.mkdir()
        (inner / "solhorn.config.json").write_text(json.dumps({"timeout_ms": 3}))
        assert load_config(start_dir=str(inner)).timeout_ms == 3
