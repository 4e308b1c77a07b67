"""solhorn configuration — project-level .solhornrc.yml support.

Loads configuration from .solhornrc.yml (or .solhornrc.yaml, .solhornrc.json)
in the project root or any directory above it.

Example .solhornrc.yml:
    solvers:
      - z3
      - smtlib2
    timeout_ms: 20000
    contracts:            # empty = every contract in the file
      - Vault
    solver_command: ["z3", "-in"]
    responses: .solhorn-responses.json
    report_unproven: true
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any

import yaml

from solhorn.smt.callback import DEFAULT_SOLVER_COMMAND
from solhorn.smt.chc_interface import DEFAULT_TIMEOUT_MS, SolverChoice


logger = logging.getLogger(__name__)


@dataclass
class SolhornConfig:
    """Project-level solhorn configuration."""
    # Horn solvers to use: "z3" (in process), "smtlib2" (query text + callback)
    solvers: List[str] = field(default_factory=lambda: ["z3", "smtlib2"])
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    # Contract names to analyse; empty means all
    contracts: List[str] = field(default_factory=list)
    # argv of the external solver used by the smtlib2 backend
    solver_command: List[str] = field(default_factory=lambda: list(DEFAULT_SOLVER_COMMAND))
    # Path of the cached query responses
    responses: str = ""
    report_unproven: bool = True

    def solver_choice(self) -> SolverChoice:
        return SolverChoice.from_names(self.solvers)


# ---------------------------------------------------------------------------
# Config file names (in priority order)
# ---------------------------------------------------------------------------

_CONFIG_FILES = [
    ".solhornrc.yml",
    ".solhornrc.yaml",
    ".solhornrc.json",
    "solhorn.config.yml",
    "solhorn.config.json",
]


def find_config(start_dir: str = ".") -> Optional[str]:
    """Find the nearest config file by walking up from start_dir."""
    current = os.path.abspath(start_dir)
    while True:
        for name in _CONFIG_FILES:
            path = os.path.join(current, name)
            if os.path.isfile(path):
                return path
        parent = os.path.dirname(current)
        if parent == current:
            break
        current = parent
    return None


def load_config(path: Optional[str] = None, start_dir: str = ".") -> SolhornConfig:
    """Load configuration from a file.

    If no path is given, searches for a config file starting from start_dir.
    A missing or malformed file yields the defaults.
    """
    if path is None:
        path = find_config(start_dir)

    if path is None:
        return SolhornConfig()

    try:
        with open(path, "r") as f:
            content = f.read()
    except OSError:
        return SolhornConfig()

    try:
        if path.endswith(".json"):
            data = json.loads(content)
        else:
            data = yaml.safe_load(content)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        logger.warning("ignoring malformed config %s: %s", path, e)
        return SolhornConfig()

    if not isinstance(data, dict):
        return SolhornConfig()
    return _dict_to_config(data)


def _dict_to_config(data: Dict[str, Any]) -> SolhornConfig:
    """Convert a parsed dict to SolhornConfig."""
    config = SolhornConfig()

    if "solvers" in data and isinstance(data["solvers"], list):
        config.solvers = [str(s) for s in data["solvers"]]
    if "timeout_ms" in data:
        try:
            config.timeout_ms = int(data["timeout_ms"])
        except (TypeError, ValueError):
            pass
    if "contracts" in data and isinstance(data["contracts"], list):
        config.contracts = [str(c) for c in data["contracts"]]
    if "solver_command" in data:
        command = data["solver_command"]
        if isinstance(command, str):
            config.solver_command = command.split()
        elif isinstance(command, list):
            config.solver_command = [str(part) for part in command]
    if "responses" in data and data["responses"] is not None:
        config.responses = str(data["responses"])
    if "report_unproven" in data:
        config.report_unproven = bool(data["report_unproven"])

    return config
