"""Read callbacks: how an out-of-process solver is reached.

A callback takes `(kind, data)` and returns a ReadResult. The only kind the
model checker issues is `"smt-query"`, whose data is a complete SMT-LIB2
script in the z3 fixedpoint dialect.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from typing import Callable, Sequence


logger = logging.getLogger(__name__)

SMT_QUERY = "smt-query"

DEFAULT_SOLVER_COMMAND = ("z3", "-in")


@dataclass(frozen=True)
class ReadResult:
    success: bool
    response_or_error: str


ReadCallback = Callable[[str, str], ReadResult]


def command_callback(command: Sequence[str] = DEFAULT_SOLVER_COMMAND,
                     timeout: float = 60.0) -> ReadCallback:
    """A callback piping each query into `command` on stdin."""
    argv = list(command)

    def callback(kind: str, data: str) -> ReadResult:
        if kind != SMT_QUERY:
            return ReadResult(False, f"Unsupported callback kind '{kind}'")
        try:
            completed = subprocess.run(
                argv, input=data, capture_output=True, text=True, timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            return ReadResult(False, f"'{argv[0]}' timed out after {timeout}s")
        except OSError as e:
            return ReadResult(False, f"Could not run '{argv[0]}': {e}")
        if completed.returncode != 0 and not completed.stdout.strip():
            error = completed.stderr.strip() or f"exit status {completed.returncode}"
            return ReadResult(False, error)
        logger.debug("'%s' answered: %s", argv[0], completed.stdout.strip()[:40])
        return ReadResult(True, completed.stdout)

    return callback
