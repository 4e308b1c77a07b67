"""Horn-clause solver capability interface and backend selection.

A backend receives relations and rules while the CFG encoder runs and
answers reachability queries over zero-arity error relations. `unsat`
means the relation is unreachable, i.e. the assertion behind it holds.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional, TYPE_CHECKING

import z3

if TYPE_CHECKING:
    from solhorn.smt.callback import ReadCallback


DEFAULT_TIMEOUT_MS = 10_000


class CheckResult(Enum):
    SATISFIABLE = "sat"
    UNSATISFIABLE = "unsat"
    UNKNOWN = "unknown"
    CONFLICTING = "conflicting"
    ERROR = "error"


@dataclass(frozen=True)
class SolverChoice:
    """Which backends may be used; both disabled means export only."""
    z3: bool = True
    smtlib2: bool = True

    @classmethod
    def from_names(cls, names: list[str]) -> SolverChoice:
        return cls(z3="z3" in names, smtlib2="smtlib2" in names)

    @classmethod
    def none(cls) -> SolverChoice:
        return cls(z3=False, smtlib2=False)


class CHCSolverInterface(ABC):
    """What the CFG encoder needs from a Horn-clause solver."""

    @abstractmethod
    def register_relation(self, relation: z3.FuncDeclRef) -> None:
        """Make `relation` known before any rule mentions it."""

    @abstractmethod
    def add_rule(self, rule: z3.BoolRef, name: str) -> None:
        """Add the Horn clause `rule` (free constants universally quantified)."""

    @abstractmethod
    def query(self, expr: z3.BoolRef) -> tuple[CheckResult, list[str]]:
        """Is `expr` (an error relation application) derivable?"""

    def unhandled_queries(self) -> list[str]:
        return []


def make_chc_interface(
    choice: SolverChoice,
    responses: Optional[dict[str, str]] = None,
    read_callback: Optional[ReadCallback] = None,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
) -> CHCSolverInterface:
    """z3 in-process if enabled, else SMT-LIB2 text with a callback, else export only."""
    from solhorn.smt.smtlib2_chc import SmtLib2CHCInterface, ExportOnlyCHCInterface
    from solhorn.smt.z3_chc import Z3CHCInterface

    if choice.z3:
        return Z3CHCInterface(timeout_ms=timeout_ms)
    if choice.smtlib2 and read_callback is not None:
        return SmtLib2CHCInterface(responses=responses, read_callback=read_callback)
    return ExportOnlyCHCInterface(responses=responses)
