"""solhorn symbolic layer — sorts, SSA variables and Horn-clause solver backends."""

from solhorn.smt.chc_interface import (
    CHCSolverInterface, CheckResult, SolverChoice, make_chc_interface,
    DEFAULT_TIMEOUT_MS,
)
from solhorn.smt.callback import ReadResult, ReadCallback, command_callback, SMT_QUERY
from solhorn.smt.smtlib2_chc import SmtLib2CHCInterface, ExportOnlyCHCInterface
from solhorn.smt.z3_chc import Z3CHCInterface
from solhorn.smt.symbolic import SymbolicVariable, EncodingContext
