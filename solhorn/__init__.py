"""solhorn — Constrained-Horn-Clause model checking for Solidity contracts"""

__version__ = "0.1.0"

from solhorn.model_checker import ModelChecker, VerificationResult, check_source
from solhorn.config import SolhornConfig, load_config
