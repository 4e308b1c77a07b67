"""solhorn engines — expression encoding and the Horn-clause model checker."""

from solhorn.engines.encoder import SMTEncoder, uses_checked_arithmetic
from solhorn.engines.chc import CHC
from solhorn.engines.predicates import Predicate, PredicateArena, PredicateKind
from solhorn.engines.sorts import SortBuilder
