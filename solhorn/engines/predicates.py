"""Predicates and the arena that owns them.

A predicate is a z3 relation plus what the encoder needs to apply it
correctly: its kind, the AST node it was created for and, for blocks, the
local variables it carries. Predicates are never removed; the arena hands
out stable integer handles.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterator, Optional

import z3

from solhorn.ast_nodes import Node, VariableDeclaration
from solhorn.errors import InternalError


logger = logging.getLogger(__name__)


class PredicateKind(Enum):
    GENESIS = "genesis"
    CONSTRUCTOR = "constructor"
    INTERFACE = "interface"
    ERROR = "error"
    BLOCK = "block"
    SUMMARY = "summary"


@dataclass(frozen=True, eq=False)
class Predicate:
    handle: int
    name: str
    domain: tuple[z3.SortRef, ...]
    kind: PredicateKind
    relation: z3.FuncDeclRef
    node: Optional[Node] = None
    local_variables: tuple[VariableDeclaration, ...] = field(default_factory=tuple)

    @property
    def arity(self) -> int:
        return len(self.domain)

    def __call__(self, *arguments: z3.ExprRef) -> z3.BoolRef:
        if len(arguments) != self.arity:
            raise InternalError(
                f"Predicate '{self.name}' has arity {self.arity}, applied to {len(arguments)} arguments"
            )
        for position, (argument, sort) in enumerate(zip(arguments, self.domain)):
            if not isinstance(argument, z3.ExprRef) or argument.sort() != sort:
                actual = argument.sort() if isinstance(argument, z3.ExprRef) else type(argument).__name__
                raise InternalError(
                    f"Predicate '{self.name}' expects {sort} at position {position}, got {actual}"
                )
        return self.relation(*arguments)

    def __repr__(self) -> str:
        return f"Predicate({self.name}/{self.arity}, {self.kind.value})"


class PredicateArena:
    """Allocates uniquely named predicates and indexes them by handle and node."""

    def __init__(self, on_create: Optional[Callable[[Predicate], None]] = None):
        self._predicates: list[Predicate] = []
        self._names: set[str] = set()
        self._by_node: dict[Node, list[int]] = {}
        self._on_create = on_create

    def create(self, name: str, domain: list[z3.SortRef], kind: PredicateKind,
               node: Optional[Node] = None,
               local_variables: Optional[list[VariableDeclaration]] = None) -> Predicate:
        if name in self._names:
            raise InternalError(f"Predicate name '{name}' is already taken")
        relation = z3.Function(name, *domain, z3.BoolSort())
        predicate = Predicate(
            handle=len(self._predicates),
            name=name,
            domain=tuple(domain),
            kind=kind,
            relation=relation,
            node=node,
            local_variables=tuple(local_variables or ()),
        )
        self._predicates.append(predicate)
        self._names.add(name)
        if node is not None:
            self._by_node.setdefault(node, []).append(predicate.handle)
        logger.debug("predicate %s/%d created", name, predicate.arity)
        if self._on_create is not None:
            self._on_create(predicate)
        return predicate

    def get(self, handle: int) -> Predicate:
        return self._predicates[handle]

    def for_node(self, node: Node) -> list[Predicate]:
        return [self._predicates[h] for h in self._by_node.get(node, [])]

    def names(self) -> list[str]:
        return [p.name for p in self._predicates]

    def of_kind(self, kind: PredicateKind) -> list[Predicate]:
        return [p for p in self._predicates if p.kind == kind]

    def __len__(self) -> int:
        return len(self._predicates)

    def __iter__(self) -> Iterator[Predicate]:
        return iter(self._predicates)
