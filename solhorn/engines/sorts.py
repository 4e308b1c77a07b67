"""Predicate domains.

    interface / constructor : state
    function                : state, params            (entry snapshot)
                              state, params, returns   (current values)
    block                   : function, locals in scope where the block is created
    summary                 : state, params, returns, state (post)
"""

from __future__ import annotations

from typing import Optional

import z3

from solhorn.ast_nodes import FunctionDefinition, VariableDeclaration, Node
from solhorn.smt.sorts import smt_sort


def declaration_sorts(declarations: list[VariableDeclaration]) -> list[z3.SortRef]:
    return [smt_sort(d.type) for d in declarations]


class SortBuilder:
    """Computes and caches predicate domains for the contract being encoded."""

    def __init__(self) -> None:
        self.state_variables: list[VariableDeclaration] = []
        self._block_cache: dict[Node, tuple[list[VariableDeclaration], list[z3.SortRef]]] = {}

    def set_state_variables(self, declarations: list[VariableDeclaration]) -> None:
        self.state_variables = list(declarations)
        self._block_cache = {}

    def reset(self) -> None:
        self.set_state_variables([])

    def state_sorts(self) -> list[z3.SortRef]:
        return declaration_sorts(self.state_variables)

    def interface_sort(self) -> list[z3.SortRef]:
        return self.state_sorts()

    def constructor_sort(self) -> list[z3.SortRef]:
        return self.state_sorts()

    def function_sort(self, function: FunctionDefinition) -> list[z3.SortRef]:
        state = self.state_sorts()
        params = declaration_sorts(function.parameters)
        returns = declaration_sorts(function.return_parameters)
        return state + params + state + params + returns

    def block_sort(self, node: Node, function: Optional[FunctionDefinition],
                   locals_in_scope: list[VariableDeclaration],
                   ) -> tuple[list[VariableDeclaration], list[z3.SortRef]]:
        """Locals carried by the block and its full domain.

        The first request for `node` fixes the answer; later requests for
        the same node return it unchanged.
        """
        if node in self._block_cache:
            return self._block_cache[node]
        if function is None:
            entry = ([], self.state_sorts())
        else:
            carried = list(locals_in_scope)
            entry = (carried, self.function_sort(function) + declaration_sorts(carried))
        self._block_cache[node] = entry
        return entry

    def summary_sort(self, function: FunctionDefinition) -> list[z3.SortRef]:
        state = self.state_sorts()
        return (state
                + declaration_sorts(function.parameters)
                + declaration_sorts(function.return_parameters)
                + state)
