"""Helpers over z3 terms."""

from __future__ import annotations

from typing import Iterable, Optional

import z3


def free_constants(expr: z3.ExprRef,
                   exclude: Optional[Iterable[str]] = None) -> list[z3.ExprRef]:
    """Uninterpreted 0-ary constants occurring in `expr`, in first-seen order.

    Relation applications are traversed but not collected; zero-arity
    relations (genesis, error relations) are excluded by name.
    """
    excluded = set(exclude or ())
    seen: set[int] = set()
    result: list[z3.ExprRef] = []
    names: set[str] = set()
    stack = [expr]
    while stack:
        term = stack.pop()
        key = term.get_id()
        if key in seen:
            continue
        seen.add(key)
        if z3.is_const(term) and term.decl().kind() == z3.Z3_OP_UNINTERPRETED:
            name = term.decl().name()
            if name not in excluded and name not in names:
                names.add(name)
                result.append(term)
            continue
        if z3.is_quantifier(term):
            stack.append(term.body())
            continue
        if z3.is_app(term):
            stack.extend(reversed(term.children()))
    return result


def conjunction(terms: Iterable[z3.BoolRef]) -> z3.BoolRef:
    parts = [t for t in terms if not z3.is_true(t)]
    if not parts:
        return z3.BoolVal(True)
    if len(parts) == 1:
        return parts[0]
    return z3.And(*parts)
