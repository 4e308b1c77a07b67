"""Mapping from Solidity types to z3 sorts and value domains.

Integers and addresses are unbounded z3 Ints kept inside their range by
explicit type constraints; mappings are z3 Arrays.
"""

from __future__ import annotations

from typing import Optional

import z3

from solhorn.types import (
    SolType, IntegerType, BoolType, AddressType, ContractType, MappingType,
    ADDRESS_BITS,
)


def smt_sort(typ: Optional[SolType]) -> z3.SortRef:
    if isinstance(typ, BoolType):
        return z3.BoolSort()
    if isinstance(typ, MappingType):
        return z3.ArraySort(smt_sort(typ.key), smt_sort(typ.value))
    return z3.IntSort()


def min_value(typ: SolType) -> int:
    if isinstance(typ, IntegerType):
        return typ.min_value
    return 0


def max_value(typ: SolType) -> int:
    if isinstance(typ, IntegerType):
        return typ.max_value
    if isinstance(typ, (AddressType, ContractType)):
        return 2 ** ADDRESS_BITS - 1
    return 0


def has_range(typ: Optional[SolType]) -> bool:
    return isinstance(typ, (IntegerType, AddressType, ContractType))


def zero_value(typ: Optional[SolType]) -> z3.ExprRef:
    """Default value of a freshly declared variable of type `typ`."""
    if isinstance(typ, BoolType):
        return z3.BoolVal(False)
    if isinstance(typ, MappingType):
        return z3.K(smt_sort(typ.key), zero_value(typ.value))
    return z3.IntVal(0)


def type_constraints(expr: z3.ExprRef, typ: Optional[SolType]) -> z3.BoolRef:
    """Range constraint for a value of type `typ`.

    Mappings are constrained only through the values read from them.
    """
    if has_range(typ):
        return z3.And(expr >= min_value(typ), expr <= max_value(typ))
    return z3.BoolVal(True)


def wrap(expr: z3.ArithRef, typ: IntegerType) -> z3.ArithRef:
    """Two's-complement wrap-around of an unbounded integer into `typ`."""
    modulus = 2 ** typ.bits
    if typ.signed:
        shifted = (expr - typ.min_value) % modulus
        return shifted + typ.min_value
    return expr % modulus
