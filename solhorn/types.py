"""Solidity types understood by the front end and the encoder.

Elementary types: uintN / intN (N in 8..256, step 8), bool, address,
contract types (which behave as addresses) and nested mappings.
Strings only appear as call arguments (require messages, low-level calls).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional


# ---------------------------------------------------------------------------
# Type Representations
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SolType:
    """Base type."""
    def __str__(self) -> str:
        return "unknown"

    def is_value_type(self) -> bool:
        return True


@dataclass(frozen=True)
class IntegerType(SolType):
    bits: int = 256
    signed: bool = False

    def __str__(self) -> str:
        return f"{'int' if self.signed else 'uint'}{self.bits}"

    @property
    def min_value(self) -> int:
        return -(2 ** (self.bits - 1)) if self.signed else 0

    @property
    def max_value(self) -> int:
        if self.signed:
            return 2 ** (self.bits - 1) - 1
        return 2 ** self.bits - 1


@dataclass(frozen=True)
class BoolType(SolType):
    def __str__(self) -> str:
        return "bool"


@dataclass(frozen=True)
class AddressType(SolType):
    payable: bool = False

    def __str__(self) -> str:
        return "address payable" if self.payable else "address"


@dataclass(frozen=True)
class ContractType(SolType):
    name: str = ""

    def __str__(self) -> str:
        return f"contract {self.name}"


@dataclass(frozen=True)
class MappingType(SolType):
    key: SolType = IntegerType()
    value: SolType = IntegerType()

    def __str__(self) -> str:
        return f"mapping({self.key} => {self.value})"

    def is_value_type(self) -> bool:
        return False


@dataclass(frozen=True)
class StringType(SolType):
    def __str__(self) -> str:
        return "string"

    def is_value_type(self) -> bool:
        return False


@dataclass(frozen=True)
class TupleType(SolType):
    components: tuple[SolType, ...] = ()

    def __str__(self) -> str:
        return "(" + ",".join(str(c) for c in self.components) + ")"

    def is_value_type(self) -> bool:
        return False


# ---------------------------------------------------------------------------
# Built-in Types
# ---------------------------------------------------------------------------

UINT256 = IntegerType(256, False)
INT256 = IntegerType(256, True)
BOOL = BoolType()
ADDRESS = AddressType()
STRING = StringType()
EMPTY_TUPLE = TupleType(())

ADDRESS_BITS = 160

_INTEGER_NAME = re.compile(r"^(u?)int(\d*)$")


def elementary_type(name: str) -> Optional[SolType]:
    """Resolve an elementary type name, or None if it is not one."""
    if name == "bool":
        return BOOL
    if name == "address":
        return ADDRESS
    if name == "string":
        return STRING
    match = _INTEGER_NAME.match(name)
    if match:
        bits = int(match.group(2)) if match.group(2) else 256
        if bits < 8 or bits > 256 or bits % 8 != 0:
            return None
        return IntegerType(bits, signed=match.group(1) != "u")
    return None


def is_integer(typ: Optional[SolType]) -> bool:
    return isinstance(typ, IntegerType)


def is_address_like(typ: Optional[SolType]) -> bool:
    return isinstance(typ, (AddressType, ContractType))


def common_type(left: Optional[SolType], right: Optional[SolType]) -> SolType:
    """Type of a binary arithmetic operation over left and right."""
    if isinstance(left, IntegerType) and isinstance(right, IntegerType):
        if left == right:
            return left
        if left.signed == right.signed:
            return left if left.bits >= right.bits else right
        return left
    if isinstance(left, IntegerType):
        return left
    if isinstance(right, IntegerType):
        return right
    return UINT256
