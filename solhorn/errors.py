"""Structured diagnostics for the solhorn front end and model checker.

Every diagnostic is machine-readable. The core never prints: it hands
diagnostics to an ErrorReporter keyed by source location, and the caller
decides how to present them.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class DiagnosticKind(Enum):
    SYNTAX_ERROR = "syntax_error"
    DECLARATION_ERROR = "declaration_error"
    TYPE_ERROR = "type_error"
    UNSUPPORTED = "unsupported"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class SourceLocation:
    line: int
    column: int
    file: str = "<stdin>"

    def __str__(self) -> str:
        return f"{self.file}:{self.line}:{self.column}"


@dataclass
class Diagnostic:
    kind: DiagnosticKind
    message: str
    location: Optional[SourceLocation] = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def is_error(self) -> bool:
        return self.kind not in (DiagnosticKind.WARNING, DiagnosticKind.INFO)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "kind": self.kind.value,
            "message": self.message,
        }
        if self.location:
            d["location"] = {
                "file": self.location.file,
                "line": self.location.line,
                "column": self.location.column,
            }
        if self.details:
            d["details"] = self.details
        return d

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    def __str__(self) -> str:
        loc = f" at {self.location}" if self.location else ""
        return f"[{self.kind.value}]{loc}: {self.message}"


def syntax_error(
    message: str,
    location: Optional[SourceLocation] = None,
) -> Diagnostic:
    return Diagnostic(
        kind=DiagnosticKind.SYNTAX_ERROR,
        message=message,
        location=location,
    )


def declaration_error(
    name: str,
    message: str,
    location: Optional[SourceLocation] = None,
) -> Diagnostic:
    return Diagnostic(
        kind=DiagnosticKind.DECLARATION_ERROR,
        message=message,
        location=location,
        details={"name": name},
    )


def type_error(
    message: str,
    location: Optional[SourceLocation] = None,
    expected_type: Optional[str] = None,
    actual_type: Optional[str] = None,
) -> Diagnostic:
    details: dict[str, Any] = {}
    if expected_type:
        details["expected_type"] = expected_type
    if actual_type:
        details["actual_type"] = actual_type
    return Diagnostic(
        kind=DiagnosticKind.TYPE_ERROR,
        message=message,
        location=location,
        details=details,
    )


def unsupported(
    construct: str,
    location: Optional[SourceLocation] = None,
) -> Diagnostic:
    return Diagnostic(
        kind=DiagnosticKind.UNSUPPORTED,
        message=f"{construct} is not supported",
        location=location,
        details={"construct": construct},
    )


class CompileError(Exception):
    """Exception wrapping one or more Diagnostics."""

    def __init__(self, errors: list[Diagnostic] | Diagnostic):
        if isinstance(errors, Diagnostic):
            errors = [errors]
        self.errors = errors
        super().__init__(self._format())

    def _format(self) -> str:
        return "\n".join(str(e) for e in self.errors)

    def to_json(self, indent: int = 2) -> str:
        return json.dumps([e.to_dict() for e in self.errors], indent=indent)


class InternalError(Exception):
    """A structural invariant of the encoding was violated.

    Aborts the current analysis run; no partial result set is published.
    """


class ErrorReporter:
    """Collects diagnostics produced while analysing a source unit."""

    def __init__(self) -> None:
        self.diagnostics: list[Diagnostic] = []

    def warning(self, location: Optional[SourceLocation], message: str,
                **details: Any) -> None:
        self.diagnostics.append(Diagnostic(
            kind=DiagnosticKind.WARNING,
            message=message,
            location=location,
            details=details,
        ))

    def info(self, location: Optional[SourceLocation], message: str,
             **details: Any) -> None:
        self.diagnostics.append(Diagnostic(
            kind=DiagnosticKind.INFO,
            message=message,
            location=location,
            details=details,
        ))

    def report(self, diagnostic: Diagnostic) -> None:
        self.diagnostics.append(diagnostic)

    @property
    def warnings(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.kind == DiagnosticKind.WARNING]

    @property
    def errors(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.is_error]

    def has_errors(self) -> bool:
        return any(d.is_error for d in self.diagnostics)

    def clear(self) -> None:
        self.diagnostics = []

    def to_json(self, indent: int = 2) -> str:
        return json.dumps([d.to_dict() for d in self.diagnostics], indent=indent)
