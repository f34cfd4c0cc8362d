"""Structured error types for usage faults detected before any invocation."""

from __future__ import annotations

from dataclasses import dataclass


class ForallError(Exception):
    """Base class for structured forall-jax errors."""


class ForallUsageError(ForallError):
    """Call-site contract violation, raised before the first invocation."""


@dataclass(frozen=True)
class ForallArityError(ForallUsageError):
    """Unprotected elementwise operands disagree on their arity."""

    arities: tuple[int | None, ...]

    @property
    def distinct(self) -> tuple[int, ...]:
        seen: list[int] = []
        for arity in self.arities:
            if arity is not None and arity not in seen:
                seen.append(arity)
        return tuple(seen)

    def __str__(self) -> str:
        rendered = ", ".join("-" if a is None else str(a) for a in self.arities)
        return f"Mismatched arities among elementwise operands: ({rendered})"


@dataclass(frozen=True)
class ForallCallError(ForallUsageError):
    """The selected operation cannot be called with the selected operands."""

    message: str
    index: int | None = None

    def __str__(self) -> str:
        if self.index is None:
            return self.message
        return f"{self.message} at position {self.index}"


class ForallOwnershipError(ForallUsageError):
    """An owned operand cannot be scheduled for the requested broadcast."""


class ForallProtocolError(ForallUsageError, TypeError):
    """A class declares the fixed-arity protocol but does not satisfy it."""
