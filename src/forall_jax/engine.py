"""Broadcasting invocation engine.

`invoke_forall(op, *operands)` calls `op` once per element position of its
elementwise operands and packs the per-position results. Every usage fault
(missing operands, arity mismatch, uncallable selections, ownership
conflicts) is raised before the first call runs.
"""

from __future__ import annotations

import copy
import inspect
import logging
import os
from collections.abc import Iterator, Sequence
from typing import Final

import jax
import jax.numpy as jnp

from .errors import ForallArityError, ForallCallError, ForallOwnershipError, ForallUsageError
from .protocol import arity_of, element_of, supports_copy
from .values import _MISSING, UNIT, FixedArray, Owned, Protected, Ref, RefView


logger = logging.getLogger(__name__)

_CHECK_SIGNATURES: Final[bool] = os.environ.get("FORALL_JAX_DISABLE_SIGNATURE_CHECK", "0") != "1"
_STACK_ARRAY_RESULTS: Final[bool] = os.environ.get("FORALL_JAX_DISABLE_ARRAY_STACKING", "0") != "1"

_NO_SIGNATURE: Final = object()


def resolve_arity(operands: Sequence[object]) -> int | None:
    """Common arity of the unprotected elementwise operands, None if there are none."""
    arities = tuple(arity_of(operand) for operand in operands)
    arity = next((a for a in arities if a is not None), None)
    if any(a is not None and a != arity for a in arities):
        raise ForallArityError(arities)
    return arity


def _owned_carrier(operand: object) -> Owned | None:
    if isinstance(operand, Protected):
        operand = operand.value
    if isinstance(operand, Owned):
        return operand
    return None


def _check_ownership(operands: Sequence[object], flags: Sequence[bool], arity: int | None) -> None:
    for position, (operand, elementwise) in enumerate(zip(operands, flags, strict=True)):
        carrier = _owned_carrier(operand)
        if carrier is None:
            continue
        if carrier.consumed:
            raise ForallOwnershipError(f"Operand {position} is an owned value that was already handed over")
        if elementwise or arity is None or arity <= 1:
            continue
        if not supports_copy(carrier.value):
            raise ForallOwnershipError(
                f"Operand {position} of type {type(carrier.value).__name__} is owned and "
                f"broadcast over arity {arity} but does not support copying"
            )


def _select_scalar(value: object, index: int, arity: int | None):
    if not isinstance(value, Owned):
        return value
    if arity is not None and index < arity - 1:
        try:
            return copy.copy(value.value)
        except (TypeError, copy.Error) as err:
            raise ForallOwnershipError(
                f"Owned value of type {type(value.value).__name__} could not be copied for position {index}: {err}"
            ) from err
    return value.release()


def _select(operand: object, index: int, arity: int | None, column: Sequence[object] | None):
    if isinstance(operand, Protected):
        return _select_scalar(operand.value, index, arity)
    if column is not None:
        if isinstance(operand, Owned) and index == arity - 1:
            operand.release()
        return column[index]
    return _select_scalar(operand, index, arity)


def _peek(operand: object, index: int, column: Sequence[object] | None):
    if isinstance(operand, Protected):
        operand = operand.value
    elif column is not None:
        return column[index]
    if isinstance(operand, Owned):
        return operand.value
    return operand


def _columns(operands: Sequence[object], arity: int | None) -> list[tuple[object, ...] | None]:
    """Read every element of each elementwise operand exactly once."""
    if arity is None:
        return [None] * len(operands)
    columns: list[tuple[object, ...] | None] = []
    for operand in operands:
        if arity_of(operand) is None:
            columns.append(None)
        else:
            columns.append(tuple(element_of(operand, index) for index in range(arity)))
    return columns


def select_operand(operand: object, index: int, arity: int | None):
    """Value `operand` contributes at position `index` of a call with `arity`.

    Elementwise operands contribute their element. Scalars contribute
    themselves; an owned scalar is copied for every position but the last,
    which receives the original object.
    """
    column = None
    if arity is not None and arity_of(operand) is not None:
        column = [_MISSING] * arity
        column[index] = element_of(operand, index)
    return _select(operand, index, arity, column)


def selections(
    operands: Sequence[object],
    arity: int | None,
    columns: Sequence[tuple[object, ...] | None] | None = None,
) -> Iterator[tuple[object, ...]]:
    """Yield the selection for each position in ascending order.

    Selections are produced lazily, so copies for position `i` are made only
    once position `i - 1` has been invoked.
    """
    if columns is None:
        columns = _columns(operands, arity)
    count = 1 if arity is None else arity
    for index in range(count):
        yield tuple(_select(operand, index, arity, column) for operand, column in zip(operands, columns, strict=True))


def _signature_of(fn: object):
    try:
        return inspect.signature(fn)
    except (TypeError, ValueError):
        return _NO_SIGNATURE


def _check_callable(operands: Sequence[object], columns: Sequence[tuple[object, ...] | None], count: int) -> None:
    # Holding each fn next to its signature keeps it alive for identity lookups.
    signatures: list[tuple[object, object]] = []
    for index in range(count):
        fn, *args = (_peek(operand, index, column) for operand, column in zip(operands, columns, strict=True))
        if not callable(fn):
            raise ForallCallError(f"Selected operation of type {type(fn).__name__} is not callable", index)
        if not _CHECK_SIGNATURES:
            continue
        signature = next((sig for seen, sig in signatures if seen is fn), _MISSING)
        if signature is _MISSING:
            signature = _signature_of(fn)
            signatures.append((fn, signature))
        if signature is _NO_SIGNATURE:
            continue
        try:
            signature.bind(*args)
        except TypeError as err:
            name = getattr(fn, "__name__", type(fn).__name__)
            raise ForallCallError(f"Cannot call {name} with {len(args)} operand(s): {err}", index) from err


def _invoke(selection: Sequence[object]):
    fn, *args = selection
    return fn(*args)


def invoke_position(selection: Sequence[object]):
    """Invoke one position; a call returning nothing yields `UNIT`."""
    result = _invoke(selection)
    if result is None:
        return UNIT
    return result


def _result_key(value: object) -> object:
    if isinstance(value, Ref):
        return (Ref, type(value.get()))
    if isinstance(value, jax.Array):
        return (jax.Array, tuple(value.shape), value.dtype, bool(getattr(value, "weak_type", False)))
    return type(value)


def aggregate(results: Sequence[object], arity: int | None):
    """Pack per-position results.

    With no elementwise operand (`arity is None`) the single result is
    returned as is. Otherwise results of one exact type become a `RefView`
    (references), a stacked array (same-shaped jax arrays) or a
    `FixedArray`; mixed types become a plain tuple.
    """
    if arity is None:
        return results[0]
    if not results:
        return FixedArray((), element_type=None)

    keys = [_result_key(result) for result in results]
    first = keys[0]
    if any(key != first for key in keys[1:]):
        return tuple(results)

    head = results[0]
    if isinstance(head, Ref):
        return RefView(results, element_type=first[1])
    if _STACK_ARRAY_RESULTS and isinstance(head, jax.Array):
        return jnp.stack(results, axis=0)
    return FixedArray(results, element_type=type(head))


def invoke_forall(*args):
    """Broadcast `args[0]` over the remaining operands.

    The first operand is the operation and may itself be elementwise (one
    operation per position). Use `protect` to pass an elementwise value
    whole and `owned` to hand a value over to the calls.
    """
    if not args:
        raise ForallUsageError("invoke_forall requires at least one operand")

    arity = resolve_arity(args)
    flags = [arity is not None and arity_of(operand) is not None for operand in args]
    count = 1 if arity is None else arity
    _check_ownership(args, flags, arity)
    columns = _columns(args, arity)
    _check_callable(args, columns, count)
    logger.debug("invoke_forall: %d operand(s), arity=%s", len(args), arity)

    if arity is None:
        (selection,) = selections(args, None, columns)
        return _invoke(selection)

    results = [invoke_position(selection) for selection in selections(args, arity, columns)]
    out = aggregate(results, arity)
    logger.debug("invoke_forall: packed %d result(s) as %s", len(results), type(out).__name__)
    return out
