"""forall-jax public API."""

from .engine import aggregate, invoke_forall, invoke_position, resolve_arity, select_operand, selections
from .errors import (
    ForallArityError,
    ForallCallError,
    ForallError,
    ForallOwnershipError,
    ForallProtocolError,
    ForallUsageError,
)
from .protocol import (
    arity_of,
    check_elementwise,
    classifier_cache_stats,
    clear_classifier_cache,
    element_of,
    is_elementwise,
    operand_info,
    register_elementwise,
    unregister_elementwise,
)
from .values import (
    UNIT,
    FixedArray,
    OperandInfo,
    OperandKind,
    Owned,
    Protected,
    Ref,
    RefView,
    Unit,
    owned,
    protect,
)

__all__ = [
    "invoke_forall",
    "protect",
    "owned",
    "resolve_arity",
    "select_operand",
    "selections",
    "invoke_position",
    "aggregate",
    "arity_of",
    "element_of",
    "is_elementwise",
    "operand_info",
    "check_elementwise",
    "register_elementwise",
    "unregister_elementwise",
    "classifier_cache_stats",
    "clear_classifier_cache",
    "UNIT",
    "Unit",
    "Ref",
    "RefView",
    "FixedArray",
    "Owned",
    "Protected",
    "OperandInfo",
    "OperandKind",
    "ForallError",
    "ForallUsageError",
    "ForallArityError",
    "ForallCallError",
    "ForallOwnershipError",
    "ForallProtocolError",
]
