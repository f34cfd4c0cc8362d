"""Elementwise classification for broadcast operands.

An operand is *elementwise* when its element count is fixed by its type (or,
for arrays, by its static shape) and every element has an accessor. All
checks read class dictionaries only; no user code runs while classifying.
"""

from __future__ import annotations

import inspect
import os
from functools import lru_cache
from typing import Final

import jax

from .errors import ForallProtocolError
from .values import OperandInfo, OperandKind, Owned, Protected


ARITY_ATTR: Final[str] = "__forall_arity__"
FIELDS_ATTR: Final[str] = "__forall_fields__"

_MISSING: Final = object()
_CLASSIFIER_CACHE_MAX: Final[int] = max(1, int(os.environ.get("FORALL_JAX_CLASSIFIER_CACHE_MAX", "1024")))

_REGISTRY: dict[type, tuple[int, tuple[str, ...]]] = {}


def _class_lookup(cls: type, name: str) -> object:
    for klass in cls.__mro__:
        if name in klass.__dict__:
            return klass.__dict__[name]
    return _MISSING


def _declares_attribute(cls: type, name: str) -> bool:
    for klass in cls.__mro__:
        namespace = klass.__dict__
        if name in namespace:
            return True
        if name in namespace.get("__dataclass_fields__", {}):
            return True
        if name in inspect.get_annotations(klass):
            return True
        slots = namespace.get("__slots__", ())
        if isinstance(slots, str):
            slots = (slots,)
        if name in slots:
            return True
    return False


def _registered(cls: type) -> tuple[int, tuple[str, ...]] | None:
    for klass in cls.__mro__:
        entry = _REGISTRY.get(klass)
        if entry is not None:
            return entry
    return None


def is_tuple_like(cls: type) -> bool:
    """True when the class declares a fixed-arity attribute of any kind."""
    return _registered(cls) is not None or _class_lookup(cls, ARITY_ATTR) is not _MISSING


def _constant_arity(raw: object) -> int | None:
    if isinstance(raw, bool) or not isinstance(raw, int):
        return None
    if raw < 0:
        return None
    return int(raw)


def _protocol_defect(cls: type) -> str | None:
    entry = _registered(cls)
    if entry is not None:
        arity, fields = entry
        raw_arity: object = arity
    else:
        raw_arity = _class_lookup(cls, ARITY_ATTR)
        if raw_arity is _MISSING:
            return f"{cls.__name__} does not declare {ARITY_ATTR}"
        fields = _class_lookup(cls, FIELDS_ATTR)

    arity = _constant_arity(raw_arity)
    if arity is None:
        return f"{cls.__name__}.{ARITY_ATTR} must be a non-negative int constant, got {type(raw_arity).__name__}"
    if fields is _MISSING:
        return f"{cls.__name__} declares {ARITY_ATTR} but no {FIELDS_ATTR}"
    if not isinstance(fields, tuple) or not all(isinstance(name, str) for name in fields):
        return f"{cls.__name__}.{FIELDS_ATTR} must be a tuple of attribute names"
    if len(fields) != arity:
        return f"{cls.__name__} declares arity {arity} but has accessors for {len(fields)} element(s)"
    missing = [name for name in fields if not _declares_attribute(cls, name)]
    if missing:
        return f"{cls.__name__} has no declared attribute(s) {', '.join(missing)} for its elements"
    return None


@lru_cache(maxsize=_CLASSIFIER_CACHE_MAX)
def _class_arity(cls: type) -> int | None:
    if not is_tuple_like(cls) or _protocol_defect(cls) is not None:
        return None
    entry = _registered(cls)
    if entry is not None:
        return entry[0]
    return int(_class_lookup(cls, ARITY_ATTR))


@lru_cache(maxsize=_CLASSIFIER_CACHE_MAX)
def _class_fields(cls: type) -> tuple[str, ...]:
    entry = _registered(cls)
    if entry is not None:
        return entry[1]
    return _class_lookup(cls, FIELDS_ATTR)


def has_constant_arity(cls: type) -> bool:
    entry = _registered(cls)
    raw = entry[0] if entry is not None else _class_lookup(cls, ARITY_ATTR)
    return _constant_arity(raw) is not None


def has_complete_accessors(cls: type) -> bool:
    return _class_arity(cls) is not None


def check_elementwise(cls: type) -> None:
    """Raise `ForallProtocolError` unless `cls` fully implements the protocol."""
    defect = _protocol_defect(cls)
    if defect is not None:
        raise ForallProtocolError(defect)


def register_elementwise(cls: type, fields: tuple[str, ...], *, arity: int | None = None) -> type:
    """Declare `cls` elementwise with element `i` read from attribute `fields[i]`.

    Meant for classes the caller cannot edit. The declaration is validated
    immediately, so an incomplete accessor list is rejected here rather than
    silently classifying the class as scalar later.
    """
    fields = tuple(fields)
    declared = len(fields) if arity is None else arity
    previous = _REGISTRY.get(cls)
    _REGISTRY[cls] = (declared, fields)
    try:
        check_elementwise(cls)
    except ForallProtocolError:
        if previous is None:
            del _REGISTRY[cls]
        else:
            _REGISTRY[cls] = previous
        raise
    finally:
        clear_classifier_cache()
    return cls


def unregister_elementwise(cls: type) -> None:
    _REGISTRY.pop(cls, None)
    clear_classifier_cache()


def clear_classifier_cache() -> None:
    _class_arity.cache_clear()
    _class_fields.cache_clear()


def classifier_cache_stats() -> dict[str, int]:
    info = _class_arity.cache_info()
    return {"hits": info.hits, "misses": info.misses, "size": info.currsize}


def _is_array(value: object) -> bool:
    return isinstance(value, jax.Array) and value.ndim >= 1


def arity_of(value: object) -> int | None:
    """Arity of an elementwise operand, or None for a scalar."""
    if isinstance(value, Owned):
        value = value.value
    if isinstance(value, Protected):
        return None
    if isinstance(value, tuple):
        return len(value)
    if _is_array(value):
        return int(value.shape[0])
    return _class_arity(type(value))


def is_elementwise(value: object) -> bool:
    return arity_of(value) is not None


def element_of(value: object, index: int):
    if isinstance(value, Owned):
        value = value.value
    if isinstance(value, tuple) or _is_array(value):
        return value[index]
    fields = _class_fields(type(value))
    return getattr(value, fields[index])


def supports_copy(value: object) -> bool:
    """False for classes that opt out of copying with `__copy__ = None`."""
    return _class_lookup(type(value), "__copy__") is not None


def operand_info(value: object) -> OperandInfo:
    is_owned = isinstance(value, Owned) or (isinstance(value, Protected) and value.owned)
    if isinstance(value, Protected):
        return OperandInfo(kind=OperandKind.PROTECTED, arity=None, owned=is_owned)
    inner = value.value if isinstance(value, Owned) else value
    arity = arity_of(inner)
    if arity is None:
        kind = OperandKind.SCALAR
    elif isinstance(inner, tuple):
        kind = OperandKind.TUPLE
    elif _is_array(inner):
        kind = OperandKind.ARRAY
    else:
        kind = OperandKind.FIXED
    return OperandInfo(kind=kind, arity=arity, owned=is_owned)
