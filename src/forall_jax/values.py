"""Operand carriers and aggregate result types for the broadcasting engine."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Final, Literal, overload


_MISSING: Final = object()


class Unit:
    """Placeholder result for a position whose call returned nothing."""

    _instance: Unit | None = None

    def __new__(cls) -> Unit:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Unit)

    def __hash__(self) -> int:
        return hash(Unit)

    def __repr__(self) -> str:
        return "UNIT"

    def __reduce__(self):
        return (Unit, ())


UNIT: Final[Unit] = Unit()


class Ref:
    """Reference cell that reads and writes through to its referent.

    Three flavours exist:

    - `Ref.cell(value)`: a standalone cell holding the value itself.
    - `Ref.item(container, key)`: refers to `container[key]`.
    - `Ref.attr(obj, name)`: refers to `obj.<name>`.
    """

    __slots__ = ("_target", "_key", "_kind")

    def __init__(self, target: object, key: object = _MISSING, kind: Literal["cell", "item", "attr"] = "cell") -> None:
        if kind != "cell" and key is _MISSING:
            raise ValueError(f"Ref of kind {kind!r} requires a key")
        self._target = target
        self._key = key
        self._kind = kind

    @classmethod
    def cell(cls, value: object = None) -> Ref:
        return cls(value, kind="cell")

    @classmethod
    def item(cls, container: object, key: object) -> Ref:
        return cls(container, key, kind="item")

    @classmethod
    def attr(cls, obj: object, name: str) -> Ref:
        if not isinstance(name, str):
            raise TypeError("Ref.attr name must be a string")
        return cls(obj, name, kind="attr")

    @property
    def kind(self) -> str:
        return self._kind

    def get(self):
        if self._kind == "cell":
            return self._target
        if self._kind == "item":
            return self._target[self._key]
        return getattr(self._target, self._key)

    def set(self, value: object) -> None:
        if self._kind == "cell":
            self._target = value
        elif self._kind == "item":
            self._target[self._key] = value
        else:
            setattr(self._target, self._key, value)

    value = property(get, set)

    def refers_to(self, other: Ref) -> bool:
        """True when both refs denote the same storage location."""
        if self is other:
            return True
        if self._kind == "cell" or self._kind != other._kind:
            return False
        return self._target is other._target and self._key == other._key

    def __repr__(self) -> str:
        if self._kind == "cell":
            return f"Ref.cell({self._target!r})"
        return f"Ref.{self._kind}({type(self._target).__name__}, {self._key!r})"


class Owned:
    """Carrier for a value the caller hands over to a single call.

    Under broadcast the engine copies the value for every position but the
    last one, which receives the original object. The carrier is marked
    consumed once the original has been handed out.
    """

    __slots__ = ("_value", "_consumed")

    def __init__(self, value: object) -> None:
        self._value = value
        self._consumed = False

    @property
    def value(self):
        return self._value

    @property
    def consumed(self) -> bool:
        return self._consumed

    def release(self):
        value = self._value
        self._consumed = True
        return value

    def __repr__(self) -> str:
        state = ", consumed" if self._consumed else ""
        return f"owned({self._value!r}{state})"


def owned(value: object) -> Owned | Protected:
    if isinstance(value, Owned):
        return value
    if isinstance(value, Protected):
        return Protected(owned(value.value))
    return Owned(value)


@dataclass(frozen=True, eq=False)
class Protected:
    """Carrier that is always treated as a scalar operand."""

    value: object

    @property
    def owned(self) -> bool:
        return isinstance(self.value, Owned)

    def unwrap(self):
        """Return the held object itself; an owning carrier yields its `Owned`."""
        return self.value

    def __repr__(self) -> str:
        return f"protect({self.value!r})"


def protect(value: object) -> Protected:
    if isinstance(value, Protected):
        return value
    return Protected(value)


class FixedArray(tuple):
    """Fixed-size result sequence whose items share one exact type."""

    element_type: type | None

    def __new__(cls, items: Iterable[object] = (), element_type: type | None = None) -> FixedArray:
        self = super().__new__(cls, items)
        self.element_type = element_type
        return self

    def __repr__(self) -> str:
        return f"FixedArray({list(self)!r})"


class RefView(Sequence):
    """Fixed-size random-access view over references to one referent type.

    Reads go through to the referents, and item assignment writes through,
    so mutating the view mutates the originals.
    """

    __slots__ = ("_refs", "element_type")

    def __init__(self, refs: Iterable[Ref], element_type: type | None = None) -> None:
        self._refs = tuple(refs)
        for ref in self._refs:
            if not isinstance(ref, Ref):
                raise TypeError(f"RefView items must be Ref instances, got {type(ref).__name__}")
        self.element_type = element_type

    @overload
    def __getitem__(self, index: int) -> object: ...

    @overload
    def __getitem__(self, index: slice) -> RefView: ...

    def __getitem__(self, index):
        if isinstance(index, slice):
            return RefView(self._refs[index], self.element_type)
        return self._refs[index].get()

    def __setitem__(self, index: int, value: object) -> None:
        if isinstance(index, slice):
            raise TypeError("RefView does not support slice assignment")
        self._refs[index].set(value)

    def __len__(self) -> int:
        return len(self._refs)

    def __iter__(self) -> Iterator[object]:
        for ref in self._refs:
            yield ref.get()

    def __reversed__(self) -> Iterator[object]:
        for ref in reversed(self._refs):
            yield ref.get()

    def __eq__(self, other: object) -> bool:
        if isinstance(other, RefView):
            return list(self) == list(other)
        if isinstance(other, Sequence) and not isinstance(other, (str, bytes)):
            return list(self) == list(other)
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def ref(self, index: int) -> Ref:
        return self._refs[index]

    def refs(self) -> tuple[Ref, ...]:
        return self._refs

    def __repr__(self) -> str:
        return f"RefView({list(self)!r})"


class OperandKind(str, Enum):
    TUPLE = "tuple"
    ARRAY = "array"
    FIXED = "fixed"
    SCALAR = "scalar"
    PROTECTED = "protected"


@dataclass(frozen=True)
class OperandInfo:
    kind: OperandKind
    arity: int | None
    owned: bool = False

    @property
    def elementwise(self) -> bool:
        return self.arity is not None
