"""CBOR serialization interfaces shared by every ledger type in this package."""

from __future__ import annotations

from collections import UserDict, UserList
from dataclasses import Field, dataclass, field, fields
from inspect import isclass
from typing import (
    Any,
    Callable,
    List,
    Type,
    TypeVar,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

from pprintpp import pformat

from pytxbuilder.cbor import cbor2
from pytxbuilder.exception import DeserializeException, SerializeException
from pytxbuilder.types import check_type

__all__ = [
    "default_encoder",
    "IndefiniteList",
    "RawCBOR",
    "Primitive",
    "CBORBase",
    "CBORSerializable",
    "ArrayCBORSerializable",
    "MapCBORSerializable",
    "DictCBORSerializable",
    "CodedSerializable",
    "list_hook",
    "limit_primitive_type",
]


class IndefiniteList(UserList):
    """A list that is encoded as an indefinite-length CBOR array."""


@dataclass
class RawCBOR:
    """Bytes that are already CBOR encoded and are written to the output untouched."""

    cbor: bytes


Primitive = Union[
    bytes,
    bytearray,
    str,
    int,
    float,
    bool,
    None,
    tuple,
    list,
    IndefiniteList,
    dict,
    cbor2.CBORTag,
    RawCBOR,
]
"""Types that the CBOR encoder understands natively."""

CBORBase = TypeVar("CBORBase", bound="CBORSerializable")
ArrayBase = TypeVar("ArrayBase", bound="ArrayCBORSerializable")
MapBase = TypeVar("MapBase", bound="MapCBORSerializable")
DictBase = TypeVar("DictBase", bound="DictCBORSerializable")


def limit_primitive_type(*allowed_types):
    """Reject primitives whose type is not one of ``allowed_types`` before ``from_primitive`` runs."""

    def decorator(func):
        def wrapper(cls, value, *args, **kwargs):
            if not isinstance(value, allowed_types):
                names = ", ".join(t.__name__ for t in allowed_types)
                raise DeserializeException(
                    f"{cls.__name__} cannot be restored from {type(value).__name__}, "
                    f"expected one of: {names}."
                )
            return func(cls, value, *args, **kwargs)

        return wrapper

    return decorator


def default_encoder(encoder, value: Any):
    """Fallback hook handed to ``cbor2.dumps`` for types it does not know about."""
    if isinstance(value, IndefiniteList):
        # cbor2 has no notion of indefinite arrays, so header and break byte are written by hand.
        encoder.write(b"\x9f")
        for item in value:
            encoder.encode(item)
        encoder.write(b"\xff")
    elif isinstance(value, RawCBOR):
        encoder.write(value.cbor)
    elif isinstance(value, CBORSerializable):
        encoder.encode(value.to_validated_primitive())
    else:
        raise SerializeException(
            f"Type of input value is not CBORSerializable, got {type(value)} instead."
        )


def _hashable(value):
    if isinstance(value, (list, IndefiniteList)):
        return tuple(_hashable(v) for v in value)
    return value


class CBORSerializable:
    """
    Base class for everything that is written to, or read from, CBOR.

    Subclasses implement either :meth:`to_shallow_primitive`, whose result may still contain
    other :class:`CBORSerializable` objects, or :meth:`to_primitive`, which must return pure
    CBOR primitives. :meth:`from_primitive` restores an object from the output of the former.
    """

    def to_shallow_primitive(self) -> Any:
        raise NotImplementedError(
            f"'to_shallow_primitive()' is not implemented by {self.__class__}."
        )

    def to_primitive(self) -> Primitive:
        """Convert the instance and all of its children to CBOR primitives."""

        def _dfs(value):
            if isinstance(value, CBORSerializable):
                return value.to_primitive()
            elif isinstance(value, dict):
                return {_hashable(_dfs(k)): _dfs(v) for k, v in value.items()}
            elif isinstance(value, IndefiniteList):
                return IndefiniteList([_dfs(v) for v in value])
            elif isinstance(value, list):
                return [_dfs(v) for v in value]
            elif isinstance(value, tuple):
                return tuple(_dfs(v) for v in value)
            elif isinstance(value, cbor2.CBORTag):
                return cbor2.CBORTag(value.tag, _dfs(value.value))
            return value

        return _dfs(self.to_shallow_primitive())

    def validate(self):
        """Validate the data stored in the instance. Passes by default.

        Raises:
            InvalidDataException: When the data is invalid.
        """

    def to_validated_primitive(self) -> Primitive:
        self.validate()
        return self.to_primitive()

    @classmethod
    def from_primitive(cls: Type[CBORBase], value: Any) -> CBORBase:
        raise NotImplementedError(
            f"'from_primitive()' is not implemented by {cls.__name__}."
        )

    def to_cbor(self) -> bytes:
        """Encode the object into CBOR bytes.

        Examples:
            >>> from pytxbuilder.plutus import ExecutionUnits
            >>> ExecutionUnits(1, 2).to_cbor().hex()
            '820102'
        """
        return cbor2.dumps(self, default=default_encoder)

    def to_cbor_hex(self) -> str:
        return self.to_cbor().hex()

    @classmethod
    def from_cbor(cls: Type[CBORBase], payload: Union[str, bytes]) -> CBORBase:
        """Restore an object from CBOR bytes or their hex representation."""
        if isinstance(payload, str):
            payload = bytes.fromhex(payload)
        return cls.from_primitive(cbor2.loads(payload))

    def __repr__(self):
        return pformat(vars(self), indent=2)


def _restore_typed(type_hint: Any, value: Any) -> Any:
    if value is None:
        return None
    if isclass(type_hint) and issubclass(type_hint, CBORSerializable):
        if isinstance(value, type_hint):
            return value
        return type_hint.from_primitive(value)
    origin = get_origin(type_hint)
    if origin is Union:
        for arg in get_args(type_hint):
            if arg is type(None):
                continue
            if isclass(arg) and issubclass(arg, CBORSerializable):
                try:
                    return arg.from_primitive(value)
                except (DeserializeException, TypeError, ValueError, AssertionError):
                    continue
            elif isclass(arg) and isinstance(value, arg):
                return value
        return value
    if origin in (list, List) and isinstance(value, (list, tuple)):
        (item_type,) = get_args(type_hint) or (Any,)
        return [_restore_typed(item_type, v) for v in value]
    return value


def _restore_field(f: Field, type_hint: Any, value: Any) -> Any:
    if "object_hook" in f.metadata:
        return f.metadata["object_hook"](value)
    return _restore_typed(type_hint, value)


class ArrayCBORSerializable(CBORSerializable):
    """
    Serializes a child dataclass into a CBOR array, one element per field in declaration order.

    Fields whose metadata carries ``"optional": True`` are left out of the array when their value
    is ``None``. Optional fields therefore have to be declared after all mandatory ones.

    Examples:
        >>> from dataclasses import dataclass, field
        >>> @dataclass
        ... class Pair(ArrayCBORSerializable):
        ...     a: int
        ...     b: int = field(default=None, metadata={"optional": True})
        >>> Pair(1).to_primitive()
        [1]
        >>> Pair(1, 2).to_cbor_hex()
        '820102'
    """

    def to_shallow_primitive(self) -> List[Any]:
        primitives = []
        for f in fields(self):
            val = getattr(self, f.name)
            if val is None and f.metadata.get("optional"):
                continue
            primitives.append(val)
        return primitives

    @classmethod
    @limit_primitive_type(list, tuple)
    def from_primitive(cls: Type[ArrayBase], values: Union[list, tuple]) -> ArrayBase:
        init_fields = [f for f in fields(cls) if f.init]
        type_hints = get_type_hints(cls)
        restored = [
            _restore_field(f, type_hints.get(f.name, Any), v)
            for f, v in zip(init_fields, values)
        ]
        return cls(*restored)

    def __repr__(self):
        return super().__repr__()


class MapCBORSerializable(CBORSerializable):
    """
    Serializes a child dataclass into a CBOR map.

    The map key of a field is its ``"key"`` metadata entry, or the field name when the entry is
    absent. Fields marked ``"optional"`` are omitted when ``None``.

    Examples:
        >>> from dataclasses import dataclass, field
        >>> @dataclass
        ... class Body(MapCBORSerializable):
        ...     fee: int = field(default=0, metadata={"key": 2})
        ...     ttl: int = field(default=None, metadata={"key": 3, "optional": True})
        >>> Body(fee=10).to_primitive()
        {2: 10}
    """

    def to_shallow_primitive(self) -> dict:
        primitives = {}
        for f in fields(self):
            key = f.metadata.get("key", f.name)
            if key in primitives:
                raise SerializeException(f"Key: '{key}' already exists in the map.")
            val = getattr(self, f.name)
            if val is None and f.metadata.get("optional"):
                continue
            primitives[key] = val
        return primitives

    @classmethod
    @limit_primitive_type(dict)
    def from_primitive(cls: Type[MapBase], values: dict) -> MapBase:
        keyed_fields = {f.metadata.get("key", f.name): f for f in fields(cls) if f.init}
        type_hints = get_type_hints(cls)
        kwargs = {}
        for key, v in values.items():
            if key not in keyed_fields:
                raise DeserializeException(f"Unexpected map key {key} in CBOR.")
            f = keyed_fields[key]
            kwargs[f.name] = _restore_field(f, type_hints.get(f.name, Any), v)
        return cls(**kwargs)

    def __repr__(self):
        return super().__repr__()


class DictCBORSerializable(CBORSerializable, UserDict):
    """A dictionary whose keys share one type and whose values share one type.

    Keys are written in canonical CBOR order (shorter encodings first, then bytewise).

    Examples:
        >>> class Balances(DictCBORSerializable):
        ...     KEY_TYPE = str
        ...     VALUE_TYPE = int
        >>> b = Balances({"bob": 2, "al": 1})
        >>> b.to_primitive()
        {'al': 1, 'bob': 2}
    """

    KEY_TYPE: Any = Any
    VALUE_TYPE: Any = Any

    def __setitem__(self, key: Any, value: Any):
        check_type(key, self.KEY_TYPE)
        check_type(value, self.VALUE_TYPE)
        self.data[key] = value

    def __repr__(self):
        return repr(self.data)

    def validate(self):
        for key, value in self.data.items():
            if isinstance(key, CBORSerializable):
                key.validate()
            if isinstance(value, CBORSerializable):
                value.validate()

    def to_shallow_primitive(self) -> dict:
        def _sort_key(key):
            if isinstance(key, CBORSerializable):
                encoded = key.to_cbor()
            else:
                encoded = cbor2.dumps(key, default=default_encoder)
            return len(encoded), encoded

        return dict(sorted(self.data.items(), key=lambda kv: _sort_key(kv[0])))

    @classmethod
    @limit_primitive_type(dict)
    def from_primitive(cls: Type[DictBase], value: dict) -> DictBase:
        restored = cls()
        for k, v in value.items():
            restored[_restore_typed(cls.KEY_TYPE, k)] = _restore_typed(
                cls.VALUE_TYPE, v
            )
        return restored


def list_hook(cls: Type[CBORBase]) -> Callable[[List[Primitive]], List[CBORBase]]:
    """Build an ``object_hook`` that restores every element of a list with ``cls``."""
    return lambda vals: [cls.from_primitive(v) for v in vals]


@dataclass(repr=False)
class CodedSerializable(ArrayCBORSerializable):
    """An array whose first element is a fixed type code, ``_CODE``.

    Examples:
        >>> from dataclasses import dataclass, field
        >>> @dataclass
        ... class Tagged(CodedSerializable):
        ...     _CODE: int = field(init=False, default=1)
        ...     value: str
        >>> Tagged("hello").to_primitive()
        [1, 'hello']
        >>> Tagged.from_primitive([1, "hello"]).value
        'hello'
    """

    _CODE: int = field(init=False)

    @classmethod
    @limit_primitive_type(list, tuple)
    def from_primitive(
        cls: Type[CodedSerializable], values: Union[list, tuple]
    ) -> CodedSerializable:
        if not values or values[0] != cls._CODE:
            raise DeserializeException(
                f"Invalid {cls.__name__} type {values[0] if values else None}"
            )
        return super().from_primitive(values[1:])
