from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, List, Type, Union

from nacl.encoding import RawEncoder
from nacl.hash import blake2b

from pytxbuilder.cbor import cbor2
from pytxbuilder.exception import DeserializeException, InvalidArgumentException
from pytxbuilder.hash import AUXILIARY_DATA_HASH_SIZE, AuxiliaryDataHash
from pytxbuilder.nativescript import NativeScript
from pytxbuilder.serialization import (
    CBORSerializable,
    DictCBORSerializable,
    MapCBORSerializable,
    Primitive,
    limit_primitive_type,
    list_hook,
)

__all__ = ["Metadata", "AlonzoMetadata", "AuxiliaryData"]


class Metadata(DictCBORSerializable):
    """Transaction metadata keyed by integer labels (CIP-0010)."""

    KEY_TYPE = int
    VALUE_TYPE = Any

    MAX_ITEM_SIZE = 64
    INTERNAL_TYPES = (dict, list, int, bytes, str)

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._validate()

    def _validate(self):
        def _validate_type_and_size(data):
            if not isinstance(data, self.INTERNAL_TYPES):
                raise InvalidArgumentException(
                    f"A value in Metadata has to be one of {self.INTERNAL_TYPES}, "
                    f"got {type(data)} instead."
                )
            if isinstance(data, (bytes, str)):
                size = len(data.encode("utf-8") if isinstance(data, str) else data)
                if size > self.MAX_ITEM_SIZE:
                    raise InvalidArgumentException(
                        f"The size of {data!r} exceeds {self.MAX_ITEM_SIZE} bytes."
                    )
            elif isinstance(data, list):
                for item in data:
                    _validate_type_and_size(item)
            elif isinstance(data, dict):
                for value in data.values():
                    _validate_type_and_size(value)

        for k in self:
            if not isinstance(k, int):
                raise InvalidArgumentException(
                    f"Keys in the first layer of Metadata has to be int, got {type(k)} instead."
                )
            _validate_type_and_size(self[k])


@dataclass(repr=False)
class AlonzoMetadata(MapCBORSerializable):
    """Metadata together with auxiliary scripts, wrapped in CBOR tag 259."""

    TAG: ClassVar[int] = 259

    metadata: Metadata = field(default=None, metadata={"optional": True, "key": 0})

    native_scripts: List[NativeScript] = field(
        default=None,
        metadata={"optional": True, "key": 1, "object_hook": list_hook(NativeScript)},
    )

    plutus_scripts: List[bytes] = field(
        default=None, metadata={"optional": True, "key": 2}
    )

    def to_primitive(self) -> Primitive:
        return cbor2.CBORTag(self.TAG, super().to_primitive())

    @classmethod
    @limit_primitive_type(cbor2.CBORTag)
    def from_primitive(cls: Type[AlonzoMetadata], value: Any) -> AlonzoMetadata:
        if value.tag != cls.TAG:
            raise DeserializeException(
                f"Expect CBOR tag: {cls.TAG}, got {value.tag} instead."
            )
        return super().from_primitive(value.value)


@dataclass(repr=False)
class AuxiliaryData(CBORSerializable):
    data: Union[Metadata, AlonzoMetadata]

    def to_primitive(self) -> Primitive:
        return self.data.to_primitive()

    @classmethod
    def from_primitive(cls: Type[AuxiliaryData], value: Primitive) -> AuxiliaryData:
        for t in (AlonzoMetadata, Metadata):
            # The two layouts (tagged map, plain map) cannot be confused with each other.
            try:
                return cls(t.from_primitive(value))
            except (DeserializeException, InvalidArgumentException):
                continue
        raise DeserializeException(f"Couldn't parse auxiliary data: {value}")

    def hash(self) -> AuxiliaryDataHash:
        return AuxiliaryDataHash(
            blake2b(self.to_cbor(), AUXILIARY_DATA_HASH_SIZE, encoder=RawEncoder)
        )
