"""Native (multi-signature and timelock) scripts."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar, List, Set, Type, Union

from nacl.encoding import RawEncoder
from nacl.hash import blake2b

from pytxbuilder.exception import DeserializeException
from pytxbuilder.hash import SCRIPT_HASH_SIZE, ScriptHash, VerificationKeyHash
from pytxbuilder.serialization import ArrayCBORSerializable, limit_primitive_type
from pytxbuilder.types import JsonDict

__all__ = [
    "NativeScript",
    "ScriptPubkey",
    "ScriptAll",
    "ScriptAny",
    "ScriptNofK",
    "InvalidBefore",
    "InvalidHereAfter",
]


@dataclass
class NativeScript(ArrayCBORSerializable):
    _TYPE: ClassVar[int]

    def to_shallow_primitive(self) -> list:
        return [self._TYPE] + super().to_shallow_primitive()

    @classmethod
    @limit_primitive_type(list, tuple)
    def from_primitive(cls: Type[NativeScript], value: Union[list, tuple]) -> NativeScript:
        script_type = value[0]
        for script_cls in _SCRIPT_CLASSES:
            if script_cls._TYPE == script_type:
                if script_cls in (ScriptAll, ScriptAny):
                    return script_cls([NativeScript.from_primitive(s) for s in value[1]])
                if script_cls is ScriptNofK:
                    return ScriptNofK(
                        value[1], [NativeScript.from_primitive(s) for s in value[2]]
                    )
                if script_cls is ScriptPubkey:
                    return ScriptPubkey(VerificationKeyHash.from_primitive(value[1]))
                return script_cls(value[1])
        raise DeserializeException(f"Unknown script type indicator: {script_type}")

    @classmethod
    def from_dict(cls: Type[NativeScript], script_json: JsonDict) -> NativeScript:
        """Parse a native script in the JSON layout used by the node tooling and chain indexers.

        Examples:
            >>> NativeScript.from_dict({"type": "after", "slot": 10})
            InvalidBefore(before=10)
        """
        return cls.from_primitive(_json_to_primitive(script_json))

    def hash(self) -> ScriptHash:
        """Script hash, a blake2b-224 digest of the script CBOR prefixed with the native tag ``0x00``."""
        return ScriptHash(
            blake2b(bytes(1) + self.to_cbor(), SCRIPT_HASH_SIZE, encoder=RawEncoder)
        )

    def key_hashes(self) -> Set[VerificationKeyHash]:
        """All key hashes that may have to sign for this script."""
        return set()


@dataclass
class ScriptPubkey(NativeScript):
    _TYPE: ClassVar[int] = 0

    key_hash: VerificationKeyHash

    def key_hashes(self) -> Set[VerificationKeyHash]:
        return {self.key_hash}


@dataclass
class ScriptAll(NativeScript):
    _TYPE: ClassVar[int] = 1

    native_scripts: List[NativeScript] = field(default_factory=list)

    def key_hashes(self) -> Set[VerificationKeyHash]:
        results: Set[VerificationKeyHash] = set()
        for s in self.native_scripts:
            results.update(s.key_hashes())
        return results


@dataclass
class ScriptAny(ScriptAll):
    _TYPE: ClassVar[int] = 2


@dataclass
class ScriptNofK(NativeScript):
    _TYPE: ClassVar[int] = 3

    n: int

    native_scripts: List[NativeScript] = field(default_factory=list)

    def key_hashes(self) -> Set[VerificationKeyHash]:
        results: Set[VerificationKeyHash] = set()
        for s in self.native_scripts:
            results.update(s.key_hashes())
        return results


@dataclass
class InvalidBefore(NativeScript):
    _TYPE: ClassVar[int] = 4

    before: int


@dataclass
class InvalidHereAfter(NativeScript):
    _TYPE: ClassVar[int] = 5

    after: int


_SCRIPT_CLASSES = (
    ScriptPubkey,
    ScriptAll,
    ScriptAny,
    ScriptNofK,
    InvalidBefore,
    InvalidHereAfter,
)

_JSON_TAGS = {
    "sig": 0,
    "all": 1,
    "any": 2,
    "atLeast": 3,
    "after": 4,
    "before": 5,
}


def _json_to_primitive(script_json: JsonDict) -> list:
    primitive: list = [_JSON_TAGS[script_json["type"]]]
    for key, value in script_json.items():
        if key == "type":
            continue
        elif key == "scripts":
            primitive.append([_json_to_primitive(s) for s in value])
        else:
            primitive.append(value)
    return primitive
