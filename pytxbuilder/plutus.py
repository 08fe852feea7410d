"""Plutus scripts, datums, redeemers and the structures that bind them to a transaction."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Type, Union

from nacl.encoding import RawEncoder
from nacl.hash import blake2b

from pytxbuilder.cbor import cbor2
from pytxbuilder.exception import DeserializeException
from pytxbuilder.hash import DATUM_HASH_SIZE, SCRIPT_HASH_SIZE, DatumHash, ScriptHash
from pytxbuilder.nativescript import NativeScript
from pytxbuilder.serialization import (
    ArrayCBORSerializable,
    CBORSerializable,
    DictCBORSerializable,
    IndefiniteList,
    Primitive,
    RawCBOR,
    default_encoder,
    limit_primitive_type,
)

__all__ = [
    "CostModels",
    "RawPlutusData",
    "Unit",
    "Datum",
    "datum_hash",
    "RedeemerTag",
    "ExecutionUnits",
    "Redeemer",
    "RedeemerKey",
    "RedeemerValue",
    "RedeemerMap",
    "Redeemers",
    "PlutusScript",
    "PlutusV1Script",
    "PlutusV2Script",
    "PlutusV3Script",
    "ScriptType",
    "script_hash",
]


class CostModels(DictCBORSerializable):
    """Cost models keyed by Plutus language id (0 for V1, 1 for V2, 2 for V3).

    Each value maps parameter names to costs. The encoding follows the language view format
    used by the script data hash.
    """

    KEY_TYPE = int
    VALUE_TYPE = dict

    def to_shallow_primitive(self) -> dict:
        result: Dict[Union[int, bytes], Union[List[int], bytes]] = {}
        for language in sorted(self.keys()):
            cost_model = self[language]
            if language == 0:
                # PlutusV1 language views are double encoded by the ledger: the key is the CBOR of
                # the language id, the value the CBOR of an indefinite list of costs sorted by name.
                values = IndefiniteList([cost_model[k] for k in sorted(cost_model)])
                result[cbor2.dumps(language)] = cbor2.dumps(
                    values, default=default_encoder
                )
            else:
                result[language] = list(cost_model.values())
        return result

    @classmethod
    def from_primitive(cls: Type[CostModels], value: Any) -> CostModels:
        raise DeserializeException(
            "Cost models cannot be restored, parameter names are lost during serialization."
        )


@dataclass
class RawPlutusData(CBORSerializable):
    """Plutus data kept as raw CBOR primitives (constructor tags, lists, maps, ints, bytes)."""

    data: Any

    def to_primitive(self) -> Primitive:
        def _dfs(obj):
            if isinstance(obj, list) and obj:
                return IndefiniteList([_dfs(item) for item in obj])
            elif isinstance(obj, dict):
                return {_dfs(k): _dfs(v) for k, v in obj.items()}
            elif isinstance(obj, cbor2.CBORTag) and isinstance(obj.value, list) and obj.value:
                return cbor2.CBORTag(obj.tag, IndefiniteList([_dfs(i) for i in obj.value]))
            return obj

        return _dfs(self.data)

    @classmethod
    def from_primitive(cls: Type[RawPlutusData], value: Any) -> RawPlutusData:
        return cls(value)


class Unit(RawPlutusData):
    """The unit value, constructor 0 without fields."""

    def __init__(self):
        super().__init__(cbor2.CBORTag(121, []))


Datum = Union[RawPlutusData, dict, int, bytes, IndefiniteList, RawCBOR]
"""Any value that can be attached to an output or a witness set as a datum."""


def datum_hash(datum: Datum) -> DatumHash:
    return DatumHash(
        blake2b(
            cbor2.dumps(datum, default=default_encoder),
            DATUM_HASH_SIZE,
            encoder=RawEncoder,
        )
    )


class RedeemerTag(CBORSerializable, Enum):
    """The kind of action a redeemer authorizes."""

    SPEND = 0
    MINT = 1
    CERTIFICATE = 2
    WITHDRAWAL = 3

    def to_primitive(self) -> int:
        return self.value

    @classmethod
    @limit_primitive_type(int)
    def from_primitive(cls: Type[RedeemerTag], value: int) -> RedeemerTag:
        return cls(value)

    def __repr__(self):
        return f"{self.__class__.__name__}.{self.name}"


@dataclass(repr=False)
class ExecutionUnits(ArrayCBORSerializable):
    mem: int

    steps: int

    def __add__(self, other: ExecutionUnits) -> ExecutionUnits:
        if not isinstance(other, ExecutionUnits):
            raise TypeError(
                f"Expect type: {ExecutionUnits}, got {type(other)} instead."
            )
        return ExecutionUnits(self.mem + other.mem, self.steps + other.steps)

    def is_empty(self) -> bool:
        return self.mem == 0 and self.steps == 0

    def __bool__(self):
        return not self.is_empty()


@dataclass(repr=False)
class Redeemer(ArrayCBORSerializable):
    """Data and execution budget that unlock a script action.

    ``tag`` and ``index`` are filled in by the transaction builder, the caller only supplies
    the data and, optionally, the execution units.
    """

    tag: Optional[RedeemerTag] = field(default=None, init=False)

    index: int = field(default=0, init=False)

    data: Any = None

    ex_units: Optional[ExecutionUnits] = None

    @classmethod
    @limit_primitive_type(list, tuple)
    def from_primitive(cls: Type[Redeemer], values: Union[list, tuple]) -> Redeemer:
        redeemer = cls(values[2], ExecutionUnits.from_primitive(values[3]))
        redeemer.tag = RedeemerTag.from_primitive(values[0])
        redeemer.index = values[1]
        return redeemer

    def copy(self) -> Redeemer:
        redeemer = Redeemer(
            self.data,
            ExecutionUnits(self.ex_units.mem, self.ex_units.steps)
            if self.ex_units is not None
            else None,
        )
        redeemer.tag = self.tag
        redeemer.index = self.index
        return redeemer


@dataclass(repr=False)
class RedeemerKey(ArrayCBORSerializable):
    tag: RedeemerTag

    index: int = 0

    def __hash__(self):
        return hash((self.tag, self.index))


@dataclass(repr=False)
class RedeemerValue(ArrayCBORSerializable):
    data: Any

    ex_units: ExecutionUnits


class RedeemerMap(DictCBORSerializable):
    KEY_TYPE = RedeemerKey

    VALUE_TYPE = RedeemerValue


Redeemers = Union[List[Redeemer], RedeemerMap]


class PlutusScript(CBORSerializable, bytes):
    """Compiled Plutus script bytes. Subclasses fix the language version."""

    VERSION = 0

    @property
    def version(self) -> int:
        return self.VERSION

    def get_script_hash_prefix(self) -> bytes:
        return bytes([self.VERSION])

    def to_shallow_primitive(self) -> bytes:
        return bytes(self)

    @classmethod
    def from_primitive(cls: Type[PlutusScript], value: Any) -> PlutusScript:
        if not isinstance(value, (bytes, bytearray)):
            raise DeserializeException(f"Expect bytes, got {type(value)} instead.")
        return cls(value)

    @classmethod
    def from_version(cls, version: int, script_data: bytes) -> PlutusScript:
        for script_class in (PlutusV1Script, PlutusV2Script, PlutusV3Script):
            if script_class.VERSION == version:
                return script_class(script_data)
        raise ValueError(f"No Plutus script class found for version {version}")

    def __repr__(self):
        return f"{self.__class__.__name__}({self.hex()})"


class PlutusV1Script(PlutusScript):
    VERSION = 1


class PlutusV2Script(PlutusScript):
    VERSION = 2


class PlutusV3Script(PlutusScript):
    VERSION = 3


ScriptType = Union[NativeScript, PlutusScript]
"""Any script that can lock outputs, mint tokens or guard staking actions."""


def script_hash(script: ScriptType) -> ScriptHash:
    """Hash of a script: blake2b-224 over a language prefix followed by the script bytes.

    Args:
        script (ScriptType): A native or Plutus script.

    Returns:
        ScriptHash: The script hash.
    """
    if isinstance(script, NativeScript):
        return script.hash()
    elif isinstance(script, PlutusScript):
        return ScriptHash(
            blake2b(
                script.get_script_hash_prefix() + bytes(script),
                SCRIPT_HASH_SIZE,
                encoder=RawEncoder,
            )
        )
    raise TypeError(f"Unexpected script type: {type(script)}")
