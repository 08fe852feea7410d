"""Transaction witness."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional, Type, Union

from pprintpp import pformat

from pytxbuilder.key import VerificationKey
from pytxbuilder.nativescript import NativeScript
from pytxbuilder.plutus import (
    PlutusV1Script,
    PlutusV2Script,
    PlutusV3Script,
    Redeemer,
    RedeemerMap,
    Redeemers,
)
from pytxbuilder.serialization import (
    ArrayCBORSerializable,
    MapCBORSerializable,
    limit_primitive_type,
    list_hook,
)

__all__ = ["VerificationKeyWitness", "TransactionWitnessSet"]


@dataclass(repr=False)
class VerificationKeyWitness(ArrayCBORSerializable):
    vkey: VerificationKey

    signature: bytes

    @classmethod
    @limit_primitive_type(list, tuple)
    def from_primitive(
        cls: Type[VerificationKeyWitness], values: Union[list, tuple]
    ) -> VerificationKeyWitness:
        return cls(VerificationKey.from_primitive(values[0]), values[1])

    def __eq__(self, other):
        return (
            isinstance(other, VerificationKeyWitness)
            and self.vkey.payload == other.vkey.payload
            and self.signature == other.signature
        )

    def __hash__(self):
        return hash((self.vkey.payload, self.signature))

    def __repr__(self):
        return pformat(
            {"vkey": self.vkey.payload.hex(), "signature": self.signature.hex()},
            indent=2,
        )


def _restore_redeemers(value: Any) -> Redeemers:
    if isinstance(value, dict):
        return RedeemerMap.from_primitive(value)
    return [Redeemer.from_primitive(v) for v in value]


@dataclass(repr=False)
class TransactionWitnessSet(MapCBORSerializable):
    vkey_witnesses: Optional[List[VerificationKeyWitness]] = field(
        default=None,
        metadata={
            "key": 0,
            "optional": True,
            "object_hook": list_hook(VerificationKeyWitness),
        },
    )

    native_scripts: Optional[List[NativeScript]] = field(
        default=None,
        metadata={"key": 1, "optional": True, "object_hook": list_hook(NativeScript)},
    )

    plutus_v1_script: Optional[List[PlutusV1Script]] = field(
        default=None,
        metadata={"key": 3, "optional": True, "object_hook": list_hook(PlutusV1Script)},
    )

    plutus_data: Optional[List[Any]] = field(
        default=None, metadata={"key": 4, "optional": True}
    )

    redeemer: Optional[Redeemers] = field(
        default=None,
        metadata={"key": 5, "optional": True, "object_hook": _restore_redeemers},
    )

    plutus_v2_script: Optional[List[PlutusV2Script]] = field(
        default=None,
        metadata={"key": 6, "optional": True, "object_hook": list_hook(PlutusV2Script)},
    )

    plutus_v3_script: Optional[List[PlutusV3Script]] = field(
        default=None,
        metadata={"key": 7, "optional": True, "object_hook": list_hook(PlutusV3Script)},
    )

    def is_empty(self) -> bool:
        return not any(
            (
                self.vkey_witnesses,
                self.native_scripts,
                self.plutus_v1_script,
                self.plutus_data,
                self.redeemer,
                self.plutus_v2_script,
                self.plutus_v3_script,
            )
        )
