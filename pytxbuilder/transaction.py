"""Definitions of transaction-related data types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Type, Union

from nacl.encoding import RawEncoder
from nacl.hash import blake2b

from pytxbuilder.address import Address
from pytxbuilder.cbor import cbor2
from pytxbuilder.certificate import Certificate
from pytxbuilder.exception import DeserializeException, InvalidDataException
from pytxbuilder.governance import ProposalProcedure, VotingProcedures
from pytxbuilder.hash import (
    TRANSACTION_HASH_SIZE,
    AuxiliaryDataHash,
    ConstrainedBytes,
    DatumHash,
    ScriptDataHash,
    ScriptHash,
    TransactionId,
    VerificationKeyHash,
)
from pytxbuilder.metadata import AuxiliaryData
from pytxbuilder.nativescript import NativeScript
from pytxbuilder.network import Network
from pytxbuilder.plutus import Datum, PlutusScript, RawPlutusData
from pytxbuilder.serialization import (
    ArrayCBORSerializable,
    CBORSerializable,
    DictCBORSerializable,
    MapCBORSerializable,
    Primitive,
    default_encoder,
    limit_primitive_type,
    list_hook,
)
from pytxbuilder.types import typechecked
from pytxbuilder.witness import TransactionWitnessSet

__all__ = [
    "TransactionInput",
    "AssetName",
    "Asset",
    "MultiAsset",
    "Value",
    "TransactionOutput",
    "UTxO",
    "Withdrawals",
    "TransactionBody",
    "Transaction",
]

_MAX_INT64 = (1 << 63) - 1
_MIN_INT64 = -(1 << 63)


@dataclass(repr=False)
class TransactionInput(ArrayCBORSerializable):
    transaction_id: TransactionId

    index: int

    def __hash__(self):
        return hash((self.transaction_id, self.index))


class AssetName(ConstrainedBytes):
    MAX_SIZE = 32

    def __repr__(self):
        return f"AssetName({self.payload})"


@typechecked
class Asset(DictCBORSerializable):
    """Quantities of assets under one policy, keyed by asset name.

    Arithmetic returns new objects with zero entries pruned. Comparison is a partial order in
    which a missing asset counts as zero.
    """

    KEY_TYPE = AssetName

    VALUE_TYPE = int

    def copy(self) -> Asset:
        return Asset(dict(self.data))

    def normalize(self) -> Asset:
        """Remove zero entries in place."""
        for k, v in list(self.items()):
            if v == 0:
                self.pop(k)
        return self

    def union(self, other: Asset) -> Asset:
        return self + other

    def __add__(self, other: Asset) -> Asset:
        new_asset = self.copy()
        for n in other:
            new_asset[n] = new_asset.get(n, 0) + other[n]
        return new_asset.normalize()

    def __iadd__(self, other: Asset) -> Asset:
        self.data = (self + other).data
        return self

    def __sub__(self, other: Asset) -> Asset:
        new_asset = self.copy()
        for n in other:
            new_asset[n] = new_asset.get(n, 0) - other[n]
        return new_asset.normalize()

    def _names(self, other: Asset):
        return set(self.keys()) | set(other.keys())

    def __eq__(self, other):
        if not isinstance(other, Asset):
            return False
        return all(self.get(n, 0) == other.get(n, 0) for n in self._names(other))

    def __le__(self, other: Asset) -> bool:
        return all(self.get(n, 0) <= other.get(n, 0) for n in self._names(other))

    def __lt__(self, other: Asset) -> bool:
        return self <= other and self != other

    def __ge__(self, other: Asset) -> bool:
        return all(self.get(n, 0) >= other.get(n, 0) for n in self._names(other))

    def __gt__(self, other: Asset) -> bool:
        return self >= other and self != other

    @classmethod
    @limit_primitive_type(dict)
    def from_primitive(cls: Type[Asset], value: dict) -> Asset:
        return super().from_primitive(value).normalize()

    def to_shallow_primitive(self) -> dict:
        return DictCBORSerializable.to_shallow_primitive(self.copy().normalize())


@typechecked
class MultiAsset(DictCBORSerializable):
    """Assets grouped by minting policy.

    Examples:
        >>> policy = ScriptHash(bytes(28))
        >>> a = MultiAsset({policy: Asset({AssetName(b"t"): 5})})
        >>> b = MultiAsset({policy: Asset({AssetName(b"t"): 5})})
        >>> a - b
        {}
        >>> MultiAsset() <= a
        True
    """

    KEY_TYPE = ScriptHash

    VALUE_TYPE = Asset

    def copy(self) -> MultiAsset:
        return MultiAsset({p: a.copy() for p, a in self.items()})

    def union(self, other: MultiAsset) -> MultiAsset:
        return self + other

    def normalize(self) -> MultiAsset:
        """Remove zero quantities and empty policies in place."""
        for k, v in list(self.items()):
            v.normalize()
            if len(v) == 0:
                self.pop(k)
        return self

    def __add__(self, other: MultiAsset) -> MultiAsset:
        new_multi_asset = self.copy()
        for p in other:
            new_multi_asset[p] = new_multi_asset.get(p, Asset()) + other[p]
        return new_multi_asset.normalize()

    def __iadd__(self, other: MultiAsset) -> MultiAsset:
        self.data = (self + other).data
        return self

    def __sub__(self, other: MultiAsset) -> MultiAsset:
        new_multi_asset = self.copy()
        for p in other:
            new_multi_asset[p] = new_multi_asset.get(p, Asset()) - other[p]
        return new_multi_asset.normalize()

    def _compare(self, other: MultiAsset, op: Callable[[Asset, Asset], bool]) -> bool:
        for p in set(self.keys()) | set(other.keys()):
            if not op(self.get(p, Asset()), other.get(p, Asset())):
                return False
        return True

    def __eq__(self, other):
        if not isinstance(other, MultiAsset):
            return False
        return self._compare(other, lambda a, b: a == b)

    def __le__(self, other: MultiAsset) -> bool:
        return self._compare(other, lambda a, b: a <= b)

    def __lt__(self, other: MultiAsset) -> bool:
        return self <= other and self != other

    def __ge__(self, other: MultiAsset) -> bool:
        return self._compare(other, lambda a, b: a >= b)

    def __gt__(self, other: MultiAsset) -> bool:
        return self >= other and self != other

    def filter(
        self, criteria: Callable[[ScriptHash, AssetName, int], bool]
    ) -> MultiAsset:
        """Filter items by criteria.

        Args:
            criteria: A function that takes in three input arguments (policy_id, asset_name, amount) and returns a
                bool. If returned value is True, then the asset will be kept, otherwise discarded.

        Returns:
            A new filtered MultiAsset object.
        """
        new_multi_asset = MultiAsset()
        for p in self:
            for n in self[p]:
                if criteria(p, n, self[p][n]):
                    if p not in new_multi_asset:
                        new_multi_asset[p] = Asset()
                    new_multi_asset[p][n] = self[p][n]
        return new_multi_asset

    def count(self, criteria: Callable[[ScriptHash, AssetName, int], bool]) -> int:
        """Count the distinct assets that satisfy ``criteria``."""
        return sum(
            1 for p in self for n in self[p] if criteria(p, n, self[p][n])
        )

    @classmethod
    @limit_primitive_type(dict)
    def from_primitive(cls: Type[MultiAsset], value: dict) -> MultiAsset:
        return super().from_primitive(value).normalize()

    def to_shallow_primitive(self) -> dict:
        return DictCBORSerializable.to_shallow_primitive(self.copy().normalize())


@typechecked
@dataclass(repr=False)
class Value(ArrayCBORSerializable):
    """An amount of lovelace together with a (possibly empty) bundle of multi-assets.

    A plain ``int`` is accepted wherever another value is expected and means lovelace only.
    """

    coin: int = 0
    """Amount of lovelace"""

    multi_asset: MultiAsset = field(default_factory=MultiAsset)

    @staticmethod
    def _coerce(other: Union[Value, int]) -> Value:
        return Value(other) if isinstance(other, int) else other

    def copy(self) -> Value:
        return Value(self.coin, self.multi_asset.copy())

    def union(self, other: Union[Value, int]) -> Value:
        return self + other

    def __add__(self, other: Union[Value, int]) -> Value:
        other = self._coerce(other)
        return Value(self.coin + other.coin, self.multi_asset + other.multi_asset)

    def __iadd__(self, other: Union[Value, int]) -> Value:
        # Rebinds the left operand to a fresh value, objects shared elsewhere stay untouched.
        return self + other

    def __sub__(self, other: Union[Value, int]) -> Value:
        other = self._coerce(other)
        return Value(self.coin - other.coin, self.multi_asset - other.multi_asset)

    def __eq__(self, other):
        if not isinstance(other, (Value, int)):
            return False
        other = self._coerce(other)
        return self.coin == other.coin and self.multi_asset == other.multi_asset

    def __le__(self, other: Union[Value, int]) -> bool:
        other = self._coerce(other)
        return self.coin <= other.coin and self.multi_asset <= other.multi_asset

    def __lt__(self, other: Union[Value, int]) -> bool:
        return self <= other and self != other

    def __ge__(self, other: Union[Value, int]) -> bool:
        other = self._coerce(other)
        return self.coin >= other.coin and self.multi_asset >= other.multi_asset

    def __gt__(self, other: Union[Value, int]) -> bool:
        return self >= other and self != other

    def to_shallow_primitive(self):
        if self.multi_asset:
            return [self.coin, self.multi_asset]
        return self.coin

    @classmethod
    def from_primitive(cls: Type[Value], value: Any) -> Value:
        if isinstance(value, int):
            return cls(value)
        if isinstance(value, (list, tuple)):
            return cls(value[0], MultiAsset.from_primitive(value[1]))
        raise DeserializeException(f"Cannot restore Value from {type(value)}.")


@dataclass(repr=False)
class _TypedScript(ArrayCBORSerializable):
    _TYPE: int = field(init=False, default=0)

    script: Union[NativeScript, PlutusScript]

    def __post_init__(self):
        if isinstance(self.script, PlutusScript):
            self._TYPE = self.script.version
        else:
            self._TYPE = 0

    @classmethod
    @limit_primitive_type(list, tuple)
    def from_primitive(
        cls: Type[_TypedScript], values: Union[list, tuple]
    ) -> _TypedScript:
        if values[0] == 0:
            return cls(NativeScript.from_primitive(values[1]))
        return cls(PlutusScript.from_version(values[0], values[1]))


@dataclass(repr=False)
class _DatumOption(ArrayCBORSerializable):
    """Datum of a post-Alonzo output: ``[0, hash]`` or ``[1, #6.24(datum cbor)]``."""

    _TYPE: int = field(init=False, default=0)

    datum: Union[DatumHash, Any]

    def __post_init__(self):
        self._TYPE = 0 if isinstance(self.datum, DatumHash) else 1

    def to_shallow_primitive(self) -> Primitive:
        if self._TYPE == 1:
            return [
                self._TYPE,
                cbor2.CBORTag(24, cbor2.dumps(self.datum, default=default_encoder)),
            ]
        return [self._TYPE, self.datum]

    @classmethod
    @limit_primitive_type(list, tuple)
    def from_primitive(
        cls: Type[_DatumOption], values: Union[list, tuple]
    ) -> _DatumOption:
        if values[0] == 0:
            return cls(DatumHash(values[1]))
        datum = cbor2.loads(values[1].value)
        if isinstance(datum, cbor2.CBORTag):
            return cls(RawPlutusData.from_primitive(datum))
        return cls(datum)


@dataclass(repr=False)
class _ScriptRef(CBORSerializable):
    script: _TypedScript

    def to_primitive(self) -> Primitive:
        return cbor2.CBORTag(24, cbor2.dumps(self.script, default=default_encoder))

    @classmethod
    @limit_primitive_type(cbor2.CBORTag)
    def from_primitive(cls: Type[_ScriptRef], value: Any) -> _ScriptRef:
        return cls(_TypedScript.from_primitive(cbor2.loads(value.value)))


@dataclass(repr=False)
class _TransactionOutputPostAlonzo(MapCBORSerializable):
    address: Address = field(metadata={"key": 0})

    amount: Union[int, Value] = field(metadata={"key": 1})

    datum: Optional[_DatumOption] = field(
        default=None, metadata={"key": 2, "optional": True}
    )

    script_ref: Optional[_ScriptRef] = field(
        default=None, metadata={"key": 3, "optional": True}
    )


@dataclass(repr=False)
class _TransactionOutputLegacy(ArrayCBORSerializable):
    address: Address

    amount: Union[int, Value]

    datum_hash: Optional[DatumHash] = field(default=None, metadata={"optional": True})


@dataclass(repr=False)
class TransactionOutput(CBORSerializable):
    """An output locking ``amount`` at ``address``.

    The legacy array layout is used unless the output carries an inline datum, a reference
    script, or ``post_alonzo`` is set.
    """

    address: Address

    amount: Value

    datum_hash: Optional[DatumHash] = None

    datum: Optional[Datum] = None

    script: Optional[Union[NativeScript, PlutusScript]] = None

    post_alonzo: bool = False

    def __post_init__(self):
        if isinstance(self.address, str):
            self.address = Address.from_primitive(self.address)
        if isinstance(self.amount, int):
            self.amount = Value(self.amount)

    def validate(self):
        if self.amount.coin < 0 or self.amount.multi_asset.count(lambda p, n, v: v < 0):
            raise InvalidDataException(
                f"Transaction output cannot have negative amount of ADA or "
                f"native asset: \n {self.amount}"
            )

    @property
    def lovelace(self) -> int:
        return self.amount.coin

    def copy(self, amount: Optional[Union[Value, int]] = None) -> TransactionOutput:
        """A copy of this output, optionally holding a different ``amount``."""
        return TransactionOutput(
            self.address,
            self.amount.copy() if amount is None else Value._coerce(amount).copy(),
            datum_hash=self.datum_hash,
            datum=self.datum,
            script=self.script,
            post_alonzo=self.post_alonzo,
        )

    def to_primitive(self) -> Primitive:
        if self.datum is not None or self.script is not None or self.post_alonzo:
            datum_value = self.datum_hash if self.datum_hash is not None else self.datum
            return _TransactionOutputPostAlonzo(
                self.address,
                self.amount,
                _DatumOption(datum_value) if datum_value is not None else None,
                _ScriptRef(_TypedScript(self.script))
                if self.script is not None
                else None,
            ).to_primitive()
        return _TransactionOutputLegacy(
            self.address, self.amount, self.datum_hash
        ).to_primitive()

    @classmethod
    def from_primitive(
        cls: Type[TransactionOutput], value: Primitive
    ) -> TransactionOutput:
        if isinstance(value, (list, tuple)):
            legacy = _TransactionOutputLegacy.from_primitive(value)
            return cls(legacy.address, legacy.amount, datum_hash=legacy.datum_hash)
        output = _TransactionOutputPostAlonzo.from_primitive(value)
        datum = output.datum.datum if output.datum else None
        script = output.script_ref.script.script if output.script_ref else None
        if isinstance(datum, DatumHash):
            return cls(
                output.address,
                output.amount,
                datum_hash=datum,
                script=script,
                post_alonzo=True,
            )
        return cls(
            output.address, output.amount, datum=datum, script=script, post_alonzo=True
        )


@dataclass(repr=False)
class UTxO(ArrayCBORSerializable):
    input: TransactionInput

    output: TransactionOutput

    def __hash__(self):
        return hash((self.input, self.output.to_cbor()))


class Withdrawals(DictCBORSerializable):
    """Reward address bytes mapped to the amount withdrawn from them."""

    KEY_TYPE = bytes

    VALUE_TYPE = int


@dataclass(repr=False)
class TransactionBody(MapCBORSerializable):
    inputs: List[TransactionInput] = field(
        default_factory=list,
        metadata={"key": 0, "object_hook": list_hook(TransactionInput)},
    )

    outputs: List[TransactionOutput] = field(
        default_factory=list,
        metadata={"key": 1, "object_hook": list_hook(TransactionOutput)},
    )

    fee: int = field(default=0, metadata={"key": 2})

    ttl: Optional[int] = field(default=None, metadata={"key": 3, "optional": True})

    certificates: Optional[List[Certificate]] = field(
        default=None, metadata={"key": 4, "optional": True}
    )

    withdraws: Optional[Withdrawals] = field(
        default=None, metadata={"key": 5, "optional": True}
    )

    auxiliary_data_hash: Optional[AuxiliaryDataHash] = field(
        default=None, metadata={"key": 7, "optional": True}
    )

    validity_start: Optional[int] = field(
        default=None, metadata={"key": 8, "optional": True}
    )

    mint: Optional[MultiAsset] = field(
        default=None, metadata={"key": 9, "optional": True}
    )

    script_data_hash: Optional[ScriptDataHash] = field(
        default=None, metadata={"key": 11, "optional": True}
    )

    collateral: Optional[List[TransactionInput]] = field(
        default=None,
        metadata={"key": 13, "optional": True, "object_hook": list_hook(TransactionInput)},
    )

    required_signers: Optional[List[VerificationKeyHash]] = field(
        default=None,
        metadata={
            "key": 14,
            "optional": True,
            "object_hook": list_hook(VerificationKeyHash),
        },
    )

    network_id: Optional[Network] = field(
        default=None, metadata={"key": 15, "optional": True}
    )

    collateral_return: Optional[TransactionOutput] = field(
        default=None, metadata={"key": 16, "optional": True}
    )

    total_collateral: Optional[int] = field(
        default=None, metadata={"key": 17, "optional": True}
    )

    reference_inputs: Optional[List[TransactionInput]] = field(
        default=None,
        metadata={"key": 18, "optional": True, "object_hook": list_hook(TransactionInput)},
    )

    voting_procedures: Optional[VotingProcedures] = field(
        default=None, metadata={"key": 19, "optional": True}
    )

    proposal_procedures: Optional[List[ProposalProcedure]] = field(
        default=None,
        metadata={"key": 20, "optional": True, "object_hook": list_hook(ProposalProcedure)},
    )

    current_treasury_value: Optional[int] = field(
        default=None, metadata={"key": 21, "optional": True}
    )

    donation: Optional[int] = field(
        default=None, metadata={"key": 22, "optional": True}
    )

    def validate(self):
        if self.mint and self.mint.count(lambda p, n, v: v < _MIN_INT64 or v > _MAX_INT64):
            raise InvalidDataException(
                f"Mint amount must be between {_MIN_INT64} and {_MAX_INT64}. \n Mint amount: {self.mint}"
            )

    def hash(self) -> bytes:
        return blake2b(self.to_cbor(), TRANSACTION_HASH_SIZE, encoder=RawEncoder)

    @property
    def id(self) -> TransactionId:
        return TransactionId(self.hash())


@dataclass(repr=False)
class Transaction(ArrayCBORSerializable):
    transaction_body: TransactionBody

    transaction_witness_set: TransactionWitnessSet

    valid: bool = True

    auxiliary_data: Optional[AuxiliaryData] = None

    @property
    def id(self) -> TransactionId:
        return self.transaction_body.id
