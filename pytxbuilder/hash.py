"""Fixed-size digests used across the ledger types."""

from typing import Type, TypeVar, Union

from pytxbuilder.serialization import CBORSerializable, limit_primitive_type

__all__ = [
    "VERIFICATION_KEY_HASH_SIZE",
    "SCRIPT_HASH_SIZE",
    "TRANSACTION_HASH_SIZE",
    "DATUM_HASH_SIZE",
    "AUXILIARY_DATA_HASH_SIZE",
    "POOL_KEY_HASH_SIZE",
    "SCRIPT_DATA_HASH_SIZE",
    "VRF_KEY_HASH_SIZE",
    "ANCHOR_DATA_HASH_SIZE",
    "ConstrainedBytes",
    "VerificationKeyHash",
    "ScriptHash",
    "ScriptDataHash",
    "TransactionId",
    "DatumHash",
    "AuxiliaryDataHash",
    "PoolKeyHash",
    "VrfKeyHash",
    "AnchorDataHash",
]

VERIFICATION_KEY_HASH_SIZE = 28
SCRIPT_HASH_SIZE = 28
SCRIPT_DATA_HASH_SIZE = 32
TRANSACTION_HASH_SIZE = 32
DATUM_HASH_SIZE = 32
AUXILIARY_DATA_HASH_SIZE = 32
POOL_KEY_HASH_SIZE = 28
VRF_KEY_HASH_SIZE = 32
ANCHOR_DATA_HASH_SIZE = 32

T = TypeVar("T", bound="ConstrainedBytes")


class ConstrainedBytes(CBORSerializable):
    """Bytes whose length must fall within ``[MIN_SIZE, MAX_SIZE]``."""

    __slots__ = "_payload"

    MAX_SIZE = 32
    MIN_SIZE = 0

    def __init__(self, payload: bytes):
        if not self.MIN_SIZE <= len(payload) <= self.MAX_SIZE:
            raise ValueError(
                f"Invalid byte size: {len(payload)} for class {self.__class__.__name__}, "
                f"expected size range: [{self.MIN_SIZE}, {self.MAX_SIZE}]"
            )
        self._payload = bytes(payload)

    @property
    def payload(self) -> bytes:
        return self._payload

    def __bytes__(self):
        return self._payload

    def __hash__(self):
        return hash(self._payload)

    def __eq__(self, other):
        return isinstance(other, ConstrainedBytes) and self._payload == other._payload

    def __lt__(self, other: "ConstrainedBytes") -> bool:
        return self._payload < other._payload

    def to_primitive(self) -> bytes:
        return self._payload

    @classmethod
    @limit_primitive_type(bytes, bytearray, str)
    def from_primitive(cls: Type[T], value: Union[bytes, bytearray, str]) -> T:
        if isinstance(value, str):
            value = bytes.fromhex(value)
        return cls(bytes(value))

    def __repr__(self):
        return f"{self.__class__.__name__}(hex='{self._payload.hex()}')"

    def __str__(self):
        return self._payload.hex()


class VerificationKeyHash(ConstrainedBytes):
    """Hash of a verification key."""

    MAX_SIZE = MIN_SIZE = VERIFICATION_KEY_HASH_SIZE


class ScriptHash(ConstrainedBytes):
    """Hash of a native or Plutus script, also used as minting policy id."""

    MAX_SIZE = MIN_SIZE = SCRIPT_HASH_SIZE


class ScriptDataHash(ConstrainedBytes):
    """Digest binding redeemers, datums and cost models of a transaction."""

    MAX_SIZE = MIN_SIZE = SCRIPT_DATA_HASH_SIZE


class TransactionId(ConstrainedBytes):
    MAX_SIZE = MIN_SIZE = TRANSACTION_HASH_SIZE


class DatumHash(ConstrainedBytes):
    MAX_SIZE = MIN_SIZE = DATUM_HASH_SIZE


class AuxiliaryDataHash(ConstrainedBytes):
    MAX_SIZE = MIN_SIZE = AUXILIARY_DATA_HASH_SIZE


class PoolKeyHash(ConstrainedBytes):
    """Hash of a stake pool operator key."""

    MAX_SIZE = MIN_SIZE = POOL_KEY_HASH_SIZE


class VrfKeyHash(ConstrainedBytes):
    MAX_SIZE = MIN_SIZE = VRF_KEY_HASH_SIZE


class AnchorDataHash(ConstrainedBytes):
    MAX_SIZE = MIN_SIZE = ANCHOR_DATA_HASH_SIZE
