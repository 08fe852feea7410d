"""Ed25519 keys used to witness transactions."""

from __future__ import annotations

from typing import Type

from nacl.encoding import RawEncoder
from nacl.hash import blake2b
from nacl.signing import SigningKey as NACLSigningKey

from pytxbuilder.hash import VERIFICATION_KEY_HASH_SIZE, VerificationKeyHash
from pytxbuilder.serialization import CBORSerializable, limit_primitive_type

__all__ = [
    "Key",
    "SigningKey",
    "VerificationKey",
    "PaymentSigningKey",
    "PaymentVerificationKey",
    "StakeSigningKey",
    "StakeVerificationKey",
]


class Key(CBORSerializable):
    """Raw key bytes plus the ``type`` label used by the Cardano node tooling."""

    KEY_TYPE = ""

    def __init__(self, payload: bytes, key_type: str = None):
        self._payload = payload
        self._key_type = key_type or self.KEY_TYPE

    @property
    def payload(self) -> bytes:
        return self._payload

    @property
    def key_type(self) -> str:
        return self._key_type

    def to_primitive(self) -> bytes:
        return self.payload

    @classmethod
    @limit_primitive_type(bytes)
    def from_primitive(cls: Type[Key], value: bytes) -> Key:
        return cls(value)

    def __bytes__(self):
        return self.payload

    def __eq__(self, other):
        return isinstance(other, Key) and self.payload == other.payload

    def __hash__(self):
        return hash(self.payload)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.payload.hex()})"


class VerificationKey(Key):
    def hash(self) -> VerificationKeyHash:
        """Blake2b-224 digest of the key, the form in which keys appear in addresses."""
        return VerificationKeyHash(
            blake2b(self.payload, VERIFICATION_KEY_HASH_SIZE, encoder=RawEncoder)
        )

    @classmethod
    def from_signing_key(cls, key: SigningKey) -> VerificationKey:
        return key.to_verification_key()


class SigningKey(Key):
    VERIFICATION_KEY_CLASS: Type[VerificationKey] = VerificationKey

    def sign(self, data: bytes) -> bytes:
        return NACLSigningKey(self.payload).sign(data).signature

    def to_verification_key(self) -> VerificationKey:
        verify_key = NACLSigningKey(self.payload).verify_key
        return self.VERIFICATION_KEY_CLASS(
            bytes(verify_key), self.key_type.replace("Signing", "Verification")
        )

    @classmethod
    def generate(cls) -> SigningKey:
        return cls(bytes(NACLSigningKey.generate()))


class PaymentVerificationKey(VerificationKey):
    KEY_TYPE = "PaymentVerificationKeyShelley_ed25519"


class PaymentSigningKey(SigningKey):
    KEY_TYPE = "PaymentSigningKeyShelley_ed25519"
    VERIFICATION_KEY_CLASS = PaymentVerificationKey


class StakeVerificationKey(VerificationKey):
    KEY_TYPE = "StakeVerificationKeyShelley_ed25519"


class StakeSigningKey(SigningKey):
    KEY_TYPE = "StakeSigningKeyShelley_ed25519"
    VERIFICATION_KEY_CLASS = StakeVerificationKey
