"""Shelley addresses.

Header layout and human-readable prefixes follow CIP-0019 and CIP-0005.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional, Type, Union

from bech32 import CHARSET, bech32_hrp_expand, bech32_polymod, convertbits

from pytxbuilder.exception import (
    DecodingException,
    DeserializeException,
    InvalidAddressInputException,
)
from pytxbuilder.hash import VERIFICATION_KEY_HASH_SIZE, ScriptHash, VerificationKeyHash
from pytxbuilder.network import Network
from pytxbuilder.serialization import CBORSerializable, limit_primitive_type

__all__ = ["AddressType", "Address", "bech32_encode_bytes", "bech32_decode_bytes"]

_CHECKSUM_LEN = 6


def bech32_encode_bytes(hrp: str, data: bytes) -> str:
    """Encode ``data`` under ``hrp``.

    Shelley addresses are longer than the 90 characters BIP-0173 allows, so only the checksum
    primitives of :mod:`bech32` are used and no length limit is applied.
    """
    words = convertbits(data, 8, 5)
    polymod = bech32_polymod(bech32_hrp_expand(hrp) + words + [0] * _CHECKSUM_LEN) ^ 1
    checksum = [(polymod >> 5 * (5 - i)) & 31 for i in range(_CHECKSUM_LEN)]
    return hrp + "1" + "".join(CHARSET[d] for d in words + checksum)


def bech32_decode_bytes(text: str) -> bytes:
    if text.lower() != text and text.upper() != text:
        raise DecodingException(f"Mixed case bech32 string: {text}")
    text = text.lower()
    pos = text.rfind("1")
    if pos < 1 or pos + _CHECKSUM_LEN + 1 > len(text):
        raise DecodingException(f"Invalid bech32 separator position in: {text}")
    hrp = text[:pos]
    if any(c not in CHARSET for c in text[pos + 1 :]):
        raise DecodingException(f"Invalid bech32 character in: {text}")
    words: List[int] = [CHARSET.find(c) for c in text[pos + 1 :]]
    if bech32_polymod(bech32_hrp_expand(hrp) + words) != 1:
        raise DecodingException(f"Invalid bech32 checksum: {text}")
    decoded = convertbits(words[:-_CHECKSUM_LEN], 5, 8, False)
    if decoded is None:
        raise DecodingException(f"Invalid bech32 padding: {text}")
    return bytes(decoded)


class AddressType(Enum):
    """
    Address type, stored in the upper four bits of the header byte.
    """

    KEY_KEY = 0b0000
    """Payment key hash + Stake key hash"""

    SCRIPT_KEY = 0b0001
    """Script hash + Stake key hash"""

    KEY_SCRIPT = 0b0010
    """Payment key hash + Script hash"""

    SCRIPT_SCRIPT = 0b0011
    """Script hash + Script hash"""

    KEY_NONE = 0b0110
    """Payment key hash only"""

    SCRIPT_NONE = 0b0111
    """Script hash for payment part only"""

    NONE_KEY = 0b1110
    """Stake key hash for stake part only (reward address)"""

    NONE_SCRIPT = 0b1111
    """Script hash for stake part only (reward address)"""

    @property
    def is_script_payment(self) -> bool:
        return self in (
            AddressType.SCRIPT_KEY,
            AddressType.SCRIPT_SCRIPT,
            AddressType.SCRIPT_NONE,
        )


_Part = Union[VerificationKeyHash, ScriptHash, None]

_PART_TYPES = {
    AddressType.KEY_KEY: (VerificationKeyHash, VerificationKeyHash),
    AddressType.SCRIPT_KEY: (ScriptHash, VerificationKeyHash),
    AddressType.KEY_SCRIPT: (VerificationKeyHash, ScriptHash),
    AddressType.SCRIPT_SCRIPT: (ScriptHash, ScriptHash),
    AddressType.KEY_NONE: (VerificationKeyHash, None),
    AddressType.SCRIPT_NONE: (ScriptHash, None),
    AddressType.NONE_KEY: (None, VerificationKeyHash),
    AddressType.NONE_SCRIPT: (None, ScriptHash),
}


class Address(CBORSerializable):
    """A Shelley address made of an optional payment part and an optional staking part.

    Args:
        payment_part (Union[VerificationKeyHash, ScriptHash, None]): Payment credential.
        staking_part (Union[VerificationKeyHash, ScriptHash, None]): Staking credential.
        network (Network): Network the address belongs to.

    Examples:
        >>> vkh = VerificationKeyHash(bytes.fromhex(
        ...     "cc30497f4ff962f4c1dca54cceefe39f86f1d7179668009f8eb71e59"))
        >>> Address(vkh).encode()
        'addr1v8xrqjtlfluk9axpmjj5enh0uw0cduwhz7txsqyl36m3ukgqdsn8w'
    """

    def __init__(
        self,
        payment_part: _Part = None,
        staking_part: _Part = None,
        network: Network = Network.MAINNET,
    ):
        self._payment_part = payment_part
        self._staking_part = staking_part
        self._network = network
        self._address_type = self._infer_address_type()

    def _infer_address_type(self) -> AddressType:
        shape = (
            type(self._payment_part) if self._payment_part is not None else None,
            type(self._staking_part) if self._staking_part is not None else None,
        )
        for address_type, part_types in _PART_TYPES.items():
            if part_types == shape:
                return address_type
        raise InvalidAddressInputException(
            f"Cannot construct a shelley address from a combination of "
            f"payment part: {self._payment_part} and "
            f"stake part: {self._staking_part}"
        )

    @property
    def payment_part(self) -> _Part:
        return self._payment_part

    @property
    def staking_part(self) -> _Part:
        return self._staking_part

    @property
    def network(self) -> Network:
        return self._network

    @property
    def address_type(self) -> AddressType:
        return self._address_type

    @property
    def header_byte(self) -> bytes:
        return (self.address_type.value << 4 | self.network.value).to_bytes(1, "big")

    @property
    def hrp(self) -> str:
        prefix = (
            "stake"
            if self.address_type in (AddressType.NONE_KEY, AddressType.NONE_SCRIPT)
            else "addr"
        )
        return prefix if self.network == Network.MAINNET else prefix + "_test"

    def __bytes__(self):
        payment = bytes(self.payment_part) if self.payment_part else b""
        staking = bytes(self.staking_part) if self.staking_part else b""
        return self.header_byte + payment + staking

    def encode(self) -> str:
        return bech32_encode_bytes(self.hrp, bytes(self))

    @classmethod
    def decode(cls, data: str) -> Address:
        return cls.from_primitive(data)

    def to_primitive(self) -> bytes:
        return bytes(self)

    @classmethod
    @limit_primitive_type(bytes, bytearray, str)
    def from_primitive(cls: Type[Address], value: Union[bytes, bytearray, str]) -> Address:
        if isinstance(value, str):
            value = bech32_decode_bytes(value)
        value = bytes(value)
        if not value:
            raise DeserializeException("Cannot restore an address from empty bytes.")
        header, payload = value[0], value[1:]
        try:
            address_type = AddressType((header & 0xF0) >> 4)
            network = Network(header & 0x0F)
        except ValueError as e:
            raise DeserializeException(f"Unsupported address header: {header}") from e

        payment_type, staking_type = _PART_TYPES[address_type]
        if payment_type and staking_type:
            return cls(
                payment_type(payload[:VERIFICATION_KEY_HASH_SIZE]),
                staking_type(payload[VERIFICATION_KEY_HASH_SIZE:]),
                network,
            )
        elif payment_type:
            return cls(payment_type(payload), None, network)
        else:
            return cls(None, staking_type(payload), network)

    def __eq__(self, other):
        return (
            isinstance(other, Address)
            and self.payment_part == other.payment_part
            and self.staking_part == other.staking_part
            and self.network == other.network
        )

    def __hash__(self):
        return hash(bytes(self))

    def __repr__(self):
        return self.encode()

    def __str__(self):
        return self.encode()
