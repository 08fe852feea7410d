from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, unique
from fractions import Fraction
from typing import Any, List, Optional, Type, Union

from pytxbuilder.cbor import cbor2
from pytxbuilder.exception import DeserializeException
from pytxbuilder.hash import (
    AnchorDataHash,
    PoolKeyHash,
    ScriptHash,
    VerificationKeyHash,
    VrfKeyHash,
)
from pytxbuilder.serialization import (
    ArrayCBORSerializable,
    CodedSerializable,
    limit_primitive_type,
)

__all__ = [
    "Certificate",
    "Anchor",
    "StakeCredential",
    "DRepCredential",
    "DRepKind",
    "DRep",
    "PoolParams",
    "StakeRegistration",
    "StakeDeregistration",
    "StakeDelegation",
    "PoolRegistration",
    "PoolRetirement",
    "StakeRegistrationConway",
    "StakeDeregistrationConway",
    "VoteDelegation",
    "StakeAndVoteDelegation",
    "StakeRegistrationAndDelegation",
    "StakeRegistrationAndVoteDelegation",
    "StakeRegistrationAndDelegationAndVoteDelegation",
    "RegDRepCert",
    "UnregDRepCertificate",
]


@dataclass(repr=False)
class Anchor(ArrayCBORSerializable):
    """A URL and the hash of the document it points to."""

    url: str

    data_hash: AnchorDataHash


@dataclass(repr=False)
class StakeCredential(ArrayCBORSerializable):
    """A staking credential, either a key hash (code 0) or a script hash (code 1)."""

    _CODE: Optional[int] = field(init=False, default=None)

    credential: Union[VerificationKeyHash, ScriptHash]

    def __post_init__(self):
        if isinstance(self.credential, VerificationKeyHash):
            self._CODE = 0
        else:
            self._CODE = 1

    @classmethod
    @limit_primitive_type(list, tuple)
    def from_primitive(
        cls: Type[StakeCredential], values: Union[list, tuple]
    ) -> StakeCredential:
        if values[0] == 0:
            return cls(VerificationKeyHash(values[1]))
        elif values[0] == 1:
            return cls(ScriptHash(values[1]))
        raise DeserializeException(f"Invalid {cls.__name__} type {values[0]}")

    def __hash__(self):
        return hash(self.to_cbor())


@dataclass(repr=False)
class DRepCredential(StakeCredential):
    """Credential of a delegate representative."""

    def __hash__(self):
        return hash(self.to_cbor())


@unique
class DRepKind(Enum):
    VERIFICATION_KEY_HASH = 0
    SCRIPT_HASH = 1
    ALWAYS_ABSTAIN = 2
    ALWAYS_NO_CONFIDENCE = 3


@dataclass(repr=False)
class DRep(ArrayCBORSerializable):
    """Target of a vote delegation."""

    kind: DRepKind

    credential: Optional[Union[VerificationKeyHash, ScriptHash]] = field(
        default=None, metadata={"optional": True}
    )

    def to_primitive(self):
        if self.credential is not None:
            return [self.kind.value, self.credential.to_primitive()]
        return [self.kind.value]

    @classmethod
    @limit_primitive_type(list, tuple)
    def from_primitive(cls: Type[DRep], values: Union[list, tuple]) -> DRep:
        try:
            kind = DRepKind(values[0])
        except ValueError as e:
            raise DeserializeException(f"Invalid DRep type {values[0]}") from e

        if kind == DRepKind.VERIFICATION_KEY_HASH:
            return cls(kind, VerificationKeyHash(values[1]))
        elif kind == DRepKind.SCRIPT_HASH:
            return cls(kind, ScriptHash(values[1]))
        return cls(kind)


@dataclass(repr=False)
class PoolParams(ArrayCBORSerializable):
    """Registration parameters of a stake pool.

    ``margin`` is written as a CBOR rational (tag 30). ``relays`` and ``pool_metadata`` are
    passed through as CBOR primitives.
    """

    operator: PoolKeyHash

    vrf_keyhash: VrfKeyHash

    pledge: int

    cost: int

    margin: Fraction

    reward_account: bytes

    pool_owners: List[VerificationKeyHash] = field(default_factory=list)

    relays: List[Any] = field(default_factory=list)

    pool_metadata: Optional[List[Any]] = None

    def to_shallow_primitive(self) -> List[Any]:
        return [
            self.operator,
            self.vrf_keyhash,
            self.pledge,
            self.cost,
            cbor2.CBORTag(30, [self.margin.numerator, self.margin.denominator]),
            self.reward_account,
            list(self.pool_owners),
            list(self.relays),
            self.pool_metadata,
        ]

    @classmethod
    @limit_primitive_type(list, tuple)
    def from_primitive(
        cls: Type[PoolParams], values: Union[list, tuple]
    ) -> PoolParams:
        margin = values[4]
        if isinstance(margin, cbor2.CBORTag):
            margin = Fraction(*margin.value)
        elif not isinstance(margin, Fraction):
            margin = Fraction(margin[0], margin[1])
        return cls(
            operator=PoolKeyHash.from_primitive(values[0]),
            vrf_keyhash=VrfKeyHash.from_primitive(values[1]),
            pledge=values[2],
            cost=values[3],
            margin=margin,
            reward_account=values[5],
            pool_owners=[VerificationKeyHash.from_primitive(o) for o in values[6]],
            relays=list(values[7]),
            pool_metadata=values[8],
        )


@dataclass(repr=False)
class StakeRegistration(CodedSerializable):
    _CODE: int = field(init=False, default=0)

    stake_credential: StakeCredential


@dataclass(repr=False)
class StakeDeregistration(CodedSerializable):
    _CODE: int = field(init=False, default=1)

    stake_credential: StakeCredential


@dataclass(repr=False)
class StakeDelegation(CodedSerializable):
    _CODE: int = field(init=False, default=2)

    stake_credential: StakeCredential

    pool_keyhash: PoolKeyHash


@dataclass(repr=False)
class PoolRegistration(CodedSerializable):
    """Pool registration. Pool parameters are flattened into the certificate array."""

    _CODE: int = field(init=False, default=3)

    pool_params: PoolParams

    def to_primitive(self):
        return [self._CODE, *self.pool_params.to_primitive()]

    @classmethod
    @limit_primitive_type(list, tuple)
    def from_primitive(
        cls: Type[PoolRegistration], values: Union[list, tuple]
    ) -> PoolRegistration:
        if values[0] != cls._CODE:
            raise DeserializeException(f"Invalid {cls.__name__} type {values[0]}")
        return cls(PoolParams.from_primitive(values[1:]))


@dataclass(repr=False)
class PoolRetirement(CodedSerializable):
    _CODE: int = field(init=False, default=4)

    pool_keyhash: PoolKeyHash

    epoch: int


@dataclass(repr=False)
class StakeRegistrationConway(CodedSerializable):
    """Stake registration carrying its deposit explicitly."""

    _CODE: int = field(init=False, default=7)

    stake_credential: StakeCredential

    coin: int


@dataclass(repr=False)
class StakeDeregistrationConway(CodedSerializable):
    _CODE: int = field(init=False, default=8)

    stake_credential: StakeCredential

    coin: int


@dataclass(repr=False)
class VoteDelegation(CodedSerializable):
    _CODE: int = field(init=False, default=9)

    stake_credential: StakeCredential

    drep: DRep


@dataclass(repr=False)
class StakeAndVoteDelegation(CodedSerializable):
    _CODE: int = field(init=False, default=10)

    stake_credential: StakeCredential

    pool_keyhash: PoolKeyHash

    drep: DRep


@dataclass(repr=False)
class StakeRegistrationAndDelegation(CodedSerializable):
    _CODE: int = field(init=False, default=11)

    stake_credential: StakeCredential

    pool_keyhash: PoolKeyHash

    coin: int


@dataclass(repr=False)
class StakeRegistrationAndVoteDelegation(CodedSerializable):
    _CODE: int = field(init=False, default=12)

    stake_credential: StakeCredential

    drep: DRep

    coin: int


@dataclass(repr=False)
class StakeRegistrationAndDelegationAndVoteDelegation(CodedSerializable):
    _CODE: int = field(init=False, default=13)

    stake_credential: StakeCredential

    pool_keyhash: PoolKeyHash

    drep: DRep

    coin: int


@dataclass(repr=False)
class RegDRepCert(CodedSerializable):
    """Registers a delegate representative, locking ``coin`` as deposit."""

    _CODE: int = field(init=False, default=16)

    drep_credential: DRepCredential

    coin: int

    anchor: Optional[Anchor] = None


@dataclass(repr=False)
class UnregDRepCertificate(CodedSerializable):
    _CODE: int = field(init=False, default=17)

    drep_credential: DRepCredential

    coin: int


Certificate = Union[
    StakeRegistration,
    StakeDeregistration,
    StakeDelegation,
    PoolRegistration,
    PoolRetirement,
    StakeRegistrationConway,
    StakeDeregistrationConway,
    VoteDelegation,
    StakeAndVoteDelegation,
    StakeRegistrationAndDelegation,
    StakeRegistrationAndVoteDelegation,
    StakeRegistrationAndDelegationAndVoteDelegation,
    RegDRepCert,
    UnregDRepCertificate,
]

STAKE_CREDENTIAL_CERTIFICATES = (
    StakeRegistration,
    StakeDeregistration,
    StakeDelegation,
    StakeRegistrationConway,
    StakeDeregistrationConway,
    VoteDelegation,
    StakeAndVoteDelegation,
    StakeRegistrationAndDelegation,
    StakeRegistrationAndVoteDelegation,
    StakeRegistrationAndDelegationAndVoteDelegation,
)
"""Certificates that must be witnessed by the stake credential they carry."""

EXPLICIT_DEPOSIT_CERTIFICATES = (
    RegDRepCert,
    StakeRegistrationConway,
    StakeRegistrationAndDelegation,
    StakeRegistrationAndVoteDelegation,
    StakeRegistrationAndDelegationAndVoteDelegation,
)
"""Certificates that state the deposit they lock in a ``coin`` field."""
