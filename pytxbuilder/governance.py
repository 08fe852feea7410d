"""Conway era votes and proposals that a transaction can carry."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Type, Union

from pytxbuilder.certificate import Anchor
from pytxbuilder.exception import DeserializeException
from pytxbuilder.hash import ScriptHash, TransactionId, VerificationKeyHash
from pytxbuilder.serialization import (
    ArrayCBORSerializable,
    CBORSerializable,
    CodedSerializable,
    DictCBORSerializable,
    limit_primitive_type,
)

__all__ = [
    "Vote",
    "VoterType",
    "Voter",
    "GovActionId",
    "VotingProcedure",
    "GovActionIdToVotingProcedure",
    "VotingProcedures",
    "InfoAction",
    "GovAction",
    "ProposalProcedure",
]


class Vote(CBORSerializable, Enum):
    NO = 0
    YES = 1
    ABSTAIN = 2

    def to_primitive(self) -> int:
        return self.value

    @classmethod
    @limit_primitive_type(int)
    def from_primitive(cls: Type[Vote], value: int) -> Vote:
        return cls(value)


class VoterType(Enum):
    COMMITTEE_HOT = "committee_hot"
    DREP = "drep"
    STAKING_POOL = "staking_pool"


_VOTER_CODES = {
    (VoterType.COMMITTEE_HOT, VerificationKeyHash): 0,
    (VoterType.COMMITTEE_HOT, ScriptHash): 1,
    (VoterType.DREP, VerificationKeyHash): 2,
    (VoterType.DREP, ScriptHash): 3,
    (VoterType.STAKING_POOL, VerificationKeyHash): 4,
}


@dataclass(repr=False)
class Voter(ArrayCBORSerializable):
    """A committee member, delegate representative or stake pool casting votes."""

    _CODE: Optional[int] = field(init=False, default=None)

    credential: Union[VerificationKeyHash, ScriptHash]

    voter_type: VoterType

    def __post_init__(self):
        code = _VOTER_CODES.get((self.voter_type, type(self.credential)))
        if code is None:
            raise ValueError(
                f"Invalid credential {type(self.credential).__name__} "
                f"for voter type {self.voter_type}"
            )
        self._CODE = code

    def to_shallow_primitive(self):
        return [self._CODE, self.credential]

    @classmethod
    @limit_primitive_type(list, tuple)
    def from_primitive(cls: Type[Voter], values: Union[list, tuple]) -> Voter:
        for (voter_type, credential_type), code in _VOTER_CODES.items():
            if code == values[0]:
                return cls(credential_type(values[1]), voter_type)
        raise DeserializeException(f"Invalid Voter type {values[0]}")

    def __hash__(self):
        return hash((self._CODE, self.credential))


@dataclass(repr=False)
class GovActionId(ArrayCBORSerializable):
    transaction_id: TransactionId

    gov_action_index: int

    def __post_init__(self):
        if not 0 <= self.gov_action_index <= 65535:
            raise ValueError("gov_action_index must be between 0 and 65535")

    def __hash__(self):
        return hash((self.transaction_id, self.gov_action_index))


@dataclass(repr=False)
class VotingProcedure(ArrayCBORSerializable):
    vote: Vote

    anchor: Optional[Anchor] = None


class GovActionIdToVotingProcedure(DictCBORSerializable):
    KEY_TYPE = GovActionId
    VALUE_TYPE = VotingProcedure


class VotingProcedures(DictCBORSerializable):
    KEY_TYPE = Voter
    VALUE_TYPE = GovActionIdToVotingProcedure


@dataclass(repr=False)
class InfoAction(CodedSerializable):
    """A governance action without on-chain effect."""

    _CODE: int = field(init=False, default=6)


GovAction = Union[InfoAction]


@dataclass(repr=False)
class ProposalProcedure(ArrayCBORSerializable):
    """A governance proposal. ``deposit`` is locked until the proposal expires or is enacted."""

    deposit: int

    reward_account: bytes

    gov_action: GovAction

    anchor: Anchor
