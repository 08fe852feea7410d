"""Ready-made transactions for common staking actions, and helpers to sign built transactions.

Each recipe checks the chain state it depends on, fills a :class:`TransactionBuilder` and
builds the transaction. With signing keys the transaction is signed, without them it is
returned unsigned so that it can be witnessed elsewhere and completed with :func:`assemble`.
"""

from __future__ import annotations

from typing import Any, List, Optional

from pytxbuilder.address import Address
from pytxbuilder.backend.base import StakeAddressInfo
from pytxbuilder.certificate import (
    PoolRetirement,
    StakeCredential,
    StakeDelegation,
    StakeRegistration,
    StakeRegistrationAndDelegation,
)
from pytxbuilder.exception import InvalidTransactionException
from pytxbuilder.hash import PoolKeyHash
from pytxbuilder.key import SigningKey, VerificationKey
from pytxbuilder.nativescript import NativeScript
from pytxbuilder.plutus import (
    PlutusV1Script,
    PlutusV2Script,
    PlutusV3Script,
    Redeemers,
)
from pytxbuilder.transaction import Transaction, TransactionOutput, Withdrawals
from pytxbuilder.txbuilder import TransactionBuilder
from pytxbuilder.witness import TransactionWitnessSet, VerificationKeyWitness

__all__ = [
    "register_stake_address",
    "delegate_stake",
    "register_and_delegate_stake",
    "withdraw_rewards",
    "retire_pool",
    "witness",
    "sign",
    "assemble",
]


def _stake_address(builder: TransactionBuilder, stake_vkey: VerificationKey) -> Address:
    return Address(staking_part=stake_vkey.hash(), network=builder.context.network)


def _is_registered(info: List[StakeAddressInfo]) -> bool:
    return bool(info) and info[0].active and info[0].active_epoch is not None


def _ensure_not_registered(builder: TransactionBuilder, stake_address: Address):
    info = builder.context.stake_address_info(stake_address)
    if _is_registered(info):
        message = f"Stake-Address: {stake_address} is already registered on the chain!"
        if info[0].stake_delegation:
            message += (
                f"\nAccount is currently delegated to Pool with ID: {info[0].stake_delegation}"
            )
        if info[0].vote_delegation:
            message += (
                f"\nAccount is currently delegated to DRep with ID: {info[0].vote_delegation}"
            )
        raise InvalidTransactionException(message)


def _finish(
    builder: TransactionBuilder,
    change_address: Address,
    signing_keys: Optional[List[SigningKey]],
    merge_change: bool = False,
) -> Transaction:
    if signing_keys:
        return builder.build_and_sign(
            signing_keys, change_address=change_address, merge_change=merge_change
        )
    tx_body = builder.build(change_address=change_address, merge_change=merge_change)
    return Transaction(
        tx_body, builder.build_witness_set(), auxiliary_data=builder.auxiliary_data
    )


def register_stake_address(
    builder: TransactionBuilder,
    stake_vkey: VerificationKey,
    fee_payment_address: Address,
    signing_keys: Optional[List[SigningKey]] = None,
) -> Transaction:
    """Register the stake address of ``stake_vkey``, paying fee and key deposit from ``fee_payment_address``.

    Raises:
        InvalidTransactionException: When the stake address is already registered.
    """
    _ensure_not_registered(builder, _stake_address(builder, stake_vkey))

    if not builder.inputs:
        builder.add_input_address(fee_payment_address)
    builder.certificates = [StakeRegistration(StakeCredential(stake_vkey.hash()))]
    return _finish(builder, fee_payment_address, signing_keys)


def delegate_stake(
    builder: TransactionBuilder,
    stake_vkey: VerificationKey,
    pool_keyhash: PoolKeyHash,
    fee_payment_address: Address,
    signing_keys: Optional[List[SigningKey]] = None,
) -> Transaction:
    """Delegate a registered stake address to the pool ``pool_keyhash``.

    Raises:
        InvalidTransactionException: When the stake address is not known on chain.
    """
    stake_address = _stake_address(builder, stake_vkey)
    info = builder.context.stake_address_info(stake_address)
    if not info or (not info[0].active and info[0].active_epoch is None):
        raise InvalidTransactionException(
            f"Stake-Address: {stake_address} may not be on chain."
        )

    if not builder.inputs:
        builder.add_input_address(fee_payment_address)
    builder.certificates = [
        StakeDelegation(StakeCredential(stake_vkey.hash()), pool_keyhash)
    ]
    return _finish(builder, fee_payment_address, signing_keys)


def register_and_delegate_stake(
    builder: TransactionBuilder,
    stake_vkey: VerificationKey,
    pool_keyhash: PoolKeyHash,
    fee_payment_address: Address,
    signing_keys: Optional[List[SigningKey]] = None,
) -> Transaction:
    """Register a stake address and delegate it to ``pool_keyhash`` with a single certificate.

    The certificate carries the current key deposit explicitly.

    Raises:
        InvalidTransactionException: When the stake address is already registered.
    """
    _ensure_not_registered(builder, _stake_address(builder, stake_vkey))

    if not builder.inputs:
        builder.add_input_address(fee_payment_address)
    builder.certificates = [
        StakeRegistrationAndDelegation(
            StakeCredential(stake_vkey.hash()),
            pool_keyhash,
            builder.context.protocol_param.key_deposit,
        )
    ]
    return _finish(builder, fee_payment_address, signing_keys)


def withdraw_rewards(
    builder: TransactionBuilder,
    stake_vkey: VerificationKey,
    fee_payment_address: Address,
    to_address: Optional[Address] = None,
    signing_keys: Optional[List[SigningKey]] = None,
) -> Transaction:
    """Withdraw all rewards of a stake address.

    Rewards go to ``to_address`` when given, otherwise they are merged into the change at
    ``fee_payment_address``.

    Raises:
        InvalidTransactionException: When there are no rewards to withdraw.
    """
    stake_address = _stake_address(builder, stake_vkey)
    info = builder.context.stake_address_info(stake_address)
    if not info:
        raise InvalidTransactionException(
            f"No rewards available to withdraw for stake address: {stake_address}"
        )

    rewards = sum(i.reward_account_balance for i in info)
    if rewards <= 0:
        raise InvalidTransactionException(
            f"Rewards sum is 0, no rewards to withdraw for: {stake_address}"
        )

    if not builder.inputs:
        for utxo in builder.context.utxos(fee_payment_address):
            builder.add_input(utxo)

    if to_address is not None and to_address != fee_payment_address:
        builder.add_output(TransactionOutput(to_address, rewards))

    builder.withdrawals = Withdrawals({bytes(stake_address): rewards})
    return _finish(builder, fee_payment_address, signing_keys, merge_change=True)


def retire_pool(
    builder: TransactionBuilder,
    pool_keyhash: PoolKeyHash,
    epoch: int,
    fee_payment_address: Address,
    signing_keys: Optional[List[SigningKey]] = None,
) -> Transaction:
    """Announce the retirement of a stake pool at ``epoch``."""
    if not builder.inputs:
        builder.add_input_address(fee_payment_address)
    builder.certificates = [PoolRetirement(pool_keyhash, epoch)]
    return _finish(builder, fee_payment_address, signing_keys)


def witness(
    transaction: Transaction, signing_keys: List[SigningKey]
) -> List[VerificationKeyWitness]:
    """Sign the body of ``transaction`` with every key, without changing the transaction."""
    tx_body_hash = transaction.transaction_body.hash()
    return [
        VerificationKeyWitness(key.to_verification_key(), key.sign(tx_body_hash))
        for key in signing_keys
    ]


def sign(transaction: Transaction, signing_keys: List[SigningKey]) -> Transaction:
    """Return ``transaction`` with witnesses of ``signing_keys`` added."""
    return assemble(transaction, vkey_witnesses=witness(transaction, signing_keys))


def _merge(existing: Optional[List[Any]], to_add: Optional[List[Any]]):
    if to_add is None:
        return existing
    if existing is None:
        return list(to_add)
    return list(existing) + list(to_add)


def assemble(
    transaction: Transaction,
    vkey_witnesses: Optional[List[VerificationKeyWitness]] = None,
    native_scripts: Optional[List[NativeScript]] = None,
    plutus_v1_script: Optional[List[PlutusV1Script]] = None,
    plutus_data: Optional[List[Any]] = None,
    redeemer: Optional[Redeemers] = None,
    plutus_v2_script: Optional[List[PlutusV2Script]] = None,
    plutus_v3_script: Optional[List[PlutusV3Script]] = None,
) -> Transaction:
    """Create a new transaction with witness components merged into the witness set of ``transaction``.

    Lists are appended to what the witness set already holds. Redeemers, when given, replace
    the existing ones.
    """
    ws = transaction.transaction_witness_set
    witness_set = TransactionWitnessSet(
        vkey_witnesses=_merge(ws.vkey_witnesses, vkey_witnesses),
        native_scripts=_merge(ws.native_scripts, native_scripts),
        plutus_v1_script=_merge(ws.plutus_v1_script, plutus_v1_script),
        plutus_data=_merge(ws.plutus_data, plutus_data),
        redeemer=redeemer if redeemer is not None else ws.redeemer,
        plutus_v2_script=_merge(ws.plutus_v2_script, plutus_v2_script),
        plutus_v3_script=_merge(ws.plutus_v3_script, plutus_v3_script),
    )
    return Transaction(
        transaction.transaction_body,
        witness_set,
        transaction.valid,
        transaction.auxiliary_data,
    )
