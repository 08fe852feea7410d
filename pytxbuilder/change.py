"""Turn the value left over by a transaction into change outputs."""

from __future__ import annotations

from typing import List, Optional

from pytxbuilder.address import Address
from pytxbuilder.backend.base import ChainContext
from pytxbuilder.exception import InsufficientBalanceException
from pytxbuilder.hash import ScriptHash
from pytxbuilder.logging import logger
from pytxbuilder.transaction import (
    Asset,
    AssetName,
    MultiAsset,
    TransactionOutput,
    UTxO,
    Value,
    Withdrawals,
)
from pytxbuilder.utils import min_lovelace_post_alonzo

__all__ = ["calc_change", "pack_tokens_for_change", "adding_asset_makes_output_overflow"]


def adding_asset_makes_output_overflow(
    context: ChainContext,
    address: Address,
    current_assets: MultiAsset,
    policy_id: ScriptHash,
    asset_name: AssetName,
    quantity: int,
    max_val_size: int,
) -> bool:
    """Check if adding an asset will make an output exceed the maximum value size.

    The candidate value is measured with the minimum lovelace it would need, since the size
    of the coin field grows with the bundle.

    Args:
        context (ChainContext): A chain context.
        address (Address): Address of the output being filled.
        current_assets (MultiAsset): Assets already packed into the output.
        policy_id (ScriptHash): Policy of the asset to add.
        asset_name (AssetName): Name of the asset to add.
        quantity (int): Quantity of the asset to add.
        max_val_size (int): Maximum encoded size of an output value.

    Returns:
        bool: Whether adding the asset makes the value larger than ``max_val_size``.
    """
    attempt = Value(
        0, current_assets + MultiAsset({policy_id: Asset({asset_name: quantity})})
    )
    attempt.coin = min_lovelace_post_alonzo(TransactionOutput(address, attempt), context)
    return len(attempt.to_cbor()) > max_val_size


def pack_tokens_for_change(
    context: ChainContext,
    address: Address,
    change: Value,
    max_val_size: int,
) -> List[MultiAsset]:
    """Split the bundle of ``change`` into as few groups as possible, none of them too large for one output.

    Assets are added one at a time in policy order. When an asset would overflow the group
    being filled, that group is closed and a new one is started.
    """
    groups: List[MultiAsset] = []
    current = MultiAsset()

    for policy_id, assets in change.multi_asset.items():
        for asset_name, quantity in assets.items():
            if current and adding_asset_makes_output_overflow(
                context, address, current, policy_id, asset_name, quantity, max_val_size
            ):
                groups.append(current)
                current = MultiAsset()
            current += MultiAsset({policy_id: Asset({asset_name: quantity})})

    if current:
        groups.append(current)
    return groups


def calc_change(
    context: ChainContext,
    fees: int,
    inputs: List[UTxO],
    outputs: List[TransactionOutput],
    address: Address,
    mint: Optional[MultiAsset] = None,
    withdrawals: Optional[Withdrawals] = None,
    deposit: int = 0,
    donation: int = 0,
    respect_min_utxo: bool = True,
) -> List[TransactionOutput]:
    """Compute the outputs that return ``inputs - outputs - fees`` to ``address``.

    Args:
        context (ChainContext): A chain context.
        fees (int): Transaction fee.
        inputs (List[UTxO]): Inputs of the transaction.
        outputs (List[TransactionOutput]): Outputs of the transaction, change excluded.
        address (Address): Address receiving the change.
        mint (Optional[MultiAsset]): Minted (positive) and burnt (negative) assets.
        withdrawals (Optional[Withdrawals]): Reward withdrawals, counted as provided lovelace.
        deposit (int): Key, pool and proposal deposits paid by the transaction.
        donation (int): Lovelace donated to the treasury.
        respect_min_utxo (bool): Fail when a change output cannot hold its minimum lovelace.

    Returns:
        List[TransactionOutput]: Change outputs. A lovelace only change is a single output,
        a change with native assets is spread over as many outputs as their size requires.

    Raises:
        InsufficientBalanceException: When inputs cannot cover outputs and fee, or when the
            leftover lovelace cannot reach the minimum of the change outputs.
    """
    requested = Value(fees + donation)
    for o in outputs:
        requested += o.amount

    provided = Value()
    for i in inputs:
        provided += i.output.amount

    if mint:
        provided = Value(provided.coin, provided.multi_asset + mint)

    if withdrawals:
        provided += sum(withdrawals.values())

    provided -= deposit

    if provided.coin < requested.coin or not requested.multi_asset <= provided.multi_asset:
        raise InsufficientBalanceException(
            f"The input UTxOs cannot cover the transaction outputs and tx fee. \n"
            f"Inputs: {inputs} \n"
            f"Outputs: {outputs} \n"
            f"fee: {fees}"
        )

    change = provided - requested
    change.multi_asset = change.multi_asset.filter(lambda p, n, v: v > 0)

    # Only lovelace is left
    if not change.multi_asset:
        required = min_lovelace_post_alonzo(TransactionOutput(address, change), context)
        if respect_min_utxo and change.coin < required:
            raise InsufficientBalanceException(
                f"Not enough ADA left for change: {change.coin} but needs {required}"
            )
        return [TransactionOutput(address, Value(change.coin))]

    groups = pack_tokens_for_change(
        context, address, change, context.protocol_param.max_val_size
    )
    logger.debug(f"Change bundle packed into {len(groups)} outputs")

    change_outputs = []
    for i, group in enumerate(groups):
        required = min_lovelace_post_alonzo(
            TransactionOutput(address, Value(0, group)), context
        )
        if respect_min_utxo and change.coin < required:
            raise InsufficientBalanceException(
                "Not enough ADA left to cover non-ADA assets in a change address"
            )

        if i == len(groups) - 1:
            # The last output takes every remaining lovelace
            change_value = Value(change.coin, group)
        else:
            change_value = Value(required, group)

        change_outputs.append(TransactionOutput(address, change_value))
        change -= change_value
        change.multi_asset = change.multi_asset.filter(lambda p, n, v: v > 0)

    return change_outputs
