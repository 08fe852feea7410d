"""Collateral sizing and selection for transactions that run scripts."""

from __future__ import annotations

from typing import Iterable, List, Optional, Tuple

from pytxbuilder.address import Address
from pytxbuilder.backend.base import ChainContext
from pytxbuilder.exception import InsufficientBalanceException
from pytxbuilder.logging import logger
from pytxbuilder.transaction import TransactionOutput, UTxO, Value
from pytxbuilder.utils import max_tx_fee, min_lovelace_post_alonzo

__all__ = [
    "required_collateral",
    "should_add_collateral_return",
    "select_collateral",
    "collateral_return",
]

_MIN_COLLATERAL_INPUT = 2_000_000
_MIN_COLLATERAL_RETURN = 1_000_000


def required_collateral(context: ChainContext, ref_script_size: int = 0) -> int:
    """Collateral needed to cover the largest possible fee of a transaction.

    Args:
        context (ChainContext): A chain context.
        ref_script_size (int): Size of reference scripts used by the transaction.

    Returns:
        int: ``ceil(max_tx_fee * collateral_percent / 100)`` in lovelace.
    """
    total = max_tx_fee(context, ref_script_size) * context.protocol_param.collateral_percent
    return -(-total // 100)


def should_add_collateral_return(
    amount: Value, threshold: int = _MIN_COLLATERAL_RETURN
) -> bool:
    """Check if it is necessary to add a collateral return output.

    Args:
        amount (Value): The potential collateral return amount.
        threshold (int): Lovelace above which the leftover collateral is returned.

    Returns:
        bool: True if a collateral return output should be added, False otherwise.
    """
    return (
        amount.coin > max(threshold, _MIN_COLLATERAL_RETURN)
        or amount.multi_asset.count(lambda p, n, v: v > 0) > 0
    )


def _by_size_then_coin(utxo: UTxO):
    return len(utxo.output.to_cbor()), -utxo.output.amount.coin


def select_collateral(
    context: ChainContext,
    required: int,
    return_address: Address,
    candidate_pools: Iterable[Iterable[UTxO]],
    threshold: int = _MIN_COLLATERAL_RETURN,
) -> List[UTxO]:
    """Pick collateral inputs from ``candidate_pools``, then from the UTxOs at ``return_address``.

    Every pool is tried in order, smallest and richest UTxOs first. Script locked UTxOs,
    UTxOs holding 2 ADA or less and UTxOs already picked are skipped. Selection stops once the
    collateral covers ``required`` and, when a return output will be emitted, the return
    holds at least its minimum lovelace.

    Returns:
        List[UTxO]: Selected collateral inputs. Possibly not enough, :func:`collateral_return`
        reports the shortfall.
    """
    selected: List[UTxO] = []
    total = Value()

    def _satisfied() -> bool:
        if total.coin < required:
            return False
        leftover = total - required
        if not should_add_collateral_return(leftover, threshold):
            return True
        return leftover.coin >= min_lovelace_post_alonzo(
            TransactionOutput(return_address, leftover), context
        )

    def _pull(pool: Iterable[UTxO]):
        nonlocal total
        candidates = sorted(pool, key=_by_size_then_coin, reverse=True)
        while candidates and not _satisfied():
            candidate = candidates.pop()
            if (
                not candidate.output.address.address_type.is_script_payment
                and candidate.output.amount.coin > _MIN_COLLATERAL_INPUT
                and candidate not in selected
            ):
                selected.append(candidate)
                total += candidate.output.amount

    for pool in candidate_pools:
        if _satisfied():
            break
        _pull(pool)

    if not _satisfied():
        _pull(context.utxos(return_address))

    logger.debug(f"Selected {len(selected)} collateral inputs holding {total}")
    return selected


def collateral_return(
    context: ChainContext,
    collaterals: List[UTxO],
    required: int,
    return_address: Address,
    threshold: int = _MIN_COLLATERAL_RETURN,
) -> Tuple[Optional[TransactionOutput], Optional[int]]:
    """Compute the output returning unused collateral.

    Returns:
        Tuple[Optional[TransactionOutput], Optional[int]]: The return output and the total
        collateral, both None when the leftover is too small to be worth returning.

    Raises:
        InsufficientBalanceException: When collaterals cannot cover ``required``, or the
            leftover cannot hold the minimum lovelace of its return output.
    """
    total = Value()
    for utxo in collaterals:
        total += utxo.output.amount

    if required > total.coin:
        raise InsufficientBalanceException(
            f"Minimum collateral amount {required} is greater than total "
            f"provided collateral inputs {total}"
        )

    leftover = total - required
    if not should_add_collateral_return(leftover, threshold):
        return None, None

    return_output = TransactionOutput(return_address, leftover)
    min_lovelace_val = min_lovelace_post_alonzo(return_output, context)
    if min_lovelace_val > leftover.coin:
        raise InsufficientBalanceException(
            f"Minimum lovelace amount for collateral return {min_lovelace_val} is "
            f"greater than collateral change {leftover.coin}. Please provide more collateral inputs."
        )
    return return_output, required
