"""
This module contains algorithms that select UTxOs from a parent list to satisfy some output constraints.
"""

import random
from typing import Iterable, Iterator, List, Optional, Tuple, Union

from pytxbuilder.address import Address
from pytxbuilder.backend.base import ChainContext
from pytxbuilder.exception import (
    InputUTxODepletedException,
    InsufficientUTxOBalanceException,
    MaxInputCountExceededException,
    UTxOSelectionException,
)
from pytxbuilder.logging import logger
from pytxbuilder.transaction import Asset, MultiAsset, TransactionOutput, UTxO, Value
from pytxbuilder.utils import max_tx_fee, min_lovelace_post_alonzo

__all__ = [
    "IndexSource",
    "SequenceIndexSource",
    "UniformIndexSource",
    "UTxOSelector",
    "LargestFirstSelector",
    "RandomImproveMultiAsset",
]

# Placeholder address used to measure the minimum lovelace of a change output before the real
# change address is known. Base addresses have the largest encoding, so the estimate is an upper bound.
_FAKE_ADDR = Address.from_primitive(
    "addr1q8m9x2zsux7va6w892g38tvchnzahvcd9tykqf3ygnmwta8k2v59pcduem5uw253zwke30x9mwes62kfvqnzg38kuh6q966kg7"
)


class IndexSource:
    """Source of the indices a randomized selector draws candidates with."""

    def next_index(self, bound: int) -> int:
        """Return an index in ``[0, bound)``.

        Raises:
            UTxOSelectionException: When no index can be produced.
        """
        raise NotImplementedError()


class SequenceIndexSource(IndexSource):
    """Replays a fixed sequence of indices, which makes selection deterministic.

    Examples:
        >>> source = SequenceIndexSource([1, 0])
        >>> source.next_index(3), source.next_index(3)
        (1, 0)
    """

    def __init__(self, indices: Iterable[int]):
        self._indices: Iterator[int] = iter(indices)

    def next_index(self, bound: int) -> int:
        i = next(self._indices, None)
        if i is None:
            raise UTxOSelectionException("Random generator depleted!")
        if not 0 <= i < bound:
            raise UTxOSelectionException(f"Random index: {i} out of range!")
        return i


class UniformIndexSource(IndexSource):
    """Draws indices uniformly with :class:`random.Random`. Selection needs no cryptographic randomness."""

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()

    def next_index(self, bound: int) -> int:
        return self._rng.randrange(bound)


def _requested_total(
    outputs: List[TransactionOutput], context: ChainContext, include_max_fee: bool
) -> Value:
    total = Value(max_tx_fee(context) if include_max_fee else 0)
    for o in outputs:
        total += o.amount
    return total


def _min_change_shortfall(change: Value, context: ChainContext) -> int:
    min_change_amount = min_lovelace_post_alonzo(
        TransactionOutput(_FAKE_ADDR, change), context
    )
    return max(0, min_change_amount - change.coin)


class UTxOSelector:
    """UTxOSelector defines an interface through which a subset of UTxOs should be selected from a parent set
    with a selection strategy and given constraints.
    """

    def select(
        self,
        utxos: List[UTxO],
        outputs: List[TransactionOutput],
        context: ChainContext,
        max_input_count: Optional[int] = None,
        include_max_fee: bool = True,
        respect_min_utxo: bool = True,
    ) -> Tuple[List[UTxO], Value]:
        """From an input list of UTxOs, select a subset of UTxOs whose sum (including ADA and multi-assets)
        is equal to or larger than the sum of a set of outputs.

        Args:
            utxos (List[UTxO]): A list of UTxO to select from.
            outputs (List[TransactionOutput]): A list of transaction outputs which the selected set should satisfy.
            context (ChainContext): A chain context where protocol parameters could be retrieved.
            max_input_count (int): Max number of input UTxOs to select.
            include_max_fee (bool): Have selected UTxOs to cover transaction fee. Defaults to True. If disabled,
                there is a possibility that selected UTxO are not able to cover the fee of the transaction.
            respect_min_utxo (bool): Respect minimum amount of ADA required to hold a multi-asset bundle in the change.
                Defaults to True. If disabled, the selection will not add addition amount of ADA to change even
                when the amount is too small to hold a multi-asset bundle.

        Returns:
            Tuple[List[UTxO], Value]: A tuple containing:

                selected (List[UTxO]): A list of selected UTxOs.

                changes (Value): Change amount to be returned.

        Raises:
            InsufficientUTxOBalanceException: When total value of input UTxO is less than requested outputs.
            MaxInputCountExceededException: When number of selected UTxOs exceeds `max_input_count`.
            InputUTxODepletedException: When the algorithm has depleted input UTxOs but selection should continue.
            UTxOSelectionException: When selection fails for reasons besides the three above.
        """
        raise NotImplementedError()

    def _top_up(
        self,
        remaining: List[UTxO],
        selected: List[UTxO],
        change: Value,
        context: ChainContext,
        max_input_count: Optional[int],
    ) -> List[UTxO]:
        """Select extra UTxOs once so that ``change`` can hold its own minimum lovelace."""
        shortfall = _min_change_shortfall(change, context)
        if not shortfall:
            return []
        additional, _ = self.select(
            remaining,
            [TransactionOutput(_FAKE_ADDR, shortfall)],
            context,
            max_input_count - len(selected) if max_input_count is not None else None,
            include_max_fee=False,
            respect_min_utxo=False,
        )
        return additional


class LargestFirstSelector(UTxOSelector):
    """
    Largest first selection algorithm as specified in
    https://github.com/cardano-foundation/CIPs/tree/master/CIP-0002#largest-first.

    This implementation adds transaction fee into consideration.
    """

    def select(
        self,
        utxos: List[UTxO],
        outputs: List[TransactionOutput],
        context: ChainContext,
        max_input_count: Optional[int] = None,
        include_max_fee: bool = True,
        respect_min_utxo: bool = True,
    ) -> Tuple[List[UTxO], Value]:
        available: List[UTxO] = sorted(utxos, key=lambda utxo: utxo.output.lovelace)
        total_requested = _requested_total(outputs, context, include_max_fee)

        selected: List[UTxO] = []
        selected_amount = Value()

        while not total_requested <= selected_amount:
            if not available:
                raise InsufficientUTxOBalanceException("UTxO Balance insufficient!")
            to_add = available.pop()
            selected.append(to_add)
            selected_amount += to_add.output.amount

            if max_input_count is not None and len(selected) > max_input_count:
                raise MaxInputCountExceededException(
                    f"Max input count: {max_input_count} exceeded!"
                )

        if respect_min_utxo:
            for u in self._top_up(
                available,
                selected,
                selected_amount - total_requested,
                context,
                max_input_count,
            ):
                selected.append(u)
                selected_amount += u.output.amount

        logger.debug(f"Largest-first selected {len(selected)} UTxOs: {selected_amount}")
        return selected, selected_amount - total_requested


class RandomImproveMultiAsset(UTxOSelector):
    """Random-improve selection algorithm as specified in
    https://github.com/cardano-foundation/CIPs/tree/master/CIP-0002#random-improve.

    Because the original algorithm does not take multi-assets into consideration, this implementation is slightly
    different from the algorithm. It merges all requested outputs into one and then treats ADA and every native
    asset of the merged request as an individual target.

    Args:
        random_generator: Where candidate indices come from. Either an :class:`IndexSource`, or an iterable of
            indices that is replayed in order. Defaults to uniform random draws.
    """

    def __init__(
        self, random_generator: Union[IndexSource, Iterable[int], None] = None
    ):
        if random_generator is None:
            self.index_source: IndexSource = UniformIndexSource()
        elif isinstance(random_generator, IndexSource):
            self.index_source = random_generator
        else:
            self.index_source = SequenceIndexSource(random_generator)

    def _get_next_random(self, utxos: List[UTxO]) -> int:
        if not utxos:
            raise InputUTxODepletedException("Input UTxOs depleted!")
        return self.index_source.next_index(len(utxos))

    def _random_select_subset(
        self,
        amount: Value,
        remaining: List[UTxO],
        selected: List[UTxO],
        selected_amount: Value,
    ) -> Value:
        while not amount <= selected_amount:
            i = self._get_next_random(remaining)
            to_add = remaining.pop(i)
            selected.append(to_add)
            selected_amount += to_add.output.amount
        return selected_amount

    @staticmethod
    def _split_by_asset(value: Value) -> List[Value]:
        assets = []
        if value.coin or not value.multi_asset:
            assets.append(Value(value.coin))
        for policy_id in value.multi_asset:
            for asset_name, quantity in value.multi_asset[policy_id].items():
                assets.append(
                    Value(0, MultiAsset({policy_id: Asset({asset_name: quantity})}))
                )
        return assets

    @staticmethod
    def _get_single_asset_val(value: Value) -> int:
        if value.coin or not value.multi_asset:
            return value.coin
        return list(list(value.multi_asset.values())[0].values())[0]

    @staticmethod
    def _find_diff_by_former(a: Value, b: Value) -> int:
        """Difference between the only asset held by ``a`` and the same asset in ``b``."""
        if a.coin or not a.multi_asset:
            return a.coin - b.coin
        policy_id = list(a.multi_asset.keys())[0]
        asset_name = list(a.multi_asset[policy_id].keys())[0]
        return a.multi_asset[policy_id][asset_name] - b.multi_asset.get(
            policy_id, Asset()
        ).get(asset_name, 0)

    def _improve(
        self,
        selected: List[UTxO],
        selected_amount: Value,
        candidates: List[UTxO],
        ideal: Value,
        upper_bound: Value,
        max_input_count: Optional[int],
    ) -> Value:
        """Randomly try candidates, keeping each one that brings the target asset closer to ``ideal``
        without going over ``upper_bound``. Every tried candidate is removed from ``candidates``."""
        while candidates and self._find_diff_by_former(ideal, selected_amount) > 0:
            if max_input_count is not None and len(selected) > max_input_count:
                raise MaxInputCountExceededException(
                    f"Max input count: {max_input_count} exceeded!"
                )

            i = self._get_next_random(candidates)
            to_add = candidates.pop(i)
            new_amount = selected_amount + to_add.output.amount
            if (
                abs(self._find_diff_by_former(ideal, new_amount))
                < abs(self._find_diff_by_former(ideal, selected_amount))
                and self._find_diff_by_former(upper_bound, new_amount) >= 0
            ):
                selected.append(to_add)
                selected_amount = new_amount
        return selected_amount

    def select(
        self,
        utxos: List[UTxO],
        outputs: List[TransactionOutput],
        context: ChainContext,
        max_input_count: Optional[int] = None,
        include_max_fee: bool = True,
        respect_min_utxo: bool = True,
    ) -> Tuple[List[UTxO], Value]:
        remaining = list(utxos)
        request_sum = _requested_total(outputs, context, include_max_fee)

        request_sorted = sorted(
            self._split_by_asset(request_sum),
            key=self._get_single_asset_val,
            reverse=True,
        )

        # Phase 1 - random select
        selected: List[UTxO] = []
        selected_amount = Value()
        for r in request_sorted:
            selected_amount = self._random_select_subset(
                r, remaining, selected, selected_amount
            )
            if max_input_count is not None and len(selected) > max_input_count:
                raise MaxInputCountExceededException(
                    f"Max input count: {max_input_count} exceeded!"
                )

        # Phase 2 - improve current selection
        for request in reversed(request_sorted):
            ideal = request + request
            upper_bound = ideal + request
            num_selected_before = len(selected)
            try:
                selected_amount = self._improve(
                    selected,
                    selected_amount,
                    list(remaining),
                    ideal,
                    upper_bound,
                    max_input_count,
                )
            except UTxOSelectionException as e:
                logger.debug(f"Stopped improving selection: {e}")
                # UTxOs accepted before the failure stay selected.
                selected_amount = sum(
                    (u.output.amount for u in selected[num_selected_before:]),
                    selected_amount,
                )
            new_selected = selected[num_selected_before:]
            remaining = [utxo for utxo in remaining if utxo not in new_selected]

        if respect_min_utxo:
            for u in self._top_up(
                remaining,
                selected,
                selected_amount - request_sum,
                context,
                max_input_count,
            ):
                selected.append(u)
                selected_amount += u.output.amount

        logger.debug(f"Random-improve selected {len(selected)} UTxOs: {selected_amount}")
        return selected, selected_amount - request_sum
