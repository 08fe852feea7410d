from dataclasses import replace

import pytest

from pytxbuilder.address import Address
from pytxbuilder.change import (
    adding_asset_makes_output_overflow,
    calc_change,
    pack_tokens_for_change,
)
from pytxbuilder.exception import InsufficientBalanceException
from pytxbuilder.hash import ScriptHash
from pytxbuilder.transaction import (
    AssetName,
    MultiAsset,
    TransactionInput,
    TransactionOutput,
    UTxO,
    Value,
    Withdrawals,
)
from pytxbuilder.utils import min_lovelace_post_alonzo
from test.pytxbuilder.util import TEST_ADDR, chain_context, sum_amounts  # noqa: F401

ADDRESS = Address.from_primitive(TEST_ADDR)

POLICIES = [bytes([i]) * 28 for i in range(1, 4)]


def make_utxo(index: int, amount) -> UTxO:
    return UTxO(
        TransactionInput.from_primitive([b"5" * 32, index]),
        TransactionOutput.from_primitive([TEST_ADDR, amount]),
    )


def three_policy_utxo() -> UTxO:
    return make_utxo(
        0, [10000000, {p: {f"Token{i}".encode(): 1} for i, p in enumerate(POLICIES)}]
    )


def test_ada_only_change(chain_context):
    inputs = [make_utxo(0, 5000000)]
    outputs = [TransactionOutput(ADDRESS, 1000000)]

    changes = calc_change(chain_context, 200000, inputs, outputs, ADDRESS)

    assert changes == [TransactionOutput(ADDRESS, Value(3800000))]


def test_change_keeps_unrequested_assets(chain_context):
    inputs = chain_context.utxos(TEST_ADDR)
    outputs = [TransactionOutput(ADDRESS, 1000000)]

    changes = calc_change(chain_context, 200000, inputs, outputs, ADDRESS)

    assert len(changes) == 1
    assert changes[0].amount == Value.from_primitive(
        [9800000, {b"1" * 28: {b"Token1": 1, b"Token2": 2}}]
    )


def test_change_balances_inputs_and_outputs(chain_context):
    inputs = chain_context.utxos(TEST_ADDR)
    outputs = [
        TransactionOutput.from_primitive(
            [TEST_ADDR, [2000000, {b"1" * 28: {b"Token1": 1}}]]
        )
    ]

    changes = calc_change(chain_context, 170000, inputs, outputs, ADDRESS)

    assert sum_amounts(c.amount for c in changes) + outputs[0].amount + 170000 == (
        sum_amounts(i.output.amount for i in inputs)
    )


def test_insufficient_coin(chain_context):
    inputs = [make_utxo(0, 1000000)]
    outputs = [TransactionOutput(ADDRESS, 1000000)]

    with pytest.raises(InsufficientBalanceException):
        calc_change(chain_context, 200000, inputs, outputs, ADDRESS)


def test_missing_asset(chain_context):
    inputs = [make_utxo(0, 10000000)]
    outputs = [
        TransactionOutput.from_primitive(
            [TEST_ADDR, [2000000, {b"1" * 28: {b"Token1": 1}}]]
        )
    ]

    with pytest.raises(InsufficientBalanceException):
        calc_change(chain_context, 200000, inputs, outputs, ADDRESS)


def test_change_too_small(chain_context):
    inputs = [make_utxo(0, 1500000)]
    outputs = [TransactionOutput(ADDRESS, 1000000)]

    with pytest.raises(InsufficientBalanceException):
        calc_change(chain_context, 200000, inputs, outputs, ADDRESS)


def test_change_too_small_allowed(chain_context):
    inputs = [make_utxo(0, 1500000)]
    outputs = [TransactionOutput(ADDRESS, 1000000)]

    changes = calc_change(
        chain_context, 200000, inputs, outputs, ADDRESS, respect_min_utxo=False
    )

    assert changes == [TransactionOutput(ADDRESS, Value(300000))]


def test_mint_and_burn(chain_context):
    inputs = chain_context.utxos(TEST_ADDR)
    outputs = [TransactionOutput(ADDRESS, 1000000)]
    mint = MultiAsset.from_primitive(
        {b"1" * 28: {b"Token1": -1, b"Token3": 5}}
    )

    changes = calc_change(chain_context, 200000, inputs, outputs, ADDRESS, mint=mint)

    assert len(changes) == 1
    assert changes[0].amount == Value.from_primitive(
        [9800000, {b"1" * 28: {b"Token2": 2, b"Token3": 5}}]
    )


def test_burn_more_than_held(chain_context):
    inputs = chain_context.utxos(TEST_ADDR)
    outputs = [TransactionOutput(ADDRESS, 1000000)]
    mint = MultiAsset.from_primitive({b"1" * 28: {b"Token1": -2}})

    with pytest.raises(InsufficientBalanceException):
        calc_change(chain_context, 200000, inputs, outputs, ADDRESS, mint=mint)


def test_withdrawal_deposit_and_donation(chain_context, stake_address):
    inputs = [make_utxo(0, 5000000)]
    outputs = [TransactionOutput(ADDRESS, 1000000)]

    changes = calc_change(
        chain_context,
        200000,
        inputs,
        outputs,
        ADDRESS,
        withdrawals=Withdrawals({bytes(stake_address): 3000000}),
        deposit=2000000,
        donation=500000,
    )

    assert changes == [TransactionOutput(ADDRESS, Value(4300000))]


class TestPacking:
    @pytest.fixture
    def small_value_context(self, chain_context):
        # A single policy with one asset fits, two policies do not
        chain_context.protocol_param = replace(
            chain_context.protocol_param, max_val_size=60
        )
        return chain_context

    def test_no_split_when_fits(self, chain_context):
        change = three_policy_utxo().output.amount

        groups = pack_tokens_for_change(chain_context, ADDRESS, change, 5000)

        assert groups == [change.multi_asset]

    def test_split_by_size(self, small_value_context):
        change = three_policy_utxo().output.amount

        groups = pack_tokens_for_change(small_value_context, ADDRESS, change, 60)

        assert len(groups) == 3
        assert all(len(g) == 1 for g in groups)
        merged = MultiAsset()
        for g in groups:
            merged += g
        assert merged == change.multi_asset

    def test_overflow_check(self, chain_context):
        current = MultiAsset.from_primitive({POLICIES[0]: {b"Token0": 1}})

        assert adding_asset_makes_output_overflow(
            chain_context,
            ADDRESS,
            current,
            ScriptHash(POLICIES[1]),
            AssetName(b"Token1"),
            1,
            60,
        )
        assert not adding_asset_makes_output_overflow(
            chain_context,
            ADDRESS,
            current,
            ScriptHash(POLICIES[1]),
            AssetName(b"Token1"),
            1,
            5000,
        )

    def test_calc_change_spreads_bundle(self, small_value_context):
        inputs = [three_policy_utxo()]
        outputs = [TransactionOutput(ADDRESS, 1000000)]

        changes = calc_change(small_value_context, 200000, inputs, outputs, ADDRESS)

        assert len(changes) == 3
        for c in changes[:-1]:
            assert c.amount.coin == min_lovelace_post_alonzo(
                TransactionOutput(ADDRESS, Value(0, c.amount.multi_asset)),
                small_value_context,
            )
        assert sum_amounts(c.amount for c in changes) == (
            inputs[0].output.amount - 1200000
        )

    def test_calc_change_not_enough_for_bundles(self, small_value_context):
        inputs = [
            make_utxo(
                0,
                [1500000, {p: {f"Token{i}".encode(): 1} for i, p in enumerate(POLICIES)}],
            )
        ]
        outputs = [TransactionOutput(ADDRESS, 100000)]

        with pytest.raises(InsufficientBalanceException):
            calc_change(small_value_context, 200000, inputs, outputs, ADDRESS)
