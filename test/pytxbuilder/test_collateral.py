import pytest

from pytxbuilder.address import Address
from pytxbuilder.collateral import (
    collateral_return,
    required_collateral,
    select_collateral,
    should_add_collateral_return,
)
from pytxbuilder.exception import InsufficientBalanceException
from pytxbuilder.hash import ScriptHash
from pytxbuilder.network import Network
from pytxbuilder.transaction import TransactionInput, TransactionOutput, UTxO, Value
from pytxbuilder.utils import max_tx_fee
from test.pytxbuilder.util import TEST_ADDR, chain_context  # noqa: F401

ADDRESS = Address.from_primitive(TEST_ADDR)

SCRIPT_ADDRESS = Address(ScriptHash(b"9" * 28), network=Network.TESTNET)


def make_utxo(index: int, amount, address=TEST_ADDR) -> UTxO:
    return UTxO(
        TransactionInput.from_primitive([b"c" * 32, index]),
        TransactionOutput(
            address if isinstance(address, Address) else Address.from_primitive(address),
            Value.from_primitive(amount),
        ),
    )


FIVE_ADA = make_utxo(0, 5000000)
TEN_ADA = make_utxo(1, 10000000)
TOKENS = make_utxo(2, [3000000, {b"1" * 28: {b"Token1": 1}}])
TWO_ADA = make_utxo(3, 2000000)
SCRIPT_LOCKED = make_utxo(4, 100000000, SCRIPT_ADDRESS)


def test_required_collateral_rounds_up(chain_context):
    expected = (max_tx_fee(chain_context) * 150 + 99) // 100
    assert required_collateral(chain_context) == expected


def test_required_collateral_grows_with_reference_scripts(chain_context):
    assert required_collateral(chain_context, 0) <= required_collateral(
        chain_context, 1000
    )


@pytest.mark.parametrize(
    "amount,threshold,expected",
    [
        (Value(1000000), 1000000, False),
        (Value(1000001), 1000000, True),
        (Value(3000000), 5000000, False),
        (Value(0), 1000000, False),
        (Value.from_primitive([0, {b"1" * 28: {b"Token1": 1}}]), 1000000, True),
    ],
)
def test_should_add_collateral_return(amount, threshold, expected):
    assert should_add_collateral_return(amount, threshold) == expected


class TestSelectCollateral:
    def test_prefers_small_and_rich(self, chain_context):
        required = required_collateral(chain_context)

        selected = select_collateral(
            chain_context,
            required,
            ADDRESS,
            [[FIVE_ADA, TOKENS, TWO_ADA, SCRIPT_LOCKED, TEN_ADA]],
        )

        assert selected == [TEN_ADA]

    def test_skips_unusable_and_falls_back_to_address(self, chain_context):
        required = required_collateral(chain_context)

        selected = select_collateral(
            chain_context, required, ADDRESS, [[TWO_ADA, SCRIPT_LOCKED, TOKENS]]
        )

        assert selected == [TOKENS, chain_context.utxos(ADDRESS)[0]]

    def test_later_pool_only_when_needed(self, chain_context):
        required = required_collateral(chain_context)

        selected = select_collateral(
            chain_context, required, ADDRESS, [[TEN_ADA], [FIVE_ADA]]
        )

        assert selected == [TEN_ADA]

    def test_second_pool_completes_selection(self, chain_context):
        required = required_collateral(chain_context)

        selected = select_collateral(
            chain_context, required, ADDRESS, [[TOKENS], [TOKENS, FIVE_ADA]]
        )

        assert selected == [TOKENS, FIVE_ADA]

    def test_not_enough_candidates(self, chain_context):
        selected = select_collateral(
            chain_context, 10**12, ADDRESS, [[FIVE_ADA, TEN_ADA]]
        )

        with pytest.raises(InsufficientBalanceException):
            collateral_return(chain_context, selected, 10**12, ADDRESS)


class TestCollateralReturn:
    def test_return_output(self, chain_context):
        required = required_collateral(chain_context)

        output, total = collateral_return(chain_context, [TEN_ADA], required, ADDRESS)

        assert total == required
        assert output == TransactionOutput(ADDRESS, Value(10000000 - required))

    def test_leftover_too_small(self, chain_context):
        required = required_collateral(chain_context)
        collateral = make_utxo(5, required + 500000)

        assert collateral_return(chain_context, [collateral], required, ADDRESS) == (
            None,
            None,
        )

    def test_insufficient(self, chain_context):
        required = required_collateral(chain_context)

        with pytest.raises(InsufficientBalanceException):
            collateral_return(
                chain_context, [make_utxo(5, required - 1)], required, ADDRESS
            )

    def test_tokens_need_min_lovelace(self, chain_context):
        required = required_collateral(chain_context)
        collateral = make_utxo(5, [required + 100000, {b"1" * 28: {b"Token1": 1}}])

        with pytest.raises(InsufficientBalanceException):
            collateral_return(chain_context, [collateral], required, ADDRESS)

    def test_custom_threshold(self, chain_context):
        required = required_collateral(chain_context)

        assert collateral_return(
            chain_context, [TEN_ADA], required, ADDRESS, threshold=20000000
        ) == (None, None)
