from typing import Dict, List, Union

import pytest

from pytxbuilder.backend.base import ChainContext, ProtocolParameters, StakeAddressInfo
from pytxbuilder.network import Network
from pytxbuilder.plutus import ExecutionUnits
from pytxbuilder.serialization import CBORSerializable
from pytxbuilder.transaction import TransactionInput, TransactionOutput, UTxO, Value

TEST_ADDR = "addr_test1vr2p8st5t5cxqglyjky7vk98k7jtfhdpvhl4e97cezuhn0cqcexl7"


def check_two_way_cbor(serializable: CBORSerializable):
    restored = serializable.from_cbor(serializable.to_cbor())
    assert restored == serializable


def sum_amounts(amounts) -> Value:
    total = Value()
    for a in amounts:
        total += a
    return total


class FixedChainContext(ChainContext):

    _protocol_param = ProtocolParameters(
        min_fee_coefficient=44,
        min_fee_constant=155381,
        max_tx_size=16384,
        max_val_size=5000,
        key_deposit=2000000,
        pool_deposit=500000000,
        coins_per_utxo_word=34482,
        coins_per_utxo_byte=4310,
        price_mem=0.0577,
        price_step=0.0000721,
        max_tx_ex_mem=10000000,
        max_tx_ex_steps=10000000000,
        collateral_percent=150,
        max_collateral_inputs=3,
        cost_models={},
    )

    _last_block_slot = 2000

    _stake_address_infos: List[StakeAddressInfo] = []

    submitted: List[bytes] = []

    @property
    def protocol_param(self) -> ProtocolParameters:
        """Get current protocol parameters"""
        return self._protocol_param

    # Create setter function to allow parameter modifications
    # for testing purposes
    @protocol_param.setter
    def protocol_param(self, protocol_param: ProtocolParameters):
        self._protocol_param = protocol_param

    @property
    def network(self) -> Network:
        """Get current network"""
        return Network.TESTNET

    @property
    def epoch(self) -> int:
        """Current epoch number"""
        return 300

    @property
    def last_block_slot(self) -> int:
        """Slot number of last block"""
        return self._last_block_slot

    def _utxos(self, address: str) -> List[UTxO]:
        tx_in1 = TransactionInput.from_primitive([b"1" * 32, 0])
        tx_in2 = TransactionInput.from_primitive([b"2" * 32, 1])
        tx_out1 = TransactionOutput.from_primitive([address, 5000000])
        tx_out2 = TransactionOutput.from_primitive(
            [address, [6000000, {b"1" * 28: {b"Token1": 1, b"Token2": 2}}]]
        )
        return [UTxO(tx_in1, tx_out1), UTxO(tx_in2, tx_out2)]

    def _stake_address_info(self, address: str) -> List[StakeAddressInfo]:
        return list(self._stake_address_infos)

    def submit_tx_cbor(self, cbor: Union[bytes, str]):
        self.submitted = self.submitted + [cbor]

    def evaluate_tx_cbor(self, cbor: Union[bytes, str]) -> Dict[str, ExecutionUnits]:
        return {
            "spend:0": ExecutionUnits(399882, 175940720),
            "spend:1": ExecutionUnits(399882, 175940720),
            "mint:0": ExecutionUnits(200000, 80000000),
            "withdrawal:0": ExecutionUnits(100000, 40000000),
            "certificate:0": ExecutionUnits(100000, 40000000),
        }


@pytest.fixture
def chain_context():
    return FixedChainContext()
