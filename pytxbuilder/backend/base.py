"""Read and write access to the chain, as far as transaction building needs it."""

from dataclasses import dataclass, field
from fractions import Fraction
from typing import Dict, List, Optional, Union

from pytxbuilder.address import Address
from pytxbuilder.exception import InvalidArgumentException
from pytxbuilder.logging import log_state
from pytxbuilder.network import Network
from pytxbuilder.plutus import ExecutionUnits
from pytxbuilder.transaction import Transaction, UTxO
from pytxbuilder.types import typechecked

__all__ = [
    "ProtocolParameters",
    "StakeAddressInfo",
    "ChainContext",
    "ALONZO_COINS_PER_UTXO_WORD",
]

# Lovelace per word of the Alonzo era, used when a backend no longer reports the value.
ALONZO_COINS_PER_UTXO_WORD = 34482


@dataclass(frozen=True)
class ProtocolParameters:
    """The subset of protocol parameters the builder reads.

    Fees are ``min_fee_coefficient * size + min_fee_constant`` plus script execution and
    reference script costs. Minimum output values use ``coins_per_utxo_byte``, or
    ``coins_per_utxo_word`` for the pre-Alonzo bundle rule.
    """

    min_fee_coefficient: int

    min_fee_constant: int

    max_tx_size: int

    max_val_size: int

    key_deposit: int

    pool_deposit: int

    coins_per_utxo_word: int

    coins_per_utxo_byte: int

    price_mem: Fraction

    price_step: Fraction

    max_tx_ex_mem: int

    max_tx_ex_steps: int

    collateral_percent: int

    max_collateral_inputs: int

    cost_models: Dict[str, Dict[str, int]] = field(default_factory=dict)
    """Per language ("PlutusV1", "PlutusV2", "PlutusV3"), parameter name to cost."""

    maximum_reference_scripts_size: Optional[Dict[str, int]] = None
    """``{"bytes": n}``, the cap on reference script bytes a transaction may use."""

    min_fee_reference_scripts: Optional[Dict[str, float]] = None
    """``{"base", "range", "multiplier"}`` of the tiered reference script price."""


@dataclass(frozen=True)
class StakeAddressInfo:
    """What the chain knows about a stake address."""

    address: str

    active: bool

    active_epoch: Optional[int] = None

    reward_account_balance: int = 0

    stake_delegation: Optional[str] = None
    """Bech32 pool id."""

    vote_delegation: Optional[str] = None


def _as_cbor(tx: Union[Transaction, bytes, str]) -> Union[bytes, str]:
    if isinstance(tx, Transaction):
        return tx.to_cbor()
    if isinstance(tx, (bytes, str)):
        return tx
    raise InvalidArgumentException(
        f"Invalid transaction type: {type(tx)}, expected Transaction, bytes, or str"
    )


@typechecked
class ChainContext:
    """Where the builder reads parameters and UTxOs from, and sends transactions to.

    Backends override the properties and the underscored hooks. The public methods
    normalize their arguments before delegating to those hooks.
    """

    @property
    def protocol_param(self) -> ProtocolParameters:
        raise NotImplementedError()

    @property
    def network(self) -> Network:
        raise NotImplementedError()

    @property
    def epoch(self) -> int:
        raise NotImplementedError()

    @property
    def last_block_slot(self) -> int:
        """Slot of the chain tip, the base of automatic validity intervals."""
        raise NotImplementedError()

    def utxos(self, address: Union[str, Address]) -> List[UTxO]:
        """UTxOs sitting at ``address``. Unknown addresses have none."""
        return self._utxos(str(address))

    def _utxos(self, address: str) -> List[UTxO]:
        raise NotImplementedError()

    def stake_address_info(self, address: Union[str, Address]) -> List[StakeAddressInfo]:
        """Registration state of a stake address. Empty when the chain has never seen it."""
        return self._stake_address_info(str(address))

    def _stake_address_info(self, address: str) -> List[StakeAddressInfo]:
        raise NotImplementedError()

    @log_state
    def submit_tx(self, tx: Union[Transaction, bytes, str]):
        """Send a signed transaction.

        Raises:
            :class:`InvalidArgumentException`: When ``tx`` is neither a transaction nor its CBOR.
            :class:`TransactionFailedException`: When the backend rejects the transaction.
        """
        return self.submit_tx_cbor(_as_cbor(tx))

    def submit_tx_cbor(self, cbor: Union[bytes, str]):
        raise NotImplementedError()

    def evaluate_tx(
        self, tx: Union[Transaction, bytes, str]
    ) -> Dict[str, ExecutionUnits]:
        """Execution units of every redeemer in ``tx``, keyed like ``"spend:0"``."""
        return self.evaluate_tx_cbor(_as_cbor(tx))

    def evaluate_tx_cbor(self, cbor: Union[bytes, str]) -> Dict[str, ExecutionUnits]:
        raise NotImplementedError()
