"""Chain access through the `Blockfrost <https://blockfrost.io/>`_ HTTP API."""

import os
import tempfile
import time
from contextlib import contextmanager
from fractions import Fraction
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

from blockfrost import ApiError, ApiUrls, BlockFrostApi
from blockfrost.utils import Namespace
from cachetools import LRUCache, TTLCache

from pytxbuilder.address import Address
from pytxbuilder.backend.base import (
    ALONZO_COINS_PER_UTXO_WORD,
    ChainContext,
    ProtocolParameters,
    StakeAddressInfo,
)
from pytxbuilder.cbor import cbor2
from pytxbuilder.exception import DeserializeException, TransactionFailedException
from pytxbuilder.hash import SCRIPT_HASH_SIZE, DatumHash
from pytxbuilder.logging import logger
from pytxbuilder.nativescript import NativeScript
from pytxbuilder.network import Network
from pytxbuilder.plutus import ExecutionUnits, PlutusScript, ScriptType, script_hash
from pytxbuilder.serialization import RawCBOR
from pytxbuilder.transaction import TransactionInput, TransactionOutput, UTxO, Value

__all__ = ["BlockFrostChainContext"]

# Blockfrost only reports the base price of reference scripts, the tiering is fixed by the ledger.
_REF_SCRIPT_FEE_RANGE = 25600
_REF_SCRIPT_FEE_MULTIPLIER = 1.2
_MAX_REF_SCRIPTS_SIZE = 200000


def _none_if_missing(call: Callable, *args, **kwargs) -> Any:
    """Run an API call, turning a 404 answer into ``None``."""
    try:
        return call(*args, **kwargs)
    except ApiError as e:
        if e.status_code == 404:
            return None
        raise


@contextmanager
def _staged(payload: Union[bytes, str]) -> Iterator[str]:
    """Path of a temporary file holding ``payload``. The API uploads transactions from files."""
    mode = "wb" if isinstance(payload, bytes) else "w"
    with tempfile.NamedTemporaryFile(mode=mode, delete=False) as f:
        f.write(payload)
    try:
        yield f.name
    finally:
        os.remove(f.name)


def _to_protocol_parameters(params: Namespace) -> ProtocolParameters:
    cost_models = vars(params.cost_models) if params.cost_models else {}
    return ProtocolParameters(
        min_fee_coefficient=int(params.min_fee_a),
        min_fee_constant=int(params.min_fee_b),
        max_tx_size=int(params.max_tx_size),
        max_val_size=int(params.max_val_size),
        key_deposit=int(params.key_deposit),
        pool_deposit=int(params.pool_deposit),
        # Gone since Babbage
        coins_per_utxo_word=int(params.coins_per_utxo_word or 0)
        or ALONZO_COINS_PER_UTXO_WORD,
        coins_per_utxo_byte=int(params.coins_per_utxo_size),
        price_mem=Fraction(str(params.price_mem)),
        price_step=Fraction(str(params.price_step)),
        max_tx_ex_mem=int(params.max_tx_ex_mem),
        max_tx_ex_steps=int(params.max_tx_ex_steps),
        collateral_percent=int(params.collateral_percent),
        max_collateral_inputs=int(params.max_collateral_inputs),
        cost_models={
            language: dict(vars(costs)) for language, costs in cost_models.items()
        },
        maximum_reference_scripts_size={"bytes": _MAX_REF_SCRIPTS_SIZE},
        min_fee_reference_scripts={
            "base": params.min_fee_ref_script_cost_per_byte,
            "range": _REF_SCRIPT_FEE_RANGE,
            "multiplier": _REF_SCRIPT_FEE_MULTIPLIER,
        },
    )


def _to_value(amount: List[Namespace]) -> Value:
    coin = 0
    assets: Dict[bytes, Dict[bytes, int]] = {}
    for item in amount:
        if item.unit == "lovelace":
            coin = int(item.quantity)
            continue
        unit = bytes.fromhex(item.unit)
        policy, name = unit[:SCRIPT_HASH_SIZE], unit[SCRIPT_HASH_SIZE:]
        assets.setdefault(policy, {})[name] = int(item.quantity)
    return Value.from_primitive([coin, assets])


class BlockFrostChainContext(ChainContext):
    """Chain context backed by a Blockfrost project.

    Protocol parameters are fetched once per epoch. The chain tip is remembered for a
    second, and UTxO lookups are cached per tip for ``utxo_cache_ttl`` seconds.

    Args:
        project_id (str): Blockfrost project id.
        base_url (str): API root, one of :class:`blockfrost.ApiUrls`. Defaults to preprod.
            Mainnet is detected from the url.
        utxo_cache_ttl (float): Seconds a UTxO lookup stays cached.
        utxo_cache_size (int): Number of cached UTxO lookups.
    """

    def __init__(
        self,
        project_id: str,
        base_url: Optional[str] = None,
        utxo_cache_ttl: float = 20,
        utxo_cache_size: int = 1000,
    ):
        base_url = base_url or ApiUrls.preprod.value
        self._network = Network.MAINNET if "mainnet" in base_url else Network.TESTNET
        self.api = BlockFrostApi(project_id=project_id, base_url=base_url)
        self._epoch_info: Namespace = self.api.epoch_latest()
        self._params_by_epoch: LRUCache = LRUCache(maxsize=2)
        self._tip: TTLCache = TTLCache(maxsize=1, ttl=1)
        self._utxo_cache: TTLCache = TTLCache(
            maxsize=utxo_cache_size, ttl=utxo_cache_ttl
        )

    @property
    def network(self) -> Network:
        return self._network

    @property
    def epoch(self) -> int:
        if time.time() >= self._epoch_info.end_time:
            self._epoch_info = self.api.epoch_latest()
            logger.debug(f"Entered epoch {self._epoch_info.epoch}")
        return int(self._epoch_info.epoch)

    @property
    def last_block_slot(self) -> int:
        if "slot" not in self._tip:
            self._tip["slot"] = int(self.api.block_latest().slot)
        return self._tip["slot"]

    @property
    def protocol_param(self) -> ProtocolParameters:
        epoch = self.epoch
        if epoch not in self._params_by_epoch:
            self._params_by_epoch[epoch] = _to_protocol_parameters(
                self.api.epoch_latest_parameters()
            )
        return self._params_by_epoch[epoch]

    def _reference_script(self, hash_hex: str) -> ScriptType:
        kind = self.api.script(hash_hex).type
        if not kind.lower().startswith("plutusv"):
            script_json = self.api.script_json(hash_hex, return_type="json")["json"]
            return NativeScript.from_dict(script_json)

        version = int(kind[-1])
        raw = bytes.fromhex(self.api.script_cbor(hash_hex).cbor)
        script = PlutusScript.from_version(version, raw)
        if str(script_hash(script)) != hash_hex:
            # Served wrapped in one more CBOR byte string
            script = PlutusScript.from_version(version, cbor2.loads(raw))
        if str(script_hash(script)) != hash_hex:
            raise DeserializeException(f"Script does not match its hash {hash_hex}")
        return script

    def _to_utxo(self, owner: Address, result: Namespace) -> UTxO:
        inline_datum = getattr(result, "inline_datum", None)
        reference_script_hash = getattr(result, "reference_script_hash", None)
        output = TransactionOutput(
            owner,
            amount=_to_value(result.amount),
            datum_hash=(
                DatumHash.from_primitive(result.data_hash)
                if result.data_hash and not inline_datum
                else None
            ),
            datum=RawCBOR(bytes.fromhex(inline_datum)) if inline_datum else None,
            script=(
                self._reference_script(reference_script_hash)
                if reference_script_hash
                else None
            ),
        )
        return UTxO(
            TransactionInput.from_primitive([result.tx_hash, result.output_index]),
            output,
        )

    def _utxos(self, address: str) -> List[UTxO]:
        key = (self.last_block_slot, address)
        if key not in self._utxo_cache:
            results = _none_if_missing(
                self.api.address_utxos, address, gather_pages=True
            )
            owner = Address.from_primitive(address)
            self._utxo_cache[key] = [self._to_utxo(owner, r) for r in results or []]
        return self._utxo_cache[key]

    def _stake_address_info(self, address: str) -> List[StakeAddressInfo]:
        account = _none_if_missing(self.api.accounts, address)
        if account is None:
            return []
        return [
            StakeAddressInfo(
                address=account.stake_address,
                active=bool(account.active),
                active_epoch=account.active_epoch,
                reward_account_balance=int(account.withdrawable_amount),
                stake_delegation=account.pool_id,
                vote_delegation=getattr(account, "drep_id", None),
            )
        ]

    def submit_tx_cbor(self, cbor: Union[bytes, str]) -> str:
        """Submit serialized transaction bytes and return the transaction id.

        Raises:
            :class:`TransactionFailedException`: When Blockfrost refuses the transaction.
        """
        payload = bytes.fromhex(cbor) if isinstance(cbor, str) else cbor
        with _staged(payload) as path:
            try:
                return self.api.transaction_submit(path)
            except ApiError as e:
                raise TransactionFailedException(
                    f"Submission rejected with status {e.status_code}: {e.message}"
                ) from e

    def evaluate_tx_cbor(self, cbor: Union[bytes, str]) -> Dict[str, ExecutionUnits]:
        """Execution units per redeemer as evaluated by Blockfrost's Ogmios endpoint.

        Raises:
            :class:`TransactionFailedException`: When the evaluation reports a failure.
        """
        payload = cbor.hex() if isinstance(cbor, bytes) else cbor
        with _staged(payload) as path:
            response = self.api.transaction_evaluate(path)

        evaluation = getattr(getattr(response, "result", None), "EvaluationResult", None)
        if evaluation is None:
            raise TransactionFailedException(response)
        return {
            tag: ExecutionUnits(units.memory, units.steps)
            for tag, units in vars(evaluation).items()
        }
