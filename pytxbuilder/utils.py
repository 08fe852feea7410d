"""Fee, minimum value and script data hash calculations."""

from __future__ import annotations

import math
from typing import Dict, List, Optional, Union

from nacl.encoding import RawEncoder
from nacl.hash import blake2b

from pytxbuilder.backend.base import ChainContext
from pytxbuilder.cbor import cbor2
from pytxbuilder.hash import SCRIPT_DATA_HASH_SIZE, SCRIPT_HASH_SIZE, ScriptDataHash
from pytxbuilder.plutus import CostModels, Datum, RedeemerMap, Redeemers
from pytxbuilder.serialization import default_encoder
from pytxbuilder.transaction import MultiAsset, TransactionOutput, Value

__all__ = [
    "fee",
    "max_tx_fee",
    "bundle_size",
    "min_lovelace",
    "min_lovelace_pre_alonzo",
    "min_lovelace_post_alonzo",
    "script_data_hash",
    "tiered_reference_script_fee",
]

_MIN_UTXO_OVERHEAD = 160
_UTXO_ENTRY_SIZE_WITHOUT_VAL = 27
_DATA_HASH_SIZE_IN_WORDS = 10


def tiered_reference_script_fee(context: ChainContext, scripts_size: int) -> int:
    """Fee charged for the reference scripts a transaction uses.

    The first ``range`` bytes are billed at ``base`` per byte, every following ``range`` bytes at
    the previous rate times ``multiplier``.

    Args:
        context (ChainContext): A chain context.
        scripts_size (int): Total size of reference scripts in bytes.

    Returns:
        int: Fee for reference scripts, 0 when the protocol does not price them.

    Raises:
        ValueError: If scripts size exceeds maximum allowed size.
    """
    params = context.protocol_param
    if (
        params.maximum_reference_scripts_size is None
        or params.min_fee_reference_scripts is None
    ):
        return 0

    max_size = params.maximum_reference_scripts_size["bytes"]
    if scripts_size > max_size:
        raise ValueError(
            f"Reference scripts size: {scripts_size} exceeds maximum allowed size ({max_size})."
        )

    total = 0.0
    if scripts_size:
        b = params.min_fee_reference_scripts["base"]
        r = math.ceil(params.min_fee_reference_scripts["range"])
        m = params.min_fee_reference_scripts["multiplier"]

        while scripts_size > r:
            total += b * r
            scripts_size -= r
            b = b * m

        total += b * scripts_size

    return math.ceil(total)


def fee(
    context: ChainContext,
    length: int,
    exec_steps: int = 0,
    max_mem_unit: int = 0,
    ref_script_size: int = 0,
) -> int:
    """Calculate fee based on the length of a transaction's CBOR bytes and script execution.

    Args:
        context (ChainContext): A chain context.
        length (int): The length of CBOR bytes, which could usually be derived
            by `len(tx.to_cbor())`.
        exec_steps (int): Number of execution steps run by plutus scripts in the transaction.
        max_mem_unit (int): Max number of memory units run by plutus scripts in the transaction.
        ref_script_size (int): Size of referenced scripts in the transaction.

    Return:
        int: Minimum acceptable transaction fee.
    """
    params = context.protocol_param
    return int(
        math.ceil(length * params.min_fee_coefficient)
        + math.ceil(params.min_fee_constant)
        + math.ceil(exec_steps * params.price_step)
        + math.ceil(max_mem_unit * params.price_mem)
        + tiered_reference_script_fee(context, ref_script_size)
    )


def max_tx_fee(context: ChainContext, ref_script_size: int = 0) -> int:
    """Largest fee a transaction could need: maximum size and maximum execution units.

    Args:
        context (ChainContext): A chain context.
        ref_script_size (int): Size of reference scripts in the transaction.

    Returns:
        int: Maximum possible tx fee in lovelace.
    """
    return fee(
        context,
        context.protocol_param.max_tx_size,
        context.protocol_param.max_tx_ex_steps,
        context.protocol_param.max_tx_ex_mem,
        ref_script_size,
    )


def bundle_size(multi_asset: MultiAsset) -> int:
    """Size of a multi-asset bundle in 8-byte words.

    Asset names are counted once even when they appear under several policies.
    """
    num_policies = len(multi_asset)
    num_assets = 0
    total_asset_name_len = 0

    unique_assets = set()
    for p in multi_asset:
        num_assets += len(multi_asset[p])
        for n in multi_asset[p]:
            if n.payload not in unique_assets:
                unique_assets.add(n.payload)
                total_asset_name_len += len(n.payload)

    byte_len = num_assets * 12 + total_asset_name_len + num_policies * SCRIPT_HASH_SIZE
    return 6 + (byte_len + 7) // 8


def min_lovelace(
    context: ChainContext,
    output: Optional[TransactionOutput] = None,
    amount: Optional[Union[int, Value]] = None,
    has_datum: bool = False,
) -> int:
    """Minimum lovelace a transaction output needs to hold.

    With ``output`` the post-Alonzo rule (encoded size) applies, otherwise the pre-Alonzo rule
    (bundle size in words) is applied to ``amount``.

    Args:
        context (ChainContext): A chain context.
        output (TransactionOutput): A transaction output (for post-alonzo transactions).
        amount (Union[int, Value]): Amount from a transaction output (for pre-alonzo transactions).
        has_datum (bool): Whether the transaction output contains datum hash (for pre-alonzo transactions).

    Returns:
        int: Minimum required lovelace amount for this transaction output.
    """
    if output is not None:
        return min_lovelace_post_alonzo(output, context)
    return min_lovelace_pre_alonzo(amount, context, has_datum)


def min_lovelace_pre_alonzo(
    amount: Union[int, Value, None], context: ChainContext, has_datum: bool = False
) -> int:
    if amount is None or isinstance(amount, int) or not amount.multi_asset:
        return context.protocol_param.coins_per_utxo_byte

    finalized_size = (
        _UTXO_ENTRY_SIZE_WITHOUT_VAL
        + bundle_size(amount.multi_asset)
        + (_DATA_HASH_SIZE_IN_WORDS if has_datum else 0)
    )
    return finalized_size * context.protocol_param.coins_per_utxo_word


def min_lovelace_post_alonzo(output: TransactionOutput, context: ChainContext) -> int:
    """Minimum lovelace of an output under the Babbage rule.

    ``(160 + size of the serialized output) * coins_per_utxo_byte``, where the output is measured
    in its map layout and with 1 ADA standing in for a zero coin. ``output`` is not modified.

    Args:
        output (TransactionOutput): A transaction output.
        context (ChainContext): A chain context.

    Returns:
        int: Minimum required lovelace amount for this transaction output.
    """
    amount = output.amount.copy()
    if amount.coin == 0:
        amount.coin = 1_000_000

    tmp_out = output.copy(amount)
    tmp_out.post_alonzo = True

    return (
        _MIN_UTXO_OVERHEAD + len(tmp_out.to_cbor())
    ) * context.protocol_param.coins_per_utxo_byte


def script_data_hash(
    redeemers: Optional[Redeemers] = None,
    datums: Optional[List[Datum]] = None,
    cost_models: Optional[Union[CostModels, Dict]] = None,
) -> ScriptDataHash:
    """Calculate plutus script data hash

    Args:
        redeemers (Optional[Redeemers]): Redeemers to include.
        datums (Optional[List[Datum]]): Datums to include.
        cost_models (Optional[CostModels]): Cost models of the languages the transaction uses.

    Returns:
        ScriptDataHash: Plutus script data hash
    """
    if redeemers is None:
        redeemers = RedeemerMap()
        cost_models = {}
    elif len(redeemers) == 0 or cost_models is None:
        cost_models = {}

    redeemer_bytes = cbor2.dumps(redeemers, default=default_encoder)
    datum_bytes = cbor2.dumps(datums, default=default_encoder) if datums else b""
    cost_models_bytes = cbor2.dumps(cost_models, default=default_encoder)

    return ScriptDataHash(
        blake2b(
            redeemer_bytes + datum_bytes + cost_models_bytes,
            SCRIPT_DATA_HASH_SIZE,
            encoder=RawEncoder,
        )
    )
