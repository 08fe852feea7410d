from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from pytxbuilder.address import Address, AddressType
from pytxbuilder.backend.base import ChainContext
from pytxbuilder.certificate import (
    EXPLICIT_DEPOSIT_CERTIFICATES,
    STAKE_CREDENTIAL_CERTIFICATES,
    Certificate,
    PoolRegistration,
    PoolRetirement,
    RegDRepCert,
    StakeCredential,
    StakeRegistration,
)
from pytxbuilder.change import calc_change
from pytxbuilder.coinselection import (
    LargestFirstSelector,
    RandomImproveMultiAsset,
    UTxOSelector,
)
from pytxbuilder.collateral import (
    collateral_return,
    required_collateral,
    select_collateral,
)
from pytxbuilder.exception import (
    InvalidArgumentException,
    TransactionBuilderException,
    TransactionTooLargeException,
    UTxOSelectionException,
)
from pytxbuilder.governance import (
    Anchor,
    GovAction,
    GovActionId,
    GovActionIdToVotingProcedure,
    ProposalProcedure,
    Vote,
    Voter,
    VotingProcedure,
    VotingProcedures,
)
from pytxbuilder.hash import DatumHash, ScriptDataHash, ScriptHash, VerificationKeyHash
from pytxbuilder.key import SigningKey, VerificationKey
from pytxbuilder.logging import log_state, logger
from pytxbuilder.metadata import AuxiliaryData
from pytxbuilder.nativescript import NativeScript
from pytxbuilder.plutus import (
    CostModels,
    Datum,
    ExecutionUnits,
    PlutusScript,
    PlutusV1Script,
    PlutusV2Script,
    PlutusV3Script,
    Redeemer,
    RedeemerKey,
    RedeemerMap,
    Redeemers,
    RedeemerTag,
    RedeemerValue,
    ScriptType,
    datum_hash,
    script_hash,
)
from pytxbuilder.transaction import (
    Asset,
    MultiAsset,
    Transaction,
    TransactionBody,
    TransactionInput,
    TransactionOutput,
    UTxO,
    Value,
    Withdrawals,
)
from pytxbuilder.utils import fee, max_tx_fee, min_lovelace_post_alonzo, script_data_hash
from pytxbuilder.witness import TransactionWitnessSet, VerificationKeyWitness

__all__ = ["TransactionBuilder"]

FAKE_VKEY = VerificationKey.from_primitive(
    bytes.fromhex("5797dc2cc919dfec0bb849551ebdf30d96e5cbe0f33f734a87fe826db30f7ef9")
)

# Ed25519 signature of a 32-bytes message (TX hash) will have length of 64
FAKE_TX_SIGNATURE = bytes.fromhex(
    "577ccb5b487b64e396b0976c6f71558e52e44ad254db7d06dfb79843e5441a5d763dd42a"
    "dcf5e8805d70373722ebbce62a58e3f30dd4560b9a898b8ceeab6a03"
)

_MAX_FEE_ITERATIONS = 10


@dataclass
class TransactionBuilder:
    """A class builder that makes it easy to build a transaction.

    Inputs, outputs, scripts and other parts of a transaction are accumulated through the
    ``add_*`` methods. :meth:`build` then selects any missing inputs, indexes redeemers, picks
    collateral, estimates execution units and balances the transaction with a fee and change.

    A builder is meant for a single transaction and is not safe to share between threads.
    """

    context: ChainContext

    utxo_selectors: List[UTxOSelector] = field(
        default_factory=lambda: [LargestFirstSelector(), RandomImproveMultiAsset()]
    )

    execution_memory_buffer: float = 0.2
    """Additional amount of execution memory (in ratio) that will be on top of estimation"""

    execution_step_buffer: float = 0.2
    """Additional amount of execution step (in ratio) that will be added on top of estimation"""

    fee_buffer: Optional[int] = field(default=None)
    """Additional amount of fee (in lovelace) that will be added on top of estimation."""

    ttl: Optional[int] = field(default=None)

    validity_start: Optional[int] = field(default=None)

    auxiliary_data: Optional[AuxiliaryData] = field(default=None)

    native_scripts: Optional[List[NativeScript]] = field(default=None)

    mint: Optional[MultiAsset] = field(default=None)

    required_signers: Optional[List[VerificationKeyHash]] = field(default=None)

    collaterals: List[UTxO] = field(default_factory=list)

    certificates: Optional[List[Certificate]] = field(default=None)

    withdrawals: Optional[Withdrawals] = field(default=None)

    reference_inputs: List[Union[UTxO, TransactionInput]] = field(
        init=False, default_factory=list
    )

    witness_override: Optional[int] = field(default=None)
    """Number of vkey witnesses assumed when estimating the fee, instead of the number of required signers."""

    initial_stake_pool_registration: Optional[bool] = field(default=False)
    """Whether pool registration certificates in this transaction pay the pool deposit."""

    use_redeemer_map: Optional[bool] = field(default=True)
    """Whether to serialize redeemers as a map or a list. Default is True."""

    collateral_return_threshold: int = 1_000_000
    """The minimum amount of lovelace above which
    the remaining collateral (total_collateral_amount - actually_used_amount) will be returned."""

    voting_procedures: Optional[VotingProcedures] = field(init=False, default=None)

    proposal_procedures: Optional[List[ProposalProcedure]] = field(
        init=False, default=None
    )

    donation: Optional[int] = field(init=False, default=None)

    _inputs: List[UTxO] = field(init=False, default_factory=list)

    _potential_inputs: List[UTxO] = field(init=False, default_factory=list)

    _excluded_inputs: List[UTxO] = field(init=False, default_factory=list)

    _input_addresses: List[Union[Address, str]] = field(
        init=False, default_factory=list
    )

    _outputs: List[TransactionOutput] = field(init=False, default_factory=list)

    _fee: int = field(init=False, default=0)

    _datums: Dict[DatumHash, Datum] = field(init=False, default_factory=dict)

    _collateral_return: Optional[TransactionOutput] = field(init=False, default=None)

    _total_collateral: Optional[int] = field(init=False, default=None)

    _inputs_to_redeemers: Dict[UTxO, Redeemer] = field(
        init=False, default_factory=dict
    )

    _minting_script_to_redeemers: List[Tuple[ScriptType, Optional[Redeemer]]] = field(
        init=False, default_factory=list
    )

    _withdrawal_script_to_redeemers: List[Tuple[ScriptType, Optional[Redeemer]]] = (
        field(init=False, default_factory=list)
    )

    _certificate_script_to_redeemers: List[Tuple[ScriptType, Optional[Redeemer]]] = (
        field(init=False, default_factory=list)
    )

    _inputs_to_scripts: Dict[UTxO, ScriptType] = field(
        init=False, default_factory=dict
    )

    _reference_scripts: List[ScriptType] = field(init=False, default_factory=list)

    _should_estimate_execution_units: Optional[bool] = field(init=False, default=None)

    def copy(self) -> TransactionBuilder:
        """Snapshot of this builder.

        Every accumulated collection is copied, and so are redeemers and outputs, which
        :meth:`build` modifies. The chain context and the selectors are shared.
        """
        redeemer_copies: Dict[int, Redeemer] = {
            id(r): r.copy() for r in self._redeemer_list
        }

        def _copy_pairs(pairs):
            return [
                (s, redeemer_copies[id(r)] if r is not None else None) for s, r in pairs
            ]

        builder = TransactionBuilder(
            self.context,
            utxo_selectors=list(self.utxo_selectors),
            execution_memory_buffer=self.execution_memory_buffer,
            execution_step_buffer=self.execution_step_buffer,
            fee_buffer=self.fee_buffer,
            ttl=self.ttl,
            validity_start=self.validity_start,
            auxiliary_data=self.auxiliary_data,
            native_scripts=list(self.native_scripts)
            if self.native_scripts is not None
            else None,
            mint=self.mint.copy() if self.mint is not None else None,
            required_signers=list(self.required_signers)
            if self.required_signers is not None
            else None,
            collaterals=list(self.collaterals),
            certificates=list(self.certificates)
            if self.certificates is not None
            else None,
            withdrawals=Withdrawals(dict(self.withdrawals))
            if self.withdrawals is not None
            else None,
            witness_override=self.witness_override,
            initial_stake_pool_registration=self.initial_stake_pool_registration,
            use_redeemer_map=self.use_redeemer_map,
            collateral_return_threshold=self.collateral_return_threshold,
        )
        builder.reference_inputs = list(self.reference_inputs)
        if self.voting_procedures is not None:
            builder.voting_procedures = VotingProcedures(
                {
                    voter: GovActionIdToVotingProcedure(dict(votes))
                    for voter, votes in self.voting_procedures.items()
                }
            )
        if self.proposal_procedures is not None:
            builder.proposal_procedures = list(self.proposal_procedures)
        builder.donation = self.donation
        builder._inputs = list(self._inputs)
        builder._potential_inputs = list(self._potential_inputs)
        builder._excluded_inputs = list(self._excluded_inputs)
        builder._input_addresses = list(self._input_addresses)
        builder._outputs = [o.copy() for o in self._outputs]
        builder._fee = self._fee
        builder._datums = dict(self._datums)
        builder._collateral_return = (
            self._collateral_return.copy() if self._collateral_return else None
        )
        builder._total_collateral = self._total_collateral
        builder._inputs_to_redeemers = {
            u: redeemer_copies[id(r)] for u, r in self._inputs_to_redeemers.items()
        }
        builder._minting_script_to_redeemers = _copy_pairs(
            self._minting_script_to_redeemers
        )
        builder._withdrawal_script_to_redeemers = _copy_pairs(
            self._withdrawal_script_to_redeemers
        )
        builder._certificate_script_to_redeemers = _copy_pairs(
            self._certificate_script_to_redeemers
        )
        builder._inputs_to_scripts = dict(self._inputs_to_scripts)
        builder._reference_scripts = list(self._reference_scripts)
        builder._should_estimate_execution_units = self._should_estimate_execution_units
        return builder

    def _add_reference_input(self, utxo: Union[UTxO, TransactionInput]):
        if utxo not in self.reference_inputs:
            self.reference_inputs.append(utxo)

    def add_input(self, utxo: UTxO) -> TransactionBuilder:
        """Add a specific UTxO to transaction's inputs.

        Args:
            utxo (UTxO): UTxO to be added.

        Returns:
            TransactionBuilder: Current transaction builder.
        """
        self.inputs.append(utxo)
        if utxo.output.script:
            self._reference_scripts.append(utxo.output.script)
        return self

    def _consolidate_redeemer(self, redeemer: Redeemer):
        if self._should_estimate_execution_units is None:
            if redeemer.ex_units:
                self._should_estimate_execution_units = False
            else:
                self._should_estimate_execution_units = True
                redeemer.ex_units = ExecutionUnits(0, 0)
        else:
            if not self._should_estimate_execution_units and not redeemer.ex_units:
                raise InvalidArgumentException(
                    f"All redeemers need to provide execution units if the firstly "
                    f"added redeemer specifies execution units. \n"
                    f"Added redeemers: {self._redeemer_list} \n"
                    f"New redeemer: {redeemer}"
                )
            if self._should_estimate_execution_units:
                if redeemer.ex_units:
                    raise InvalidArgumentException(
                        f"No redeemer should provide execution units if the firstly "
                        f"added redeemer didn't provide execution units. \n"
                        f"Added redeemers: {self._redeemer_list} \n"
                        f"New redeemer: {redeemer}"
                    )
                redeemer.ex_units = ExecutionUnits(0, 0)

    def _set_redeemer_tag(self, redeemer: Redeemer, tag: RedeemerTag):
        if redeemer.tag is not None and redeemer.tag != tag:
            raise InvalidArgumentException(
                f"Expect the redeemer tag's type to be {tag}, "
                f"but got {redeemer.tag} instead."
            )
        redeemer.tag = tag

    def _resolve_script(
        self, script: Union[UTxO, NativeScript, PlutusScript]
    ) -> ScriptType:
        """Return the script itself, or the reference script held by a UTxO."""
        if isinstance(script, UTxO):
            if script.output.script is None:
                raise InvalidArgumentException(
                    f"Expect the output of the reference UTxO {script.input}"
                    " to have a script, but got None instead."
                )
            self._add_reference_input(script)
            self._reference_scripts.append(script.output.script)
            return script.output.script
        return script

    def add_script_input(
        self,
        utxo: UTxO,
        script: Optional[Union[UTxO, NativeScript, PlutusScript]] = None,
        datum: Optional[Datum] = None,
        redeemer: Optional[Redeemer] = None,
    ) -> TransactionBuilder:
        """Add a script UTxO to transaction's inputs.

        Args:
            utxo (UTxO): Script UTxO to be added.
            script (Optional[Union[UTxO, NativeScript, PlutusScript]]):
                A script. If not provided, the script will be inferred from the input UTxO or looked up
                among the UTxOs at the script address. The script can also be a specific UTxO whose output
                contains a reference script.
            datum (Optional[Datum]): A plutus datum to unlock the UTxO.
            redeemer (Optional[Redeemer]): A plutus redeemer to unlock the UTxO.

        Returns:
            TransactionBuilder: Current transaction builder.
        """
        if not utxo.output.address.address_type.is_script_payment:
            raise InvalidArgumentException(
                f"Expect the output address of utxo to be script type, "
                f"but got {utxo.output.address.address_type} instead."
            )

        if (
            utxo.output.datum_hash
            and datum is not None
            and utxo.output.datum_hash != datum_hash(datum)
        ):
            raise InvalidArgumentException(
                f"Datum hash in transaction output is {utxo.output.datum_hash}, "
                f"but actual datum hash from input datum is {datum_hash(datum)}."
            )
        if (
            datum is not None
            and utxo.output.datum_hash is None
            and utxo.output.datum is not None
        ):
            raise InvalidArgumentException(
                f"Inline Datum found in transaction output {utxo.input}, "
                "so attaching a Datum to the transaction input manually is not allowed."
            )

        if datum is not None:
            self.datums[datum_hash(datum)] = datum

        if redeemer:
            self._set_redeemer_tag(redeemer, RedeemerTag.SPEND)
            self._consolidate_redeemer(redeemer)
            self._inputs_to_redeemers[utxo] = redeemer

        input_script_hash = utxo.output.address.payment_part

        # Scripts that could unlock the input, each with the UTxO holding it, if any
        candidate_scripts: List[Tuple[ScriptType, Optional[UTxO]]] = []
        if utxo.output.script:
            candidate_scripts.append((utxo.output.script, utxo))
        elif not script:
            for i in self.context.utxos(utxo.output.address):
                if i.output.script:
                    candidate_scripts.append((i.output.script, i))
        elif isinstance(script, UTxO):
            if script.output.script is None:
                raise InvalidArgumentException(
                    f"Expect the output of the reference UTxO {script.input}"
                    " to have a script, but got None instead."
                )
            candidate_scripts.append((script.output.script, script))
        else:
            candidate_scripts.append((script, None))

        for candidate_script, candidate_utxo in candidate_scripts:
            if script_hash(candidate_script) != input_script_hash:
                continue

            self._inputs_to_scripts[utxo] = candidate_script
            if candidate_utxo is not None and candidate_utxo != utxo:
                self._add_reference_input(candidate_utxo)
                self._reference_scripts.append(candidate_script)
            break
        else:
            raise InvalidArgumentException(
                f"Cannot find a valid script to fulfill the input UTxO: {utxo.input}. "
                "Supplied scripts do not match the payment part of the input address."
            )

        self.inputs.append(utxo)
        return self

    def add_minting_script(
        self,
        script: Union[UTxO, NativeScript, PlutusScript],
        redeemer: Optional[Redeemer] = None,
    ) -> TransactionBuilder:
        """Add a minting script along with its redeemer to this transaction.

        Args:
            script (Union[UTxO, NativeScript, PlutusScript]): A minting policy, or a UTxO holding it
                as a reference script.
            redeemer (Optional[Redeemer]): A plutus redeemer for the minting policy.

        Returns:
            TransactionBuilder: Current transaction builder.
        """
        if redeemer:
            self._set_redeemer_tag(redeemer, RedeemerTag.MINT)
            self._consolidate_redeemer(redeemer)
        self._minting_script_to_redeemers.append(
            (self._resolve_script(script), redeemer)
        )
        return self

    def add_withdrawal_script(
        self,
        script: Union[UTxO, NativeScript, PlutusScript],
        redeemer: Optional[Redeemer] = None,
    ) -> TransactionBuilder:
        """Add a withdrawal script along with its redeemer to this transaction.

        Args:
            script (Union[UTxO, NativeScript, PlutusScript]): The script guarding the reward address.
            redeemer (Optional[Redeemer]): A plutus redeemer for the withdrawal.

        Returns:
            TransactionBuilder: Current transaction builder.
        """
        if redeemer:
            self._set_redeemer_tag(redeemer, RedeemerTag.WITHDRAWAL)
            self._consolidate_redeemer(redeemer)
        self._withdrawal_script_to_redeemers.append(
            (self._resolve_script(script), redeemer)
        )
        return self

    def add_certificate_script(
        self,
        script: Union[UTxO, NativeScript, PlutusScript],
        redeemer: Optional[Redeemer] = None,
    ) -> TransactionBuilder:
        """Add a certificate script along with its redeemer to this transaction.
        WARNING: The order of operations matters.
        The index of the redeemer will be set to the index of the last certificate added.

        Args:
            script (Union[UTxO, NativeScript, PlutusScript]): The script witnessing the certificate.
            redeemer (Optional[Redeemer]): A plutus redeemer for the certificate.

        Returns:
            TransactionBuilder: Current transaction builder.
        """
        if redeemer:
            self._set_redeemer_tag(redeemer, RedeemerTag.CERTIFICATE)
            if not self.certificates:
                raise InvalidArgumentException(
                    "The redeemer index is the index of the last certificate added, "
                    "but no certificates could be found."
                )
            redeemer.index = len(self.certificates) - 1
            self._consolidate_redeemer(redeemer)
        self._certificate_script_to_redeemers.append(
            (self._resolve_script(script), redeemer)
        )
        return self

    def add_input_address(self, address: Union[Address, str]) -> TransactionBuilder:
        """Add an address to transaction's input address.
        Unlike :meth:`add_input`, which deterministically adds a UTxO to the transaction's inputs, `add_input_address`
        will not immediately select any UTxO when called. Instead, it will delegate UTxO selection to
        :class:`UTxOSelector`s of the builder when :meth:`build` is called.

        Args:
            address (Union[Address, str]): Address to be added.

        Returns:
            TransactionBuilder: The current transaction builder.
        """
        self.input_addresses.append(address)
        return self

    def add_output(
        self,
        tx_out: TransactionOutput,
        datum: Optional[Datum] = None,
        add_datum_to_witness: bool = False,
    ) -> TransactionBuilder:
        """Add a transaction output.

        Args:
            tx_out (TransactionOutput): The transaction output to be added.
            datum (Datum): Attach a datum hash to this transaction output.
            add_datum_to_witness (bool): Optionally add the actual datum to transaction witness set. Defaults to False.

        Returns:
            TransactionBuilder: Current transaction builder.
        """
        if datum is not None:
            tx_out.datum_hash = datum_hash(datum)
        self.outputs.append(tx_out)
        if datum is not None and add_datum_to_witness:
            self.datums[datum_hash(datum)] = datum
        return self

    def add_vote(
        self,
        voter: Voter,
        gov_action_id: GovActionId,
        vote: Vote,
        anchor: Optional[Anchor] = None,
    ) -> TransactionBuilder:
        """Add a vote to the transaction. A later vote of the same voter on the same action replaces the earlier one.

        Args:
            voter (Voter): The voter casting the vote.
            gov_action_id (GovActionId): The governance action being voted on.
            vote (Vote): The vote being cast.
            anchor (Optional[Anchor]): Optional metadata about the vote.

        Returns:
            TransactionBuilder: Current transaction builder.
        """
        if self.voting_procedures is None:
            self.voting_procedures = VotingProcedures()

        if voter not in self.voting_procedures:
            self.voting_procedures[voter] = GovActionIdToVotingProcedure()

        self.voting_procedures[voter][gov_action_id] = VotingProcedure(vote, anchor)
        return self

    def add_proposal(
        self,
        deposit: int,
        reward_account: bytes,
        gov_action: GovAction,
        anchor: Anchor,
    ) -> TransactionBuilder:
        """Add a governance proposal. Its deposit is paid from the inputs of this transaction.

        Returns:
            TransactionBuilder: Current transaction builder.
        """
        if self.proposal_procedures is None:
            self.proposal_procedures = []

        self.proposal_procedures.append(
            ProposalProcedure(
                deposit=deposit,
                reward_account=reward_account,
                gov_action=gov_action,
                anchor=anchor,
            )
        )
        return self

    def add_treasury_donation(self, amount: int) -> TransactionBuilder:
        """Donate ``amount`` lovelace to the treasury.

        Raises:
            ValueError: When amount is not positive.
        """
        if amount <= 0:
            raise ValueError("Treasury donation amount must be positive")
        self.donation = amount
        return self

    @property
    def inputs(self) -> List[UTxO]:
        return self._inputs

    @property
    def potential_inputs(self) -> List[UTxO]:
        return self._potential_inputs

    @property
    def excluded_inputs(self) -> List[UTxO]:
        return self._excluded_inputs

    @excluded_inputs.setter
    def excluded_inputs(self, excluded_inputs: List[UTxO]):
        self._excluded_inputs = excluded_inputs

    @property
    def input_addresses(self) -> List[Union[Address, str]]:
        return self._input_addresses

    @property
    def outputs(self) -> List[TransactionOutput]:
        return self._outputs

    @property
    def fee(self) -> int:
        return self._fee

    @fee.setter
    def fee(self, fee: int):
        self._fee = fee

    @property
    def all_scripts(self) -> List[ScriptType]:
        scripts: Dict[ScriptHash, ScriptType] = {}
        s: ScriptType

        if self.native_scripts:
            for s in self.native_scripts:
                scripts[script_hash(s)] = s

        for s in self._inputs_to_scripts.values():
            scripts[script_hash(s)] = s

        for pairs in (
            self._minting_script_to_redeemers,
            self._withdrawal_script_to_redeemers,
            self._certificate_script_to_redeemers,
        ):
            for s, _ in pairs:
                scripts[script_hash(s)] = s

        return list(scripts.values())

    @property
    def scripts(self) -> List[ScriptType]:
        """Scripts that have to be attached to the witness set, i.e. all scripts minus reference scripts."""
        scripts: Dict[ScriptHash, ScriptType] = {
            script_hash(s): s for s in self.all_scripts
        }

        for s in self._reference_scripts:
            scripts.pop(script_hash(s), None)

        return list(scripts.values())

    @property
    def datums(self) -> Dict[DatumHash, Datum]:
        return self._datums

    @property
    def _redeemer_list(self) -> List[Redeemer]:
        return (
            [r for r in self._inputs_to_redeemers.values() if r is not None]
            + [r for _, r in self._minting_script_to_redeemers if r is not None]
            + [r for _, r in self._withdrawal_script_to_redeemers if r is not None]
            + [r for _, r in self._certificate_script_to_redeemers if r is not None]
        )

    def redeemers(self) -> Redeemers:
        redeemer_list = self._redeemer_list

        for r in redeemer_list:
            if r.tag is None:
                raise TransactionBuilderException(
                    f"Redeemer tag is not set. Redeemer: {r}"
                )
            if r.ex_units is None:
                raise TransactionBuilderException(
                    f"Execution units are not set. Redeemer: {r}"
                )

        # Redeemers are serialized as a map when there are none
        if self.use_redeemer_map or not redeemer_list:
            redeemers = RedeemerMap()
            for r in redeemer_list:
                redeemers[RedeemerKey(r.tag, r.index)] = RedeemerValue(
                    r.data, r.ex_units
                )
            return redeemers
        return sorted(redeemer_list, key=lambda r: (r.tag.value, r.index))

    @property
    def script_data_hash(self) -> Optional[ScriptDataHash]:
        if not self.datums and not self._redeemer_list:
            return None

        cost_models = {}
        for s in self.all_scripts:
            if isinstance(s, PlutusScript):
                cost_models[s.version - 1] = self.context.protocol_param.cost_models.get(
                    f"PlutusV{s.version}", {}
                )
        return script_data_hash(
            self.redeemers(),
            list(self.datums.values()),
            CostModels(cost_models),
        )

    def _required_signer_vkey_hashes(self) -> Set[VerificationKeyHash]:
        return set(self.required_signers) if self.required_signers else set()

    def _input_vkey_hashes(self) -> Set[VerificationKeyHash]:
        results = set()
        for i in self.inputs + list(self.collaterals):
            if isinstance(i.output.address.payment_part, VerificationKeyHash):
                results.add(i.output.address.payment_part)
        return results

    def _certificate_vkey_hashes(self) -> Set[VerificationKeyHash]:
        results = set()

        def _check_and_add_vkey(stake_credential: StakeCredential):
            if isinstance(stake_credential.credential, VerificationKeyHash):
                results.add(stake_credential.credential)

        for cert in self.certificates or []:
            if isinstance(cert, STAKE_CREDENTIAL_CERTIFICATES):
                _check_and_add_vkey(cert.stake_credential)
            elif isinstance(cert, RegDRepCert):
                _check_and_add_vkey(cert.drep_credential)
            elif isinstance(cert, PoolRegistration):
                results.add(VerificationKeyHash(cert.pool_params.operator.payload))
            elif isinstance(cert, PoolRetirement):
                results.add(VerificationKeyHash(cert.pool_keyhash.payload))
        return results

    def _vote_vkey_hashes(self) -> Set[VerificationKeyHash]:
        results = set()
        if self.voting_procedures:
            for voter in self.voting_procedures:
                if isinstance(voter.credential, VerificationKeyHash):
                    results.add(voter.credential)
        return results

    def _withdrawal_vkey_hashes(self) -> Set[VerificationKeyHash]:
        results = set()
        if self.withdrawals:
            for k in self.withdrawals:
                address = Address.from_primitive(k)
                if address.address_type == AddressType.NONE_KEY:
                    results.add(address.staking_part)
        return results

    def _native_scripts_vkey_hashes(self) -> Set[VerificationKeyHash]:
        results = set()
        for script in self.native_scripts or []:
            results.update(script.key_hashes())
        return results

    def _build_required_vkeys(self) -> Set[VerificationKeyHash]:
        vkey_hashes = self._input_vkey_hashes()
        vkey_hashes.update(self._required_signer_vkey_hashes())
        vkey_hashes.update(self._native_scripts_vkey_hashes())
        vkey_hashes.update(self._certificate_vkey_hashes())
        vkey_hashes.update(self._withdrawal_vkey_hashes())
        vkey_hashes.update(self._vote_vkey_hashes())
        return vkey_hashes

    def _get_total_key_deposit(self) -> int:
        stake_registration_credentials = set()
        explicit_deposits = []
        pool_operators = set()

        for cert in self.certificates or []:
            if isinstance(cert, StakeRegistration):
                stake_registration_credentials.add(cert.stake_credential.credential)
            elif isinstance(cert, EXPLICIT_DEPOSIT_CERTIFICATES):
                explicit_deposits.append(cert.coin)
            elif isinstance(cert, PoolRegistration) and self.initial_stake_pool_registration:
                pool_operators.add(cert.pool_params.operator)

        protocol_params = self.context.protocol_param
        return (
            protocol_params.key_deposit * len(stake_registration_credentials)
            + sum(explicit_deposits)
            + protocol_params.pool_deposit * len(pool_operators)
        )

    def _get_total_proposal_deposit(self) -> int:
        return sum(p.deposit for p in self.proposal_procedures or [])

    def _set_redeemer_index(self):
        # Spend, mint and withdrawal redeemers point at the position of what they unlock in the
        # sorted inputs, policies and reward addresses. Certificate indices are fixed on registration.
        sorted_mint_policies = (
            sorted(self.mint.keys(), key=lambda x: x.to_cbor()) if self.mint else []
        )
        sorted_withdrawals = sorted(self.withdrawals.keys()) if self.withdrawals else []

        for i, utxo in enumerate(self.inputs):
            redeemer = self._inputs_to_redeemers.get(utxo)
            if redeemer is not None and redeemer.tag == RedeemerTag.SPEND:
                redeemer.index = i

        for script, redeemer in self._minting_script_to_redeemers:
            if redeemer is not None:
                policy_id = script_hash(script)
                if policy_id not in sorted_mint_policies:
                    raise InvalidArgumentException(
                        f"Minting script {policy_id} has a redeemer but mints nothing."
                    )
                redeemer.index = sorted_mint_policies.index(policy_id)

        for script, redeemer in self._withdrawal_script_to_redeemers:
            if redeemer is not None:
                reward_address = Address(
                    staking_part=script_hash(script), network=self.context.network
                ).to_primitive()
                if reward_address not in sorted_withdrawals:
                    raise InvalidArgumentException(
                        f"Withdrawal script {script_hash(script)} has a redeemer "
                        f"but withdraws nothing."
                    )
                redeemer.index = sorted_withdrawals.index(reward_address)

    def _ref_script_size(self) -> int:
        ref_script_size = 0
        for s in self._reference_scripts:
            if isinstance(s, NativeScript):
                ref_script_size += len(s.to_cbor())
            else:
                ref_script_size += len(s)
        return ref_script_size

    def _build_tx_body(self) -> TransactionBody:
        return TransactionBody(
            [i.input for i in self.inputs],
            self.outputs,
            fee=self.fee,
            ttl=self.ttl,
            mint=self.mint,
            auxiliary_data_hash=(
                self.auxiliary_data.hash() if self.auxiliary_data else None
            ),
            script_data_hash=self.script_data_hash,
            required_signers=self.required_signers if self.required_signers else None,
            validity_start=self.validity_start,
            collateral=(
                [c.input for c in self.collaterals] if self.collaterals else None
            ),
            certificates=self.certificates if self.certificates else None,
            withdraws=self.withdrawals if self.withdrawals else None,
            collateral_return=self._collateral_return,
            total_collateral=self._total_collateral,
            reference_inputs=(
                [i.input if isinstance(i, UTxO) else i for i in self.reference_inputs]
                if self.reference_inputs
                else None
            ),
            voting_procedures=(
                self.voting_procedures if self.voting_procedures else None
            ),
            proposal_procedures=(
                self.proposal_procedures if self.proposal_procedures else None
            ),
            donation=self.donation if self.donation else None,
        )

    def _witness_count(self) -> int:
        return self.witness_override or len(self._build_required_vkeys())

    def _build_fake_vkey_witnesses(self) -> List[VerificationKeyWitness]:
        witnesses = []
        for i in range(self._witness_count()):
            # AND the placeholder key and signature with the index so that every witness is distinct
            i_bytes = i.to_bytes(32, "big")
            unique_vkey = VerificationKey.from_primitive(
                bytes(x & y for x, y in zip(FAKE_VKEY.payload, i_bytes))
            )
            unique_sig = bytes(
                x & y for x, y in zip(FAKE_TX_SIGNATURE, i_bytes + i_bytes)
            )
            witnesses.append(VerificationKeyWitness(unique_vkey, unique_sig))
        return witnesses

    def _build_fake_witness_set(self) -> TransactionWitnessSet:
        witness_set = self.build_witness_set()
        if self._witness_count() > 0:
            witness_set.vkey_witnesses = self._build_fake_vkey_witnesses()
        return witness_set

    def _build_full_fake_tx(self) -> Transaction:
        tx_body = self._build_tx_body()

        if tx_body.fee == 0:
            # Before the fee is known, the max possible fee stands in so that the size of the
            # fee field itself is accounted for.
            tx_body.fee = max_tx_fee(self.context, self._ref_script_size())

        witness = self._build_fake_witness_set()
        tx = Transaction(tx_body, witness, True, self.auxiliary_data)
        size = len(tx.to_cbor())
        if size > self.context.protocol_param.max_tx_size:
            raise TransactionTooLargeException(
                f"Transaction size ({size}) exceeds the max limit "
                f"({self.context.protocol_param.max_tx_size}). Please try reducing the "
                f"number of inputs or outputs."
            )
        return tx

    def build_witness_set(
        self, remove_dup_script: bool = False
    ) -> TransactionWitnessSet:
        """Build a transaction witness set, excluding verification key witnesses.
        This function is especially useful when the transaction involves Plutus scripts.

        Args:
            remove_dup_script (bool): Whether to remove scripts, that are already attached to inputs,
             from the witness set.

        Returns:
            TransactionWitnessSet: A transaction witness set without verification key witnesses.
        """
        native_scripts: List[NativeScript] = []
        plutus_v1_scripts: List[PlutusV1Script] = []
        plutus_v2_scripts: List[PlutusV2Script] = []
        plutus_v3_scripts: List[PlutusV3Script] = []
        plutus_data: List[Any] = list(self.datums.values())

        input_scripts = (
            {
                script_hash(i.output.script)
                for i in self.inputs
                if i.output.script is not None
            }
            if remove_dup_script
            else set()
        )

        for script in self.scripts:
            if script_hash(script) in input_scripts:
                continue
            if isinstance(script, NativeScript):
                native_scripts.append(script)
            elif isinstance(script, PlutusV1Script):
                plutus_v1_scripts.append(script)
            elif isinstance(script, PlutusV2Script):
                plutus_v2_scripts.append(script)
            elif isinstance(script, PlutusV3Script):
                plutus_v3_scripts.append(script)
            else:
                raise InvalidArgumentException(
                    f"Unsupported script type: {type(script)}"
                )

        return TransactionWitnessSet(
            native_scripts=native_scripts if native_scripts else None,
            plutus_v1_script=plutus_v1_scripts if plutus_v1_scripts else None,
            plutus_v2_script=plutus_v2_scripts if plutus_v2_scripts else None,
            plutus_v3_script=plutus_v3_scripts if plutus_v3_scripts else None,
            redeemer=self.redeemers() if self._redeemer_list else None,
            plutus_data=plutus_data if plutus_data else None,
        )

    def _ensure_no_input_exclusion_conflict(self):
        intersection = set(self.inputs).intersection(set(self.excluded_inputs))
        if intersection:
            raise InvalidArgumentException(
                f"Found common UTxOs between UTxO inputs and UTxO excluded_inputs: "
                f"{intersection}."
            )

    def _estimate_fee(self) -> int:
        plutus_execution_units = ExecutionUnits(0, 0)
        for redeemer in self._redeemer_list:
            plutus_execution_units += redeemer.ex_units

        estimated_fee = fee(
            self.context,
            len(self._build_full_fake_tx().to_cbor()),
            plutus_execution_units.steps,
            plutus_execution_units.mem,
            self._ref_script_size(),
        )
        if self.fee_buffer is not None:
            estimated_fee += self.fee_buffer
        return estimated_fee

    def _calc_change(
        self, fees: int, address: Address, respect_min_utxo: bool
    ) -> List[TransactionOutput]:
        return calc_change(
            self.context,
            fees,
            self.inputs,
            self.outputs,
            address,
            mint=self.mint,
            withdrawals=self.withdrawals,
            deposit=self._get_total_key_deposit() + self._get_total_proposal_deposit(),
            donation=self.donation or 0,
            respect_min_utxo=respect_min_utxo,
        )

    def _add_change_and_fee(
        self,
        change_address: Optional[Address],
        merge_change: Optional[bool] = False,
    ) -> TransactionBuilder:
        if not change_address:
            self.fee = self._estimate_fee()
            return self

        original_outputs = [o.copy() for o in self.outputs]
        change_output_index = None
        if merge_change:
            for idx, output in enumerate(original_outputs):
                if change_address == output.address:
                    if change_output_index is None or output.lovelace == 0:
                        change_output_index = idx

        def _apply_change(fees: int):
            self._outputs = [o.copy() for o in original_outputs]
            changes = self._calc_change(
                fees, change_address, respect_min_utxo=not merge_change
            )
            if change_output_index is not None and len(changes) == 1:
                merged = self._outputs[change_output_index]
                merged.amount = merged.amount + changes[0].amount
            else:
                self._outputs += changes

        # Start from the fee of the transaction without change, then raise the fee until
        # it pays for the transaction holding the change it implies.
        self.fee = self._estimate_fee()
        for _ in range(_MAX_FEE_ITERATIONS):
            _apply_change(self.fee)
            new_fee = self._estimate_fee()
            if new_fee <= self.fee:
                break
            logger.debug(f"Fee raised from {self.fee} to {new_fee}")
            self.fee = new_fee
        else:
            raise TransactionBuilderException(
                f"Fee did not settle after {_MAX_FEE_ITERATIONS} iterations, last fee: {self.fee}"
            )
        return self

    def _set_collateral_return(self, collateral_return_address: Optional[Address]):
        """Pick collateral inputs if none were given and compute the collateral return output.

        Args:
            collateral_return_address (Address): Address to which the collateral change will be returned.
        """
        has_plutus_script = any(isinstance(s, PlutusScript) for s in self.scripts)
        if not has_plutus_script and not self._reference_scripts:
            return

        if not collateral_return_address:
            return

        required = required_collateral(self.context, self._ref_script_size())

        if not self.collaterals:
            self.collaterals = select_collateral(
                self.context,
                required,
                collateral_return_address,
                [self.inputs, self.potential_inputs],
                self.collateral_return_threshold,
            )

        self._collateral_return, self._total_collateral = collateral_return(
            self.context,
            self.collaterals,
            required,
            collateral_return_address,
            self.collateral_return_threshold,
        )

    def _update_execution_units(
        self,
        change_address: Optional[Address] = None,
        merge_change: Optional[bool] = False,
        collateral_change_address: Optional[Address] = None,
    ):
        if not self._should_estimate_execution_units:
            return

        estimated_execution_units = self._estimate_execution_units(
            change_address, merge_change, collateral_change_address
        )
        for r in self._redeemer_list:
            if r.tag is None:
                raise TransactionBuilderException(
                    f"Expected tag of redeemer to be set, but found None. Redeemer: {r}"
                )
            key = f"{r.tag.name.lower()}:{r.index}"
            if estimated_execution_units.get(key) is None:
                raise TransactionBuilderException(
                    f"Cannot find execution unit for redeemer: {r} "
                    f"in estimated execution units: {estimated_execution_units}"
                )
            estimated = estimated_execution_units[key]
            r.ex_units = ExecutionUnits(
                int(estimated.mem * (1 + self.execution_memory_buffer)),
                int(estimated.steps * (1 + self.execution_step_buffer)),
            )

    def _estimate_execution_units(
        self,
        change_address: Optional[Address] = None,
        merge_change: Optional[bool] = False,
        collateral_change_address: Optional[Address] = None,
    ) -> Dict[str, ExecutionUnits]:
        # Build a draft on a snapshot so the state of this builder stays untouched
        tmp_builder = self.copy()
        tmp_builder._should_estimate_execution_units = False
        self._should_estimate_execution_units = False
        tx_body = tmp_builder.build(
            change_address, merge_change, collateral_change_address
        )
        witness_set = tmp_builder._build_fake_witness_set()
        tx = Transaction(
            tx_body, witness_set, auxiliary_data=tmp_builder.auxiliary_data
        )
        return self.context.evaluate_tx(tx)

    def _set_validity_interval(
        self,
        is_smart: bool,
        auto_validity_start_offset: Optional[int],
        auto_ttl_offset: Optional[int],
    ):
        if (
            is_smart or auto_validity_start_offset is not None
        ) and self.validity_start is None:
            if auto_validity_start_offset is None:
                auto_validity_start_offset = -1000
            self.validity_start = max(
                0, self.context.last_block_slot + auto_validity_start_offset
            )

        if (is_smart or auto_ttl_offset is not None) and self.ttl is None:
            if auto_ttl_offset is None:
                auto_ttl_offset = 10_000
            self.ttl = max(0, self.context.last_block_slot + auto_ttl_offset)

    def _select_additional_utxos(
        self,
        unfulfilled_amount: Value,
        requested_amount: Value,
        selected_amount: Value,
        seen_utxos: Set[UTxO],
        respect_min_utxo: bool,
    ) -> List[UTxO]:
        additional_utxo_pool = []
        additional_amount = Value()
        for utxo in self.potential_inputs:
            if utxo not in seen_utxos:
                additional_amount += utxo.output.amount
                seen_utxos.add(utxo)
                additional_utxo_pool.append(utxo)

        for address in self.input_addresses:
            for utxo in self.context.utxos(address):
                if (
                    utxo not in seen_utxos
                    and utxo not in self.excluded_inputs
                    and utxo.output.script is None
                ):
                    additional_utxo_pool.append(utxo)
                    additional_amount += utxo.output.amount
                    seen_utxos.add(utxo)

        for index, selector in enumerate(self.utxo_selectors):
            try:
                selected, _ = selector.select(
                    additional_utxo_pool,
                    [TransactionOutput(Address(FAKE_VKEY.hash()), unfulfilled_amount)],
                    self.context,
                    include_max_fee=False,
                    respect_min_utxo=respect_min_utxo,
                )
                return selected
            except UTxOSelectionException as e:
                if index < len(self.utxo_selectors) - 1:
                    logger.info(e)
                    logger.info(f"{selector} failed. Trying next selector.")
                    continue
                diff = requested_amount - selected_amount - _trim(
                    additional_amount, requested_amount
                )
                diff.multi_asset = diff.multi_asset.filter(lambda p, n, v: v > 0)
                raise UTxOSelectionException(
                    f"All UTxO selectors failed.\n"
                    f"Requested output:\n {requested_amount} \n"
                    f"Pre-selected inputs:\n {selected_amount} \n"
                    f"Additional UTxO pool:\n {additional_utxo_pool} \n"
                    f"Unfulfilled amount:\n {diff}"
                ) from e
        return []

    @log_state
    def build(
        self,
        change_address: Optional[Address] = None,
        merge_change: Optional[bool] = False,
        collateral_change_address: Optional[Address] = None,
        auto_validity_start_offset: Optional[int] = None,
        auto_ttl_offset: Optional[int] = None,
        auto_required_signers: Optional[bool] = None,
    ) -> TransactionBody:
        """Build a transaction body from all constraints set through the builder.

        Args:
            change_address (Optional[Address]): Address to which changes will be returned. If not provided, the
                transaction body will likely be unbalanced (sum of inputs is greater than the sum of outputs).
            merge_change (Optional[bool]): If the change address match one of the transaction output, the change amount
                will be directly added to that transaction output, instead of being added as a separate output.
            collateral_change_address (Optional[Address]): Address to which collateral changes will be returned.
            auto_validity_start_offset (Optional[int]): Automatically set the validity start interval of the transaction
                to the current slot number + the given offset (default -1000).
                A manually set validity start will always take precedence.
            auto_ttl_offset (Optional[int]): Automatically set the validity end interval (ttl) of the transaction
                to the current slot number + the given offset (default 10_000).
                A manually set ttl will always take precedence.
            auto_required_signers (Optional[bool]): Automatically add every key hash the transaction needs a
                signature from to required signatories (default only for Smart Contract transactions).
                Manually set required signers will always take precedence.

        Returns:
            TransactionBody: A transaction body.
        """
        self._ensure_no_input_exclusion_conflict()

        # The validity interval and required signers are only set automatically for script transactions
        is_smart = bool(self.all_scripts)
        self._set_validity_interval(is_smart, auto_validity_start_offset, auto_ttl_offset)

        selected_utxos = []
        selected_amount = Value()
        for i in self.inputs:
            selected_utxos.append(i)
            selected_amount += i.output.amount

        requested_amount = Value()
        for o in self.outputs:
            requested_amount += o.amount

        if self.mint:
            # Minted assets are a source, burnt assets a sink
            for pid, m in self.mint.items():
                for tkn, am in m.items():
                    delta = Value(0, MultiAsset({pid: Asset({tkn: abs(am)})}))
                    if am > 0:
                        selected_amount += delta
                    elif am < 0:
                        requested_amount += delta

        if self.withdrawals:
            selected_amount += sum(self.withdrawals.values())

        selected_amount -= self._get_total_key_deposit()
        selected_amount -= self._get_total_proposal_deposit()
        requested_amount += self.donation or 0

        can_merge_change = bool(merge_change) and any(
            o.address == change_address for o in self.outputs
        )

        requested_amount += self._estimate_fee()

        # Assets that are not requested are returned as change later
        trimmed_selected_amount = _trim(selected_amount, requested_amount)

        unfulfilled_amount = requested_amount - trimmed_selected_amount

        if change_address is not None and not can_merge_change:
            # Select more when the leftover is too small to hold the minimum lovelace of the change
            if unfulfilled_amount.coin < 0:
                unfulfilled_amount.coin = max(
                    0,
                    unfulfilled_amount.coin
                    + min_lovelace_post_alonzo(
                        TransactionOutput(
                            change_address, selected_amount - trimmed_selected_amount
                        ),
                        self.context,
                    ),
                )
        else:
            unfulfilled_amount.coin = max(0, unfulfilled_amount.coin)

        unfulfilled_amount.multi_asset = unfulfilled_amount.multi_asset.filter(
            lambda p, n, v: v > 0
        )

        # Lists keep the candidate order deterministic, the set only guards against duplicates
        seen_utxos = set(selected_utxos)

        if Value() < unfulfilled_amount:
            for s in self._select_additional_utxos(
                unfulfilled_amount,
                requested_amount,
                trimmed_selected_amount,
                seen_utxos,
                respect_min_utxo=not can_merge_change,
            ):
                selected_amount += s.output.amount
                selected_utxos.append(s)

        selected_utxos.sort(
            key=lambda utxo: (str(utxo.input.transaction_id), utxo.input.index)
        )

        self.inputs[:] = selected_utxos[:]

        if (
            is_smart and auto_required_signers is not False
        ) and self.required_signers is None:
            self.required_signers = sorted(self._build_required_vkeys())

        self._set_redeemer_index()

        self._set_collateral_return(collateral_change_address or change_address)

        self._update_execution_units(
            change_address, merge_change, collateral_change_address
        )

        self._add_change_and_fee(change_address, merge_change=merge_change)

        return self._build_tx_body()

    def build_and_sign(
        self,
        signing_keys: List[SigningKey],
        change_address: Optional[Address] = None,
        merge_change: Optional[bool] = False,
        collateral_change_address: Optional[Address] = None,
        auto_validity_start_offset: Optional[int] = None,
        auto_ttl_offset: Optional[int] = None,
        auto_required_signers: Optional[bool] = None,
        force_skeys: Optional[bool] = False,
    ) -> Transaction:
        """Build a transaction body from all constraints set through the builder and sign the transaction with
        provided signing keys.

        Args:
            signing_keys (List[SigningKey]): A list of signing keys that will be used to sign the transaction.
            change_address (Optional[Address]): Address to which changes will be returned.
            merge_change (Optional[bool]): If the change address match one of the transaction output, the change amount
                will be directly added to that transaction output, instead of being added as a separate output.
            collateral_change_address (Optional[Address]): Address to which collateral changes will be returned.
            auto_validity_start_offset (Optional[int]): See :meth:`build`.
            auto_ttl_offset (Optional[int]): See :meth:`build`.
            auto_required_signers (Optional[bool]): Automatically add required signatories, including the
                given signers, see :meth:`build`.
            force_skeys (Optional[bool]): Whether to force the use of signing keys for signing the transaction.
                Default is False, which means that provided signing keys will only be used to sign the transaction if
                they are actually required by the transaction. This is useful to reduce tx fees by not including
                unnecessary signatures. If set to True, all provided signing keys will be used to sign the transaction.

        Returns:
            Transaction: A signed transaction.
        """
        if auto_required_signers and self.scripts and not self.required_signers:
            self.required_signers = [
                s.to_verification_key().hash() for s in signing_keys
            ]

        tx_body = self.build(
            change_address=change_address,
            merge_change=merge_change,
            collateral_change_address=collateral_change_address,
            auto_validity_start_offset=auto_validity_start_offset,
            auto_ttl_offset=auto_ttl_offset,
            auto_required_signers=auto_required_signers,
        )
        witness_set = self.build_witness_set(True)
        vkey_witnesses = []

        required_vkeys = self._build_required_vkeys()

        for signing_key in dict.fromkeys(signing_keys):
            vkey_hash = signing_key.to_verification_key().hash()
            if not force_skeys and vkey_hash not in required_vkeys:
                logger.warning(
                    f"Verification key hash {vkey_hash} is not required for this tx."
                )
                continue
            signature = signing_key.sign(tx_body.hash())
            vkey_witnesses.append(
                VerificationKeyWitness(signing_key.to_verification_key(), signature)
            )

        witness_set.vkey_witnesses = vkey_witnesses if vkey_witnesses else None
        return Transaction(tx_body, witness_set, auxiliary_data=self.auxiliary_data)


def _trim(amount: Value, requested: Value) -> Value:
    """Drop the assets of ``amount`` that ``requested`` does not ask for."""
    return Value(
        amount.coin,
        amount.multi_asset.filter(
            lambda p, n, v: p in requested.multi_asset and n in requested.multi_asset[p]
        ),
    )
