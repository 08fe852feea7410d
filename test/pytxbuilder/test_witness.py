from pytxbuilder.key import PaymentSigningKey, PaymentVerificationKey, StakeSigningKey
from pytxbuilder.nativescript import ScriptPubkey
from pytxbuilder.plutus import (
    ExecutionUnits,
    PlutusV2Script,
    Redeemer,
    RedeemerKey,
    RedeemerMap,
    RedeemerTag,
    RedeemerValue,
    Unit,
)
from pytxbuilder.witness import TransactionWitnessSet, VerificationKeyWitness
from test.pytxbuilder.util import check_two_way_cbor


def make_witness(skey: PaymentSigningKey) -> VerificationKeyWitness:
    return VerificationKeyWitness(skey.to_verification_key(), skey.sign(b"message"))


def test_vkey_witness(payment_skey):
    witness = make_witness(payment_skey)

    check_two_way_cbor(witness)
    assert len({witness, make_witness(payment_skey)}) == 1


def test_empty_witness_set():
    witness_set = TransactionWitnessSet()

    assert witness_set.is_empty()
    assert witness_set.to_cbor_hex() == "a0"


def test_witness_set(payment_skey):
    vkey = payment_skey.to_verification_key()
    redeemer = Redeemer(Unit(), ExecutionUnits(1000000, 1000000))
    redeemer.tag = RedeemerTag.SPEND
    witness_set = TransactionWitnessSet(
        vkey_witnesses=[make_witness(payment_skey)],
        native_scripts=[ScriptPubkey(vkey.hash())],
        plutus_v2_script=[PlutusV2Script(b"dummy script")],
        plutus_data=[Unit()],
        redeemer=[redeemer],
    )

    restored = TransactionWitnessSet.from_cbor(witness_set.to_cbor())

    assert not witness_set.is_empty()
    assert restored.vkey_witnesses == witness_set.vkey_witnesses
    assert restored.native_scripts == witness_set.native_scripts
    assert restored.plutus_v2_script == [PlutusV2Script(b"dummy script")]
    assert restored.redeemer[0].tag == RedeemerTag.SPEND
    assert restored.to_cbor() == witness_set.to_cbor()


def test_witness_set_redeemer_map():
    witness_set = TransactionWitnessSet(
        redeemer=RedeemerMap(
            {
                RedeemerKey(RedeemerTag.MINT, 0): RedeemerValue(
                    Unit(), ExecutionUnits(1, 2)
                )
            }
        )
    )

    restored = TransactionWitnessSet.from_cbor(witness_set.to_cbor())

    assert isinstance(restored.redeemer, RedeemerMap)
    assert restored.to_cbor() == witness_set.to_cbor()


class TestKeys:
    def test_verification_key_type(self, payment_skey, stake_skey):
        assert isinstance(payment_skey.to_verification_key(), PaymentVerificationKey)
        assert payment_skey.to_verification_key().key_type == (
            "PaymentVerificationKeyShelley_ed25519"
        )
        assert stake_skey.to_verification_key().key_type == (
            "StakeVerificationKeyShelley_ed25519"
        )

    def test_hash_size(self, payment_skey):
        assert len(bytes(payment_skey.to_verification_key().hash())) == 28

    def test_signature_is_deterministic(self, payment_skey):
        assert payment_skey.sign(b"data") == payment_skey.sign(b"data")
        assert len(payment_skey.sign(b"data")) == 64

    def test_generate(self):
        a, b = StakeSigningKey.generate(), StakeSigningKey.generate()
        assert a != b
        assert len(a.payload) == 32

    def test_cbor(self, payment_skey):
        vkey = payment_skey.to_verification_key()
        assert PaymentVerificationKey.from_cbor(vkey.to_cbor()) == vkey
