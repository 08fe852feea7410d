import pytest

from pytxbuilder.cbor import cbor2
from pytxbuilder.exception import DeserializeException
from pytxbuilder.plutus import (
    CostModels,
    ExecutionUnits,
    PlutusScript,
    PlutusV1Script,
    PlutusV2Script,
    PlutusV3Script,
    RawPlutusData,
    Redeemer,
    RedeemerKey,
    RedeemerMap,
    RedeemerTag,
    RedeemerValue,
    Unit,
    datum_hash,
    script_hash,
)
from test.pytxbuilder.util import check_two_way_cbor


def test_unit():
    assert Unit().to_cbor_hex() == "d87980"
    assert (
        str(datum_hash(Unit()))
        == "923918e403bf43c34b4ef6b48eb2ee04babed17320d8d1b9ff9ad086e86f44ec"
    )


def test_datum_hash_int():
    assert (
        str(datum_hash(42))
        == "9e1199a988ba72ffd6e9c269cadb3b53b5f360ff99f112d9b2ee30c4d74ad88b"
    )


def test_raw_plutus_data_uses_indefinite_lists():
    data = RawPlutusData(cbor2.CBORTag(121, [1, [2, 3]]))
    assert data.to_cbor_hex() == "d8799f019f0203ffff"


def test_redeemer():
    redeemer = Redeemer(Unit(), ExecutionUnits(1, 2))
    redeemer.tag = RedeemerTag.SPEND

    assert redeemer.to_cbor_hex() == "840000d87980820102"

    restored = Redeemer.from_cbor(redeemer.to_cbor())
    assert restored.tag == RedeemerTag.SPEND
    assert restored.index == 0
    assert restored.ex_units == ExecutionUnits(1, 2)


def test_redeemer_copy():
    redeemer = Redeemer(Unit(), ExecutionUnits(1, 2))
    redeemer.tag = RedeemerTag.MINT
    redeemer.index = 3

    copied = redeemer.copy()
    copied.ex_units.mem = 10

    assert copied.tag == RedeemerTag.MINT
    assert copied.index == 3
    assert redeemer.ex_units.mem == 1


def test_redeemer_map():
    redeemers = RedeemerMap(
        {
            RedeemerKey(RedeemerTag.SPEND, 0): RedeemerValue(
                Unit(), ExecutionUnits(1, 2)
            )
        }
    )
    assert redeemers.to_cbor_hex() == "a182000082d87980820102"


def test_execution_units():
    total = ExecutionUnits(1, 2) + ExecutionUnits(10, 20)
    assert total == ExecutionUnits(11, 22)
    assert not ExecutionUnits(0, 0)
    assert ExecutionUnits(0, 1)
    check_two_way_cbor(total)

    with pytest.raises(TypeError):
        ExecutionUnits(1, 2) + 1


def test_script_hash_depends_on_language():
    script = b"dummy script"
    hashes = {
        script_hash(PlutusV1Script(script)),
        script_hash(PlutusV2Script(script)),
        script_hash(PlutusV3Script(script)),
    }
    assert len(hashes) == 3


def test_script_from_version():
    assert isinstance(PlutusScript.from_version(2, b"s"), PlutusV2Script)
    with pytest.raises(ValueError):
        PlutusScript.from_version(7, b"s")


def test_script_hash_unknown_type():
    with pytest.raises(TypeError):
        script_hash(b"not a script")


def test_cost_models():
    models = CostModels({1: {"b": 2, "a": 1}, 0: {"b": 2, "a": 1}})
    primitive = models.to_shallow_primitive()

    assert list(primitive) == [cbor2.dumps(0), 1]
    # The V1 view sorts costs by parameter name
    assert primitive[cbor2.dumps(0)] == bytes.fromhex("9f0102ff")
    assert primitive[1] == [2, 1]

    with pytest.raises(DeserializeException):
        CostModels.from_primitive({})
