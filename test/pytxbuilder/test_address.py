import pytest

from pytxbuilder.address import (
    Address,
    AddressType,
    bech32_decode_bytes,
    bech32_encode_bytes,
)
from pytxbuilder.exception import (
    DecodingException,
    DeserializeException,
    InvalidAddressInputException,
)
from pytxbuilder.hash import (
    SCRIPT_HASH_SIZE,
    VERIFICATION_KEY_HASH_SIZE,
    ScriptHash,
    VerificationKeyHash,
)
from pytxbuilder.key import PaymentVerificationKey
from pytxbuilder.network import Network
from test.pytxbuilder.util import TEST_ADDR


def test_payment_addr():
    vk = PaymentVerificationKey(
        bytes.fromhex(
            "8be8339e9f3addfa6810d59e2f072f85e64d4c024c087e0d24f8317c6544f62f"
        )
    )
    assert Address(vk.hash(), network=Network.TESTNET).encode() == TEST_ADDR


def test_mainnet_enterprise_addr():
    vkh = VerificationKeyHash(
        bytes.fromhex("cc30497f4ff962f4c1dca54cceefe39f86f1d7179668009f8eb71e59")
    )
    address = Address(vkh)
    assert address.encode() == (
        "addr1v8xrqjtlfluk9axpmjj5enh0uw0cduwhz7txsqyl36m3ukgqdsn8w"
    )
    assert address.address_type == AddressType.KEY_NONE
    assert address.hrp == "addr"


def test_decode_round_trip():
    address = Address.decode(TEST_ADDR)
    assert address.network == Network.TESTNET
    assert address.address_type == AddressType.KEY_NONE
    assert str(address) == TEST_ADDR
    assert Address.from_primitive(bytes(address)) == address


def test_reward_address(stake_address):
    assert stake_address.address_type == AddressType.NONE_KEY
    assert stake_address.payment_part is None
    assert stake_address.hrp == "stake"
    assert stake_address.encode() == (
        "stake1u9ylzsgxaa6xctf4juup682ar3juj85n8tx3hthnljg47zctvm3rc"
    )


def test_testnet_reward_hrp():
    address = Address(
        None, VerificationKeyHash(b"1" * VERIFICATION_KEY_HASH_SIZE), Network.TESTNET
    )
    assert address.hrp == "stake_test"
    assert address.encode().startswith("stake_test1")


@pytest.mark.parametrize(
    "payment,staking,expected",
    [
        (
            VerificationKeyHash(b"1" * VERIFICATION_KEY_HASH_SIZE),
            VerificationKeyHash(b"2" * VERIFICATION_KEY_HASH_SIZE),
            AddressType.KEY_KEY,
        ),
        (
            ScriptHash(b"1" * SCRIPT_HASH_SIZE),
            VerificationKeyHash(b"1" * VERIFICATION_KEY_HASH_SIZE),
            AddressType.SCRIPT_KEY,
        ),
        (
            VerificationKeyHash(b"1" * VERIFICATION_KEY_HASH_SIZE),
            ScriptHash(b"1" * SCRIPT_HASH_SIZE),
            AddressType.KEY_SCRIPT,
        ),
        (
            ScriptHash(b"1" * SCRIPT_HASH_SIZE),
            ScriptHash(b"2" * SCRIPT_HASH_SIZE),
            AddressType.SCRIPT_SCRIPT,
        ),
        (ScriptHash(b"1" * SCRIPT_HASH_SIZE), None, AddressType.SCRIPT_NONE),
        (None, ScriptHash(b"1" * SCRIPT_HASH_SIZE), AddressType.NONE_SCRIPT),
    ],
)
def test_address_types(payment, staking, expected):
    address = Address(payment, staking, Network.TESTNET)

    assert address.address_type == expected
    assert address.header_byte[0] >> 4 == expected.value
    assert Address.decode(address.encode()) == address


def test_script_payment():
    assert Address(ScriptHash(b"1" * SCRIPT_HASH_SIZE)).address_type.is_script_payment
    assert not Address.decode(TEST_ADDR).address_type.is_script_payment


def test_invalid_combination_unhandled_types_addr():
    class UnknownType:
        pass

    with pytest.raises(InvalidAddressInputException):
        Address(UnknownType(), UnknownType())


def test_no_parts():
    with pytest.raises(InvalidAddressInputException):
        Address()


def test_from_primitive_invalid_value_addr():
    with pytest.raises(DeserializeException):
        Address.from_primitive(1)

    with pytest.raises(DeserializeException):
        Address.from_primitive([])

    with pytest.raises(DeserializeException):
        Address.from_primitive({})

    with pytest.raises(DeserializeException):
        Address.from_primitive(b"")


def test_unknown_header():
    with pytest.raises(DeserializeException):
        Address.from_primitive(b"\x40" + b"1" * VERIFICATION_KEY_HASH_SIZE)


def test_equality_and_hash():
    a = Address.decode(TEST_ADDR)
    b = Address.decode(TEST_ADDR)

    assert a == b
    assert a != TEST_ADDR
    assert len({a, b}) == 1


class TestBech32:
    def test_round_trip_long_payload(self):
        data = bytes(range(57))
        encoded = bech32_encode_bytes("addr", data)
        assert len(encoded) > 90
        assert bech32_decode_bytes(encoded) == data

    def test_upper_case_accepted(self):
        assert bech32_decode_bytes(TEST_ADDR.upper()) == bytes(
            Address.decode(TEST_ADDR)
        )

    @pytest.mark.parametrize(
        "text",
        [
            TEST_ADDR[:-1] + ("q" if TEST_ADDR[-1] != "q" else "p"),
            TEST_ADDR[:5] + TEST_ADDR[5:].upper(),
            "addr_test1",
            TEST_ADDR.replace("r2p8", "r2b8"),
        ],
    )
    def test_invalid(self, text):
        with pytest.raises(DecodingException):
            bech32_decode_bytes(text)
