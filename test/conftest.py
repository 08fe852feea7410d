from fractions import Fraction

import pytest

from pytxbuilder import (
    POOL_KEY_HASH_SIZE,
    VERIFICATION_KEY_HASH_SIZE,
    VRF_KEY_HASH_SIZE,
    Address,
    PoolKeyHash,
    VerificationKeyHash,
    VrfKeyHash,
)
from pytxbuilder.certificate import PoolParams
from pytxbuilder.key import PaymentSigningKey, StakeSigningKey
from test.pytxbuilder.util import FixedChainContext

SENDER = "addr_test1vrm9x2zsux7va6w892g38tvchnzahvcd9tykqf3ygnmwtaqyfg52x"


@pytest.fixture
def chain_context():
    return FixedChainContext()


@pytest.fixture
def address() -> Address:
    return Address.from_primitive(
        "addr_test1vr2p8st5t5cxqglyjky7vk98k7jtfhdpvhl4e97cezuhn0cqcexl7"
    )


@pytest.fixture
def sender_address() -> Address:
    return Address.from_primitive(SENDER)


@pytest.fixture
def stake_address() -> Address:
    return Address.from_primitive(
        "stake1u9ylzsgxaa6xctf4juup682ar3juj85n8tx3hthnljg47zctvm3rc"
    )


@pytest.fixture
def payment_skey() -> PaymentSigningKey:
    return PaymentSigningKey(bytes(range(32)))


@pytest.fixture
def stake_skey() -> StakeSigningKey:
    return StakeSigningKey(bytes(range(32, 64)))


@pytest.fixture
def pool_params():
    return PoolParams(
        operator=PoolKeyHash(b"1" * POOL_KEY_HASH_SIZE),
        vrf_keyhash=VrfKeyHash(b"1" * VRF_KEY_HASH_SIZE),
        pledge=100_000_000,
        cost=340_000_000,
        margin=Fraction(1, 50),
        reward_account=bytes.fromhex("e1") + b"1" * 28,
        pool_owners=[VerificationKeyHash(b"1" * VERIFICATION_KEY_HASH_SIZE)],
    )
