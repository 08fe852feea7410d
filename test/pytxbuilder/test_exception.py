import pytest

from pytxbuilder.exception import (
    InputUTxODepletedException,
    InsufficientUTxOBalanceException,
    InvalidTransactionException,
    MaxInputCountExceededException,
    PyTxBuilderException,
    TransactionTooLargeException,
    UTxOSelectionException,
)


def test_default_message():
    assert str(InsufficientUTxOBalanceException()) == "UTxO balance insufficient!"
    assert InsufficientUTxOBalanceException().detail is None


def test_detail_overrides_message():
    e = MaxInputCountExceededException("3 inputs allowed")
    assert str(e) == "3 inputs allowed"
    assert e.args == ("3 inputs allowed",)


def test_non_string_detail():
    e = InvalidTransactionException({"fee": 10})
    assert str(e) == "{'fee': 10}"
    assert e.detail == {"fee": 10}


@pytest.mark.parametrize(
    "exception,parent",
    [
        (InsufficientUTxOBalanceException, UTxOSelectionException),
        (MaxInputCountExceededException, UTxOSelectionException),
        (InputUTxODepletedException, UTxOSelectionException),
        (TransactionTooLargeException, InvalidTransactionException),
        (UTxOSelectionException, PyTxBuilderException),
    ],
)
def test_hierarchy(exception, parent):
    with pytest.raises(parent):
        raise exception()
