from typing import Any, Optional

__all__ = [
    "PyTxBuilderException",
    "DecodingException",
    "DeserializeException",
    "SerializeException",
    "InvalidDataException",
    "InvalidAddressInputException",
    "InvalidKeyTypeException",
    "InvalidArgumentException",
    "InvalidTransactionException",
    "TransactionTooLargeException",
    "TransactionBuilderException",
    "TransactionFailedException",
    "InsufficientBalanceException",
    "UTxOSelectionException",
    "InsufficientUTxOBalanceException",
    "MaxInputCountExceededException",
    "InputUTxODepletedException",
]


class PyTxBuilderException(Exception):
    """Root of every error raised by this package.

    An exception optionally carries a human-readable ``detail``. When no detail is given,
    ``str(exception)`` falls back to the class level :attr:`default_message`.
    """

    default_message = "Failed to build transaction."

    def __init__(self, detail: Optional[Any] = None):
        self.detail = detail
        super().__init__(self.default_message if detail is None else detail)

    def __str__(self):
        return self.default_message if self.detail is None else str(self.detail)


class DecodingException(PyTxBuilderException):
    default_message = "Failed to decode data."


class DeserializeException(PyTxBuilderException):
    default_message = "Failed to restore object from CBOR primitives."


class SerializeException(PyTxBuilderException):
    default_message = "Failed to convert object to CBOR primitives."


class InvalidDataException(PyTxBuilderException):
    default_message = "Invalid data."


class InvalidAddressInputException(PyTxBuilderException):
    default_message = "Invalid combination of address parts."


class InvalidKeyTypeException(PyTxBuilderException):
    default_message = "Invalid key type."


class InvalidArgumentException(PyTxBuilderException):
    default_message = "Inconsistent arguments supplied to the transaction builder."


class InvalidTransactionException(PyTxBuilderException):
    default_message = "Transaction preconditions are not met."


class TransactionTooLargeException(InvalidTransactionException):
    default_message = "Transaction size exceeds the maximum allowed by protocol."


class TransactionBuilderException(PyTxBuilderException):
    default_message = "Transaction builder reached an invalid state."


class TransactionFailedException(PyTxBuilderException):
    default_message = "Transaction was rejected by the chain backend."


class InsufficientBalanceException(PyTxBuilderException):
    default_message = "Provided value cannot cover the requested value."


class UTxOSelectionException(PyTxBuilderException):
    default_message = "UTxO selection failed."


class InsufficientUTxOBalanceException(UTxOSelectionException):
    default_message = "UTxO balance insufficient!"


class MaxInputCountExceededException(UTxOSelectionException):
    default_message = "Max input count exceeded!"


class InputUTxODepletedException(UTxOSelectionException):
    default_message = "Input UTxOs depleted!"
