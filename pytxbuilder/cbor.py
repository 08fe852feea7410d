"""
Single import point for the CBOR codec.

The pure Python ``cbor2pure`` distribution is used by default. Setting the
environment variable ``CBOR_C_EXTENSION=1`` switches to the C accelerated ``cbor2``.
Every module in this package imports ``cbor2`` from here so encoder, decoder and
tag classes always come from the same distribution.
"""

import os

__all__ = ["cbor2", "use_c_extension"]


def use_c_extension() -> bool:
    return os.getenv("CBOR_C_EXTENSION", "0") == "1"


if use_c_extension():
    import cbor2  # noqa: F401
else:
    import cbor2pure as cbor2  # type: ignore  # noqa: F401
