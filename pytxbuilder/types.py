import os
from functools import partial
from typing import Any, Dict

import typeguard

__all__ = ["JsonDict", "typechecked", "check_type"]

JsonDict = Dict[str, Any]

_NO_TYPE_CHECK_ENV = "PYTXBUILDER_NO_TYPE_CHECK"


def _type_check_disabled() -> bool:
    return os.getenv(_NO_TYPE_CHECK_ENV, "False").lower() in ("true", "1")


def typechecked(func=None, *args, **kwargs):
    """:func:`typeguard.typechecked` that becomes a no-op when ``PYTXBUILDER_NO_TYPE_CHECK`` is set."""
    if _type_check_disabled():
        if func is None:
            return partial(typechecked, *args, **kwargs)
        return func
    return typeguard.typechecked(func, *args, **kwargs)


def check_type(*args, **kwargs):
    if _type_check_disabled():
        return None
    return typeguard.check_type(*args, **kwargs)
