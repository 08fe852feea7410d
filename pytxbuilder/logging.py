import logging
from functools import wraps

from pprintpp import pformat

__all__ = ["logger", "log_state"]

logger = logging.getLogger("PyTxBuilder")

_handler = logging.StreamHandler()
_handler.setFormatter(
    logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
)
logger.addHandler(_handler)


def _dump_state(obj, func) -> str:
    return (
        f"Class: {obj.__class__.__name__}, method: {func.__name__}, state:\n"
        f" {pformat(vars(obj), indent=2)}"
    )


def log_state(func):
    """Decorator that dumps the state of an object after one of its methods runs.

    The dump is logged at DEBUG level when the call succeeds and at WARNING level when it
    raises, in which case the exception is propagated unchanged.
    """

    @wraps(func)
    def wrapper(obj, *args, **kwargs):
        try:
            output = func(obj, *args, **kwargs)
        except Exception:
            logger.warning(_dump_state(obj, func))
            raise
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(_dump_state(obj, func))
        return output

    return wrapper
