# flake8: noqa

from .base import *
from .blockfrost import *
