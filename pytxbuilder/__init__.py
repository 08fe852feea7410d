# flake8: noqa

from .address import *
from .backend import *
from .certificate import *
from .change import *
from .coinselection import *
from .collateral import *
from .exception import *
from .governance import *
from .hash import *
from .key import *
from .metadata import *
from .nativescript import *
from .network import *
from .plutus import *
from .recipes import *
from .serialization import *
from .transaction import *
from .txbuilder import *
from .utils import *
from .witness import *
