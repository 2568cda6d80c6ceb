"""tailfinder"""

from . import config, informatics as inform, plotting as pl, tools as tl
from .find_tails import find_tails, run_find_tails
from .scheduler import plan_chunks, run_batch

from importlib.metadata import version

package_name = "tailfinder"
__version__ = version(package_name)

__all__ = [
    "config",
    "find_tails",
    "inform",
    "pl",
    "plan_chunks",
    "run_batch",
    "run_find_tails",
    "tl",
]
