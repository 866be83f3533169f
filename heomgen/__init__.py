"""
heomgen builds the generator matrix of the HEOM (hierarchical equations of
motion) for a system coupled to bosonic baths, fermionic baths or both.

See https://en.wikipedia.org/wiki/Hierarchical_equations_of_motion for a very
basic introduction to the technique.

The baths are described by the exponential decomposition of their
correlation functions. heomgen enumerates the hierarchy of ADOs
(auxiliary density operators), assembles the sparse HEOM Liouvillian and
provides the additive terminator and dissipator corrections. Integrating or
solving the resulting linear system is left to other tools.
"""

__all__ = [
    "settings",
    "BathExponent",
    "Bath",
    "BosonicBath",
    "FermionicBath",
    "Parity",
    "HierarchyADOs",
    "HEOMBlocks",
    "HEOMMatrix",
    "BosonHEOMMatrix",
    "FermionHEOMMatrix",
    "BosonFermionHEOMMatrix",
    "HierarchyADOsState",
    "HEOMConfigurationError",
    "HierarchyInvariantError",
    "MapExceptions",
    "__version__",
]

from .settings import settings
from .exceptions import HEOMConfigurationError, HierarchyInvariantError
from .baths import (
    BathExponent,
    Bath,
    BosonicBath,
    FermionicBath,
    Parity,
)
from .hierarchy import HierarchyADOs
from .blocks import HEOMBlocks
from .parallel import MapExceptions
from .matrix import (
    HEOMMatrix,
    BosonHEOMMatrix,
    FermionHEOMMatrix,
    BosonFermionHEOMMatrix,
)
from .ados import HierarchyADOsState

from .version import version as __version__
