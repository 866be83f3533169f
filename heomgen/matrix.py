"""
HEOM generator matrices: the assembled hierarchy Liouvillian of a system
coupled to bosonic baths, fermionic baths or both, together with the
description of the hierarchy it was built from.
"""

import copy
import warnings
from time import time

import numpy as np
import scipy.sparse as sp

from qutip import Qobj

from .assembly import assemble, assemble_mixed
from .baths import Bath, Parity
from .blocks import HEOMBlocks
from .exceptions import HEOMConfigurationError
from .hierarchy import HierarchyADOs
from .logging_utils import get_logger
from .parallel import get_map
from .settings import settings
from .superoperator import (
    check_operator, dissipator_csr, system_liouvillian, to_csr,
)

__all__ = [
    "HEOMMatrix",
    "BosonHEOMMatrix",
    "FermionHEOMMatrix",
    "BosonFermionHEOMMatrix",
]

log = get_logger(__name__)


def _check_tier(tier, name="tier"):
    if (
        isinstance(tier, bool)
        or not isinstance(tier, (int, np.integer))
        or tier < 0
    ):
        raise HEOMConfigurationError(
            f"The {name} must be a non-negative integer but {tier!r} was"
            " given."
        )
    return int(tier)


def _to_baths(bath, fermionic, dim):
    """ Return ``bath`` as a list of baths of the given statistics. """
    if isinstance(bath, Bath):
        baths = [bath]
    elif isinstance(bath, (list, tuple)):
        baths = list(bath)
    else:
        raise HEOMConfigurationError(
            "The bath must be a Bath instance or a list of Bath instances"
            f" but {type(bath)!r} was given."
        )
    kind = "fermionic" if fermionic else "bosonic"
    for b in baths:
        if not isinstance(b, Bath):
            raise HEOMConfigurationError(
                "The bath must be a Bath instance or a list of Bath"
                f" instances but a list containing {type(b)!r} was given."
            )
        if any(exp.fermionic != fermionic for exp in b.exponents):
            raise HEOMConfigurationError(
                f"All exponents of a {kind} bath must be {kind}."
            )
        if b.dim is not None and b.dim != dim:
            raise HEOMConfigurationError(
                "The system dimension between the HEOM matrix and the bath"
                f" are not consistent: {dim} and {b.dim}."
            )
    return baths


def _exponents(baths):
    exponents = []
    for b in baths:
        exponents.extend(b.exponents)
    return exponents


class HEOMMatrix:
    """
    Base class of the HEOM generator matrices.

    Subclasses build the sparse matrix in their constructor. Instances are
    not modified afterwards: :meth:`add_dissipator` and
    :meth:`add_terminator` return a new matrix that shares the hierarchy
    description with the original one.

    Attributes
    ----------
    data : scipy.sparse.csr_matrix
        The HEOM generator matrix, of shape ``(N * sup_dim, N * sup_dim)``.

    dim : int
        The dimension of the system Hilbert space.

    sup_dim : int
        The dimension of the system superoperator space, ``dim ** 2``.

    N : int
        The number of ADOs.

    parity : :class:`~heomgen.baths.Parity`
        The parity of the operators the matrix acts on.

    stats : dict
        Timings of the construction.
    """
    kind = None

    default_options = {
        "map": "serial",
        "num_cpus": None,
        "chunks_per_worker": 4,
        "progress_bar": "",
        "progress_kwargs": {"chunk_size": 10},
        "timeout": None,
    }

    def _parse_options(self, options):
        if options is None:
            options = {}
        if not isinstance(options, dict):
            raise TypeError("options must be a dictionary.")
        extra_options = {
            key: val for key, val in options.items()
            if key not in self.default_options
        }
        if extra_options:
            raise KeyError(
                f"Options {extra_options.keys()} are not supported"
            )
        options = {
            **self.default_options,
            **{key: val for key, val in options.items() if val is not None},
        }
        get_map(options["map"])
        if options["num_cpus"] is None:
            if options["map"] in ("serial", "serial_map"):
                options["num_cpus"] = 1
            else:
                options["num_cpus"] = settings.num_cpus
        if int(options["chunks_per_worker"]) < 1:
            raise HEOMConfigurationError(
                "The chunks_per_worker option must be a positive integer."
            )
        return options

    def _init_system(self, H, parity):
        self.parity = Parity.parse(parity)
        self.L_sys, self.dim = system_liouvillian(H)
        self.sup_dim = self.dim * self.dim

    @property
    def shape(self):
        """ The shape of the generator matrix. """
        return self.data.shape

    @property
    def nnz(self):
        """ The number of stored entries of the generator matrix. """
        return self.data.nnz

    @property
    def ado_labels(self):
        """ The labels of the ADOs, in the order of the matrix blocks. """
        raise NotImplementedError

    def ado_index(self, label):
        """ Return the block index of the ADO with the given label. """
        raise NotImplementedError

    def to_qobj(self):
        """ Return the generator matrix as a :obj:`qutip.Qobj`. """
        size = self.N * self.sup_dim
        return Qobj(self.data, dims=[[size], [size]])

    def _with_data(self, data):
        new = copy.copy(self)
        new.data = data
        new.stats = dict(self.stats)
        return new

    def _add_to_blocks(self, L):
        return self._with_data(
            (self.data + sp.kron(
                sp.identity(self.N, dtype=np.complex128, format="csr"), L,
                format="csr",
            )).tocsr()
        )

    def add_dissipator(self, jump_ops):
        """
        Add Lindblad dissipators acting on the system to every ADO.

        Parameters
        ----------
        jump_ops : Qobj or array-like, or list of them
            The jump operators ``J``. The dissipator of each::

                spre(J) * spost(J.dag())
                - 0.5 * (spre(J.dag() * J) + spost(J.dag() * J))

            is added to every diagonal block.

        Returns
        -------
        HEOMMatrix
            A new matrix of the same class with the same hierarchy. If
            ``jump_ops`` is an empty list, the matrix itself is returned.
        """
        if not isinstance(jump_ops, (list, tuple)):
            jump_ops = [jump_ops]
        if len(jump_ops) == 0:
            return self
        L = sp.csr_matrix((self.sup_dim, self.sup_dim), dtype=np.complex128)
        for J in jump_ops:
            J = check_operator(J, self.dim, "jump operator")
            L = L + dissipator_csr(J)
        return self._add_to_blocks(L)

    def _check_terminator_bath(self, bath):
        raise NotImplementedError

    def add_terminator(self, bath):
        """
        Add the terminator of a bath to every ADO.

        Parameters
        ----------
        bath : :class:`~heomgen.baths.Bath`
            The bath whose approximation discrepancy ``delta`` and coupling
            operator ``Q`` give the terminator, see
            :meth:`~heomgen.baths.Bath.terminator`.

        Returns
        -------
        HEOMMatrix
            A new matrix of the same class with the same hierarchy. If the
            discrepancy of the bath is zero, a warning is issued and the
            matrix itself is returned.
        """
        if not isinstance(bath, Bath):
            raise HEOMConfigurationError(
                f"The terminator requires a Bath instance but {type(bath)!r}"
                " was given."
            )
        self._check_terminator_bath(bath)
        if bath.dim != self.dim:
            raise HEOMConfigurationError(
                "The system dimension between the HEOM matrix and the bath"
                f" are not consistent: {self.dim} and {bath.dim}."
            )
        if bath.delta == 0:
            warnings.warn(
                "The approximation discrepancy delta of the bath is 0.0,"
                " adding its terminator does not change the HEOM matrix."
            )
            return self
        _, terminator = bath.terminator()
        return self._add_to_blocks(to_csr(terminator))

    def _kind_name(self):
        return self.kind.capitalize().replace("-f", "-F")

    def __repr__(self):
        return "\n".join([
            f"{self._kind_name()} type HEOM matrix with (system)"
            f" dim = {self.dim} and parity = {self.parity.name}",
            f"number of ADOs N = {self.N}",
            f"shape = {self.shape}, nnz = {self.nnz}",
        ])


class _SingleHEOMMatrix(HEOMMatrix):
    """ Common construction of the bosonic and fermionic matrices. """
    _fermionic = None

    def __init__(self, H, tier, bath, parity=Parity.EVEN, *,
                 threshold=0.0, options=None):
        _time_start = time()
        self.options = self._parse_options(options)
        self._init_system(H, parity)
        self.tier = _check_tier(tier)
        self.bath = _to_baths(bath, self._fermionic, self.dim)
        self.ados = HierarchyADOs(
            _exponents(self.bath), self.tier, threshold=threshold,
        )
        self.N = len(self.ados)
        _init_ados_time = time() - _time_start

        _time_start = time()
        blocks = HEOMBlocks(self.L_sys, self.ados.exponents, self.parity)
        _init_superop_cache_time = time() - _time_start

        _time_start = time()
        self.data = assemble(self.ados, blocks, self.options)
        _init_rhs_time = time() - _time_start

        self.stats = {
            "init time": sum([
                _init_ados_time, _init_superop_cache_time, _init_rhs_time,
            ]),
            "init ados time": _init_ados_time,
            "init superop cache time": _init_superop_cache_time,
            "init rhs time": _init_rhs_time,
            "max_depth": self.tier,
            "num_ados": self.N,
        }
        log.debug(
            "Built %s HEOM matrix with %d ADOs in %.3fs.",
            self.kind, self.N, self.stats["init time"],
        )

    @property
    def ado_labels(self):
        return self.ados.labels

    def ado_index(self, label):
        return self.ados.idx(tuple(label))


class BosonHEOMMatrix(_SingleHEOMMatrix):
    """
    HEOM generator matrix of a system coupled to bosonic baths.

    Parameters
    ----------
    H : Qobj or array-like
        The system Hamiltonian or the system Liouvillian.

    tier : int
        The maximum depth of the hierarchy.

    bath : :class:`~heomgen.baths.Bath` or list of them
        The bosonic bath or baths. An empty list gives the bare system
        Liouvillian.

    parity : :class:`~heomgen.baths.Parity`, default ``Parity.EVEN``
        The parity of the operators the matrix acts on.

    threshold : float, default 0.0
        The importance threshold below which ADOs are pruned, see
        :class:`~heomgen.hierarchy.HierarchyADOs`.

    options : dict, optional
        Construction options, see ``HEOMMatrix.default_options``:

        - map : str {"serial", "thread", "parallel"}
          How the assembly is distributed.
        - num_cpus : int
          Number of workers. Defaults to ``heomgen.settings.num_cpus`` when
          the map is not serial.
        - chunks_per_worker : int
          Number of contiguous chunks of ADOs per worker.
        - progress_bar : str {"text", "enhanced", "tqdm", ""}
          How to present the assembly progress. The progress bar is
          updated once per chunk.
        - progress_kwargs : dict
          Arguments of the progress bar.
        - timeout : float
          Maximum time in seconds for the assembly.
    """
    kind = "boson"
    _fermionic = False

    def _check_terminator_bath(self, bath):
        if any(exp.fermionic for exp in bath.exponents):
            raise HEOMConfigurationError(
                "For a fermionic bath, the HEOM matrix should be either a"
                " FermionHEOMMatrix or a BosonFermionHEOMMatrix."
            )


class FermionHEOMMatrix(_SingleHEOMMatrix):
    """
    HEOM generator matrix of a system coupled to fermionic baths.

    The parameters are the same as those of :class:`BosonHEOMMatrix`, with
    ``bath`` being a fermionic bath or a list of them.
    """
    kind = "fermion"
    _fermionic = True

    def _check_terminator_bath(self, bath):
        if not all(exp.fermionic for exp in bath.exponents):
            raise HEOMConfigurationError(
                "For a bosonic bath, the HEOM matrix should be either a"
                " BosonHEOMMatrix or a BosonFermionHEOMMatrix."
            )


class BosonFermionHEOMMatrix(HEOMMatrix):
    """
    HEOM generator matrix of a system coupled to both bosonic and fermionic
    baths.

    The ADOs are the pairs ``(boson_label, fermion_label)`` of the tensor
    product of the bosonic and the fermionic hierarchy. The pair with
    bosonic index ``b`` and fermionic index ``f`` has the block index
    ``b * N_f + f``.

    Parameters
    ----------
    H : Qobj or array-like
        The system Hamiltonian or the system Liouvillian.

    tier_b, tier_f : int
        The maximum depth of the bosonic and the fermionic hierarchy.

    bath_b, bath_f : :class:`~heomgen.baths.Bath` or list of them
        The bosonic and the fermionic baths.

    parity : :class:`~heomgen.baths.Parity`, default ``Parity.EVEN``
        The parity of the operators the matrix acts on.

    threshold : float, default 0.0
        The importance threshold, applied to both hierarchies.

    options : dict, optional
        Construction options, see :class:`BosonHEOMMatrix`. Bosonic ADOs
        are distributed over the workers.
    """
    kind = "boson-fermion"

    def __init__(self, H, tier_b, tier_f, bath_b, bath_f,
                 parity=Parity.EVEN, *, threshold=0.0, options=None):
        _time_start = time()
        self.options = self._parse_options(options)
        self._init_system(H, parity)
        self.tier_b = _check_tier(tier_b, "bosonic tier")
        self.tier_f = _check_tier(tier_f, "fermionic tier")
        self.bath_b = _to_baths(bath_b, False, self.dim)
        self.bath_f = _to_baths(bath_f, True, self.dim)
        self.ados_b = HierarchyADOs(
            _exponents(self.bath_b), self.tier_b, threshold=threshold,
        )
        self.ados_f = HierarchyADOs(
            _exponents(self.bath_f), self.tier_f, threshold=threshold,
        )
        self.N_b = len(self.ados_b)
        self.N_f = len(self.ados_f)
        self.N = self.N_b * self.N_f
        _init_ados_time = time() - _time_start

        _time_start = time()
        blocks_b = HEOMBlocks(self.L_sys, self.ados_b.exponents, self.parity)
        blocks_f = HEOMBlocks(self.L_sys, self.ados_f.exponents, self.parity)
        _init_superop_cache_time = time() - _time_start

        _time_start = time()
        self.data = assemble_mixed(
            self.ados_b, self.ados_f, blocks_b, blocks_f, self.options,
        )
        _init_rhs_time = time() - _time_start

        self.stats = {
            "init time": sum([
                _init_ados_time, _init_superop_cache_time, _init_rhs_time,
            ]),
            "init ados time": _init_ados_time,
            "init superop cache time": _init_superop_cache_time,
            "init rhs time": _init_rhs_time,
            "max_depth": (self.tier_b, self.tier_f),
            "num_ados": self.N,
        }
        log.debug(
            "Built %s HEOM matrix with %d x %d ADOs in %.3fs.",
            self.kind, self.N_b, self.N_f, self.stats["init time"],
        )

    @property
    def ado_labels(self):
        return [
            (label_b, label_f)
            for label_b in self.ados_b.labels
            for label_f in self.ados_f.labels
        ]

    def ado_index(self, label):
        label_b, label_f = label
        return (
            self.ados_b.idx(tuple(label_b)) * self.N_f
            + self.ados_f.idx(tuple(label_f))
        )

    def _check_terminator_bath(self, bath):
        pass
