"""
Assembly of the HEOM generator matrix from its blocks.

Every block is turned into COO triplets offset to its position within the
full matrix ("padding"). The outer loop over ADO indices is split into
contiguous chunks which are processed by a map function from
:mod:`heomgen.parallel`. Each chunk fills its own buffers and the buffers
are concatenated once all chunks are done. Duplicate coordinates are
summed when the COO matrix is converted to CSR, so the result does not
depend on the order in which chunks finish.
"""

from time import time

import numpy as np
import scipy.sparse as sp

from .exceptions import HEOMConfigurationError, HierarchyInvariantError
from .logging_utils import get_logger
from .parallel import get_map

__all__ = [
    "pad_coo",
    "assemble",
    "assemble_mixed",
]

log = get_logger(__name__)


def pad_coo(op, block, n_blocks, row_idx, col_idx):
    """
    Convert a block operator to the COO triplets of its position within
    the full matrix.

    Parameters
    ----------
    op : scipy.sparse matrix or numpy.ndarray
        The ``(block, block)`` operator.
    block : int
        The size of a single block.
    n_blocks : int
        The number of blocks along each side of the full matrix.
    row_idx, col_idx : int
        The (0-based) block row and block column of the operator.

    Returns
    -------
    (rows, cols, vals) : tuple of numpy.ndarray
        The row indices, column indices and values of the non-zero entries
        of ``op`` within the full matrix.
    """
    if not 0 <= row_idx < n_blocks:
        raise HEOMConfigurationError(
            f"The block row index must be between 0 and {n_blocks - 1}"
            f" but {row_idx} was given."
        )
    if not 0 <= col_idx < n_blocks:
        raise HEOMConfigurationError(
            f"The block column index must be between 0 and {n_blocks - 1}"
            f" but {col_idx} was given."
        )
    coo = sp.coo_matrix(op)
    if coo.shape != (block, block):
        raise HEOMConfigurationError(
            f"The block operator must have shape {(block, block)} but has"
            f" shape {coo.shape}."
        )
    rows = coo.row.astype(np.int64) + block * row_idx
    cols = coo.col.astype(np.int64) + block * col_idx
    vals = coo.data.astype(np.complex128)
    return rows, cols, vals


class _GatherHEOMRHS:
    """ A class for collecting elements of the HEOM generator matrix.

        Parameters
        ----------
        f_idx: function(he_state) -> he_idx
            A function that returns the index of a hierarchy state
            (i.e. an ADO label).
        block : int
            The size of a single ADO Liovillian operator in the hierarchy.
        nhe : int
            The number of ADOs in the hierarchy.
    """

    def __init__(self, f_idx, block, nhe):
        self._block_size = block
        self._n_blocks = nhe
        self._f_idx = f_idx
        self._rows = []
        self._cols = []
        self._vals = []

    def add_op(self, row_he, col_he, op):
        """ Add a block operator given the labels of its row and column. """
        self.add_block(self._f_idx(row_he), self._f_idx(col_he), op)

    def add_block(self, row_idx, col_idx, op):
        """ Add a block operator given its block row and column index. """
        rows, cols, vals = pad_coo(
            op, self._block_size, self._n_blocks, row_idx, col_idx,
        )
        self._rows.append(rows)
        self._cols.append(cols)
        self._vals.append(vals)

    def gather(self):
        """ Return the collected ``(rows, cols, vals)`` triplets. """
        return _concatenate(zip(self._rows, self._cols, self._vals))


def _concatenate(triplets):
    """ Join a sequence of ``(rows, cols, vals)`` array triplets. """
    triplets = list(triplets)
    rows = [t[0] for t in triplets]
    cols = [t[1] for t in triplets]
    vals = [t[2] for t in triplets]
    if not rows:
        return (
            np.zeros(0, dtype=np.int64),
            np.zeros(0, dtype=np.int64),
            np.zeros(0, dtype=np.complex128),
        )
    return np.concatenate(rows), np.concatenate(cols), np.concatenate(vals)


def _chunks(n, n_chunks):
    """ Split ``range(n)`` into at most ``n_chunks`` contiguous ranges. """
    n_chunks = max(1, min(n, n_chunks))
    bounds = np.linspace(0, n, n_chunks + 1).astype(int)
    return [
        (int(start), int(stop))
        for start, stop in zip(bounds[:-1], bounds[1:]) if stop > start
    ]


def _neighbour_idx(ados, label):
    idx = ados.lookup(label)
    if idx is None and not ados.pruned:
        raise HierarchyInvariantError(
            f"The ADO label {label} is not part of the unpruned hierarchy."
        )
    return idx


def _moves(ados, blocks, i):
    """ Return ``(j, op)`` for every transition block of the ADO ``i``. """
    he_n = ados.labels[i]
    moves = []
    for k in range(len(ados.dims)):
        next_he = ados.next(he_n, k)
        if next_he is not None:
            j = _neighbour_idx(ados, next_he)
            if j is not None:
                moves.append((j, blocks.next(he_n, k)))
        prev_he = ados.prev(he_n, k)
        if prev_he is not None:
            j = _neighbour_idx(ados, prev_he)
            if j is not None:
                moves.append((j, blocks.prev(he_n, k)))
    return moves


def _assemble_chunk(chunk, ados, blocks):
    start, stop = chunk
    ops = _GatherHEOMRHS(ados.idx, block=blocks.sup_dim, nhe=len(ados))
    for i in range(start, stop):
        ops.add_block(i, i, blocks.grad_n(ados.labels[i]))
        for j, op in _moves(ados, blocks, i):
            ops.add_block(i, j, op)
    return ops.gather()


def _assemble_mixed_chunk(chunk, ados_b, ados_f, blocks_b, blocks_f):
    start, stop = chunk
    n_f = len(ados_f)
    ops = _GatherHEOMRHS(
        None, block=blocks_b.sup_dim, nhe=len(ados_b) * n_f,
    )
    decay_f = [blocks_f.decay(label) for label in ados_f.labels]
    moves_f = [_moves(ados_f, blocks_f, f) for f in range(n_f)]
    for b in range(start, stop):
        decay_b = blocks_b.decay(ados_b.labels[b])
        moves_b = _moves(ados_b, blocks_b, b)
        for f in range(n_f):
            idx = b * n_f + f
            ops.add_block(idx, idx, blocks_b.diagonal(decay_b + decay_f[f]))
            for j_b, op in moves_b:
                ops.add_block(idx, j_b * n_f + f, op)
            for j_f, op in moves_f[f]:
                ops.add_block(idx, b * n_f + j_f, op)
    return ops.gather()


def _run_chunks(task, n_outer, task_args, options):
    options = options or {}
    num_cpus = options.get("num_cpus") or 1
    n_chunks = num_cpus * options.get("chunks_per_worker", 1)
    chunks = _chunks(n_outer, n_chunks)
    map_func = get_map(options.get("map", "serial"))
    log.debug(
        "Assembling %d outer ADO indices in %d chunks using %s with %d"
        " workers.", n_outer, len(chunks), map_func.__name__, num_cpus,
    )
    buffers = map_func(
        task, chunks,
        task_args=task_args,
        map_kw={
            "num_cpus": num_cpus,
            "timeout": options.get("timeout"),
            "fail_fast": True,
        },
        progress_bar=options.get("progress_bar"),
        progress_bar_kwargs=options.get("progress_kwargs") or {},
    )
    return _concatenate(buffers)


def _to_csr(triplets, size):
    rows, cols, vals = triplets
    return sp.coo_matrix((vals, (rows, cols)), shape=(size, size)).tocsr()


def assemble(ados, blocks, options=None):
    """
    Assemble the generator matrix of a single hierarchy.

    Parameters
    ----------
    ados : :class:`~heomgen.hierarchy.HierarchyADOs`
        The hierarchy.
    blocks : :class:`~heomgen.blocks.HEOMBlocks`
        The block builder for the exponents of ``ados``.
    options : dict, optional
        The map options: ``map``, ``num_cpus``, ``chunks_per_worker``,
        ``progress_bar``, ``progress_kwargs`` and ``timeout``.

    Returns
    -------
    scipy.sparse.csr_matrix
        The ``(N * sup_dim, N * sup_dim)`` matrix, where ``N`` is the
        number of ADOs. Block ``(i, i)`` is the diagonal block of ADO
        ``i`` and block ``(i, j)`` the transition block feeding ADO ``j``
        into the equation of motion of ADO ``i``.
    """
    _time_start = time()
    triplets = _run_chunks(
        _assemble_chunk, len(ados), (ados, blocks), options,
    )
    data = _to_csr(triplets, len(ados) * blocks.sup_dim)
    log.debug(
        "Assembled HEOM matrix with %d ADOs and %d non-zeros in %.3fs.",
        len(ados), data.nnz, time() - _time_start,
    )
    return data


def assemble_mixed(ados_b, ados_f, blocks_b, blocks_f, options=None):
    """
    Assemble the generator matrix of the tensor product of a bosonic and
    a fermionic hierarchy.

    The ADO with bosonic index ``b`` and fermionic index ``f`` has the
    global index ``b * N_f + f``. Its diagonal block has the sum of the
    bosonic and fermionic decay rates. Bosonic transitions are repeated for
    every fermionic index and fermionic transitions for every bosonic
    index.

    Parameters
    ----------
    ados_b, ados_f : :class:`~heomgen.hierarchy.HierarchyADOs`
        The bosonic and fermionic hierarchies.
    blocks_b, blocks_f : :class:`~heomgen.blocks.HEOMBlocks`
        The block builders of the two hierarchies. They must share the
        same system Liouvillian.
    options : dict, optional
        The map options, see :func:`assemble`.

    Returns
    -------
    scipy.sparse.csr_matrix
        The ``(N_b * N_f * sup_dim, N_b * N_f * sup_dim)`` matrix.
    """
    if blocks_b.sup_dim != blocks_f.sup_dim:
        raise HEOMConfigurationError(
            "The bosonic and fermionic blocks must act on the same system"
            f" but have superoperator dimensions {blocks_b.sup_dim} and"
            f" {blocks_f.sup_dim}."
        )
    _time_start = time()
    triplets = _run_chunks(
        _assemble_mixed_chunk, len(ados_b),
        (ados_b, ados_f, blocks_b, blocks_f), options,
    )
    n_ados = len(ados_b) * len(ados_f)
    data = _to_csr(triplets, n_ados * blocks_b.sup_dim)
    log.debug(
        "Assembled mixed HEOM matrix with %d x %d ADOs and %d non-zeros"
        " in %.3fs.",
        len(ados_b), len(ados_f), data.nnz, time() - _time_start,
    )
    return data
