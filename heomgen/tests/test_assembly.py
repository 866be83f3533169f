"""
Tests for heomgen.assembly.
"""

import numpy as np
import pytest
import scipy.sparse as sp

from qutip import destroy, liouvillian, sigmax, sigmaz, spost, spre

from heomgen.assembly import (
    _GatherHEOMRHS,
    _chunks,
    _concatenate,
    assemble,
    assemble_mixed,
    pad_coo,
)
from heomgen.baths import BathExponent, BosonicBath, FermionicBath, Parity
from heomgen.blocks import HEOMBlocks
from heomgen.exceptions import HEOMConfigurationError, HierarchyInvariantError
from heomgen.hierarchy import HierarchyADOs
from heomgen.superoperator import to_csr


def block(M, i, j, sup_dim):
    """ Return the dense ``(i, j)`` block of the sparse matrix ``M``. """
    return M[
        i * sup_dim:(i + 1) * sup_dim, j * sup_dim:(j + 1) * sup_dim
    ].toarray()


def sub_matrix(M, idx, sup_dim):
    """ Return the blocks of ``M`` with block rows and columns in idx. """
    full_idx = np.concatenate([
        np.arange(i * sup_dim, (i + 1) * sup_dim) for i in idx
    ])
    return M[full_idx][:, full_idx].toarray()


def mk_hierarchy(exponents, tier, H=None, parity=Parity.EVEN, threshold=0.0):
    H = sigmaz() if H is None else H
    L_sys = to_csr(liouvillian(H))
    ados = HierarchyADOs(exponents, tier, threshold=threshold)
    blocks = HEOMBlocks(L_sys, exponents, parity)
    return ados, blocks, L_sys


class TestPadCoo:
    def test_offsets(self):
        op = sp.csr_matrix(np.array([[1, 0], [2j, 3]]))
        rows, cols, vals = pad_coo(op, 2, 3, 1, 2)
        M = sp.coo_matrix((vals, (rows, cols)), shape=(6, 6)).toarray()
        expected = np.zeros((6, 6), dtype=complex)
        expected[2:4, 4:6] = [[1, 0], [2j, 3]]
        np.testing.assert_allclose(M, expected)
        assert vals.dtype == np.complex128

    def test_empty_block(self):
        rows, cols, vals = pad_coo(sp.csr_matrix((2, 2)), 2, 3, 0, 0)
        assert len(rows) == len(cols) == len(vals) == 0

    def test_invalid(self):
        op = sp.identity(2, format="csr")
        with pytest.raises(HEOMConfigurationError) as err:
            pad_coo(op, 2, 3, 3, 0)
        assert str(err.value) == (
            "The block row index must be between 0 and 2 but 3 was given."
        )
        with pytest.raises(HEOMConfigurationError) as err:
            pad_coo(op, 2, 3, 0, -1)
        assert str(err.value) == (
            "The block column index must be between 0 and 2 but -1 was"
            " given."
        )
        with pytest.raises(HEOMConfigurationError) as err:
            pad_coo(sp.identity(3), 2, 3, 0, 0)
        assert str(err.value) == (
            "The block operator must have shape (2, 2) but has shape (3, 3)."
        )


class TestGatherHEOMRHS:
    def test_add_op(self):
        labels = {(0,): 0, (1,): 1}
        ops = _GatherHEOMRHS(labels.__getitem__, block=2, nhe=2)
        ops.add_op((0,), (1,), sp.identity(2))
        ops.add_block(1, 1, 2 * sp.identity(2))
        ops.add_op((0,), (1,), sp.identity(2))
        rows, cols, vals = ops.gather()
        M = sp.coo_matrix((vals, (rows, cols)), shape=(4, 4)).toarray()
        np.testing.assert_allclose(M, np.array([
            [0, 0, 2, 0],
            [0, 0, 0, 2],
            [0, 0, 2, 0],
            [0, 0, 0, 2],
        ]))

    def test_gather_empty(self):
        ops = _GatherHEOMRHS(None, block=2, nhe=2)
        rows, cols, vals = ops.gather()
        assert len(rows) == 0
        assert rows.dtype == np.int64


class TestChunks:
    @pytest.mark.parametrize(["n", "n_chunks"], [
        (1, 1), (10, 3), (3, 10), (17, 4), (0, 2),
    ])
    def test_contiguous_cover(self, n, n_chunks):
        chunks = _chunks(n, n_chunks)
        covered = [i for start, stop in chunks for i in range(start, stop)]
        assert covered == list(range(n))
        assert len(chunks) <= max(1, n_chunks)


class TestConcatenate:
    def test_joins_chunks(self):
        chunks = [
            (np.array([0, 1]), np.array([1, 0]), np.array([1j, 2.0])),
            (np.zeros(0, dtype=np.int64), np.zeros(0, dtype=np.int64),
             np.zeros(0, dtype=np.complex128)),
            (np.array([2]), np.array([2]), np.array([3.0 + 0j])),
        ]
        rows, cols, vals = _concatenate(chunks)
        assert rows.tolist() == [0, 1, 2]
        assert cols.tolist() == [1, 0, 2]
        np.testing.assert_allclose(vals, [1j, 2.0, 3.0])

    def test_no_chunks(self):
        rows, cols, vals = _concatenate([])
        assert len(rows) == len(cols) == len(vals) == 0
        assert vals.dtype == np.complex128


class TestAssemble:
    def test_two_level_scenario(self):
        Q = sigmax()
        eta = 0.1 + 0j
        bath = BosonicBath.from_correlation(Q, [eta], [1.0 + 0j])
        ados, blocks, L_sys = mk_hierarchy(bath.exponents, 1)
        M = assemble(ados, blocks)

        assert len(ados) == 2
        assert M.shape == (8, 8)
        np.testing.assert_allclose(block(M, 0, 0, 4), L_sys.toarray())
        np.testing.assert_allclose(
            block(M, 1, 1, 4), L_sys.toarray() - 1.0 * np.eye(4),
        )
        # block row i holds the equation of ADO i, block column j the ADO
        # feeding it (see DESIGN.md): the root is fed by the first level
        # through the commutator with Q
        np.testing.assert_allclose(
            block(M, 0, 1, 4), (-1j * (spre(Q) - spost(Q))).full(),
        )
        np.testing.assert_allclose(
            block(M, 1, 0, 4),
            (-1j * 1 * (eta * spre(Q) - np.conj(eta) * spost(Q))).full(),
        )

    def test_zero_bath(self):
        ados, blocks, L_sys = mk_hierarchy([], 3, H=sigmax() + sigmaz())
        M = assemble(ados, blocks)
        assert M.shape == L_sys.shape
        np.testing.assert_allclose(M.toarray(), L_sys.toarray())

    def test_diagonal_blocks(self):
        bath = BosonicBath(sigmax(), [0.5, 0.1], [1.0, 3.0], [0.2], [1.0])
        ados, blocks, L_sys = mk_hierarchy(bath.exponents, 3)
        M = assemble(ados, blocks)
        n = len(ados)
        assert M.shape == (4 * n, 4 * n)
        for i, label in enumerate(ados.labels):
            decay = sum(
                n_k * exp.vk for n_k, exp in zip(label, ados.exponents)
            )
            np.testing.assert_allclose(
                block(M, i, i, 4), L_sys.toarray() - decay * np.eye(4),
            )

    def test_sparsity_pattern(self):
        bath = BosonicBath(sigmax(), [0.5, 0.1], [1.0, 3.0], [], [])
        ados, blocks, _ = mk_hierarchy(bath.exponents, 3)
        M = assemble(ados, blocks)
        for i, label_i in enumerate(ados.labels):
            for j, label_j in enumerate(ados.labels):
                distance = sum(abs(a - b) for a, b in zip(label_i, label_j))
                if distance > 1:
                    assert not np.any(block(M, i, j, 4))

    def test_fermionic(self):
        Q = destroy(2)
        bath = FermionicBath(Q, [0.3], [1.0], [0.2], [2.0])
        ados, blocks, _ = mk_hierarchy(bath.exponents, 2)
        M = assemble(ados, blocks)
        assert ados.labels == [(0, 0), (0, 1), (1, 0), (1, 1)]
        i, j = ados.idx((0, 0)), ados.idx((1, 0))
        np.testing.assert_allclose(
            block(M, i, j, 4), blocks.next((0, 0), 0).toarray(),
        )
        np.testing.assert_allclose(
            block(M, j, i, 4), blocks.prev((1, 0), 0).toarray(),
        )

    @pytest.mark.parametrize("map_name", ["serial", "thread", "parallel"])
    def test_maps_agree(self, map_name):
        bath = BosonicBath(sigmax(), [0.5, 0.1], [1.0, 3.0], [0.2], [1.5])
        ados, blocks, _ = mk_hierarchy(bath.exponents, 3)
        expected = assemble(ados, blocks)
        M = assemble(ados, blocks, {
            "map": map_name, "num_cpus": 2, "chunks_per_worker": 3,
        })
        assert (M != expected).nnz == 0

    def test_many_serial_chunks(self):
        bath = BosonicBath(sigmax(), [0.5, 0.1], [1.0, 3.0], [], [])
        ados, blocks, _ = mk_hierarchy(bath.exponents, 2)
        expected = assemble(ados, blocks)
        M = assemble(ados, blocks, {"num_cpus": 3, "chunks_per_worker": 2})
        assert M.shape == expected.shape
        assert (M != expected).nnz == 0

    def test_missing_neighbour(self):
        bath = BosonicBath(sigmax(), [0.5], [1.0], [], [])
        ados, blocks, _ = mk_hierarchy(bath.exponents, 2)
        missing = ados.labels.pop()
        del ados._label_idx[missing]
        with pytest.raises(HierarchyInvariantError) as err:
            assemble(ados, blocks)
        assert str(err.value) == (
            "The ADO label (2,) is not part of the unpruned hierarchy."
        )

    def test_pruned_neighbours_skipped(self):
        exponents = [
            BathExponent("R", None, Q=sigmax(), ck=0.5, vk=1.0),
            BathExponent("R", None, Q=sigmax(), ck=1e-3, vk=1.0),
        ]
        ados, blocks, L_sys = mk_hierarchy(exponents, 2, threshold=0.01)
        assert ados.labels == [(0, 0), (1, 0), (2, 0)]
        M = assemble(ados, blocks)
        assert M.shape == (12, 12)
        np.testing.assert_allclose(
            block(M, 0, 1, 4), blocks.next((0, 0), 0).toarray(),
        )


class TestAssembleMixed:
    def mk_mixed(self, tier_b=2, tier_f=2):
        H = sigmaz()
        bath_b = BosonicBath(sigmax(), [0.5], [1.0], [0.2], [2.0])
        bath_f = FermionicBath(destroy(2), [0.3], [1.5], [0.2j], [1.5])
        ados_b, blocks_b, L_sys = mk_hierarchy(bath_b.exponents, tier_b, H)
        ados_f, blocks_f, _ = mk_hierarchy(bath_f.exponents, tier_f, H)
        return ados_b, ados_f, blocks_b, blocks_f, L_sys

    def test_shape_and_diagonal(self):
        ados_b, ados_f, blocks_b, blocks_f, L_sys = self.mk_mixed()
        M = assemble_mixed(ados_b, ados_f, blocks_b, blocks_f)
        n_b, n_f = len(ados_b), len(ados_f)
        assert M.shape == (n_b * n_f * 4, n_b * n_f * 4)
        for b, label_b in enumerate(ados_b.labels):
            for f, label_f in enumerate(ados_f.labels):
                decay = blocks_b.decay(label_b) + blocks_f.decay(label_f)
                idx = b * n_f + f
                np.testing.assert_allclose(
                    block(M, idx, idx, 4),
                    L_sys.toarray() - decay * np.eye(4),
                )

    def test_fixed_fermion_index(self):
        ados_b, ados_f, blocks_b, blocks_f, _ = self.mk_mixed()
        M = assemble_mixed(ados_b, ados_f, blocks_b, blocks_f)
        M_b = assemble(ados_b, blocks_b).toarray()
        n_b, n_f = len(ados_b), len(ados_f)
        for f, label_f in enumerate(ados_f.labels):
            decay_f = blocks_f.decay(label_f)
            sub = sub_matrix(M, [b * n_f + f for b in range(n_b)], 4)
            np.testing.assert_allclose(
                sub, M_b - decay_f * np.eye(n_b * 4), atol=1e-12,
            )

    def test_fixed_boson_index(self):
        ados_b, ados_f, blocks_b, blocks_f, _ = self.mk_mixed()
        M = assemble_mixed(ados_b, ados_f, blocks_b, blocks_f)
        M_f = assemble(ados_f, blocks_f).toarray()
        n_b, n_f = len(ados_b), len(ados_f)
        for b, label_b in enumerate(ados_b.labels):
            decay_b = blocks_b.decay(label_b)
            sub = sub_matrix(M, [b * n_f + f for f in range(n_f)], 4)
            np.testing.assert_allclose(
                sub, M_f - decay_b * np.eye(n_f * 4), atol=1e-12,
            )

    def test_no_cross_couplings(self):
        ados_b, ados_f, blocks_b, blocks_f, _ = self.mk_mixed()
        M = assemble_mixed(ados_b, ados_f, blocks_b, blocks_f)
        n_f = len(ados_f)
        for b1 in range(len(ados_b)):
            for b2 in range(len(ados_b)):
                for f1 in range(n_f):
                    for f2 in range(n_f):
                        if b1 != b2 and f1 != f2:
                            assert not np.any(block(
                                M, b1 * n_f + f1, b2 * n_f + f2, 4,
                            ))

    @pytest.mark.parametrize("map_name", ["serial", "thread", "parallel"])
    def test_maps_agree(self, map_name):
        ados_b, ados_f, blocks_b, blocks_f, _ = self.mk_mixed()
        expected = assemble_mixed(ados_b, ados_f, blocks_b, blocks_f)
        M = assemble_mixed(ados_b, ados_f, blocks_b, blocks_f, {
            "map": map_name, "num_cpus": 2,
        })
        assert (M != expected).nnz == 0

    def test_mismatched_systems(self):
        ados_b, ados_f, blocks_b, _, _ = self.mk_mixed()
        blocks_f = HEOMBlocks(
            to_csr(liouvillian(destroy(3))), [], Parity.EVEN,
        )
        with pytest.raises(HEOMConfigurationError) as err:
            assemble_mixed(ados_b, ados_f, blocks_b, blocks_f)
        assert str(err.value) == (
            "The bosonic and fermionic blocks must act on the same system"
            " but have superoperator dimensions 4 and 9."
        )
