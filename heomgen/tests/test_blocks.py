"""
Tests for heomgen.blocks.
"""

import numpy as np
import pytest

from qutip import destroy, liouvillian, qeye, sigmax, sigmaz, spost, spre

from heomgen.baths import BathExponent, BosonicBath, FermionicBath, Parity
from heomgen.blocks import HEOMBlocks
from heomgen.exceptions import HEOMConfigurationError
from heomgen.superoperator import to_csr


def dense(op):
    return op.full() if hasattr(op, "full") else op.toarray()


def assert_block(block, expected):
    np.testing.assert_allclose(block.toarray(), dense(expected), atol=1e-12)


def mk_blocks(exponents, parity=Parity.EVEN, H=None):
    H = sigmaz() if H is None else H
    return HEOMBlocks(to_csr(liouvillian(H)), exponents, parity)


class TestHEOMBlocks:
    def test_create(self):
        Q = sigmax()
        blocks = mk_blocks(BosonicBath(Q, [0.5], [1.0], [], []).exponents)
        assert blocks.sup_dim == 4
        assert blocks.dim == 2
        assert blocks.parity is Parity.EVEN

    def test_invalid_liouvillian(self):
        with pytest.raises(HEOMConfigurationError) as err:
            HEOMBlocks(np.eye(3), [], Parity.EVEN)
        assert str(err.value) == (
            "The system Liouvillian has shape (3, 3) which is not the shape"
            " of a superoperator."
        )

    def test_wrong_coupling_dimension(self):
        exponents = BosonicBath(destroy(3), [0.5], [1.0], [], []).exponents
        with pytest.raises(HEOMConfigurationError) as err:
            mk_blocks(exponents)
        assert str(err.value) == (
            "The coupling operator Q must have shape (2, 2) but has shape"
            " (3, 3)."
        )

    def test_decay_and_diagonal(self):
        H = sigmaz()
        exponents = [
            BathExponent("R", None, Q=sigmax(), ck=0.5, vk=1.0),
            BathExponent("I", None, Q=sigmax(), ck=0.2, vk=2.0 + 0.5j),
        ]
        blocks = mk_blocks(exponents, H=H)
        assert blocks.decay((0, 0)) == 0
        assert blocks.decay((2, 1)) == pytest.approx(2 * 1.0 + 2.0 + 0.5j)
        assert_block(blocks.grad_n((0, 0)), liouvillian(H))
        assert_block(
            blocks.grad_n((2, 1)),
            liouvillian(H) - (4.0 + 0.5j) * spre(qeye(2)),
        )

    def test_prev_bosonic(self):
        Q = sigmax()
        comm = spre(Q) - spost(Q)
        acomm = spre(Q) + spost(Q)
        exponents = [
            BathExponent("R", None, Q=Q, ck=0.5, vk=1.0),
            BathExponent("I", None, Q=Q, ck=0.2, vk=2.0),
            BathExponent("RI", None, Q=Q, ck=0.3, vk=3.0, ck2=0.4),
        ]
        blocks = mk_blocks(exponents)
        assert_block(blocks.prev((2, 0, 0), 0), -1j * 2 * 0.5 * comm)
        assert_block(blocks.prev((0, 1, 0), 1), 1 * 0.2 * acomm)
        assert_block(
            blocks.prev((0, 0, 3), 2),
            3 * (-1j * 0.3 * comm + 0.4 * acomm),
        )

    def test_prev_from_correlation(self):
        Q = sigmax()
        eta = 0.1 + 0.3j
        bath = BosonicBath.from_correlation(Q, [eta], [1.0])
        blocks = mk_blocks(bath.exponents)
        assert_block(
            blocks.prev((2,), 0),
            -1j * 2 * (eta * spre(Q) - np.conj(eta) * spost(Q)),
        )

    def test_next_bosonic(self):
        Q = sigmax()
        bath = BosonicBath(Q, [0.5], [1.0], [0.2], [2.0])
        blocks = mk_blocks(bath.exponents)
        expected = -1j * (spre(Q) - spost(Q))
        for label in [(0, 0), (1, 0), (3, 2)]:
            for k in range(2):
                assert_block(blocks.next(label, k), expected)

    @pytest.mark.parametrize("parity", [Parity.EVEN, Parity.ODD])
    @pytest.mark.parametrize("label", [
        (0, 0, 0, 0), (1, 0, 0, 0), (0, 1, 1, 0), (1, 1, 0, 1),
    ])
    def test_fermionic_signs(self, parity, label):
        Q = destroy(2)
        ck_plus = [0.3 + 0.1j, 0.2]
        ck_minus = [0.3 - 0.1j, 0.5j]
        bath = FermionicBath(Q, ck_plus, [1.0, 2.0], ck_minus, [1.0, 2.0])
        blocks = mk_blocks(bath.exponents, parity=parity)
        p = int(parity)
        n_exc = sum(label)
        for k, exp in enumerate(bath.exponents):
            before = sum(label[:k])
            s2 = (-1) ** (before + p)
            s1 = (-1) ** (n_exc + 1 - p)
            ck_bar = bath.exponents[k + exp.sigma_bar_k_offset].ck
            if exp.type.name == "+":
                op_prev, op_next = Q.dag(), Q
            else:
                op_prev, op_next = Q, Q.dag()
            if label[k] == 1:
                assert_block(
                    blocks.prev(label, k),
                    -1j * s2 * (
                        exp.ck * spre(op_prev)
                        - s1 * np.conj(ck_bar) * spost(op_prev)
                    ),
                )
            else:
                assert_block(
                    blocks.next(label, k),
                    -1j * s2 * (spre(op_next) + s1 * spost(op_next)),
                )

    def test_fermionic_signs_ignore_bosonic_slots(self):
        exponents = [
            BathExponent("R", None, Q=sigmax(), ck=0.5, vk=1.0),
            BathExponent(
                "+", 2, Q=destroy(2), ck=0.3, vk=1.0, sigma_bar_k_offset=1,
            ),
            BathExponent(
                "-", 2, Q=destroy(2), ck=0.4, vk=1.0, sigma_bar_k_offset=-1,
            ),
        ]
        blocks = mk_blocks(exponents)
        fermionic_only = mk_blocks(exponents[1:])
        for boson_n in [0, 1, 3]:
            assert_block(
                blocks.next((boson_n, 1, 0), 2),
                fermionic_only.next((1, 0), 1),
            )
            assert_block(
                blocks.prev((boson_n, 1, 0), 1),
                fermionic_only.prev((1, 0), 0),
            )

    def test_shared_coupling_operator(self):
        bath = BosonicBath(sigmax(), [0.5, 0.1], [1.0, 3.0], [], [])
        blocks = mk_blocks(bath.exponents)
        assert blocks._spreQ[0] is blocks._spreQ[1]
