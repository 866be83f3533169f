"""
The block superoperators coupling the ADOs of a hierarchy.

Each block is a ``(sup_dim, sup_dim)`` sparse matrix, where ``sup_dim`` is
the square of the system dimension. The block for the equation of motion
of the ADO with label ``n`` contains the free system Liouvillian and the
decay of ``n`` (the diagonal block), while the transition blocks couple it
to the ADOs with one fewer (``prev``) or one more (``next``) excitation in
one exponent.
"""

import numpy as np
import scipy.sparse as sp

from .baths import BathExponent, Parity
from .exceptions import HEOMConfigurationError
from .superoperator import check_operator, spre_csr, spost_csr

__all__ = ["HEOMBlocks"]


class HEOMBlocks:
    """
    Builder for the block superoperators of a hierarchy.

    The pre- and post-multiplication superoperators of the coupling
    operators are computed once when the builder is created. Afterwards
    all methods are pure functions of the ADO label they are given and may
    be called concurrently.

    Parameters
    ----------
    L_sys : scipy.sparse matrix
        The free system Liouvillian, of shape ``(sup_dim, sup_dim)``.

    exponents : list of :class:`~heomgen.baths.BathExponent`
        The exponents the slots of the ADO labels refer to.

    parity : :class:`~heomgen.baths.Parity` or str or int
        The parity of the hierarchy. Only used for fermionic exponents.

    Attributes
    ----------
    sup_dim : int
        The dimension of the superoperator space.

    dim : int
        The dimension of the system Hilbert space.
    """

    def __init__(self, L_sys, exponents, parity=Parity.EVEN):
        self.L_sys = sp.csr_matrix(L_sys, dtype=np.complex128)
        self.sup_dim = self.L_sys.shape[0]
        self.dim = int(round(np.sqrt(self.sup_dim)))
        if (
            self.L_sys.shape[0] != self.L_sys.shape[1]
            or self.dim * self.dim != self.sup_dim
        ):
            raise HEOMConfigurationError(
                f"The system Liouvillian has shape {self.L_sys.shape} which"
                " is not the shape of a superoperator."
            )
        self.exponents = list(exponents)
        self.parity = Parity.parse(parity)
        self._fermionic = [exp.fermionic for exp in self.exponents]
        self._sId = sp.identity(self.sup_dim, dtype=np.complex128,
                                format="csr")

        # exponents of one bath share their coupling operator
        cache = {}
        self._spreQ = []
        self._spostQ = []
        self._spreQdag = []
        self._spostQdag = []
        for exp in self.exponents:
            key = id(exp.Q)
            if key not in cache:
                Q = check_operator(exp.Q, self.dim, "coupling operator Q")
                Qdag = Q.dag()
                cache[key] = (
                    spre_csr(Q), spost_csr(Q), spre_csr(Qdag), spost_csr(Qdag),
                )
            spreQ, spostQ, spreQdag, spostQdag = cache[key]
            self._spreQ.append(spreQ)
            self._spostQ.append(spostQ)
            self._spreQdag.append(spreQdag)
            self._spostQdag.append(spostQdag)

        n_exp = len(self.exponents)
        self._s_pre_minus_post_Q = [
            self._spreQ[k] - self._spostQ[k] for k in range(n_exp)
        ]
        self._s_pre_plus_post_Q = [
            self._spreQ[k] + self._spostQ[k] for k in range(n_exp)
        ]
        self._s_pre_minus_post_Qdag = [
            self._spreQdag[k] - self._spostQdag[k] for k in range(n_exp)
        ]
        self._s_pre_plus_post_Qdag = [
            self._spreQdag[k] + self._spostQdag[k] for k in range(n_exp)
        ]

    def decay(self, label):
        """ Total decay rate ``sum_k n_k vk_k`` of the ADO ``label``. """
        return sum(
            n * exp.vk for n, exp in zip(label, self.exponents) if n > 0
        )

    def diagonal(self, decay):
        """ The diagonal block ``L_sys - decay * identity``. """
        if decay == 0:
            return self.L_sys.copy()
        return self.L_sys - decay * self._sId

    def grad_n(self, label):
        """ Get the diagonal block for the ADO ``label``. """
        return self.diagonal(self.decay(label))

    def _signs(self, label, k):
        he_fermionic_n = [
            n * int(fermionic)
            for n, fermionic in zip(label, self._fermionic)
        ]
        n_excite = sum(he_fermionic_n)
        sign1 = (-1) ** (n_excite + 1 - self.parity)

        n_excite_before_m = sum(he_fermionic_n[:k])
        sign2 = (-1) ** (n_excite_before_m + self.parity)
        return sign1, sign2

    def prev(self, label, k):
        """
        The block coupling the ADO ``label`` to the ADO with one fewer
        excitation in exponent ``k``.
        """
        if self.exponents[k].fermionic:
            return self._prev_fermionic(label, k)
        return self._prev_bosonic(label, k)

    def _prev_bosonic(self, label, k):
        exp = self.exponents[k]
        n_k = label[k]
        if exp.type == BathExponent.types.R:
            op = (-1j * n_k * exp.ck) * self._s_pre_minus_post_Q[k]
        elif exp.type == BathExponent.types.I:
            op = (n_k * exp.ck) * self._s_pre_plus_post_Q[k]
        elif exp.type == BathExponent.types.RI:
            op = (
                (-1j * n_k * exp.ck) * self._s_pre_minus_post_Q[k]
                + (n_k * exp.ck2) * self._s_pre_plus_post_Q[k]
            )
        else:
            raise HEOMConfigurationError(
                f"Unsupported type {exp.type} for exponent {k}"
            )
        return op

    def _prev_fermionic(self, label, k):
        exp = self.exponents[k]
        sign1, sign2 = self._signs(label, k)
        ck_bar = self.exponents[k + exp.sigma_bar_k_offset].ck

        if exp.type == BathExponent.types["+"]:
            op = (
                (-1j * sign2 * exp.ck) * self._spreQdag[k]
                - (-1j * sign2 * sign1 * np.conj(ck_bar)) * self._spostQdag[k]
            )
        elif exp.type == BathExponent.types["-"]:
            op = (
                (-1j * sign2 * exp.ck) * self._spreQ[k]
                - (-1j * sign2 * sign1 * np.conj(ck_bar)) * self._spostQ[k]
            )
        else:
            raise HEOMConfigurationError(
                f"Unsupported type {exp.type} for exponent {k}"
            )
        return op

    def next(self, label, k):
        """
        The block coupling the ADO ``label`` to the ADO with one more
        excitation in exponent ``k``.
        """
        if self.exponents[k].fermionic:
            return self._next_fermionic(label, k)
        return -1j * self._s_pre_minus_post_Q[k]

    def _next_fermionic(self, label, k):
        exp = self.exponents[k]
        sign1, sign2 = self._signs(label, k)

        if exp.type == BathExponent.types["+"]:
            if sign1 == -1:
                op = (-1j * sign2) * self._s_pre_minus_post_Q[k]
            else:
                op = (-1j * sign2) * self._s_pre_plus_post_Q[k]
        elif exp.type == BathExponent.types["-"]:
            if sign1 == -1:
                op = (-1j * sign2) * self._s_pre_minus_post_Qdag[k]
            else:
                op = (-1j * sign2) * self._s_pre_plus_post_Qdag[k]
        else:
            raise HEOMConfigurationError(
                f"Unsupported type {exp.type} for exponent {k}"
            )
        return op

    def __repr__(self):
        return (
            f"<{self.__class__.__name__} sup_dim={self.sup_dim}"
            f" exponents={len(self.exponents)} parity={self.parity.name}>"
        )
