"""
Access to the individual ADOs of a full hierarchy state vector.
"""

import numpy as np

from qutip import Qobj

from .exceptions import HEOMConfigurationError
from .superoperator import check_operator

__all__ = ["HierarchyADOsState"]


class HierarchyADOsState:
    """
    Provides convenient access to the ADOs of a full hierarchy state, for
    example a steady state or a propagated state of a HEOM matrix.

    Parameters
    ----------
    matrix : :class:`~heomgen.matrix.HEOMMatrix`
        The HEOM matrix the state belongs to.
    vector : numpy.ndarray or Qobj
        The full state of the hierarchy, of length ``N * sup_dim``. Each
        consecutive slice of length ``sup_dim`` is the column-stacked
        density matrix of one ADO, in the order of ``matrix.ado_labels``.

    Attributes
    ----------
    rho : Qobj
        The system state.

    labels : list
        The ADO labels, in the order of the state.

    Notes
    -----
    In addition, the ``dim``, ``sup_dim``, ``N`` and ``parity`` attributes
    of the matrix are provided directly on this class for convenience.
    """

    def __init__(self, matrix, vector):
        if isinstance(vector, Qobj):
            vector = vector.full()
        vector = np.asarray(vector, dtype=np.complex128).ravel()
        size = matrix.N * matrix.sup_dim
        if vector.shape[0] != size:
            raise HEOMConfigurationError(
                f"The ADOs vector must have length {size} but has length"
                f" {vector.shape[0]}."
            )
        self._matrix = matrix
        self._ado_state = vector.reshape(matrix.N, matrix.sup_dim)
        self.labels = matrix.ado_labels
        self.rho = self.extract(0)

    def __getattr__(self, name):
        if name in ("dim", "sup_dim", "N", "parity"):
            return getattr(self._matrix, name)
        raise AttributeError(
            f"{type(self).__name__!r} object has no attribute {name!r}"
        )

    def __len__(self):
        return self._matrix.N

    def __iter__(self):
        for idx in range(len(self)):
            yield self.extract(idx)

    def extract(self, idx_or_label):
        """
        Extract a Qobj representing the specified ADO from a full
        representation of the ADO states.

        Parameters
        ----------
        idx_or_label : int or label
            The index of the ADO to extract. If an ADO label, e.g.
            ``(0, 1, 0, ...)`` is supplied instead, then the ADO
            is extracted by label instead. The labels of a
            :class:`~heomgen.matrix.BosonFermionHEOMMatrix` are pairs
            ``(boson_label, fermion_label)``.

        Returns
        -------
        Qobj
            A :obj:`qutip.Qobj` representing the state of the specified ADO.
        """
        if isinstance(idx_or_label, (int, np.integer)):
            idx = int(idx_or_label)
            if not -len(self) <= idx < len(self):
                raise IndexError(
                    f"ADO index {idx} out of range for {len(self)} ADOs."
                )
        else:
            idx = self._matrix.ado_index(idx_or_label)
        dim = self._matrix.dim
        return Qobj(self._ado_state[idx].reshape(dim, dim, order="F"))

    def expect(self, op):
        """
        Return the expectation value ``Tr(op * rho)`` of a system operator
        in the system state.
        """
        op = check_operator(op, self._matrix.dim, "operator")
        return complex(np.trace(op.full() @ self.rho.full()))
