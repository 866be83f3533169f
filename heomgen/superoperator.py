"""
Conversion of system operators into the sparse superoperators used when
assembling HEOM matrices.

The superoperators themselves (``spre``, ``spost``, ``liouvillian`` and
``lindblad_dissipator``) are QuTiP's. This module only validates the
operators handed to heomgen and converts the results to
``scipy.sparse.csr_matrix`` instances, which is the format the assembler
pads into the full hierarchy matrix.
"""

import numpy as np
import scipy.sparse as sp

from qutip import Qobj, spre, spost, liouvillian, lindblad_dissipator

from .exceptions import HEOMConfigurationError

__all__ = [
    "as_qobj",
    "check_operator",
    "to_csr",
    "spre_csr",
    "spost_csr",
    "dissipator_csr",
    "system_liouvillian",
]


def as_qobj(op, name="operator"):
    """
    Convert ``op`` to a square :obj:`qutip.Qobj`.

    Parameters
    ----------
    op : Qobj, numpy.ndarray, scipy sparse matrix or nested list
        The operator.

    name : str
        Name of the operator, used in error messages.

    Returns
    -------
    Qobj
        The operator as a Qobj.
    """
    if isinstance(op, Qobj):
        qobj = op
    elif sp.issparse(op):
        qobj = Qobj(sp.csr_matrix(op))
    elif isinstance(op, (np.ndarray, list, tuple)):
        qobj = Qobj(np.asarray(op))
    else:
        raise HEOMConfigurationError(
            f"The {name} must be a Qobj or a matrix but {type(op)!r}"
            " was given."
        )
    if len(qobj.shape) != 2 or qobj.shape[0] != qobj.shape[1]:
        raise HEOMConfigurationError(
            f"The {name} must be a square matrix but has shape"
            f" {qobj.shape}."
        )
    return qobj


def check_operator(op, dim, name="operator"):
    """
    Return ``op`` as a Qobj after checking that it is a ``(dim, dim)``
    system operator.
    """
    qobj = as_qobj(op, name)
    if qobj.issuper or qobj.shape != (dim, dim):
        raise HEOMConfigurationError(
            f"The {name} must have shape {(dim, dim)} but has shape"
            f" {qobj.shape}."
        )
    return qobj


def to_csr(qobj):
    """ Return the data of ``qobj`` as a complex ``scipy.sparse`` CSR
        matrix. """
    return sp.csr_matrix(qobj.to("csr").data.as_scipy(), dtype=np.complex128)


def spre_csr(op):
    """ Pre-multiplication superoperator of ``op`` in CSR format. """
    return to_csr(spre(op))


def spost_csr(op):
    """ Post-multiplication superoperator of ``op`` in CSR format. """
    return to_csr(spost(op))


def dissipator_csr(op):
    """
    Lindblad dissipator of a single jump operator ``J``:

    ``spre(J) * spost(J.dag()) - 0.5 * (spre(J.dag() * J) +
    spost(J.dag() * J))``

    in CSR format.
    """
    return to_csr(lindblad_dissipator(op))


def system_liouvillian(H):
    """
    Build the free system Liouvillian.

    Parameters
    ----------
    H : Qobj or array-like
        The system Hamiltonian, or a system Liouvillian given as a Qobj
        superoperator.

    Returns
    -------
    (L_sys, dim) : (scipy.sparse.csr_matrix, int)
        The Liouvillian ``-1j * (spre(H) - spost(H))`` (or ``H`` itself if
        it was already a superoperator) and the dimension of the system
        Hilbert space.
    """
    H = as_qobj(H, "system Hamiltonian")
    if H.issuper:
        dim = int(round(np.sqrt(H.shape[0])))
        if dim * dim != H.shape[0]:
            raise HEOMConfigurationError(
                f"The system Liouvillian has shape {H.shape} which is not"
                " the shape of a superoperator."
            )
        return to_csr(H), dim
    return to_csr(liouvillian(H)), H.shape[0]
