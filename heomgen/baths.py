"""
This module provides the bath descriptions consumed when building HEOM
matrices: the exponents of the exponential decomposition of the bath
correlation functions, together with the system coupling operator and the
approximation discrepancy used for the terminator.

Baths are built from ready-made lists of coefficients and frequencies.
Deriving those lists from a physical spectral density (Matsubara or Padé
expansions, fits) is left to other tools.
"""

import enum

import numpy as np

from qutip import lindblad_dissipator

from .exceptions import HEOMConfigurationError
from .superoperator import as_qobj

__all__ = [
    "BathExponent",
    "Bath",
    "BosonicBath",
    "FermionicBath",
    "Parity",
]


class Parity(enum.IntEnum):
    """
    Parity of the hierarchy state a fermionic HEOM matrix acts on.

    The value of a member is the exponent used in the fermionic sign
    factors, i.e. ``(-1) ** parity``.
    """
    EVEN = 0
    ODD = 1

    @classmethod
    def parse(cls, parity):
        """
        Return the :class:`Parity` corresponding to ``parity``.

        Members, the strings ``"even"`` and ``"odd"`` (case insensitive)
        and the integers ``0`` and ``1`` are accepted.
        """
        if isinstance(parity, cls):
            return parity
        if isinstance(parity, str) and parity.upper() in cls.__members__:
            return cls[parity.upper()]
        if (
            isinstance(parity, (int, np.integer))
            and not isinstance(parity, bool)
            and parity in (0, 1)
        ):
            return cls(int(parity))
        raise HEOMConfigurationError(
            f"The parity must be either 'even' or 'odd' but {parity!r}"
            " was given."
        )


class BathExponent:
    """
    Represents a single exponent (naively, an excitation mode) within the
    decomposition of the correlation functions of a bath.

    Parameters
    ----------
    type : {"R", "I", "RI", "+", "-"} or ``BathExponent.ExponentType``
        The type of bath exponent.

        "R" and "I" are bosonic bath exponents that appear in the real and
        imaginary parts of the correlation expansion.

        "RI" is combined bosonic bath exponent that appears in both the real
        and imaginary parts of the correlation expansion. The combined exponent
        has a single ``vk``. The ``ck`` is the coefficient in the real
        expansion and ``ck2`` is the coefficient in the imaginary expansion.

        "+" and "-" are fermionic bath exponents, describing absorption and
        emission respectively. These fermionic bath exponents must specify
        ``sigma_bar_k_offset`` which specifies the amount to add to ``k``
        (the exponent index within the bath of this exponent) to determine
        the ``k`` of the corresponding exponent with the opposite sign
        (i.e. "-" or "+").

    dim : int or None
        The dimension (i.e. maximum number of excitations for this exponent).
        Usually ``2`` for fermionic exponents or ``None`` (i.e. unlimited) for
        bosonic exponents.

    Q : Qobj
        The coupling operator for this excitation mode.

    ck : complex
        The coefficient of the excitation term.

    vk : complex
        The frequency of the exponent of the excitation term.

    ck2 : optional, complex
        For exponents of type "RI" this is the coefficient of the term in the
        imaginary expansion (and ``ck`` is the coefficient in the real
        expansion).

    sigma_bar_k_offset : optional, int
        For exponents of type "+" this gives the offset (within the list of
        exponents within the bath) of the corresponding "-" bath exponent.
        For exponents of type "-" it gives the offset of the corresponding
        "+" exponent.

    tag : optional, str, tuple or any other object
        A label for the exponent (often the name of the bath). It
        defaults to None.

    Attributes
    ----------
    fermionic : bool
        True if the type of the exponent is a Fermionic type (i.e. either
        "+" or "-") and False otherwise.

    All of the parameters are also available as attributes.
    """
    types = enum.Enum(
        "ExponentType", ["R", "I", "RI", "+", "-"],
        module=__name__, qualname="BathExponent.types",
    )

    def _check_ck2(self, type, ck2):
        if type == self.types["RI"]:
            if ck2 is None:
                raise HEOMConfigurationError("RI exponents require ck2")
        else:
            if ck2 is not None:
                raise HEOMConfigurationError(
                    "Second co-efficient (ck2) should only be specified for"
                    " RI exponents"
                )

    def _check_sigma_bar_k_offset(self, type, offset):
        if type in (self.types["+"], self.types["-"]):
            if offset is None:
                raise HEOMConfigurationError(
                    "+ and - type exponents require sigma_bar_k_offset"
                )
        else:
            if offset is not None:
                raise HEOMConfigurationError(
                    "Offset of sigma bar (sigma_bar_k_offset) should only be"
                    " specified for + and - type exponents"
                )

    def _type_is_fermionic(self, type):
        return type in (self.types["+"], self.types["-"])

    def __init__(
            self, type, dim, Q, ck, vk, ck2=None,
            sigma_bar_k_offset=None, tag=None,
    ):
        if not isinstance(type, self.types):
            try:
                type = self.types[type]
            except KeyError:
                raise HEOMConfigurationError(
                    f"Unknown exponent type {type!r}"
                ) from None
        self._check_ck2(type, ck2)
        self._check_sigma_bar_k_offset(type, sigma_bar_k_offset)

        self.type = type
        self.dim = dim
        self.Q = None if Q is None else as_qobj(Q, "coupling operator Q")
        self.ck = ck
        self.vk = vk
        self.ck2 = ck2
        self.sigma_bar_k_offset = sigma_bar_k_offset
        self.tag = tag
        self.fermionic = self._type_is_fermionic(type)

    @property
    def coefficient(self):
        """ The coefficient of this excitation term in the total correlation
            function (including real and imaginary part). """
        if self.type == self.types["I"]:
            coeff = 1j * self.ck
        else:
            coeff = self.ck
        if self.type == self.types["RI"]:
            coeff += 1j * self.ck2
        return coeff

    def __repr__(self):
        dims = getattr(self.Q, "dims", None)
        return (
            f"<{self.__class__.__name__} type={self.type.name}"
            f" dim={self.dim!r}"
            f" Q.dims={dims!r}"
            f" ck={self.ck!r} vk={self.vk!r} ck2={self.ck2!r}"
            f" sigma_bar_k_offset={self.sigma_bar_k_offset!r}"
            f" fermionic={self.fermionic!r}"
            f" tag={self.tag!r}>"
        )


class Bath:
    """
    Represents a list of bath expansion exponents.

    Parameters
    ----------
    exponents : list of :class:`BathExponent`
        The exponents of the correlation function describing the bath.

    delta : float, default 0.0
        The approximation discrepancy of the expansion. The difference
        between the true correlation function and the sum of the exponents
        is approximately ``2 * delta * dirac(t)``. It is used by
        :meth:`terminator`.

    Q : Qobj, optional
        The coupling operator of the bath. Defaults to the coupling operator
        of the first exponent.

    Attributes
    ----------
    Q : Qobj or None
        The coupling operator of the first exponent.

    dim : int or None
        The dimension of the system Hilbert space the coupling operators act
        on.
    """

    def __init__(self, exponents, delta=0.0, Q=None):
        self.exponents = list(exponents)
        self.delta = delta
        self._Q = None if Q is None else as_qobj(Q, "coupling operator Q")
        shapes = {
            exp.Q.shape for exp in self.exponents if exp.Q is not None
        }
        if len(shapes) > 1:
            raise HEOMConfigurationError(
                "All bath exponents must have system coupling operators"
                " with the same dimensions but a mixture of dimensions"
                " was given."
            )

    @property
    def Q(self):
        if self._Q is not None:
            return self._Q
        for exp in self.exponents:
            if exp.Q is not None:
                return exp.Q
        return None

    @property
    def dim(self):
        Q = self.Q
        return None if Q is None else Q.shape[0]

    @property
    def fermionic(self):
        """ True if all exponents of the bath are fermionic. """
        return bool(self.exponents) and all(
            exp.fermionic for exp in self.exponents
        )

    @property
    def bosonic(self):
        """ True if no exponent of the bath is fermionic. """
        return not any(exp.fermionic for exp in self.exponents)

    def __len__(self):
        return len(self.exponents)

    def __iter__(self):
        return iter(self.exponents)

    def __getitem__(self, k):
        return self.exponents[k]

    def terminator(self):
        """
        Return the terminator for the bath and the approximation
        discrepancy.

        Returns
        -------
        delta: float
            The approximation discrepancy. That is, the difference between
            the true correlation function of the bath and the sum of the
            exponential terms is approximately ``2 * delta * dirac(t)``,
            where ``dirac(t)`` denotes the Dirac delta function.

        terminator : Qobj
            The terminator, i.e. a liouvillian term representing the
            contribution to the system-bath dynamics of all exponential
            expansion terms that were dropped::

                2 * delta * (spre(Q) * spost(Q.dag())
                             - 0.5 * (spre(Q.dag() * Q) + spost(Q.dag() * Q)))
        """
        if self.Q is None:
            raise HEOMConfigurationError(
                "A terminator requires the bath coupling operator Q."
            )
        return self.delta, 2 * self.delta * lindblad_dissipator(self.Q)

    def __repr__(self):
        return (
            f"<{self.__class__.__name__} exponents={len(self.exponents)}"
            f" dim={self.dim!r} delta={self.delta!r}>"
        )


def _check_exponent_lists(names, *lists):
    for name_ck, name_vk, ck, vk in zip(names[::2], names[1::2],
                                        lists[::2], lists[1::2]):
        if len(ck) != len(vk):
            raise HEOMConfigurationError(
                f"The exponent lists {name_ck} and {name_vk} must be the"
                f" same length but have lengths {len(ck)} and {len(vk)}."
            )


class BosonicBath(Bath):
    """
    A helper class for constructing a bosonic bath from the expansion
    coefficients and frequencies for the real and imaginary parts of
    the bath correlation function.

    If the correlation functions ``C(t)`` is split into real and imaginary
    parts::

        C(t) = C_real(t) + i * C_imag(t)

    then::

        C_real(t) = sum(ck_real * exp(- vk_real * t))
        C_imag(t) = sum(ck_imag * exp(- vk_imag * t))

    Defines the coefficients ``ck`` and the frequencies ``vk``.

    Note that the ``ck`` and ``vk`` may be complex, even through ``C_real(t)``
    and ``C_imag(t)`` (i.e. the sum) is real.

    Parameters
    ----------
    Q : Qobj
        The coupling operator for the bath.

    ck_real : list of complex
        The coefficients of the expansion terms for the real part of the
        correlation function. The corresponding frequencies are passed as
        vk_real.

    vk_real : list of complex
        The frequencies (exponents) of the expansion terms for the real part of
        the correlation function. The corresponding ceofficients are passed as
        ck_real.

    ck_imag : list of complex
        The coefficients of the expansion terms in the imaginary part of the
        correlation function. The corresponding frequencies are passed as
        vk_imag.

    vk_imag : list of complex
        The frequencies (exponents) of the expansion terms for the imaginary
        part of the correlation function. The corresponding ceofficients are
        passed as ck_imag.

    combine : bool, default True
        Whether to combine exponents with the same frequency into a single
        "RI" exponent.

    delta : float, default 0.0
        The approximation discrepancy, see :class:`Bath`.

    tag : optional, str, tuple or any other object
        A label for the bath exponents (for example, the name of the
        bath). It defaults to None but can be set to help identify which
        bath an exponent is from.
    """

    def _check_coup_op(self, Q):
        return as_qobj(Q, "coupling operator Q")

    def __init__(
        self, Q, ck_real, vk_real, ck_imag, vk_imag, combine=True,
        delta=0.0, tag=None,
    ):
        _check_exponent_lists(
            ["ck_real", "vk_real", "ck_imag", "vk_imag"],
            ck_real, vk_real, ck_imag, vk_imag,
        )
        Q = self._check_coup_op(Q)

        exponents = [
            BathExponent("R", None, Q, ck, vk, tag=tag)
            for ck, vk in zip(ck_real, vk_real)
        ]
        exponents.extend(
            BathExponent("I", None, Q, ck, vk, tag=tag)
            for ck, vk in zip(ck_imag, vk_imag)
        )
        if combine:
            exponents = self.combine(exponents)
        super().__init__(exponents, delta=delta, Q=Q)

    @classmethod
    def from_correlation(cls, Q, eta, gamma, delta=0.0, tag=None):
        """
        Construct a bosonic bath from the complex exponential decomposition
        of the correlation function::

            C(t) = sum(eta * exp(- gamma * t))

        Each pair ``(eta[k], gamma[k])`` becomes one "RI" exponent with
        ``ck = eta[k].real`` and ``ck2 = eta[k].imag``.

        Parameters
        ----------
        Q : Qobj
            The coupling operator for the bath.

        eta : list of complex
            The amplitudes of the exponential terms.

        gamma : list of complex
            The decay rates of the exponential terms.

        delta : float, default 0.0
            The approximation discrepancy, see :class:`Bath`.

        tag : optional, str, tuple or any other object
            A label for the bath exponents.
        """
        _check_exponent_lists(["eta", "gamma"], eta, gamma)
        Q = as_qobj(Q, "coupling operator Q")
        exponents = [
            BathExponent(
                "RI", None, Q, complex(ck).real, vk,
                ck2=complex(ck).imag, tag=tag,
            )
            for ck, vk in zip(eta, gamma)
        ]
        bath = cls.__new__(cls)
        Bath.__init__(bath, exponents, delta=delta, Q=Q)
        return bath

    @staticmethod
    def combine(exponents, rtol=1e-5, atol=1e-7):
        """
        Group bosonic exponents with the same frequency and coupling
        operator and return a single exponent for each group.

        Parameters
        ----------
        exponents : list of :class:`BathExponent`
            The list of exponents to combine.

        rtol : float, default 1e-5
            The relative tolerance to use to when comparing frequencies.

        atol : float, default 1e-7
            The absolute tolerance to use to when comparing frequencies.

        Returns
        -------
        list of :class:`BathExponent`
            The new reduced list of exponents.
        """
        remaining = exponents[:]
        new_exponents = []

        while remaining:
            new_exponent = remaining.pop(0)
            for other_exp in remaining[:]:
                if _can_combine(new_exponent, other_exp, rtol, atol):
                    new_exponent = _combine_pair(new_exponent, other_exp)
                    remaining.remove(other_exp)
            new_exponents.append(new_exponent)

        return new_exponents


def _isequal(Q1, Q2, tol):
    """ Return true if Q1 and Q2 are equal to within the given tolerance. """
    if Q1 is Q2:
        return True
    if Q1 is None or Q2 is None or Q1.shape != Q2.shape:
        return False
    return np.allclose(Q1.full(), Q2.full(), rtol=0, atol=tol)


def _can_combine(exp, other, rtol, atol):
    if exp.fermionic or other.fermionic:
        return False
    if not np.isclose(exp.vk, other.vk, rtol=rtol, atol=atol):
        return False
    return _isequal(exp.Q, other.Q, tol=atol)


def _combine_pair(exp, other):
    types = BathExponent.types
    if exp.type == other.type and exp.type != types.RI:
        return BathExponent(
            exp.type, exp.dim, exp.Q, exp.ck + other.ck, exp.vk, tag=exp.tag,
        )

    real_part_coefficient = 0
    imag_part_coefficient = 0
    for e in [exp, other]:
        if e.type in (types.RI, types.R):
            real_part_coefficient += e.ck
        if e.type == types.I:
            imag_part_coefficient += e.ck
        if e.type == types.RI:
            imag_part_coefficient += e.ck2

    return BathExponent(
        types.RI, exp.dim, exp.Q, real_part_coefficient, exp.vk,
        ck2=imag_part_coefficient, tag=exp.tag,
    )


class FermionicBath(Bath):
    """
    A helper class for constructing a fermionic bath from the expansion
    coefficients and frequencies for the ``+`` and ``-`` modes of
    the bath correlation function.

    There must be the same number of ``+`` and ``-`` modes and their
    coefficients must be specified in the same order so that ``ck_plus[i],
    vk_plus[i]`` are the plus coefficient and frequency corresponding
    to the minus mode ``ck_minus[i], vk_minus[i]``.

    In the fermionic case the order in which excitations are created or
    destroyed is important, resulting in two different correlation functions
    labelled ``C_plus(t)`` and ``C_minus(t)``::

        C_plus(t) = sum(ck_plus * exp(- vk_plus * t))
        C_minus(t) = sum(ck_minus * exp(- vk_minus * t))

    where the expansions above define the coeffiients ``ck`` and the
    frequencies ``vk``.

    Parameters
    ----------
    Q : Qobj
        The coupling operator for the bath. Usually the annihilation
        operator of the system mode coupled to the bath.

    ck_plus : list of complex
        The coefficients of the expansion terms for the ``+`` (absorption)
        part of the correlation function. The corresponding frequencies are
        passed as vk_plus.

    vk_plus : list of complex
        The frequencies (exponents) of the expansion terms for the ``+`` part
        of the correlation function.

    ck_minus : list of complex
        The coefficients of the expansion terms for the ``-`` (emission)
        part of the correlation function. The corresponding frequencies are
        passed as vk_minus.

    vk_minus : list of complex
        The frequencies (exponents) of the expansion terms for the ``-`` part
        of the correlation function.

    delta : float, default 0.0
        The approximation discrepancy, see :class:`Bath`.

    tag : optional, str, tuple or any other object
        A label for the bath exponents (for example, the name of the
        bath). It defaults to None but can be set to help identify which
        bath an exponent is from.
    """

    def _check_cks_and_vks(self, ck_plus, vk_plus, ck_minus, vk_minus):
        _check_exponent_lists(
            ["ck_plus", "vk_plus", "ck_minus", "vk_minus"],
            ck_plus, vk_plus, ck_minus, vk_minus,
        )
        if len(ck_plus) != len(ck_minus):
            raise HEOMConfigurationError(
                "The must be the same number of plus and minus exponents"
                " in the bath, and elements of plus and minus arrays"
                " should be arranged so that ck_plus[i] is the plus mode"
                " corresponding to ck_minus[i]."
            )

    def _check_coup_op(self, Q):
        return as_qobj(Q, "coupling operator Q")

    def __init__(
        self, Q, ck_plus, vk_plus, ck_minus, vk_minus, delta=0.0, tag=None,
    ):
        self._check_cks_and_vks(ck_plus, vk_plus, ck_minus, vk_minus)
        Q = self._check_coup_op(Q)

        exponents = []
        for ckp, vkp, ckm, vkm in zip(ck_plus, vk_plus, ck_minus, vk_minus):
            exponents.append(BathExponent(
                "+", 2, Q, ckp, vkp, sigma_bar_k_offset=1, tag=tag,
            ))
            exponents.append(BathExponent(
                "-", 2, Q, ckm, vkm, sigma_bar_k_offset=-1, tag=tag,
            ))
        super().__init__(exponents, delta=delta, Q=Q)
