"""
The ADO (auxilliary density operator) hierarchy: enumeration of the
bounded label space and the two-way maps between ADO labels and their
dense indices.
"""

import numpy as np

from qutip import state_number_enumerate

from .baths import BathExponent
from .exceptions import HEOMConfigurationError

__all__ = [
    "enumerate_labels",
    "importance",
    "HierarchyADOs",
]


def enumerate_labels(dims, max_depth):
    """
    Enumerate the ADO labels of a hierarchy.

    A label is a tuple ``n`` with ``0 <= n[k] < dims[k]`` for every slot
    and ``sum(n) <= max_depth``. Labels are generated by adding excitations
    to the last slot and carrying the overflow to the slot on its left, so
    that ``(0, ..., 0)`` is always the first label.

    Parameters
    ----------
    dims : list of int
        The capacity of each slot, i.e. ``max_depth + 1`` for a bosonic
        exponent and ``2`` for a fermionic one.

    max_depth : int
        The maximum level (sum of the excitations) of a label.

    Returns
    -------
    iterator of tuple
        The labels in canonical order.
    """
    dims = list(dims)
    if max_depth < 0:
        raise HEOMConfigurationError(
            f"The maximum depth of the hierarchy must be non-negative"
            f" but {max_depth} was given."
        )
    if not dims:
        raise HEOMConfigurationError(
            "At least one exponent is required to enumerate the hierarchy."
        )
    if any(d < 1 for d in dims):
        raise HEOMConfigurationError(
            f"The capacity of each exponent must be positive but {dims}"
            " was given."
        )
    return state_number_enumerate(dims, max_depth)


def importance(label, exponents):
    """
    Estimate the contribution of the ADO with the given label.

    The estimate is the product, over the excitations of the label, of
    ``abs(coefficient) / vk.real`` divided by the sum of ``vk.real`` over
    the same excitations.

    Parameters
    ----------
    label : tuple
        The ADO label.

    exponents : list of :class:`~heomgen.baths.BathExponent`
        The exponents the slots of the label refer to.

    Returns
    -------
    float
        The importance of the ADO. The root label and any label with an
        excitation of an exponent whose frequency has a non-positive real
        part are given an infinite importance.
    """
    weight = 1.0
    rate = 0.0
    for n, exp in zip(label, exponents):
        if n == 0:
            continue
        gamma = np.real(exp.vk)
        if gamma <= 0:
            return np.inf
        weight *= (np.abs(exp.coefficient) / gamma) ** n
        rate += n * gamma
    if rate == 0:
        return np.inf
    return weight / rate


class HierarchyADOs:
    """
    A description of ADOs (auxilliary density operators) with the
    hierarchical equations of motion.

    The list of ADOs is constructed from a list of bath exponents
    (corresponding to one or more baths). Each ADO is referred to by a label
    that lists the number of "excitations" of each bath exponent. The
    level of a label within the hierarchy is the sum of the "excitations"
    within the label.

    For example the label ``(0, 0, ..., 0)`` represents the density matrix
    of the system and is the only 0th level label.

    The labels with a single 1, i.e. ``(1, 0, ..., 0)``, ``(0, 1, 0, ... 0)``,
    etc. are the 1st level labels.

    The second level labels all have either two 1s or a single 2, and so on
    for the third and higher levels of the hierarchy.

    Parameters
    ----------
    exponents : list of :class:`~heomgen.baths.BathExponent`
        The exponents of the correlation function describing the bath or
        baths.

    max_depth : int
        The maximum depth of the hierarchy (i.e. the maximum sum of
        "excitations" in the hierarchy ADO labels or maximum ADO level).

    threshold : float, default 0.0
        ADOs whose :func:`importance` is below the threshold are removed
        from the hierarchy, together with every ADO that can only be
        reached through removed ADOs. A threshold of zero keeps every ADO.

    Attributes
    ----------
    exponents : list of :class:`~heomgen.baths.BathExponent`
        The exponents of the correlation function describing the bath or
        baths.

    max_depth : int
        The maximum depth of the hierarchy (i.e. the maximum sum of
        "excitations" in the hierarchy ADO labels).

    dims : list of int
        The dimensions of each exponent within the bath(s).

    vk : list of complex
        The frequency of each exponent within the bath(s).

    ck : list of complex
        The coefficient of each exponent within the bath(s).

    ck2: list of complex
        For exponents of type "RI", the coefficient of the exponent within
        the imaginary expansion. For other exponent types, the entry is None.

    sigma_bar_k_offset: list of int
        For exponents of type "+" or "-" the offset within the list of modes
        of the corresponding "-" or "+" exponent. For other exponent types,
        the entry is None.

    labels: list of tuples
        A list of the ADO labels within the hierarchy.

    pruned : bool
        True if the threshold removed at least one ADO.
    """

    def __init__(self, exponents, max_depth, threshold=0.0):
        if max_depth < 0:
            raise HEOMConfigurationError(
                f"The maximum depth of the hierarchy must be non-negative"
                f" but {max_depth} was given."
            )
        if threshold < 0:
            raise HEOMConfigurationError(
                f"The importance threshold must be non-negative but"
                f" {threshold} was given."
            )
        self.exponents = list(exponents)
        self.max_depth = max_depth
        self.threshold = threshold

        self.dims = [exp.dim or (max_depth + 1) for exp in self.exponents]
        self.vk = [exp.vk for exp in self.exponents]
        self.ck = [exp.ck for exp in self.exponents]
        self.ck2 = [exp.ck2 for exp in self.exponents]
        self.sigma_bar_k_offset = [
            exp.sigma_bar_k_offset for exp in self.exponents
        ]

        if self.exponents:
            labels = enumerate_labels(self.dims, max_depth)
        else:
            labels = [()]
        if threshold > 0:
            self.labels = self._prune(labels)
            self.pruned = (
                len(self.labels) < self._count(self.dims, max_depth)
            )
        else:
            self.labels = list(labels)
            self.pruned = False

        self._label_idx = {s: i for i, s in enumerate(self.labels)}
        self.idx = self._label_idx.__getitem__

    @staticmethod
    def _count(dims, max_depth):
        if not dims:
            return 1
        return sum(1 for _ in enumerate_labels(dims, max_depth))

    def _prune(self, labels):
        # A label only ever has level-down neighbours earlier in the
        # canonical order, so a single pass sees every neighbour first.
        kept = []
        kept_set = set()
        for label in labels:
            if sum(label) == 0:
                keep = True
            elif importance(label, self.exponents) < self.threshold:
                keep = False
            else:
                keep = any(
                    self.prev(label, k) in kept_set
                    for k, n in enumerate(label) if n > 0
                )
            if keep:
                kept.append(label)
                kept_set.add(label)
        return kept

    def idx(self, label):
        """
        Return the index of the ADO label within the list of labels,
        i.e. within ``self.labels``.

        Parameters
        ----------
        label : tuple
            The label to look up.

        Returns
        -------
        int
            The index of the label within the list of ADO labels.

        Notes
        -----
        This implementation of the ``.idx(...)`` method is just for
        reference and documentation. To avoid the cost of a Python
        function call, it is replaced with
        ``self._label_idx.__getitem__`` when the instance is created.
        """
        return self._label_idx[label]

    def __getstate__(self):
        state = self.__dict__.copy()
        del state["idx"]
        return state

    def __setstate__(self, state):
        self.__dict__.update(state)
        self.idx = self._label_idx.__getitem__

    def lookup(self, label):
        """
        Return the index of the ADO label or ``None`` if the label is not
        part of the hierarchy (e.g. because it was pruned).
        """
        return self._label_idx.get(label)

    def __len__(self):
        return len(self.labels)

    def __contains__(self, label):
        return label in self._label_idx

    def __iter__(self):
        return iter(self.labels)

    @staticmethod
    def level(label):
        """ The level of the label, i.e. its total number of excitations. """
        return sum(label)

    def next(self, label, k):
        """
        Return the ADO label with one more excitation in the k'th exponent
        dimension or ``None`` if adding the excitation would exceed the
        dimension or maximum depth of the hierarchy.

        Parameters
        ----------
        label : tuple
            The ADO label to add an excitation to.
        k : int
            The exponent to add the excitation to.

        Returns
        -------
        tuple or None
            The next label.
        """
        if label[k] >= self.dims[k] - 1:
            return None
        if sum(label) >= self.max_depth:
            return None
        return label[:k] + (label[k] + 1,) + label[k + 1:]

    def prev(self, label, k):
        """
        Return the ADO label with one fewer excitation in the k'th
        exponent dimension or ``None`` if the label has no exciations in the
        k'th exponent.

        Parameters
        ----------
        label : tuple
            The ADO label to remove the excitation from.
        k : int
            The exponent to remove the excitation from.

        Returns
        -------
        tuple or None
            The previous label.
        """
        if label[k] <= 0:
            return None
        return label[:k] + (label[k] - 1,) + label[k + 1:]

    def exps(self, label):
        """
        Converts an ADO label into a tuple of exponents, with one exponent
        for each "excitation" within the label.

        The number of exponents returned is always equal to the level of the
        label within the hierarchy (i.e. the sum of the indices within the
        label).

        Parameters
        ----------
        label : tuple
            The ADO label to convert to a list of exponents.

        Returns
        -------
        tuple of :class:`~heomgen.baths.BathExponent`
            A tuple of BathExponents.

        Examples
        --------

        ``ados.exps((1, 0, 0))`` would return ``[ados.exponents[0]]``

        ``ados.exps((2, 0, 0))`` would return
        ``[ados.exponents[0], ados.exponents[0]]``.

        ``ados.exps((1, 2, 1))`` would return
        ``[ados.exponents[0], ados.exponents[1], ados.exponents[1], \
           ados.exponents[2]]``.
        """
        return sum(
            ((exp,) * n for (n, exp) in zip(label, self.exponents) if n > 0),
            (),
        )

    def filter(self, level=None, tags=None, dims=None, types=None):
        """
        Return a list of ADO labels for ADOs whose "excitations"
        match the given patterns.

        Each of the filter parameters (tags, dims, types) may be either
        unspecified (None) or a list. Unspecified parameters are excluded
        from the filtering.

        All specified filter parameters must be lists of the same length.
        Each position in the lists describes a particular excitation and
        any exponent that matches the filters may supply that excitation.
        The level of all labels returned is thus equal to the length of
        the filter parameter lists.

        Within a filter parameter list, items that are None represent
        wildcards and match any value of that exponent attribute

        Parameters
        ----------
        level : int
            The hierarchy depth to return ADOs from.

        tags : list of object or None
            Filter parameter that matches the ``.tag`` attribute of
            exponents.

        dims : list of int
            Filter parameter that matches the ``.dim`` attribute of
            exponents.

        types : list of BathExponent types or list of str
            Filter parameter that matches the ``.type`` attribute
            of exponents. Types may be supplied by name (e.g. "R", "I", "+")
            instead of by the actual type (e.g. ``BathExponent.types.R``).

        Returns
        -------
        list of tuple
            The ADO label for each ADO whose exponent excitations
            (i.e. label) match the given filters or level. Labels removed
            by pruning are never returned.
        """
        if types is not None:
            types = [
                t if t is None or isinstance(t, BathExponent.types)
                else BathExponent.types[t]
                for t in types
            ]
        filters = [("tag", tags), ("type", types), ("dim", dims)]
        filters = [(attr, f) for attr, f in filters if f is not None]
        n = max((len(f) for _, f in filters), default=0)
        if any(len(f) != n for _, f in filters):
            raise HEOMConfigurationError(
                "The tags, dims and types filters must all be the same length."
            )
        if n > self.max_depth:
            raise HEOMConfigurationError(
                f"The maximum depth for the hierarchy is {self.max_depth} but"
                f" {n} levels of excitation filters were given."
            )
        if level is None:
            if not filters:
                return self.labels[:]
        else:
            if not filters:
                return [label for label in self.labels if sum(label) == level]
            if level != n:
                raise HEOMConfigurationError(
                    f"The level parameter is {level} but {n} levels of"
                    " excitation filters were given."
                )
        if not self.exponents:
            return []

        filtered_dims = [1] * len(self.exponents)
        for lvl in range(n):
            level_filters = [
                (attr, f[lvl]) for attr, f in filters
                if f[lvl] is not None
            ]
            for j, exp in enumerate(self.exponents):
                if any(getattr(exp, attr) != f for attr, f in level_filters):
                    continue
                filtered_dims[j] += 1
                filtered_dims[j] = min(self.dims[j], filtered_dims[j])

        return [
            label for label in state_number_enumerate(filtered_dims, n)
            if sum(label) == n and label in self._label_idx
        ]

    def __repr__(self):
        return (
            f"<{self.__class__.__name__} exponents={len(self.exponents)}"
            f" max_depth={self.max_depth} ados={len(self.labels)}"
            f" pruned={self.pruned}>"
        )
