""" Exceptions raised while building HEOM generators. """

__all__ = ['HEOMConfigurationError', 'HierarchyInvariantError']


class HEOMConfigurationError(ValueError):
    """Error raised when the inputs describing a hierarchy are invalid.

    It is always raised before any matrix construction work is done and the
    caller may recover by fixing the inputs.

    Examples
    --------
    - Coefficient and frequency lists of a bath have different lengths.
    - A coupling operator does not match the system dimension.
    - An unknown parity is requested.
    - A fermionic terminator is added to a bosonic HEOM matrix.
    """
    pass


class HierarchyInvariantError(RuntimeError):
    """An ADO label reached during assembly is missing from an unpruned
    hierarchy. This indicates a defect in the label enumeration and the
    assembly is aborted.
    """
    pass
