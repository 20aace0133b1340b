"""
Search radius policy.

Each layer declares the largest radius it may be queried with. The caller's
requested radius is clamped into ``[0, max_radius]``; a result of zero turns the
proximity query off but never the containment query.

Functions:
    clamp: Clamp a requested radius to a layer maximum
    validate_max_radius: Reject unusable layer maxima
"""

import math
from typing import Optional

from core.errors import InvalidInputError


def validate_max_radius(max_radius: float) -> float:
    """
    Validate a layer's maximum radius.

    Raises:
    -------
    InvalidInputError
        If the value is negative, NaN or infinite
    """
    if max_radius is None or not math.isfinite(max_radius) or max_radius < 0:
        raise InvalidInputError(f"Layer max radius must be a finite, non-negative number of miles, got {max_radius}")
    return float(max_radius)


def clamp(requested_radius: Optional[float], max_radius: float) -> float:
    """
    Clamp a requested search radius to a layer maximum.

    Parameters:
    -----------
    requested_radius : Optional[float]
        Radius in miles asked for by the caller; None means "no proximity search"
    max_radius : float
        Largest radius in miles the layer allows

    Returns:
    --------
    float
        max(0, min(requested_radius, max_radius))

    Example:
        >>> clamp(1000, 50)
        50.0
        >>> clamp(-5, 50)
        0.0
    """
    max_radius = validate_max_radius(max_radius)

    if requested_radius is None:
        return 0.0
    if isinstance(requested_radius, float) and math.isnan(requested_radius):
        raise InvalidInputError("Requested radius must not be NaN")

    return float(max(0.0, min(requested_radius, max_radius)))
