"""Separable kernel weights.

The vertical profile is an asymmetric Epanechnikov band reaching one
quarter of the kernel height below the centre and one half above it,
so that the apex of a crown sits above the kernel centre.  The
horizontal profile is a Gaussian scaled to half the kernel radius.
All functions are vectorised over the candidate point coordinates.
"""

from __future__ import annotations

import numpy as np


def vertical_distance(height: float, ctr_z: float, z: np.ndarray) -> np.ndarray:
    """Normalised distance of ``z`` to the nearer edge of the vertical band.

    Each edge distance is divided by ``3 * height / 8``, half the band
    length, so the band centre maps to 1 and both edges map to 0.
    """
    scale = 3.0 * height / 8.0
    bottom = np.abs((ctr_z - height / 4.0 - z) / scale)
    top = np.abs((ctr_z + height / 2.0 - z) / scale)
    return np.minimum(bottom, top)


def in_band(height: float, ctr_z: float, z: np.ndarray) -> np.ndarray:
    """Boolean mask of points inside ``[ctr_z - H/4, ctr_z + H/2]``."""
    return (z >= ctr_z - height / 4.0) & (z <= ctr_z + height / 2.0)


def epanechnikov_weight(height: float, ctr_z: float, z: np.ndarray) -> np.ndarray:
    """Vertical weight ``1 - (1 - d)^2`` inside the band, zero outside."""
    z = np.asarray(z, dtype=float)
    d = vertical_distance(height, ctr_z, z)
    weight = 1.0 - (1.0 - d) ** 2
    return np.where(in_band(height, ctr_z, z), weight, 0.0)


def gauss_weight(
    width: float,
    ctr_x: float,
    ctr_y: float,
    x: np.ndarray,
    y: np.ndarray,
) -> np.ndarray:
    """Horizontal weight ``exp(-5 * (r / (width / 2))^2)``.

    Parameters
    ----------
    width : float
        Kernel radius at the current height.
    ctr_x, ctr_y : float
        Planar position of the kernel centre.
    x, y : np.ndarray
        Planar coordinates of the candidate points.

    Returns
    -------
    np.ndarray
        Weights in ``(0, 1]``; there is no hard cutoff.
    """
    distance = np.hypot(np.asarray(x, dtype=float) - ctr_x, np.asarray(y, dtype=float) - ctr_y)
    norm = distance / (width / 2.0)
    return np.exp(-5.0 * norm ** 2)


def uniform_weight(
    width: float,
    height: float,
    ctr: np.ndarray,
    xyz: np.ndarray,
) -> np.ndarray:
    """Flat weight of 1 inside the kernel cylinder, 0 outside.

    The cylinder has radius ``width`` and uses the same asymmetric
    vertical band as :func:`epanechnikov_weight`.
    """
    planar = np.hypot(xyz[:, 0] - ctr[0], xyz[:, 1] - ctr[1])
    inside = (planar <= width) & in_band(height, ctr[2], xyz[:, 2])
    return inside.astype(float)


def kernel_weight(
    width: float,
    height: float,
    ctr: np.ndarray,
    xyz: np.ndarray,
    uniform: bool = False,
) -> np.ndarray:
    """Combined weight of candidate points ``xyz`` for a kernel at ``ctr``."""
    if uniform:
        return uniform_weight(width, height, ctr, xyz)
    horizontal = gauss_weight(width, ctr[0], ctr[1], xyz[:, 0], xyz[:, 1])
    vertical = epanechnikov_weight(height, ctr[2], xyz[:, 2])
    return horizontal * vertical
