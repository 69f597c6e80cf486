"""Adaptive mean shift mode seeking.

Each point of a tile is the starting position of a kernel that is
repeatedly moved to the weighted centroid of the points it covers.
The kernel dimensions are recomputed at every step from the height of
the current centre, so the window grows as it climbs into larger
crowns.  Two interchangeable variants are provided:

* **Classic**: works on the raw floating point coordinates.  Precise,
  also for small trees, but every step queries the full tile.

* **Voxel**: snaps points onto a 1 m grid and seeks one mode per
  occupied voxel, weighting voxels by the number of points they hold.
  All points of a voxel share its mode.  Much faster on dense tiles at
  the cost of coordinate precision.

Neither variant reports non-convergence: after ``max_iter`` moves the
last position is the mode.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple

import numpy as np
from scipy.spatial import cKDTree

from ..config import MeanShiftConfig
from ..kernel.model import KernelModel
from ..kernel.weights import kernel_weight


def seek_mode(
    start: np.ndarray,
    tree: cKDTree,
    support: np.ndarray,
    kernel: KernelModel,
    max_iter: int = 20,
    tol: float = 1e-3,
    uniform: bool = False,
    mass: np.ndarray | None = None,
) -> np.ndarray:
    """Move a kernel from ``start`` towards the local density mode.

    Parameters
    ----------
    start : np.ndarray
        Initial kernel centre `(x, y, z)`.
    tree : cKDTree
        Planar search tree built on ``support[:, :2]``.
    support : np.ndarray
        Array of shape `(n, 3)` with the positions that attract the
        kernel.
    kernel : KernelModel
        Gives the kernel radius and height at the current centre height.
    max_iter : int, optional
        Maximum number of moves.  Defaults to 20.
    tol : float, optional
        The kernel is settled once a move is shorter than this.
    uniform : bool, optional
        Use flat weights instead of the Gaussian/Epanechnikov profile.
    mass : np.ndarray, optional
        Per support point multiplicity (voxel counts).  ``None`` means
        every point counts once.

    Returns
    -------
    np.ndarray
        The mode `(x, y, z)`.
    """
    ctr = np.array(start, dtype=float)
    for _ in range(max_iter):
        radius, height = kernel.kernel_at(ctr[2])
        # Gaussian weight at one kernel radius is exp(-20); farther points are ignored
        idx = tree.query_ball_point(ctr[:2], r=radius)
        if not idx:
            break
        pts = support[idx]
        weights = kernel_weight(radius, height, ctr, pts, uniform=uniform)
        if mass is not None:
            weights = weights * mass[idx]
        total = weights.sum()
        if total <= 0:
            break
        new_ctr = (pts * weights[:, None]).sum(axis=0) / total
        shift = float(np.linalg.norm(new_ctr - ctr))
        ctr = new_ctr
        if shift < tol:
            break
    return ctr


@dataclass
class ClassicMeanShift:
    """Mean shift on exact point coordinates.

    Attributes
    ----------
    kernel : KernelModel
        Height dependent kernel dimensions.
    max_iter : int
        Maximum number of kernel moves per point.
    tol : float
        Settling distance.
    uniform : bool
        Flat kernel weights.
    """

    kernel: KernelModel = field(default_factory=KernelModel)
    max_iter: int = 20
    tol: float = 1e-3
    uniform: bool = False

    def run(self, xyz: np.ndarray) -> np.ndarray:
        """Return one mode per row of ``xyz`` (shape `(n, 3)`)."""
        xyz = np.asarray(xyz, dtype=float)
        if xyz.shape[0] == 0:
            return np.empty((0, 3))
        tree = cKDTree(xyz[:, :2])
        modes = np.empty_like(xyz)
        for i, start in enumerate(xyz):
            modes[i] = seek_mode(start, tree, xyz, self.kernel, self.max_iter, self.tol, self.uniform)
        return modes


@dataclass
class VoxelMeanShift(ClassicMeanShift):
    """Mean shift on voxel aggregated coordinates.

    Attributes
    ----------
    voxel_size : float
        Edge length of the voxel grid.  Defaults to 1 (metre).
    """

    voxel_size: float = 1.0

    def run(self, xyz: np.ndarray) -> np.ndarray:
        """Return one mode per row of ``xyz``, shared within each voxel."""
        xyz = np.asarray(xyz, dtype=float)
        if xyz.shape[0] == 0:
            return np.empty((0, 3))
        cells = np.round(xyz / self.voxel_size).astype(np.int64)
        voxels, inverse, counts = np.unique(cells, axis=0, return_inverse=True, return_counts=True)
        inverse = inverse.reshape(-1)
        centres = voxels.astype(float) * self.voxel_size
        mass = counts.astype(float)
        tree = cKDTree(centres[:, :2])
        voxel_modes = np.empty_like(centres)
        for i, start in enumerate(centres):
            voxel_modes[i] = seek_mode(
                start, tree, centres, self.kernel, self.max_iter, self.tol, self.uniform, mass=mass
            )
        return voxel_modes[inverse]


def meanshift_from_config(config: MeanShiftConfig) -> Tuple[ClassicMeanShift, str]:
    """Instantiate the mode seeking variant selected by ``config.version``.

    Returns the engine and a descriptive name.
    """
    version = config.version.lower()
    kwargs = dict(
        kernel=config.kernel,
        max_iter=config.max_iter,
        tol=config.tol,
        uniform=config.uniform_kernel,
    )
    if version == "classic":
        return ClassicMeanShift(**kwargs), f"Classic(iter={config.max_iter})"
    elif version == "voxel":
        return VoxelMeanShift(**kwargs), f"Voxel(iter={config.max_iter})"
    else:
        raise ValueError(f"Unknown mean shift version: {config.version}")
