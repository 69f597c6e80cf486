"""Tile tables and their geometry.

Tiles are handled as :class:`pandas.DataFrame` objects with one row per
LiDAR return and at least the columns ``X``, ``Y``, ``Z`` (height above
ground) and ``Buffer`` (True for returns in the overlap margin).  This
module defines the column layout of tiles and results, the bounding box
helpers that delimit the full tile and its core area, and the rounding
rule used for centroid keys.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List

import numpy as np
import pandas as pd

TILE_COLUMNS: List[str] = ["X", "Y", "Z", "Buffer"]
CENTROID_COLUMNS: List[str] = ["CtrX", "CtrY", "CtrZ"]
ROUND_COLUMNS: List[str] = ["RoundCtrX", "RoundCtrY", "RoundCtrZ"]
RESULT_COLUMNS: List[str] = ["X", "Y", "Z"] + CENTROID_COLUMNS + ROUND_COLUMNS
OUTPUT_COLUMNS: List[str] = RESULT_COLUMNS + ["ID"]


@dataclass(frozen=True)
class BoundingBox:
    """Integer aligned planar extent of a set of points.

    Attributes
    ----------
    min_x, max_x : float
        Floor of the smallest and ceiling of the largest X coordinate.
    min_y, max_y : float
        Same for Y.
    """

    min_x: float
    max_x: float
    min_y: float
    max_y: float

    def contains(self, x: np.ndarray, y: np.ndarray) -> np.ndarray:
        """Half open membership test ``min <= v < max`` on both axes."""
        return (x >= self.min_x) & (x < self.max_x) & (y >= self.min_y) & (y < self.max_y)


def check_tile_columns(tile: pd.DataFrame) -> None:
    """Raise ``ValueError`` if ``tile`` lacks any of :data:`TILE_COLUMNS`."""
    missing = [c for c in TILE_COLUMNS if c not in tile.columns]
    if missing:
        raise ValueError(f"Tile is missing required columns: {missing}")


_TRUE_FLAGS = {"1", "1.0", "true", "t", "yes", "y"}
_FALSE_FLAGS = {"0", "0.0", "false", "f", "no", "n"}


def buffer_mask(flags: pd.Series) -> np.ndarray:
    """Interpret a ``Buffer`` column as a boolean mask.

    Booleans are taken as they are, numbers are True when non-zero and
    strings may spell 0/1, true/false or yes/no in any case.

    Raises
    ------
    ValueError
        If the column holds missing values or strings that are not a
        recognised flag.
    """
    if pd.api.types.is_bool_dtype(flags):
        return flags.to_numpy(dtype=bool)
    if flags.isna().any():
        raise ValueError("Buffer column contains missing values")
    if pd.api.types.is_numeric_dtype(flags):
        return flags.to_numpy() != 0
    text = flags.astype(str).str.strip().str.lower()
    unknown = sorted(set(text) - _TRUE_FLAGS - _FALSE_FLAGS)
    if unknown:
        raise ValueError(f"Unrecognised Buffer flags: {unknown[:5]}")
    return text.isin(_TRUE_FLAGS).to_numpy()


def _bounds(x: np.ndarray, y: np.ndarray) -> BoundingBox:
    return BoundingBox(
        float(math.floor(np.min(x))),
        float(math.ceil(np.max(x))),
        float(math.floor(np.min(y))),
        float(math.ceil(np.max(y))),
    )


def tile_bounds(tile: pd.DataFrame) -> BoundingBox:
    """Bounding box over all points of a non-empty tile."""
    return _bounds(tile["X"].to_numpy(), tile["Y"].to_numpy())


def core_bounds(tile: pd.DataFrame) -> BoundingBox | None:
    """Bounding box over the core (non-buffer) points.

    Returns ``None`` when the tile has no core points.
    """
    core = tile[~buffer_mask(tile["Buffer"])]
    if core.empty:
        return None
    return _bounds(core["X"].to_numpy(), core["Y"].to_numpy())


def round_any(values: np.ndarray, accuracy: float) -> np.ndarray:
    """Round ``values`` to the nearest multiple of ``accuracy``.

    Ties are resolved to the even multiple, as with :func:`numpy.round`.
    """
    return np.round(np.asarray(values, dtype=float) / accuracy) * accuracy


def empty_result() -> pd.DataFrame:
    """Return an empty per tile result table with the standard columns."""
    return pd.DataFrame({c: pd.Series(dtype=float) for c in RESULT_COLUMNS})
