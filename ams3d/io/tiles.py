"""Reading buffered tiles and writing crown tables.

Tiles are produced by an external splitting step and stored as one CSV
file per tile with at least the columns ``X``, ``Y``, ``Z`` and
``Buffer`` (0/1 or true/false).  This module loads them into
:class:`pandas.DataFrame` objects ready for
:func:`~ams3d.exp.dispatch.parallel_mean_shift`.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List

import pandas as pd

from ..detect.pointcloud import buffer_mask, check_tile_columns


def find_tile_files(directory: str, pattern: str = "*.csv") -> List[Path]:
    """Return the tile files in ``directory`` matching ``pattern``, sorted."""
    root = Path(directory)
    if not root.is_dir():
        raise FileNotFoundError(f"Tile directory does not exist: {directory}")
    return sorted(root.glob(pattern))


def load_tile(path: str | Path) -> pd.DataFrame:
    """Load a single tile and normalise its ``Buffer`` flag to bool."""
    tile = pd.read_csv(path)
    check_tile_columns(tile)
    tile["Buffer"] = buffer_mask(tile["Buffer"])
    return tile


def load_tiles(paths: Iterable[str | Path]) -> List[pd.DataFrame]:
    """Load several tiles, keeping the order of ``paths``."""
    return [load_tile(p) for p in paths]


def save_result(result: pd.DataFrame, path: str | Path) -> Path:
    """Write a crown table to CSV and return its path."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    result.to_csv(path, index=False)
    return path
