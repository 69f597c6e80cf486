"""Mean shift over a single buffered tile.

The tile processor drops near ground returns, runs the configured mode
seeking engine over every remaining point and keeps only detections
whose rounded centroid falls into the tile core.  Trees whose mode lies
in the buffer are left to the neighbouring tile that owns that area as
core, so every tree is reported by exactly one tile.
"""

from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from ..config import MeanShiftConfig
from .meanshift import ClassicMeanShift, meanshift_from_config
from .pointcloud import (
    RESULT_COLUMNS,
    BoundingBox,
    buffer_mask,
    check_tile_columns,
    core_bounds,
    empty_result,
    round_any,
    tile_bounds,
)

logger = logging.getLogger(__name__)


def process_tile(
    tile: pd.DataFrame,
    config: MeanShiftConfig,
    engine: ClassicMeanShift | None = None,
) -> pd.DataFrame:
    """Run adaptive mean shift on one tile and keep its core detections.

    Parameters
    ----------
    tile : pd.DataFrame
        Points of the tile with columns `X`, `Y`, `Z` and `Buffer`.
    config : MeanShiftConfig
        Run parameters (`minz`, `ctr_ac`, kernel coefficients ...).
    engine : ClassicMeanShift, optional
        Mode seeking engine.  Built from ``config`` when omitted.

    Returns
    -------
    pd.DataFrame
        One row per surviving point with columns `X, Y, Z, CtrX, CtrY,
        CtrZ, RoundCtrX, RoundCtrY, RoundCtrZ`.  Empty when no point is
        above `minz`, when the tile has no core points or when every
        mode lies in the buffer.
    """
    check_tile_columns(tile)
    if engine is None:
        engine, _ = meanshift_from_config(config)

    flags = buffer_mask(tile["Buffer"])
    above = (tile["Z"] >= config.minz).to_numpy()
    points = tile.loc[above, ["X", "Y", "Z"]].assign(Buffer=flags[above])
    if points.empty:
        return empty_result()
    full = tile_bounds(points)
    core = core_bounds(points)
    if core is None:
        return empty_result()
    _check_buffer_width(full, core, config.buffer_width)

    # Work relative to the tile origin
    xyz = points[["X", "Y", "Z"]].to_numpy(dtype=float)
    shift = np.array([full.min_x, full.min_y, 0.0])
    local = xyz - shift

    ctr = engine.run(local)
    rounded = round_any(ctr, config.ctr_ac)

    ctr = ctr + shift
    rounded = rounded + shift
    result = pd.DataFrame(
        np.column_stack([xyz, ctr, rounded]),
        columns=RESULT_COLUMNS,
    )
    keep = core.contains(result["RoundCtrX"].to_numpy(), result["RoundCtrY"].to_numpy())
    return result[keep].reset_index(drop=True)


def _check_buffer_width(full: BoundingBox, core: BoundingBox, buffer_width: float) -> None:
    margin = max(
        core.min_x - full.min_x,
        full.max_x - core.max_x,
        core.min_y - full.min_y,
        full.max_y - core.max_y,
    )
    # bounds are snapped to whole units, allow one unit of slack
    if margin > buffer_width + 1.0:
        logger.warning(
            "Tile buffer margin of %.1f exceeds buffer.width=%.1f", margin, buffer_width
        )
