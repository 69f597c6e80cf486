import logging

import numpy as np
import pandas as pd
import pytest

from ams3d.config import MeanShiftConfig
from ams3d.detect.pointcloud import (
    RESULT_COLUMNS,
    BoundingBox,
    buffer_mask,
    core_bounds,
    round_any,
    tile_bounds,
)
from ams3d.detect.tile import process_tile

WIDE = dict(cw_inter=10.0, h2cw=0.0, cl_inter=10.0, h2cl=0.0)


def _tile(rows) -> pd.DataFrame:
    return pd.DataFrame(rows, columns=["X", "Y", "Z", "Buffer"])


def _crown(x: float, y: float, buffer: bool):
    return [
        (x, y, 15.0, buffer),
        (x + 0.3, y, 14.5, buffer),
        (x - 0.3, y, 14.5, buffer),
        (x, y + 0.3, 14.5, buffer),
        (x, y - 0.3, 14.5, buffer),
    ]


def test_three_point_cluster_single_centroid() -> None:
    tile = _tile([(0.0, 0.0, 2.0, False), (0.1, 0.0, 2.0, False), (0.0, 0.1, 2.0, False)])
    config = MeanShiftConfig(minz=2.0, ctr_ac=2.0, **WIDE)
    result = process_tile(tile, config)
    assert list(result.columns) == RESULT_COLUMNS
    assert len(result) == 3
    assert np.allclose(result[["CtrX", "CtrY", "CtrZ"]], [1 / 30, 1 / 30, 2.0], atol=1e-3)
    assert np.allclose(result[["RoundCtrX", "RoundCtrY", "RoundCtrZ"]], [0.0, 0.0, 2.0])
    # Original coordinates are echoed unchanged
    assert np.allclose(result[["X", "Y", "Z"]], tile[["X", "Y", "Z"]])


def test_ground_points_are_dropped() -> None:
    rows = [(0.0, 0.0, 2.0, False), (0.1, 0.0, 2.0, False), (0.0, 0.1, 2.0, False)]
    rows += [(0.05, 0.05, 0.3, False), (0.5, 0.5, 1.99, False)]
    result = process_tile(_tile(rows), MeanShiftConfig(minz=2.0, **WIDE))
    assert len(result) == 3
    assert (result["Z"] >= 2.0).all()


def test_buffer_only_tile_yields_nothing() -> None:
    # Core is [0, 10) x [0, 10) with a 10 unit buffer, populated in the buffer only
    rows = _crown(-5.0, 5.0, True) + _crown(15.0, 5.0, True) + _crown(5.0, 15.0, True)
    result = process_tile(_tile(rows), MeanShiftConfig(ctr_ac=1.0))
    assert result.empty
    assert list(result.columns) == RESULT_COLUMNS


def test_empty_after_ground_filter() -> None:
    result = process_tile(_tile([(1.0, 1.0, 0.5, False)]), MeanShiftConfig())
    assert result.empty


def test_only_core_modes_are_kept() -> None:
    rows = [(0.4, 0.4, 3.0, False), (9.2, 9.2, 3.0, False)]
    rows += _crown(5.0, 5.0, False)
    rows += _crown(12.0, 5.0, True)
    tile = _tile(rows)
    result = process_tile(tile, MeanShiftConfig(ctr_ac=1.0))
    core = core_bounds(tile)
    assert core == BoundingBox(0.0, 10.0, 0.0, 10.0)
    assert core.contains(result["RoundCtrX"].to_numpy(), result["RoundCtrY"].to_numpy()).all()
    # The core crown survives in full, the buffer crown is left to its neighbour
    near_core_crown = ((result["X"] - 5.0).abs() <= 0.3) & ((result["Y"] - 5.0).abs() <= 0.3)
    assert near_core_crown.sum() == 5
    assert (result["X"] < 10.0).all()


def test_translation_invariance() -> None:
    rows = _crown(5.0, 5.0, False) + _crown(8.0, 6.0, False) + [(9.2, 9.2, 3.0, True)]
    tile = _tile(rows)
    moved = tile.copy()
    moved["X"] += 600000.0
    moved["Y"] += 5200000.0
    config = MeanShiftConfig(ctr_ac=1.0)
    a = process_tile(tile, config)
    b = process_tile(moved, config)
    assert len(a) == len(b)
    assert np.allclose(b["CtrX"] - 600000.0, a["CtrX"])
    assert np.allclose(b["CtrY"] - 5200000.0, a["CtrY"])
    assert np.allclose(b["RoundCtrX"] - 600000.0, a["RoundCtrX"])


def test_missing_columns_raise() -> None:
    with pytest.raises(ValueError):
        process_tile(pd.DataFrame({"X": [0.0], "Y": [0.0], "Z": [5.0]}), MeanShiftConfig())


def test_bounds_and_rounding_helpers() -> None:
    tile = _tile([(0.5, 1.5, 3.0, True), (3.2, 4.7, 3.0, False), (5.9, 2.1, 3.0, False)])
    assert tile_bounds(tile) == BoundingBox(0.0, 6.0, 1.0, 5.0)
    assert core_bounds(tile) == BoundingBox(3.0, 6.0, 2.0, 5.0)
    assert core_bounds(tile[tile["Buffer"]]) is None
    assert np.allclose(round_any(np.array([2.9, 3.1, 5.0, 7.0]), 2.0), [2.0, 4.0, 4.0, 8.0])


def test_string_buffer_flags_are_interpreted() -> None:
    rows = [(0.0, 0.0, 2.0, "0"), (0.1, 0.0, 2.0, "0"), (0.0, 0.1, 2.0, "0")]
    result = process_tile(_tile(rows), MeanShiftConfig(minz=2.0, **WIDE))
    assert len(result) == 3
    tile = _tile([(0.5, 1.5, 3.0, "TRUE"), (3.2, 4.7, 3.0, " no"), (5.9, 2.1, 3.0, "False")])
    assert list(buffer_mask(tile["Buffer"])) == [True, False, False]
    assert core_bounds(tile) == BoundingBox(3.0, 6.0, 2.0, 5.0)
    assert list(buffer_mask(pd.Series([0, 1, 2]))) == [False, True, True]


def test_unrecognised_buffer_flags_raise() -> None:
    rows = [(0.0, 0.0, 2.0, "0"), (0.1, 0.0, 2.0, "maybe")]
    with pytest.raises(ValueError):
        process_tile(_tile(rows), MeanShiftConfig(minz=2.0, **WIDE))
    with pytest.raises(ValueError):
        buffer_mask(pd.Series([0.0, np.nan]))


def test_wide_buffer_margin_is_reported(caplog) -> None:
    tile = _tile(_crown(5.0, 5.0, False) + [(-14.6, 5.0, 3.0, True)])
    with caplog.at_level(logging.WARNING, logger="ams3d.detect.tile"):
        process_tile(tile, MeanShiftConfig(ctr_ac=1.0, buffer_width=10.0))
    assert any("buffer.width" in r.getMessage() for r in caplog.records)
    caplog.clear()
    with caplog.at_level(logging.WARNING, logger="ams3d.detect.tile"):
        result = process_tile(tile, MeanShiftConfig(ctr_ac=1.0, buffer_width=20.0))
    assert not caplog.records
    assert len(result) == 5
