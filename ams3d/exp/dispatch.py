"""Parallel application of mean shift over buffered tiles.

Tiles are independent units of work: each worker reads one tile and
the shared configuration, runs :func:`~ams3d.detect.tile.process_tile`
and hands back its detections.  The configuration is copied into every
worker process by the pool initializer, nothing is shared mutably, so
no locking is involved.  The per tile results are concatenated in
submission order and labelled with global crown IDs.

A failing tile aborts the whole run.  Returning the other tiles would
silently drop the trees of the failed area.
"""

from __future__ import annotations

import logging
import math
import os
import time
from concurrent.futures import Future, ProcessPoolExecutor
from typing import List, Sequence

import numpy as np
import pandas as pd

from ..config import MeanShiftConfig
from ..detect.cluster import resolve_ids
from ..detect.meanshift import meanshift_from_config
from ..detect.pointcloud import OUTPUT_COLUMNS, empty_result
from ..detect.tile import process_tile

logger = logging.getLogger(__name__)

# Per process state, set by _init_worker
_WORKER_CONFIG: MeanShiftConfig | None = None
_WORKER_ENGINE = None


class TileProcessingError(RuntimeError):
    """Raised when processing of a tile fails."""

    def __init__(self, index: int, message: str) -> None:
        super().__init__(f"Tile {index} failed: {message}")
        self.index = index


def _init_worker(config: MeanShiftConfig) -> None:
    global _WORKER_CONFIG, _WORKER_ENGINE
    _WORKER_CONFIG = config
    _WORKER_ENGINE, _ = meanshift_from_config(config)


def _run_tile(tile: pd.DataFrame) -> pd.DataFrame:
    if _WORKER_CONFIG is None:
        raise RuntimeError("Worker was not initialised with a configuration")
    return process_tile(tile, _WORKER_CONFIG, engine=_WORKER_ENGINE)


def worker_count(frac_cores: float, cpu_count: int | None = None) -> int:
    """Number of workers for a fraction of the available cores (at least 1)."""
    if cpu_count is None:
        cpu_count = os.cpu_count() or 1
    return max(1, math.floor(cpu_count * frac_cores))


def parallel_mean_shift(
    tiles: Sequence[pd.DataFrame],
    config: MeanShiftConfig | None = None,
    max_workers: int | None = None,
) -> pd.DataFrame:
    """Delineate tree crowns on buffered tiles in parallel.

    Parameters
    ----------
    tiles : sequence of pd.DataFrame
        Buffered tiles with columns `X`, `Y`, `Z` and `Buffer`.  The
        buffer should be at least as wide as the largest crown radius.
    config : MeanShiftConfig, optional
        Run parameters.  Defaults to :class:`MeanShiftConfig()`.
    max_workers : int, optional
        Pool size.  Defaults to `floor(cpu_count * config.frac_cores)`.

    Returns
    -------
    pd.DataFrame
        All surviving detections with columns `X, Y, Z, CtrX, CtrY,
        CtrZ, RoundCtrX, RoundCtrY, RoundCtrZ, ID`.

    Raises
    ------
    ValueError
        If the configuration is invalid.  Raised before any tile runs.
    TileProcessingError
        If any tile fails.
    """
    if config is None:
        config = MeanShiftConfig()
    config.validate()
    n_workers = max_workers if max_workers is not None else worker_count(config.frac_cores)
    n_workers = max(1, min(n_workers, max(len(tiles), 1)))
    logger.info(
        "Mean shift (%s) on %d tiles with %d worker(s)", config.version, len(tiles), n_workers
    )
    t0 = time.perf_counter()
    if n_workers == 1:
        results = _run_serial(tiles, config)
    else:
        results = _run_pool(tiles, config, n_workers)
    t1 = time.perf_counter()

    frames = [r for r in results if not r.empty]
    if frames:
        result = pd.concat(frames, ignore_index=True)
    else:
        result = empty_result()
    result["ID"] = resolve_ids(result, method=config.id_method, eps=config.eps)
    result["ID"] = result["ID"].astype(np.int64)
    logger.info(
        "Found %d crowns from %d points in %.2fs (%s ids)",
        result["ID"].nunique(),
        len(result),
        t1 - t0,
        config.id_method,
    )
    return result[OUTPUT_COLUMNS]


def _run_serial(tiles: Sequence[pd.DataFrame], config: MeanShiftConfig) -> List[pd.DataFrame]:
    _init_worker(config)
    results = []
    for i, tile in enumerate(tiles):
        try:
            results.append(_run_tile(tile))
        except Exception as exc:
            raise TileProcessingError(i, str(exc)) from exc
    return results


def _run_pool(
    tiles: Sequence[pd.DataFrame], config: MeanShiftConfig, n_workers: int
) -> List[pd.DataFrame]:
    results = []
    with ProcessPoolExecutor(
        max_workers=n_workers, initializer=_init_worker, initargs=(config,)
    ) as executor:
        futures: List[Future] = [executor.submit(_run_tile, tile) for tile in tiles]
        for i, future in enumerate(futures):
            try:
                results.append(future.result())
            except Exception as exc:
                for pending in futures:
                    pending.cancel()
                raise TileProcessingError(i, str(exc)) from exc
            logger.debug("Tile %d/%d done: %d detections", i + 1, len(tiles), len(results[-1]))
    return results
