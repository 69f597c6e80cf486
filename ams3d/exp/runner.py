"""CLI runner for tiled crown delineation.

This module defines a function `run_delineation` that processes a set
of buffered tiles according to a YAML configuration.  The high level
steps are:

1. Locate and load the tile CSV files.
2. Build and validate the mean shift parameters.
3. Run adaptive mean shift on all tiles in parallel.
4. Assign global crown IDs.
5. Summarise the crowns and save results.

The runner writes its outputs to a timestamped directory under
`runs/`.  It saves the parameters, a CSV of labelled points
(`clusters.csv`) and the crown summary in JSON format.

Example configuration::

    name: stand12
    tiles:
      dir: data/tiles
      pattern: "*.csv"
    workers: 4
    meanshift:
      version: classic
      frac.cores: 0.5
      ctr.ac: 2
"""

from __future__ import annotations

import argparse
import datetime
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Sequence

import yaml

from ..config import MeanShiftConfig
from ..io.tiles import find_tile_files, load_tiles, save_result
from ..metrics.common import summarize_clusters
from .dispatch import parallel_mean_shift

logger = logging.getLogger(__name__)


def _tile_paths(config: Dict[str, Any]) -> List[Path]:
    tiles_cfg = config.get("tiles", {}) or {}
    if tiles_cfg.get("paths"):
        return [Path(p) for p in tiles_cfg["paths"]]
    tile_dir = tiles_cfg.get("dir")
    if tile_dir is None:
        raise ValueError("tiles.dir or tiles.paths must be specified in configuration")
    return find_tile_files(tile_dir, tiles_cfg.get("pattern", "*.csv"))


def run_delineation(
    config: Dict[str, Any],
    tile_paths: Sequence[str | Path] | None = None,
    run_name: str | None = None,
    output_root: str = "runs",
) -> Dict[str, Any]:
    """Execute a single delineation run as specified by `config`.

    Parameters
    ----------
    config : dict
        Parsed YAML configuration.  The `meanshift` section holds the
        algorithm parameters (see :class:`~ams3d.config.MeanShiftConfig`).
    tile_paths : sequence of path, optional
        Tile files to process.  Overrides the `tiles` section.
    run_name : str, optional
        Short identifier for the run.  If not provided, uses the value
        of `config.get('name', 'ams3d')`.
    output_root : str, optional
        Directory under which to create the run directory.  Defaults
        to `'runs'`.

    Returns
    -------
    dict
        Crown summary (see
        :func:`~ams3d.metrics.common.summarize_clusters`) plus the
        number of tiles under `n_tiles` and the run directory under
        `run_dir`.
    """
    # Validate before touching the filesystem
    ms_config = MeanShiftConfig.from_dict(config.get("meanshift", {})).validate()
    if run_name is None:
        run_name = str(config.get("name", "ams3d"))
    if tile_paths is None:
        tile_paths = _tile_paths(config)
    if not tile_paths:
        raise ValueError("No tile files to process")
    # Create output directory with timestamp
    timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
    run_dir = Path(output_root) / f"{timestamp}_{run_name}"
    run_dir.mkdir(parents=True, exist_ok=True)
    # Save resolved parameters
    params = dict(config)
    params["meanshift"] = ms_config.to_dict()
    params["tiles"] = {"paths": [str(p) for p in tile_paths]}
    with open(run_dir / "params.yaml", "w") as f:
        yaml.dump(params, f)
    tiles = load_tiles(tile_paths)
    logger.info("Loaded %d tiles (%d points)", len(tiles), sum(len(t) for t in tiles))
    workers = config.get("workers")
    result = parallel_mean_shift(
        tiles, ms_config, max_workers=int(workers) if workers is not None else None
    )
    save_result(result, run_dir / "clusters.csv")
    summary: Dict[str, Any] = dict(summarize_clusters(result))
    summary["n_tiles"] = len(tiles)
    summary["run_dir"] = str(run_dir)
    with open(run_dir / "metrics.json", "w") as f:
        json.dump(summary, f, indent=2)
    return summary


def main() -> None:
    parser = argparse.ArgumentParser(description="Delineate tree crowns on buffered tiles")
    parser.add_argument("--config", type=str, required=True, help="Path to YAML configuration file")
    parser.add_argument("--tiles", type=str, nargs="*", default=None, help="Tile CSV files (override config)")
    parser.add_argument("--name", type=str, default=None, help="Optional short name for the run")
    parser.add_argument("--output", type=str, default="runs", help="Root directory for output runs")
    parser.add_argument("--log-level", type=str, default="INFO", help="Logging level")
    args = parser.parse_args()
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    # Load config
    with open(args.config, "r") as f:
        cfg = yaml.safe_load(f) or {}
    summary = run_delineation(cfg, tile_paths=args.tiles or None, run_name=args.name, output_root=args.output)
    print("Delineation completed. Summary:")
    for k, v in summary.items():
        print(f"  {k}: {v}")


if __name__ == "__main__":
    main()
