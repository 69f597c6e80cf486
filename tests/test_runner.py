import json
from pathlib import Path

import pandas as pd
import pytest
import yaml

from ams3d.exp.ablate import plan_sweep, run_ablation
from ams3d.exp.runner import run_delineation
from ams3d.io.tiles import find_tile_files, load_tile
from ams3d.metrics.common import summarize_clusters


def _write_tiles(directory: Path) -> None:
    crown = [(0.0, 0.0, 15.0), (0.3, 0.0, 14.5), (-0.3, 0.0, 14.5), (0.0, 0.3, 14.5), (0.0, -0.3, 14.5)]
    rows = [(x + 5.0, y + 5.0, z, 0) for x, y, z in crown]
    rows += [(x + 13.0, y + 5.0, z, 1) for x, y, z in crown]
    rows += [(0.4, 5.0, 3.0, 0)]
    pd.DataFrame(rows, columns=["X", "Y", "Z", "Buffer"]).to_csv(directory / "tile_001.csv", index=False)
    rows = [(x + 5.0, y + 5.0, z, "true") for x, y, z in crown]
    rows += [(x + 13.0, y + 5.0, z, "false") for x, y, z in crown]
    rows += [(19.4, 5.0, 3.0, "false")]
    pd.DataFrame(rows, columns=["X", "Y", "Z", "Buffer"]).to_csv(directory / "tile_002.csv", index=False)


def test_load_tile_normalises_buffer_flag(tmp_path) -> None:
    _write_tiles(tmp_path)
    files = find_tile_files(str(tmp_path))
    assert [f.name for f in files] == ["tile_001.csv", "tile_002.csv"]
    for path in files:
        tile = load_tile(path)
        assert tile["Buffer"].dtype == bool
        assert tile["Buffer"].sum() == 5


def test_run_delineation_writes_outputs(tmp_path) -> None:
    tile_dir = tmp_path / "tiles"
    tile_dir.mkdir()
    _write_tiles(tile_dir)
    config = {
        "name": "stand",
        "tiles": {"dir": str(tile_dir)},
        "workers": 1,
        "meanshift": {"ctr.ac": 1, "version": "classic"},
    }
    summary = run_delineation(config, output_root=str(tmp_path / "runs"))
    run_dir = Path(summary["run_dir"])
    assert (run_dir / "params.yaml").exists()
    assert (run_dir / "metrics.json").exists()
    clusters = pd.read_csv(run_dir / "clusters.csv")
    assert "ID" in clusters.columns
    assert len(clusters) == 12
    assert summary["n_tiles"] == 2
    assert summary["n_trees"] == 4.0
    params = yaml.safe_load((run_dir / "params.yaml").read_text())
    assert params["meanshift"]["ctr.ac"] == 1.0
    assert json.loads((run_dir / "metrics.json").read_text())["n_points"] == 12.0


def test_summarize_clusters() -> None:
    result = pd.DataFrame({"ID": [0, 0, 0, 1], "CtrZ": [14.6, 14.6, 14.6, 3.0]})
    summary = summarize_clusters(result)
    assert summary["n_trees"] == 2.0
    assert summary["points_per_tree_max"] == 3.0
    assert summary["points_per_tree_min"] == 1.0
    assert summary["crown_height_max"] == 14.6
    assert summarize_clusters(result.iloc[:0])["n_trees"] == 0.0


def _sweep_base(tmp_path) -> Path:
    tile_dir = tmp_path / "tiles"
    tile_dir.mkdir()
    _write_tiles(tile_dir)
    base = {"tiles": {"dir": str(tile_dir)}, "workers": 1, "meanshift": {"ctr.ac": 1}}
    base_path = tmp_path / "base.yaml"
    base_path.write_text(yaml.dump(base))
    return base_path


def test_run_ablation_registry(tmp_path) -> None:
    base_path = _sweep_base(tmp_path)
    output_root = tmp_path / "runs"
    sweep = {
        "base_config": str(base_path),
        "grid": {"version": ["classic", "voxel"], "H2CW": [0.3]},
        "name": "kernel",
        "output_root": str(output_root),
    }
    runs = run_ablation(sweep)
    assert len(runs) == 2
    assert list(runs["version"]) == ["classic", "voxel"]
    # Resolved dotted parameters, base values included
    assert (runs["ctr.ac"] == 1.0).all()
    assert (runs["H2CW"] == 0.3).all()
    assert runs["n_trees"].iloc[0] == 4.0
    assert (runs["sweep"] == "kernel").all()
    assert "run_dir" not in runs.columns
    run_ablation(sweep)
    registry = pd.read_csv(output_root / "registry.csv")
    assert len(registry) == 4


def test_invalid_sweep_point_fails_before_any_run(tmp_path) -> None:
    base_path = _sweep_base(tmp_path)
    output_root = tmp_path / "runs"
    sweep = {
        "base_config": str(base_path),
        "grid": {"H2CW": [0.3, -1.0]},
        "output_root": str(output_root),
    }
    with pytest.raises(ValueError, match="H2CW"):
        run_ablation(sweep)
    assert not output_root.exists()


def test_plan_sweep_paths_into_base_config() -> None:
    base = {"tiles": {"dir": "tiles"}, "meanshift": {"version": "classic"}}
    planned = plan_sweep(base, {"tiles/pattern": ["a_*.csv", "b_*.csv"], "max.iter": [10]})
    assert [cfg["tiles"]["pattern"] for cfg, _ in planned] == ["a_*.csv", "b_*.csv"]
    assert all(ms.max_iter == 10 for _, ms in planned)
    assert base["tiles"] == {"dir": "tiles"}
    with pytest.raises(ValueError):
        plan_sweep(base, {})
    with pytest.raises(ValueError):
        plan_sweep(base, {"no.such.key": [1]})
