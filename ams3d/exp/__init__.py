"""Parallel dispatch, run orchestration and parameter sweeps."""

from .dispatch import parallel_mean_shift, TileProcessingError
from .runner import run_delineation
from .ablate import run_ablation

__all__ = ["parallel_mean_shift", "TileProcessingError", "run_delineation", "run_ablation"]
