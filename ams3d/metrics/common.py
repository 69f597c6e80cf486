"""Summary statistics of a delineation result.

The numbers reported here describe the crowns found in a run: how many
there are, how many points they hold and how tall their modes are.
They are written next to the results by the runner and collected by
the parameter sweeps.
"""

from __future__ import annotations

from typing import Dict

import pandas as pd


def summarize_clusters(result: pd.DataFrame) -> Dict[str, float]:
    """Compute crown statistics from a labelled point table.

    Parameters
    ----------
    result : pd.DataFrame
        Output of :func:`~ams3d.exp.dispatch.parallel_mean_shift` with
        at least the columns `ID` and `CtrZ`.

    Returns
    -------
    dict
        `n_trees`, `n_points`, `points_per_tree_mean`,
        `points_per_tree_min`, `points_per_tree_max`,
        `crown_height_mean` and `crown_height_max`.  All zero for an
        empty result.
    """
    if result.empty:
        return {
            "n_trees": 0.0,
            "n_points": 0.0,
            "points_per_tree_mean": 0.0,
            "points_per_tree_min": 0.0,
            "points_per_tree_max": 0.0,
            "crown_height_mean": 0.0,
            "crown_height_max": 0.0,
        }
    sizes = result.groupby("ID").size()
    # one mode height per crown
    heights = result.groupby("ID")["CtrZ"].max()
    return {
        "n_trees": float(len(sizes)),
        "n_points": float(len(result)),
        "points_per_tree_mean": float(sizes.mean()),
        "points_per_tree_min": float(sizes.min()),
        "points_per_tree_max": float(sizes.max()),
        "crown_height_mean": float(heights.mean()),
        "crown_height_max": float(heights.max()),
    }
