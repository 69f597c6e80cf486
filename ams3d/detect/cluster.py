"""Global identities for per tile detections.

After all tiles are processed their detections are concatenated and
every row receives the ID of the tree crown it belongs to.  Three
strategies are available:

* **rounded** (default): rows sharing the rounded centroid
  ``(RoundCtrX, RoundCtrY, RoundCtrZ)`` form one crown.  Fast and
  independent of row order, but two detections of the same tree whose
  rounded centroids differ by a single rounding step stay apart.

* **distance**: a single greedy pass in row order.  A row joins the
  crown of the first earlier row whose centroid lies closer than
  ``eps``, otherwise it opens a crown numbered by its own index.  There
  is no transitive closure, so the grouping depends on row order.

* **dbscan**: DBSCAN with ``min_samples=1`` on the centroids, i.e. the
  connected components of the ``eps`` neighbourhood graph.
"""

from __future__ import annotations

import numpy as np
import pandas as pd
from sklearn.cluster import DBSCAN

from .pointcloud import CENTROID_COLUMNS, ROUND_COLUMNS


def assign_rounded_ids(df: pd.DataFrame) -> np.ndarray:
    """Number distinct rounded centroids in order of first appearance."""
    if df.empty:
        return np.empty(0, dtype=np.int64)
    ids = df.groupby(ROUND_COLUMNS, sort=False).ngroup()
    return ids.to_numpy(dtype=np.int64)


def find_cluster(ctr: np.ndarray, eps: float) -> np.ndarray:
    """Greedy distance merge of centroids.

    Parameters
    ----------
    ctr : np.ndarray
        Centroid coordinates of shape `(n, 3)`, in processing order.
    eps : float
        Centroids closer than this are merged.

    Returns
    -------
    np.ndarray
        Integer IDs of shape `(n,)`.  Row `i` takes the ID of the first
        row `j < i` within `eps`, or `i` when there is none.
    """
    ctr = np.asarray(ctr, dtype=float)
    n = ctr.shape[0]
    ids = np.arange(n, dtype=np.int64)
    for i in range(1, n):
        dist = np.linalg.norm(ctr[:i] - ctr[i], axis=1)
        hits = np.flatnonzero(dist < eps)
        if hits.size:
            ids[i] = ids[hits[0]]
    return ids


def assign_dbscan_ids(ctr: np.ndarray, eps: float) -> np.ndarray:
    """Label centroids with DBSCAN connected components."""
    ctr = np.asarray(ctr, dtype=float)
    if ctr.shape[0] == 0:
        return np.empty(0, dtype=np.int64)
    clustering = DBSCAN(eps=eps, min_samples=1)
    return clustering.fit_predict(ctr).astype(np.int64)


def resolve_ids(df: pd.DataFrame, method: str = "rounded", eps: float = 1.0) -> np.ndarray:
    """Assign a crown ID to every row of the concatenated detections.

    Parameters
    ----------
    df : pd.DataFrame
        Detections with centroid (`CtrX/Y/Z`) and rounded centroid
        (`RoundCtrX/Y/Z`) columns.
    method : str, optional
        One of `'rounded'`, `'distance'` or `'dbscan'`.
    eps : float, optional
        Merge distance for `'distance'` and `'dbscan'`.

    Returns
    -------
    np.ndarray
        Integer IDs aligned with the rows of ``df``.
    """
    method = method.lower()
    if method == "rounded":
        return assign_rounded_ids(df)
    elif method == "distance":
        return find_cluster(df[CENTROID_COLUMNS].to_numpy(dtype=float), eps)
    elif method == "dbscan":
        return assign_dbscan_ids(df[CENTROID_COLUMNS].to_numpy(dtype=float), eps)
    else:
        raise ValueError(f"Unknown identity method: {method}")
