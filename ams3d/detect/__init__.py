"""Crown detection on buffered tiles.

This package contains the mode seeking engines, the per tile processor
that applies the core/buffer discipline and the identity resolution
that merges detections of all tiles into crown IDs.
"""

from . import pointcloud, meanshift, tile, cluster

__all__ = ["pointcloud", "meanshift", "tile", "cluster"]
