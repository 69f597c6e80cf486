"""Top level package for tiled adaptive mean shift (AMS3D).

This package delineates individual tree crowns in normalised airborne
LiDAR point clouds.  It contains submodules for the kernel model
(kernel), mode seeking and tile processing (detect), parallel dispatch
and run orchestration (exp), tile input/output (io) and crown
summaries (metrics).  The usual entry point is:

```python
from ams3d.config import MeanShiftConfig
from ams3d.exp.dispatch import parallel_mean_shift

result = parallel_mean_shift(tiles, MeanShiftConfig(version="voxel"))
```
"""

__all__ = [
    "config",
    "kernel",
    "detect",
    "exp",
    "io",
    "metrics",
]
