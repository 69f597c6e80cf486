"""Configuration for tiled adaptive mean shift runs.

All parameters of a run live in one immutable :class:`MeanShiftConfig`.
The dataclass is copied into every worker before tiles are dispatched,
so nothing in it may be mutated during a run.

Configuration files are YAML.  Keys may use the dotted names of the
original R interface (``frac.cores``, ``max.iter``, ``CWInter`` ...)
or the Python field names, either at the top level or inside a
``meanshift`` section::

    meanshift:
      version: voxel
      frac.cores: 0.75
      H2CW: 0.3
      ctr.ac: 2
"""

from __future__ import annotations

import copy
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict

import yaml

from .kernel.model import KernelModel

VERSIONS = ("classic", "voxel")
ID_METHODS = ("rounded", "distance", "dbscan")

# Dotted / R-style key -> dataclass field
_ALIASES: Dict[str, str] = {
    "frac.cores": "frac_cores",
    "CWInter": "cw_inter",
    "H2CW": "h2cw",
    "CLInter": "cl_inter",
    "H2CL": "h2cl",
    "max.iter": "max_iter",
    "buffer.width": "buffer_width",
    "ctr.ac": "ctr_ac",
    "id.method": "id_method",
    "uniform.kernel": "uniform_kernel",
}
_FIELD_TO_ALIAS = {v: k for k, v in _ALIASES.items()}


@dataclass(frozen=True)
class MeanShiftConfig:
    """Parameters of a tiled AMS3D run.

    Attributes
    ----------
    frac_cores : float
        Fraction of the available CPU cores used by the worker pool.
    version : str
        Mode seeking variant, ``'classic'`` (exact coordinates) or
        ``'voxel'`` (1 m voxel aggregation, faster).
    cw_inter, h2cw : float
        Crown width intercept and height ratio; size the kernel radius.
    cl_inter, h2cl : float
        Crown length intercept and height ratio; size the kernel height.
    max_iter : int
        Maximum number of kernel moves per point.  The last position is
        kept when the kernel has not settled by then.
    buffer_width : float
        Width of the buffer already present around each tile core.
        Only used to check tiles, never to re-derive buffers.
    minz : float
        Points below this height above ground are dropped.
    ctr_ac : float
        Rounding accuracy of centroid coordinates.
    eps : float
        Merge distance of the ``'distance'`` and ``'dbscan'`` identity
        strategies.
    id_method : str
        Identity strategy: ``'rounded'`` (default), ``'distance'`` or
        ``'dbscan'``.
    uniform_kernel : bool
        Use flat weights inside the kernel instead of Gaussian and
        Epanechnikov profiles.
    tol : float
        Shift below which the kernel is considered settled.
    """

    frac_cores: float = 0.5
    version: str = "classic"
    cw_inter: float = 0.1
    h2cw: float = 0.3
    cl_inter: float = 0.1
    h2cl: float = 0.4
    max_iter: int = 20
    buffer_width: float = 10.0
    minz: float = 2.0
    ctr_ac: float = 2.0
    eps: float = 1.0
    id_method: str = "rounded"
    uniform_kernel: bool = False
    tol: float = 1e-3

    @property
    def kernel(self) -> KernelModel:
        return KernelModel(self.cw_inter, self.h2cw, self.cl_inter, self.h2cl)

    def validate(self) -> "MeanShiftConfig":
        """Check all parameters and return ``self``.

        Raises
        ------
        ValueError
            If any parameter is out of range or the kernel would become
            non-positive for some admissible height.
        """
        if not 0.0 < self.frac_cores <= 1.0:
            raise ValueError(f"frac.cores must be in (0, 1], got {self.frac_cores}")
        if self.version not in VERSIONS:
            raise ValueError(f"Unknown mean shift version: {self.version}")
        if self.id_method not in ID_METHODS:
            raise ValueError(f"Unknown identity method: {self.id_method}")
        if self.max_iter < 1:
            raise ValueError(f"max.iter must be a positive integer, got {self.max_iter}")
        if self.minz <= 0:
            raise ValueError(f"minz must be > 0, got {self.minz}")
        if self.ctr_ac <= 0:
            raise ValueError(f"ctr.ac must be positive, got {self.ctr_ac}")
        if self.eps <= 0:
            raise ValueError(f"eps must be positive, got {self.eps}")
        if self.buffer_width < 0:
            raise ValueError(f"buffer.width must not be negative, got {self.buffer_width}")
        if self.tol <= 0:
            raise ValueError(f"tol must be positive, got {self.tol}")
        self.kernel.validate(self.minz)
        return self

    @classmethod
    def from_dict(cls, cfg: Dict[str, Any] | None) -> "MeanShiftConfig":
        """Build a configuration from a (parsed YAML) dictionary.

        A nested ``meanshift`` section takes precedence over top level
        keys.  Unknown keys raise ``ValueError``.
        """
        if cfg is None:
            return cls()
        if isinstance(cfg.get("meanshift"), dict):
            cfg = cfg["meanshift"]
        names = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in cfg.items():
            name = _ALIASES.get(key, key)
            if name not in names:
                raise ValueError(f"Unknown configuration key: {key}")
            kwargs[name] = value
        # YAML may hand back ints for float fields and vice versa
        for name in ("frac_cores", "cw_inter", "h2cw", "cl_inter", "h2cl",
                     "buffer_width", "minz", "ctr_ac", "eps", "tol"):
            if name in kwargs:
                kwargs[name] = float(kwargs[name])
        if "max_iter" in kwargs:
            kwargs["max_iter"] = int(kwargs["max_iter"])
        if "uniform_kernel" in kwargs:
            kwargs["uniform_kernel"] = bool(kwargs["uniform_kernel"])
        for name in ("version", "id_method"):
            if name in kwargs:
                kwargs[name] = str(kwargs[name]).lower()
        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, path: str) -> "MeanShiftConfig":
        with open(path, "r") as f:
            return cls.from_dict(yaml.safe_load(f))

    def to_dict(self) -> Dict[str, Any]:
        """Return the parameters keyed by their dotted names."""
        return {_FIELD_TO_ALIAS.get(k, k): v for k, v in asdict(self).items()}


def override(cfg: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively override keys in a configuration dictionary.

    Keys in `overrides` are paths separated by ``/`` into nested
    dictionaries (dots are part of the parameter names, e.g.
    ``meanshift/frac.cores``).  A new dictionary is returned; the
    input is not modified.
    """
    result = copy.deepcopy(cfg)
    for key, value in overrides.items():
        parts = key.split("/")
        d = result
        for p in parts[:-1]:
            if p not in d or not isinstance(d[p], dict):
                d[p] = {}
            d = d[p]
        d[parts[-1]] = value
    return result
