"""Kernel primitives for adaptive mean shift.

Modules in this package implement the height dependent kernel model
and the separable weight functions (vertical Epanechnikov band,
horizontal Gaussian and the uniform cylinder) used by the mode
seeking engines.
"""

from . import model, weights
from .model import KernelModel

__all__ = ["model", "weights", "KernelModel"]
