"""Height dependent kernel dimensions.

The adaptive mean shift kernel is a vertical cylinder whose size grows
with the height above ground of its centre.  Crown width determines
the horizontal radius and crown length determines the vertical extent;
both are modelled as linear functions of height:

* ``radius = cw_inter + h2cw * h``
* ``height = cl_inter + h2cl * h``
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np


@dataclass(frozen=True)
class KernelModel:
    """Linear crown allometry used to size the kernel.

    Attributes
    ----------
    cw_inter : float
        Intercept of the crown width relation (metres).
    h2cw : float
        Ratio of crown width to height above ground.
    cl_inter : float
        Intercept of the crown length relation (metres).
    h2cl : float
        Ratio of crown length to height above ground.
    """

    cw_inter: float = 0.1
    h2cw: float = 0.3
    cl_inter: float = 0.1
    h2cl: float = 0.4

    def kernel_at(self, height: float | np.ndarray) -> Tuple[float | np.ndarray, float | np.ndarray]:
        """Return ``(radius, height)`` of the kernel at a height above ground.

        Works on scalars and numpy arrays alike.  Heights below zero are
        not meaningful; callers remove them with the ``minz`` filter.
        """
        radius = self.cw_inter + self.h2cw * height
        length = self.cl_inter + self.h2cl * height
        return radius, length

    def validate(self, minz: float) -> None:
        """Raise ``ValueError`` if the kernel can degenerate above ``minz``.

        Both relations are linear, so they stay positive for every
        height ``h >= minz`` exactly when they are positive at ``minz``
        and their slopes are not negative.
        """
        if self.h2cw < 0:
            raise ValueError(f"H2CW must not be negative, got {self.h2cw}")
        if self.h2cl < 0:
            raise ValueError(f"H2CL must not be negative, got {self.h2cl}")
        radius, length = self.kernel_at(minz)
        if radius <= 0:
            raise ValueError(
                f"Kernel radius must be positive at minz={minz}, got {radius} "
                f"(CWInter={self.cw_inter}, H2CW={self.h2cw})"
            )
        if length <= 0:
            raise ValueError(
                f"Kernel height must be positive at minz={minz}, got {length} "
                f"(CLInter={self.cl_inter}, H2CL={self.h2cl})"
            )
