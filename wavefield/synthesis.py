"""
Dense field reconstruction from advected electrode samples.

Steps per frame:
1. Scattered interpolation onto a fixed fine grid (zero outside the hull)
2. Box-average smoothing (k x k, weights 1/k^2, zero-filled border)
3. Display gain
4. Per-frame min/max colour lookup (multi-band mode only)
"""

import logging
from dataclasses import dataclass

import matplotlib
import numpy as np
from scipy.interpolate import RBFInterpolator, griddata
from scipy.ndimage import uniform_filter
from scipy.spatial import Delaunay, QhullError

from wavefield.config import INTERPOLATION_METHODS, Band
from wavefield.errors import ConfigurationError
from wavefield.recording import ElectrodeGrid
from wavefield.velocity import VelocityField

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class RenderableFrame:
    """One band's ready-to-draw output for one frame query."""

    band: Band
    field: np.ndarray  # (height, width), smoothed + gained
    rgb: np.ndarray | None  # (height, width, 3) in multi-band mode
    x: np.ndarray  # advected electrode positions
    y: np.ndarray
    amplitude: np.ndarray  # interpolated real part per channel
    vx: np.ndarray
    vy: np.ndarray

    def markers(self) -> np.ndarray:
        """(x, y, amplitude) per channel, shape (n_channels, 3)."""
        return np.column_stack([self.x, self.y, self.amplitude])


def build_lut(name: str, size: int = 256) -> np.ndarray:
    """Sample a matplotlib colormap into an RGB lookup table, shape (size, 3)."""
    try:
        cmap = matplotlib.colormaps[name]
    except KeyError:
        raise ConfigurationError(f"Unknown colormap '{name}'") from None
    return cmap(np.linspace(0.0, 1.0, int(size)))[:, :3]


def box_smooth(field: np.ndarray, size: int = 11) -> np.ndarray:
    """
    Normalized size x size moving average, same-size output.

    Samples beyond the border count as zero, matching a 'same' 2-D
    convolution with a ones(size, size) / size**2 kernel.
    """
    if size < 1 or size % 2 == 0:
        raise ConfigurationError(f"Smoothing kernel size must be a positive odd integer, got {size}")
    if size == 1:
        return np.array(field, dtype=np.float64, copy=True)
    return uniform_filter(
        np.asarray(field, dtype=np.float64), size=size, mode="constant", cval=0.0
    )


def apply_lut(field: np.ndarray, lut: np.ndarray) -> np.ndarray:
    """
    Map a field to RGB using its own min/max.

    A constant field maps entirely to the table midpoint, lut[len(lut) // 2].
    """
    field = np.asarray(field, dtype=np.float64)
    n = len(lut)
    lo = float(np.min(field))
    hi = float(np.max(field))
    span = hi - lo
    if not np.isfinite(span) or span <= 0:
        logger.debug("Constant field, colour lookup uses the table midpoint")
        idx = np.full(field.shape, n // 2, dtype=np.intp)
    else:
        norm = (field - lo) / span
        idx = np.rint(norm * (n - 1)).astype(np.intp)
        np.clip(idx, 0, n - 1, out=idx)
    return lut[idx]


class SpatialFieldSynthesizer:
    """Interpolate, smooth, scale and colour-map scattered electrode samples."""

    def __init__(
        self,
        grid: ElectrodeGrid,
        resolution: tuple[int, int] = (700, 300),
        kernel_size: int = 11,
        interpolation: str = "thin_plate",
        display_gain: float = 1.0,
        colormap: str | None = None,
        lut_size: int = 256,
    ):
        """
        Initialize synthesizer.

        Args:
            grid: Electrode lattice; the fine grid spans its extent
            resolution: Fine grid (width, height)
            kernel_size: Box smoothing size (odd)
            interpolation: "thin_plate", "cubic" or "linear"
            display_gain: Multiplier applied after smoothing
            colormap: Matplotlib colormap name; None disables RGB output
            lut_size: Entries in the colour lookup table
        """
        if interpolation not in INTERPOLATION_METHODS:
            raise ConfigurationError(
                f"interpolation must be one of {INTERPOLATION_METHODS}, got '{interpolation}'"
            )
        width, height = (int(n) for n in resolution)
        if width < 2 or height < 2:
            raise ConfigurationError(f"Grid resolution must be at least 2x2, got {resolution}")
        if kernel_size < 1 or kernel_size % 2 == 0:
            raise ConfigurationError(
                f"Smoothing kernel size must be a positive odd integer, got {kernel_size}"
            )

        self.grid = grid
        self.width = width
        self.height = height
        self.kernel_size = int(kernel_size)
        self.interpolation = interpolation
        self.display_gain = float(display_gain)
        self.colormap = colormap
        self.lut = build_lut(colormap, lut_size) if colormap else None

        x_min, x_max, y_min, y_max = grid.extent()
        self.xi = np.linspace(x_min, x_max, width)
        self.yi = np.linspace(y_min, y_max, height)
        self.XI, self.YI = np.meshgrid(self.xi, self.yi)  # (height, width)
        self._points = np.column_stack([self.XI.ravel(), self.YI.ravel()])

    @property
    def shape(self) -> tuple[int, int]:
        return self.height, self.width

    def interpolate(self, x: np.ndarray, y: np.ndarray, values: np.ndarray) -> np.ndarray:
        """
        Scattered samples -> dense grid.

        Grid points outside the convex hull of (x, y) are exactly zero. If the
        samples have no 2-D hull (collinear or coincident) the whole grid is zero.
        Non-finite interpolant values are also replaced by zero.

        Returns:
            Field of shape (height, width)
        """
        samples = np.column_stack([np.asarray(x, dtype=np.float64), np.asarray(y, dtype=np.float64)])
        values = np.asarray(values, dtype=np.float64)
        out = np.zeros(self.height * self.width)

        try:
            tri = Delaunay(samples)
        except QhullError:
            logger.debug("Degenerate sample hull, field set to zero")
            return out.reshape(self.shape)

        inside = tri.find_simplex(self._points) >= 0
        if not np.any(inside):
            return out.reshape(self.shape)

        method = self.interpolation
        if method == "thin_plate":
            try:
                rbf = RBFInterpolator(samples, values, kernel="thin_plate_spline")
                out[inside] = rbf(self._points[inside])
            except np.linalg.LinAlgError:
                # Coincident advected samples make the spline system singular
                logger.debug("Singular thin-plate system, falling back to linear")
                method = "linear"

        if method != "thin_plate":
            out[inside] = griddata(
                samples, values, self._points[inside], method=method, fill_value=0.0
            )
        out[~np.isfinite(out)] = 0.0
        return out.reshape(self.shape)

    def smooth(self, field: np.ndarray) -> np.ndarray:
        return box_smooth(field, self.kernel_size)

    def colorize(self, field: np.ndarray) -> np.ndarray | None:
        if self.lut is None:
            return None
        return apply_lut(field, self.lut)

    def synthesize(
        self, band: Band, velocity: VelocityField, amplitude: np.ndarray
    ) -> RenderableFrame:
        """
        Build one band's renderable frame.

        Args:
            band: Band being rendered
            velocity: Advected positions from the velocity estimator
            amplitude: Interpolated real part per channel

        Returns:
            RenderableFrame
        """
        raw = self.interpolate(velocity.x, velocity.y, amplitude)
        field = self.smooth(raw)
        if self.display_gain != 1.0:
            field = field * self.display_gain
        rgb = self.colorize(field)
        return RenderableFrame(
            band=band,
            field=field,
            rgb=rgb,
            x=velocity.x,
            y=velocity.y,
            amplitude=np.asarray(amplitude, dtype=np.float64),
            vx=velocity.vx,
            vy=velocity.vy,
        )
