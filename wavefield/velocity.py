"""
Plane-wave phase-gradient velocity estimation.

Under a local plane wave phi(x, t) ~ k.x - w t the apparent propagation
velocity is v = -(dphi/dt) * grad(phi) / |grad(phi)|^2. This is a heuristic
(optical-flow-like) estimate: it is ill-conditioned where the spatial
gradient vanishes (regularized by epsilon) and meaningless where no coherent
wavefront exists.
"""

import logging
from dataclasses import dataclass

import numpy as np

from wavefield.errors import ConfigurationError
from wavefield.recording import ElectrodeGrid
from wavefield.sampler import SampledState

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class VelocityField:
    """Per-channel velocity, phase gradient and advected position."""

    vx: np.ndarray
    vy: np.ndarray
    gx: np.ndarray
    gy: np.ndarray
    x: np.ndarray
    y: np.ndarray

    @property
    def speed(self) -> np.ndarray:
        return np.hypot(self.vx, self.vy)


def phase_gradient(lattice: np.ndarray, spacing: float = 2.0) -> tuple[np.ndarray, np.ndarray]:
    """
    Spatial gradient of a (rows, columns) phase lattice.

    Central differences inside, one-sided differences at the borders. An
    axis with a single electrode has zero gradient along it.

    Args:
        lattice: Phase per electrode, shape (rows, columns)
        spacing: Grid step between neighbouring electrodes

    Returns:
        (d/dx, d/dy), each shaped like lattice
    """
    lattice = np.asarray(lattice, dtype=np.float64)
    rows, cols = lattice.shape

    if cols > 1:
        dx = np.gradient(lattice, spacing, axis=1)
    else:
        dx = np.zeros_like(lattice)
    if rows > 1:
        dy = np.gradient(lattice, spacing, axis=0)
    else:
        dy = np.zeros_like(lattice)
    return dx, dy


class VelocityFieldEstimator:
    """Turn sampled phase into per-channel advection velocity and positions."""

    def __init__(
        self,
        grid: ElectrodeGrid,
        epsilon: float = float(np.finfo(float).eps),
        spacing: float = 2.0,
    ):
        """
        Initialize estimator.

        Args:
            grid: Electrode lattice (rest positions + reshape rule)
            epsilon: Regularizer added to |grad phi|^2
            spacing: Gradient grid step between neighbouring electrodes
        """
        if not (np.isfinite(epsilon) and epsilon > 0):
            raise ConfigurationError(f"epsilon must be positive, got {epsilon}")
        if not (np.isfinite(spacing) and spacing > 0):
            raise ConfigurationError(f"Gradient spacing must be positive, got {spacing}")
        self.grid = grid
        self.epsilon = float(epsilon)
        self.spacing = float(spacing)
        self.x_rest, self.y_rest = grid.positions()

    def velocity(
        self, phase: np.ndarray, phase_rate: np.ndarray
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """
        Velocity from phase and temporal phase rate.

        Args:
            phase: Phase per channel (rad)
            phase_rate: dphi/dt per channel (rad/s)

        Returns:
            (vx, vy, gx, gy) per channel
        """
        dx, dy = phase_gradient(self.grid.to_lattice(phase), self.spacing)
        gx = self.grid.from_lattice(dx)
        gy = self.grid.from_lattice(dy)

        denom = gx**2 + gy**2 + self.epsilon
        phase_rate = np.asarray(phase_rate, dtype=np.float64)
        vx = -phase_rate * gx / denom
        vy = -phase_rate * gy / denom

        if logger.isEnabledFor(logging.DEBUG):
            flat = int(np.count_nonzero(gx**2 + gy**2 < self.epsilon))
            if flat:
                logger.debug(f"{flat} channels with near-zero phase gradient (epsilon guard)")
        return vx, vy, gx, gy

    def estimate(self, state: SampledState, dt: float) -> VelocityField:
        """
        Velocity field and advected positions for one sampled frame.

        Args:
            state: Sampled phase/phase rate
            dt: Advection time step in seconds (1 / fs)

        Returns:
            VelocityField with positions x_rest + vx*dt, y_rest + vy*dt
        """
        vx, vy, gx, gy = self.velocity(state.phase, state.phase_rate)
        return VelocityField(
            vx=vx,
            vy=vy,
            gx=gx,
            gy=gy,
            x=self.x_rest + vx * dt,
            y=self.y_rest + vy * dt,
        )
