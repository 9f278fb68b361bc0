import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest

from wavefield.config import Band, WavefieldConfig
from wavefield.recording import Recording

FS = 1000.0
COLUMNS, ROWS = 8, 4


def in_phase_samples(n_frames: int = 100, freq: float = 13.0) -> np.ndarray:
    t = np.arange(n_frames) / FS
    sig = np.sin(2 * np.pi * freq * t)
    return np.tile(sig, (COLUMNS * ROWS, 1))


def traveling_wave_samples(
    n_frames: int = 6000, freq: float = 13.0, rad_per_unit: float = 0.1, spacing: float = 2.0
) -> np.ndarray:
    """
    cos(w t + g(t) * u), u the lattice coordinate along x (spacing units per column).

    All channels start in phase; g ramps smoothly from 0 to rad_per_unit
    between 1 s and 2 s, so per-channel unwrapping never splits neighbours
    by 2 pi.
    """
    t = np.arange(n_frames) / FS
    ch = np.arange(COLUMNS * ROWS)
    col = ch % COLUMNS
    u = (col - (COLUMNS - 1) / 2.0) * spacing
    s = np.clip(t - 1.0, 0.0, 1.0)
    g = rad_per_unit * s * s * (3.0 - 2.0 * s)
    return np.cos(2 * np.pi * freq * t[np.newaxis, :] + g[np.newaxis, :] * u[:, np.newaxis])


@pytest.fixture
def in_phase_recording() -> Recording:
    return Recording(sample_rate=FS, samples=in_phase_samples())


@pytest.fixture
def traveling_recording() -> Recording:
    return Recording(sample_rate=FS, samples=traveling_wave_samples())


@pytest.fixture
def small_config() -> WavefieldConfig:
    return WavefieldConfig(bands=(Band(12.0, 15.0),), grid_resolution=(140, 60))


@pytest.fixture
def stacked_config() -> WavefieldConfig:
    return WavefieldConfig(
        bands=(Band(4.0, 8.0), Band(12.0, 15.0), Band(30.0, 45.0)),
        colormaps=("Blues", "Greens", "Reds"),
        display_gain=2.0,
        grid_resolution=(140, 60),
    )
