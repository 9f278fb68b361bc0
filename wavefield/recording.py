"""
Recording and electrode-grid data model.

Implements:
- Recording: immutable multichannel samples + sample rate
- ElectrodeGrid: channel <-> lattice cell <-> physical position mapping
- load_recording: .mat / .parquet / .npz loader
"""

import logging
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import pandas as pd
from scipy.io import loadmat

from wavefield.errors import ConfigurationError

logger = logging.getLogger(__name__)


def _read_only(arr: np.ndarray) -> np.ndarray:
    arr = np.array(arr, dtype=np.float64, copy=True)
    arr.flags.writeable = False
    return arr


@dataclass(frozen=True, eq=False)
class Recording:
    """
    Multichannel recording, shape (n_channels, n_frames).

    Samples are copied and made read-only on construction.
    """

    sample_rate: float
    samples: np.ndarray

    def __post_init__(self):
        fs = float(self.sample_rate)
        if not (np.isfinite(fs) and fs > 0):
            raise ConfigurationError(f"Sample rate must be positive, got {self.sample_rate}")
        samples = np.asarray(self.samples)
        if samples.ndim != 2:
            raise ConfigurationError(
                f"Samples must be 2-D (channels x frames), got shape {samples.shape}"
            )
        if samples.shape[0] < 1 or samples.shape[1] < 2:
            raise ConfigurationError(
                f"Recording needs at least 1 channel and 2 frames, got shape {samples.shape}"
            )
        if not np.all(np.isfinite(samples)):
            raise ConfigurationError("Recording contains NaN or infinite samples")
        object.__setattr__(self, "sample_rate", fs)
        object.__setattr__(self, "samples", _read_only(samples))

    @property
    def channel_count(self) -> int:
        return int(self.samples.shape[0])

    @property
    def frame_count(self) -> int:
        return int(self.samples.shape[1])

    @property
    def duration_s(self) -> float:
        return (self.frame_count - 1) / self.sample_rate


@dataclass(frozen=True)
class ElectrodeGrid:
    """
    Regular rectangular electrode lattice.

    Channel ch sits at column ch % columns, row ch // columns, and at rest
    position (col * pitch, row * pitch).
    """

    columns: int = 8
    rows: int = 4
    pitch: float = 100.0

    def __post_init__(self):
        if self.columns < 1 or self.rows < 1:
            raise ConfigurationError(f"Grid must be at least 1x1, got {self.columns}x{self.rows}")
        if not self.pitch > 0:
            raise ConfigurationError(f"Electrode pitch must be positive, got {self.pitch}")

    @property
    def channel_count(self) -> int:
        return self.columns * self.rows

    def cell(self, channel: int) -> tuple[int, int]:
        """(col, row) of a channel."""
        if not 0 <= channel < self.channel_count:
            raise IndexError(f"Channel {channel} not on a {self.columns}x{self.rows} grid")
        return channel % self.columns, channel // self.columns

    def positions(self) -> tuple[np.ndarray, np.ndarray]:
        """Rest positions (x, y) per channel."""
        ch = np.arange(self.channel_count)
        x = (ch % self.columns) * float(self.pitch)
        y = (ch // self.columns) * float(self.pitch)
        return x, y

    def extent(self) -> tuple[float, float, float, float]:
        """(x_min, x_max, y_min, y_max) of the lattice."""
        return (
            0.0,
            (self.columns - 1) * float(self.pitch),
            0.0,
            (self.rows - 1) * float(self.pitch),
        )

    def to_lattice(self, channel_vec: np.ndarray) -> np.ndarray:
        """Per-channel vector -> (rows, columns) matrix."""
        vec = np.asarray(channel_vec)
        if vec.shape != (self.channel_count,):
            raise ValueError(
                f"Expected {self.channel_count} channel values, got shape {vec.shape}"
            )
        return vec.reshape(self.rows, self.columns)

    def from_lattice(self, lattice: np.ndarray) -> np.ndarray:
        """(rows, columns) matrix -> per-channel vector."""
        mat = np.asarray(lattice)
        if mat.shape != (self.rows, self.columns):
            raise ValueError(
                f"Expected lattice shape {(self.rows, self.columns)}, got {mat.shape}"
            )
        return mat.reshape(-1)

    def validate_recording(self, recording: Recording) -> None:
        if recording.channel_count != self.channel_count:
            raise ConfigurationError(
                f"Recording has {recording.channel_count} channels but the "
                f"{self.columns}x{self.rows} grid needs {self.channel_count}"
            )


def _load_mat(path: Path, key: str | None, sample_rate: float | None) -> Recording:
    data = loadmat(path)
    key = key or "d"
    if key not in data:
        raise ConfigurationError(f"Variable '{key}' not found in {path.name}")
    samples = np.asarray(data[key], dtype=np.float64)
    if sample_rate is None:
        if "sfx" not in data:
            raise ConfigurationError(
                f"No 'sfx' sample rate in {path.name}; pass sample_rate explicitly"
            )
        sample_rate = float(np.squeeze(data["sfx"]))
    return Recording(sample_rate=sample_rate, samples=samples)


def _load_parquet(path: Path, sample_rate: float | None) -> Recording:
    df = pd.read_parquet(path)
    if "time_s" in df.columns:
        time_s = df["time_s"].to_numpy(dtype=np.float64)
        df = df.drop(columns=["time_s"])
        if sample_rate is None and len(time_s) > 1:
            step = float(np.median(np.diff(time_s)))
            if step > 0:
                sample_rate = 1.0 / step
    if sample_rate is None:
        raise ConfigurationError(
            f"Cannot infer sample rate for {path.name}; pass sample_rate explicitly"
        )
    # Rows are frames, columns are channels
    return Recording(sample_rate=sample_rate, samples=df.values.astype(np.float64).T)


def _load_npz(path: Path, key: str | None, sample_rate: float | None) -> Recording:
    with np.load(path) as data:
        key = key or "samples"
        if key not in data:
            raise ConfigurationError(f"Array '{key}' not found in {path.name}")
        samples = data[key]
        if sample_rate is None:
            if "sample_rate" not in data:
                raise ConfigurationError(
                    f"No 'sample_rate' array in {path.name}; pass sample_rate explicitly"
                )
            sample_rate = float(np.squeeze(data["sample_rate"]))
    return Recording(sample_rate=sample_rate, samples=samples)


def load_recording(
    path: str | Path,
    sample_rate: float | None = None,
    key: str | None = None,
) -> Recording:
    """
    Load a recording from disk.

    Args:
        path: .mat (variables d + sfx), .parquet (rows = frames) or .npz
            (arrays samples + sample_rate)
        sample_rate: Override/provide the sampling rate in Hz
        key: Variable name of the sample matrix in .mat/.npz files

    Returns:
        Recording with shape (channels, frames)

    Raises:
        ConfigurationError: Unsupported format, missing file or variables
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Recording not found: {path}")

    suffix = path.suffix.lower()
    if suffix == ".mat":
        recording = _load_mat(path, key, sample_rate)
    elif suffix == ".parquet":
        recording = _load_parquet(path, sample_rate)
    elif suffix == ".npz":
        recording = _load_npz(path, key, sample_rate)
    else:
        raise ConfigurationError(f"Unsupported recording format: {suffix or path.name}")

    logger.info(
        f"Loaded {path.name}: {recording.channel_count} channels, "
        f"{recording.frame_count} frames @ {recording.sample_rate:g} Hz"
    )
    return recording
