"""
Band-pass filtering and analytic-signal extraction.

Implements:
- Zero-phase Butterworth band-pass (forward-backward SOS filtering)
- Hilbert analytic signal: real part, wrapped and unwrapped phase
- A filter bank holding one filter per configured band
"""

import logging
from dataclasses import dataclass

import numpy as np
from scipy.signal import butter, hilbert, sosfiltfilt

from wavefield.config import Band
from wavefield.errors import ConfigurationError
from wavefield.phase import unwrap_phase, wrap_phase
from wavefield.recording import Recording

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class AnalyticSignal:
    """
    Per-band real part and phase, shape (n_channels, n_frames).

    phase is the continuous (unwrapped) track used for velocity estimation;
    wrapped_phase keeps the instantaneous angle in (-pi, pi].
    """

    band: Band
    real: np.ndarray
    phase: np.ndarray
    wrapped_phase: np.ndarray | None = None

    @property
    def channel_count(self) -> int:
        return int(self.real.shape[0])

    @property
    def frame_count(self) -> int:
        return int(self.real.shape[1])


class BandpassFilter:
    """Zero-phase Butterworth band-pass for one band."""

    def __init__(self, band: Band, fs: float, order: int = 4):
        """
        Initialize bandpass filter.

        Args:
            band: Pass-band in Hz
            fs: Sampling frequency in Hz
            order: Butterworth order

        Raises:
            InvalidBandError: Band bounds inverted or outside (0, fs/2)
        """
        band.validate(fs)
        self.band = band
        self.fs = float(fs)
        self.order = int(order)

        # Cutoffs normalized to Nyquist; SOS for stability with narrow bands
        nyquist = self.fs / 2.0
        self.sos = butter(
            self.order,
            [band.low_hz / nyquist, band.high_hz / nyquist],
            btype="band",
            output="sos",
        )

    def process(self, data: np.ndarray) -> np.ndarray:
        """
        Filter forward and backward along time.

        Args:
            data: Shape (n_channels, n_frames)

        Returns:
            Filtered data, same shape
        """
        data = np.asarray(data, dtype=np.float64)
        n_frames = data.shape[-1]
        if n_frames < 2:
            raise ConfigurationError(f"Need at least 2 frames to filter, got {n_frames}")
        # scipy's default pad length, limited so short recordings still filter
        padlen = min(3 * (2 * len(self.sos) + 1), n_frames - 1)
        return sosfiltfilt(self.sos, data, axis=-1, padlen=padlen)

    def analytic(self, data: np.ndarray) -> AnalyticSignal:
        """
        Filter, then take the analytic signal.

        Args:
            data: Shape (n_channels, n_frames)

        Returns:
            AnalyticSignal with read-only real part, wrapped phase in
            (-pi, pi] and its unwrapped track
        """
        filtered = self.process(data)
        analytic = hilbert(filtered, axis=-1)

        real = np.real(analytic).copy()
        wrapped = wrap_phase(np.angle(analytic))
        phase = unwrap_phase(wrapped)
        for arr in (real, wrapped, phase):
            arr.flags.writeable = False
        return AnalyticSignal(band=self.band, real=real, phase=phase, wrapped_phase=wrapped)


class BandFilterBank:
    """One zero-phase band-pass + analytic transform per configured band."""

    def __init__(self, fs: float, bands: tuple[Band, ...] | list[Band], order: int = 4):
        """
        Initialize filter bank.

        Args:
            fs: Sampling frequency in Hz
            bands: Ordered pass-bands
            order: Butterworth order shared by all bands
        """
        if not (np.isfinite(fs) and fs > 0):
            raise ConfigurationError(f"Sample rate must be positive, got {fs}")
        self.fs = float(fs)
        self.order = int(order)
        self.filters = [BandpassFilter(band, fs=self.fs, order=self.order) for band in bands]

    def __len__(self) -> int:
        return len(self.filters)

    @property
    def bands(self) -> list[Band]:
        return [f.band for f in self.filters]

    def analytic(self, source: Recording | np.ndarray, band_index: int) -> AnalyticSignal:
        samples = source.samples if isinstance(source, Recording) else source
        signal = self.filters[band_index].analytic(samples)
        logger.debug(f"Analytic signal ready for band {signal.band.label}")
        return signal

    def analytic_all(self, source: Recording | np.ndarray) -> list[AnalyticSignal]:
        return [self.analytic(source, i) for i in range(len(self.filters))]
