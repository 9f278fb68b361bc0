"""
Fractional-frame sampling of a precomputed analytic signal.

Frame indices are 1-based: index 1 is the first sample, index N the last.
A fractional index blends the two neighbouring samples linearly.
"""

import math
from dataclasses import dataclass

import numpy as np

from wavefield.errors import FrameRangeError
from wavefield.filters import AnalyticSignal


@dataclass(frozen=True, eq=False)
class SampledState:
    """Amplitude, phase and temporal phase rate per channel at one frame."""

    index: float
    amplitude: np.ndarray
    phase: np.ndarray
    phase_rate: np.ndarray  # rad/s


def split_index(index: float, frame_count: int) -> tuple[int, float, int]:
    """
    Split a 1-based frame index into neighbours and blend weight.

    Args:
        index: Frame index in [1, frame_count]
        frame_count: Number of frames in the recording

    Returns:
        (k0, frac, k1) with k0 = floor(index), k1 = min(k0 + 1, frame_count)

    Raises:
        FrameRangeError: Index outside [1, frame_count] or not finite
    """
    try:
        value = float(index)
    except (TypeError, ValueError):
        raise FrameRangeError(index, frame_count) from None
    if not math.isfinite(value) or value < 1 or value > frame_count:
        raise FrameRangeError(index, frame_count)
    k0 = int(math.floor(value))
    frac = value - k0
    k1 = min(k0 + 1, frame_count)
    return k0, frac, k1


class FrameSampler:
    """Resolve frame queries against one band's analytic signal."""

    def __init__(self, signal: AnalyticSignal, fs: float):
        self.signal = signal
        self.fs = float(fs)

    @property
    def frame_count(self) -> int:
        return self.signal.frame_count

    def _blend(self, series: np.ndarray, k0: int, frac: float, k1: int) -> np.ndarray:
        # 1-based k0/k1 -> 0-based columns
        if frac == 0.0:
            return series[:, k0 - 1].copy()
        return (1.0 - frac) * series[:, k0 - 1] + frac * series[:, k1 - 1]

    def sample(self, index: float) -> SampledState:
        """
        Sample amplitude, phase and phase rate at a (fractional) frame.

        Args:
            index: 1-based frame index, possibly fractional

        Returns:
            SampledState for every channel
        """
        k0, frac, k1 = split_index(index, self.frame_count)

        amplitude = self._blend(self.signal.real, k0, frac, k1)
        phase = self._blend(self.signal.phase, k0, frac, k1)

        if k0 > 1:
            # Same blend one sample earlier; finite difference in rad/s
            prev_phase = self._blend(self.signal.phase, k0 - 1, frac, k0)
            phase_rate = (phase - prev_phase) * self.fs
        else:
            phase_rate = np.zeros_like(phase)

        return SampledState(
            index=float(index),
            amplitude=amplitude,
            phase=phase,
            phase_rate=phase_rate,
        )
