"""
Per-channel phase tracking.

Wrapped instantaneous phase (-pi, pi] is unwrapped along time, one channel
at a time, so adjacent samples never differ by more than pi.
"""

import numpy as np


def unwrap_phase(wrapped: np.ndarray) -> np.ndarray:
    """
    Unwrap phase along the time axis.

    Args:
        wrapped: Shape (n_channels, n_frames) or (n_frames,), radians

    Returns:
        Continuous phase, same shape
    """
    wrapped = np.asarray(wrapped, dtype=np.float64)
    # Each row is unwrapped on its own; no cross-channel dependency
    return np.unwrap(wrapped, axis=-1)


def wrap_phase(phase: np.ndarray) -> np.ndarray:
    """Map phase into (-pi, pi]."""
    phase = np.asarray(phase, dtype=np.float64)
    wrapped = np.angle(np.exp(1j * phase))
    # np.angle returns -pi for the negative real axis
    wrapped[wrapped <= -np.pi] += 2 * np.pi
    return wrapped


def max_phase_step(phase: np.ndarray) -> float:
    """Largest absolute adjacent-sample step across all channels."""
    phase = np.asarray(phase, dtype=np.float64)
    if phase.shape[-1] < 2:
        return 0.0
    return float(np.max(np.abs(np.diff(phase, axis=-1))))
