"""
Error taxonomy for the wave-field pipeline.

Configuration problems are fatal at setup time; range problems are rejected
per frame request. Numeric degeneracies are never raised (see synthesis.py
and velocity.py for the fallbacks).
"""


class WavefieldError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(WavefieldError, ValueError):
    """Invalid configuration or recording/grid mismatch."""


class InvalidBandError(ConfigurationError):
    """Band bounds are inverted or fall outside (0, Nyquist)."""

    def __init__(self, low_hz: float, high_hz: float, nyquist: float | None = None):
        self.low_hz = low_hz
        self.high_hz = high_hz
        self.nyquist = nyquist
        if nyquist is None:
            msg = f"Invalid band {low_hz}-{high_hz} Hz: low must be below high"
        else:
            msg = (
                f"Invalid band {low_hz}-{high_hz} Hz: bounds must satisfy "
                f"0 < low < high < {nyquist} Hz (Nyquist)"
            )
        super().__init__(msg)


class FrameRangeError(WavefieldError, IndexError):
    """Frame query outside [1, frame_count]."""

    def __init__(self, index: float, frame_count: int):
        self.index = index
        self.frame_count = frame_count
        super().__init__(
            f"Frame index {index} outside valid range [1, {frame_count}]"
        )
