"""
Frame sequencing over a loaded recording.

WavefieldSession is the explicit context object: recording, electrode grid,
configuration and the per-band analytic signals, all built once and
read-only afterwards. compute_frame() is a pure function of the frame index.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterable, Iterator

import numpy as np

from wavefield.config import Band, WavefieldConfig, validate_config
from wavefield.errors import ConfigurationError
from wavefield.filters import AnalyticSignal, BandFilterBank
from wavefield.recording import ElectrodeGrid, Recording
from wavefield.sampler import FrameSampler, split_index
from wavefield.synthesis import RenderableFrame, SpatialFieldSynthesizer
from wavefield.velocity import VelocityFieldEstimator

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class FrameResult:
    """All bands for one frame query, plus its playback time."""

    index: float
    t0: float
    frames: tuple[RenderableFrame, ...]

    def __len__(self) -> int:
        return len(self.frames)

    def __getitem__(self, i: int) -> RenderableFrame:
        return self.frames[i]


class AnalyticSignalCache:
    """
    Analytic signals keyed by recording identity and (low_hz, high_hz, order, fs).

    Each entry holds a reference to its recording, so the id in the key
    cannot be reused by another recording while the entry is alive.
    """

    def __init__(self):
        self._signals: dict[tuple, tuple[Recording, AnalyticSignal]] = {}

    @staticmethod
    def key(recording: Recording, band: Band, order: int, fs: float) -> tuple:
        return (id(recording), float(band.low_hz), float(band.high_hz), int(order), float(fs))

    def __len__(self) -> int:
        return len(self._signals)

    def __contains__(self, key) -> bool:
        return key in self._signals

    def get_or_compute(
        self, bank: BandFilterBank, band_index: int, recording: Recording
    ) -> AnalyticSignal:
        band = bank.bands[band_index]
        key = self.key(recording, band, bank.order, bank.fs)
        entry = self._signals.get(key)
        if entry is not None:
            return entry[1]
        start = time.perf_counter()
        signal = bank.analytic(recording, band_index)
        self._signals[key] = (recording, signal)
        logger.info(
            f"Precomputed band {band.label}: {signal.channel_count} channels x "
            f"{signal.frame_count} frames in {time.perf_counter() - start:.2f}s"
        )
        return signal


class BandPipeline:
    """Sampler -> velocity estimator -> synthesizer for one band."""

    def __init__(
        self,
        signal: AnalyticSignal,
        fs: float,
        estimator: VelocityFieldEstimator,
        synthesizer: SpatialFieldSynthesizer,
    ):
        self.band = signal.band
        self.fs = float(fs)
        self.sampler = FrameSampler(signal, fs)
        self.estimator = estimator
        self.synthesizer = synthesizer

    def render(self, index: float) -> RenderableFrame:
        state = self.sampler.sample(index)
        velocity = self.estimator.estimate(state, dt=1.0 / self.fs)
        return self.synthesizer.synthesize(self.band, velocity, state.amplitude)


class WavefieldSession:
    """Recording + grid + bands, ready to serve frame queries."""

    def __init__(
        self,
        recording: Recording,
        config: WavefieldConfig | None = None,
        max_workers: int | None = None,
        cache: AnalyticSignalCache | None = None,
    ):
        """
        Initialize session. All per-band precomputation happens here.

        Args:
            recording: Loaded recording, channels must match the grid
            config: Pipeline configuration (defaults to single band)
            max_workers: If > 1, bands of one frame run on a thread pool
            cache: Shared analytic-signal cache (a fresh one by default)

        Raises:
            ConfigurationError: Invalid options or channel/grid mismatch
            InvalidBandError: Band bounds invalid for the sample rate
        """
        config = config or WavefieldConfig()
        validate_config(config, sample_rate=recording.sample_rate)

        self.recording = recording
        self.config = config
        self.grid = ElectrodeGrid(columns=config.columns, rows=config.rows, pitch=config.pitch)
        self.grid.validate_recording(recording)

        self.fs = recording.sample_rate
        self.filter_bank = BandFilterBank(self.fs, config.bands, order=config.filter_order)
        self.cache = cache if cache is not None else AnalyticSignalCache()
        self.signals = [
            self.cache.get_or_compute(self.filter_bank, i, recording)
            for i in range(len(self.filter_bank))
        ]

        estimator = VelocityFieldEstimator(
            self.grid, epsilon=config.epsilon, spacing=config.gradient_spacing
        )
        self.pipelines = []
        for i, signal in enumerate(self.signals):
            colormap = config.colormaps[i] if config.stacked else None
            synthesizer = SpatialFieldSynthesizer(
                self.grid,
                resolution=config.grid_resolution,
                kernel_size=config.smoothing_kernel_size,
                interpolation=config.interpolation,
                display_gain=config.display_gain,
                colormap=colormap,
                lut_size=config.lut_size,
            )
            self.pipelines.append(BandPipeline(signal, self.fs, estimator, synthesizer))

        if max_workers is not None and max_workers < 1:
            raise ConfigurationError(f"max_workers must be >= 1, got {max_workers}")
        self.max_workers = max_workers
        self._executor = (
            ThreadPoolExecutor(max_workers=max_workers)
            if max_workers and max_workers > 1 and len(self.pipelines) > 1
            else None
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def frame_count(self) -> int:
        return self.recording.frame_count

    @property
    def bands(self) -> tuple[Band, ...]:
        return self.config.bands

    @property
    def stacked(self) -> bool:
        return self.config.stacked

    # ------------------------------------------------------------------
    # Frame computation
    # ------------------------------------------------------------------

    def frame_time(self, index: float) -> float:
        """Playback time t0 = (index - 1) / fs in seconds."""
        return (float(index) - 1.0) / self.fs

    def compute_frame(self, index: float) -> FrameResult:
        """
        Compute every band for one frame query.

        Args:
            index: 1-based frame index in [1, frame_count], possibly fractional

        Returns:
            FrameResult with one RenderableFrame per band

        Raises:
            FrameRangeError: Index outside [1, frame_count]
        """
        # Reject out-of-range queries before any band work starts
        split_index(index, self.frame_count)

        if self._executor is not None:
            frames = tuple(self._executor.map(lambda p: p.render(index), self.pipelines))
        else:
            frames = tuple(p.render(index) for p in self.pipelines)
        return FrameResult(index=float(index), t0=self.frame_time(index), frames=frames)

    def iter_frames(self, indices: Iterable[float]) -> Iterator[FrameResult]:
        for index in indices:
            yield self.compute_frame(index)

    def video_indices(self, start: int = 1, stop: int | None = None, step: int = 1) -> list[int]:
        """Monotonic integer frame sequence start..stop (inclusive) for export."""
        stop = self.frame_count if stop is None else int(stop)
        if step < 1:
            raise ConfigurationError(f"Frame step must be >= 1, got {step}")
        split_index(start, self.frame_count)
        split_index(stop, self.frame_count)
        return list(range(int(start), stop + 1, int(step)))

    def step_index(self, index: float, delta: float) -> float:
        """Scrub by delta frames, clamped to [1, frame_count] for interactive drivers."""
        return float(np.clip(float(index) + float(delta), 1.0, float(self.frame_count)))

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
