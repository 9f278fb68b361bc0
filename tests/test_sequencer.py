import numpy as np
import pytest
from conftest import FS, in_phase_samples

from wavefield.config import Band, WavefieldConfig
from wavefield.errors import ConfigurationError, FrameRangeError, InvalidBandError
from wavefield.recording import Recording
from wavefield.sequencer import AnalyticSignalCache, WavefieldSession


def test_in_phase_recording_has_zero_velocity(in_phase_recording, small_config):
    session = WavefieldSession(in_phase_recording, small_config)

    for index in (1, 2, 37.5, 50, 100):
        result = session.compute_frame(index)
        frame = result.frames[0]
        np.testing.assert_array_equal(frame.vx, 0.0)
        np.testing.assert_array_equal(frame.vy, 0.0)
        x_rest, y_rest = session.grid.positions()
        np.testing.assert_array_equal(frame.x, x_rest)
        np.testing.assert_array_equal(frame.y, y_rest)


def test_in_phase_field_tracks_channel_amplitude(in_phase_recording, small_config):
    session = WavefieldSession(in_phase_recording, small_config)

    for index in (20, 40, 60):
        frame = session.compute_frame(index).frames[0]
        # Every channel carries the same sample; away from the border the
        # smoothed field equals it
        assert np.ptp(frame.amplitude) == pytest.approx(0.0, abs=1e-12)
        interior = frame.field[10:-10, 10:-10]
        np.testing.assert_allclose(interior, frame.amplitude[0], atol=1e-6)


def test_traveling_wave_velocity_closed_form(traveling_recording, small_config):
    omega = 2 * np.pi * 13.0
    rad_per_unit = 0.1
    session = WavefieldSession(traveling_recording, small_config)

    frame = session.compute_frame(3500).frames[0]

    np.testing.assert_allclose(frame.vx, -omega / rad_per_unit, rtol=2e-2)
    np.testing.assert_allclose(frame.vy, 0.0, atol=1e-6)
    assert np.all(np.isfinite(frame.field))


def test_same_query_is_bit_identical(traveling_recording, stacked_config):
    session = WavefieldSession(traveling_recording, stacked_config)

    a = session.compute_frame(321.5)
    b = session.compute_frame(321.5)

    assert a.t0 == b.t0
    for fa, fb in zip(a.frames, b.frames):
        assert np.array_equal(fa.field, fb.field)
        assert np.array_equal(fa.rgb, fb.rgb)
        assert np.array_equal(fa.markers(), fb.markers())


def test_stacked_mode_returns_one_frame_per_band(traveling_recording, stacked_config):
    session = WavefieldSession(traveling_recording, stacked_config)
    result = session.compute_frame(10)

    assert len(result) == 3
    assert [f.band for f in result.frames] == list(stacked_config.bands)
    for frame in result.frames:
        assert frame.field.shape == (60, 140)
        assert frame.rgb.shape == (60, 140, 3)
        assert np.all((frame.rgb >= 0.0) & (frame.rgb <= 1.0))


def test_single_band_has_no_rgb(in_phase_recording, small_config):
    frame = WavefieldSession(in_phase_recording, small_config).compute_frame(5)[0]
    assert frame.rgb is None


def test_thread_pool_matches_serial(traveling_recording, stacked_config):
    serial = WavefieldSession(traveling_recording, stacked_config)
    with WavefieldSession(traveling_recording, stacked_config, max_workers=3) as pooled:
        a = serial.compute_frame(250.25)
        b = pooled.compute_frame(250.25)
    for fa, fb in zip(a.frames, b.frames):
        assert np.array_equal(fa.field, fb.field)


def test_playback_time(in_phase_recording, small_config):
    session = WavefieldSession(in_phase_recording, small_config)
    assert session.compute_frame(1).t0 == 0.0
    assert session.compute_frame(11.5).t0 == pytest.approx(10.5 / FS)


@pytest.mark.parametrize("index", [0, 0.5, 100.5, 101])
def test_out_of_range_query_rejected(in_phase_recording, small_config, index):
    session = WavefieldSession(in_phase_recording, small_config)
    with pytest.raises(FrameRangeError):
        session.compute_frame(index)


def test_last_frame_allowed(in_phase_recording, small_config):
    session = WavefieldSession(in_phase_recording, small_config)
    result = session.compute_frame(100)
    assert result.t0 == pytest.approx(99 / FS)


def test_channel_count_must_match_grid(small_config):
    rec = Recording(sample_rate=FS, samples=np.zeros((31, 100)))
    with pytest.raises(ConfigurationError):
        WavefieldSession(rec, small_config)


def test_band_above_nyquist_rejected(in_phase_recording):
    config = WavefieldConfig(bands=(Band(400.0, 600.0),))
    with pytest.raises(InvalidBandError):
        WavefieldSession(in_phase_recording, config)


def test_analytic_signals_cached_by_band(in_phase_recording, small_config):
    cache = AnalyticSignalCache()
    first = WavefieldSession(in_phase_recording, small_config, cache=cache)
    second = WavefieldSession(in_phase_recording, small_config, cache=cache)

    assert len(cache) == 1
    assert first.signals[0] is second.signals[0]
    assert AnalyticSignalCache.key(in_phase_recording, Band(12.0, 15.0), 4, FS) in cache


def test_shared_cache_keeps_recordings_apart(small_config):
    cache = AnalyticSignalCache()
    rec_a = Recording(sample_rate=FS, samples=in_phase_samples())
    rec_b = Recording(sample_rate=FS, samples=5.0 * in_phase_samples())

    WavefieldSession(rec_a, small_config, cache=cache)
    shared = WavefieldSession(rec_b, small_config, cache=cache)
    fresh = WavefieldSession(rec_b, small_config)

    assert len(cache) == 2
    np.testing.assert_array_equal(shared.signals[0].real, fresh.signals[0].real)
    a = shared.compute_frame(40)[0]
    b = fresh.compute_frame(40)[0]
    assert np.array_equal(a.field, b.field)
    np.testing.assert_array_equal(a.amplitude, b.amplitude)


def test_shared_cache_with_different_lengths(small_config):
    cache = AnalyticSignalCache()
    short = Recording(sample_rate=FS, samples=in_phase_samples(50))
    long = Recording(sample_rate=FS, samples=in_phase_samples(100))

    WavefieldSession(short, small_config, cache=cache)
    session = WavefieldSession(long, small_config, cache=cache)

    assert session.signals[0].frame_count == 100
    assert session.compute_frame(80).index == 80.0


def test_precomputed_signals_are_read_only(in_phase_recording, small_config):
    session = WavefieldSession(in_phase_recording, small_config)
    with pytest.raises(ValueError):
        session.signals[0].phase[0, 0] = 0.0


def test_video_indices_and_scrubbing(in_phase_recording, small_config):
    session = WavefieldSession(in_phase_recording, small_config)

    assert session.video_indices() == list(range(1, 101))
    assert session.video_indices(start=10, stop=30, step=10) == [10, 20, 30]
    with pytest.raises(FrameRangeError):
        session.video_indices(stop=200)
    with pytest.raises(ConfigurationError):
        session.video_indices(step=0)

    assert session.step_index(1.0, -0.5) == 1.0
    assert session.step_index(99.75, 0.5) == 100.0
    assert session.step_index(10.0, 0.5) == 10.5


def test_iter_frames_follows_requested_order(in_phase_recording, small_config):
    session = WavefieldSession(in_phase_recording, small_config)
    indices = [50, 3.5, 77]
    assert [r.index for r in session.iter_frames(indices)] == indices


def test_recording_mutation_does_not_leak(small_config):
    samples = in_phase_samples()
    rec = Recording(sample_rate=FS, samples=samples)
    session = WavefieldSession(rec, small_config)
    before = session.compute_frame(40)[0].field.copy()
    samples[:] = 0.0
    after = session.compute_frame(40)[0].field
    assert np.array_equal(before, after)
