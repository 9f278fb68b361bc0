#!/usr/bin/env python3
"""
Wave-field viewer: interactive scrubbing, PNG snapshots and video export.

Draws the reconstructed field of each band as a 3-D surface with the
advected electrodes as labelled markers.

Usage:
    # Interactive window (slider + left/right arrow keys, half-frame steps)
    wavefield view data/P6.mat

    # Stacked three-band mode, snapshot at frame 250
    wavefield snapshot data/P6.mat --preset stacked --frame 250 --output p6.png

    # Video export of frames 1..500
    wavefield export data/P6.mat --stop 500 --output p6.mp4 --fps 30
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import matplotlib.pyplot as plt
import numpy as np
import typer
from matplotlib.animation import FFMpegWriter, FuncAnimation, PillowWriter
from matplotlib.widgets import Slider
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from wavefield.config import (
    WavefieldConfig,
    get_preset,
    load_config,
    merge_config_with_options,
    parse_band,
)
from wavefield.errors import WavefieldError
from wavefield.recording import load_recording
from wavefield.sequencer import FrameResult, WavefieldSession

app = typer.Typer(help="Phase-gradient wave-field viewer for electrode grids")
console = Console()
logger = logging.getLogger(__name__)

LABEL_OFFSET = (10.0, 0.0, 5.0)
SCRUB_STEP = 0.5


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )


def build_session(
    recording_path: Path,
    config_path: Path | None = None,
    preset: str | None = None,
    bands: list[str] | None = None,
    sample_rate: float | None = None,
    resolution: tuple[int, int] | None = None,
    interpolation: str | None = None,
    workers: int | None = None,
) -> WavefieldSession:
    """Load recording + config and precompute every band."""
    if config_path is not None:
        config = load_config(config_path)
    elif preset is not None:
        config = get_preset(preset)
    else:
        config = WavefieldConfig()

    parsed = [parse_band(b) for b in bands] if bands else None
    colormaps = None
    if parsed and len(parsed) > 1 and len(config.colormaps) != len(parsed):
        # Reuse the stacked preset colours for custom band lists
        stock = get_preset("stacked").colormaps
        colormaps = tuple(stock[i % len(stock)] for i in range(len(parsed)))
    config = merge_config_with_options(
        config,
        bands=parsed,
        colormaps=colormaps,
        grid_resolution=tuple(resolution) if resolution else None,
        interpolation=interpolation,
    )

    recording = load_recording(recording_path, sample_rate=sample_rate)
    return WavefieldSession(recording, config, max_workers=workers)


def print_session(session: WavefieldSession) -> None:
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_row("[dim]Channels[/dim]", f"{session.recording.channel_count}")
    table.add_row("[dim]Frames[/dim]", f"{session.frame_count} @ {session.fs:g} Hz")
    table.add_row(
        "[dim]Grid[/dim]",
        f"{session.grid.columns}x{session.grid.rows}, pitch {session.grid.pitch:g}",
    )
    table.add_row("[dim]Bands[/dim]", ", ".join(b.label for b in session.bands))
    table.add_row(
        "[dim]Field[/dim]",
        f"{session.config.grid_resolution[0]}x{session.config.grid_resolution[1]} "
        f"({session.config.interpolation})",
    )
    console.print(Panel(table, title="[bold cyan]Wave-field session[/bold cyan]", border_style="cyan"))


class FrameRenderer:
    """Matplotlib 3-D surface + marker rendering of FrameResults."""

    def __init__(
        self,
        session: WavefieldSession,
        zlim: float | None = None,
        band_offset: float | None = None,
        surface_stride: int = 5,
        show_labels: bool = True,
    ):
        self.session = session
        self.surface_stride = max(1, int(surface_stride))
        self.show_labels = show_labels

        gain = session.config.display_gain
        peak = max(float(np.max(np.abs(s.real))) for s in session.signals) * abs(gain)
        self.zlim = float(zlim) if zlim else max(peak, 1e-12)
        n_bands = len(session.bands)
        self.band_offset = (
            float(band_offset) if band_offset is not None else 2.0 * self.zlim
        )
        self.offsets = [i * self.band_offset for i in range(n_bands)]

        x_min, x_max, y_min, y_max = session.grid.extent()
        self.fig = plt.figure(figsize=(12, 6), facecolor="white")
        self.ax = self.fig.add_subplot(111, projection="3d")
        self.ax.set_xlim(x_min, x_max)
        self.ax.set_ylim(y_min, y_max)
        self.ax.set_zlim(-self.zlim, self.offsets[-1] + self.zlim)
        self.ax.view_init(elev=30, azim=45)
        aspect_x = max(x_max - x_min, 1.0)
        aspect_y = max(y_max - y_min, 1.0)
        self.ax.set_box_aspect((aspect_x / aspect_y * 3.0, 3.0, 3.0))

        self._artists: list = []

    def _clear(self) -> None:
        for artist in self._artists:
            artist.remove()
        self._artists = []

    def draw(self, result: FrameResult) -> None:
        self._clear()
        synth = self.session.pipelines[0].synthesizer
        XI, YI = synth.XI, synth.YI
        marker_color = self.session.config.marker_color

        for frame, offset in zip(result.frames, self.offsets):
            z = frame.field + offset
            kwargs = dict(
                rstride=self.surface_stride,
                cstride=self.surface_stride,
                linewidth=0,
                antialiased=False,
                alpha=0.8,
            )
            if frame.rgb is not None:
                surf = self.ax.plot_surface(XI, YI, z, facecolors=frame.rgb, shade=False, **kwargs)
            else:
                surf = self.ax.plot_surface(
                    XI, YI, z, cmap="viridis", vmin=-self.zlim, vmax=self.zlim, **kwargs
                )
            self._artists.append(surf)

            zm = frame.amplitude * self.session.config.display_gain + offset
            if marker_color is not None:
                scatter = self.ax.scatter(frame.x, frame.y, zm, s=75, c=marker_color, depthshade=False)
            else:
                scatter = self.ax.scatter(
                    frame.x, frame.y, zm, s=75, c=frame.amplitude, cmap="viridis", depthshade=False
                )
            self._artists.append(scatter)

            if self.show_labels:
                lx, ly, lz = LABEL_OFFSET
                for ch in range(len(frame.x)):
                    label = self.ax.text(
                        frame.x[ch] + lx,
                        frame.y[ch] + ly,
                        zm[ch] + lz,
                        str(ch + 1),
                        fontsize=8,
                        fontweight="bold",
                        ha="left",
                        va="center",
                    )
                    self._artists.append(label)

        bands = ", ".join(f.band.label for f in result.frames)
        self.ax.set_title(f"Real part {bands}, t = {result.t0:.3f} s")

    def render(self, index: float) -> FrameResult:
        result = self.session.compute_frame(index)
        self.draw(result)
        return result


def _common_session(
    recording: Path,
    config: Optional[Path],
    preset: Optional[str],
    band: Optional[List[str]],
    sample_rate: Optional[float],
    width: Optional[int],
    height: Optional[int],
    interpolation: Optional[str],
    workers: Optional[int],
    verbose: bool,
) -> WavefieldSession:
    setup_logging(verbose)
    resolution = None
    if width is not None or height is not None:
        default_w, default_h = WavefieldConfig().grid_resolution
        resolution = (width or default_w, height or default_h)
    try:
        session = build_session(
            recording,
            config_path=config,
            preset=preset,
            bands=band,
            sample_rate=sample_rate,
            resolution=resolution,
            interpolation=interpolation,
            workers=workers,
        )
    except WavefieldError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)
    print_session(session)
    return session


RECORDING_ARG = typer.Argument(..., help="Recording file (.mat, .parquet or .npz)")
CONFIG_OPT = typer.Option(None, "--config", help="JSON config file")
PRESET_OPT = typer.Option(None, "--preset", help="Built-in preset: single or stacked")
BAND_OPT = typer.Option(None, "--band", help="Band LOW-HIGH in Hz (repeatable)")
FS_OPT = typer.Option(None, "--sample-rate", help="Override sampling rate (Hz)")
WIDTH_OPT = typer.Option(None, "--width", help="Field grid width (samples)")
HEIGHT_OPT = typer.Option(None, "--height", help="Field grid height (samples)")
INTERP_OPT = typer.Option(None, "--interpolation", help="thin_plate, cubic or linear")
WORKERS_OPT = typer.Option(None, "--workers", help="Thread pool size for per-band work")
VERBOSE_OPT = typer.Option(False, "--verbose", "-v", help="Debug logging")


@app.command()
def view(
    recording: Path = RECORDING_ARG,
    config: Optional[Path] = CONFIG_OPT,
    preset: Optional[str] = PRESET_OPT,
    band: Optional[List[str]] = BAND_OPT,
    sample_rate: Optional[float] = FS_OPT,
    width: Optional[int] = WIDTH_OPT,
    height: Optional[int] = HEIGHT_OPT,
    interpolation: Optional[str] = INTERP_OPT,
    workers: Optional[int] = WORKERS_OPT,
    zlim: Optional[float] = typer.Option(None, help="Half-height of the z axis"),
    labels: bool = typer.Option(True, "--labels/--no-labels", help="Channel number labels"),
    verbose: bool = VERBOSE_OPT,
) -> None:
    """Interactive window: slider and arrow keys scrub in half-frame steps."""
    session = _common_session(
        recording, config, preset, band, sample_rate, width, height, interpolation, workers, verbose
    )
    try:
        renderer = FrameRenderer(session, zlim=zlim, show_labels=labels)
        fig = renderer.fig
        fig.subplots_adjust(bottom=0.15)

        n = session.frame_count
        ax_slider = fig.add_axes([0.15, 0.04, 0.7, 0.03])
        slider = Slider(ax_slider, "Frame", 1, n, valinit=1, valstep=SCRUB_STEP)
        time_text = fig.text(0.88, 0.04, "t = 0.000 s")

        def update(val: float) -> None:
            result = renderer.render(float(val))
            time_text.set_text(f"t = {result.t0:.3f} s")
            fig.canvas.draw_idle()

        def on_key(event) -> None:
            if event.key == "right":
                slider.set_val(session.step_index(slider.val, SCRUB_STEP))
            elif event.key == "left":
                slider.set_val(session.step_index(slider.val, -SCRUB_STEP))

        slider.on_changed(update)
        fig.canvas.mpl_connect("key_press_event", on_key)
        update(1.0)
        plt.show()
    finally:
        session.close()


@app.command()
def snapshot(
    recording: Path = RECORDING_ARG,
    frame: float = typer.Option(1.0, "--frame", help="1-based frame index (fractional ok)"),
    output: Path = typer.Option(Path("wavefield.png"), "--output", "-o", help="PNG path"),
    config: Optional[Path] = CONFIG_OPT,
    preset: Optional[str] = PRESET_OPT,
    band: Optional[List[str]] = BAND_OPT,
    sample_rate: Optional[float] = FS_OPT,
    width: Optional[int] = WIDTH_OPT,
    height: Optional[int] = HEIGHT_OPT,
    interpolation: Optional[str] = INTERP_OPT,
    workers: Optional[int] = WORKERS_OPT,
    zlim: Optional[float] = typer.Option(None, help="Half-height of the z axis"),
    labels: bool = typer.Option(True, "--labels/--no-labels", help="Channel number labels"),
    verbose: bool = VERBOSE_OPT,
) -> None:
    """Render a single frame to an image file."""
    session = _common_session(
        recording, config, preset, band, sample_rate, width, height, interpolation, workers, verbose
    )
    renderer = FrameRenderer(session, zlim=zlim, show_labels=labels)
    try:
        result = renderer.render(frame)
    except WavefieldError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)
    finally:
        session.close()

    output.parent.mkdir(parents=True, exist_ok=True)
    renderer.fig.savefig(output, dpi=120)
    plt.close(renderer.fig)
    console.print(f"[green]✓ Saved frame {frame:g} (t = {result.t0:.3f} s) to[/green] {output}")


@app.command()
def export(
    recording: Path = RECORDING_ARG,
    output: Path = typer.Option(Path("wavefield.mp4"), "--output", "-o", help=".mp4 or .gif"),
    start: int = typer.Option(1, help="First frame (1-based)"),
    stop: Optional[int] = typer.Option(None, help="Last frame (default: end)"),
    step: int = typer.Option(1, help="Frame step"),
    fps: int = typer.Option(30, help="Output frames per second"),
    config: Optional[Path] = CONFIG_OPT,
    preset: Optional[str] = PRESET_OPT,
    band: Optional[List[str]] = BAND_OPT,
    sample_rate: Optional[float] = FS_OPT,
    width: Optional[int] = WIDTH_OPT,
    height: Optional[int] = HEIGHT_OPT,
    interpolation: Optional[str] = INTERP_OPT,
    workers: Optional[int] = WORKERS_OPT,
    zlim: Optional[float] = typer.Option(None, help="Half-height of the z axis"),
    labels: bool = typer.Option(False, "--labels/--no-labels", help="Channel number labels"),
    verbose: bool = VERBOSE_OPT,
) -> None:
    """Export a monotonic frame sequence as video."""
    session = _common_session(
        recording, config, preset, band, sample_rate, width, height, interpolation, workers, verbose
    )
    try:
        try:
            indices = session.video_indices(start=start, stop=stop, step=step)
        except WavefieldError as e:
            console.print(f"[red]✗ {e}[/red]")
            raise typer.Exit(code=1)

        renderer = FrameRenderer(session, zlim=zlim, show_labels=labels)
        total = len(indices)

        def update(i: int):
            renderer.render(indices[i])
            if (i + 1) % 100 == 0 or i + 1 == total:
                logger.info(f"Rendered {i + 1}/{total} frames")
            return []

        anim = FuncAnimation(renderer.fig, update, frames=total, interval=1000 / fps, blit=False)

        output.parent.mkdir(parents=True, exist_ok=True)
        if str(output).endswith(".gif"):
            writer = PillowWriter(fps=fps)
        else:
            writer = FFMpegWriter(fps=fps)

        logger.info(f"Saving {total} frames to {output}...")
        anim.save(str(output), writer=writer)
        plt.close(renderer.fig)
    finally:
        session.close()
    console.print(f"[green]✓ Video saved[/green] {output}")


if __name__ == "__main__":
    app()
