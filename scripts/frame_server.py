#!/usr/bin/env python3
"""
Wave-field frame server.

Loads a recording once, precomputes every band, then answers frame queries
over a WebSocket so a browser (or any other driver) can scrub freely.

Protocol (JSON):
  -> {"type": "frame", "index": 12.5}
  -> {"type": "step", "index": 12.5, "delta": 0.5}
  <- {"type": "init", "frame_count": ..., "fs": ..., "bands": [...], ...}
  <- {"type": "frame", "index": ..., "t0": ..., "bands": [{"band", "field", "markers"}]}
  <- {"type": "error", "message": "..."}

Run:
  wavefield-serve data/P6.mat --port 8768
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, List, Optional

import numpy as np
import typer
import websockets
from rich.console import Console
from rich.panel import Panel

from scripts.wavefield_viewer import build_session, print_session, setup_logging
from wavefield.errors import WavefieldError
from wavefield.sequencer import FrameResult, WavefieldSession

app = typer.Typer(help="WebSocket frame server for the wave-field pipeline")
console = Console()
logger = logging.getLogger(__name__)


def init_payload(session: WavefieldSession, field_stride: int) -> dict[str, Any]:
    synth = session.pipelines[0].synthesizer
    return {
        "type": "init",
        "frame_count": session.frame_count,
        "fs": session.fs,
        "bands": [b.label for b in session.bands],
        "grid": {
            "columns": session.grid.columns,
            "rows": session.grid.rows,
            "pitch": session.grid.pitch,
        },
        "field_shape": list(synth.XI[::field_stride, ::field_stride].shape),
    }


def frame_payload(result: FrameResult, field_stride: int, include_rgb: bool) -> dict[str, Any]:
    bands = []
    for frame in result.frames:
        entry = {
            "band": frame.band.label,
            "field": frame.field[::field_stride, ::field_stride].astype(np.float32).tolist(),
            "markers": frame.markers().astype(np.float32).tolist(),
        }
        if include_rgb and frame.rgb is not None:
            rgb = (frame.rgb[::field_stride, ::field_stride] * 255).astype(np.uint8)
            entry["rgb"] = rgb.tolist()
        bands.append(entry)
    return {"type": "frame", "index": result.index, "t0": result.t0, "bands": bands}


def handle_message(
    session: WavefieldSession,
    data: dict[str, Any],
    field_stride: int = 10,
    include_rgb: bool = False,
) -> dict[str, Any]:
    """
    Answer one decoded client message.

    Range and configuration problems become error replies; the session is
    never modified.
    """
    kind = data.get("type")
    try:
        if kind == "init":
            return init_payload(session, field_stride)
        if kind == "frame":
            index = data["index"]
        elif kind == "step":
            index = session.step_index(data["index"], data.get("delta", 0.5))
        else:
            return {"type": "error", "message": f"Unknown message type: {kind!r}"}
        result = session.compute_frame(index)
    except KeyError as e:
        return {"type": "error", "message": f"Missing field {e}"}
    except (WavefieldError, TypeError, ValueError) as e:
        return {"type": "error", "message": str(e)}
    return frame_payload(result, field_stride, include_rgb)


class FrameServer:
    def __init__(
        self,
        session: WavefieldSession,
        host: str,
        port: int,
        field_stride: int,
        include_rgb: bool,
    ):
        self.session = session
        self.host = host
        self.port = port
        self.field_stride = max(1, int(field_stride))
        self.include_rgb = include_rgb
        self.clients: set = set()

    async def ws_handler(self, ws) -> None:
        self.clients.add(ws)
        logger.info(f"Client connected. Total clients: {len(self.clients)}")
        try:
            await ws.send(json.dumps(init_payload(self.session, self.field_stride)))
            async for msg in ws:
                try:
                    data = json.loads(msg)
                except json.JSONDecodeError:
                    await ws.send(json.dumps({"type": "error", "message": "Invalid JSON"}))
                    continue
                if not isinstance(data, dict):
                    await ws.send(json.dumps({"type": "error", "message": "Expected a JSON object"}))
                    continue
                # Frame work is CPU bound; keep the event loop responsive
                reply = await asyncio.to_thread(
                    handle_message, self.session, data, self.field_stride, self.include_rgb
                )
                await ws.send(json.dumps(reply))
        except websockets.ConnectionClosed:
            pass
        finally:
            self.clients.discard(ws)
            logger.info(f"Client disconnected. Total clients: {len(self.clients)}")

    async def run(self) -> None:
        console.print()
        console.print(
            Panel.fit(
                f"Frame server on ws://{self.host}:{self.port}\n"
                f"{self.session.frame_count} frames, bands: "
                + ", ".join(b.label for b in self.session.bands),
                border_style="cyan",
            )
        )
        console.print()
        async with websockets.serve(self.ws_handler, self.host, self.port):
            await asyncio.Future()


@app.command()
def main(
    recording: Path = typer.Argument(..., help="Recording file (.mat, .parquet or .npz)"),
    host: str = typer.Option("localhost", help="Host to bind"),
    port: int = typer.Option(8768, help="WebSocket port"),
    config: Optional[Path] = typer.Option(None, "--config", help="JSON config file"),
    preset: Optional[str] = typer.Option(None, "--preset", help="single or stacked"),
    band: Optional[List[str]] = typer.Option(None, "--band", help="Band LOW-HIGH in Hz (repeatable)"),
    sample_rate: Optional[float] = typer.Option(None, "--sample-rate", help="Override sampling rate (Hz)"),
    field_stride: int = typer.Option(10, help="Downsampling stride for fields sent to clients"),
    rgb: bool = typer.Option(False, "--rgb/--no-rgb", help="Send RGB grids in multi-band mode"),
    workers: Optional[int] = typer.Option(None, "--workers", help="Thread pool size for per-band work"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Serve frame queries over a WebSocket."""
    setup_logging(verbose)
    try:
        session = build_session(
            recording,
            config_path=config,
            preset=preset,
            bands=band,
            sample_rate=sample_rate,
            workers=workers,
        )
    except WavefieldError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1)
    print_session(session)

    server = FrameServer(session, host, port, field_stride, rgb)
    try:
        asyncio.run(server.run())
    except KeyboardInterrupt:
        console.print()
        console.print("[yellow]⚠[/yellow] Shutting down...")
    finally:
        session.close()


if __name__ == "__main__":
    app()
