"""
Configuration for the wave-field pipeline.

Functions:
- get_preset() - Built-in single-band and stacked three-band setups
- load_config() - Read a JSON config file on top of a preset
- validate_config() - Check every option (and band bounds vs Nyquist)
- merge_config_with_options() - CLI option overrides
"""

import json
import logging
from dataclasses import asdict, dataclass, replace
from pathlib import Path
from typing import Any

import matplotlib
import numpy as np

from wavefield.errors import ConfigurationError, InvalidBandError

logger = logging.getLogger(__name__)

INTERPOLATION_METHODS = ("thin_plate", "cubic", "linear")


@dataclass(frozen=True)
class Band:
    """Butterworth pass-band in Hz."""

    low_hz: float
    high_hz: float

    @property
    def label(self) -> str:
        return f"{self.low_hz:g}-{self.high_hz:g} Hz"

    def validate(self, sample_rate: float | None = None) -> None:
        """
        Check the band bounds.

        Args:
            sample_rate: When given, bounds must also lie below Nyquist

        Raises:
            InvalidBandError: Bounds inverted or outside (0, fs/2)
        """
        low, high = float(self.low_hz), float(self.high_hz)
        if not (np.isfinite(low) and np.isfinite(high)):
            raise InvalidBandError(low, high)
        if sample_rate is None:
            if not 0 < low < high:
                raise InvalidBandError(low, high)
            return
        nyquist = float(sample_rate) / 2.0
        if not 0 < low < high < nyquist:
            raise InvalidBandError(low, high, nyquist)


@dataclass(frozen=True)
class WavefieldConfig:
    """All recognized pipeline options."""

    bands: tuple[Band, ...] = (Band(12.0, 15.0),)
    grid_resolution: tuple[int, int] = (700, 300)  # (width, height)
    smoothing_kernel_size: int = 11
    colormaps: tuple[str, ...] = ()
    display_gain: float = 1.0
    epsilon: float = float(np.finfo(float).eps)
    filter_order: int = 4
    gradient_spacing: float = 2.0
    interpolation: str = "thin_plate"
    lut_size: int = 256
    columns: int = 8
    rows: int = 4
    pitch: float = 100.0  # um between neighbouring electrodes
    marker_color: str | None = None

    @property
    def stacked(self) -> bool:
        return len(self.bands) > 1

    @property
    def channel_count(self) -> int:
        return self.columns * self.rows

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["bands"] = [[b.low_hz, b.high_hz] for b in self.bands]
        data["grid_resolution"] = list(self.grid_resolution)
        data["colormaps"] = list(self.colormaps)
        return data


PRESETS: dict[str, WavefieldConfig] = {
    "single": WavefieldConfig(),
    "stacked": WavefieldConfig(
        bands=(Band(4.0, 8.0), Band(12.0, 15.0), Band(30.0, 45.0)),
        colormaps=("Blues", "Greens", "Reds"),
        display_gain=2.0,
        marker_color="black",
    ),
}


def get_preset(name: str) -> WavefieldConfig:
    try:
        return PRESETS[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown preset '{name}'. Available: {sorted(PRESETS)}"
        ) from None


def _coerce_bands(raw: Any) -> tuple[Band, ...]:
    if not isinstance(raw, (list, tuple)):
        raise ConfigurationError("bands must be a list of [low_hz, high_hz] pairs")
    bands = []
    for item in raw:
        if isinstance(item, Band):
            bands.append(item)
            continue
        if isinstance(item, dict):
            item = (item.get("low_hz"), item.get("high_hz"))
        try:
            low, high = item
            bands.append(Band(float(low), float(high)))
        except (TypeError, ValueError):
            raise ConfigurationError(f"Malformed band entry: {item!r}") from None
    return tuple(bands)


def config_from_dict(data: dict[str, Any], base: WavefieldConfig | None = None) -> WavefieldConfig:
    """
    Build a config from a plain dictionary.

    Args:
        data: Option values; an optional "preset" key selects the base
        base: Base config when no preset key is present

    Returns:
        Validated WavefieldConfig
    """
    data = dict(data)
    preset = data.pop("preset", None)
    if preset is not None:
        base = get_preset(preset)
    elif base is None:
        base = PRESETS["single"]

    known = set(WavefieldConfig.__dataclass_fields__)
    unknown = set(data) - known
    if unknown:
        raise ConfigurationError(f"Unknown config options: {sorted(unknown)}")

    updates: dict[str, Any] = {}
    for key, value in data.items():
        if key == "bands":
            updates[key] = _coerce_bands(value)
        elif key in ("grid_resolution", "colormaps"):
            if not isinstance(value, (list, tuple)):
                raise ConfigurationError(f"{key} must be a list")
            updates[key] = tuple(value)
        else:
            updates[key] = value

    config = replace(base, **updates)
    validate_config(config)
    return config


def load_config(config_path: str | Path) -> WavefieldConfig:
    """
    Load pipeline configuration from a JSON file.

    Args:
        config_path: Path to config.json

    Returns:
        Validated WavefieldConfig

    Raises:
        ConfigurationError: If the file is missing, not JSON, or invalid
    """
    path = Path(config_path)
    try:
        with open(path, "r") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ConfigurationError(f"Config file not found: {path}") from None
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in config file: {e}") from None

    if not isinstance(data, dict):
        raise ConfigurationError("Config file must contain a JSON object")

    config = config_from_dict(data)
    logger.info(f"Loaded configuration from {path}")
    return config


def validate_config(config: WavefieldConfig, sample_rate: float | None = None) -> None:
    """
    Validate every option of a config.

    Args:
        config: Config to check
        sample_rate: When given, band bounds are checked against Nyquist

    Raises:
        ConfigurationError: On any invalid option
        InvalidBandError: On invalid band bounds
    """
    if sample_rate is not None and not (np.isfinite(sample_rate) and sample_rate > 0):
        raise ConfigurationError(f"Sample rate must be positive, got {sample_rate}")

    if len(config.bands) == 0:
        raise ConfigurationError("At least one band must be configured")
    for band in config.bands:
        band.validate(sample_rate)

    if len(config.grid_resolution) != 2 or any(
        int(n) != n or n < 2 for n in config.grid_resolution
    ):
        raise ConfigurationError(
            f"grid_resolution must be two integers >= 2, got {config.grid_resolution}"
        )

    k = config.smoothing_kernel_size
    if int(k) != k or k < 1 or k % 2 == 0:
        raise ConfigurationError(f"smoothing_kernel_size must be a positive odd integer, got {k}")

    if not (np.isfinite(config.epsilon) and config.epsilon > 0):
        raise ConfigurationError(f"epsilon must be a small positive number, got {config.epsilon}")
    if not (np.isfinite(config.gradient_spacing) and config.gradient_spacing > 0):
        raise ConfigurationError(f"gradient_spacing must be positive, got {config.gradient_spacing}")
    if not (np.isfinite(config.pitch) and config.pitch > 0):
        raise ConfigurationError(f"pitch must be positive, got {config.pitch}")
    if not np.isfinite(config.display_gain):
        raise ConfigurationError(f"display_gain must be finite, got {config.display_gain}")

    if int(config.filter_order) != config.filter_order or config.filter_order < 1:
        raise ConfigurationError(f"filter_order must be a positive integer, got {config.filter_order}")
    if int(config.columns) != config.columns or int(config.rows) != config.rows:
        raise ConfigurationError("columns and rows must be integers")
    if config.columns < 1 or config.rows < 1:
        raise ConfigurationError(f"Grid must be at least 1x1, got {config.columns}x{config.rows}")

    if config.interpolation not in INTERPOLATION_METHODS:
        raise ConfigurationError(
            f"interpolation must be one of {INTERPOLATION_METHODS}, got '{config.interpolation}'"
        )
    if int(config.lut_size) != config.lut_size or config.lut_size < 2:
        raise ConfigurationError(f"lut_size must be an integer >= 2, got {config.lut_size}")

    if config.stacked:
        if len(config.colormaps) != len(config.bands):
            raise ConfigurationError(
                f"Multi-band mode needs one colormap per band "
                f"({len(config.bands)} bands, {len(config.colormaps)} colormaps)"
            )
        for name in config.colormaps:
            if name not in matplotlib.colormaps:
                raise ConfigurationError(f"Unknown colormap '{name}'")


def merge_config_with_options(config: WavefieldConfig, **options: Any) -> WavefieldConfig:
    """
    Override config values with CLI options.

    Options left as None keep the config value.
    """
    updates = {k: v for k, v in options.items() if v is not None}
    if not updates:
        return config
    if "bands" in updates:
        updates["bands"] = _coerce_bands(updates["bands"])
    merged = replace(config, **updates)
    validate_config(merged)
    return merged


def parse_band(text: str) -> Band:
    """Parse a CLI band argument such as '12-15' or '12:15'."""
    for sep in ("-", ":", ","):
        if sep in text:
            low, _, high = text.partition(sep)
            try:
                band = Band(float(low), float(high))
            except ValueError:
                break
            band.validate()
            return band
    raise ConfigurationError(f"Cannot parse band '{text}', expected LOW-HIGH in Hz")


__all__ = [
    "Band",
    "WavefieldConfig",
    "PRESETS",
    "INTERPOLATION_METHODS",
    "get_preset",
    "config_from_dict",
    "load_config",
    "validate_config",
    "merge_config_with_options",
    "parse_band",
]
