"""
Configuration management for the face-finding system.

Provides a layered configuration system with the following precedence
(highest to lowest):

    CLI arguments > Environment variables > YAML config file > Defaults

Design constraints:
    - The system MUST run with zero configuration (safe defaults only).
    - Missing or invalid values fail early and loudly.
    - Configuration objects are frozen; a run never mutates them.
    - No detection logic, I/O, or model loading belongs here.

Non-goals:
    - No dynamic reloading.
    - No database-backed or remote configuration.
"""

import dataclasses
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

import yaml

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Project root resolution
# ---------------------------------------------------------------------------
# Resolved relative to this file's location: anonsnap/config.py → project root
_PROJECT_ROOT = Path(__file__).resolve().parent.parent


def get_project_root() -> Path:
    """Return the resolved project root directory."""
    return _PROJECT_ROOT


# ---------------------------------------------------------------------------
# Configuration dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ModelConfig:
    """Accurate detector (ResNet-10 SSD via OpenCV DNN) configuration.

    Attributes:
        prototxt_path: Path to the .prototxt network definition (relative to project root).
        weights_path: Path to the .caffemodel weights file (relative to project root).
        input_size: Spatial dimensions (width, height) for the DNN input blob.
        mean_values: Per-channel mean subtraction values (BGR order).
        scale_factor: Pixel value scale factor applied during blob creation.
        confidence_threshold: Minimum confidence for a raw detection.
    """

    prototxt_path: str = "models/deploy.prototxt"
    weights_path: str = "models/res10_300x300_ssd_iter_140000.caffemodel"
    input_size: Tuple[int, int] = (300, 300)
    mean_values: Tuple[float, float, float] = (104.0, 177.0, 123.0)
    scale_factor: float = 1.0
    confidence_threshold: float = 0.5


@dataclass(frozen=True)
class CascadeConfig:
    """Fast detector (Haar cascade) configuration.

    Attributes:
        cascade_file: Cascade XML. Bare file names are looked up in the
                      cascades bundled with OpenCV.
        scale_factor: Image pyramid step for detectMultiScale.
        min_neighbors: Neighbour votes required to keep a window.
    """

    cascade_file: str = "haarcascade_frontalface_default.xml"
    scale_factor: float = 1.1
    min_neighbors: int = 5


@dataclass(frozen=True)
class DetectionConfig:
    """Tunable knobs of the candidate/suppression pipeline.

    Passed explicitly into every run. Use ``dataclasses.replace`` (or
    :meth:`aggressive`) to derive a variant; never mutate.

    Attributes:
        nms_iou: IoU above which a candidate is rejected outright (step A).
        nms_containment: Intersection / smaller-area ratio marking a duplicate.
        nms_center_dist_frac: Centre distance, as a fraction of the mean
            larger side, under which two boxes may be duplicates.
        nms_size_diff_frac: Maximum relative width/height difference for
            the centre-distance duplicate test.
        cluster_iou: Looser IoU for the clustering merge (step B).
        cluster_center_frac: Centre distance fraction for clustering.
        cluster_size_frac: Size similarity fraction for clustering.
        min_box_size: Minimum width and height of any candidate, in
            original pixels.
        box_expansion: Outward expansion per side, as a fraction of the
            box dimension.
        clamp_to_image: Clamp expanded boxes to the far image edges as
            well as to the origin.
        target_face_count: Below this many candidates the augmentation
            passes run.
        fallback_min_faces: Below this many candidates the accurate
            detector is re-run.
        cpu_retry_floor: Below this many candidates a CPU-backend retry
            is attempted when an accelerated backend is active.
        enable_tiling: Allow the tiled pass (capabilities may still veto it).
        tile_size: Side of square tiles, in working-image pixels.
        tile_overlap: Fractional overlap between neighbouring tiles.
        contrast_upscale: Upscale factor of the contrast pass.
        contrast_factor: Linear contrast stretch of the contrast pass.
        rotation_scale: Super-scale factor of the rotation passes.
        rotation_angles: Angles (degrees) of the rotation passes.
        max_detect_dim: Overrides the capability's maximum detection
            dimension when set.
    """

    nms_iou: float = 0.55
    nms_containment: float = 0.85
    nms_center_dist_frac: float = 0.12
    nms_size_diff_frac: float = 0.18
    cluster_iou: float = 0.4
    cluster_center_frac: float = 0.18
    cluster_size_frac: float = 0.28
    min_box_size: float = 8.0
    box_expansion: float = 0.05
    clamp_to_image: bool = True
    target_face_count: int = 14
    fallback_min_faces: int = 8
    cpu_retry_floor: int = 3
    enable_tiling: bool = True
    tile_size: int = 800
    tile_overlap: float = 0.2
    contrast_upscale: float = 1.4
    contrast_factor: float = 1.25
    rotation_scale: float = 2.0
    rotation_angles: Tuple[float, ...] = (-6.0, -3.0, 3.0, 6.0)
    max_detect_dim: Optional[int] = None

    def aggressive(self) -> "DetectionConfig":
        """Return the relaxed variant used when hunting for missed faces."""
        return dataclasses.replace(
            self,
            min_box_size=4.0,
            box_expansion=0.14,
            target_face_count=20,
        )


DEFAULT_DETECTION_CONFIG = DetectionConfig()


@dataclass(frozen=True)
class DeviceConfig:
    """Device profile and inference backend.

    Attributes:
        profile: 'auto', 'standard' or 'constrained'. 'auto' inspects
                 physical memory once at startup.
        backend: Inference backend — 'cpu', 'opencl' or 'cuda'.
    """

    profile: str = "auto"
    backend: str = "cpu"


@dataclass(frozen=True)
class InputConfig:
    """Input source configuration.

    Attributes:
        source: Image file path or directory of images.
    """

    source: str = "images/"


@dataclass(frozen=True)
class OutputConfig:
    """Output behavior configuration.

    Attributes:
        mode: Output mode(s). Supports multiple comma-separated values:
              'display', 'save_image', 'save_json', 'save_csv'.
              Example: "save_image,save_json"
        save_path: Directory where output artifacts are written.
    """

    mode: str = "save_json"
    save_path: str = "output/"


@dataclass(frozen=True)
class VisualizationConfig:
    """Visualization rendering parameters.

    Attributes:
        box_color: BGR color tuple for face boxes.
        thickness: Line thickness in pixels.
        show_index: Whether to number the boxes.
    """

    box_color: Tuple[int, int, int] = (0, 255, 0)
    thickness: int = 2
    show_index: bool = True


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration.

    Aggregates all sub-configurations into a single, frozen object.
    """

    model: ModelConfig = field(default_factory=ModelConfig)
    cascade: CascadeConfig = field(default_factory=CascadeConfig)
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    device: DeviceConfig = field(default_factory=DeviceConfig)
    input: InputConfig = field(default_factory=InputConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    visualization: VisualizationConfig = field(default_factory=VisualizationConfig)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

_VALID_BACKENDS = {"cpu", "opencl", "cuda"}
_VALID_PROFILES = {"auto", "standard", "constrained"}
_VALID_OUTPUT_MODES = {"display", "save_image", "save_json", "save_csv"}

_UNIT_INTERVAL_FIELDS = (
    "nms_iou",
    "nms_containment",
    "cluster_iou",
)


def validate_detection(config: DetectionConfig) -> None:
    """Validate detection knobs. Raises ValueError on invalid state."""

    for name in _UNIT_INTERVAL_FIELDS:
        value = getattr(config, name)
        if not (0.0 <= value <= 1.0):
            raise ValueError(
                f"detection.{name} must be in [0.0, 1.0], got {value}."
            )

    if not (0.0 <= config.tile_overlap < 1.0):
        raise ValueError(
            f"detection.tile_overlap must be in [0.0, 1.0), "
            f"got {config.tile_overlap}."
        )

    for name in ("nms_center_dist_frac", "nms_size_diff_frac",
                 "cluster_center_frac", "cluster_size_frac", "box_expansion"):
        value = getattr(config, name)
        if value < 0:
            raise ValueError(f"detection.{name} must be non-negative, got {value}.")

    if config.min_box_size <= 0:
        raise ValueError(
            f"detection.min_box_size must be positive, got {config.min_box_size}."
        )

    if config.tile_size <= 0:
        raise ValueError(
            f"detection.tile_size must be positive, got {config.tile_size}."
        )

    for name in ("contrast_upscale", "contrast_factor", "rotation_scale"):
        value = getattr(config, name)
        if value <= 0:
            raise ValueError(f"detection.{name} must be positive, got {value}.")

    if config.max_detect_dim is not None and config.max_detect_dim <= 0:
        raise ValueError(
            f"detection.max_detect_dim must be positive or None, "
            f"got {config.max_detect_dim}."
        )


def _validate(config: AppConfig) -> None:
    """Validate configuration values. Raises ValueError on invalid state."""

    if config.device.backend not in _VALID_BACKENDS:
        raise ValueError(
            f"Invalid device.backend: '{config.device.backend}'. "
            f"Must be one of {_VALID_BACKENDS}."
        )

    if config.device.profile not in _VALID_PROFILES:
        raise ValueError(
            f"Invalid device.profile: '{config.device.profile}'. "
            f"Must be one of {_VALID_PROFILES}."
        )

    # Validate each mode in comma-separated list
    modes = set(m.strip() for m in config.output.mode.split(','))
    invalid_modes = modes - _VALID_OUTPUT_MODES
    if invalid_modes:
        raise ValueError(
            f"Invalid output.mode(s): {invalid_modes}. "
            f"Valid modes: {_VALID_OUTPUT_MODES}. "
            f"Use comma-separated values for multiple outputs."
        )

    if not (0.0 <= config.model.confidence_threshold <= 1.0):
        raise ValueError(
            f"model.confidence_threshold must be in [0.0, 1.0], "
            f"got {config.model.confidence_threshold}."
        )

    if len(config.model.input_size) != 2 or any(d <= 0 for d in config.model.input_size):
        raise ValueError(
            f"model.input_size must be a positive (width, height) tuple, "
            f"got {config.model.input_size}."
        )

    if config.model.scale_factor <= 0:
        raise ValueError(
            f"model.scale_factor must be positive, "
            f"got {config.model.scale_factor}."
        )

    if config.cascade.scale_factor <= 1.0:
        raise ValueError(
            f"cascade.scale_factor must be greater than 1.0, "
            f"got {config.cascade.scale_factor}."
        )

    if config.cascade.min_neighbors < 0:
        raise ValueError(
            f"cascade.min_neighbors must be non-negative, "
            f"got {config.cascade.min_neighbors}."
        )

    validate_detection(config.detection)


# ---------------------------------------------------------------------------
# YAML loading
# ---------------------------------------------------------------------------

def _parse_tuple(value, expected_len: Optional[int], cast_type=float):
    """Convert a list from YAML into a tuple of the expected type and length."""
    if isinstance(value, str):
        value = [v for v in value.split(",") if v.strip()]
    if isinstance(value, (list, tuple)):
        if expected_len is not None and len(value) != expected_len:
            raise ValueError(
                f"Expected {expected_len} values, got {len(value)}: {value}"
            )
        return tuple(cast_type(v) for v in value)
    return value


def _parse_bool(value) -> bool:
    """Accept YAML booleans and the usual environment spellings."""
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _build_section(cls, raw: dict, casts: dict):
    """Build a frozen section dataclass from the keys present in ``raw``."""
    unknown = set(raw) - set(casts)
    if unknown:
        logger.warning("Ignoring unknown %s keys: %s", cls.__name__, sorted(unknown))
    kwargs = {key: cast(raw[key]) for key, cast in casts.items() if key in raw}
    return cls(**kwargs)


def _optional_int(value) -> Optional[int]:
    return int(value) if value is not None else None


_MODEL_CASTS = {
    "prototxt_path": str,
    "weights_path": str,
    "input_size": lambda v: _parse_tuple(v, 2, int),
    "mean_values": lambda v: _parse_tuple(v, 3, float),
    "scale_factor": float,
    "confidence_threshold": float,
}

_CASCADE_CASTS = {
    "cascade_file": str,
    "scale_factor": float,
    "min_neighbors": int,
}

_DETECTION_CASTS = {
    "nms_iou": float,
    "nms_containment": float,
    "nms_center_dist_frac": float,
    "nms_size_diff_frac": float,
    "cluster_iou": float,
    "cluster_center_frac": float,
    "cluster_size_frac": float,
    "min_box_size": float,
    "box_expansion": float,
    "clamp_to_image": _parse_bool,
    "target_face_count": int,
    "fallback_min_faces": int,
    "cpu_retry_floor": int,
    "enable_tiling": _parse_bool,
    "tile_size": int,
    "tile_overlap": float,
    "contrast_upscale": float,
    "contrast_factor": float,
    "rotation_scale": float,
    "rotation_angles": lambda v: _parse_tuple(v, None, float),
    "max_detect_dim": _optional_int,
}

_DEVICE_CASTS = {
    "profile": lambda v: str(v).lower(),
    "backend": lambda v: str(v).lower(),
}

_INPUT_CASTS = {
    "source": str,
}

_OUTPUT_CASTS = {
    "mode": lambda v: str(v).lower(),
    "save_path": str,
}

_VISUALIZATION_CASTS = {
    "box_color": lambda v: _parse_tuple(v, 3, int),
    "thickness": int,
    "show_index": _parse_bool,
}


# ---------------------------------------------------------------------------
# Environment variable overrides
# ---------------------------------------------------------------------------

_ENV_PREFIX = "ANONSNAP_"

_ENV_SECTIONS = {
    "model": _MODEL_CASTS,
    "cascade": _CASCADE_CASTS,
    "detection": _DETECTION_CASTS,
    "device": _DEVICE_CASTS,
    "input": _INPUT_CASTS,
    "output": _OUTPUT_CASTS,
}


def _apply_env_overrides(raw: dict) -> dict:
    """Apply environment variable overrides to the raw config dict.

    Environment variables follow the pattern:
        ANONSNAP_DEVICE_BACKEND=opencl
        ANONSNAP_DETECTION_MIN_BOX_SIZE=4

    The variable name is the prefix, the section name and the key,
    upper-cased and joined by underscores.
    """
    for section, casts in _ENV_SECTIONS.items():
        for key in casts:
            env_var = f"{_ENV_PREFIX}{section.upper()}_{key.upper()}"
            value = os.environ.get(env_var)
            if value is not None:
                raw[section] = raw.get(section) or {}
                raw[section][key] = value
                logger.debug("Config override from env: %s=%s", env_var, value)

    return raw


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------

def load_config(config_path: Optional[str] = None) -> AppConfig:
    """Load and validate application configuration.

    Precedence (highest → lowest):
        Environment variables > YAML file > Hard-coded defaults

    Args:
        config_path: Path to a YAML configuration file. If None,
                     the system runs entirely on defaults (safe for
                     programmatic usage).

    Returns:
        A validated, frozen AppConfig instance.

    Raises:
        FileNotFoundError: If config_path is provided but does not exist.
        ValueError: If any configuration value is invalid.
        yaml.YAMLError: If the YAML file is malformed.
    """
    raw: dict = {}

    # --- Layer 1: YAML file ---
    if config_path is not None:
        resolved = Path(config_path)
        if not resolved.is_absolute():
            resolved = _PROJECT_ROOT / resolved

        if not resolved.is_file():
            raise FileNotFoundError(
                f"Configuration file not found: {resolved}. "
                f"Provide a valid path or omit to use defaults."
            )

        logger.info("Loading config from: %s", resolved)
        with open(resolved, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

    # --- Layer 2: Environment variable overrides ---
    raw = _apply_env_overrides(raw)

    # --- Build typed configs ---
    config = AppConfig(
        model=_build_section(ModelConfig, raw.get("model") or {}, _MODEL_CASTS),
        cascade=_build_section(CascadeConfig, raw.get("cascade") or {}, _CASCADE_CASTS),
        detection=_build_section(DetectionConfig, raw.get("detection") or {}, _DETECTION_CASTS),
        device=_build_section(DeviceConfig, raw.get("device") or {}, _DEVICE_CASTS),
        input=_build_section(InputConfig, raw.get("input") or {}, _INPUT_CASTS),
        output=_build_section(OutputConfig, raw.get("output") or {}, _OUTPUT_CASTS),
        visualization=_build_section(
            VisualizationConfig, raw.get("visualization") or {}, _VISUALIZATION_CASTS
        ),
    )

    # --- Validate ---
    _validate(config)

    logger.debug("Configuration loaded: %s", config)
    return config
