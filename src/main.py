"""
Pupil detector command-line application.

Loads a cascade model, opens a webcam, video file or still images and logs
(or shows) the circular objects found in every frame.

Usage:
    python src/main.py --config config/config.yaml --display
    python src/main.py --model models/pupil.b64 --image face.jpg

Arguments:
    --config: Path to configuration file
    --model: Cascade model file (overrides config)
    --source: Camera index or video path (overrides config)
    --image: One or more still images instead of the configured source
    --display: Show an annotated preview window
    --log-level: Override the configured log level
"""

import os
import sys
import argparse
import logging
import yaml
from typing import Dict, Any, List, Optional, Tuple

from detection.classifier import CascadeModel
from detection.detector import PupilDetector
from models.config import AppConfig, DetectorConfig
from models.errors import DetectionError
from observation import create_source
from ops.logging import setup_logging
from pipeline.engine import PipelineEngine, PipelineConfig

VALID_LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into base and return base."""
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            _deep_merge(base[k], v)
        else:
            base[k] = v
    return base


def _read_yaml(path: str) -> Dict[str, Any]:
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load configuration with layering:
    - `config/default.yaml` (checked in)
    - `config/config.yaml` (local overrides)
    - plus any explicitly provided `--config` path (treated as overrides)

    Raises:
        OSError, yaml.YAMLError: If a present file cannot be read or parsed.
    """
    config_dir = os.path.dirname(config_path)
    merged: Dict[str, Any] = {}

    base_path = os.path.join(config_dir, "default.yaml")
    if os.path.exists(base_path):
        merged = _read_yaml(base_path)

    local_overrides_path = os.path.join(config_dir, "config.yaml")
    if os.path.exists(local_overrides_path):
        merged = _deep_merge(merged, _read_yaml(local_overrides_path))

    # Finally apply explicit config_path if it's not one of the files above
    if os.path.exists(config_path) and os.path.abspath(config_path) not in (
        os.path.abspath(base_path),
        os.path.abspath(local_overrides_path),
    ):
        merged = _deep_merge(merged, _read_yaml(config_path))

    return merged


def validate_config(config: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate configuration file structure and values.

    Args:
        config: Configuration dictionary

    Returns:
        Tuple of (is_valid, error_message)
    """
    required_sections = ['model', 'detector', 'source', 'log_path', 'log_level']
    for section in required_sections:
        if section not in config:
            return False, f"Missing required configuration section: {section}"

    if not isinstance(config['model'], str) or not config['model']:
        return False, "model must be a non-empty path to the cascade file"

    detector = config.get('detector') or {}
    if not isinstance(detector, dict):
        return False, "detector must be a mapping of detector options"
    try:
        DetectorConfig.from_dict(detector)
    except DetectionError as e:
        return False, f"detector: {e}"

    source = config.get('source') or {}
    if 'device_id' not in source:
        return False, "Missing source.device_id"
    device_id = source['device_id']
    if isinstance(device_id, bool) or not isinstance(device_id, (int, str)):
        return False, "source.device_id must be an integer (camera index) or string (file path)"
    if isinstance(device_id, int) and device_id < 0:
        return False, "source.device_id integer must be non-negative"
    if source.get('rotate', 0) not in (0, 90, 180, 270):
        return False, "source.rotate must be one of 0, 90, 180, 270"

    pipeline = config.get('pipeline') or {}
    if 'max_consecutive_failures' in pipeline:
        mcf = pipeline['max_consecutive_failures']
        if not isinstance(mcf, int) or mcf <= 0:
            return False, "pipeline.max_consecutive_failures must be a positive integer"
    if 'stats_log_interval' in pipeline:
        sli = pipeline['stats_log_interval']
        if not isinstance(sli, (int, float)) or sli <= 0:
            return False, "pipeline.stats_log_interval must be a positive number"

    if config['log_path'] is not None and not isinstance(config['log_path'], str):
        return False, "log_path must be a string or null"
    if config['log_level'] not in VALID_LOG_LEVELS:
        return False, f"log_level must be one of: {', '.join(VALID_LOG_LEVELS)}"

    return True, None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Pupil Detector')
    parser.add_argument('--config', type=str, default='config/config.yaml',
                        help='Path to configuration file')
    parser.add_argument('--model', type=str, default=None,
                        help='Cascade model file (raw or .b64/.txt base64)')
    parser.add_argument('--source', type=str, default=None,
                        help='Camera index or video file path')
    parser.add_argument('--image', type=str, nargs='+', default=None,
                        help='Still image file(s) to process')
    parser.add_argument('--display', action='store_true',
                        help='Enable visual display')
    parser.add_argument('--log-level', type=str, default=None, choices=VALID_LOG_LEVELS,
                        help='Override the configured log level')
    return parser


def apply_cli_overrides(config: Dict[str, Any], args: argparse.Namespace) -> Dict[str, Any]:
    """Fold command-line options into the loaded config dict."""
    if args.model:
        config['model'] = args.model
    if args.source is not None:
        source = config.setdefault('source', {})
        source['device_id'] = int(args.source) if args.source.isdigit() else args.source
    if args.display:
        config.setdefault('pipeline', {})['display'] = True
    if args.log_level:
        config['log_level'] = args.log_level
    return config


def main(argv: Optional[List[str]] = None) -> int:
    """Main application function."""
    args = build_parser().parse_args(argv)

    try:
        raw_config = load_config(args.config)
    except (OSError, yaml.YAMLError) as e:
        print(f"Failed to load configuration: {e}", file=sys.stderr)
        return 1
    raw_config = apply_cli_overrides(raw_config, args)

    is_valid, error = validate_config(raw_config)
    if not is_valid:
        print(f"Configuration error: {error}", file=sys.stderr)
        return 1

    config = AppConfig.from_dict(raw_config)
    setup_logging(config.log_path, config.log_level)
    logging.info("Starting Pupil Detector")

    try:
        model = CascadeModel.from_file(config.model)
    except (OSError, DetectionError) as e:
        logging.error(f"Failed to load model {config.model}: {e}")
        return 1

    detector = PupilDetector(model, config.detector)
    logging.info(f"Detector configuration: {detector.configuration.to_dict()}")

    device = args.image if args.image else config.source.device_id
    source = create_source(
        device,
        rotate=config.source.rotate,
        flip_horizontal=config.source.flip_horizontal,
        flip_vertical=config.source.flip_vertical,
    )
    engine = PipelineEngine(
        source,
        detector,
        PipelineConfig(
            max_consecutive_failures=config.pipeline.max_consecutive_failures,
            stats_log_interval=config.pipeline.stats_log_interval,
            display=config.pipeline.display,
        ),
    )

    try:
        engine.run()
    except Exception as e:
        logging.error(f"Detection stopped: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
