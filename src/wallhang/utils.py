"""
Shared helper functions and utilities.

Logging setup and the nested configuration dictionary consumed by every
component (each section feeds one component's configuration dataclass).
"""

import copy
import json
import logging
import os


def setup_logging(level=logging.INFO):
    """Set up logging configuration.

    Args:
        level: Logging level (default: INFO)
    """
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    logger = logging.getLogger(__name__)
    logger.info("Logging initialized")


DEFAULT_CONFIG = {
    # Video settings (frame source for the command line scanner)
    'camera_id': 0,
    'video_width': 640,
    'video_height': 480,
    'video_fps': 30,

    # Surface analysis
    'analysis': {
        'analysis_width': 480,
        'analysis_height': 360,
        'grid_rows': 3,
        'grid_cols': 3,
        'uniformity_variance_scale': 2000.0,
        'cross_cell_variance_scale': 1000.0,
        'texture_scale': 20.0,
        'strong_edge_threshold': 120.0,
        'weak_edge_threshold': 40.0,
        'sample_step': 4,
        'overexposed_level': 240.0,
        'underexposed_level': 20.0,
    },

    # Rule table thresholds ('preset': 'default', 'strict', 'lenient');
    # any other key overrides the preset value
    'classification': {
        'preset': 'default',
        'allow_floor_placement': False,
    },

    # Temporal stabilisation: confirm when confirm_count of the last
    # history_size frames are planes
    'stabilizer': {
        'history_size': 12,
        'confirm_count': 8,
    },

    # Reference-plane hit testing
    'hit_test': {
        'min_distance': 0.3,  # meters
        'max_distance': 6.0,
        'wall_depths': [1.5, 3.0, 4.5],
        'floor_height': 1.5,
        'ceiling_height': 1.2,
        'fallback_distance': 2.0,
        'surface_offset': 0.01,
        'fov_y_degrees': 60.0,
        'aspect': 4.0 / 3.0,
    },

    # Anchor edit bounds and keyboard-style steps
    'anchor': {
        'min_scale': 0.1,
        'max_scale': 5.0,
        'move_step': 0.1,
        'rotate_step_degrees': 5.0,
        'scale_step': 0.1,
        'history_limit': 50,
    },

    # Gesture sensitivity
    'gestures': {
        'drag_sensitivity_x': 0.01,  # meters per pixel
        'drag_sensitivity_y': 0.01,
        'min_pinch_distance': 10.0,
        'enable_pinch_rotation': True,
    },

    # Optional camera pose filtering
    'pose_filter': {
        'enable_smoothing': False,
        'smoothing_alpha': 0.3,
        'enable_outlier_rejection': False,
        'max_translation_jump': 0.5,
        'max_rotation_jump': 0.5,
        'history_size': 10,
    },

    # Contour plane candidates
    'contours': {
        'canny_low': 50,
        'canny_high': 150,
        'min_area': 5000.0,
        'max_area': 500000.0,
    },

    # Per-frame pass
    'session': {
        'analysis_interval': 2,
        'detect_candidates': False,
        'require_stable_placement': False,
    },

    # Display
    'display_width': 640,
    'display_height': 480,
}

SECTION_KEYS = (
    'analysis', 'classification', 'stabilizer', 'hit_test', 'anchor',
    'gestures', 'pose_filter', 'contours', 'session',
)


def get_config(config_path=None):
    """Load configuration from file or return defaults.

    Sections in the file are merged key by key over the default sections.

    Args:
        config_path: Path to configuration file (optional)

    Returns:
        dict: Configuration dictionary
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    if config_path and os.path.exists(config_path):
        try:
            with open(config_path, 'r') as f:
                loaded_config = json.load(f)
        except (OSError, ValueError) as e:
            logging.warning(f"Failed to load config from {config_path}: {e}")
            return config

        for key, value in loaded_config.items():
            if key in SECTION_KEYS and isinstance(value, dict):
                config[key].update(value)
            else:
                config[key] = value
        logging.info(f"Configuration loaded from {config_path}")
    elif config_path:
        logging.warning(f"Config file not found: {config_path}; using defaults")

    return config


def save_config(config, config_path):
    """Save configuration to file.

    Args:
        config: Configuration dictionary
        config_path: Path to save configuration file

    Returns:
        bool: True if save successful, False otherwise
    """
    try:
        with open(config_path, 'w') as f:
            json.dump(config, f, indent=4)
        logging.info(f"Configuration saved to {config_path}")
        return True
    except (OSError, TypeError) as e:
        logging.error(f"Failed to save config to {config_path}: {e}")
        return False


def validate_config(config):
    """Validate configuration parameters.

    Args:
        config: Configuration dictionary

    Returns:
        bool: True if valid, False otherwise
    """
    for key in SECTION_KEYS:
        if key not in config:
            logging.error(f"Missing required config section: {key}")
            return False

    analysis = config['analysis']
    if analysis.get('analysis_width', 0) <= 0 or analysis.get('analysis_height', 0) <= 0:
        logging.error("Analysis resolution must be positive")
        return False

    stabilizer = config['stabilizer']
    if not 1 <= stabilizer.get('confirm_count', 0) <= stabilizer.get('history_size', 0):
        logging.error("Stabilizer confirm_count must be between 1 and history_size")
        return False

    hit_test = config['hit_test']
    if not 0 < hit_test.get('min_distance', 0) < hit_test.get('max_distance', 0):
        logging.error("Hit-test distance bounds must satisfy 0 < min < max")
        return False

    anchor = config['anchor']
    if not 0 < anchor.get('min_scale', 0) <= anchor.get('max_scale', 0):
        logging.error("Anchor scale bounds must satisfy 0 < min <= max")
        return False

    if config['session'].get('analysis_interval', 0) < 1:
        logging.error("Session analysis_interval must be >= 1")
        return False

    logging.info("Configuration validated successfully")
    return True
