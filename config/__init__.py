"""Configuration management."""
import os
import yaml
from pathlib import Path

_config = None
_DEFAULT_CONFIG = Path(__file__).parent / "default_config.yaml"


def load_config(path=None):
    """Load config from YAML, merging defaults with optional overrides."""
    global _config

    with open(_DEFAULT_CONFIG) as f:
        config = yaml.safe_load(f)

    if path and Path(path).exists():
        with open(path) as f:
            overrides = yaml.safe_load(f) or {}
        config = _deep_merge(config, overrides)

    # Environment variable overrides
    env_map = {
        "CREW_ALERTS_RULES_PATH": ("rules", "path"),
        "CREW_ALERTS_REPORT_PATH": ("report", "path"),
        "CREW_ALERTS_DB_PATH": ("database", "path"),
        "CREW_ALERTS_LOG_LEVEL": ("logging", "level"),
        "CREW_ALERTS_LOG_FILE": ("logging", "file"),
        "CREW_ALERTS_ANALYZER_TIMEOUT": ("analyzer", "timeout_seconds"),
    }
    for env_key, config_path in env_map.items():
        val = os.environ.get(env_key)
        if val:
            d = config
            for k in config_path[:-1]:
                d = d.setdefault(k, {})
            try:
                d[config_path[-1]] = int(val)
            except ValueError:
                d[config_path[-1]] = val

    _validate_config(config)
    _config = config
    return config


def get_config():
    """Return cached config, loading defaults if needed."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def _deep_merge(base, override):
    """Recursively merge override into base dict."""
    result = base.copy()
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _validate_config(config):
    """Basic config validation."""
    required_sections = ["rules", "report", "database", "analyzer", "logging"]
    for section in required_sections:
        if section not in config:
            raise ValueError(f"Missing required config section: {section}")

    analyzer = config["analyzer"]
    if analyzer.get("timeout_seconds", 0) <= 0:
        raise ValueError("analyzer.timeout_seconds must be > 0")
    if analyzer.get("min_data_points", 0) < 1:
        raise ValueError("analyzer.min_data_points must be >= 1")
    if analyzer.get("weeks_in_window", 0) <= 0:
        raise ValueError("analyzer.weeks_in_window must be > 0")
