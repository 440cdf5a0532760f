"""Configuration management."""
import os
import yaml
from pathlib import Path

from models.enums import AssetClass

_DEFAULT_CONFIG = Path(__file__).parent / "default_config.yaml"


def load_config(path=None):
    """Load config from YAML, merging defaults with optional overrides."""
    with open(_DEFAULT_CONFIG) as f:
        config = yaml.safe_load(f)

    if path and Path(path).exists():
        with open(path) as f:
            overrides = yaml.safe_load(f) or {}
        config = _deep_merge(config, overrides)

    # Environment variable overrides
    env_map = {
        "GUARDIAN_DB_PATH": ("database", "path"),
        "GUARDIAN_CHECK_INTERVAL": ("monitor", "check_interval"),
        "GUARDIAN_LOG_LEVEL": ("logging", "level"),
        "GUARDIAN_TELEGRAM_BOT_TOKEN": ("notifications", "telegram", "bot_token"),
        "GUARDIAN_TELEGRAM_CHAT_ID": ("notifications", "telegram", "chat_id"),
        "GUARDIAN_EXPO_ACCESS_TOKEN": ("notifications", "expo", "access_token"),
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
    return config


def _deep_merge(base, override):
    """Recursively merge override into base dict. Lists are replaced, not merged."""
    result = base.copy()
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _validate_config(config):
    """Reject configs the pipeline cannot run with."""
    required_sections = ["assets", "ladders", "alerts", "levels", "monitor", "database"]
    for section in required_sections:
        if section not in config:
            raise ValueError(f"Missing required config section: {section}")

    if config["monitor"]["check_interval"] < 60:
        raise ValueError("check_interval must be >= 60 seconds")
    if config["monitor"].get("inter_asset_delay", 0) < 0:
        raise ValueError("inter_asset_delay must not be negative")
    if config["alerts"].get("default_threshold_pct", 15) <= 0:
        raise ValueError("default_threshold_pct must be positive")
    if config["alerts"].get("variation_threshold_pct", 1.0) <= 0:
        raise ValueError("variation_threshold_pct must be positive")

    symbols = set()
    valid_classes = {c.value for c in AssetClass}
    for asset in config["assets"] or []:
        symbol = str(asset.get("symbol", "")).upper()
        if not symbol:
            raise ValueError(f"Asset without symbol: {asset}")
        if symbol in symbols:
            raise ValueError(f"Duplicate asset symbol: {symbol}")
        symbols.add(symbol)
        if str(asset.get("class", "ETF")).upper() not in valid_classes:
            raise ValueError(f"Unknown asset class for {symbol}: {asset.get('class')}")

    for class_name, steps in (config["ladders"] or {}).items():
        if str(class_name).upper() not in valid_classes:
            raise ValueError(f"Ladder for unknown asset class: {class_name}")
        levels = [float(s["level"]) for s in steps or []]
        if any(lv >= 0 for lv in levels):
            raise ValueError(f"{class_name} ladder levels must be negative")
        if levels != sorted(set(levels), reverse=True):
            raise ValueError(f"{class_name} ladder levels must be strictly decreasing")
