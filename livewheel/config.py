import logging
import os

from .storage import load_json_file

DEFAULT_CONFIG = {
    "spin_duration_seconds": 6,
    "spin_rotations": 10,
    "history_size": 5,
    "fallback_color": "#cccccc",
    "webhook_secret": None,
    "data_dir": ".",
    "host": "0.0.0.0",
    "port": 5000,
    "display_url": None,
    "log_file": "livewheel.log",
    "log_level": "INFO",
    "async_mode": None,
}

# environment variable -> (config key, converter)
ENV_OVERRIDES = {
    "WHEEL_WEBHOOK_SECRET": ("webhook_secret", str),
    "WHEEL_DATA_DIR": ("data_dir", str),
    "WHEEL_PORT": ("port", int),
    "WHEEL_SPIN_DURATION": ("spin_duration_seconds", float),
    "WHEEL_LOG_LEVEL": ("log_level", str),
}


def load_config(path=None, overrides=None, environ=None):
    """
    Build the effective configuration.

    Precedence, lowest first: DEFAULT_CONFIG, the JSON file at ``path``,
    environment variables, then ``overrides``.
    """
    config = dict(DEFAULT_CONFIG)

    if path:
        stored = load_json_file(path, {}, expected_type=dict)
        config.update({k: v for k, v in stored.items() if k in DEFAULT_CONFIG})

    environ = os.environ if environ is None else environ
    for var, (key, convert) in ENV_OVERRIDES.items():
        raw = environ.get(var)
        if raw in (None, ""):
            continue
        try:
            config[key] = convert(raw)
        except ValueError:
            logging.getLogger(__name__).warning(f"⚠️ Ignoring invalid {var}={raw!r}")

    if overrides:
        config.update(overrides)

    config["history_size"] = max(1, int(config["history_size"]))
    config["spin_duration_seconds"] = max(0.0, float(config["spin_duration_seconds"]))
    config["spin_rotations"] = max(1, int(config["spin_rotations"]))
    return config


def data_path(config, filename):
    return os.path.join(config["data_dir"], filename)


def configure_logging(config):
    """Root logging setup: file plus console, same format everywhere"""
    handlers = [logging.StreamHandler()]
    if config.get("log_file"):
        handlers.insert(0, logging.FileHandler(config["log_file"]))
    logging.basicConfig(
        level=getattr(logging, str(config.get("log_level", "INFO")).upper(), logging.INFO),
        format='%(asctime)s - %(levelname)s - [%(name)s] - %(message)s',
        handlers=handlers,
    )
