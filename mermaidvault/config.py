import logging
import os

DEFAULT_SERVER_CONFIG = {
    "data_dir": "",
    "host": "127.0.0.1",
    "port": 3001,
    "log_level": "INFO",
}

_ENV_KEYS = {
    "data_dir": "MERMAIDVAULT_DATA_DIR",
    "host": "MERMAIDVAULT_HOST",
    "port": "MERMAIDVAULT_PORT",
    "log_level": "MERMAIDVAULT_LOG_LEVEL",
}


def normalize_config(config):
    merged = {**DEFAULT_SERVER_CONFIG, **(config or {})}

    merged["host"] = str(merged.get("host") or "").strip() or DEFAULT_SERVER_CONFIG["host"]

    try:
        port = int(merged.get("port"))
    except (TypeError, ValueError):
        port = DEFAULT_SERVER_CONFIG["port"]
    if not 0 < port < 65536:
        port = DEFAULT_SERVER_CONFIG["port"]
    merged["port"] = port

    level = str(merged.get("log_level") or "").strip().upper()
    if not isinstance(logging.getLevelName(level), int):
        level = DEFAULT_SERVER_CONFIG["log_level"]
    merged["log_level"] = level

    merged["data_dir"] = str(merged.get("data_dir") or "").strip()
    return merged


def load_config(environ=None):
    """Read server settings from MERMAIDVAULT_* environment variables."""
    environ = os.environ if environ is None else environ
    raw = {}
    for key, env_name in _ENV_KEYS.items():
        value = environ.get(env_name)
        if value is not None and str(value).strip():
            raw[key] = value
    return normalize_config(raw)
