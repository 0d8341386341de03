"""
Configuration module for owdev.

Centralizes all configuration with environment variable support.
Every value can be overridden in the environment.
"""

import os
from pathlib import Path
from typing import Dict

# ============================================================
# Environment Configuration
# ============================================================

# Route prefixes (no leading or trailing slash)
DEV_API_PREFIX = os.getenv("DEV_API_PREFIX", "api/v1").strip("/")
DEV_API_WEB_PREFIX = os.getenv("DEV_API_WEB_PREFIX", f"{DEV_API_PREFIX}/web").strip("/")

# Server
SERVER_DEFAULT_PORT = int(os.getenv("SERVER_DEFAULT_PORT", "9080"))
SERVER_HOST = os.getenv("OWDEV_HOST", "localhost")

# App manifest and action sources
MANIFEST_PATH = os.getenv("OWDEV_MANIFEST", "manifest.yml")
ACTIONS_SRC = os.getenv("OWDEV_ACTIONS_SRC", "actions")

# Polling interval of the action watcher (seconds)
WATCH_INTERVAL = float(os.getenv("WATCH_INTERVAL", "1.0"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("OWDEV_LOG_JSON", "").lower() in ("1", "true", "yes")

# Forwarded address injected into every web request
FORWARDED_FOR = "127.0.0.1"


def server_port() -> int:
    """PORT when it is a positive integer, otherwise SERVER_DEFAULT_PORT."""
    try:
        port = int(os.getenv("PORT", ""))
    except ValueError:
        return SERVER_DEFAULT_PORT
    return port if port > 0 else SERVER_DEFAULT_PORT


SERVER_PORT = server_port()


# ============================================================
# Platform Environment
# ============================================================

def export_platform_environ() -> Dict[str, str]:
    """
    Mirror the runtime credentials into the variables actions read.

    AIO_RUNTIME_AUTH / AIO_RUNTIME_NAMESPACE / AIO_RUNTIME_APIHOST become
    __OW_API_KEY / __OW_NAMESPACE / __OW_API_HOST. Returns what was set.
    """
    mapping = {
        "__OW_API_KEY": "AIO_RUNTIME_AUTH",
        "__OW_NAMESPACE": "AIO_RUNTIME_NAMESPACE",
        "__OW_API_HOST": "AIO_RUNTIME_APIHOST",
    }
    exported = {}
    for target, source in mapping.items():
        value = os.getenv(source)
        if value is not None:
            os.environ[target] = value
            exported[target] = value
    return exported


# ============================================================
# Validation
# ============================================================

def validate_config(manifest_path: str = None, actions_src: str = None) -> Dict[str, bool]:
    """
    Check that the configured files and directories exist.
    Returns dict of name -> exists.
    """
    paths = {
        "manifest": manifest_path or MANIFEST_PATH,
        "actions_src": actions_src or ACTIONS_SRC,
    }
    return {name: Path(path).exists() for name, path in paths.items()}


# ============================================================
# Feature Flags
# ============================================================

def is_debug() -> bool:
    """Check if debug mode is enabled."""
    return os.getenv("OWDEV_DEBUG", "").lower() in ("1", "true", "yes")
