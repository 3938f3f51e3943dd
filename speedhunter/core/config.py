"""
Core configuration management for the speed hunter.

This module handles configuration loading, validation, and management
including environment variables and env files.
"""

import logging
import os
import re
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

from speedhunter.core.exceptions import FragmentConfigError
from speedhunter.core.utils import parse_source_address
from speedhunter.security.tls_fingerprint_evasion import TLSFingerprint, lookup_profile, resolve_fingerprint
from speedhunter.security.tls_fragmentation import FragmentOptions, parse_fragment_options

DEFAULT_URL = "https://cf.xiu2.xyz/url"
DEFAULT_TIMEOUT = 10
DEFAULT_TEST_COUNT = 10
DEFAULT_MIN_SPEED = 0.0
DEFAULT_FRAGMENT_OPTIONS = "67,47,100ms,100ms"


def _to_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class SpeedHunterConfig:
    """Central configuration manager for download speed probes."""

    def __init__(self, env_file: Optional[str] = None):
        self.logger = logging.getLogger(__name__)
        self.env_file = env_file or os.getenv("SPEEDHUNTER_ENV_FILE", "speedhunter.env")
        self._config: Dict[str, Any] = {}
        self._fragment_options: Optional[FragmentOptions] = None
        self._fingerprint: Optional[TLSFingerprint] = None
        self._load_default_config()
        self._load_env_file()
        self._load_from_environment()

    def _load_default_config(self):
        """Load default configuration values."""
        self._config = {
            # Download test
            "url": DEFAULT_URL,
            "timeout_seconds": DEFAULT_TIMEOUT,
            "test_count": DEFAULT_TEST_COUNT,
            "min_speed_mb": DEFAULT_MIN_SPEED,
            "disable_download": False,

            # Connection
            "tcp_port": 443,
            "source_address": None,
            "dial_timeout": 30,
            "keepalive_seconds": 30,
            "verify_tls": True,

            # Handshake disguise
            "client_hello_id": "chrome",
            "fragment_enabled": False,
            "fragment_options": DEFAULT_FRAGMENT_OPTIONS,

            # Output
            "show_progress": True,
        }

    def _load_env_file(self):
        """Load configuration from environment file."""
        try:
            if not self.env_file or not os.path.exists(self.env_file):
                return

            with open(self.env_file, "r", encoding="utf-8") as f:
                for raw_line in f:
                    line = raw_line.strip()
                    if not line or line.startswith("#"):
                        continue

                    key = None
                    value = None

                    # Handle PowerShell environment files
                    if line.lower().startswith("$env:"):
                        m = re.match(r"^\$env:([A-Za-z_][A-Za-z0-9_]*)\s*=\s*(.+)$", line)
                        if m:
                            key = m.group(1).strip()
                            value = m.group(2).strip()
                    elif "=" in line:
                        left, right = line.split("=", 1)
                        key = left.strip()
                        value = right.strip()

                    if key and value is not None:
                        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
                            value = value[1:-1]
                        os.environ.setdefault(key, value)
        except OSError as e:
            self.logger.warning(f"Failed to load env file: {e}")

    def _load_from_environment(self):
        """Override configuration with environment variables."""
        env_mappings = {
            "SPEEDHUNTER_URL": ("url", str),
            "SPEEDHUNTER_TIMEOUT": ("timeout_seconds", int),
            "SPEEDHUNTER_TEST_COUNT": ("test_count", int),
            "SPEEDHUNTER_MIN_SPEED": ("min_speed_mb", float),
            "SPEEDHUNTER_DISABLE_DOWNLOAD": ("disable_download", _to_bool),
            "SPEEDHUNTER_TCP_PORT": ("tcp_port", int),
            "SPEEDHUNTER_SOURCE_ADDRESS": ("source_address", lambda x: x.strip() or None),
            "SPEEDHUNTER_CLIENT_HELLO": ("client_hello_id", lambda x: x.strip().lower()),
            "SPEEDHUNTER_FRAGMENT": ("fragment_enabled", _to_bool),
            "SPEEDHUNTER_FRAGMENT_OPTIONS": ("fragment_options", str),
            "SPEEDHUNTER_DIAL_TIMEOUT": ("dial_timeout", float),
            "SPEEDHUNTER_KEEPALIVE": ("keepalive_seconds", float),
            "SPEEDHUNTER_VERIFY_TLS": ("verify_tls", _to_bool),
            "SPEEDHUNTER_PROGRESS": ("show_progress", _to_bool),
        }

        for env_key, (config_key, converter) in env_mappings.items():
            if env_key in os.environ:
                try:
                    self._config[config_key] = converter(os.environ[env_key])
                except (ValueError, TypeError):
                    self.logger.warning(f"Invalid value for {env_key}: {os.environ[env_key]}")

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        return self._config.get(key, default)

    def set(self, key: str, value: Any):
        """Set configuration value."""
        self._config[key] = value
        self._invalidate(key)

    def update(self, config_dict: Dict[str, Any]):
        """Update multiple configuration values."""
        self._config.update(config_dict)
        for key in config_dict:
            self._invalidate(key)

    def to_dict(self) -> Dict[str, Any]:
        """Get configuration as dictionary."""
        return self._config.copy()

    def _invalidate(self, key: str):
        if key in ("fragment_enabled", "fragment_options"):
            self._fragment_options = None
        elif key == "client_hello_id":
            self._fingerprint = None

    def apply_defaults(self):
        """Replace unusable download test settings with their defaults."""
        if not self.get("url"):
            self._config["url"] = DEFAULT_URL
        if self.get("timeout_seconds", 0) <= 0:
            self._config["timeout_seconds"] = DEFAULT_TIMEOUT
        if self.get("test_count", 0) <= 0:
            self._config["test_count"] = DEFAULT_TEST_COUNT
        if self.get("min_speed_mb", 0.0) <= 0.0:
            self._config["min_speed_mb"] = DEFAULT_MIN_SPEED

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors."""
        errors = []

        url = urlparse(self.get("url") or "")
        if url.scheme not in ("http", "https") or not url.hostname:
            errors.append(f"url must be an http(s) URL: {self.get('url')!r}")

        numeric_fields = [
            ("timeout_seconds", 1, 3600),
            ("test_count", 1, 10000),
            ("tcp_port", 1, 65535),
            ("dial_timeout", 1, 300),
            ("keepalive_seconds", 0, 3600),
        ]
        for field, min_val, max_val in numeric_fields:
            value = self.get(field)
            if not isinstance(value, (int, float)) or value < min_val or value > max_val:
                errors.append(f"{field} must be between {min_val} and {max_val}")

        if self.get("min_speed_mb", 0.0) < 0:
            errors.append("min_speed_mb must not be negative")

        if self.get("source_address"):
            try:
                parse_source_address(self.get("source_address"))
            except ValueError as e:
                errors.append(f"source_address is invalid: {e}")

        try:
            self.fragment_options()
        except FragmentConfigError as e:
            errors.append(f"fragment_options is invalid: {e}")

        # Unknown profiles are not fatal, they fall back to the Go handshake
        token = self.get("client_hello_id", "")
        if lookup_profile(token).value != token.lower():
            self.logger.info(f"Unknown client hello id {token!r}, using the default handshake")

        return errors

    def fragment_options(self) -> Optional[FragmentOptions]:
        """
        Parsed fragmentation policy, or None when fragmentation is off.

        Raises:
            FragmentConfigError: the policy string is malformed
        """
        if not self.get("fragment_enabled"):
            return None
        if self._fragment_options is None:
            self._fragment_options = parse_fragment_options(self.get("fragment_options", ""))
        return self._fragment_options

    def fingerprint(self) -> TLSFingerprint:
        if self._fingerprint is None:
            self._fingerprint = resolve_fingerprint(self.get("client_hello_id", ""))
        return self._fingerprint

    def source_address(self) -> Optional[Tuple[str, int]]:
        value = self.get("source_address")
        if not value:
            return None
        return parse_source_address(value)
