"""Runtime configuration for the livestream viewer.

Values come from a JSON settings file (``appsettings.json`` by default),
overridden by ``LSV_*`` environment variables and then by command-line
switches. The resulting :class:`ViewerConfig` is immutable for the run.
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional
from urllib.parse import urlsplit

from livestream_viewer.logs import mask_url
from livestream_viewer.network import resolve_livestream_url

LOGGER = logging.getLogger("livestream_viewer.config")

DEFAULT_CONFIG_PATH = Path("appsettings.json")
DEFAULT_INTERNET_TEST_URL = "https://google.com"
DEFAULT_VIDEO_PATH = "video"
DEFAULT_VIDEO_EXTENSION = "mp4"
DEFAULT_GRACE_PERIOD = 30.0
DEFAULT_HEALTH_CHECK_DELAY = 30.0
DEFAULT_RETRIES = 1
DEFAULT_REQUEST_TIMEOUT = 10.0
ENV_PREFIX = "LSV_"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}
_URL_FIELDS = {"livestream_url", "internet_test_url"}


class ConfigError(ValueError):
    """Raised when the configuration cannot be used to start the viewer."""


def env_key(name: str) -> str:
    """Map a settings key such as ``HealthCheckDelay`` to ``LSV_HEALTH_CHECK_DELAY``."""

    return ENV_PREFIX + re.sub(r"(?<!^)(?=[A-Z])", "_", name).upper()


@dataclass(frozen=True)
class ViewerConfig:
    livestream_url: str
    evaluate_livestream_url: bool = False
    internet_test_url: str = DEFAULT_INTERNET_TEST_URL
    video_path: str = DEFAULT_VIDEO_PATH
    video_extension: str = DEFAULT_VIDEO_EXTENSION
    video_player_path: Optional[str] = None
    video_player_arguments: str = ""
    health_check_grace_period: float = DEFAULT_GRACE_PERIOD
    health_check_delay: float = DEFAULT_HEALTH_CHECK_DELAY
    health_check_retries: int = DEFAULT_RETRIES
    test_mode_enabled: bool = False
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    frame_directory: Path = field(default_factory=Path.cwd)
    log_file: Optional[Path] = None

    @property
    def explicit_mode_enabled(self) -> bool:
        return bool(self.video_player_path and self.video_player_path.strip())

    @staticmethod
    def _parse_positive_float(key: str, value: Any, default: float) -> float:
        if value is None or (isinstance(value, str) and not value.strip()):
            return default
        try:
            parsed = float(value)
        except (TypeError, ValueError):
            LOGGER.warning("Invalid value for %s (%r); using %s", key, value, default)
            return default
        if parsed <= 0:
            LOGGER.warning("Non-positive value for %s (%r); using %s", key, value, default)
            return default
        return parsed

    @staticmethod
    def _parse_int(key: str, value: Any, default: int) -> int:
        if value is None or (isinstance(value, str) and not value.strip()):
            return default
        if isinstance(value, bool):
            LOGGER.warning("Invalid value for %s (%r); using %s", key, value, default)
            return default
        try:
            return int(str(value).strip())
        except ValueError:
            LOGGER.warning("Invalid value for %s (%r); using %s", key, value, default)
            return default

    @staticmethod
    def _parse_bool(key: str, value: Any, default: bool) -> bool:
        if value is None:
            return default
        if isinstance(value, bool):
            return value
        lowered = str(value).strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        LOGGER.warning("Invalid value for %s (%r); using %s", key, value, default)
        return default

    @staticmethod
    def _text(value: Any, default: str) -> str:
        if value is None:
            return default
        text = str(value).strip()
        return text or default

    @staticmethod
    def _read_settings_file(path: Path) -> Dict[str, Any]:
        if not path.exists():
            LOGGER.info("Settings file %s not found; using environment and defaults", path)
            return {}
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"Could not read {path}: {exc}") from exc
        try:
            data = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Invalid JSON in {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"{path} must contain a JSON object")
        return data

    @classmethod
    def from_sources(
        cls,
        path: Path = DEFAULT_CONFIG_PATH,
        env: Optional[Mapping[str, str]] = None,
        overrides: Optional[Mapping[str, Any]] = None,
    ) -> "ViewerConfig":
        env = os.environ if env is None else env
        overrides = overrides or {}
        data = cls._read_settings_file(path)

        def _value(key: str) -> Any:
            override = overrides.get(key)
            if override is not None:
                return override
            from_env = env.get(env_key(key))
            if from_env:
                return from_env
            return data.get(key)

        extension = cls._text(_value("VideoExtension"), DEFAULT_VIDEO_EXTENSION)
        extension = extension.lstrip(".") or DEFAULT_VIDEO_EXTENSION

        player_path_raw = _value("VideoPlayerPath")
        player_path = cls._text(player_path_raw, "") or None

        frame_dir_raw = cls._text(_value("FrameDirectory"), "")
        log_file_raw = cls._text(_value("LogFile"), "")

        arguments = _value("VideoPlayerArguments")

        config = cls(
            livestream_url=cls._text(_value("LivestreamUrl"), ""),
            evaluate_livestream_url=cls._parse_bool(
                "EvaluateLivestreamUrl", _value("EvaluateLivestreamUrl"), False
            ),
            internet_test_url=cls._text(
                _value("InternetTestUrl"), DEFAULT_INTERNET_TEST_URL
            ),
            video_path=cls._text(_value("VideoPath"), DEFAULT_VIDEO_PATH),
            video_extension=extension,
            video_player_path=player_path,
            video_player_arguments=str(arguments).strip() if arguments else "",
            health_check_grace_period=cls._parse_positive_float(
                "HealthCheckGracePeriod",
                _value("HealthCheckGracePeriod"),
                DEFAULT_GRACE_PERIOD,
            ),
            health_check_delay=cls._parse_positive_float(
                "HealthCheckDelay",
                _value("HealthCheckDelay"),
                DEFAULT_HEALTH_CHECK_DELAY,
            ),
            health_check_retries=cls._parse_int(
                "HealthCheckRetries", _value("HealthCheckRetries"), DEFAULT_RETRIES
            ),
            test_mode_enabled=cls._parse_bool(
                "TestModeEnabled", _value("TestModeEnabled"), False
            ),
            request_timeout=cls._parse_positive_float(
                "RequestTimeout", _value("RequestTimeout"), DEFAULT_REQUEST_TIMEOUT
            ),
            frame_directory=(
                Path(frame_dir_raw).expanduser() if frame_dir_raw else Path.cwd()
            ),
            log_file=Path(log_file_raw).expanduser() if log_file_raw else None,
        )
        config.ensure_valid()
        return config

    def ensure_valid(self) -> None:
        if not self.livestream_url:
            raise ConfigError("Missing required option: LivestreamUrl")
        parts = urlsplit(self.livestream_url)
        absolute = bool(parts.scheme) and (
            bool(parts.netloc) or (parts.scheme == "file" and bool(parts.path))
        )
        if not absolute:
            raise ConfigError(
                f"LivestreamUrl must be an absolute URI: {mask_url(self.livestream_url)}"
            )

    def current_livestream_url(
        self, resolver: Callable[[str, float], str] = resolve_livestream_url
    ) -> str:
        """Return the URL to probe and play during this iteration.

        With ``evaluate_livestream_url`` the configured URL is followed through
        its redirects on every call; otherwise it is returned unchanged.
        """

        if not self.evaluate_livestream_url:
            return self.livestream_url
        return resolver(self.livestream_url, self.request_timeout)

    def describe(self) -> str:
        parts = []
        for item in fields(self):
            value = getattr(self, item.name)
            if item.name in _URL_FIELDS and isinstance(value, str):
                value = mask_url(value)
            parts.append(f"{item.name}: {value}")
        return "; ".join(parts)
