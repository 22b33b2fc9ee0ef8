"""HTTP helpers: the connectivity fallback test and livestream URL indirection."""

from __future__ import annotations

import logging
from urllib import error as urlerror
from urllib import request as urlrequest

from livestream_viewer import APP_VERSION
from livestream_viewer.logs import mask_url

LOGGER = logging.getLogger("livestream_viewer.network")

USER_AGENT = f"LivestreamViewer/{APP_VERSION}"
DEFAULT_TIMEOUT = 10.0


def _get(url: str, timeout: float):
    req = urlrequest.Request(url, headers={"User-Agent": USER_AGENT}, method="GET")
    return urlrequest.urlopen(req, timeout=timeout)


def is_reachable(url: str, timeout: float = DEFAULT_TIMEOUT) -> bool:
    """Return ``True`` when a GET on ``url`` answers with a 2xx status.

    This only proves that the network path to ``url`` works; it says nothing
    about the livestream itself.
    """

    try:
        with _get(url, timeout) as response:
            status = response.status
    except urlerror.HTTPError as exc:
        LOGGER.warning("Connectivity test %s answered HTTP %s", mask_url(url), exc.code)
        return False
    except urlerror.URLError as exc:
        LOGGER.warning("Connectivity test %s failed: %s", mask_url(url), exc.reason)
        return False
    except Exception as exc:  # noqa: BLE001
        LOGGER.warning("Connectivity test %s failed: %s", mask_url(url), exc)
        return False

    if 200 <= status < 300:
        return True
    LOGGER.warning("Connectivity test %s answered HTTP %s", mask_url(url), status)
    return False


def resolve_livestream_url(url: str, timeout: float = DEFAULT_TIMEOUT) -> str:
    """Follow the redirects of ``url`` and return where they end.

    Any failure falls back to ``url`` itself.
    """

    try:
        with _get(url, timeout) as response:
            resolved = response.geturl()
    except urlerror.HTTPError as exc:
        LOGGER.warning(
            "Could not resolve livestream URL %s (HTTP %s); using it as-is",
            mask_url(url),
            exc.code,
        )
        return url
    except Exception as exc:  # noqa: BLE001
        LOGGER.warning(
            "Could not resolve livestream URL %s (%s); using it as-is",
            mask_url(url),
            exc,
        )
        return url

    if not resolved:
        return url
    if resolved != url:
        LOGGER.info("Livestream URL %s resolved to %s", mask_url(url), mask_url(resolved))
    return resolved
