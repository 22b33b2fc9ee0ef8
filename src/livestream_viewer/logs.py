"""Logging setup shared by the viewer entry points."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

ROOT_LOGGER_NAME = "livestream_viewer"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_SECRET_PARAM = re.compile(r"\b(password|pass|pwd)=[^&#]*", re.IGNORECASE)


def configure_logging(log_file: Optional[Path] = None, verbose: bool = False) -> None:
    formatter = logging.Formatter(LOG_FORMAT)
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if log_file is not None:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
        except OSError as exc:
            logger.warning("Could not open log file %s: %s", log_file, exc)
        else:
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)


def _mask_token(token: str) -> str:
    try:
        parts = urlsplit(token)
    except ValueError:
        return re.sub(r"//[^/@]*@", "//***@", token)

    netloc = parts.netloc
    userinfo, sep, host = netloc.rpartition("@")
    if sep:
        user = userinfo.partition(":")[0]
        netloc = f"{user}:***@{host}" if user else f"***@{host}"
    query = _SECRET_PARAM.sub(r"\1=***", parts.query)
    if netloc == parts.netloc and query == parts.query:
        return token
    return urlunsplit(parts._replace(netloc=netloc, query=query))


def mask_url(value: str) -> str:
    """Hide credentials embedded in a URL, or in URLs inside an argument line."""

    return " ".join(_mask_token(token) for token in value.split(" "))
