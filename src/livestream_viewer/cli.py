"""Command-line entry point for the livestream viewer."""

from __future__ import annotations

import argparse
import json
import logging
import os
import signal
from pathlib import Path
from typing import Any, Dict, List, Optional

from livestream_viewer import APP_VERSION
from livestream_viewer.config import DEFAULT_CONFIG_PATH, ConfigError, ViewerConfig
from livestream_viewer.environment import EnvironmentStatus, ViewerEnvironment
from livestream_viewer.logs import configure_logging
from livestream_viewer.monitor import FrameCaptureMonitor
from livestream_viewer.processes import ProcessSupervisor, PsutilProcessTable
from livestream_viewer.viewer import LivestreamViewer

LOGGER = logging.getLogger("livestream_viewer.cli")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="livestream-viewer",
        description="Keeps the display on the livestream or on a placeholder video",
    )
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_PATH,
        type=Path,
        help="JSON settings file (default: appsettings.json)",
    )
    parser.add_argument(
        "--test-mode",
        action="store_true",
        help="Play in a small fixed window instead of full screen",
    )
    parser.add_argument("--livestream-url", help="Override LivestreamUrl")
    parser.add_argument("--log-file", type=Path, help="Also write logs to this file")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--clean",
        action="store_true",
        help="Stop leftover viewer, player and capture processes before starting",
    )
    parser.add_argument(
        "--status",
        action="store_true",
        help="Report the viewer processes running on this host and exit",
    )
    parser.add_argument("--version", action="version", version=APP_VERSION)
    return parser.parse_args(argv)


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if args.test_mode:
        overrides["TestModeEnabled"] = True
    if args.livestream_url:
        overrides["LivestreamUrl"] = args.livestream_url
    if args.log_file:
        overrides["LogFile"] = str(args.log_file)
    return overrides


def report_status(table=None) -> int:
    environment = ViewerEnvironment.from_process_table(
        table or PsutilProcessTable(), own_pid=os.getpid()
    )
    print(json.dumps(environment.snapshot(), indent=2))
    return 1 if environment.status is EnvironmentStatus.UNHEALTHY else 0


def build_viewer(config: ViewerConfig) -> LivestreamViewer:
    supervisor = ProcessSupervisor.from_config(config)
    monitor = FrameCaptureMonitor(config, supervisor)
    return LivestreamViewer(config=config, monitor=monitor, supervisor=supervisor)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_file, verbose=args.verbose)

    if args.status:
        return report_status()

    LOGGER.info("Loading configuration.")
    try:
        config = ViewerConfig.from_sources(args.config, overrides=_overrides(args))
    except ConfigError as exc:
        LOGGER.error("Failed to load configuration: %s", exc)
        return 1
    if config.log_file is not None and config.log_file != args.log_file:
        configure_logging(config.log_file, verbose=args.verbose)
    LOGGER.info("Configuration loaded: %s", config.describe())

    if args.clean:
        ViewerEnvironment.from_process_table(
            PsutilProcessTable(), own_pid=os.getpid()
        ).clean()

    viewer = build_viewer(config)

    def _handle_signal(signum, _frame) -> None:
        LOGGER.info("Signal %s received; stopping viewer.", signum)
        viewer.stop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _handle_signal)

    viewer.run()
    LOGGER.info("Livestream viewer stopped.")
    return 0
