"""Livestream health probe based on ffmpeg frame export.

Checking that the URL answers is not enough: a broadcast server happily
accepts connections while no stream is being published. Instead ffmpeg is
asked to write one frame per second of the stream for a grace period, and
the stream counts as healthy when at least one frame landed on disk.

ffmpeg does not always honour an output directory on every platform, so the
frames are written to the working directory of the capture process and
recognised by a fixed name prefix. Only those files are ever purged.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import List, Optional

from livestream_viewer.commands import FRAME_EXTENSION, FRAME_PREFIX, capture_command
from livestream_viewer.config import ViewerConfig
from livestream_viewer.logs import mask_url
from livestream_viewer.processes import ProcessSupervisor
from livestream_viewer.retry import with_retry

LOGGER = logging.getLogger("livestream_viewer.monitor")


class FrameCaptureMonitor:
    def __init__(
        self,
        config: ViewerConfig,
        supervisor: ProcessSupervisor,
        frame_directory: Optional[Path] = None,
    ) -> None:
        self._config = config
        self._supervisor = supervisor
        self._frame_directory = Path(frame_directory or config.frame_directory)

    @property
    def frame_directory(self) -> Path:
        return self._frame_directory

    def frame_files(self) -> List[Path]:
        pattern = f"{FRAME_PREFIX}*.{FRAME_EXTENSION}"
        return sorted(
            path for path in self._frame_directory.glob(pattern) if path.is_file()
        )

    def purge_frames(self) -> int:
        existing = self.frame_files()
        if not existing:
            return 0
        LOGGER.debug("Purging %d frame file(s) from the previous probe", len(existing))
        for path in existing:
            path.unlink()
        return len(existing)

    def is_healthy(self, url: str, stop_event: Optional[threading.Event] = None) -> bool:
        """Probe ``url`` and report whether any frame could be captured.

        The attempt outcome (capture still running, or exited cleanly) only
        decides whether another attempt is made. The verdict comes from the
        frame files left in the frame directory.
        """

        stop_event = stop_event or threading.Event()
        try:
            self.purge_frames()
            with_retry(
                lambda: self._capture_once(url, stop_event),
                self._config.health_check_retries,
                stop_event=stop_event,
            )
            frames = len(self.frame_files())
        except Exception:  # noqa: BLE001
            LOGGER.exception("Error testing livestream %s", mask_url(url))
            return False

        LOGGER.info("Livestream probe of %s captured %d frame(s)", mask_url(url), frames)
        return frames > 0

    def _capture_once(self, url: str, stop_event: threading.Event) -> bool:
        command = capture_command(url, self._config)
        handle = self._supervisor.spawn(command, cwd=self._frame_directory)
        if handle is None:
            LOGGER.error("Could not start the frame capture for %s", mask_url(url))
            return False

        grace = self._config.health_check_grace_period
        if stop_event.wait(grace):
            LOGGER.debug("Probe cancelled; stopping capture (PID %s)", handle.pid)
            self._supervisor.terminate(handle)
            return False

        exit_code = handle.exit_code
        if exit_code is None:
            LOGGER.debug("Test period elapsed and ffmpeg is still running. Stopping it.")
            self._supervisor.terminate(handle)
            return True

        if exit_code == 0:
            LOGGER.debug("Test period elapsed and ffmpeg had already stopped.")
            return True

        LOGGER.warning(
            "ffmpeg exited with code %s while probing %s (PID %s)",
            exit_code,
            mask_url(url),
            handle.pid,
        )
        return False
