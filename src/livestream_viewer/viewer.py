"""The control loop that keeps the right video on screen."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from livestream_viewer.commands import PlayerCommand, resolve_command
from livestream_viewer.config import ViewerConfig
from livestream_viewer.monitor import FrameCaptureMonitor
from livestream_viewer.network import is_reachable
from livestream_viewer.processes import ProcessSupervisor
from livestream_viewer.state import ViewerState

LOGGER = logging.getLogger("livestream_viewer.viewer")

CommandResolver = Callable[[ViewerState, ViewerConfig, Optional[str]], PlayerCommand]


class LivestreamViewer:
    """Probes the livestream on a timer and switches the player accordingly.

    Every iteration probes the livestream; when it is down, a plain HTTP test
    tells "off air" (network fine) apart from "offline". The player is only
    replaced when the target state changes or the tracked player died.
    """

    def __init__(
        self,
        config: ViewerConfig,
        monitor: FrameCaptureMonitor,
        supervisor: ProcessSupervisor,
        reachability: Callable[[str, float], bool] = is_reachable,
        url_resolver: Optional[Callable[[ViewerConfig], str]] = None,
        command_resolver: CommandResolver = resolve_command,
    ) -> None:
        self._config = config
        self._monitor = monitor
        self._supervisor = supervisor
        self._reachability = reachability
        self._url_resolver = url_resolver or _default_url_resolver
        self._command_resolver = command_resolver
        self._stop_event = threading.Event()
        self._state = ViewerState.UNSET

    @property
    def state(self) -> ViewerState:
        return self._state

    def stop(self) -> None:
        self._stop_event.set()

    def run(self) -> None:
        LOGGER.info("Starting viewer keep-alive loop.")
        try:
            self.transition(ViewerState.OFF_AIR)
            while not self._stop_event.is_set():
                try:
                    self.process_once()
                except Exception:  # noqa: BLE001
                    LOGGER.exception("Unexpected error during viewer iteration")
                if self._stop_event.wait(self._config.health_check_delay):
                    break
        finally:
            LOGGER.info("Viewer keep-alive loop stopped.")
            self._supervisor.stop_tracked()

    def process_once(self) -> ViewerState:
        url = self._current_url()
        healthy = self._monitor.is_healthy(url, self._stop_event)
        if self._stop_event.is_set():
            return self._state

        target = self.target_state(healthy)
        self.transition(target, url)
        return target

    def target_state(self, healthy: bool) -> ViewerState:
        if healthy:
            return ViewerState.LIVESTREAM

        online = False
        try:
            online = bool(
                self._reachability(
                    self._config.internet_test_url, self._config.request_timeout
                )
            )
        except Exception as exc:  # noqa: BLE001
            LOGGER.error(
                "Error checking Internet connectivity; assuming none. Error: %s", exc
            )
        return ViewerState.OFF_AIR if online else ViewerState.OFFLINE

    def transition(self, state: ViewerState, livestream_url: Optional[str] = None) -> bool:
        """Switch the player to ``state``.

        Returns ``False`` without touching any process when ``state`` is
        already showing and its player is alive.
        """

        if state is self._state and self._supervisor.tracked_alive:
            return False

        if state is self._state:
            LOGGER.warning(
                "Player for %s is no longer running; restarting it.", state.display_name
            )
        self._state = state
        LOGGER.info("Transitioning to state: %s.", state.display_name)

        command = self._command_resolver(state, self._config, livestream_url)
        self._supervisor.start_tracked(command)
        return True

    def _current_url(self) -> str:
        try:
            return self._url_resolver(self._config)
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning(
                "Livestream URL resolution failed (%s); using the configured URL", exc
            )
            return self._config.livestream_url


def _default_url_resolver(config: ViewerConfig) -> str:
    return config.current_livestream_url()
