"""Snapshot of viewer, player and capture processes running on this host."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePath
from typing import Dict, List, Sequence

from livestream_viewer.commands import VIDEO_PROCESSORS, VISIBLE_PLAYERS
from livestream_viewer.processes import DEFAULT_STOP_TIMEOUT, ProcessEntry, ProcessTable

LOGGER = logging.getLogger("livestream_viewer.environment")

VIEWER_MARKERS = ("livestream-viewer", "livestream_viewer")


class EnvironmentStatus(Enum):
    NOT_RUNNING = "not_running"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


def _matches(name: str, candidates: Sequence[str]) -> bool:
    lowered = name.lower()
    return any(candidate in lowered for candidate in candidates)


def _is_viewer(entry: ProcessEntry) -> bool:
    # Interpreter, script or module only; later arguments may be media paths.
    if _matches(entry.name, VIEWER_MARKERS):
        return True
    leading = (PurePath(arg).name for arg in entry.cmdline[:3])
    return any(_matches(arg, VIEWER_MARKERS) for arg in leading)


@dataclass
class ViewerEnvironment:
    table: ProcessTable
    viewers: List[ProcessEntry] = field(default_factory=list)
    players: List[ProcessEntry] = field(default_factory=list)
    processors: List[ProcessEntry] = field(default_factory=list)

    @classmethod
    def from_process_table(cls, table: ProcessTable, own_pid: int) -> "ViewerEnvironment":
        LOGGER.info("Loading livestream viewer environment.")
        environment = cls(table=table)
        for entry in table.list_processes():
            if entry.pid == own_pid:
                continue
            if _matches(entry.name, VISIBLE_PLAYERS):
                environment.players.append(entry)
            elif _matches(entry.name, VIDEO_PROCESSORS):
                environment.processors.append(entry)
            elif _is_viewer(entry):
                environment.viewers.append(entry)
        return environment

    @property
    def status(self) -> EnvironmentStatus:
        if not self.viewers and not self.players and not self.processors:
            return EnvironmentStatus.NOT_RUNNING
        # TODO: tag player processes with the viewer pid instead of counting names.
        if (
            len(self.viewers) == 1
            and len(self.players) == 1
            and len(self.processors) < 2
        ):
            return EnvironmentStatus.HEALTHY
        return EnvironmentStatus.UNHEALTHY

    def snapshot(self) -> Dict[str, object]:
        return {
            "status": self.status.value,
            "viewers": [entry.pid for entry in self.viewers],
            "players": [entry.pid for entry in self.players],
            "processors": [entry.pid for entry in self.processors],
        }

    def clean(self, timeout: float = DEFAULT_STOP_TIMEOUT) -> int:
        """Stop everything left over from earlier viewer instances."""

        LOGGER.info("Cleaning environment for a new viewer instance.")
        stopped = 0
        groups = (
            ("viewer", self.viewers),
            ("player", self.players),
            ("processor", self.processors),
        )
        for label, entries in groups:
            for entry in entries:
                LOGGER.info("Stopping %s instance (PID %s)", label, entry.pid)
                try:
                    self.table.terminate(entry.pid, timeout)
                except Exception as exc:  # noqa: BLE001
                    LOGGER.warning(
                        "Failed to stop %s instance %s: %s", label, entry.pid, exc
                    )
                    continue
                stopped += 1
        return stopped
