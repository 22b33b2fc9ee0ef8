"""Launching, tracking and stopping player and capture processes.

:class:`ProcessSupervisor` owns the single tracked player process. Before a new
player starts, the previous one is stopped and every other process whose name
looks like a known player or capture tool is swept, so two players never race
for the screen (a crashed earlier run can leave a full-screen player behind).
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Protocol, Sequence, Tuple

import psutil

from livestream_viewer.commands import KNOWN_PROGRAMS, PlayerCommand
from livestream_viewer.config import ViewerConfig
from livestream_viewer.logs import mask_url

LOGGER = logging.getLogger("livestream_viewer.processes")

SHELL = "/bin/bash"
DEFAULT_STOP_TIMEOUT = 5.0
# Windows command lines keep backslashes and quotes as typed.
POSIX_ARGUMENTS = os.name != "nt"


def split_arguments(value: str) -> List[str]:
    return shlex.split(value, posix=POSIX_ARGUMENTS) if value else []


@dataclass(frozen=True)
class ProcessEntry:
    pid: int
    name: str
    cmdline: Tuple[str, ...] = ()

    @property
    def command_text(self) -> str:
        return " ".join(self.cmdline)


class ProcessTable(Protocol):
    """Lists and stops OS processes by pid."""

    def list_processes(self) -> Iterable[ProcessEntry]:
        ...

    def terminate(self, pid: int, timeout: float) -> None:
        ...


class PsutilProcessTable:
    """:class:`ProcessTable` backed by psutil."""

    def list_processes(self) -> List[ProcessEntry]:
        entries: List[ProcessEntry] = []
        for proc in psutil.process_iter(["pid", "name", "cmdline"]):
            try:
                info = proc.info
                raw_cmd = info.get("cmdline") or []
                cmdline = tuple(raw_cmd) if isinstance(raw_cmd, (list, tuple)) else ()
                entries.append(
                    ProcessEntry(
                        pid=int(info.get("pid") or proc.pid),
                        name=info.get("name") or "",
                        cmdline=cmdline,
                    )
                )
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue
        return entries

    def terminate(self, pid: int, timeout: float) -> None:
        try:
            proc = psutil.Process(pid)
            proc.terminate()
            _gone, alive = psutil.wait_procs([proc], timeout=timeout)
            for survivor in alive:
                survivor.kill()
        except psutil.NoSuchProcess:
            return


class ProcessHandle:
    """A spawned player or capture process."""

    def __init__(self, process: subprocess.Popen, command: PlayerCommand) -> None:
        self._process = process
        self.command = command

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def exit_code(self) -> Optional[int]:
        return self._process.poll()

    def is_alive(self) -> bool:
        return self._process.poll() is None

    def terminate(self, timeout: float = DEFAULT_STOP_TIMEOUT) -> None:
        if not self.is_alive():
            return
        self._process.terminate()
        try:
            self._process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            self._process.kill()
            self._process.wait(timeout=timeout)

    def __repr__(self) -> str:
        return f"<ProcessHandle {self.command.program} pid={self.pid}>"


class ProcessSupervisor:
    def __init__(
        self,
        player_directory: Optional[str] = None,
        process_table: Optional[ProcessTable] = None,
        known_programs: Sequence[str] = KNOWN_PROGRAMS,
        stop_timeout: float = DEFAULT_STOP_TIMEOUT,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
    ) -> None:
        self._player_directory = (player_directory or "").strip() or None
        self._table: ProcessTable = process_table or PsutilProcessTable()
        self._known_programs = tuple(name.lower() for name in known_programs)
        self._stop_timeout = stop_timeout
        self._popen = popen
        self._own_pid = os.getpid()
        self._lock = threading.Lock()
        self._tracked: Optional[ProcessHandle] = None

    @classmethod
    def from_config(cls, config: ViewerConfig, **kwargs) -> "ProcessSupervisor":
        return cls(player_directory=config.video_player_path, **kwargs)

    @property
    def tracked_alive(self) -> bool:
        with self._lock:
            handle = self._tracked
        return bool(handle and handle.is_alive())

    @property
    def tracked_pid(self) -> Optional[int]:
        with self._lock:
            handle = self._tracked
        return handle.pid if handle else None

    def locate_executable(self, program: str) -> Optional[Path]:
        if not self._player_directory:
            return None
        directory = Path(self._player_directory)
        try:
            candidates = sorted(path for path in directory.iterdir() if path.is_file())
        except OSError as exc:
            LOGGER.error("Could not list player directory %s: %s", directory, exc)
            return None
        needle = program.lower()
        for candidate in candidates:
            if needle in candidate.name.lower():
                return candidate
        return None

    def build_argv(self, command: PlayerCommand) -> Optional[List[str]]:
        if command.explicit:
            executable = self.locate_executable(command.program)
            if executable is None:
                LOGGER.error(
                    "Could not find %s in %s", command.program, self._player_directory
                )
                return None
            try:
                extra = split_arguments(command.extra_arguments)
            except ValueError as exc:
                LOGGER.error("Invalid arguments for %s: %s", command.program, exc)
                return None
            return [str(executable), *command.tokens, *extra]
        return [SHELL, "-c", f"{command.program} {command.arguments}".strip()]

    def spawn(
        self, command: PlayerCommand, cwd: Optional[Path] = None
    ) -> Optional[ProcessHandle]:
        """Launch ``command`` without tracking it. ``None`` when it cannot start."""

        argv = self.build_argv(command)
        if argv is None:
            return None

        LOGGER.debug(
            "Launching %s (%s mode) with arguments: %s",
            command.program,
            command.mode.value,
            mask_url(command.arguments),
        )
        try:
            process = self._popen(
                argv,
                cwd=str(cwd) if cwd is not None else None,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
            )
        except (OSError, ValueError) as exc:
            LOGGER.error("Error launching %s: %s", command.program, exc)
            return None

        handle = ProcessHandle(process, command)
        LOGGER.debug("Launched %s (PID %s)", command.program, handle.pid)
        return handle

    def terminate(self, handle: ProcessHandle) -> bool:
        """Stop ``handle``; failures are logged and reported as ``False``."""

        try:
            handle.terminate(self._stop_timeout)
        except Exception as exc:  # noqa: BLE001
            LOGGER.error(
                "Error terminating %s process %s: %s",
                handle.command.program,
                handle.pid,
                exc,
            )
            return False
        return True

    def start_tracked(self, command: PlayerCommand) -> Optional[ProcessHandle]:
        self.stop_tracked()
        handle = self.spawn(command)
        with self._lock:
            self._tracked = handle
        if handle is not None:
            LOGGER.info(
                "Playing %s with %s (PID %s)",
                mask_url(command.media),
                command.program,
                handle.pid,
            )
        return handle

    def stop_tracked(self) -> None:
        with self._lock:
            handle = self._tracked
            self._tracked = None

        if handle is not None and handle.is_alive():
            LOGGER.info("Video is currently playing. Terminating process %s.", handle.pid)
            if self.terminate(handle):
                LOGGER.info("Video playback terminated.")

        self.sweep_rogue()

    def sweep_rogue(self) -> int:
        """Stop every process named like a known player or capture tool."""

        LOGGER.info("Searching for rogue video processes.")
        try:
            entries = list(self._table.list_processes())
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Could not list processes: %s", exc)
            return 0

        stopped = 0
        for entry in entries:
            if entry.pid == self._own_pid:
                continue
            name = (entry.name or "").lower()
            match = next(
                (known for known in self._known_programs if known in name), None
            )
            if match is None:
                continue
            LOGGER.info("Stopping rogue %s process (PID %s)", match, entry.pid)
            try:
                self._table.terminate(entry.pid, self._stop_timeout)
            except Exception as exc:  # noqa: BLE001
                LOGGER.warning(
                    "Failed to stop %s process %s: %s", match, entry.pid, exc
                )
                continue
            stopped += 1
        return stopped
