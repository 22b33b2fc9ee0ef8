"""Resolves what to play for a viewer state, and with which player.

Two renderer back-ends are supported. ``ffplay`` is the more reliable one and
is used whenever an explicit player directory is configured. ``omxplayer`` is
lighter on low-end devices and is looked up through the shell otherwise.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from livestream_viewer.config import ViewerConfig
from livestream_viewer.state import ViewerState

TEST_MODE_WINDOW: Tuple[int, int] = (640, 480)

OMXPLAYER = "omxplayer"
FFPLAY = "ffplay"
FFMPEG = "ffmpeg"

KNOWN_PROGRAMS: Tuple[str, ...] = (OMXPLAYER, FFMPEG, FFPLAY)
VISIBLE_PLAYERS: Tuple[str, ...] = (OMXPLAYER, FFPLAY)
VIDEO_PROCESSORS: Tuple[str, ...] = (FFMPEG,)

FRAME_PREFIX = "liveframe-"
FRAME_EXTENSION = "jpg"


class CommandResolutionError(ValueError):
    """Raised for a state that has nothing to play."""


class InvocationMode(Enum):
    EXPLICIT_PATH = "explicit"
    SHELL_LOOKUP = "shell"


@dataclass(frozen=True)
class PlayerCommand:
    program: str
    arguments: str
    mode: InvocationMode
    media: str = ""
    loop: bool = False
    window: Optional[Tuple[int, int]] = None
    tokens: Tuple[str, ...] = ()
    extra_arguments: str = ""

    @property
    def explicit(self) -> bool:
        return self.mode is InvocationMode.EXPLICIT_PATH


ArgumentBuilder = Callable[[str, bool, Optional[Tuple[int, int]]], List[str]]


def join_arguments(tokens: Sequence[str], extra: str = "") -> str:
    """Shell-quoted rendering of ``tokens`` with ``extra`` appended as-is."""

    joined = " ".join(shlex.quote(token) for token in tokens)
    return f"{joined} {extra}" if extra else joined


def _ffplay_arguments(
    media: str, loop: bool, window: Optional[Tuple[int, int]]
) -> List[str]:
    # ffplay "offline.mp4" -fs -loop 0
    parts = [media]
    if window:
        parts.extend(["-x", str(window[0]), "-y", str(window[1])])
    else:
        parts.append("-fs")
    if loop:
        parts.extend(["-loop", "0"])
    return parts


def _omxplayer_arguments(
    media: str, loop: bool, window: Optional[Tuple[int, int]]
) -> List[str]:
    # omxplayer is always full screen unless told otherwise.
    parts = [media]
    if loop:
        parts.append("--loop")
    if window:
        parts.extend(["--win", f"0,0,{window[0]},{window[1]}"])
    return parts


class BackendKind(Enum):
    FFPLAY = FFPLAY
    OMXPLAYER = OMXPLAYER


@dataclass(frozen=True)
class PlayerBackend:
    kind: BackendKind
    program: str
    mode: InvocationMode
    build_arguments: ArgumentBuilder


BACKENDS = {
    BackendKind.FFPLAY: PlayerBackend(
        BackendKind.FFPLAY, FFPLAY, InvocationMode.EXPLICIT_PATH, _ffplay_arguments
    ),
    BackendKind.OMXPLAYER: PlayerBackend(
        BackendKind.OMXPLAYER,
        OMXPLAYER,
        InvocationMode.SHELL_LOOKUP,
        _omxplayer_arguments,
    ),
}


def select_backend(config: ViewerConfig) -> PlayerBackend:
    if config.explicit_mode_enabled:
        return BACKENDS[BackendKind.FFPLAY]
    return BACKENDS[BackendKind.OMXPLAYER]


def _invocation_mode(config: ViewerConfig) -> InvocationMode:
    if config.explicit_mode_enabled:
        return InvocationMode.EXPLICIT_PATH
    return InvocationMode.SHELL_LOOKUP


def media_for(
    state: ViewerState, config: ViewerConfig, livestream_url: Optional[str] = None
) -> str:
    if not isinstance(state, ViewerState) or state is ViewerState.UNSET:
        raise CommandResolutionError(f"Invalid viewer state: [{state}]")
    if state is ViewerState.LIVESTREAM:
        return livestream_url or config.livestream_url
    # Forward slashes on every platform.
    return f"{config.video_path}/{state.display_name}.{config.video_extension}"


def resolve_command(
    state: ViewerState, config: ViewerConfig, livestream_url: Optional[str] = None
) -> PlayerCommand:
    """Build the player invocation for ``state``. Nothing is launched here."""

    media = media_for(state, config, livestream_url)
    backend = select_backend(config)
    loop = state.loops
    window = TEST_MODE_WINDOW if config.test_mode_enabled else None

    tokens = tuple(backend.build_arguments(media, loop, window))
    extra = config.video_player_arguments.strip()

    return PlayerCommand(
        program=backend.program,
        arguments=join_arguments(tokens, extra),
        mode=backend.mode,
        media=media,
        loop=loop,
        window=window,
        tokens=tokens,
        extra_arguments=extra,
    )


def capture_command(url: str, config: ViewerConfig) -> PlayerCommand:
    """ffmpeg invocation that writes one frame per second of ``url``."""

    output = f"{FRAME_PREFIX}out%03d.{FRAME_EXTENSION}"
    tokens = ("-hide_banner", "-loglevel", "error", "-nostdin")
    tokens += ("-i", url, "-r", "1", output)
    return PlayerCommand(
        program=FFMPEG,
        arguments=join_arguments(tokens),
        mode=_invocation_mode(config),
        media=url,
        tokens=tokens,
    )
