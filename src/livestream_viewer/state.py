from __future__ import annotations

from enum import Enum


class ViewerState(Enum):
    """What the display is showing.

    The value doubles as the file stem of the placeholder video for the
    looping states.
    """

    UNSET = "Unset"
    OFF_AIR = "OffAir"
    LIVESTREAM = "Livestream"
    OFFLINE = "Offline"

    @property
    def display_name(self) -> str:
        return self.value

    @property
    def loops(self) -> bool:
        return self in (ViewerState.OFF_AIR, ViewerState.OFFLINE)
