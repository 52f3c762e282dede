"""Netcast remote key codes.

The integer values are defined by the TV firmware and must not change.
"""

from enum import IntEnum
from typing import Optional


class KeyCode(IntEnum):
    POWER = 1
    NUM_0 = 2
    NUM_1 = 3
    NUM_2 = 4
    NUM_3 = 5
    NUM_4 = 6
    NUM_5 = 7
    NUM_6 = 8
    NUM_7 = 9
    NUM_8 = 10
    NUM_9 = 11
    UP = 12
    DOWN = 13
    LEFT = 14
    RIGHT = 15
    OK = 20
    HOME = 21
    MENU = 22
    BACK = 23
    VOL_UP = 24
    VOL_DOWN = 25
    MUTE = 26
    CH_UP = 27
    CH_DOWN = 28
    BLUE = 29
    GREEN = 30
    RED = 31
    YELLOW = 32
    PLAY = 33
    PAUSE = 34
    STOP = 35
    FF = 36
    REW = 37
    SKIP_FORWARD = 38
    SKIP_BACKWARD = 39
    RECORD = 40
    RECORDING_LIST = 41
    REPEAT = 42
    LIVE_TV = 43
    GUIDE = 44  # EPG
    INFO = 45
    RATIO = 46
    INPUT = 47
    PIP_SECONDARY_VIDEO = 48
    SUBTITLE = 49
    LIST = 50
    TELE_TEXT = 51
    MARK = 52
    VIDEO_3D = 400
    AUDIO_3D_L_R = 401
    DASH = 402
    Q_VIEW = 403
    FAVORITE_CHANNEL = 404
    Q_MENU = 405
    TEXT_OPTION = 406
    AUDIO_DESCRIPTION = 407
    NETCAST_KEY = 408
    ENERGY_SAVING = 409
    AV_MODE = 410
    SIMPLINK = 411
    EXIT = 412
    RESERVATION_PROGRAM_LIST = 413
    PIP_CHANNEL_UP = 414
    PIP_CHANNEL_DOWN = 415
    SWITCHING_PRIMARY_SECONDARY_VIDEO = 416
    MY_APPS = 417


WHEEL_UP = "up"
WHEEL_DOWN = "down"


def parse_key(name: str) -> Optional[KeyCode]:
    """Look up a key by name ("vol_up", "VOL-UP", "5") or numeric code."""
    text = name.strip().upper().replace('-', '_')
    if text.isdigit():
        if len(text) == 1:
            return KeyCode[f"NUM_{text}"]
        try:
            return KeyCode(int(text))
        except ValueError:
            return None
    return KeyCode.__members__.get(text)
