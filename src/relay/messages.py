"""Wire shape of the video sync commands exchanged through the relay."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

import orjson
from pydantic import BaseModel, ConfigDict, StrictFloat, StrictInt, StrictStr, ValidationError

from .errors import MalformedMessageError


class CommandType(str, Enum):
    PLAY = "play"
    PAUSE = "pause"
    SEEK = "seek"
    CHANGE_VIDEO = "changeVideo"


class VideoCommand(BaseModel):
    """Shallow shape check only; unknown keys are carried through."""

    model_config = ConfigDict(extra="allow")

    type: CommandType
    url: Optional[StrictStr] = None
    time: Optional[Union[StrictInt, StrictFloat]] = None


def parse_command(raw: Union[str, bytes]) -> Dict[str, Any]:
    """Decode *raw* and check it looks like a video command.

    Returns the decoded object untouched so it can be forwarded as-is.
    """

    try:
        obj = orjson.loads(raw)
    except orjson.JSONDecodeError as exc:
        raise MalformedMessageError(f"invalid JSON: {exc}") from exc
    if not isinstance(obj, dict):
        raise MalformedMessageError(f"expected an object, got {type(obj).__name__}")
    try:
        VideoCommand.model_validate(obj)
    except ValidationError as exc:
        raise MalformedMessageError(f"bad command shape: {exc.error_count()} error(s)") from exc
    return obj


def encode_command(obj: Dict[str, Any]) -> str:
    try:
        return orjson.dumps(obj).decode("utf-8")
    except orjson.JSONEncodeError as exc:
        raise MalformedMessageError(f"cannot re-encode command: {exc}") from exc


@dataclass
class VideoState:
    """Playback state rebuilt on the client side from the command stream."""

    current_video: Optional[str] = None
    is_playing: bool = False
    current_time: float = 0.0

    def apply(self, command: Dict[str, Any]) -> None:
        typ = command.get("type")
        time = command.get("time")
        if typ == CommandType.PLAY.value:
            self.is_playing = True
            if time is not None:
                self.current_time = float(time)
        elif typ == CommandType.PAUSE.value:
            self.is_playing = False
            if time is not None:
                self.current_time = float(time)
        elif typ == CommandType.SEEK.value:
            if time is not None:
                self.current_time = float(time)
        elif typ == CommandType.CHANGE_VIDEO.value:
            self.current_video = command.get("url")
            self.current_time = float(time) if time is not None else 0.0
            self.is_playing = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currentVideo": self.current_video,
            "isPlaying": self.is_playing,
            "currentTime": self.current_time,
        }


__all__ = [
    "CommandType",
    "VideoCommand",
    "VideoState",
    "parse_command",
    "encode_command",
]
