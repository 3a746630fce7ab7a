"""CoinAPI websocket messages.

Outbound there is only the ``hello`` handshake. Inbound frames are parsed into
``TradeFrame``, ``ErrorFrame`` or ``UnknownFrame``; anything that is not valid
JSON or does not match a known shape becomes ``UnknownFrame`` and is ignored.
"""

import json
import logging
from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from coinfeed.config.enumerations import FrameType

logger = logging.getLogger(__name__)


class HelloModel(BaseModel):
    type: Literal["hello"] = "hello"
    apikey: str
    heartbeat: bool = False
    subscribe_data_type: List[str] = Field(default_factory=lambda: ["trade"])
    subscribe_filter_asset_id: List[str]
    model_config = ConfigDict(frozen=True, extra="forbid")


class TradeFrame(BaseModel):
    """A single trade tick.

    CoinAPI sends more fields (uuid, size, taker_side, sequence, ...); only the
    ones needed for a price update are kept.
    """

    type: Literal["trade"] = "trade"
    symbol_id: str
    price: float
    time_exchange: Optional[str] = None
    model_config = ConfigDict(frozen=True, extra="ignore")

    @property
    def frame_type(self) -> FrameType:
        return FrameType.TRADE


class ErrorFrame(BaseModel):
    type: Literal["error"] = "error"
    message: str = "Unknown provider error"
    model_config = ConfigDict(frozen=True, extra="ignore")

    @property
    def frame_type(self) -> FrameType:
        return FrameType.ERROR


class UnknownFrame(BaseModel):
    type: Optional[str] = None
    raw: Any = None
    model_config = ConfigDict(frozen=True)

    @property
    def frame_type(self) -> FrameType:
        return FrameType.UNKNOWN


Frame = Union[TradeFrame, ErrorFrame, UnknownFrame]


def parse_frame(message: Union[str, bytes]) -> Frame:
    """Parse one inbound websocket message. Never raises."""
    try:
        payload = json.loads(message)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError):
        logger.debug("Dropping unparseable frame: %.200s", message)
        return UnknownFrame(raw=message)

    if not isinstance(payload, dict):
        return UnknownFrame(raw=payload)

    frame_type = payload.get("type")

    # An error frame always terminates, whatever shape its message has
    if frame_type == FrameType.ERROR.value:
        message = payload.get("message")
        return ErrorFrame(message=str(message)) if message else ErrorFrame()

    try:
        if frame_type == FrameType.TRADE.value:
            return TradeFrame.model_validate(payload)
    except ValidationError as e:
        logger.debug("Dropping malformed %s frame: %s", frame_type, e)

    return UnknownFrame(type=frame_type if isinstance(frame_type, str) else None, raw=payload)
