"""
Data Models for Call Flows.

A stored flow definition is either a graph of blocks (the editor format) or
a flat legacy object. Both are parsed once, at the boundary, into immutable
models; the compiler only ever reads them.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union
from urllib.parse import urlencode

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..errors import FlowConfigError


# =============================================================================
# Block Models
# =============================================================================


class BlockType(str, Enum):
    """Available block types."""

    SAY = "say"
    GATHER = "gather"
    FORWARD = "forward"
    RECORD = "record"
    PAUSE = "pause"
    PLAY = "play"
    HANGUP = "hangup"
    SMS = "sms"
    MULTI_FORWARD = "multi_forward"


class FlowFormat(str, Enum):
    """Stored flow definition formats."""

    GRAPH = "graph"
    LEGACY = "legacy"


def _as_id(value: Any) -> Any:
    # Editors and hand-written seeds use both numeric and string ids
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


class Position(BaseModel):
    """Canvas position of a block. Presentation only."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    x: float = 0.0
    y: float = 0.0


class GatherOption(BaseModel):
    """A menu option of a gather block."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    digit: str = ""
    text: str = ""
    action: str = ""
    block_id: Optional[str] = Field(default=None, alias="blockId")
    number: Optional[str] = None

    @field_validator("digit", "block_id", mode="before")
    @classmethod
    def coerce_identifiers(cls, v: Any) -> Any:
        return _as_id(v)

    @field_validator("text", "action", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> Any:
        return "" if v is None else v


class Block(BaseModel):
    """One node of a call flow."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(..., min_length=1)
    type: BlockType
    config: Dict[str, Any] = Field(default_factory=dict)
    connections: Tuple[str, ...] = ()
    position: Position = Field(default_factory=Position)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        return _as_id(v)

    @field_validator("config", mode="before")
    @classmethod
    def default_config(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("connections", mode="before")
    @classmethod
    def coerce_connections(cls, v: Any) -> Any:
        if v is None:
            return ()
        if isinstance(v, (list, tuple)):
            # A null entry never resolves, so traversal stops there
            return tuple("" if item is None else _as_id(item) for item in v)
        return v

    @field_validator("position", mode="before")
    @classmethod
    def default_position(cls, v: Any) -> Any:
        return {} if v is None else v

    def gather_options(self) -> List[GatherOption]:
        """Menu options of a gather block. Malformed entries are skipped."""
        raw = self.config.get("options")
        if not isinstance(raw, list):
            return []

        options = []
        for item in raw:
            if not isinstance(item, Mapping):
                continue
            try:
                options.append(GatherOption.model_validate(item))
            except ValidationError:
                continue
        return options


# =============================================================================
# Flow Models
# =============================================================================


class GraphFlow(BaseModel):
    """Block-based flow definition."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    blocks: Tuple[Block, ...]
    voice: Optional[str] = None
    version: Optional[str] = None
    name: Optional[str] = None

    @property
    def format(self) -> FlowFormat:
        return FlowFormat.GRAPH


class LegacyMenu(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    prompt: Optional[str] = None
    options: Any = None
    action: Optional[str] = None


class LegacyVoicemail(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    prompt: Optional[str] = None
    callback: Optional[str] = None


class LegacyForward(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    number: Optional[str] = None

    @field_validator("number", mode="before")
    @classmethod
    def coerce_number(cls, v: Any) -> Any:
        return _as_id(v)


class LegacyFlow(BaseModel):
    """Pre-graph flat flow definition."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    greeting: Optional[str] = None
    menu: Optional[LegacyMenu] = None
    voicemail: Optional[LegacyVoicemail] = None
    forward: Optional[LegacyForward] = None
    voice: Optional[str] = None

    @property
    def format(self) -> FlowFormat:
        return FlowFormat.LEGACY


FlowDefinition = Union[GraphFlow, LegacyFlow]


def parse_flow_config(raw: Union[str, bytes, Mapping[str, Any]]) -> FlowDefinition:
    """
    Parse a stored flow definition.

    A non-empty ``blocks`` list selects the graph format; anything else is
    read as a legacy flow.

    Args:
        raw: Flow config as stored (JSON string or decoded object)

    Returns:
        GraphFlow or LegacyFlow

    Raises:
        FlowConfigError: If the config cannot be parsed into either format
    """
    data: Any = raw
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise FlowConfigError("Flow config is not valid JSON", {"error": str(e)}) from e

    if not isinstance(data, Mapping):
        raise FlowConfigError(
            "Flow config must be an object",
            {"received": type(data).__name__},
        )

    blocks = data.get("blocks")
    if blocks is not None and not isinstance(blocks, list):
        raise FlowConfigError(
            "Flow config 'blocks' must be a list",
            {"received": type(blocks).__name__},
        )

    try:
        if blocks:
            return GraphFlow.model_validate(data)
        return LegacyFlow.model_validate(data)
    except ValidationError as e:
        raise FlowConfigError(
            "Flow config failed validation",
            {
                "errors": [
                    {"loc": [str(part) for part in err["loc"]], "msg": err["msg"]}
                    for err in e.errors()
                ],
            },
        ) from e


# =============================================================================
# Call Context
# =============================================================================


@dataclass(frozen=True)
class CallContext:
    """Per-call data passed into the compiler. Never persisted."""

    call_sid: str = ""
    caller: str = ""
    called: str = ""

    # Root for callback URLs, including the webhook prefix. When empty the
    # URLs are relative to the document that issued them.
    callback_base_url: str = ""

    def _callback(self, path: str, params: Dict[str, str]) -> str:
        query = urlencode(params)
        if self.callback_base_url:
            return f"{self.callback_base_url.rstrip('/')}/{path}?{query}"
        return f"{path}?{query}"

    def gather_url(self, block_id: str) -> str:
        """Action URL for digits collected by a gather block."""
        return self._callback("gather", {"blockId": block_id})

    def status_callback_url(self) -> str:
        """Status callback URL for transferred calls."""
        return self._callback("status", {"callSid": self.call_sid})


__all__ = [
    "BlockType",
    "FlowFormat",
    "Position",
    "GatherOption",
    "Block",
    "GraphFlow",
    "LegacyMenu",
    "LegacyVoicemail",
    "LegacyForward",
    "LegacyFlow",
    "FlowDefinition",
    "parse_flow_config",
    "CallContext",
]
