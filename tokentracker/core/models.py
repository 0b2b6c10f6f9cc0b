"""
Value objects and request types.

Defines token counts, prices, usage metrics and the parameters callers pass
when counting tokens for a text or a chat conversation.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence, Union

from .errors import ErrorKind, TokenTrackerError


@dataclass(frozen=True)
class TokenCount:
    """Input, response and total token tallies for one request.

    total_tokens must equal input_tokens + response_tokens; use
    TokenCount.of() to have the total computed.
    """
    input_tokens: int
    response_tokens: int
    total_tokens: int

    def __post_init__(self):
        """Validate non-negative counts and the total invariant."""
        if self.input_tokens < 0:
            raise TokenTrackerError(ErrorKind.INVALID_PARAMS, "input_tokens must be >= 0")
        if self.response_tokens < 0:
            raise TokenTrackerError(ErrorKind.INVALID_PARAMS, "response_tokens must be >= 0")
        if self.total_tokens != self.input_tokens + self.response_tokens:
            raise TokenTrackerError(
                ErrorKind.INVALID_PARAMS,
                f"total_tokens {self.total_tokens} != "
                f"{self.input_tokens} + {self.response_tokens}"
            )

    @classmethod
    def of(cls, input_tokens: int, response_tokens: int = 0) -> "TokenCount":
        return cls(input_tokens, response_tokens, input_tokens + response_tokens)


@dataclass(frozen=True)
class Price:
    """Cost of one call, split into input and output parts."""
    input_cost: float
    output_cost: float
    total_cost: float
    currency: str

    def __post_init__(self):
        """Validate non-negative costs and the total invariant."""
        if self.input_cost < 0:
            raise TokenTrackerError(ErrorKind.INVALID_PARAMS, "input_cost must be >= 0")
        if self.output_cost < 0:
            raise TokenTrackerError(ErrorKind.INVALID_PARAMS, "output_cost must be >= 0")
        if not math.isclose(self.total_cost, self.input_cost + self.output_cost,
                            rel_tol=1e-9, abs_tol=1e-12):
            raise TokenTrackerError(
                ErrorKind.INVALID_PARAMS,
                f"total_cost {self.total_cost} != {self.input_cost} + {self.output_cost}"
            )

    @classmethod
    def of(cls, input_cost: float, output_cost: float, currency: str) -> "Price":
        return cls(input_cost, output_cost, input_cost + output_cost, currency)


@dataclass(frozen=True)
class UsageMetrics:
    """Complete record of one tracked LLM call."""
    token_count: TokenCount
    price: Price
    duration: timedelta
    timestamp: datetime
    model: str
    provider: str


@dataclass(frozen=True)
class ContentPart:
    """One part of a multi-part message: text or image."""
    type: str
    text: str = ""
    image: Any = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type}
        if self.text:
            data["text"] = self.text
        if self.image is not None:
            data["image"] = self.image
        return data


@dataclass(frozen=True)
class TextContent:
    """Message content made of a single string."""
    text: str


@dataclass(frozen=True)
class PartsContent:
    """Message content made of ordered text/image parts."""
    parts: tuple

    def texts(self) -> List[str]:
        return [part.text for part in self.parts if part.type == "text"]


MessageContent = Union[TextContent, PartsContent]


def _to_content(content: Any) -> MessageContent:
    if isinstance(content, (TextContent, PartsContent)):
        return content
    if isinstance(content, str):
        return TextContent(content)
    if isinstance(content, (list, tuple)):
        parts = []
        for part in content:
            if isinstance(part, ContentPart):
                parts.append(part)
            elif isinstance(part, dict):
                parts.append(ContentPart(
                    type=str(part.get("type", "")),
                    text=part.get("text") or "",
                    image=part.get("image"),
                ))
            else:
                raise TokenTrackerError(
                    ErrorKind.INVALID_PARAMS,
                    f"unsupported content part type: {type(part).__name__}"
                )
        return PartsContent(tuple(parts))
    raise TokenTrackerError(
        ErrorKind.INVALID_PARAMS,
        f"unsupported message content type: {type(content).__name__}"
    )


@dataclass(frozen=True)
class Message:
    """A chat message.

    content accepts a string or a sequence of ContentPart/dict parts and is
    stored as TextContent or PartsContent.
    """
    role: str
    content: MessageContent

    def __post_init__(self):
        object.__setattr__(self, "content", _to_content(self.content))

    def to_dict(self) -> Dict[str, Any]:
        if isinstance(self.content, TextContent):
            return {"role": self.role, "content": self.content.text}
        return {"role": self.role, "content": [p.to_dict() for p in self.content.parts]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        return cls(role=str(data.get("role", "")), content=data.get("content", ""))


@dataclass(frozen=True)
class Tool:
    """A function or tool definition offered to the model."""
    type: str
    function: Any = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type}
        if self.function is not None:
            data["function"] = self.function
        return data


@dataclass(frozen=True)
class ToolChoice:
    """Tool choice specification."""
    type: str = ""
    function: Any = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.type:
            data["type"] = self.type
        if self.function is not None:
            data["function"] = self.function
        return data


@dataclass(frozen=True)
class TokenCountParams:
    """Parameters for a token counting request.

    Either text or a non-empty messages list must be supplied. When both
    are present only text is counted.
    """
    model: str
    text: Optional[str] = None
    messages: Sequence[Message] = field(default_factory=tuple)
    tools: Sequence[Tool] = field(default_factory=tuple)
    tool_choice: Optional[ToolChoice] = None
    count_response_tokens: bool = False


@dataclass(frozen=True)
class CallParams:
    """Parameters describing an LLM call being tracked."""
    model: str
    params: TokenCountParams
    start_time: datetime = field(default_factory=datetime.now)


class TokenCountSource(ABC):
    """Capability for responses that already know their output token count.

    Response objects passed to TokenTracker.track_usage may subclass this
    (or be registered with TokenCountSource.register) so the tracker uses
    the measured count instead of estimating one.
    """

    @abstractmethod
    def get_token_count(self) -> int:
        """Number of output tokens in the response."""
