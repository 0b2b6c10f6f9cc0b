"""
Vendor response classification.

A response handed to a provider is either a typed SDK object (usage read
through attributes) or a string-keyed mapping (usage read through keys).
Anything else is rejected before any field is looked at.
"""

import math
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from numbers import Real
from typing import Any

from ..core.errors import ErrorKind, TokenTrackerError
from ..core.models import TokenCount

_SCALAR_TYPES = (str, bytes, bytearray, int, float, complex, bool, list, tuple, set, frozenset)


class ResponseKind(Enum):
    """Supported response representations."""
    SDK_OBJECT = "sdk_object"
    MAPPING = "mapping"


@dataclass(frozen=True)
class RawResponse:
    """A response tagged with its representation."""
    kind: ResponseKind
    payload: Any


@dataclass(frozen=True)
class UsageFieldMap:
    """Where a vendor puts its usage numbers.

    Keys apply to mapping responses, attributes to SDK objects.
    """
    container_key: str
    input_key: str
    output_key: str
    container_attr: str
    input_attr: str
    output_attr: str


def classify_response(response: Any) -> RawResponse:
    """Tag a response as a mapping or an SDK object.

    Raises:
        TokenTrackerError: INVALID_PARAMS if response is None or not an object
    """
    if response is None:
        raise TokenTrackerError(ErrorKind.INVALID_PARAMS, "response is None")
    if isinstance(response, Mapping):
        return RawResponse(ResponseKind.MAPPING, response)
    if isinstance(response, _SCALAR_TYPES):
        raise TokenTrackerError(
            ErrorKind.INVALID_PARAMS,
            f"response is not an object: {type(response).__name__}"
        )
    return RawResponse(ResponseKind.SDK_OBJECT, response)


def _as_count(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, Real):
        raise TokenTrackerError(
            ErrorKind.INVALID_PARAMS,
            f"token count {field_name} is not numeric"
        )
    if not math.isfinite(value) or value < 0 or value != int(value):
        raise TokenTrackerError(
            ErrorKind.INVALID_PARAMS,
            f"token count {field_name} is invalid: {value}"
        )
    return int(value)


def read_token_count(raw: RawResponse, fields: UsageFieldMap) -> TokenCount:
    """Read input/output usage from a classified response.

    The total is recomputed from the two counts.
    """
    if raw.kind == ResponseKind.MAPPING:
        usage = raw.payload.get(fields.container_key)
        if not isinstance(usage, Mapping):
            raise TokenTrackerError(
                ErrorKind.INVALID_PARAMS,
                "usage information not found in response"
            )
        if fields.input_key not in usage or fields.output_key not in usage:
            raise TokenTrackerError(
                ErrorKind.INVALID_PARAMS,
                "token counts not found in response"
            )
        input_tokens = _as_count(usage[fields.input_key], fields.input_key)
        output_tokens = _as_count(usage[fields.output_key], fields.output_key)
    else:
        usage = getattr(raw.payload, fields.container_attr, None)
        if usage is None:
            raise TokenTrackerError(
                ErrorKind.INVALID_PARAMS,
                "usage information not found in response"
            )
        input_tokens = _as_count(getattr(usage, fields.input_attr, None), fields.input_attr)
        output_tokens = _as_count(getattr(usage, fields.output_attr, None), fields.output_attr)

    return TokenCount.of(input_tokens, output_tokens)
