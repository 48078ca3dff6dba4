"""In-band control protocol for hook scripts.

A hook script normally returns plain data.  To steer the run it can instead
return a *directive*: a mapping carrying the ``_agentloop_`` marker::

    {"_agentloop_": {"kind": "Skip", "data": {"reason": "not a rust file"}}}

    {"_agentloop_": {
        "kind": "BeforeAllResponse",
        "data": {
            "inputs": ["a", "b", {"path": "c.md"}],   # list or None
            "shared": {"anything": "visible to every stage"},
            "options": {"model": "small", "input_concurrency": 4},
        },
    }}

Values are decoded once at the script boundary into the closed set
``Skip | BeforeAllResponse | Passthrough`` and matched exhaustively
downstream.  Scripts build directives with the :func:`skip` and
:func:`before_all_response` helpers rather than by hand.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from agentloop.agent_runtime.errors import ProtocolError

MARKER_KEY = "_agentloop_"

SKIP_KIND = "Skip"
BEFORE_ALL_RESPONSE_KIND = "BeforeAllResponse"

_BEFORE_ALL_FIELDS = frozenset({"inputs", "shared", "options"})


# ---------------------------------------------------------------------------
# Decoded values
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Skip:
    """Stop processing: the whole run at Before-All, the input at Data/Output."""

    reason: str | None = None


@dataclass(frozen=True, slots=True)
class BeforeAllResponse:
    """Run-plan override returned by the Before-All script.

    ``inputs=None`` leaves the previously supplied inputs unchanged.
    """

    inputs: list[Any] | None = None
    shared: Any = None
    options: Any = None


@dataclass(frozen=True, slots=True)
class Passthrough:
    """Ordinary script data (no marker)."""

    value: Any = field(default=None)


type Directive = Skip | BeforeAllResponse
type ScriptValue = Skip | BeforeAllResponse | Passthrough


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_directive(value: Any) -> ScriptValue:
    """Decode a script return value.

    Raises
    ------
    ProtocolError:
        The marker is present but its ``kind`` is unknown, or a
        ``BeforeAllResponse`` payload is malformed.
    """
    if not isinstance(value, Mapping) or MARKER_KEY not in value:
        return Passthrough(value)

    marker = value[MARKER_KEY]
    if not isinstance(marker, Mapping):
        raise ProtocolError(f"{MARKER_KEY} must be a mapping with a 'kind', got {type(marker).__name__}")

    kind = marker.get("kind")
    data = marker.get("data")

    if kind == SKIP_KIND:
        reason = data.get("reason") if isinstance(data, Mapping) else None
        return Skip(reason=None if reason is None else str(reason))

    if kind == BEFORE_ALL_RESPONSE_KIND:
        return _parse_before_all_response(data)

    raise ProtocolError(f"{MARKER_KEY} kind '{kind}' is not known")


def expect_stage_directive(value: Any, stage: str) -> Skip | Passthrough:
    """Decode a Data/Output script value, where only ``Skip`` is legal."""
    match parse_directive(value):
        case Skip() as skip_directive:
            return skip_directive
        case Passthrough() as passthrough:
            return passthrough
        case BeforeAllResponse():
            raise ProtocolError(f"{MARKER_KEY} kind '{BEFORE_ALL_RESPONSE_KIND}' is not supported at the {stage} stage")


def _parse_before_all_response(data: Any) -> BeforeAllResponse:
    if not isinstance(data, Mapping):
        return BeforeAllResponse()

    extra = sorted(str(k) for k in data if k not in _BEFORE_ALL_FIELDS)
    if extra:
        raise ProtocolError(
            "before_all_response(data) can only have 'inputs', 'shared' and 'options', "
            f"but also contained: {', '.join(extra)}"
        )

    inputs = data.get("inputs")
    if inputs is not None and not isinstance(inputs, list | tuple):
        raise ProtocolError(
            f"before_all_response(data) 'inputs' must be a list or None, got {type(inputs).__name__}"
        )

    return BeforeAllResponse(
        inputs=list(inputs) if inputs is not None else None,
        shared=data.get("shared"),
        options=data.get("options"),
    )


# ---------------------------------------------------------------------------
# Script helpers (bound into every hook namespace)
# ---------------------------------------------------------------------------


def skip(reason: str | None = None) -> dict[str, Any]:
    """Build a ``Skip`` directive."""
    data = {"reason": reason} if reason is not None else {}
    return {MARKER_KEY: {"kind": SKIP_KIND, "data": data}}


def before_all_response(
    inputs: list[Any] | None = None,
    shared: Any = None,
    options: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Build a ``BeforeAllResponse`` directive."""
    return {
        MARKER_KEY: {
            "kind": BEFORE_ALL_RESPONSE_KIND,
            "data": {"inputs": inputs, "shared": shared, "options": options},
        }
    }
