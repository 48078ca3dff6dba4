"""Shared enumerations used across the agent runtime."""

from __future__ import annotations

from enum import StrEnum

# -- Run ---------------------------------------------------------------------


class DryMode(StrEnum):
    """Where a dry run stops the per-input pipeline."""

    NONE = "none"
    REQ = "req"
    """Stop after rendering the instruction (no AI call, no Output)."""
    RES = "res"
    """Stop after the AI call (no Output)."""

    @classmethod
    def parse(cls, value: str | None) -> DryMode:
        """Parse a CLI value (``req``, ``res``, ``none``; case-insensitive).  ``None`` means no dry run.

        Raises ``ValueError`` for any other value.
        """
        if value is None:
            return cls.NONE
        try:
            return cls(value.strip().lower())
        except ValueError:
            choices = ", ".join(member.value for member in cls)
            raise ValueError(f"Unknown dry mode '{value}' (expected one of: {choices})") from None


# -- Agent -------------------------------------------------------------------


class PartKind(StrEnum):
    """Role of an instruction prompt part."""

    INSTRUCTION = "instruction"
    SYSTEM = "system"
    ASSISTANT = "assistant"


class Stage(StrEnum):
    """Hook stages, used in errors and events."""

    BEFORE_ALL = "Before All"
    DATA = "Data"
    OUTPUT = "Output"
    AFTER_ALL = "After All"


# -- Events ------------------------------------------------------------------


class EventType(StrEnum):
    """Progress events published during a run."""

    # Lifecycle
    RUN_STARTED = "run_started"
    RUN_COMPLETED = "run_completed"
    BEFORE_ALL_SKIPPED = "before_all_skipped"

    # Per input
    INPUT_STARTED = "input_started"
    INPUT_SKIPPED = "input_skipped"
    INPUT_COMPLETED = "input_completed"
    INSTRUCTION_RENDERED = "instruction_rendered"
    NO_INSTRUCTION = "no_instruction"
    AI_REQUEST_SENT = "ai_request_sent"
    AI_RESPONSE_RECEIVED = "ai_response_received"
    OUTPUT_PREVIEW = "output_preview"
