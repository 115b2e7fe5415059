"""
Typed gateway outcomes stored on escrow events.

``EscrowEvent.provider_response`` is persisted as JSON, but code never
reads it as a loose dict: it is parsed into one of the variants below,
discriminated by the ``kind`` key. Anything that does not match a known
shape becomes ``UnknownOutcome`` so reconciliation stays exhaustive.

Usage:
    outcome = parse_outcome(event.provider_response)
    match outcome:
        case TransferConfirmed(confirmed_at=when):
            ...
        case TransferFailed(reason=reason):
            ...
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Union

from escrow.states import TransferStatus


@dataclass(frozen=True)
class TransferPending:
    """Movement submitted (or timed out); waiting for gateway confirmation."""

    transfer_id: str | None = None
    timed_out: bool = False

    kind = "pending"
    status = TransferStatus.PENDING


@dataclass(frozen=True)
class TransferConfirmed:
    confirmed_at: str
    transfer_id: str | None = None

    kind = "confirmed"
    status = TransferStatus.CONFIRMED


@dataclass(frozen=True)
class TransferFailed:
    failed_at: str
    reason: str = "Transfer failed"
    transfer_id: str | None = None

    kind = "failed"
    status = TransferStatus.FAILED


@dataclass(frozen=True)
class TransferReversed:
    reversed_at: str
    transfer_id: str | None = None

    kind = "reversed"
    status = TransferStatus.REVERSED


@dataclass(frozen=True)
class UnknownOutcome:
    """Payload we could not interpret; kept verbatim for operators."""

    raw: dict[str, Any] = field(default_factory=dict)

    kind = "unknown"
    status = TransferStatus.PENDING


TransferOutcome = Union[
    TransferPending,
    TransferConfirmed,
    TransferFailed,
    TransferReversed,
    UnknownOutcome,
]

_VARIANTS: dict[str, type] = {
    cls.kind: cls
    for cls in (TransferPending, TransferConfirmed, TransferFailed, TransferReversed)
}


def serialize_outcome(outcome: TransferOutcome) -> dict[str, Any]:
    """Convert an outcome to the JSON stored on the event."""
    return {"kind": outcome.kind, **asdict(outcome)}


def parse_outcome(payload: dict[str, Any] | None) -> TransferOutcome:
    """
    Parse a stored provider response into a typed outcome.

    Empty payloads are pending (nothing heard yet). Payloads with an
    unknown kind or unexpected fields fall back to UnknownOutcome.
    """
    if not payload:
        return TransferPending()
    if not isinstance(payload, dict):
        return UnknownOutcome(raw={"value": payload})

    data = dict(payload)
    kind = data.pop("kind", None)
    if kind == UnknownOutcome.kind:
        return UnknownOutcome(raw=data.get("raw") or {})

    variant = _VARIANTS.get(kind)
    if variant is None:
        return UnknownOutcome(raw=dict(payload))
    try:
        return variant(**data)
    except TypeError:
        return UnknownOutcome(raw=dict(payload))


def webhook_received(outcome: TransferOutcome) -> bool:
    """True once the gateway has told us how the transfer ended."""
    return isinstance(outcome, (TransferConfirmed, TransferFailed, TransferReversed))


def failure_reason(outcome: TransferOutcome) -> str | None:
    if isinstance(outcome, TransferFailed):
        return outcome.reason
    return None


def is_timed_out(outcome: TransferOutcome | None) -> bool:
    """True when the gateway call timed out and the outcome is still unknown."""
    return isinstance(outcome, TransferPending) and outcome.timed_out
