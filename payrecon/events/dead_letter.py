from typing import Any, Dict, Optional

from payrecon.core.clock import utcnow
from payrecon.events.kinds import classify_event
from payrecon.models.dead_letter import DeadLetterEntry


async def record_dead_letter(
    provider: str,
    event_type: Optional[str],
    payload: Dict[str, Any],
    error_text: str,
    raw_body: Optional[bytes] = None,
    headers: Optional[Dict[str, Any]] = None,
    reference: Optional[str] = None,
    conn: Any = None
) -> DeadLetterEntry:
    """
    Captures a failed delivery with everything needed to replay it later.

    The first capture counts as attempt 1; replays increment from there.
    """
    return await DeadLetterEntry.create(
        provider=provider,
        event_type=event_type,
        event_kind=classify_event(event_type).value,
        reference=reference,
        payload=payload if isinstance(payload, dict) else {"raw": payload},
        raw_body=raw_body,
        headers=headers or {},
        error_text=error_text or "handler_error",
        attempts=1,
        last_error_at=utcnow(),
        using_db=conn
    )
