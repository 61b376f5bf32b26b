"""
Structured business event logging.

Business events go to a dedicated ``business_events`` logger so they can be
routed separately from diagnostic logs. The payload travels in ``extra`` for
structured handlers and is also rendered into the message for plain ones.
"""

import logging
from typing import Any

business_logger = logging.getLogger("business_events")


def log_business_event(event: str, **data: Any) -> None:
    """Emit one business event, e.g. ``log_business_event("booking_created", booking_id=1)``."""
    business_logger.info(
        "%s %s",
        event,
        " ".join(f"{key}={value}" for key, value in sorted(data.items())),
        extra={"event": event, "event_data": data},
    )
