"""
One-way application events.

The wizard and the billing dialog publish their submissions here and return
at once; receivers own persistence and report their own failures.
"""
import logging
from typing import Any, Dict

from blinker import Namespace

logger = logging.getLogger(__name__)

_signals = Namespace()

APPOINTMENT_REQUESTED = 'appointment-requested'
APPOINTMENT_COMPLETION_REQUESTED = 'appointment-completion-requested'

appointment_requested = _signals.signal(APPOINTMENT_REQUESTED)
appointment_completion_requested = _signals.signal(APPOINTMENT_COMPLETION_REQUESTED)


def publish_event(event_type: str, payload: Dict[str, Any]) -> int:
    """
    Send ``payload`` to every receiver of ``event_type``.

    Returns:
        Number of receivers notified

    Raises:
        ValueError: if the event type is unknown
    """
    signal = _signals.get(event_type)
    if signal is None:
        raise ValueError(f"Unknown event type: {event_type}")

    results = signal.send(event_type, payload=payload)
    logger.info(f"[EVENTS] {event_type} delivered to {len(results)} receiver(s)")
    return len(results)
