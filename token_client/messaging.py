"""
Message delivery helper: on a failed send, retry exactly once before giving up.
"""
import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)


class DeliveryFailed(Exception):
    """Both the send and its single retry failed."""


def send_with_retry(send: Callable[[Any], Any], message: Any) -> int:
    """
    Call send(message); if it raises, call it once more.
    Returns the number of attempts used (1 or 2). Raises DeliveryFailed after the retry fails.
    """
    try:
        send(message)
        return 1
    except Exception as first:
        logger.warning("Send failed, retrying once: %s", first)
    try:
        send(message)
    except Exception as second:
        raise DeliveryFailed("message not delivered after retry") from second
    logger.info("Delivered on retry")
    return 2
