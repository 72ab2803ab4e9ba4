"""
Paid-Notification Listener — finalizes orders reported paid by the payment gateway.

The webhook route only verifies and enqueues notifications; this background
task drains the queue and calls OrderService.paid_order for each one, so the
gateway gets a fast acknowledgement and finalization runs off the request path.

Failure handling:
    - DependencyError / StorageError → retried up to notification_max_attempts,
      waiting notification_retry_seconds × attempt between tries
    - NotFoundError / ConflictError / other DomainError → logged and dropped
      (re-delivery would not change the outcome)

This runs as an asyncio background task during the FastAPI app lifespan.
"""
import asyncio
import hashlib
import hmac
import logging
from typing import Optional

from config import settings
from domain.errors import DependencyError, DomainError, StorageError
from models import PaidOrderNotification

logger = logging.getLogger(__name__)

# Listener state
_queue: Optional[asyncio.Queue] = None
_listener_task: Optional[asyncio.Task] = None
_order_service = None
_is_running: bool = False
_processed_count: int = 0
_failed_count: int = 0

TRANSIENT_ERRORS = (DependencyError, StorageError)


async def handle_notification(
    order_service,
    notification: PaidOrderNotification,
    *,
    max_attempts: Optional[int] = None,
    retry_seconds: Optional[float] = None,
) -> Optional[dict]:
    """
    Finalize one paid notification, retrying transient failures.

    Returns:
        The finalized order dict, or None if the notification was dropped.
    """
    max_attempts = max_attempts or settings.notification_max_attempts
    retry_seconds = settings.notification_retry_seconds if retry_seconds is None else retry_seconds

    for attempt in range(1, max_attempts + 1):
        try:
            return await order_service.paid_order(notification)
        except TRANSIENT_ERRORS as e:
            if attempt == max_attempts:
                logger.error(
                    f"  ❌ Paid notification for order {notification.order_id} failed after "
                    f"{max_attempts} attempt(s): {e}"
                )
                return None
            logger.warning(
                f"  Paid notification for order {notification.order_id} failed "
                f"(attempt {attempt}/{max_attempts}), retrying: {e}"
            )
            await asyncio.sleep(retry_seconds * attempt)
        except DomainError as e:
            logger.error(f"  ⚠️ Paid notification for order {notification.order_id} dropped: {e}")
            return None

    return None


def enqueue(notification: PaidOrderNotification) -> None:
    """Queue a notification for the running listener."""
    if _queue is None or not _is_running:
        raise RuntimeError("Payment listener is not running")
    _queue.put_nowait(notification)


async def _run() -> None:
    global _processed_count, _failed_count

    logger.info("Payment listener started")
    while _is_running:
        notification = await _queue.get()
        try:
            result = await handle_notification(_order_service, notification)
            if result is None:
                _failed_count += 1
            else:
                _processed_count += 1
        except Exception as e:
            # Keep the worker alive; the notification is logged as lost.
            _failed_count += 1
            logger.error(
                f"Unexpected error finalizing order {notification.order_id}: {e}", exc_info=True
            )
        finally:
            _queue.task_done()


async def start(order_service) -> None:
    """Start the listener as a background task."""
    global _queue, _listener_task, _order_service, _is_running

    if _is_running:
        logger.warning("Payment listener already running")
        return

    _order_service = order_service
    _queue = asyncio.Queue()
    _is_running = True
    _listener_task = asyncio.create_task(_run())


async def drain() -> None:
    """Wait until every queued notification has been handled."""
    if _queue is not None:
        await _queue.join()


async def stop() -> None:
    """Stop the listener."""
    global _listener_task, _is_running, _queue, _order_service

    _is_running = False
    if _listener_task:
        _listener_task.cancel()
        try:
            await _listener_task
        except asyncio.CancelledError:
            pass
        _listener_task = None

    pending = _queue.qsize() if _queue is not None else 0
    if pending:
        logger.warning(f"Payment listener stopped with {pending} unprocessed notification(s)")
    _queue = None
    _order_service = None
    logger.info("Payment listener stopped")


def get_status() -> dict:
    """Get current listener status."""
    return {
        "running": _is_running,
        "queued": _queue.qsize() if _queue is not None else 0,
        "processed": _processed_count,
        "failed": _failed_count,
    }


# ════════════════════════════════════════════════════════════════════
# Webhook Verification
# ════════════════════════════════════════════════════════════════════


def verify_webhook_signature(payload: bytes, signature: str) -> bool:
    """
    Verify the HMAC-SHA256 signature of a paid-order notification body.

    FAILS CLOSED when the secret is not configured.
    """
    if not settings.payment_webhook_secret:
        logger.error(
            "PAYMENT_WEBHOOK_SECRET not configured — rejecting notification. "
            "Set PAYMENT_WEBHOOK_SECRET in .env to accept paid-order notifications."
        )
        return False

    if not signature:
        logger.warning("Paid notification received without signature header")
        return False

    expected = hmac.new(
        settings.payment_webhook_secret.encode("utf-8"),
        payload,
        hashlib.sha256,
    ).hexdigest()

    return hmac.compare_digest(expected, signature)
