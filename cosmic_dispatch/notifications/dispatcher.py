"""Per-subscriber delivery with failure classification and endpoint bookkeeping."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import anyio
from anyio import CapacityLimiter, to_thread

from cosmic_dispatch.notifications.contracts import (
  DispatchOutcome,
  EmailSender,
  FailureKind,
  InvalidEmailRecipientError,
  InvalidPushSubscriptionError,
  NotificationContent,
  PushNotification,
  PushSender,
  Subscription,
  SubscriberStore,
  TransientEmailProviderError,
  TransientPushProviderError,
)
from cosmic_dispatch.notifications.email_sender import classify_email_status
from cosmic_dispatch.notifications.push_sender import classify_failure
from cosmic_dispatch.notifications.template_renderer import build_event_email

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class DeliveryPayload:
  """Content chosen for one subscriber, already personalized when the rules allowed it."""

  content: NotificationContent
  personalized: bool = False
  recipient_name: str | None = None


class DeliveryDispatcher:
  """Send one payload to one subscription and turn every failure into an outcome."""

  def __init__(self, *, store: SubscriberStore, push_sender: PushSender, email_sender: EmailSender, push_enabled: bool, email_enabled: bool, timeout_seconds: float, concurrency: int = 25) -> None:
    self._store = store
    self._push_sender = push_sender
    self._email_sender = email_sender
    self._push_enabled = push_enabled
    self._email_enabled = email_enabled
    self._timeout_seconds = timeout_seconds
    # Worker threads for provider calls; admission and thread slots share the fan-out width.
    self._slots = CapacityLimiter(concurrency)
    self._threads = CapacityLimiter(concurrency)

  async def dispatch(self, subscription: Subscription, payload: DeliveryPayload) -> DispatchOutcome:
    """Deliver over push, then email when configured; never raises for delivery errors."""
    push_sent = False
    failure: FailureKind | None = None
    error: str | None = None

    if self._push_enabled:
      failure, error = await self._send_push(subscription, payload.content)
      push_sent = failure is None

    if push_sent:
      await self._record_sent(subscription)
    elif failure is FailureKind.PERMANENT:
      await self._deactivate(subscription)

    email_status: str | None = None
    email_failure: FailureKind | None = None
    # Email follows a delivered push; an endpoint that just failed is not a reachable recipient.
    if self._email_enabled and subscription.user_email and (push_sent or not self._push_enabled):
      email_failure = await self._send_email(subscription, payload)
      email_status = "sent" if email_failure is None else "failed"

    return DispatchOutcome(
      success=push_sent or email_status == "sent", endpoint=subscription.endpoint, user_id=subscription.user_id, push_sent=push_sent, email_status=email_status, failure=failure, email_failure=email_failure, personalized=payload.personalized, error=error
    )

  async def _send_push(self, subscription: Subscription, content: NotificationContent) -> tuple[FailureKind | None, str | None]:
    notification = PushNotification(endpoint=subscription.endpoint, p256dh=subscription.p256dh, auth=subscription.auth, title=content.title, body=content.body, data=content.data, tag=content.tag)
    try:
      await self._call_with_timeout(self._push_sender.send, notification)
      return None, None

    except TimeoutError:
      logger.warning("Push delivery timed out after %.1fs endpoint=%s... user_id=%s", self._timeout_seconds, subscription.endpoint_preview, subscription.user_id or "anonymous")
      return FailureKind.TRANSIENT, f"timed out after {self._timeout_seconds:.1f}s"

    except InvalidPushSubscriptionError as exc:
      logger.info("Push endpoint rejected permanently endpoint=%s... user_id=%s: %s", subscription.endpoint_preview, subscription.user_id or "anonymous", exc)
      return FailureKind.PERMANENT, str(exc)

    except TransientPushProviderError as exc:
      logger.warning("Push delivery failed (provider error) endpoint=%s... user_id=%s: %s", subscription.endpoint_preview, subscription.user_id or "anonymous", exc)
      return FailureKind.TRANSIENT, str(exc)

    except Exception as exc:  # noqa: BLE001
      # Senders other than WebPushSender may surface raw provider errors; classify them the same way.
      kind = classify_failure(_status_code(exc), str(exc))
      logger.error("Push delivery failed endpoint=%s... user_id=%s failure=%s error=%s", subscription.endpoint_preview, subscription.user_id or "anonymous", kind.value, exc, exc_info=True)
      return kind, str(exc) or type(exc).__name__

  async def _send_email(self, subscription: Subscription, payload: DeliveryPayload) -> FailureKind | None:
    user_id = subscription.user_id or "anonymous"
    try:
      notification = build_event_email(content=payload.content, to_address=subscription.user_email or "", to_name=payload.recipient_name or subscription.preferences.name)
      await self._call_with_timeout(self._email_sender.send, notification)
      return None

    except TimeoutError:
      logger.warning("Email delivery timed out after %.1fs user_id=%s", self._timeout_seconds, user_id)
      return FailureKind.TRANSIENT

    except InvalidEmailRecipientError as exc:
      logger.info("Email rejected permanently user_id=%s: %s", user_id, exc)
      return FailureKind.PERMANENT

    except TransientEmailProviderError as exc:
      logger.warning("Email delivery failed (provider error) user_id=%s: %s", user_id, exc)
      return FailureKind.TRANSIENT

    except Exception as exc:  # noqa: BLE001
      status = _status_code(exc)
      kind = classify_email_status(status) if status is not None else FailureKind.TRANSIENT
      logger.error("Email delivery failed user_id=%s failure=%s error=%s", user_id, kind.value, exc, exc_info=True)
      return kind

  async def _record_sent(self, subscription: Subscription) -> None:
    try:
      await self._store.touch_last_sent(endpoint=subscription.endpoint)
    except Exception as exc:  # noqa: BLE001
      logger.error("Failed updating last-sent timestamp endpoint=%s...: %s", subscription.endpoint_preview, exc, exc_info=True)

  async def _deactivate(self, subscription: Subscription) -> None:
    try:
      await self._store.deactivate(endpoint=subscription.endpoint)
    except Exception as exc:  # noqa: BLE001
      logger.error("Failed deactivating push subscription endpoint=%s...: %s", subscription.endpoint_preview, exc, exc_info=True)

  async def _call_with_timeout(self, func: Callable[[Any], T], argument: Any) -> T:
    """Run a blocking provider call in a worker thread, timing only the call itself.

    The clock starts once a slot is held, so queueing behind other deliveries
    never counts against the per-send timeout. A timed-out thread is abandoned
    and finishes on its own; its thread slot is released immediately.
    """
    async with self._slots:
      with anyio.fail_after(self._timeout_seconds):
        return await to_thread.run_sync(func, argument, abandon_on_cancel=True, limiter=self._threads)


def _status_code(exc: Exception) -> int | None:
  status = getattr(exc, "status_code", None)
  if isinstance(status, int):
    return status
  response = getattr(exc, "response", None)
  status = getattr(response, "status_code", None)
  return status if isinstance(status, int) else None
