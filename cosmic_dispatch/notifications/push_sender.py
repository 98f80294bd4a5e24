"""Push notification delivery implementations."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from http import HTTPStatus

from pywebpush import WebPushException, webpush

from cosmic_dispatch.notifications.contracts import FailureKind, InvalidPushSubscriptionError, PushNotification, PushSender, TransientPushProviderError

logger = logging.getLogger(__name__)

_PERMANENT_STATUS_CODES = {HTTPStatus.GONE, HTTPStatus.NOT_FOUND}
_PERMANENT_MESSAGE_MARKERS = ("410", "404", "expired", "invalid", "unsubscribed", "gone", "not found")


@dataclass(frozen=True)
class VapidConfig:
  """Configuration required to sign Web Push requests."""

  public_key: str
  private_key: str
  sub: str


def classify_failure(status_code: int | None, message: str | None) -> FailureKind:
  """Decide whether a provider failure means the endpoint is gone for good.

  404/410 and provider messages mentioning expiry or invalid subscriptions are
  permanent. Everything else (network errors, timeouts, 5xx, 429) is transient
  and left for the next scheduled run.
  """
  if status_code is not None and status_code in _PERMANENT_STATUS_CODES:
    return FailureKind.PERMANENT

  # An explicit overload or server status wins over whatever the response body says.
  if status_code is not None and (status_code == HTTPStatus.TOO_MANY_REQUESTS or status_code >= 500):
    return FailureKind.TRANSIENT

  normalized = (message or "").lower()
  if any(marker in normalized for marker in _PERMANENT_MESSAGE_MARKERS):
    return FailureKind.PERMANENT

  return FailureKind.TRANSIENT


class WebPushSender(PushSender):
  """`pywebpush` backed sender that classifies provider failures."""

  def __init__(self, *, vapid_config: VapidConfig, timeout_seconds: float = 10.0) -> None:
    self._vapid_config = vapid_config
    self._timeout_seconds = timeout_seconds

  def send(self, notification: PushNotification) -> None:
    """Send a Web Push payload once; retries happen on the next scheduled trigger."""
    payload = {"title": notification.title, "body": notification.body, "tag": notification.tag, "data": notification.data}
    subscription_info = {"endpoint": notification.endpoint, "keys": {"p256dh": notification.p256dh, "auth": notification.auth}}

    try:
      webpush(subscription_info=subscription_info, data=json.dumps(payload), vapid_private_key=self._vapid_config.private_key, vapid_claims={"sub": self._vapid_config.sub}, timeout=self._timeout_seconds)
    except WebPushException as exc:
      status_code = _extract_status_code(exc)
      message = str(exc)
      if classify_failure(status_code, message) is FailureKind.PERMANENT:
        raise InvalidPushSubscriptionError(f"Push subscription is invalid (status={status_code if status_code else 'unknown'})") from exc

      raise TransientPushProviderError(f"Push delivery failed (status={status_code if status_code else 'unknown'})") from exc


class NullPushSender(PushSender):
  """No-op push sender used when push notifications are disabled."""

  def send(self, notification: PushNotification) -> None:
    """Drop the notification while recording a debug log."""
    logger.debug("Push notifications disabled; dropping push endpoint_present=%s", bool(notification.endpoint))


def _extract_status_code(exc: WebPushException) -> int | None:
  """Extract an HTTP status code from a pywebpush exception when available."""
  response = getattr(exc, "response", None)
  if response is None:
    return None

  status = getattr(response, "status_code", None)
  if isinstance(status, int):
    return status

  return None
