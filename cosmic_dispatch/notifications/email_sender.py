"""Email channel for cosmic event notifications.

MailerSend is called over its HTTP API (not SMTP) with the standard library.
Provider failures are raised as typed errors so the dispatcher records them
with the same permanent/transient split it applies to push: a rejected message
or recipient will fail again on the next trigger, while throttling, server
errors and network trouble may not.
"""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass

from cosmic_dispatch.notifications.contracts import EmailNotification, EmailSender, FailureKind, InvalidEmailRecipientError, TransientEmailProviderError

logger = logging.getLogger(__name__)

# MailerSend accepts at most five tags per message.
MAX_TAGS = 5
_RETRYABLE_CLIENT_STATUSES = frozenset({408, 429})


@dataclass(frozen=True)
class MailerSendConfig:
  """MailerSend configuration needed to send emails."""

  api_key: str
  from_address: str
  from_name: str | None
  timeout_seconds: int
  base_url: str = "https://api.mailersend.com/v1"


def classify_email_status(status_code: int) -> FailureKind:
  """Map a MailerSend HTTP status to a failure kind.

  Validation and auth errors (4xx) repeat on every trigger, so they are
  permanent. Request timeouts, rate limits and 5xx are transient.
  """
  if 400 <= status_code < 500 and status_code not in _RETRYABLE_CLIENT_STATUSES:
    return FailureKind.PERMANENT
  return FailureKind.TRANSIENT


def redact_address(address: str) -> str:
  """Keep the domain and first character of an address for logs."""
  local, _, domain = address.partition("@")
  if not domain:
    return "***"
  return f"{local[:1]}***@{domain}"


def _provider_message(raw_body: str) -> str | None:
  # MailerSend error bodies look like {"message": "...", "errors": {"to.0.email": ["..."]}}.
  try:
    body = json.loads(raw_body) if raw_body else {}
  except json.JSONDecodeError:
    return raw_body[:200] or None
  if not isinstance(body, dict):
    return None
  message = body.get("message")
  errors = body.get("errors")
  if isinstance(errors, dict) and errors:
    field_name, reasons = next(iter(errors.items()))
    reason = reasons[0] if isinstance(reasons, list) and reasons else reasons
    return f"{message or 'rejected'} ({field_name}: {reason})"
  return message if isinstance(message, str) else None


class MailerSendEmailSender(EmailSender):
  """MailerSend-backed email sender using the provider API."""

  def __init__(self, *, config: MailerSendConfig) -> None:
    self._config = config

  def _payload(self, notification: EmailNotification) -> dict[str, object]:
    from_payload: dict[str, str] = {"email": self._config.from_address}
    if self._config.from_name:
      from_payload["name"] = self._config.from_name

    to_payload: dict[str, str] = {"email": notification.to_address}
    if notification.to_name:
      to_payload["name"] = notification.to_name

    payload: dict[str, object] = {"from": from_payload, "to": [to_payload], "subject": notification.subject, "text": notification.text, "html": notification.html}
    tags = [tag for tag in notification.tags if tag][:MAX_TAGS]
    if tags:
      payload["tags"] = tags
    return payload

  def send(self, notification: EmailNotification) -> dict[str, str | None]:
    """Send one email and return provider identifiers.

    Raises InvalidEmailRecipientError for permanent rejections and
    TransientEmailProviderError for anything a later trigger may get through.
    """
    request = urllib.request.Request(
      url=f"{self._config.base_url}/email",
      data=json.dumps(self._payload(notification)).encode("utf-8"),
      method="POST",
      headers={"Authorization": f"Bearer {self._config.api_key}", "Content-Type": "application/json", "Accept": "application/json"},
    )
    recipient = redact_address(notification.to_address)

    try:
      with urllib.request.urlopen(request, timeout=self._config.timeout_seconds) as response:
        headers = dict(response.headers.items()) if response else {}

    except urllib.error.HTTPError as exc:
      raw_error = exc.read().decode("utf-8", errors="replace") if exc.fp else ""
      detail = _provider_message(raw_error) or exc.reason
      kind = classify_email_status(exc.code)
      logger.warning("MailerSend rejected email to=%s status=%s failure=%s: %s", recipient, exc.code, kind.value, detail)
      error_type = InvalidEmailRecipientError if kind is FailureKind.PERMANENT else TransientEmailProviderError
      raise error_type(f"MailerSend status={exc.code}: {detail}") from exc

    except (urllib.error.URLError, TimeoutError) as exc:
      reason = getattr(exc, "reason", exc)
      logger.warning("MailerSend unreachable for email to=%s: %s", recipient, reason)
      raise TransientEmailProviderError(f"MailerSend unreachable: {reason}") from exc

    message_id = headers.get("X-Message-Id") or headers.get("X-Message-ID")
    logger.debug("MailerSend accepted email to=%s message_id=%s", recipient, message_id)
    return {"provider": "mailersend", "message_id": message_id or None, "request_id": headers.get("X-Request-Id") or headers.get("X-Request-ID")}


class NullEmailSender(EmailSender):
  """No-op email sender used when the email channel is disabled."""

  def send(self, notification: EmailNotification) -> dict[str, str | None]:
    logger.debug("Email channel disabled; dropping email subject=%s", notification.subject)
    return {"provider": None, "message_id": None, "request_id": None}
