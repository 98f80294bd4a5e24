"""Contracts for scheduled notification dispatch and its delivery channels."""

from __future__ import annotations

import datetime
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Protocol

_EVENT_TYPE_RE = re.compile(r"^[a-z0-9_]+$")
_KEY_SUFFIX_RE = re.compile(r"^[A-Za-z0-9_.\-]*$")
PAID_BILLING_STATUSES = frozenset({"active", "trial", "trialing"})


class NotificationError(Exception):
  """Base class for all notification dispatch failures."""


class NotificationConfigurationError(NotificationError):
  """Raised when a delivery channel is enabled but its credentials are missing."""


class InvalidEventError(NotificationError):
  """Raised when a notification event is missing required fields."""


class NotificationProviderError(NotificationError):
  """Exception raised when a specific provider (e.g. MailerSend) returns a delivery error."""


class InvalidPushSubscriptionError(NotificationProviderError):
  """Exception raised when a push subscription endpoint is expired or invalid."""


class TransientPushProviderError(NotificationProviderError):
  """Exception raised when the push provider fails in a way that may succeed on a later run."""


class InvalidEmailRecipientError(NotificationProviderError):
  """Exception raised when MailerSend rejects the message or recipient; resending it cannot succeed."""


class TransientEmailProviderError(NotificationProviderError):
  """Exception raised when MailerSend is unreachable, throttling or failing server-side."""


class FailureKind(str, Enum):
  PERMANENT = "permanent"
  TRANSIENT = "transient"


@dataclass(frozen=True)
class SubscriptionPreferences:
  """Typed view over the denormalized preference blob stored with a subscription."""

  name: str | None = None
  birthday: datetime.date | None = None
  timezone: str | None = None
  locale: str | None = None
  flags: Mapping[str, bool] = field(default_factory=lambda: MappingProxyType({}))

  @classmethod
  def from_blob(cls, raw: Mapping[str, Any] | None) -> SubscriptionPreferences:
    """Parse a raw JSON blob, dropping malformed values instead of raising."""
    if not raw:
      return cls()

    flags: dict[str, bool] = {}
    for key, value in raw.items():
      # Flags arrive as JSON booleans or the strings "true"/"false" depending on the client version.
      if isinstance(value, bool):
        flags[key] = value
      elif isinstance(value, str) and value.lower() in {"true", "false"}:
        flags[key] = value.lower() == "true"

    return cls(name=_clean_str(raw.get("name")), birthday=_parse_birthday(raw.get("birthday")), timezone=_clean_str(raw.get("timezone")), locale=_clean_str(raw.get("locale")), flags=MappingProxyType(flags))

  def flag(self, key: str) -> bool | None:
    """Return the flag value or None when the subscriber never set it."""
    return self.flags.get(key)


@dataclass(frozen=True)
class Subscription:
  """One delivery endpoint for one device."""

  endpoint: str
  p256dh: str
  auth: str
  user_id: str | None
  user_email: str | None = None
  preferences: SubscriptionPreferences = field(default_factory=SubscriptionPreferences)
  is_active: bool = True
  last_notification_sent_at: datetime.datetime | None = None

  @property
  def endpoint_preview(self) -> str:
    return self.endpoint[:50]


@dataclass(frozen=True)
class SubscriptionFilter:
  """Targeting predicate applied by the subscriber store in a single query."""

  preference_key: str | None = None
  # The Daily Cosmic Pulse treats a never-set flag as opted in.
  missing_flag_enabled: bool = False
  required_fields: tuple[str, ...] = ()


@dataclass(frozen=True)
class BillingStatus:
  status: str
  plan: str | None
  is_paid: bool

  @classmethod
  def from_row(cls, status: str | None, plan: str | None) -> BillingStatus:
    normalized_status = (status or "free").strip().lower()
    normalized_plan = (plan or "").strip().lower() or None
    is_paid = normalized_status in PAID_BILLING_STATUSES and normalized_plan not in {None, "free"}
    return cls(status=normalized_status, plan=normalized_plan, is_paid=is_paid)


FREE_BILLING = BillingStatus(status="free", plan=None, is_paid=False)


@dataclass(frozen=True)
class UserProfile:
  """Personalization attributes owned by the profile and billing services."""

  user_id: str
  name: str | None = None
  birthday: datetime.date | None = None
  subscription: BillingStatus = FREE_BILLING


@dataclass(frozen=True)
class NotificationEvent:
  """A scheduled event to broadcast to every matching subscriber."""

  name: str
  type: str
  priority: int
  planet: str | None = None
  sign: str | None = None
  planet_a: str | None = None
  planet_b: str | None = None
  aspect: str | None = None
  energy: str | None = None
  description: str | None = None
  key_suffix: str = ""

  def validate(self) -> None:
    """Raise InvalidEventError when required fields are missing or malformed."""
    if not self.type or not self.type.strip():
      raise InvalidEventError("Event type is required")
    if not _EVENT_TYPE_RE.fullmatch(self.type):
      raise InvalidEventError(f"Event type must match {_EVENT_TYPE_RE.pattern}")
    if not self.name or not self.name.strip():
      raise InvalidEventError("Event name is required")
    if self.priority is None or isinstance(self.priority, bool) or not isinstance(self.priority, int):
      raise InvalidEventError("Event priority is required")
    if not _KEY_SUFFIX_RE.fullmatch(self.key_suffix or ""):
      raise InvalidEventError("Event key suffix may only contain letters, digits, '.', '_' and '-'")


@dataclass(frozen=True)
class NotificationContent:
  """Channel-independent notification content built from an event."""

  title: str
  body: str
  tag: str
  url: str
  data: dict[str, str]


@dataclass(frozen=True)
class PushNotification:
  """Represents a push notification payload."""

  endpoint: str
  p256dh: str
  auth: str
  title: str
  body: str
  data: dict[str, str]
  tag: str | None = None


@dataclass(frozen=True)
class EmailNotification:
  """Represents an email notification payload."""

  to_address: str
  to_name: str | None
  subject: str
  text: str
  html: str
  tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class DispatchOutcome:
  """Result of delivering to one subscription."""

  success: bool
  endpoint: str
  user_id: str | None
  push_sent: bool = False
  email_status: str | None = None
  failure: FailureKind | None = None
  email_failure: FailureKind | None = None
  personalized: bool = False
  error: str | None = None

  def to_dict(self) -> dict[str, Any]:
    return {
      "success": self.success,
      "userId": self.user_id,
      "endpoint": self.endpoint[:50],
      "pushSent": self.push_sent,
      "emailStatus": self.email_status,
      "emailFailure": self.email_failure.value if self.email_failure else None,
      "failure": self.failure.value if self.failure else None,
      "personalized": self.personalized,
      "error": self.error,
    }


@dataclass(frozen=True)
class SentEventMeta:
  event_type: str
  event_name: str
  event_priority: int
  sent_by: str


class SubscriberStore(Protocol):
  """Read and mutate subscription rows."""

  async def query_active_subscriptions(self, subscription_filter: SubscriptionFilter) -> list[Subscription]:
    """Return all active subscriptions matching the filter in one query."""

  async def deactivate(self, *, endpoint: str) -> None:
    """Mark an endpoint inactive after a permanent delivery failure."""

  async def touch_last_sent(self, *, endpoint: str) -> None:
    """Record the advisory last-sent timestamp."""


class ProfileResolver(Protocol):
  """Batched lookup of personalization attributes."""

  async def batch_get_profiles(self, user_ids: list[str]) -> dict[str, UserProfile]:
    """Return profiles keyed by user id; must not be called with an empty list."""


class EventLedger(Protocol):
  """Durable idempotency guard keyed by (date, event key)."""

  async def exists(self, *, date: datetime.date, event_key: str) -> bool:
    """Return True when the event was dispatched on that date or a live run has claimed it."""

  async def insert_if_absent(self, *, date: datetime.date, event_key: str, meta: SentEventMeta) -> bool:
    """Insert an in-progress claim, ignoring conflicts; return True when this call claimed it."""

  async def mark_sent(self, *, date: datetime.date, event_key: str) -> bool:
    """Finalize this run's claim; return False when the claim is gone."""

  async def release(self, *, date: datetime.date, event_key: str) -> bool:
    """Delete an unfinished claim; return True when a row was removed."""

  async def cleanup_before(self, *, date: datetime.date) -> int:
    """Delete rows older than the date and return the number removed."""


class EmailSender(Protocol):
  """Delivery contract for sending email notifications."""

  def send(self, notification: EmailNotification) -> dict[str, str | None]:
    """Send an email notification synchronously and return provider identifiers."""


class PushSender(Protocol):
  """Delivery contract for sending push notifications."""

  def send(self, notification: PushNotification) -> None:
    """Send a push notification synchronously."""


def _clean_str(value: Any) -> str | None:
  if not isinstance(value, str):
    return None
  stripped = value.strip()
  # Older web clients serialized missing fields as the literal strings below.
  if not stripped or stripped.lower() in {"undefined", "null", "none"}:
    return None
  return stripped


def _parse_birthday(value: Any) -> datetime.date | None:
  if isinstance(value, datetime.date):
    return value
  cleaned = _clean_str(value)
  if cleaned is None:
    return None
  try:
    return datetime.date.fromisoformat(cleaned[:10])
  except ValueError:
    return None
