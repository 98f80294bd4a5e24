"""Schema package exports."""

from .profiles import BillingSubscription, UserProfileRecord
from .push_subscriptions import PushSubscription
from .sent_events import NotificationSentEvent

__all__ = ["BillingSubscription", "NotificationSentEvent", "PushSubscription", "UserProfileRecord"]
