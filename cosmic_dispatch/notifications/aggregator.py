"""Pure reduction of per-subscriber dispatch outcomes into run counts."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from cosmic_dispatch.notifications.contracts import DispatchOutcome, FailureKind


@dataclass(frozen=True)
class RunCounts:
  push_sent: int = 0
  push_failed: int = 0
  emails_sent: int = 0
  emails_failed: int = 0
  total_subscribers: int = 0
  deactivated: int = 0
  personalized: int = 0

  @property
  def successful(self) -> int:
    return self.push_sent + self.emails_sent

  def to_dict(self) -> dict[str, int]:
    return {
      "pushSent": self.push_sent,
      "pushFailed": self.push_failed,
      "emailsSent": self.emails_sent,
      "emailsFailed": self.emails_failed,
      "totalSubscribers": self.total_subscribers,
      "deactivated": self.deactivated,
      "personalized": self.personalized,
    }


@dataclass
class OutcomeAggregator:
  """Accumulate outcomes in any order; the result does not depend on arrival order."""

  total_subscribers: int = 0
  _counts: dict[str, int] = field(default_factory=lambda: dict.fromkeys(("push_sent", "push_failed", "emails_sent", "emails_failed", "deactivated", "personalized"), 0))
  details: list[dict[str, Any]] = field(default_factory=list)

  def add(self, outcome: DispatchOutcome) -> None:
    # A disabled push channel yields neither a send nor a failure.
    if outcome.push_sent:
      self._counts["push_sent"] += 1
    elif outcome.failure is not None:
      self._counts["push_failed"] += 1
    if outcome.email_status == "sent":
      self._counts["emails_sent"] += 1
    elif outcome.email_status == "failed":
      self._counts["emails_failed"] += 1
    if outcome.failure is FailureKind.PERMANENT:
      self._counts["deactivated"] += 1
    if outcome.personalized:
      self._counts["personalized"] += 1
    self.details.append(outcome.to_dict())

  def counts(self) -> RunCounts:
    return RunCounts(total_subscribers=self.total_subscribers, **self._counts)


def aggregate_outcomes(outcomes: Iterable[DispatchOutcome], *, total_subscribers: int) -> tuple[RunCounts, list[dict[str, Any]]]:
  aggregator = OutcomeAggregator(total_subscribers=total_subscribers)
  for outcome in outcomes:
    aggregator.add(outcome)
  return aggregator.counts(), aggregator.details
