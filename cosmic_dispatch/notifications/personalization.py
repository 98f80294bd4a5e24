"""Pure personalization rules for notification content.

Nothing here performs I/O. Any case the rules do not cover returns the generic
template unchanged, so a recipient never sees a half-filled message.
"""

from __future__ import annotations

from dataclasses import replace

from cosmic_dispatch.notifications.contracts import NotificationContent, UserProfile


def should_personalize(profile: UserProfile | None) -> bool:
  """Personalize only for paid subscribers with a known birthday."""
  if profile is None:
    return False
  return bool(profile.subscription.is_paid) and profile.birthday is not None


def first_name(name: str | None) -> str | None:
  """Return the first whitespace-separated token of a display name."""
  if not name:
    return None
  tokens = name.split()
  if not tokens:
    return None
  token = tokens[0]
  return token[0].upper() + token[1:]


def personalize_title(title: str, profile: UserProfile | None) -> str:
  if not should_personalize(profile):
    return title
  name = first_name(profile.name)
  if name is None:
    return title
  return f"{title} for {name}"


def personalize_body(body: str, event_type: str, profile: UserProfile | None) -> str:
  """Splice the subscriber's first name in front of the body.

  The original first letter is lower-cased so the sentence keeps flowing:
  ``"It's a big day"`` becomes ``"Alice, it's a big day"``. ``event_type`` is
  accepted so type-specific rules can hook in; every type currently shares the
  name-splice rule.
  """
  if not body or not should_personalize(profile):
    return body
  name = first_name(profile.name)
  if name is None:
    return body
  return f"{name}, {_lower_first(body)}"


def personalize_notification(content: NotificationContent, event_type: str, profile: UserProfile | None) -> NotificationContent:
  """Return a copy of the content with title and body personalized when the rules allow."""
  if not should_personalize(profile):
    return content
  return replace(content, title=personalize_title(content.title, profile), body=personalize_body(content.body, event_type, profile))


def _lower_first(text: str) -> str:
  """Lower-case the first character so the text can follow "Name, ".

  Text that opens with an all-caps acronym ("NASA") or a planet or luminary
  name ("Mercury") is returned unchanged, since lowering those would misspell
  them. A single capital letter such as "A" or "I" is still lowered.
  """
  first_word = text.split(" ", 1)[0]
  if len(first_word) > 1 and (first_word.isupper() or first_word in _PROPER_NOUNS):
    return text
  return text[0].lower() + text[1:]


_PROPER_NOUNS = frozenset({"Sun", "Moon", "Mercury", "Venus", "Mars", "Jupiter", "Saturn", "Uranus", "Neptune", "Pluto"})
