from __future__ import annotations

import datetime

from cosmic_dispatch.notifications.content import build_notification_content, subscription_filter_for
from cosmic_dispatch.notifications.contracts import NotificationEvent

DAY = datetime.date(2026, 3, 20)


def test_moon_content_includes_sign_and_phase_data():
  content = build_notification_content(NotificationEvent(name="Full Moon", type="moon", priority=5, sign="Libra"), date=DAY, base_url="https://example.com")

  assert content.title == "Full Moon"
  assert content.body.startswith("Moon in Libra: Peak illumination")
  assert content.tag == "cosmic-moon"
  assert content.url == "https://example.com/"
  assert content.data == {"url": "https://example.com/", "date": "2026-03-20", "eventType": "moon", "priority": "5", "eventName": "Full Moon", "phase": "Full Moon"}


def test_aspect_content_uses_structured_planets():
  event = NotificationEvent(name="Venus trine Jupiter", type="aspect", priority=4, planet_a="Venus", planet_b="Jupiter", aspect="trine")

  content = build_notification_content(event, date=DAY)

  assert content.title == "Venus-Jupiter Trine"
  assert content.body == "Venus and Jupiter flow harmoniously together, creating powerful cosmic influence"
  assert content.data["aspect"] == "Venus trine Jupiter"


def test_ingress_falls_back_to_name_when_fields_missing():
  content = build_notification_content(NotificationEvent(name="Mars Enters Leo", type="ingress", priority=3), date=DAY)

  assert content.title == "Mars Enters Leo"
  assert content.body == "This amplifies focus on creative expression and confident leadership energies"


def test_outer_planet_ingresses_have_their_own_influences():
  pluto = build_notification_content(NotificationEvent(name="Pluto Enters Aquarius", type="ingress", priority=5, planet="Pluto", sign="Aquarius"), date=DAY)
  neptune = build_notification_content(NotificationEvent(name="Neptune Enters Aries", type="ingress", priority=5), date=DAY)
  uranus = build_notification_content(NotificationEvent(name="Uranus Enters Gemini", type="ingress", priority=5, planet="Uranus", sign="Gemini"), date=DAY)

  assert pluto.title == "Pluto Enters Aquarius"
  assert pluto.body == "This amplifies focus on collective consciousness and technological transformation energies"
  assert neptune.body == "This amplifies focus on spiritual leadership and intuitive action energies"
  assert uranus.body == "This amplifies focus on communication technology and mental liberation energies"


def test_ingress_for_unknown_planet_uses_sign_themes():
  content = build_notification_content(NotificationEvent(name="Chiron Enters Taurus", type="ingress", priority=2, planet="Chiron", sign="Taurus"), date=DAY)

  assert content.body == "This amplifies focus on Taurus themes and energies"


def test_retrograde_and_seasonal_descriptions():
  retrograde = build_notification_content(NotificationEvent(name="Mercury Retrograde", type="retrograde", priority=4, planet="Mercury", sign="Aries"), date=DAY)
  equinox = build_notification_content(NotificationEvent(name="Spring Equinox", type="seasonal", priority=5), date=DAY)

  assert retrograde.title == "Mercury Retrograde Begins"
  assert retrograde.body == "This invites reflection on communication, technology, and mental patterns in Aries"
  assert equinox.body.startswith("Equal day and night")
  assert equinox.data["season"] == "Spring Equinox"


def test_unknown_type_uses_energy_then_description_then_default():
  assert build_notification_content(NotificationEvent(name="Star Gate", type="portal", priority=1, energy="Open doors"), date=DAY).body == "Open doors"
  assert build_notification_content(NotificationEvent(name="Star Gate", type="portal", priority=1, description="A rare opening"), date=DAY).body == "A rare opening"
  assert build_notification_content(NotificationEvent(name="Star Gate", type="portal", priority=1), date=DAY).body == "Significant cosmic event occurring"


def test_subscription_filters_follow_preference_flags():
  assert subscription_filter_for("moon").preference_key == "moonPhases"
  assert subscription_filter_for("aspect").preference_key == "majorAspects"
  assert subscription_filter_for("portal").preference_key is None

  pulse = subscription_filter_for("cosmic_pulse")
  assert pulse.preference_key == "cosmicPulse"
  assert pulse.missing_flag_enabled is True
  assert pulse.required_fields == ("birthday",)
