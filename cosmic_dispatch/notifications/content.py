"""Generic notification content and subscriber targeting for scheduled events."""

from __future__ import annotations

import datetime

from cosmic_dispatch.notifications.contracts import NotificationContent, NotificationEvent, SubscriptionFilter

_PREFERENCE_KEYS: dict[str, str] = {
  "moon": "moonPhases",
  "moon_phase": "moonPhases",
  "aspect": "majorAspects",
  "ingress": "planetaryTransits",
  "planetary_transit": "planetaryTransits",
  "predictive_transit": "planetaryTransits",
  "retrograde": "retrogrades",
  "seasonal": "sabbats",
  "sabbat": "sabbats",
  "eclipse": "eclipses",
}

# Opt-out features: a subscriber who never touched the toggle still receives them.
_OPT_OUT_FILTERS: dict[str, SubscriptionFilter] = {
  "cosmic_pulse": SubscriptionFilter(preference_key="cosmicPulse", missing_flag_enabled=True, required_fields=("birthday",)),
  "moon_circle": SubscriptionFilter(preference_key="moonCircles", missing_flag_enabled=True),
}

_MOON_DESCRIPTIONS: dict[str, str] = {
  "New Moon": "A powerful reset point for manifestation and new beginnings. Set intentions aligned with your deeper purpose.",
  "Full Moon": "Peak illumination brings clarity to accomplishments and reveals areas ready for release and transformation.",
  "First Quarter": "A critical decision point supporting decisive action and breakthrough moments.",
  "Last Quarter": "A time for reflection, release, and preparing for the next lunar cycle.",
}

_ASPECT_ACTIONS: dict[str, str] = {
  "conjunction": "unite their energies",
  "trine": "flow harmoniously together",
  "square": "create dynamic tension",
  "sextile": "offer cooperative opportunities",
  "opposition": "seek balance between",
}

_RETROGRADE_MEANINGS: dict[str, str] = {
  "Mercury": "invites reflection on communication, technology, and mental patterns",
  "Venus": "encourages review of relationships, values, and what brings beauty",
  "Mars": "suggests revisiting action, motivation, and how we channel energy",
  "Jupiter": "invites reflection on expansion, growth, and philosophical beliefs",
  "Saturn": "encourages review of structures, responsibilities, and long-term goals",
  "Uranus": "brings revolutionary reflection on change, innovation, and freedom",
  "Neptune": "invites reflection on dreams, intuition, and spiritual connection",
  "Pluto": "encourages deep transformation through shadow work and renewal",
}

_INGRESS_INFLUENCES: dict[str, dict[str, str]] = {
  "Mercury": {
    "Aries": "directness and pioneering ideas",
    "Taurus": "practicality and grounded wisdom",
    "Gemini": "mental agility, communication, and learning",
    "Cancer": "emotional intelligence and intuition",
    "Leo": "confidence and creative expression",
    "Virgo": "precision and analytical clarity",
    "Libra": "harmony and balanced dialogue",
    "Scorpio": "deep, transformative conversations",
    "Sagittarius": "philosophical discourse and exploration",
    "Capricorn": "practical achievement through communication",
    "Aquarius": "unconventional ideas and technology",
    "Pisces": "intuitive understanding and artistic expression",
  },
  "Venus": {
    "Aries": "passionate attraction and bold romance",
    "Taurus": "sensuality, stability, and material beauty",
    "Gemini": "lighthearted connections and intellectual attraction",
    "Cancer": "emotional bonds and nurturing love",
    "Leo": "dramatic romance and creative expression",
    "Virgo": "practical love and service in relationships",
    "Libra": "partnerships and artistic beauty",
    "Scorpio": "transformative love and deep connections",
    "Sagittarius": "adventurous romance and philosophical bonds",
    "Capricorn": "committed, structured relationships",
    "Aquarius": "unconventional connections and friendly love",
    "Pisces": "dreamy romance and spiritual connection",
  },
  "Mars": {
    "Aries": "action, courage, and pioneering initiative",
    "Taurus": "stability, patience, and material progress",
    "Gemini": "communication, learning, and mental agility",
    "Cancer": "emotional security and nurturing actions",
    "Leo": "creative expression and confident leadership",
    "Virgo": "precision and disciplined action in work and health",
    "Libra": "balance in partnerships and harmonious action",
    "Scorpio": "transformation and deep emotional focus",
    "Sagittarius": "adventure and philosophical exploration",
    "Capricorn": "structured ambition and long-term goals",
    "Aquarius": "innovation and revolutionary change",
    "Pisces": "intuitive action and compassionate service",
  },
  "Jupiter": {
    "Aries": "leadership and pioneering ventures",
    "Taurus": "financial growth and material abundance",
    "Gemini": "learning, communication, and short-distance travel",
    "Cancer": "home, family, and emotional security",
    "Leo": "creativity, entertainment, and self-expression",
    "Virgo": "health, work, and service to others",
    "Libra": "partnerships, justice, and artistic pursuits",
    "Scorpio": "transformation, research, and shared resources",
    "Sagittarius": "higher education, philosophy, and long-distance travel",
    "Capricorn": "career recognition and public achievement",
    "Aquarius": "friendship and humanitarian causes",
    "Pisces": "spirituality, compassion, and artistic inspiration",
  },
  "Saturn": {
    "Aries": "discipline in personal expression and independence",
    "Taurus": "structure in material values and financial stability",
    "Gemini": "responsibility in communication and learning",
    "Cancer": "structure in emotional security and family",
    "Leo": "discipline in creative expression and leadership",
    "Virgo": "structure in work methods and health routines",
    "Libra": "commitment in partnerships and relationships",
    "Scorpio": "transformation through power structures and healing",
    "Sagittarius": "structure in belief systems and education",
    "Capricorn": "authority and institutional achievement",
    "Aquarius": "structured social change",
    "Pisces": "discipline in spiritual practice",
  },
  "Uranus": {
    "Aries": "personal independence and pioneering spirit",
    "Taurus": "material values and earth-conscious innovation",
    "Gemini": "communication technology and mental liberation",
    "Cancer": "family structures and emotional freedom",
    "Leo": "creative expression and individual uniqueness",
    "Virgo": "work methods and health innovations",
    "Libra": "relationship patterns and social justice",
    "Scorpio": "power structures and transformational healing",
    "Sagittarius": "belief systems and educational reform",
    "Capricorn": "authority structures and institutional change",
    "Aquarius": "collective consciousness and technological advancement",
    "Pisces": "spiritual awakening and artistic inspiration",
  },
  "Neptune": {
    "Aries": "spiritual leadership and intuitive action",
    "Taurus": "material attachment and earth spirituality",
    "Gemini": "intuitive communication and mental clarity",
    "Cancer": "emotional boundaries and family mysticism",
    "Leo": "creative expression and heart-centered art",
    "Virgo": "service and practical spirituality",
    "Libra": "relationship ideals and artistic beauty",
    "Scorpio": "hidden truths and mystical transformation",
    "Sagittarius": "spiritual seeking and higher knowledge",
    "Capricorn": "transcendence of material illusions with spiritual authority",
    "Aquarius": "collective dreams and humanitarian vision",
    "Pisces": "universal compassion and divine connection",
  },
  "Pluto": {
    "Aries": "personal power and individual transformation",
    "Taurus": "material values and resource transformation",
    "Gemini": "communication power and mental transformation",
    "Cancer": "emotional depth and family transformation",
    "Leo": "creative power and self-expression transformation",
    "Virgo": "work and health transformation",
    "Libra": "relationship power and social transformation",
    "Scorpio": "deep psychological and spiritual transformation",
    "Sagittarius": "belief systems and educational transformation",
    "Capricorn": "power structures and institutional transformation",
    "Aquarius": "collective consciousness and technological transformation",
    "Pisces": "spiritual evolution and universal consciousness",
  },
}


def subscription_filter_for(event_type: str) -> SubscriptionFilter:
  """Map an event type to the subscriber predicate used for the single store query."""
  if event_type in _OPT_OUT_FILTERS:
    return _OPT_OUT_FILTERS[event_type]
  return SubscriptionFilter(preference_key=_PREFERENCE_KEYS.get(event_type))


def build_notification_content(event: NotificationEvent, *, date: datetime.date, base_url: str = "") -> NotificationContent:
  """Build the generic (non-personalized) title, body and navigation data for an event."""
  name = _clean(event.name) or "Cosmic Event"
  url = f"{base_url}/" if base_url else "/"
  data = {"url": url, "date": date.isoformat(), "eventType": event.type, "priority": str(event.priority), "eventName": name}
  context_key = {"moon": "phase", "aspect": "aspect", "seasonal": "season", "ingress": "ingress"}.get(event.type)
  if context_key:
    data[context_key] = name

  return NotificationContent(title=_title(event, name), body=_body(event, name), tag=f"cosmic-{event.type}", url=url, data=data)


def _title(event: NotificationEvent, name: str) -> str:
  if event.type == "aspect":
    planet_a, planet_b, aspect = _clean(event.planet_a), _clean(event.planet_b), _clean(event.aspect)
    if planet_a and planet_b and aspect:
      return f"{planet_a}-{planet_b} {aspect.capitalize()}"
    return name

  if event.type == "ingress":
    planet, sign = _clean(event.planet), _clean(event.sign)
    if planet and sign:
      return f"{planet} Enters {sign}"
    return name

  if event.type == "retrograde":
    planet = _clean(event.planet)
    if planet:
      return f"{planet} Retrograde Begins"
    return name

  return name


def _body(event: NotificationEvent, name: str) -> str:
  if event.type in {"moon", "moon_phase"}:
    return _moon_description(name, _clean(event.sign))

  if event.type == "aspect":
    return _aspect_description(event)

  if event.type == "seasonal":
    if "Equinox" in name:
      return "Equal day and night mark a powerful balance point, supporting new beginnings and equilibrium"
    if "Solstice" in name:
      return "Peak daylight or darkness marks a turning point, supporting reflection and seasonal transition"
    return "Seasonal energy shift brings new themes and opportunities for growth"

  if event.type == "ingress":
    # Names follow "Mars Enters Leo" when the structured fields are missing.
    parts = name.split()
    planet = _clean(event.planet) or (parts[0] if parts else None)
    sign = _clean(event.sign) or (parts[2] if len(parts) > 2 else None)
    return _ingress_description(planet, sign)

  if event.type == "retrograde":
    parts = name.split()
    planet = _clean(event.planet) or (parts[0] if parts else None)
    return _retrograde_description(planet, _clean(event.sign))

  return _clean(event.energy) or _clean(event.description) or "Significant cosmic event occurring"


def _moon_description(phase_name: str, moon_sign: str | None) -> str:
  description = next((text for phase, text in _MOON_DESCRIPTIONS.items() if phase in phase_name), "Lunar energy shift creating new opportunities for growth")
  if moon_sign:
    return f"Moon in {moon_sign}: {description}"
  return description


def _aspect_description(event: NotificationEvent) -> str:
  planet_a, planet_b, aspect = _clean(event.planet_a), _clean(event.planet_b), _clean(event.aspect)
  if not (planet_a and planet_b and aspect):
    return "Powerful cosmic alignment creating new opportunities"
  action = _ASPECT_ACTIONS.get(aspect.lower(), "align")
  return f"{planet_a} and {planet_b} {action}, creating powerful cosmic influence"


def _ingress_description(planet: str | None, sign: str | None) -> str:
  if not planet or not sign:
    return "Planetary energy shift creating new opportunities"
  influence = _INGRESS_INFLUENCES.get(planet, {}).get(sign)
  if influence:
    return f"This amplifies focus on {influence} energies"
  return f"This amplifies focus on {sign} themes and energies"


def _retrograde_description(planet: str | None, sign: str | None) -> str:
  if not planet:
    return "Planetary retrograde invites reflection and review"
  meaning = _RETROGRADE_MEANINGS.get(planet, "invites reflection and review")
  if sign:
    return f"This {meaning} in {sign}"
  return f"This {meaning}"


def _clean(value: str | None) -> str | None:
  if value is None:
    return None
  stripped = value.strip()
  return stripped or None
