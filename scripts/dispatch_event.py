"""Run a single notification dispatch from the command line.

Intended for system cron and for manual re-sends:

  python scripts/dispatch_event.py --type moon --name "Full Moon" --priority 5 --sent-by daily

Exit status is 0 when the run succeeded or was skipped (already sent, quiet
hours, no subscribers), 2 for an invalid event and 1 for any other failure.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys

# Add the project root to the path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

logger = logging.getLogger("scripts.dispatch_event")


def _build_parser() -> argparse.ArgumentParser:
  parser = argparse.ArgumentParser(description="Dispatch one scheduled notification event to every matching subscriber.")
  parser.add_argument("--type", required=True, help="Event type, e.g. moon, aspect, ingress, retrograde, cosmic_pulse")
  parser.add_argument("--name", required=True, help="Human readable event name, e.g. 'Full Moon'")
  parser.add_argument("--priority", required=True, type=int, help="Event priority used in the idempotency key")
  parser.add_argument("--sent-by", default="manual", choices=["daily", "4-hourly", "manual"], help="Which trigger is sending the event")
  parser.add_argument("--planet")
  parser.add_argument("--sign")
  parser.add_argument("--planet-a")
  parser.add_argument("--planet-b")
  parser.add_argument("--aspect")
  parser.add_argument("--energy")
  parser.add_argument("--description")
  parser.add_argument("--key-suffix", default="", help="Extra discriminator for events that repeat within a day")
  return parser


async def _run(args: argparse.Namespace) -> int:
  # Import after path setup so the script works when run directly.
  from cosmic_dispatch.config import get_settings
  from cosmic_dispatch.core.logging import initialize_logging
  from cosmic_dispatch.notifications.contracts import NotificationEvent
  from cosmic_dispatch.notifications.factory import create_dispatch_runtime
  from cosmic_dispatch.notifications.service import RunState

  settings = get_settings()
  initialize_logging(settings)

  event = NotificationEvent(
    name=args.name,
    type=args.type,
    priority=args.priority,
    planet=args.planet,
    sign=args.sign,
    planet_a=args.planet_a,
    planet_b=args.planet_b,
    aspect=args.aspect,
    energy=args.energy,
    description=args.description,
    key_suffix=args.key_suffix,
  )

  runtime = create_dispatch_runtime(settings)
  try:
    result = await runtime.engine.run(event, sent_by=args.sent_by)
  finally:
    await runtime.aclose()

  print(json.dumps(result.to_dict(), indent=2))
  if result.state is RunState.INVALID:
    return 2
  return 0 if result.success else 1


def main(argv: list[str] | None = None) -> int:
  args = _build_parser().parse_args(argv)
  return asyncio.run(_run(args))


if __name__ == "__main__":
  sys.exit(main())
