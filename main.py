"""
Command-line entry point.

Runs the offline demo scenarios, or prints the slot listing for the demo
artist as JSON, which is handy when checking timezone or buffer settings.

Usage:
    python main.py demo --scenario cancel
    python main.py slots --date 2025-03-14 --duration 120
"""

import argparse
from typing import Optional

from console_demo import ARTIST_ID, DemoSession


def _run_slots(date: str, duration: Optional[int]) -> None:
    session = DemoSession()
    listing = session.engine.list_slots(ARTIST_ID, date, duration_minutes=duration)
    print(listing.model_dump_json(indent=2))


def main() -> None:
    parser = argparse.ArgumentParser(description="Inkbook scheduling engine")
    sub = parser.add_subparsers(dest="command", required=True)

    demo = sub.add_parser("demo", help="Run a scripted console scenario")
    demo.add_argument("--scenario", choices=DemoSession.SCENARIOS, default="booking")

    slots = sub.add_parser("slots", help="List the demo artist's slots for a date")
    slots.add_argument("--date", required=True, help="YYYY-MM-DD in the artist's timezone")
    slots.add_argument("--duration", type=int, default=None, help="Minutes; multiple of slot size")

    args = parser.parse_args()
    if args.command == "demo":
        DemoSession().run(args.scenario)
    else:
        _run_slots(args.date, args.duration)


if __name__ == "__main__":
    main()
