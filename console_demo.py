"""
Offline console demo: walks the booking engine through scripted scenarios.

Uses the real stores, slot generator, state machine, and the mock payment
processor with a fixed clock. No database, no network calls.

Usage:
    python console_demo.py
    python console_demo.py --scenario conflict
    python console_demo.py --scenario no_show
"""

import argparse
import asyncio
import sys
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

from inkbook.clock import FixedClock
from inkbook.engine import BookingEngine
from inkbook.errors import BookingEngineError
from inkbook.schemas.booking_schema import Actor, ActorRole, Booking

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"

ARTIST_ID = "artist-rosa"
CLIENT_ID = "client-sam"
OTHER_CLIENT_ID = "client-kim"

# Monday 2025-03-10, 09:00 in New York.
DEMO_START = datetime(2025, 3, 10, 13, 0, tzinfo=timezone.utc)
DEMO_DAY = "2025-03-14"

DEMO_AVAILABILITY = {
    "timezone": "America/New_York",
    "slot_minutes": 60,
    "buffer_minutes": 15,
    "weekly": {
        "mon": [{"start": "10:00", "end": "18:00"}],
        "wed": [{"start": "10:00", "end": "18:00"}],
        "fri": [{"start": "10:00", "end": "14:00"}, {"start": "15:00", "end": "20:00"}],
        "sat": [{"start": "11:00", "end": "16:00"}],
    },
    "exceptions": {"2025-03-17": []},
}

DEMO_POLICY = {
    "mode": "percent",
    "percent": 0.2,
    "min_cents": 5000,
    "max_cents": 30000,
    "non_refundable": True,
    "cutoff_hours": 48,
}


class DemoSession:
    """Runs one scenario against a fresh engine and narrates each step."""

    SCENARIOS = ("booking", "conflict", "cancel", "no_show")

    def __init__(self) -> None:
        self.clock = FixedClock(DEMO_START)
        self.engine = BookingEngine(clock=self.clock)
        self.artist = Actor(id=ARTIST_ID, role=ActorRole.ARTIST)
        self.client = Actor(id=CLIENT_ID, role=ActorRole.CLIENT)
        self.engine.upsert_availability(ARTIST_ID, DEMO_AVAILABILITY, actor=self.artist)
        self.engine.set_deposit_policy(ARTIST_ID, DEMO_POLICY, actor=self.artist)

    def say(self, text: str) -> None:
        print(f"{GREEN}{text}{RESET}")

    def system_log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    def fail(self, exc: BookingEngineError) -> None:
        print(f"{YELLOW}  !! {exc.code}: {exc.message}{RESET}")

    def show_booking(self, booking: Booking) -> None:
        self.system_log(
            f"{booking.id} [{booking.status.value}] {booking.start_at:%Y-%m-%d %H:%M}Z "
            f"deposit {booking.deposit_paid_cents}/{booking.deposit_required_cents}"
        )

    def _book_first_slot(self, client_id: str = CLIENT_ID) -> Booking:
        listing = self.engine.list_slots(ARTIST_ID, DEMO_DAY, duration_minutes=120)
        self.say(f"{listing.message} on {DEMO_DAY}")
        for slot in listing.slots[:4]:
            self.system_log(f"{slot.local_start}-{slot.local_end} local")
        booking = self.engine.reserve(
            ARTIST_ID, client_id, listing.slots[0], "tattoo_session",
            note="Fine-line botanical forearm piece", price_cents=45000,
        )
        self.say(f"Reserved {booking.id}")
        self.show_booking(booking)
        return booking

    def run(self, scenario: str) -> None:
        if scenario not in self.SCENARIOS:
            print(f"{RED}Unknown scenario: {scenario}{RESET}")
            return

        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  INKBOOK SCHEDULER - Scenario: {scenario}{RESET}")
        print(f"{BOLD}  Clock: {self.clock.now().isoformat()}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")

        try:
            getattr(self, f"_scenario_{scenario}")()
        except BookingEngineError as exc:
            self.fail(exc)

        print(f"{BOLD}{'=' * 60}{RESET}")

    def _scenario_booking(self) -> None:
        booking = self._book_first_slot()
        booking = asyncio.run(self.engine.pay_deposit(booking.id, self.client))
        self.say("Deposit paid")
        self.show_booking(booking)

        booking = self.engine.transition(booking.id, self.artist, "accepted")
        self.say("Artist accepted the request")

        self.clock.set(booking.start_at)
        booking = self.engine.check_in(booking.id, self.client)
        self.say("Client checked in")

        self.clock.set(booking.end_at)
        booking = self.engine.transition(booking.id, self.artist, "completed")
        self.say("Session completed")
        self.show_booking(booking)

    def _scenario_conflict(self) -> None:
        listing = self.engine.list_slots(ARTIST_ID, DEMO_DAY, duration_minutes=120)
        slot = listing.slots[0]
        self.say(f"Two clients race for {slot.local_start}-{slot.local_end}")

        def attempt(client_id: str) -> str:
            try:
                booking = self.engine.reserve(
                    ARTIST_ID, client_id, slot, "tattoo_session", price_cents=30000
                )
                return f"{client_id}: reserved {booking.id}"
            except BookingEngineError as exc:
                return f"{client_id}: {exc.code}"

        with ThreadPoolExecutor(max_workers=2) as pool:
            for line in pool.map(attempt, [CLIENT_ID, OTHER_CLIENT_ID]):
                self.system_log(line)

        after = self.engine.list_slots(ARTIST_ID, DEMO_DAY, duration_minutes=120)
        self.say(f"After the race: {after.message}")

    def _scenario_cancel(self) -> None:
        booking = self._book_first_slot()
        asyncio.run(self.engine.pay_deposit(booking.id, self.client))
        self.engine.transition(booking.id, self.artist, "accepted")

        booking = self.engine.transition(
            booking.id, self.client, "cancelled", reason="Schedule clash"
        )
        self.say(f"Client cancelled; refund eligible: {booking.refund_eligible}")
        if booking.refund_eligible:
            booking = asyncio.run(self.engine.refund_deposit(booking.id))
            self.system_log(f"Refunded {booking.refunded_cents} cents")

        self.say("Client tries to rebook straight away")
        try:
            self._book_first_slot()
        except BookingEngineError as exc:
            self.fail(exc)

    def _scenario_no_show(self) -> None:
        booking = self._book_first_slot()
        self.engine.transition(booking.id, self.artist, "accepted")
        self.clock.set(booking.start_at)
        self.clock.advance(minutes=20)
        marked = self.engine.sweep_no_shows()
        self.say(f"No-show sweep marked {len(marked)} booking(s)")
        for item in marked:
            self.show_booking(item)


def main() -> None:
    parser = argparse.ArgumentParser(description="Inkbook scheduling console demo")
    parser.add_argument(
        "--scenario",
        choices=DemoSession.SCENARIOS,
        default="booking",
        help="Scripted scenario to run",
    )
    args = parser.parse_args()

    try:
        DemoSession().run(args.scenario)
    except KeyboardInterrupt:
        print(f"\n{DIM}Interrupted.{RESET}")
        sys.exit(0)


if __name__ == "__main__":
    main()
