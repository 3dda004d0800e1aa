"""Tests for the appointment state machine."""

from datetime import timedelta

import pytest

from inkbook.errors import Forbidden, InvalidTransition
from inkbook.schemas.booking_schema import Actor, ActorRole, BookingStatus
from tests.conftest import NOW, make_booking

TERMINAL = [
    BookingStatus.DENIED,
    BookingStatus.COMPLETED,
    BookingStatus.CANCELLED,
    BookingStatus.NO_SHOW,
]


class TestAcceptDeny:
    def test_artist_accepts_pending(self, machine, artist):
        booking = make_booking()
        updated = machine.apply(booking, artist, BookingStatus.ACCEPTED, NOW)
        assert updated.status == BookingStatus.ACCEPTED
        assert updated.accepted_at == NOW
        assert booking.status == BookingStatus.PENDING

    def test_client_cannot_accept(self, machine, client_actor):
        with pytest.raises(InvalidTransition) as exc_info:
            machine.apply(make_booking(), client_actor, BookingStatus.ACCEPTED, NOW)
        err = exc_info.value
        assert (err.current, err.requested, err.role) == ("pending", "accepted", "client")

    def test_client_cannot_accept_even_when_not_party(self, machine):
        stranger = Actor(id="someone", role=ActorRole.CLIENT)
        with pytest.raises(InvalidTransition):
            machine.apply(make_booking(), stranger, BookingStatus.ACCEPTED, NOW)

    def test_accept_after_start_rejected(self, machine, artist):
        booking = make_booking()
        with pytest.raises(InvalidTransition, match="already started"):
            machine.apply(booking, artist, BookingStatus.ACCEPTED, booking.start_at)

    def test_client_withdraws_request(self, machine, client_actor):
        updated = machine.apply(make_booking(), client_actor, BookingStatus.DENIED, NOW, "changed mind")
        assert updated.status == BookingStatus.DENIED
        assert updated.cancelled_by == ActorRole.CLIENT
        assert updated.cancellation_reason == "changed mind"

    def test_artist_denies(self, machine, artist):
        updated = machine.apply(make_booking(), artist, BookingStatus.DENIED, NOW)
        assert updated.denied_at == NOW

    def test_other_artist_forbidden(self, machine):
        other = Actor(id="artist-2", role=ActorRole.ARTIST)
        with pytest.raises(Forbidden):
            machine.apply(make_booking(), other, BookingStatus.ACCEPTED, NOW)

    def test_system_cannot_accept(self, machine):
        with pytest.raises(InvalidTransition):
            machine.apply(make_booking(), Actor.system(), BookingStatus.ACCEPTED, NOW)


class TestCompletion:
    def test_complete_pending_rejected(self, machine, artist):
        booking = make_booking()
        with pytest.raises(InvalidTransition, match="allowed targets"):
            machine.apply(booking, artist, BookingStatus.COMPLETED, booking.end_at)

    def test_complete_before_end_rejected(self, machine, artist):
        booking = make_booking(status=BookingStatus.ACCEPTED)
        with pytest.raises(InvalidTransition, match="not ended"):
            machine.apply(booking, artist, BookingStatus.COMPLETED, booking.end_at - timedelta(minutes=1))

    def test_complete_after_end(self, machine, artist):
        booking = make_booking(status=BookingStatus.ACCEPTED)
        updated = machine.apply(booking, artist, BookingStatus.COMPLETED, booking.end_at)
        assert updated.status == BookingStatus.COMPLETED
        assert updated.completed_at == booking.end_at

    def test_client_cannot_complete(self, machine, client_actor):
        booking = make_booking(status=BookingStatus.ACCEPTED)
        with pytest.raises(InvalidTransition):
            machine.apply(booking, client_actor, BookingStatus.COMPLETED, booking.end_at)


class TestCancellation:
    def _paid(self):
        return make_booking(
            status=BookingStatus.ACCEPTED,
            deposit_required_cents=5000,
            deposit_paid_cents=5000,
            deposit_non_refundable=True,
            deposit_cutoff_hours=48,
        )

    def test_cancel_before_cutoff_is_refundable(self, machine, client_actor):
        booking = self._paid()
        updated = machine.apply(booking, client_actor, BookingStatus.CANCELLED, NOW)
        assert updated.refund_eligible
        assert not updated.deposit_forfeited
        assert updated.cancelled_by == ActorRole.CLIENT

    def test_cancel_inside_cutoff_forfeits(self, machine, client_actor):
        booking = self._paid()
        now = booking.start_at - timedelta(hours=2)
        updated = machine.apply(booking, client_actor, BookingStatus.CANCELLED, now)
        assert not updated.refund_eligible
        assert updated.deposit_forfeited

    def test_earlier_forfeit_survives_cancel(self, machine, client_actor):
        booking = self._paid().model_copy(update={"deposit_forfeited": True})
        updated = machine.apply(booking, client_actor, BookingStatus.CANCELLED, NOW)
        assert updated.deposit_forfeited
        assert not updated.refund_eligible

    def test_unpaid_cancel_forfeits_nothing(self, machine, artist):
        booking = make_booking(status=BookingStatus.ACCEPTED, deposit_required_cents=5000)
        updated = machine.apply(booking, artist, BookingStatus.CANCELLED, NOW)
        assert not updated.refund_eligible
        assert not updated.deposit_forfeited

    def test_cancel_after_end_rejected(self, machine, client_actor):
        booking = self._paid()
        with pytest.raises(InvalidTransition, match="already ended"):
            machine.apply(booking, client_actor, BookingStatus.CANCELLED, booking.end_at)

    def test_cancel_pending_rejected(self, machine, client_actor):
        with pytest.raises(InvalidTransition):
            machine.apply(make_booking(), client_actor, BookingStatus.CANCELLED, NOW)


class TestNoShow:
    def test_system_after_grace(self, machine):
        booking = make_booking(status=BookingStatus.ACCEPTED, deposit_paid_cents=3000)
        updated = machine.apply(
            booking, Actor.system(), BookingStatus.NO_SHOW, booking.start_at + timedelta(minutes=15)
        )
        assert updated.status == BookingStatus.NO_SHOW
        assert updated.no_show_marked_by == ActorRole.SYSTEM
        assert updated.deposit_forfeited

    def test_system_inside_grace_rejected(self, machine):
        booking = make_booking(status=BookingStatus.ACCEPTED)
        with pytest.raises(InvalidTransition, match="grace"):
            machine.apply(
                booking, Actor.system(), BookingStatus.NO_SHOW, booking.start_at + timedelta(minutes=5)
            )

    def test_checked_in_never_no_show(self, machine, artist):
        booking = make_booking(status=BookingStatus.ACCEPTED)
        booking = booking.model_copy(update={"checked_in_at": booking.start_at})
        with pytest.raises(InvalidTransition, match="checked in"):
            machine.apply(booking, artist, BookingStatus.NO_SHOW, booking.end_at)

    def test_artist_after_start(self, machine, artist):
        booking = make_booking(status=BookingStatus.ACCEPTED)
        updated = machine.apply(booking, artist, BookingStatus.NO_SHOW, booking.start_at)
        assert updated.no_show_marked_by == ActorRole.ARTIST
        assert not updated.deposit_forfeited

    def test_artist_before_start_rejected(self, machine, artist):
        booking = make_booking(status=BookingStatus.ACCEPTED)
        with pytest.raises(InvalidTransition, match="future"):
            machine.apply(booking, artist, BookingStatus.NO_SHOW, NOW)

    def test_client_cannot_mark_no_show(self, machine, client_actor):
        booking = make_booking(status=BookingStatus.ACCEPTED)
        with pytest.raises(InvalidTransition):
            machine.apply(booking, client_actor, BookingStatus.NO_SHOW, booking.end_at)


class TestTargets:
    def test_pending_targets(self, machine):
        assert machine.get_valid_targets(BookingStatus.PENDING) == [
            BookingStatus.ACCEPTED, BookingStatus.DENIED,
        ]

    def test_accepted_targets(self, machine):
        assert set(machine.get_valid_targets(BookingStatus.ACCEPTED)) == {
            BookingStatus.CANCELLED, BookingStatus.COMPLETED, BookingStatus.NO_SHOW,
        }

    @pytest.mark.parametrize("status", TERMINAL)
    def test_terminal_states(self, machine, status):
        assert machine.is_terminal(status)
        assert make_booking(status=status).is_terminal

    @pytest.mark.parametrize("status", TERMINAL)
    def test_terminal_states_reject_everything(self, machine, artist, status):
        booking = make_booking(status=status)
        with pytest.raises(InvalidTransition):
            machine.apply(booking, artist, BookingStatus.ACCEPTED, NOW)


class TestStatusParsing:
    @pytest.mark.parametrize("label", ["booked", "matched", "confirmed", "in-progress", "Confirmed "])
    def test_legacy_labels_collapse_to_accepted(self, label):
        assert BookingStatus.parse(label) == BookingStatus.ACCEPTED

    def test_no_show_hyphen(self):
        assert BookingStatus.parse("no-show") == BookingStatus.NO_SHOW

    def test_unknown_label(self):
        with pytest.raises(ValueError):
            BookingStatus.parse("archived")
