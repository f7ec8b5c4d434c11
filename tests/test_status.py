"""Tests for the appointment status enumeration."""

import pytest

from saludlibre.status import ACTIVE_STATUSES, AppointmentStatus


class TestDisplay:
    """Every status has exactly one label and colour."""

    @pytest.mark.parametrize("status,label,color", [
        (AppointmentStatus.PENDING, "Pendiente", "yellow"),
        (AppointmentStatus.CONFIRMED, "Confirmada", "blue"),
        (AppointmentStatus.COMPLETED, "Completada", "green"),
        (AppointmentStatus.CANCELLED, "Cancelada", "red"),
    ])
    def test_label_and_color(self, status, label, color):
        assert status.label == label
        assert status.color == color

    def test_parses_stored_value(self):
        assert AppointmentStatus("confirmed") is AppointmentStatus.CONFIRMED

    def test_unknown_value_rejected(self):
        with pytest.raises(ValueError):
            AppointmentStatus("rescheduled")


class TestTransitions:
    """Tests for allowed status changes."""

    def test_pending_can_be_confirmed_or_cancelled(self):
        assert AppointmentStatus.PENDING.can_transition_to(AppointmentStatus.CONFIRMED)
        assert AppointmentStatus.PENDING.can_transition_to(AppointmentStatus.CANCELLED)
        assert not AppointmentStatus.PENDING.can_transition_to(AppointmentStatus.COMPLETED)

    def test_confirmed_can_be_completed(self):
        assert AppointmentStatus.CONFIRMED.can_transition_to(AppointmentStatus.COMPLETED)

    def test_terminal_states(self):
        assert AppointmentStatus.COMPLETED.is_terminal
        assert AppointmentStatus.CANCELLED.is_terminal
        assert not AppointmentStatus.PENDING.is_terminal
        assert not AppointmentStatus.CANCELLED.can_transition_to(AppointmentStatus.PENDING)

    def test_active_statuses_hold_slots(self):
        assert set(ACTIVE_STATUSES) == {AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED}
