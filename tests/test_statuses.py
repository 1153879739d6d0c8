"""
Tests for status conversions between services.
"""

import pytest

from shared.statuses import (
    AppointmentStatus,
    MappingStatus,
    SessionStatus,
    mapping_status_for_booking,
    mapping_status_for_session_outcome,
)


class TestSessionOutcomeConversion:
    @pytest.mark.parametrize(
        "session_status,expected",
        [
            (SessionStatus.COMPLETED, MappingStatus.COMPLETED),
            (SessionStatus.CANCELLED, MappingStatus.CANCELLED),
            (SessionStatus.NO_SHOW, MappingStatus.CANCELLED),
        ],
    )
    def test_terminal_outcomes(self, session_status, expected) -> None:
        assert mapping_status_for_session_outcome(session_status) == expected

    @pytest.mark.parametrize("session_status", [SessionStatus.SCHEDULED, SessionStatus.STARTED, SessionStatus.IN_PROGRESS])
    def test_non_terminal_outcome_is_rejected(self, session_status) -> None:
        with pytest.raises(ValueError):
            mapping_status_for_session_outcome(session_status)


class TestBookingConversion:
    @pytest.mark.parametrize(
        "appointment_status,expected",
        [
            (AppointmentStatus.SCHEDULED, MappingStatus.CONFIRMED),
            (AppointmentStatus.CONFIRMED, MappingStatus.CONFIRMED),
            (AppointmentStatus.CANCELLED, MappingStatus.CANCELLED),
            (AppointmentStatus.NO_SHOW, MappingStatus.CANCELLED),
        ],
    )
    def test_booking_status(self, appointment_status, expected) -> None:
        assert mapping_status_for_booking(appointment_status) == expected

    def test_accepts_raw_values(self) -> None:
        assert mapping_status_for_booking("SCHEDULED") == MappingStatus.CONFIRMED
