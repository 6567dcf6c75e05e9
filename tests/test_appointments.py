"""
Tests de citas: state machine, choque de horarios, slots y agenda diaria.
"""

import asyncio
from datetime import time

import pytest

from app.core.exceptions import ConflictException
from app.models.appointment import AppointmentStatus, is_valid_transition
from app.schemas.appointment import AppointmentCreate
from app.services import appointment_service


async def _book(client, headers, patient_id, day, hhmm="09:00", **extra):
    return await client.post(
        "/api/appointments",
        json={
            "patient_id": patient_id,
            "appointment_date": day.isoformat(),
            "appointment_time": hhmm,
            **extra,
        },
        headers=headers,
    )


class TestStateMachine:
    @pytest.mark.parametrize(
        "current,new,expected",
        [
            (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED, True),
            (AppointmentStatus.CONFIRMED, AppointmentStatus.PENDING, True),
            (AppointmentStatus.CONFIRMED, AppointmentStatus.COMPLETED, True),
            (AppointmentStatus.COMPLETED, AppointmentStatus.PENDING, False),
            (AppointmentStatus.CANCELLED, AppointmentStatus.CONFIRMED, False),
        ],
    )
    def test_transitions(self, current, new, expected):
        assert is_valid_transition(current, new) is expected

    async def test_status_update_and_terminal_lock(
        self, client, dentist_headers, patient, tomorrow
    ):
        created = (await _book(client, dentist_headers, patient["id"], tomorrow)).json()["data"]
        assert created["status"] == "pending"
        assert created["patient_name"] == "Ana Ivanova"

        response = await client.put(
            f"/api/appointments/{created['id']}",
            json={"status": "confirmed"},
            headers=dentist_headers,
        )
        assert response.json()["data"]["status"] == "confirmed"

        response = await client.post(
            f"/api/appointments/complete/{created['id']}", headers=dentist_headers
        )
        assert response.json()["data"]["status"] == "completed"

        response = await client.put(
            f"/api/appointments/{created['id']}",
            json={"notes": "cambio tardío"},
            headers=dentist_headers,
        )
        assert response.status_code == 400

    async def test_cancel_only_active(self, client, dentist_headers, patient, tomorrow):
        created = (await _book(client, dentist_headers, patient["id"], tomorrow)).json()["data"]

        response = await client.post(
            f"/api/appointments/cancel/{created['id']}",
            json={"cancellation_reason": "Paciente enfermo"},
            headers=dentist_headers,
        )
        data = response.json()["data"]
        assert data["status"] == "cancelled"
        assert data["cancellation_reason"] == "Paciente enfermo"
        assert data["cancelled_at"] is not None

        response = await client.post(
            f"/api/appointments/cancel/{created['id']}", headers=dentist_headers
        )
        assert response.status_code == 404


class TestSlotCollisions:
    async def test_double_booking_conflict(self, client, dentist_headers, patient, tomorrow):
        first = await _book(client, dentist_headers, patient["id"], tomorrow, "15:00")
        assert first.status_code == 201

        second = await _book(client, dentist_headers, patient["id"], tomorrow, "15:00")
        assert second.status_code == 409

    async def test_cancelled_slot_can_be_rebooked(
        self, client, dentist_headers, patient, tomorrow
    ):
        first = (await _book(client, dentist_headers, patient["id"], tomorrow, "15:00")).json()
        await client.post(
            f"/api/appointments/cancel/{first['data']['id']}", headers=dentist_headers
        )
        again = await _book(client, dentist_headers, patient["id"], tomorrow, "15:00")
        assert again.status_code == 201

    async def test_other_dentist_same_slot_allowed(
        self, client, dentist_headers, other_dentist_headers, patient, tomorrow
    ):
        await _book(client, dentist_headers, patient["id"], tomorrow, "16:00")
        other_patient = await client.post(
            "/api/patients",
            json={"first_name": "Olga", "last_name": "Ruiz", "phone": "0955555555"},
            headers=other_dentist_headers,
        )
        response = await _book(
            client, other_dentist_headers, other_patient.json()["data"]["id"], tomorrow, "16:00"
        )
        assert response.status_code == 201

    async def test_reschedule_into_taken_slot(self, client, dentist_headers, patient, tomorrow):
        await _book(client, dentist_headers, patient["id"], tomorrow, "09:00")
        second = (await _book(client, dentist_headers, patient["id"], tomorrow, "09:30")).json()

        response = await client.put(
            f"/api/appointments/{second['data']['id']}",
            json={"appointment_time": "09:00"},
            headers=dentist_headers,
        )
        assert response.status_code == 409

    async def test_concurrent_bookings_only_one_wins(
        self, run_in_session, dentist_scope, patient, tomorrow
    ):
        data = AppointmentCreate(
            patient_id=patient["id"],
            appointment_date=tomorrow,
            appointment_time="10:30",
        )

        async def book():
            return await run_in_session(
                appointment_service.create_appointment, dentist_scope, data
            )

        results = await asyncio.gather(book(), book(), return_exceptions=True)
        successes = [r for r in results if not isinstance(r, Exception)]
        conflicts = [r for r in results if isinstance(r, ConflictException)]
        assert len(successes) == 1
        assert len(conflicts) == 1
        assert successes[0].appointment_time == time(10, 30)


class TestAvailability:
    async def test_slots_exclude_booked_and_keep_cancelled(
        self, client, dentist_headers, patient, tomorrow
    ):
        await _book(client, dentist_headers, patient["id"], tomorrow, "09:00")
        cancelled = (await _book(client, dentist_headers, patient["id"], tomorrow, "14:00")).json()
        await client.post(
            f"/api/appointments/cancel/{cancelled['data']['id']}", headers=dentist_headers
        )

        response = await client.get(
            f"/api/appointments/slots/{tomorrow.isoformat()}", headers=dentist_headers
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["booked_slots"] == ["09:00"]
        assert "09:00" not in data["available_slots"]
        assert "14:00" in data["available_slots"]
        assert data["available_slots"][0] == "09:30"
        assert data["available_slots"][-1] == "17:00"
        assert len(data["available_slots"]) == 12

    async def test_daily_schedule_summary(self, client, dentist_headers, patient, tomorrow):
        await _book(client, dentist_headers, patient["id"], tomorrow, "11:00")
        second = (await _book(client, dentist_headers, patient["id"], tomorrow, "09:00")).json()
        await client.post(
            f"/api/appointments/complete/{second['data']['id']}", headers=dentist_headers
        )

        response = await client.get(
            "/api/appointments/daily",
            params={"date": tomorrow.isoformat()},
            headers=dentist_headers,
        )
        data = response.json()["data"]
        assert [a["appointment_time"] for a in data["appointments"]] == ["09:00", "11:00"]
        assert data["summary"]["total"] == 2
        assert data["summary"]["completed"] == 1
        assert data["summary"]["pending"] == 1

    async def test_schedule_by_date_and_list_filters(
        self, client, dentist_headers, patient, tomorrow
    ):
        await _book(client, dentist_headers, patient["id"], tomorrow, "11:00")
        response = await client.get(
            f"/api/appointments/schedule/{tomorrow.isoformat()}", headers=dentist_headers
        )
        assert len(response.json()["data"]) == 1

        response = await client.get(
            "/api/appointments", params={"status": "cancelled"}, headers=dentist_headers
        )
        assert response.json()["pagination"]["total"] == 0

    async def test_booking_for_archived_patient_rejected(
        self, client, dentist_headers, patient, tomorrow
    ):
        await client.post(f"/api/patients/archive/{patient['id']}", headers=dentist_headers)
        response = await _book(client, dentist_headers, patient["id"], tomorrow)
        assert response.status_code == 404
