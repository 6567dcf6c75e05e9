"""
Tests de consultas: creación compuesta atómica, edición y seguimiento.
"""

from datetime import date, timedelta

from sqlalchemy import func, select

from app.models.appointment import Appointment
from app.models.consultation import Consultation
from app.models.patient import Patient
from app.models.payment import Payment


def _consultation_payload(**overrides) -> dict:
    payload = {
        "date_of_consultation": date.today().isoformat(),
        "type_of_prosthesis": "Prótesis parcial",
        "total_price": "500",
        "amount_paid": "200",
    }
    payload.update(overrides)
    return payload


async def _count(db_session, model) -> int:
    return (await db_session.execute(select(func.count()).select_from(model))).scalar_one()


class TestCompositeCreate:
    async def test_consultation_with_payment_and_followup(
        self, client, dentist_headers, patient, tomorrow, db_session
    ):
        response = await client.post(
            "/api/consultations",
            json=_consultation_payload(
                patient_id=patient["id"],
                needs_followup=True,
                follow_up_date=tomorrow.isoformat(),
                follow_up_time="09:00",
            ),
            headers=dentist_headers,
        )
        assert response.status_code == 201, response.text
        data = response.json()["data"]

        consultation = data["consultation"]
        assert consultation["remaining_balance"] == 300
        assert consultation["payment_status"] == "Partial"
        assert consultation["receipt_number"].startswith("CON-")
        assert data["patient_created"] is False

        assert data["payment"]["amount"] == 200
        assert data["payment"]["receipt_number"].startswith("PAY-")

        followup = data["follow_up_appointment"]
        assert followup["appointment_date"] == tomorrow.isoformat()
        assert followup["appointment_time"] == "09:00"
        assert followup["status"] == "confirmed"
        assert followup["treatment_type"] == "Follow-up"

        payments = (await db_session.execute(select(Payment))).scalars().all()
        assert [p.amount for p in payments] == [200]
        assert await _count(db_session, Appointment) == 1

    async def test_creates_patient_when_unknown(self, client, dentist_headers):
        response = await client.post(
            "/api/consultations",
            json=_consultation_payload(
                first_name="Ivan", last_name="Petrov", phone="0987654321", amount_paid="0"
            ),
            headers=dentist_headers,
        )
        assert response.status_code == 201
        data = response.json()["data"]
        assert data["patient_created"] is True
        assert data["patient"]["full_name"] == "Ivan Petrov"
        assert data["payment"] is None
        assert data["consultation"]["payment_status"] == "Pending"

    async def test_reuses_patient_by_phone(self, client, dentist_headers, patient):
        response = await client.post(
            "/api/consultations",
            json=_consultation_payload(
                first_name="Ana", last_name="Ivanova", phone="0991234567"
            ),
            headers=dentist_headers,
        )
        data = response.json()["data"]
        assert data["patient_created"] is False
        assert data["patient"]["id"] == patient["id"]

    async def test_followup_collision_rolls_back_everything(
        self, client, dentist_headers, patient, tomorrow, db_session
    ):
        await client.post(
            "/api/appointments",
            json={
                "patient_id": patient["id"],
                "appointment_date": tomorrow.isoformat(),
                "appointment_time": "10:00",
            },
            headers=dentist_headers,
        )
        response = await client.post(
            "/api/consultations",
            json=_consultation_payload(
                first_name="Nuevo", last_name="Paciente", phone="0900000000",
                needs_followup=True,
                follow_up_date=tomorrow.isoformat(),
                follow_up_time="10:00",
            ),
            headers=dentist_headers,
        )
        assert response.status_code == 409

        assert await _count(db_session, Consultation) == 0
        assert await _count(db_session, Payment) == 0
        assert await _count(db_session, Patient) == 1
        assert await _count(db_session, Appointment) == 1

    async def test_amount_paid_above_total_rejected(self, client, dentist_headers, patient):
        response = await client.post(
            "/api/consultations",
            json=_consultation_payload(patient_id=patient["id"], amount_paid="900"),
            headers=dentist_headers,
        )
        assert response.status_code == 400

    async def test_followup_requires_date_and_time(self, client, dentist_headers, patient):
        response = await client.post(
            "/api/consultations",
            json=_consultation_payload(patient_id=patient["id"], needs_followup=True),
            headers=dentist_headers,
        )
        assert response.status_code == 400

    async def test_bad_time_format_rejected(self, client, dentist_headers, patient, tomorrow):
        response = await client.post(
            "/api/consultations",
            json=_consultation_payload(
                patient_id=patient["id"],
                needs_followup=True,
                follow_up_date=tomorrow.isoformat(),
                follow_up_time="25:00",
            ),
            headers=dentist_headers,
        )
        assert response.status_code == 400

    async def test_assistant_response_hides_amounts(self, client, assistant_headers, patient):
        response = await client.post(
            "/api/consultations",
            json=_consultation_payload(patient_id=patient["id"]),
            headers=assistant_headers,
        )
        assert response.status_code == 201
        data = response.json()["data"]
        assert "payment" not in data
        assert "total_price" not in data["consultation"]
        assert "remaining_balance" not in data["consultation"]


class TestConsultationUpdate:
    async def _create(self, client, headers, patient_id, **extra) -> dict:
        response = await client.post(
            "/api/consultations",
            json=_consultation_payload(patient_id=patient_id, **extra),
            headers=headers,
        )
        assert response.status_code == 201, response.text
        return response.json()["data"]

    async def test_total_price_cannot_drop_below_paid(self, client, dentist_headers, patient):
        created = await self._create(client, dentist_headers, patient["id"])
        consultation_id = created["consultation"]["id"]

        response = await client.put(
            f"/api/consultations/{consultation_id}",
            json={"total_price": "150"},
            headers=dentist_headers,
        )
        assert response.status_code == 400

        response = await client.put(
            f"/api/consultations/{consultation_id}",
            json={"total_price": "600"},
            headers=dentist_headers,
        )
        assert response.status_code == 200
        assert response.json()["data"]["remaining_balance"] == 400

    async def test_assistant_cannot_change_price(
        self, client, dentist_headers, assistant_headers, patient
    ):
        created = await self._create(client, dentist_headers, patient["id"])
        response = await client.put(
            f"/api/consultations/{created['consultation']['id']}",
            json={"total_price": "700"},
            headers=assistant_headers,
        )
        assert response.status_code == 403

    async def test_disabling_followup_cancels_appointment(
        self, client, dentist_headers, patient, tomorrow
    ):
        created = await self._create(
            client, dentist_headers, patient["id"],
            needs_followup=True, follow_up_date=tomorrow.isoformat(), follow_up_time="11:00",
        )
        consultation_id = created["consultation"]["id"]
        appointment_id = created["follow_up_appointment"]["id"]

        response = await client.put(
            f"/api/consultations/{consultation_id}",
            json={"needs_followup": False},
            headers=dentist_headers,
        )
        assert response.status_code == 200
        assert response.json()["data"]["follow_up_appointment"] is None

        appointment = await client.get(
            f"/api/appointments/{appointment_id}", headers=dentist_headers
        )
        assert appointment.json()["data"]["status"] == "cancelled"

    async def test_reschedule_followup(self, client, dentist_headers, patient, tomorrow):
        created = await self._create(
            client, dentist_headers, patient["id"],
            needs_followup=True, follow_up_date=tomorrow.isoformat(), follow_up_time="11:00",
        )
        later = tomorrow + timedelta(days=1)
        response = await client.put(
            f"/api/consultations/{created['consultation']['id']}",
            json={"follow_up_date": later.isoformat(), "follow_up_time": "14:30"},
            headers=dentist_headers,
        )
        assert response.status_code == 200
        followup = response.json()["data"]["follow_up_appointment"]
        assert followup["id"] == created["follow_up_appointment"]["id"]
        assert followup["appointment_date"] == later.isoformat()
        assert followup["appointment_time"] == "14:30"


class TestConsultationQueries:
    async def test_list_and_isolation(
        self, client, dentist_headers, other_dentist_headers, patient
    ):
        await client.post(
            "/api/consultations",
            json=_consultation_payload(patient_id=patient["id"]),
            headers=dentist_headers,
        )
        response = await client.get("/api/consultations", headers=dentist_headers)
        body = response.json()
        assert body["pagination"]["total"] == 1
        assert body["data"][0]["patient_name"] == "Ana Ivanova"

        response = await client.get("/api/consultations", headers=other_dentist_headers)
        assert response.json()["data"] == []

        consultation_id = body["data"][0]["id"]
        response = await client.get(
            f"/api/consultations/{consultation_id}", headers=other_dentist_headers
        )
        assert response.status_code == 404
