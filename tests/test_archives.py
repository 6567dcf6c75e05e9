"""
Tests del motor de archivo: instantáneas, restauración con ids
originales, conflictos y purga.
"""

from sqlalchemy import func, select

from app.models.appointment import Appointment
from app.models.archive import Archive, ArchiveType
from app.models.consultation import Consultation
from app.models.patient import Patient
from app.models.payment import Payment
from app.services.archive_service import RESTORE_CONFLICT_MESSAGE


async def _ids(db_session, model) -> list[int]:
    return list((await db_session.execute(select(model.id).order_by(model.id))).scalars())


async def _create_full_consultation(client, headers, patient_id, tomorrow) -> dict:
    response = await client.post(
        "/api/consultations",
        json={
            "patient_id": patient_id,
            "date_of_consultation": "2026-01-15",
            "type_of_prosthesis": "Implante",
            "total_price": "500",
            "amount_paid": "200",
            "needs_followup": True,
            "follow_up_date": tomorrow.isoformat(),
            "follow_up_time": "09:00",
        },
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


class TestConsultationArchive:
    async def test_delete_then_restore_round_trip(
        self, client, dentist_headers, patient, tomorrow, db_session
    ):
        created = await _create_full_consultation(client, dentist_headers, patient["id"], tomorrow)
        consultation_id = created["consultation"]["id"]
        payment_id = created["payment"]["id"]
        appointment_id = created["follow_up_appointment"]["id"]

        response = await client.delete(
            f"/api/consultations/{consultation_id}", headers=dentist_headers
        )
        assert response.status_code == 200
        archive = response.json()["data"]
        assert archive["original_table"] == "consultations"
        assert archive["archive_type"] == "deleted"
        assert archive["patient_name"] == "Ana Ivanova"
        assert archive["data"]["consultation"]["id"] == consultation_id

        assert await _ids(db_session, Consultation) == []
        assert await _ids(db_session, Payment) == []
        assert await _ids(db_session, Appointment) == []

        response = await client.post(
            f"/api/archives/restore/{archive['id']}", headers=dentist_headers
        )
        assert response.status_code == 200
        restored = response.json()["data"]["restored"]
        assert restored["consultations"] == {"restored": 1, "skipped": 0}
        assert restored["payments"] == {"restored": 1, "skipped": 0}
        assert restored["appointments"] == {"restored": 1, "skipped": 0}

        assert await _ids(db_session, Consultation) == [consultation_id]
        assert await _ids(db_session, Payment) == [payment_id]
        assert await _ids(db_session, Appointment) == [appointment_id]
        assert await _ids(db_session, Archive) == []

        response = await client.get(
            f"/api/consultations/{consultation_id}", headers=dentist_headers
        )
        data = response.json()["data"]
        assert data["remaining_balance"] == 300
        assert data["receipt_number"] == created["consultation"]["receipt_number"]

    async def test_restore_skips_rows_already_present(
        self, client, dentist_headers, patient, tomorrow, db_session
    ):
        """Una restauración repetida de la misma instantánea no duplica filas."""
        created = await _create_full_consultation(client, dentist_headers, patient["id"], tomorrow)
        archive = (
            await client.delete(
                f"/api/consultations/{created['consultation']['id']}", headers=dentist_headers
            )
        ).json()["data"]
        snapshot = (await db_session.execute(
            select(Archive.data_json).where(Archive.id == archive["id"])
        )).scalar_one()

        await client.post(f"/api/archives/restore/{archive['id']}", headers=dentist_headers)

        # Reinsertar la misma instantánea como un archivo nuevo
        copy = Archive(
            dentist_id=archive["dentist_id"],
            original_table="consultations",
            original_id=archive["original_id"],
            data_json=snapshot,
            archive_type=ArchiveType.DELETED,
        )
        db_session.add(copy)
        await db_session.commit()

        response = await client.post(f"/api/archives/restore/{copy.id}", headers=dentist_headers)
        assert response.status_code == 200
        restored = response.json()["data"]["restored"]
        assert restored["consultations"] == {"restored": 0, "skipped": 1}
        assert restored["payments"] == {"restored": 0, "skipped": 1}
        assert (await db_session.execute(select(func.count(Payment.id)))).scalar_one() == 1

    async def test_restore_conflict_when_slot_taken(
        self, client, dentist_headers, patient, tomorrow, db_session
    ):
        created = await _create_full_consultation(client, dentist_headers, patient["id"], tomorrow)
        # Cita de relleno para que la cita nueva no reciba el id de la archivada
        filler = await client.post(
            "/api/appointments",
            json={
                "patient_id": patient["id"],
                "appointment_date": tomorrow.isoformat(),
                "appointment_time": "10:00",
            },
            headers=dentist_headers,
        )
        assert filler.status_code == 201
        archive = (
            await client.delete(
                f"/api/consultations/{created['consultation']['id']}", headers=dentist_headers
            )
        ).json()["data"]

        # Una cita nueva ocupa el horario del seguimiento archivado
        response = await client.post(
            "/api/appointments",
            json={
                "patient_id": patient["id"],
                "appointment_date": tomorrow.isoformat(),
                "appointment_time": "09:00",
            },
            headers=dentist_headers,
        )
        assert response.json()["data"]["id"] != created["follow_up_appointment"]["id"]

        response = await client.post(
            f"/api/archives/restore/{archive['id']}", headers=dentist_headers
        )
        assert response.status_code == 409
        assert response.json()["message"] == RESTORE_CONFLICT_MESSAGE
        # Nada quedó a medias y el archivo sigue disponible
        assert await _ids(db_session, Consultation) == []
        assert await _ids(db_session, Payment) == []
        assert await _ids(db_session, Archive) == [archive["id"]]

    async def test_restore_conflict_when_id_held_by_other_record(
        self, client, dentist_headers, patient, tomorrow, db_session
    ):
        created = await _create_full_consultation(client, dentist_headers, patient["id"], tomorrow)
        archive = (
            await client.delete(
                f"/api/consultations/{created['consultation']['id']}", headers=dentist_headers
            )
        ).json()["data"]

        # Cita sin consulta, en otro horario, que reutiliza el id de la archivada
        response = await client.post(
            "/api/appointments",
            json={
                "patient_id": patient["id"],
                "appointment_date": tomorrow.isoformat(),
                "appointment_time": "11:00",
            },
            headers=dentist_headers,
        )
        appointment_id = created["follow_up_appointment"]["id"]
        assert response.json()["data"]["id"] == appointment_id

        response = await client.post(
            f"/api/archives/restore/{archive['id']}", headers=dentist_headers
        )
        assert response.status_code == 409
        assert "ya está en uso" in response.json()["message"]
        assert await _ids(db_session, Consultation) == []
        assert await _ids(db_session, Archive) == [archive["id"]]

    async def test_assistant_sees_archives_without_amounts(
        self, client, dentist_headers, assistant_headers, patient, tomorrow
    ):
        created = await _create_full_consultation(client, dentist_headers, patient["id"], tomorrow)

        response = await client.delete(
            f"/api/consultations/{created['consultation']['id']}", headers=assistant_headers
        )
        assert response.status_code == 200
        archive = response.json()["data"]
        assert "payments" not in archive["data"]
        assert "total_price" not in archive["data"]["consultation"]
        assert "amount_paid" not in archive["data"]["consultation"]
        assert "remaining_balance" not in archive["data"]["consultation"]
        assert archive["data"]["appointments"][0]["appointment_time"]

        detail = await client.get(f"/api/archives/{archive['id']}", headers=assistant_headers)
        assert detail.status_code == 200
        assert "payments" not in detail.json()["data"]["data"]
        assert "total_price" not in detail.json()["data"]["data"]["consultation"]

        listing = await client.get("/api/archives", headers=assistant_headers)
        item = listing.json()["data"][0]
        assert "payments" not in item["data"]
        assert "amount_paid" not in item["data"]["consultation"]

        # El dentista ve los montos como números
        detail = await client.get(f"/api/archives/{archive['id']}", headers=dentist_headers)
        data = detail.json()["data"]["data"]
        assert data["consultation"]["total_price"] == 500
        assert data["payments"][0]["amount"] == 200

    async def test_malformed_snapshot(self, client, dentist_headers, dentist, db_session):
        broken = Archive(
            dentist_id=dentist.id,
            original_table="consultations",
            original_id=99,
            data_json="{not json",
            archive_type=ArchiveType.DELETED,
        )
        db_session.add(broken)
        await db_session.commit()

        response = await client.post(
            f"/api/archives/restore/{broken.id}", headers=dentist_headers
        )
        assert response.status_code == 400

    async def test_archives_isolated_by_practice(
        self, client, dentist_headers, other_dentist_headers, patient, tomorrow
    ):
        created = await _create_full_consultation(client, dentist_headers, patient["id"], tomorrow)
        archive = (
            await client.delete(
                f"/api/consultations/{created['consultation']['id']}", headers=dentist_headers
            )
        ).json()["data"]

        response = await client.post(
            f"/api/archives/restore/{archive['id']}", headers=other_dentist_headers
        )
        assert response.status_code == 404
        response = await client.get("/api/archives", headers=other_dentist_headers)
        assert response.json()["data"] == []


class TestPatientArchive:
    async def test_archive_and_restore_patient(
        self, client, dentist_headers, patient, tomorrow
    ):
        await _create_full_consultation(client, dentist_headers, patient["id"], tomorrow)

        response = await client.post(
            f"/api/patients/archive/{patient['id']}", headers=dentist_headers
        )
        assert response.status_code == 200
        archive = response.json()["data"]
        assert archive["archive_type"] == "archived"
        assert archive["treatment"] == "Implante"
        assert len(archive["data"]["consultations"]) == 1

        active = await client.get("/api/patients", headers=dentist_headers)
        assert active.json()["data"] == []
        archived = await client.get(
            "/api/patients", params={"archived": True}, headers=dentist_headers
        )
        assert archived.json()["data"][0]["id"] == patient["id"]

        listing = await client.get(
            "/api/archives",
            params={"table": "patients", "search": "ivanova"},
            headers=dentist_headers,
        )
        assert listing.json()["pagination"]["total"] == 1

        response = await client.post(
            f"/api/patients/restore/{patient['id']}", headers=dentist_headers
        )
        assert response.status_code == 200

        active = await client.get("/api/patients", headers=dentist_headers)
        assert active.json()["data"][0]["id"] == patient["id"]
        listing = await client.get("/api/archives", headers=dentist_headers)
        assert listing.json()["data"] == []

    async def test_restore_blocked_by_duplicate_phone(
        self, client, dentist_headers, patient
    ):
        await client.post(f"/api/patients/archive/{patient['id']}", headers=dentist_headers)
        # El teléfono queda libre entre los activos
        response = await client.post(
            "/api/patients",
            json={"first_name": "Otra", "last_name": "Ana", "phone": "0991234567"},
            headers=dentist_headers,
        )
        assert response.status_code == 201

        response = await client.post(
            f"/api/patients/restore/{patient['id']}", headers=dentist_headers
        )
        assert response.status_code == 409

    async def test_restore_unknown_patient(self, client, dentist_headers, patient):
        response = await client.post(
            f"/api/patients/restore/{patient['id']}", headers=dentist_headers
        )
        assert response.status_code == 404

    async def test_purge_removes_patient_history(
        self, client, dentist_headers, assistant_headers, patient, tomorrow, db_session
    ):
        await _create_full_consultation(client, dentist_headers, patient["id"], tomorrow)
        archive = (
            await client.post(f"/api/patients/archive/{patient['id']}", headers=dentist_headers)
        ).json()["data"]

        response = await client.delete(f"/api/archives/{archive['id']}", headers=assistant_headers)
        assert response.status_code == 403

        response = await client.delete(f"/api/archives/{archive['id']}", headers=dentist_headers)
        assert response.status_code == 200
        assert await _ids(db_session, Patient) == []
        assert await _ids(db_session, Consultation) == []
        assert await _ids(db_session, Payment) == []
        assert await _ids(db_session, Archive) == []

    async def test_restore_rebuilds_missing_patient(
        self, client, dentist_headers, patient, db_session
    ):
        archive = (
            await client.post(f"/api/patients/archive/{patient['id']}", headers=dentist_headers)
        ).json()["data"]
        await db_session.execute(
            Patient.__table__.delete().where(Patient.id == patient["id"])
        )
        await db_session.commit()

        response = await client.post(
            f"/api/archives/restore/{archive['id']}", headers=dentist_headers
        )
        assert response.status_code == 200
        assert response.json()["data"]["restored"]["patients"] == {"restored": 1, "skipped": 0}

        detail = await client.get(f"/api/patients/{patient['id']}", headers=dentist_headers)
        assert detail.json()["data"]["patient"]["is_archived"] is False
