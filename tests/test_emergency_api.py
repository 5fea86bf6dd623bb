from datetime import timedelta

import httpx
from sqlalchemy import func, select

from conftest import make_settings, patient_profile, register_account
from neomed.main import create_app
from neomed.models import EmergencyRequest, User, utcnow

DEFAULT_MESSAGE = "Solicitação de atendimento de emergência"


async def set_last_seen(app, user_id, delta):
    async with app.state.context.session_factory() as session:
        user = await session.get(User, user_id)
        user.last_seen_at = utcnow() - delta
        session.add(user)
        await session.commit()


async def count_open(app, patient_id):
    async with app.state.context.session_factory() as session:
        result = await session.execute(
            select(func.count()).select_from(EmergencyRequest).where(
                EmergencyRequest.patient_id == patient_id,
                EmergencyRequest.status == "open",
            )
        )
        return result.scalar_one()


async def test_full_emergency_flow(client, doctor, patient):
    response = await client.post(
        "/patient/emergency/request", json={"message": "dor no peito"}, headers=patient.headers
    )
    assert response.status_code == 200
    request = response.json()["request"]
    assert request["status"] == "open"
    assert request["message"] == "dor no peito"
    assert request["patientId"] == patient.id
    assert request["doctorId"] == doctor.id
    assert request["patientPhone"] == "+5511987654321"

    response = await client.get("/doctor/emergency/requests", headers=doctor.headers)
    assert response.status_code == 200
    listed = response.json()["requests"]
    assert [r["id"] for r in listed] == [request["id"]]
    assert listed[0]["patientOnline"] is True

    response = await client.post(f"/doctor/emergency/{request['id']}/start-video", headers=doctor.headers)
    assert response.status_code == 200
    started = response.json()["request"]
    assert started["status"] == "open"
    assert started["attendingDoctorId"] == doctor.id
    assert started["attendingDoctorName"] == "Dr. Carlos"
    assert started["videoCallProvider"] == "twilio"
    assert started["videoCallUrl"].startswith("/twilio-video-embed.html?roomName=neomed-emergency-")
    assert started["videoCallStartedAt"]

    response = await client.post(f"/doctor/emergency/{request['id']}/resolve", headers=doctor.headers)
    assert response.status_code == 200
    resolved = response.json()["request"]
    assert resolved["status"] == "resolved"
    assert resolved["resolvedBy"] == doctor.id
    assert resolved["resolvedAt"]

    response = await client.post(f"/doctor/emergency/{request['id']}/resolve", headers=doctor.headers)
    assert response.status_code == 200
    assert response.json()["request"]["resolvedAt"] == resolved["resolvedAt"]
    assert response.json()["request"]["updatedAt"] == resolved["updatedAt"]

    response = await client.get("/patient/emergency/latest", headers=patient.headers)
    assert response.json()["request"]["status"] == "resolved"


async def test_second_request_refreshes_the_open_row(app, client, patient):
    first = await client.post("/patient/emergency/request", json={"message": "tontura"}, headers=patient.headers)
    second = await client.post("/patient/emergency/request", json={"message": "piorou"}, headers=patient.headers)

    assert first.json()["request"]["id"] == second.json()["request"]["id"]
    assert second.json()["request"]["message"] == "piorou"
    assert second.json()["request"]["createdAt"] == first.json()["request"]["createdAt"]
    assert await count_open(app, patient.id) == 1


async def test_refresh_keeps_claim(client, doctor, patient):
    first = await client.post("/patient/emergency/request", json={}, headers=patient.headers)
    request_id = first.json()["request"]["id"]
    started = await client.post(
        f"/doctor/emergency/{request_id}/start-video",
        json={"callUrl": "https://meet.neomed.com.br/room-1"},
        headers=doctor.headers,
    )
    assert started.json()["request"]["videoCallUrl"] == "https://meet.neomed.com.br/room-1"

    again = await client.post("/patient/emergency/request", json={"message": "ainda aqui"}, headers=patient.headers)
    body = again.json()["request"]
    assert body["id"] == request_id
    assert body["attendingDoctorId"] == doctor.id
    assert body["videoCallUrl"] == "https://meet.neomed.com.br/room-1"

    # A second start-video keeps the existing room
    restarted = await client.post(f"/doctor/emergency/{request_id}/start-video", headers=doctor.headers)
    assert restarted.json()["request"]["videoCallUrl"] == "https://meet.neomed.com.br/room-1"


async def test_default_message_and_body_phone(client, patient):
    response = await client.post(
        "/patient/emergency/request", json={"phone": "21 99999-0000"}, headers=patient.headers
    )
    request = response.json()["request"]
    assert request["message"] == DEFAULT_MESSAGE
    assert request["patientPhone"] == "+5521999990000"

    response = await client.post("/patient/emergency/request", headers=patient.headers)
    assert response.status_code == 200
    assert response.json()["request"]["message"] == DEFAULT_MESSAGE


async def test_new_request_after_resolution_opens_a_new_row(app, client, doctor, patient):
    first = (await client.post("/patient/emergency/request", json={}, headers=patient.headers)).json()["request"]
    await client.post(f"/doctor/emergency/{first['id']}/resolve", headers=doctor.headers)

    second = (await client.post("/patient/emergency/request", json={}, headers=patient.headers)).json()["request"]
    assert second["id"] != first["id"]
    assert second["status"] == "open"
    assert await count_open(app, patient.id) == 1

    latest = await client.get("/patient/emergency/latest", headers=patient.headers)
    assert latest.json()["request"]["id"] == second["id"]


async def test_latest_is_null_without_requests(client, patient):
    response = await client.get("/patient/emergency/latest", headers=patient.headers)
    assert response.status_code == 200
    assert response.json() == {"success": True, "request": None}


async def test_start_video_on_resolved_request_fails_without_mutation(client, doctor, patient):
    request = (await client.post("/patient/emergency/request", json={}, headers=patient.headers)).json()["request"]
    resolved = (
        await client.post(f"/doctor/emergency/{request['id']}/resolve", headers=doctor.headers)
    ).json()["request"]

    response = await client.post(f"/doctor/emergency/{request['id']}/start-video", headers=doctor.headers)
    assert response.status_code == 409
    assert response.json()["code"] == "emergency/already-resolved"

    latest = (await client.get("/patient/emergency/latest", headers=patient.headers)).json()["request"]
    assert latest == resolved
    assert latest["videoCallUrl"] is None


async def test_unknown_request_id(client, doctor):
    for action in ("start-video", "resolve"):
        response = await client.post(f"/doctor/emergency/missing-id/{action}", headers=doctor.headers)
        assert response.status_code == 404
        assert response.json()["code"] == "emergency/not-found"


async def test_offline_patients_are_hidden_from_the_queue(app, client, doctor, patient):
    await client.post("/patient/emergency/request", json={}, headers=patient.headers)

    await set_last_seen(app, patient.id, timedelta(seconds=119))
    response = await client.get("/doctor/emergency/requests", headers=doctor.headers)
    assert len(response.json()["requests"]) == 1

    await set_last_seen(app, patient.id, timedelta(seconds=300))
    response = await client.get("/doctor/emergency/requests", headers=doctor.headers)
    assert response.json()["requests"] == []

    await client.post("/auth/ping", headers=patient.headers)
    response = await client.get("/doctor/emergency/requests", headers=doctor.headers)
    assert len(response.json()["requests"]) == 1


async def test_queue_is_newest_first(client, admin, doctor, patient):
    other = await register_account(
        client,
        "joao@paciente.com.br",
        name="João Lima",
        role="patient",
        doctorId=doctor.id,
        patientProfile={"cpf": "111.444.777-35", "phone": "11 91234-5678", "dateOfBirth": "1985-02-03"},
    )
    first = (await client.post("/patient/emergency/request", json={}, headers=patient.headers)).json()["request"]
    second = (await client.post("/patient/emergency/request", json={}, headers=other.headers)).json()["request"]

    response = await client.get("/doctor/emergency/requests", headers=doctor.headers)
    assert [r["id"] for r in response.json()["requests"]] == [second["id"], first["id"]]


async def test_start_video_adds_patient_to_claiming_doctor(client, admin, doctor, patient):
    other_doctor = await register_account(client, "plantao@clinica.com.br", name="Dra. Paula", role="doctor")
    request = (await client.post("/patient/emergency/request", json={}, headers=patient.headers)).json()["request"]

    response = await client.post(f"/doctor/emergency/{request['id']}/start-video", headers=other_doctor.headers)
    assert response.status_code == 200

    patients = (await client.get("/patients", headers=other_doctor.headers)).json()["data"]
    assert len(patients) == 1
    profile = patients[0]
    assert profile["linkedUserId"] == patient.id
    # Known fields come from the linked doctor's record
    assert profile["cpf"] == "529.982.247-25"
    assert profile["dateOfBirth"] == "1990-05-12"
    assert profile["phone"] == "+5511987654321"

    # Starting again does not duplicate the profile
    await client.post(f"/doctor/emergency/{request['id']}/start-video", headers=other_doctor.headers)
    patients = (await client.get("/patients", headers=other_doctor.headers)).json()["data"]
    assert len(patients) == 1


async def test_role_guards(client, doctor, patient):
    response = await client.post("/patient/emergency/request", json={}, headers=doctor.headers)
    assert response.status_code == 403
    assert response.json()["code"] == "auth/patient-only"

    response = await client.get("/doctor/emergency/requests", headers=patient.headers)
    assert response.status_code == 403
    assert response.json()["code"] == "auth/staff-only"


async def test_appointment_request(client, doctor, patient):
    response = await client.post(
        "/patient/appointments/request",
        json={"date": "2024-07-01", "time": "14:30", "reason": "Retorno"},
        headers=patient.headers,
    )
    assert response.status_code == 201
    body = response.json()
    appointment = body["appointment"]
    assert appointment["patientId"] == patient.id
    assert appointment["status"] == "scheduled"
    assert appointment["requestedByPatient"] is True
    assert appointment["reason"] == "Retorno"
    assert appointment["notes"] == ""
    assert body["doctor"]["id"] == doctor.id

    stored = (await client.get("/appointments", headers=doctor.headers)).json()["data"]
    assert stored == [appointment]

    visible = (await client.get("/appointments", headers=patient.headers)).json()["data"]
    assert visible == [appointment]


async def test_appointment_request_requires_date_and_time(client, patient):
    response = await client.post(
        "/patient/appointments/request", json={"date": "2024-07-01"}, headers=patient.headers
    )
    assert response.status_code == 400
    assert response.json()["code"] == "appointment/missing-fields"


async def test_configured_window_drives_queue_and_online_flag():
    application = create_app(make_settings(liveness_window_seconds=30))
    transport = httpx.ASGITransport(app=application)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        admin = await register_account(c, "admin@clinica.com.br")
        doctor = await register_account(c, "doc@clinica.com.br", role="doctor")
        patient = await register_account(
            c,
            "maria@paciente.com.br",
            role="patient",
            doctorId=doctor.id,
            patientProfile=patient_profile(),
        )
        await c.post("/patient/emergency/request", json={}, headers=patient.headers)
        await set_last_seen(application, patient.id, timedelta(seconds=60))

        response = await c.get("/doctor/emergency/requests", headers=doctor.headers)
        assert response.json()["requests"] == []

        users = (await c.get("/admin/users", headers=admin.headers)).json()["users"]
        online = {u["email"]: u["online"] for u in users}
        assert online["maria@paciente.com.br"] is False
        assert online["doc@clinica.com.br"] is True
    await application.state.context.close()
