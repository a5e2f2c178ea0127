"""HTTP surface: role checks, error mapping and response shapes."""

from __future__ import annotations

from datetime import timedelta

import pytest
import pytest_asyncio

from app.core.security import create_access_token
from app.models.user import RoleEnum

SCHEDULED = "2025-01-20T09:00:00"  # sin offset: hora de la clínica


@pytest_asyncio.fixture
async def people(seed):
    doctor_user = await seed.user(RoleEnum.doctor)
    doctor = await seed.doctor(doctor_user)
    customer = await seed.user(RoleEnum.customer)
    consultation = await seed.consultation(doctor, customer)
    return {
        "doctor_user": doctor_user,
        "doctor": doctor,
        "customer": customer,
        "staff": await seed.user(RoleEnum.staff),
        "admin": await seed.user(RoleEnum.admin),
        "cid": consultation.id,
        "seed": seed,
    }


async def _create(client, auth, people):
    return await client.post(
        "/meetings",
        json={
            "consultation_id": people["cid"],
            "doctor_id": people["doctor"].id,
            "scheduled_time": SCHEDULED,
        },
        headers=auth(people["doctor_user"]),
    )


@pytest.mark.asyncio
async def test_health(client):
    r = await client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_create_meeting(client, auth, people):
    r = await _create(client, auth, people)
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["ok"] is True
    assert body["created"] is True
    assert body["provider_branch"] == "fallback"
    meeting = body["meeting"]
    assert meeting["provider"] == "jitsi"
    assert meeting["status"] == "scheduled"
    # sale en hora de la clínica, igual que se envió
    assert meeting["scheduled_time"] == "2025-01-20T09:00:00+07:00"
    assert "password" not in meeting

    again = await _create(client, auth, people)
    assert again.status_code == 200
    assert again.json()["created"] is False
    assert again.json()["meeting"]["id"] == meeting["id"]


@pytest.mark.asyncio
async def test_create_requires_clinic_role(client, auth, people):
    r = await client.post(
        "/meetings",
        json={"consultation_id": people["cid"], "doctor_id": people["doctor"].id, "scheduled_time": SCHEDULED},
        headers=auth(people["customer"]),
    )
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_requires_token(client, people):
    r = await client.get(f"/meetings/{people['cid']}")
    assert r.status_code in (401, 403)

    r = await client.get(f"/meetings/{people['cid']}", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_get_meeting_hides_password(client, auth, people):
    await _create(client, auth, people)
    r = await client.get(f"/meetings/{people['cid']}", headers=auth(people["customer"]))
    assert r.status_code == 200
    assert "password" not in r.json()


@pytest.mark.asyncio
async def test_error_mapping(client, auth, people):
    headers = auth(people["staff"])

    r = await client.get("/meetings/not-a-uuid", headers=headers)
    assert r.status_code == 422
    assert r.json()["code"] == "validation_error"

    r = await client.get(f"/meetings/{people['cid']}", headers=headers)
    assert r.status_code == 404
    assert r.json()["code"] == "meeting_not_found"

    r = await client.post(
        "/meetings",
        json={
            "consultation_id": "00000000-0000-0000-0000-000000000000",
            "doctor_id": people["doctor"].id,
            "scheduled_time": SCHEDULED,
        },
        headers=headers,
    )
    assert r.status_code == 404
    assert r.json()["code"] == "consultation_not_found"


@pytest.mark.asyncio
async def test_join_status_and_join(client, auth, people, clock):
    await _create(client, auth, people)

    r = await client.get(f"/meetings/{people['cid']}/join-status", headers=auth(people["customer"]))
    assert r.status_code == 200
    body = r.json()
    assert body["state"] == "joinable"
    assert body["can_join"] is True

    r = await client.post(
        f"/meetings/{people['cid']}/join",
        json={"participant_type": "customer"},
        headers=auth(people["customer"]),
    )
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "in_progress"
    assert r.json()["participant_count"] == 1
    assert r.json()["meeting_link"]


@pytest.mark.asyncio
async def test_join_too_early_is_409_with_countdown(client, auth, people, clock):
    await _create(client, auth, people)
    clock.now -= timedelta(minutes=2)  # 08:54

    r = await client.post(
        f"/meetings/{people['cid']}/join",
        json={"participant_type": "doctor"},
        headers=auth(people["doctor_user"]),
    )
    assert r.status_code == 409
    body = r.json()
    assert body["code"] == "outside_join_window"
    assert body["state"] == "not_yet"
    assert body["minutes_remaining"] == 1


@pytest.mark.asyncio
async def test_roles_join_only_as_themselves(client, auth, people):
    await _create(client, auth, people)

    r = await client.post(
        f"/meetings/{people['cid']}/join",
        json={"participant_type": "doctor"},
        headers=auth(people["customer"]),
    )
    assert r.status_code == 403

    r = await client.post(
        f"/meetings/{people['cid']}/join",
        json={"participant_type": "customer"},
        headers=auth(people["doctor_user"]),
    )
    assert r.status_code == 403

    r = await client.post(
        f"/meetings/{people['cid']}/join",
        json={"participant_type": "nurse"},
        headers=auth(people["staff"]),
    )
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_capacity_exceeded(client, auth, people):
    await _create(client, auth, people)
    url = f"/meetings/{people['cid']}/join"

    assert (await client.post(url, json={"participant_type": "doctor"}, headers=auth(people["doctor_user"]))).status_code == 200
    assert (await client.post(url, json={"participant_type": "customer"}, headers=auth(people["customer"]))).status_code == 200

    r = await client.post(url, json={"participant_type": "customer"}, headers=auth(people["admin"]))
    assert r.status_code == 409
    assert r.json()["code"] == "capacity_exceeded"
    assert r.json()["max_participants"] == 2


@pytest.mark.asyncio
async def test_invite_flow(client, auth, people, dispatcher):
    await _create(client, auth, people)
    headers = auth(people["doctor_user"])

    r = await client.post(f"/meetings/{people['cid']}/send-customer-invite", headers=headers)
    assert r.status_code == 409
    assert r.json()["current_status"] == "scheduled"

    r = await client.post(f"/meetings/{people['cid']}/doctor-ready", headers=headers)
    assert r.status_code == 200
    assert r.json()["status"] == "waiting_customer"

    dispatcher.ok = False
    r = await client.post(f"/meetings/{people['cid']}/send-customer-invite", headers=headers)
    assert r.status_code == 502
    assert r.json()["code"] == "notification_failed"

    dispatcher.ok = True
    r = await client.post(f"/meetings/{people['cid']}/send-customer-invite", headers=headers)
    assert r.status_code == 200
    body = r.json()
    assert body["customer_email"] == "paciente@test.local"
    assert body["meeting"]["status"] == "invite_sent"
    assert "password" not in body["meeting"]


@pytest.mark.asyncio
async def test_complete_and_cancel(client, auth, people):
    await _create(client, auth, people)
    cid = people["cid"]

    r = await client.post(f"/meetings/{cid}/cancel", headers=auth(people["doctor_user"]))
    assert r.status_code == 403

    await client.post(f"/meetings/{cid}/join", json={"participant_type": "doctor"}, headers=auth(people["doctor_user"]))
    r = await client.put(f"/meetings/{cid}/complete", json={"notes": "Control en una semana"}, headers=auth(people["doctor_user"]))
    assert r.status_code == 200
    assert r.json()["status"] == "completed"
    assert r.json()["notes"] == "Control en una semana"

    # segunda vez: éxito sin cambios
    r = await client.put(f"/meetings/{cid}/complete", headers=auth(people["doctor_user"]))
    assert r.status_code == 200
    assert r.json()["notes"] == "Control en una semana"

    r = await client.post(f"/meetings/{cid}/cancel", headers=auth(people["staff"]))
    assert r.status_code == 409
    assert r.json()["code"] == "invalid_transition"


@pytest.mark.asyncio
async def test_token_with_stale_role_is_rejected(client, people):
    token = create_access_token(people["customer"].id, role="admin")
    r = await client.get(f"/meetings/{people['cid']}", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_times_carry_clinic_offset(client, auth, people, dispatcher):
    created = (await _create(client, auth, people)).json()["meeting"]
    headers = auth(people["doctor_user"])

    # devolver lo recibido no corre la reunión
    other = await people["seed"].consultation(people["doctor"], people["customer"])
    r = await client.post(
        "/meetings",
        json={"consultation_id": other.id, "doctor_id": people["doctor"].id, "scheduled_time": created["scheduled_time"]},
        headers=headers,
    )
    assert r.json()["meeting"]["scheduled_time"] == created["scheduled_time"]

    r = await client.get(f"/meetings/{people['cid']}/join-status", headers=headers)
    assert r.json()["window_start"] == "2025-01-20T08:55:00+07:00"
    assert r.json()["window_end"] == "2025-01-20T10:00:00+07:00"

    await client.post(f"/meetings/{people['cid']}/doctor-ready", headers=headers)
    r = await client.post(f"/meetings/{people['cid']}/send-customer-invite", headers=headers)
    assert r.json()["invite_sent_at"] == "2025-01-20T08:56:00+07:00"
    assert r.json()["meeting"]["invite_sent_at"] == "2025-01-20T08:56:00+07:00"

    r = await client.post(f"/meetings/{people['cid']}/join", json={"participant_type": "doctor"}, headers=headers)
    assert r.json()["actual_start_time"] == "2025-01-20T08:56:00+07:00"


@pytest.mark.asyncio
async def test_update_link(client, auth, people):
    await _create(client, auth, people)
    url = f"/meetings/{people['cid']}/link"
    new_link = {"meeting_link": "https://meet.jit.si/sala-nueva"}

    r = await client.put(url, json=new_link, headers=auth(people["customer"]))
    assert r.status_code == 403

    r = await client.put(url, json={"meeting_link": "no-es-url"}, headers=auth(people["staff"]))
    assert r.status_code == 422
    assert r.json()["code"] == "validation_error"

    r = await client.put(url, json=new_link, headers=auth(people["doctor_user"]))
    assert r.status_code == 200
    assert r.json()["meeting_link"] == "https://meet.jit.si/sala-nueva"
    assert "password" not in r.json()

    await client.post(f"/meetings/{people['cid']}/cancel", headers=auth(people["staff"]))
    r = await client.put(url, json=new_link, headers=auth(people["staff"]))
    assert r.status_code == 409
    assert r.json()["code"] == "invalid_transition"


@pytest.mark.asyncio
async def test_doctor_cannot_operate_other_doctors_meeting(client, auth, people):
    await _create(client, auth, people)
    stranger = await people["seed"].user(RoleEnum.doctor)
    await people["seed"].doctor(stranger, name="Dr. Ajeno")
    headers = auth(stranger)
    cid = people["cid"]

    assert (await client.post(f"/meetings/{cid}/doctor-ready", headers=headers)).status_code == 403
    assert (await client.post(f"/meetings/{cid}/send-customer-invite", headers=headers)).status_code == 403
    assert (await client.put(f"/meetings/{cid}/complete", headers=headers)).status_code == 403
    r = await client.put(f"/meetings/{cid}/link", json={"meeting_link": "https://x.test/y"}, headers=headers)
    assert r.status_code == 403
    r = await client.post(
        "/meetings",
        json={"consultation_id": cid, "doctor_id": people["doctor"].id, "scheduled_time": SCHEDULED},
        headers=headers,
    )
    assert r.status_code == 403

    r = await client.get(f"/meetings/{cid}", headers=auth(people["staff"]))
    assert r.json()["status"] == "scheduled"

    # staff opera cualquier reunión
    r = await client.post(f"/meetings/{cid}/doctor-ready", headers=auth(people["staff"]))
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_create_with_foreign_doctor_is_422(client, auth, people):
    stranger = await people["seed"].user(RoleEnum.doctor)
    other_doctor = await people["seed"].doctor(stranger, name="Dr. Ajeno")
    r = await client.post(
        "/meetings",
        json={"consultation_id": people["cid"], "doctor_id": other_doctor.id, "scheduled_time": SCHEDULED},
        headers=auth(people["staff"]),
    )
    assert r.status_code == 422
    assert r.json()["field"] == "doctor_id"
