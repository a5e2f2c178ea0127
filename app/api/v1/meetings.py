# app/api/v1/meetings.py
from fastapi import APIRouter, Depends, HTTPException, Response, status

from app.api.deps import get_current_user, get_linked_doctor_id, get_meeting_service, require_roles
from app.models.consultation import Consultation
from app.models.meeting import Meeting, ParticipantType
from app.models.user import User, RoleEnum
from app.schemas.meeting import (
    CompleteRequest,
    InviteOut,
    JoinOut,
    JoinRequest,
    JoinStatusOut,
    MeetingCreate,
    MeetingCreateResponse,
    MeetingLinkUpdate,
    MeetingOut,
)
from app.services.meetings import MeetingService
from app.services.timing import Joinable

router = APIRouter(prefix="/meetings", tags=["meetings"])

clinic_roles = require_roles(RoleEnum.doctor, RoleEnum.staff, RoleEnum.admin)


# ---------- helpers ----------
async def _check_host(svc: MeetingService, user: User, meeting: Meeting) -> None:
    """Un doctor sólo opera sus propias reuniones; staff y admin, todas."""
    if user.role == RoleEnum.doctor:
        my_doc_id = await get_linked_doctor_id(user, svc.db)
        if my_doc_id != meeting.doctor_id:
            raise HTTPException(status.HTTP_403_FORBIDDEN, "No autorizado para esta consulta")


async def _check_participant(
    svc: MeetingService, user: User, meeting: Meeting, participant_type: ParticipantType
) -> None:
    """Cada rol entra sólo como lo que es y sólo a su propia consulta."""
    if user.role == RoleEnum.customer:
        if participant_type != ParticipantType.customer:
            raise HTTPException(status.HTTP_403_FORBIDDEN, "Un paciente sólo puede ingresar como customer")
        consultation = await svc.db.get(Consultation, meeting.consultation_id)
        if consultation is not None and consultation.user_id and consultation.user_id != user.id:
            raise HTTPException(status.HTTP_403_FORBIDDEN, "No autorizado para esta consulta")
    elif user.role == RoleEnum.doctor:
        if participant_type != ParticipantType.doctor:
            raise HTTPException(status.HTTP_403_FORBIDDEN, "Un doctor sólo puede ingresar como doctor")
        await _check_host(svc, user, meeting)


# ---------- create / read ----------
@router.post("", response_model=MeetingCreateResponse)
async def create_meeting(
    payload: MeetingCreate,
    response: Response,
    svc: MeetingService = Depends(get_meeting_service),
    user: User = Depends(clinic_roles),
):
    if user.role == RoleEnum.doctor and await get_linked_doctor_id(user, svc.db) != payload.doctor_id:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Un doctor sólo crea reuniones propias")
    result = await svc.create_meeting(
        payload.consultation_id,
        payload.doctor_id,
        payload.scheduled_time,
        payload.preferred_provider,
    )
    # 201 sólo la primera vez; los reintentos devuelven la misma reunión
    response.status_code = status.HTTP_201_CREATED if result.created else status.HTTP_200_OK
    return MeetingCreateResponse(
        created=result.created,
        provider_branch=result.branch.value if result.branch else None,
        meeting=MeetingOut.model_validate(result.meeting),
    )


@router.get("/{consultation_id}", response_model=MeetingOut)
async def get_meeting(
    consultation_id: str,
    svc: MeetingService = Depends(get_meeting_service),
    _: User = Depends(get_current_user),
):
    return await svc.get_meeting(consultation_id)


@router.get("/{consultation_id}/join-status", response_model=JoinStatusOut)
async def join_status(
    consultation_id: str,
    svc: MeetingService = Depends(get_meeting_service),
    _: User = Depends(get_current_user),
):
    js = await svc.join_status(consultation_id)
    return JoinStatusOut(
        state=js.state.state,
        can_join=isinstance(js.state, Joinable),
        message=js.state.message,
        minutes_remaining=getattr(js.state, "minutes_remaining", None),
        window_start=js.window.start if js.window else None,
        window_end=js.window.end if js.window else None,
    )


# ---------- transiciones ----------
@router.post("/{consultation_id}/join", response_model=JoinOut)
async def join_meeting(
    consultation_id: str,
    payload: JoinRequest,
    svc: MeetingService = Depends(get_meeting_service),
    user: User = Depends(get_current_user),
):
    meeting = await svc.get_meeting(consultation_id)
    await _check_participant(svc, user, meeting, payload.participant_type)
    meeting = await svc.join(consultation_id, payload.participant_type, user_id=user.id)
    return JoinOut(
        meeting_link=meeting.meeting_link,
        participant_count=meeting.participant_count,
        status=meeting.status,
        actual_start_time=meeting.actual_start_time,
    )


@router.post("/{consultation_id}/doctor-ready", response_model=MeetingOut)
async def doctor_ready(
    consultation_id: str,
    svc: MeetingService = Depends(get_meeting_service),
    user: User = Depends(clinic_roles),
):
    await _check_host(svc, user, await svc.get_meeting(consultation_id))
    return await svc.mark_doctor_ready(consultation_id)


@router.post("/{consultation_id}/send-customer-invite", response_model=InviteOut)
async def send_customer_invite(
    consultation_id: str,
    svc: MeetingService = Depends(get_meeting_service),
    user: User = Depends(clinic_roles),
):
    await _check_host(svc, user, await svc.get_meeting(consultation_id))
    result = await svc.send_customer_invite(consultation_id)
    return InviteOut(
        customer_email=result.customer_email,
        invite_sent_at=result.sent_at,
        meeting=MeetingOut.model_validate(result.meeting),
    )


@router.put("/{consultation_id}/complete", response_model=MeetingOut)
async def complete_meeting(
    consultation_id: str,
    payload: CompleteRequest | None = None,
    svc: MeetingService = Depends(get_meeting_service),
    user: User = Depends(clinic_roles),
):
    await _check_host(svc, user, await svc.get_meeting(consultation_id))
    return await svc.complete(consultation_id, payload.notes if payload else None)


@router.put("/{consultation_id}/link", response_model=MeetingOut)
async def update_meeting_link(
    consultation_id: str,
    payload: MeetingLinkUpdate,
    svc: MeetingService = Depends(get_meeting_service),
    user: User = Depends(clinic_roles),
):
    await _check_host(svc, user, await svc.get_meeting(consultation_id))
    return await svc.update_link(consultation_id, payload.meeting_link)


@router.post("/{consultation_id}/cancel", response_model=MeetingOut)
async def cancel_meeting(
    consultation_id: str,
    svc: MeetingService = Depends(get_meeting_service),
    _: User = Depends(require_roles(RoleEnum.staff, RoleEnum.admin)),
):
    return await svc.cancel(consultation_id)
