# signup_service/api/v1/endpoints/signups.py
from typing import List
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from signup_service.api import deps
from signup_service.schemas.signup import (
    AcceptOfferResult,
    BulkRemovalItem,
    BulkRemoveRequest,
    CancelSignupResult,
    CreateSignupResult,
    DeclineOfferResult,
    DeleteSignupResult,
    Participant,
    ScheduleConflict,
    SignupCreate,
    WaitlistPosition,
)
from signup_service.services.signup_manager import SignupManager

router = APIRouter(tags=["Signups"])


@router.post("/signups", response_model=CreateSignupResult, status_code=status.HTTP_201_CREATED)
def create_signup(
    signup_in: SignupCreate,
    db: Session = Depends(deps.get_db),
    participant: Participant = Depends(deps.get_current_participant),
    manager: SignupManager = Depends(deps.get_signup_manager),
):
    """
    Sign up for an event instance.

    Returns CONFIRMED while the role pool has room, WAITLIST when it is full
    and the waitlist is enabled.
    """
    return manager.create_signup(db, participant=participant, instance_id=signup_in.instance_id)


@router.post("/signups/{signup_id}/cancel", response_model=CancelSignupResult)
def cancel_signup(
    signup_id: str,
    db: Session = Depends(deps.get_db),
    participant: Participant = Depends(deps.get_current_participant),
    manager: SignupManager = Depends(deps.get_signup_manager),
):
    return manager.cancel_signup(db, signup_id=signup_id, actor=participant)


@router.delete("/signups/{signup_id}", response_model=DeleteSignupResult)
def delete_signup(
    signup_id: str,
    db: Session = Depends(deps.get_db),
    participant: Participant = Depends(deps.get_current_participant),
    manager: SignupManager = Depends(deps.get_signup_manager),
):
    return manager.delete_signup(db, signup_id=signup_id, actor=participant)


@router.post("/signups/bulk-remove", response_model=List[BulkRemovalItem])
def bulk_remove_signups(
    request_in: BulkRemoveRequest,
    db: Session = Depends(deps.get_db),
    admin: Participant = Depends(deps.require_admin),
    manager: SignupManager = Depends(deps.get_signup_manager),
):
    """Remove several signups. Each item succeeds or fails on its own."""
    return manager.bulk_remove(db, signup_ids=request_in.signup_ids, actor=admin)


@router.post("/instances/{instance_id}/waitlist/accept", response_model=AcceptOfferResult)
def accept_waitlist_offer(
    instance_id: str,
    db: Session = Depends(deps.get_db),
    participant: Participant = Depends(deps.get_current_participant),
    manager: SignupManager = Depends(deps.get_signup_manager),
):
    return manager.accept_offer(db, participant=participant, instance_id=instance_id)


@router.post("/instances/{instance_id}/waitlist/decline", response_model=DeclineOfferResult)
def decline_waitlist_offer(
    instance_id: str,
    db: Session = Depends(deps.get_db),
    participant: Participant = Depends(deps.get_current_participant),
    manager: SignupManager = Depends(deps.get_signup_manager),
):
    return manager.decline_offer(db, participant=participant, instance_id=instance_id)


@router.get("/instances/{instance_id}/waitlist/position", response_model=WaitlistPosition)
def get_waitlist_position(
    instance_id: str,
    db: Session = Depends(deps.get_db),
    participant: Participant = Depends(deps.get_current_participant),
    manager: SignupManager = Depends(deps.get_signup_manager),
):
    return manager.get_waitlist_position(db, participant=participant, instance_id=instance_id)


@router.get("/instances/{instance_id}/conflicts", response_model=List[ScheduleConflict])
def check_schedule_conflicts(
    instance_id: str,
    db: Session = Depends(deps.get_db),
    participant: Participant = Depends(deps.get_current_participant),
    manager: SignupManager = Depends(deps.get_signup_manager),
):
    """The caller's confirmed or offered sessions that overlap this instance."""
    return manager.check_conflicts(db, participant=participant, instance_id=instance_id)
