# signup_service/api/v1/endpoints/instances.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from signup_service.api import deps
from signup_service.schemas.event_instance import (
    EventInstanceRead,
    EventInstanceUpdate,
    InstanceStatusUpdate,
)
from signup_service.schemas.signup import Participant
from signup_service.services.instance_lifecycle import InstanceLifecycle

router = APIRouter(tags=["Event Instances"])


@router.patch("/instances/{instance_id}", response_model=EventInstanceRead)
def update_instance(
    instance_id: str,
    instance_in: EventInstanceUpdate,
    db: Session = Depends(deps.get_db),
    admin: Participant = Depends(deps.require_admin),
    lifecycle: InstanceLifecycle = Depends(deps.get_instance_lifecycle),
):
    """
    Update capacities, flags, dates or location.

    Capacity increases offer the new seats to the waitlist.
    """
    return lifecycle.update_instance(db, instance_id=instance_id, changes=instance_in, actor=admin)


@router.put("/instances/{instance_id}/status", response_model=EventInstanceRead)
def set_instance_status(
    instance_id: str,
    status_in: InstanceStatusUpdate,
    db: Session = Depends(deps.get_db),
    admin: Participant = Depends(deps.require_admin),
    lifecycle: InstanceLifecycle = Depends(deps.get_instance_lifecycle),
):
    return lifecycle.set_instance_status(
        db,
        instance_id=instance_id,
        status=status_in.status,
        actor=admin,
        reason=status_in.reason,
    )
