# signup_service/api/deps.py
from typing import Generator
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from signup_service.constants.signup import ParticipantRole
from signup_service.core.config import settings
from signup_service.db.session import SessionLocal
from signup_service.schemas.signup import Participant
from signup_service.schemas.token import TokenPayload
from signup_service.services.instance_lifecycle import InstanceLifecycle, instance_lifecycle
from signup_service.services.signup_manager import SignupManager, signup_manager

ADMIN_ROLE = "ADMIN"


def get_db() -> Generator:
    """Dependency to get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# The `tokenUrl` doesn't have to be a real endpoint in this service,
# it's just for the OpenAPI documentation.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")


def get_current_user(token: str = Depends(oauth2_scheme)) -> TokenPayload:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=["HS256"])
        token_data = TokenPayload(**payload)
    except (JWTError, ValueError):
        # Catches any error from jose or Pydantic validation
        raise credentials_exception

    return token_data


def get_current_participant(
    current_user: TokenPayload = Depends(get_current_user),
) -> Participant:
    """
    Resolve the acting participant from the token.

    Admins sign up through the PARENT pool.
    """
    role = (current_user.role or ParticipantRole.STUDENT).upper()
    if role == ADMIN_ROLE:
        return Participant(user_id=current_user.sub, role=ParticipantRole.PARENT, is_admin=True)
    if not ParticipantRole.is_valid(role):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Role {role} cannot sign up for sessions",
        )
    return Participant(user_id=current_user.sub, role=role)


def require_admin(participant: Participant = Depends(get_current_participant)) -> Participant:
    if not participant.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator access required",
        )
    return participant


def get_signup_manager() -> SignupManager:
    return signup_manager


def get_instance_lifecycle() -> InstanceLifecycle:
    return instance_lifecycle
