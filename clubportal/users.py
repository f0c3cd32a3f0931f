"""
User accounts: creation, activation and per-user history
"""

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models, schemas, utils
from .authorization import Action, ResourceRef, require
from .errors import EmailAlreadyRegistered, NotFoundError
from .models import UserRole

logger = logging.getLogger(__name__)


def get_user(db: Session, user_id: str) -> models.User:
    user = db.get(models.User, user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    return user


def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
    return db.execute(
        select(models.User).where(models.User.email == email)
    ).scalars().first()


def create_user(db: Session, user_in: schemas.UserCreate, role: UserRole = UserRole.STUDENT) -> models.User:
    """Create an account; the role is set here once and never changes"""
    if get_user_by_email(db, user_in.email):
        raise EmailAlreadyRegistered()

    new_user = models.User(
        email=user_in.email,
        hashed_password=utils.hash_password(user_in.password),
        name=user_in.name,
        department=user_in.department,
        student_id=user_in.student_id,
        role=role,
        is_active=True,
    )

    try:
        db.add(new_user)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise EmailAlreadyRegistered()

    db.refresh(new_user)
    logger.info("Created %s account %s", role.value, new_user.id)
    return new_user


def admin_create_user(db: Session, actor: models.User, user_in: schemas.AdminUserCreate) -> models.User:
    require(actor, Action.USER_MANAGE)
    return create_user(db, user_in, role=user_in.role)


def authenticate(db: Session, email: str, password: str) -> Optional[models.User]:
    user = get_user_by_email(db, email)
    if not user or not utils.verify_password(password, user.hashed_password):
        return None
    if not user.is_active:
        return None
    return user


def set_user_active(db: Session, actor: models.User, user_id: str, is_active: bool) -> models.User:
    require(actor, Action.USER_MANAGE, ResourceRef(subject_id=user_id))
    user = get_user(db, user_id)
    user.is_active = is_active
    db.commit()
    db.refresh(user)
    logger.info("User %s active=%s (by %s)", user.id, is_active, actor.id)
    return user


def update_profile(db: Session, actor: models.User, user_id: str, profile_in: schemas.UserProfileUpdate) -> models.User:
    require(actor, Action.USER_UPDATE, ResourceRef(subject_id=user_id))
    user = get_user(db, user_id)

    # Only touch what was sent
    if profile_in.name is not None:
        user.name = profile_in.name
    if profile_in.department is not None:
        user.department = profile_in.department
    if profile_in.student_id is not None:
        user.student_id = profile_in.student_id

    db.commit()
    db.refresh(user)
    logger.info("User %s profile updated by %s", user.id, actor.id)
    return user


def list_user_memberships(db: Session, actor: models.User, user_id: str) -> List[models.ClubMembership]:
    """Active club memberships of a user"""
    require(actor, Action.USER_READ, ResourceRef(subject_id=user_id))
    get_user(db, user_id)
    query = (
        select(models.ClubMembership)
        .where(models.ClubMembership.user_id == user_id)
        .where(models.ClubMembership.is_active == True)
        .order_by(models.ClubMembership.joined_at.desc())
    )
    return list(db.execute(query).scalars().all())


def list_user_registrations(
    db: Session,
    actor: models.User,
    user_id: str,
    include_cancelled: bool = False,
) -> List[models.EventRegistration]:
    """Registration and attendance history of a user, newest first"""
    require(actor, Action.USER_READ, ResourceRef(subject_id=user_id))
    get_user(db, user_id)
    query = (
        select(models.EventRegistration)
        .where(models.EventRegistration.user_id == user_id)
        .order_by(models.EventRegistration.registration_date.desc())
    )
    if not include_cancelled:
        query = query.where(
            models.EventRegistration.status.in_(models.ACTIVE_REGISTRATION_STATUSES)
        )
    return list(db.execute(query).scalars().all())
