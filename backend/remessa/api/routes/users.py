"""Users — principals known to the permission cascade.

Invariants:
    - email unique (409)
    - Reads and writes: ADMIN or MANAGER; delete: ADMIN
    - Deleting a user removes its grants (ORM cascade)
    - Credentials are not stored here; the identity provider owns them
"""

import logging

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from remessa.api.dependencies import require_admin, require_manager
from remessa.core.domain_types import Principal
from remessa.core.errors import ConflictError, ResourceNotFoundError
from remessa.infrastructure.database import get_db
from remessa.models.user import User
from remessa.schemas.administration import UserCreate, UserResponse, UserUpdate
from remessa.services.audit_sink import AuditSink

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/users", tags=["users"])


async def get_user_or_404(user_id: int, db: AsyncSession) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise ResourceNotFoundError("User", user_id)
    return user


@router.get("", response_model=list[UserResponse])
async def list_users(
    _: Principal = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    return list((await db.execute(select(User).order_by(User.id))).scalars().all())


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int,
    _: Principal = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    return await get_user_or_404(user_id, db)


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    body: UserCreate,
    principal: Principal = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    email = body.email.lower()
    existing = await db.execute(select(User.id).where(User.email == email))
    if existing.first() is not None:
        raise ConflictError(f"Email '{email}' is already registered")
    user = User(name=body.name, email=email, role=body.role.value, active=body.active)
    db.add(user)
    await db.flush()
    AuditSink(db).record(
        "USER_CREATED", "User", user.id, principal.id,
        new_value={"email": email, "role": user.role},
    )
    await db.commit()
    return user


@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    body: UserUpdate,
    principal: Principal = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    user = await get_user_or_404(user_id, db)
    changes = body.model_dump(mode="json", exclude_unset=True, exclude_none=True)
    old = {key: getattr(user, key) for key in changes}
    for key, value in changes.items():
        setattr(user, key, value)
    await db.flush()
    AuditSink(db).record(
        "USER_UPDATED", "User", user.id, principal.id, old_value=old, new_value=changes,
    )
    await db.commit()
    return user


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: int,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    user = await get_user_or_404(user_id, db)
    if user.id == principal.id:
        raise ConflictError("Users cannot delete themselves")
    await db.delete(user)
    AuditSink(db).record(
        "USER_DELETED", "User", user_id, principal.id, old_value={"email": user.email},
    )
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
