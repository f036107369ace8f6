from sqlalchemy.orm import Session

from recruitment.models.permission import UserPermission

JOBS_CREATE = "jobs.create"
JOBS_PUBLISH = "jobs.publish"


def has_permission(db: Session, user_id: int, permission: str) -> bool:
    row = (
        db.query(UserPermission)
        .filter(UserPermission.user_id == user_id, UserPermission.permission == permission)
        .first()
    )
    return row is not None


def grant(db: Session, user_id: int, permission: str):
    db.merge(UserPermission(user_id=user_id, permission=permission))
    db.commit()
