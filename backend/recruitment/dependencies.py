from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from recruitment.database import get_db
from recruitment.services import rbac_service


async def get_current_user_id(x_user_id: int = Header(...)) -> int:
    # Authentication happens upstream; the gateway forwards the verified user id.
    if x_user_id <= 0:
        raise HTTPException(status_code=401, detail="Invalid user id")
    return x_user_id


def require_permission(permission: str):
    async def checker(
        user_id: int = Depends(get_current_user_id),
        db: Session = Depends(get_db),
    ) -> int:
        if not rbac_service.has_permission(db, user_id, permission):
            raise HTTPException(status_code=403, detail=f"Missing permission: {permission}")
        return user_id

    return checker
