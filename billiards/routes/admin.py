from fastapi import APIRouter, Header
from pydantic import BaseModel
from ..models import Role
from ..services import admin as admin_service
from ..services.auth import require_auth

router = APIRouter(prefix="/api/admin", tags=["admin"])


class RoleRequest(BaseModel):
    role: Role


@router.get("/permissions")
def permissions_api(authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    return admin_service.permissions(uid)


@router.post("/users/{user_id}/role")
def change_role_api(user_id: str, data: RoleRequest, authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    return admin_service.change_role(uid, user_id, data.role)


@router.delete("/users/{user_id}")
def remove_user_api(user_id: str, authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    admin_service.remove_user(uid, user_id)
    return {"status": "ok"}
