from fastapi import APIRouter, Header
from pydantic import BaseModel
from ..services import users as user_service
from ..services.auth import require_auth, bearer_token

router = APIRouter(prefix="/api/auth", tags=["auth"])
users_router = APIRouter(prefix="/api/users", tags=["users"])


class RegisterRequest(BaseModel):
    name: str
    email: str
    password: str
    student_id: str


class LoginRequest(BaseModel):
    email: str
    password: str


@router.post("/register", status_code=201)
def register_api(data: RegisterRequest):
    return user_service.register(data.name, data.email, data.password, data.student_id)


@router.post("/login")
def login_api(data: LoginRequest):
    return user_service.login(data.email, data.password)


@router.post("/logout")
def logout_api(authorization: str | None = Header(None)):
    require_auth(authorization)
    user_service.logout(bearer_token(authorization))
    return {"status": "ok"}


@router.get("/me")
def me_api(authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    return user_service.user_info(uid)


@router.get("/users")
def list_users_api(authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    return user_service.list_users(uid)


@users_router.get("/{user_id}")
def get_user_api(user_id: str, authorization: str | None = Header(None)):
    require_auth(authorization)
    return user_service.user_info(user_id)
