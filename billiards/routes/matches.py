import datetime
from typing import Literal
from fastapi import APIRouter, Header
from pydantic import BaseModel, Field
from ..models import DEFAULT_DURATION_MINUTES
from ..services import matches as match_service
from ..services.auth import require_auth

router = APIRouter(prefix="/api/matches", tags=["matches"])


class MatchCreate(BaseModel):
    type: Literal["1v1", "2v2"]
    datetime: datetime.datetime
    location: str
    duration: int = DEFAULT_DURATION_MINUTES
    is_ranked: bool = False


class ResultRequest(BaseModel):
    winners: list[str] = Field(min_length=1)
    losers: list[str] = Field(min_length=1)
    score: str | None = None


@router.post("", status_code=201)
def create_match_api(data: MatchCreate, authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    return match_service.create_match(
        uid, data.type, data.datetime, data.location, data.duration, is_ranked=data.is_ranked
    )


@router.get("")
def list_matches_api(authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    return match_service.list_matches(uid)


@router.post("/{match_id}/join")
def join_match_api(match_id: int, authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    return match_service.join_match(uid, match_id)


@router.post("/{match_id}/leave")
def leave_match_api(match_id: int, authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    return match_service.leave_match(uid, match_id)


@router.post("/{match_id}/cancel")
def cancel_match_api(match_id: int, authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    return match_service.cancel_match(uid, match_id)


@router.post("/{match_id}/result")
def record_result_api(match_id: int, data: ResultRequest, authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    return match_service.record_result(uid, match_id, data.winners, data.losers, data.score)


@router.get("/{match_id}/rating_preview")
def rating_preview_api(match_id: int, authorization: str | None = Header(None)):
    require_auth(authorization)
    return match_service.rating_preview(match_id)
