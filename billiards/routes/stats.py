from fastapi import APIRouter, Header
from ..services import stats as stats_service
from ..services.auth import require_auth

router = APIRouter(prefix="/api/stats", tags=["stats"])


@router.get("/stats")
def user_stats_api(timeframe: str = "all", authorization: str | None = Header(None)):
    uid = require_auth(authorization)
    return stats_service.user_stats(uid, timeframe)


@router.get("/leaderboard")
def leaderboard_api(authorization: str | None = Header(None)):
    require_auth(authorization)
    return stats_service.leaderboard()
