"""API routes for HabitRPG"""
import logging
from datetime import datetime, timezone
from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse

from habitrpg.api.auth import get_current_user_id
from habitrpg.api.middleware import limiter
from habitrpg.api.models import (
    AuthResponse,
    HealthCheckResponse,
    LoginRequest,
    MessageResponse,
    PermanentDeleteRequest,
    RegisterRequest,
    UpdateProfileRequest,
)
from habitrpg.db.connection import db
from habitrpg.exceptions import RecordNotFoundError
from habitrpg.models import (
    CompletionOutcome,
    GameReward,
    HabitCreate,
    HabitUpdate,
    HabitView,
    UserProfile,
    UserStats,
)
from habitrpg.services.container import ServiceContainer, get_container

logger = logging.getLogger(__name__)

router = APIRouter()

REGISTER_MESSAGE = "Registration successful! Welcome to HabitRPG!"
LOGIN_MESSAGE = "Login successful"

# Seconds a client should wait before retrying a TRANSIENT completion
TRANSIENT_RETRY_AFTER = "1"

COMPLETION_STATUS = {
    CompletionOutcome.COMPLETED: status.HTTP_200_OK,
    CompletionOutcome.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    CompletionOutcome.ALREADY_COMPLETED: status.HTTP_400_BAD_REQUEST,
    CompletionOutcome.LIMIT_REACHED: status.HTTP_400_BAD_REQUEST,
    CompletionOutcome.TRANSIENT: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def get_services() -> ServiceContainer:
    """Service container dependency (overridden in tests)"""
    return get_container()


# ==========================================
# Auth
# ==========================================

@router.post("/auth/register", response_model=AuthResponse)
@limiter.limit("10/minute")
async def register(
    request: Request,
    body: RegisterRequest,
    services: ServiceContainer = Depends(get_services)
):
    """Create an account (Rate limit: 10/minute)"""
    token, user = await services.auth_service.register(body.username, body.email, body.password)
    return AuthResponse(message=REGISTER_MESSAGE, token=token, user=user)


@router.post("/auth/login", response_model=AuthResponse)
@limiter.limit("10/minute")
async def login(
    request: Request,
    body: LoginRequest,
    services: ServiceContainer = Depends(get_services)
):
    """Exchange email and password for an access token (Rate limit: 10/minute)"""
    token, user = await services.auth_service.login(body.email, body.password)
    return AuthResponse(message=LOGIN_MESSAGE, token=token, user=user)


# ==========================================
# Habits
# ==========================================

@router.get("/habits", response_model=list[HabitView])
@limiter.limit("60/minute")
async def list_habits(
    request: Request,
    user_id: int = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    """Active habits, newest first"""
    return await services.habit_service.list_habits(user_id)


@router.get("/habits/deleted", response_model=list[HabitView])
@limiter.limit("60/minute")
async def list_deleted_habits(
    request: Request,
    user_id: int = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    """Soft-deleted habits that can still be restored"""
    return await services.habit_service.list_deleted_habits(user_id)


@router.post("/habits", response_model=HabitView, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
async def create_habit(
    request: Request,
    body: HabitCreate,
    user_id: int = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    """Create a habit (Rate limit: 30/minute)"""
    return await services.habit_service.create_habit(user_id, body)


@router.get("/habits/{habit_id}", response_model=HabitView)
@limiter.limit("60/minute")
async def get_habit(
    request: Request,
    habit_id: int,
    user_id: int = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    return await services.habit_service.get_habit(user_id, habit_id)


@router.patch("/habits/{habit_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("30/minute")
async def update_habit(
    request: Request,
    habit_id: int,
    body: HabitUpdate,
    user_id: int = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    """Partial edit of title, description, frequency or difficulty"""
    await services.habit_service.update_habit(user_id, habit_id, body)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/habits/{habit_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("30/minute")
async def delete_habit(
    request: Request,
    habit_id: int,
    user_id: int = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    """Soft delete; the habit can be restored later"""
    await services.habit_service.soft_delete_habit(user_id, habit_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/habits/{habit_id}/restore", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("30/minute")
async def restore_habit(
    request: Request,
    habit_id: int,
    user_id: int = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    await services.habit_service.restore_habit(user_id, habit_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/habits/{habit_id}/permanent", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("10/minute")
async def permanently_delete_habit(
    request: Request,
    habit_id: int,
    body: PermanentDeleteRequest,
    user_id: int = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    """
    Irreversibly delete a habit and its completion history

    The body must echo the habit title: {"confirmationText": "<title>"}
    """
    await services.habit_service.hard_delete_habit(user_id, habit_id, body.confirmation_text)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/habits/{habit_id}/complete",
    response_model=GameReward,
    responses={
        400: {"model": GameReward},
        404: {"model": GameReward},
        503: {"model": GameReward},
    },
)
@limiter.limit("30/minute")
async def complete_habit(
    request: Request,
    habit_id: int,
    user_id: int = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    """
    Complete a habit for today (UTC) and collect the reward

    200 with the reward, 404 unknown habit, 400 already completed today or
    XP ceiling reached, 503 temporary storage failure (safe to retry).
    """
    reward = await services.completion_service.complete_habit(user_id, habit_id)

    status_code = COMPLETION_STATUS[reward.outcome]
    if status_code == status.HTTP_200_OK:
        return reward

    headers = None
    if reward.outcome == CompletionOutcome.TRANSIENT:
        headers = {"Retry-After": TRANSIENT_RETRY_AFTER}

    return JSONResponse(
        status_code=status_code,
        content=reward.model_dump(mode="json", by_alias=True),
        headers=headers
    )


# ==========================================
# User
# ==========================================

@router.get("/user/profile", response_model=UserProfile, responses={404: {"model": MessageResponse}})
@limiter.limit("60/minute")
async def get_profile(
    request: Request,
    user_id: int = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    """Profile with level and XP re-derived from total XP"""
    profile = await services.profile_service.get_profile(user_id)
    if profile is None:
        raise RecordNotFoundError(
            f"User {user_id} not found",
            record_type="User profile",
            record_id=user_id
        )
    return profile


@router.patch("/user/profile", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("20/minute")
async def update_profile(
    request: Request,
    body: UpdateProfileRequest,
    user_id: int = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    if body.username is not None:
        await services.profile_service.update_username(user_id, body.username)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/user/stats", response_model=UserStats)
@limiter.limit("30/minute")
async def get_stats(
    request: Request,
    days: int = 30,
    user_id: int = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    """Completion statistics for the last `days` days (1-365)"""
    return await services.stats_service.get_stats(user_id, days)


# ==========================================
# Operations
# ==========================================

@router.get("/health", response_model=HealthCheckResponse)
@limiter.limit("60/minute")
async def health_check(request: Request):
    """Health check endpoint (Rate limit: 60/minute for monitoring systems)"""
    try:
        async with db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute("SELECT 1")
                await cur.fetchone()

        db_status = "connected"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        db_status = "disconnected"

    return HealthCheckResponse(
        status="healthy" if db_status == "connected" else "degraded",
        database=db_status,
        timestamp=datetime.now(timezone.utc)
    )


@router.get("/metrics")
async def metrics():
    """
    Prometheus metrics endpoint.

    Exposes all application metrics in Prometheus text format.
    """
    from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )
