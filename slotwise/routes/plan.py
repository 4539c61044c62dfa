"""
Scheduling and planning routes.
/plan places a plan's tasks into the caller's free time (optionally saving it);
/planner asks the planning service to draft a plan from an intent.
"""

from fastapi import APIRouter, Depends

from slotwise.auth.verify import auth_dependency
from slotwise.db.helpers import DatabaseError
from slotwise.infrastructure.observability.logging import get_logger
from slotwise.models.api.schedule_request import PlannerRequest, ScheduleRequest
from slotwise.models.api.schedule_response import PlannerResponse, ScheduleResponse
from slotwise.routes.errors import require_user_id, to_http_exception
from slotwise.services import profile_service
from slotwise.services.errors import SchedulingEngineError
from slotwise.services.planning.planning_client import planning_client
from slotwise.services.scheduling.schedule_service import schedule_service

router = APIRouter(tags=["scheduling"])
logger = get_logger(__name__)


@router.post("/plan", response_model=ScheduleResponse)
async def create_schedule(request: ScheduleRequest, claims: dict = Depends(auth_dependency)):
    """Compute sessions for a plan; persist goal, tasks and sessions when commit is set."""
    user_id = require_user_id(claims)

    try:
        result = await schedule_service.build_schedule(user_id, request)
    except (SchedulingEngineError, DatabaseError) as e:
        logger.warning(
            "Scheduling request failed",
            user_id=user_id,
            error_code=getattr(e, "error_code", "storage_unavailable"),
            error=str(e),
        )
        raise to_http_exception(e) from e

    return result.to_dict()


@router.post("/planner", response_model=PlannerResponse)
async def generate_plan(request: PlannerRequest, claims: dict = Depends(auth_dependency)):
    """Draft a goal and tasks from the caller's intent."""
    user_id = require_user_id(claims)

    try:
        tz = await profile_service.get_user_timezone(user_id)
        plan = await planning_client.generate_plan(
            request.intent,
            constraints=request.constraints,
            chat_summary=request.chat_summary,
            profile={"tz": tz},
        )
    except (SchedulingEngineError, DatabaseError) as e:
        logger.warning("Plan generation failed", user_id=user_id, error=str(e))
        raise to_http_exception(e) from e

    return PlannerResponse(plan=plan.model_dump(by_alias=True, mode="json"))
