from fastapi import APIRouter, Depends

from examdesk.services import dashboard
from examdesk.services.auth import require_superadmin
from examdesk.utils.clock import Clock, get_clock


router = APIRouter(dependencies=[Depends(require_superadmin)])


@router.get("/summary")
def get_summary(clock: Clock = Depends(get_clock)) -> dict:
    """SUPERADMIN: User counts by role, course count and exams by status."""
    return dashboard.summary(clock).model_dump()
