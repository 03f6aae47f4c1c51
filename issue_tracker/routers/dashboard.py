from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..core.current_user import require_roles
from ..core.roles import Caller, Role
from ..db import get_session
from ..schemas.kpi import DashboardStatsOut, RepresentativePerformanceOut, TicketTrendOut
from ..services import kpi_service

router = APIRouter(prefix="/dashboard", tags=["dashboard"])

require_admin = require_roles(Role.ADMIN)


@router.get("/stats", response_model=DashboardStatsOut)
def stats(
    session: Session = Depends(get_session),
    caller: Caller = Depends(require_admin),
):
    return kpi_service.dashboard_stats(session)


@router.get("/trends", response_model=list[TicketTrendOut])
def trends(
    days: int = Query(default=30),
    session: Session = Depends(get_session),
    caller: Caller = Depends(require_admin),
):
    try:
        return kpi_service.ticket_trends(session, days)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.get("/performance", response_model=list[RepresentativePerformanceOut])
def performance(
    session: Session = Depends(get_session),
    caller: Caller = Depends(require_admin),
):
    return kpi_service.top_performers(session)
