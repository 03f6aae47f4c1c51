from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..core.clock import as_utc_naive
from ..core.current_user import get_caller, require_roles
from ..core.roles import CAN_VIEW_ALL_KPIS, Caller, can_view_kpi_of
from ..db import get_session
from ..schemas.kpi import AverageResolutionTimeOut, RepresentativePerformanceOut, TotalResolvedOut
from ..services import kpi_service

router = APIRouter(prefix="/kpi", tags=["kpi"])

require_kpi_admin = require_roles(*CAN_VIEW_ALL_KPIS)


def check_window(from_date: datetime | None, to_date: datetime | None) -> None:
    if from_date and to_date and as_utc_naive(from_date) > as_utc_naive(to_date):
        raise HTTPException(status_code=400, detail="fromDate must not be after toDate")


@router.get("/representative/{representative_id}", response_model=RepresentativePerformanceOut)
def representative_kpi(
    representative_id: int,
    from_date: datetime | None = Query(default=None, alias="fromDate"),
    to_date: datetime | None = Query(default=None, alias="toDate"),
    session: Session = Depends(get_session),
    caller: Caller = Depends(get_caller),
):
    if not can_view_kpi_of(caller, representative_id):
        raise HTTPException(status_code=403, detail="Forbidden")
    check_window(from_date, to_date)

    # An unknown id still gets a zeroed KPI named "Unknown".
    return kpi_service.representative_kpi(session, representative_id, from_date, to_date)


@router.get("/representatives", response_model=list[RepresentativePerformanceOut])
def representatives_kpi(
    from_date: datetime | None = Query(default=None, alias="fromDate"),
    to_date: datetime | None = Query(default=None, alias="toDate"),
    session: Session = Depends(get_session),
    caller: Caller = Depends(require_kpi_admin),
):
    check_window(from_date, to_date)
    return kpi_service.all_representatives_kpi(session, from_date, to_date)


@router.get("/average-resolution-time", response_model=AverageResolutionTimeOut)
def average_resolution_time(
    from_date: datetime | None = Query(default=None, alias="fromDate"),
    to_date: datetime | None = Query(default=None, alias="toDate"),
    session: Session = Depends(get_session),
    caller: Caller = Depends(require_kpi_admin),
):
    check_window(from_date, to_date)
    hours = kpi_service.average_resolution_time(session, from_date, to_date)
    return AverageResolutionTimeOut(average_resolution_time_hours=hours)


@router.get("/total-resolved", response_model=TotalResolvedOut)
def total_resolved(
    from_date: datetime | None = Query(default=None, alias="fromDate"),
    to_date: datetime | None = Query(default=None, alias="toDate"),
    session: Session = Depends(get_session),
    caller: Caller = Depends(require_kpi_admin),
):
    check_window(from_date, to_date)
    return TotalResolvedOut(total_tickets_resolved=kpi_service.total_resolved(session, from_date, to_date))
