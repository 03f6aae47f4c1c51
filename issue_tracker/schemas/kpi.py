import datetime as dt

from .base import ApiModel


class RepresentativePerformanceOut(ApiModel):
    representative_id: int
    representative_name: str
    representative_email: str
    tickets_assigned: int
    tickets_resolved: int
    tickets_closed: int
    resolution_rate: float
    average_resolution_time: float  # hours


class TicketTrendOut(ApiModel):
    date: dt.date
    created: int
    resolved: int


class DashboardStatsOut(ApiModel):
    total_tickets: int
    open_tickets: int
    in_progress_tickets: int
    closed_tickets: int
    high_priority_tickets: int
    total_users: int
    total_representatives: int
    total_admins: int
    recent_tickets: int
    average_resolution_time: float
    ticket_trends: list[TicketTrendOut]
    top_performers: list[RepresentativePerformanceOut]


class AverageResolutionTimeOut(ApiModel):
    average_resolution_time_hours: float


class TotalResolvedOut(ApiModel):
    total_tickets_resolved: int
