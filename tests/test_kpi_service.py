from datetime import date, datetime, timedelta

import pytest

from issue_tracker.core.roles import Role
from issue_tracker.services import kpi_service

T0 = datetime(2024, 6, 10, 8, 0, 0)


def closed(make_ticket, creator, rep, hours: float, created_at=T0, **fields):
    return make_ticket(
        creator,
        status="Closed",
        assigned_to_user_id=rep.id,
        created_at=created_at,
        resolved_at=created_at + timedelta(hours=hours),
        resolution_time=timedelta(hours=hours),
        **fields,
    )


class TestRepresentativeKpi:
    def test_zero_assigned_gives_zero_rate(self, db, rep):
        kpi = kpi_service.representative_kpi(db, rep.id)
        assert kpi.tickets_assigned == 0
        assert kpi.resolution_rate == 0
        assert kpi.average_resolution_time == 0

    def test_rate_and_average(self, db, user, rep, make_ticket):
        closed(make_ticket, user, rep, hours=2)
        closed(make_ticket, user, rep, hours=4)
        make_ticket(user, assigned_to_user_id=rep.id, created_at=T0)
        make_ticket(user, assigned_to_user_id=rep.id, status="In Progress", created_at=T0)

        kpi = kpi_service.representative_kpi(db, rep.id)
        assert kpi.representative_name == "Rita Rep"
        assert kpi.tickets_assigned == 4
        assert kpi.tickets_resolved == 2
        assert kpi.resolution_rate == 50
        assert kpi.average_resolution_time == pytest.approx(3.0)

    def test_window_on_created_at(self, db, user, rep, make_ticket):
        closed(make_ticket, user, rep, hours=1, created_at=T0 - timedelta(days=10))
        closed(make_ticket, user, rep, hours=1, created_at=T0)
        kpi = kpi_service.representative_kpi(db, rep.id, from_date=T0 - timedelta(days=1))
        assert kpi.tickets_assigned == 1

    def test_unknown_representative(self, db):
        kpi = kpi_service.representative_kpi(db, 9999)
        assert kpi.representative_name == "Unknown"
        assert kpi.tickets_assigned == 0

    def test_all_reps_sorted_by_rate(self, db, user, rep, other_rep, make_ticket):
        closed(make_ticket, user, other_rep, hours=1)
        make_ticket(user, assigned_to_user_id=rep.id)
        closed(make_ticket, user, rep, hours=1)

        ranking = kpi_service.all_representatives_kpi(db)
        assert [k.representative_id for k in ranking] == [other_rep.id, rep.id]
        assert [k.resolution_rate for k in ranking] == [100, 50]


class TestGlobalKpis:
    def test_average_resolution_time_window_on_resolved_at(self, db, user, rep, make_ticket):
        closed(make_ticket, user, rep, hours=2)
        closed(make_ticket, user, rep, hours=10, created_at=T0 - timedelta(days=30))
        window_start = T0 - timedelta(days=1)
        assert kpi_service.average_resolution_time(db, from_date=window_start) == pytest.approx(2.0)
        assert kpi_service.average_resolution_time(db) == pytest.approx(6.0)

    def test_average_without_closed_tickets(self, db):
        assert kpi_service.average_resolution_time(db) == 0

    def test_total_resolved_falls_back_to_updated_at(self, db, user, rep, make_ticket):
        closed(make_ticket, user, rep, hours=1)
        make_ticket(user, status="Closed", created_at=T0, updated_at=T0 + timedelta(days=2))
        make_ticket(user, status="Open")
        assert kpi_service.total_resolved(db) == 2
        assert kpi_service.total_resolved(db, from_date=T0 + timedelta(days=1)) == 1


class TestTrendsAndDashboard:
    def test_trends_bucket_per_day(self, db, user, rep, make_ticket):
        today = date(2024, 6, 12)
        make_ticket(user, created_at=datetime(2024, 6, 10, 23, 59))
        closed(make_ticket, user, rep, hours=30, created_at=datetime(2024, 6, 11, 1, 0))
        make_ticket(user, created_at=datetime(2024, 5, 1))

        trends = kpi_service.ticket_trends(db, days=3, today=today)
        assert [t.date for t in trends] == [date(2024, 6, 10), date(2024, 6, 11), date(2024, 6, 12)]
        assert [t.created for t in trends] == [1, 1, 0]
        assert [t.resolved for t in trends] == [0, 0, 1]

    @pytest.mark.parametrize("days", [0, 366, -5])
    def test_trends_reject_out_of_range(self, db, days):
        with pytest.raises(ValueError):
            kpi_service.ticket_trends(db, days=days)

    def test_dashboard_counts(self, db, admin, user, rep, make_ticket):
        now = T0 + timedelta(days=1)
        make_ticket(user, priority="High", created_at=T0)
        make_ticket(user, status="In Progress", created_at=T0 - timedelta(days=20))
        closed(make_ticket, user, rep, hours=4)

        stats = kpi_service.dashboard_stats(db, now=now)
        assert stats.total_tickets == 3
        assert stats.open_tickets == 1
        assert stats.in_progress_tickets == 1
        assert stats.closed_tickets == 1
        assert stats.high_priority_tickets == 1
        assert stats.total_users == 3
        assert stats.total_representatives == 1
        assert stats.total_admins == 1
        assert stats.recent_tickets == 2
        assert stats.average_resolution_time == pytest.approx(4.0)
        assert len(stats.ticket_trends) == 30
        assert [p.representative_id for p in stats.top_performers] == [rep.id]

    def test_top_performers_limit(self, db, make_user):
        for _ in range(12):
            make_user(Role.REP)
        assert len(kpi_service.top_performers(db)) == 10
