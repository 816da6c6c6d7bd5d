"""
Dashboard Service - read-only aggregates for staff and owner screens.

Everything here is computed from the check-in rows returned by
CheckinService; nothing is written. Day and hour boundaries are cut in
APP_TIMEZONE while timestamps are stored as naive UTC.
"""

from collections import Counter, defaultdict
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
import logging
import math

from sqlalchemy.orm import Session

from gymflow.config import app_timezone, membership_prices
from gymflow.database.orm_models import CheckIn
from gymflow.database.repositories import MembershipRepository
from gymflow.services.base import BaseService
from gymflow.services.checkin_service import CheckinService
from gymflow.utils import capacity_percentage, isoformat, now_utc_naive

logger = logging.getLogger(__name__)

CRITICAL_OCCUPANCY = 90
WARNING_OCCUPANCY = 75
ACTIVITY_LIMIT = 50

_WEEKDAYS = ["Lunes", "Martes", "Miércoles", "Jueves", "Viernes", "Sábado", "Domingo"]


def _hour_label(hour: int) -> str:
    return f"{hour:02d}:00"


class DashboardService(BaseService):
    def __init__(self, db: Session, checkins: Optional[CheckinService] = None):
        super().__init__(db)
        self.checkins = checkins or CheckinService(self.db)
        self.memberships = MembershipRepository(self.db)
        self.tz = app_timezone()

    # ========== Time helpers ==========

    def _local(self, ts: datetime) -> datetime:
        return ts.replace(tzinfo=timezone.utc).astimezone(self.tz)

    def _utc_naive(self, local_dt: datetime) -> datetime:
        return local_dt.astimezone(timezone.utc).replace(tzinfo=None)

    def _day_start(self, day: date) -> datetime:
        """UTC-naive instant of local midnight for `day`."""
        return self._utc_naive(datetime.combine(day, time.min, tzinfo=self.tz))

    def _today_window(self, now: datetime) -> Tuple[date, datetime]:
        today = self._local(now).date()
        return today, self._day_start(today)

    def _hourly(self, entries: List[CheckIn]) -> List[Dict[str, Any]]:
        counts = Counter(self._local(r.checked_in).hour for r in entries)
        peak = max(counts.values()) if counts else 0
        return [
            {
                "hour": h,
                "label": _hour_label(h),
                "count": counts.get(h, 0),
                "percentage": capacity_percentage(counts.get(h, 0), peak),
            }
            for h in range(24)
        ]

    # ========== Hourly stats ==========

    def hourly_stats(self, gym_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or now_utc_naive()
        snapshot = self.checkins.get_current_capacity(gym_id)
        today, start = self._today_window(now)
        rows = self.checkins.list_checkins(gym_id, start, now)
        entries = [r for r in rows if r.checked_in >= start]
        hours = self._hourly(entries)
        peak = max(hours, key=lambda h: h["count"])
        return {
            "gymId": snapshot.gym_id,
            "gymName": snapshot.gym_name,
            "date": today.isoformat(),
            "total": len(entries),
            "peakHour": peak["label"] if peak["count"] else None,
            "hours": hours,
        }

    # ========== Staff ==========

    def staff_dashboard(self, gym_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or now_utc_naive()
        snapshot = self.checkins.get_current_capacity(gym_id)
        active = self.checkins.get_active_sessions(gym_id)
        _, start = self._today_window(now)
        rows = self.checkins.list_checkins(gym_id, start, now)

        user_ids = {r.user_id for r in active + rows if r.user_id}
        with self._reading():
            types = self.memberships.types_for_users(sorted(user_ids))

        def _name(row: CheckIn) -> str:
            return row.user.name if row.user is not None else "Anónimo"

        active_users = [
            {
                "id": r.user_id,
                "checkinId": r.id,
                "name": _name(r),
                "rut": r.user.rut if r.user is not None else None,
                "membershipType": types.get(r.user_id or "", "N/A"),
                "checkedInAt": isoformat(r.checked_in),
                "minutesInside": max(int((now - r.checked_in).total_seconds() // 60), 0),
            }
            for r in active
        ]

        activity: List[Dict[str, Any]] = []
        for r in rows:
            kind_times = []
            if r.checked_in >= start:
                kind_times.append(("entry", r.checked_in))
            if r.checked_out is not None and r.checked_out >= start:
                kind_times.append(("exit", r.checked_out))
            for kind, ts in kind_times:
                activity.append(
                    {
                        "id": f"{r.id}:{kind}",
                        "userName": _name(r),
                        "type": kind,
                        "time": isoformat(ts),
                        "membershipType": types.get(r.user_id or "", "N/A"),
                    }
                )
        activity.sort(key=lambda a: a["time"], reverse=True)

        entries = [r for r in rows if r.checked_in >= start]
        hourly = self._hourly(entries)
        peak = max(hourly, key=lambda h: h["count"])
        closed = [
            (r.checked_out - r.checked_in).total_seconds() / 60
            for r in entries
            if r.checked_out is not None
        ]

        return {
            "gym": {
                "id": snapshot.gym_id,
                "name": snapshot.gym_name,
                "maxCapacity": snapshot.max,
                "currentCapacity": snapshot.current,
                "occupancyPercentage": snapshot.percentage,
            },
            "activeUsers": active_users,
            "todayActivity": activity[:ACTIVITY_LIMIT],
            "stats": {
                "totalVisitsToday": len(entries),
                "currentInside": snapshot.current,
                "peakToday": peak["count"],
                "peakHour": peak["label"] if peak["count"] else "-",
                "avgTimeInside": int(round(sum(closed) / len(closed))) if closed else 0,
            },
            "hourlyToday": hourly,
            "alerts": self._alerts(snapshot.current, snapshot.percentage),
        }

    def _alerts(self, current: int, percentage: int) -> List[Dict[str, str]]:
        alerts = []
        if percentage >= CRITICAL_OCCUPANCY:
            alerts.append({"type": "critical", "message": f"Capacidad crítica: {percentage}% ocupado"})
        elif percentage >= WARNING_OCCUPANCY:
            alerts.append({"type": "warning", "message": f"Capacidad alta: {percentage}% ocupado"})
        if current == 0:
            alerts.append({"type": "info", "message": "No hay usuarios en el gimnasio"})
        return alerts

    # ========== Owner ==========

    def owner_dashboard(
        self, gym_id: str, days: int = 30, now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        now = now or now_utc_naive()
        days = min(max(int(days or 30), 1), 365)
        snapshot = self.checkins.get_current_capacity(gym_id)
        today = self._local(now).date()
        first_day = today - timedelta(days=days - 1)
        start = self._day_start(first_day)
        entries = [r for r in self.checkins.list_checkins(gym_id, start, now) if r.checked_in >= start]

        per_day: Dict[date, int] = {first_day + timedelta(days=i): 0 for i in range(days)}
        per_hour: Counter = Counter()
        per_weekday: Counter = Counter()
        visits_by_user: Counter = Counter()
        for r in entries:
            local = self._local(r.checked_in)
            per_day[local.date()] = per_day.get(local.date(), 0) + 1
            per_hour[local.hour] += 1
            per_weekday[local.weekday()] += 1
            if r.user_id:
                visits_by_user[r.user_id] += 1

        peak_day = max(per_day.values()) if per_day else 0
        daily = [
            {"date": d.isoformat(), "visits": v, "percentage": capacity_percentage(v, peak_day)}
            for d, v in sorted(per_day.items())
        ]
        top_days = sorted(
            (d for d in daily if d["visits"]), key=lambda d: d["visits"], reverse=True
        )[:5]
        hourly_ranking = [
            {
                "hour": h,
                "label": _hour_label(h),
                "visits": c,
                "avgPerDay": round(c / days, 1),
            }
            for h, c in per_hour.most_common()
        ]

        total = len(entries)
        unique = len(visits_by_user)
        retention = self._retention(entries, first_day, days)
        loyal_threshold = max(1, math.ceil(days * 2 / 7))
        busiest = per_weekday.most_common(1)

        return {
            "gym": {
                "id": snapshot.gym_id,
                "name": snapshot.gym_name,
                "maxCapacity": snapshot.max,
                "currentCapacity": snapshot.current,
            },
            "period": {"days": days, "startDate": first_day.isoformat(), "endDate": today.isoformat()},
            "kpis": {
                "totalVisitsInPeriod": total,
                "uniqueVisitors": unique,
                "avgDailyVisits": round(total / days, 1),
                "avgVisitsPerUser": round(sum(visits_by_user.values()) / unique, 1) if unique else 0,
                "loyalUsers": sum(1 for c in visits_by_user.values() if c >= loyal_threshold),
                "retentionRate": retention,
                "churnRate": (100 - retention) if retention is not None else None,
                "busiestWeekday": _WEEKDAYS[busiest[0][0]] if busiest else None,
            },
            "revenue": self._revenue(gym_id, today),
            "charts": {"daily": daily, "hourlyRanking": hourly_ranking},
            "topDays": top_days,
        }

    def _retention(self, entries: List[CheckIn], first_day: date, days: int) -> Optional[int]:
        """Share of first-half visitors seen again in the second half; None without first-half visitors."""
        if days < 2:
            return None
        split = self._day_start(first_day + timedelta(days=days // 2))
        halves: Dict[bool, set] = defaultdict(set)
        for r in entries:
            if r.user_id:
                halves[r.checked_in >= split].add(r.user_id)
        early = halves[False]
        if not early:
            return None
        return capacity_percentage(len(early & halves[True]), len(early))

    def _revenue(self, gym_id: str, today: date) -> Dict[str, Any]:
        with self._reading():
            counts = self.memberships.count_active_for_gym(gym_id, today)
        prices = membership_prices()
        default_price = prices.get("BASIC", 0)
        active = sum(c for _, c in counts)
        types = []
        estimated = 0
        for type_, count in sorted(counts, key=lambda tc: tc[1], reverse=True):
            amount = count * prices.get(type_.upper(), default_price)
            estimated += amount
            types.append(
                {
                    "type": type_,
                    "count": count,
                    "percentage": capacity_percentage(count, active),
                    "estimatedRevenue": amount,
                }
            )
        return {
            "activeMemberships": active,
            "estimatedMonthly": estimated,
            "avgPerMember": round(estimated / active) if active else 0,
            "membershipTypes": types,
        }
