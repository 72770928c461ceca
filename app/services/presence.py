"""
Presence Calculator: pure functions over events and reference data.

Nothing here touches storage or the clock; users and teams are passed in
by the caller so the results depend only on the arguments.

Rule: for one user on one day, the event with the greatest timestamp
decides presence (``entry`` → present, ``exit`` → absent). Sequences do
not have to alternate; two ``entry`` events in a row are fine.
"""

from __future__ import annotations

import enum
from collections import defaultdict
from collections.abc import Iterable

from app.core.timeparse import ensure_utc, parse_date_key
from app.models.attendance import EVENT_ENTRY, AttendanceEvent
from app.models.team import Team
from app.models.user import User
from app.schemas.stats import DailyAggregate, GradePresence, TeamPresence

UNASSIGNED_TEAM_ID = "unassigned"

# Cohort 10 entered as first-years in 2025; each later calendar year moves
# every cohort up one school year.
_BASE_YEAR = 2025
_BASE_COHORT = 10
_MIN_SCHOOL_YEAR = 1
_MAX_SCHOOL_YEAR = 3


class PresenceState(str, enum.Enum):
    PRESENT = "present"
    ABSENT = "absent"


def _sort_key(event: AttendanceEvent) -> tuple:
    # id breaks timestamp ties so the winner never depends on input order
    return (ensure_utc(event.timestamp), event.id)


def latest_event(events: Iterable[AttendanceEvent]) -> AttendanceEvent | None:
    return max(events, key=_sort_key, default=None)


def latest_event_by_user(
    events: Iterable[AttendanceEvent],
) -> dict[str, AttendanceEvent]:
    """Map each user id to the event that decides their presence."""
    latest: dict[str, AttendanceEvent] = {}
    for event in events:
        current = latest.get(event.user_id)
        if current is None or _sort_key(event) > _sort_key(current):
            latest[event.user_id] = event
    return latest


def derive_presence(events: Iterable[AttendanceEvent]) -> PresenceState:
    """Presence of a single user for a single day."""
    last = latest_event(events)
    if last is not None and last.type == EVENT_ENTRY:
        return PresenceState.PRESENT
    return PresenceState.ABSENT


def cohort_to_school_year(cohort: int, year: int) -> int:
    """School year (1-3) of *cohort* during calendar *year*."""
    school_year = 1 + (_BASE_COHORT - cohort) + (year - _BASE_YEAR)
    return max(_MIN_SCHOOL_YEAR, min(_MAX_SCHOOL_YEAR, school_year))


def aggregate(
    events: Iterable[AttendanceEvent],
    users: Iterable[User],
    teams: Iterable[Team],
    date_key: str,
) -> DailyAggregate:
    """Roll one day's events up by team, then grade cohort.

    Only users whose presence for the day is PRESENT are counted. Users
    without a team, or whose team is missing from *teams*, are grouped
    under ``"unassigned"``. Events from users not in *users* are ignored.
    """
    year = parse_date_key(date_key).year
    team_names = {team.id: team.name for team in teams}
    users_by_id = {user.id: user for user in users}

    by_user: dict[str, list[AttendanceEvent]] = defaultdict(list)
    for event in events:
        if event.user_id in users_by_id:
            by_user[event.user_id].append(event)

    attended = 0
    groups: dict[str, dict[int, list[str]]] = defaultdict(lambda: defaultdict(list))
    for user_id, user_events in by_user.items():
        if any(e.type == EVENT_ENTRY for e in user_events):
            attended += 1
        if derive_presence(user_events) is not PresenceState.PRESENT:
            continue
        user = users_by_id[user_id]
        team_id = user.team_id if user.team_id in team_names else UNASSIGNED_TEAM_ID
        groups[team_id][user.grade_cohort].append(user_id)

    per_team = []
    total = 0
    for team_id, grades in groups.items():
        per_grade = [
            GradePresence(
                grade=grade,
                school_year=cohort_to_school_year(grade, year),
                count=len(user_ids),
                present_user_ids=sorted(user_ids),
            )
            for grade, user_ids in sorted(grades.items(), reverse=True)
        ]
        total += sum(g.count for g in per_grade)
        per_team.append(
            TeamPresence(
                team_id=team_id,
                team_name=team_names.get(team_id),
                per_grade=per_grade,
            )
        )

    return DailyAggregate(
        date_key=date_key,
        total_present_count=total,
        total_attended_count=attended,
        per_team=per_team,
    )
