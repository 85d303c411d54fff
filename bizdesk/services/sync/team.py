"""Team dashboard: directory rows enriched with task and lead aggregates."""

from typing import Iterable, List, Mapping

from bizdesk.constants import LEGACY_MISSED_STATUS, TABLE_CLIENTS, TABLE_TASKS, TABLE_USERS, TaskStatus
from bizdesk.models.entities import Profile, TeamMember, TeamMetrics
from bizdesk.services.sync.base import EntitySync

XP_PER_COMPLETED = 105
XP_PER_PENDING = 5
XP_PER_LEVEL = 1000
ELITE_LEVEL = 2
ELITE_BADGES = ("Elite Member", "Top Performer")
MEMBER_BADGES = ("Membro da Equipe",)


def build_member(profile: Profile, task_rows: Iterable[Mapping], client_rows: Iterable[Mapping]) -> TeamMember:
    statuses = [row.get("status") for row in task_rows if row.get("responsible_id") == profile.id]
    completed = sum(1 for status in statuses if status == TaskStatus.DONE.value)
    missed = sum(1 for status in statuses if status == LEGACY_MISSED_STATUS)
    pending = len(statuses) - completed - missed
    total = len(statuses)

    xp = completed * XP_PER_COMPLETED + pending * XP_PER_PENDING
    level = xp // XP_PER_LEVEL + 1
    quality = round(completed / total * 100) if total else 0
    speed = min(100, round(completed / total * 110)) if total else 0

    metrics = TeamMetrics(
        completed=completed,
        pending=pending,
        missed=missed,
        objectives_met=completed,
        total_objectives=total,
        kpis=[
            {"name": "Qualidade de Entrega", "score": quality},
            {"name": "Agilidade de Resposta", "score": speed},
        ],
        clients=[row.get("name") for row in client_rows if row.get("responsible_id") == profile.id],
    )
    return TeamMember(
        id=profile.id,
        name=profile.name,
        role=profile.role,
        email=profile.email,
        avatar=profile.avatar,
        level=level,
        xp=xp,
        badges=list(ELITE_BADGES if level > ELITE_LEVEL else MEMBER_BADGES),
        metrics=metrics,
    )


class TeamSync(EntitySync[TeamMember]):
    """Read-only; recomputed whenever users, tasks or clients change."""

    name = "team"
    tables = (TABLE_USERS, TABLE_TASKS, TABLE_CLIENTS)

    def _fetch(self) -> List[TeamMember]:
        profiles = self.gateway.list_users()
        task_rows = self.gateway.task_assignments()
        client_rows = self.gateway.client_owners()
        return [build_member(profile, task_rows, client_rows) for profile in profiles]
