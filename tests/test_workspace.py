import pytest

from config import Config

from bizdesk.models.entities import Task
from bizdesk.services.workspace import (
    RECONCILE_JOB_ID,
    SWEEP_JOB_ID,
    Platform,
    Workspace,
    WorkspaceRegistry,
)


class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def platform(feed, scheduler):
    return Platform(Config, feed, scheduler)


def _ready_workspace(platform, clock, email, role='Gestor de Projectos'):
    workspace = Workspace(platform, *platform.connect(), clock=clock)
    workspace.auth.sign_up(email, 'secret1')
    workspace.session.complete_onboarding(email.split('@')[0].title(), role)
    assert workspace.tasks is not None
    return workspace


def test_sweep_evicts_idle_workspace(platform, feed, scheduler):
    clock = Clock()
    registry = WorkspaceRegistry(platform, idle_timeout=60)
    active = _ready_workspace(platform, clock, 'ana@example.com')
    registry.register(active)
    baseline = feed.subscriber_count('tasks')

    idle = _ready_workspace(platform, clock, 'rui@example.com')
    registry.register(idle)
    assert len(registry) == 2
    assert feed.subscriber_count('tasks') > baseline
    assert idle.engine.job_id in scheduler.jobs

    clock.now = 30
    assert registry.sweep() == 0
    clock.now = 61
    assert registry.get(active.token) is active
    assert registry.sweep() == 1

    assert len(registry) == 1
    assert registry.get(idle.token) is None
    assert idle.closed
    assert not idle.engine.is_running
    assert idle.engine.job_id not in scheduler.jobs
    assert active.engine.job_id in scheduler.jobs
    assert feed.subscriber_count('tasks') == baseline


def test_sweep_evicts_workspace_without_auth_session(platform):
    clock = Clock()
    registry = WorkspaceRegistry(platform, idle_timeout=0)
    workspace = _ready_workspace(platform, clock, 'bea@example.com')
    registry.register(workspace)
    assert registry.sweep() == 0

    workspace.auth.forget_session()
    assert registry.sweep() == 1
    assert len(registry) == 0


def test_reconcile_picks_up_unseen_writes(platform, monkeypatch):
    registry = WorkspaceRegistry(platform)
    workspace = _ready_workspace(platform, Clock(), 'caio@example.com')
    registry.register(workspace)

    monkeypatch.setattr(platform.local_store, 'feed', None)
    workspace.gateway.create_task(Task(title='Written elsewhere'))
    assert workspace.tasks.items == []

    assert registry.reconcile() == 6
    assert [t.title for t in workspace.tasks.items] == ['Written elsewhere']


def test_reconcile_skips_workspaces_that_are_not_ready(platform):
    registry = WorkspaceRegistry(platform)
    workspace = Workspace(platform, *platform.connect())
    workspace.auth.sign_up('dora@example.com', 'secret1')
    registry.register(workspace)
    assert registry.reconcile() == 0


def test_maintenance_jobs_and_close_all(platform, scheduler):
    registry = WorkspaceRegistry(platform)
    registry.schedule_maintenance(scheduler)
    assert {SWEEP_JOB_ID, RECONCILE_JOB_ID} <= set(scheduler.jobs)
    assert scheduler.jobs[SWEEP_JOB_ID] == registry.sweep

    workspace = _ready_workspace(platform, Clock(), 'eva@example.com')
    registry.register(workspace)
    registry.close_all()
    assert len(registry) == 0
    assert workspace.closed
    assert workspace.engine.job_id not in scheduler.jobs
