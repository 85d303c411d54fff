import pytest

from conftest import StubAuth

from bizdesk.constants import ClientStatus, TaskStatus
from bizdesk.models.entities import CalendarEvent, Client, Notification, Profile, Task, TaskObjective, Transaction
from bizdesk.services.store import ConflictError, PermissionDeniedError, StoreError, ValidationError
from bizdesk.services.sync import ClientSync, EventSync, NotificationInbox, TaskSync, TeamSync, TransactionSync
from bizdesk.services.sync.team import build_member

PM = Profile(id='pm', name='Paula', role='Gestor de Projectos')
CREATIVE = Profile(id='cm', name='Caio', role='Gestor Criativo')
DESIGNER = Profile(id='u1', name='Dino', role='Designer')
OTHER = Profile(id='u2', name='Rui', role='Designer')


def test_without_session_nothing_is_loaded(gateway, feed):
    auth = StubAuth()
    auth.session = None
    tasks = TaskSync(gateway, feed, auth)
    tasks.start()
    assert tasks.snapshot() == {'items': [], 'loading': False, 'error': None}
    assert feed.subscriber_count('tasks') == 0


def test_change_feed_triggers_refetch(gateway, feed):
    tasks = TaskSync(gateway, feed, StubAuth())
    tasks.start()
    assert tasks.items == []
    gateway.create_task(Task(title='From another tab'))
    assert [t.title for t in tasks.items] == ['From another tab']


def test_fetch_error_keeps_cache(gateway, feed, monkeypatch):
    gateway.create_task(Task(title='cached'))
    tasks = TaskSync(gateway, feed, StubAuth())
    tasks.start()

    def boom():
        raise StoreError('network down')

    monkeypatch.setattr(gateway, 'list_tasks', boom)
    assert tasks.refresh() is False
    snapshot = tasks.snapshot()
    assert [item['title'] for item in snapshot['items']] == ['cached']
    assert snapshot['error'] == 'network down'
    assert snapshot['loading'] is False


def test_closed_store_ignores_changes(gateway, feed):
    tasks = TaskSync(gateway, feed, StubAuth())
    tasks.start()
    tasks.close()
    gateway.create_task(Task(title='late arrival'))
    assert tasks.items == []
    assert tasks.refresh() is False
    assert feed.subscriber_count('tasks') == 0


def test_write_failure_leaves_cache(gateway, feed):
    tasks = TaskSync(gateway, feed, StubAuth())
    tasks.start()
    with pytest.raises(ValidationError):
        tasks.create(Task(title=''), creator=PM)
    assert tasks.items == []


def test_task_mutations(gateway, feed):
    tasks = TaskSync(gateway, feed, StubAuth())
    tasks.start()
    task = tasks.create(
        Task(title='Site', responsible_id='u1', objectives=[TaskObjective('wireframe'), TaskObjective('deploy')]),
        creator=PM,
    )
    moved = tasks.move(task.id, TaskStatus.REVIEW, DESIGNER)
    assert moved.status == TaskStatus.REVIEW
    toggled = tasks.toggle_objective(task.id, 1, DESIGNER)
    assert [o.completed for o in toggled.objectives] == [False, True]
    with pytest.raises(ValidationError):
        tasks.toggle_objective(task.id, 5, DESIGNER)
    tasks.submit_report(task.id, 'feito', DESIGNER)
    tasks.give_feedback(task.id, 'bom trabalho', CREATIVE)
    cached = tasks.get(task.id)
    assert cached.completion_report == 'feito'
    assert cached.manager_feedback == 'bom trabalho'
    tasks.delete(task.id, DESIGNER)
    assert tasks.items == []


def test_open_tasks_for_user(gateway, feed):
    tasks = TaskSync(gateway, feed, StubAuth())
    tasks.start()
    tasks.create(Task(title='a', responsible_id='u1'), creator=PM)
    tasks.create(Task(title='b', responsible_id='u1', status=TaskStatus.DONE), creator=PM)
    tasks.create(Task(title='c', responsible_id='u2'), creator=PM)
    assert [t.title for t in tasks.open_tasks_for('u1')] == ['a']


def test_task_permissions(gateway, feed):
    tasks = TaskSync(gateway, feed, StubAuth())
    tasks.start()
    with pytest.raises(PermissionDeniedError):
        tasks.create(Task(title='Flyer'), creator=DESIGNER)
    with pytest.raises(PermissionDeniedError):
        tasks.create(Task(title='Flyer'), creator=None)
    assert tasks.items == []

    task = tasks.create(Task(title='Flyer', responsible_id='u1'), creator=CREATIVE)
    with pytest.raises(PermissionDeniedError):
        tasks.update(task.id, {'title': 'Outro'}, OTHER)
    with pytest.raises(PermissionDeniedError):
        tasks.move(task.id, TaskStatus.DONE, OTHER)
    with pytest.raises(PermissionDeniedError):
        tasks.move(task.id, TaskStatus.DONE, CREATIVE)
    with pytest.raises(PermissionDeniedError):
        tasks.submit_report(task.id, 'feito', CREATIVE)
    with pytest.raises(PermissionDeniedError):
        tasks.give_feedback(task.id, 'ok', DESIGNER)
    with pytest.raises(PermissionDeniedError):
        tasks.delete(task.id, OTHER)
    assert tasks.get(task.id).status == TaskStatus.BACKLOG

    assert tasks.update(task.id, {'title': 'Flyer A5'}, CREATIVE).title == 'Flyer A5'
    assert tasks.move(task.id, TaskStatus.DONE, PM).status == TaskStatus.DONE
    tasks.delete(task.id, CREATIVE)
    assert tasks.items == []


def _inbox(gateway, feed, user_id='u1'):
    for title in ('one', 'two', 'three'):
        gateway.create_notification(Notification(user_id=user_id, type='task_assigned', title=title))
    gateway.create_notification(Notification(user_id='someone-else', type='task_assigned', title='other'))
    inbox = NotificationInbox(gateway, feed, StubAuth(user_id), user_id)
    inbox.start()
    return inbox


def test_inbox_mark_all_read(gateway, feed):
    inbox = _inbox(gateway, feed)
    assert inbox.unread_count == 3
    inbox.mark_all_read()
    assert inbox.unread_count == 0
    assert inbox.snapshot()['unreadCount'] == 0
    assert all(n.is_read for n in gateway.list_notifications('u1'))
    assert not gateway.list_notifications('someone-else')[0].is_read


def test_inbox_rolls_back_on_write_failure(gateway, feed, monkeypatch):
    inbox = _inbox(gateway, feed)

    def boom(user_id):
        raise StoreError('write rejected')

    monkeypatch.setattr(gateway, 'mark_all_notifications_read', boom)
    with pytest.raises(StoreError):
        inbox.mark_all_read()
    assert inbox.unread_count == 3


def test_inbox_mark_one_and_delete(gateway, feed):
    inbox = _inbox(gateway, feed)
    first, second = inbox.items[0], inbox.items[1]
    inbox.mark_read(first.id)
    assert inbox.unread_count == 2
    inbox.delete(second.id)
    assert [n.id for n in inbox.items if n.id == second.id] == []
    assert len(inbox.items) == 2


def test_inbox_only_follows_own_rows(gateway, feed):
    inbox = _inbox(gateway, feed)
    gateway.create_notification(Notification(user_id='someone-else', type='task_assigned', title='x'))
    gateway.create_notification(Notification(user_id='u1', type='task_assigned', title='mine'))
    assert len(inbox.items) == 4


def test_client_rules(gateway, feed):
    pm = Profile(id='pm', name='Paula', role='Gestor de Projectos')
    designer = Profile(id='d1', name='Dino', role='Designer')
    creative = Profile(id='cm', name='Caio', role='Gestor Criativo')
    clients = ClientSync(gateway, feed, StubAuth('pm'))
    clients.start()
    lead = clients.create(Client(name='Padaria Central'))
    assert [c.id for c in clients.unclaimed()] == [lead.id]

    with pytest.raises(PermissionDeniedError):
        clients.change_status(lead.id, ClientStatus.IN_CONTACT, designer)
    with pytest.raises(PermissionDeniedError):
        clients.delete(lead.id, designer)
    with pytest.raises(PermissionDeniedError):
        clients.change_status(lead.id, ClientStatus.IN_CONTACT, creative)

    clients.claim(lead.id, designer)
    with pytest.raises(ConflictError):
        clients.claim(lead.id, pm)

    moved = clients.change_status(lead.id, ClientStatus.PROPOSAL_SENT, designer)
    assert moved.status == ClientStatus.PROPOSAL_SENT
    assert moved.last_activity == 'Estado alterado'
    assert clients.update(lead.id, {'phone': '+258 84 000 0000'}, creative).phone == '+258 84 000 0000'
    clients.delete(lead.id, pm)
    assert clients.items == []


def test_event_and_transaction_stores(gateway, feed):
    events = EventSync(gateway, feed, StubAuth())
    events.start()
    events.create(CalendarEvent(title='Reunião semanal', date='2024-03-11', type='Reunião'), created_by='u1')
    assert [e.title for e in events.on_date('2024-03-11')] == ['Reunião semanal']

    ledger = TransactionSync(gateway, feed, StubAuth())
    ledger.start()
    ledger.create(Transaction(description='Cliente A', value=1000, type='income', category='Pagamento de Cliente'))
    ledger.create(Transaction(description='Servidor', value=250, type='expense', category='Infraestrutura'))
    summary = ledger.summary()
    assert summary.income == 1000
    assert summary.balance == 750
    assert summary.margin == 75.0


def test_team_metrics_formula():
    profile = Profile(id='u1', name='Ana', role='Designer')
    tasks = [{'responsible_id': 'u1', 'status': 'Done'}] * 10 + [
        {'responsible_id': 'u1', 'status': 'ToDo'},
        {'responsible_id': 'u1', 'status': 'Missed'},
        {'responsible_id': 'u2', 'status': 'Done'},
    ]
    member = build_member(profile, tasks, [{'responsible_id': 'u1', 'name': 'Acme'}])
    assert member.metrics.completed == 10
    assert member.metrics.pending == 1
    assert member.metrics.missed == 1
    assert member.xp == 10 * 105 + 5
    assert member.level == 2
    assert member.badges == ['Membro da Equipe']
    assert member.metrics.clients == ['Acme']
    assert member.metrics.kpis[0] == {'name': 'Qualidade de Entrega', 'score': 83}


def test_team_elite_badges_and_empty_member():
    profile = Profile(id='u1', name='Ana')
    elite = build_member(profile, [{'responsible_id': 'u1', 'status': 'Done'}] * 20, [])
    assert elite.level == 3
    assert 'Elite Member' in elite.badges
    idle = build_member(Profile(id='u2', name='Rui'), [], [])
    assert (idle.level, idle.xp) == (1, 0)
    assert idle.metrics.kpis[1]['score'] == 0


def test_team_store_follows_directory(gateway, feed, make_user):
    make_user('u1', 'Ana')
    team = TeamSync(gateway, feed, StubAuth())
    team.start()
    assert [m.name for m in team.items] == ['Ana']
    make_user('u2', 'Bruno')
    gateway.create_task(Task(title='x', responsible_id='u2', status=TaskStatus.DONE))
    bruno = team.get('u2')
    assert bruno.metrics.completed == 1
