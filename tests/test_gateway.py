from datetime import timedelta

import pytest

from bizdesk.constants import ClientStatus, NotificationType, TaskStatus, TransactionStatus, TransactionType
from bizdesk.models.entities import CalendarEvent, Client, Notification, Task, Transaction
from bizdesk.services.store import ConflictError, NotFoundError, StoreError, ValidationError
from bizdesk.utils.datetime_utils import now_aware


def test_transaction_default_status(gateway):
    income = gateway.create_transaction(Transaction(description='Fee', value=1500, type='income'))
    expense = gateway.create_transaction(Transaction(description='Cloud', value=200, type=TransactionType.EXPENSE))
    investment = gateway.create_transaction(Transaction(description='Laptop', value=900, type='investment'))
    assert income.status == TransactionStatus.RECEIVED
    assert expense.status == TransactionStatus.PAID
    assert investment.status == TransactionStatus.PAID

    pending = gateway.create_transaction(
        Transaction(description='Invoice', value=50, type='income', status='Pendente')
    )
    assert pending.status == TransactionStatus.PENDING
    assert [t.description for t in gateway.list_transactions()][0] == 'Invoice'


def test_transaction_rejects_unknown_type(gateway):
    with pytest.raises(ValidationError):
        gateway.create_transaction(Transaction(description='?', value=1, type='gift'))


def test_tasks_resolve_responsible_by_id(gateway, make_user):
    make_user('u1', 'Alice')
    make_user('u2', 'Alice')
    created = gateway.create_task(Task(title='Brand', responsible_id='u2', due_date='2024-03-11'), created_by='u1')
    assert created.created_by == 'u1'
    task = gateway.list_tasks()[0]
    assert task.responsible_id == 'u2'
    assert task.responsible_name == 'Alice'
    assert task.to_dict()['responsibleId'] == 'u2'


def test_task_list_falls_back_to_table(gateway, make_user, monkeypatch):
    make_user('u1', 'Bruno')
    gateway.create_task(Task(title='Edit', responsible_id='u1'))
    original = gateway.store.select

    def select(table, **kwargs):
        if table == 'tasks_with_users':
            raise StoreError('relation does not exist', code='42P01')
        return original(table, **kwargs)

    monkeypatch.setattr(gateway.store, 'select', select)
    tasks = gateway.list_tasks()
    assert tasks[0].responsible_name == 'Bruno'


def test_unassigned_task_label(gateway):
    gateway.create_task(Task(title='Orphan'))
    assert gateway.list_tasks()[0].to_dict()['responsible'] == 'Sem responsável'


def test_deadline_candidates_skip_done_and_unassigned(gateway, make_user):
    make_user('u1', 'Ana')
    gateway.create_task(Task(title='open', responsible_id='u1', due_date='2024-03-11'))
    gateway.create_task(Task(title='done', responsible_id='u1', due_date='2024-03-11', status=TaskStatus.DONE))
    gateway.create_task(Task(title='nobody', due_date='2024-03-11'))
    gateway.create_task(Task(title='no date', responsible_id='u1'))
    assert [t.title for t in gateway.list_deadline_candidates()] == ['open']


def test_update_missing_row(gateway):
    with pytest.raises(NotFoundError):
        gateway.update_task('missing', {'title': 'x'})
    with pytest.raises(NotFoundError):
        gateway.delete_client('missing')


def test_update_rejects_unknown_field(gateway):
    task = gateway.create_task(Task(title='x'))
    with pytest.raises(ValidationError):
        gateway.update_task(task.id, {'colour': 'red'})


def test_claim_is_first_write_wins(gateway, make_user):
    make_user('a', 'Ana')
    make_user('b', 'Bruno')
    lead = gateway.create_client(Client(name='Acme Lda'))
    assert lead.is_unclaimed

    claimed = gateway.claim_client(lead.id, 'a', 'Assumiu o lead')
    assert claimed.responsible_id == 'a'
    assert claimed.last_activity == 'Assumiu o lead'

    assert gateway.claim_client(lead.id, 'a').responsible_id == 'a'
    with pytest.raises(ConflictError) as info:
        gateway.claim_client(lead.id, 'b')
    assert info.value.status == 409
    assert gateway.get_client(lead.id).responsible_id == 'a'


def test_client_view_and_initials(gateway, make_user):
    make_user('a', 'Ana')
    gateway.create_client(Client(name='maria joana silva', responsible_id='a', status=ClientStatus.IN_CONTACT))
    lead = gateway.list_clients()[0]
    assert lead.responsible_name == 'Ana'
    assert lead.to_dict()['initials'] == 'MJ'


def test_events_resolve_creator_name(gateway, make_user):
    make_user('u1', 'Carla')
    gateway.create_event(CalendarEvent(title='Kickoff', date='2024-03-12', created_by='u1'))
    gateway.create_event(CalendarEvent(title='Feriado', date='2024-03-11', type='Feriado'))
    events = gateway.list_events()
    assert [e.title for e in events] == ['Feriado', 'Kickoff']
    assert events[0].creator_name == 'Sistema'
    assert events[1].creator_name == 'Carla'


def test_recent_notification_window(gateway):
    gateway.create_notification(
        Notification(user_id='u1', task_id='t1', type=NotificationType.TASK_OVERDUE, title='late')
    )
    now = now_aware()
    assert gateway.find_recent_notification('u1', 't1', NotificationType.TASK_OVERDUE, now)
    assert gateway.find_recent_notification('u1', 't1', NotificationType.DEADLINE_TODAY, now) is None
    later = now + timedelta(hours=25)
    assert gateway.find_recent_notification('u1', 't1', NotificationType.TASK_OVERDUE, later) is None


def test_mark_all_notifications_read_scoped_to_user(gateway):
    for user in ('u1', 'u1', 'u2'):
        gateway.create_notification(Notification(user_id=user, type='task_assigned', title='x'))
    assert gateway.mark_all_notifications_read('u1') == 2
    assert all(n.is_read for n in gateway.list_notifications('u1'))
    assert not gateway.list_notifications('u2')[0].is_read
