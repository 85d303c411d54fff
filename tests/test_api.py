import io
import uuid

import bizdesk
from bizdesk import app


def _auth(token):
    return {'Authorization': f'Bearer {token}'}


def _member(client, name, role='Designer'):
    email = f'{uuid.uuid4().hex[:10]}@example.com'
    resp = client.post('/api/auth/sign-up', json={'email': email, 'password': 'secret1'})
    assert resp.status_code == 201
    token = resp.get_json()['token']
    resp = client.post('/api/session/onboarding', json={'name': name, 'role': role}, headers=_auth(token))
    assert resp.status_code == 201
    return token, resp.get_json()['profile']


def test_health():
    resp = app.test_client().get('/api/health')
    assert resp.status_code == 200
    assert resp.get_json()['backend'] == 'local'


def test_routes_require_token():
    client = app.test_client()
    assert client.get('/api/tasks').status_code == 401
    assert client.get('/api/tasks', headers=_auth('nope')).status_code == 401
    assert client.get('/ping').status_code == 401


def test_sign_up_lands_on_onboarding():
    client = app.test_client()
    resp = client.post('/api/auth/sign-up', json={'email': 'new.member@example.com', 'password': 'secret1'})
    data = resp.get_json()
    assert resp.status_code == 201
    assert data['needsOnboarding'] is True
    assert data['session']['state'] == 'onboarding'
    token = data['token']
    assert client.get('/ping', headers=_auth(token)).status_code == 204
    assert client.get('/api/tasks', headers=_auth(token)).status_code == 401

    resp = client.post('/api/session/onboarding', json={'name': 'Nova', 'role': 'Chefe'}, headers=_auth(token))
    assert resp.status_code == 422


def test_sign_in_and_bad_credentials():
    client = app.test_client()
    client.post('/api/auth/sign-up', json={'email': 'login@example.com', 'password': 'secret1'})
    resp = client.post('/api/auth/sign-in', json={'email': 'login@example.com', 'password': 'wrong'})
    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'auth_error'
    resp = client.post('/api/auth/sign-in', json={'email': 'login@example.com', 'password': 'secret1'})
    assert resp.status_code == 200
    assert resp.get_json()['session']['state'] == 'onboarding'
    assert client.post('/api/auth/sign-in', json={}).status_code == 422


def test_task_assignment_reaches_inbox():
    client = app.test_client()
    manager_token, _ = _member(client, 'Marta', role='Gestor de Projectos')
    alice_token, alice = _member(client, 'Alice')

    resp = client.post(
        '/api/tasks',
        json={'title': 'Campanha de Março', 'responsibleId': alice['id'], 'dueDate': '2030-01-02', 'priority': 'ALTA'},
        headers=_auth(manager_token),
    )
    assert resp.status_code == 201
    task = resp.get_json()
    assert task['status'] == 'Backlog'

    listed = client.get('/api/tasks', headers=_auth(alice_token)).get_json()['items']
    mine = [t for t in listed if t['id'] == task['id']]
    assert mine[0]['responsible'] == 'Alice'

    inbox = client.get('/api/notifications', headers=_auth(alice_token)).get_json()
    assigned = [n for n in inbox['items'] if n['taskId'] == task['id']]
    assert len(assigned) == 1
    assert assigned[0]['type'] == 'task_assigned'
    assert assigned[0]['title'] == 'Nova Tarefa Atribuída: Campanha de Março'

    resp = client.post('/api/notifications/read-all', headers=_auth(alice_token))
    assert resp.get_json()['unreadCount'] == 0


def test_task_validation_and_roles():
    client = app.test_client()
    manager_token, _ = _member(client, 'Gil', role='Gestor Criativo')
    token, davi = _member(client, 'Davi')
    other_token, _ = _member(client, 'Duda')

    resp = client.post('/api/tasks', json={'project': 'sem titulo'}, headers=_auth(manager_token))
    assert resp.status_code == 422
    assert resp.get_json()['error'] == 'validation_error'

    resp = client.post('/api/tasks', json={'title': 'Cartaz'}, headers=_auth(token))
    assert resp.status_code == 403

    task = client.post(
        '/api/tasks', json={'title': 'Cartaz', 'responsibleId': davi['id']}, headers=_auth(manager_token)
    ).get_json()
    resp = client.patch(f"/api/tasks/{task['id']}", json={'status': 'Done'}, headers=_auth(other_token))
    assert resp.status_code == 403
    resp = client.patch(f"/api/tasks/{task['id']}", json={'status': 'Done'}, headers=_auth(token))
    assert resp.get_json()['status'] == 'Done'
    resp = client.post(f"/api/tasks/{task['id']}/feedback", json={'managerFeedback': 'ok'}, headers=_auth(token))
    assert resp.status_code == 403
    assert client.delete(f"/api/tasks/{task['id']}", headers=_auth(other_token)).status_code == 403
    assert client.delete(f"/api/tasks/{task['id']}", headers=_auth(manager_token)).status_code == 204
    assert client.delete('/api/tasks/missing', headers=_auth(token)).status_code == 404


def test_lead_claim_conflict():
    client = app.test_client()
    first_token, first = _member(client, 'Rita', role='Promoter de Venda')
    second_token, _ = _member(client, 'Sara', role='Promoter de Venda')

    lead = client.post('/api/clients', json={'name': 'Hotel Polana', 'provenance': 'Google'}, headers=_auth(first_token))
    assert lead.status_code == 201
    lead_id = lead.get_json()['id']

    resp = client.post(f'/api/clients/{lead_id}/claim', headers=_auth(first_token))
    assert resp.status_code == 200
    assert resp.get_json()['responsibleId'] == first['id']
    assert client.post(f'/api/clients/{lead_id}/claim', headers=_auth(first_token)).status_code == 200

    resp = client.post(f'/api/clients/{lead_id}/claim', headers=_auth(second_token))
    assert resp.status_code == 409
    assert resp.get_json()['error'] == 'conflict'

    resp = client.post(f'/api/clients/{lead_id}/status', json={'status': 'Convertido'}, headers=_auth(second_token))
    assert resp.status_code == 403


def test_finance_is_restricted_to_project_manager():
    client = app.test_client()
    designer_token, _ = _member(client, 'Dora')
    assert client.get('/api/transactions', headers=_auth(designer_token)).status_code == 403

    pm_token, _ = _member(client, 'Paulo', role='Gestor de Projectos')
    resp = client.post(
        '/api/transactions',
        json={'desc': 'Pagamento Hotel Polana', 'val': 15000, 'type': 'income', 'cat': 'Pagamento de Cliente', 'date': '2024-03-10'},
        headers=_auth(pm_token),
    )
    assert resp.status_code == 201
    assert resp.get_json()['status'] == 'Recebido'

    data = client.get('/api/transactions', headers=_auth(pm_token)).get_json()
    assert data['summary']['income'] >= 15000
    cats = client.get('/api/transactions/categories?type=expense', headers=_auth(pm_token)).get_json()
    assert 'Infraestrutura' in cats['expense']


def test_events_record_creator():
    client = app.test_client()
    token, _ = _member(client, 'Eva')
    resp = client.post('/api/events', json={'title': 'Reunião de equipa', 'date': '2024-03-12', 'type': 'Reunião'}, headers=_auth(token))
    assert resp.status_code == 201
    items = client.get('/api/events', headers=_auth(token)).get_json()['items']
    created = [e for e in items if e['title'] == 'Reunião de equipa']
    assert created[0]['creatorName'] == 'Eva'


def test_team_and_profile():
    client = app.test_client()
    token, profile = _member(client, 'Tiago', role='Videomaker')
    team = client.get('/api/team', headers=_auth(token)).get_json()['items']
    me = [m for m in team if m['id'] == profile['id']][0]
    assert me['level'] == 1
    assert me['badges'] == ['Membro da Equipe']

    resp = client.patch('/api/profile', json={'name': 'Tiago M.'}, headers=_auth(token))
    assert resp.get_json()['name'] == 'Tiago M.'

    resp = client.post(
        '/api/profile/avatar',
        data={'file': (io.BytesIO(b'\x89PNG'), 'me.png', 'image/png')},
        content_type='multipart/form-data',
        headers=_auth(token),
    )
    assert resp.status_code == 200
    url = resp.get_json()['url']
    assert url.startswith('/uploads/avatars/')
    assert client.get(url).data == b'\x89PNG'


def test_sign_out_discards_workspace():
    client = app.test_client()
    token, _ = _member(client, 'Olga')
    assert client.post('/api/auth/sign-out', headers=_auth(token)).status_code == 204
    assert client.get('/api/session', headers=_auth(token)).status_code == 401


def test_realtime_stream():
    client = app.test_client()
    token, _ = _member(client, 'Ivo')
    assert client.get('/api/realtime/stream?tables=secrets', headers=_auth(token)).status_code == 422

    resp = client.get('/api/realtime/stream?tables=tasks', headers=_auth(token), buffered=False)
    assert resp.status_code == 200
    assert resp.mimetype == 'text/event-stream'
    assert next(iter(resp.response)) == b'retry: 3000\n\n'
    resp.close()


def test_runtime_shutdown_closes_workspaces_then_io_pool(monkeypatch):
    calls = []
    monkeypatch.setattr(bizdesk.workspaces, 'close_all', lambda: calls.append('workspaces'))
    monkeypatch.setattr(bizdesk.task_queue, 'shutdown', lambda wait=False: calls.append(('io', wait)))
    bizdesk._shutdown_runtime()
    assert calls == ['workspaces', ('io', False)]
