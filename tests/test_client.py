import pytest
import requests

from bizdesk.models.entities import AuthSession
from bizdesk.services.store import AuthError, DuplicateKeyError, Order, StoreError, eq, in_, is_null, neq
from bizdesk.services.supabase_store import SupabaseAuth, SupabaseStore, build_params, translate_error
from integrations.supabase import SupabaseAPIError, SupabaseClient, encode_in


class DummyResponse:
    def __init__(self, status_code, json_data=None, text=''):
        self.status_code = status_code
        self._json = json_data
        self.text = text
        self.headers = {}
        self.content = b'x' if json_data is not None else b''

    def json(self):
        if self._json is None:
            raise ValueError('no json')
        return self._json

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(response=self)


def test_select_sends_params_and_api_key(monkeypatch):
    client = SupabaseClient('http://base/', 'anon')
    calls = []

    def req(method, url, **kwargs):
        calls.append((method, url, kwargs))
        return DummyResponse(200, [{'id': 1}])

    monkeypatch.setattr(client.session, 'request', req)
    rows = client.select('tasks', [('select', '*'), ('status', 'eq.Done')])
    assert rows == [{'id': 1}]
    method, url, kwargs = calls[0]
    assert method == 'GET'
    assert url == 'http://base/rest/v1/tasks'
    assert kwargs['params'] == [('select', '*'), ('status', 'eq.Done')]
    assert client.session.headers['apikey'] == 'anon'
    assert client.session.headers['Authorization'] == 'Bearer anon'


def test_access_token_replaces_bearer():
    client = SupabaseClient('http://base', 'anon', access_token='user-jwt')
    assert client.session.headers['Authorization'] == 'Bearer user-jwt'
    client.set_access_token(None)
    assert client.session.headers['Authorization'] == 'Bearer anon'


def test_insert_asks_for_representation(monkeypatch):
    client = SupabaseClient('http://base', 'anon')
    seen = {}

    def req(method, url, **kwargs):
        seen.update(kwargs)
        return DummyResponse(201, [{'id': 'a'}])

    monkeypatch.setattr(client.session, 'request', req)
    assert client.insert('clients', {'name': 'Acme'}) == [{'id': 'a'}]
    assert seen['headers']['Prefer'] == 'return=representation'
    assert seen['json'] == {'name': 'Acme'}


def test_error_body_is_extracted(monkeypatch):
    client = SupabaseClient('http://base', 'anon')
    resp = DummyResponse(409, {'code': '23505', 'message': 'duplicate key value', 'details': 'Key (id)'})
    monkeypatch.setattr(client.session, 'request', lambda *a, **k: resp)
    with pytest.raises(SupabaseAPIError) as info:
        client.insert('users', {'id': 'x'})
    assert info.value.status == 409
    assert info.value.code == '23505'
    assert 'duplicate key' in str(info.value)


def test_error_without_json_uses_text(monkeypatch):
    client = SupabaseClient('http://base', 'anon')
    resp = DummyResponse(500, None, text='upstream exploded')
    monkeypatch.setattr(client.session, 'request', lambda *a, **k: resp)
    with pytest.raises(SupabaseAPIError) as info:
        client.select('tasks', [])
    assert info.value.message == 'upstream exploded'


def test_network_error_becomes_api_error(monkeypatch):
    client = SupabaseClient('http://base', 'anon')

    def boom(*a, **k):
        raise requests.ConnectionError('refused')

    monkeypatch.setattr(client.session, 'request', boom)
    with pytest.raises(SupabaseAPIError) as info:
        client.select('tasks', [])
    assert info.value.status == 0


def test_encode_in_quotes_reserved_characters():
    assert encode_in(['a', 'b,c']) == 'in.(a,"b,c")'


def test_build_params_translates_filters():
    params = build_params(
        [eq('status', 'Done'), is_null('responsible_id'), neq('due_date', None), in_('id', ['1', '2'])],
        columns='id,title',
        order=Order('created_at', ascending=False),
        limit=5,
    )
    assert params == [
        ('select', 'id,title'),
        ('status', 'eq.Done'),
        ('responsible_id', 'is.null'),
        ('due_date', 'not.is.null'),
        ('id', 'in.(1,2)'),
        ('order', 'created_at.desc'),
        ('limit', '5'),
    ]


def test_translate_error_taxonomy():
    assert isinstance(translate_error(SupabaseAPIError(409, 'dup', code='23505')), DuplicateKeyError)
    assert isinstance(translate_error(SupabaseAPIError(401, 'jwt expired', code='PGRST301')), AuthError)
    generic = translate_error(SupabaseAPIError(400, 'bad column', code='42703'))
    assert type(generic) is StoreError
    assert generic.code == '42703'
    foreign_key = translate_error(SupabaseAPIError(409, 'violates foreign key constraint', code='23503'))
    assert type(foreign_key) is StoreError
    assert (foreign_key.code, foreign_key.status) == ('23503', 409)


def test_store_insert_publishes_to_feed(monkeypatch, feed):
    client = SupabaseClient('http://base', 'anon')
    monkeypatch.setattr(client.session, 'request', lambda *a, **k: DummyResponse(201, [{'id': 'n1', 'user_id': 'u'}]))
    seen = []
    feed.subscribe('notifications', seen.append)
    record = SupabaseStore(client, feed).insert('notifications', {'user_id': 'u'})
    assert record['id'] == 'n1'
    assert [event.event_type for event in seen] == ['INSERT']


def test_sign_up_without_token_needs_confirmation(monkeypatch):
    client = SupabaseClient('http://base', 'anon')
    monkeypatch.setattr(client.session, 'request', lambda *a, **k: DummyResponse(200, {'id': 'u1', 'email': 'a@b.c'}))
    auth = SupabaseAuth(client)
    assert auth.sign_up('a@b.c', 'secret1') is None
    assert auth.get_session() is None


def test_sign_in_emits_event_and_sets_token(monkeypatch):
    client = SupabaseClient('http://base', 'anon')
    payload = {'access_token': 'jwt', 'refresh_token': 'r', 'expires_at': 4102444800,
               'user': {'id': 'u1', 'email': 'a@b.c'}}
    monkeypatch.setattr(client.session, 'request', lambda *a, **k: DummyResponse(200, payload))
    auth = SupabaseAuth(client)
    events = []
    auth.on_auth_state_change(lambda event, session: events.append(event))
    session = auth.sign_in_with_password('a@b.c', 'secret1')
    assert session.user.id == 'u1'
    assert events == ['SIGNED_IN']
    assert client.session.headers['Authorization'] == 'Bearer jwt'


def test_expiring_session_is_refreshed(monkeypatch):
    client = SupabaseClient('http://base', 'anon')
    old = {'access_token': 'old', 'refresh_token': 'r1', 'expires_at': 1, 'user': {'id': 'u1'}}
    new = {'access_token': 'new', 'refresh_token': 'r2', 'expires_at': 4102444800, 'user': {'id': 'u1'}}
    monkeypatch.setattr(client.session, 'request', lambda *a, **k: DummyResponse(200, new))
    auth = SupabaseAuth(client, AuthSession.from_payload(old))
    events = []
    auth.on_auth_state_change(lambda event, session: events.append(event))
    assert auth.get_session().access_token == 'new'
    assert events == ['TOKEN_REFRESHED']
