import pytest
import requests

from bizdesk.models.entities import Transaction
from bizdesk.services.avatars import avatar_path, upload_avatar, validate_avatar
from bizdesk.services.finance import category_suggestions, summarize
from bizdesk.services.insights import DESCRIPTION_ERROR, NO_INSIGHTS, InsightClient
from bizdesk.services.local_store import LocalObjectStorage
from bizdesk.services.store import ValidationError


class DummyResponse:
    def __init__(self, status_code, json_data=None):
        self.status_code = status_code
        self._json = json_data or {}

    def json(self):
        return self._json

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(response=self)


def test_summary_by_type_and_category():
    summary = summarize([
        Transaction(description='A', value=2000, type='income', category='Pagamento de Cliente'),
        Transaction(description='B', value=500, type='expense', category='Fixos'),
        Transaction(description='C', value=300, type='expense', category='Fixos'),
        Transaction(description='D', value=400, type='investment', category='Hardware'),
    ])
    data = summary.to_dict()
    assert data['income'] == 2000
    assert data['expenses'] == 800
    assert data['investments'] == 400
    assert data['balance'] == 800
    assert data['margin'] == 60.0
    assert data['byCategory']['expense'] == {'Fixos': 800}


def test_margin_without_income():
    assert summarize([Transaction(description='x', value=10, type='expense')]).margin == 0.0


def test_category_suggestions():
    assert category_suggestions('investment') == {
        'investment': ['Software', 'Material de Escritório', 'Hardware', 'Marketing', 'Trading']
    }
    assert set(category_suggestions()) == {'income', 'expense', 'investment'}
    with pytest.raises(ValueError):
        category_suggestions('gift')


def test_avatar_rules():
    assert avatar_path('u1', 'png', 1710000000000) == 'avatars/u1-1710000000000.png'
    with pytest.raises(ValidationError):
        validate_avatar(b'%PDF', 'application/pdf')
    with pytest.raises(ValidationError) as info:
        validate_avatar(b'0' * (2 * 1024 * 1024 + 1), 'image/png')
    assert '2MB' in str(info.value)


def test_upload_avatar_returns_public_url(tmp_path):
    storage = LocalObjectStorage(str(tmp_path))
    url = upload_avatar(storage, 'u1', b'img', 'image/jpeg', 'me.JPG', clock=lambda: 1710000000.5)
    assert url == '/uploads/avatars/u1-1710000000500.jpg'
    assert (tmp_path / 'avatars' / 'u1-1710000000500.jpg').exists()


def test_insights_disabled_without_key():
    assert InsightClient(None).project_insights({'x': 1}) == NO_INSIGHTS


def test_insights_text_is_joined(monkeypatch):
    client = InsightClient('key')
    seen = {}

    def post(url, **kwargs):
        seen['url'] = url
        seen['params'] = kwargs['params']
        return DummyResponse(200, {'candidates': [{'content': {'parts': [{'text': '1. Foco '}, {'text': 'no cliente'}]}}]})

    monkeypatch.setattr(client.session, 'post', post)
    assert client.project_insights([{'name': 'Ana'}]) == '1. Foco no cliente'
    assert seen['url'].endswith(':generateContent')
    assert seen['params'] == {'key': 'key'}


def test_insights_fallback_on_http_error(monkeypatch):
    client = InsightClient('key')
    monkeypatch.setattr(client.session, 'post', lambda *a, **k: DummyResponse(500))
    assert client.task_description('Logo nova') == DESCRIPTION_ERROR
