import os
import tempfile
from datetime import datetime

_tmp = tempfile.mkdtemp(prefix="bizdesk-tests-")
os.environ['DATABASE_URL'] = 'sqlite:///:memory:'
os.environ['LOCAL_UPLOAD_DIR'] = os.path.join(_tmp, 'uploads')
os.environ['APP_LOG_DIR'] = os.path.join(_tmp, 'logs')
os.environ['APP_TIMEZONE'] = 'Africa/Maputo'
os.environ.pop('SUPABASE_URL', None)
os.environ.pop('SUPABASE_ANON_KEY', None)
os.environ.pop('GEMINI_API_KEY', None)

import pytest
from apscheduler.jobstores.base import JobLookupError

from bizdesk.models.entities import AuthSession, AuthUser, Profile
from bizdesk.services.gateway import RemoteGateway
from bizdesk.services.local_store import LocalStore
from bizdesk.services.realtime import ChangeFeed
from bizdesk.services.store import AuthStateEmitter
from bizdesk.utils.datetime_utils import get_timezone

TZ = get_timezone('Africa/Maputo')


class FakeScheduler:
    """Records jobs instead of running them."""

    def __init__(self):
        self.jobs = {}

    def add_job(self, func=None, trigger=None, id=None, **kwargs):
        self.jobs[id] = func

    def remove_job(self, job_id):
        if job_id not in self.jobs:
            raise JobLookupError(job_id)
        del self.jobs[job_id]


class StubAuth(AuthStateEmitter):
    """Auth backend with a fixed session; ``users`` feeds successive get_user calls."""

    def __init__(self, user_id='u-1', email='ana@example.com', users=None):
        super().__init__()
        self.user = AuthUser(id=user_id, email=email)
        self.session = AuthSession(access_token='tok', user=self.user)
        self.users = users
        self.signed_out = False

    def get_session(self):
        return self.session

    def get_user(self):
        if self.users is not None:
            return self.users.pop(0) if self.users else None
        return self.user if self.session else None

    def sign_out(self):
        self.signed_out = True
        self.session = None
        self._emit('SIGNED_OUT', None)

    def forget_session(self):
        self.session = None


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def store(feed):
    return LocalStore.from_url('sqlite:///:memory:', feed=feed)


@pytest.fixture
def gateway(store):
    return RemoteGateway(store)


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def make_user(gateway):
    def _make(user_id, name, role='Colaborador'):
        return gateway.create_profile(
            Profile(id=user_id, email=f'{user_id}@example.com', name=name, role=role)
        )
    return _make


def local_dt(*args):
    return datetime(*args, tzinfo=TZ)
