"""
Per-user composition root.

A :class:`Workspace` is what one signed-in browser session owns: its auth
backend, gateway, deadline engine, session orchestrator and the sync stores.
The :class:`WorkspaceRegistry` maps the opaque bearer token handed to the
browser onto its workspace.
"""

import logging
import secrets
import threading
import time
from typing import Callable, Dict, List, Optional

from apscheduler.triggers.interval import IntervalTrigger

from bizdesk.constants import AVATAR_CACHE_CONTROL
from bizdesk.models.entities import Profile
from bizdesk.services.gateway import RemoteGateway
from bizdesk.services.insights import InsightClient
from bizdesk.services.local_store import LocalAuth, LocalObjectStorage, LocalStore
from bizdesk.services.notification_engine import DeadlineNotificationEngine
from bizdesk.services.realtime import ChangeFeed
from bizdesk.services.session import SessionOrchestrator, SessionState
from bizdesk.services.store import AuthError, StoreError
from bizdesk.services.supabase_store import SupabaseAuth, SupabaseStorage, SupabaseStore
from bizdesk.services.sync import (
    ClientSync,
    EventSync,
    NotificationInbox,
    TaskSync,
    TeamSync,
    TransactionSync,
)
from bizdesk.utils.datetime_utils import get_timezone
from integrations.supabase import SupabaseClient

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "workspace-sweep"
RECONCILE_JOB_ID = "workspace-reconcile"


class Platform:
    """Backends shared by all workspaces of the process."""

    def __init__(self, config, feed: ChangeFeed, scheduler) -> None:
        self.config = config
        self.feed = feed
        self.scheduler = scheduler
        self.tz = get_timezone(config.APP_TIMEZONE)
        self.insights = InsightClient(config.GEMINI_API_KEY, config.GEMINI_MODEL)
        self.hosted = bool(config.SUPABASE_ENABLED)
        self.local_store: Optional[LocalStore] = None
        self.local_storage: Optional[LocalObjectStorage] = None
        if not self.hosted:
            self.local_store = LocalStore.from_url(config.DATABASE_URL, feed=feed)
            self.local_storage = LocalObjectStorage(config.LOCAL_UPLOAD_DIR)
        logger.info("Platform backend: %s", "supabase" if self.hosted else "local")

    def _client(self) -> SupabaseClient:
        return SupabaseClient(
            self.config.SUPABASE_URL,
            self.config.SUPABASE_ANON_KEY,
            timeout=self.config.SUPABASE_TIMEOUT,
        )

    def connect(self):
        """Fresh ``(store, auth, storage)`` for one browser session."""
        if self.hosted:
            client = self._client()
            return (
                SupabaseStore(client, feed=self.feed),
                SupabaseAuth(client),
                SupabaseStorage(client, self.config.SUPABASE_STORAGE_BUCKET, AVATAR_CACHE_CONTROL),
            )
        return self.local_store, LocalAuth(self.local_store), self.local_storage


class Workspace:
    def __init__(
        self,
        platform: Platform,
        store,
        auth,
        storage,
        *,
        token: Optional[str] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        config = platform.config
        self.token = token or secrets.token_urlsafe(24)
        self.clock = clock or time.monotonic
        self.last_seen = self.clock()
        self.closed = False
        self.platform = platform
        self.auth = auth
        self.storage = storage
        self.gateway = RemoteGateway(store)
        self.engine = DeadlineNotificationEngine(
            self.gateway,
            platform.scheduler,
            interval_seconds=config.DEADLINE_CHECK_INTERVAL_SECONDS,
            tz=platform.tz,
            job_id=f"deadline-scan-{self.token[:12]}",
        )
        self.session = SessionOrchestrator(
            auth,
            self.gateway,
            self.engine,
            profile_timeout=config.PROFILE_LOAD_TIMEOUT_SECONDS,
            loading_timeout=config.LOADING_SAFETY_TIMEOUT_SECONDS,
            auth_retries=config.ONBOARDING_AUTH_RETRIES,
            retry_delay=config.ONBOARDING_RETRY_DELAY_SECONDS,
            on_ready=self._start_syncs,
            on_reset=self._stop_syncs,
        )
        self._lock = threading.Lock()
        self.tasks: Optional[TaskSync] = None
        self.clients: Optional[ClientSync] = None
        self.events: Optional[EventSync] = None
        self.transactions: Optional[TransactionSync] = None
        self.team: Optional[TeamSync] = None
        self.notifications: Optional[NotificationInbox] = None

    @property
    def profile(self) -> Optional[Profile]:
        return self.session.profile

    def _start_syncs(self, profile: Profile) -> None:
        self._stop_syncs()
        feed = self.platform.feed
        syncs = {
            "tasks": TaskSync(self.gateway, feed, self.auth),
            "clients": ClientSync(self.gateway, feed, self.auth),
            "events": EventSync(self.gateway, feed, self.auth),
            "transactions": TransactionSync(self.gateway, feed, self.auth),
            "team": TeamSync(self.gateway, feed, self.auth),
            "notifications": NotificationInbox(self.gateway, feed, self.auth, profile.id),
        }
        with self._lock:
            for name, sync in syncs.items():
                setattr(self, name, sync)
        for sync in syncs.values():
            sync.start()

    def _stop_syncs(self) -> None:
        with self._lock:
            syncs = [self.tasks, self.clients, self.events, self.transactions, self.team, self.notifications]
            self.tasks = self.clients = self.events = None
            self.transactions = self.team = self.notifications = None
        for sync in syncs:
            if sync is not None:
                sync.close()

    def _active_syncs(self) -> List:
        with self._lock:
            syncs = [self.tasks, self.clients, self.events, self.transactions, self.team, self.notifications]
        return [sync for sync in syncs if sync is not None]

    def require_ready(self) -> Profile:
        if self.session.state != SessionState.READY or self.session.profile is None:
            raise AuthError("sign in and complete onboarding first", status=401)
        return self.session.profile

    def touch(self) -> None:
        self.last_seen = self.clock()

    def idle_for(self) -> float:
        return self.clock() - self.last_seen

    def is_expired(self, idle_timeout: float) -> bool:
        """Idle past ``idle_timeout`` or the auth session is gone."""
        if self.closed:
            return True
        if idle_timeout and self.idle_for() > idle_timeout:
            return True
        try:
            return self.auth.get_session() is None
        except StoreError as exc:
            # Transient auth failure; the idle timeout still applies.
            logger.warning("Could not check session of workspace %s: %s", self.token[:12], exc)
            return False

    def refresh_syncs(self) -> int:
        """Full re-fetch of every running store; returns how many succeeded."""
        return sum(1 for sync in self._active_syncs() if sync.refresh())

    def close(self) -> None:
        self.closed = True
        self._stop_syncs()
        self.engine.stop()
        self.session.close()


class WorkspaceRegistry:
    """Bearer token -> workspace, with idle eviction and periodic reconciliation."""

    def __init__(self, platform: Platform, idle_timeout: Optional[float] = None) -> None:
        self.platform = platform
        if idle_timeout is None:
            idle_timeout = platform.config.WORKSPACE_IDLE_TIMEOUT_SECONDS
        self.idle_timeout = idle_timeout
        self._workspaces: Dict[str, Workspace] = {}
        self._lock = threading.Lock()

    def create(self) -> Workspace:
        store, auth, storage = self.platform.connect()
        return Workspace(self.platform, store, auth, storage)

    def register(self, workspace: Workspace) -> str:
        workspace.touch()
        with self._lock:
            self._workspaces[workspace.token] = workspace
        return workspace.token

    def get(self, token: Optional[str]) -> Optional[Workspace]:
        if not token:
            return None
        with self._lock:
            workspace = self._workspaces.get(token)
        if workspace is not None:
            workspace.touch()
        return workspace

    def discard(self, token: Optional[str]) -> None:
        with self._lock:
            workspace = self._workspaces.pop(token, None) if token else None
        if workspace is not None:
            workspace.close()

    def _snapshot(self) -> List[Workspace]:
        with self._lock:
            return list(self._workspaces.values())

    def sweep(self) -> int:
        """Close and drop expired workspaces; returns how many were evicted."""
        expired = [ws for ws in self._snapshot() if ws.is_expired(self.idle_timeout)]
        evicted = []
        with self._lock:
            for workspace in expired:
                if self._workspaces.get(workspace.token) is workspace:
                    del self._workspaces[workspace.token]
                    evicted.append(workspace)
        for workspace in evicted:
            workspace.close()
        if evicted:
            logger.info(
                "Evicted %d expired workspace(s)",
                len(evicted),
                extra={"workspaces_remaining": len(self)},
            )
        return len(evicted)

    def reconcile(self) -> int:
        """Re-fetch every ready workspace; catches writes the change feed never saw."""
        refreshed = 0
        for workspace in self._snapshot():
            if workspace.closed or workspace.session.state != SessionState.READY:
                continue
            refreshed += workspace.refresh_syncs()
        return refreshed

    def schedule_maintenance(self, scheduler) -> None:
        """Register the sweep and reconcile jobs on the shared scheduler."""
        config = self.platform.config
        sweep_every = config.WORKSPACE_SWEEP_INTERVAL_SECONDS
        reconcile_every = config.SYNC_RECONCILE_INTERVAL_SECONDS
        if sweep_every:
            scheduler.add_job(
                func=self.sweep,
                trigger=IntervalTrigger(seconds=sweep_every),
                id=SWEEP_JOB_ID,
                name="Limpeza de workspaces expirados",
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
        if reconcile_every:
            scheduler.add_job(
                func=self.reconcile,
                trigger=IntervalTrigger(seconds=reconcile_every),
                id=RECONCILE_JOB_ID,
                name="Sincronização completa dos workspaces",
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
        logger.info(
            "Workspace maintenance scheduled (sweep %ss, reconcile %ss)", sweep_every, reconcile_every
        )

    def close_all(self) -> None:
        with self._lock:
            workspaces, self._workspaces = list(self._workspaces.values()), {}
        for workspace in workspaces:
            workspace.close()
        if workspaces:
            logger.info("Closed %d workspace(s)", len(workspaces))

    def __len__(self) -> int:
        with self._lock:
            return len(self._workspaces)
