"""
Session/profile orchestrator.

Estados:
    UNAUTHENTICATED -> CHECKING -> ONBOARDING | READY

Regras:
    - o perfil é lido com timeout rígido; falha ou timeout levam ao
      onboarding em vez de bloquear;
    - SIGNED_IN só recarrega o perfil quando nenhum está em cache;
    - SIGNED_OUT derruba o estado do utilizador e para o motor de prazos;
    - o onboarding tolera a chave duplicada (perfil já existente) e corrige o
      cargo gravado quando difere do escolhido;
    - uma válvula de segurança encerra qualquer carregamento após
      ``loading_timeout`` segundos.
"""

import logging
import threading
import time
from concurrent.futures import TimeoutError as FutureTimeoutError
from enum import Enum
from typing import Callable, List, Optional

from bizdesk.constants import DEFAULT_AVATAR, UserRole
from bizdesk.extensions.task_queue import submit_io_task
from bizdesk.models.entities import Profile
from bizdesk.services.gateway import RemoteGateway
from bizdesk.services.store import (
    SIGNED_IN,
    SIGNED_OUT,
    AuthBackend,
    AuthError,
    DuplicateKeyError,
    ProfileLoadTimeout,
    StoreError,
    ValidationError,
)

logger = logging.getLogger(__name__)

IDENTITY_UNAVAILABLE = (
    "Não foi possível obter o usuário autenticado. Por favor, faça login novamente."
)


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    CHECKING = "checking"
    ONBOARDING = "onboarding"
    READY = "ready"


class SessionOrchestrator:
    def __init__(
        self,
        auth: AuthBackend,
        gateway: RemoteGateway,
        engine,
        *,
        profile_timeout: float = 5.0,
        loading_timeout: float = 20.0,
        auth_retries: int = 3,
        retry_delay: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        on_ready: Optional[Callable[[Profile], None]] = None,
        on_reset: Optional[Callable[[], None]] = None,
    ) -> None:
        self.auth = auth
        self.gateway = gateway
        self.engine = engine
        self.profile_timeout = profile_timeout
        self.loading_timeout = loading_timeout
        self.auth_retries = max(1, auth_retries)
        self.retry_delay = retry_delay
        self.sleep = sleep
        self.on_ready = on_ready
        self.on_reset = on_reset

        self.state = SessionState.UNAUTHENTICATED
        self.user_id: Optional[str] = None
        self.profile: Optional[Profile] = None
        self.loading = False
        self.error: Optional[str] = None

        self._lock = threading.RLock()
        self._listeners: List[Callable[[SessionState], None]] = []
        self._safety_timer: Optional[threading.Timer] = None
        self._closed = False
        self._unsubscribe_auth = auth.on_auth_state_change(self._on_auth_event)

    # ------------------------------------------------------------------
    # observers
    def add_listener(self, callback: Callable[[SessionState], None]) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(callback)

        def remove() -> None:
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return remove

    def _set_state(self, state: SessionState) -> None:
        with self._lock:
            if state == self.state:
                return
            previous, self.state = self.state, state
            listeners = list(self._listeners)
        logger.info("Session state %s -> %s", previous.value, state.value, extra={"user_id": self.user_id})
        for listener in listeners:
            try:
                listener(state)
            except Exception:  # pylint: disable=broad-except
                logger.exception("Session listener failed")

    # ------------------------------------------------------------------
    # loading / safety valve
    def _begin_loading(self) -> None:
        with self._lock:
            self.loading = True
            if self._safety_timer is None and self.loading_timeout:
                timer = threading.Timer(self.loading_timeout, self._force_exit_loading)
                timer.daemon = True
                self._safety_timer = timer
                timer.start()

    def _end_loading(self) -> None:
        with self._lock:
            self.loading = False
            timer, self._safety_timer = self._safety_timer, None
        if timer is not None:
            timer.cancel()

    def _force_exit_loading(self) -> None:
        with self._lock:
            self._safety_timer = None
            if not self.loading:
                return
            self.loading = False
            self.error = "loading timed out"
        logger.warning("Loading took longer than %ss, forcing recovery", self.loading_timeout)

    # ------------------------------------------------------------------
    # transitions
    def bootstrap(self) -> SessionState:
        """Read the current session and route to the matching state."""
        self._set_state(SessionState.CHECKING)
        try:
            session = self.auth.get_session()
        except AuthError as exc:
            logger.error("Session check failed: %s", exc)
            session = None
        if session is None:
            self.reset_state()
            return self.state
        return self.load_profile(session.user.id)

    def _fetch_profile(self, user_id: str) -> Optional[Profile]:
        future = submit_io_task(self.gateway.get_profile, user_id)
        try:
            return future.result(timeout=self.profile_timeout)
        except FutureTimeoutError:
            future.cancel()
            raise ProfileLoadTimeout(f"profile load timed out after {self.profile_timeout}s") from None

    def load_profile(self, user_id: str) -> SessionState:
        with self._lock:
            self.user_id = user_id
        self._begin_loading()
        self._set_state(SessionState.CHECKING)
        try:
            profile = self._fetch_profile(user_id)
        except (StoreError, ProfileLoadTimeout) as exc:
            logger.error("Profile load failed for %s: %s", user_id, exc)
            with self._lock:
                self.error = str(exc)
            self._set_state(SessionState.ONBOARDING)
            return self.state
        finally:
            self._end_loading()

        if profile is None:
            logger.info("Profile missing for %s, onboarding required", user_id)
            with self._lock:
                self.profile = None
            self._set_state(SessionState.ONBOARDING)
            return self.state

        self._become_ready(profile)
        return self.state

    def _become_ready(self, profile: Profile) -> None:
        with self._lock:
            self.profile = profile
            self.user_id = profile.id
            self.error = None
        self._set_state(SessionState.READY)
        self.engine.start()
        if self.on_ready is not None:
            self.on_ready(profile)

    def _on_auth_event(self, event: str, session) -> None:
        if self._closed:
            return
        logger.debug("Auth event %s", event)
        if event == SIGNED_IN and session is not None:
            if self.profile is None:
                self.load_profile(session.user.id)
        elif event == SIGNED_OUT:
            self.reset_state()

    def reset_state(self) -> None:
        """Drop every per-user piece of state and stop background work."""
        self.engine.stop()
        with self._lock:
            self.profile = None
            self.user_id = None
        self._end_loading()
        self._set_state(SessionState.UNAUTHENTICATED)
        if self.on_reset is not None:
            self.on_reset()

    def require_profile(self) -> Profile:
        profile = self.profile
        if profile is None:
            raise AuthError("profile not loaded", status=401)
        return profile

    # ------------------------------------------------------------------
    # user actions
    def complete_onboarding(self, name: str, role: str, avatar: Optional[str] = None) -> Profile:
        """Create (or recover) the profile row and enter the ready state."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("name is required")
        try:
            role = UserRole(role).value
        except ValueError:
            raise ValidationError(f"invalid role {role!r}") from None
        avatar = avatar or DEFAULT_AVATAR

        self._begin_loading()
        try:
            user = None
            for attempt in range(1, self.auth_retries + 1):
                try:
                    user = self.auth.get_user()
                except AuthError as exc:
                    logger.warning("Identity lookup failed: %s", exc)
                if user is not None:
                    break
                logger.info("Attempt %s: no auth user yet, waiting", attempt)
                if attempt < self.auth_retries:
                    self.sleep(self.retry_delay)
            if user is None:
                raise AuthError(IDENTITY_UNAVAILABLE, status=401)

            try:
                self.gateway.create_profile(
                    Profile(id=user.id, email=user.email, name=name, role=role, avatar=avatar)
                )
            except DuplicateKeyError:
                logger.warning("Profile for %s already exists, loading it", user.id)

            profile = self.gateway.get_profile(user.id)
            if profile is None:
                raise StoreError("Profile verification failed after insert/check", status=404)

            if not profile.role or profile.role != role:
                profile = self.gateway.update_profile(
                    user.id, {"role": role, "name": name, "avatar": avatar}
                )
        finally:
            self._end_loading()

        self._become_ready(profile)
        return profile

    def update_profile(self, changes) -> Profile:
        current = self.require_profile()
        profile = self.gateway.update_profile(current.id, changes)
        with self._lock:
            self.profile = profile
        return profile

    def sign_out(self) -> None:
        with self._lock:
            self.loading = True
        try:
            self.auth.sign_out()
        finally:
            if self.state != SessionState.UNAUTHENTICATED:
                self.reset_state()
            self._end_loading()

    def reset(self) -> None:
        """Escape hatch: forget the local session and return to the sign-in state."""
        logger.warning("Manual session reset", extra={"user_id": self.user_id})
        self.auth.forget_session()
        self.reset_state()

    def close(self) -> None:
        self._closed = True
        self._unsubscribe_auth()
        self._end_loading()

    def to_dict(self) -> dict:
        with self._lock:
            return {
                "state": self.state.value,
                "loading": self.loading,
                "error": self.error,
                "userId": self.user_id,
                "profile": self.profile.to_dict() if self.profile else None,
            }
