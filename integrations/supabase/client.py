import logging
import time
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from urllib.parse import quote, urlencode

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)

Params = Sequence[Tuple[str, str]]


class SupabaseAPIError(RuntimeError):
    """Non-2xx answer from one of the platform endpoints."""

    def __init__(self, status: int, message: str, code: Optional[str] = None, details: Any = None) -> None:
        super().__init__(message)
        self.status = status
        self.code = code
        self.message = message
        self.details = details

    def __str__(self) -> str:
        prefix = f"HTTP {self.status}"
        if self.code:
            prefix += f" [{self.code}]"
        return f"{prefix}: {self.message}"


def extract_error(response: requests.Response) -> SupabaseAPIError:
    """Build a :class:`SupabaseAPIError` from a failed response body."""
    code = None
    details = None
    message = None
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        if isinstance(body.get("error"), dict):
            message = body["error"].get("message")
        code = body.get("code") or body.get("error_code")
        if code is not None:
            code = str(code)
        details = body.get("details") or body.get("hint")
        message = (
            message
            or body.get("message")
            or body.get("msg")
            or body.get("error_description")
            or body.get("error")
        )
    if not message:
        text = (response.text or "").strip()
        message = text[:300] if text else "request failed"
    return SupabaseAPIError(response.status_code, str(message), code=code, details=details)


class SupabaseClient:
    """HTTP client for a hosted Supabase project (rows, auth and storage)."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        access_token: Optional[str] = None,
        timeout: int = 15,
    ) -> None:
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"apikey": api_key})
        retry = Retry(
            total=3,
            backoff_factor=0.5,
            status_forcelist=[502, 503, 504],
            allowed_methods=frozenset({"GET", "HEAD"}),
        )
        adapter = HTTPAdapter(pool_connections=10, pool_maxsize=20, max_retries=retry)
        self.session.mount('https://', adapter)
        self.session.mount('http://', adapter)
        self.access_token: Optional[str] = None
        self.set_access_token(access_token)

    # ------------------------------------------------------------------
    # internal helpers
    def set_access_token(self, token: Optional[str]) -> None:
        self.access_token = token
        self.session.headers["Authorization"] = f"Bearer {token or self.api_key}"

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}/{path.lstrip('/')}"
        start = time.time()
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            logger.error("supabase_request_failed", extra={"endpoint": path, "error": str(exc)})
            raise SupabaseAPIError(0, f"network error: {exc}") from exc
        latency = time.time() - start
        logger.info(
            "supabase_request",
            extra={
                "method": method,
                "endpoint": path.split('?', 1)[0],
                "status": resp.status_code,
                "latency": latency,
            },
        )
        if resp.status_code >= 300:
            raise extract_error(resp)
        return resp

    @staticmethod
    def _json(resp: requests.Response) -> Any:
        if not resp.content:
            return None
        return resp.json()

    # ------------------------------------------------------------------
    # rows (PostgREST)
    def select(self, table: str, params: Params) -> List[Dict]:
        resp = self._request("GET", f"/rest/v1/{table}", params=list(params))
        data = self._json(resp)
        return data or []

    def insert(self, table: str, rows: Dict | List[Dict]) -> List[Dict]:
        resp = self._request(
            "POST",
            f"/rest/v1/{table}",
            json=rows,
            headers={"Prefer": "return=representation"},
        )
        return self._json(resp) or []

    def update(self, table: str, values: Dict, params: Params) -> List[Dict]:
        resp = self._request(
            "PATCH",
            f"/rest/v1/{table}",
            params=list(params),
            json=values,
            headers={"Prefer": "return=representation"},
        )
        return self._json(resp) or []

    def delete(self, table: str, params: Params) -> List[Dict]:
        resp = self._request(
            "DELETE",
            f"/rest/v1/{table}",
            params=list(params),
            headers={"Prefer": "return=representation"},
        )
        return self._json(resp) or []

    # ------------------------------------------------------------------
    # auth (GoTrue)
    def sign_in_with_password(self, email: str, password: str) -> Dict:
        resp = self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email.strip(), "password": password},
        )
        return self._json(resp) or {}

    def refresh_session(self, refresh_token: str) -> Dict:
        resp = self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
        )
        return self._json(resp) or {}

    def sign_up(self, email: str, password: str, data: Optional[Dict] = None) -> Dict:
        payload: Dict[str, Any] = {"email": email.strip(), "password": password}
        if data:
            payload["data"] = data
        resp = self._request("POST", "/auth/v1/signup", json=payload)
        return self._json(resp) or {}

    def get_user(self) -> Optional[Dict]:
        if not self.access_token:
            return None
        resp = self._request("GET", "/auth/v1/user")
        return self._json(resp)

    def sign_out(self) -> None:
        if not self.access_token:
            return
        self._request("POST", "/auth/v1/logout")

    def recover(self, email: str, redirect_to: Optional[str] = None) -> None:
        params = {"redirect_to": redirect_to} if redirect_to else None
        self._request("POST", "/auth/v1/recover", params=params, json={"email": email.strip()})

    def authorize_url(self, provider: str, redirect_to: Optional[str] = None) -> str:
        query = {"provider": provider}
        if redirect_to:
            query["redirect_to"] = redirect_to
        return f"{self.base_url}/auth/v1/authorize?{urlencode(query)}"

    # ------------------------------------------------------------------
    # storage
    def upload_object(
        self,
        bucket: str,
        path: str,
        content: bytes,
        content_type: str,
        *,
        cache_control: str = "3600",
        upsert: bool = False,
    ) -> Dict:
        resp = self._request(
            "POST",
            f"/storage/v1/object/{bucket}/{quote(path)}",
            data=content,
            headers={
                "Content-Type": content_type,
                "Cache-Control": f"max-age={cache_control}",
                "x-upsert": "true" if upsert else "false",
            },
        )
        return self._json(resp) or {}

    def public_object_url(self, bucket: str, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{bucket}/{quote(path)}"


def encode_in(values: Iterable[Any]) -> str:
    """Render values for a PostgREST ``in.(...)`` filter."""
    rendered = []
    for value in values:
        text = str(value)
        if any(ch in text for ch in ',()"'):
            text = '"' + text.replace('"', '\\"') + '"'
        rendered.append(text)
    return f"in.({','.join(rendered)})"
