"""Hosted auth admin API — account listing, creation and removal."""
import logging
import httpx
from dashboard.config import get_settings

logger = logging.getLogger(__name__)


class AuthAdminError(Exception):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class AuthAdminClient:
    def __init__(self, base_url: str, service_key: str, transport: httpx.AsyncBaseTransport | None = None,
                 timeout: float = 30):
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.transport = transport
        self.timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=f"{self.base_url}/auth/v1/admin",
            headers={
                "apikey": self.service_key,
                "Authorization": f"Bearer {self.service_key}",
            },
            timeout=self.timeout,
            transport=self.transport,
        )

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        try:
            async with self._client() as client:
                resp = await client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise AuthAdminError(f"Auth admin API unreachable: {e}") from e

        if resp.status_code >= 400:
            try:
                body = resp.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                detail = body.get("msg") or body.get("message") or resp.text
            else:
                detail = resp.text
            raise AuthAdminError(f"Auth admin API error {resp.status_code}: {detail}", resp.status_code)
        return resp.json() if resp.content else {}

    async def list_users(self, per_page: int = 1000) -> list[dict]:
        users: list[dict] = []
        page = 1
        while True:
            data = await self._request("GET", "/users", params={"page": page, "per_page": per_page})
            batch = data.get("users", [])
            users.extend(batch)
            if len(batch) < per_page:
                return users
            page += 1

    async def create_user(self, email: str, password: str, metadata: dict | None = None) -> dict:
        data = await self._request("POST", "/users", json={
            "email": email,
            "password": password,
            "email_confirm": True,
            "user_metadata": metadata or {},
        })
        logger.info(f"Auth user created: {email}")
        return data.get("user", data)

    async def delete_user(self, user_id: str):
        await self._request("DELETE", f"/users/{user_id}")
        logger.info(f"Auth user deleted: {user_id}")


def display_name(auth_user: dict) -> str:
    """Profile name for an auth account: metadata name, else the email's local part."""
    meta = auth_user.get("user_metadata") or {}
    name = meta.get("full_name") or meta.get("name")
    if name:
        return name
    email = auth_user.get("email") or ""
    return email.split("@")[0] or "User"


def get_auth_admin() -> AuthAdminClient | None:
    settings = get_settings()
    if not settings.auth_admin_enabled:
        return None
    return AuthAdminClient(settings.supabase_url, settings.supabase_service_role_key)
