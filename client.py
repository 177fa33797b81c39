"""Python client for the DevConnector API.

Each ``ApiClient`` carries its own token and sends it on every request it
makes. Nothing is set on a shared or global HTTP client, so two instances over
the same ``httpx.Client`` act as two independent sessions::

    with httpx.Client(base_url="http://localhost:8000") as http:
        alice = ApiClient(http)
        alice.login("alice@example.com", "secret1")
        alice.create_post("hello")
"""
from __future__ import annotations

from typing import Any, Optional

import httpx
import structlog

logger = structlog.get_logger(__name__)


class ApiClientError(Exception):
    """Raised for any non-2xx response."""

    def __init__(self, status_code: int, body: Any) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"API request failed with status {status_code}: {body}")


class ApiClient:
    def __init__(
        self,
        http: httpx.Client,
        token: Optional[str] = None,
        header_name: str = "x-auth-token",
    ) -> None:
        self.http = http
        self.token = token
        self.header_name = header_name

    @property
    def is_authenticated(self) -> bool:
        return self.token is not None

    def _request(self, method: str, url: str, **kwargs) -> Any:
        headers = dict(kwargs.pop("headers", None) or {})
        if self.token:
            headers[self.header_name] = self.token
        resp = self.http.request(method, url, headers=headers, **kwargs)
        if not resp.is_success:
            try:
                body = resp.json()
            except ValueError:
                body = resp.text
            logger.warning("API request failed", method=method, url=url, status_code=resp.status_code)
            raise ApiClientError(resp.status_code, body)
        return resp.json()

    # --- Auth ---
    def register(self, name: str, email: str, password: str) -> str:
        data = self._request(
            "POST", "/api/users", json={"name": name, "email": email, "password": password}
        )
        self.token = data["token"]
        return self.token

    def login(self, email: str, password: str) -> str:
        data = self._request("POST", "/api/auth", json={"email": email, "password": password})
        self.token = data["token"]
        return self.token

    def logout(self) -> None:
        # Tokens are stateless, forgetting it is all there is to do
        self.token = None

    def load_user(self) -> dict:
        return self._request("GET", "/api/auth")

    # --- Profiles ---
    def get_own_profile(self) -> dict:
        return self._request("GET", "/api/profile/me")

    def save_profile(self, **fields: Any) -> dict:
        return self._request("POST", "/api/profile", json=fields)

    def list_profiles(self) -> list:
        return self._request("GET", "/api/profile")

    def get_profile_by_user(self, user_id: Any) -> dict:
        return self._request("GET", f"/api/profile/user/{user_id}")

    def delete_account(self) -> dict:
        data = self._request("DELETE", "/api/profile")
        self.token = None
        return data

    def add_experience(self, **entry: Any) -> dict:
        return self._request("PUT", "/api/profile/experience", json=entry)

    def remove_experience(self, exp_id: Any) -> dict:
        return self._request("DELETE", f"/api/profile/experience/{exp_id}")

    def add_education(self, **entry: Any) -> dict:
        return self._request("PUT", "/api/profile/education", json=entry)

    def remove_education(self, edu_id: Any) -> dict:
        return self._request("DELETE", f"/api/profile/education/{edu_id}")

    def github_repos(self, username: str) -> list:
        return self._request("GET", f"/api/profile/github/{username}")

    # --- Posts ---
    def create_post(self, text: str) -> dict:
        return self._request("POST", "/api/posts", json={"text": text})

    def list_posts(self) -> list:
        return self._request("GET", "/api/posts")

    def get_post(self, post_id: Any) -> dict:
        return self._request("GET", f"/api/posts/{post_id}")

    def delete_post(self, post_id: Any) -> dict:
        return self._request("DELETE", f"/api/posts/{post_id}")

    def like(self, post_id: Any) -> list:
        return self._request("PUT", f"/api/posts/like/{post_id}")

    def unlike(self, post_id: Any) -> list:
        return self._request("PUT", f"/api/posts/unlike/{post_id}")

    def add_comment(self, post_id: Any, text: str) -> list:
        return self._request("POST", f"/api/posts/comment/{post_id}", json={"text": text})

    def remove_comment(self, post_id: Any, comment_id: Any) -> list:
        return self._request("DELETE", f"/api/posts/comment/{post_id}/{comment_id}")
