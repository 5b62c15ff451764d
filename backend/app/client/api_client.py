# Overview: HTTP client for the region access API; bearer-token auth over httpx.

from __future__ import annotations

from typing import Optional, Dict

import httpx


DEFAULT_TIMEOUT_SECONDS = 5.0


class RegionSyncError(Exception):
    """Transport failure, non-2xx response or `success: false` payload."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RegionAccessClient:
    """
    HTTP client wrapper with authentication and convenience methods.

    Timeouts are deliberately short: a slow call is a failed call and the
    reconciler simply tries again on its next tick.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.client = httpx.Client(timeout=timeout, transport=transport)

    def _headers(self, extra: Optional[Dict] = None) -> Dict:
        """Build request headers with optional auth."""
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if extra:
            headers.update(extra)
        return headers

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = self.client.request(
                method,
                f"{self.base_url}{path}",
                headers=self._headers(),
                **kwargs
            )
        except httpx.HTTPError as e:
            raise RegionSyncError(f"{method} {path} failed: {e}") from e

        if response.status_code >= 400:
            raise RegionSyncError(
                f"{method} {path} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return response

    def _json(self, response: httpx.Response) -> Dict:
        try:
            return response.json()
        except ValueError as e:
            raise RegionSyncError("Response body is not valid JSON", response.status_code) from e

    def login(self, username: str, password: str) -> Dict:
        """Authenticate and store token. Returns the login payload."""
        data = self._json(self._request("POST", "/api/auth/login", json={
            "username": username,
            "password": password
        }))
        self.token = data.get("token")
        if not self.token:
            raise RegionSyncError("Login response did not include a token")
        return data

    def logout(self) -> None:
        """Logout and clear token."""
        if not self.token:
            return
        try:
            self._request("POST", "/api/auth/logout")
        finally:
            self.token = None

    def get_effective_regions(self, user_id: int) -> frozenset[str]:
        """
        Current effective region names for a user.

        Expects {"success": true, "regions": [{"name": "Delhi"}, ...]}.
        """
        data = self._json(self._request(
            "GET",
            "/api/region-access/effective-regions",
            params={"userId": user_id},
        ))

        if not isinstance(data, dict) or not data.get("success"):
            raise RegionSyncError("Effective regions request was not successful")

        regions = data.get("regions")
        if not isinstance(regions, list):
            raise RegionSyncError("Effective regions response is missing 'regions'")

        names = set()
        for item in regions:
            name = item.get("name") if isinstance(item, dict) else None
            if not isinstance(name, str) or not name:
                raise RegionSyncError("Effective regions response has an entry without a name")
            names.add(name)
        return frozenset(names)

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "RegionAccessClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
