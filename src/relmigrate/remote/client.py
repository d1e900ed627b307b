from typing import Any, Dict, Optional

import requests


class ServiceClient:
    """Thin session wrapper around the record service's REST API."""

    def __init__(self, base_url: str, token: Optional[str] = None,
                 timeout: float = 120.0,
                 session: Optional[requests.Session] = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Content-Type": "application/json",
                "Accept": "application/json",
                "User-Agent": "relmigrate",
            }
        )
        if token:
            self._session.headers.update({"Authorization": f"Bearer {token.strip()}"})

    def _url(self, endpoint: str) -> str:
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> requests.Response:
        """Perform a GET request to the given API endpoint."""
        response = self._session.get(self._url(endpoint), params=params, timeout=self.timeout)
        response.raise_for_status()
        return response

    def send(self, method: str, endpoint: str,
             json_data: Optional[Dict[str, Any]] = None) -> requests.Response:
        response = self._session.request(method, self._url(endpoint),
                                         json=json_data or {}, timeout=self.timeout)
        response.raise_for_status()
        return response

    def close(self) -> None:
        self._session.close()
