"""
Platform API client - registers and removes webhooks
"""
from typing import Any, Dict, Iterable, Optional

import requests

from .errors import ApiError
from .output import Output

DEFAULT_API_URL = 'https://api.vercel.com'


class PlatformClient:
    """Minimal REST client for the webhook endpoints."""

    def __init__(
        self,
        token: str,
        api_url: str = DEFAULT_API_URL,
        team_id: Optional[str] = None,
        output: Optional[Output] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
    ):
        self.api_url = api_url.rstrip('/')
        self.team_id = team_id
        self.output = output or Output()
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({'Authorization': f"Bearer {token}"})

    def request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
        """Send an API request and return the decoded JSON body (or None)."""
        params = {'teamId': self.team_id} if self.team_id else None
        url = f"{self.api_url}{path}"

        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=json,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ApiError(f"{method} {path} failed: {e}") from e

        if not response.ok:
            raise ApiError(
                f"{method} {path} failed ({response.status_code}): {self._error_message(response)}",
                status_code=response.status_code,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ApiError(f"{method} {path} returned invalid JSON", response.status_code) from e

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or response.reason or ''

        error = body.get('error') if isinstance(body, dict) else None
        if isinstance(error, dict) and error.get('message'):
            return error['message']
        return response.text

    def create_webhook(self, url: str, events: Iterable[str]) -> Dict[str, Any]:
        """Register `url` for `events` and return the created webhook."""
        webhook = self.request('POST', '/v1/webhooks', json={'url': url, 'events': list(events)})
        if not isinstance(webhook, dict) or 'id' not in webhook:
            raise ApiError("Webhook creation returned no id")

        self.output.debug(f"Webhook created (webhook.id = {webhook['id']})")
        return webhook

    def delete_webhook(self, webhook_id: str) -> None:
        self.request('DELETE', f"/v1/webhooks/{webhook_id}")
        self.output.debug(f"Webhook deleted (webhook.id = {webhook_id})")

    def get_scope(self) -> str:
        """Name of the team or user the webhooks are registered on."""
        if self.team_id:
            team = self.request('GET', f"/v2/teams/{self.team_id}") or {}
            return team.get('slug') or team.get('name') or self.team_id

        body = self.request('GET', '/v2/user') or {}
        user = body.get('user', body)
        return user.get('username') or user.get('email') or 'personal account'
