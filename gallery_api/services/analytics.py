"""
Google Analytics Data API client.

Authenticates with a service account: a JWT assertion signed with the
account's private key is exchanged for an OAuth access token, then three
runReport calls build the dashboard summary.
"""
import json
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
from jose import JWTError, jwt

from gallery_api.config import Settings, get_settings
from gallery_api.utils.logger import log_error
from gallery_api.utils.prometheus_metrics import record_external_request

TOKEN_URI = "https://oauth2.googleapis.com/token"
DATA_API_URL = "https://analyticsdata.googleapis.com/v1beta"
SCOPE = "https://www.googleapis.com/auth/analytics.readonly"
SERVICE_NAME = "google_analytics"

# Seconds before expiry at which a cached token is renewed
TOKEN_LEEWAY = 60


class AnalyticsNotConfiguredError(Exception):
    """No property id or service account credentials were configured."""


def _report(start_date: str, dimensions: List[str], metrics: List[str], order_by_views: bool = False) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "dateRanges": [{"startDate": start_date, "endDate": "today"}],
        "dimensions": [{"name": name} for name in dimensions],
        "metrics": [{"name": name} for name in metrics],
    }
    if order_by_views:
        body["orderBys"] = [{"metric": {"metricName": "screenPageViews"}, "desc": True}]
    return body


REPORTS = {
    "basic": _report("7daysAgo", [], ["screenPageViews", "totalUsers", "newUsers", "engagementRate"]),
    "popular": _report("30daysAgo", ["pagePath", "pageTitle"], ["screenPageViews"], order_by_views=True),
    "trending": _report("1daysAgo", ["pagePath", "pageTitle"], ["screenPageViews"], order_by_views=True),
}


def parse_basic(response: Dict[str, Any]) -> Dict[str, Optional[str]]:
    """First row of the basic report as named totals."""
    keys = ("page_views", "total_visitors", "new_visitors", "engagement_rate")
    rows = response.get("rows") or []
    if not rows:
        return {}
    values = [metric.get("value") for metric in rows[0].get("metricValues") or []]
    return {key: (values[idx] if idx < len(values) else None) for idx, key in enumerate(keys)}


def parse_pages(response: Dict[str, Any]) -> List[Dict[str, Any]]:
    """
    Rows of a page report as {path, title, views}.

    Trailing slashes are dropped from paths (except for "/"); rows sharing a
    path after normalisation keep the last one.
    """
    pages: Dict[str, Dict[str, Any]] = {}
    for row in response.get("rows") or []:
        dimensions = [d.get("value", "") for d in row.get("dimensionValues") or []]
        metrics = [m.get("value") for m in row.get("metricValues") or []]
        if not dimensions or not metrics:
            continue
        path = dimensions[0]
        if path != "/":
            path = path.rstrip("/")
        pages[path] = {
            "path": path,
            "title": dimensions[1] if len(dimensions) > 1 else None,
            "views": metrics[0],
        }
    return list(pages.values())


class AnalyticsClient:
    """Thin async client over the Data API REST endpoints."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self._transport = transport
        self._credentials: Optional[Dict[str, Any]] = None
        self._access_token: Optional[str] = None
        self._token_expires_at = 0.0

    @property
    def configured(self) -> bool:
        return bool(self.settings.analytics_property_id and self.settings.analytics_credentials_file)

    def _load_credentials(self) -> Dict[str, Any]:
        if self._credentials is None:
            path = Path(self.settings.analytics_credentials_file)
            self._credentials = json.loads(path.read_text(encoding="utf-8"))
        return self._credentials

    def _assertion(self) -> str:
        credentials = self._load_credentials()
        now = int(time.time())
        claims = {
            "iss": credentials["client_email"],
            "scope": SCOPE,
            "aud": credentials.get("token_uri", TOKEN_URI),
            "iat": now,
            "exp": now + 3600,
        }
        headers = {"kid": credentials["private_key_id"]} if credentials.get("private_key_id") else None
        return jwt.encode(claims, credentials["private_key"], algorithm="RS256", headers=headers)

    async def _token(self, client: httpx.AsyncClient) -> str:
        if self._access_token and time.time() < self._token_expires_at - TOKEN_LEEWAY:
            return self._access_token

        credentials = self._load_credentials()
        async with record_external_request(SERVICE_NAME):
            response = await client.post(
                credentials.get("token_uri", TOKEN_URI),
                data={
                    "grant_type": "urn:ietf:params:oauth:grant-type:jwt-bearer",
                    "assertion": self._assertion(),
                },
            )
            response.raise_for_status()
        payload = response.json()
        self._access_token = payload["access_token"]
        self._token_expires_at = time.time() + int(payload.get("expires_in", 3600))
        return self._access_token

    async def run_report(self, client: httpx.AsyncClient, body: Dict[str, Any]) -> Dict[str, Any]:
        token = await self._token(client)
        url = f"{DATA_API_URL}/properties/{self.settings.analytics_property_id}:runReport"
        async with record_external_request(SERVICE_NAME):
            response = await client.post(url, json=body, headers={"Authorization": f"Bearer {token}"})
            response.raise_for_status()
        return response.json()

    async def summary(self) -> Dict[str, Any]:
        """
        basic, popular and trending sections.
        A failing report is logged and yields an empty section.

        Raises:
            AnalyticsNotConfiguredError: analytics settings are missing
        """
        if not self.configured:
            raise AnalyticsNotConfiguredError()

        result: Dict[str, Any] = {}
        async with httpx.AsyncClient(transport=self._transport, timeout=10.0) as client:
            for alias, body in REPORTS.items():
                try:
                    response = await self.run_report(client, body)
                except (httpx.HTTPError, JWTError, KeyError, ValueError, OSError) as e:
                    log_error(
                        f"Analytics report '{alias}' failed",
                        event="analytics",
                        error_type=type(e).__name__,
                        error=str(e)[:200],
                    )
                    response = {}
                result[alias] = parse_basic(response) if alias == "basic" else parse_pages(response)
        return result
