"""
Google Sheets Integration Gateway.

All outbound HTTP calls to the Google Sheets API go through this class.
Direct `requests` calls in services or blueprints are FORBIDDEN.

  - Service-account OAuth2 (JWT bearer grant, RS256 assertion) with an
    in-memory token cache, or API-key mode for public/shared sheets
  - Retry: max 2 extra attempts, backoff 1 s → 4 s
  - Timeout: 30 s per call
  - Structured GatewayResult returned from ``request``; the high-level
    ``fetch_sales_log`` raises SheetsFetchError instead

Testability: pass a mock `session` to SheetsGateway() in tests instead of
letting it create a real requests.Session internally.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import quote

import jwt
import requests
from cryptography.hazmat.primitives import serialization
from flask import current_app

from paxportal.core.exceptions import SheetsFetchError
from paxportal.utils.crypto import decrypt_secret, looks_encrypted

logger = logging.getLogger(__name__)

SHEETS_API_BASE = "https://sheets.googleapis.com/v4/spreadsheets"
SHEETS_SCOPE = "https://www.googleapis.com/auth/spreadsheets.readonly"
DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"

# ── Retry constants ────────────────────────────────────────────────────────
_RETRY_MAX = 2
_RETRY_BACKOFF_SECONDS = [1, 4]

_DEFAULT_TIMEOUT = 30


class GatewayResult:
    """Structured return value from SheetsGateway.request.

    Attributes:
        ok:             True if the call succeeded (HTTP 2xx + no exception).
        status_code:    HTTP status code (None if network-level failure).
        data:           Parsed JSON response body, else None.
        error:          Human-readable error message or None.
        duration_ms:    Round-trip latency in milliseconds.
    """

    def __init__(
        self,
        ok: bool,
        status_code: int | None,
        data: dict | list | None,
        error: str | None,
        duration_ms: int,
    ) -> None:
        self.ok = ok
        self.status_code = status_code
        self.data = data
        self.error = error
        self.duration_ms = duration_ms


class SheetsGateway:
    """Google Sheets REST API gateway.

    Usage:
        from paxportal.integrations.sheets_gateway import sheets_gateway
        rows = sheets_gateway.fetch_sales_log()
    """

    def __init__(self, session: requests.Session | None = None, sleep=time.sleep) -> None:
        self._session: requests.Session | None = session
        self._sleep = sleep
        # client_email → {"access_token": str, "expires_at": datetime}
        self._token_cache: dict[str, dict] = {}

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
        return self._session

    # ── Credentials ───────────────────────────────────────────────────────────

    @staticmethod
    def load_service_account(raw: str | None) -> dict | None:
        """Parse GOOGLE_SERVICE_ACCOUNT_JSON (plain JSON or Fernet token)."""
        if not raw:
            return None
        raw = raw.strip()
        if looks_encrypted(raw):
            raw = decrypt_secret(raw)
        try:
            info = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise SheetsFetchError(f"GOOGLE_SERVICE_ACCOUNT_JSON is not valid JSON: {exc}") from exc
        for key in ("client_email", "private_key"):
            if not info.get(key):
                raise SheetsFetchError(f"Service account credential missing '{key}'")
        return info

    # ── OAuth2 token management ───────────────────────────────────────────────

    def _get_cached_token(self, client_email: str) -> str | None:
        entry = self._token_cache.get(client_email)
        if not entry:
            return None
        # Treat token as expired 60 s early
        if datetime.now(timezone.utc) >= entry["expires_at"] - timedelta(seconds=60):
            return None
        return entry["access_token"]

    def _build_assertion(self, info: dict) -> str:
        now = datetime.now(timezone.utc)
        private_key = serialization.load_pem_private_key(
            info["private_key"].encode("utf-8"), password=None,
        )
        claims = {
            "iss": info["client_email"],
            "scope": SHEETS_SCOPE,
            "aud": info.get("token_uri") or DEFAULT_TOKEN_URI,
            "iat": now,
            "exp": now + timedelta(hours=1),
        }
        headers = {"kid": info["private_key_id"]} if info.get("private_key_id") else None
        return jwt.encode(claims, private_key, algorithm="RS256", headers=headers)

    def get_token(self, info: dict) -> str:
        """Return a valid OAuth2 access token for the service account.

        Raises:
            requests.HTTPError: If the token endpoint returns non-2xx.
            ValueError: If the token response lacks access_token.
        """
        client_email = info["client_email"]
        cached = self._get_cached_token(client_email)
        if cached:
            return cached

        logger.info("Fetching Google OAuth2 token for %s", client_email)
        resp = self.session.post(
            info.get("token_uri") or DEFAULT_TOKEN_URI,
            data={"grant_type": JWT_BEARER_GRANT, "assertion": self._build_assertion(info)},
            timeout=_DEFAULT_TIMEOUT,
        )
        resp.raise_for_status()
        body = resp.json()

        access_token = body.get("access_token")
        if not access_token:
            raise ValueError("OAuth2 token response missing access_token")

        expires_in = int(body.get("expires_in", 3600))
        self._token_cache[client_email] = {
            "access_token": access_token,
            "expires_at": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        }
        return access_token

    def invalidate_token(self, client_email: str) -> None:
        self._token_cache.pop(client_email, None)

    # ── Core request dispatcher ───────────────────────────────────────────────

    def request(
        self,
        url: str,
        *,
        credentials: dict | None = None,
        api_key: str | None = None,
        params: dict | None = None,
        timeout: int = _DEFAULT_TIMEOUT,
    ) -> GatewayResult:
        """GET ``url`` with auth injection and retries.

        A 401 evicts the cached token and retries once immediately.
        Never raises; callers check ``.ok``.
        """
        params = dict(params or {})
        if credentials is None and api_key:
            params["key"] = api_key

        token_refreshed = False
        last_error = "Unknown error"
        last_status: int | None = None

        for attempt in range(_RETRY_MAX + 1):
            t0 = time.perf_counter()
            try:
                headers = {"Accept": "application/json"}
                if credentials is not None:
                    headers["Authorization"] = f"Bearer {self.get_token(credentials)}"

                resp = self.session.get(url, headers=headers, params=params, timeout=timeout)
                duration_ms = int((time.perf_counter() - t0) * 1000)
                last_status = resp.status_code

                if resp.status_code == 401 and credentials is not None and not token_refreshed:
                    self.invalidate_token(credentials["client_email"])
                    token_refreshed = True
                    continue

                if resp.ok:
                    try:
                        data = resp.json() if resp.content else {}
                    except ValueError:
                        data = {}
                    return GatewayResult(True, resp.status_code, data, None, duration_ms)

                last_error = f"HTTP {resp.status_code}: {resp.text[:500]}"
                logger.warning(
                    "Sheets request failed attempt=%d/%d status=%d",
                    attempt + 1, _RETRY_MAX + 1, resp.status_code,
                )
                # Client errors other than 429 will not improve on retry
                if 400 <= resp.status_code < 500 and resp.status_code != 429:
                    break

            except requests.Timeout:
                last_error = f"Request timed out after {timeout}s"
                logger.warning("Sheets request timed out attempt=%d/%d", attempt + 1, _RETRY_MAX + 1)

            except (requests.RequestException, ValueError) as exc:
                last_error = str(exc)[:500]
                logger.warning(
                    "Sheets network error attempt=%d/%d error=%s",
                    attempt + 1, _RETRY_MAX + 1, last_error,
                )

            if attempt < _RETRY_MAX:
                self._sleep(_RETRY_BACKOFF_SECONDS[min(attempt, len(_RETRY_BACKOFF_SECONDS) - 1)])

        return GatewayResult(False, last_status, None, last_error, 0)

    # ── Sales log ─────────────────────────────────────────────────────────────

    def fetch_values(self, spreadsheet_id: str, range_name: str, **auth: Any) -> GatewayResult:
        url = f"{SHEETS_API_BASE}/{spreadsheet_id}/values/{quote(range_name, safe='')}"
        return self.request(
            url,
            params={
                "valueRenderOption": "UNFORMATTED_VALUE",
                "dateTimeRenderOption": "FORMATTED_STRING",
            },
            **auth,
        )

    def fetch_sales_log(self) -> list[dict]:
        """Read the configured sales log tab as header → value dicts.

        The first row holds the headers. A sheet with fewer than two rows
        yields an empty list. Short rows are padded with None.

        Raises:
            SheetsFetchError: on missing configuration or upstream failure.
        """
        cfg = current_app.config
        spreadsheet_id = cfg.get("SHEETS_SPREADSHEET_ID")
        if not spreadsheet_id:
            raise SheetsFetchError("SHEETS_SPREADSHEET_ID is not configured")

        credentials = self.load_service_account(cfg.get("GOOGLE_SERVICE_ACCOUNT_JSON"))
        api_key = cfg.get("SHEETS_API_KEY")
        if credentials is None and not api_key:
            raise SheetsFetchError("No Google credentials configured (service account or API key)")

        range_name = cfg.get("SHEETS_RANGE", "World Cup")
        result = self.fetch_values(spreadsheet_id, range_name,
                                   credentials=credentials, api_key=api_key)
        if not result.ok:
            raise SheetsFetchError(f"Failed to read sheet '{range_name}': {result.error}")

        values = (result.data or {}).get("values") or []
        if len(values) < 2:
            logger.info("Sheet '%s' has no data rows", range_name)
            return []

        headers = [str(h).strip() for h in values[0]]
        rows = []
        for raw in values[1:]:
            rows.append({
                header: (raw[i] if i < len(raw) else None)
                for i, header in enumerate(headers)
                if header
            })
        logger.info("Fetched %d rows from sheet '%s' in %dms",
                    len(rows), range_name, result.duration_ms)
        return rows


# Module-level singleton
sheets_gateway = SheetsGateway()
