"""Live usage from the Anthropic OAuth usage endpoint.

When ``.credentials.json`` holds an unexpired access token, the server's own
utilization numbers replace the local estimate. Every failure (no token,
token about to expire, network error, bad status, bad body) resolves to
``None`` and the caller keeps its estimate.

Tokens are read from disk for the request only. They are never logged,
cached or written anywhere.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

import httpx
from pydantic import AliasChoices, BaseModel, Field, ValidationError

from burnrate.usage.event_log import parse_timestamp
from burnrate.usage.json_reader import NO_RETRY, ReadError, RetryPolicy, read_json
from burnrate.usage.models import UsageSummary, clamp_percent

logger = logging.getLogger(__name__)

CREDENTIALS_FILE = ".credentials.json"


# ── Credential payload ───────────────────────────────────────────────────────


class OAuthTokenInfo(BaseModel):
    accessToken: str | None = Field(default=None, repr=False)
    refreshToken: str | None = Field(default=None, repr=False)
    expiresAt: int = 0  # ms since epoch
    scopes: list[str] | None = None
    subscriptionType: str | None = None
    rateLimitTier: str | None = None


class CredentialsFile(BaseModel):
    claudeAiOauth: OAuthTokenInfo | None = Field(
        default=None, validation_alias=AliasChoices("claudeAiOauth", "oauthInfo"),
    )


def read_credentials(claude_dir: Path, policy: RetryPolicy = NO_RETRY) -> OAuthTokenInfo | None:
    """The OAuth section of ``.credentials.json``, or None when unusable."""
    path = claude_dir / CREDENTIALS_FILE
    result = read_json(path, policy)
    if not result.ok:
        if result.error is not ReadError.MISSING:
            # detail carries only the path and parser message, never contents
            logger.warning("Ignoring unreadable credentials (%s) at %s", result.error.value, path)
        return None
    if not isinstance(result.value, dict):
        return None
    try:
        return CredentialsFile.model_validate(result.value).claudeAiOauth
    except ValidationError:
        logger.warning("Ignoring malformed credentials at %s", path)
        return None


# ── Oracle response ──────────────────────────────────────────────────────────


class UsageWindow(BaseModel):
    model_config = {"allow_inf_nan": False}

    utilization: float
    resets_at: str | None = None


class ExtraUsageInfo(BaseModel):
    is_enabled: bool | None = None
    monthly_limit: float | None = None
    used_credits: float | None = None
    utilization: float | None = None
    currency: str | None = None


class LiveUsageResponse(BaseModel):
    five_hour: UsageWindow | None = None
    seven_day: UsageWindow | None = None
    seven_day_oauth_apps: UsageWindow | None = None
    seven_day_opus: UsageWindow | None = None
    seven_day_sonnet: UsageWindow | None = None
    extra_usage: ExtraUsageInfo | None = None


@dataclass(frozen=True)
class LiveUsage:
    """Server-computed utilization for the session and weekly windows."""

    session_percentage: float
    session_resets_at: datetime | None
    weekly_percentage: float
    weekly_resets_at: datetime | None

    @classmethod
    def from_response(cls, resp: LiveUsageResponse) -> LiveUsage | None:
        if resp.five_hour is None or resp.seven_day is None:
            return None
        return cls(
            session_percentage=clamp_percent(resp.five_hour.utilization),
            session_resets_at=parse_timestamp(resp.five_hour.resets_at),
            weekly_percentage=clamp_percent(resp.seven_day.utilization),
            weekly_resets_at=parse_timestamp(resp.seven_day.resets_at),
        )

    def apply_to(self, summary: UsageSummary) -> UsageSummary:
        """Overwrite the window fields of a locally reconciled summary."""
        summary.session_percentage = self.session_percentage
        summary.session_resets_at = self.session_resets_at
        summary.weekly_percentage = self.weekly_percentage
        summary.weekly_resets_at = self.weekly_resets_at
        summary.estimated_percentage = self.weekly_percentage
        summary.is_live = True
        return summary


# ── Client ───────────────────────────────────────────────────────────────────


class CredentialState(str, Enum):
    NO_CREDENTIAL = "no_credential"
    EXPIRED = "expired"
    VALID = "valid"


class CallOutcome(str, Enum):
    SKIPPED = "skipped"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def credential_state(info: OAuthTokenInfo | None, now_ms: int, buffer_seconds: int = 60) -> CredentialState:
    if info is None or not info.accessToken:
        return CredentialState.NO_CREDENTIAL
    if info.expiresAt - buffer_seconds * 1000 <= now_ms:
        return CredentialState.EXPIRED
    return CredentialState.VALID


class OracleUnavailable(Exception):
    """Raised inside the client when the remote call cannot produce usage."""


class LiveUsageClient:
    """Async client for the live usage endpoint.

    ``get_usage`` and ``usage_for`` never raise (except cancellation, which
    propagates so a shutdown can abandon an in-flight request).
    """

    def __init__(
        self,
        claude_dir: Path,
        *,
        url: str = "https://api.anthropic.com/api/oauth/usage",
        beta_header: str = "oauth-2025-04-20",
        timeout: float = 10.0,
        expiry_buffer_seconds: int = 60,
        policy: RetryPolicy = NO_RETRY,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._claude_dir = claude_dir
        self._url = url
        self._beta_header = beta_header
        self._timeout = timeout
        self._buffer = expiry_buffer_seconds
        self._policy = policy
        self._transport = transport
        # Diagnostics from the most recent call
        self.last_state: CredentialState | None = None
        self.last_outcome: CallOutcome | None = None
        self.last_error: str | None = None

    async def get_usage(self) -> LiveUsage | None:
        """Read credentials from disk, then fetch live usage."""
        loop = asyncio.get_running_loop()
        credentials = await loop.run_in_executor(
            None, read_credentials, self._claude_dir, self._policy,
        )
        return await self.usage_for(credentials)

    async def usage_for(self, credentials: OAuthTokenInfo | None) -> LiveUsage | None:
        """Fetch live usage for credentials the caller already read.

        Returns None when the local estimate should stand.
        """
        self.last_state = credential_state(credentials, int(time.time() * 1000), self._buffer)
        self.last_error = None
        token = credentials.accessToken if credentials else None
        if self.last_state is not CredentialState.VALID or not token:
            self.last_outcome = CallOutcome.SKIPPED
            logger.debug("Live usage skipped for %s: %s", self._claude_dir, self.last_state.value)
            return None

        try:
            usage = await self._fetch(token)
        except OracleUnavailable as e:
            self.last_outcome = CallOutcome.FAILED
            self.last_error = str(e)
            logger.info("Live usage unavailable for %s: %s", self._claude_dir, e)
            return None

        self.last_outcome = CallOutcome.SUCCEEDED
        return usage

    async def _fetch(self, access_token: str) -> LiveUsage:
        headers = {
            "Authorization": f"Bearer {access_token}",
            "anthropic-beta": self._beta_header,
            "Accept": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.get(self._url, headers=headers)
        except httpx.TimeoutException:
            raise OracleUnavailable(f"request timed out after {self._timeout}s")
        except httpx.HTTPError as e:
            raise OracleUnavailable(f"transport error: {type(e).__name__}")

        if resp.status_code >= 400:
            raise OracleUnavailable(f"HTTP {resp.status_code}")

        try:
            parsed = LiveUsageResponse.model_validate(resp.json())
        except (ValueError, ValidationError):
            raise OracleUnavailable("unparseable response body")

        usage = LiveUsage.from_response(parsed)
        if usage is None:
            raise OracleUnavailable("response is missing a usage window")
        return usage
