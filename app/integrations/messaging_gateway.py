"""
Messaging Gateway — SMS and WhatsApp delivery through the Twilio REST API.

All outbound SMS / WhatsApp calls go through this class. Direct `requests`
calls in services or blueprints are not allowed.

  - Basic auth with the account SID and auth token
  - Retry: max 2 extra attempts on network errors, 429 and 5xx (1 s → 4 s)
  - 4xx other than 429 is a permanent failure and is not retried
  - Timeout: 15 s per request
  - Not configured (no account SID) → log-only dev mode, reported as ok

Testability: pass a mock `session` (and `backoff=[0, 0]`) to
MessagingGateway() in tests instead of letting it create a real
requests.Session internally.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Mapping

import requests

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"

_RETRY_MAX = 2
_RETRY_BACKOFF_SECONDS = [1, 4]
_DEFAULT_TIMEOUT = 15


class GatewayResult:
    """Structured return value from MessagingGateway calls.

    Attributes:
        ok:             True if the message was accepted (HTTP 2xx) or dev mode.
        status_code:    HTTP status code (None if network-level failure).
        data:           Parsed JSON response body, else None.
        error:          Human-readable error message or None.
        duration_ms:    Round-trip latency of the last attempt in milliseconds.
        attempts:       Number of HTTP attempts made.
    """

    def __init__(
        self,
        ok: bool,
        status_code: int | None,
        data: dict | None,
        error: str | None,
        duration_ms: int = 0,
        attempts: int = 0,
    ) -> None:
        self.ok = ok
        self.status_code = status_code
        self.data = data
        self.error = error
        self.duration_ms = duration_ms
        self.attempts = attempts

    @property
    def sid(self) -> str | None:
        return (self.data or {}).get("sid")

    def __repr__(self) -> str:
        return f"<GatewayResult ok={self.ok} status={self.status_code} attempts={self.attempts}>"


class MessagingGateway:
    """Twilio Messages API gateway.

    Usage:
        gateway = MessagingGateway.from_config(app.config)
        result = gateway.send_sms("+33600000000", "Bonjour")
        if not result.ok:
            ...
    """

    def __init__(
        self,
        account_sid: str | None = None,
        auth_token: str | None = None,
        *,
        from_number: str | None = None,
        whatsapp_from: str | None = None,
        session: requests.Session | None = None,
        backoff: list[float] | None = None,
        timeout: int = _DEFAULT_TIMEOUT,
    ) -> None:
        self._account_sid = account_sid
        self._auth_token = auth_token
        self._from_number = from_number
        self._whatsapp_from = whatsapp_from
        self._session = session
        self._backoff = list(_RETRY_BACKOFF_SECONDS if backoff is None else backoff)
        self._timeout = timeout

    @classmethod
    def from_config(cls, config: Mapping[str, Any], **kwargs) -> "MessagingGateway":
        return cls(
            config.get("TWILIO_ACCOUNT_SID"),
            config.get("TWILIO_AUTH_TOKEN"),
            from_number=config.get("TWILIO_PHONE_NUMBER"),
            whatsapp_from=config.get("TWILIO_WHATSAPP_NUMBER"),
            **kwargs,
        )

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def is_configured(self) -> bool:
        return bool(self._account_sid and self._auth_token)

    # ── Public operations ────────────────────────────────────────────────────

    def send_sms(self, to: str, body: str) -> GatewayResult:
        return self._send(to, body, sender=self._from_number, channel="sms")

    def send_whatsapp(self, to: str, body: str) -> GatewayResult:
        to = to if to.startswith("whatsapp:") else f"whatsapp:{to}"
        sender = self._whatsapp_from
        if sender and not sender.startswith("whatsapp:"):
            sender = f"whatsapp:{sender}"
        return self._send(to, body, sender=sender, channel="whatsapp")

    # ── Core request dispatcher ──────────────────────────────────────────────

    def _send(self, to: str, body: str, *, sender: str | None, channel: str) -> GatewayResult:
        if not self.is_configured():
            logger.info("%s (dev mode): to=%s body=%r", channel.upper(), to, body[:80])
            return GatewayResult(ok=True, status_code=None, data={"dev_mode": True}, error=None)

        if not sender:
            return GatewayResult(
                ok=False, status_code=None, data=None,
                error=f"No sender number configured for {channel}",
            )

        url = f"{TWILIO_API_BASE}/Accounts/{self._account_sid}/Messages.json"
        form = {"To": to, "From": sender, "Body": body}
        return self._post_with_retry(url, form, channel=channel)

    def _post_with_retry(self, url: str, form: dict, *, channel: str) -> GatewayResult:
        last_error = "Unknown error"
        last_status: int | None = None
        duration_ms = 0

        for attempt in range(_RETRY_MAX + 1):
            retryable = True
            try:
                t0 = time.perf_counter()
                resp = self.session.post(
                    url,
                    data=form,
                    auth=(self._account_sid, self._auth_token),
                    timeout=self._timeout,
                )
                duration_ms = int((time.perf_counter() - t0) * 1000)
                last_status = resp.status_code

                if resp.ok:
                    try:
                        data = resp.json() if resp.content else {}
                    except ValueError:
                        data = {}
                    logger.info("%s sent to %s status=%d", channel.upper(), form["To"], resp.status_code)
                    return GatewayResult(
                        ok=True, status_code=resp.status_code, data=data, error=None,
                        duration_ms=duration_ms, attempts=attempt + 1,
                    )

                last_error = f"HTTP {resp.status_code}: {resp.text[:500]}"
                retryable = resp.status_code == 429 or resp.status_code >= 500
                logger.warning(
                    "%s request failed attempt=%d/%d status=%d",
                    channel.upper(), attempt + 1, _RETRY_MAX + 1, resp.status_code,
                )

            except requests.Timeout:
                last_error = f"Request timed out after {self._timeout}s"
                logger.warning("%s request timed out attempt=%d/%d",
                               channel.upper(), attempt + 1, _RETRY_MAX + 1)

            except requests.RequestException as exc:
                last_error = str(exc)[:500]
                logger.warning("%s network error attempt=%d/%d error=%s",
                               channel.upper(), attempt + 1, _RETRY_MAX + 1, last_error)

            if not retryable:
                return GatewayResult(
                    ok=False, status_code=last_status, data=None, error=last_error,
                    duration_ms=duration_ms, attempts=attempt + 1,
                )

            if attempt < _RETRY_MAX:
                sleep_s = self._backoff[min(attempt, len(self._backoff) - 1)] if self._backoff else 0
                time.sleep(sleep_s)

        return GatewayResult(
            ok=False, status_code=last_status, data=None, error=last_error,
            duration_ms=duration_ms, attempts=_RETRY_MAX + 1,
        )
