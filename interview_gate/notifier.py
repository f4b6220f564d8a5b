from __future__ import annotations

import logging

import requests

from interview_gate.utils.errors import UpstreamUnavailableError

log = logging.getLogger(__name__)


def mask_email(email: str) -> str:
    local, _, domain = str(email or "").partition("@")
    if not domain:
        return "***"
    head = local[:1] if local else ""
    return f"{head}***@{domain}"


class OtpNotifier:
    """Delivers one-time codes to candidates."""

    def send_otp(self, *, email: str, code: str, interview_id: str, expires_in_seconds: int) -> None:
        raise NotImplementedError


class LogOtpNotifier(OtpNotifier):
    """Development delivery: the code is only visible with DEBUG logging."""

    def send_otp(self, *, email: str, code: str, interview_id: str, expires_in_seconds: int) -> None:
        log.info("otp.issued email=%s interview_id=%s ttl=%s", mask_email(email), interview_id, expires_in_seconds)
        log.debug("otp.code email=%s code=%s", email, code)


class WebhookOtpNotifier(OtpNotifier):
    """Posts the code to a mail/SMS relay that owns templating and delivery."""

    def __init__(self, url: str, *, api_key: str = "", timeout_seconds: int = 10):
        self._url = url
        self._api_key = api_key
        self._timeout = timeout_seconds

    def send_otp(self, *, email: str, code: str, interview_id: str, expires_in_seconds: int) -> None:
        payload = {
            "type": "interview_otp",
            "email": email,
            "otp": code,
            "interviewId": interview_id,
            "expiresInMinutes": max(1, expires_in_seconds // 60),
        }
        headers: dict[str, str] = {}
        if self._api_key:
            headers["X-Api-Key"] = self._api_key

        try:
            resp = requests.post(self._url, json=payload, headers=headers, timeout=self._timeout)
        except requests.RequestException as e:
            raise UpstreamUnavailableError("otp_notifier", f"Failed to call OTP webhook: {e}") from e

        if resp.status_code >= 400:
            snippet = str(resp.text or "").strip()[:300]
            raise UpstreamUnavailableError(
                "otp_notifier", f"OTP webhook failed (HTTP {resp.status_code}): {snippet or 'no response body'}"
            )
        log.info("otp.delivered email=%s interview_id=%s", mask_email(email), interview_id)


def build_otp_notifier(cfg) -> OtpNotifier:
    if cfg.OTP_WEBHOOK_URL:
        return WebhookOtpNotifier(
            cfg.OTP_WEBHOOK_URL,
            api_key=cfg.OTP_WEBHOOK_API_KEY,
            timeout_seconds=cfg.OTP_WEBHOOK_TIMEOUT_SECONDS,
        )
    return LogOtpNotifier()
