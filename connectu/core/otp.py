import asyncio
import secrets
import string
import time
from typing import Dict, Optional, Tuple

import requests

from connectu.core.config import AppConfig
from connectu.core.errors import UpstreamError
from connectu.core.logger import get_logger

log = get_logger("connectu.otp")


class TwoFactorProvider:
    """
    SMS OTP through the 2factor.in API:
      - send(): AUTOGEN2 dispatch, returns the provider session id
      - verify(): checks an OTP against a session id
    HTTP calls run in a worker thread and are bounded by ``timeout``;
    failures surface as UpstreamError and are never retried here.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://2factor.in/API/V1",
        timeout: float = 10.0,
        country_code: str = "+91",
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.country_code = country_code

    def format_phone(self, phone: str) -> str:
        return phone if phone.startswith("+") else f"{self.country_code}{phone}"

    async def _get_json(self, url: str) -> dict:
        def _get():
            return requests.get(url, timeout=self.timeout)

        try:
            resp = await asyncio.to_thread(_get)
        except requests.Timeout:
            log.error("2factor request timed out after %ss", self.timeout)
            raise UpstreamError("SMS provider timed out")
        except requests.RequestException as e:
            log.error("2factor request failed: %s", e)
            raise UpstreamError(f"SMS provider unavailable: {e}")

        try:
            return resp.json()
        except ValueError:
            log.error("2factor returned non-JSON status=%s body=%r", resp.status_code, resp.text[:200])
            raise UpstreamError("SMS provider returned an invalid response")

    async def send(self, phone: str) -> str:
        url = f"{self.base_url}/{self.api_key}/SMS/{self.format_phone(phone)}/AUTOGEN2"
        data = await self._get_json(url)
        if data.get("Status") != "Success":
            log.error("2factor send failed data=%s", data)
            raise UpstreamError(data.get("Details") or "Failed to send OTP")
        log.info("OTP sent via 2factor")
        return data["Details"]

    async def verify(self, session_id: str, otp: str) -> bool:
        url = f"{self.base_url}/{self.api_key}/SMS/VERIFY/{session_id}/{otp}"
        data = await self._get_json(url)
        return data.get("Status") == "Success" and data.get("Details") == "OTP Matched"


class DryRunOtpProvider:
    """
    Local stand-in when no SMS API key is configured.
    Codes are logged instead of texted; sessions live in memory.
    """

    def __init__(self, ttl_seconds: int = 600):
        self.ttl_seconds = ttl_seconds
        self.sessions: Dict[str, Tuple[str, str, float]] = {}

    @staticmethod
    def generate_code(n: int = 6) -> str:
        return "".join(secrets.choice(string.digits) for _ in range(n))

    def code_for(self, session_id: str) -> Optional[str]:
        entry = self.sessions.get(session_id)
        return entry[1] if entry else None

    async def send(self, phone: str) -> str:
        session_id = f"dev-{secrets.token_hex(8)}"
        code = self.generate_code()
        self.sessions[session_id] = (phone, code, time.time() + self.ttl_seconds)
        log.info("[DRY_RUN OTP] phone=%s session=%s code=%s", phone, session_id, code)
        return session_id

    async def verify(self, session_id: str, otp: str) -> bool:
        entry = self.sessions.get(session_id)
        if entry is None:
            return False
        _, code, expires_at = entry
        if time.time() > expires_at:
            self.sessions.pop(session_id, None)
            return False
        if not secrets.compare_digest(code, str(otp)):
            return False
        self.sessions.pop(session_id, None)
        return True


def build_provider(cfg: AppConfig):
    if cfg.twofactor_api_key:
        log.info("OTP provider: 2factor")
        return TwoFactorProvider(
            cfg.twofactor_api_key,
            base_url=cfg.twofactor_base_url,
            timeout=cfg.sms_timeout_seconds,
            country_code=cfg.default_country_code,
        )
    log.warning("OTP provider: DRY-RUN (TWOFACTOR_API_KEY not configured)")
    return DryRunOtpProvider()
