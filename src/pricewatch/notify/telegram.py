"""Telegram Bot API notifier with rate limiting and retry w/ backoff."""

from __future__ import annotations

import asyncio
import random

import aiohttp

from pricewatch.config import TelegramSettings
from pricewatch.exceptions import NotificationError
from pricewatch.logging import get_logger
from pricewatch.notify.base import Notifier

logger = get_logger(__name__)

API_ROOT = "https://api.telegram.org"


class RateLimiter:
    """Token bucket shared by all sends of one notifier."""

    def __init__(self, rate_per_sec: float, burst: int = 1) -> None:
        self.rate = float(rate_per_sec)
        self.capacity = int(burst)
        self.tokens = float(burst)
        self.updated: float | None = None
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        async with self._lock:
            loop = asyncio.get_running_loop()
            now = loop.time()
            if self.updated is not None:
                self.tokens = min(self.capacity, self.tokens + (now - self.updated) * self.rate)
            self.updated = now
            if self.tokens < 1.0:
                await asyncio.sleep((1.0 - self.tokens) / self.rate)
                self.updated = loop.time()
                self.tokens = 1.0
            self.tokens -= 1.0


class TelegramNotifier(Notifier):
    """Sends messages through sendMessage, at most once per call.

    Only attempts Telegram provably did not accept are retried: 429
    (after retry_after, else jittered exponential backoff) and failures to
    connect. Read timeouts, dropped connections and 5xx responses may have
    been delivered already and fail with NotificationError, as does any
    other 4xx.
    """

    def __init__(self, settings: TelegramSettings, api_root: str = API_ROOT) -> None:
        self._settings = settings
        self._url = f"{api_root}/bot{settings.bot_token.get_secret_value()}/sendMessage"
        self._session: aiohttp.ClientSession | None = None
        self._owns_session = False
        self._rl = RateLimiter(settings.rate_per_sec, burst=settings.burst)

    async def start(self, session: aiohttp.ClientSession | None = None) -> None:
        if self._session is not None:
            return
        if session is None:
            session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._settings.timeout)
            )
            self._owns_session = True
        self._session = session

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None
        self._owns_session = False

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            await self.start()
        if self._session is None:
            raise NotificationError("telegram notifier has no HTTP session")
        return self._session

    async def send(self, chat_id: int, text: str) -> None:
        session = await self._ensure_session()

        payload: dict[str, str] = {"chat_id": str(chat_id), "text": text}
        if self._settings.parse_mode:
            payload["parse_mode"] = self._settings.parse_mode

        await self._rl.acquire()
        backoff = self._settings.initial_backoff
        max_retries = self._settings.max_retries
        for attempt in range(1, max_retries + 1):
            delay = _jitter(backoff)
            try:
                async with session.post(self._url, data=payload) as resp:
                    if resp.status == 200:
                        return
                    detail = await _maybe_text(resp)
                    logger.warning(
                        "telegram_send_failed",
                        chat_id=chat_id,
                        status=resp.status,
                        body=detail,
                        attempt=attempt,
                    )
                    if resp.status != 429:
                        raise NotificationError(f"telegram rejected message: HTTP {resp.status}")
                    delay = await _retry_after(resp) or delay
            except aiohttp.ClientConnectorError as e:
                logger.warning("telegram_connect_failed", chat_id=chat_id, error=str(e), attempt=attempt)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                # The request may have reached Telegram; never resend it
                logger.error("telegram_delivery_unknown", chat_id=chat_id, error=str(e), attempt=attempt)
                raise NotificationError(f"telegram send to {chat_id} failed: {e!r}") from e

            if attempt == max_retries:
                break
            await asyncio.sleep(delay)
            backoff = min(backoff * 2.0, self._settings.max_backoff)

        logger.error("telegram_give_up_after_retries", chat_id=chat_id)
        raise NotificationError(f"telegram send to {chat_id} failed after retries")


def _jitter(base: float) -> float:
    return base * (0.8 + 0.4 * random.random())


async def _maybe_text(resp: aiohttp.ClientResponse) -> str:
    try:
        return await resp.text()
    except Exception:
        return "<no body>"


async def _retry_after(resp: aiohttp.ClientResponse) -> float | None:
    try:
        data = await resp.json(content_type=None)
    except Exception:
        return None
    value = data.get("parameters", {}).get("retry_after") if isinstance(data, dict) else None
    return float(value) if value else None
