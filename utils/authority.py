"""
Client for the remote Outcome Authority (the casino backend).

The authority owns balance, bet validation and the win/lose decision. This
client only relays requests, keeps the session cookie alive between calls and
validates the shape of what comes back.
"""
import asyncio
import json
import logging
import math
from dataclasses import dataclass
from http.cookies import SimpleCookie
from typing import Any, Dict, Optional

import aiohttp

from utils.exceptions import AuthorityUnreachable, MalformedResponse, SessionLost

logger = logging.getLogger(__name__)

_NUMBER = (int, float)


@dataclass(frozen=True)
class MachineStatus:
    balance: float
    min_bet: float
    max_bet: float
    can_spin: bool
    mode: str
    is_logged_in: bool


@dataclass(frozen=True)
class SpinOutcome:
    """Authoritative result of one spin. `is_win` is never overridden locally."""
    is_win: bool
    winning_power: int
    payout: float
    new_balance: Optional[float]
    can_continue: bool
    is_logged_in: Optional[bool] = None
    symbol: Optional[str] = None
    message: Optional[str] = None


def _is_number(value) -> bool:
    """JSON numbers only; bools, NaN and the infinities do not count."""
    if isinstance(value, bool) or not isinstance(value, _NUMBER):
        return False
    return isinstance(value, int) or math.isfinite(value)


def _number_field(data: Dict[str, Any], key: str, default=None):
    value = data.get(key)
    if value is None:
        return default
    if not _is_number(value):
        raise MalformedResponse(f"Field '{key}' is not a number", details={key: value})
    return value


def _bool_field(data: Dict[str, Any], key: str, default=None):
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise MalformedResponse(f"Field '{key}' is not a boolean", details={key: value})
    return value


def parse_status(data: Any) -> MachineStatus:
    """Validates a status payload, filling the documented defaults."""
    if not isinstance(data, dict):
        raise MalformedResponse("Status payload is not an object")
    mode = data.get("mode")
    if mode is not None and not isinstance(mode, str):
        raise MalformedResponse("Field 'mode' is not a string", details={"mode": mode})
    return MachineStatus(
        balance=_number_field(data, "balance", 0),
        min_bet=_number_field(data, "minBet", 1),
        max_bet=_number_field(data, "maxAllowedBet", 1000),
        can_spin=_bool_field(data, "canSpin", False),
        mode=mode or "demo",
        is_logged_in=_bool_field(data, "isLoggedIn", False),
    )


def parse_spin(data: Any) -> SpinOutcome:
    """Validates a spin payload. `isWin` is required; the rest has defaults."""
    if not isinstance(data, dict):
        raise MalformedResponse("Spin payload is not an object")
    if not isinstance(data.get("isWin"), bool):
        raise MalformedResponse("Spin payload has no boolean 'isWin'", details=data)

    power = _number_field(data, "winningPower", 0)
    payout = data.get("payout")
    if payout is None:
        payout = data.get("bananaWon")
    if payout is not None and not _is_number(payout):
        raise MalformedResponse("Field 'payout' is not a number", details={"payout": payout})

    symbol = data.get("symbol")
    message = data.get("spinMessageExtra")
    return SpinOutcome(
        is_win=data["isWin"],
        winning_power=max(0, min(100, int(round(power)))),
        payout=payout or 0,
        new_balance=_number_field(data, "newBalance"),
        can_continue=_bool_field(data, "canSpin", False),
        is_logged_in=_bool_field(data, "isLoggedIn"),
        symbol=symbol if isinstance(symbol, str) else None,
        message=message if isinstance(message, str) else None,
    )


class SessionCookieStore:
    """Holds the cookies the authority issues and replays them on the next call."""

    def __init__(self):
        self._cookies: Dict[str, str] = {}

    def header(self) -> str:
        return "; ".join(f"{name}={value}" for name, value in self._cookies.items())

    def has_session(self) -> bool:
        return bool(self._cookies)

    def clear(self):
        self._cookies.clear()

    def absorb(self, cookies: SimpleCookie) -> bool:
        """
        Merges Set-Cookie values. Returns True if a cookie we held was cleared
        by the authority (empty value or Max-Age=0).
        """
        lost = False
        for name, morsel in cookies.items():
            cleared = morsel.value == "" or morsel["max-age"] in ("0", 0)
            if cleared:
                if name in self._cookies:
                    lost = True
                self._cookies.pop(name, None)
            else:
                self._cookies[name] = morsel.value
        return lost


class AuthorityClient:
    """Async HTTP client for status, spin and reset calls."""

    def __init__(self, base_url: str, timeout: float = 10.0,
                 session: Optional[aiohttp.ClientSession] = None,
                 cookies: Optional[SessionCookieStore] = None):
        self.base_url = base_url
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.cookies = cookies or SessionCookieStore()
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            # Cookies are relayed by hand, so aiohttp must not keep its own copy.
            self._session = aiohttp.ClientSession(cookie_jar=aiohttp.DummyCookieJar())
            self._owns_session = True
        return self._session

    async def close(self):
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def _request(self, params: Dict[str, str], *, allow_redirects: bool) -> tuple:
        """Performs one GET and returns (content_type, body_text)."""
        session = await self._get_session()
        headers = {}
        cookie = self.cookies.header()
        if cookie:
            headers["Cookie"] = cookie

        try:
            async with session.get(
                self.base_url, params=params, headers=headers,
                allow_redirects=allow_redirects, timeout=self.timeout
            ) as response:
                lost = self.cookies.absorb(response.cookies)
                if response.status >= 300:
                    raise AuthorityUnreachable(
                        f"Authority answered with status {response.status}",
                        details={"status": response.status, "params": params}
                    )
                body = await response.text()
                content_type = response.headers.get("Content-Type", "")
        except asyncio.TimeoutError as e:
            raise AuthorityUnreachable("Authority timed out", details={"params": params}) from e
        except aiohttp.ClientError as e:
            raise AuthorityUnreachable(str(e) or "Connection error", details={"params": params}) from e
        except UnicodeDecodeError as e:
            raise MalformedResponse(
                "Authority response is not valid text", details={"params": params}
            ) from e

        if lost:
            raise SessionLost(details={"params": params})
        return content_type, body

    @staticmethod
    def _decode(body: str) -> Any:
        try:
            return json.loads(body)
        except json.JSONDecodeError as e:
            raise MalformedResponse(
                "Authority response is not JSON", details={"body": body[:500]}
            ) from e

    async def status(self, real: bool) -> MachineStatus:
        params = {"real": "1" if real else "0", "slot_machine": "1"}
        content_type, body = await self._request(params, allow_redirects=True)
        if "application/json" not in content_type:
            logger.error("Non-JSON status response from authority: %s", body[:500])
            raise MalformedResponse(
                "Status returned non-JSON content", details={"content_type": content_type}
            )
        return parse_status(self._decode(body))

    async def spin(self, real: bool, bet_amount) -> SpinOutcome:
        params = {
            "real": "1" if real else "0",
            "slot_machine": "1",
            "bet_amount": format_bet(bet_amount),
        }
        _, body = await self._request(params, allow_redirects=False)
        return parse_spin(self._decode(body))

    async def reset_balance(self, real: bool) -> str:
        params = {"real": "1" if real else "0", "resetbalance": "1"}
        _, body = await self._request(params, allow_redirects=False)
        return body


def format_bet(amount) -> str:
    """Whole-number bets go on the wire without a trailing '.0'."""
    if float(amount).is_integer():
        return str(int(amount))
    return str(amount)
