"""
REST client for the Polymarket CLOB and Gamma APIs.
Implements the Venue interface: ask quotes, order placement, order status,
cancellation, market discovery and resolution lookup.
"""

import asyncio
import json
import time
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import aiohttp

from ..errors import MarketNotFound, RateLimited, VenueError, VenueTimeout
from ..quotes.models import AskPair, Market, Side
from .auth import AuthManager
from .venue import OrderHandle, OrderSide, OrderStatus


# Previous periods tried when the current one is not listed yet
DISCOVERY_LOOKBACK_PERIODS = 3


class RateLimiter:
    """Simple sliding-window rate limiter."""

    def __init__(self, max_requests: int, window_seconds: float):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.requests: list[float] = []
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait until a request can be made."""
        async with self._lock:
            now = time.time()
            self.requests = [t for t in self.requests if now - t < self.window_seconds]

            if len(self.requests) >= self.max_requests:
                sleep_time = self.window_seconds - (now - self.requests[0])
                if sleep_time > 0:
                    await asyncio.sleep(sleep_time)
                self.requests = self.requests[1:]

            self.requests.append(time.time())


def period_start(now: float, window_minutes: int) -> int:
    """Start of the window containing `now`, in epoch seconds."""
    window = window_minutes * 60
    return (int(now) // window) * window


def market_slug(asset: str, window_minutes: int, start: int) -> str:
    """Gamma event slug, e.g. "btc-updown-15m-1767726000"."""
    return f"{asset.lower()}-updown-{window_minutes}m-{start}"


def _json_list(value: Any) -> list:
    # Gamma encodes these arrays as JSON strings
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            return []
    return value if isinstance(value, list) else []


def parse_gamma_market(
    data: dict[str, Any],
    asset: str,
    window_minutes: int,
    start: int,
) -> Optional[Market]:
    """
    Build a Market from a Gamma market object.
    Returns None for closed/inactive markets or when the Up/Down tokens
    cannot be identified.
    """
    if not data.get("active", False) or data.get("closed", False):
        return None

    condition_id = data.get("conditionId") or data.get("condition_id")
    token_ids = _json_list(data.get("clobTokenIds"))
    outcomes = _json_list(data.get("outcomes"))
    if not condition_id or len(token_ids) != 2:
        return None

    tokens: dict[Side, str] = {}
    for token_id, outcome in zip(token_ids, outcomes or ["Up", "Down"]):
        side = Side.from_outcome(str(outcome))
        if side is not None:
            tokens[side] = str(token_id)
    if len(tokens) != 2:
        return None

    return Market.build(
        condition_id=condition_id,
        label=f"{asset.upper()}-{window_minutes}m",
        up_token_id=tokens[Side.UP],
        down_token_id=tokens[Side.DOWN],
        asset=asset.lower(),
        slug=data.get("slug", ""),
        window_minutes=window_minutes,
        period_start=start,
    )


def parse_order_status(data: dict[str, Any]) -> OrderStatus:
    """Map a CLOB order object to an OrderStatus."""
    status = str(data.get("status", "")).upper()
    try:
        matched = Decimal(str(data.get("size_matched", "0") or "0"))
        original = Decimal(str(data.get("original_size", "0") or "0"))
    except InvalidOperation:
        matched = original = Decimal("0")

    if status == "MATCHED" or (original > 0 and matched >= original):
        return OrderStatus.FILLED
    if matched > 0:
        return OrderStatus.PARTIALLY_FILLED
    if status in ("LIVE", "DELAYED", "UNMATCHED", "PENDING"):
        return OrderStatus.PENDING
    if status in ("CANCELED", "CANCELLED", "EXPIRED"):
        return OrderStatus.CANCELLED
    return OrderStatus.REJECTED


def parse_winner(data: dict[str, Any], market: Market) -> Optional[Side]:
    """Winning side of a closed CLOB market, or None while it is open."""
    if not data.get("closed", False):
        return None
    for token in data.get("tokens", []):
        if token.get("winner"):
            if token.get("token_id") == market.up.token_id:
                return Side.UP
            if token.get("token_id") == market.down.token_id:
                return Side.DOWN
            return Side.from_outcome(str(token.get("outcome", "")))
    return None


class PolymarketRestClient:
    """REST client for Polymarket CLOB API."""

    def __init__(
        self,
        auth_manager: Optional[AuthManager] = None,
        base_url: str = "https://clob.polymarket.com",
        gamma_url: str = "https://gamma-api.polymarket.com",
        timeout_seconds: int = 10,
        max_retries: int = 3,
        retry_backoff_base: float = 1.5,
        funder: Optional[str] = None,
    ):
        self.auth = auth_manager
        self.base_url = base_url.rstrip("/")
        self.gamma_url = gamma_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.max_retries = max_retries
        self.retry_backoff_base = retry_backoff_base
        self.funder = funder
        self._session: Optional[aiohttp.ClientSession] = None

        # Rate limiters per endpoint category
        self._price_limiter = RateLimiter(150, 10)
        self._order_limiter = RateLimiter(350, 10)
        self._general_limiter = RateLimiter(900, 10)

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def close(self) -> None:
        """Close HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def _request(
        self,
        method: str,
        url: str,
        authenticated: bool = False,
        body: Optional[dict] = None,
        limiter: Optional[RateLimiter] = None,
        params: Optional[dict[str, str]] = None,
        retry: bool = True,
    ) -> Any:
        """
        Make HTTP request with retry logic.

        With retry=False the request is sent once. Order placement uses this:
        a dropped connection may still have placed the order.
        """
        session = await self._get_session()
        limiter = limiter or self._general_limiter
        attempts = self.max_retries if retry else 1

        for attempt in range(attempts):
            await limiter.acquire()

            headers = {"Content-Type": "application/json"}
            body_str = json.dumps(body) if body else ""

            if authenticated:
                if self.auth is None:
                    raise VenueError("Authenticated request without credentials")
                path = url.replace(self.base_url, "")
                headers.update(self.auth.get_l2_headers(method, path, body_str))

            try:
                async with session.request(
                    method,
                    url,
                    headers=headers,
                    params=params,
                    data=body_str if body else None,
                ) as response:
                    if response.status == 429:
                        if attempt == attempts - 1:
                            raise RateLimited(f"{method} {url} rate limited")
                        await asyncio.sleep(self.retry_backoff_base ** attempt)
                        continue
                    if response.status == 404:
                        raise MarketNotFound(f"{method} {url} not found")

                    response.raise_for_status()
                    try:
                        return await response.json()
                    except ValueError as e:
                        raise VenueError(f"{method} {url} returned invalid JSON") from e

            except asyncio.TimeoutError as e:
                if attempt == attempts - 1:
                    raise VenueTimeout(f"{method} {url} timed out") from e
            except aiohttp.ClientError as e:
                if attempt == attempts - 1:
                    raise VenueError(f"{method} {url} failed: {e}") from e

            await asyncio.sleep(self.retry_backoff_base ** attempt)

        raise VenueError(f"Request failed after {attempts} attempts")

    # === Quotes ===

    async def get_price(self, token_id: str, side: str = "BUY") -> Decimal:
        """Price to trade a token on the given side (BUY = best ask)."""
        url = f"{self.base_url}/price"
        data = await self._request(
            "GET", url, params={"side": side, "token_id": token_id}, limiter=self._price_limiter
        )
        try:
            return Decimal(str(data["price"]))
        except (KeyError, TypeError, InvalidOperation) as e:
            raise VenueError(f"Invalid price response for {token_id}: {data}") from e

    async def get_asks(self, market: Market) -> AskPair:
        """Best asks for both tokens of a market."""
        up_ask, down_ask = await asyncio.gather(
            self.get_price(market.up.token_id, "BUY"),
            self.get_price(market.down.token_id, "BUY"),
        )
        return AskPair(up_ask=up_ask, down_ask=down_ask)

    # === Orders ===

    async def derive_api_key(self, nonce: int = 0) -> dict[str, str]:
        """Derive API credentials using L1 authentication."""
        if self.auth is None:
            raise VenueError("Cannot derive API key without a private key")
        url = f"{self.base_url}/auth/derive-api-key"
        session = await self._get_session()

        headers = self.auth.get_l1_headers(nonce)
        headers["Content-Type"] = "application/json"

        async with session.get(url, headers=headers) as response:
            response.raise_for_status()
            data = await response.json()

            self.auth.set_api_credentials(
                data["apiKey"],
                data["secret"],
                data["passphrase"],
            )

            return {
                "api_key": data["apiKey"],
                "api_secret": data["secret"],
                "api_passphrase": data["passphrase"],
            }

    async def submit_order(
        self,
        token_id: str,
        price: Decimal,
        size: Decimal,
        side: OrderSide = OrderSide.BUY,
    ) -> OrderHandle:
        """
        Post a GTC limit order.

        The body is sent unsigned; the venue must accept L2-authenticated
        orders for the funder address.
        """
        url = f"{self.base_url}/order"

        body = {
            "tokenID": token_id,
            "price": str(price),
            "size": str(size),
            "side": side.value,
            "orderType": "GTC",
        }
        if self.funder:
            body["funder"] = self.funder

        data = await self._request(
            "POST", url, authenticated=True, body=body, limiter=self._order_limiter, retry=False
        ) or {}

        order_id = data.get("orderID") or data.get("orderId")
        if not order_id or data.get("success") is False:
            raise VenueError(data.get("errorMsg") or f"Order rejected: {data}")

        return OrderHandle(
            order_id=order_id,
            token_id=token_id,
            side=side,
            price=price,
            size=size,
        )

    async def get_order_status(self, handle: OrderHandle) -> OrderStatus:
        """Current status of an order."""
        url = f"{self.base_url}/data/order/{handle.order_id}"
        data = await self._request("GET", url, authenticated=True)
        return parse_order_status(data or {})

    async def cancel_order(self, handle: OrderHandle) -> bool:
        """Cancel an order. Returns True when the venue confirms it."""
        url = f"{self.base_url}/order"
        data = await self._request(
            "DELETE",
            url,
            authenticated=True,
            body={"orderID": handle.order_id},
            limiter=self._order_limiter,
        )
        return handle.order_id in (data or {}).get("canceled", [])

    # === Markets ===

    async def find_market(
        self,
        asset: str,
        window_minutes: int,
        now: Optional[float] = None,
    ) -> Market:
        """
        Find the active Up/Down market for an asset and window.
        Tries the current period first, then a few previous ones.
        """
        current = period_start(now if now is not None else time.time(), window_minutes)

        for offset in range(DISCOVERY_LOOKBACK_PERIODS + 1):
            start = current - offset * window_minutes * 60
            slug = market_slug(asset, window_minutes, start)
            try:
                event = await self._request("GET", f"{self.gamma_url}/events/slug/{slug}")
            except MarketNotFound:
                continue

            for data in (event or {}).get("markets", [])[:1]:
                market = parse_gamma_market(data, asset, window_minutes, start)
                if market is not None:
                    return market

        raise MarketNotFound(
            f"No active {asset.upper()} {window_minutes}-minute up/down market"
        )

    async def get_winner(self, market: Market) -> Optional[Side]:
        """Winning side once the market has closed."""
        url = f"{self.base_url}/markets/{market.condition_id}"
        data = await self._request("GET", url)
        return parse_winner(data or {}, market)
