"""
Async REST adapter for MEXC spot (v3 API) over httpx.

Signed requests: every parameter plus timestamp/recvWindow is sorted by key,
joined as k=v&..., and signed with HMAC-SHA256 using the secret key. The
signature is appended to the query string and the API key goes in the
X-MEXC-APIKEY header.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

import httpx

from mmbot.core.errors import GatewayError, OrderNotFound, PriceUnavailable
from mmbot.core.rounding import to_decimal
from mmbot.core.types import PriceSnapshot, RemoteOrder, Side
from mmbot.gateway.symbols import SymbolSpec, spec_for
from mmbot.infra.logging_cfg import log_event

log = logging.getLogger("mmbot")

API_PREFIX = "/api/v3"
BOOK_TICKER = f"{API_PREFIX}/ticker/bookTicker"
OPEN_ORDERS = f"{API_PREFIX}/openOrders"
ORDER = f"{API_PREFIX}/order"

UNKNOWN_ORDER_CODE = -2011
_NOT_FOUND_MARKERS = ("unknown order", "order does not exist")


def sign_query(params: Dict[str, Any], secret_key: str) -> str:
    """Return 'k=v&...&signature=<hex>' over the sorted, unencoded params."""
    query = "&".join(f"{k}={params[k]}" for k in sorted(params))
    signature = hmac.new(secret_key.encode(), query.encode(), hashlib.sha256).hexdigest()
    return f"{query}&signature={signature}"


def map_error(status: int, payload: Any, order_id: Optional[str] = None) -> GatewayError:
    """Translate an error response into the engine's error taxonomy."""
    code = None
    msg = ""
    if isinstance(payload, dict):
        code = payload.get("code")
        msg = str(payload.get("msg") or payload.get("message") or "")
    try:
        code = int(code) if code is not None else None
    except (TypeError, ValueError):
        code = None
    if code == UNKNOWN_ORDER_CODE or any(m in msg.lower() for m in _NOT_FOUND_MARKERS):
        return OrderNotFound(order_id or "", message=msg or "unknown order", code=code)
    if status == 429:
        return GatewayError("rate limit exceeded", code=code, status=429, retryable=True, payload=payload)
    retryable = status >= 500 or status == 408
    return GatewayError(msg or f"MEXC API error (HTTP {status})", code=code, status=status, retryable=retryable, payload=payload)


class _MinuteRateLimiter:
    """Client-side request budget: refuse once a minute's count reaches limit - buffer."""

    def __init__(self, limit: int, buffer: int, clock: Callable[[], float]) -> None:
        self.limit = limit
        self.buffer = buffer
        self._clock = clock
        self._minute = -1
        self._count = 0

    def acquire(self) -> None:
        minute = int(self._clock() // 60)
        if minute != self._minute:
            self._minute = minute
            self._count = 0
        if self._count >= self.limit - self.buffer:
            raise GatewayError("rate limit buffer exceeded", status=429, retryable=True)
        self._count += 1


class MexcGateway:
    def __init__(
        self,
        api_key: Optional[str],
        secret_key: Optional[str],
        base_url: str = "https://api.mexc.com",
        timeout: float = 10.0,
        recv_window: int = 5000,
        specs: Optional[Dict[str, SymbolSpec]] = None,
        rate_limit_per_minute: int = 1200,
        rate_limit_buffer: int = 100,
        client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.api_key = api_key
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.recv_window = recv_window
        self._specs = specs
        self._clock = clock
        self._limiter = _MinuteRateLimiter(rate_limit_per_minute, rate_limit_buffer, clock)
        # a shared client is not closed by close()
        if client is not None:
            self.client = client
            self._owns_client = False
        else:
            self.client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout)
            self._owns_client = True

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    # --- transport -----------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        signed: bool = False,
        order_id: Optional[str] = None,
    ) -> Any:
        params = dict(params or {})
        headers = {"Content-Type": "application/json"}
        if signed:
            if not self.api_key or not self.secret_key:
                raise GatewayError("MEXC credentials not configured", retryable=False)
            params["timestamp"] = int(self._clock() * 1000)
            params["recvWindow"] = self.recv_window
            url = f"{path}?{sign_query(params, self.secret_key)}"
            headers["X-MEXC-APIKEY"] = self.api_key
        else:
            query = "&".join(f"{k}={v}" for k, v in params.items())
            url = f"{path}?{query}" if query else path

        self._limiter.acquire()
        start = time.monotonic()
        try:
            resp = await self.client.request(method, url, headers=headers)
        except httpx.TimeoutException as exc:
            self._log_call(path, start, ok=False, error="timeout")
            raise GatewayError("request timeout", status=408, retryable=True) from exc
        except httpx.TransportError as exc:
            self._log_call(path, start, ok=False, error=str(exc))
            raise GatewayError(f"network error: {exc}", status=503, retryable=True) from exc

        try:
            payload = resp.json()
        except ValueError:
            payload = {"msg": resp.text}

        if resp.status_code >= 400:
            err = map_error(resp.status_code, payload, order_id)
            self._log_call(path, start, ok=False, error=str(err), status=resp.status_code, code=err.code)
            raise err
        # MEXC occasionally answers 200 with an error body
        if isinstance(payload, dict) and payload.get("code") not in (None, 0, 200) and "msg" in payload:
            err = map_error(resp.status_code, payload, order_id)
            self._log_call(path, start, ok=False, error=str(err), code=err.code)
            raise err

        self._log_call(path, start, ok=True)
        return payload

    def _log_call(self, path: str, start: float, ok: bool, **extra: Any) -> None:
        duration_ms = round((time.monotonic() - start) * 1000, 1)
        log_event(log, "api_call", level=logging.DEBUG, path=path, ok=ok, duration_ms=duration_ms, **extra)

    # --- collaborator protocol -----------------------------------------------

    async def get_mid_price(self, pair: str) -> PriceSnapshot:
        try:
            data = await self._request("GET", BOOK_TICKER, {"symbol": pair})
        except GatewayError as exc:
            raise PriceUnavailable(pair, str(exc)) from exc
        try:
            bid = to_decimal(data["bidPrice"])
            ask = to_decimal(data["askPrice"])
        except (KeyError, TypeError, ValueError) as exc:
            raise PriceUnavailable(pair, f"malformed book ticker: {data!r}") from exc
        if bid <= 0 or ask <= 0:
            raise PriceUnavailable(pair, f"empty book bid={bid} ask={ask}")
        return PriceSnapshot(bid=bid, ask=ask)

    async def get_open_orders(self, pair: str) -> List[RemoteOrder]:
        data = await self._request("GET", OPEN_ORDERS, {"symbol": pair}, signed=True)
        if not isinstance(data, list):
            raise GatewayError(f"unexpected openOrders payload: {type(data).__name__}", payload=data)
        orders = []
        for row in data:
            try:
                orders.append(RemoteOrder(
                    id=str(row["orderId"]),
                    side=Side.parse(row.get("side", "")),
                    price=to_decimal(row.get("price", "0")),
                    quantity=to_decimal(row.get("origQty", row.get("quantity", "0"))),
                    filled_quantity=to_decimal(row.get("executedQty", "0")),
                ))
            except (KeyError, ValueError) as exc:
                raise GatewayError(f"malformed open order: {row!r}", payload=row) from exc
        return orders

    async def place_order(self, pair: str, side: Side, price: Optional[str], quantity: str) -> RemoteOrder:
        params: Dict[str, Any] = {
            "symbol": pair,
            "side": side.value,
            "type": "MARKET" if price is None else "LIMIT",
            "quantity": quantity,
        }
        if price is not None:
            params["price"] = price
        data = await self._request("POST", ORDER, params, signed=True)
        try:
            order_id = str(data["orderId"])
        except (KeyError, TypeError) as exc:
            raise GatewayError(f"order response without orderId: {data!r}", payload=data) from exc
        px = price if price is not None else (data.get("price") or "0")
        qty = to_decimal(quantity)
        # the ACK response carries no executedQty; a market order is taken as filled
        executed = data.get("executedQty")
        if executed is not None:
            filled = to_decimal(executed)
        else:
            filled = qty if price is None else Decimal(0)
        return RemoteOrder(id=order_id, side=side, price=to_decimal(px), quantity=qty, filled_quantity=filled)

    async def cancel_order(self, pair: str, order_id: str) -> None:
        await self._request("DELETE", ORDER, {"symbol": pair, "orderId": order_id}, signed=True, order_id=order_id)

    def format_price(self, pair: str, price: Decimal) -> str:
        return spec_for(pair, self._specs).format_price(price)

    def format_quantity(self, pair: str, quantity: Decimal) -> str:
        return spec_for(pair, self._specs).format_quantity(quantity)
