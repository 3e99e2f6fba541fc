"""CoinGecko provider - market data tools.

Declares the tool catalog document and one handler per tool. Each handler
maps its arguments to query parameters and performs a single GET.
"""

from typing import Any, Callable

from shared.logging import get_logger
from providers.base import RESTProvider

logger = get_logger(__name__)


def _boolean(description: str) -> dict[str, Any]:
    return {"type": "boolean", "description": description}


def _string(description: str, **extra: Any) -> dict[str, Any]:
    return {"type": "string", "description": description, **extra}


def _string_list(description: str) -> dict[str, Any]:
    return {"type": "array", "description": description, "items": {"type": "string"}}


EMPTY_PARAMETERS = {"type": "object", "properties": {}, "required": []}

CATALOG: dict[str, Any] = {
    "name": "coingecko-api",
    "description": "Access cryptocurrency market data from CoinGecko",
    "schema": {
        "type": "object",
        "properties": {
            "ping": {
                "type": "function",
                "description": "Check API server status",
                "parameters": EMPTY_PARAMETERS,
                "returns": {"type": "object", "description": "API status response"},
            },
            "getPrice": {
                "type": "function",
                "description": "Get price data for specified cryptocurrencies in various currencies",
                "parameters": {
                    "type": "object",
                    "properties": {
                        "ids": _string_list("ID of coins, comma-separated (e.g. bitcoin,ethereum)"),
                        "vs_currencies": _string_list("vs_currency of coins, comma-separated (e.g. usd,eur)"),
                        "include_market_cap": _boolean("Include market cap data (true/false)"),
                        "include_24hr_vol": _boolean("Include 24hr volume (true/false)"),
                        "include_24hr_change": _boolean("Include 24hr change (true/false)"),
                        "include_last_updated_at": _boolean("Include last updated timestamp (true/false)"),
                        "precision": _string("Decimal precision for price data"),
                    },
                    "required": ["ids", "vs_currencies"],
                },
                "returns": {"type": "object", "description": "Price data for the specified coins"},
            },
            "getSupportedVsCurrencies": {
                "type": "function",
                "description": "Get list of supported vs currencies",
                "parameters": EMPTY_PARAMETERS,
                "returns": {"type": "array", "description": "List of supported vs currencies"},
            },
            "getCoinMarkets": {
                "type": "function",
                "description": "Get market data for coins",
                "parameters": {
                    "type": "object",
                    "properties": {
                        "vs_currency": _string("The target currency of market data (usd, eur, jpy, etc.)"),
                        "ids": _string("The ids of the coins, comma separated (e.g. bitcoin,ethereum)"),
                        "category": _string("Filter by coin category"),
                        "order": _string(
                            "Sort results by field (e.g. market_cap_desc, volume_asc)",
                            enum=[
                                "market_cap_desc", "market_cap_asc",
                                "volume_desc", "volume_asc",
                                "id_desc", "id_asc",
                            ],
                        ),
                        "per_page": {"type": "number", "description": "Total results per page (1-250)"},
                        "page": {"type": "number", "description": "Page number"},
                        "sparkline": _boolean("Include sparkline 7 days data"),
                        "price_change_percentage": _string(
                            "Include price change percentage in 1h, 24h, 7d, 14d, 30d, 200d, 1y (e.g. '1h,24h,7d')"
                        ),
                    },
                    "required": ["vs_currency"],
                },
                "returns": {"type": "array", "description": "Market data for the specified coins"},
            },
            "getGlobal": {
                "type": "function",
                "description": "Get global cryptocurrency data",
                "parameters": EMPTY_PARAMETERS,
                "returns": {"type": "object", "description": "Global cryptocurrency market data"},
            },
            "getTrending": {
                "type": "function",
                "description": "Get trending coins",
                "parameters": EMPTY_PARAMETERS,
                "returns": {"type": "object", "description": "List of trending coins"},
            },
        },
    },
}


def _csv(value: Any) -> str:
    """Lists are sent comma-separated."""
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    return str(value)


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_query(
    arguments: dict[str, Any],
    required: tuple[str, ...] = (),
    optional: tuple[str, ...] = (),
    lists: tuple[str, ...] = ()
) -> dict[str, str]:
    """
    Map tool arguments to query parameters.

    Required arguments are always sent; optional ones only when truthy.
    """
    query: dict[str, str] = {}
    for key in (*required, *optional):
        value = arguments.get(key)
        if key not in required and not value:
            continue
        query[key] = _csv(value) if key in lists else _query_value(value)
    return query


class CoinGeckoTools:
    """
    Handlers for the CoinGecko catalog.

    Each handler performs exactly one upstream GET.
    """

    def __init__(self, provider: RESTProvider) -> None:
        self.provider = provider

    async def ping(self, arguments: dict[str, Any]) -> Any:
        return await self.provider.fetch("/ping")

    async def get_price(self, arguments: dict[str, Any]) -> Any:
        query = build_query(
            arguments,
            required=("ids", "vs_currencies"),
            optional=(
                "include_market_cap",
                "include_24hr_vol",
                "include_24hr_change",
                "include_last_updated_at",
                "precision",
            ),
            lists=("ids", "vs_currencies"),
        )
        return await self.provider.fetch("/simple/price", query)

    async def get_supported_vs_currencies(self, arguments: dict[str, Any]) -> Any:
        return await self.provider.fetch("/simple/supported_vs_currencies")

    async def get_coin_markets(self, arguments: dict[str, Any]) -> Any:
        query = build_query(
            arguments,
            required=("vs_currency",),
            optional=(
                "ids",
                "category",
                "order",
                "per_page",
                "page",
                "sparkline",
                "price_change_percentage",
            ),
            lists=("ids",),
        )
        return await self.provider.fetch("/coins/markets", query)

    async def get_global(self, arguments: dict[str, Any]) -> Any:
        return await self.provider.fetch("/global")

    async def get_trending(self, arguments: dict[str, Any]) -> Any:
        return await self.provider.fetch("/search/trending")

    def handlers(self) -> dict[str, Callable[[dict[str, Any]], Any]]:
        """Tool name -> handler table, in catalog order."""
        return {
            "ping": self.ping,
            "getPrice": self.get_price,
            "getSupportedVsCurrencies": self.get_supported_vs_currencies,
            "getCoinMarkets": self.get_coin_markets,
            "getGlobal": self.get_global,
            "getTrending": self.get_trending,
        }


def register_coingecko(executor, provider: RESTProvider) -> CoinGeckoTools:
    """Register the CoinGecko handlers with the call executor."""
    tools = CoinGeckoTools(provider)
    for name, handler in tools.handlers().items():
        executor.register(name, handler)

    logger.info("CoinGecko tools registered", tool_count=len(tools.handlers()))
    return tools
