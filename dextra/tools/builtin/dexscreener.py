"""
DexScreener market data tools.

Public API, no credentials. Search results are narrowed to Solana pairs
and sorted by USD liquidity so the most tradable pair comes first.
"""

import logging
from typing import Any, Dict, List

import httpx
from pydantic import BaseModel, Field

from ...constants import BASELINE_TOOL_NAME
from ..models import ToolContext, ToolSpec

logger = logging.getLogger(__name__)

DEXSCREENER_API = "https://api.dexscreener.com"
_TIMEOUT = 15.0


def _liquidity(pair: Dict[str, Any]) -> float:
    return (pair.get("liquidity") or {}).get("usd") or 0.0


def _summarize_pair(pair: Dict[str, Any]) -> Dict[str, Any]:
    base = pair.get("baseToken") or {}
    return {
        "mint": base.get("address"),
        "name": base.get("name"),
        "symbol": base.get("symbol"),
        "price_usd": pair.get("priceUsd"),
        "liquidity_usd": _liquidity(pair),
        "market_cap": pair.get("marketCap"),
        "fdv": pair.get("fdv"),
        "pair_address": pair.get("pairAddress"),
        "dex": pair.get("dexId"),
        "url": pair.get("url"),
    }


async def _get_json(path: str, params: Dict[str, Any] = None) -> Any:
    async with httpx.AsyncClient(base_url=DEXSCREENER_API, timeout=_TIMEOUT) as client:
        response = await client.get(path, params=params, headers={"Accept": "application/json"})
        response.raise_for_status()
        return response.json()


class SearchTokenParams(BaseModel):
    query: str = Field(min_length=1, description="Token name, symbol or mint address")
    limit: int = Field(default=5, ge=1, le=20, description="Max matches to return")


async def search_token_executor(args: SearchTokenParams, context: ToolContext) -> Dict[str, Any]:
    data = await _get_json("/latest/dex/search", params={"q": args.query})
    pairs: List[Dict[str, Any]] = [
        p for p in (data.get("pairs") or []) if p.get("chainId") == "solana"
    ]
    if not pairs:
        return {"success": False, "error": f"No Solana token found for '{args.query}'"}

    pairs.sort(key=_liquidity, reverse=True)
    matches = []
    seen = set()
    for pair in pairs:
        summary = _summarize_pair(pair)
        if summary["mint"] in seen:
            continue
        seen.add(summary["mint"])
        matches.append(summary)
        if len(matches) >= args.limit:
            break
    return {"success": True, "data": matches}


class TokenProfileParams(BaseModel):
    mint: str = Field(min_length=1, description="The token's mint/contract address")


async def get_token_profile_executor(args: TokenProfileParams, context: ToolContext) -> Dict[str, Any]:
    data = await _get_json(f"/latest/dex/tokens/{args.mint}")
    pairs = data.get("pairs") or []
    if not pairs:
        return {"success": False, "error": "No pair data found"}
    best = max(pairs, key=_liquidity)
    return {"success": True, "data": best}


search_token = ToolSpec(
    name=BASELINE_TOOL_NAME,
    description=(
        "Search for a Solana token by name, symbol or address and return matching "
        "tokens with their mint address, price and liquidity. Use this first whenever "
        "a request mentions a token by name."
    ),
    parameters=SearchTokenParams,
    executor=search_token_executor,
    render_hint="token_list",
)

get_token_profile = ToolSpec(
    name="get_token_profile",
    description=(
        "Get comprehensive information about a token from DexScreener: price, "
        "liquidity, market cap and social links. Useful for due diligence."
    ),
    parameters=TokenProfileParams,
    executor=get_token_profile_executor,
    render_hint="token_profile",
)
