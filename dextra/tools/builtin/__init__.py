"""Built-in tools and the default catalog layout."""

from typing import Iterable, Mapping, Optional

from ..models import Toolset
from ..registry import ToolCatalog
from .actions import create_action, describe_frequency
from .confirmation import ask_for_confirmation
from .dexscreener import get_token_profile, search_token
from .telegram import send_telegram_notification

DEFAULT_TOOLSETS = [
    Toolset("core_tools", "Ask the user to confirm a pending operation."),
    Toolset("action_tools", "Create scheduled, recurring actions (requires confirmation)."),
    Toolset("market_tools", "Token profiles, prices and liquidity from DexScreener."),
    Toolset("social_tools", "Send notifications to the user's Telegram."),
]


def build_default_catalog(
    disabled_names: Optional[Iterable[str]] = None,
    env: Optional[Mapping[str, str]] = None,
) -> ToolCatalog:
    catalog = ToolCatalog(disabled_names=disabled_names, env=env)
    for toolset in DEFAULT_TOOLSETS:
        catalog.register_toolset(Toolset(toolset.name, toolset.description, []))

    catalog.register(search_token)
    catalog.register(ask_for_confirmation, toolset="core_tools")
    catalog.register(create_action, toolset="action_tools")
    catalog.register(get_token_profile, toolset="market_tools")
    catalog.register(send_telegram_notification, toolset="social_tools")
    return catalog


__all__ = [
    "build_default_catalog",
    "describe_frequency",
    "ask_for_confirmation",
    "create_action",
    "search_token",
    "get_token_profile",
    "send_telegram_notification",
]
