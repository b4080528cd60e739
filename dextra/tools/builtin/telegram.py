"""
send_telegram_notification - push a message to the user's Telegram chat.

Only offered when TELEGRAM_BOT_TOKEN is configured. The chat is found
from the bot's recent updates, so the user must have started the bot.
"""

import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, Field

from ..models import ToolContext, ToolSpec

logger = logging.getLogger(__name__)

TELEGRAM_API = "https://api.telegram.org"
MISSING_USERNAME_ERROR = "No Telegram username provided"
BOT_NOT_STARTED_ERROR = "Bot not started yet"


class TelegramNotificationParams(BaseModel):
    username: str = Field(min_length=1, description="Telegram username of the recipient")
    message: str = Field(min_length=1, description="Message text")


async def _find_chat_id(client: httpx.AsyncClient, token: str, username: str) -> Optional[str]:
    response = await client.get(f"{TELEGRAM_API}/bot{token}/getUpdates")
    response.raise_for_status()
    for update in response.json().get("result", []):
        message = update.get("message") or {}
        if (message.get("from") or {}).get("username") == username:
            return str(message["chat"]["id"])
    return None


async def send_telegram_notification_executor(
    args: TelegramNotificationParams, context: ToolContext
) -> Dict[str, Any]:
    token = context.credentials.get("TELEGRAM_BOT_TOKEN")
    if not token:
        return {"success": False, "error": "Telegram is not configured"}

    username = args.username.replace("@", "")
    if not username:
        return {"success": False, "error": MISSING_USERNAME_ERROR}

    async with httpx.AsyncClient(timeout=15.0) as client:
        chat_id = await _find_chat_id(client, token, username)
        if chat_id is None:
            return {"success": False, "error": BOT_NOT_STARTED_ERROR}

        response = await client.post(
            f"{TELEGRAM_API}/bot{token}/sendMessage",
            json={"chat_id": chat_id, "text": args.message},
        )
        if response.status_code != 200:
            logger.error(f"Telegram sendMessage error: {response.status_code} - {response.text}")
            return {"success": False, "error": "Failed to send Telegram message"}

    return {"success": True, "data": "Notification sent successfully"}


send_telegram_notification = ToolSpec(
    name="send_telegram_notification",
    description="Send a Telegram message to the user.",
    parameters=TelegramNotificationParams,
    executor=send_telegram_notification_executor,
    required_credentials=["TELEGRAM_BOT_TOKEN"],
    render_hint="notification",
)
