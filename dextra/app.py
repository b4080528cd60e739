"""
Dextra Application - single entry point for the copilot core.

Usage:
    from dextra import Dextra

    app = Dextra("config.yaml")

    async for event in app.stream_chat(user, conversation_id, message):
        print(event.to_dict())

    await app.run_cron_tick()
"""

import logging
import os
from datetime import timedelta
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional

from .config import Settings, load_settings
from .db import Stores
from .models import Action, Message, UserProfile
from .streaming.models import AgentEvent

logger = logging.getLogger(__name__)


class Dextra:
    """
    Dextra application entry point.

    Sync constructor reads config; async initialization (database pool,
    schema migrations, LLM clients and the tool catalog) is deferred to
    the first call that needs it.

    Args:
        config: Path to a YAML configuration file, or parsed Settings.
        env: Environment used for tool credential checks (defaults to os.environ).

    Example:
        app = Dextra("config.yaml")
        result = await app.run_cron_tick()
    """

    def __init__(self, config: Any = None, env: Optional[Mapping[str, str]] = None):
        if isinstance(config, Settings):
            self.settings = config
        else:
            self.settings = load_settings(config, env)
        self._env = os.environ if env is None else env
        self._initialized = False

        # Will be set during lazy initialization
        self._database = None
        self._llm_client = None
        self._orchestrator_llm = None
        self.stores: Optional[Stores] = None
        self.catalog = None
        self.turn_executor = None
        self.action_runner = None

    async def _ensure_initialized(self) -> None:
        """Lazy initialization - runs once on first use."""
        if self._initialized:
            return

        cfg = self.settings
        limits = cfg.limits

        # 1. LLM clients
        from .llm.base import LLMConfig
        from .llm.litellm_client import LiteLLMClient

        self._llm_client = LiteLLMClient(
            config=LLMConfig(
                model=cfg.llm.model,
                api_key=cfg.llm.api_key,
                base_url=cfg.llm.base_url,
            ),
            provider_name=cfg.llm.provider,
        )
        self._orchestrator_llm = LiteLLMClient(
            config=LLMConfig(
                model=cfg.orchestrator_llm.model,
                api_key=cfg.orchestrator_llm.api_key,
                base_url=cfg.orchestrator_llm.base_url,
            ),
            provider_name=cfg.orchestrator_llm.provider,
        )
        logger.info(
            f"LLM client: provider={cfg.llm.provider}, model={cfg.llm.model}; "
            f"orchestrator model={cfg.orchestrator_llm.model}"
        )

        # 2. Database
        from .db import Database, ensure_schema
        self._database = Database(dsn=cfg.database)
        await self._database.initialize()
        await ensure_schema(self._database)
        self.stores = Stores.from_database(self._database)

        # 3. Tool catalog and executor
        from .tools import ToolExecutor, build_default_catalog
        self.catalog = build_default_catalog(disabled_names=cfg.disabled_tools, env=self._env)
        executor = ToolExecutor(services={"actions": self.stores.actions}, env=self._env)
        logger.info(
            f"Tool catalog: {len(self.catalog.available_tools())} of "
            f"{len(self.catalog.all_tools)} tools available"
        )

        # 4. Orchestrator pieces
        from .actions import ActionRunner
        from .orchestrator import (
            ArgumentRepairer,
            ConfirmationHandler,
            LLMAffirmativeClassifier,
            StepLoop,
            ToolSelector,
            TurnExecutor,
        )
        selector = ToolSelector(self._orchestrator_llm, self.catalog)
        step_loop = StepLoop(
            self._llm_client,
            executor,
            ArgumentRepairer(self._orchestrator_llm),
            max_steps=limits.max_steps,
            timeout=limits.turn_timeout,
        )
        self.turn_executor = TurnExecutor(
            stores=self.stores,
            catalog=self.catalog,
            selector=selector,
            confirmation_handler=ConfirmationHandler(
                LLMAffirmativeClassifier(self._orchestrator_llm), self.stores.messages
            ),
            step_loop=step_loop,
            title_llm=self._orchestrator_llm,
            max_history_messages=limits.max_history_messages,
        )
        self.action_runner = ActionRunner(
            stores=self.stores,
            catalog=self.catalog,
            selector=selector,
            step_loop=step_loop,
            action_timeout=limits.action_timeout,
            claim_lease=timedelta(seconds=limits.cron_timeout),
        )

        self._initialized = True
        logger.info("Dextra initialized")

    async def shutdown(self) -> None:
        """Shut down the application, closing all connections."""
        if not self._initialized:
            return
        try:
            if self._database:
                await self._database.close()
        except Exception as e:
            logger.warning(f"Error during shutdown: {e}")
        finally:
            self._initialized = False
            self._database = None
            self.stores = None
            self.turn_executor = None
            self.action_runner = None
            logger.info("Dextra shut down")

    # ── Chat ──

    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        await self._ensure_initialized()
        return await self.stores.users.get_profile(user_id)

    async def stream_chat(
        self,
        user: UserProfile,
        conversation_id: str,
        message: Message,
    ) -> AsyncIterator[AgentEvent]:
        """Run one chat turn and stream its events."""
        from .orchestrator import TurnRequest

        await self._ensure_initialized()
        async for event in self.turn_executor.run_turn(
            TurnRequest(user=user, conversation_id=conversation_id, message=message)
        ):
            yield event

    async def get_conversation_messages(
        self, conversation_id: str, user_id: str
    ) -> Optional[List[Message]]:
        await self._ensure_initialized()
        return await self.stores.messages.get_conversation_messages(conversation_id, user_id)

    async def delete_conversation(self, conversation_id: str, user_id: str) -> bool:
        await self._ensure_initialized()
        return await self.stores.conversations.delete_conversation(conversation_id, user_id)

    # ── Actions ──

    async def list_actions(self, user_id: str) -> List[Action]:
        await self._ensure_initialized()
        return await self.stores.actions.list_user_actions(user_id)

    async def update_action(
        self, action_id: str, user_id: str, changes: Dict[str, Any]
    ) -> Optional[Action]:
        await self._ensure_initialized()
        return await self.stores.actions.update_action(action_id, user_id, changes)

    async def delete_action(self, action_id: str, user_id: str) -> bool:
        await self._ensure_initialized()
        return await self.stores.actions.delete_action(action_id, user_id)

    async def run_cron_tick(self):
        """Run every due scheduled action once."""
        await self._ensure_initialized()
        return await self.action_runner.run_tick()
