"""Executes transcribed instructions through the automation agent."""

import logging
from typing import Any, Optional, Protocol


logger = logging.getLogger(__name__)


class AutomationSession(Protocol):
    """Anything that can perform a natural-language described page action."""

    async def act(self, instruction: str) -> Any:
        ...


class ActionExecutor:
    """Hands instructions to the automation agent.

    Failures here are not fatal to a pipeline iteration: they are logged and
    the executor returns None.
    """

    def __init__(self, session: AutomationSession):
        self.session = session

    async def execute_action(self, command_text: str) -> Optional[Any]:
        """Perform the instruction and return the agent's result.

        Args:
            command_text: The transcribed instruction.

        Returns:
            The agent's result, or None if the action was skipped or failed.
        """
        if not command_text or not command_text.strip():
            logger.warning("Skipping action for empty instruction")
            return None

        logger.info(f"Executing command: {command_text}")
        try:
            result = await self.session.act(command_text)
        except Exception as e:
            logger.error(f"Error executing action: {e}")
            return None

        logger.info(f"Action complete: {result}")
        return result
