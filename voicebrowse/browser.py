"""Browser session driven by the Stagehand automation agent."""

import logging
from typing import Any, Optional

from stagehand import Stagehand, StagehandConfig

from .config import AgentConfig

logger = logging.getLogger(__name__)

SCROLL_TO_TOP_SCRIPT = "() => window.scrollTo(0, 0)"


def build_stagehand_config(config: AgentConfig) -> StagehandConfig:
    """Translate our agent settings into a StagehandConfig."""
    options = {
        "env": config.env,
        "model_name": config.model_name,
        "model_api_key": config.model_api_key,
        "dom_settle_timeout_ms": config.dom_settle_timeout_ms,
        "verbose": config.verbose,
    }
    if config.env == "BROWSERBASE":
        options["api_key"] = config.browserbase_api_key
        options["project_id"] = config.browserbase_project_id
    else:
        options["local_browser_launch_options"] = {"headless": config.headless}
    return StagehandConfig(**options)


class BrowserSession:
    """A live automation session: one browser, one page."""

    def __init__(self, config: AgentConfig):
        self.config = config
        self._stagehand: Optional[Stagehand] = None
        self._page = None

    @property
    def page(self):
        if self._page is None:
            raise RuntimeError("Browser session not started")
        return self._page

    @property
    def is_running(self) -> bool:
        return self._stagehand is not None

    async def start(self) -> None:
        """Launch the browser and attach the agent."""
        if self._stagehand is not None:
            logger.warning("Browser session already running")
            return

        logger.info(f"Starting browser session (env: {self.config.env})")
        stagehand = Stagehand(build_stagehand_config(self.config))
        await stagehand.init()
        self._stagehand = stagehand
        self._page = stagehand.page
        logger.info("Browser session started")

    async def stop(self) -> None:
        """Close the browser."""
        if self._stagehand is None:
            return

        logger.info("Closing browser session")
        try:
            await self._stagehand.close()
        except Exception as e:
            logger.exception(f"Error closing browser session: {e}")
        finally:
            self._stagehand = None
            self._page = None

    async def act(self, instruction: str) -> Any:
        """Ask the agent to perform a natural-language described action."""
        return await self.page.act(instruction)

    async def prepare(self, first_load: bool) -> None:
        """Bring the page into a known position before listening.

        On the first load the start URL is opened; on every call the page is
        scrolled to the top. Each step falls back to asking the agent when
        the direct page call fails.
        """
        if first_load:
            try:
                await self.page.goto(self.config.start_url)
            except Exception as e:
                logger.warning(f"Navigation failed ({e}), asking the agent instead")
                await self.act(f"navigate to {self.config.start_url}")

        try:
            await self.page.evaluate(SCROLL_TO_TOP_SCRIPT)
        except Exception as e:
            logger.warning(f"Scroll failed ({e}), asking the agent instead")
            await self.act("scroll to the top of the page")
