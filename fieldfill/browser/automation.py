"""Browser session management using Playwright."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from playwright.async_api import Browser, BrowserContext, Page, async_playwright

from fieldfill.config import Settings, get_settings

from .handles import PlaywrightPage

logger = logging.getLogger(__name__)

DEFAULT_VIEWPORT: Dict[str, int] = {"width": 1366, "height": 900}
BROWSER_TYPES = ("chromium", "firefox", "webkit")


@dataclass
class BrowserConfig:
    """Launch and context options for a fill session."""

    headless: bool = True
    browser_type: str = "chromium"
    viewport: Optional[Dict[str, int]] = None
    user_agent: Optional[str] = None
    locale: Optional[str] = None
    slow_mo: int = 0  # ms between Playwright operations
    timeout: int = 30000  # ms, default for every page operation
    bypass_csp: bool = True  # the observer init script must run under strict CSP
    wait_until: str = "domcontentloaded"
    extra_args: List[str] = field(default_factory=list)

    def __post_init__(self):
        if self.viewport is None:
            self.viewport = dict(DEFAULT_VIEWPORT)
        if self.browser_type not in BROWSER_TYPES:
            raise ValueError(f"Unsupported browser type: {self.browser_type}")

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, **overrides) -> "BrowserConfig":
        """Build from ``FIELDFILL_BROWSER``/``FIELDFILL_HEADLESS``; ``None`` overrides are ignored."""

        settings = settings or get_settings()
        values: Dict[str, Any] = {"headless": settings.headless, "browser_type": settings.browser_type}
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)

    def launch_options(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {"headless": self.headless, "slow_mo": self.slow_mo}
        if self.extra_args and self.browser_type == "chromium":
            options["args"] = list(self.extra_args)
        return options

    def context_options(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {"viewport": self.viewport, "bypass_csp": self.bypass_csp}
        if self.user_agent:
            options["user_agent"] = self.user_agent
        if self.locale:
            options["locale"] = self.locale
        return options


@dataclass(eq=False)
class BrowserSession:
    """One browser, context and page, plus the engine adapter for that page."""

    browser: Browser
    context: BrowserContext
    page: Page
    config: BrowserConfig
    _adapter: Optional[PlaywrightPage] = field(default=None, repr=False)

    def adapter(self) -> PlaywrightPage:
        """Page adapter for the engine; the same instance for the life of the session."""
        if self._adapter is None:
            self._adapter = PlaywrightPage(self.page)
        return self._adapter

    async def goto(self, url: str) -> None:
        logger.info(f"Navigating to {url}")
        await self.page.goto(url, wait_until=self.config.wait_until)

    async def close(self):
        if self._adapter is not None:
            await self._adapter.stop_observing()
        try:
            await self.context.close()
            await self.browser.close()
        except Exception as e:
            logger.error(f"Error closing browser session: {e}")


class BrowserAutomation:
    """Async context manager owning the Playwright driver and its sessions.

    Example::

        async with BrowserAutomation(BrowserConfig(headless=False)) as automation:
            session = await automation.open("https://example.com/signup")
            engine = AutofillEngine(session.adapter(), source)
    """

    def __init__(self, config: Optional[BrowserConfig] = None):
        self.config = config or BrowserConfig()
        self._playwright = None
        self._sessions: List[BrowserSession] = []

    async def __aenter__(self) -> "BrowserAutomation":
        self._playwright = await async_playwright().start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close_all_sessions()
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None

    @property
    def sessions(self) -> List[BrowserSession]:
        return list(self._sessions)

    async def create_session(self, config: Optional[BrowserConfig] = None) -> BrowserSession:
        """Launch a browser with a fresh context and page."""
        if not self._playwright:
            raise RuntimeError("BrowserAutomation not started. Use async context manager.")

        session_config = config or self.config
        launcher = getattr(self._playwright, session_config.browser_type)
        browser = await launcher.launch(**session_config.launch_options())
        context = await browser.new_context(**session_config.context_options())
        context.set_default_timeout(session_config.timeout)
        page = await context.new_page()

        session = BrowserSession(browser=browser, context=context, page=page, config=session_config)
        self._sessions.append(session)
        logger.info(f"Started {session_config.browser_type} session (headless={session_config.headless})")
        return session

    async def open(self, url: str, config: Optional[BrowserConfig] = None) -> BrowserSession:
        """Create a session and navigate it to ``url``."""
        session = await self.create_session(config)
        await session.goto(url)
        return session

    async def close_session(self, session: BrowserSession):
        await session.close()
        if session in self._sessions:
            self._sessions.remove(session)

    async def close_all_sessions(self):
        for session in list(self._sessions):
            await self.close_session(session)
