"""Playwright-powered browser sessions and element adapters."""

from .automation import (
    BrowserAutomation,
    BrowserConfig,
    BrowserSession,
)
from .handles import (
    PlaywrightElement,
    PlaywrightPage,
)

__all__ = [
    "BrowserAutomation",
    "BrowserConfig",
    "BrowserSession",
    "PlaywrightElement",
    "PlaywrightPage",
]
