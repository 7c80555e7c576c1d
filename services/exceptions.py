"""
Exception taxonomy for AI Portfolio services.
Services raise these; the sandbox session converts them into notifications.
"""


class PortfolioError(Exception):
    """Base class for all recoverable portfolio errors."""


class AdvisorError(PortfolioError):
    """The AI completion service was unreachable or returned an unusable document."""


class SandboxValidationError(PortfolioError, ValueError):
    """A sandbox edit was rejected before any request was made."""


class MarketDataError(PortfolioError):
    """A simulated market data fetch failed."""
