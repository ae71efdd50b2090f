"""
Configuration for Analytics Compose.
"""
import logging
from dataclasses import dataclass, field
from pathlib import Path

from .core.models import Granularity
from .plugins import REFERRER_TEMPLATES

logger = logging.getLogger(__name__)


@dataclass
class ComposerConfig:
    """Configuration for a single result composer."""

    # Site being analysed (e.g., "shop.example.com"); used for self-referrals
    site_domain: str | None = None

    # Referrer registry JSON file; None uses the built-in registry
    registry_path: str | Path | None = None
    registry_include_builtin: bool = True

    # Extra template identifiers that switch referrer parsing on
    extra_referrer_templates: frozenset[str] = field(default_factory=frozenset)

    default_granularity: Granularity | str = Granularity.DAILY

    @property
    def referrer_templates(self) -> frozenset[str]:
        """Built-in referrer-shaped templates plus the configured extras."""
        return REFERRER_TEMPLATES | self.extra_referrer_templates

    def __post_init__(self):
        """Normalise and validate configuration after initialization."""
        if self.site_domain:
            self.site_domain = self.site_domain.strip().lower().rstrip(".") or None

        self.extra_referrer_templates = frozenset(self.extra_referrer_templates)
        self._validate_granularity()

    def _validate_granularity(self) -> None:
        try:
            self.default_granularity = Granularity(self.default_granularity)
        except ValueError:
            logger.warning(
                f"Unknown granularity {self.default_granularity!r}, "
                f"falling back to {Granularity.DAILY.value!r}"
            )
            self.default_granularity = Granularity.DAILY
