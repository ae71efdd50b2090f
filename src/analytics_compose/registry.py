"""
Referrer registry: the domain knowledge base behind referrer classification.

The registry maps a bare domain (no scheme, no path) to a referrer record
holding the traffic source type and a display name:

- search: Search engines (Google, Bing, DuckDuckGo, etc.)
- social: Social media platforms (Facebook, Twitter, LinkedIn, etc.)
- email: Webmail clients and email marketing platforms
- ads: Advertising networks

It is built once per process and is read-only afterwards, so it can be
shared between any number of concurrent requests without locking.
"""

import json
import logging
from collections.abc import Iterator, Mapping
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType

from pydantic import BaseModel, ConfigDict, ValidationError

logger = logging.getLogger(__name__)


class RegistryLoadError(ValueError):
    """Raised when a registry file is missing or is not a JSON object."""
    pass


class ReferrerRecord(BaseModel):
    """A single registry entry."""
    model_config = ConfigDict(frozen=True)

    type: str
    name: str


# =============================================================================
# BUILT-IN REFERRER DATABASE
# =============================================================================

# Search engines
SEARCH_ENGINES = {
    # Google (major TLDs)
    "google.com": "Google",
    "google.co.uk": "Google",
    "google.ca": "Google",
    "google.de": "Google",
    "google.fr": "Google",
    "google.es": "Google",
    "google.it": "Google",
    "google.nl": "Google",
    "google.com.au": "Google",
    "google.com.br": "Google",
    "google.co.in": "Google",
    "google.co.jp": "Google",

    # Microsoft/Bing
    "bing.com": "Bing",
    "msn.com": "MSN",

    # Yahoo
    "yahoo.com": "Yahoo",
    "yahoo.co.jp": "Yahoo",

    # Other search engines
    "duckduckgo.com": "DuckDuckGo",
    "baidu.com": "Baidu",
    "yandex.ru": "Yandex",
    "yandex.com": "Yandex",
    "ecosia.org": "Ecosia",
    "qwant.com": "Qwant",
    "startpage.com": "Startpage",
    "brave.com": "Brave Search",
    "kagi.com": "Kagi",
    "ask.com": "Ask.com",
    "naver.com": "Naver",
    "daum.net": "Daum",
    "seznam.cz": "Seznam",
    "sogou.com": "Sogou",
    "so.com": "Qihoo 360",
    "coccoc.com": "Coc Coc",
    "perplexity.ai": "Perplexity",
}

# Social media platforms
SOCIAL_PLATFORMS = {
    # Meta
    "facebook.com": "Facebook",
    "fb.com": "Facebook",
    "instagram.com": "Instagram",
    "threads.net": "Threads",
    "messenger.com": "Messenger",

    # Twitter/X
    "twitter.com": "Twitter",
    "x.com": "Twitter",
    "t.co": "Twitter",

    # LinkedIn
    "linkedin.com": "LinkedIn",
    "lnkd.in": "LinkedIn",

    # Video
    "youtube.com": "YouTube",
    "youtu.be": "YouTube",
    "tiktok.com": "TikTok",
    "twitch.tv": "Twitch",
    "vimeo.com": "Vimeo",

    # Communities
    "reddit.com": "Reddit",
    "news.ycombinator.com": "Hacker News",
    "pinterest.com": "Pinterest",
    "snapchat.com": "Snapchat",
    "discord.com": "Discord",
    "discordapp.com": "Discord",
    "telegram.org": "Telegram",
    "whatsapp.com": "WhatsApp",
    "mastodon.social": "Mastodon",
    "tumblr.com": "Tumblr",
    "medium.com": "Medium",
    "quora.com": "Quora",
    "flickr.com": "Flickr",
    "weibo.com": "Weibo",
    "vk.com": "VK",
    "ok.ru": "Odnoklassniki",
}

# Webmail and email marketing platforms
EMAIL_PROVIDERS = {
    "mail.google.com": "Gmail",
    "mail.yahoo.com": "Yahoo Mail",
    "outlook.live.com": "Outlook.com",
    "outlook.office.com": "Outlook",
    "mail.aol.com": "AOL Mail",
    "protonmail.com": "ProtonMail",
    "proton.me": "ProtonMail",
    "mail.zoho.com": "Zoho Mail",
    "fastmail.com": "Fastmail",
    "hey.com": "HEY",
    "tutanota.com": "Tutanota",
    "mailchimp.com": "Mailchimp",
    "campaign-archive.com": "Mailchimp",
    "list-manage.com": "Mailchimp",
    "sendgrid.net": "SendGrid",
    "constantcontact.com": "Constant Contact",
    "hubspot.com": "HubSpot",
    "klaviyo.com": "Klaviyo",
    "convertkit.com": "ConvertKit",
    "brevo.com": "Brevo",
    "substack.com": "Substack",
}

# Advertising networks
AD_NETWORKS = {
    "doubleclick.net": "Google Ads",
    "googleadservices.com": "Google Ads",
    "googlesyndication.com": "Google Ads",
    "ads.linkedin.com": "LinkedIn Ads",
    "ads.microsoft.com": "Microsoft Ads",
    "outbrain.com": "Outbrain",
    "taboola.com": "Taboola",
    "criteo.com": "Criteo",
}


def normalize_registry_key(domain: str) -> str:
    """Reduce a registry key to a bare, lowercase domain.

    Scheme, path and trailing dot are removed; a www. prefix is kept, since
    lookups only ever see ancestors of the referrer's hostname.
    """
    key = domain.strip().lower()
    if "://" in key:
        key = key.split("://", 1)[1]
    key = key.split("/", 1)[0]
    return key.rstrip(".")


class ReferrerRegistry(Mapping):
    """Immutable bare-domain to ReferrerRecord mapping."""

    def __init__(self, records: Mapping[str, ReferrerRecord]):
        self._records = MappingProxyType(
            {normalize_registry_key(domain): record for domain, record in records.items()}
        )

    def __getitem__(self, domain: str) -> ReferrerRecord:
        return self._records[domain]

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __repr__(self) -> str:
        return f"ReferrerRegistry({len(self)} domains)"

    def lookup(self, domain: str) -> ReferrerRecord | None:
        """Return the record registered for exactly this domain, if any."""
        return self._records.get(domain)


def _builtin_records() -> dict[str, ReferrerRecord]:
    records: dict[str, ReferrerRecord] = {}
    for type_, table in (
        ("search", SEARCH_ENGINES),
        ("social", SOCIAL_PLATFORMS),
        ("email", EMAIL_PROVIDERS),
        ("ads", AD_NETWORKS),
    ):
        for domain, name in table.items():
            records[domain] = ReferrerRecord(type=type_, name=name)
    return records


@lru_cache(maxsize=1)
def get_default_registry() -> ReferrerRegistry:
    """The built-in registry, constructed once per process."""
    return ReferrerRegistry(_builtin_records())


def load_registry(path: str | Path, include_builtin: bool = False) -> ReferrerRegistry:
    """
    Load a registry from a JSON file.

    The file must contain a single object mapping domains to
    ``{"type": ..., "name": ...}`` records. Invalid entries are skipped
    with a warning rather than failing the whole load.

    Args:
        path: Path to the JSON registry file
        include_builtin: Start from the built-in records and let the file
                         override or extend them

    Raises:
        RegistryLoadError: If the file can't be read or isn't a JSON object
    """
    path = Path(path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise RegistryLoadError(f"Could not load referrer registry {path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise RegistryLoadError(
            f"Referrer registry {path} must be a JSON object, got {type(raw).__name__}"
        )

    records = _builtin_records() if include_builtin else {}
    skipped = 0
    for domain, entry in raw.items():
        try:
            records[domain] = ReferrerRecord.model_validate(entry)
        except ValidationError as exc:
            skipped += 1
            logger.warning(f"Skipping registry entry {domain!r}: {exc.error_count()} invalid field(s)")

    registry = ReferrerRegistry(records)
    logger.debug(f"Loaded {len(registry)} referrer domains from {path} ({skipped} skipped)")
    return registry
