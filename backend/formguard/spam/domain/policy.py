"""Detection policy: every keyword list and limit used by the local detectors."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import yaml

logger = logging.getLogger(__name__)


DEFAULT_SPAM_KEYWORDS: tuple[str, ...] = (
    "viagra",
    "cialis",
    "casino",
    "poker",
    "lottery",
    "winner",
    "click here",
    "buy now",
    "limited time",
    "act now",
    "order now",
    "free money",
    "double your",
    "guarantee",
    "no risk",
    "discount",
    "pharmacy",
    "replica",
    "rolex",
    "weight loss",
    "make money",
    "work from home",
    "earn $",
    "seo service",
    "backlinks",
    "cheap",
)

DEFAULT_BUSINESS_TERMS: tuple[str, ...] = (
    "net 30",
    "credit application",
    "purchasing officer",
    "payment term",
    "feasible",
    "dear sales team",
    "kind regards",
    "best regards",
    "ascent resources",
)

DEFAULT_SPAM_REFERRERS: Mapping[str, str] = {
    "syndicatedsearch.goog": "Google Syndicated Search (spam bot)",
    "free-share-buttons": "Free Share Buttons spam",
    "social-buttons.com": "Social Buttons spam",
    "buttons-for-website.com": "Buttons for Website spam",
    "semalt.com": "Semalt spam crawler",
    "kambanat.com": "Kambanat spam",
    "ranksonic.com": "Ranksonic spam",
    "get-free-traffic": "Free traffic spam",
    "free-social-buttons": "Free Social Buttons spam",
    "darodar.com": "Darodar spam",
    "bestwebsitesawards.com": "Best Websites Awards spam",
    "buttons-for-your-website": "Buttons spam",
    "seo-platform.com": "SEO Platform spam",
    "simple-share-buttons": "Simple Share Buttons spam",
}

DEFAULT_SUSPICIOUS_REFERRER_PATTERNS: tuple[str, ...] = (
    "free-",
    "get-free",
    "best-seo",
    "seo-service",
    "social-button",
    "share-button",
)

DEFAULT_BOT_SIGNATURES: tuple[str, ...] = (
    "bot",
    "crawler",
    "spider",
    "scraper",
    "curl",
    "wget",
    "python",
    "java",
    "perl",
    "ruby",
    "go-http",
)

DEFAULT_DISPOSABLE_DOMAINS: tuple[str, ...] = (
    "tempmail.com",
    "throwaway.email",
    "guerrillamail.com",
    "mailinator.com",
    "10minutemail.com",
    "temp-mail.org",
    "yopmail.com",
    "maildrop.cc",
    "trashmail.com",
)

DEFAULT_URL_SHORTENERS: tuple[str, ...] = (
    "bit.ly",
    "tinyurl.com",
    "goo.gl",
    "t.co",
    "ow.ly",
    "is.gd",
    "buff.ly",
    "adf.ly",
)

DEFAULT_SUSPICIOUS_TLDS: tuple[str, ...] = (
    ".xyz",
    ".top",
    ".work",
    ".click",
    ".link",
    ".gq",
    ".ml",
    ".ga",
    ".cf",
    ".tk",
)

DEFAULT_LANGUAGE_WORDS: Mapping[str, tuple[str, ...]] = {
    "de": ("und", "der", "die", "das", "ich", "ist", "nicht", "mit", "für", "auf"),
    "en": ("the", "and", "for", "are", "but", "not", "you", "with", "from", "this"),
    "fr": ("le", "la", "les", "et", "de", "un", "une", "est", "pour", "dans"),
    "es": ("el", "la", "los", "las", "de", "un", "una", "es", "en", "para"),
    "it": ("il", "la", "di", "e", "un", "una", "per", "con", "non", "che"),
}


@dataclass(frozen=True)
class DetectionPolicy:
    """Lists and limits consulted by the pattern and behavior detectors."""

    spam_keywords: tuple[str, ...] = DEFAULT_SPAM_KEYWORDS
    business_terms: tuple[str, ...] = DEFAULT_BUSINESS_TERMS
    spam_referrers: Mapping[str, str] = field(default_factory=lambda: MappingProxyType(dict(DEFAULT_SPAM_REFERRERS)))
    suspicious_referrer_patterns: tuple[str, ...] = DEFAULT_SUSPICIOUS_REFERRER_PATTERNS
    bot_signatures: tuple[str, ...] = DEFAULT_BOT_SIGNATURES
    disposable_domains: tuple[str, ...] = DEFAULT_DISPOSABLE_DOMAINS
    url_shorteners: tuple[str, ...] = DEFAULT_URL_SHORTENERS
    suspicious_tlds: tuple[str, ...] = DEFAULT_SUSPICIOUS_TLDS
    excluded_fields: tuple[str, ...] = ()
    language_words: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: MappingProxyType(dict(DEFAULT_LANGUAGE_WORDS))
    )
    min_words: int = 5
    text_warn_chars: int = 120
    text_warn_words: int = 12
    text_block_chars: int = 240
    text_block_words: int = 24
    text_min_chars: int = 3
    max_link_score: float = 60.0

    @staticmethod
    def default() -> "DetectionPolicy":
        return DetectionPolicy()

    def with_overrides(self, **changes: Any) -> "DetectionPolicy":
        return replace(self, **changes)

    @staticmethod
    def from_mapping(config: Mapping[str, Any]) -> "DetectionPolicy":
        base = DetectionPolicy.default()
        limits = config.get("limits", {})
        if not isinstance(limits, Mapping):
            limits = {}

        def _terms(key: str, default: tuple[str, ...]) -> tuple[str, ...]:
            raw = config.get(key)
            if not isinstance(raw, (list, tuple)):
                return default
            return tuple(str(item).strip().lower() for item in raw if str(item).strip())

        def _limit(key: str, default: int) -> int:
            try:
                return int(limits.get(key, default))
            except (TypeError, ValueError):
                logger.warning("ignoring invalid policy limit %s=%r", key, limits.get(key))
                return default

        referrers_cfg = config.get("spam_referrers")
        if isinstance(referrers_cfg, Mapping):
            referrers = {str(key).lower(): str(value) for key, value in referrers_cfg.items()}
        elif isinstance(referrers_cfg, (list, tuple)):
            referrers = {str(item).lower(): "Known spam referrer" for item in referrers_cfg}
        else:
            referrers = dict(base.spam_referrers)

        language_cfg = config.get("language_words")
        languages = dict(base.language_words)
        if isinstance(language_cfg, Mapping):
            for code, words in language_cfg.items():
                if isinstance(words, (list, tuple)):
                    languages[str(code).lower()] = tuple(str(word).lower() for word in words)

        return DetectionPolicy(
            spam_keywords=_terms("spam_keywords", base.spam_keywords),
            business_terms=_terms("business_terms", base.business_terms),
            spam_referrers=MappingProxyType(referrers),
            suspicious_referrer_patterns=_terms("suspicious_referrer_patterns", base.suspicious_referrer_patterns),
            bot_signatures=_terms("bot_signatures", base.bot_signatures),
            disposable_domains=_terms("disposable_domains", base.disposable_domains),
            url_shorteners=_terms("url_shorteners", base.url_shorteners),
            suspicious_tlds=_terms("suspicious_tlds", base.suspicious_tlds),
            excluded_fields=tuple(str(item) for item in config.get("excluded_fields", ()) or ()),
            language_words=MappingProxyType(languages),
            min_words=_limit("min_words", base.min_words),
            text_warn_chars=_limit("text_warn_chars", base.text_warn_chars),
            text_warn_words=_limit("text_warn_words", base.text_warn_words),
            text_block_chars=_limit("text_block_chars", base.text_block_chars),
            text_block_words=_limit("text_block_words", base.text_block_words),
            text_min_chars=_limit("text_min_chars", base.text_min_chars),
            max_link_score=float(_limit("max_link_score", int(base.max_link_score))),
        )


def load_policy(path: str | Path | None) -> DetectionPolicy:
    """Load a detection policy from YAML, falling back to defaults."""

    if not path:
        return DetectionPolicy.default()
    try:
        with open(path, "r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle) or {}
    except FileNotFoundError:
        logger.warning("spam policy file missing at %s; using defaults", path)
        return DetectionPolicy.default()
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("spam policy file %s unreadable (%s); using defaults", path, exc)
        return DetectionPolicy.default()
    if not isinstance(loaded, Mapping):
        logger.warning("spam policy file %s is not a mapping; using defaults", path)
        return DetectionPolicy.default()
    return DetectionPolicy.from_mapping(loaded)
