"""Content heuristics over the submitted field values."""

from __future__ import annotations

import ipaddress
import logging
import re
from collections import Counter
from typing import Callable, Optional
from urllib.parse import urlsplit

from email_validator import EmailNotValidError, validate_email

from formguard.obs import metrics as obs_metrics
from formguard.spam.domain.models import DetectorReport, DetectorResult, FieldKind, Submission
from formguard.spam.domain.policy import DetectionPolicy

logger = logging.getLogger(__name__)

DETECTOR_NAME = "pattern"

LINK_RE = re.compile(r"(https?://[^\s]+|www\.[^\s]+|(?:[a-z0-9-]+\.)+[a-z]{2,}(?:/[^\s]*)?)", re.IGNORECASE)
EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
PHONE_RE = re.compile(r"(?:(?:\+|00)?\d{1,3}[\s.-]?)?(?:\(?\d{2,4}\)?[\s.-]?)?\d(?:[\s.-]?\d){6,}")
WORD_RE = re.compile(r"[^\W\d_]{2,}")
BARE_DOMAIN_RE = re.compile(r"^(?:https?://)?(?:[a-z0-9-]+\.)+[a-z]{2,}(?:/\S*)?$", re.IGNORECASE)
RAW_IP_RE = re.compile(r"https?://\d{1,3}(?:\.\d{1,3}){3}")
SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")

SUSPICIOUS_PATTERNS: tuple[tuple[str, re.Pattern[str], str], ...] = (
    ("character_repetition", re.compile(r"(\w)\1{5,}"), "Excessive character repetition"),
    ("excessive_special_chars", re.compile(r"[^\w\s]{5,}"), "Excessive special characters"),
    ("digit_run", re.compile(r"\d{10,}"), "Suspicious number sequence"),
    ("script_tag", re.compile(r"<script", re.IGNORECASE), "Script tag detected"),
    ("bbcode_link", re.compile(r"\[url=", re.IGNORECASE), "BBCode link detected"),
    ("malformed_link", re.compile(r"\{link:", re.IGNORECASE), "Malformed link syntax"),
)

CheckFn = Callable[[Submission], Optional[DetectorResult]]


def count_links(text: str) -> int:
    return len(LINK_RE.findall(text))


def is_valid_email(value: str) -> bool:
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def _looks_like_url(value: str) -> bool:
    parts = urlsplit(value)
    return parts.scheme in {"http", "https"} and bool(parts.netloc)


class PatternDetector:
    """Independent content checks scored 0-100; the report score is the maximum."""

    name = DETECTOR_NAME

    def __init__(self, policy: DetectionPolicy | None = None) -> None:
        self.policy = policy or DetectionPolicy.default()

    def checks(self) -> list[tuple[str, CheckFn]]:
        return [
            ("min_words", self.check_min_words),
            ("excessive_caps", self.check_excessive_caps),
            ("word_density", self.check_word_density),
            ("spam_keywords", self.check_spam_keywords),
            ("suspicious_patterns", self.check_suspicious_patterns),
            ("url_in_text", self.check_url_in_text),
            ("email_in_text", self.check_email_in_text),
            ("phone_in_text", self.check_phone_in_text),
            ("text_length", self.check_text_length),
            ("text_min_length", self.check_text_min_length),
            ("email_in_message", self.check_email_in_message),
            ("all_caps_sentences", self.check_all_caps_sentences),
            ("excessive_exclamations", self.check_excessive_exclamations),
            ("business_terminology", self.check_business_terminology),
            ("disposable_email", self.check_disposable_email),
            ("email_validity", self.check_email_validity),
            ("url_field", self.check_url_field),
            ("website_validity", self.check_website_validity),
            ("links", self.check_links),
        ]

    def analyze(self, submission: Submission) -> DetectorReport:
        submission = submission.without(self.policy.excluded_fields)
        results: list[DetectorResult] = []
        for name, check in self.checks():
            try:
                result = check(submission)
            except Exception:
                logger.exception("pattern check failed", extra={"check": name})
                obs_metrics.DETECTOR_FAILURES.labels(detector=DETECTOR_NAME, check=name).inc()
                continue
            if result is not None and result.detected:
                results.append(result)
        return DetectorReport(detector=DETECTOR_NAME, results=tuple(results))

    # --- helpers ---------------------------------------------------------

    def _long_text(self, submission: Submission) -> tuple[str, ...]:
        values = submission.group(FieldKind.LONG_TEXT)
        if values:
            return values
        # no textarea on the form: treat long-ish free text as the message
        fallback = []
        for value in submission.values.values():
            if len(value) < 20 or _looks_like_url(value) or is_valid_email(value):
                continue
            fallback.append(value)
        return tuple(fallback)

    def _free_text(self, submission: Submission) -> str:
        return submission.text_content(FieldKind.SHORT_TEXT, FieldKind.LONG_TEXT) or submission.text_content()

    # --- content volume --------------------------------------------------

    def check_min_words(self, submission: Submission) -> Optional[DetectorResult]:
        minimum = self.policy.min_words
        count = 0
        for value in self._long_text(submission):
            count += sum(1 for token in value.split() if WORD_RE.search(token))
        if count >= minimum:
            return None
        return DetectorResult.hit(
            "min_words",
            80,
            f"Not enough words in text fields ({count} < {minimum})",
            words=count,
            minimum=minimum,
        )

    def check_text_length(self, submission: Submission) -> Optional[DetectorResult]:
        policy = self.policy
        level = 0
        samples: list[str] = []
        for value in submission.group(FieldKind.SHORT_TEXT):
            length = len(value)
            words = len(value.split())
            if length > policy.text_block_chars or words > policy.text_block_words:
                level = max(level, 2)
                samples.append(f"{length} chars, {words} words over block threshold")
            elif length > policy.text_warn_chars or words > policy.text_warn_words:
                level = max(level, 1)
                samples.append(f"{length} chars, {words} words over warn threshold")
        if level == 0:
            return None
        if level == 1:
            return DetectorResult.hit(
                "text_length",
                20,
                "Long content in single-line text field (warning)",
                soft_warning=True,
                samples=samples,
            )
        return DetectorResult.hit(
            "text_length",
            40,
            "Excessively long content in single-line text field",
            samples=samples,
        )

    def check_text_min_length(self, submission: Submission) -> Optional[DetectorResult]:
        minimum = max(1, self.policy.text_min_chars)
        short = [value for value in submission.group(FieldKind.SHORT_TEXT) if 0 < len(value.strip()) < minimum]
        if not short:
            return None
        return DetectorResult.hit(
            "text_min_length",
            20,
            f"Single-line text too short (< {minimum} chars)",
            soft_warning=True,
            fields=len(short),
        )

    # --- statistical anomalies -------------------------------------------

    def check_excessive_caps(self, submission: Submission) -> Optional[DetectorResult]:
        content = submission.text_content()
        if len(content) < 20:
            return None
        upper = sum(1 for char in content if "A" <= char <= "Z")
        lower = sum(1 for char in content if "a" <= char <= "z")
        total = upper + lower
        if not total:
            return None
        ratio = upper / total
        if ratio <= 0.5:
            return None
        return DetectorResult.hit("excessive_caps", 20, f"Excessive capital letters ({ratio:.0%})", ratio=round(ratio, 3))

    def check_word_density(self, submission: Submission) -> Optional[DetectorResult]:
        tokens = [token.strip(".,;:!?\"'()").lower() for token in submission.text_content().split()]
        tokens = [token for token in tokens if token]
        if not tokens:
            return None
        counts = Counter(token for token in tokens if len(token) > 3)
        for word, count in counts.most_common():
            if count < 3:
                break
            density = count / len(tokens)
            if density > 0.15:
                return DetectorResult.hit(
                    "word_density",
                    15,
                    f'Word "{word}" repeated {count} times ({density:.1%} of text)',
                    word=word,
                    count=count,
                )
        return None

    def check_suspicious_patterns(self, submission: Submission) -> Optional[DetectorResult]:
        content = self._free_text(submission)
        for key, pattern, description in SUSPICIOUS_PATTERNS:
            if pattern.search(content):
                return DetectorResult.hit("suspicious_patterns", 25, description, pattern=key)
        return None

    def check_all_caps_sentences(self, submission: Submission) -> Optional[DetectorResult]:
        message = " ".join(submission.group(FieldKind.LONG_TEXT))
        for sentence in SENTENCE_SPLIT_RE.split(message):
            sentence = sentence.strip()
            if len(sentence) <= 10:
                continue
            letters = "".join(char for char in sentence if char.isascii() and char.isalpha())
            if letters and letters == letters.upper():
                return DetectorResult.hit("all_caps_sentences", 25, "All-caps sentence detected")
        return None

    def check_excessive_exclamations(self, submission: Submission) -> Optional[DetectorResult]:
        message = " ".join(submission.group(FieldKind.LONG_TEXT))
        if "!!!!!" in message:
            return DetectorResult.hit("excessive_exclamations", 15, "Excessive exclamation marks (5+ in sequence)")
        return None

    # --- term lists --------------------------------------------------------

    def check_spam_keywords(self, submission: Submission) -> Optional[DetectorResult]:
        content = submission.text_content().lower()
        found = [keyword for keyword in self.policy.spam_keywords if keyword in content]
        if not found:
            return None
        return DetectorResult.hit(
            "spam_keywords",
            min(len(found) * 15, 50),
            "Suspicious keywords found: " + ", ".join(found),
            keywords=found,
        )

    def check_business_terminology(self, submission: Submission) -> Optional[DetectorResult]:
        message = " ".join(submission.group(FieldKind.LONG_TEXT)).lower()
        if not message:
            return None
        found = [term for term in self.policy.business_terms if term in message]
        if not found:
            return None
        return DetectorResult.hit(
            "business_terminology",
            min(len(found) * 5, 20),
            "Business terminology found: " + ", ".join(found),
            terms=found,
        )

    # --- contact info in single-line fields -------------------------------

    def check_url_in_text(self, submission: Submission) -> Optional[DetectorResult]:
        content = " ".join(submission.group(FieldKind.SHORT_TEXT))
        if content and LINK_RE.search(content):
            return DetectorResult.hit("url_in_text", 40, "URL found in single-line text field", soft_warning=True)
        return None

    def check_email_in_text(self, submission: Submission) -> Optional[DetectorResult]:
        content = " ".join(submission.group(FieldKind.SHORT_TEXT))
        if content and EMAIL_RE.search(content):
            return DetectorResult.hit("email_in_text", 40, "Email address found in single-line text field", soft_warning=True)
        return None

    def check_phone_in_text(self, submission: Submission) -> Optional[DetectorResult]:
        content = " ".join(submission.group(FieldKind.SHORT_TEXT))
        if content and PHONE_RE.search(content):
            return DetectorResult.hit("phone_in_text", 40, "Phone number found in single-line text field", soft_warning=True)
        return None

    def check_email_in_message(self, submission: Submission) -> Optional[DetectorResult]:
        message = " ".join(submission.group(FieldKind.LONG_TEXT))
        if message and EMAIL_RE.search(message):
            return DetectorResult.hit(
                "email_in_message",
                20,
                "Email address found in message content",
                soft_warning=True,
            )
        return None

    # --- field-type validity ----------------------------------------------

    def check_disposable_email(self, submission: Submission) -> Optional[DetectorResult]:
        for value in submission.group(FieldKind.EMAIL):
            if "@" not in value:
                continue
            domain = value.rsplit("@", 1)[1].strip().lower()
            if domain in self.policy.disposable_domains:
                return DetectorResult.hit("disposable_email", 40, "Disposable email address detected", domain=domain)
        return None

    def check_email_validity(self, submission: Submission) -> Optional[DetectorResult]:
        issues: list[str] = []
        for value in submission.group(FieldKind.EMAIL):
            lowered = value.lower()
            if "http://" in lowered or "https://" in lowered or "www." in lowered:
                issues.append("URL found in email field")
            if not is_valid_email(value):
                issues.append("Invalid email address format")
        if not issues:
            return None
        return DetectorResult.hit("email_validity", 40, "; ".join(dict.fromkeys(issues)))

    def check_url_field(self, submission: Submission) -> Optional[DetectorResult]:
        policy = self.policy
        score = 0
        reasons: list[str] = []
        for url in submission.group(FieldKind.URL):
            lowered = url.lower()
            if "?" in url:
                score = max(score, 80)
                reasons.append("URL with parameters in website field")
            host = _host_of(lowered)
            shortener = next((item for item in policy.url_shorteners if host == item or host.endswith("." + item)), None)
            if shortener:
                score = max(score, 60)
                reasons.append(f"URL shortener detected ({shortener})")
            tld = next((item for item in policy.suspicious_tlds if host.endswith(item) or lowered.endswith(item)), None)
            if tld:
                score = max(score, 50)
                reasons.append(f"Suspicious TLD ({tld})")
            if RAW_IP_RE.search(lowered) or _is_ip(host):
                score = max(score, 60)
                reasons.append("IP address in URL")
        if not score:
            return None
        return DetectorResult.hit("url_field", min(score, 80), ", ".join(dict.fromkeys(reasons)))

    def check_website_validity(self, submission: Submission) -> Optional[DetectorResult]:
        issues: list[str] = []
        score = 0
        for url in submission.group(FieldKind.URL):
            if EMAIL_RE.search(url):
                issues.append("Email address provided in website field")
                score = max(score, 40)
                continue
            if not _looks_like_url(url) and not BARE_DOMAIN_RE.match(url):
                issues.append("Invalid website URL format")
                score = max(score, 20)
        if not issues:
            return None
        return DetectorResult.hit(
            "website_validity",
            min(score, 60),
            "; ".join(dict.fromkeys(issues)),
            soft_warning=score <= 20,
        )

    # --- link density -------------------------------------------------------

    def check_links(self, submission: Submission) -> Optional[DetectorResult]:
        content = " ".join(self._long_text(submission))
        links = count_links(content)
        if links == 0:
            return None
        if links == 1:
            return DetectorResult.hit("links", 20, "Single link in text field", soft_warning=True, links=1)
        score = min(30 + 10 * (links - 2), self.policy.max_link_score)
        return DetectorResult.hit("links", score, f"Multiple links detected ({links})", links=links)


def _host_of(url: str) -> str:
    target = url if "://" in url else f"http://{url}"
    try:
        return (urlsplit(target).hostname or "").lower()
    except ValueError:
        return ""


def _is_ip(host: str) -> bool:
    if not host:
        return False
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return False
    return True
