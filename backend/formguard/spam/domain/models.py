"""Data models shared by the spam detectors and the decision engine."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping, Optional


class FieldKind(str, Enum):
    """Semantic grouping of submitted fields."""

    SHORT_TEXT = "short_text"
    LONG_TEXT = "long_text"
    EMAIL = "email"
    URL = "url"
    PHONE = "phone"


_INPUT_TYPE_KINDS: dict[str, FieldKind] = {
    "text": FieldKind.SHORT_TEXT,
    "name": FieldKind.SHORT_TEXT,
    "hidden": FieldKind.SHORT_TEXT,
    "textarea": FieldKind.LONG_TEXT,
    "email": FieldKind.EMAIL,
    "website": FieldKind.URL,
    "url": FieldKind.URL,
    "phone": FieldKind.PHONE,
    "tel": FieldKind.PHONE,
}

_KIND_ORDER = tuple(FieldKind)


def kind_for_input_type(input_type: str | FieldKind | None) -> FieldKind:
    """Map a host form input type (or an explicit kind) to a semantic kind."""

    if isinstance(input_type, FieldKind):
        return input_type
    key = (input_type or "text").strip().lower()
    try:
        return FieldKind(key)
    except ValueError:
        return _INPUT_TYPE_KINDS.get(key, FieldKind.SHORT_TEXT)


@dataclass(frozen=True)
class FormField:
    """One field as supplied by the host form framework."""

    field_id: str
    value: Any
    input_type: str = "text"
    label: Optional[str] = None

    @property
    def is_hidden(self) -> bool:
        return self.input_type.strip().lower() == "hidden"

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "FormField":
        return FormField(
            field_id=str(data.get("id") or data.get("field_id")),
            value=data.get("value"),
            input_type=str(data.get("type") or data.get("input_type") or "text"),
            label=data.get("label"),
        )


def _coerce_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple, set)):
        return " ".join(str(item).strip() for item in value if item is not None and str(item).strip())
    return str(value).strip()


@dataclass(frozen=True)
class Submission:
    """Immutable view of one form submission.

    ``values`` keeps the submitted order; ``kinds`` assigns every field to a
    semantic group used by the targeted checks.
    """

    values: Mapping[str, str]
    kinds: Mapping[str, FieldKind]

    @classmethod
    def build(
        cls,
        fields: Iterable[FormField | Mapping[str, Any]],
        *,
        exclude_hidden: bool = True,
        excluded_fields: Iterable[str] = (),
        field_filter: Optional[Callable[[FormField], bool]] = None,
    ) -> "Submission":
        excluded = set(excluded_fields)
        values: dict[str, str] = {}
        kinds: dict[str, FieldKind] = {}
        for raw in fields:
            item = raw if isinstance(raw, FormField) else FormField.from_dict(raw)
            if item.field_id in excluded:
                continue
            if exclude_hidden and item.is_hidden:
                continue
            if field_filter is not None and not field_filter(item):
                continue
            value = _coerce_value(item.value)
            if not value:
                continue
            values[item.field_id] = value
            kinds[item.field_id] = kind_for_input_type(item.input_type)
        return cls(values=MappingProxyType(values), kinds=MappingProxyType(kinds))

    @classmethod
    def from_values(
        cls,
        values: Mapping[str, Any],
        kinds: Optional[Mapping[str, str | FieldKind]] = None,
    ) -> "Submission":
        kinds = kinds or {}
        fields = [
            FormField(field_id=key, value=value, input_type=_input_type_name(kinds.get(key)))
            for key, value in values.items()
        ]
        return cls.build(fields, exclude_hidden=False)

    def group(self, kind: FieldKind) -> tuple[str, ...]:
        return tuple(value for key, value in self.values.items() if self.kinds.get(key) is kind)

    @property
    def grouped(self) -> Mapping[FieldKind, tuple[str, ...]]:
        return MappingProxyType({kind: self.group(kind) for kind in _KIND_ORDER})

    @property
    def is_blank(self) -> bool:
        return not any(value.strip() for value in self.values.values())

    def text_content(self, *kinds: FieldKind) -> str:
        if not kinds:
            return " ".join(self.values.values())
        return " ".join(value for key, value in self.values.items() if self.kinds.get(key) in kinds)

    def without(self, field_ids: Iterable[str]) -> "Submission":
        dropped = set(field_ids)
        if not dropped & set(self.values):
            return self
        values = {key: value for key, value in self.values.items() if key not in dropped}
        kinds = {key: kind for key, kind in self.kinds.items() if key not in dropped}
        return Submission(values=MappingProxyType(values), kinds=MappingProxyType(kinds))

    def semantic_payload(self) -> dict[str, list[str]]:
        """Normalized grouped values used for content hashing."""

        payload: dict[str, list[str]] = {}
        for kind in _KIND_ORDER:
            items = [" ".join(value.lower().split()) for value in self.group(kind)]
            if items:
                payload[kind.value] = items
        return payload


def _input_type_name(kind: str | FieldKind | None) -> str:
    if kind is None:
        return "text"
    if isinstance(kind, FieldKind):
        return kind.value
    return str(kind)


@dataclass(frozen=True)
class AmbientContext:
    """Request-level signals supplied by the caller."""

    elapsed_seconds: Optional[float] = None
    rendered_at: Optional[float] = None
    submitted_at: Optional[float] = None
    user_agent: Optional[str] = None
    referrer: Optional[str] = None
    locale: Optional[str] = None

    def elapsed(self, *, now: Optional[float] = None) -> Optional[float]:
        if self.elapsed_seconds is not None:
            return float(self.elapsed_seconds)
        if self.rendered_at is None:
            return None
        submitted = self.submitted_at if self.submitted_at is not None else (now or time.time())
        return float(submitted) - float(self.rendered_at)

    @property
    def language(self) -> Optional[str]:
        if not self.locale:
            return None
        return self.locale.replace("-", "_").split("_", 1)[0].lower() or None


@dataclass(frozen=True)
class DetectorResult:
    """Outcome of a single independent check, scored 0-100."""

    check: str
    score: float = 0.0
    detected: bool = False
    reason: str = ""
    soft_warning: bool = False
    evidence: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def hit(cls, check: str, score: float, reason: str, *, soft_warning: bool = False, **evidence: Any) -> "DetectorResult":
        return cls(
            check=check,
            score=max(0.0, min(100.0, float(score))),
            detected=True,
            reason=reason,
            soft_warning=soft_warning,
            evidence=dict(evidence),
        )

    @property
    def normalized(self) -> float:
        return self.score / 100.0

    def as_dict(self) -> dict[str, Any]:
        return {
            "check": self.check,
            "score": self.score,
            "detected": self.detected,
            "reason": self.reason,
            "soft_warning": self.soft_warning,
            "evidence": dict(self.evidence),
        }


@dataclass(frozen=True)
class DetectorReport:
    """All triggered checks of one detector; its score is the maximum, never the sum."""

    detector: str
    results: tuple[DetectorResult, ...] = ()

    @property
    def triggered(self) -> tuple[DetectorResult, ...]:
        return tuple(result for result in self.results if result.detected)

    @property
    def top(self) -> Optional[DetectorResult]:
        triggered = self.triggered
        if not triggered:
            return None
        # ties resolve to the non-soft check so a hard signal is never masked
        return max(triggered, key=lambda result: (result.score, not result.soft_warning))

    @property
    def score(self) -> float:
        top = self.top
        return top.score if top else 0.0

    @property
    def normalized(self) -> float:
        return self.score / 100.0

    @property
    def detected(self) -> bool:
        return bool(self.triggered)

    @property
    def soft_warning(self) -> bool:
        top = self.top
        return bool(top and top.soft_warning)

    @property
    def has_soft_warning(self) -> bool:
        return any(result.soft_warning for result in self.triggered)

    def hard_score(self) -> float:
        """Highest score among triggered checks that are not soft warnings."""

        return max((result.score for result in self.triggered if not result.soft_warning), default=0.0)

    @property
    def reasons(self) -> list[str]:
        return [result.reason for result in self.triggered if result.reason]

    @property
    def reason(self) -> str:
        return "; ".join(self.reasons)

    @property
    def evidence(self) -> dict[str, Any]:
        return {result.check: dict(result.evidence) for result in self.triggered if result.evidence}

    def as_dict(self) -> dict[str, Any]:
        return {
            "detector": self.detector,
            "score": self.score,
            "detected": self.detected,
            "soft_warning": self.soft_warning,
            "reason": self.reason,
            "checks": [result.as_dict() for result in self.triggered],
        }


@dataclass(frozen=True)
class ModerationResult:
    """Normalized answer from the external moderation service (score in [0, 1])."""

    score: float
    is_spam: bool
    reason: str
    error: bool = False
    skipped: bool = False
    categories: tuple[str, ...] = ()
    confidence: Optional[str] = None
    detected_language: Optional[str] = None
    method: str = "moderation_api"

    @classmethod
    def neutral(cls, reason: str, *, method: str = "moderation_api") -> "ModerationResult":
        return cls(score=0.5, is_spam=False, reason=reason, error=True, method=method)

    @classmethod
    def unparseable(cls, reason: str, *, method: str = "chat") -> "ModerationResult":
        return cls(score=0.0, is_spam=False, reason=reason, error=True, method=method)

    @classmethod
    def skipped_result(cls, reason: str) -> "ModerationResult":
        return cls(score=0.0, is_spam=False, reason=reason, error=True, skipped=True, method="skipped")

    def as_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "is_spam": self.is_spam,
            "reason": self.reason,
            "error": self.error,
            "skipped": self.skipped,
            "categories": list(self.categories),
            "confidence": self.confidence,
            "detected_language": self.detected_language,
            "method": self.method,
        }


@dataclass(frozen=True)
class AggregateResult:
    """Evidence bundle combining every invoked detector."""

    normalized_score: float
    preliminary_score: float
    signals: Mapping[str, DetectorReport]
    moderation_invoked: bool = False
    moderation: Optional[ModerationResult] = None
    duplicate: bool = False
    soft_warning_only: bool = False

    @property
    def reasons(self) -> list[str]:
        reasons: list[str] = []
        for report in self.signals.values():
            reasons.extend(report.reasons)
        return reasons

    def as_dict(self) -> dict[str, Any]:
        return {
            "normalized_score": self.normalized_score,
            "preliminary_score": self.preliminary_score,
            "moderation_invoked": self.moderation_invoked,
            "moderation": self.moderation.as_dict() if self.moderation else None,
            "duplicate": self.duplicate,
            "soft_warning_only": self.soft_warning_only,
            "signals": {name: report.as_dict() for name, report in self.signals.items()},
        }


class VerdictAction(str, Enum):
    ALLOW = "allow"
    SOFT_WARNING = "soft_warning"
    BLOCK = "block"


@dataclass(frozen=True)
class Verdict:
    """Final decision for one submission; never persisted by the engine."""

    is_spam: bool
    action: VerdictAction
    score: float
    strikes: int
    evidence: AggregateResult
    threshold: float = 0.7
    content_hash: str = ""
    block_action: str = "reject"

    @property
    def reasons(self) -> list[str]:
        return self.evidence.reasons

    @property
    def is_correction(self) -> bool:
        """True when a submitter with an active strike sent something acceptable."""

        return self.action is VerdictAction.ALLOW and self.strikes > 0

    def detection_methods(self) -> list[str]:
        methods: list[str] = []
        for name, report in self.evidence.signals.items():
            if report.normalized >= self.threshold or (self.evidence.soft_warning_only and report.soft_warning):
                methods.append(name)
        moderation = self.evidence.moderation
        if moderation is not None and moderation.is_spam and "moderation" not in methods:
            methods.append("moderation")
        return methods

    def as_dict(self) -> dict[str, Any]:
        return {
            "is_spam": self.is_spam,
            "action": self.action.value,
            "score": self.score,
            "strikes": self.strikes,
            "threshold": self.threshold,
            "block_action": self.block_action,
            "reasons": self.reasons,
            "evidence": self.evidence.as_dict(),
        }
