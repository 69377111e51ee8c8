from formguard.spam.domain.behavior import BehaviorDetector, detect_language
from formguard.spam.domain.models import AmbientContext, Submission
from formguard.spam.domain.policy import DetectionPolicy, DEFAULT_LANGUAGE_WORDS

BROWSER_UA = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0 Safari/537.36"


def _context(**overrides) -> AmbientContext:
    values = {
        "elapsed_seconds": 10,
        "user_agent": BROWSER_UA,
        "referrer": "https://acme-corp.com/contact",
    }
    values.update(overrides)
    return AmbientContext(**values)


def _message(text: str) -> Submission:
    return Submission.from_values({"message": text}, {"message": "textarea"})


def test_clean_context_triggers_nothing() -> None:
    detector = BehaviorDetector(site_url="https://acme-corp.com")

    report = detector.analyze(_message("Hello there"), _context())

    assert not report.detected
    assert report.score == 0


def test_submission_time_thresholds() -> None:
    detector = BehaviorDetector(min_submission_time=3)

    instant = detector.check_submission_time(_context(elapsed_seconds=0.4))
    quick = detector.check_submission_time(_context(elapsed_seconds=2))

    assert instant is not None and instant.score == 70
    assert quick is not None and quick.score == 50
    assert detector.check_submission_time(_context(elapsed_seconds=3)) is None
    assert detector.check_submission_time(_context(elapsed_seconds=None)) is None


def test_submission_time_uses_clock_with_render_timestamp() -> None:
    detector = BehaviorDetector(min_submission_time=5, clock=lambda: 1002.0)

    result = detector.check_submission_time(AmbientContext(rendered_at=1000.0))

    assert result is not None
    assert result.score == 50


def test_time_check_can_be_disabled() -> None:
    detector = BehaviorDetector(time_check=False)

    report = detector.analyze(_message("Hello"), _context(elapsed_seconds=0.1))

    assert not report.detected


def test_user_agent_checks() -> None:
    detector = BehaviorDetector()

    missing = detector.check_user_agent(_context(user_agent=""))
    bot = detector.check_user_agent(_context(user_agent="python-requests/2.31"))

    assert missing is not None and missing.score == 30
    assert bot is not None and bot.score == 40
    assert bot.evidence["signature"] == "python"
    assert detector.check_user_agent(_context()) is None


def test_referrer_checks() -> None:
    detector = BehaviorDetector(site_url="https://acme-corp.com/")

    missing = detector.check_referrer(_context(referrer=None))
    external = detector.check_referrer(_context(referrer="https://elsewhere.net/page"))

    assert missing is not None and missing.score == 10
    assert external is not None and external.score == 15
    assert detector.check_referrer(_context(referrer="https://acme-corp.com/contact")) is None
    assert BehaviorDetector().check_referrer(_context(referrer="https://elsewhere.net/page")) is None


def test_spam_referrer_lists() -> None:
    detector = BehaviorDetector()

    known = detector.check_spam_referrer(_context(referrer="https://semalt.com/crawl"))
    pattern = detector.check_spam_referrer(_context(referrer="https://best-seo-offers.net"))

    assert known is not None and known.score == 60
    assert pattern is not None and pattern.score == 40
    assert detector.check_spam_referrer(_context()) is None


def test_missing_context_scores_user_agent_and_referrer() -> None:
    report = BehaviorDetector().analyze(_message("Hello"), None)

    checks = {result.check: result.score for result in report.triggered}
    assert checks == {"user_agent": 30, "referrer": 10}
    assert report.score == 30


def test_detect_language() -> None:
    assert detect_language("Ich bin nicht sicher und das ist gut", DEFAULT_LANGUAGE_WORDS) == "de"
    assert detect_language("This is the thing for you and me", DEFAULT_LANGUAGE_WORDS) == "en"
    assert detect_language("xyz", DEFAULT_LANGUAGE_WORDS) is None


def test_language_mismatch_uses_locale_then_setting() -> None:
    detector = BehaviorDetector(expected_language="en", language_check=True)
    german = _message("Ich bin nicht sicher und das ist wirklich gut so")

    mismatch = detector.check_language(german, _context())
    assert mismatch is not None
    assert mismatch.score == 20
    assert mismatch.evidence == {"expected": "en", "detected": "de"}

    assert detector.check_language(german, _context(locale="de-AT")) is None


def test_language_check_disabled_by_default() -> None:
    german = _message("Ich bin nicht sicher und das ist wirklich gut so")

    report = BehaviorDetector(DetectionPolicy.default()).analyze(german, _context())

    assert not report.detected
