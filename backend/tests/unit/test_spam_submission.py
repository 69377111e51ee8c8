import pytest

from formguard.spam.domain.models import AmbientContext, FieldKind, FormField, Submission


def test_build_maps_input_types_to_kinds() -> None:
    submission = Submission.build(
        [
            FormField(field_id="name", value="Jane Doe", input_type="text"),
            FormField(field_id="message", value="Hello there", input_type="textarea"),
            FormField(field_id="mail", value="jane@acme-corp.com", input_type="email"),
            FormField(field_id="site", value="https://acme-corp.com", input_type="website"),
            FormField(field_id="tel", value="+43 660 1234567", input_type="phone"),
            FormField(field_id="rating", value="5", input_type="rating"),
        ]
    )

    assert submission.kinds["name"] is FieldKind.SHORT_TEXT
    assert submission.kinds["message"] is FieldKind.LONG_TEXT
    assert submission.kinds["mail"] is FieldKind.EMAIL
    assert submission.kinds["site"] is FieldKind.URL
    assert submission.kinds["tel"] is FieldKind.PHONE
    assert submission.kinds["rating"] is FieldKind.SHORT_TEXT
    assert list(submission.values) == ["name", "message", "mail", "site", "tel", "rating"]


def test_build_drops_hidden_and_blank_fields() -> None:
    fields = [
        {"id": "token", "type": "hidden", "value": "abc123"},
        {"id": "name", "type": "text", "value": "   "},
        {"id": "message", "type": "textarea", "value": "Real content"},
    ]

    submission = Submission.build(fields)
    assert dict(submission.values) == {"message": "Real content"}

    kept = Submission.build(fields, exclude_hidden=False)
    assert kept.values["token"] == "abc123"
    assert kept.kinds["token"] is FieldKind.SHORT_TEXT


def test_build_honours_excluded_fields_and_filter() -> None:
    fields = [
        FormField(field_id="utm_campaign", value="spring-sale"),
        FormField(field_id="company", value="Acme"),
        FormField(field_id="message", value="Please call me", input_type="textarea"),
    ]

    submission = Submission.build(
        fields,
        excluded_fields=["utm_campaign"],
        field_filter=lambda item: item.field_id != "company",
    )

    assert list(submission.values) == ["message"]


def test_list_values_are_joined() -> None:
    submission = Submission.build([FormField(field_id="topics", value=["sales", None, "support"], input_type="checkbox")])
    assert submission.values["topics"] == "sales support"


def test_submission_is_immutable() -> None:
    submission = Submission.from_values({"message": "hi"}, {"message": "textarea"})
    with pytest.raises(TypeError):
        submission.values["message"] = "changed"  # type: ignore[index]


def test_without_removes_from_grouping() -> None:
    submission = Submission.from_values(
        {"message": "Hello", "source": "newsletter"},
        {"message": "textarea", "source": "text"},
    )

    trimmed = submission.without(["source"])

    assert trimmed.group(FieldKind.SHORT_TEXT) == ()
    assert trimmed.group(FieldKind.LONG_TEXT) == ("Hello",)
    assert submission.without(["missing"]) is submission


def test_semantic_payload_normalizes_case_and_whitespace() -> None:
    first = Submission.from_values({"message": "Hello   World"}, {"message": "textarea"})
    second = Submission.from_values({"body": "hello world"}, {"body": "textarea"})

    assert first.semantic_payload() == second.semantic_payload() == {"long_text": ["hello world"]}


def test_is_blank() -> None:
    assert Submission.from_values({}).is_blank
    assert not Submission.from_values({"message": "x"}).is_blank


def test_context_elapsed_from_timestamps() -> None:
    assert AmbientContext(elapsed_seconds=4).elapsed() == 4.0
    assert AmbientContext(rendered_at=100.0, submitted_at=102.5).elapsed() == 2.5
    assert AmbientContext(rendered_at=100.0).elapsed(now=110.0) == 10.0
    assert AmbientContext().elapsed() is None


def test_context_language_from_locale() -> None:
    assert AmbientContext(locale="de_AT").language == "de"
    assert AmbientContext(locale="en-US").language == "en"
    assert AmbientContext().language is None
