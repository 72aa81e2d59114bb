from __future__ import annotations

import json

from google.api_core import exceptions as google_exceptions
import pytest

from landingkit.content_assistant import (
    PRODUCT_CONTENT_KEYS,
    ContentAssistant,
    ContentAssistantError,
    ContentErrorKind,
    GenerationOptions,
    ProductBrief,
    classify_error,
    extract_first_json_value,
    strip_code_fences,
)


def _assistant_returning(text: str, prompts: list[str] | None = None) -> ContentAssistant:
    assistant = ContentAssistant(api_key="test_key", model="gemini-test")

    def fake_generate_text(prompt: str, *, temperature: float, max_output_tokens: int) -> str:
        if prompts is not None:
            prompts.append(prompt)
        return text

    assistant._generate_text = fake_generate_text  # type: ignore[method-assign]
    return assistant


def test_strip_code_fences_handles_json_fence():
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('```\n["x"]\n```') == '["x"]'
    assert strip_code_fences(' {"a": 1} ') == '{"a": 1}'


def test_extract_first_json_value_skips_prose_and_braces_in_strings():
    text = 'Here you go:\n{"hero_title": "Stay {cool}", "nested": {"a": [1, 2]}}\nEnjoy!'

    assert extract_first_json_value(text) == {"hero_title": "Stay {cool}", "nested": {"a": [1, 2]}}
    assert extract_first_json_value('Titles: ["One", "Two"]') == ["One", "Two"]


def test_extract_first_json_value_rejects_truncated_output():
    with pytest.raises(ValueError):
        extract_first_json_value('{"hero_title": "Unfinished')


def test_generate_landing_page_content_parses_fenced_json():
    prompts: list[str] = []
    payload = {"title": "Linen Shirt", "hero_title": "Breathe easy", "review1_stars": 5}
    assistant = _assistant_returning(f"```json\n{json.dumps(payload)}\n```", prompts)

    content = assistant.generate_landing_page_content(
        "A breathable linen shirt",
        GenerationOptions(tone="luxury", include_reviews=False, target_audience="men 30-45"),
    )

    assert content == {"title": "Linen Shirt", "hero_title": "Breathe easy", "review1_stars": "5"}
    assert "elegant and sophisticated" in prompts[0]
    assert "Target: men 30-45." in prompts[0]
    assert "review1_author" not in prompts[0]


def test_generate_landing_page_content_includes_reviews_by_default():
    prompts: list[str] = []
    assistant = _assistant_returning('{"title": "x"}', prompts)

    assistant.generate_landing_page_content("A hoodie")

    assert '"review3_stars": "4"' in prompts[0]


def test_malformed_output_carries_raw_text():
    assistant = _assistant_returning("Sorry, I cannot help with that.")

    with pytest.raises(ContentAssistantError) as exc_info:
        assistant.generate_landing_page_content("A hoodie")

    assert exc_info.value.kind == ContentErrorKind.MALFORMED_OUTPUT
    assert exc_info.value.raw_text == "Sorry, I cannot help with that."


def test_title_suggestions_requires_string_array():
    assistant = _assistant_returning('["  Everyday Linen Shirt ", "Breezy Summer Shirt", "Third"]')

    assert assistant.generate_title_suggestions("linen shirt", count=2) == [
        "Everyday Linen Shirt",
        "Breezy Summer Shirt",
    ]

    with pytest.raises(ContentAssistantError) as exc_info:
        _assistant_returning('{"title": "x"}').generate_title_suggestions("linen shirt")
    assert exc_info.value.kind == ContentErrorKind.MALFORMED_OUTPUT


def test_assist_field_uses_action_prompt_and_field_instruction():
    prompts: list[str] = []
    assistant = _assistant_returning("  Shorter text  \n", prompts)

    value = assistant.assist_field(
        "section1_bullets",
        "Section 1 Bullet Points",
        "Linen shirt",
        "A very long bullet list",
        "shorten",
    )

    assert value == "Shorter text"
    assert 'Make this text more concise while keeping the key message: "A very long bullet list"' in prompts[0]
    assert "Generate 3-4 bullet points separated by |" in prompts[0]


def test_assist_field_rejects_unknown_action_and_missing_value():
    assistant = _assistant_returning("unused")

    with pytest.raises(ValueError, match="Unsupported"):
        assistant.assist_field("hero_title", "Hero Title", "ctx", "x", "summarize")
    with pytest.raises(ValueError, match="requires a current value"):
        assistant.assist_field("hero_title", "Hero Title", "ctx", "  ", "improve")


def test_generate_product_content_requires_every_field():
    complete = {key: f"value for {key}" for key in PRODUCT_CONTENT_KEYS}
    assistant = _assistant_returning(json.dumps(complete))

    assert assistant.generate_product_content(ProductBrief(name="Tee", category="t-shirt")) == complete

    partial = dict(complete)
    partial.pop("lifestyle_right_text")
    with pytest.raises(ContentAssistantError, match="lifestyle_right_text") as exc_info:
        _assistant_returning(json.dumps(partial)).generate_product_content(ProductBrief(name="Tee", category="t-shirt"))
    assert exc_info.value.kind == ContentErrorKind.MALFORMED_OUTPUT


def test_missing_api_key_is_not_configured():
    assistant = ContentAssistant(api_key="", model="gemini-test")

    with pytest.raises(ContentAssistantError) as exc_info:
        assistant.assist_field("hero_title", "Hero Title", "ctx", None, "generate")

    assert exc_info.value.kind == ContentErrorKind.NOT_CONFIGURED
    assert not assistant.is_configured


def test_classify_error_maps_provider_failures():
    assert classify_error(google_exceptions.ResourceExhausted("quota")) == ContentErrorKind.QUOTA_EXCEEDED
    assert classify_error(RuntimeError("429 Too Many Requests")) == ContentErrorKind.QUOTA_EXCEEDED
    assert classify_error(RuntimeError("Response blocked: finish_reason SAFETY")) == ContentErrorKind.SAFETY_BLOCKED
    assert classify_error(RuntimeError("connection reset")) == ContentErrorKind.GENERATION_FAILED


def test_generate_text_wraps_sdk_errors(monkeypatch):
    class FakeModel:
        def __init__(self, model_name: str, generation_config: dict) -> None:
            self.model_name = model_name

        def generate_content(self, prompt: str, request_options: dict):
            raise google_exceptions.ResourceExhausted("Quota exceeded for model")

    monkeypatch.setattr("landingkit.content_assistant.genai.configure", lambda api_key: None)
    monkeypatch.setattr("landingkit.content_assistant.genai.GenerativeModel", FakeModel)
    assistant = ContentAssistant(api_key="test_key", model="gemini-test")

    with pytest.raises(ContentAssistantError) as exc_info:
        assistant.assist_field("hero_title", "Hero Title", "ctx", None, "generate")

    assert exc_info.value.kind == ContentErrorKind.QUOTA_EXCEEDED
    assert isinstance(exc_info.value.__cause__, google_exceptions.ResourceExhausted)


def test_generate_text_reads_first_candidate_part(monkeypatch):
    class Part:
        text = "Hero copy"

    class Content:
        parts = [Part()]

    class Candidate:
        content = Content()
        finish_reason = None

    class Result:
        candidates = [Candidate()]

    captured: dict = {}

    class FakeModel:
        def __init__(self, model_name: str, generation_config: dict) -> None:
            captured["model_name"] = model_name
            captured["generation_config"] = generation_config

        def generate_content(self, prompt: str, request_options: dict):
            captured["request_options"] = request_options
            return Result()

    monkeypatch.setattr("landingkit.content_assistant.genai.configure", lambda api_key: None)
    monkeypatch.setattr("landingkit.content_assistant.genai.GenerativeModel", FakeModel)
    assistant = ContentAssistant(api_key="test_key", model="gemini-test", timeout=30)

    value = assistant.assist_field("hero_title", "Hero Title", "ctx", None, "generate")

    assert value == "Hero copy"
    assert captured["model_name"] == "models/gemini-test"
    assert captured["generation_config"] == {"temperature": 0.7, "max_output_tokens": 1024}
    assert captured["request_options"] == {"timeout": 30}
