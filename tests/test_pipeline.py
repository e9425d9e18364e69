import pytest

from pipeline.errors import GenerationError, MissingApiKeyError
from pipeline.io_types import ImageInput, ServiceOptions
from pipeline.pipeline import TryOnPipeline, effective_item_type, parse_analysis_response
from pipeline.prompts import ANALYZE_ITEM_PROMPT, DESCRIBE_ITEM_PROMPT, REVIEW_PROMPT, strict_prompt

from conftest import FakeProvider


PRO_IMAGE = "gemini-3-pro-image-preview"
FLASH_IMAGE = "gemini-2.5-flash-image"


# analyze_item -------------------------------------------------------------------

@pytest.mark.parametrize(
    "answer,expected",
    [
        ("clothing", "clothing"),
        ("  Accessory. ", "accessory"),
        ("This is CLOTHING, not an accessory", "clothing"),
        ("a hat", "clothing"),
        (None, "clothing"),
    ],
)
def test_parse_analysis_response(answer, expected):
    assert parse_analysis_response(answer) == expected


def test_analyze_uses_pro_model_in_pro_mode(make_pipeline, item, pro_options):
    provider = FakeProvider(text={ANALYZE_ITEM_PROMPT: "accessory"})
    assert make_pipeline(provider).analyze_item(item, pro_options) == "accessory"
    assert [m for m, _ in provider.text_calls] == ["gemini-3-pro-preview"]
    assert provider.text_calls[0][1] == [item, ANALYZE_ITEM_PROMPT]


def test_analyze_pro_failure_falls_back_to_flash(make_pipeline, item, pro_options):
    provider = FakeProvider(text={ANALYZE_ITEM_PROMPT: [RuntimeError("quota"), "accessory"]})
    assert make_pipeline(provider).analyze_item(item, pro_options) == "accessory"
    assert [m for m, _ in provider.text_calls] == ["gemini-3-pro-preview", "gemini-2.5-flash"]


def test_analyze_defaults_to_clothing_when_everything_fails(make_pipeline, item, pro_options):
    provider = FakeProvider(text={ANALYZE_ITEM_PROMPT: [RuntimeError("a"), RuntimeError("b")]})
    assert make_pipeline(provider).analyze_item(item, pro_options) == "clothing"


def test_analyze_flash_failure_does_not_retry(make_pipeline, item, flash_options):
    provider = FakeProvider(text={ANALYZE_ITEM_PROMPT: [RuntimeError("down")]})
    assert make_pipeline(provider).analyze_item(item, flash_options) == "clothing"
    assert [m for m, _ in provider.text_calls] == ["gemini-2.5-flash"]


def test_analyze_without_key_raises(item):
    def factory(api_key=None):
        raise MissingApiKeyError()

    pipe = TryOnPipeline(provider_factory=factory)
    with pytest.raises(MissingApiKeyError):
        pipe.analyze_item(item, ServiceOptions())


def test_factory_receives_custom_key(item):
    seen = []

    def factory(api_key=None):
        seen.append(api_key)
        return FakeProvider()

    TryOnPipeline(provider_factory=factory).analyze_item(item, ServiceOptions(custom_api_key="k"))
    assert seen == ["k"]


def test_effective_item_type_prefers_override():
    assert effective_item_type("clothing", "accessory") == "accessory"
    assert effective_item_type("accessory", None) == "accessory"
    assert effective_item_type(None, None) == "clothing"


# describe_item ------------------------------------------------------------------

def test_describe_strips_answer(make_pipeline, item, pro_options):
    provider = FakeProvider(text={DESCRIBE_ITEM_PROMPT: "  navy denim jacket \n"})
    assert make_pipeline(provider).describe_item(item, pro_options) == "navy denim jacket"
    assert provider.text_calls[0][0] == "gemini-2.5-flash"


def test_describe_empty_answer_falls_back(make_pipeline, item, pro_options):
    provider = FakeProvider(text={DESCRIBE_ITEM_PROMPT: "   "})
    assert make_pipeline(provider).describe_item(item, pro_options) == "fashion item"


def test_describe_error_falls_back(make_pipeline, item, pro_options):
    provider = FakeProvider(text={DESCRIBE_ITEM_PROMPT: RuntimeError("boom")})
    assert make_pipeline(provider).describe_item(item, pro_options) == "stylish clothing item"


# generate_try_on ----------------------------------------------------------------

def test_first_attempt_success(make_pipeline, person, item, pro_options, status_log):
    provider = FakeProvider(images=["data:image/png;base64,Zmlyc3Q="])
    result = make_pipeline(provider).generate_try_on(person, item, "clothing", pro_options)

    assert result.image == "data:image/png;base64,Zmlyc3Q="
    assert result.item_description == "a red wool sweater"
    assert result.review_passed is True
    assert len(provider.image_calls) == 1
    model, parts, cfg = provider.image_calls[0]
    assert model == PRO_IMAGE
    assert parts == [person, item, strict_prompt("clothing")]
    assert cfg == {"aspect_ratio": "3:4", "image_size": "1K"}
    assert status_log == [
        "Analyzing item details...",
        "Synthesizing try-on...",
        "Reviewing result quality...",
    ]


def test_second_attempt_uses_relaxed_prompt(make_pipeline, person, item, pro_options, status_log):
    provider = FakeProvider(images=[RuntimeError("IMAGE_OTHER"), "data:image/png;base64,b2s="])
    result = make_pipeline(provider).generate_try_on(person, item, "clothing", pro_options)

    assert result.image == "data:image/png;base64,b2s="
    assert [a.prompt for a in result.attempts] == ["strict", "relaxed"]
    assert result.attempts[0].error == "IMAGE_OTHER"
    model, parts, _ = provider.image_calls[1]
    assert model == PRO_IMAGE
    assert "a red wool sweater" in parts[2]
    assert "Refining result (Attempt 2)..." in status_log


def test_pro_third_attempt_switches_to_flash_model(make_pipeline, person, item, pro_options, status_log):
    provider = FakeProvider(images=[RuntimeError("a"), RuntimeError("b"), "data:image/png;base64,Yw=="])
    result = make_pipeline(provider).generate_try_on(person, item, "accessory", pro_options)

    assert result.image == "data:image/png;base64,Yw=="
    model, parts, cfg = provider.image_calls[2]
    assert model == FLASH_IMAGE
    assert parts[2] == strict_prompt("accessory")
    assert cfg == {"aspect_ratio": "3:4"}
    assert "Switching to standard model..." in status_log


def test_pro_all_attempts_fail(make_pipeline, person, item, pro_options):
    provider = FakeProvider(images=[RuntimeError("a"), RuntimeError("b"), RuntimeError("last one")])
    with pytest.raises(GenerationError) as ei:
        make_pipeline(provider).generate_try_on(person, item, "clothing", pro_options)
    assert str(ei.value) == "Generation failed: last one"
    assert len(provider.image_calls) == 3


def test_flash_mode_has_no_third_attempt(make_pipeline, person, item, flash_options, status_log):
    provider = FakeProvider(images=[RuntimeError("a"), RuntimeError("b")])
    with pytest.raises(GenerationError) as ei:
        make_pipeline(provider).generate_try_on(person, item, "clothing", flash_options)
    assert str(ei.value) == "Generation failed: b"
    assert [m for m, _, _ in provider.image_calls] == [FLASH_IMAGE, FLASH_IMAGE]
    assert all(cfg == {"aspect_ratio": "3:4"} for _, _, cfg in provider.image_calls)
    assert "Switching to standard model..." not in status_log


def test_error_without_message_reports_unknown(make_pipeline, person, item, flash_options):
    provider = FakeProvider(images=[RuntimeError(), RuntimeError()])
    with pytest.raises(GenerationError, match="Generation failed: Unknown error"):
        make_pipeline(provider).generate_try_on(person, item, "clothing", flash_options)


def test_failed_review_still_returns_image(make_pipeline, person, item, pro_options):
    provider = FakeProvider(text={REVIEW_PROMPT: "NO"})
    result = make_pipeline(provider).generate_try_on(person, item, "clothing", pro_options)
    assert result.review_passed is False
    assert result.image.startswith("data:image/png")


def test_review_error_counts_as_pass(make_pipeline, person, item, pro_options):
    provider = FakeProvider(text={REVIEW_PROMPT: RuntimeError("timeout")})
    result = make_pipeline(provider).generate_try_on(person, item, "clothing", pro_options)
    assert result.review_passed is True


def test_review_sends_png(make_pipeline, person, item, pro_options):
    provider = FakeProvider(images=["data:image/webp;base64,AAAA"])
    make_pipeline(provider).generate_try_on(person, item, "clothing", pro_options)
    model, parts = provider.text_calls[-1]
    assert parts[-1] == REVIEW_PROMPT
    assert isinstance(parts[0], ImageInput) and parts[0].mime_type == "image/png"


def test_missing_key_is_raised_before_any_call(person, item):
    def factory(api_key=None):
        raise MissingApiKeyError()

    with pytest.raises(MissingApiKeyError):
        TryOnPipeline(provider_factory=factory).generate_try_on(person, item, "clothing", ServiceOptions())


def test_models_come_from_cfg(make_pipeline, person, item, pro_options):
    provider = FakeProvider()
    pipe = make_pipeline(provider, image_models={"pro": "custom-pro", "flash": "custom-flash"})
    pipe.generate_try_on(person, item, "clothing", pro_options)
    assert provider.image_calls[0][0] == "custom-pro"


# refine_image -------------------------------------------------------------------

CURRENT = "data:image/jpeg;base64,/9j/AAAA"


def test_refine_pro(make_pipeline, pro_options, status_log):
    provider = FakeProvider(images=["data:image/png;base64,bmV3"])
    out = make_pipeline(provider).refine_image(CURRENT, "make it red", pro_options)

    assert out == "data:image/png;base64,bmV3"
    model, parts, cfg = provider.image_calls[0]
    assert model == PRO_IMAGE
    assert parts[0].mime_type == "image/jpeg"
    assert '"make it red"' in parts[1]
    assert cfg == {"aspect_ratio": "3:4", "image_size": "1K"}
    assert status_log == ["Applying changes..."]


def test_refine_pro_falls_back_to_flash(make_pipeline, pro_options, status_log):
    provider = FakeProvider(images=[RuntimeError("overloaded"), "data:image/png;base64,ZmI="])
    out = make_pipeline(provider).refine_image(CURRENT, "add a hat", pro_options)

    assert out == "data:image/png;base64,ZmI="
    model, _, cfg = provider.image_calls[1]
    assert model == FLASH_IMAGE
    assert cfg == {"aspect_ratio": "3:4"}
    assert status_log == ["Applying changes...", "Retrying with Flash..."]


def test_refine_pro_fallback_failure_propagates(make_pipeline, pro_options):
    provider = FakeProvider(images=[RuntimeError("first"), RuntimeError("second")])
    with pytest.raises(RuntimeError, match="second"):
        make_pipeline(provider).refine_image(CURRENT, "add a hat", pro_options)


def test_refine_flash_failure_propagates_unchanged(make_pipeline, flash_options):
    provider = FakeProvider(images=[RuntimeError("blocked")])
    with pytest.raises(RuntimeError, match="blocked"):
        make_pipeline(provider).refine_image(CURRENT, "add a hat", flash_options)
    assert len(provider.image_calls) == 1


def test_refine_rejects_blank_instruction(make_pipeline, pro_options):
    provider = FakeProvider()
    with pytest.raises(ValueError):
        make_pipeline(provider).refine_image(CURRENT, "   ", pro_options)
    assert provider.image_calls == []
