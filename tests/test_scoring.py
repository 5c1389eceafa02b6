"""Tests for the fit-scoring client: prompt, response cleaning, validation, failures."""
import json
from unittest.mock import MagicMock, patch

import pytest

from krisis.errors import AnalysisError, AnalysisParseError, CompletionError
from krisis.models import AnalysisResult
from krisis.scoring import (
    ANALYSIS_SCHEMA,
    FitScorer,
    _call_completion,
    build_prompt,
    clean_json_response,
    parse_analysis,
)


def test_prompt_embeds_both_texts():
    prompt = build_prompt("  Ten years of Go.  ", "Backend engineer, Go and Postgres.")

    assert "Ten years of Go." in prompt
    assert "Backend engineer, Go and Postgres." in prompt
    assert "urgencyLevel" in prompt


@pytest.mark.parametrize("wrapped", [
    "```json\n{body}\n```",
    "```\n{body}\n```",
    "```JSON {body} ```",
    "Here you go:\n```json\n{body}\n```\nGood luck!",
    "  {body}  ",
])
def test_fenced_and_bare_responses_parse_identically(valid_analysis, wrapped):
    body = json.dumps(valid_analysis)

    assert parse_analysis(wrapped.format(body=body)) == parse_analysis(body)


def test_clean_json_response_leaves_plain_text_alone():
    assert clean_json_response('  {"a": 1}\n') == '{"a": 1}'


def test_parse_analysis_maps_fields(valid_analysis):
    result = parse_analysis(json.dumps(valid_analysis))

    assert result.fit_score == 82
    assert result.missing_keywords == ("Kubernetes", "Terraform")
    assert result.urgency_level == 4
    assert result.to_dict() == valid_analysis


@pytest.mark.parametrize("key,value", [
    ("fitScore", 101),
    ("fitScore", -1),
    ("fitScore", "82"),
    ("ghostingRisk", 140),
    ("urgencyLevel", 0),
    ("urgencyLevel", 6),
    ("urgencyLevel", 3.5),
    ("urgencyLevel", True),
    ("missingKeywords", "Kubernetes"),
    ("suggestedImprovements", [1, 2]),
    ("tacticalSignal", None),
])
def test_schema_violations_are_parse_errors(valid_analysis, key, value):
    valid_analysis[key] = value

    with pytest.raises(AnalysisParseError):
        parse_analysis(json.dumps(valid_analysis))


def test_missing_key_is_parse_error(valid_analysis):
    del valid_analysis["ghostingRisk"]

    with pytest.raises(AnalysisParseError):
        parse_analysis(json.dumps(valid_analysis))


def test_invalid_json_keeps_raw_text():
    with pytest.raises(AnalysisParseError) as info:
        parse_analysis("```json\n{not json\n```")

    assert info.value.raw == "```json\n{not json\n```"


def test_whole_number_float_urgency_accepted(valid_analysis):
    valid_analysis["urgencyLevel"] = 2.0

    assert parse_analysis(json.dumps(valid_analysis)).urgency_level == 2


def test_analyze_returns_validated_result(stub_scorer):
    result = stub_scorer.analyze("resume", "job")

    assert isinstance(result, AnalysisResult)
    assert 0 <= result.fit_score <= 100
    assert 0 <= result.ghosting_risk <= 100
    assert 1 <= result.urgency_level <= 5
    assert len(stub_scorer.calls) == 1


def test_provider_exception_becomes_completion_error():
    def complete(prompt):
        raise TimeoutError("read timed out")

    scorer = FitScorer(api_key="k", complete=complete)

    with pytest.raises(CompletionError) as info:
        scorer.analyze("resume", "job")
    assert "TimeoutError" in str(info.value)


def test_empty_response_is_completion_error():
    scorer = FitScorer(api_key="k", complete=lambda prompt: "   ")

    with pytest.raises(CompletionError):
        scorer.analyze("resume", "job")


def test_parse_and_provider_failures_share_a_base():
    bad = FitScorer(api_key="k", complete=lambda prompt: "I cannot help with that.")

    with pytest.raises(AnalysisError):
        bad.analyze("resume", "job")
    assert issubclass(CompletionError, AnalysisError)
    assert issubclass(AnalysisParseError, AnalysisError)


def test_parse_failure_logs_raw_response(caplog):
    scorer = FitScorer(api_key="k", model="m", complete=lambda prompt: "{\"fitScore\": 900}")

    with caplog.at_level("ERROR", logger="krisis.scoring"):
        with pytest.raises(AnalysisParseError):
            scorer.analyze("resume", "job")

    assert '{"fitScore": 900}' in caplog.text


def test_missing_api_key_fails_without_calling_provider():
    scorer = FitScorer(api_key="")

    with patch("krisis.scoring._call_completion") as call:
        with pytest.raises(CompletionError):
            scorer.analyze("resume", "job")
    call.assert_not_called()


def test_call_completion_requests_schema_output(valid_analysis):
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = json.dumps(valid_analysis)

    with patch("openai.OpenAI") as client_cls:
        client_cls.return_value.chat.completions.create.return_value = response
        text = _call_completion("key", "https://llm.example.com/v1", "model-x", "prompt", 0.4, 30.0)

    assert json.loads(text) == valid_analysis
    _, ctor_kwargs = client_cls.call_args
    assert ctor_kwargs["max_retries"] == 0
    assert ctor_kwargs["timeout"] == 30.0
    _, kwargs = client_cls.return_value.chat.completions.create.call_args
    assert kwargs["model"] == "model-x"
    assert kwargs["temperature"] == 0.4
    assert kwargs["response_format"]["type"] == "json_schema"
    assert kwargs["response_format"]["json_schema"]["schema"] is ANALYSIS_SCHEMA


def test_schema_requires_every_field():
    assert set(ANALYSIS_SCHEMA["required"]) == set(ANALYSIS_SCHEMA["properties"])
    assert ANALYSIS_SCHEMA["additionalProperties"] is False


def test_from_settings_reads_llm_block(settings, monkeypatch):
    monkeypatch.setenv("GROQ_API_KEY", "gsk-test")
    settings["llm"]["model"] = "llama-test"

    scorer = FitScorer.from_settings(settings)

    assert scorer.api_key == "gsk-test"
    assert scorer.model == "llama-test"
    assert scorer.temperature == 0.4
    assert scorer.timeout == 30.0
