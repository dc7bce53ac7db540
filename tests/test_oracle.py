"""DiagnosticOracle against a fake OpenAI client: request shape, retries, error mapping."""

from __future__ import annotations

import json
from types import SimpleNamespace

import openai
import pytest

from conftest import complete, guide_payload, in_progress
from mediscan.assessment.media import MediaPayload
from mediscan.assessment.oracle import (
    ASSESSMENT_RESPONSE_SCHEMA,
    DiagnosticOracle,
    decode_json,
    format_history,
    strip_code_fence,
)
from mediscan.assessment.schema import CompleteAssessment, InProgressAssessment
from mediscan.errors import EmptyResponseError, OracleError, SchemaValidationError
from mediscan.records.types import HealthRecord, RecordKind


def _response(content: str | None, refusal: str | None = None) -> SimpleNamespace:
    message = SimpleNamespace(content=content, refusal=refusal)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FakeCompletions:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[dict] = []

    def create(self, **kwargs):
        self.requests.append(kwargs)
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, SimpleNamespace):
            return item
        if isinstance(item, dict):
            return _response(json.dumps(item))
        return _response(item)


def _oracle(*responses, max_retries: int = 1) -> tuple[DiagnosticOracle, FakeCompletions]:
    completions = FakeCompletions(*responses)
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return DiagnosticOracle(model="big", fast_model="small", max_retries=max_retries, client=client), completions


class TestHelpers:
    def test_format_history(self):
        assert format_history([("user", "hi"), ("assistant", "where?")]) == ["Patient: hi", "Doctor: where?"]

    def test_strip_code_fence(self):
        assert strip_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'
        assert strip_code_fence('  {"a": 1} ') == '{"a": 1}'

    def test_decode_json_errors(self):
        with pytest.raises(EmptyResponseError):
            decode_json("   ")
        with pytest.raises(SchemaValidationError):
            decode_json("not json")

    def test_schema_is_strict(self):
        assert ASSESSMENT_RESPONSE_SCHEMA["additionalProperties"] is False
        assert set(ASSESSMENT_RESPONSE_SCHEMA["required"]) == set(ASSESSMENT_RESPONSE_SCHEMA["properties"])


class TestAnalyzeSymptoms:
    def test_request_shape(self):
        oracle, completions = _oracle(in_progress())
        image = MediaPayload(ref="r", data="QUJD")
        result = oracle.analyze_symptoms("itchy", ["Patient: rash", "Doctor: where?"], [image], "fr", "self (34), Name: Sam")
        assert isinstance(result, InProgressAssessment)

        req = completions.requests[0]
        assert req["model"] == "big"
        assert req["response_format"]["type"] == "json_schema"
        assert req["response_format"]["json_schema"]["strict"] is True
        system, user = req["messages"]
        assert "self (34), Name: Sam" in system["content"]
        assert "Français" in system["content"]
        image_part, text_part = user["content"]
        assert image_part["image_url"]["url"] == "data:image/jpeg;base64,QUJD"
        assert text_part["text"].startswith("Conversation History:\nPatient: rash\nDoctor: where?\n\nUser Input: itchy")

    def test_fenced_complete_answer(self):
        oracle, _ = _oracle("```json\n" + json.dumps(complete()) + "\n```")
        result = oracle.analyze_symptoms("rash", [], [], "en")
        assert isinstance(result, CompleteAssessment)

    def test_transport_error_retried(self):
        oracle, completions = _oracle(openai.OpenAIError("reset"), complete())
        assert isinstance(oracle.analyze_symptoms("rash", [], [], "en"), CompleteAssessment)
        assert len(completions.requests) == 2

    def test_transport_error_exhausts_retries(self):
        oracle, completions = _oracle(openai.OpenAIError("a"), openai.OpenAIError("b"), max_retries=1)
        with pytest.raises(OracleError) as exc:
            oracle.analyze_symptoms("rash", [], [], "en")
        assert not isinstance(exc.value, SchemaValidationError)
        assert len(completions.requests) == 2

    def test_empty_content_retried_then_raised(self):
        oracle, _ = _oracle("", None, max_retries=1)
        with pytest.raises(EmptyResponseError):
            oracle.analyze_symptoms("rash", [], [], "en")

    def test_schema_violation_not_retried(self):
        oracle, completions = _oracle(complete(triageLevel="Critical"), complete())
        with pytest.raises(SchemaValidationError):
            oracle.analyze_symptoms("rash", [], [], "en")
        assert len(completions.requests) == 1

    def test_refusal(self):
        oracle, _ = _oracle(_response(None, refusal="I cannot help with that."))
        with pytest.raises(OracleError):
            oracle.analyze_symptoms("rash", [], [], "en")

    def test_missing_api_key(self):
        oracle = DiagnosticOracle(api_key="")
        with pytest.raises(OracleError):
            oracle.analyze_symptoms("rash", [], [], "en")


class TestOtherOperations:
    def test_first_aid_guide_uses_fast_model(self):
        oracle, completions = _oracle(guide_payload())
        guide = oracle.get_first_aid_guide("CPR (Adult)", "es")
        assert guide.title == "CPR (Adult)"
        assert len(guide.steps) == 3
        assert completions.requests[0]["model"] == "small"
        assert "Español" in completions.requests[0]["messages"][0]["content"]

    def test_scan_medication_includes_cabinet(self):
        payload = {
            "name": "Ibuprofen",
            "genericName": None,
            "dosage": "200 mg",
            "type": "Pill",
            "treatsBodyPart": "Musculoskeletal",
            "treatsConditions": ["Pain"],
            "uses": ["Pain relief"],
            "sideEffects": {"common": ["Nausea"], "rare": []},
            "usageInstructions": "Take with food.",
            "missedDose": "Skip it.",
            "storage": "Room temperature.",
            "warnings": ["Stomach bleeding"],
            "interactionsWithList": [
                {"drugName": "Warfarin", "severity": "Major", "description": "Bleeding risk", "mechanism": "", "action": "Avoid"}
            ],
            "isExpired": False,
            "confidence": 91,
        }
        oracle, completions = _oracle(payload)
        scan = oracle.scan_medication(MediaPayload(ref="r", data="QQ=="), ["Warfarin"], "en")
        assert scan.name == "Ibuprofen"
        assert scan.has_serious_interaction
        assert "Warfarin" in completions.requests[0]["messages"][0]["content"]

    def test_insights_without_records_skip_call(self):
        oracle, completions = _oracle()
        insight = oracle.generate_insights([], "en")
        assert insight.patterns == ()
        assert completions.requests == []

    def test_insights(self):
        record = HealthRecord.create("p1", RecordKind.SYMPTOM, "Migraine", "Throbbing headache")
        payload = {
            "summary": "Recurring headaches.",
            "patterns": [
                {"type": "recurrence", "title": "Migraines", "description": "Weekly", "severity": "negative", "relatedRecords": [record.id]}
            ],
            "recommendations": ["Keep a headache diary"],
        }
        oracle, completions = _oracle(payload)
        insight = oracle.generate_insights([record], "en")
        assert insight.patterns[0].related_records == (record.id,)
        sent = json.loads(completions.requests[0]["messages"][1]["content"])
        assert sent[0]["summary"] == "Migraine"
