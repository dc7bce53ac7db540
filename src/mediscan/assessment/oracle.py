"""
Diagnostic oracle client: structured-output calls to OpenAI chat completions.

Every call uses a strict ``json_schema`` response format and is validated
again on our side (the model is an untrusted oracle). The client is stateless
across calls: the conversation engine resends the full history each round.

Failure mapping:
  - openai.OpenAIError / missing key / refusal -> OracleError
  - empty completion                           -> EmptyResponseError
  - non-JSON or schema/invariant violation     -> SchemaValidationError

Transport errors and empty completions are retried ``max_retries`` times;
schema violations are raised immediately.

Blocking: call from a thread/executor when running inside an event loop.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Sequence

import openai
from openai import OpenAI

from mediscan.assessment.media import MediaPayload
from mediscan.assessment.schema import (
    DIAGNOSIS_SEVERITIES,
    LIKELIHOODS,
    TRIAGE_LEVELS,
    AssessmentResult,
    parse_assessment,
)
from mediscan.config import AssistantConfig
from mediscan.emergency.guide import GUIDE_SEVERITIES, FirstAidGuide, parse_guide
from mediscan.errors import EmptyResponseError, OracleError, SchemaValidationError
from mediscan.localization import language_name
from mediscan.medication import INTERACTION_SEVERITIES, MedicationScan, parse_medication
from mediscan.records.timeline import (
    EMPTY_INSIGHT_SUMMARY,
    PATTERN_SEVERITIES,
    PATTERN_TYPES,
    HealthInsight,
    parse_insight,
    records_for_insights,
)
from mediscan.records.types import HealthRecord

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# JSON schemas (OpenAI strict mode: every property required, nullable via anyOf)
# ---------------------------------------------------------------------------

def _nullable(schema: dict) -> dict:
    return {"anyOf": [schema, {"type": "null"}]}


def _object(properties: dict[str, Any]) -> dict:
    return {
        "type": "object",
        "properties": properties,
        "required": list(properties),
        "additionalProperties": False,
    }


_STR = {"type": "string"}
_STR_LIST = {"type": "array", "items": _STR}

ASSESSMENT_RESPONSE_SCHEMA = _object({
    "status": {"type": "string", "enum": ["in_progress", "complete"]},
    "nextQuestion": _nullable({
        "type": "string",
        "description": "Follow-up question in the target language if status is in_progress.",
    }),
    "summary": _nullable({"type": "string", "description": "Short title for the condition."}),
    "recommendedSpecialist": _nullable({
        "type": "string",
        "description": "Specialist to see, e.g. Dermatologist, Cardiologist.",
    }),
    "visualAnalysis": _nullable(_object({
        "color": _STR,
        "texture": _STR,
        "shape": _STR,
        "location": _STR,
        "findings": {"type": "string", "description": "Detailed visual findings."},
    })),
    "differentialDiagnosis": _nullable({
        "type": "array",
        "items": _object({
            "condition": _STR,
            "likelihood": {"type": "string", "enum": list(LIKELIHOODS)},
            "reasoning": {"type": "string", "description": "Detailed reasoning (min 50 words)."},
            "severity": {"type": "string", "enum": list(DIAGNOSIS_SEVERITIES)},
            "action": _STR,
        }),
    }),
    "detailedAnalysis": _nullable({
        "type": "string",
        "description": "Comprehensive multi-paragraph explanation in markdown.",
    }),
    "triageLevel": _nullable({"type": "string", "enum": list(TRIAGE_LEVELS)}),
    "confidenceScore": _nullable({"type": "number", "description": "0 to 100."}),
    "recommendations": _nullable(_STR_LIST),
    "disclaimer": {"type": "string", "description": "Medical disclaimer in the target language."},
})

GUIDE_RESPONSE_SCHEMA = _object({
    "title": _STR,
    "severity": {"type": "string", "enum": list(GUIDE_SEVERITIES)},
    "steps": {
        "type": "array",
        "items": _object({
            "title": _STR,
            "instruction": _STR,
            "hasTimer": _nullable({"type": "boolean"}),
            "timerSeconds": _nullable({"type": "number"}),
            "warning": _nullable(_STR),
        }),
    },
    "postEmergency": _STR_LIST,
})

MEDICATION_RESPONSE_SCHEMA = _object({
    "name": _STR,
    "genericName": _nullable(_STR),
    "dosage": _STR,
    "type": {"type": "string", "description": "Pill, Capsule, Liquid, etc."},
    "treatsBodyPart": _STR,
    "treatsConditions": _STR_LIST,
    "uses": _STR_LIST,
    "sideEffects": _object({"common": _STR_LIST, "rare": _STR_LIST}),
    "usageInstructions": _STR,
    "missedDose": _STR,
    "storage": _STR,
    "warnings": _STR_LIST,
    "interactionsWithList": {
        "type": "array",
        "items": _object({
            "drugName": _STR,
            "severity": {"type": "string", "enum": list(INTERACTION_SEVERITIES)},
            "description": _STR,
            "mechanism": _STR,
            "action": _STR,
        }),
    },
    "isExpired": {"type": "boolean"},
    "confidence": {"type": "number"},
})

INSIGHT_RESPONSE_SCHEMA = _object({
    "summary": _STR,
    "patterns": {
        "type": "array",
        "items": _object({
            "type": {"type": "string", "enum": list(PATTERN_TYPES)},
            "title": _STR,
            "description": _STR,
            "severity": {"type": "string", "enum": list(PATTERN_SEVERITIES)},
            "relatedRecords": _STR_LIST,
        }),
    },
    "recommendations": _STR_LIST,
})


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

_SYMPTOM_SYSTEM_PROMPT = """\
You are MediScan AI, an expert medical diagnostic assistant.
Your goal is to conduct a thorough triage assessment and provide highly detailed, educational medical guidance.

PATIENT CONTEXT: {patient_context}.

PROTOCOL:
1. Act as a doctor conducting an interview. Ask ONE follow-up question at a time (status "in_progress")
   until you have enough information, then give the full assessment (status "complete").
2. IMAGE INPUT: if an image is provided, prioritize visual analysis. Describe color, texture, shape and location.
3. TEXT INPUT: analyze the user's description deeply.

OUTPUT REQUIREMENTS:
1. LANGUAGE: every JSON string value MUST be in {language}.
2. When status is "in_progress": set nextQuestion and leave every assessment field null.
3. When status is "complete": nextQuestion is null; summary, differentialDiagnosis, detailedAnalysis,
   triageLevel, confidenceScore (0-100), recommendations and disclaimer are filled.
   - detailedAnalysis: a long, thorough markdown explanation (reasoning, causes, anatomy, care advice).
   - differentialDiagnosis: detailed reasoning (min 50 words per condition).
4. disclaimer is always present.

RISK STRATIFICATION:
- Clearly state if home care is appropriate or if a doctor visit is required.
- Be conservative with safety.
"""

_GUIDE_SYSTEM_PROMPT = """\
You are a First Aid Expert. Provide a structured, step-by-step guide for the emergency: "{emergency}".

GUIDELINES:
- Be clear, concise, and life-saving focused.
- Break the procedure into simple steps.
- Set hasTimer and timerSeconds when a step requires timing (e.g. CPR compressions, rinsing a burn).

LANGUAGE: every JSON string value MUST be in {language}."""

_MEDICATION_SYSTEM_PROMPT = """\
You are a Medication Safety Scanner.
1. Identify the medication in the image (pill appearance, bottle label, imprint codes).
2. Extract details: name, dosage, manufacturer.
3. Categorize: the body part/system it treats and the conditions.
4. {interaction_prompt}

LANGUAGE: translate ALL output values into {language}.
Provide comprehensive usage instructions, warnings, and the mechanism of each interaction."""

_INSIGHT_SYSTEM_PROMPT = """\
You are a medical data analyst. Analyze the patient's health history JSON.

TASKS:
1. Identify recurring patterns.
2. Identify correlations.
3. Identify trends.
4. Write a doctor's summary.
5. Provide preventive recommendations.

LANGUAGE: every JSON string value MUST be in {language}."""


def format_history(turns: Sequence[tuple[str, str]]) -> list[str]:
    """Role-prefixed history lines: ("user"|"assistant", text) -> "Patient: ..."/"Doctor: ..."."""
    labels = {"user": "Patient", "assistant": "Doctor"}
    return [f"{labels.get(role, role.capitalize())}: {text}" for role, text in turns]


def strip_code_fence(content: str) -> str:
    """Remove an optional markdown code fence around a JSON body."""
    content = content.strip()
    if content.startswith("```"):
        lines = content.split("\n")
        if lines[0].startswith("```"):
            lines = lines[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        content = "\n".join(lines)
    return content.strip()


def decode_json(content: str | None) -> Any:
    """Decode model content. Raises EmptyResponseError / SchemaValidationError."""
    if not content or not content.strip():
        raise EmptyResponseError("oracle returned empty content")
    body = strip_code_fence(content)
    try:
        return json.loads(body)
    except json.JSONDecodeError as e:
        raise SchemaValidationError(f"oracle output is not valid JSON: {e}") from e


def _image_parts(images: Sequence[MediaPayload]) -> list[dict[str, Any]]:
    return [{"type": "image_url", "image_url": {"url": img.to_data_url()}} for img in images]


class DiagnosticOracle:
    """
    OpenAI-backed structured-output oracle.

    Usage::

        oracle = DiagnosticOracle.from_config(load_config())
        result = oracle.analyze_symptoms("Itchy rash on my arm", [], [], "en", "self (34), Name: Sam")
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-4o",
        fast_model: str = "gpt-4o-mini",
        timeout_s: float = 60.0,
        max_retries: int = 1,
        client: Any = None,
    ) -> None:
        self._api_key = api_key or ""
        self._model = model
        self._fast_model = fast_model
        self._timeout_s = timeout_s
        self._max_retries = max(0, max_retries)
        self._client = client

    @classmethod
    def from_config(cls, config: AssistantConfig) -> DiagnosticOracle:
        return cls(
            api_key=config.openai_api_key,
            model=config.model,
            fast_model=config.fast_model,
            timeout_s=config.oracle_timeout_s,
            max_retries=config.oracle_max_retries,
        )

    @property
    def client(self) -> Any:
        """Lazily create the OpenAI client."""
        if self._client is None:
            if not self._api_key:
                raise OracleError("no OpenAI API key configured (set OPENAI_API_KEY)")
            self._client = OpenAI(api_key=self._api_key, timeout=self._timeout_s, max_retries=0)
        return self._client

    def _complete(
        self,
        *,
        model: str,
        messages: list[dict[str, Any]],
        schema_name: str,
        schema: dict[str, Any],
        temperature: float = 0.2,
    ) -> Any:
        """One structured call with retries on transport errors and empty content."""
        client = self.client
        last_error: OracleError = OracleError(f"{schema_name}: no attempt made")
        for attempt in range(self._max_retries + 1):
            try:
                response = client.chat.completions.create(
                    model=model,
                    messages=messages,
                    temperature=temperature,
                    response_format={
                        "type": "json_schema",
                        "json_schema": {"name": schema_name, "strict": True, "schema": schema},
                    },
                )
            except openai.OpenAIError as e:
                logger.warning("Oracle request failed (%s, attempt %s): %s", schema_name, attempt + 1, e)
                last_error = OracleError(f"{schema_name} request failed: {e}")
                continue

            choice = response.choices[0] if response.choices else None
            message = getattr(choice, "message", None)
            if message is not None and getattr(message, "refusal", None):
                raise OracleError(f"{schema_name}: model refused: {message.refusal}")
            try:
                return decode_json(getattr(message, "content", None))
            except EmptyResponseError as e:
                logger.warning("Oracle returned empty content (%s, attempt %s)", schema_name, attempt + 1)
                last_error = e
        raise last_error

    # -----------------------------------------------------------------------
    # Operations
    # -----------------------------------------------------------------------

    def analyze_symptoms(
        self,
        prompt: str,
        history: Sequence[str],
        images: Sequence[MediaPayload],
        language: str,
        patient_context: str | None = None,
    ) -> AssessmentResult:
        """One interview round: prior history lines + new input -> validated AssessmentResult."""
        target = language_name(language)
        system = _SYMPTOM_SYSTEM_PROMPT.format(
            patient_context=patient_context or "Adult (Standard)",
            language=target,
        )
        text = (
            "Conversation History:\n"
            + "\n".join(history)
            + f"\n\nUser Input: {prompt}\n\n"
            + f"IMPORTANT: Provide a very detailed response in {target}."
        )
        messages = [
            {"role": "system", "content": system},
            {"role": "user", "content": [*_image_parts(images), {"type": "text", "text": text}]},
        ]
        payload = self._complete(
            model=self._model,
            messages=messages,
            schema_name="symptom_assessment",
            schema=ASSESSMENT_RESPONSE_SCHEMA,
        )
        return parse_assessment(payload)

    def get_first_aid_guide(self, emergency_name: str, language: str) -> FirstAidGuide:
        """Fast-path guide retrieval."""
        messages = [
            {
                "role": "system",
                "content": _GUIDE_SYSTEM_PROMPT.format(emergency=emergency_name, language=language_name(language)),
            },
            {"role": "user", "content": "Generate guide."},
        ]
        payload = self._complete(
            model=self._fast_model,
            messages=messages,
            schema_name="first_aid_guide",
            schema=GUIDE_RESPONSE_SCHEMA,
            temperature=0.0,
        )
        return parse_guide(payload)

    def scan_medication(
        self,
        image: MediaPayload,
        existing_medications: Sequence[str],
        language: str,
    ) -> MedicationScan:
        """Identify a medication from packaging and check it against the cabinet."""
        target = language_name(language)
        if existing_medications:
            interaction_prompt = (
                "PERFORM A DRUG INTERACTION CHECK against this list of existing medications: "
                + ", ".join(existing_medications) + "."
            )
        else:
            interaction_prompt = "There are no existing medications to check against. Return an empty interaction list."
        messages = [
            {
                "role": "system",
                "content": _MEDICATION_SYSTEM_PROMPT.format(interaction_prompt=interaction_prompt, language=target),
            },
            {
                "role": "user",
                "content": [
                    *_image_parts([image]),
                    {
                        "type": "text",
                        "text": f"Identify this medication, check for interactions, and provide detailed usage instructions in {target}.",
                    },
                ],
            },
        ]
        payload = self._complete(
            model=self._model,
            messages=messages,
            schema_name="medication_scan",
            schema=MEDICATION_RESPONSE_SCHEMA,
        )
        return parse_medication(payload)

    def generate_insights(self, records: Sequence[HealthRecord], language: str) -> HealthInsight:
        """Patterns and recommendations over a set of records. No call when there are none."""
        if not records:
            return HealthInsight(summary=EMPTY_INSIGHT_SUMMARY)
        messages = [
            {"role": "system", "content": _INSIGHT_SYSTEM_PROMPT.format(language=language_name(language))},
            {"role": "user", "content": json.dumps(records_for_insights(records), ensure_ascii=False)},
        ]
        payload = self._complete(
            model=self._model,
            messages=messages,
            schema_name="health_insight",
            schema=INSIGHT_RESPONSE_SCHEMA,
        )
        return parse_insight(payload)
