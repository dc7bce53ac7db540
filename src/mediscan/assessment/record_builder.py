"""Build timeline records from finalized assessments (Markdown body via Jinja2 templates)."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Sequence

from jinja2 import Environment, FileSystemLoader, select_autoescape

from mediscan.assessment.schema import CompleteAssessment
from mediscan.records.types import HealthRecord, PatientContext, RecordKind

if TYPE_CHECKING:
    from mediscan.assessment.conversation import ConversationTurn

logger = logging.getLogger(__name__)

_TEMPLATE_DIR = Path(__file__).parent / "templates"
_ROLE_LABELS = {"user": "Patient", "assistant": "Assistant"}


class RecordBuilder:
    """
    Render assessment records from the templates in ``assessment/templates``.

    Usage::

        builder = RecordBuilder()
        record = builder.symptom_record(result, context, attachments=["<base64>"])
    """

    def __init__(self, template_dir: str | Path | None = None) -> None:
        self._template_dir = Path(template_dir) if template_dir else _TEMPLATE_DIR
        self._env: Environment | None = None

    def _get_env(self) -> Environment:
        if self._env is None:
            self._env = Environment(
                loader=FileSystemLoader(str(self._template_dir)),
                autoescape=select_autoescape([]),
                trim_blocks=True,
                lstrip_blocks=True,
                keep_trailing_newline=False,
            )
        return self._env

    def render_details(self, result: CompleteAssessment) -> str:
        """Narrative, differential bullets, visual findings and recommendations as one Markdown body."""
        template = self._get_env().get_template("symptom_record.md.j2")
        return template.render(result=result).strip()

    def symptom_record(
        self,
        result: CompleteAssessment,
        context: PatientContext,
        attachments: Sequence[str] = (),
    ) -> HealthRecord:
        """kind=symptom record for a normalized complete assessment."""
        if not result.summary:
            raise ValueError("symptom record requires a normalized assessment with a summary")
        return HealthRecord.create(
            profile_id=context.profile_id,
            kind=RecordKind.SYMPTOM,
            summary=result.summary,
            details=self.render_details(result),
            triage_level=result.effective_triage_level,
            confidence=result.confidence_score,
            attachments=list(attachments),
        )

    def interview_note(
        self,
        turns: Sequence[ConversationTurn],
        context: PatientContext,
        summary: str,
    ) -> HealthRecord:
        """kind=note record holding the transcript of an abandoned interview."""
        template = self._get_env().get_template("interview_note.md.j2")
        details = template.render(turns=turns, labels=_ROLE_LABELS).strip()
        attachments = [a.data for t in turns for a in t.attachments]
        return HealthRecord.create(
            profile_id=context.profile_id,
            kind=RecordKind.NOTE,
            summary=summary,
            details=details,
            attachments=attachments,
        )
