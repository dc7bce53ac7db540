"""
First-aid guide: structured step-by-step procedure and the walkthrough session.

Step navigation is a bounded index walk (no wraparound). Steps flagged with a
timer carry a countdown; the timer is started/stopped independently of step
navigation and restarts from zero every time it is started.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from mediscan.errors import SchemaValidationError

GUIDE_SEVERITIES = ("Critical", "Urgent", "Moderate")


@dataclass(frozen=True)
class FirstAidStep:
    title: str
    instruction: str
    has_timer: bool = False
    timer_seconds: int | None = None
    warning: str | None = None


@dataclass(frozen=True)
class FirstAidGuide:
    title: str
    severity: str  # Critical | Urgent | Moderate
    steps: tuple[FirstAidStep, ...]
    post_emergency: tuple[str, ...] = ()


def _parse_step(raw: Any, path: str, errs: list[str]) -> FirstAidStep | None:
    if not isinstance(raw, dict):
        errs.append(f"{path}: expected object")
        return None
    title = raw.get("title")
    instruction = raw.get("instruction")
    if not isinstance(title, str) or not title.strip():
        errs.append(f"{path}.title is required")
    if not isinstance(instruction, str) or not instruction.strip():
        errs.append(f"{path}.instruction is required")
    has_timer = bool(raw.get("hasTimer"))
    seconds = raw.get("timerSeconds")
    timer_seconds: int | None = None
    if seconds is not None:
        if isinstance(seconds, bool) or not isinstance(seconds, (int, float)) or seconds < 0:
            errs.append(f"{path}.timerSeconds must be a non-negative number")
        else:
            timer_seconds = int(seconds)
    warning = raw.get("warning")
    return FirstAidStep(
        title=title.strip() if isinstance(title, str) else "",
        instruction=instruction.strip() if isinstance(instruction, str) else "",
        has_timer=has_timer,
        timer_seconds=timer_seconds if has_timer else None,
        warning=warning.strip() if isinstance(warning, str) and warning.strip() else None,
    )


def parse_guide(payload: Any) -> FirstAidGuide:
    """Validate a decoded guide payload. Raises SchemaValidationError."""
    if not isinstance(payload, dict):
        raise SchemaValidationError("guide must be a JSON object")
    errs: list[str] = []
    title = payload.get("title")
    if not isinstance(title, str) or not title.strip():
        errs.append("title is required")
    severity = payload.get("severity")
    if severity not in GUIDE_SEVERITIES:
        errs.append(f"severity must be one of {GUIDE_SEVERITIES}, got {severity!r}")
    raw_steps = payload.get("steps")
    steps: list[FirstAidStep] = []
    if not isinstance(raw_steps, list) or not raw_steps:
        errs.append("steps must be a non-empty array")
    else:
        for i, raw in enumerate(raw_steps):
            step = _parse_step(raw, f"steps[{i}]", errs)
            if step is not None:
                steps.append(step)
    post = payload.get("postEmergency")
    if not isinstance(post, list) or not all(isinstance(p, str) for p in post):
        errs.append("postEmergency must be an array of strings")
        post = []
    if errs:
        raise SchemaValidationError(f"invalid first-aid guide: {errs[0]}", errs)
    return FirstAidGuide(
        title=title.strip(),
        severity=severity,
        steps=tuple(steps),
        post_emergency=tuple(p.strip() for p in post if p.strip()),
    )


@dataclass
class GuideSession:
    """Walk through a loaded guide one step at a time."""
    guide: FirstAidGuide
    step_index: int = 0
    timer_running: bool = False
    timer_elapsed: int = 0

    @property
    def current_step(self) -> FirstAidStep:
        return self.guide.steps[self.step_index]

    @property
    def is_first(self) -> bool:
        return self.step_index == 0

    @property
    def is_last(self) -> bool:
        return self.step_index == len(self.guide.steps) - 1

    def next_step(self) -> FirstAidStep:
        """Advance one step; no-op on the last step."""
        if not self.is_last:
            self.step_index += 1
        return self.current_step

    def previous_step(self) -> FirstAidStep:
        """Go back one step; no-op on the first step."""
        if not self.is_first:
            self.step_index -= 1
        return self.current_step

    # Timer ---------------------------------------------------------------

    def start_timer(self) -> None:
        self.timer_elapsed = 0
        self.timer_running = True

    def stop_timer(self) -> None:
        self.timer_running = False

    def toggle_timer(self) -> bool:
        """Start (from zero) if stopped, stop if running. Returns running state."""
        if self.timer_running:
            self.stop_timer()
        else:
            self.start_timer()
        return self.timer_running

    def tick(self, seconds: int = 1) -> int:
        """Advance the running timer; ignored when stopped."""
        if self.timer_running and seconds > 0:
            self.timer_elapsed += seconds
        return self.timer_elapsed

    @property
    def remaining_seconds(self) -> int | None:
        """Countdown for timed steps; None when the step carries no duration."""
        step = self.current_step
        if not step.has_timer or step.timer_seconds is None:
            return None
        return max(0, step.timer_seconds - self.timer_elapsed)

    def format_timer(self) -> str:
        return f"{self.timer_elapsed // 60}:{self.timer_elapsed % 60:02d}"
