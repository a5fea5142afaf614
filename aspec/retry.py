"""
Bounded validate/repair loop against the completion provider.

The loop is an explicit state machine. Each transition takes a RepairStep and
returns the next one, so every transition can be exercised on its own:

    INIT -> VALIDATING -> VALID
                       -> REPAIRING -> VALIDATING -> ...
                       -> EXHAUSTED
"""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional

from .context import RunContext, ensure_context
from .data_models import CompletionOptions, CompletionResponse
from .errors import ConfigurationError, SchemaConformanceError
from .llm_client import CompletionClient
from .models import ValidationOutcome
from .processors import PayloadProcessor
from .prompts import REPAIR_PROMPT, render_template
from .validator import SchemaValidator

logger = logging.getLogger(__name__)


class RepairState(Enum):
    INIT = "init"
    VALIDATING = "validating"
    REPAIRING = "repairing"
    VALID = "valid"
    EXHAUSTED = "exhausted"


TERMINAL_STATES = (RepairState.VALID, RepairState.EXHAUSTED)


@dataclass(frozen=True)
class RepairStep:
    """Values carried from one state to the next."""

    state: RepairState
    original_prompt: str
    prompt: str  # Prompt the next provider call will send
    max_retries: int
    attempts: int = 0  # Provider calls made so far
    payload: Optional[str] = None
    outcome: Optional[ValidationOutcome] = None
    response: Optional[CompletionResponse] = None

    @property
    def terminal(self) -> bool:
        return self.state in TERMINAL_STATES


@dataclass
class RetryResult:
    """Final payload and outcome; error is set when retries were exhausted."""

    payload: Optional[str]
    outcome: Optional[ValidationOutcome]
    error: Optional[SchemaConformanceError] = None
    attempts: int = 0
    responses: List[CompletionResponse] = field(default_factory=list)
    state: RepairState = RepairState.INIT

    @property
    def valid(self) -> bool:
        return self.outcome is not None and self.outcome.valid

    @property
    def last_response(self) -> Optional[CompletionResponse]:
        return self.responses[-1] if self.responses else None


def build_repair_prompt(original_prompt: str, invalid_payload: str, outcome: ValidationOutcome) -> str:
    """Prompt asking for a corrected payload, listing every validation finding."""
    errors = "\n".join(f"- {finding.path}: {finding.message}" for finding in outcome.findings)
    return render_template(
        REPAIR_PROMPT,
        errors=errors,
        prompt=original_prompt,
        payload=invalid_payload,
    )


class RetryingExtractor:
    """
    Drives the provider until it returns a schema-valid payload or retries run out.

    Exhaustion is not raised: the last payload and outcome are returned with a
    SchemaConformanceError attached, and the caller decides whether that is
    fatal. Provider failures propagate immediately.
    """

    def __init__(
        self,
        validator: SchemaValidator,
        client: CompletionClient,
        context: Optional[RunContext] = None,
        processor: Optional[PayloadProcessor] = None,
    ):
        self.validator = validator
        self.client = client
        self.context = ensure_context(context, logger)
        self.processor = processor or PayloadProcessor()

    def validate_and_retry(self, prompt: str, max_retries: int) -> RetryResult:
        """
        Run the full loop starting with the given extraction prompt.

        Args:
            prompt: Extraction prompt for the first call
            max_retries: Number of repair calls allowed after the first call

        Returns:
            RetryResult with max_retries + 1 calls at most
        """
        return self._run(self.start(prompt, max_retries))

    def repair_existing(
        self,
        prompt: str,
        payload: str,
        outcome: ValidationOutcome,
        max_retries: int,
    ) -> RetryResult:
        """
        Run the loop for a payload that was produced elsewhere and already validated.

        The existing payload counts as the first attempt, so at most max_retries
        repair calls are made.
        """
        step = self.start(prompt, max_retries)
        step = self._after_validation(step, attempts=1, payload=payload, outcome=outcome, response=None)
        return self._run(step)

    def start(self, prompt: str, max_retries: int) -> RepairStep:
        """INIT -> VALIDATING."""
        if max_retries < 0:
            raise ConfigurationError(f"max retries must be non-negative, got {max_retries}")
        init = RepairStep(
            state=RepairState.INIT,
            original_prompt=prompt,
            prompt=prompt,
            max_retries=max_retries,
        )
        return replace(init, state=RepairState.VALIDATING)

    def validate_step(self, step: RepairStep) -> RepairStep:
        """VALIDATING -> VALID | REPAIRING | EXHAUSTED, issuing one provider call."""
        self._expect(step, RepairState.VALIDATING)
        self.context.check_cancelled(f"validation attempt {step.attempts + 1}")

        response = self.client.complete(
            step.prompt, CompletionOptions(force_json=True), context=self.context
        )
        payload = self.processor.clean(response.content)
        outcome = self.validator.validate(payload)
        return self._after_validation(step, step.attempts + 1, payload, outcome, response)

    def repair_step(self, step: RepairStep) -> RepairStep:
        """REPAIRING -> VALIDATING with a repair prompt built from the last findings."""
        self._expect(step, RepairState.REPAIRING)
        self.context.logger.warning(
            f"Validation failed (attempt {step.attempts}/{step.max_retries + 1}), "
            f"retrying with feedback..."
        )
        self.context.logger.debug(step.outcome.format_errors())

        prompt = build_repair_prompt(step.original_prompt, step.payload or "", step.outcome)
        return replace(step, state=RepairState.VALIDATING, prompt=prompt)

    def _after_validation(self, step, attempts, payload, outcome, response) -> RepairStep:
        if outcome.valid:
            state = RepairState.VALID
        elif attempts > step.max_retries:
            state = RepairState.EXHAUSTED
        else:
            state = RepairState.REPAIRING
        return replace(
            step,
            state=state,
            attempts=attempts,
            payload=payload,
            outcome=outcome,
            response=response,
        )

    def _run(self, step: RepairStep) -> RetryResult:
        responses: List[CompletionResponse] = []
        if step.response is not None:
            responses.append(step.response)

        while not step.terminal:
            if step.state is RepairState.VALIDATING:
                step = self.validate_step(step)
                responses.append(step.response)
            else:
                step = self.repair_step(step)

        error = None
        if step.state is RepairState.EXHAUSTED:
            error = SchemaConformanceError(
                f"validation failed after {step.max_retries} retries",
                payload=step.payload,
                outcome=step.outcome,
            )
            self.context.logger.warning(f"{error}: {step.outcome.format_errors()}")

        return RetryResult(
            payload=step.payload,
            outcome=step.outcome,
            error=error,
            attempts=step.attempts,
            responses=responses,
            state=step.state,
        )

    @staticmethod
    def _expect(step: RepairStep, state: RepairState) -> None:
        if step.state is not state:
            raise ValueError(f"expected a {state.value} step, got {step.state.value}")
