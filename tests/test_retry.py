"""
Tests for the validate/repair loop.
"""

import dataclasses
import sys
import unittest
from pathlib import Path

# Add the project root to the Python path
sys.path.append(str(Path(__file__).parent.parent))

from aspec.context import RunContext
from aspec.errors import ConfigurationError, ExtractionCancelled, ProviderError, SchemaConformanceError
from aspec.mock_client import MockClient
from aspec.retry import RepairState, RetryingExtractor, build_repair_prompt
from aspec.specs import Spec
from aspec.validator import SchemaValidator

SCHEMA = {
    "title": "Person",
    "type": "object",
    "required": ["name"],
    "properties": {"name": {"type": "string"}},
}
VALID = '{"name": "Grace"}'
INVALID = "{}"
PROMPT = "Extract the person mentioned in: Grace Hopper wrote the first compiler."


class TestRetryingExtractor(unittest.TestCase):
    """Tests for the RetryingExtractor class."""

    def setUp(self):
        self.validator = SchemaValidator(Spec.from_dict(SCHEMA, slug="person"))
        self.client = MockClient()

    def _extractor(self, context=None):
        return RetryingExtractor(self.validator, self.client, context)

    def test_valid_first_attempt(self):
        self.client.queue_responses(VALID)
        result = self._extractor().validate_and_retry(PROMPT, max_retries=2)

        self.assertEqual(self.client.call_count, 1)
        self.assertEqual(result.state, RepairState.VALID)
        self.assertTrue(result.valid)
        self.assertIsNone(result.error)
        self.assertEqual(result.payload, VALID)
        self.assertEqual(result.attempts, 1)
        self.assertEqual(len(result.responses), 1)

    def test_repaired_on_second_attempt(self):
        self.client.queue_responses(INVALID, VALID)
        result = self._extractor().validate_and_retry(PROMPT, max_retries=2)

        self.assertEqual(self.client.call_count, 2)
        self.assertTrue(result.valid)
        self.assertEqual(result.attempts, 2)

        repair_prompt = self.client.calls[1]["prompt"]
        self.assertIn("- root: 'name' is a required property", repair_prompt)
        self.assertIn(f"Original prompt: {PROMPT}", repair_prompt)
        self.assertIn("Invalid JSON response:\n{}", repair_prompt)

    def test_exhausted_after_max_retries(self):
        self.client.queue_responses(INVALID)
        result = self._extractor().validate_and_retry(PROMPT, max_retries=2)

        self.assertEqual(self.client.call_count, 3)
        self.assertEqual(result.state, RepairState.EXHAUSTED)
        self.assertFalse(result.valid)
        self.assertEqual(result.payload, INVALID)
        self.assertEqual(len(result.outcome.findings), 1)
        self.assertIsInstance(result.error, SchemaConformanceError)
        self.assertEqual(result.error.payload, INVALID)
        self.assertIs(result.error.outcome, result.outcome)

    def test_zero_retries_makes_one_call(self):
        self.client.queue_responses(INVALID)
        result = self._extractor().validate_and_retry(PROMPT, max_retries=0)

        self.assertEqual(self.client.call_count, 1)
        self.assertEqual(result.state, RepairState.EXHAUSTED)

    def test_negative_retries(self):
        with self.assertRaises(ConfigurationError):
            self._extractor().validate_and_retry(PROMPT, max_retries=-1)
        self.assertEqual(self.client.call_count, 0)

    def test_every_call_forces_json(self):
        self.client.queue_responses(INVALID, INVALID, VALID)
        self._extractor().validate_and_retry(PROMPT, max_retries=2)

        self.assertTrue(all(call["options"].force_json for call in self.client.calls))

    def test_fenced_output_is_cleaned(self):
        self.client.queue_responses("```json\n" + VALID + "\n```")
        result = self._extractor().validate_and_retry(PROMPT, max_retries=0)

        self.assertTrue(result.valid)
        self.assertEqual(result.payload, VALID)

    def test_provider_error_propagates(self):
        self.client.queue_responses(INVALID, ProviderError("rate limited"))
        with self.assertRaises(ProviderError):
            self._extractor().validate_and_retry(PROMPT, max_retries=2)
        self.assertEqual(self.client.call_count, 2)

    def test_cancelled_before_first_call(self):
        context = RunContext()
        context.cancel()
        self.client.queue_responses(VALID)

        with self.assertRaises(ExtractionCancelled):
            self._extractor(context).validate_and_retry(PROMPT, max_retries=2)
        self.assertEqual(self.client.call_count, 0)

    def test_repair_existing_payload(self):
        outcome = self.validator.validate(INVALID)
        self.client.queue_responses(VALID)

        result = self._extractor().repair_existing(PROMPT, INVALID, outcome, max_retries=2)

        self.assertEqual(self.client.call_count, 1)
        self.assertTrue(result.valid)
        self.assertEqual(result.attempts, 2)
        self.assertIn("- root: 'name' is a required property", self.client.calls[0]["prompt"])

    def test_repair_existing_without_retries(self):
        outcome = self.validator.validate(INVALID)
        result = self._extractor().repair_existing(PROMPT, INVALID, outcome, max_retries=0)

        self.assertEqual(self.client.call_count, 0)
        self.assertEqual(result.state, RepairState.EXHAUSTED)
        self.assertIsInstance(result.error, SchemaConformanceError)


class TestRepairTransitions(unittest.TestCase):
    """Each state transition in isolation."""

    def setUp(self):
        self.validator = SchemaValidator(Spec.from_dict(SCHEMA, slug="person"))
        self.client = MockClient()
        self.extractor = RetryingExtractor(self.validator, self.client)

    def test_start_moves_to_validating(self):
        step = self.extractor.start(PROMPT, max_retries=1)

        self.assertEqual(step.state, RepairState.VALIDATING)
        self.assertEqual(step.prompt, PROMPT)
        self.assertEqual(step.attempts, 0)

    def test_validate_step_to_repairing(self):
        self.client.queue_responses(INVALID)
        step = self.extractor.validate_step(self.extractor.start(PROMPT, max_retries=1))

        self.assertEqual(step.state, RepairState.REPAIRING)
        self.assertEqual(step.attempts, 1)
        self.assertEqual(step.payload, INVALID)

    def test_repair_step_builds_repair_prompt(self):
        self.client.queue_responses(INVALID)
        step = self.extractor.validate_step(self.extractor.start(PROMPT, max_retries=1))
        repaired = self.extractor.repair_step(step)

        self.assertEqual(repaired.state, RepairState.VALIDATING)
        self.assertEqual(repaired.prompt, build_repair_prompt(PROMPT, INVALID, step.outcome))
        self.assertEqual(repaired.original_prompt, PROMPT)

    def test_steps_are_immutable(self):
        step = self.extractor.start(PROMPT, max_retries=1)
        with self.assertRaises(dataclasses.FrozenInstanceError):
            step.attempts = 5

    def test_wrong_state_is_rejected(self):
        step = self.extractor.start(PROMPT, max_retries=1)
        with self.assertRaises(ValueError):
            self.extractor.repair_step(step)


if __name__ == "__main__":
    unittest.main()
