"""Tests for progress reporters."""
import io

import pytest

from kubeprovision.stepper import ConsoleStepper, EventKind, RecordingStepper, StepReporter


class TestRecordingStepper:
    def test_records_events_in_order(self):
        stepper = RecordingStepper()
        error = RuntimeError("boom")

        stepper.begin_step("one")
        stepper.complete_step()
        stepper.begin_step("two")
        stepper.fail_step(error)

        assert [(e.kind, e.step) for e in stepper.events] == [
            (EventKind.STARTED, "one"),
            (EventKind.COMPLETED, "one"),
            (EventKind.STARTED, "two"),
            (EventKind.FAILED, "two"),
        ]
        assert stepper.events[-1].error is error

    def test_overlapping_steps_rejected(self):
        stepper = RecordingStepper()
        stepper.begin_step("one")

        with pytest.raises(RuntimeError, match="still active"):
            stepper.begin_step("two")

    def test_complete_without_step_rejected(self):
        with pytest.raises(RuntimeError, match="no active step"):
            RecordingStepper().complete_step()

    def test_satisfies_protocol(self):
        assert isinstance(RecordingStepper(), StepReporter)
        assert isinstance(ConsoleStepper(io.StringIO()), StepReporter)


class TestConsoleStepper:
    def test_renders_steps(self):
        stream = io.StringIO()
        stepper = ConsoleStepper(stream, color=False)

        stepper.begin_step("Install ArgoCD", 5)
        stepper.complete_step()
        stepper.begin_step("Install Vault")
        stepper.fail_step(RuntimeError("vault sealed"))

        output = stream.getvalue()
        assert "⏳ Install ArgoCD (~5m)" in output
        assert "✅ Install ArgoCD" in output
        assert "❗ Install Vault" in output
        assert "vault sealed" in output

    def test_log_hints(self):
        stream = io.StringIO()

        ConsoleStepper(stream, color=False).display_log_hints('harvester', 25)

        assert "harvester" in stream.getvalue()
        assert "~25 minutes" in stream.getvalue()
