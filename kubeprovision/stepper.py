"""Progress reporting for provisioning steps."""
import sys
import time
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Protocol, TextIO, runtime_checkable

import typer


class EventKind(str, Enum):
    STARTED = 'started'
    COMPLETED = 'completed'
    FAILED = 'failed'


@dataclass(frozen=True)
class StepEvent:
    kind: EventKind
    step: str
    error: Optional[BaseException] = None


@runtime_checkable
class StepReporter(Protocol):
    """What the provisioner needs from a progress display."""

    def begin_step(self, name: str, estimated_minutes: Optional[int] = None) -> None:
        ...

    def complete_step(self) -> None:
        ...

    def fail_step(self, error: BaseException) -> None:
        ...


class _SingleStepTracker:
    """Enforces one active step at a time."""

    def __init__(self) -> None:
        self.current: Optional[str] = None

    def _begin(self, name: str) -> None:
        if self.current is not None:
            raise RuntimeError(f"step '{name}' started while '{self.current}' is still active")
        self.current = name

    def _end(self) -> str:
        if self.current is None:
            raise RuntimeError("no active step to finish")
        name, self.current = self.current, None
        return name


class RecordingStepper(_SingleStepTracker):
    """Keeps every event in memory; used by non-interactive callers and tests."""

    def __init__(self) -> None:
        super().__init__()
        self.events: List[StepEvent] = []

    def begin_step(self, name: str, estimated_minutes: Optional[int] = None) -> None:
        self._begin(name)
        self.events.append(StepEvent(EventKind.STARTED, name))

    def complete_step(self) -> None:
        self.events.append(StepEvent(EventKind.COMPLETED, self._end()))

    def fail_step(self, error: BaseException) -> None:
        self.events.append(StepEvent(EventKind.FAILED, self._end(), error))


class ConsoleStepper(_SingleStepTracker):
    """Renders steps to a terminal stream."""

    def __init__(self, stream: Optional[TextIO] = None, color: Optional[bool] = None):
        super().__init__()
        self.stream = stream or sys.stderr
        self.color = color
        self._started_at = 0.0

    def _echo(self, message: str) -> None:
        typer.echo(message, file=self.stream, color=self.color)

    def display_log_hints(self, cloud_provider: str, estimated_minutes: int) -> None:
        """Print what is about to happen and how long it should take."""
        self._echo(typer.style(f"Provisioning the platform on {cloud_provider}", bold=True))
        self._echo(f"  estimated time: ~{estimated_minutes} minutes")
        self._echo("  re-run with --verbose to see every kubectl and helm command")
        self._echo("")

    def begin_step(self, name: str, estimated_minutes: Optional[int] = None) -> None:
        self._begin(name)
        self._started_at = time.monotonic()
        suffix = f" (~{estimated_minutes}m)" if estimated_minutes else ""
        self._echo(f"⏳ {name}{suffix}")

    def complete_step(self) -> None:
        name = self._end()
        self._echo(typer.style(f"✅ {name} ({self._elapsed()})", fg=typer.colors.GREEN))

    def fail_step(self, error: BaseException) -> None:
        name = self._end()
        self._echo(typer.style(f"❗ {name} ({self._elapsed()}): {error}", fg=typer.colors.RED))

    def _elapsed(self) -> str:
        seconds = int(time.monotonic() - self._started_at)
        minutes, seconds = divmod(seconds, 60)
        return f"{minutes}m{seconds:02d}s" if minutes else f"{seconds}s"
