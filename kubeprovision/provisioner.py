"""Runs the phase registry against a cluster, one phase at a time."""
import logging
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterable, List, Optional, Union

from kubeprovision.catalog import CatalogApp
from kubeprovision.cluster import ClusterClient
from kubeprovision.config import ProvisionConfig, validate_config
from kubeprovision.context import RunContext
from kubeprovision.errors import PhaseError, ProvisionCancelled, ProvisionError
from kubeprovision.phases import Phase, PhaseRegistry, default_registry
from kubeprovision.stepper import StepReporter
from kubeprovision.utils import log_info

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    NOT_STARTED = 'not-started'
    RUNNING = 'running'
    COMPLETED = 'completed'
    FAILED = 'failed'
    HALTED = 'halted'
    CANCELLED = 'cancelled'


class Outcome(str, Enum):
    COMPLETED = 'completed'
    FAILED = 'failed'
    CANCELLED = 'cancelled'


@dataclass
class PhaseOutcome:
    phase: str
    outcome: Outcome
    duration: float
    error: Optional[BaseException] = None


@dataclass
class ProvisionRun:
    """Progress of a single invocation; only the Provisioner mutates it."""

    state: RunState = RunState.NOT_STARTED
    current_index: Optional[int] = None
    outcomes: List[PhaseOutcome] = field(default_factory=list)
    error: Optional[ProvisionError] = None
    halted_at: Optional[str] = None

    @property
    def halted_early(self) -> bool:
        return self.state == RunState.HALTED

    @property
    def completed_phases(self) -> List[str]:
        return [o.phase for o in self.outcomes if o.outcome == Outcome.COMPLETED]


class Provisioner:
    """Drives a cluster through the registered phases.

    Phases run strictly in registry order. The first failure stops the run and
    is raised as a PhaseError naming the phase; a cancelled context stops it
    with ProvisionCancelled. When the configured halt phase completes the run
    returns early with success. The reporter sees exactly one complete_step or
    fail_step for every begin_step.
    """

    def __init__(self, client: ClusterClient, stepper: StepReporter, registry: Optional[PhaseRegistry] = None):
        self.client = client
        self.stepper = stepper
        self.registry = registry if registry is not None else default_registry()

    def provision_management_cluster(
        self,
        ctx: RunContext,
        config: ProvisionConfig,
        catalog_apps: Optional[Iterable[Union[CatalogApp, str]]] = None,
    ) -> ProvisionRun:
        """Validate `config`, then run every phase up to the halt phase.

        `catalog_apps`, when given, replaces the config's catalog app names.
        Returns the finished or halted run; raises ConfigValidationError,
        PhaseError or ProvisionCancelled.
        """
        if catalog_apps is not None:
            names = tuple(app.name if isinstance(app, CatalogApp) else app for app in catalog_apps)
            config = replace(config, catalog_apps=names)

        validate_config(config, self.registry)
        halt = self.registry.resolve(config.halt_phase) if config.halt_phase else None

        run = ProvisionRun(state=RunState.RUNNING)
        for index, phase in enumerate(self.registry):
            if ctx.cancelled:
                run.state = RunState.CANCELLED
                run.error = ProvisionCancelled()
                raise run.error

            run.current_index = index
            self._run_phase(ctx, run, phase, config)

            if halt is not None and phase.name == halt.name:
                run.state = RunState.HALTED
                run.halted_at = phase.name
                log_info(f"Stopping after phase '{phase.name}' as requested; re-run without --stop-after to continue.")
                return run

        run.state = RunState.COMPLETED
        return run

    def _run_phase(self, ctx: RunContext, run: ProvisionRun, phase: Phase, config: ProvisionConfig) -> None:
        logger.debug("starting phase %s", phase.name)
        self.stepper.begin_step(phase.display_name, phase.estimated_minutes)
        started = time.monotonic()
        try:
            phase.run(ctx.child(phase.timeout), config, self.client)
        except KeyboardInterrupt as e:
            ctx.cancel()
            self._stop(run, phase, started, ProvisionCancelled(phase.name), e)
        except ProvisionCancelled as e:
            self._stop(run, phase, started, ProvisionCancelled(phase.name), e)
        except Exception as e:
            if ctx.cancelled:
                self._stop(run, phase, started, ProvisionCancelled(phase.name), e)
            self._stop(run, phase, started, PhaseError(phase.name, e), e)
        except BaseException as e:
            # SystemExit and friends still close the step, then propagate untouched.
            run.outcomes.append(PhaseOutcome(phase.name, Outcome.FAILED, time.monotonic() - started, e))
            run.state = RunState.FAILED
            self.stepper.fail_step(e)
            raise

        self.stepper.complete_step()
        run.outcomes.append(PhaseOutcome(phase.name, Outcome.COMPLETED, time.monotonic() - started))
        logger.debug("phase %s completed", phase.name)

    def _stop(self, run: ProvisionRun, phase: Phase, started: float,
              error: ProvisionError, cause: BaseException) -> None:
        cancelled = isinstance(error, ProvisionCancelled)
        run.outcomes.append(PhaseOutcome(
            phase.name,
            Outcome.CANCELLED if cancelled else Outcome.FAILED,
            time.monotonic() - started,
            cause,
        ))
        run.state = RunState.CANCELLED if cancelled else RunState.FAILED
        run.error = error
        logger.debug("phase %s stopped the run: %s", phase.name, cause)
        self.stepper.fail_step(error)
        raise error from cause
