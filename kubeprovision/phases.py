"""Ordered registry of provisioning phases."""
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional

from kubeprovision.cluster import ClusterClient
from kubeprovision.config import ProvisionConfig
from kubeprovision.context import RunContext

PhaseFn = Callable[[RunContext, ProvisionConfig, ClusterClient], None]


@dataclass(frozen=True)
class Phase:
    """One named unit of provisioning work.

    `checkpoint` is the short name operators pass to --stop-after; phases
    without one can still be selected by their full name.
    """

    name: str
    run: PhaseFn
    title: str = ''
    checkpoint: Optional[str] = None
    estimated_minutes: Optional[int] = None
    timeout: Optional[float] = None

    @property
    def display_name(self) -> str:
        return self.title or self.name


class PhaseRegistry:
    """Phases in execution order, unique by name and by checkpoint."""

    def __init__(self, phases=()):
        self._phases: List[Phase] = []
        self._lookup: Dict[str, Phase] = {}
        for phase in phases:
            self.register(phase)

    def register(self, phase: Phase) -> None:
        keys = [phase.name] + ([phase.checkpoint] if phase.checkpoint else [])
        for key in keys:
            if key in self._lookup:
                raise ValueError(f"phase name '{key}' is already registered by '{self._lookup[key].name}'")
        for key in keys:
            self._lookup[key] = phase
        self._phases.append(phase)

    def get(self, name: str) -> Optional[Phase]:
        phase = self._lookup.get(name)
        return phase if phase is not None and phase.name == name else None

    def resolve(self, selector: str) -> Optional[Phase]:
        """Find a phase by checkpoint or by name."""
        return self._lookup.get(selector)

    def names(self) -> List[str]:
        return [phase.name for phase in self._phases]

    def checkpoints(self) -> List[str]:
        return [phase.checkpoint for phase in self._phases if phase.checkpoint]

    def __iter__(self) -> Iterator[Phase]:
        return iter(list(self._phases))

    def __len__(self) -> int:
        return len(self._phases)


def default_registry() -> PhaseRegistry:
    """The platform phases in the order they must run."""
    from kubeprovision import steps

    return PhaseRegistry([
        Phase('validate', steps.preflight, title="Preflight Checks",
              estimated_minutes=1, timeout=120),
        Phase('create-cluster', steps.bootstrap_management_cluster, title="Bootstrap Management Cluster",
              estimated_minutes=1, timeout=300),
        Phase('install-argocd', steps.install_argocd, title="Install ArgoCD",
              checkpoint='argocd', estimated_minutes=5, timeout=900),
        Phase('configure-ingress', steps.configure_ingress, title="Configure Ingress",
              checkpoint='ingress', estimated_minutes=5, timeout=900),
        Phase('provision-vclusters', steps.provision_vclusters, title="Provision vClusters",
              checkpoint='vcluster', estimated_minutes=8, timeout=1200),
        Phase('install-vault', steps.install_vault, title="Install Vault",
              checkpoint='vault', estimated_minutes=4, timeout=900),
        Phase('install-catalog-apps', steps.install_catalog_apps, title="Install Catalog Apps",
              estimated_minutes=1, timeout=1200),
    ])
