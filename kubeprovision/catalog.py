"""Catalog apps that can be installed once the platform is up."""
from dataclasses import dataclass
from typing import Iterable, List, Tuple


@dataclass(frozen=True)
class CatalogApp:
    name: str
    description: str
    namespace: str


KNOWN_APPS = {
    app.name: app
    for app in (
        CatalogApp('argo-workflows', "Container-native workflow engine", 'argo'),
        CatalogApp('cert-manager', "X.509 certificate management", 'cert-manager'),
        CatalogApp('external-dns', "Synchronise DNS records with ingresses", 'external-dns'),
        CatalogApp('grafana', "Dashboards and visualisation", 'observability'),
        CatalogApp('kyverno', "Kubernetes policy engine", 'kyverno'),
        CatalogApp('loki', "Log aggregation", 'observability'),
        CatalogApp('metrics-server', "Resource metrics for autoscaling", 'kube-system'),
        CatalogApp('prometheus', "Metrics collection and alerting", 'observability'),
        CatalogApp('sealed-secrets', "Encrypted secrets for GitOps", 'kube-system'),
        CatalogApp('trivy-operator', "Continuous vulnerability scanning", 'trivy-system'),
    )
}


def unknown_apps(names: Iterable[str]) -> List[str]:
    """Return the requested app names that are not in the catalog."""
    return [name for name in names if name not in KNOWN_APPS]


def validate_catalog_apps(names: Iterable[str]) -> Tuple[CatalogApp, ...]:
    """Resolve app names against the catalog, raising on unknown entries."""
    names = list(names)
    missing = unknown_apps(names)
    if missing:
        raise ValueError(
            f"unknown catalog app(s): {', '.join(missing)} "
            f"(known: {', '.join(sorted(KNOWN_APPS))})"
        )
    seen = []
    for name in names:
        if name not in seen:
            seen.append(name)
    return tuple(KNOWN_APPS[name] for name in seen)
