"""Provisioning configuration: resolution from raw flag values and validation."""
from dataclasses import dataclass, fields
from typing import TYPE_CHECKING, Any, Mapping, Optional, Tuple

from kubeprovision import catalog
from kubeprovision.errors import ConfigValidationError
from kubeprovision.utils import expand_path, split_csv

if TYPE_CHECKING:
    from kubeprovision.phases import PhaseRegistry


SUPPORTED_GIT_PROVIDERS = ('github', 'gitlab')
SUPPORTED_GIT_PROTOCOLS = ('https', 'ssh')
SUPPORTED_DNS_PROVIDERS = ('cloudflare',)
SUPPORTED_CLUSTER_TYPES = ('mgmt', 'workload')

GIT_HOSTS = {
    'github': 'github.com',
    'gitlab': 'gitlab.com',
}


@dataclass(frozen=True)
class ProvisionConfig:
    """Every input a provisioning run needs, resolved once at startup."""

    cluster_name: str = 'kubefirst'
    cloud_provider: str = 'harvester'
    cluster_type: str = 'mgmt'
    git_provider: str = 'github'
    git_protocol: str = 'ssh'
    github_org: str = ''
    gitlab_group: str = ''
    gitops_repo: str = 'harvester-argo'
    gitops_template_url: str = 'https://github.com/konstructio/gitops-template.git'
    gitops_template_branch: str = ''
    domain_name: str = ''
    dns_provider: str = 'cloudflare'
    alerts_email: str = ''
    kubeconfig_path: str = '$HOME/.kube/harvester.yaml'
    lb_ip_range: str = '10.0.12.0/24'
    catalog_apps: Tuple[str, ...] = ()
    vclusters: Tuple[str, ...] = ('dev', 'test', 'prod')
    install_istio: bool = True
    istio_version: str = 'latest'
    install_kgateway: bool = True
    unifi_host: str = ''
    unifi_user: str = 'admin'
    unifi_password: str = ''
    cloudflare_api_token: str = ''
    halt_phase: Optional[str] = None
    ci: bool = False

    @property
    def git_owner(self) -> str:
        """The org or group that owns the GitOps repository."""
        return self.github_org if self.git_provider == 'github' else self.gitlab_group

    @property
    def gitops_repo_url(self) -> str:
        host = GIT_HOSTS.get(self.git_provider, self.git_provider)
        if self.git_protocol == 'https':
            return f"https://{host}/{self.git_owner}/{self.gitops_repo}.git"
        return f"git@{host}:{self.git_owner}/{self.gitops_repo}.git"

    def __repr__(self) -> str:
        # Keep credentials out of logs and tracebacks.
        shown = []
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in ('unifi_password', 'cloudflare_api_token') and value:
                value = '***'
            shown.append(f"{f.name}={value!r}")
        return f"ProvisionConfig({', '.join(shown)})"


def _as_tuple(value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(split_csv(value))
    items = []
    for item in value:
        items.extend(split_csv(item))
    return tuple(items)


def resolve_config(values: Mapping[str, Any], env: Optional[Mapping[str, str]] = None) -> ProvisionConfig:
    """Build a ProvisionConfig from raw flag values.

    `values` is keyed by field name; missing or None entries take the default.
    Secrets not passed as flags are looked up in `env`, which is never read
    implicitly from the process.
    """
    env = env or {}
    known = {f.name for f in fields(ProvisionConfig)}
    kwargs = {key: value for key, value in values.items() if key in known and value is not None}

    for key in ('catalog_apps', 'vclusters'):
        if key in kwargs:
            kwargs[key] = _as_tuple(kwargs[key])
    for key in ('git_provider', 'git_protocol', 'dns_provider', 'cluster_type'):
        if key in kwargs:
            kwargs[key] = str(kwargs[key]).strip().lower()

    if not kwargs.get('halt_phase'):
        kwargs['halt_phase'] = None
    if not kwargs.get('cloudflare_api_token'):
        kwargs['cloudflare_api_token'] = env.get('CLOUDFLARE_API_TOKEN', '')
    if not kwargs.get('unifi_password'):
        kwargs['unifi_password'] = env.get('UNIFI_PASSWORD', '')

    kubeconfig = kwargs.get('kubeconfig_path', ProvisionConfig.kubeconfig_path)
    kwargs['kubeconfig_path'] = expand_path(kubeconfig, env)

    return ProvisionConfig(**kwargs)


def validate_config(config: ProvisionConfig, registry: "PhaseRegistry") -> None:
    """Reject a configuration before any phase touches infrastructure.

    Every problem found is reported at once in a single ConfigValidationError.
    """
    problems = []

    if config.git_provider not in SUPPORTED_GIT_PROVIDERS:
        problems.append(
            f"git provider '{config.git_provider}' is not supported "
            f"(supported: {', '.join(SUPPORTED_GIT_PROVIDERS)})"
        )
    elif not config.git_owner:
        flag = '--github-org' if config.git_provider == 'github' else '--gitlab-group'
        problems.append(f"{flag} is required when using {config.git_provider}")

    if config.git_protocol not in SUPPORTED_GIT_PROTOCOLS:
        problems.append(
            f"git protocol '{config.git_protocol}' is not supported "
            f"(supported: {', '.join(SUPPORTED_GIT_PROTOCOLS)})"
        )

    if config.dns_provider not in SUPPORTED_DNS_PROVIDERS:
        problems.append(
            f"dns provider '{config.dns_provider}' is not supported "
            f"(supported: {', '.join(SUPPORTED_DNS_PROVIDERS)})"
        )

    if config.cluster_type not in SUPPORTED_CLUSTER_TYPES:
        problems.append(f"cluster type '{config.cluster_type}' must be one of: {', '.join(SUPPORTED_CLUSTER_TYPES)}")

    if not config.cluster_name:
        problems.append("cluster name is required")
    if not config.domain_name:
        problems.append("domain name is required")
    if not config.alerts_email:
        problems.append("alerts email is required")

    missing = catalog.unknown_apps(config.catalog_apps)
    if missing:
        problems.append(f"unknown catalog app(s): {', '.join(missing)}")

    if config.halt_phase is not None and registry.resolve(config.halt_phase) is None:
        problems.append(
            f"stop-after phase '{config.halt_phase}' is not a known phase "
            f"(one of: {'|'.join(registry.checkpoints())})"
        )

    if problems:
        raise ConfigValidationError(problems)
