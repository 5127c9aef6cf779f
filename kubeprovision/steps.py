"""Provisioning phases for the Harvester management cluster.

Every phase is re-runnable: resources are applied declaratively and waits
check current state, so a run can resume against a partially provisioned
cluster.
"""
import os
from typing import Any, Dict, Optional

from kubeprovision import catalog
from kubeprovision.cluster import ClusterClient
from kubeprovision.config import ProvisionConfig
from kubeprovision.context import RunContext
from kubeprovision.ingress import CloudflareDNS, UniFiController, get_public_ip
from kubeprovision.utils import command_exists, log_action, log_info

PLATFORM_NAMESPACE = 'kubefirst'
ARGOCD_NAMESPACE = 'argocd'
GATEWAY_NAMESPACE = 'kgateway-system'
GATEWAY_NAME = 'platform-gateway'
ISTIO_NAMESPACE = 'istio-system'

ARGOCD_MANIFEST_URL = "https://raw.githubusercontent.com/argoproj/argo-cd/stable/manifests/install.yaml"
GATEWAY_API_CRDS_URL = "https://github.com/kubernetes-sigs/gateway-api/releases/download/v1.2.1/standard-install.yaml"
KGATEWAY_CHART_REPO = "oci://cr.kgateway.dev/kgateway-dev/charts"
ISTIO_CHART_REPO = "https://istio-release.storage.googleapis.com/charts"
VCLUSTER_CHART_REPO = "https://charts.loft.sh"

REQUIRED_COMMANDS = ('kubectl', 'helm', 'curl')


def argocd_application(name: str, config: ProvisionConfig, destination_namespace: str,
                       path: Optional[str] = None, chart: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Build an ArgoCD Application sourced from the GitOps repo or a helm chart."""
    if chart is not None:
        source = dict(chart)
    else:
        source = {
            'repoURL': config.gitops_repo_url,
            'targetRevision': 'HEAD',
            'path': path,
        }
    return {
        'apiVersion': 'argoproj.io/v1alpha1',
        'kind': 'Application',
        'metadata': {
            'name': name,
            'namespace': ARGOCD_NAMESPACE,
            'labels': {'kubefirst.io/cluster': config.cluster_name},
        },
        'spec': {
            'project': 'default',
            'source': source,
            'destination': {
                'server': 'https://kubernetes.default.svc',
                'namespace': destination_namespace,
            },
            'syncPolicy': {
                'automated': {'prune': True, 'selfHeal': True},
                'syncOptions': ['CreateNamespace=true'],
            },
        },
    }


def wait_for_application(ctx: RunContext, client: ClusterClient, name: str, require_healthy: bool = True) -> None:
    """Block until an ArgoCD Application is Synced (and Healthy, unless told otherwise)."""
    if require_healthy:
        client.wait_for_condition(ctx, 'application', name, '{.status.sync.status}/{.status.health.status}',
                                  expected='Synced/Healthy', namespace=ARGOCD_NAMESPACE)
    else:
        client.wait_for_condition(ctx, 'application', name, '{.status.sync.status}',
                                  expected='Synced', namespace=ARGOCD_NAMESPACE)
    log_info(f"ArgoCD application {name} is ready.")


def preflight(ctx: RunContext, config: ProvisionConfig, client: ClusterClient) -> None:
    """Check local tooling, credentials and API reachability."""
    log_info("Running preflight checks...")

    if not os.path.exists(config.kubeconfig_path):
        raise FileNotFoundError(f"kubeconfig not found at {config.kubeconfig_path}")

    for command in REQUIRED_COMMANDS:
        if not command_exists(command):
            raise RuntimeError(f"{command} is required but not found in PATH")

    if config.dns_provider == 'cloudflare' and not config.cloudflare_api_token:
        raise RuntimeError("CLOUDFLARE_API_TOKEN must be set to manage DNS with cloudflare")

    info = client.cluster_info(ctx)
    log_info(info.splitlines()[0] if info else "Cluster API is reachable.")


def bootstrap_management_cluster(ctx: RunContext, config: ProvisionConfig, client: ClusterClient) -> None:
    """Create platform namespaces and record the platform settings in-cluster."""
    log_action(f"Bootstrapping management cluster {config.cluster_name}...")

    namespaces = [
        {'apiVersion': 'v1', 'kind': 'Namespace', 'metadata': {'name': name}}
        for name in (PLATFORM_NAMESPACE, ARGOCD_NAMESPACE)
    ]
    client.apply_manifest(ctx, namespaces)

    settings = {
        'apiVersion': 'v1',
        'kind': 'ConfigMap',
        'metadata': {'name': 'kubefirst-platform', 'namespace': PLATFORM_NAMESPACE},
        'data': {
            'cluster-name': config.cluster_name,
            'cluster-type': config.cluster_type,
            'cloud-provider': config.cloud_provider,
            'domain-name': config.domain_name,
            'git-provider': config.git_provider,
            'git-owner': config.git_owner,
            'gitops-repo-url': config.gitops_repo_url,
            'alerts-email': config.alerts_email,
            'vclusters': ','.join(config.vclusters),
        },
    }
    client.apply_manifest(ctx, settings)

    if config.cloudflare_api_token:
        client.apply_manifest(ctx, {
            'apiVersion': 'v1',
            'kind': 'Secret',
            'metadata': {'name': 'cloudflare-creds', 'namespace': PLATFORM_NAMESPACE},
            'type': 'Opaque',
            'stringData': {'api-token': config.cloudflare_api_token},
        })


def install_argocd(ctx: RunContext, config: ProvisionConfig, client: ClusterClient) -> None:
    """Install ArgoCD and hand the cluster over to the registry application."""
    log_action("Installing ArgoCD...")
    client.apply_url(ctx, ARGOCD_MANIFEST_URL, namespace=ARGOCD_NAMESPACE, server_side=True)
    client.wait_for_condition(ctx, 'deployment', 'argocd-server', '{.status.availableReplicas}',
                              namespace=ARGOCD_NAMESPACE)
    log_info("ArgoCD server is available.")

    log_action(f"Deploying registry application from {config.gitops_repo_url}...")
    registry = argocd_application('registry', config, ARGOCD_NAMESPACE,
                                  path=f"registry/clusters/{config.cluster_name}")
    client.apply_manifest(ctx, registry)
    wait_for_application(ctx, client, 'registry', require_healthy=False)


def _install_istio_ambient(ctx: RunContext, config: ProvisionConfig, client: ClusterClient) -> None:
    version = None if config.istio_version == 'latest' else config.istio_version
    log_action("Installing Istio in ambient mode...")
    client.helm_upgrade_install(ctx, 'istio-base', 'base', ISTIO_NAMESPACE,
                                repo=ISTIO_CHART_REPO, version=version)
    client.helm_upgrade_install(ctx, 'istiod', 'istiod', ISTIO_NAMESPACE,
                                repo=ISTIO_CHART_REPO, version=version, values={'profile': 'ambient'})
    client.helm_upgrade_install(ctx, 'istio-cni', 'cni', ISTIO_NAMESPACE,
                                repo=ISTIO_CHART_REPO, version=version, values={'profile': 'ambient'})
    client.helm_upgrade_install(ctx, 'ztunnel', 'ztunnel', ISTIO_NAMESPACE,
                                repo=ISTIO_CHART_REPO, version=version)


def configure_ingress(ctx: RunContext, config: ProvisionConfig, client: ClusterClient) -> None:
    """Expose the platform gateway and point DNS and the edge router at it."""
    client.apply_manifest(ctx, {
        'apiVersion': 'loadbalancer.harvesterhci.io/v1beta1',
        'kind': 'IPPool',
        'metadata': {'name': f"{config.cluster_name}-ingress"},
        'spec': {'ranges': [{'subnet': config.lb_ip_range}]},
    })

    if config.install_kgateway:
        log_action("Installing Gateway API CRDs and kgateway...")
        client.apply_url(ctx, GATEWAY_API_CRDS_URL, server_side=True)
        client.helm_upgrade_install(ctx, 'kgateway-crds', f"{KGATEWAY_CHART_REPO}/kgateway-crds", GATEWAY_NAMESPACE)
        client.helm_upgrade_install(ctx, 'kgateway', f"{KGATEWAY_CHART_REPO}/kgateway", GATEWAY_NAMESPACE)
    else:
        log_info("Skipping kgateway installation; expecting an existing gateway controller.")

    if config.install_istio:
        _install_istio_ambient(ctx, config, client)

    client.apply_manifest(ctx, {
        'apiVersion': 'gateway.networking.k8s.io/v1',
        'kind': 'Gateway',
        'metadata': {'name': GATEWAY_NAME, 'namespace': GATEWAY_NAMESPACE},
        'spec': {
            'gatewayClassName': 'kgateway',
            'listeners': [
                {'name': 'http', 'protocol': 'HTTP', 'port': 80,
                 'allowedRoutes': {'namespaces': {'from': 'All'}}},
                {'name': 'https', 'protocol': 'HTTPS', 'port': 443, 'hostname': f"*.{config.domain_name}",
                 'tls': {'certificateRefs': [{'name': 'platform-tls'}]},
                 'allowedRoutes': {'namespaces': {'from': 'All'}}},
            ],
        },
    })
    lb_ip = client.wait_for_condition(ctx, 'service', GATEWAY_NAME, '{.status.loadBalancer.ingress[0].ip}',
                                      namespace=GATEWAY_NAMESPACE)
    log_info(f"Gateway load balancer address: {lb_ip}")

    public_ip = get_public_ip(ctx)
    dns = CloudflareDNS(config.cloudflare_api_token)
    zone_id = dns.zone_id(ctx, config.domain_name)
    for record in (config.domain_name, f"*.{config.domain_name}"):
        result = dns.upsert_a_record(ctx, zone_id, record, public_ip)
        log_action(f"DNS record {record} -> {public_ip} {result}")

    if not config.unifi_host:
        log_info("No UniFi host configured, skipping port-forward setup.")
        return

    with UniFiController(config.unifi_host, config.unifi_user, config.unifi_password) as controller:
        controller.login(ctx)
        for port in (80, 443):
            result = controller.ensure_port_forward(ctx, f"{config.cluster_name}-{port}", port, lb_ip)
            log_action(f"UniFi port-forward {port} -> {lb_ip} {result}")


def provision_vclusters(ctx: RunContext, config: ProvisionConfig, client: ClusterClient) -> None:
    """Deploy the vCluster platform app and one virtual cluster per environment."""
    log_action("Deploying platform-vcluster application...")
    client.apply_manifest(ctx, argocd_application(
        'platform-vcluster', config, 'vcluster-platform',
        path=f"registry/clusters/{config.cluster_name}/vclusters",
    ))
    wait_for_application(ctx, client, 'platform-vcluster')

    for env in config.vclusters:
        name = f"vcluster-{env}"
        log_action(f"Creating vCluster {env}...")
        client.apply_manifest(ctx, argocd_application(
            name, config, name,
            chart={'repoURL': VCLUSTER_CHART_REPO, 'chart': 'vcluster', 'targetRevision': '*'},
        ))
    for env in config.vclusters:
        wait_for_application(ctx, client, f"vcluster-{env}")


def install_vault(ctx: RunContext, config: ProvisionConfig, client: ClusterClient) -> None:
    """Deploy Vault through ArgoCD and wait for it to become healthy."""
    log_action("Deploying vault application...")
    client.apply_manifest(ctx, argocd_application(
        'vault', config, 'vault', path=f"registry/clusters/{config.cluster_name}/vault",
    ))
    wait_for_application(ctx, client, 'vault')


def install_catalog_apps(ctx: RunContext, config: ProvisionConfig, client: ClusterClient) -> None:
    """Deploy one ArgoCD application per requested catalog app."""
    apps = catalog.validate_catalog_apps(config.catalog_apps)
    if not apps:
        log_info("No catalog apps requested.")
        return

    for app in apps:
        log_action(f"Installing catalog app {app.name}...")
        client.apply_manifest(ctx, argocd_application(app.name, config, app.namespace, path=f"catalog/{app.name}"))
    for app in apps:
        wait_for_application(ctx, client, app.name)
