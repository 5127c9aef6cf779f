"""CLI interface for the provisioning tool."""
import os
from typing import List

import typer

from . import catalog
from . import cluster
from . import config
from . import phases
from . import provisioner
from . import utils
from .context import RunContext
from .errors import ConfigValidationError, ProvisionCancelled, ProvisionError
from .stepper import ConsoleStepper

CLOUD_PROVIDER = 'harvester'
ESTIMATED_TIME_MIN = 25


app = typer.Typer(
    name="kubeprovision",
    help="Provision the kubefirst platform onto existing Kubernetes clusters.",
    add_completion=False,
    no_args_is_help=True,
)

harvester_app = typer.Typer(
    help="kubefirst Harvester cluster installation using existing kubeconfig",
    no_args_is_help=True,
)
app.add_typer(harvester_app, name="harvester")


@app.callback()
def main():
    """Provision the kubefirst platform onto existing Kubernetes clusters."""


@harvester_app.command("create")
def create(
    kubeconfig_path: str = typer.Option("$HOME/.kube/harvester.yaml", "--kubeconfig-path", help="path to Harvester kubeconfig file"),
    alerts_email: str = typer.Option("", "--alerts-email", help="email address for let's encrypt certificate notifications (required)"),
    ci: bool = typer.Option(False, "--ci", help="if running in ci, set this flag to disable interactive features"),
    cloud_region: str = typer.Option("on-premise", "--cloud-region", help="NOT USED, PRESENT FOR COMPATIBILITY"),
    node_type: str = typer.Option("on-premise", "--node-type", help="NOT USED, PRESENT FOR COMPATIBILITY"),
    node_count: str = typer.Option("1", "--node-count", help="NOT USED, PRESENT FOR COMPATIBILITY"),
    cluster_name: str = typer.Option("kubefirst", "--cluster-name", help="the name of the cluster to create"),
    cluster_type: str = typer.Option("mgmt", "--cluster-type", help="the type of cluster to create (mgmt|workload)"),
    dns_provider: str = typer.Option("cloudflare", "--dns-provider", help="DNS provider - one of: cloudflare"),
    domain_name: str = typer.Option("", "--domain-name", help="the domain name for your cluster"),
    git_provider: str = typer.Option("github", "--git-provider", help="git provider - one of: github, gitlab"),
    git_protocol: str = typer.Option("ssh", "--git-protocol", help="git protocol - one of: https, ssh"),
    github_org: str = typer.Option("", "--github-org", help="the GitHub organization for the GitOps repository - required if using GitHub"),
    gitlab_group: str = typer.Option("", "--gitlab-group", help="the GitLab group for the GitOps project - required if using GitLab"),
    gitops_template_url: str = typer.Option("https://github.com/konstructio/gitops-template.git", "--gitops-template-url", help="the fully qualified url to the gitops-template repository"),
    gitops_template_branch: str = typer.Option("", "--gitops-template-branch", help="the branch to use for the gitops-template repository"),
    install_catalog_apps: str = typer.Option("", "--install-catalog-apps", help="comma separated values to install after provision"),
    lb_ip_range: str = typer.Option("10.0.12.0/24", "--lb-ip-range", help="IP range for Harvester load balancer pool"),
    vclusters: List[str] = typer.Option(["dev", "test", "prod"], "--vclusters", help="comma-separated list of vCluster environments to create"),
    install_istio: bool = typer.Option(True, "--install-istio/--no-install-istio", help="install Istio in ambient mode"),
    istio_version: str = typer.Option("latest", "--istio-version", help="version of Istio to install"),
    install_kgateway: bool = typer.Option(True, "--install-kgateway/--no-install-kgateway", help="install Kubernetes Gateway API and kgateway"),
    install_kubefirst_pro: bool = typer.Option(True, "--install-kubefirst-pro/--no-install-kubefirst-pro", help="NOT USED, PRESENT FOR COMPATIBILITY"),
    gitops_repo: str = typer.Option("harvester-argo", "--gitops-repo", help="name of the GitOps repository"),
    unifi_host: str = typer.Option("", "--unifi-host", help="UniFi controller host/IP for port-forward (e.g. 192.168.1.1)"),
    unifi_user: str = typer.Option("admin", "--unifi-user", help="UniFi controller username"),
    unifi_password: str = typer.Option("", "--unifi-password", help="UniFi controller password (or UNIFI_PASSWORD)"),
    stop_after: str = typer.Option("", "--stop-after", help="halt provisioning after phase: argocd|ingress|vcluster|vault"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
):
    """Create the kubefirst platform on Harvester."""
    utils.setup_logging(verbose)

    stepper = ConsoleStepper(color=False if ci else None)
    stepper.display_log_hints(CLOUD_PROVIDER, ESTIMATED_TIME_MIN)

    stepper.begin_step("Validate Configuration")
    registry = phases.default_registry()
    values = {
        'kubeconfig_path': kubeconfig_path,
        'alerts_email': alerts_email,
        'ci': ci,
        'cluster_name': cluster_name,
        'cluster_type': cluster_type,
        'dns_provider': dns_provider,
        'domain_name': domain_name,
        'git_provider': git_provider,
        'git_protocol': git_protocol,
        'github_org': github_org,
        'gitlab_group': gitlab_group,
        'gitops_template_url': gitops_template_url,
        'gitops_template_branch': gitops_template_branch,
        'catalog_apps': install_catalog_apps,
        'lb_ip_range': lb_ip_range,
        'vclusters': vclusters,
        'install_istio': install_istio,
        'istio_version': istio_version,
        'install_kgateway': install_kgateway,
        'gitops_repo': gitops_repo,
        'unifi_host': unifi_host,
        'unifi_user': unifi_user,
        'unifi_password': unifi_password,
        'halt_phase': stop_after,
    }
    try:
        cfg = config.resolve_config(values, os.environ)
        config.validate_config(cfg, registry)
        catalog_apps = catalog.validate_catalog_apps(cfg.catalog_apps)
    except (ConfigValidationError, ValueError) as e:
        stepper.fail_step(e)
        typer.echo(f"❗ provided flags validation failed: {e}")
        raise typer.Exit(1)
    stepper.complete_step()

    client = cluster.KubectlClient(cfg.kubeconfig_path)
    runner = provisioner.Provisioner(client, stepper, registry)
    try:
        run = runner.provision_management_cluster(RunContext(), cfg, catalog_apps)
    except ProvisionCancelled as e:
        typer.echo(f"❗ {e}")
        raise typer.Exit(130)
    except ProvisionError as e:
        typer.echo(f"❗ failed to create harvester management cluster: {e}")
        raise typer.Exit(1)

    if run.halted_early:
        typer.echo(f"✅ Provisioning stopped after '{run.halted_at}'.")
    else:
        typer.echo("✅ Provisioning complete!")


@harvester_app.command("destroy")
def destroy():
    """Destroy the kubefirst platform running on Harvester and remove all resources."""
    typer.echo("❗ destroy command not yet implemented")
    raise typer.Exit(1)


@harvester_app.command("root-credentials")
def root_credentials():
    """Retrieve root authentication information for Harvester resources."""
    typer.echo("❗ root-credentials command not yet implemented")
    raise typer.Exit(1)


if __name__ == "__main__":
    app()
