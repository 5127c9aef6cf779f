"""Tests for the kubectl-backed cluster client."""
import json
import time
from unittest.mock import patch

import pytest
import sh

from kubeprovision.cluster import KubectlClient
from kubeprovision.context import RunContext
from kubeprovision.errors import ClusterError, PhaseTimeout, ProvisionCancelled

KUBECONFIG = '/home/op/.kube/harvester.yaml'


@pytest.fixture
def client():
    return KubectlClient(KUBECONFIG)


class TestApply:
    """Tests for applying manifests."""

    @patch('kubeprovision.cluster.sh')
    def test_apply_single_manifest(self, mock_sh, client):
        manifest = {'apiVersion': 'v1', 'kind': 'Namespace', 'metadata': {'name': 'argocd'}}

        client.apply_manifest(RunContext(), manifest)

        args, kwargs = mock_sh.kubectl.call_args
        assert args == ('--kubeconfig', KUBECONFIG, 'apply', '-f', '-')
        assert json.loads(kwargs['_in']) == manifest
        assert '_timeout' not in kwargs

    @patch('kubeprovision.cluster.sh')
    def test_apply_list_wraps_items(self, mock_sh, client):
        items = [{'kind': 'Namespace', 'metadata': {'name': n}} for n in ('a', 'b')]

        client.apply_manifest(RunContext(), items, namespace='kubefirst')

        args, kwargs = mock_sh.kubectl.call_args
        assert args[-2:] == ('--namespace', 'kubefirst')
        document = json.loads(kwargs['_in'])
        assert document['kind'] == 'List'
        assert document['items'] == items

    @patch('kubeprovision.cluster.sh')
    def test_apply_url_server_side(self, mock_sh, client):
        client.apply_url(RunContext(), 'https://example.com/install.yaml', namespace='argocd', server_side=True)

        mock_sh.kubectl.assert_called_once_with(
            '--kubeconfig', KUBECONFIG, 'apply', '-f', 'https://example.com/install.yaml',
            '--namespace', 'argocd', '--server-side', '--force-conflicts',
        )

    @patch('kubeprovision.cluster.sh')
    def test_deadline_becomes_command_timeout(self, mock_sh, client):
        client.apply_url(RunContext.with_timeout(60), 'https://example.com/x.yaml')

        assert 0 < mock_sh.kubectl.call_args.kwargs['_timeout'] <= 60

    @patch('kubeprovision.cluster.sh')
    def test_cancelled_context_runs_nothing(self, mock_sh, client):
        ctx = RunContext()
        ctx.cancel()

        with pytest.raises(ProvisionCancelled):
            client.cluster_info(ctx)

        mock_sh.kubectl.assert_not_called()


class TestErrors:
    @patch('kubeprovision.cluster.sh')
    def test_command_failure_wrapped(self, mock_sh, client):
        mock_sh.kubectl.side_effect = sh.ErrorReturnCode_1("kubectl", b"", b"error: connection refused")

        with pytest.raises(ClusterError, match="connection refused") as excinfo:
            client.cluster_info(RunContext())

        assert excinfo.value.command == 'kubectl cluster-info'

    @patch('kubeprovision.cluster.sh')
    def test_command_timeout_wrapped(self, mock_sh, client):
        mock_sh.kubectl.side_effect = sh.TimeoutException(-9, "kubectl cluster-info")

        with pytest.raises(PhaseTimeout):
            client.cluster_info(RunContext())


class TestStatus:
    """Tests for reading and waiting on resource status."""

    @patch('kubeprovision.cluster.sh')
    def test_get_resource_status(self, mock_sh, client):
        mock_sh.kubectl.return_value = "Synced\n"

        status = client.get_resource_status(RunContext(), 'application', 'registry', namespace='argocd',
                                            jsonpath='{.status.sync.status}')

        assert status == 'Synced'
        mock_sh.kubectl.assert_called_once_with(
            '--kubeconfig', KUBECONFIG, 'get', 'application', 'registry', '--ignore-not-found',
            '-o', 'jsonpath={.status.sync.status}', '--namespace', 'argocd',
        )

    @patch('kubeprovision.cluster.sh')
    def test_missing_resource_is_none(self, mock_sh, client):
        mock_sh.kubectl.return_value = ""

        assert client.get_resource_status(RunContext(), 'deployment', 'argocd-server') is None

    @patch('kubeprovision.cluster.sh')
    def test_wait_until_expected(self, mock_sh, client):
        mock_sh.kubectl.side_effect = ["", "OutOfSync/Progressing", "Synced/Healthy"]

        value = client.wait_for_condition(RunContext(), 'application', 'vault', '{.x}',
                                          expected='Synced/Healthy', interval=0)

        assert value == 'Synced/Healthy'
        assert mock_sh.kubectl.call_count == 3

    @patch('kubeprovision.cluster.sh')
    def test_wait_for_any_value(self, mock_sh, client):
        mock_sh.kubectl.side_effect = ["", "10.0.12.5"]

        value = client.wait_for_condition(RunContext(), 'service', 'gw', '{.ip}', interval=0)

        assert value == '10.0.12.5'

    @patch('kubeprovision.cluster.sh')
    def test_wait_times_out(self, mock_sh, client):
        mock_sh.kubectl.return_value = "Progressing"
        ctx = RunContext(deadline=time.monotonic() + 0.1)

        with pytest.raises(PhaseTimeout, match="application/vault"):
            client.wait_for_condition(ctx, 'application', 'vault', '{.x}', expected='Healthy', interval=0.02)

    @patch('kubeprovision.cluster.sh')
    def test_wait_retries_failed_reads(self, mock_sh, client):
        mock_sh.kubectl.side_effect = [
            sh.ErrorReturnCode_1("kubectl", b"", b"the server is currently unable to handle the request"),
            "Synced/Healthy",
        ]

        value = client.wait_for_condition(RunContext(), 'application', 'vault', '{.x}',
                                          expected='Synced/Healthy', interval=0)

        assert value == 'Synced/Healthy'
        assert mock_sh.kubectl.call_count == 2

    @patch('kubeprovision.cluster.sh')
    def test_wait_timeout_reports_last_error(self, mock_sh, client):
        mock_sh.kubectl.side_effect = sh.ErrorReturnCode_1("kubectl", b"", b"no matches for kind Application")
        ctx = RunContext(deadline=time.monotonic() + 0.1)

        with pytest.raises(PhaseTimeout, match="no matches for kind Application"):
            client.wait_for_condition(ctx, 'application', 'vault', '{.x}', expected='Healthy', interval=0.02)


class TestHelm:
    @patch('kubeprovision.cluster.sh')
    def test_upgrade_install_with_values(self, mock_sh, client):
        client.helm_upgrade_install(RunContext(), 'istiod', 'istiod', 'istio-system',
                                    repo='https://charts.example.com', version='1.24.0',
                                    values={'profile': 'ambient'})

        args, kwargs = mock_sh.helm.call_args
        assert args == (
            '--kubeconfig', KUBECONFIG, 'upgrade', '--install', 'istiod', 'istiod',
            '--namespace', 'istio-system', '--create-namespace', '--wait',
            '--repo', 'https://charts.example.com', '--version', '1.24.0', '--values', '-',
        )
        assert json.loads(kwargs['_in']) == {'profile': 'ambient'}

    @patch('kubeprovision.cluster.sh')
    def test_upgrade_install_without_values(self, mock_sh, client):
        client.helm_upgrade_install(RunContext(), 'kgateway', 'oci://charts/kgateway', 'kgateway-system')

        assert '_in' not in mock_sh.helm.call_args.kwargs
