"""Access to the target Kubernetes cluster through kubectl and helm."""
import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol, Union

import sh
from sh import ErrorReturnCode, TimeoutException

from kubeprovision.context import RunContext
from kubeprovision.errors import ClusterError, PhaseTimeout

logger = logging.getLogger(__name__)

Manifest = Union[Mapping[str, Any], List[Mapping[str, Any]]]


class ClusterClient(Protocol):
    """Capabilities phases use to read and change the cluster."""

    def cluster_info(self, ctx: RunContext) -> str:
        ...

    def apply_manifest(self, ctx: RunContext, manifest: Manifest, namespace: Optional[str] = None) -> None:
        ...

    def apply_url(self, ctx: RunContext, url: str, namespace: Optional[str] = None, server_side: bool = False) -> None:
        ...

    def get_resource_status(self, ctx: RunContext, kind: str, name: str,
                            namespace: Optional[str] = None, jsonpath: str = '{.status}') -> Optional[str]:
        ...

    def wait_for_condition(self, ctx: RunContext, kind: str, name: str, jsonpath: str,
                           expected: Optional[str] = None, namespace: Optional[str] = None,
                           interval: float = 5.0) -> str:
        ...

    def helm_upgrade_install(self, ctx: RunContext, release: str, chart: str, namespace: str,
                             repo: Optional[str] = None, version: Optional[str] = None,
                             values: Optional[Mapping[str, Any]] = None) -> None:
        ...


class KubectlClient:
    """ClusterClient backed by the kubectl and helm binaries."""

    def __init__(self, kubeconfig: str):
        self.kubeconfig = kubeconfig

    def _run(self, ctx: RunContext, program: str, *args: str, stdin: Optional[str] = None) -> str:
        ctx.check()
        kwargs: Dict[str, Any] = {}
        remaining = ctx.remaining()
        if remaining is not None:
            kwargs['_timeout'] = max(remaining, 1.0)
        if stdin is not None:
            kwargs['_in'] = stdin

        command = f"{program} {' '.join(args)}"
        logger.debug("running %s", command)
        try:
            output = getattr(sh, program)('--kubeconfig', self.kubeconfig, *args, **kwargs)
        except TimeoutException as e:
            raise PhaseTimeout(f"`{command}` timed out") from e
        except ErrorReturnCode as e:
            raise ClusterError(command, e.stderr.decode(errors='replace')) from e
        return str(output)

    def cluster_info(self, ctx: RunContext) -> str:
        """Confirm the API server answers; returns kubectl's summary."""
        return self._run(ctx, 'kubectl', 'cluster-info').strip()

    def apply_manifest(self, ctx: RunContext, manifest: Manifest, namespace: Optional[str] = None) -> None:
        """Apply one manifest, or a list of them as a single kind: List."""
        if isinstance(manifest, list):
            document = {'apiVersion': 'v1', 'kind': 'List', 'items': list(manifest)}
        else:
            document = dict(manifest)
        args = ['apply', '-f', '-']
        if namespace:
            args += ['--namespace', namespace]
        self._run(ctx, 'kubectl', *args, stdin=json.dumps(document))

    def apply_url(self, ctx: RunContext, url: str, namespace: Optional[str] = None, server_side: bool = False) -> None:
        """Apply a remote manifest; server-side apply takes ownership of conflicting fields."""
        args = ['apply', '-f', url]
        if namespace:
            args += ['--namespace', namespace]
        if server_side:
            args += ['--server-side', '--force-conflicts']
        self._run(ctx, 'kubectl', *args)

    def get_resource_status(self, ctx: RunContext, kind: str, name: str,
                            namespace: Optional[str] = None, jsonpath: str = '{.status}') -> Optional[str]:
        """Read one field of a resource; None when the resource or field is absent."""
        args = ['get', kind, name, '--ignore-not-found', '-o', f"jsonpath={jsonpath}"]
        if namespace:
            args += ['--namespace', namespace]
        value = self._run(ctx, 'kubectl', *args).strip()
        return value or None

    def wait_for_condition(self, ctx: RunContext, kind: str, name: str, jsonpath: str,
                           expected: Optional[str] = None, namespace: Optional[str] = None,
                           interval: float = 5.0) -> str:
        """Poll a resource field until it equals `expected` (or is set at all).

        Failed reads are logged and retried. Polling stops with PhaseTimeout at
        the context deadline and with ProvisionCancelled as soon as the context
        is cancelled.
        """
        last = None
        last_error: Optional[ClusterError] = None
        while True:
            try:
                if ctx.expired():
                    raise PhaseTimeout("deadline exceeded")
                last = self.get_resource_status(ctx, kind, name, namespace=namespace, jsonpath=jsonpath)
                last_error = None
            except ClusterError as e:
                logger.warning("reading %s/%s failed, retrying: %s", kind, name, e)
                last_error = e
                ctx.sleep(interval)
                continue
            except PhaseTimeout as e:
                target = expected if expected is not None else "a value"
                seen = f"last error: {last_error}" if last_error is not None else f"last seen: {last}"
                raise PhaseTimeout(
                    f"timed out waiting for {kind}/{name} {jsonpath} to be {target} ({seen})"
                ) from e
            if last is not None and (expected is None or last == expected):
                return last
            logger.debug("waiting for %s/%s: %s=%s", kind, name, jsonpath, last)
            ctx.sleep(interval)

    def helm_upgrade_install(self, ctx: RunContext, release: str, chart: str, namespace: str,
                             repo: Optional[str] = None, version: Optional[str] = None,
                             values: Optional[Mapping[str, Any]] = None) -> None:
        """Install or upgrade a helm release, feeding `values` as JSON on stdin."""
        args = ['upgrade', '--install', release, chart, '--namespace', namespace, '--create-namespace', '--wait']
        if repo:
            args += ['--repo', repo]
        if version:
            args += ['--version', version]
        stdin = None
        if values:
            args += ['--values', '-']
            stdin = json.dumps(dict(values))
        self._run(ctx, 'helm', *args, stdin=stdin)
