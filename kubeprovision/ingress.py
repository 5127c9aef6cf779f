"""DNS records and edge port-forwarding for the platform's ingress."""
import json
import logging
import os
import tempfile
from typing import Any, Dict, List, Optional, Sequence

import sh
from sh import ErrorReturnCode

from kubeprovision.context import RunContext
from kubeprovision.errors import IngressError, PhaseTimeout

logger = logging.getLogger(__name__)

CLOUDFLARE_API = "https://api.cloudflare.com/client/v4"
PUBLIC_IP_URL = "https://api.ipify.org"
CURL_TIMEOUT = 28


def _config_line(option: str, value: str) -> str:
    escaped = value.replace('\\', '\\\\').replace('"', '\\"')
    return f'{option} = "{escaped}"'


def _curl(ctx: RunContext, *args: str, body: Optional[Dict[str, Any]] = None,
          headers: Sequence[str] = ()) -> str:
    """Run curl against the URL in the last argument.

    Headers and the JSON body are handed to curl as a config file on stdin so
    tokens and passwords never show up in the process list.
    """
    ctx.check()
    curl_args = ['-sS', '--fail-with-body']
    remaining = ctx.remaining()
    if remaining is not None:
        curl_args += ['--max-time', str(max(int(remaining), 1))]

    config = [_config_line('header', header) for header in headers]
    if body is not None:
        config.append(_config_line('header', 'Content-Type: application/json'))
        config.append(_config_line('data', json.dumps(body)))
    kwargs = {}
    if config:
        curl_args += ['--config', '-']
        kwargs['_in'] = '\n'.join(config) + '\n'

    logger.debug("curl %s", args[-1])
    try:
        return str(sh.curl(*curl_args, *args, **kwargs))
    except ErrorReturnCode as e:
        if e.exit_code == CURL_TIMEOUT:
            raise PhaseTimeout(f"request to {args[-1]} timed out") from e
        detail = e.stdout.decode(errors='replace') or e.stderr.decode(errors='replace')
        raise IngressError(f"request to {args[-1]} failed: {detail.strip()}") from e


def get_public_ip(ctx: RunContext) -> str:
    """Return the WAN address this network is reachable on."""
    ip = _curl(ctx, PUBLIC_IP_URL).strip()
    if not ip:
        raise IngressError("could not determine public IP address")
    return ip


class CloudflareDNS:
    """Minimal Cloudflare v4 client for A records."""

    def __init__(self, api_token: str):
        self.api_token = api_token

    def _request(self, ctx: RunContext, method: str, path: str,
                 body: Optional[Dict[str, Any]] = None) -> Any:
        output = _curl(
            ctx,
            '-X', method,
            f"{CLOUDFLARE_API}{path}",
            body=body,
            headers=[f"Authorization: Bearer {self.api_token}"],
        )
        try:
            data = json.loads(output)
        except json.JSONDecodeError as e:
            raise IngressError(f"cloudflare returned invalid JSON for {path}") from e
        if not data.get('success', False):
            errors = ', '.join(err.get('message', '') for err in data.get('errors', []))
            raise IngressError(f"cloudflare {method} {path} failed: {errors}")
        return data.get('result')

    def zone_id(self, ctx: RunContext, domain: str) -> str:
        zones = self._request(ctx, 'GET', f"/zones?name={domain}")
        if not zones:
            raise IngressError(f"no cloudflare zone found for {domain}")
        return zones[0]['id']

    def upsert_a_record(self, ctx: RunContext, zone_id: str, name: str, ip: str) -> str:
        """Create or update an A record; returns 'created', 'updated' or 'unchanged'."""
        records = self._request(ctx, 'GET', f"/zones/{zone_id}/dns_records?type=A&name={name}")
        payload = {'type': 'A', 'name': name, 'content': ip, 'ttl': 1, 'proxied': False}
        if not records:
            self._request(ctx, 'POST', f"/zones/{zone_id}/dns_records", body=payload)
            return 'created'
        record = records[0]
        if record.get('content') == ip:
            return 'unchanged'
        self._request(ctx, 'PUT', f"/zones/{zone_id}/dns_records/{record['id']}", body=payload)
        return 'updated'


class UniFiController:
    """Port-forward management on a UniFi OS controller."""

    def __init__(self, host: str, user: str, password: str, site: str = 'default'):
        self.host = host
        self.user = user
        self.password = password
        self.site = site
        self._tmpdir = tempfile.TemporaryDirectory(prefix="kubeprovision-unifi-")
        self._workdir = self._tmpdir.name
        self._cookies = os.path.join(self._workdir, 'cookies')
        self._csrf_token = ''

    def close(self) -> None:
        """Drop the session cookie jar and captured headers."""
        self._tmpdir.cleanup()

    def __enter__(self) -> "UniFiController":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _url(self, path: str) -> str:
        return f"https://{self.host}{path}"

    def login(self, ctx: RunContext) -> None:
        headers = os.path.join(self._workdir, 'headers')
        _curl(
            ctx, '-k', '-c', self._cookies, '-D', headers, '-X', 'POST',
            self._url('/api/auth/login'),
            body={'username': self.user, 'password': self.password},
        )
        with open(headers, 'r') as f:
            for line in f:
                key, _, value = line.partition(':')
                if key.strip().lower() == 'x-csrf-token':
                    self._csrf_token = value.strip()

    def _api(self, ctx: RunContext, method: str, path: str,
             body: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        headers = [f"X-CSRF-Token: {self._csrf_token}"] if self._csrf_token else []
        output = _curl(ctx, '-k', '-b', self._cookies, '-X', method,
                       self._url(f"/proxy/network/api/s/{self.site}{path}"), body=body, headers=headers)
        try:
            return json.loads(output).get('data', [])
        except json.JSONDecodeError as e:
            raise IngressError(f"unifi returned invalid JSON for {path}") from e

    def ensure_port_forward(self, ctx: RunContext, name: str, port: int, target_ip: str) -> str:
        """Forward a WAN TCP port to `target_ip`; returns 'created', 'updated' or 'unchanged'."""
        rule = {
            'name': name,
            'enabled': True,
            'src': 'any',
            'dst_port': str(port),
            'fwd': target_ip,
            'fwd_port': str(port),
            'proto': 'tcp',
            'pfwd_interface': 'wan',
            'log': False,
        }
        existing = [r for r in self._api(ctx, 'GET', '/rest/portforward') if r.get('name') == name]
        if not existing:
            self._api(ctx, 'POST', '/rest/portforward', body=rule)
            return 'created'
        current = existing[0]
        if current.get('fwd') == target_ip and current.get('dst_port') == str(port) and current.get('enabled'):
            return 'unchanged'
        self._api(ctx, 'PUT', f"/rest/portforward/{current['_id']}", body=rule)
        return 'updated'
