"""Docker Registry HTTP API v2 client used to list the tags of an image."""

from typing import Dict, List, Optional, Tuple
import logging
import re
import threading

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from . import __version__
from .config import Config, RegistryConfig
from .exceptions import RegistryUnavailable

logger = logging.getLogger(__name__)

# Docker Hub serves the API from a different host than the image domain
DOCKER_HUB_DOMAIN = "docker.io"
DOCKER_HUB_API_HOST = "registry-1.docker.io"

PAGE_SIZE = 1000

CHALLENGE_PARAM_PATTERN = re.compile(r'(\w+)="([^"]*)"')


def parse_challenge(header: str) -> Tuple[str, Dict[str, str]]:
    """Split a ``WWW-Authenticate`` header into its scheme and parameters."""
    scheme, _, params = header.strip().partition(" ")
    return scheme.lower(), dict(CHALLENGE_PARAM_PATTERN.findall(params))


class RegistryClient:
    """Lists the tags published for a repository.

    One client serves every registry domain; per-domain settings such as
    credentials or TLS policy come from :class:`~stale_container.config.Config`.
    The client is safe to share between worker threads.
    """

    def __init__(
        self,
        config: Config,
        transport: Optional[httpx.BaseTransport] = None,
        timeout: float = 30.0,
    ):
        self.config = config
        self.timeout = timeout
        self._transport = transport
        self._clients: Dict[str, httpx.Client] = {}
        self._tokens: Dict[Tuple[str, str], str] = {}
        self._lock = threading.Lock()

    def _base_url(self, domain: str, rc: RegistryConfig) -> str:
        host = DOCKER_HUB_API_HOST if domain == DOCKER_HUB_DOMAIN else domain
        scheme = "http" if rc.non_ssl else "https"
        return f"{scheme}://{host}"

    def get_client(self, domain: str) -> httpx.Client:
        """Get or create the HTTP client for a registry domain."""
        with self._lock:
            client = self._clients.get(domain)
            if client is None or client.is_closed:
                rc = self.config.get_registry_config(domain)
                client = httpx.Client(
                    base_url=self._base_url(domain, rc),
                    timeout=self.timeout,
                    verify=not rc.insecure,
                    headers={"User-Agent": f"stale-container/{__version__}"},
                    follow_redirects=True,
                    transport=self._transport,
                )
                self._clients[domain] = client
            return client

    def credentials(self, domain: str) -> Optional[Tuple[str, str]]:
        """Basic credentials for ``domain``, looked up under its auth domain when it has none."""
        rc = self.config.get_registry_config(domain)
        if not rc.username and rc.auth_domain != domain:
            rc = self.config.get_registry_config(rc.auth_domain)
        if not rc.username:
            return None
        return rc.username, rc.password or ""

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type((httpx.ConnectError, httpx.ReadTimeout)),
        reraise=True,
    )
    def _get(self, client: httpx.Client, url: str, headers: Optional[Dict[str, str]] = None,
             **kwargs) -> httpx.Response:
        logger.debug(f"Fetching: {url}")
        return client.get(url, headers=headers, **kwargs)

    def _fetch_token(self, domain: str, challenge: Dict[str, str]) -> str:
        """Exchange credentials for a bearer token at the challenge's realm."""
        rc = self.config.get_registry_config(domain)
        realm = challenge.get("realm")
        if not realm:
            raise RegistryUnavailable(f"{domain}: bearer challenge without realm")
        if realm.startswith("http:") and not rc.non_ssl:
            raise RegistryUnavailable(
                f"{domain}: attempted to use insecure protocol for authentication, "
                "set non_ssl in the registry configuration to force it"
            )

        params = {k: v for k, v in challenge.items() if k in ("service", "scope")}
        auth = self.credentials(domain)
        response = self._get(self.get_client(domain), realm, params=params, auth=auth)
        response.raise_for_status()
        body = response.json()
        token = body.get("token") or body.get("access_token")
        if not token:
            raise RegistryUnavailable(f"{domain}: token service returned no token")
        return token

    def _authorized_get(self, domain: str, url: str, scope: str) -> httpx.Response:
        """GET ``url``, answering one authentication challenge if needed."""
        client = self.get_client(domain)

        token = self._tokens.get((domain, scope))
        headers = {"Authorization": f"Bearer {token}"} if token else None
        response = self._get(client, url, headers=headers)
        if response.status_code != 401:
            return response

        scheme, challenge = parse_challenge(response.headers.get("WWW-Authenticate", ""))
        if scheme == "bearer":
            token = self._fetch_token(domain, challenge)
            self._tokens[(domain, scope)] = token
            return self._get(client, url, headers={"Authorization": f"Bearer {token}"})
        auth = self.credentials(domain)
        if scheme == "basic" and auth:
            return self._get(client, url, auth=auth)
        return response

    def ping(self, domain: str) -> None:
        """Check that ``domain`` speaks the v2 API."""
        response = self._get(self.get_client(domain), "/v2/")
        # 401 still proves a v2 registry is answering
        if response.status_code not in (200, 401):
            raise RegistryUnavailable(
                f"{domain} does not look like a v2 registry: HTTP {response.status_code}"
            )

    def list_tags(self, domain: str, path: str) -> List[str]:
        """Return every tag of ``domain/path``, sorted."""
        rc = self.config.get_registry_config(domain)
        scope = f"repository:{path}:pull"
        tags: List[str] = []

        try:
            if not rc.skip_ping:
                self.ping(domain)

            url: Optional[str] = f"/v2/{path}/tags/list?n={PAGE_SIZE}"
            while url:
                response = self._authorized_get(domain, url, scope)
                response.raise_for_status()
                tags.extend(response.json().get("tags") or [])
                url = response.links.get("next", {}).get("url")
        except httpx.HTTPStatusError as e:
            logger.warning(f"HTTP error listing tags of {domain}/{path}: {e}")
            raise RegistryUnavailable(
                f"{domain}/{path}: registry answered HTTP {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Error listing tags of {domain}/{path}: {e}")
            raise RegistryUnavailable(f"{domain}/{path}: {e}") from e

        logger.debug(f"Fetched {len(tags)} tags for {domain}/{path}")
        return sorted(tags)

    def close(self):
        """Clean up HTTP clients."""
        with self._lock:
            for client in self._clients.values():
                client.close()
            self._clients.clear()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
