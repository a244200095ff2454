"""Shared HTTP plumbing for the REST-only backends (Azure DevOps, GitLab)."""

from __future__ import annotations

import logging

import requests

from ice_core.errors import ProviderConflictError, ProviderError
from ice_core.providers.base import GitProvider

DEFAULT_TIMEOUT = 30


class RestProvider(GitProvider):
    """Base for gateways that speak JSON over HTTP.

    Subclasses set ``base_url`` and authentication headers on the session and
    build endpoint paths; status handling lives here so every backend maps
    failures to ProviderError the same way.
    """

    def __init__(
        self,
        base_url: str,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        logger: logging.Logger | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)

    def _request(self, method: str, path: str, *, params=None, json=None, allow_missing: bool = False):
        """Send one request and return the decoded JSON body (None for empty bodies).

        With ``allow_missing`` a 404 returns None instead of raising; any
        other non-2xx status raises ProviderError.
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        self.logger.debug("%s %s", method, url)
        try:
            resp = self.session.request(method, url, params=params, json=json, timeout=self.timeout)
        except requests.RequestException as e:
            raise ProviderError(f"{self.name}: {method} {url} failed: {e}") from e

        if resp.status_code == 404 and allow_missing:
            return None
        if resp.status_code == 409:
            raise ProviderConflictError(f"{self.name}: {method} {url} conflict: {resp.text[:500]}", status=409)
        if resp.status_code >= 400:
            raise ProviderError(
                f"{self.name}: {method} {url} returned {resp.status_code}: {resp.text[:500]}",
                status=resp.status_code,
            )
        if not resp.content:
            return None
        return resp.json()
