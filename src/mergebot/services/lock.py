"""Branch locks kept in project-management package descriptions.

A branch is locked by rewriting the version tag of every package
mapped to it, "[version:1.2]" becoming "[version:1.2_locked]".
Commit hooks on the server refuse pushes to a locked branch.
"""

from __future__ import annotations

import re

import httpx

from mergebot.core.errors import ExternalServiceFailure
from mergebot.core.log import logger

LOCKED_SUFFIX = "_locked"

DEFAULT_ENDPOINTS = {
    "login": "/ctfrest/foundation/v1/tokens",
    "logoff": "/ctfrest/foundation/v1/tokens/current",
    "package": "/ctfrest/frs/v1/packages/{package_id}",
}

VERSION_TAG = re.compile(r"\[\s*version\s*:\s*(.+?)\s*\]", re.IGNORECASE)
LOCKED_VERSION_TAG = re.compile(
    r"\[\s*version\s*:\s*(.+?)_locked\s*\]", re.IGNORECASE
)


def lock_description(description: str) -> str:
    """Mark the version tag of a package description as locked.

    A tag that is already locked is left as it is.

    Raises:
        ExternalServiceFailure: If the description has no version tag
    """
    match = VERSION_TAG.search(description)
    if match is None:
        raise ExternalServiceFailure("version info not found")
    version = match.group(1)
    if version.endswith(LOCKED_SUFFIX):
        return description
    return (
        description[:match.start()]
        + f"[version:{version}{LOCKED_SUFFIX}]"
        + description[match.end():]
    )


def unlock_description(description: str) -> str:
    """Remove the lock marker from the version tag.

    Raises:
        ExternalServiceFailure: If the description has no locked
            version tag
    """
    match = LOCKED_VERSION_TAG.search(description)
    if match is None:
        raise ExternalServiceFailure("locked version info not found")
    return (
        description[:match.start()]
        + f"[version:{match.group(1)}]"
        + description[match.end():]
    )


class TeamForgeClient:
    """Minimal client for the package endpoints of the REST API."""

    def __init__(
        self,
        server_url: str,
        endpoints: dict[str, str] | None = None,
        timeout: float = 60.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.endpoints = {**DEFAULT_ENDPOINTS, **(endpoints or {})}
        self._client = httpx.Client(
            base_url=server_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
        )
        self._token: str | None = None

    def close(self):
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def _request(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        path = self.endpoints[endpoint].format(**kwargs.pop("path_args", {}))
        headers = {}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        try:
            response = self._client.request(method, path, headers=headers, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ExternalServiceFailure(
                f"Lock service request {method} {path} failed: {exc}"
            ) from exc
        return response

    def login(self, username: str, password: str) -> None:
        response = self._request(
            "POST",
            "login",
            data={
                "grant_type": "password",
                "client_id": "api-client",
                "scope": "urn:ctf:services:ctf",
                "username": username,
                "password": password,
            },
        )
        try:
            self._token = response.json()["access_token"]
        except (ValueError, KeyError) as exc:
            raise ExternalServiceFailure(
                "Lock service login returned no access token"
            ) from exc

    def logoff(self) -> None:
        if self._token:
            self._request("DELETE", "logoff")
            self._token = None

    def get_package(self, package_id: str) -> dict:
        response = self._request(
            "GET", "package", path_args={"package_id": package_id}
        )
        try:
            return response.json()
        except ValueError as exc:
            raise ExternalServiceFailure(
                f"Invalid package data for {package_id}"
            ) from exc

    def set_description(self, package_id: str, description: str) -> None:
        self._request(
            "PATCH",
            "package",
            path_args={"package_id": package_id},
            json={"description": description},
        )


class LockService:
    """Lock and unlock branches through their mapped packages."""

    def __init__(
        self,
        branches: dict[str, list[str]],
        client: TeamForgeClient | None = None,
        username: str | None = None,
        password: str | None = None,
    ):
        self.branches = branches
        self.client = client
        self.username = username
        self.password = password

    @classmethod
    def from_config(cls, lock_config) -> LockService:
        client = None
        if (
            lock_config.server_url
            and lock_config.username
            and lock_config.password
        ):
            client = TeamForgeClient(
                lock_config.server_url,
                lock_config.endpoints,
                timeout=lock_config.timeout,
            )
        return cls(
            branches=lock_config.branches,
            client=client,
            username=lock_config.username,
            password=lock_config.password,
        )

    def close(self):
        if self.client is not None:
            self.client.close()

    def lock(self, branch: str) -> str:
        return self._set_locked(branch, True)

    def unlock(self, branch: str) -> str:
        return self._set_locked(branch, False)

    def _set_locked(self, branch: str, locked: bool) -> str:
        action = "lock" if locked else "unlock"
        package_ids = [p.strip() for p in self.branches.get(branch, []) if p.strip()]
        if not package_ids:
            logger.warning(f"No packages mapped to branch {branch}, {action} skipped")
            return ""
        if self.client is None:
            raise ExternalServiceFailure(
                f"Failed to {action} branch {branch}: lock service "
                f"may not be configured properly"
            )

        rewrite = lock_description if locked else unlock_description
        descriptions = []
        self.client.login(self.username, self.password)
        try:
            for package_id in package_ids:
                package = self.client.get_package(package_id)
                try:
                    description = rewrite(package.get("description") or "")
                except ExternalServiceFailure as exc:
                    raise ExternalServiceFailure(
                        f"Failed to {action} branch {branch} "
                        f"[{package.get('title', package_id)}]: {exc}"
                    ) from exc
                self.client.set_description(package_id, description)
                descriptions.append(description)
        finally:
            self.client.logoff()

        report = "\n".join(descriptions)
        logger.info(f"{action.capitalize()}ed branch {branch}", packages=report)
        return report
