"""
FlashArray Connection

Authenticated REST session to one FlashArray. Wraps every call with
bounded timeouts, logging and FlashArray error mapping.
"""

import logging
import time
from typing import Any, Dict, List, Optional, Tuple

import requests
import urllib3

from array_orchestrator.config import REST_TIMEOUT, settings
from array_orchestrator.errors import (
    ArrayOrchestratorError,
    ConfigurationError,
    RemoteOperationError,
    map_array_error,
)
from array_orchestrator.models import (
    ArrayCredentials,
    ArrayIdentity,
    NetworkInterface,
    StorageHost,
    StorageHostGroup,
    Volume,
)

logger = logging.getLogger(__name__)


class ArrayConnection:
    """
    One authenticated session to a storage array.

    The endpoint, REST version and cached identity are fixed at creation;
    only the API token and HTTP session can be refreshed.
    """

    def __init__(
        self,
        endpoint: str,
        api_token: str,
        rest_version: str,
        session: Optional[requests.Session] = None,
        verify_ssl: bool = False,
        timeout: Tuple[int, int] = REST_TIMEOUT,
    ):
        self.endpoint = endpoint
        self.api_token = api_token
        self.rest_version = rest_version
        self.verify_ssl = verify_ssl
        self.timeout = timeout
        self.session = session if session is not None else requests.Session()
        self.session.verify = verify_ssl
        self._identity: Optional[ArrayIdentity] = None

        if not verify_ssl:
            urllib3.disable_warnings()

    def __repr__(self):
        return f"ArrayConnection(endpoint={self.endpoint!r}, serial={self.serial!r})"

    @property
    def base_url(self) -> str:
        return f"https://{self.endpoint}/api/{self.rest_version}"

    @property
    def serial(self) -> Optional[str]:
        """Cached array id, populated on first identity fetch."""
        return self._identity.serial if self._identity else None

    # =========================================================================
    # Transport
    # =========================================================================

    def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict] = None,
        operation_name: Optional[str] = None,
    ) -> Any:
        """
        Execute a REST call against the array.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE)
            path: Path relative to /api/<version>/
            payload: Optional JSON body
            operation_name: Human-readable operation name for logging

        Returns:
            Decoded JSON body ({} when empty)

        Raises:
            NotFoundError, ConflictError, RemoteOperationError: mapped from the response
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        operation_name = operation_name or f"{method} {path}"
        start_time = time.time()

        try:
            response = self.session.request(
                method,
                url,
                json=payload,
                timeout=self.timeout,
                headers={"Content-Type": "application/json", "Accept": "application/json"},
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"[{self.endpoint}] {operation_name} failed: {e}")
            raise RemoteOperationError(f"{operation_name} on {self.endpoint} failed: {e}") from e

        response_time_ms = int((time.time() - start_time) * 1000)

        try:
            data = response.json() if response.text else {}
        except ValueError:
            data = response.text

        if not response.ok:
            error = map_array_error(data, response.status_code)
            logger.warning(
                f"[{self.endpoint}] {operation_name} -> HTTP {response.status_code} "
                f"in {response_time_ms}ms: {error.message}"
            )
            raise error

        logger.debug(f"[{self.endpoint}] {operation_name} -> HTTP {response.status_code} in {response_time_ms}ms")
        return data

    def refresh_token(self, api_token: str) -> None:
        """Replace the API token and open a fresh REST session with it."""
        self.api_token = api_token
        self._request("POST", "auth/session", {"api_token": api_token}, "open session")

    def close(self) -> None:
        try:
            self._request("DELETE", "auth/session", operation_name="close session")
        except ArrayOrchestratorError as e:
            logger.debug(f"[{self.endpoint}] Session close failed: {e}")
        finally:
            self.session.close()

    # =========================================================================
    # Array
    # =========================================================================

    def get_array_identity(self, refresh: bool = False) -> ArrayIdentity:
        if self._identity is None or refresh:
            data = self._request("GET", "array", operation_name="get array identity")
            self._identity = ArrayIdentity(
                serial=data.get("id", ""),
                array_name=data.get("array_name", ""),
                version=data.get("version", ""),
            )
        return self._identity

    def list_network_interfaces(self) -> List[NetworkInterface]:
        data = self._request("GET", "network", operation_name="list network interfaces")
        return [
            NetworkInterface(
                name=item.get("name", ""),
                address=item.get("address"),
                services=item.get("services") or [],
                enabled=bool(item.get("enabled")),
            )
            for item in data
        ]

    # =========================================================================
    # Volumes
    # =========================================================================

    def list_volumes(self) -> List[Volume]:
        data = self._request("GET", "volume", operation_name="list volumes")
        return [_volume_from_payload(item) for item in data]

    def create_volume(self, name: str, size_bytes: int) -> Volume:
        logger.info(f"[{self.endpoint}] Creating volume {name} ({size_bytes} bytes)")
        data = self._request("POST", f"volume/{name}", {"size": size_bytes}, "create volume")
        return _volume_from_payload(data)

    def delete_volume(self, name: str, eradicate: bool = False) -> None:
        """Destroy a volume; with eradicate the destroyed volume is also purged."""
        logger.info(f"[{self.endpoint}] Destroying volume {name}")
        self._request("DELETE", f"volume/{name}", operation_name="destroy volume")
        if eradicate:
            logger.info(f"[{self.endpoint}] Eradicating volume {name}")
            self._request("DELETE", f"volume/{name}", {"eradicate": True}, "eradicate volume")

    def connect_volume_to_group(self, volume_name: str, group_name: str) -> None:
        logger.info(f"[{self.endpoint}] Connecting volume {volume_name} to host group {group_name}")
        self._request("POST", f"hgroup/{group_name}/volume/{volume_name}", operation_name="connect volume")

    def disconnect_volume_from_group(self, volume_name: str, group_name: str) -> None:
        logger.info(f"[{self.endpoint}] Disconnecting volume {volume_name} from host group {group_name}")
        self._request("DELETE", f"hgroup/{group_name}/volume/{volume_name}", operation_name="disconnect volume")

    # =========================================================================
    # Hosts and host groups
    # =========================================================================

    def list_hosts(self) -> List[StorageHost]:
        data = self._request("GET", "host", operation_name="list hosts")
        return [
            StorageHost(
                name=item.get("name", ""),
                iqns=item.get("iqn") or [],
                wwns=item.get("wwn") or [],
                host_group=item.get("hgroup") or None,
            )
            for item in data
        ]

    def create_host(self, name: str, iqns: Optional[List[str]] = None, wwns: Optional[List[str]] = None) -> StorageHost:
        if bool(iqns) == bool(wwns):
            raise ConfigurationError("A host is created from either IQNs or WWNs")
        payload = {"iqnlist": iqns} if iqns else {"wwnlist": wwns}
        logger.info(f"[{self.endpoint}] Creating host {name} with {payload}")
        data = self._request("POST", f"host/{name}", payload, "create host")
        return StorageHost(
            name=data.get("name", name),
            iqns=data.get("iqn") or list(iqns or []),
            wwns=data.get("wwn") or list(wwns or []),
            host_group=data.get("hgroup") or None,
        )

    def delete_host(self, name: str) -> None:
        logger.info(f"[{self.endpoint}] Deleting host {name}")
        self._request("DELETE", f"host/{name}", operation_name="delete host")

    def create_host_group(self, name: str, host_names: List[str]) -> StorageHostGroup:
        logger.info(f"[{self.endpoint}] Creating host group {name} with hosts {host_names}")
        data = self._request("POST", f"hgroup/{name}", {"hostlist": host_names}, "create host group")
        return StorageHostGroup(name=data.get("name", name), hosts=data.get("hosts") or list(host_names))

    def get_host_group(self, name: str) -> StorageHostGroup:
        data = self._request("GET", f"hgroup/{name}", operation_name="get host group")
        return StorageHostGroup(name=data.get("name", name), hosts=data.get("hosts") or [])

    def delete_host_group(self, name: str) -> None:
        logger.info(f"[{self.endpoint}] Deleting host group {name}")
        self._request("DELETE", f"hgroup/{name}", operation_name="delete host group")

    def add_hosts_to_group(self, group_name: str, host_names: List[str]) -> None:
        logger.info(f"[{self.endpoint}] Adding hosts {host_names} to host group {group_name}")
        self._request("PUT", f"hgroup/{group_name}", {"addhostlist": host_names}, "add hosts to group")


def _volume_from_payload(item: Dict) -> Volume:
    return Volume(name=item.get("name", ""), serial=item.get("serial", ""), size_bytes=item.get("size") or 0)


def negotiate_rest_version(endpoint: str, session: requests.Session, preferred: str) -> str:
    """
    Pick the REST version to talk to an array.

    Uses the preferred version when the array supports it, otherwise the
    newest 1.x version the array reports.
    """
    try:
        response = session.get(f"https://{endpoint}/api/api_version", timeout=REST_TIMEOUT)
        response.raise_for_status()
        versions = response.json().get("version", [])
    except (requests.exceptions.RequestException, ValueError) as e:
        raise RemoteOperationError(f"Could not query REST versions on {endpoint}: {e}") from e

    if preferred in versions:
        return preferred
    legacy = [v for v in versions if v.startswith("1.")]
    if not legacy:
        raise RemoteOperationError(f"{endpoint} reports no supported REST 1.x version: {versions}")
    return max(legacy, key=lambda v: tuple(int(p) for p in v.split(".")))


def authenticate(
    endpoint: str,
    credentials: ArrayCredentials,
    verify_ssl: Optional[bool] = None,
    rest_version: Optional[str] = None,
) -> ArrayConnection:
    """
    Open an authenticated session to a FlashArray.

    Args:
        endpoint: Array management address or FQDN
        credentials: API token, or username/password exchanged for one
        verify_ssl: Override the configured TLS verification
        rest_version: Override the configured preferred REST version

    Returns:
        ArrayConnection with its identity already cached
    """
    if not credentials.api_token and not (credentials.username and credentials.password):
        raise ConfigurationError("Array credentials need an API token or a username and password")

    verify_ssl = settings.verify_ssl if verify_ssl is None else verify_ssl
    session = requests.Session()
    session.verify = verify_ssl
    if not verify_ssl:
        urllib3.disable_warnings()

    version = negotiate_rest_version(endpoint, session, rest_version or settings.rest_version)
    connection = ArrayConnection(endpoint, api_token="", rest_version=version, session=session, verify_ssl=verify_ssl)

    api_token = credentials.api_token
    if not api_token:
        data = connection._request(
            "POST",
            "auth/apitoken",
            {"username": credentials.username, "password": credentials.password},
            "get api token",
        )
        api_token = data.get("api_token")
        if not api_token:
            raise RemoteOperationError(f"{endpoint} did not return an API token")

    connection.refresh_token(api_token)
    identity = connection.get_array_identity()
    logger.info(f"Connected to FlashArray {identity.array_name or endpoint} ({identity.serial}), REST {version}")
    return connection
