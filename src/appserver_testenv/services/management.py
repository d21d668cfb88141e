"""Application server management client over the WildFly HTTP management API."""

from dataclasses import dataclass
from typing import IO, Any, Dict, List, Optional

import requests
from requests.auth import HTTPDigestAuth

from appserver_testenv.errors import ManagementError
from appserver_testenv.errors_catalog import actionable_error
from appserver_testenv.models import DatasourceDefinition

Address = List[Dict[str, str]]


@dataclass(frozen=True)
class ManagementClientConfig:
    """Connection settings handed to the management client."""

    host: str
    port: int
    username: str
    password: str
    timeout: float = 30.0

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}/management"


def datasource_address(name: str) -> Address:
    return [{"subsystem": "datasources"}, {"data-source": name}]


def deployment_address(name: str) -> Address:
    return [{"deployment": name}]


class ManagementClient:
    """Executes management operations against a running application server.

    Operations are plain mappings in the detyped JSON form, e.g.
    ``{"operation": "read-resource", "address": [{"subsystem": "datasources"}]}``.
    A response whose ``outcome`` is not ``success`` raises
    :class:`ManagementError` carrying the server's failure description.
    """

    def __init__(self, config: ManagementClientConfig, logger, requests_module=requests):
        self.config = config
        self.logger = logger
        self.requests = requests_module
        self.auth = HTTPDigestAuth(config.username, config.password)

    def execute(self, operation: Dict[str, Any]) -> Any:
        self.logger.debug(
            "Executing management operation %s on %s",
            operation.get("operation"),
            operation.get("address", []),
        )
        try:
            response = self.requests.post(
                self.config.base_url,
                json=operation,
                auth=self.auth,
                timeout=self.config.timeout,
            )
        except self.requests.RequestException as exc:
            raise ManagementError(
                f"Could not reach management interface at {self.config.base_url}: {exc}"
            ) from exc

        return self._handle_response(response, operation.get("operation", "<unknown>"))

    def _handle_response(self, response, operation_name: str) -> Any:
        if response.status_code == 401:
            raise ManagementError(
                actionable_error(
                    "management_auth_failed",
                    url=self.config.base_url,
                    username=self.config.username,
                )
            )

        try:
            payload = response.json()
        except ValueError as exc:
            body = (response.text or "")[:200]
            raise ManagementError(
                f"Management operation '{operation_name}' returned HTTP {response.status_code} "
                f"without a JSON body: {body}"
            ) from exc

        if not isinstance(payload, dict) or payload.get("outcome") != "success":
            description = payload.get("failure-description") if isinstance(payload, dict) else payload
            raise ManagementError(f"Management operation '{operation_name}' failed: {description}")

        return payload.get("result")

    def read_resource(self, address: Address, recursive: bool = False) -> Dict[str, Any]:
        return self.execute(
            {"operation": "read-resource", "address": address, "recursive": recursive}
        )

    def read_children_names(self, child_type: str, address: Optional[Address] = None) -> List[str]:
        result = self.execute(
            {
                "operation": "read-children-names",
                "address": address or [],
                "child-type": child_type,
            }
        )
        return list(result or [])

    def upload_content(self, stream: IO[bytes], name: str) -> str:
        url = f"{self.config.base_url}/add-content"
        self.logger.debug("Uploading %s to %s", name, url)
        try:
            response = self.requests.post(
                url,
                files={"file": (name, stream)},
                auth=self.auth,
                timeout=self.config.timeout,
            )
        except self.requests.RequestException as exc:
            raise ManagementError(f"Could not upload {name} to {url}: {exc}") from exc

        result = self._handle_response(response, "add-content")
        try:
            return result["BYTES_VALUE"]
        except (KeyError, TypeError):
            raise ManagementError(
                f"Upload of {name} did not return a content hash: {result}"
            ) from None

    def deploy(self, stream: IO[bytes], name: str, force: bool = True):
        content_hash = self.upload_content(stream, name)
        content = [{"hash": {"BYTES_VALUE": content_hash}}]

        if force and name in self.read_children_names("deployment"):
            self.logger.info("Replacing existing deployment %s", name)
            self.execute(
                {
                    "operation": "full-replace-deployment",
                    "address": [],
                    "name": name,
                    "content": content,
                    "enabled": True,
                }
            )
            return

        self.logger.info("Deploying %s", name)
        self.execute(
            {
                "operation": "composite",
                "address": [],
                "steps": [
                    {"operation": "add", "address": deployment_address(name), "content": content},
                    {"operation": "deploy", "address": deployment_address(name)},
                ],
            }
        )

    def add_datasource(self, definition: DatasourceDefinition):
        self.logger.info("Adding datasource %s", definition.jndi_name)
        operation: Dict[str, Any] = {
            "operation": "add",
            "address": datasource_address(definition.name),
        }
        operation.update(definition.operation_attributes())
        self.execute(operation)

    def read_datasource(self, name: str) -> Dict[str, Any]:
        return self.read_resource(datasource_address(name))
