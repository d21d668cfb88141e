"""Shared domain models for appserver-testenv."""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from appserver_testenv.constants import (
    DATASOURCE_CONNECTION_URL,
    DATASOURCE_DRIVER_CLASS,
    DATASOURCE_JNDI_NAME,
    DATASOURCE_NAME,
    DATASOURCE_POOL_NAME,
    DEFAULT_RESOURCE_DIRS,
    DRIVER_DEPLOYMENT_NAME,
    MAVEN_CENTRAL_URL,
    POSTGRES_PASSWORD,
    POSTGRES_USER,
    WILDFLY_STARTUP_TIMEOUT,
)
from appserver_testenv.errors import ContainerStartupError


@dataclass(frozen=True)
class RunContext:
    """Runtime identifiers isolated per provisioning run."""

    run_id: str
    network_name: str
    db_container_name: str
    appserver_container_name: str
    appserver_image_tag: str
    label: str


@dataclass(frozen=True)
class ContainerHandle:
    """A started container and the host ports its exposed ports map to."""

    name: str
    image: str
    host: str
    ports: Dict[int, int]
    network_aliases: Tuple[str, ...] = ()

    def mapped_port(self, port: int) -> int:
        try:
            return self.ports[port]
        except KeyError:
            raise ContainerStartupError(
                f"Port {port} is not published by container {self.name}."
            ) from None


@dataclass(frozen=True)
class DatasourceDefinition:
    name: str = DATASOURCE_NAME
    jndi_name: str = DATASOURCE_JNDI_NAME
    connection_url: str = DATASOURCE_CONNECTION_URL
    driver_class: str = DATASOURCE_DRIVER_CLASS
    driver_name: str = DRIVER_DEPLOYMENT_NAME
    pool_name: str = DATASOURCE_POOL_NAME
    user_name: str = POSTGRES_USER
    password: str = POSTGRES_PASSWORD

    def operation_attributes(self) -> Dict[str, str]:
        return {
            "jndi-name": self.jndi_name,
            "connection-url": self.connection_url,
            "driver-class": self.driver_class,
            "driver-name": self.driver_name,
            "user-name": self.user_name,
            "password": self.password,
            "pool-name": self.pool_name,
        }


@dataclass(frozen=True)
class Settings:
    """Ambient configuration resolved from CLI options, config file and defaults."""

    registry_file: str = "testenv-registry.yml"
    resource_dirs: Tuple[str, ...] = DEFAULT_RESOURCE_DIRS
    dependencies: Tuple[str, ...] = ()
    pom_file: Optional[str] = None
    maven_local_repository: Optional[str] = None
    maven_remote_repository: str = MAVEN_CENTRAL_URL
    allow_insecure_http: bool = False
    appserver_startup_timeout: float = WILDFLY_STARTUP_TIMEOUT
    db_ready_retries: int = 30
    command_timeout: Optional[float] = None
    manifest_file: str = ".testenv/run-manifest.json"
    keep_containers: bool = False
    verbose: bool = False
    log_file: Optional[str] = None


@dataclass
class ProvisionedEnvironment:
    """Everything a test needs to reach the provisioned containers."""

    run_context: RunContext
    database: ContainerHandle
    appserver: ContainerHandle
    datasource: DatasourceDefinition
    registry: Any = field(default=None, repr=False)
