import logging
import subprocess
import uuid
from typing import List, Optional

import psycopg
import requests
from rich.console import Console

from .constants import (
    DEFAULT_DEPENDENCIES,
    DRIVER_COORDINATE,
    DRIVER_DEPLOYMENT_NAME,
    POSTGRES_DB,
    POSTGRES_IMAGE,
    POSTGRES_NETWORK_ALIAS,
    POSTGRES_PASSWORD,
    POSTGRES_PORT,
    POSTGRES_USER,
    WILDFLY_HTTP_PORT,
    WILDFLY_IMAGE,
    WILDFLY_MANAGEMENT_PORT,
    WILDFLY_PASSWORD,
    WILDFLY_USER,
)
from .errors import ArtifactResolutionError, ProvisioningError
from .models import ContainerHandle, DatasourceDefinition, ProvisionedEnvironment, RunContext, Settings
from .registry import (
    MANAGEMENT_ADDRESS_KEY,
    MANAGEMENT_PORT_KEY,
    PASSWORD_KEY,
    PROTOCOL_HOST_KEY,
    PROTOCOL_PORT_KEY,
    SERVLET_PROTOCOL_NAME,
    USERNAME_KEY,
    ContainerRegistry,
)
from .services.appserver_image import AppServerImageService
from .services.artifacts import ArtifactResolver
from .services.command_runner import CommandRunner
from .services.docker_runtime import DockerRuntimeService
from .services.management import ManagementClient, ManagementClientConfig
from .services.manifest import ManifestService
from .services.schema import SchemaService

console = Console()
logger = logging.getLogger("appserver_testenv")


class EnvironmentProvisioner:
    def __init__(
        self,
        registry: ContainerRegistry,
        settings: Optional[Settings] = None,
        subprocess_module=subprocess,
        requests_module=requests,
        psycopg_module=psycopg,
    ):
        self.registry = registry
        self.settings = settings or Settings()
        self.requests = requests_module

        self.manifest_service = ManifestService(manifest_file=self.settings.manifest_file, logger=logger)
        self.command_runner = CommandRunner(
            logger=logger,
            default_timeout=self.settings.command_timeout,
            subprocess_module=subprocess_module,
        )
        self.docker_runtime_service = DockerRuntimeService(
            logger=logger,
            console=console,
            run_cmd=self._run_cmd,
            requests_module=requests_module,
        )
        self.appserver_image_service = AppServerImageService()
        self.artifact_resolver = ArtifactResolver(
            logger=logger,
            console=console,
            dependencies=self.settings.dependencies,
            fallback_dependencies=DEFAULT_DEPENDENCIES,
            pom_file=self.settings.pom_file,
            local_repository=self.settings.maven_local_repository,
            remote_repository=self.settings.maven_remote_repository,
            allow_insecure_http=self.settings.allow_insecure_http,
            requests_module=requests_module,
        )
        self.schema_service = SchemaService(logger=logger, console=console, psycopg_module=psycopg_module)
        self.datasource = DatasourceDefinition()

        self.run_context = self._build_run_context()
        self.database: Optional[ContainerHandle] = None
        self.appserver: Optional[ContainerHandle] = None
        self.current_step_name: Optional[str] = None

    def _build_run_context(self) -> RunContext:
        run_id = uuid.uuid4().hex[:10]
        prefix = f"testenv_{run_id}"
        return RunContext(
            run_id=run_id,
            network_name=f"{prefix}_net",
            db_container_name=f"{prefix}_db",
            appserver_container_name=f"{prefix}_appserver",
            appserver_image_tag=f"appserver-testenv/wildfly:{run_id}",
            label=run_id,
        )

    def _run_step(self, name: str, callback, *args, **kwargs):
        self.manifest_service.step_started(name)
        self.current_step_name = name
        logger.debug("Step started: %s", name)

        try:
            result = callback(*args, **kwargs)
        except KeyboardInterrupt:
            self.manifest_service.step_finished(name, "aborted", error="Operation cancelled by user.")
            raise
        except Exception as exc:
            self.manifest_service.step_finished(name, "failed", error=str(exc))
            raise

        self.manifest_service.step_finished(name, "success")
        self.current_step_name = None
        return result

    def _run_cmd(
        self,
        cmd: List[str],
        check: bool = True,
        capture_output: bool = False,
        input_text: Optional[str] = None,
    ) -> subprocess.CompletedProcess:
        return self.command_runner.run(
            cmd,
            check=check,
            capture_output=capture_output,
            input_text=input_text,
        )

    def _require(self, handle: Optional[ContainerHandle], step: str) -> ContainerHandle:
        if handle is None:
            raise ProvisioningError(f"Step '{step}' must complete first.")
        return handle

    def create_network(self) -> str:
        console.print("[blue]Creating isolated network...[/blue]")
        return self.docker_runtime_service.create_network(self.run_context)

    def start_database(self) -> ContainerHandle:
        console.print("[blue]Starting database container...[/blue]")
        handle = self.docker_runtime_service.run_container(
            self.run_context,
            name=self.run_context.db_container_name,
            image=POSTGRES_IMAGE,
            ports=[POSTGRES_PORT],
            network=self.run_context.network_name,
            aliases=[POSTGRES_NETWORK_ALIAS],
            environment={
                "POSTGRES_DB": POSTGRES_DB,
                "POSTGRES_USER": POSTGRES_USER,
                "POSTGRES_PASSWORD": POSTGRES_PASSWORD,
            },
        )
        self.docker_runtime_service.wait_for_db(
            handle,
            user=POSTGRES_USER,
            database=POSTGRES_DB,
            max_retries=self.settings.db_ready_retries,
        )
        self.database = handle
        self.manifest_service.add_container("database", handle)
        return handle

    def build_appserver_image(self) -> str:
        dockerfile = self.appserver_image_service.build_dockerfile(
            base_image=WILDFLY_IMAGE,
            admin_user=WILDFLY_USER,
            admin_password=WILDFLY_PASSWORD,
        )
        self.docker_runtime_service.build_image(
            self.run_context,
            tag=self.run_context.appserver_image_tag,
            dockerfile=dockerfile,
        )
        return self.run_context.appserver_image_tag

    def start_appserver(self) -> ContainerHandle:
        console.print("[blue]Starting application server container...[/blue]")
        ports = [WILDFLY_MANAGEMENT_PORT, WILDFLY_HTTP_PORT]
        handle = self.docker_runtime_service.run_container(
            self.run_context,
            name=self.run_context.appserver_container_name,
            image=self.run_context.appserver_image_tag,
            ports=ports,
            network=self.run_context.network_name,
        )
        self.docker_runtime_service.wait_for_http(
            handle,
            ports=ports,
            timeout=self.settings.appserver_startup_timeout,
        )
        self.appserver = handle
        self.manifest_service.add_container("appserver", handle)
        return handle

    def management_client(self) -> ManagementClient:
        appserver = self._require(self.appserver, "start_appserver")
        config = ManagementClientConfig(
            host=appserver.host,
            port=appserver.mapped_port(WILDFLY_MANAGEMENT_PORT),
            username=WILDFLY_USER,
            password=WILDFLY_PASSWORD,
        )
        return ManagementClient(config=config, logger=logger, requests_module=self.requests)

    def deploy_driver(self):
        client = self.management_client()
        driver_path = self.artifact_resolver.resolve(DRIVER_COORDINATE)

        console.print(f"[blue]Deploying {driver_path.name} as {DRIVER_DEPLOYMENT_NAME}...[/blue]")
        try:
            with open(driver_path, "rb") as stream:
                client.deploy(stream, DRIVER_DEPLOYMENT_NAME)
        except OSError as exc:
            raise ArtifactResolutionError(f"Could not read {driver_path}: {exc}") from exc

    def add_datasource(self):
        self.management_client().add_datasource(self.datasource)
        console.print(f"[green]Datasource {self.datasource.jndi_name} registered.[/green]")

    def configure_registry(self):
        appserver = self._require(self.appserver, "start_appserver")
        host = appserver.host
        management_port = appserver.mapped_port(WILDFLY_MANAGEMENT_PORT)
        http_port = appserver.mapped_port(WILDFLY_HTTP_PORT)

        definition = self.registry.single_container()
        definition.set_property(MANAGEMENT_ADDRESS_KEY, host)
        definition.set_property(MANAGEMENT_PORT_KEY, management_port)
        definition.set_property(USERNAME_KEY, WILDFLY_USER)
        definition.set_property(PASSWORD_KEY, WILDFLY_PASSWORD)

        protocol = definition.protocol(SERVLET_PROTOCOL_NAME)
        protocol.set_property(PROTOCOL_HOST_KEY, host)
        protocol.set_property(PROTOCOL_PORT_KEY, http_port)

        logger.info(
            "Registry entry '%s' now targets management %s:%s and HTTP %s:%s",
            definition.qualifier,
            host,
            management_port,
            host,
            http_port,
        )

    def setup_schema(self):
        database = self._require(self.database, "start_database")
        self.schema_service.setup_schema(database, self.settings.resource_dirs)

    def provision(self) -> ProvisionedEnvironment:
        """Runs the provisioning steps in order; any failure stops the sequence.

        Containers started before a failure are left in place. Removing them is
        up to the caller, through :meth:`teardown`.
        """
        status = "failed"
        error: Optional[str] = None

        logger.info("Provisioning test environment %s...", self.run_context.run_id)
        self.manifest_service.start_run(self.run_context.run_id)

        try:
            self._run_step("create_network", self.create_network)
            self._run_step("start_database", self.start_database)
            self._run_step("build_appserver_image", self.build_appserver_image)
            self._run_step("start_appserver", self.start_appserver)
            self._run_step("deploy_driver", self.deploy_driver)
            self._run_step("add_datasource", self.add_datasource)
            self._run_step("configure_registry", self.configure_registry)
            self._run_step("setup_schema", self.setup_schema)
            status = "success"
        except KeyboardInterrupt:
            status = "aborted"
            error = "Operation cancelled by user."
            raise
        except Exception as exc:
            error = str(exc)
            logger.error("Provisioning failed at step '%s': %s", self.current_step_name or "run", exc)
            raise
        finally:
            self.manifest_service.finalize(status, error=error)

        console.print(
            f"[bold green]Test environment {self.run_context.run_id} is ready.[/bold green]"
        )
        return ProvisionedEnvironment(
            run_context=self.run_context,
            database=self._require(self.database, "start_database"),
            appserver=self._require(self.appserver, "start_appserver"),
            datasource=self.datasource,
            registry=self.registry,
        )

    def teardown(self):
        self.docker_runtime_service.cleanup_run(self.run_context.label)
