import logging
import time

import click
from rich.logging import RichHandler
from rich.table import Table

from .constants import POSTGRES_PORT, WILDFLY_HTTP_PORT, WILDFLY_MANAGEMENT_PORT
from .core import EnvironmentProvisioner, console
from .errors import ProvisioningError
from .registry import ContainerRegistry
from .services.command_runner import CommandRunner
from .services.config_loader import ConfigLoader
from .services.docker_runtime import DockerRuntimeService

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


def _configure_logging(verbose: bool, log_file):
    logger = logging.getLogger("appserver_testenv")

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)


def _print_environment(environment):
    table = Table(title=f"Test environment {environment.run_context.run_id}")
    table.add_column("Endpoint")
    table.add_column("Address")

    database = environment.database
    appserver = environment.appserver
    table.add_row("Database", f"{database.host}:{database.mapped_port(POSTGRES_PORT)}")
    table.add_row("Management", f"{appserver.host}:{appserver.mapped_port(WILDFLY_MANAGEMENT_PORT)}")
    table.add_row("HTTP", f"{appserver.host}:{appserver.mapped_port(WILDFLY_HTTP_PORT)}")
    table.add_row("Datasource", environment.datasource.jndi_name)
    console.print(table)


def wait_for_interrupt():
    while True:
        time.sleep(1)


@click.group()
def main():
    """Provision a database and application server for integration tests."""


@main.command()
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    help="Path to a YAML configuration file. Defaults to .testenv.yml if present.",
)
@click.option(
    "--output",
    required=False,
    type=click.Path(),
    help="Write the rewired container registry to this file.",
)
@click.option(
    "--detach",
    is_flag=True,
    default=False,
    help="Exit after provisioning and leave the containers running.",
)
@click.option("--keep", is_flag=True, default=None, help="Do not remove containers on exit.")
@click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(), help="Path to log file")
def up(config, output, detach, keep, verbose, log_file):
    """Provision the environment and keep it running until interrupted."""
    loader = ConfigLoader()

    try:
        values = loader.load(config or loader.default_config_path())
        settings = loader.build_settings(
            values,
            keep_containers=keep,
            verbose=verbose,
            log_file=log_file,
        )
        registry = ContainerRegistry.load(settings.registry_file)
    except ProvisioningError as exc:
        raise click.ClickException(str(exc)) from exc

    _configure_logging(settings.verbose, settings.log_file)
    logger = logging.getLogger("appserver_testenv")

    provisioner = EnvironmentProvisioner(registry=registry, settings=settings)
    keep_running = detach or settings.keep_containers
    exit_code = 1

    try:
        environment = provisioner.provision()
        _print_environment(environment)
        if output:
            registry.write(output)
            console.print(f"[green]Container registry written to {output}.[/green]")

        if detach:
            console.print(
                f"[dim]Remove the environment with `appserver-testenv down "
                f"{provisioner.run_context.run_id}`.[/dim]"
            )
        else:
            console.print("[dim]Press Ctrl+C to stop.[/dim]")
            wait_for_interrupt()
        exit_code = 0
    except KeyboardInterrupt:
        console.print("[bold]Stopping test environment...[/bold]")
        exit_code = 0
    except ProvisioningError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        logger.error(str(exc))
    finally:
        if keep_running:
            logger.info("Leaving containers of run %s running.", provisioner.run_context.run_id)
        else:
            provisioner.teardown()

    raise SystemExit(exit_code)


@main.command()
@click.argument("run_id")
def down(run_id):
    """Remove containers, networks and images of a previous run."""
    logger = logging.getLogger("appserver_testenv")
    runner = CommandRunner(logger=logger)
    service = DockerRuntimeService(logger=logger, console=console, run_cmd=runner.run)

    try:
        service.cleanup_run(run_id)
    except ProvisioningError as exc:
        raise click.ClickException(str(exc)) from exc


if __name__ == "__main__":
    main()
