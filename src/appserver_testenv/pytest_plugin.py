"""pytest plugin that provisions the test environment once per session.

Provisioning is opt-in: pass ``--testenv`` or set ``testenv = true`` in the
ini file. Any provisioning failure aborts the session before a test runs.
"""

import logging
import os
from dataclasses import replace
from typing import Iterator, Optional

import pytest

from .core import EnvironmentProvisioner
from .errors import ProvisioningError
from .models import ProvisionedEnvironment
from .registry import ContainerRegistry
from .services.config_loader import ConfigLoader

logger = logging.getLogger("appserver_testenv")

PROVISIONER_KEY = pytest.StashKey[EnvironmentProvisioner]()
ENVIRONMENT_KEY = pytest.StashKey[ProvisionedEnvironment]()


def pytest_addoption(parser):
    group = parser.getgroup("testenv", "containerized application server environment")
    group.addoption(
        "--testenv",
        action="store_true",
        default=None,
        dest="testenv",
        help="Provision the database and application server containers before the session.",
    )
    group.addoption(
        "--testenv-config",
        default=None,
        dest="testenv_config",
        help="Path to a YAML configuration file. Defaults to .testenv.yml if present.",
    )
    group.addoption(
        "--testenv-keep",
        action="store_true",
        default=None,
        dest="testenv_keep",
        help="Leave the containers running after the session.",
    )
    parser.addini("testenv", type="bool", default=False, help="Enable environment provisioning.")
    parser.addini("testenv_config", default=None, help="Path to the testenv YAML configuration file.")


def _is_enabled(config) -> bool:
    option = config.getoption("testenv")
    if option is not None:
        return bool(option)
    return bool(config.getini("testenv"))


def _config_path(config) -> Optional[str]:
    path = config.getoption("testenv_config") or config.getini("testenv_config")
    if path:
        return str(path)
    return ConfigLoader().default_config_path(str(config.rootpath))


def _build_provisioner(config) -> EnvironmentProvisioner:
    loader = ConfigLoader()
    settings = loader.build_settings(
        loader.load(_config_path(config)),
        keep_containers=config.getoption("testenv_keep"),
    )
    rootpath = str(config.rootpath)
    settings = replace(
        settings,
        resource_dirs=tuple(os.path.join(rootpath, directory) for directory in settings.resource_dirs),
    )
    registry = ContainerRegistry.load(os.path.join(rootpath, settings.registry_file))
    return EnvironmentProvisioner(registry=registry, settings=settings)


@pytest.hookimpl(trylast=True)
def pytest_sessionstart(session):
    config = session.config
    if not _is_enabled(config):
        return

    try:
        provisioner = _build_provisioner(config)
        config.stash[PROVISIONER_KEY] = provisioner
        environment = provisioner.provision()
    except ProvisioningError as exc:
        logger.error("Test environment provisioning failed: %s", exc)
        pytest.exit(
            f"appserver-testenv: provisioning failed: {exc}",
            returncode=pytest.ExitCode.INTERNAL_ERROR,
        )

    config.stash[ENVIRONMENT_KEY] = environment


def pytest_unconfigure(config):
    provisioner = config.stash.get(PROVISIONER_KEY, None)
    if provisioner is None:
        return

    if provisioner.settings.keep_containers:
        logger.warning(
            "Keeping containers of run %s. Remove them with `appserver-testenv down %s`.",
            provisioner.run_context.run_id,
            provisioner.run_context.run_id,
        )
        return

    provisioner.teardown()


@pytest.fixture(scope="session")
def testenv(pytestconfig) -> ProvisionedEnvironment:
    """The provisioned environment; skips the test when provisioning is disabled."""
    environment = pytestconfig.stash.get(ENVIRONMENT_KEY, None)
    if environment is None:
        pytest.skip("Test environment provisioning is disabled. Run pytest with --testenv.")
    return environment


@pytest.fixture(scope="session")
def testenv_registry(testenv) -> ContainerRegistry:
    return testenv.registry


@pytest.fixture
def testenv_db_connection(pytestconfig, testenv) -> Iterator:
    provisioner = pytestconfig.stash[PROVISIONER_KEY]
    with provisioner.schema_service.connect(testenv.database) as connection:
        yield connection
