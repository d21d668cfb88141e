import pytest

import appserver_testenv.pytest_plugin as plugin_module
from appserver_testenv.errors import ContainerStartupError
from appserver_testenv.models import ContainerHandle, DatasourceDefinition, ProvisionedEnvironment, RunContext

TEST_USING_ENVIRONMENT = """
def test_environment(testenv, testenv_registry):
    assert testenv.run_context.run_id == "plugin01"
    assert testenv.appserver.mapped_port(9990) == 40002
    assert testenv_registry is testenv.registry
"""


def make_fake_provisioner(events, error=None):
    class FakeProvisioner:
        def __init__(self, registry, settings):
            self.registry = registry
            self.settings = settings
            self.run_context = RunContext(
                run_id="plugin01",
                network_name="testenv_plugin01_net",
                db_container_name="testenv_plugin01_db",
                appserver_container_name="testenv_plugin01_appserver",
                appserver_image_tag="appserver-testenv/wildfly:plugin01",
                label="plugin01",
            )

        def provision(self):
            events.append("provision")
            if error is not None:
                raise error
            return ProvisionedEnvironment(
                run_context=self.run_context,
                database=ContainerHandle("db", "postgres", "localhost", {5432: 40001}),
                appserver=ContainerHandle("app", "wildfly", "localhost", {9990: 40002, 8080: 40003}),
                datasource=DatasourceDefinition(),
                registry=self.registry,
            )

        def teardown(self):
            events.append("teardown")

    return FakeProvisioner


def test_provisioning_is_disabled_by_default(pytester, monkeypatch):
    events = []
    monkeypatch.setattr(plugin_module, "EnvironmentProvisioner", make_fake_provisioner(events))
    pytester.makepyfile(TEST_USING_ENVIRONMENT)

    result = pytester.runpytest()

    result.assert_outcomes(skipped=1)
    assert events == []


def test_environment_is_provisioned_once_and_torn_down(pytester, monkeypatch):
    events = []
    monkeypatch.setattr(plugin_module, "EnvironmentProvisioner", make_fake_provisioner(events))
    pytester.makepyfile(TEST_USING_ENVIRONMENT)

    result = pytester.runpytest("--testenv")

    result.assert_outcomes(passed=1)
    assert events == ["provision", "teardown"]


def test_ini_option_enables_provisioning(pytester, monkeypatch):
    events = []
    monkeypatch.setattr(plugin_module, "EnvironmentProvisioner", make_fake_provisioner(events))
    pytester.makeini("[pytest]\ntestenv = true\n")
    pytester.makepyfile(TEST_USING_ENVIRONMENT)

    result = pytester.runpytest()

    result.assert_outcomes(passed=1)


def test_keep_option_skips_teardown(pytester, monkeypatch):
    events = []
    monkeypatch.setattr(plugin_module, "EnvironmentProvisioner", make_fake_provisioner(events))
    pytester.makepyfile(TEST_USING_ENVIRONMENT)

    result = pytester.runpytest("--testenv", "--testenv-keep")

    result.assert_outcomes(passed=1)
    assert events == ["provision"]


def test_provisioning_failure_aborts_session_before_tests(pytester, monkeypatch):
    events = []
    error = ContainerStartupError("Container testenv_plugin01_appserver exited during startup.")
    monkeypatch.setattr(plugin_module, "EnvironmentProvisioner", make_fake_provisioner(events, error))
    pytester.makepyfile(TEST_USING_ENVIRONMENT)

    result = pytester.runpytest("--testenv")

    assert result.ret == pytest.ExitCode.INTERNAL_ERROR
    result.stdout.no_fnmatch_line("*1 passed*")
    assert events == ["provision", "teardown"]


def test_invalid_config_aborts_session(pytester, monkeypatch):
    events = []
    monkeypatch.setattr(plugin_module, "EnvironmentProvisioner", make_fake_provisioner(events))
    pytester.makefile(".yml", **{".testenv": "unknown_key: 1\n"})
    pytester.makepyfile(TEST_USING_ENVIRONMENT)

    result = pytester.runpytest("--testenv")

    assert result.ret == pytest.ExitCode.INTERNAL_ERROR
    assert events == []
