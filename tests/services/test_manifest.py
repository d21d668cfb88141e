import json

from appserver_testenv.models import ContainerHandle
from appserver_testenv.services.manifest import ManifestService


class DummyLogger:
    def warning(self, *_args, **_kwargs):
        return None


def test_manifest_service_records_steps_and_containers(tmp_path):
    manifest_file = tmp_path / ".testenv" / "run-manifest.json"
    service = ManifestService(str(manifest_file), logger=DummyLogger())

    service.start_run("run-123")
    service.step_started("start_database")
    service.add_container(
        "database",
        ContainerHandle(
            name="testenv_run-123_db",
            image="postgres:16-alpine",
            host="localhost",
            ports={5432: 49153},
            network_aliases=("postgresdbcontainer",),
        ),
    )
    service.step_finished("start_database", "success")
    service.step_started("setup_schema")
    service.step_finished("setup_schema", "failed", error="boom")
    service.finalize("failed", error="boom")

    data = json.loads(manifest_file.read_text(encoding="utf-8"))

    assert data["run_id"] == "run-123"
    assert data["status"] == "failed"
    assert data["error"] == "boom"
    assert data["containers"]["database"]["ports"] == {"5432": 49153}
    assert data["containers"]["database"]["network_aliases"] == ["postgresdbcontainer"]
    assert [step["status"] for step in data["steps"]] == ["success", "failed"]
    assert data["steps"][1]["error"] == "boom"
