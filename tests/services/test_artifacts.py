import hashlib

import pytest
from rich.console import Console

from appserver_testenv.core import EnvironmentProvisioner
from appserver_testenv.errors import ArtifactResolutionError
from appserver_testenv.models import Settings
from appserver_testenv.registry import ContainerRegistry
from appserver_testenv.services.artifacts import ArtifactResolver, PomReader, parse_coordinate
from appserver_testenv.services.config_loader import ConfigLoader


class DummyLogger:
    def info(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


POM = """<?xml version="1.0" encoding="UTF-8"?>
<project xmlns="http://maven.apache.org/POM/4.0.0">
  <modelVersion>4.0.0</modelVersion>
  <version>1.0.0</version>
  <properties>
    <postgresql.version>42.6.0</postgresql.version>
  </properties>
  <dependencyManagement>
    <dependencies>
      <dependency>
        <groupId>org.jboss.arquillian</groupId>
        <artifactId>arquillian-bom</artifactId>
        <version>1.7.0.Final</version>
      </dependency>
    </dependencies>
  </dependencyManagement>
  <dependencies>
    <dependency>
      <groupId>org.postgresql</groupId>
      <artifactId>postgresql</artifactId>
      <version>${postgresql.version}</version>
    </dependency>
    <dependency>
      <groupId>junit</groupId>
      <artifactId>junit</artifactId>
    </dependency>
  </dependencies>
</project>
"""


class FakeResponse:
    def __init__(self, payload: bytes):
        self.payload = payload
        self.headers = {"Content-Length": str(len(payload))}
        self.text = payload.decode("latin-1")

    def raise_for_status(self):
        return None

    def iter_content(self, chunk_size=8192):
        yield self.payload

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


class FakeRequestsModule:
    class RequestException(Exception):
        pass

    def __init__(self, payload: bytes, sha1: str):
        self.payload = payload
        self.sha1 = sha1
        self.urls = []

    def get(self, url, **_kwargs):
        self.urls.append(url)
        if url.endswith(".sha1"):
            return FakeResponse(f"{self.sha1}  postgresql.jar".encode())
        return FakeResponse(self.payload)


def _resolver(tmp_path, requests_module=None, **kwargs) -> ArtifactResolver:
    return ArtifactResolver(
        logger=DummyLogger(),
        console=Console(quiet=True),
        local_repository=str(tmp_path / "repository"),
        requests_module=requests_module,
        **kwargs,
    )


def test_parse_coordinate_rejects_malformed_values():
    assert parse_coordinate("org.postgresql:postgresql") == ("org.postgresql", "postgresql", None)

    with pytest.raises(ArtifactResolutionError, match="Invalid artifact coordinate"):
        parse_coordinate("postgresql")


def test_pom_reader_substitutes_properties(tmp_path):
    pom = tmp_path / "pom.xml"
    pom.write_text(POM, encoding="utf-8")

    declared = PomReader(str(pom)).read()

    assert declared["org.postgresql:postgresql"] == "42.6.0"
    assert declared["org.jboss.arquillian:arquillian-bom"] == "1.7.0.Final"
    assert "junit:junit" not in declared


def test_dependencies_setting_overrides_pom_version(tmp_path):
    pom = tmp_path / "pom.xml"
    pom.write_text(POM, encoding="utf-8")
    resolver = _resolver(
        tmp_path,
        pom_file=str(pom),
        dependencies=["org.postgresql:postgresql:42.7.3"],
    )

    assert resolver.declared_dependencies()["org.postgresql:postgresql"] == "42.7.3"


def test_resolve_prefers_local_repository(tmp_path):
    jar = tmp_path / "repository" / "org" / "postgresql" / "postgresql" / "42.7.3" / "postgresql-42.7.3.jar"
    jar.parent.mkdir(parents=True)
    jar.write_bytes(b"local")
    resolver = _resolver(tmp_path, dependencies=["org.postgresql:postgresql:42.7.3"])

    assert resolver.resolve("org.postgresql:postgresql") == jar


def test_resolve_downloads_and_verifies_sha1(tmp_path):
    payload = b"driver bytes"
    requests_module = FakeRequestsModule(payload, hashlib.sha1(payload).hexdigest())
    resolver = _resolver(
        tmp_path,
        requests_module=requests_module,
        dependencies=["org.postgresql:postgresql:42.7.3"],
    )

    path = resolver.resolve("org.postgresql:postgresql")

    assert path.read_bytes() == payload
    assert requests_module.urls[-1] == (
        "https://repo1.maven.org/maven2/org/postgresql/postgresql/42.7.3/postgresql-42.7.3.jar"
    )


def test_resolve_rejects_checksum_mismatch(tmp_path):
    requests_module = FakeRequestsModule(b"tampered", "0" * 40)
    resolver = _resolver(
        tmp_path,
        requests_module=requests_module,
        dependencies=["org.postgresql:postgresql:42.7.3"],
    )

    with pytest.raises(ArtifactResolutionError, match="Checksum mismatch"):
        resolver.resolve("org.postgresql:postgresql")

    jar_dir = tmp_path / "repository" / "org" / "postgresql" / "postgresql" / "42.7.3"
    assert list(jar_dir.iterdir()) == []


def test_resolve_fails_for_undeclared_coordinate(tmp_path):
    resolver = _resolver(tmp_path, dependencies=[])

    with pytest.raises(ArtifactResolutionError, match="not declared"):
        resolver.resolve("org.postgresql:postgresql")


def test_insecure_repository_is_blocked_by_default(tmp_path):
    resolver = _resolver(
        tmp_path,
        requests_module=FakeRequestsModule(b"", ""),
        dependencies=["org.postgresql:postgresql:42.7.3"],
        remote_repository="http://mirror.example.com/maven2",
    )

    with pytest.raises(ArtifactResolutionError, match="insecure HTTP"):
        resolver.resolve("org.postgresql:postgresql")


def test_pom_version_is_used_when_config_declares_no_dependencies(tmp_path):
    pom = tmp_path / "pom.xml"
    pom.write_text(POM, encoding="utf-8")
    config_file = tmp_path / ".testenv.yml"
    config_file.write_text(f"pom_file: {pom}\n", encoding="utf-8")

    loader = ConfigLoader()
    settings = loader.build_settings(loader.load(str(config_file)))
    provisioner = EnvironmentProvisioner(registry=ContainerRegistry.default(), settings=settings)

    assert settings.dependencies == ()
    assert provisioner.artifact_resolver.declared_dependencies()["org.postgresql:postgresql"] == "42.6.0"


def test_fallback_version_applies_only_when_nothing_declares_the_driver():
    provisioner = EnvironmentProvisioner(registry=ContainerRegistry.default(), settings=Settings())

    declared = provisioner.artifact_resolver.declared_dependencies()

    assert declared["org.postgresql:postgresql"] == "42.7.3"


def test_pom_wins_over_fallback_dependencies(tmp_path):
    pom = tmp_path / "pom.xml"
    pom.write_text(POM, encoding="utf-8")
    resolver = _resolver(
        tmp_path,
        pom_file=str(pom),
        fallback_dependencies=["org.postgresql:postgresql:42.7.3"],
    )

    assert resolver.declared_dependencies()["org.postgresql:postgresql"] == "42.6.0"
