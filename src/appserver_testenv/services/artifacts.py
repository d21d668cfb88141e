"""Resolves declared Maven artifact coordinates to local files."""

import hashlib
import os
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Dict, Iterable, Optional, Tuple
from urllib.parse import urlparse

import requests
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

from appserver_testenv.errors import ArtifactResolutionError
from appserver_testenv.errors_catalog import actionable_error

POM_NAMESPACE = "{http://maven.apache.org/POM/4.0.0}"


def parse_coordinate(coordinate: str) -> Tuple[str, str, Optional[str]]:
    """Splits ``group:artifact[:version]`` into its parts."""
    parts = [part.strip() for part in coordinate.split(":")]
    if len(parts) not in (2, 3) or not all(parts):
        raise ArtifactResolutionError(
            f"Invalid artifact coordinate '{coordinate}'. Expected group:artifact[:version]."
        )
    version = parts[2] if len(parts) == 3 else None
    return parts[0], parts[1], version


class PomReader:
    """Reads declared dependency versions from a pom.xml."""

    def __init__(self, pom_file: str):
        self.pom_file = pom_file

    def _find(self, element, name: str):
        found = element.find(f"{POM_NAMESPACE}{name}")
        if found is None:
            found = element.find(name)
        return found

    def _text(self, element, name: str) -> Optional[str]:
        found = self._find(element, name)
        if found is None or found.text is None:
            return None
        return found.text.strip()

    def _properties(self, root) -> Dict[str, str]:
        properties: Dict[str, str] = {}
        version = self._text(root, "version")
        if version:
            properties["project.version"] = version

        node = self._find(root, "properties")
        if node is not None:
            for child in node:
                key = child.tag.replace(POM_NAMESPACE, "")
                properties[key] = (child.text or "").strip()
        return properties

    @staticmethod
    def _substitute(value: str, properties: Dict[str, str]) -> str:
        for key, replacement in properties.items():
            value = value.replace(f"${{{key}}}", replacement)
        return value

    def _dependencies(self, container, properties: Dict[str, str]) -> Dict[str, str]:
        declared: Dict[str, str] = {}
        if container is None:
            return declared

        dependencies = self._find(container, "dependencies")
        if dependencies is None:
            return declared

        for dependency in dependencies:
            group = self._text(dependency, "groupId")
            artifact = self._text(dependency, "artifactId")
            version = self._text(dependency, "version")
            if group and artifact and version:
                declared[f"{group}:{artifact}"] = self._substitute(version, properties)
        return declared

    def read(self) -> Dict[str, str]:
        try:
            root = ET.parse(self.pom_file).getroot()
        except (ET.ParseError, OSError) as exc:
            raise ArtifactResolutionError(f"Could not read {self.pom_file}: {exc}") from exc

        properties = self._properties(root)
        declared = self._dependencies(self._find(root, "dependencyManagement"), properties)
        declared.update(self._dependencies(root, properties))
        return declared


class ArtifactResolver:
    """Finds declared artifacts in the local repository or downloads them."""

    def __init__(
        self,
        logger,
        console,
        dependencies: Iterable[str] = (),
        fallback_dependencies: Iterable[str] = (),
        pom_file: Optional[str] = None,
        local_repository: Optional[str] = None,
        remote_repository: str = "https://repo1.maven.org/maven2",
        allow_insecure_http: bool = False,
        requests_module=requests,
        download_timeout: float = 60.0,
    ):
        self.logger = logger
        self.console = console
        self.dependencies = tuple(dependencies)
        self.fallback_dependencies = tuple(fallback_dependencies)
        self.pom_file = pom_file
        self.local_repository = Path(
            local_repository or os.path.join(os.path.expanduser("~"), ".m2", "repository")
        )
        self.remote_repository = remote_repository.rstrip("/")
        self.allow_insecure_http = allow_insecure_http
        self.requests = requests_module
        self.download_timeout = download_timeout

    @staticmethod
    def _versioned(coordinates: Iterable[str]) -> Dict[str, str]:
        versions: Dict[str, str] = {}
        for coordinate in coordinates:
            group, artifact, version = parse_coordinate(coordinate)
            if version is None:
                raise ArtifactResolutionError(
                    f"Declared dependency '{coordinate}' must include a version."
                )
            versions[f"{group}:{artifact}"] = version
        return versions

    def declared_dependencies(self) -> Dict[str, str]:
        """Maps ``group:artifact`` to a version.

        The ``dependencies`` setting wins over the pom, and the pom wins over the
        fallback coordinates.
        """
        declared = self._versioned(self.fallback_dependencies)
        if self.pom_file:
            declared.update(PomReader(self.pom_file).read())
        declared.update(self._versioned(self.dependencies))
        return declared

    def _relative_path(self, group: str, artifact: str, version: str) -> str:
        return "/".join(group.split(".") + [artifact, version, f"{artifact}-{version}.jar"])

    def resolve(self, coordinate: str) -> Path:
        group, artifact, version = parse_coordinate(coordinate)
        if version is None:
            version = self.declared_dependencies().get(f"{group}:{artifact}")
        if not version:
            raise ArtifactResolutionError(
                actionable_error("artifact_not_declared", coordinate=coordinate)
            )

        relative_path = self._relative_path(group, artifact, version)
        local_path = self.local_repository.joinpath(*relative_path.split("/"))
        if local_path.is_file():
            self.logger.info("Resolved %s:%s:%s from %s", group, artifact, version, local_path)
            return local_path

        self.download(f"{self.remote_repository}/{relative_path}", local_path)
        return local_path

    def enforce_https_policy(self, url: str):
        scheme = urlparse(url).scheme.lower()
        if scheme == "http" and not self.allow_insecure_http:
            raise ArtifactResolutionError(actionable_error("insecure_repository", url=url))
        if scheme == "http":
            self.logger.warning("Insecure HTTP enabled for repository: %s", url)

    def _expected_sha1(self, url: str) -> str:
        response = self.requests.get(f"{url}.sha1", timeout=self.download_timeout)
        response.raise_for_status()
        # Some repositories append the file name after the digest.
        return response.text.strip().split()[0].lower()

    def download(self, url: str, dest_path: Path):
        self.logger.info("Downloading %s to %s", url, dest_path)
        self.enforce_https_policy(url)

        hasher = hashlib.sha1()
        temp_path = dest_path.with_name(dest_path.name + ".part")

        try:
            expected_sha1 = self._expected_sha1(url)
            with self.requests.get(url, stream=True, timeout=self.download_timeout) as response:
                response.raise_for_status()
                total_size = int(response.headers.get("Content-Length", 0))

                dest_path.parent.mkdir(parents=True, exist_ok=True)

                with Progress(
                    SpinnerColumn(),
                    TextColumn("[progress.description]{task.description}"),
                    BarColumn(),
                    TaskProgressColumn(),
                    TimeElapsedColumn(),
                    console=self.console,
                ) as progress:
                    task = progress.add_task(f"[cyan]{dest_path.name}", total=total_size or None)
                    with open(temp_path, "wb") as file_obj:
                        for chunk in response.iter_content(chunk_size=8192):
                            if not chunk:
                                continue
                            file_obj.write(chunk)
                            hasher.update(chunk)
                            progress.update(task, advance=len(chunk))

            downloaded_sha1 = hasher.hexdigest()
            if downloaded_sha1 != expected_sha1:
                raise ArtifactResolutionError(
                    f"Checksum mismatch for {url}. Expected {expected_sha1}, "
                    f"but got {downloaded_sha1}."
                )
            os.replace(temp_path, dest_path)

        except self.requests.RequestException as exc:
            raise ArtifactResolutionError(f"Download failed for {url}: {exc}") from exc
        except OSError as exc:
            raise ArtifactResolutionError(f"Could not write {dest_path}: {exc}") from exc
        finally:
            if temp_path.exists():
                try:
                    os.remove(temp_path)
                except OSError:
                    pass
