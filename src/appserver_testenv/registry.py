"""Container registry read by tests to reach the application server.

The registry mirrors a remote-container test configuration: a list of
container definitions, each with string configuration properties and
per-protocol string properties. It is stored as YAML::

    containers:
      - qualifier: wildfly-remote
        configuration:
          managementAddress: localhost
          managementPort: "9990"
        protocols:
          Servlet 5.0:
            host: localhost
            port: "8080"
"""

import os
from typing import Any, Dict, List, Optional

import yaml

from appserver_testenv.errors import RegistryError
from appserver_testenv.errors_catalog import actionable_error

MANAGEMENT_ADDRESS_KEY = "managementAddress"
MANAGEMENT_PORT_KEY = "managementPort"
USERNAME_KEY = "username"
PASSWORD_KEY = "password"

SERVLET_PROTOCOL_NAME = "Servlet 5.0"
PROTOCOL_HOST_KEY = "host"
PROTOCOL_PORT_KEY = "port"

DEFAULT_QUALIFIER = "wildfly-remote"


def _string_properties(values: Any, where: str) -> Dict[str, str]:
    if values is None:
        return {}
    if not isinstance(values, dict):
        raise RegistryError(f"{where} must be a mapping of property names to values.")
    return {str(key): "" if value is None else str(value) for key, value in values.items()}


class ProtocolDef:
    def __init__(self, name: str, properties: Optional[Dict[str, str]] = None):
        self.name = name
        self.properties: Dict[str, str] = dict(properties or {})

    def get_property(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.properties.get(key, default)

    def set_property(self, key: str, value: Any) -> "ProtocolDef":
        self.properties[key] = str(value)
        return self


class ContainerDef:
    def __init__(
        self,
        qualifier: str,
        configuration: Optional[Dict[str, str]] = None,
        protocols: Optional[Dict[str, ProtocolDef]] = None,
    ):
        self.qualifier = qualifier
        self.configuration: Dict[str, str] = dict(configuration or {})
        self.protocols: Dict[str, ProtocolDef] = dict(protocols or {})

    def get_property(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.configuration.get(key, default)

    def set_property(self, key: str, value: Any) -> "ContainerDef":
        self.configuration[key] = str(value)
        return self

    def protocol(self, name: str) -> ProtocolDef:
        """Returns the named protocol configuration, creating it when absent."""
        if name not in self.protocols:
            self.protocols[name] = ProtocolDef(name)
        return self.protocols[name]

    @classmethod
    def from_dict(cls, data: Any, index: int) -> "ContainerDef":
        if not isinstance(data, dict):
            raise RegistryError(f"Container definition #{index} must be a mapping.")

        qualifier = data.get("qualifier") or f"container-{index}"
        protocols_data = data.get("protocols") or {}
        if not isinstance(protocols_data, dict):
            raise RegistryError(f"Protocols of container '{qualifier}' must be a mapping.")

        protocols = {
            str(name): ProtocolDef(
                str(name),
                _string_properties(values, f"Protocol '{name}' of container '{qualifier}'"),
            )
            for name, values in protocols_data.items()
        }
        configuration = _string_properties(
            data.get("configuration"), f"Configuration of container '{qualifier}'"
        )
        return cls(qualifier=str(qualifier), configuration=configuration, protocols=protocols)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "qualifier": self.qualifier,
            "configuration": dict(self.configuration),
            "protocols": {name: dict(protocol.properties) for name, protocol in self.protocols.items()},
        }


class ContainerRegistry:
    """Holds the registered container definitions."""

    def __init__(self, containers: Optional[List[ContainerDef]] = None, path: Optional[str] = None):
        self.containers: List[ContainerDef] = list(containers or [])
        self.path = path

    @classmethod
    def default(cls, path: Optional[str] = None) -> "ContainerRegistry":
        definition = ContainerDef(DEFAULT_QUALIFIER)
        definition.protocol(SERVLET_PROTOCOL_NAME)
        return cls([definition], path=path)

    @classmethod
    def load(cls, path: Optional[str]) -> "ContainerRegistry":
        if not path or not os.path.exists(path):
            return cls.default(path)

        try:
            with open(path, "r", encoding="utf-8") as file_obj:
                data = yaml.safe_load(file_obj)
        except (yaml.YAMLError, OSError) as exc:
            raise RegistryError(f"Could not read container registry '{path}': {exc}") from exc

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise RegistryError(f"Container registry '{path}' must contain a YAML mapping.")

        entries = data.get("containers") or []
        if not isinstance(entries, list):
            raise RegistryError(f"`containers` in '{path}' must be a list.")

        containers = [ContainerDef.from_dict(entry, index) for index, entry in enumerate(entries)]
        return cls(containers, path=path)

    def get_containers(self) -> List[ContainerDef]:
        return list(self.containers)

    def single_container(self) -> ContainerDef:
        if len(self.containers) != 1:
            raise RegistryError(
                actionable_error(
                    "registry_cardinality",
                    count=str(len(self.containers)),
                    path=self.path or "the container registry",
                )
            )
        return self.containers[0]

    def to_dict(self) -> Dict[str, Any]:
        return {"containers": [definition.to_dict() for definition in self.containers]}

    def write(self, path: Optional[str] = None) -> str:
        target = path or self.path
        if not target:
            raise RegistryError("No path given to write the container registry to.")

        directory = os.path.dirname(target)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(target, "w", encoding="utf-8", newline="\n") as file_obj:
            yaml.safe_dump(self.to_dict(), file_obj, sort_keys=False)
        return target
