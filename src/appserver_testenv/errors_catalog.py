"""Actionable error catalog for appserver-testenv."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "docker_unavailable": {
        "what": "The docker CLI is not available.",
        "next": "Install Docker and make sure `docker version` works for the current user.",
    },
    "appserver_startup_timeout": {
        "what": "Application server container {container} was not ready after {timeout}s.",
        "next": "Inspect `docker logs {container}` and check that the image can start on this host.",
    },
    "container_exited": {
        "what": "Container {container} exited during startup.",
        "next": "Inspect `docker logs {container}` for the startup failure.",
    },
    "database_not_ready": {
        "what": "Database container {container} did not accept connections.",
        "next": "Check Docker logs and available resources, then run the session again.",
    },
    "registry_cardinality": {
        "what": "Expected exactly one registered container definition, found {count}.",
        "next": "Keep a single entry under `containers:` in {path}.",
    },
    "artifact_not_declared": {
        "what": "Artifact {coordinate} is not declared as a project dependency.",
        "next": "Declare it with a version in `dependencies` of the config file or in pom.xml.",
    },
    "insecure_repository": {
        "what": "Repository URL {url} uses insecure HTTP.",
        "next": "Switch to HTTPS or set `allow_insecure_http: true` only for trusted mirrors.",
    },
    "management_auth_failed": {
        "what": "Management interface at {url} rejected the credentials for {username}.",
        "next": "Check that the admin user was added when the image was built.",
    },
    "schema_resource_not_found": {
        "what": "Schema script {name} not found in: {paths}",
        "next": "Place {name} in one of the `resource_dirs` of the config file.",
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"
