"""Domain errors for appserver-testenv."""


class ProvisioningError(RuntimeError):
    """Raised when the test environment cannot be provisioned."""


class ConfigError(ProvisioningError):
    """Raised for unreadable or invalid configuration files."""


class CommandError(ProvisioningError):
    """Raised when a container runtime command fails."""


class ContainerStartupError(ProvisioningError):
    """Raised when a container does not become ready."""


class ManagementError(ProvisioningError):
    """Raised for application server management protocol failures."""


class RegistryError(ProvisioningError):
    """Raised when the container registry is malformed or ambiguous."""


class ArtifactResolutionError(ProvisioningError):
    """Raised when a declared artifact cannot be resolved to a local file."""


class ScriptParseError(ProvisioningError):
    """Raised when a SQL script cannot be split into statements."""


class SchemaSetupError(ProvisioningError):
    """Raised when the schema script cannot be applied to the database."""
