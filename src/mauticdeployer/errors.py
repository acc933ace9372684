"""Domain errors for mautic-deployer."""


class DeploymentError(RuntimeError):
    """Raised when the deployment cannot continue safely."""


class ExtensionError(DeploymentError):
    """Raised when a single theme or plugin cannot be installed."""
