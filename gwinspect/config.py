"""
Centralized configuration management for gwinspect.

Provides a unified interface for accessing environment variables and
configuration with defaults and validation. Command-line flags take
precedence over anything read here.
"""

import os
from pathlib import Path
from typing import Optional

from gwinspect.resource_utils import POLICY_LABEL


class Config:
    """
    Centralized configuration management.

    Provides access to environment variables and configuration with
    sensible defaults and validation.
    """

    @staticmethod
    def get(key: str, default: Optional[str] = None, required: bool = False) -> str:
        """
        Get an environment variable with optional default and validation.

        Args:
            key: Environment variable name
            default: Default value if not set
            required: If True, raise ValueError if not set

        Returns:
            Environment variable value or default

        Raises:
            ValueError: If required=True and variable is not set
        """
        value = os.getenv(key, default)
        if required and value is None:
            raise ValueError(f"Required environment variable {key} is not set")
        return value or ""

    @staticmethod
    def get_float(key: str, default: Optional[float] = None) -> Optional[float]:
        """
        Get a numeric environment variable.

        Args:
            key: Environment variable name
            default: Default value if not set

        Returns:
            Parsed value, or default if not set

        Raises:
            ValueError: If the variable is set but is not a positive number
        """
        value = os.getenv(key, "").strip()
        if not value:
            return default
        try:
            parsed = float(value)
        except ValueError:
            raise ValueError(f"{key} must be a number, got {value!r}") from None
        if parsed <= 0:
            raise ValueError(f"{key} must be positive, got {value!r}")
        return parsed

    @staticmethod
    def command_timeout() -> Optional[float]:
        """
        Get the timeout for each kubectl invocation.

        Returns:
            Seconds from GWINSPECT_KUBECTL_TIMEOUT, or None to wait indefinitely
        """
        return Config.get_float("GWINSPECT_KUBECTL_TIMEOUT")

    @staticmethod
    def kubectl() -> str:
        """
        Get the kubectl binary used to read from a live cluster.

        Returns:
            Binary name or path (defaults to "kubectl")
        """
        return Config.get("GWINSPECT_KUBECTL", "kubectl")

    @staticmethod
    def kube_context() -> Optional[str]:
        """Get the kubeconfig context to use, or None for the current context."""
        return Config.get("GWINSPECT_CONTEXT") or None

    @staticmethod
    def kubeconfig() -> Optional[str]:
        """Get the kubeconfig path from KUBECONFIG, or None to let kubectl decide."""
        return Config.get("KUBECONFIG") or None

    @staticmethod
    def default_namespace() -> str:
        """
        Get the namespace used when neither -n nor -A is given.

        Returns:
            Namespace (defaults to "default")
        """
        return Config.get("GWINSPECT_NAMESPACE", "default")

    @staticmethod
    def hierarchy_file() -> Optional[Path]:
        """
        Get the inheritance hierarchy override file.

        Returns:
            Resolved path, or None if GWINSPECT_HIERARCHY_FILE is not set
        """
        value = Config.get("GWINSPECT_HIERARCHY_FILE")
        if not value:
            return None
        return Path(value).resolve()

    @staticmethod
    def policy_label() -> str:
        """Get the label that marks a CustomResourceDefinition as a policy CRD."""
        return Config.get("GWINSPECT_POLICY_LABEL", POLICY_LABEL)


# Global config instance for convenience
config = Config()
