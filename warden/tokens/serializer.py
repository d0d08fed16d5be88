"""
Resource serializer interfaces.

Maps application resources to the subject identifier stored in ``sub`` and
back again. Implementations raise SerializerError with an application
reason, which Warden reports verbatim.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping

from warden.exceptions import SerializerError


class ResourceSerializer(ABC):
    """Contract between Warden and the application's resource model."""

    @abstractmethod
    def for_token(self, resource: Any) -> str:
        """
        Return the subject identifier for a resource.

        Raises:
            SerializerError: If the resource cannot be identified
        """
        pass

    @abstractmethod
    def from_token(self, subject: str) -> Any:
        """
        Load the resource identified by a subject.

        Raises:
            SerializerError: If no resource matches the subject
        """
        pass


class PermissionsEncoder(ABC):
    """Folds a caller's ``perms`` map into the claims being built."""

    @abstractmethod
    def encode(self, claims: Mapping[str, Any], perms: Any) -> Dict[str, Any]:
        pass


class StringSerializer(ResourceSerializer):
    """Serializer for resources that already are subject strings."""

    def for_token(self, resource: Any) -> str:
        if isinstance(resource, str) and resource:
            return resource
        raise SerializerError("unknown_resource_type", f"Cannot serialize {type(resource).__name__}")

    def from_token(self, subject: str) -> Any:
        if isinstance(subject, str) and subject:
            return subject
        raise SerializerError("unknown_subject", "Subject must be a non-empty string")
