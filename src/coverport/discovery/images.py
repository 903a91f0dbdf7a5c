"""Image reference and namespace helpers used by discovery."""

from collections.abc import Mapping

from coverport.config.constants import (
    COMPONENT_LABELS,
    SYSTEM_NAMESPACE_PREFIXES,
    SYSTEM_NAMESPACES,
)


def normalize_image_ref(image: str) -> str:
    """Strip tag and digest so references can be compared.

    Examples:
        quay.io/org/app:v1 -> quay.io/org/app
        quay.io/org/app@sha256:abc -> quay.io/org/app
        localhost:5000/app:v1 -> localhost:5000/app
    """
    at = image.find("@")
    if at != -1:
        return image[:at]
    colon = image.rfind(":")
    # A colon inside the registry host (host:port/...) is followed by a slash
    if colon != -1 and "/" not in image[colon:]:
        return image[:colon]
    return image


def image_basename(image: str) -> str:
    """Last path segment of an image reference, without tag or digest."""
    return normalize_image_ref(image).rsplit("/", 1)[-1]


def component_name_from_labels(labels: Mapping[str, str], image: str) -> str:
    """Derive a component name from well-known labels, falling back to the image."""
    for key in COMPONENT_LABELS:
        value = labels.get(key)
        if value:
            return value
    return image_basename(image) or "unknown"


def is_system_namespace(namespace: str) -> bool:
    if namespace in SYSTEM_NAMESPACES:
        return True
    return namespace.startswith(SYSTEM_NAMESPACE_PREFIXES)
