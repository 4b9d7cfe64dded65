"""Client/service version compatibility.

A client is compatible when its version parses and is at least the configured
minimum. A client whose major version is ahead of the service stays
compatible but gets a warning.
"""

from __future__ import annotations

from packaging.version import InvalidVersion, Version

from rescontent.models.version import CompatibilityCheck


def _parse(raw: str) -> Version | None:
    try:
        return Version(raw)
    except InvalidVersion:
        return None


def check_compatibility(
    client_version: str,
    *,
    service_version: str,
    min_client_version: str,
) -> CompatibilityCheck:
    def incompatible(warning: str) -> CompatibilityCheck:
        return CompatibilityCheck(
            compatible=False,
            service_version=service_version,
            client_version=client_version,
            warnings=[warning],
        )

    client = _parse(client_version)
    if client is None:
        return incompatible("Invalid client version format. Expected semver (e.g., 2.0.0)")

    service = _parse(service_version)
    minimum = _parse(min_client_version)
    if service is None or minimum is None:
        return incompatible("Internal error: Invalid service version configuration")

    if client < minimum:
        return incompatible(
            f"Client version {client_version} is below minimum required {min_client_version}"
        )

    warnings = []
    if client.major > service.major:
        warnings.append(
            f"Client major version ({client.major}) is ahead of service ({service.major}). "
            "Some features may not work."
        )

    return CompatibilityCheck(
        compatible=True,
        service_version=service_version,
        client_version=client_version,
        warnings=warnings or None,
    )
