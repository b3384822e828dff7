"""
Salt provider capability interface.
"""

from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class HealthCheckResult:
    """Outcome of a provider health probe."""

    healthy: bool
    message: Optional[str] = None

    def to_dict(self) -> dict:
        result = {"healthy": self.healthy}
        if self.message is not None:
            result["message"] = self.message
        return result


@runtime_checkable
class SaltProvider(Protocol):
    """Capability shared by the local, remote, hybrid and router strategies."""

    name: str

    async def get_salt(self, subject: str, audience: str, token: Optional[str] = None) -> str:
        """Return the hex salt for a verified (subject, audience) pair."""
        ...

    async def health_check(self) -> HealthCheckResult:
        """Probe readiness; never raises."""
        ...

    async def destroy(self) -> None:
        """Release resources held by the provider."""
        ...
