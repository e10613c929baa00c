from dataclasses import dataclass
from datetime import datetime, timezone


@dataclass(frozen=True)
class Credential:
    """OAuth token tuple for one marketplace account."""

    marketplace: str
    access_token: str
    expires_at: datetime
    refresh_token: str | None = None

    @property
    def is_active(self) -> bool:
        return self.expires_at > datetime.now(timezone.utc)


def is_connected(credential: "Credential | None") -> bool:
    """A marketplace counts as connected only with a present, unexpired credential."""
    return credential is not None and credential.is_active
