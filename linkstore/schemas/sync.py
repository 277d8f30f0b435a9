"""Result wrapper that tells callers whether state is remote-confirmed."""

from enum import StrEnum

from pydantic import ConfigDict

from linkstore.schemas.common import BaseSchema


class SyncOrigin(StrEnum):
    """Where the returned state was confirmed."""

    REMOTE = "remote"
    LOCAL_FALLBACK = "local-fallback"


class SyncResult[T](BaseSchema):
    """Value of a mutating operation plus its origin."""

    model_config = ConfigDict(frozen=True)

    value: T
    origin: SyncOrigin

    @property
    def confirmed(self) -> bool:
        return self.origin is SyncOrigin.REMOTE
