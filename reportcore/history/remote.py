"""History backed by the remote report service."""

from __future__ import annotations

from reportcore.errors import KnownError
from reportcore.model.history import HistoryDataPoint
from reportcore.service.client import ServiceClient


class RemoteHistory:
    """Reads history of a branch from the service.

    New points are not uploaded here: the service receives them when the
    remote report is completed.
    """

    def __init__(
        self,
        client: ServiceClient,
        branch: str | None = None,
        limit: int | None = None,
    ) -> None:
        self.client = client
        self.branch = branch
        self.limit = limit

    async def read_history(self) -> list[HistoryDataPoint]:
        """Download the branch history.

        Returns an empty list when no branch is set or the service does not
        know the branch yet (404). Other errors propagate.
        """
        if not self.branch:
            return []

        try:
            return await self.client.download_history(self.branch, limit=self.limit)
        except KnownError as e:
            if e.status == 404:
                return []
            raise

    async def append_history(self, point: HistoryDataPoint) -> None:
        return None
