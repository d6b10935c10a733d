"""Application command registration over Discord's REST API."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol

import httpx

from .errors import CommandSyncError
from .logging import get_logger

logger = get_logger(__name__)

API_BASE = "https://discord.com/api/v10"

type CommandBody = dict[str, Any]


class CommandRegistrar(Protocol):
    async def put_commands(self, commands: Sequence[CommandBody]) -> Any: ...

    async def put_guild_commands(
        self, commands: Sequence[CommandBody], guild_id: str
    ) -> Any: ...

    async def close(self) -> None: ...


class DiscordRegistrar:
    """Overwrites the stored command set, globally or for one guild.

    Both calls replace *every* command in their scope.
    """

    def __init__(
        self,
        token: str,
        application_id: str | int,
        *,
        timeout_s: float = 30,
        http_client: httpx.AsyncClient | None = None,
        base_url: str = API_BASE,
    ) -> None:
        if not token:
            raise ValueError("Discord token is empty")
        self.application_id = str(application_id)
        self._base = base_url.rstrip("/")
        self._headers = {"Authorization": f"Bot {token}"}
        self._client = http_client or httpx.AsyncClient(timeout=timeout_s)
        self._owns_client = http_client is None

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _put(self, path: str, body: Sequence[CommandBody], *, scope: str) -> Any:
        url = f"{self._base}{path}"
        logger.debug("discord.put_commands", scope=scope, count=len(body))
        try:
            resp = await self._client.put(url, json=list(body), headers=self._headers)
        except httpx.HTTPError as e:
            logger.error(
                "discord.network_error",
                scope=scope,
                url=url,
                error=str(e),
                error_type=e.__class__.__name__,
            )
            raise CommandSyncError(scope, str(e)) from e

        try:
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                "discord.http_error",
                scope=scope,
                status=resp.status_code,
                url=url,
                body=resp.text,
            )
            issue = f"HTTP {resp.status_code}: {resp.text}"
            raise CommandSyncError(scope, issue) from e

        try:
            return resp.json()
        except ValueError as e:
            logger.error("discord.bad_response", scope=scope, url=url, body=resp.text)
            raise CommandSyncError(scope, "response was not JSON") from e

    async def put_commands(self, commands: Sequence[CommandBody]) -> Any:
        return await self._put(
            f"/applications/{self.application_id}/commands", commands, scope="global"
        )

    async def put_guild_commands(
        self, commands: Sequence[CommandBody], guild_id: str
    ) -> Any:
        return await self._put(
            f"/applications/{self.application_id}/guilds/{guild_id}/commands",
            commands,
            scope=f"guild {guild_id}",
        )
