"""Piece catalog client - available integrations with their actions, triggers and auth schema."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any

import httpx

from ..config import PIECE_NAME_PREFIX, PIECES_API_URL

logger = logging.getLogger(__name__)

_LATEST = re.compile(r"latest", re.IGNORECASE)


class PieceCatalogError(RuntimeError):
    pass


@dataclass
class PieceOperation:
    """An action or trigger offered by a piece."""

    name: str
    display_name: str
    description: str = ""
    props: dict[str, Any] = field(default_factory=dict)


@dataclass
class Piece:
    id: str
    name: str
    display_name: str
    logo_url: str = ""
    version: str | None = None
    description: str = ""
    auth: dict[str, Any] | None = None
    actions: list[PieceOperation] = field(default_factory=list)
    triggers: list[PieceOperation] = field(default_factory=list)

    def find_action(self, name: str) -> PieceOperation | None:
        return next((a for a in self.actions if a.name == name), None)

    def find_trigger(self, name: str) -> PieceOperation | None:
        return next((t for t in self.triggers if t.name == name), None)


def normalize_piece_name(name: str) -> str:
    return name if name.startswith(PIECE_NAME_PREFIX) else f"{PIECE_NAME_PREFIX}{name}"


def _is_concrete(version: str | None) -> bool:
    return bool(version) and not _LATEST.search(version or "")


def _operations(raw: Any) -> list[PieceOperation]:
    if not isinstance(raw, dict):
        return []
    return [
        PieceOperation(
            name=key,
            display_name=str(v.get("displayName") or key),
            description=str(v.get("description") or ""),
            props=v.get("props") or {},
        )
        for key, v in raw.items()
        if isinstance(v, dict)
    ]


def _piece_from_backend(raw: dict[str, Any]) -> Piece:
    version = raw.get("version") or raw.get("latestVersion")
    return Piece(
        id=str(raw.get("id") or raw.get("name") or ""),
        name=str(raw.get("name") or ""),
        display_name=str(raw.get("displayName") or raw.get("name") or ""),
        logo_url=str(raw.get("logoUrl") or ""),
        version=str(version) if version else None,
        description=str(raw.get("description") or ""),
        auth=raw.get("auth") if isinstance(raw.get("auth"), dict) else None,
        actions=_operations(raw.get("actions")),
        triggers=_operations(raw.get("triggers")),
    )


class PieceCatalogClient:
    def __init__(
        self,
        base_url: str = PIECES_API_URL,
        *,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def _get_json(self, url: str) -> Any:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                resp = await client.get(url)
            except httpx.HTTPError as e:
                raise PieceCatalogError(f"Piece catalog unreachable: {url}: {e}") from e
            if resp.status_code >= 400:
                raise PieceCatalogError(f"HTTP {resp.status_code} for GET {url}\nResponse body: {resp.text}")
            return resp.json()

    async def list_pieces(self) -> list[Piece]:
        """Summary listing; actions and triggers are only filled in by ``get_piece``."""
        data = await self._get_json(self.base_url)
        if isinstance(data, dict):
            data = data.get("data") or data.get("items") or []
        return [_piece_from_backend(p) for p in data if isinstance(p, dict)]

    async def get_piece(self, name: str) -> Piece:
        full = normalize_piece_name(name)
        data = await self._get_json(f"{self.base_url}/{full}")
        if isinstance(data, dict) and isinstance(data.get("data"), dict):
            data = data["data"]
        if not isinstance(data, dict):
            raise PieceCatalogError(f"Unexpected piece payload for {full}")
        return _piece_from_backend(data)

    async def resolve_piece_version(self, name: str, provided: str | None = None) -> str:
        """A concrete version for ``name``; never returns 'latest'."""
        if _is_concrete(provided):
            return provided  # type: ignore[return-value]
        full = normalize_piece_name(name)
        try:
            piece = await self.get_piece(full)
        except PieceCatalogError as e:
            logger.warning("piece version lookup failed for %s: %s", full, e)
        else:
            if _is_concrete(piece.version):
                return piece.version  # type: ignore[return-value]
        raise PieceCatalogError(f"Could not resolve piece version for {full}")
