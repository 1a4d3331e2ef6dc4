"""Registry of OAuth clients allowed to request access."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


SCOPE_DESCRIPTIONS = {
    "files:read": "Read your files and folders",
    "files:write": "Create and modify files",
    "files:delete": "Delete files",
    "search": "Search through your files",
    "profile": "Access basic profile information",
}


@dataclass(frozen=True)
class OAuthClient:
    client_id: str
    name: str
    description: str = ""
    redirect_uris: tuple[str, ...] = field(default_factory=tuple)
    allowed_scopes: tuple[str, ...] = field(default_factory=tuple)

    def allows_redirect(self, redirect_uri: str) -> bool:
        # Exact string match only, no prefix or pattern matching.
        return redirect_uri in self.redirect_uris

    @classmethod
    def from_dict(cls, data: dict) -> "OAuthClient":
        return cls(
            client_id=data["client_id"],
            name=data.get("name", data["client_id"]),
            description=data.get("description", ""),
            redirect_uris=tuple(data.get("redirect_uris", [])),
            allowed_scopes=tuple(data.get("allowed_scopes", [])),
        )


BUILTIN_CLIENTS = (
    OAuthClient(
        client_id="claude-ai-assistant",
        name="Claude AI Assistant",
        description="Anthropic's AI assistant with file access capabilities",
        redirect_uris=(
            "http://localhost:3002/dashboard",
            "https://claude.ai/callback",
            "http://localhost:3001/oauth/callback",
        ),
        allowed_scopes=("files:read", "files:write", "search", "profile"),
    ),
    OAuthClient(
        client_id="openai-gpt",
        name="OpenAI GPT",
        description="OpenAI's GPT with custom actions",
        redirect_uris=("https://api.openai.com/callback",),
        allowed_scopes=("files:read", "search"),
    ),
)


class OAuthClientRegistry:
    """Read-only lookup of registered clients by ``client_id``."""

    def __init__(self, clients=BUILTIN_CLIENTS) -> None:
        self._clients = {client.client_id: client for client in clients}

    def get(self, client_id: str | None) -> OAuthClient | None:
        if not client_id:
            return None
        return self._clients.get(client_id)

    def __len__(self) -> int:
        return len(self._clients)

    @classmethod
    def from_file(cls, path: str | Path) -> "OAuthClientRegistry":
        """
        Load clients from a JSON file.

        The file holds either a list of client objects or ``{"clients": [...]}``;
        each object has ``client_id``, ``name``, ``redirect_uris`` and
        ``allowed_scopes``.
        """
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        entries = raw.get("clients", []) if isinstance(raw, dict) else raw
        clients = [OAuthClient.from_dict(entry) for entry in entries]
        logger.info("Loaded %d OAuth clients from %s", len(clients), path)
        return cls(clients)

    @classmethod
    def from_config(cls, clients_file: str | None) -> "OAuthClientRegistry":
        if clients_file:
            return cls.from_file(clients_file)
        return cls()
