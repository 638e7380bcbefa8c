"""
Static Provider - serves server details from a local YAML or JSON file.

Useful for development and demos where no real compute provider is
available. The file maps server UUIDs to their details:

    0077fa3d-32db-4b09-9f5f-30d9e9afb565:
      hostname: web-1
      state: started

The file is re-read whenever its modification time changes.
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from providers.base import (
    ERROR_CODE_SERVER_NOT_FOUND,
    ProviderError,
    ProviderGateway,
    ProviderProblem,
)

logger = logging.getLogger(__name__)


class StaticProvider(ProviderGateway):
    """Provider gateway backed by a file of server details."""

    def __init__(self):
        self.path: Optional[Path] = None
        self._servers: Dict[str, Dict[str, Any]] = {}
        self._mtime: Optional[float] = None

    @property
    def name(self) -> str:
        return "static"

    @property
    def version(self) -> str:
        return "1.0.0"

    @classmethod
    def load_config_from_env(cls) -> Dict[str, Any]:
        """Load static provider configuration from environment variables."""
        return {"file": os.getenv("STATIC_PROVIDER_FILE", "servers.yaml")}

    async def initialize(self, config: Dict[str, Any]) -> None:
        self.path = Path(config.get("file", "servers.yaml"))
        logger.debug(f"Static provider initialized: file={self.path}")

    async def get_server_details(self, uuid: str) -> Dict[str, Any]:
        servers = await asyncio.to_thread(self._load)

        if uuid not in servers:
            raise ProviderProblem(
                ERROR_CODE_SERVER_NOT_FOUND,
                f"Server {uuid} not found",
                status=404,
            )
        return dict(servers[uuid])

    def _load(self) -> Dict[str, Dict[str, Any]]:
        """Return the server map, re-reading the file if it changed."""
        if self.path is None:
            raise ProviderError("Static provider is not initialized")

        try:
            mtime = self.path.stat().st_mtime
        except OSError as e:
            raise ProviderError(f"Cannot read {self.path}: {e}") from e

        if mtime == self._mtime:
            return self._servers

        try:
            text = self.path.read_text(encoding="utf-8")
            if self.path.suffix == ".json":
                data = json.loads(text)
            else:
                data = yaml.safe_load(text)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ProviderError(f"Cannot parse {self.path}: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ProviderError(
                f"{self.path} must map server UUIDs to details, "
                f"got {type(data).__name__}"
            )

        self._servers = {str(k): v or {} for k, v in data.items()}
        self._mtime = mtime
        logger.info(f"Loaded {len(self._servers)} servers from {self.path}")
        return self._servers
