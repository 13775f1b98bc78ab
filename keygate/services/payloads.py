"""
Protected payload library.

Maps public payload names to files in a directory. Only consulted after the
binding gateway has authorized a redemption.
"""
import logging
from pathlib import Path
from typing import Dict

from keygate.core.config import DEFAULT_PAYLOADS
from keygate.core.errors import NotFound

logger = logging.getLogger(__name__)


class PayloadLibrary:
    def __init__(self, directory: str | Path, catalog: Dict[str, str] | None = None):
        self.directory = Path(directory)
        self.catalog = dict(catalog if catalog is not None else DEFAULT_PAYLOADS)

    def knows(self, name: str) -> bool:
        return name in self.catalog

    def load(self, name: str) -> str:
        """
        Read a payload by its public name.

        Raises:
            NotFound: Unknown name, or the file is missing on this server
        """
        if name not in self.catalog:
            raise NotFound(f"Unknown payload: {name}")

        path = self.directory / self.catalog[name]
        if not path.is_file():
            logger.error(f"Payload '{name}' is missing on server (expected {path})")
            raise NotFound(f"Payload '{name}' is missing on server")

        return path.read_text(encoding="utf-8")
