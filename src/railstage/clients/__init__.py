from .base import BaseClient
from .staged_scans_client import StagedScansClient

__all__ = ["BaseClient", "StagedScansClient"]
