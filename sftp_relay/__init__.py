"""TCP-triggered SFTP upload relay."""

from .config import Config, load_config
from .transfer import TransferEngine, TransferResult

__all__ = ["Config", "load_config", "TransferEngine", "TransferResult"]
