# Bucket board configuration
# Override paths and defaults via bucketboard.yaml, BUCKETBOARD_CONFIG or BUCKETBOARD_DB.

import logging
import os
import sys
import yaml
from pathlib import Path
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional

CONFIG_PATH = Path(__file__).parent / "bucketboard.yaml"

logger = logging.getLogger(__name__)


def _default_buckets() -> List[Dict[str, Any]]:
    return [
        {"name": "Today", "limit": 3},
        {"name": "This Week", "limit": 7},
        {"name": "Backlog"},
    ]


@dataclass
class Config:
    """Runtime configuration for the bucket board."""

    # Storage
    db_path: str = "~/.local/share/bucketboard/board.db"

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s [bucketboard] %(levelname)s: %(message)s"

    # Board seeding: "The ONE Thing" bucket is always created first with limit 1
    one_thing_name: str = "The ONE Thing"
    default_buckets: List[Dict[str, Any]] = field(default_factory=_default_buckets)

    def resolve_paths(self):
        """Expand ~ and apply the BUCKETBOARD_DB override."""
        env_db = os.environ.get("BUCKETBOARD_DB")
        if env_db:
            self.db_path = env_db
        self.db_path = str(Path(self.db_path).expanduser())

    @classmethod
    def load(cls, path: Optional[str] = None) -> "Config":
        """Load config from YAML file, falling back to defaults."""
        path = path or os.environ.get("BUCKETBOARD_CONFIG")
        cfg_path = Path(path) if path else CONFIG_PATH
        if cfg_path.exists():
            try:
                with open(cfg_path, "r") as f:
                    data = yaml.safe_load(f) or {}
                known = {f.name for f in fields(cls)}
                cfg = cls(**{k: v for k, v in data.items() if k in known})
            except (OSError, yaml.YAMLError, TypeError, AttributeError) as e:
                logger.warning(f"Cannot read config {cfg_path}, using defaults: {e}")
                cfg = cls()
        else:
            cfg = cls()
        cfg.resolve_paths()
        return cfg


def configure_logging(cfg: Config) -> None:
    """Send log records to stdout at the configured level."""
    logging.basicConfig(
        level=getattr(logging, cfg.log_level.upper(), logging.INFO),
        format=cfg.log_format,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
