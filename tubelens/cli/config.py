"""Configuration management for the TubeLens CLI."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

from tubelens.app.services.result_grid import SORT_KEYS


def config_path() -> Path:
    return Path.home() / ".config" / "tubelens" / "config.yaml"


@dataclass
class CliConfig:
    """CLI preferences; backend and storage settings live in `AppSettings`."""

    export_dir: Path
    default_sort: str = "relevance"
    trending_region: str | None = None
    trending_count: int = 20

    @classmethod
    def load(cls) -> CliConfig:
        """Load config from ~/.config/tubelens/config.yaml or use defaults."""
        path = config_path()
        if not path.exists():
            return cls(export_dir=Path.cwd())

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        default_sort = str(data.get("default_sort", "relevance"))
        region = data.get("trending_region")
        return cls(
            export_dir=Path(data.get("export_dir", Path.cwd())).expanduser(),
            default_sort=default_sort if default_sort in SORT_KEYS else "relevance",
            trending_region=str(region).upper() if region else None,
            trending_count=int(data.get("trending_count", 20)),
        )

    def save(self) -> None:
        path = config_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(
                {
                    "export_dir": str(self.export_dir),
                    "default_sort": self.default_sort,
                    "trending_region": self.trending_region,
                    "trending_count": self.trending_count,
                },
                f,
            )
