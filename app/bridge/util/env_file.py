"""Read-only ``.env`` parser -- ``KEY=value`` lines, ``#`` comments, optional quotes."""

from __future__ import annotations

from pathlib import Path


class EnvFile:
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def read_all(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        values: dict[str, str] = {}
        for line in self.path.read_text().splitlines():
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, _, value = line.partition("=")
            value = value.strip()
            if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
                value = value[1:-1]
            values[key.strip()] = value
        return values

    def read(self, key: str) -> str:
        return self.read_all().get(key, "")
