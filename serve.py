"""Launch script that resolves the stockbot package before starting Uvicorn."""

from __future__ import annotations

import importlib
import logging
import os
import sys
from pathlib import Path
from typing import Iterable

import uvicorn

logger = logging.getLogger("stockbot.launcher")


def _candidate_roots() -> Iterable[Path]:
    current_file = Path(__file__).resolve()
    cwd = Path.cwd()

    seen: set[Path] = set()
    for path in [current_file.parent, cwd, cwd / "app", Path("/app"), Path("/workspace")]:
        if path not in seen:
            seen.add(path)
            yield path


def _find_package() -> Path | None:
    for root in _candidate_roots():
        package_dir = root / "stockbot"
        if (package_dir / "main.py").is_file():
            return package_dir
    return None


def main() -> None:
    package_dir = _find_package()
    if package_dir is None:
        logger.error("Unable to locate stockbot package")
        raise RuntimeError("stockbot package not found")

    repo_root = str(package_dir.parent)
    if repo_root not in sys.path:
        sys.path.insert(0, repo_root)
    logger.debug("Package directory resolved to %s", package_dir)

    app_module = importlib.import_module("stockbot.main")
    app = app_module.app  # type: ignore[attr-defined]

    port = int(os.environ.get("PORT", "8000"))
    uvicorn.run(app, host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
