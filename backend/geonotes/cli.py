# geonotes/cli.py
import os

import uvicorn

from geonotes.core.config import get_settings


def dev() -> None:
    uvicorn.run("geonotes.main:app", host="0.0.0.0", port=8000, reload=True, log_level="debug")


def start() -> None:
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run(
        "geonotes.main:app",
        host="0.0.0.0",
        port=port,
        log_level=get_settings().log_level.lower(),
        proxy_headers=True,
    )


def pytest() -> None:
    import pytest
    # Paths come from [tool.pytest.ini_options]; stop after first failure
    raise SystemExit(pytest.main(["-x"]))
