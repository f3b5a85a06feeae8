from __future__ import annotations

import uvicorn
from starlette.applications import Starlette

from gamefinder.app import create_app
from gamefinder.constants import APP_VERSION, LOGGER
from gamefinder.env import Settings, load_env, load_settings, setup_logging, validate_env


def build_app() -> tuple[Starlette, Settings]:
    load_env()
    settings = load_settings()
    setup_logging(settings)
    validate_env(settings)
    return create_app(settings), settings


def main() -> None:
    app, settings = build_app()
    LOGGER.info(
        "Game Finder auth %s starting on %s:%s (%s)",
        APP_VERSION,
        settings.host,
        settings.port,
        settings.environment,
    )
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
