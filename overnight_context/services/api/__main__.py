"""Run the context API under uvicorn: `python -m overnight_context.services.api`."""

import uvicorn

from overnight_context.core.config import get_settings

_APP_PATH = "overnight_context.services.api.main:app"


def main() -> int:
    """Serve the context API with host, port and log level from settings."""

    settings = get_settings()
    uvicorn.run(
        _APP_PATH,
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
