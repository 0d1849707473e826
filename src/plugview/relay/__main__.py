"""Run the relay server: python -m plugview.relay"""

import uvicorn

from ..core.config import get_settings
from ..core.logging_config import configure_logging
from .app import create_app


def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level, settings.json_logs, service="plugview-relay")

    uvicorn.run(
        create_app(settings),
        host=settings.relay_host,
        port=settings.relay_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
