import logging

import uvicorn

from app.core.app_factory import create_app
from app.core.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()
app = create_app(settings)


def run() -> None:
    """Serve the app on the configured host and PORT."""
    logger.info(
        "server.starting",
        extra={
            "port": settings.server.port,
            "credential_configured": app.state.credentials.configured,
            "rate_limit_strategy": settings.rate_limit.strategy,
        },
    )
    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,
    )


if __name__ == "__main__":
    run()
