import uvicorn

from .config import Settings
from .logging_config import get_logger, setup_logging

logger = get_logger(__name__)


def main() -> None:
    settings = Settings.from_env()
    setup_logging(log_level=settings.log_level, log_file=settings.log_file)
    logger.info("Starting tabletop server on %s:%d", settings.host, settings.port)
    uvicorn.run(
        "tabletop.app:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        proxy_headers=True,
        forwarded_allow_ips="*",
        log_config=None,
    )


if __name__ == "__main__":
    main()
