import logging

import uvicorn

from linknav.config import Settings


def run_uvicorn(settings: Settings):
    """
    Run the FastAPI app via uvicorn in this process.
    """
    config = uvicorn.Config(
        "linknav.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
        reload=False,
    )
    server = uvicorn.Server(config)
    server.run()


def main():
    settings = Settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logging.getLogger(__name__).info("Serving on http://%s:%s/", settings.HOST, settings.PORT)
    try:
        run_uvicorn(settings)
    except KeyboardInterrupt:
        logging.getLogger(__name__).info("Shutting down.")


if __name__ == "__main__":
    main()
