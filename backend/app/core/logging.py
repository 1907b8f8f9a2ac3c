import logging.config

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Route application, uvicorn and scheduler logs through one console handler"""
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {"format": LOG_FORMAT},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stdout",
            },
        },
        "root": {"handlers": ["console"], "level": level.upper()},
        "loggers": {
            # APScheduler logs every job execution at INFO
            "apscheduler": {"level": "WARNING"},
            "httpx": {"level": "WARNING"},
        },
    })
