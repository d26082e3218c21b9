import logging
import logging.config

_configured = False


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Install the process-wide logging configuration once."""
    global _configured

    if not _configured:
        logging.config.dictConfig(
            {
                "version": 1,
                "disable_existing_loggers": False,
                "formatters": {
                    "default": {
                        "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
                    }
                },
                "handlers": {
                    "console": {
                        "class": "logging.StreamHandler",
                        "formatter": "default",
                        "stream": "ext://sys.stdout",
                    }
                },
                "root": {"handlers": ["console"], "level": level.upper()},
                # boto/httpx are chatty at INFO
                "loggers": {
                    "botocore": {"level": "WARNING"},
                    "boto3": {"level": "WARNING"},
                    "httpx": {"level": "WARNING"},
                },
            }
        )
        _configured = True

    return logging.getLogger("storesync")
