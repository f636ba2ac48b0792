import os
import logging
from logging.config import dictConfig

PIPELINE_LOGGERS = ["app.services.chain", "app.services.openai_service", "app.services.r2_service"]

def _rotating(filename, level):
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "filename": filename,
        "formatter": "customFormatter",
        "level": level,
        "maxBytes": 5242880,
        "backupCount": 3,
        "encoding": "utf-8"
    }

def setup_logging():
    from app.config.settings import settings
    logs_dir = settings.LOGS_DIR
    os.makedirs(logs_dir, exist_ok=True)
    level = "DEBUG" if settings.DEBUG else settings.LOG_LEVEL.upper()

    # Polling a segment hits the same endpoints every few seconds
    for logger_name in ["urllib3", "httpx", "httpcore", "openai", "botocore", "boto3", "s3transfer", "PIL"]:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "customFormatter": {
                "format": "[%(asctime)s] [%(levelname)s] [%(filename)s:%(lineno)d] %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S"
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "customFormatter",
                "level": level,
            },
            "info_file_handler": _rotating(os.path.join(logs_dir, "info.log"), "INFO"),
            "error_file_handler": _rotating(os.path.join(logs_dir, "error.log"), "ERROR"),
            "chain_file_handler": _rotating(os.path.join(logs_dir, "chain.log"), "DEBUG"),
        },
        "loggers": {
            **{
                name: {"level": level, "handlers": ["chain_file_handler"], "propagate": True}
                for name in PIPELINE_LOGGERS
            },
            "motor": {"level": "WARNING", "handlers": ["console"], "propagate": False},
            "pymongo": {"level": "WARNING", "handlers": ["console"], "propagate": False},
            "uvicorn.access": {"level": "WARNING"},
            "": {
                "level": level,
                "handlers": [
                    "console",
                    "info_file_handler",
                    "error_file_handler"
                ],
            },
        },
    }

    dictConfig(logging_config)
