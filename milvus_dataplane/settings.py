import logging.config
import os

from dotenv import load_dotenv

load_dotenv()


class Config:
    LOG_LEVEL = str(os.getenv("MILVUS_DATAPLANE_LOG_LEVEL", "WARNING")).upper()

    # default page size of query/search iterators when none is passed in
    ITERATOR_BATCH_SIZE = int(os.getenv("MILVUS_ITERATOR_BATCH_SIZE", "1000"))

    MaxVarCharLengthKey = "max_length"
    MaxVarCharLength = 65535
    MaxCapacityKey = "max_capacity"
    EncodeProtocol = "utf-8"
    DynamicFieldName = "$meta"


# logging
COLORS = {
    "HEADER": "\033[95m",
    "INFO": "\033[92m",
    "DEBUG": "\033[94m",
    "WARNING": "\033[93m",
    "ERROR": "\033[95m",
    "CRITICAL": "\033[91m",
    "ENDC": "\033[0m",
}


class ColorFulFormatColMixin:
    def format_col(self, message_str: str, level_name: str):
        if level_name in COLORS:
            message_str = COLORS.get(level_name) + message_str + COLORS.get("ENDC")
        return message_str


class ColorfulFormatter(logging.Formatter, ColorFulFormatColMixin):
    def format(self, record: logging.LogRecord):
        message_str = super().format(record)

        return self.format_col(message_str, level_name=record.levelname)


def init_log(log_level: str):
    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s [%(levelname)s][%(funcName)s]: %(message)s (%(filename)s:%(lineno)s)",
            },
            "colorful_console": {
                "format": "%(asctime)s | %(levelname)s: %(message)s (%(filename)s:%(lineno)s) (%(process)s)",
                "()": ColorfulFormatter,
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "colorful_console",
            },
            "no_color_console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
            },
        },
        "loggers": {
            "milvus_dataplane": {
                "handlers": ["no_color_console"],
                "level": log_level,
                "propagate": False,
            },
            "milvus_dataplane.client.iterator": {
                "handlers": ["no_color_console"],
                "level": log_level,
                "propagate": False,
            },
        },
    }
    logging.config.dictConfig(logging_config)


init_log(Config.LOG_LEVEL)
