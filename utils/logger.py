import logging

LOG_FORMAT = "%(filename)s - %(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(app) -> None:
    level = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(format=LOG_FORMAT)
    logging.getLogger().setLevel(level)
    app.logger.setLevel(level)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
