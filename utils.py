import logging
import os


LOG_DIR_ENV = "POOL_AI_LOG_DIR"
DEFAULT_LOG_DIR = "logs"
LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


def get_logger(name: str = "pool_ai", filename: str = "pool_ai.log") -> logging.Logger:
    """Create (or reuse) a named logger that writes to <log dir>/<filename> and terminal.

    The log directory defaults to logs/ and can be moved with the POOL_AI_LOG_DIR
    environment variable; an empty value keeps terminal output only.
    Handlers are attached once, so repeated imports do not duplicate lines.
    """
    log_dir = os.environ.get(LOG_DIR_ENV, DEFAULT_LOG_DIR)

    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    logger.propagate = False

    fmt = logging.Formatter(LOG_FORMAT)

    has_file = False
    has_stream = False
    for h in list(logger.handlers):
        if isinstance(h, logging.FileHandler):
            has_file = True
        elif isinstance(h, logging.StreamHandler):
            # FileHandler is also a StreamHandler subclass; checked above.
            has_stream = True

    if log_dir and not has_file:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(os.path.join(log_dir, filename), mode='a', encoding='utf-8')
        file_handler.setFormatter(fmt)
        logger.addHandler(file_handler)

    if not has_stream:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(fmt)
        logger.addHandler(stream_handler)

    return logger
