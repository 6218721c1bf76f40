import logging
import os
from datetime import datetime
from config.settings import settings

def setup_logger(name: str = __name__) -> logging.Logger:
    """Setup and configure logger."""

    logger = logging.getLogger(name)

    # Modules call this at import time; attach handlers only once per name
    if logger.handlers:
        return logger

    # Create logs directory if it doesn't exist
    os.makedirs(settings.LOG_DIR, exist_ok=True)

    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)

    # File handler
    log_file = os.path.join(
        settings.LOG_DIR,
        f"automation_{datetime.now().strftime('%Y%m%d')}.log"
    )
    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)

    logger.addHandler(console_handler)
    logger.addHandler(file_handler)

    return logger
