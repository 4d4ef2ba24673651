import logging

LOG_FILE_PATH = "app.log" # Define your log file path

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(lineno)d - %(message)s'

def setup_global_logger(log_file_path=LOG_FILE_PATH, level=logging.INFO, console=False):
    """
    Configures a global logger to write to a specified file, and optionally
    to the console as well.
    """
    # Get the root logger
    logger = logging.getLogger()
    logger.setLevel(level)

    # Prevent duplicate handlers if this function is called multiple times
    for handler in logger.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename.endswith(log_file_path):
            logger.debug("File logger already configured.")
            return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')

    file_handler = logging.FileHandler(log_file_path, mode='a')
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    logger.info(f"Global file logger configured. Logging to: {log_file_path} with level: {logging.getLevelName(level)}")
    return logger
