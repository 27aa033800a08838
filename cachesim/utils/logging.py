import logging


def get_logger(name: str = "cachesim", verbose: bool = False, quiet: bool = False):
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s %(message)s")
    logger = logging.getLogger(name)
    logger.setLevel(level)
    return logger
