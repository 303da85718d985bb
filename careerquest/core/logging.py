import logging

from careerquest.core.config import LOG_LEVEL


def setup_logging(level: str = LOG_LEVEL) -> None:
    """Send every careerquest logger to the console once."""
    root = logging.getLogger("careerquest")
    root.setLevel(level)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(level)
        formatter = logging.Formatter('%(asctime)s %(levelname)s: [%(name)s] %(message)s')
        handler.setFormatter(formatter)
        root.addHandler(handler)
        root.propagate = False
