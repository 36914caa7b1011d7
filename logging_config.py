import logging
import sys
from pprint import pformat

from config import LOG_LEVEL

# Configure logging
def setup_logging():
    # Create logger
    logger = logging.getLogger("costify_api")
    logger.setLevel(LOG_LEVEL)

    # Avoid duplicate handlers when the module is reloaded
    if not logger.handlers:
        # Create console handler
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(LOG_LEVEL)

        # Create formatter
        formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(formatter)

        # Add handler to logger
        logger.addHandler(console_handler)

    return logger

# Get the logger
logger = setup_logging()

# The driver logs every heartbeat at debug level
logging.getLogger("pymongo").setLevel(logging.WARNING)

def log_request_info(request, message="Request received"):
    """Log detailed request information"""
    logger.info(f"{message}: {request.method} {request.url}")
    headers = dict(request.headers)
    if "authorization" in headers:
        headers["authorization"] = "********"
    logger.debug(f"Request headers: {pformat(headers)}")

def log_response_info(response, elapsed_ms=None, message="Response sent"):
    """Log detailed response information"""
    timing = f" in {elapsed_ms:.1f} ms" if elapsed_ms is not None else ""
    logger.info(f"{message}: Status {response.status_code}{timing}")
    logger.debug(f"Response headers: {pformat(dict(response.headers))}")
