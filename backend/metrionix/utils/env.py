"""Environment helpers shared by settings, scripts and workers."""

import logging

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def load_env_file() -> bool:
    """Load variables from a local .env file without overriding the process env.

    WHAT:
        Reads backend/.env (or the nearest .env) into os.environ.
    WHY:
        Developers run the API and the ARQ worker from a shell; production
        injects real environment variables which must always win.

    Returns:
        True if a file was loaded.
    """
    loaded = load_dotenv(override=False)
    if loaded:
        logger.info("Loaded local .env file (existing variables were NOT overwritten)")
    else:
        logger.debug("No local .env file found or loaded")
    return loaded
