"""Main entry point for the HabitRPG API server"""
import logging
import uvicorn

from habitrpg.config import API_HOST, API_PORT, LOG_LEVEL

logger = logging.getLogger(__name__)


def main() -> None:
    """Run the API with uvicorn"""
    logger.info(f"Starting HabitRPG API on {API_HOST}:{API_PORT}")
    uvicorn.run(
        "habitrpg.api.server:create_api_application",
        factory=True,
        host=API_HOST,
        port=API_PORT,
        log_level=LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
