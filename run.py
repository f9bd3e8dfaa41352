import os

import uvicorn

from code_reviewer.logger import get_logger

logger = get_logger()


def main() -> None:
    host = os.getenv("REVIEWER_HOST", "127.0.0.1")
    port = int(os.getenv("REVIEWER_PORT", "8000"))

    logger.info(
        "Starting Gemini Code Reviewer on http://{host}:{port} (docs at /docs)",
        host=host,
        port=port,
    )
    uvicorn.run(
        "code_reviewer.main:create_app",
        factory=True,
        host=host,
        port=port,
        workers=1,
        log_level=os.getenv("REVIEWER_LOG_LEVEL", "info").lower(),
    )


if __name__ == "__main__":
    main()
