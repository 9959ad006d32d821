import os

import uvicorn

from budget_categorizer.app import app
from budget_categorizer.core import settings
from budget_categorizer.logger import get_logging_config

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8000


def main() -> None:
    uvicorn.run(
        app,
        host=os.getenv("HOST", DEFAULT_HOST),
        port=settings.get_env_int("PORT", DEFAULT_PORT, min_value=1),
        log_config=get_logging_config(),
    )


if __name__ == "__main__":
    main()
