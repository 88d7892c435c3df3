import os

import uvicorn

from spend_categorizer.app import create_app
from spend_categorizer.logger import get_logging_config

app = create_app()


def run() -> None:
    uvicorn.run(
        app,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        log_config=get_logging_config(),
    )


if __name__ == "__main__":
    run()
