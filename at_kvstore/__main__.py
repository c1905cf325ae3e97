"""Entry point for running the key-value store service."""

import uvicorn

from at_kvstore.app import app
from at_kvstore.config import Settings

if __name__ == "__main__":
    settings = Settings.from_env()
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
