from __future__ import annotations

import os

import uvicorn

from rag_agent.app import create_app
from rag_agent.config import Config
from rag_agent.logging_setup import configure_logging

config = Config()
configure_logging(config.LOG_LEVEL)
app = create_app(config)


if __name__ == "__main__":
    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))
