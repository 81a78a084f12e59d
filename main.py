"""
Event participant login service.

Run with: uvicorn main:create_application --factory --port 8000

Secrets come from the environment or Vault (see clients.vault_client);
a missing session signing secret stops startup.
"""

import logging
import os

from dotenv import load_dotenv
load_dotenv()  # Must be before reading config

from fastapi import FastAPI

from api.app import build_container, create_app
from auth.config import AuthConfig
from clients.vault_client import load_app_secrets


def create_application() -> FastAPI:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = AuthConfig.from_env()
    container = build_container(load_app_secrets(), config)
    return create_app(container)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_application(), host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
