"""API gateway entrypoint."""

import logging

from fastapi import FastAPI

from services.api_gateway.config import APP_VERSION, LOG_LEVEL
from services.api_gateway.presentation.http.routes import router

logging.basicConfig(level=LOG_LEVEL)

app = FastAPI(title="Safety Incident Response Coordinator", version=APP_VERSION)
app.include_router(router)
