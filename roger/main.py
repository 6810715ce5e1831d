from contextlib import asynccontextmanager

from fastapi import FastAPI

from roger.api import state
from roger.config import get_settings
from roger.logger import configure_logging
from roger.services import state_client

configure_logging(get_settings().log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # the roger client is built lazily by the first request
    state_client.close_client()


app = FastAPI(title="roger state API", lifespan=lifespan)

app.include_router(state.router, prefix="/state", tags=["state"])
