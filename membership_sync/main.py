import logging

import psycopg2
from dotenv import load_dotenv
from fastapi import FastAPI

from membership_sync import app_context
from membership_sync.config import load_sync_config

load_dotenv()

CONFIG = load_sync_config()

logging.basicConfig(
    level=CONFIG.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("membership_sync")


def get_conn():
    return psycopg2.connect(**CONFIG.database.as_connect_kwargs())


app_context.configure(get_conn=get_conn)

from membership_sync.app.routes.membership_events import router as membership_events_router

app = FastAPI(title="Membership Course Sync API")

app.include_router(membership_events_router)


@app.get("/api/health")
def health() -> dict:
    return {
        "status": "ok",
        "membershipOnlyMode": CONFIG.membership_only_mode,
        "bundlesEnabled": CONFIG.bundles_enabled,
    }


logger.info(
    "Membership sync ready membership_only=%s bundles=%s",
    CONFIG.membership_only_mode,
    CONFIG.bundles_enabled,
)
