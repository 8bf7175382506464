from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from grant_webhooks.core.config import settings
from grant_webhooks.routers import webhooks

OPENAPI_TAGS = [
    {"name": "Webhooks", "description": "Manage webhook subscriptions and monitor deliveries."},
]

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.version,
    description=(
        "Outbound webhook delivery for the grants platform. "
        "Register subscriber URLs, inspect delivery history, and send test events."
    ),
    openapi_tags=OPENAPI_TAGS,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Total-Count"],
)

app.include_router(webhooks.router, prefix="/v1/webhooks", tags=["Webhooks"])


@app.get("/")
async def root() -> dict[str, str]:
    return {
        "app": settings.APP_NAME,
        "version": settings.version,
        "status": "running",
    }
