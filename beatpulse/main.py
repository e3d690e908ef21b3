"""FastAPI application - serves the analysis API."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from beatpulse import __version__
from beatpulse.api.upload import router as upload_router
from beatpulse.api.websocket import router as ws_router

app = FastAPI(title="Beatpulse", version=__version__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(upload_router, prefix="/api")
app.include_router(ws_router, prefix="/api")


@app.get("/api/health")
async def health():
    return {"status": "ok", "version": __version__}


def run():
    import logging

    import uvicorn
    from beatpulse.config import settings

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    uvicorn.run(
        "beatpulse.main:app",
        host=settings.host,
        port=settings.port,
    )
