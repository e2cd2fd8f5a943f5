import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pulse_engine import PulseService, Settings
from pulse_engine.models.errors import UnknownCategory

load_dotenv()
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
log = logging.getLogger("pulse.app")

# error kind → HTTP status when a view cannot be served
VIEW_ERROR_STATUS = {
    "rate_limited": 429,
    "bad_request":  400,
    "not_found":    404,
}


def create_app(service: Optional[PulseService] = None) -> FastAPI:

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        svc = service or PulseService(Settings.from_env())
        app.state.pulse = svc
        s = svc.settings
        log.info(
            f"Pulse ready: ttl={s.cache_ttl:.0f}s, {len(s.strategies)} upstream queries, "
            f"venues {s.originator_venue}→{s.graduated_venue}, {s.category_size} coins/category"
        )
        yield
        await svc.aclose()

    app = FastAPI(
        title="Pulse API",
        description="New, near-graduation and migrated Solana pairs, cached and coalesced.",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def _service(request: Request) -> PulseService:
        return request.app.state.pulse

    def _respond(result: dict, failure_status: int = 503) -> JSONResponse:
        if result.get("ok"):
            return JSONResponse(result)
        status = VIEW_ERROR_STATUS.get(result.get("kind"), failure_status)
        headers = {}
        if status == 429 and result.get("retryAfter") is not None:
            headers["Retry-After"] = str(int(result["retryAfter"]))
        return JSONResponse(result, status_code=status, headers=headers)

    async def _category(request: Request, name: str) -> JSONResponse:
        try:
            result = await _service(request).get_category(name)
        except UnknownCategory as e:
            raise HTTPException(404, str(e))
        return _respond(result)

    @app.get("/")
    async def root():
        return {"ok": True, "message": "Backend is running!", "api": "/api/pulse"}

    @app.get("/health")
    async def health(request: Request):
        return _service(request).health()

    @app.get("/api/pulse", tags=["Pulse"])
    async def pulse(request: Request):
        return _respond(await _service(request).get_pulse())

    @app.get("/api/new-pairs", tags=["Pulse"])
    async def new_pairs(request: Request):
        return await _category(request, "NewPairs")

    @app.get("/api/final-stretch", tags=["Pulse"])
    async def final_stretch(request: Request):
        return await _category(request, "FinalStretch")

    @app.get("/api/migrated", tags=["Pulse"])
    async def migrated(request: Request):
        return await _category(request, "Migrated")

    @app.get("/api/category/{name}", tags=["Pulse"])
    async def category(request: Request, name: str):
        return await _category(request, name)

    @app.get("/api/pairs/{mint}", tags=["Pairs"])
    async def pair_lookup(request: Request, mint: str):
        return _respond(await _service(request).lookup_pair(mint), failure_status=502)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run("app:app", host="0.0.0.0", port=port, reload=False, log_level="info")
