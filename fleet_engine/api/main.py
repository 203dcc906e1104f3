from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from fleet_engine.api.routes.databases import router as databases_router
from fleet_engine.api.routes.units import router as units_router
from fleet_engine.core.errors import ConfigurationError, DeploymentInProgressError

app = FastAPI(title="Fleet Engine API")


@app.exception_handler(ConfigurationError)
def configuration_error_handler(request: Request, exc: ConfigurationError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(DeploymentInProgressError)
def deployment_in_progress_handler(request: Request, exc: DeploymentInProgressError):
    return JSONResponse(status_code=409, content={"detail": str(exc), "lock_key": exc.lock_key})


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(databases_router)
app.include_router(units_router)
