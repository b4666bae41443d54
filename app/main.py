import logging

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response

from app.config import get_settings
from app.container import init_services
from app.dispatcher import ActionDispatcher

settings = get_settings()
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Paper Practice Grader")
services = init_services(settings)
dispatcher = ActionDispatcher.from_container(services)


@app.get("/api/health")
def health():
    return {
        "status": "ok",
        "grading": dispatcher.grader.available,
        "storage": dispatcher.repository.available,
    }


@app.api_route("/api/backend", methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"])
async def backend(request: Request):
    raw_body = await request.body()
    result = await run_in_threadpool(dispatcher.dispatch, request.method, raw_body, dict(request.query_params))
    if result.body is None:
        return Response(status_code=result.status_code, headers=result.headers)
    return JSONResponse(content=result.body, status_code=result.status_code, headers=result.headers)


def run():
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
    )


if __name__ == "__main__":
    run()
