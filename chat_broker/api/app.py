"""HTTP 路由。

- GET  /                  存活检查
- GET  /check             后端健康检查
- POST /chat/{model_id}   入队并等待 Worker 的回复
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from chat_broker.api.service import BrokerService, get_default_service
from chat_broker.domain.exceptions import BusinessError, ValidationError
from chat_broker.infrastructure.logging.logger import logger


def create_app(service: Optional[BrokerService] = None) -> FastAPI:
    svc = service or get_default_service()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        svc.start()
        logger.info("Broker started", extra={"extra": {"history_dir": str(svc.store.root)}})
        try:
            yield
        finally:
            await svc.stop()
            logger.info("Broker stopped")

    app = FastAPI(title="Chat Broker", version="1.0.0", lifespan=lifespan)
    app.state.service = svc

    # 业务错误统一以 {"error": ...} 返回，状态码为 200
    @app.exception_handler(BusinessError)
    async def business_error_handler(request: Request, exc: BusinessError):
        return JSONResponse({"error": exc.message})

    @app.get("/")
    async def root():
        return Response(status_code=200, content="OK", media_type="text/plain")

    @app.get("/check")
    async def check():
        ok = await svc.check()
        return Response(status_code=200 if ok else 500, content="OK" if ok else "Internal Server Error", media_type="text/plain")

    @app.post("/chat/{model_id:path}")
    async def chat(model_id: str, request: Request):
        if not model_id.strip():
            raise ValidationError(code="INVALID_REQUEST", message="Invalid request")
        try:
            body = await request.json()
        except ValueError:
            raise ValidationError(code="INVALID_REQUEST", message="Invalid request")
        return JSONResponse(await svc.chat(model_id, body))

    return app
