from contextlib import asynccontextmanager
import json
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from . import config, models
from .crud import RedisOrderStore, create_redis_client
from .database import create_engine, create_tables
from .errors import HTTP_STATUS, INTERNAL_ERROR_MESSAGE, CheckoutServiceError, ErrorCode
from .logging_config import new_correlation_id, reset_correlation_id, set_correlation_id, setup_logging
from .orchestrator import CheckoutFailure, CheckoutOrchestrator
from .payment import HttpPaymentGateway, MockPaymentGateway, PaymentGateway
from .sql_crud import SqlOrderStore
from .store import InMemoryOrderStore, OrderStore

setup_logging()
logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


async def build_store(backend: str = config.ORDER_STORE_BACKEND) -> OrderStore:
    """Constructs the configured order store. Called once per process, at startup."""
    if backend == "redis":
        return RedisOrderStore(create_redis_client())
    if backend == "sql":
        engine = create_engine()
        await create_tables(engine)
        store = SqlOrderStore(engine)
        await store.purge_expired()
        return store
    if backend == "memory":
        logger.warning("Using in-memory order store; orders are lost on restart")
        return InMemoryOrderStore()
    raise ValueError(f"Unknown ORDER_STORE_BACKEND: {backend!r}")


def build_gateway(kind: str = config.PAYMENT_GATEWAY) -> PaymentGateway:
    if kind == "mock":
        return MockPaymentGateway()
    if kind == "http":
        return HttpPaymentGateway()
    raise ValueError(f"Unknown PAYMENT_GATEWAY: {kind!r}")


def error_response(code: ErrorCode, message: str, order_id: str | None = None) -> JSONResponse:
    body = models.ErrorResponse(error=models.ErrorDetail(code=code.value, message=message, order_id=order_id))
    return JSONResponse(status_code=HTTP_STATUS[code], content=body.to_body())


def create_app(orchestrator: CheckoutOrchestrator | None = None) -> FastAPI:
    """
    Builds the checkout API.

    With an orchestrator given (tests, embedding) it is used as is; otherwise the
    store and gateway are built from config when the app starts.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Checkout Service starting up...")
        if orchestrator is not None:
            yield
            return

        store = await build_store()
        gateway = build_gateway()
        app.state.orchestrator = CheckoutOrchestrator(store, gateway)
        logger.info(f"Order store: {config.ORDER_STORE_BACKEND}, payment gateway: {config.PAYMENT_GATEWAY}")

        yield # Application runs here

        logger.info("Checkout Service shutting down...")
        await gateway.close()
        await store.close()

    app = FastAPI(
        title="Checkout Service",
        description="Idempotent checkout: prices the cart, records the order once per cartId and captures payment at most once.",
        version="0.1.0",
        lifespan=lifespan,
    )
    if orchestrator is not None:
        app.state.orchestrator = orchestrator

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next):
        correlation_id = request.headers.get(REQUEST_ID_HEADER) or new_correlation_id()
        token = set_correlation_id(correlation_id)
        try:
            response = await call_next(request)
        except Exception as e:
            # Anything no handler claimed still gets the generic envelope and the request id
            logger.exception(f"Unexpected error: {e}")
            response = error_response(ErrorCode.INTERNAL_ERROR, INTERNAL_ERROR_MESSAGE)
        finally:
            reset_correlation_id(token)
        response.headers[REQUEST_ID_HEADER] = correlation_id
        return response

    @app.exception_handler(CheckoutServiceError)
    async def checkout_service_error_handler(request: Request, exc: CheckoutServiceError):
        # Details stay in the log, never in the response
        logger.error(f"Checkout failed with {type(exc).__name__}: {exc}")
        return error_response(ErrorCode.INTERNAL_ERROR, INTERNAL_ERROR_MESSAGE)

    @app.get("/health", summary="Health Check", tags=["Monitoring"])
    async def health_check():
        return {"status": "ok"}

    @app.post("/checkout", summary="Checkout Cart", tags=["Checkout"])
    async def checkout_endpoint(request: Request):
        """
        Prices the cart on the server, records the order once per cartId and
        captures payment. Replays of a known cartId return the stored order.
        """
        raw_body = await request.body()
        logger.info(f"Checkout request received: {request.method} {request.url.path}")

        if not raw_body:
            return error_response(ErrorCode.VALIDATION_ERROR, "Request body is required")
        try:
            body = json.loads(raw_body)
        except ValueError:
            return error_response(ErrorCode.VALIDATION_ERROR, "Invalid JSON in request body")

        try:
            checkout_request = models.CheckoutRequest.model_validate(body)
        except ValidationError as e:
            message = models.describe_validation_error(e)
            logger.warning(f"Rejected checkout request: {message}")
            return error_response(ErrorCode.VALIDATION_ERROR, message)

        result = await request.app.state.orchestrator.checkout(checkout_request)
        if isinstance(result, CheckoutFailure):
            return error_response(result.code, result.message, result.order_id)

        return JSONResponse(
            status_code=result.http_status,
            content={"success": True, "order": result.order.to_public()},
        )

    @app.get("/orders/{cart_id}", summary="Get Order by Cart", tags=["Orders"])
    async def get_order_endpoint(cart_id: str, request: Request):
        """Reads the order recorded for a cart, if any."""
        order = await request.app.state.orchestrator.store.get(cart_id)
        if order is None:
            return error_response(ErrorCode.ORDER_NOT_FOUND, f"No order found for cart {cart_id}")
        return {"success": True, "order": order.to_public()}

    return app


app = create_app()
