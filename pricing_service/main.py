from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException, status
import logging

# Use relative imports
from . import schemas, logic, config

# Basic logging setup
logging.basicConfig(level=logging.INFO, format='%(asctime)s [%(levelname)s] %(name)s: %(message)s')
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Pricing Service starting up...")
    logger.info(f"Listening on {config.APP_HOST}:{config.APP_PORT}, tax rate {config.TAX_RATE}")
    yield
    logger.info("Pricing Service shutting down...")


app = FastAPI(
    title="Pricing Service",
    description="Recalculates cart totals (line totals, subtotal, tax, total) from price x quantity.",
    version="0.1.0",
    lifespan=lifespan,
)


@app.get("/health", tags=["Monitoring"], summary="Health Check")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy"}


@app.post(
    "/calculate_price",
    response_model=schemas.PricingResult,
    tags=["Pricing"],
    summary="Quote Cart Price"
)
async def calculate_price_endpoint(request_data: schemas.PriceCalculationRequest):
    """
    Receives cart items and returns the same totals checkout would persist.
    Nothing is stored; totals sent by the client are ignored.
    """
    logger.info(f"Received price quote request for {len(request_data.items)} item(s)")
    try:
        return logic.calculate_pricing(request_data.items)
    except ArithmeticError as e:
        logger.exception(f"Error calculating price: {e}")
        # Return a generic error response
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred during price calculation."
        )
