import os
from decimal import Decimal
from dotenv import load_dotenv

load_dotenv() # Optional: Load .env file

APP_HOST = os.getenv("APP_HOST", "0.0.0.0")
APP_PORT = int(os.getenv("APP_PORT", "8002")) # Port for this service

# Operator-controlled only, never taken from a request
TAX_RATE = Decimal(os.getenv("TAX_RATE", "0.10"))
