import os
import logging
from decimal import Decimal
from dotenv import load_dotenv

load_dotenv()

class Config:
    """Application configuration"""

    # Flask settings
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('DEBUG', 'True').lower() == 'true'
    PORT = int(os.getenv('PORT', '5001'))  # the backend itself usually listens on 5000

    # Backend settings
    API_BASE_URL = os.getenv('API_BASE_URL', 'http://localhost:5000/api').rstrip('/')
    REQUEST_TIMEOUT = float(os.getenv('REQUEST_TIMEOUT', '10'))

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

    # Application settings
    AMOUNT_TOLERANCE = Decimal('1')  # allowed |allocated - total| in currency units


def configure_logging(level: str = None):
    """Configure root logging once for the application"""
    logging.basicConfig(
        level=level or Config.LOG_LEVEL,
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )
