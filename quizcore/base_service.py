import os
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import declarative_base

# Setup logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

# SQLAlchemy async setup
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./quizcore.db")
DATABASE_ECHO = os.getenv("DATABASE_ECHO", "false").lower() == "true"
engine = create_async_engine(DATABASE_URL, echo=DATABASE_ECHO)
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseService:
    """
    Base class for all services. Provides:
    - Structured event/error logging
    - Standard response envelope
    """
    def __init__(self, service_name: str = "core"):
        self.service_name = service_name
        self.logger = logging.getLogger(f"quizcore.{service_name}")

    def response(self, data: Any = None, message: str = "success", status: str = "ok") -> Dict[str, Any]:
        """
        Return a standard response envelope.
        """
        return {
            "status": status,
            "message": message,
            "data": data,
        }

    def log_event(self, event: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        log_data = {
            "timestamp": utcnow().isoformat(),
            "service": self.service_name,
            "event": event,
            "data": details or {},
        }
        self.logger.info(f"EVENT: {json.dumps(log_data, default=str)}")
        return log_data

    def log_error(self, error: Exception, context: str = "") -> Dict[str, Any]:
        error_data = {
            "timestamp": utcnow().isoformat(),
            "service": self.service_name,
            "error": str(error),
            "error_type": error.__class__.__name__,
            "context": context or "unknown",
        }
        self.logger.error(f"ERROR: {json.dumps(error_data)}")
        return error_data
