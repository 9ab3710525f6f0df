"""
Dependencies for database sessions and execution collaborators.
"""
from typing import Generator

from fastapi import Depends
from sqlalchemy.orm import Session

from payout_orchestrator.config import ExecutionConfig
from payout_orchestrator.database import SessionLocal
from payout_orchestrator.integrations import (
    QuoteProvider,
    RpcTransferExecutor,
    TransferExecutor,
    build_quote_provider,
)
from payout_orchestrator.utils import get_logger

logger = get_logger(__name__)


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.
    Ensures proper session lifecycle management with automatic cleanup.

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.error("Database session error", error=str(e), exc_info=True)
        db.rollback()
        raise
    finally:
        db.close()


def get_execution_config() -> ExecutionConfig:
    """Execution config built from module settings and the environment."""
    return ExecutionConfig.from_settings()


def get_quote_provider() -> QuoteProvider:
    return build_quote_provider()


def get_transfer_executor(config: ExecutionConfig = Depends(get_execution_config)) -> TransferExecutor:
    return RpcTransferExecutor(config)
