"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from installment_ledger.infrastructure.database.session import get_db
from installment_ledger.services.ingestion import IngestionService


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_ingestion_service(db: Session = Depends(get_db)) -> IngestionService:
    """Provide ingestion service bound to the request's session"""
    return IngestionService(db)
