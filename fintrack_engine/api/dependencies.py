"""Dependency injection for FastAPI endpoints"""

from fastapi import Request

from fintrack_engine.infrastructure.clients.aggregator import AggregatorClient


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_aggregator_client() -> AggregatorClient:
    """Provide aggregator API client instance"""
    return AggregatorClient()
