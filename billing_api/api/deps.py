# billing_api/api/deps.py

from fastapi import Depends, Request
from sqlalchemy.engine import Engine

from billing_api.db.engine import get_engine
from billing_api.db.store import Store
from billing_api.gateways.base import ReturnContext


def get_store(engine: Engine = Depends(get_engine)) -> Store:
    return Store(engine)


def get_return_context(request: Request) -> ReturnContext:
    return ReturnContext(scheme=request.url.scheme, host=request.url.netloc)
