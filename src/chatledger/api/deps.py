"""
FastAPI dependencies.

The store (and its sync engine) is created once per process by the app
lifespan and kept on `app.state`; tests override `get_store`.
"""

from fastapi import Depends, Request

from chatledger.checkpoints import CheckpointService
from chatledger.db.store import Store
from chatledger.services.search_service import SearchService
from chatledger.sync.engine import SyncEngine


def get_store(request: Request) -> Store:
    return request.app.state.store


def get_sync(store: Store = Depends(get_store)) -> SyncEngine:
    return store.sync


def get_checkpoints(store: Store = Depends(get_store)) -> CheckpointService:
    return CheckpointService(store)


def get_search(store: Store = Depends(get_store)) -> SearchService:
    return SearchService(store)
