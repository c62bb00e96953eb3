"""Key lifecycle endpoints.

- GET    /keys              — list all keys
- POST   /keys              — add one key
- DELETE /keys              — delete one key
- POST   /keys/disable      — disable one key
- POST   /keys/reactivate   — reactivate one key
- POST   /keys/batch-add    — add many keys, continue on error
- POST   /keys/batch-remove — delete many keys, continue on error
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from keypool.models.keys import BatchKeysRequest, DisableKeyRequest, KeyValueRequest
from keypool.models.responses import ok

logger = logging.getLogger(__name__)

_DEFAULT_DISABLE_REASON = "Manually disabled by user"


def create_keys_router(*, store: Any = None, batch_actions: Any = None) -> APIRouter:
    """Factory that creates the keys router with injected dependencies.

    Every mutation that succeeds is persisted before responding.
    """

    keys_router = APIRouter(prefix="/keys", tags=["keys"])

    @keys_router.get("")
    async def list_keys() -> dict:
        keys = store.list()
        return ok([key.to_dict() for key in keys], meta={"count": len(keys)})

    @keys_router.post("", status_code=201)
    async def add_key(body: KeyValueRequest) -> JSONResponse:
        key = store.add(body.value)
        store.save_state()
        return JSONResponse(status_code=201, content=ok(key.to_dict()))

    @keys_router.delete("")
    async def delete_key(body: KeyValueRequest) -> dict:
        store.delete(body.value)
        store.save_state()
        return ok({"value": body.value.strip(), "deleted": True})

    @keys_router.post("/disable")
    async def disable_key(body: DisableKeyRequest) -> dict:
        key = store.disable(body.value, body.reason or _DEFAULT_DISABLE_REASON)
        store.save_state()
        return ok(key.to_dict())

    @keys_router.post("/reactivate")
    async def reactivate_key(body: KeyValueRequest) -> dict:
        key = store.reactivate(body.value)
        store.save_state()
        return ok(key.to_dict())

    @keys_router.post("/batch-add")
    async def batch_add(body: BatchKeysRequest) -> dict:
        outcome = batch_actions.batch_add(body.keys)
        if outcome.succeeded_count:
            store.save_state()
        return ok(outcome.to_response())

    @keys_router.post("/batch-remove")
    async def batch_remove(body: BatchKeysRequest) -> dict:
        outcome = batch_actions.batch_remove(body.keys)
        if outcome.succeeded_count:
            store.save_state()
        return ok(outcome.to_response())

    return keys_router
