"""
Key Management API Routes

Register, list and delete upstream keys, and browse their usage counters.
"""
import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from sqlalchemy.exc import IntegrityError

from keypool.core.key_store import KeyStore, mask_key
from keypool.models.api_key import ApiKeyCreate, ApiKeyRead, ApiKeyUsageRead

logger = logging.getLogger(__name__)

router = APIRouter()

MIN_KEY_LENGTH = 10


def get_store(request: Request) -> KeyStore:
    return request.app.state.store


@router.post("", response_model=ApiKeyRead, status_code=201)
async def create_key(key_data: ApiKeyCreate, request: Request):
    api_key = key_data.api_key
    if not api_key.strip():
        raise HTTPException(status_code=400, detail='Invalid request body. "api_key" (string) is required.')

    api_key = api_key.strip()
    if len(api_key) < MIN_KEY_LENGTH:
        raise HTTPException(status_code=400, detail=f"API key must be at least {MIN_KEY_LENGTH} characters long.")

    try:
        return await asyncio.to_thread(get_store(request).create_key, api_key)
    except IntegrityError:
        raise HTTPException(status_code=409, detail="API key already exists.")
    except Exception as e:
        logger.error(f"Error creating API key {mask_key(api_key)}: {e}")
        raise HTTPException(status_code=500, detail="Internal Server Error creating API key")


@router.get("", response_model=list[ApiKeyRead])
def list_keys(request: Request):
    return get_store(request).get_all_keys()


# Registered before /{api_key} so "usage" is not taken for a key
@router.get("/usage", response_model=list[ApiKeyUsageRead])
def list_all_usage(request: Request):
    return get_store(request).get_all_usage()


@router.get("/{api_key}", response_model=ApiKeyRead)
def get_key(api_key: str, request: Request):
    key = get_store(request).get_key(api_key)
    if not key:
        raise HTTPException(status_code=404, detail="API key not found.")
    return key


@router.delete("/{api_key}", response_model=ApiKeyRead)
def delete_key(api_key: str, request: Request):
    deleted = get_store(request).delete_key(api_key)
    if not deleted:
        raise HTTPException(status_code=404, detail="API key not found.")
    return deleted


@router.get("/{api_key}/usage", response_model=list[ApiKeyUsageRead])
def get_key_usage(api_key: str, request: Request, model: Optional[str] = None):
    store = get_store(request)
    if not store.get_key(api_key):
        raise HTTPException(status_code=404, detail="API key not found.")
    return store.get_key_usage(api_key, model)
