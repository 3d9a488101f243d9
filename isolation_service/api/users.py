# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""User endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel

from ..errors import NotFoundError
from ..services.user_service import UserService
from .dependencies import get_user_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


class UserRequest(BaseModel):
    username: str
    password: str
    email: str


class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    is_test: bool


class CacheEvictionResponse(BaseModel):
    evicted: int


@router.get("", response_model=list[UserResponse])
async def get_users(service: UserService = Depends(get_user_service)) -> list[dict]:
    return await service.get_users()


@router.get("/by-email", response_model=UserResponse)
async def get_user_by_email(email: str = Query(...), service: UserService = Depends(get_user_service)) -> dict:
    user = await service.get_user(email)
    if user is None:
        raise NotFoundError(f"no user with email {email}")
    return user


@router.delete("/cache", response_model=CacheEvictionResponse)
async def evict_users_cache(service: UserService = Depends(get_user_service)) -> CacheEvictionResponse:
    """Evict the users cache of the caller's traffic kind only."""
    return CacheEvictionResponse(evicted=await service.evict_all_users_cache())


@router.get("/{user_id}", response_model=UserResponse)
async def get_user_by_id(user_id: int, service: UserService = Depends(get_user_service)) -> dict:
    user = await service.get_user_by_id(user_id)
    if user is None:
        raise NotFoundError(f"user {user_id} not found")
    return user


@router.post("", response_model=UserResponse, status_code=201)
async def create_user(request: UserRequest, service: UserService = Depends(get_user_service)) -> dict:
    return await service.create_user(request.username, request.password, request.email)


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int, request: UserRequest, service: UserService = Depends(get_user_service)
) -> dict:
    user = await service.update_user(user_id, request.username, request.password, request.email)
    if user is None:
        raise NotFoundError(f"user {user_id} not found")
    return user


@router.delete("/{user_id}", status_code=204)
async def delete_user(user_id: int, service: UserService = Depends(get_user_service)) -> Response:
    if not await service.delete_user(user_id):
        raise NotFoundError(f"user {user_id} not found")
    return Response(status_code=204)
