"""
HTTP routes for the catalog API.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from shopit.auth import AuthService
from shopit.dependencies import get_auth_service, get_lifecycle
from shopit.errors import ValidationError
from shopit.lifecycle import ImageLifecycleManager, present
from shopit.schemas import (
    AddProductRequest,
    LoginRequest,
    MessageResponse,
    ProductResponse,
    ProductSavedResponse,
    ProductUpdatedResponse,
    RemoveProductRequest,
    SignupRequest,
    TokenResponse,
    UpdateProductRequest,
    UploadResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

NEW_COLLECTION_SLICE = (1, 8)
POPULAR_SLICE = (1, 3)


def _read_upload(upload: Optional[UploadFile]) -> tuple[bytes, str]:
    if upload is None:
        logger.info("No file received")
        raise ValidationError("No file uploaded")
    data = upload.file.read()
    if not data:
        raise ValidationError("No file uploaded")
    return data, upload.filename or "image"


@router.get("/")
def read_root():
    return {"message": "Shop API is running"}


@router.post("/upload", response_model=UploadResponse)
def upload_image(
    product: Optional[UploadFile] = File(None),
    lifecycle: ImageLifecycleManager = Depends(get_lifecycle),
):
    """First leg of product creation: store the image, return its URL."""
    data, filename = _read_upload(product)
    result = lifecycle.upload_image(data, filename)
    return UploadResponse(image_url=result.remote_url, public_id=result.public_id)


@router.post("/addproduct", response_model=ProductSavedResponse)
def add_product(
    payload: AddProductRequest,
    lifecycle: ImageLifecycleManager = Depends(get_lifecycle),
):
    product = lifecycle.create_product(payload.model_dump())
    return ProductSavedResponse(product=present(product), name=product.name)


@router.post("/addproductwithimage", response_model=ProductSavedResponse)
def add_product_with_image(
    name: str = Form(...),
    category: str = Form(...),
    new_price: float = Form(...),
    old_price: Optional[float] = Form(None),
    available: Optional[bool] = Form(None),
    features: Optional[list[str]] = Form(None),
    product: Optional[UploadFile] = File(None),
    lifecycle: ImageLifecycleManager = Depends(get_lifecycle),
):
    data, filename = _read_upload(product)
    fields = {
        "name": name,
        "category": category,
        "new_price": new_price,
        "old_price": old_price,
        "available": available,
        "features": features or [],
    }
    created = lifecycle.create_with_image(data, filename, fields)
    return ProductSavedResponse(product=present(created), name=created.name)


@router.post("/updateproduct", response_model=ProductUpdatedResponse)
def update_product(
    payload: UpdateProductRequest,
    lifecycle: ImageLifecycleManager = Depends(get_lifecycle),
):
    changes = payload.model_dump(exclude_unset=True, exclude={"id"})
    changes = {key: value for key, value in changes.items() if value is not None}
    if not changes:
        raise ValidationError("No product fields to update.")
    updated = lifecycle.update_product(payload.id, changes)
    return ProductUpdatedResponse(product=present(updated))


@router.post("/replaceimage", response_model=ProductUpdatedResponse)
def replace_image(
    product_id: int = Form(..., alias="id"),
    product: Optional[UploadFile] = File(None),
    lifecycle: ImageLifecycleManager = Depends(get_lifecycle),
):
    data, filename = _read_upload(product)
    updated = lifecycle.replace_image(product_id, data, filename)
    return ProductUpdatedResponse(product=present(updated))


@router.post("/removeproduct", response_model=MessageResponse)
def remove_product(
    payload: RemoveProductRequest,
    lifecycle: ImageLifecycleManager = Depends(get_lifecycle),
):
    if not payload.id:
        raise ValidationError("Product ID is required.")
    lifecycle.delete_product(payload.id)
    return MessageResponse(message="Product and image removed successfully.")


@router.get("/allproducts", response_model=list[ProductResponse])
def all_products(lifecycle: ImageLifecycleManager = Depends(get_lifecycle)):
    return lifecycle.list_products()


@router.get("/newcollections", response_model=list[ProductResponse])
def new_collections(lifecycle: ImageLifecycleManager = Depends(get_lifecycle)):
    skip, limit = NEW_COLLECTION_SLICE
    products = lifecycle.list_page(skip, limit)
    logger.info("New collection fetched")
    return products


@router.get("/popular", response_model=list[ProductResponse])
def popular(lifecycle: ImageLifecycleManager = Depends(get_lifecycle)):
    skip, limit = POPULAR_SLICE
    products = lifecycle.list_page(skip, limit)
    logger.info("Popular products fetched")
    return products


@router.post("/signup", response_model=TokenResponse)
def signup(
    payload: SignupRequest, auth: AuthService = Depends(get_auth_service)
):
    token = auth.signup(payload.name, payload.email, payload.password)
    return TokenResponse(token=token)


@router.post("/login", response_model=TokenResponse)
def login(payload: LoginRequest, auth: AuthService = Depends(get_auth_service)):
    token = auth.login(payload.email, payload.password)
    return TokenResponse(token=token)
