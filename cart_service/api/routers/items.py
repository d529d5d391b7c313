# cart_service/api/routers/items.py
import json
from typing import List

from fastapi import APIRouter, Depends, Query

from cart_service.api.deps import get_cart_cache, get_item_service
from cart_service.api.routers.carts import changed
from cart_service.domain.cart import CartItemStatus
from cart_service.domain.schemas import AddItemIn, CartItemOut, CartOut, UpdateItemIn
from cart_service.services.cart_cache import CartCache
from cart_service.services.item_service import ItemService

router = APIRouter(tags=["items"])


def _metadata(value: dict | None) -> str | None:
    return None if value is None else json.dumps(value)


@router.post("/carts/{cart_id}/items", response_model=CartOut)
def add_item(
    cart_id: str,
    payload: AddItemIn,
    svc: ItemService = Depends(get_item_service),
    cache: CartCache | None = Depends(get_cart_cache),
):
    cart = svc.add_item_to_cart(
        cart_id,
        payload.product_id,
        payload.quantity,
        price_override=payload.unit_price_override,
        special_instructions=payload.special_instructions,
        added_from=payload.added_from,
        metadata=_metadata(payload.metadata),
    )
    return changed(cart, cache)


@router.get("/carts/{cart_id}/items", response_model=List[CartItemOut])
def list_items(
    cart_id: str,
    status: CartItemStatus | None = Query(None),
    svc: ItemService = Depends(get_item_service),
):
    return [CartItemOut.model_validate(i) for i in svc.list_items(cart_id, status)]


@router.get("/carts/{cart_id}/items/saved", response_model=List[CartItemOut])
def list_saved_items(cart_id: str, svc: ItemService = Depends(get_item_service)):
    return [CartItemOut.model_validate(i) for i in svc.list_items(cart_id, CartItemStatus.SAVED_FOR_LATER)]


@router.get("/items/{item_id}", response_model=CartItemOut)
def get_item(item_id: str, svc: ItemService = Depends(get_item_service)):
    return CartItemOut.model_validate(svc.get_item(item_id))


@router.put("/items/{item_id}", response_model=CartOut)
def update_item(
    item_id: str,
    payload: UpdateItemIn,
    svc: ItemService = Depends(get_item_service),
    cache: CartCache | None = Depends(get_cart_cache),
):
    cart = svc.update_item(
        item_id,
        payload.quantity,
        special_instructions=payload.special_instructions,
        metadata=_metadata(payload.metadata),
    )
    return changed(cart, cache)


@router.delete("/items/{item_id}", response_model=CartOut)
def remove_item(
    item_id: str,
    svc: ItemService = Depends(get_item_service),
    cache: CartCache | None = Depends(get_cart_cache),
):
    return changed(svc.remove_item(item_id), cache)


@router.post("/items/{item_id}/save-for-later", response_model=CartOut)
def save_for_later(
    item_id: str,
    svc: ItemService = Depends(get_item_service),
    cache: CartCache | None = Depends(get_cart_cache),
):
    return changed(svc.save_for_later(item_id), cache)


@router.post("/items/{item_id}/move-to-cart", response_model=CartOut)
def move_to_cart(
    item_id: str,
    svc: ItemService = Depends(get_item_service),
    cache: CartCache | None = Depends(get_cart_cache),
):
    return changed(svc.move_to_cart(item_id), cache)
