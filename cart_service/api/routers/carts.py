# cart_service/api/routers/carts.py
from datetime import datetime
from typing import Callable, List

from fastapi import APIRouter, Depends, Query, Response

from cart_service.api.deps import (
    get_cart_cache,
    get_cart_service,
    get_checkout_service,
    get_merge_service,
    get_validation_scheduler,
    require_admin,
)
from cart_service.domain.cart import Cart, CartStatus
from cart_service.domain.schemas import (
    AttachUserIn,
    CartOut,
    CartPageOut,
    CartStatisticsOut,
    CartUpdateIn,
    CheckoutIn,
    CheckoutOut,
    CreateCartIn,
    MergeCartsIn,
)
from cart_service.services.cart_cache import CartCache
from cart_service.services.cart_service import CartService
from cart_service.services.checkout_service import CheckoutService
from cart_service.services.merge_service import MergeService
from cart_service.utils.settings import MAX_PAGE_SIZE

router = APIRouter(prefix="/carts", tags=["carts"])


def invalidate(cache: CartCache | None, *cart_ids: str) -> None:
    if cache is not None:
        cache.invalidate(*cart_ids)


def view(cart: Cart) -> CartOut:
    # Cart to dataclass, FastAPI zrobilby z niego asdict() bez pol wyliczanych
    return CartOut.model_validate(cart)


def changed(cart: Cart, cache: CartCache | None) -> CartOut:
    invalidate(cache, cart.id)
    return view(cart)


@router.post("/", response_model=CartOut)
def create_cart(
    payload: CreateCartIn,
    svc: CartService = Depends(get_cart_service),
    cache: CartCache | None = Depends(get_cart_cache),
):
    cart = svc.create_cart(payload.user_id, payload.session_id, **payload.to_details())
    return changed(cart, cache)


# --- panel administracyjny (X-User-Role: ADMIN), przed /{cart_id} ---

@router.get("/", response_model=CartPageOut, dependencies=[Depends(require_admin)])
def list_carts(
    page: int = Query(0, ge=0),
    size: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    svc: CartService = Depends(get_cart_service),
):
    carts, total = svc.list_carts(page, size)
    return CartPageOut(
        items=[view(c) for c in carts],
        page=page,
        size=size,
        total=total,
        total_pages=(total + size - 1) // size,
    )


@router.get("/statistics", response_model=CartStatisticsOut, dependencies=[Depends(require_admin)])
def get_statistics(
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    svc: CartService = Depends(get_cart_service),
):
    return CartStatisticsOut.model_validate(svc.get_statistics(start_date, end_date))


@router.get("/status/{status}", response_model=List[CartOut], dependencies=[Depends(require_admin)])
def list_carts_by_status(status: CartStatus, svc: CartService = Depends(get_cart_service)):
    return [view(c) for c in svc.list_carts_by_status(status)]


@router.get("/{cart_id}", response_model=CartOut)
def get_cart(
    cart_id: str,
    svc: CartService = Depends(get_cart_service),
    cache: CartCache | None = Depends(get_cart_cache),
    schedule_validation: Callable[[str], None] | None = Depends(get_validation_scheduler),
):
    if cache is not None:
        cached = cache.get(cart_id)
        if cached is not None:
            return Response(content=cached, media_type="application/json")

    cart = svc.get_cart(cart_id)
    body = view(cart)
    if cache is not None:
        cache.put(cart_id, body.model_dump_json())

    # ceny i stany uzgadniane w tle, odpowiedz nie czeka na product-service
    if schedule_validation is not None and cart.status in (CartStatus.ACTIVE, CartStatus.SAVED) and cart.items:
        schedule_validation(cart.id)
    return body


@router.get("/user/{user_id}", response_model=CartOut)
def get_or_create_user_cart(
    user_id: str,
    svc: CartService = Depends(get_cart_service),
    cache: CartCache | None = Depends(get_cart_cache),
):
    return changed(svc.get_or_create_for_user(user_id), cache)


@router.get("/user/{user_id}/all", response_model=List[CartOut])
def list_user_carts(user_id: str, svc: CartService = Depends(get_cart_service)):
    return [view(c) for c in svc.list_user_carts(user_id)]


@router.get("/session/{session_id}", response_model=CartOut)
def get_or_create_session_cart(
    session_id: str,
    svc: CartService = Depends(get_cart_service),
    cache: CartCache | None = Depends(get_cart_cache),
):
    return changed(svc.get_or_create_for_session(session_id), cache)


@router.patch("/{cart_id}", response_model=CartOut)
def update_cart(
    cart_id: str,
    payload: CartUpdateIn,
    svc: CartService = Depends(get_cart_service),
    cache: CartCache | None = Depends(get_cart_cache),
):
    return changed(svc.update_cart(cart_id, **payload.to_details()), cache)


@router.post("/{cart_id}/attach-user", response_model=CartOut)
def attach_user(
    cart_id: str,
    payload: AttachUserIn,
    svc: CartService = Depends(get_cart_service),
    cache: CartCache | None = Depends(get_cart_cache),
):
    return changed(svc.attach_user(cart_id, payload.user_id), cache)


@router.post("/{cart_id}/save", response_model=CartOut)
def save_cart(
    cart_id: str,
    svc: CartService = Depends(get_cart_service),
    cache: CartCache | None = Depends(get_cart_cache),
):
    return changed(svc.save_cart_for_later(cart_id), cache)


@router.post("/{cart_id}/reactivate", response_model=CartOut)
def reactivate_cart(
    cart_id: str,
    svc: CartService = Depends(get_cart_service),
    cache: CartCache | None = Depends(get_cart_cache),
):
    return changed(svc.reactivate_cart(cart_id), cache)


@router.delete("/{cart_id}/items", response_model=CartOut)
def clear_cart(
    cart_id: str,
    svc: CartService = Depends(get_cart_service),
    cache: CartCache | None = Depends(get_cart_cache),
):
    return changed(svc.clear_cart(cart_id), cache)


@router.post("/merge", response_model=CartOut)
def merge_carts(
    payload: MergeCartsIn,
    svc: MergeService = Depends(get_merge_service),
    cache: CartCache | None = Depends(get_cart_cache),
):
    cart = svc.merge_carts(
        payload.source_cart_id,
        payload.target_cart_id,
        handle_duplicates=payload.handle_duplicates,
        delete_source=payload.delete_source_cart,
    )
    invalidate(cache, payload.source_cart_id, payload.target_cart_id)
    return view(cart)


@router.post("/{cart_id}/checkout", response_model=CheckoutOut)
def checkout(
    cart_id: str,
    payload: CheckoutIn,
    svc: CheckoutService = Depends(get_checkout_service),
    cache: CartCache | None = Depends(get_cart_cache),
):
    result = svc.checkout(cart_id, payload.model_dump(mode="json"))
    invalidate(cache, cart_id)
    return CheckoutOut(cart=view(result.cart), order=result.order)
