"""
api/routes/assets.py -- Portfolio asset CRUD for the authenticated account.

Routes:
  GET    /assets              -- list the caller's assets
  POST   /assets              -- add an asset
  GET    /assets/{asset_id}   -- one asset
  PUT    /assets/{asset_id}   -- partial update (omitted fields unchanged)
  DELETE /assets/{asset_id}   -- remove an asset

Identity: every handler receives only the account id decoded from the bearer
token (get_current_account_id). It is passed to AssetStore on every call, and
the store filters by it, so another account's asset id yields 404 -- never a
read, update or delete of their row.
"""

from fastapi import APIRouter, Depends, HTTPException, Request

from api.limiter import limiter
from api.models import AssetCreate, AssetResponse, AssetUpdate, ErrorDetail
from assets.models import Asset
from assets.store import AssetStore
from auth.dependencies import get_current_account_id

# Auth policy: every route requires a valid bearer token.
router = APIRouter()


def _to_response(asset: Asset) -> AssetResponse:
    return AssetResponse(
        id=asset.id,
        type=asset.type,
        name=asset.name,
        quantity=asset.quantity,
        price=asset.price,
        value=asset.value,
        created_at=asset.created_at,
        updated_at=asset.updated_at,
    )


def _not_found(asset_id: int) -> HTTPException:
    return HTTPException(
        status_code=404,
        detail=ErrorDetail(code="asset_not_found", message=f"Asset {asset_id} not found.").model_dump(),
    )


@router.get("/assets", response_model=list[AssetResponse])
@limiter.limit("60/minute")
def list_assets(request: Request, account_id: int = Depends(get_current_account_id)) -> list[AssetResponse]:
    """Return the caller's assets, oldest first."""
    store: AssetStore = request.app.state.asset_store
    return [_to_response(a) for a in store.list_assets(account_id)]


@router.post("/assets", response_model=AssetResponse, status_code=201)
@limiter.limit("30/minute")
def create_asset(
    request: Request,
    body: AssetCreate,
    account_id: int = Depends(get_current_account_id),
) -> AssetResponse:
    """Add an asset owned by the caller."""
    store: AssetStore = request.app.state.asset_store
    asset_id = store.create_asset(
        Asset(user_id=account_id, type=body.type, name=body.name, quantity=body.quantity, price=body.price)
    )
    asset = store.get_asset(asset_id, account_id)
    if asset is None:
        raise _not_found(asset_id)
    return _to_response(asset)


@router.get("/assets/{asset_id}", response_model=AssetResponse)
@limiter.limit("60/minute")
def get_asset(request: Request, asset_id: int, account_id: int = Depends(get_current_account_id)) -> AssetResponse:
    store: AssetStore = request.app.state.asset_store
    asset = store.get_asset(asset_id, account_id)
    if asset is None:
        raise _not_found(asset_id)
    return _to_response(asset)


@router.put("/assets/{asset_id}", response_model=AssetResponse)
@limiter.limit("30/minute")
def update_asset(
    request: Request,
    asset_id: int,
    body: AssetUpdate,
    account_id: int = Depends(get_current_account_id),
) -> AssetResponse:
    """Update an owned asset. Only the fields present in the body change."""
    store: AssetStore = request.app.state.asset_store
    updates = body.model_dump(exclude_none=True)
    if not store.update_asset(asset_id, account_id, **updates):
        raise _not_found(asset_id)
    asset = store.get_asset(asset_id, account_id)
    if asset is None:
        raise _not_found(asset_id)
    return _to_response(asset)


@router.delete("/assets/{asset_id}")
@limiter.limit("30/minute")
def delete_asset(request: Request, asset_id: int, account_id: int = Depends(get_current_account_id)) -> dict:
    """Delete an owned asset. A foreign or missing id is a 404 and deletes nothing."""
    store: AssetStore = request.app.state.asset_store
    if not store.delete_asset(asset_id, account_id):
        raise _not_found(asset_id)
    return {"message": "Asset deleted successfully."}
