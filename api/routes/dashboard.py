"""
api/routes/dashboard.py -- Portfolio summary for the authenticated account.

Returns a single payload suitable for driving dashboard widgets:
  - number of assets
  - total value (sum of quantity * price)
  - count and value per asset type

Read-only aggregate route -- no mutations here.
"""

from fastapi import APIRouter, Depends, Request

from api.limiter import limiter
from api.models import DashboardResponse
from assets.store import AssetStore
from auth.dependencies import get_current_account_id

# Auth policy:
# - GET /dashboard: requires auth -- figures are scoped to the token's account
router = APIRouter()


@router.get("/dashboard", response_model=DashboardResponse)
@limiter.limit("60/minute")
def get_dashboard(request: Request, account_id: int = Depends(get_current_account_id)) -> DashboardResponse:
    """Return aggregated portfolio figures for the caller (single GROUP BY query)."""
    store: AssetStore = request.app.state.asset_store
    return DashboardResponse(**store.get_portfolio_summary(account_id))
