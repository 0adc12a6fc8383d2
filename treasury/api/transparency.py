"""Transparency API: activity feed, treasury state and metrics for the public dashboard.

Read-only. Nothing here can trigger a tick or touch the wallet.
"""

from fastapi import APIRouter, Depends, Query

from treasury.api.deps import get_activity_log, get_state_store
from treasury.config import settings
from treasury.services.activity_log import ActivitySink
from treasury.services.metrics import build_metrics_report, load_metrics
from treasury.services.state import load_state
from treasury.services.store import StateStore

router = APIRouter(prefix="/api", tags=["treasury"])


@router.get("/actions")
def recent_actions(
    limit: int = Query(default=50, ge=1, le=500),
    activity_log: ActivitySink = Depends(get_activity_log),
):
    """Newest activity log entries first."""
    return [entry.to_dict() for entry in activity_log.recent(limit)]


@router.get("/treasury/state")
def treasury_state(store: StateStore = Depends(get_state_store)):
    state = load_state(store)
    data = state.to_dict()
    # History arrays are internal indicator inputs
    data.pop("price_history", None)
    data.pop("volume_history", None)
    data["burn_threshold"] = settings.min_tokens_to_burn
    data["support_levels"] = [
        {
            "id": level.level_id,
            "drop_percent": level.drop_percent,
            "buy_amount_sol": level.buy_amount_sol,
            "bought": level.level_id in state.support_levels_bought,
        }
        for level in settings.support_levels
    ]
    return data


@router.get("/treasury/metrics")
def treasury_metrics(store: StateStore = Depends(get_state_store)):
    return build_metrics_report(load_state(store), load_metrics(store))
