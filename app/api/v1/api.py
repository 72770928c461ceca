"""
V1 API router aggregator: wires all endpoint modules together.
"""

from fastapi import APIRouter

from app.api.v1.endpoints import force_checkout, link_requests, scan, settings, stats, users

api_router = APIRouter()

# Kiosk scan, per-user history
api_router.include_router(scan.router)

# Card linking
api_router.include_router(link_requests.router)

# Forced checkout (cron + manual)
api_router.include_router(force_checkout.router)

# Stats, cache maintenance, health
api_router.include_router(stats.router)

# Cron window, call logs
api_router.include_router(settings.router)

# Reference data
api_router.include_router(users.router)
