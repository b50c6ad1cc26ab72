"""API v1 routes"""
from fastapi import APIRouter
from app.api.v1 import subscription, notifications, notification_preferences

api_router = APIRouter()

api_router.include_router(subscription.router)
api_router.include_router(notifications.router)
api_router.include_router(notification_preferences.router)
