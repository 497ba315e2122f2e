from fastapi import FastAPI
from app.api import (
    user_token,
    user_account,
    vehicle,
    operator,
    order,
    payment_method,
    payment,
    notification,
    analytics,
)
from app.src.enums import AppID


# ------------------------------------------------------
# Create separate FastAPI apps for each user domain
# ------------------------------------------------------
app_admin = FastAPI(title="Admin APP")
app_client = FastAPI(title="Client APP")
app_provider = FastAPI(title="Provider APP")
app_public = FastAPI(title="Public APP")

# Tag each app with its AppID
app_admin.state.id = AppID.ADMIN
app_client.state.id = AppID.CLIENT
app_provider.state.id = AppID.PROVIDER
app_public.state.id = AppID.PUBLIC


# ------------------------------------------------------
# Admin routers
# ------------------------------------------------------
app_admin.include_router(user_token.route_admin)
app_admin.include_router(user_account.route_admin)
app_admin.include_router(vehicle.route_admin)
app_admin.include_router(operator.route_admin)
app_admin.include_router(order.route_admin)
app_admin.include_router(payment_method.route_admin)
app_admin.include_router(payment.route_admin)
app_admin.include_router(notification.route_admin)
app_admin.include_router(analytics.route_admin)


# ------------------------------------------------------
# Client routers
# ------------------------------------------------------
app_client.include_router(user_token.route_client)
app_client.include_router(user_account.route_client)
app_client.include_router(order.route_client)
app_client.include_router(payment_method.route_client)
app_client.include_router(payment.route_client)
app_client.include_router(notification.route_client)


# ------------------------------------------------------
# Provider routers
# ------------------------------------------------------
app_provider.include_router(user_token.route_provider)
app_provider.include_router(user_account.route_provider)
app_provider.include_router(vehicle.route_provider)
app_provider.include_router(operator.route_provider)
app_provider.include_router(order.route_provider)
app_provider.include_router(payment.route_provider)
app_provider.include_router(notification.route_provider)


# ------------------------------------------------------
# Public routers
# ------------------------------------------------------
app_public.include_router(user_token.route_public)
app_public.include_router(user_account.route_public)
