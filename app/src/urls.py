"""
API Endpoint URL Constants

This module defines the URL paths used throughout the application.

These URLs are relative paths and are prefixed by the mount point of the
audience application (`/admin`, `/client`, `/provider` or `/public`).
"""

# -------------------------------
# Account
# -------------------------------
URL_ACCOUNT = "/account"
URL_TOKEN = "/account/token"
URL_PAYMENT_METHOD = "/account/payment_method"
URL_NOTIFICATION = "/account/notification"

# -------------------------------
# Fleet
# -------------------------------
URL_VEHICLE = "/vehicle"
URL_OPERATOR = "/operator"

# -------------------------------
# Order
# -------------------------------
URL_ORDER = "/order"
URL_ORDER_ASSIGNMENT = "/order/assignment"
URL_PAYMENT = "/order/payment"

# -------------------------------
# Reporting
# -------------------------------
URL_ANALYTICS = "/analytics"
