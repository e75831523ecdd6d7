"""
API Endpoint URL Constants

This module defines the URL paths used throughout the application
for accessing the tour, booking and fleet resources.

These URLs are relative to the mount point of the role specific
application (`/admin`, `/driver`, `/owner`, `/passenger`, `/public`).
"""

# -------------------------------
# Account
# -------------------------------
URL_ACCOUNT = "/account"
URL_ACCOUNT_ROLE = "/account/role"

# -------------------------------
# Fleet
# -------------------------------
URL_ROUTE = "/route"
URL_BUS = "/bus"

# -------------------------------
# Tour
# -------------------------------
URL_TOUR = "/tour"
URL_TOUR_DETAIL = "/tour/detail"
URL_TOUR_START = "/tour/start"
URL_TOUR_CANCEL = "/tour/cancel"
URL_TOUR_ANALYTICS = "/tour/analytics"
URL_TOUR_PROGRESS = "/tour/progress"
URL_TOUR_LIVE = "/tour/live"

# -------------------------------
# Driver notification
# -------------------------------
URL_NOTIFICATION = "/notification"
URL_NOTIFICATION_READ = "/notification/read"
URL_NOTIFICATION_READ_ALL = "/notification/read/all"
URL_NOTIFICATION_UNREAD_COUNT = "/notification/unread/count"

# -------------------------------
# Booking & earnings
# -------------------------------
URL_BOOKING = "/booking"
URL_BOOKING_CANCEL = "/booking/cancel"
URL_EARNING = "/earning"

# -------------------------------
# Alert
# -------------------------------
URL_ALERT = "/alert"
