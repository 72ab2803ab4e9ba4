"""
Domain constants used across services/routers.
"""

# Request/reply patterns understood by the remote services
VALIDATE_PRODUCTS_PATTERN = "validate_products"
CREATE_PAYMENT_SESSION_PATTERN = "create.payment.session"

# Header carrying the HMAC-SHA256 signature of a paid-order notification body
PAYMENT_SIGNATURE_HEADER = "X-Payment-Signature"
