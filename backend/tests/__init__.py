"""
Pytest test suite for the Orders Service backend.

Test categories:
- Unit tests: OrderService against in-memory SQLite with fake catalog/payment clients
- Client tests: RpcClient retry and error wrapping over httpx.MockTransport
- Integration tests: Full FastAPI app through httpx.ASGITransport
"""
