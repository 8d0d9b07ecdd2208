from app.core.security import compute_signature
from .mock_catalog import MockCatalogClient, make_variant


class FakeClock:
    """Monotonic clock the tests move by hand"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def sign_body(body: bytes, secret: str = "test_secret") -> str:
    """Signature Shopify would send for ``body``"""
    return compute_signature(body, secret)
