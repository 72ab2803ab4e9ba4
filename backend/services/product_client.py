"""
Product validation capability — the order core's view of the catalog service.
"""
import logging
from typing import Protocol, Sequence

from pydantic import ValidationError as PydanticValidationError

from domain.constants import VALIDATE_PRODUCTS_PATTERN
from domain.errors import DependencyError
from models import ProductRecord
from services.rpc_client import RpcClient

logger = logging.getLogger(__name__)


class ProductValidator(Protocol):
    async def validate_products(self, product_ids: Sequence[str]) -> list[ProductRecord]:
        """Return one record per known id; unknown ids are simply absent."""
        ...


class RpcProductValidator:
    """ProductValidator backed by the catalog service's 'validate_products' handler."""

    def __init__(self, rpc: RpcClient):
        self.rpc = rpc

    async def validate_products(self, product_ids: Sequence[str]) -> list[ProductRecord]:
        reply = await self.rpc.send(VALIDATE_PRODUCTS_PATTERN, list(product_ids))

        if not isinstance(reply, list):
            raise DependencyError(
                "Catalog returned an unexpected reply to validate_products",
                service=self.rpc.service_name,
                details={"reply_type": type(reply).__name__},
            )

        try:
            return [ProductRecord.model_validate(record) for record in reply]
        except PydanticValidationError as e:
            logger.error(f"Malformed product record from catalog: {e}")
            raise DependencyError(
                "Catalog returned a malformed product record",
                service=self.rpc.service_name,
                cause=e,
            ) from e
