"""
Product repository: the catalog lookups the messaging system consumes.
"""

from decimal import Decimal
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from marketplace.exceptions.base import NotFoundError
from marketplace.models.product import Product, ProductStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class ProductRepository(BaseRepository[Product]):
    """
    Repository for Product entity operations.
    """

    def __init__(self, db: AsyncSession):
        super().__init__(Product, db)

    async def create_product(
        self,
        seller_id: UUID,
        title: str,
        price: Decimal | int | str,
        *,
        category: str = "other",
        condition: str = "used",
        image_url: str | None = None,
        status: ProductStatus = ProductStatus.ACTIVE,
    ) -> Product:
        """
        Create a listing (seeding and test fixtures only).
        """
        return await self.create(
            seller_id=seller_id,
            title=title.strip(),
            price=Decimal(str(price)),
            category=category,
            condition=condition,
            image_url=image_url,
            status=status,
        )

    async def get_messageable(self, product_id: UUID) -> Product:
        """
        Return the product if buyers may open conversations about it.

        Raises:
            NotFoundError: If the product does not exist or has been deleted.
        """
        product = await self.get_by_id(product_id)
        if product is None or not product.is_messageable:
            logger.info(
                "product.not_messageable",
                extra={"product_id": str(product_id), "found": product is not None},
            )
            raise NotFoundError(f"Product with ID {product_id} not found", fields=["product_id"])
        return product
