"""Cache-aside product lookups."""

from collections.abc import Awaitable, Callable

from pydantic import BaseModel

from embedkv.caching import StoreCache
from embedkv.observability import get_logger

logger = get_logger(__name__)


class Product(BaseModel):
    id: str | None = None
    name: str
    price: int
    ttl: int | None = None


class ProductService:
    """Looks products up through a named cache.

    Misses go to ``loader``, whose result is cached under the product id.
    The default loader builds a placeholder product, standing in for a
    database read.
    """

    def __init__(
        self,
        cache: StoreCache,
        loader: Callable[[str], Awaitable[Product]] | None = None,
    ) -> None:
        self.cache = cache
        self._loader = loader or self._load_product
        self.loads = 0

    async def _load_product(self, id: str) -> Product:
        return Product(id=id, name=f"Sample {id}", price=100)

    async def get_product(self, id: str) -> Product:
        async def load() -> dict:
            logger.info("get product", context={"product_id": id})
            self.loads += 1
            product = await self._loader(id)
            return product.model_dump(mode="json")

        data = await self.cache.get_or_compute(id, load)
        return Product.model_validate(data)

    async def save(self, product: Product) -> Product:
        if product.id is None:
            raise ValueError("Product id is required")
        await self.cache.put(product.id, product.model_dump(mode="json"))
        return product

    async def remove(self, id: str) -> bool:
        return await self.cache.evict(id)
