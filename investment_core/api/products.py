"""
Product catalog endpoints
"""

from fastapi import APIRouter, Depends, status

from .deps import get_system
from .schemas import CreateProductRequest, UpdateProductRequest, product_view
from ..system import InvestmentSystem


router = APIRouter()


@router.get("")
async def list_products(include_inactive: bool = False, system: InvestmentSystem = Depends(get_system)):
    products = system.products.list_products(include_inactive=include_inactive)
    return {"products": [product_view(p) for p in products]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_product(
    request: CreateProductRequest,
    system: InvestmentSystem = Depends(get_system)
):
    product = system.products.create_product(
        name=request.name,
        amount=request.amount,
        duration_days=request.duration_days,
        growth_rate=request.growth_rate,
        risk=request.risk,
        description=request.description,
    )
    return product_view(product)


@router.get("/{product_id}")
async def get_product(product_id: str, system: InvestmentSystem = Depends(get_system)):
    return product_view(system.products.get_product(product_id))


@router.patch("/{product_id}")
async def update_product(
    product_id: str,
    request: UpdateProductRequest,
    system: InvestmentSystem = Depends(get_system)
):
    """Update product terms; existing investments keep theirs"""
    changes = request.model_dump(exclude_none=True)
    return product_view(system.products.update_product(product_id, **changes))


@router.post("/{product_id}/deactivate")
async def deactivate_product(product_id: str, system: InvestmentSystem = Depends(get_system)):
    return product_view(system.products.deactivate_product(product_id))
