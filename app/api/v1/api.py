from fastapi import APIRouter, Depends
from app.api.v1.endpoints import auth, attribute, product, variant, cart, storefront, webhooks
from app.api import deps

api_router = APIRouter()

# Public routes (OAuth, storefront widget, Shopify webhooks)
api_router.include_router(auth.router, prefix="/auth", tags=["authentication"])
api_router.include_router(cart.router, prefix="/cart", tags=["cart"])
api_router.include_router(storefront.router, prefix="/storefront", tags=["storefront"])
api_router.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])

# Merchant routes (require a shop token)
api_router.include_router(
    attribute.router,
    prefix="/attributes",
    tags=["attributes"],
    dependencies=[Depends(deps.get_current_shop)]
)

api_router.include_router(
    product.router,
    prefix="/products",
    tags=["products"],
    dependencies=[Depends(deps.get_current_shop)]
)

api_router.include_router(
    variant.router,
    prefix="/variants",
    tags=["variants"],
    dependencies=[Depends(deps.get_current_shop)]
)
