from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.api import deps
from app.db.session import get_db
from app.schemas.webhook import WebhookDelivery
from app.services import webhooks as webhook_service

router = APIRouter()

@router.post("/orders/create")
async def orders_create(
    delivery: WebhookDelivery = Depends(deps.get_webhook_delivery),
    db: Session = Depends(get_db)
):
    """
    Decrement stock of the ordered variants. Redeliveries are ignored.
    """
    return webhook_service.apply_order_stock(db, delivery.payload, delivery.webhook_id, delivery.shop)

@router.post("/app/uninstalled")
async def app_uninstalled(
    delivery: WebhookDelivery = Depends(deps.get_webhook_delivery),
    db: Session = Depends(get_db)
):
    webhook_service.mark_uninstalled(db, delivery.payload, delivery.shop)
    return {"success": True, "message": "App uninstall processed successfully"}

@router.post("/customers/data_request")
async def customers_data_request(
    delivery: WebhookDelivery = Depends(deps.get_webhook_delivery),
    db: Session = Depends(get_db)
):
    return webhook_service.handle_gdpr(db, "customers/data_request", delivery.payload, delivery.shop)

@router.post("/customers/redact")
async def customers_redact(
    delivery: WebhookDelivery = Depends(deps.get_webhook_delivery),
    db: Session = Depends(get_db)
):
    return webhook_service.handle_gdpr(db, "customers/redact", delivery.payload, delivery.shop)

@router.post("/shop/redact")
async def shop_redact(
    delivery: WebhookDelivery = Depends(deps.get_webhook_delivery),
    db: Session = Depends(get_db)
):
    return webhook_service.handle_gdpr(db, "shop/redact", delivery.payload, delivery.shop)
