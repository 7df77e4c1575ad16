import json
import logging
import math
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError
from pymongo import ReturnDocument
from pymongo.database import Database
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import Settings
from database import connect, create_document, get_documents, object_id, ping, to_public_doc
from notifications import build_mailer, contact_html, deliver_quietly, order_confirmation_html, order_notification_html
from schemas import CartItem, ContactMessage, Order, Product, StatusUpdate, cart_total, parse_options
from storage import LocalAssetStore, StoredAsset, UnsupportedUpload, build_asset_store, delete_asset_quietly, has_file

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------
# Dependencies
# ---------------------------
def get_db(request: Request) -> Database:
    db = request.app.state.db
    if db is None:
        raise HTTPException(500, "Database unavailable")
    return db


def get_assets(request: Request):
    return request.app.state.assets


def get_mailer(request: Request):
    return request.app.state.mailer


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


# ---------------------------
# Utility
# ---------------------------
def find_or_404(db: Database, collection: str, id_str: str, label: str) -> dict:
    oid = object_id(id_str)
    doc = db[collection].find_one({"_id": oid}) if oid else None
    if not doc:
        raise HTTPException(404, f"{label} not found")
    return doc


def parse_number(raw: Optional[str], field: str) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise HTTPException(400, f"{field} must be a number")
    if not math.isfinite(value):
        raise HTTPException(400, f"{field} must be a number")
    if value < 0:
        raise HTTPException(400, f"{field} cannot be negative")
    return value


def parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in ("true", "1", "yes", "on"):
        return True
    if value in ("false", "0", "no", "off"):
        return False
    raise HTTPException(400, "available must be true or false")


def parse_cart(raw: Optional[str]) -> List[CartItem]:
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except ValueError:
        raise HTTPException(400, "Cart must be valid JSON")
    if not isinstance(data, list):
        raise HTTPException(400, "Cart must be a list of items")
    items = []
    for index, item in enumerate(data):
        try:
            items.append(CartItem.model_validate(item))
        except ValidationError:
            raise HTTPException(400, f"Invalid cart item at position {index}")
    return items


def store_upload(assets, upload: Optional[UploadFile], fieldname: str) -> Optional[StoredAsset]:
    if not has_file(upload):
        return None
    try:
        return assets.save(upload, fieldname)
    except UnsupportedUpload as exc:
        raise HTTPException(400, str(exc))


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------
# Routes
# ---------------------------
@router.get("/")
def read_root():
    return {"brand": "Cloud 9 Pastries", "message": "Storefront API running"}


# Orders
@router.get("/api/orders")
def list_orders(db: Database = Depends(get_db)):
    orders = get_documents(db, "order", {}, sort=[("createdAt", -1)])
    return {"success": True, "orders": [to_public_doc(o) for o in orders]}


@router.get("/api/orders/{order_id}")
def get_order(order_id: str, db: Database = Depends(get_db)):
    order = find_or_404(db, "order", order_id, "Order")
    return {"success": True, "order": to_public_doc(order)}


@router.delete("/api/orders/{order_id}")
def delete_order(
    order_id: str,
    background_tasks: BackgroundTasks,
    db: Database = Depends(get_db),
    assets=Depends(get_assets),
):
    oid = object_id(order_id)
    order = db["order"].find_one_and_delete({"_id": oid}) if oid else None
    if not order:
        raise HTTPException(404, "Order not found")
    if order.get("screenshotPublicId"):
        background_tasks.add_task(delete_asset_quietly, assets, order["screenshotPublicId"])
    return {"success": True, "message": "Order deleted"}


@router.put("/api/orders/{order_id}/status")
def update_order_status(order_id: str, payload: StatusUpdate, db: Database = Depends(get_db)):
    oid = object_id(order_id)
    if oid is None:
        raise HTTPException(404, "Order not found")
    res = db["order"].update_one({"_id": oid}, {"$set": {"status": payload.status, "updatedAt": _now()}})
    if res.matched_count == 0:
        raise HTTPException(404, "Order not found")
    return {"success": True, "status": payload.status}


@router.post("/api/place-order")
def place_order(
    background_tasks: BackgroundTasks,
    full_name: str = Form(..., alias="fullName"),
    email: str = Form(...),
    phone: str = Form(""),
    address: str = Form(""),
    landmark: str = Form(""),
    city: str = Form(""),
    pincode: str = Form(""),
    payment_method: str = Form("", alias="paymentMethod"),
    cart: Optional[str] = Form(None),
    total: str = Form(...),
    screenshot: Optional[UploadFile] = File(None),
    db: Database = Depends(get_db),
    assets=Depends(get_assets),
    mailer=Depends(get_mailer),
    settings: Settings = Depends(get_settings),
):
    items = parse_cart(cart)
    total_value = parse_number(total, "total")
    if items and cart_total(items) != round(total_value, 2):
        # Client total is stored as submitted; mismatches are only reported.
        logger.warning("Order total %.2f differs from cart sum %.2f", total_value, cart_total(items))

    asset = store_upload(assets, screenshot, "screenshot")
    order = Order(
        full_name=full_name,
        email=email,
        phone=phone,
        address=address,
        landmark=landmark,
        city=city,
        pincode=pincode,
        payment_method=payment_method,
        cart=items,
        total=total_value,
        screenshot_url=asset.url if asset else None,
        screenshot_public_id=asset.handle if asset else None,
    )
    order_id = create_document(db, "order", order)
    logger.info("Order %s placed by %s (total %.2f)", order_id, email, total_value)

    summary = order.model_dump(by_alias=True)
    background_tasks.add_task(
        deliver_quietly,
        mailer,
        [email],
        f"Order Confirmation - {settings.sender_name}",
        order_confirmation_html(summary),
    )
    background_tasks.add_task(
        deliver_quietly,
        mailer,
        [settings.admin_email],
        f"New Order Received - {full_name}",
        order_notification_html(summary, order_id),
    )
    return {"success": True, "orderId": order_id}


# Products
@router.get("/api/products")
def list_products(db: Database = Depends(get_db)):
    products = get_documents(db, "product", {}, sort=[("createdAt", -1)])
    return {"success": True, "products": [to_public_doc(p) for p in products]}


@router.get("/api/products/{product_id}")
def get_product(product_id: str, db: Database = Depends(get_db)):
    product = find_or_404(db, "product", product_id, "Product")
    return {"success": True, "product": to_public_doc(product)}


@router.post("/api/products")
def create_product(
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    options: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    db: Database = Depends(get_db),
    assets=Depends(get_assets),
):
    if not (name and name.strip()) or not (price and price.strip()):
        raise HTTPException(400, "Name & price required")
    price_value = parse_number(price, "price")

    asset = store_upload(assets, image, "image")
    product = Product(
        name=name.strip(),
        description=description or "",
        price=price_value,
        category=category or "",
        options=parse_options(options),
        image_url=asset.url if asset else None,
        image_public_id=asset.handle if asset else None,
    )
    product_id = create_document(db, "product", product)
    created = db["product"].find_one({"_id": object_id(product_id)})
    return {"success": True, "product": to_public_doc(created)}


@router.put("/api/products/{product_id}")
def update_product(
    product_id: str,
    background_tasks: BackgroundTasks,
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    options: Optional[str] = Form(None),
    available: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    db: Database = Depends(get_db),
    assets=Depends(get_assets),
):
    old = find_or_404(db, "product", product_id, "Product")

    update = {}
    if name is not None:
        if not name.strip():
            raise HTTPException(400, "Name cannot be empty")
        update["name"] = name.strip()
    if description is not None:
        update["description"] = description
    if price is not None:
        update["price"] = parse_number(price, "price")
    if category is not None:
        update["category"] = category
    if options is not None:
        update["options"] = parse_options(options)
    if available is not None:
        update["available"] = parse_bool(available)

    asset = store_upload(assets, image, "image")
    if asset:
        update["imageUrl"] = asset.url
        update["imagePublicId"] = asset.handle
        if old.get("imagePublicId"):
            background_tasks.add_task(delete_asset_quietly, assets, old["imagePublicId"])

    update["updatedAt"] = _now()
    updated = db["product"].find_one_and_update(
        {"_id": old["_id"]}, {"$set": update}, return_document=ReturnDocument.AFTER
    )
    if not updated:
        # Background tasks are dropped with an error response, so clean up inline.
        delete_asset_quietly(assets, asset.handle if asset else None)
        raise HTTPException(404, "Product not found")
    return {"success": True, "product": to_public_doc(updated)}


@router.put("/api/products/{product_id}/toggle-hold")
def toggle_product_hold(product_id: str, db: Database = Depends(get_db)):
    product = find_or_404(db, "product", product_id, "Product")
    available = not product.get("available", True)
    db["product"].update_one({"_id": product["_id"]}, {"$set": {"available": available, "updatedAt": _now()}})
    return {"success": True, "available": available}


@router.delete("/api/products/{product_id}")
def delete_product(
    product_id: str,
    background_tasks: BackgroundTasks,
    db: Database = Depends(get_db),
    assets=Depends(get_assets),
):
    oid = object_id(product_id)
    product = db["product"].find_one_and_delete({"_id": oid}) if oid else None
    if not product:
        raise HTTPException(404, "Product not found")
    if product.get("imagePublicId"):
        background_tasks.add_task(delete_asset_quietly, assets, product["imagePublicId"])
    return {"success": True}


# Contact
@router.post("/api/contact")
def contact(
    payload: ContactMessage,
    background_tasks: BackgroundTasks,
    mailer=Depends(get_mailer),
    settings: Settings = Depends(get_settings),
):
    background_tasks.add_task(
        deliver_quietly,
        mailer,
        [settings.admin_email],
        f"Contact: {payload.subject}",
        contact_html(payload.model_dump()),
    )
    return {"success": True, "message": "Message sent"}


@router.get("/test")
def test_database(request: Request):
    db = request.app.state.db
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }

    try:
        if db is not None:
            response["database"] = "✅ Available"
            response["database_name"] = db.name if hasattr(db, 'name') else "✅ Connected"
            response["connection_status"] = "Connected"
            try:
                collections = db.list_collection_names()
                response["collections"] = collections[:10]
                response["database"] = "✅ Connected & Working"
            except Exception as e:
                response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
        else:
            response["database"] = "⚠️  Available but not initialized"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:50]}"

    settings = request.app.state.settings
    response["database_url"] = "✅ Set" if settings.database_url else "❌ Not Set"
    response["database_name"] = "✅ Set" if settings.database_name else "❌ Not Set"
    return response


# ---------------------------
# App factory
# ---------------------------
def create_app(settings: Optional[Settings] = None, db=None, assets=None, mailer=None) -> FastAPI:
    settings = settings or Settings.from_env()
    app = FastAPI(title="Cloud 9 Pastries API", version="1.0.0")

    app.state.settings = settings
    app.state.db = db if db is not None else connect(settings)
    app.state.assets = assets if assets is not None else build_asset_store(settings)
    app.state.mailer = mailer if mailer is not None else build_mailer(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"success": False, "message": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": "Invalid request", "errors": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(status_code=500, content={"success": False, "message": "Internal server error"})

    @app.on_event("startup")
    def check_database():
        # Startup is never gated on the database; broken connections fail per request.
        ping(app.state.db)

    app.include_router(router)
    if isinstance(app.state.assets, LocalAssetStore):
        app.mount("/uploads", StaticFiles(directory=app.state.assets.upload_dir), name="uploads")
    return app


settings = Settings.from_env()
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app(settings)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port)
