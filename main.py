import os
from datetime import datetime, timezone
from typing import List, Optional

import structlog
from bson import ObjectId
from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from passlib.context import CryptContext
from pydantic import BaseModel

import database
from catalog import CatalogQuery, CatalogStore, Pagination, document_to_product
from errors import NotFound, ValidationError
from logging_config import configure_logging
from schemas import Customer, OrderItem, OrderStatus, Product, ProductUpdate
from settings import get_settings

logger = structlog.get_logger(__name__)

app = FastAPI(title="Al-Sahaba Store API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Password hashing
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

CATEGORIES = [
    {"id": "all", "name": {"ar": "الكل", "en": "All"}, "icon": "🏠"},
    {"id": "kitchen", "name": {"ar": "المطبخ", "en": "Kitchen"}, "icon": "🍽️"},
    {"id": "laundry", "name": {"ar": "الغسيل", "en": "Laundry"}, "icon": "👕"},
    {"id": "floor", "name": {"ar": "الأرضيات", "en": "Floors"}, "icon": "🏠"},
    {"id": "bathroom", "name": {"ar": "الحمام", "en": "Bathroom"}, "icon": "🚿"},
]


# Helpers

def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    return pwd_context.verify(password, hashed)


def get_db():
    if database.db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return database.db


def object_id(id_str: str) -> ObjectId:
    if not ObjectId.is_valid(id_str):
        raise ValidationError("Invalid ID format")
    return ObjectId(id_str)


def product_out(doc) -> dict:
    return document_to_product(doc).model_dump(mode="json", by_alias=True)


def order_out(doc) -> dict:
    d = dict(doc)
    d["id"] = str(d.pop("_id"))
    return {
        "id": d["id"],
        "items": d.get("items", []),
        "total": d.get("total"),
        "customer": d.get("customer"),
        "status": d.get("status"),
        "createdAt": d.get("created_at"),
        "updatedAt": d.get("updated_at"),
    }


def error_body(message: str) -> dict:
    return {"success": False, "message": message}


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content=error_body(exc.message))


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return JSONResponse(status_code=404, content=error_body(exc.message))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    messages = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", [])[1:])
        messages.append(f"{field}: {err.get('msg')}" if field else err.get("msg"))
    return JSONResponse(status_code=400, content=error_body(", ".join(messages) or "Invalid request"))


# Auth models
class LoginRequest(BaseModel):
    username: str
    password: str


class AuthResponse(BaseModel):
    success: bool = True
    token: str
    username: str


# Simple token mechanism: tokens are stored in the "session" collection

def create_token(admin_id: str) -> str:
    now = datetime.now(timezone.utc).timestamp()
    return f"tok_{admin_id}_{int(now)}_{os.urandom(8).hex()}"


def require_admin(authorization: Optional[str] = Header(None), db=Depends(get_db)) -> dict:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Not authorized, no token")
    token = authorization[len("Bearer "):]
    session = db["session"].find_one({"token": token})
    if not session:
        raise HTTPException(status_code=401, detail="Not authorized, token failed")
    admin = db["admin"].find_one({"_id": session["admin_id"]})
    if not admin:
        raise HTTPException(status_code=401, detail="Not authorized, token failed")
    return admin


@app.get("/")
def read_root():
    return {"message": "Al-Sahaba Store API running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    db = database.db
    if db is None:
        return response
    response["database_name"] = db.name
    try:
        response["collections"] = db.list_collection_names()[:10]
        response["database"] = "✅ Connected & Working"
        response["connection_status"] = "Connected"
    except Exception as e:
        response["database"] = f"⚠️  Connected but Error: {str(e)[:80]}"
    return response


# Auth endpoints
@app.post("/api/auth/login", response_model=AuthResponse)
def login(payload: LoginRequest, db=Depends(get_db)):
    admin = db["admin"].find_one({"username": payload.username})
    if not admin or not verify_password(payload.password, admin.get("password_hash", "")):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    token = create_token(str(admin["_id"]))
    db["session"].insert_one({"token": token, "admin_id": admin["_id"], "created_at": datetime.now(timezone.utc)})
    logger.info("Admin logged in", username=payload.username)
    return AuthResponse(token=token, username=admin["username"])


@app.get("/api/auth/me")
def me(admin=Depends(require_admin)):
    return {"success": True, "admin": {"id": str(admin["_id"]), "username": admin["username"]}}


@app.get("/api/auth/verify")
def verify(admin=Depends(require_admin)):
    return {"success": True, "valid": True}


# Products
@app.get("/api/products")
def list_products(
    category: Optional[str] = None,
    inStock: Optional[str] = None,
    search: Optional[str] = None,
    sort: Optional[str] = None,
    page: Optional[str] = "1",
    limit: Optional[str] = "12",
    lang: Optional[str] = None,
    db=Depends(get_db),
):
    query = CatalogQuery.from_params(
        category=category,
        in_stock=inStock,
        search=search,
        sort=sort,
        page=page,
        limit=limit,
        lang=lang,
        max_limit=get_settings().max_page_limit,
    )
    result = CatalogStore(db).query(query)
    return {
        "success": True,
        "count": len(result.items),
        "pagination": result.pagination.model_dump(),
        "data": [p.model_dump(mode="json", by_alias=True) for p in result.items],
    }


@app.get("/api/products/categories")
def list_categories():
    return {"success": True, "data": CATEGORIES}


@app.get("/api/products/{product_id}")
def get_product(product_id: str, db=Depends(get_db)):
    doc = db["product"].find_one({"_id": object_id(product_id)})
    if not doc:
        raise NotFound("Product not found")
    return {"success": True, "data": product_out(doc)}


def product_document(product: Product) -> dict:
    doc = product.model_dump(exclude={"id", "created_at", "updated_at"}, mode="json")
    doc["has_variants"] = bool(doc.get("variants"))
    return doc


@app.post("/api/products", status_code=201)
def create_product(payload: Product, admin=Depends(require_admin), db=Depends(get_db)):
    pid = database.create_document("product", product_document(payload))
    doc = db["product"].find_one({"_id": ObjectId(pid)})
    logger.info("Product created", product_id=pid)
    return {"success": True, "data": product_out(doc)}


@app.put("/api/products/{product_id}")
def update_product(product_id: str, payload: ProductUpdate, admin=Depends(require_admin), db=Depends(get_db)):
    _id = object_id(product_id)
    if not db["product"].find_one({"_id": _id}):
        raise NotFound("Product not found")
    updates = payload.model_dump(exclude_none=True, mode="json")
    if "variants" in updates:
        updates["has_variants"] = bool(updates["variants"])
    updates["updated_at"] = datetime.now(timezone.utc)
    db["product"].update_one({"_id": _id}, {"$set": updates})
    return {"success": True, "data": product_out(db["product"].find_one({"_id": _id}))}


@app.delete("/api/products/{product_id}")
def delete_product(product_id: str, admin=Depends(require_admin), db=Depends(get_db)):
    res = db["product"].delete_one({"_id": object_id(product_id)})
    if res.deleted_count == 0:
        raise NotFound("Product not found")
    return {"success": True, "message": "Product deleted successfully"}


@app.patch("/api/products/{product_id}/stock")
def toggle_stock(product_id: str, admin=Depends(require_admin), db=Depends(get_db)):
    _id = object_id(product_id)
    doc = db["product"].find_one({"_id": _id})
    if not doc:
        raise NotFound("Product not found")
    in_stock = not doc.get("in_stock", True)
    db["product"].update_one({"_id": _id}, {"$set": {"in_stock": in_stock, "updated_at": datetime.now(timezone.utc)}})
    return {
        "success": True,
        "data": product_out(db["product"].find_one({"_id": _id})),
        "message": "Product is now in stock" if in_stock else "Product is now out of stock",
    }


# Orders
class CustomerIn(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class CreateOrderRequest(BaseModel):
    items: List[OrderItem] = []
    total: float = 0
    customer: Optional[CustomerIn] = None


class UpdateStatusRequest(BaseModel):
    status: Optional[str] = None


@app.post("/api/orders", status_code=201)
def create_order(payload: CreateOrderRequest, db=Depends(get_db)):
    if not payload.items:
        raise ValidationError("No items in order")
    c = payload.customer
    if c is None or not (c.name or "").strip() or not (c.phone or "").strip():
        raise ValidationError("Customer name and phone are required")
    customer = Customer(name=c.name, phone=c.phone, address=c.address or None)

    doc = {
        "items": [i.model_dump() for i in payload.items],
        "total": payload.total,
        "customer": customer.model_dump(exclude_none=True),
        "status": OrderStatus.pending.value,
    }
    oid = database.create_document("order", doc)
    saved = db["order"].find_one({"_id": ObjectId(oid)})
    logger.info("Order created", order_id=oid, total=payload.total, lines=len(payload.items))
    return {
        "success": True,
        "message": "Order created successfully",
        "order": {
            "id": oid,
            "total": saved["total"],
            "status": saved["status"],
            "createdAt": saved["created_at"].isoformat(),
        },
    }


@app.get("/api/orders")
def list_orders(page: int = 1, limit: int = 20, status: Optional[str] = None, admin=Depends(require_admin), db=Depends(get_db)):
    if page < 1 or limit <= 0:
        raise ValidationError("page must be at least 1 and limit greater than 0")
    query = {"status": status} if status else {}
    cursor = db["order"].find(query).sort([("created_at", -1), ("_id", -1)]).skip((page - 1) * limit).limit(limit)
    orders = [order_out(o) for o in cursor]
    total = db["order"].count_documents(query)
    return {
        "success": True,
        "orders": orders,
        "pagination": Pagination.build(total, page, limit).model_dump(),
    }


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, admin=Depends(require_admin), db=Depends(get_db)):
    doc = db["order"].find_one({"_id": object_id(order_id)})
    if not doc:
        raise NotFound("Order not found")
    return {"success": True, "order": order_out(doc)}


@app.put("/api/orders/{order_id}")
def update_order_status(order_id: str, payload: UpdateStatusRequest, admin=Depends(require_admin), db=Depends(get_db)):
    try:
        status = OrderStatus(payload.status)
    except ValueError:
        raise ValidationError("Invalid status")
    _id = object_id(order_id)
    doc = db["order"].find_one({"_id": _id})
    if not doc:
        raise NotFound("Order not found")
    current = OrderStatus(doc.get("status", OrderStatus.pending.value))
    if current == status:
        return {"success": True, "message": "Order status unchanged", "order": order_out(doc)}
    if current.is_terminal:
        raise ValidationError(f"Order is already {current.value}")
    # only a pending order may move on
    res = db["order"].update_one(
        {"_id": _id, "status": OrderStatus.pending.value},
        {"$set": {"status": status.value, "updated_at": datetime.now(timezone.utc)}},
    )
    if res.matched_count == 0:
        raise ValidationError("Order is no longer pending")
    logger.info("Order status updated", order_id=order_id, status=status.value)
    return {"success": True, "message": "Order status updated", "order": order_out(db["order"].find_one({"_id": _id}))}


if __name__ == "__main__":
    import uvicorn
    configure_logging()
    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)
