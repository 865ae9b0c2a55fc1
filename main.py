import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pymongo.database import Database
from pymongo.errors import PyMongoError
from starlette.concurrency import run_in_threadpool

from auth import (
    AccountService,
    AuthError,
    EmailTaken,
    MIN_PASSWORD_LENGTH,
    create_token,
    get_current_user,
    missing_register_field,
    public_user,
    require_admin,
    verify_password,
)
from catalog import ProductCatalog, ProductNotFound, validate_product_fields
from categories import CategoryExists, CategoryStore
from config import Settings
from database import connect, ensure_indexes, get_db, serialize_doc
from logger import get_logger, setup_logger
from orders import CartError, OrderWorkflow
from payments import GatewayError, build_gateway
from schemas import (
    CategoryRequest,
    FilterRequest,
    ForgotPasswordRequest,
    LoginRequest,
    PaymentRequest,
    ProductFields,
    ProductPhoto,
    ProfileUpdate,
    RegisterRequest,
    StatusUpdate,
)

logger = get_logger("api")


class ApiError(Exception):
    def __init__(self, status_code: int, message: str, error: Optional[Exception] = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.error = error


# Helpers

def ok(content, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=serialize_doc(content))


def failure(status_code: int, message: str, exc: Exception) -> JSONResponse:
    logger.error("%s: %s", message, exc, exc_info=exc)
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message, "error": str(exc)},
    )


def get_catalog(db: Database = Depends(get_db)) -> ProductCatalog:
    return ProductCatalog(db)


def get_categories(db: Database = Depends(get_db)) -> CategoryStore:
    return CategoryStore(db)


def get_accounts(db: Database = Depends(get_db)) -> AccountService:
    return AccountService(db)


def get_gateway(request: Request):
    gateway = request.app.state.gateway
    if gateway is None:
        try:
            gateway = build_gateway(request.app.state.settings)
        except Exception as e:
            raise ApiError(500, "Payment gateway is not configured", e)
        request.app.state.gateway = gateway
    return gateway


def get_workflow(db: Database = Depends(get_db), gateway=Depends(get_gateway)) -> OrderWorkflow:
    return OrderWorkflow(db, gateway)


def get_orders(db: Database = Depends(get_db)) -> OrderWorkflow:
    return OrderWorkflow(db)


async def read_photo(photo: Optional[UploadFile]) -> Optional[ProductPhoto]:
    # browsers post an empty part when no file was chosen
    if photo is None or not photo.filename:
        return None
    data = await photo.read()
    return ProductPhoto(data=data, content_type=photo.content_type or "application/octet-stream")


# Products
product_router = APIRouter(prefix="/api/v1/product", tags=["product"])


@product_router.post("/create-product")
async def create_product(
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    quantity: Optional[str] = Form(None),
    shipping: Optional[str] = Form(None),
    photo: Optional[UploadFile] = File(None),
    catalog: ProductCatalog = Depends(get_catalog),
    _admin: dict = Depends(require_admin),
):
    try:
        fields = ProductFields(name=name, description=description, price=price,
                               category=category, quantity=quantity, shipping=shipping)
        upload = await read_photo(photo)
        result = validate_product_fields(fields, len(upload.data) if upload else None, require_photo=True)
        if not result.ok:
            return JSONResponse(status_code=500, content={"success": False, "error": result.error.value})
        product = await run_in_threadpool(catalog.create_product, result.value, upload)
        return ok({"success": True, "message": "Product Created Successfully", "products": product}, 201)
    except Exception as e:
        return failure(500, "Error in creating product", e)


@product_router.put("/update-product/{pid}")
async def update_product(
    pid: str,
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    quantity: Optional[str] = Form(None),
    shipping: Optional[str] = Form(None),
    photo: Optional[UploadFile] = File(None),
    catalog: ProductCatalog = Depends(get_catalog),
    _admin: dict = Depends(require_admin),
):
    try:
        fields = ProductFields(name=name, description=description, price=price,
                               category=category, quantity=quantity, shipping=shipping)
        upload = await read_photo(photo)
        result = validate_product_fields(fields, len(upload.data) if upload else None, require_photo=False)
        if not result.ok:
            return JSONResponse(status_code=500, content={"success": False, "error": result.error.value})
        product = await run_in_threadpool(catalog.update_product, pid, result.value, upload)
        return ok({"success": True, "message": "Product Updated Successfully", "products": product}, 201)
    except ProductNotFound:
        return JSONResponse(status_code=404, content={"success": False, "message": "Product not found"})
    except Exception as e:
        return failure(500, "Error in Update Product", e)


@product_router.get("/get-product")
def get_products(catalog: ProductCatalog = Depends(get_catalog)):
    try:
        products = catalog.list_all()
        return ok({
            "success": True,
            "countTotal": len(products),
            "message": "All Products",
            "products": products,
        })
    except Exception as e:
        return failure(500, "Error in getting products", e)


@product_router.get("/get-product/{slug}")
def get_single_product(slug: str, catalog: ProductCatalog = Depends(get_catalog)):
    try:
        product = catalog.get_by_slug(slug)
        return ok({"success": True, "message": "Single Product Fetched", "product": product})
    except Exception as e:
        return failure(500, "Error while getting single product", e)


@product_router.get("/product-photo/{pid}")
def product_photo(pid: str, catalog: ProductCatalog = Depends(get_catalog)):
    try:
        photo = catalog.get_photo(pid)
    except ProductNotFound:
        return JSONResponse(status_code=404, content={"success": False, "message": "Product not found"})
    except Exception as e:
        return failure(500, "Error while getting photo", e)
    if photo is None:
        # stored product without photo data: no body, no content type
        return Response(status_code=204)
    data, content_type = photo
    return Response(content=data, status_code=200, headers={"Content-type": content_type})


@product_router.delete("/delete-product/{pid}")
def delete_product(pid: str, catalog: ProductCatalog = Depends(get_catalog), _admin: dict = Depends(require_admin)):
    try:
        catalog.delete_product(pid)
        return ok({"success": True, "message": "Product Deleted successfully"})
    except ProductNotFound:
        return JSONResponse(status_code=404, content={"success": False, "message": "Product not found"})
    except Exception as e:
        return failure(500, "Error while deleting product", e)


@product_router.post("/product-filters")
def product_filters(payload: FilterRequest, catalog: ProductCatalog = Depends(get_catalog)):
    try:
        products, total = catalog.filter(payload.checked, payload.radio, payload.page)
        return ok({"success": True, "products": products, "total": total})
    except Exception as e:
        return failure(400, "Error While Filtering Products", e)


@product_router.get("/product-count")
def product_count(catalog: ProductCatalog = Depends(get_catalog)):
    try:
        return ok({"success": True, "total": catalog.count()})
    except Exception as e:
        return failure(400, "Error in product count", e)


@product_router.get("/product-list")
@product_router.get("/product-list/{page}")
def product_list(page: int = 1, catalog: ProductCatalog = Depends(get_catalog)):
    try:
        return ok({"success": True, "products": catalog.list_page(page)})
    except Exception as e:
        return failure(400, "Error In Per Page Ctrl", e)


@product_router.get("/search/{keyword}")
def search_products(keyword: str, catalog: ProductCatalog = Depends(get_catalog)):
    try:
        return ok(catalog.search(keyword))
    except Exception as e:
        return failure(400, "Error In Search Product API", e)


@product_router.get("/related-product/{pid}/{cid}")
def related_products(pid: str, cid: str, catalog: ProductCatalog = Depends(get_catalog)):
    try:
        return ok({"success": True, "products": catalog.related(pid, cid)})
    except Exception as e:
        return failure(400, "error while geting related product", e)


@product_router.get("/product-category/{slug}")
def products_by_category(slug: str, catalog: ProductCatalog = Depends(get_catalog)):
    try:
        category, products = catalog.products_by_category(slug)
        return ok({"success": True, "category": category, "products": products})
    except Exception as e:
        return failure(400, "Error While Getting products", e)


# Payments
@product_router.get("/braintree/token")
def braintree_token(workflow: OrderWorkflow = Depends(get_workflow)):
    try:
        return {"clientToken": workflow.generate_client_token()}
    except GatewayError as e:
        logger.error("Client token rejected by gateway: %s", e.payload)
        return JSONResponse(status_code=500, content=e.payload)
    except Exception as e:
        return failure(500, "Error in Braintree Token", e)


@product_router.post("/braintree/payment")
def braintree_payment(
    payload: PaymentRequest,
    user: dict = Depends(get_current_user),
    workflow: OrderWorkflow = Depends(get_workflow),
):
    try:
        outcome = workflow.submit_payment(payload.nonce, payload.cart, user["_id"])
    except CartError as e:
        logger.warning("Rejected cart from %s: %s", user["_id"], e)
        return JSONResponse(status_code=400, content={"success": False, "message": str(e)})
    except Exception as e:
        return failure(500, "Error in BrainTree Payment", e)
    if not outcome.approved:
        return JSONResponse(status_code=400, content={"message": outcome.message})
    return {"ok": True}


# Categories
category_router = APIRouter(prefix="/api/v1/category", tags=["category"])


@category_router.post("/create-category")
def create_category(payload: CategoryRequest, store: CategoryStore = Depends(get_categories),
                    _admin: dict = Depends(require_admin)):
    name = (payload.name or "").strip()
    if not name:
        return JSONResponse(status_code=400, content={"message": "Name is required"})
    try:
        category = store.create(name)
        return ok({"success": True, "message": "New category created", "category": category}, 201)
    except CategoryExists:
        return ok({"success": True, "message": "Category already exists"})
    except Exception as e:
        return failure(500, "Error in category", e)


@category_router.put("/update-category/{cid}")
def update_category(cid: str, payload: CategoryRequest, store: CategoryStore = Depends(get_categories),
                    _admin: dict = Depends(require_admin)):
    name = (payload.name or "").strip()
    if not name:
        return JSONResponse(status_code=400, content={"message": "Name is required"})
    try:
        category = store.update(cid, name)
        if category is None:
            return JSONResponse(status_code=404, content={"success": False, "message": "Category not found"})
        return ok({"success": True, "message": "Category Updated Successfully", "category": category})
    except Exception as e:
        return failure(500, "Error while updating category", e)


@category_router.get("/get-category")
def list_categories(store: CategoryStore = Depends(get_categories)):
    try:
        return ok({"success": True, "message": "All Categories Listed", "category": store.list()})
    except Exception as e:
        return failure(500, "Error while getting all categories", e)


@category_router.get("/single-category/{slug}")
def single_category(slug: str, store: CategoryStore = Depends(get_categories)):
    try:
        category = store.get_by_slug(slug)
        return ok({"success": True, "message": "Get single category successfully", "category": category})
    except Exception as e:
        return failure(500, "Error while getting single category", e)


@category_router.delete("/delete-category/{cid}")
def delete_category(cid: str, store: CategoryStore = Depends(get_categories),
                    _admin: dict = Depends(require_admin)):
    try:
        if not store.delete(cid):
            return JSONResponse(status_code=404, content={"success": False, "message": "Category not found"})
        return ok({"success": True, "message": "Category deleted successfully"})
    except Exception as e:
        return failure(500, "Error while deleting category", e)


# Auth
auth_router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


@auth_router.post("/register")
def register(payload: RegisterRequest, accounts: AccountService = Depends(get_accounts)):
    missing = missing_register_field(payload)
    if missing:
        return JSONResponse(status_code=400, content={"success": False, "error": missing})
    try:
        user = accounts.register(payload)
        return ok({"success": True, "message": "User registered successfully", "user": public_user(user)}, 201)
    except EmailTaken:
        return ok({"success": False, "message": "Email already registered, please log in"})
    except Exception as e:
        return failure(500, "Error in registration", e)


@auth_router.post("/login")
def login(payload: LoginRequest, accounts: AccountService = Depends(get_accounts), db: Database = Depends(get_db)):
    if not payload.email or not payload.password:
        return JSONResponse(status_code=404, content={"success": False, "message": "Missing email or password"})
    try:
        user = accounts.find_by_email(payload.email)
        if not user:
            return JSONResponse(status_code=404, content={"success": False, "message": "Email is not registered"})
        if not verify_password(payload.password, user.get("password_hash", "")):
            return ok({"success": False, "message": "Invalid password"})
        token = create_token(db, user["_id"])
        return ok({"success": True, "message": "Login successful", "user": public_user(user), "token": token})
    except Exception as e:
        return failure(500, "Error while logging in", e)


@auth_router.post("/forgot-password")
def forgot_password(payload: ForgotPasswordRequest, accounts: AccountService = Depends(get_accounts)):
    if not payload.email:
        return JSONResponse(status_code=400, content={"message": "Email is required"})
    if not payload.answer:
        return JSONResponse(status_code=400, content={"message": "Answer is required"})
    if not payload.newPassword:
        return JSONResponse(status_code=400, content={"message": "New password is required"})
    try:
        if not accounts.reset_password(payload):
            return JSONResponse(status_code=404, content={"success": False, "message": "Wrong email or answer"})
        return ok({"success": True, "message": "Password reset successfully"})
    except Exception as e:
        return failure(500, "Something went wrong", e)


@auth_router.get("/test")
def protected_test(_admin: dict = Depends(require_admin)):
    return Response(content="Protected Routes", media_type="text/plain")


@auth_router.get("/user-auth")
def user_auth(_user: dict = Depends(get_current_user)):
    return {"ok": True}


@auth_router.get("/admin-auth")
def admin_auth(_admin: dict = Depends(require_admin)):
    return {"ok": True}


@auth_router.put("/profile")
def update_profile(payload: ProfileUpdate, user: dict = Depends(get_current_user),
                   accounts: AccountService = Depends(get_accounts)):
    if payload.password and len(payload.password) < MIN_PASSWORD_LENGTH:
        return JSONResponse(status_code=400, content={"error": "Password must be at least 6 characters long"})
    try:
        updated = accounts.update_profile(user, payload)
        return ok({"success": True, "message": "Profile updated successfully", "updatedUser": public_user(updated)})
    except Exception as e:
        return failure(400, "Error while updating profile", e)


@auth_router.get("/all-users")
def all_users(accounts: AccountService = Depends(get_accounts), _admin: dict = Depends(require_admin)):
    try:
        return ok({"success": True, "users": accounts.list_users()})
    except Exception as e:
        return failure(500, "Error while getting users", e)


# Orders
@auth_router.get("/orders")
def user_orders(user: dict = Depends(get_current_user), orders: OrderWorkflow = Depends(get_orders)):
    try:
        return ok(orders.orders_for_user(user["_id"]))
    except Exception as e:
        return failure(500, "Error while getting orders", e)


@auth_router.get("/all-orders")
def all_orders(orders: OrderWorkflow = Depends(get_orders), _admin: dict = Depends(require_admin)):
    try:
        return ok(orders.all_orders())
    except Exception as e:
        return failure(500, "Error while getting orders", e)


@auth_router.put("/order-status/{order_id}")
def order_status(order_id: str, payload: StatusUpdate, orders: OrderWorkflow = Depends(get_orders),
                 _admin: dict = Depends(require_admin)):
    try:
        return ok(orders.update_status(order_id, payload.status))
    except Exception as e:
        return failure(500, "Error while updating order status", e)


def create_app(settings: Optional[Settings] = None, db: Optional[Database] = None, gateway=None) -> FastAPI:
    settings = settings or Settings.from_env()
    setup_logger(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            if app.state.db is None:
                app.state.db = connect(settings)
            ensure_indexes(app.state.db)
        except PyMongoError as exc:
            logger.warning("Unable to ensure indexes: %s", exc)
        yield

    app = FastAPI(title="Storefront API", lifespan=lifespan)
    app.state.settings = settings
    app.state.db = db
    app.state.gateway = gateway

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError):
        return JSONResponse(status_code=exc.status_code, content={"success": False, "message": exc.message})

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        if exc.error is not None:
            return failure(exc.status_code, exc.message, exc.error)
        return JSONResponse(status_code=exc.status_code, content={"success": False, "message": exc.message})

    @app.get("/")
    def read_root():
        return {"message": "Storefront API running"}

    @app.get("/test")
    def test_database(db: Database = Depends(get_db)):
        response = {
            "backend": "✅ Running",
            "database": "❌ Not Available",
            "database_name": None,
            "connection_status": "Not Connected",
            "collections": []
        }
        try:
            response["database_name"] = db.name
            collections = db.list_collection_names()
            response["collections"] = collections[:10]
            response["connection_status"] = "Connected"
            response["database"] = "✅ Connected & Working"
        except PyMongoError as e:
            response["database"] = f"⚠️  Connected but Error: {str(e)[:80]}"
        return response

    app.include_router(product_router)
    app.include_router(category_router)
    app.include_router(auth_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
