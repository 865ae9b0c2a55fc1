"""HTTP tests for the product, category, payment and order routes."""

from bson import ObjectId
from pymongo.errors import PyMongoError

from catalog import ProductCatalog
from conftest import add_product
from payments import GatewayError, SaleResult

PRODUCT = "/api/v1/product"
CATEGORY = "/api/v1/category"
AUTH = "/api/v1/auth"


def product_form(category, **overrides):
    form = {
        "name": "iPhone 15",
        "description": "A premium smartphone",
        "price": "999",
        "category": str(category),
        "quantity": "50",
        "shipping": "yes",
    }
    form.update(overrides)
    return form


def test_root(client):
    assert client.get("/").json() == {"message": "Storefront API running"}


class TestProductReads:
    def test_product_list_pages(self, client, db):
        for i in range(8):
            add_product(db, f"Product {i}", minutes=i)

        first = client.get(f"{PRODUCT}/product-list/1").json()
        default = client.get(f"{PRODUCT}/product-list").json()
        second = client.get(f"{PRODUCT}/product-list/2").json()

        assert len(first["products"]) == 6
        assert default == first
        assert [p["name"] for p in second["products"]] == ["Product 1", "Product 0"]

    def test_product_count(self, client, db):
        add_product(db, "One")
        add_product(db, "Two")
        assert client.get(f"{PRODUCT}/product-count").json() == {"success": True, "total": 2}

    def test_product_filters(self, client, db, electronics, books):
        add_product(db, "Phone", price=100, category=electronics)
        add_product(db, "Laptop", price=900, category=electronics)
        add_product(db, "Novel", price=150, category=books)

        resp = client.post(f"{PRODUCT}/product-filters",
                           json={"checked": [str(electronics)], "radio": [0, 500], "page": 1})

        body = resp.json()
        assert resp.status_code == 200
        assert body["success"] is True
        assert body["total"] == 1
        assert [p["name"] for p in body["products"]] == ["Phone"]

    def test_product_filters_empty(self, client, db):
        add_product(db, "Phone")
        add_product(db, "Novel")
        body = client.post(f"{PRODUCT}/product-filters", json={"checked": [], "radio": []}).json()
        assert body["total"] == 2

    def test_search(self, client, db):
        add_product(db, "iPhone 15")
        add_product(db, "Case", description="fits every phone")
        add_product(db, "Novel")

        resp = client.get(f"{PRODUCT}/search/phone")

        assert resp.status_code == 200
        assert sorted(p["name"] for p in resp.json()) == ["Case", "iPhone 15"]

    def test_related(self, client, db, electronics):
        pid = add_product(db, "Phone", category=electronics)
        for i in range(5):
            add_product(db, f"Charger {i}", category=electronics)

        products = client.get(f"{PRODUCT}/related-product/{pid}/{electronics}").json()["products"]

        assert len(products) == 3
        assert str(pid) not in [p["_id"] for p in products]
        assert products[0]["category"]["name"] == "Electronics"

    def test_single_product(self, client, db, electronics):
        add_product(db, "iPhone 15", category=electronics, photo={"data": b"img", "content_type": "image/png"})

        body = client.get(f"{PRODUCT}/get-product/iphone-15").json()

        assert body["message"] == "Single Product Fetched"
        assert body["product"]["category"]["slug"] == "electronics"
        assert "photo" not in body["product"]

    def test_all_products(self, client, db):
        add_product(db, "Phone")
        body = client.get(f"{PRODUCT}/get-product").json()
        assert body["countTotal"] == 1
        assert body["message"] == "All Products"

    def test_product_category(self, client, db, electronics):
        add_product(db, "Laptop", category=electronics)
        body = client.get(f"{PRODUCT}/product-category/electronics").json()
        assert body["category"]["name"] == "Electronics"
        assert [p["name"] for p in body["products"]] == ["Laptop"]

    def test_product_category_unknown_slug(self, client):
        body = client.get(f"{PRODUCT}/product-category/nothing").json()
        assert body == {"success": True, "category": None, "products": []}

    def test_data_layer_failure(self, client, monkeypatch):
        def boom(self, page=1):
            raise PyMongoError("Database Error")

        monkeypatch.setattr(ProductCatalog, "list_page", boom)

        resp = client.get(f"{PRODUCT}/product-list/1")

        assert resp.status_code == 400
        assert resp.json() == {"success": False, "message": "Error In Per Page Ctrl", "error": "Database Error"}


class TestProductPhoto:
    def test_photo_bytes_and_content_type(self, client, db):
        pid = add_product(db, "Camera", photo={"data": b"fake-image", "content_type": "image/png"})

        resp = client.get(f"{PRODUCT}/product-photo/{pid}")

        assert resp.status_code == 200
        assert resp.headers["content-type"] == "image/png"
        assert resp.content == b"fake-image"

    def test_no_photo_means_no_body(self, client, db):
        pid = add_product(db, "Camera", photo={})

        resp = client.get(f"{PRODUCT}/product-photo/{pid}")

        assert resp.status_code == 204
        assert resp.content == b""
        assert "content-type" not in resp.headers

    def test_unknown_product(self, client):
        assert client.get(f"{PRODUCT}/product-photo/{ObjectId()}").status_code == 404


class TestProductWrites:
    def test_create_requires_admin(self, client, user_headers, electronics):
        resp = client.post(f"{PRODUCT}/create-product", data=product_form(electronics),
                           files={"photo": ("p.jpg", b"img", "image/jpeg")}, headers=user_headers)
        assert resp.status_code == 401
        assert resp.json()["message"] == "UnAuthorized Access"

    def test_create_product(self, client, db, admin_headers, electronics):
        resp = client.post(f"{PRODUCT}/create-product", data=product_form(electronics),
                           files={"photo": ("p.jpg", b"img", "image/jpeg")}, headers=admin_headers)

        body = resp.json()
        assert resp.status_code == 201
        assert body["success"] is True
        assert body["message"] == "Product Created Successfully"
        assert body["products"]["slug"] == "iphone-15"
        assert "photo" not in body["products"]
        stored = db["product"].find_one({"slug": "iphone-15"})
        assert bytes(stored["photo"]["data"]) == b"img"
        assert stored["photo"]["content_type"] == "image/jpeg"
        assert stored["shipping"] is True

    def test_create_rejects_zero_price(self, client, db, admin_headers, electronics):
        resp = client.post(f"{PRODUCT}/create-product", data=product_form(electronics, price="0"),
                           files={"photo": ("p.jpg", b"img", "image/jpeg")}, headers=admin_headers)

        assert resp.status_code == 500
        assert resp.json() == {"success": False, "error": "Price must be greater than 0"}
        assert db["product"].count_documents({}) == 0

    def test_create_requires_photo(self, client, admin_headers, electronics):
        resp = client.post(f"{PRODUCT}/create-product", data=product_form(electronics), headers=admin_headers)
        assert resp.status_code == 500
        assert resp.json()["error"] == "Photo is Required"

    def test_create_rejects_large_photo(self, client, db, admin_headers, electronics):
        big = b"x" * 1_000_001
        resp = client.post(f"{PRODUCT}/create-product", data=product_form(electronics),
                           files={"photo": ("p.jpg", big, "image/jpeg")}, headers=admin_headers)
        assert resp.status_code == 500
        assert resp.json()["error"] == "photo is Required and should be less then 1mb"
        assert db["product"].count_documents({}) == 0

    def test_update_rejects_missing_name(self, client, db, admin_headers, electronics):
        pid = add_product(db, "Old", category=electronics)

        resp = client.put(f"{PRODUCT}/update-product/{pid}",
                          data=product_form(electronics, name=""), headers=admin_headers)

        assert resp.status_code == 500
        assert resp.json() == {"success": False, "error": "Name is Required"}
        assert db["product"].find_one({"_id": pid})["name"] == "Old"

    def test_create_products_with_non_ascii_names(self, client, db, admin_headers, electronics):
        slugs = []
        for name in ["日本茶", "緑茶"]:
            resp = client.post(f"{PRODUCT}/create-product", data=product_form(electronics, name=name),
                               files={"photo": ("p.jpg", b"img", "image/jpeg")}, headers=admin_headers)
            assert resp.status_code == 201
            slugs.append(resp.json()["products"]["slug"])

        assert all(slugs)
        assert slugs[0] != slugs[1]
        assert db["product"].count_documents({}) == 2
        assert client.get(f"{PRODUCT}/get-product/{slugs[1]}").json()["product"]["name"] == "緑茶"

    def test_update_without_photo(self, client, db, admin_headers, electronics):
        pid = add_product(db, "Old", category=electronics, photo={"data": b"img", "content_type": "image/png"})

        resp = client.put(f"{PRODUCT}/update-product/{pid}",
                          data=product_form(electronics, name="Updated Name"), headers=admin_headers)

        assert resp.status_code == 201
        assert resp.json()["message"] == "Product Updated Successfully"
        stored = db["product"].find_one({"_id": pid})
        assert stored["slug"] == "updated-name"
        assert bytes(stored["photo"]["data"]) == b"img"

    def test_update_unknown_product(self, client, admin_headers, electronics):
        resp = client.put(f"{PRODUCT}/update-product/{ObjectId()}",
                          data=product_form(electronics), headers=admin_headers)
        assert resp.status_code == 404

    def test_delete_product(self, client, db, admin_headers):
        pid = add_product(db, "Gone")

        resp = client.delete(f"{PRODUCT}/delete-product/{pid}", headers=admin_headers)

        assert resp.json() == {"success": True, "message": "Product Deleted successfully"}
        assert db["product"].count_documents({}) == 0


class TestCategories:
    def test_create_and_duplicate(self, client, admin_headers):
        created = client.post(f"{CATEGORY}/create-category", json={"name": "Toys"}, headers=admin_headers)
        again = client.post(f"{CATEGORY}/create-category", json={"name": "Toys"}, headers=admin_headers)

        assert created.status_code == 201
        assert created.json()["category"]["slug"] == "toys"
        assert again.status_code == 200
        assert again.json()["message"] == "Category already exists"

    def test_create_requires_name(self, client, admin_headers):
        resp = client.post(f"{CATEGORY}/create-category", json={}, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json() == {"message": "Name is required"}

    def test_update_list_single_delete(self, client, admin_headers, electronics, db):
        pid = add_product(db, "Laptop", category=electronics)

        updated = client.put(f"{CATEGORY}/update-category/{electronics}",
                             json={"name": "Home Electronics"}, headers=admin_headers).json()
        listed = client.get(f"{CATEGORY}/get-category").json()
        single = client.get(f"{CATEGORY}/single-category/home-electronics").json()
        deleted = client.delete(f"{CATEGORY}/delete-category/{electronics}", headers=admin_headers).json()

        assert updated["category"]["slug"] == "home-electronics"
        assert [c["name"] for c in listed["category"]] == ["Home Electronics"]
        assert single["category"]["name"] == "Home Electronics"
        assert deleted == {"success": True, "message": "Category deleted successfully"}
        # products keep their (now dangling) category reference
        assert db["product"].find_one({"_id": pid})["category"] == electronics


class TestBraintree:
    def test_client_token(self, client):
        assert client.get(f"{PRODUCT}/braintree/token").json() == {"clientToken": "fake_token"}

    def test_client_token_gateway_error_is_passed_through(self, client, gateway):
        gateway.token_error = GatewayError("Braintree Token Error")

        resp = client.get(f"{PRODUCT}/braintree/token")

        assert resp.status_code == 500
        assert resp.json() == "Braintree Token Error"

    def test_client_token_exception(self, client, gateway):
        gateway.token_error = RuntimeError("boom")

        resp = client.get(f"{PRODUCT}/braintree/token")

        assert resp.status_code == 500
        assert resp.json()["message"] == "Error in Braintree Token"

    def test_payment_requires_sign_in(self, client):
        resp = client.post(f"{PRODUCT}/braintree/payment", json={"nonce": "n", "cart": [{"price": 10}]})
        assert resp.status_code == 401

    def test_payment_success_creates_order(self, client, db, gateway, user_headers, user_id):
        ids = [str(add_product(db, "A", price=10)), str(add_product(db, "B", price=20))]
        body = {"nonce": "fake-nonce", "cart": [{"_id": ids[0], "price": 10}, {"_id": ids[1], "price": 20}]}

        resp = client.post(f"{PRODUCT}/braintree/payment", json=body, headers=user_headers)

        assert resp.status_code == 200
        assert resp.json() == {"ok": True}
        assert str(gateway.sales[0][1]) == "30.00"
        assert db["order"].count_documents({}) == 1
        assert db["order"].find_one()["buyer"] == user_id

    def test_payment_declined(self, client, db, gateway, user_headers):
        gateway.sale_result = SaleResult(success=False, message="Insufficient Funds")

        resp = client.post(f"{PRODUCT}/braintree/payment",
                           json={"nonce": "fake-nonce", "cart": [{"price": 10}]}, headers=user_headers)

        assert resp.status_code == 400
        assert resp.json() == {"message": "Insufficient Funds"}
        assert db["order"].count_documents({}) == 0

    def test_payment_gateway_crash(self, client, db, gateway, user_headers):
        gateway.sale_error = RuntimeError("Gateway Timeout")

        resp = client.post(f"{PRODUCT}/braintree/payment",
                           json={"nonce": "fake-nonce", "cart": [{"price": 10}]}, headers=user_headers)

        assert resp.status_code == 500
        assert resp.json() == {"success": False, "message": "Error in BrainTree Payment", "error": "Gateway Timeout"}
        assert db["order"].count_documents({}) == 0

    def test_payment_bad_cart(self, client, gateway, user_headers):
        resp = client.post(f"{PRODUCT}/braintree/payment",
                           json={"nonce": "fake-nonce", "cart": [{"price": "lots"}]}, headers=user_headers)

        assert resp.status_code == 400
        assert resp.json()["success"] is False
        assert gateway.sales == []

    def test_payment_negative_total(self, client, db, gateway, user_headers):
        resp = client.post(f"{PRODUCT}/braintree/payment",
                           json={"nonce": "fake-nonce", "cart": [{"price": -10}]}, headers=user_headers)

        assert resp.status_code == 400
        assert resp.json()["success"] is False
        assert gateway.sales == []
        assert db["order"].count_documents({}) == 0


class TestOrders:
    def test_order_status_update(self, client, db, admin_headers, user_id):
        order_id = db["order"].insert_one({"products": [], "buyer": user_id, "status": "Not Processed"}).inserted_id

        resp = client.put(f"{AUTH}/order-status/{order_id}", json={"status": "Shipped"}, headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json()["status"] == "Shipped"
        assert resp.json()["_id"] == str(order_id)

    def test_order_status_unknown_order(self, client, admin_headers):
        resp = client.put(f"{AUTH}/order-status/o1", json={"status": "Shipped"}, headers=admin_headers)
        assert resp.status_code == 500
        assert resp.json()["message"] == "Error while updating order status"

    def test_user_orders(self, client, db, user_headers, user_id, admin_id):
        pid = add_product(db, "Camera")
        db["order"].insert_one({"products": [pid], "buyer": user_id, "status": "Not Processed"})
        db["order"].insert_one({"products": [pid], "buyer": admin_id, "status": "Not Processed"})

        orders = client.get(f"{AUTH}/orders", headers=user_headers).json()

        assert len(orders) == 1
        assert orders[0]["buyer"]["name"] == "Jane"
        assert orders[0]["products"][0]["name"] == "Camera"

    def test_all_orders_is_admin_only(self, client, db, user_headers, admin_headers, user_id):
        db["order"].insert_one({"products": [], "buyer": user_id, "status": "Not Processed"})

        assert client.get(f"{AUTH}/all-orders", headers=user_headers).status_code == 401
        assert len(client.get(f"{AUTH}/all-orders", headers=admin_headers).json()) == 1
