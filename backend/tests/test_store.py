from campuslane.models import Notification, Order, ProductVariant
from campuslane.routers.orders import can_transition

ADDRESS = {
	"name": "Rahul Verma",
	"phone": "9999999999",
	"street": "12 MG Road",
	"city": "Pune",
	"state": "Maharashtra",
	"zipcode": "411001",
	"country": "India",
}


def _variants(product):
	small, medium = product.variants
	return small.id, medium.id


def _stock(db, variant_id):
	db.expire_all()
	return db.get(ProductVariant, variant_id).stock


def _checkout(client, headers, key=None, **extra):
	hdrs = dict(headers)
	if key:
		hdrs["Idempotency-Key"] = key
	return client.post("/api/v1/orders/checkout", headers=hdrs, json={"paymentType": "COD", "shippingAddress": ADDRESS, **extra})


# Catalog

def test_product_listing_filters_variants(client, product):
	r = client.get("/api/v1/products?minPrice=480")
	body = r.json()
	assert body["total"] == 1
	assert body["limit"] == 12
	assert body["totalPages"] == 1
	(doc,) = body["docs"]
	assert [v["name"] for v in doc["variants"]] == ["Size M"]
	assert doc["minPrice"] == 500
	assert doc["totalStock"] == 2
	assert doc["category"]["name"] == "School Uniforms"

	assert client.get("/api/v1/products?maxPrice=100").json()["docs"] == []


def test_product_admin_crud(client, admin_headers, product):
	r = client.post("/api/v1/products", headers=admin_headers, json={
		"name": "Mathematics Workbook Grade 4",
		"category": product.category_id,
		"variants": [{"name": "Standard Edition", "price": 250, "cutoffPrice": 300, "stock": 100}],
	})
	assert r.status_code == 201, r.text
	created = r.json()["data"]
	assert created["variants"][0]["cutoffPrice"] == 300

	r = client.post("/api/v1/products", headers=admin_headers, json={"name": "Empty", "category": product.category_id, "variants": []})
	assert r.status_code == 400

	variant_id = created["variants"][0]["_id"]
	r = client.delete(f"/api/v1/products/{created['_id']}/variants/{variant_id}", headers=admin_headers)
	assert r.status_code == 400
	assert r.json()["error"]["message"] == "Product must have at least one variant"

	r = client.post(f"/api/v1/products/{created['_id']}/variants", headers=admin_headers, json={"name": "Teacher Edition", "price": 400})
	assert [v["name"] for v in r.json()["data"]["variants"]] == ["Standard Edition", "Teacher Edition"]

	r = client.patch(f"/api/v1/products/{created['_id']}/variants/{variant_id}", headers=admin_headers, json={"stock": 7})
	assert r.json()["data"]["variants"][0]["stock"] == 7

	r = client.delete(f"/api/v1/products/{created['_id']}", headers=admin_headers)
	assert r.status_code == 200
	assert client.get(f"/api/v1/products/{created['_id']}").status_code == 404



def test_product_updates_reject_nulls(client, admin_headers, product):
	for field in ("name", "isActive", "category", "images"):
		r = client.patch(f"/api/v1/products/{product.id}", headers=admin_headers, json={field: None})
		assert r.status_code == 400, field
		assert r.json()["error"]["message"] == f"{field} cannot be null"

	small, _ = _variants(product)
	r = client.patch(f"/api/v1/products/{product.id}/variants/{small}", headers=admin_headers, json={"price": None})
	assert r.status_code == 400
	assert r.json()["error"]["message"] == "price cannot be null"

	# Optional references can be cleared
	r = client.patch(f"/api/v1/products/{product.id}", headers=admin_headers, json={"school": None, "brand": None})
	assert r.status_code == 200
	assert r.json()["data"]["name"] == "School Uniform Shirt - White"


def test_school_and_category_names_cannot_be_null(client, admin_headers, product):
	school_id = client.post("/api/v1/schools", headers=admin_headers, json={"name": "Green Valley School"}).json()["data"]["_id"]
	r = client.patch(f"/api/v1/schools/{school_id}", headers=admin_headers, json={"name": None})
	assert r.status_code == 400

	r = client.patch(f"/api/v1/categories/{product.category_id}", headers=admin_headers, json={"name": None})
	assert r.status_code == 400
	assert r.json()["error"]["message"] == "name cannot be null"


# Cart

def test_cart_merges_lines_and_checks_stock(client, parent_headers, product):
	small, _ = _variants(product)
	r = client.post("/api/v1/cart/items", headers=parent_headers, json={"productId": product.id, "variantId": small, "quantity": 3})
	assert r.status_code == 200
	r = client.post("/api/v1/cart/items", headers=parent_headers, json={"productId": product.id, "variantId": small, "quantity": 2})
	cart = r.json()["data"]
	assert len(cart["items"]) == 1
	assert cart["items"][0]["quantity"] == 5
	assert cart["subtotal"] == 2250

	r = client.post("/api/v1/cart/items", headers=parent_headers, json={"productId": product.id, "variantId": small, "quantity": 1})
	assert r.status_code == 400
	assert r.json()["error"]["message"] == "Insufficient stock"


def test_cart_item_update_by_product_id_and_variant_switch(client, parent_headers, product):
	small, medium = _variants(product)
	client.post("/api/v1/cart/items", headers=parent_headers, json={"productId": product.id, "variantId": small, "quantity": 1})

	r = client.patch(f"/api/v1/cart/items/{product.id}", headers=parent_headers, json={"quantity": 2})
	assert r.status_code == 200
	assert r.json()["data"]["items"][0]["quantity"] == 2

	r = client.patch(f"/api/v1/cart/items/{product.id}", headers=parent_headers, json={"variantId": medium})
	item = r.json()["data"]["items"][0]
	assert item["variantId"] == medium
	assert item["price"] == 500
	assert item["productId"]["selectedVariant"]["name"] == "Size M"

	r = client.patch(f"/api/v1/cart/items/{item['_id']}", headers=parent_headers, json={"quantity": 3})
	assert r.status_code == 400

	r = client.delete(f"/api/v1/cart/items/{item['_id']}", headers=parent_headers)
	assert r.json()["data"]["items"] == []


# Orders

def test_checkout_takes_stock_and_empties_cart(client, parent_headers, parent, product, db):
	small, medium = _variants(product)
	client.post("/api/v1/cart/items", headers=parent_headers, json={"productId": product.id, "variantId": small, "quantity": 2})
	client.post("/api/v1/cart/items", headers=parent_headers, json={"productId": product.id, "variantId": medium, "quantity": 1})

	r = _checkout(client, parent_headers, deliveryRate=50)
	assert r.status_code == 201, r.text
	order = r.json()["data"]
	assert order["status"] == "pending"
	assert order["paymentStatus"] == "pending"
	assert order["totalAmount"] == 2 * 450 + 500 + 50
	assert [i["variant"]["name"] for i in order["items"]] == ["Size S", "Size M"]
	assert order["items"][0]["productId"]["name"] == "School Uniform Shirt - White"

	assert _stock(db, small) == 3
	assert _stock(db, medium) == 1
	assert client.get("/api/v1/cart", headers=parent_headers).json()["data"]["items"] == []


def test_checkout_is_idempotent_per_key(client, parent_headers, product, db):
	small, _ = _variants(product)
	client.post("/api/v1/cart/items", headers=parent_headers, json={"productId": product.id, "variantId": small, "quantity": 1})

	first = _checkout(client, parent_headers, key="order-key-1")
	assert first.status_code == 201
	replay = _checkout(client, parent_headers, key="order-key-1")
	assert replay.status_code == 200
	assert replay.json()["data"]["_id"] == first.json()["data"]["_id"]
	assert db.query(Order).count() == 1
	assert _stock(db, small) == 4


def test_checkout_failures_leave_everything_untouched(client, parent_headers, product, db):
	r = _checkout(client, parent_headers)
	assert r.status_code == 400
	assert r.json()["error"]["message"] == "Cart is empty"

	small, medium = _variants(product)
	client.post("/api/v1/cart/items", headers=parent_headers, json={"productId": product.id, "variantId": small, "quantity": 1})
	client.post("/api/v1/cart/items", headers=parent_headers, json={"productId": product.id, "variantId": medium, "quantity": 2})
	variant = db.get(ProductVariant, medium)
	variant.stock = 1
	db.commit()

	r = _checkout(client, parent_headers)
	assert r.status_code == 400
	assert r.json()["error"]["message"] == "Insufficient stock for School Uniform Shirt - White (Size M)"
	assert _stock(db, small) == 5
	assert db.query(Order).count() == 0
	assert len(client.get("/api/v1/cart", headers=parent_headers).json()["data"]["items"]) == 2


def test_cancel_restores_stock(client, parent_headers, product, db):
	small, _ = _variants(product)
	client.post("/api/v1/cart/items", headers=parent_headers, json={"productId": product.id, "variantId": small, "quantity": 2})
	order_id = _checkout(client, parent_headers).json()["data"]["_id"]
	assert _stock(db, small) == 3

	r = client.patch(f"/api/v1/orders/{order_id}/cancel", headers=parent_headers)
	assert r.status_code == 200
	assert r.json()["data"]["status"] == "cancelled"
	assert _stock(db, small) == 5

	r = client.patch(f"/api/v1/orders/{order_id}/cancel", headers=parent_headers)
	assert r.status_code == 404


def test_admin_status_transitions(client, admin_headers, parent, parent_headers, product, db):
	small, _ = _variants(product)
	client.post("/api/v1/cart/items", headers=parent_headers, json={"productId": product.id, "variantId": small, "quantity": 1})
	order_id = _checkout(client, parent_headers).json()["data"]["_id"]

	r = client.patch(f"/api/v1/admin/orders/{order_id}/status", headers=admin_headers, json={"status": "shipped"})
	assert r.status_code == 400
	assert r.json()["error"]["message"] == "Cannot change order status from pending to shipped"

	r = client.patch(f"/api/v1/admin/orders/{order_id}/status", headers=admin_headers, json={"status": "confirmed"})
	assert r.json()["data"]["status"] == "confirmed"
	note = db.query(Notification).filter(Notification.user_id == parent.id, Notification.type == "order_status").one()
	assert note.meta == {"orderId": order_id, "status": "confirmed"}

	r = client.patch(f"/api/v1/admin/orders/{order_id}/status", headers=admin_headers, json={"status": "cancelled"})
	assert r.json()["data"]["status"] == "cancelled"
	assert _stock(db, small) == 5

	r = client.patch(f"/api/v1/admin/orders/{order_id}/payment", headers=admin_headers, json={"paymentStatus": "failed"})
	assert r.json()["data"]["paymentStatus"] == "failed"

	r = client.get("/api/v1/admin/orders?status=cancelled", headers=admin_headers)
	assert [o["_id"] for o in r.json()["data"]] == [order_id]


def test_orders_are_private(client, parent_headers, student_headers, product):
	small, _ = _variants(product)
	client.post("/api/v1/cart/items", headers=parent_headers, json={"productId": product.id, "variantId": small, "quantity": 1})
	order_id = _checkout(client, parent_headers).json()["data"]["_id"]

	assert client.get(f"/api/v1/orders/{order_id}", headers=parent_headers).status_code == 200
	assert client.get(f"/api/v1/orders/{order_id}", headers=student_headers).status_code == 404
	mine = client.get("/api/v1/orders/mine", headers=parent_headers).json()
	assert mine["pagination"]["total"] == 1


def test_reorder_refills_cart(client, parent_headers, product):
	small, _ = _variants(product)
	client.post("/api/v1/cart/items", headers=parent_headers, json={"productId": product.id, "variantId": small, "quantity": 2})
	order_id = _checkout(client, parent_headers).json()["data"]["_id"]

	r = client.post(f"/api/v1/orders/reorder/{order_id}", headers=parent_headers)
	assert r.status_code == 200
	(item,) = r.json()["data"]["items"]
	assert item["quantity"] == 2
	assert item["variantId"] == small


def test_transition_table():
	assert can_transition("pending", "confirmed")
	assert can_transition("packed", "cancelled")
	assert can_transition("shipped", "delivered")
	assert can_transition("delivered", "delivered")
	assert not can_transition("shipped", "cancelled")
	assert not can_transition("cancelled", "pending")
	assert not can_transition("delivered", "shipped")


# Wishlist and reviews

def test_wishlist(client, student_headers, product):
	r = client.post("/api/v1/wishlist", headers=student_headers, json={"productId": product.id})
	assert [p["_id"] for p in r.json()["data"]["products"]] == [product.id]
	r = client.post("/api/v1/wishlist", headers=student_headers, json={"productId": product.id})
	assert len(r.json()["data"]["products"]) == 1
	r = client.delete(f"/api/v1/wishlist/{product.id}", headers=student_headers)
	assert r.json()["data"]["products"] == []


def test_reviews(client, parent_headers, student_headers, admin_headers, product):
	r = client.post("/api/v1/reviews", headers=parent_headers, json={"productId": product.id, "rating": 4, "comment": "Good fit"})
	assert r.status_code == 201
	review_id = r.json()["data"]["_id"]

	r = client.post("/api/v1/reviews", headers=parent_headers, json={"productId": product.id, "rating": 5})
	assert r.status_code == 400
	assert r.json()["error"]["message"] == "You have already reviewed this product"

	client.post("/api/v1/reviews", headers=student_headers, json={"productId": product.id, "rating": 5})
	r = client.get(f"/api/v1/reviews?productId={product.id}")
	body = r.json()
	assert body["averageRating"] == 4.5
	assert body["pagination"]["total"] == 2

	r = client.patch(f"/api/v1/reviews/{review_id}", headers=student_headers, json={"rating": 1})
	assert r.status_code == 404

	r = client.delete(f"/api/v1/reviews/{review_id}", headers=admin_headers)
	assert r.status_code == 200
	assert client.get(f"/api/v1/reviews?productId={product.id}").json()["averageRating"] == 5.0


# Schools and categories

def test_school_names_are_unique(client, admin_headers):
	r = client.post("/api/v1/schools", headers=admin_headers, json={"name": "Green Valley Public School", "city": "Bengaluru"})
	assert r.status_code == 201
	r = client.post("/api/v1/schools", headers=admin_headers, json={"name": "Green Valley Public School"})
	assert r.status_code == 409
	assert r.json()["error"]["message"] == "School with this name already exists"


def test_categories_are_public(client, admin_headers):
	client.post("/api/v1/categories", headers=admin_headers, json={"name": "Educational Toys"})
	client.post("/api/v1/categories", headers=admin_headers, json={"name": "Books & Stationery"})
	r = client.get("/api/v1/categories")
	assert [c["name"] for c in r.json()["data"]] == ["Books & Stationery", "Educational Toys"]
