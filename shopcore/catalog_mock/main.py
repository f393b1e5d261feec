# shopcore/catalog_mock/main.py
"""Catalog service (dev mock): products, variations and coupons.

Run with ``uvicorn shopcore.catalog_mock.main:app --port 8001`` and point
PRODUCT_SERVICE_URL / COUPON_SERVICE_URL at it.
"""
from fastapi import FastAPI, HTTPException, Query

app = FastAPI(title="Catalog Service (dev mock)")


PRODUCTS = {
    "P1": {
        "id": "P1",
        "name": "Keyboard",
        "sku": "KB-001",
        "image": None,
        "status": "published",
        "price": 1000,
        "stock_quantity": 10,
        "stock_status": "instock",
        "attributes": {"layout": {"kind": "choice", "value": "ANSI", "options": ["ANSI", "ISO"]}},
    },
    "P2": {
        "id": "P2",
        "name": "Mouse",
        "sku": "MS-002",
        "image": None,
        "status": "published",
        "price": 1000,
        "stock_quantity": 2,
        "stock_status": "instock",
        "attributes": {},
    },
    "P3": {
        "id": "P3",
        "name": "Monitor",
        "sku": "MN-003",
        "image": None,
        "status": "draft",
        "price": 89900,
        "stock_quantity": 5,
        "stock_status": "instock",
        "attributes": {},
    },
}

VARIATIONS = {
    ("P1", "V-RED"): {
        "id": "V-RED",
        "name": "Keyboard (red)",
        "sku": "KB-001-RED",
        "image": None,
        "status": "published",
        "price": 1200,
        "stock_quantity": 3,
        "stock_status": "instock",
        "attributes": {"color": {"kind": "text", "value": "red"}},
    },
}

COUPONS = {
    "SAVE10": {"code": "SAVE10", "type": "percentage", "value": 10, "max_discount": 5000, "min_subtotal": 0},
    "MINUS500": {"code": "MINUS500", "type": "fixed", "value": 500, "min_subtotal": 2000},
}


@app.get("/products/{product_id}")
def get_product(product_id: str):
    product = PRODUCTS.get(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@app.get("/products/{product_id}/variations/{variation_id}")
def get_variation(product_id: str, variation_id: str):
    variation = VARIATIONS.get((product_id, variation_id))
    if not variation:
        raise HTTPException(status_code=404, detail="Variation not found")
    return variation


@app.get("/coupons/{code}")
def get_coupon(code: str, subtotal: int = Query(default=0, ge=0)):
    coupon = COUPONS.get(code.upper())
    if not coupon:
        raise HTTPException(status_code=404, detail="Coupon not found")
    if subtotal < coupon["min_subtotal"]:
        raise HTTPException(status_code=422, detail="Subtotal below coupon minimum")
    return {k: v for k, v in coupon.items() if k != "min_subtotal"}
