"""
mock_courier_service.py — Mock Implementation of the Steadfast Courier API (REST)

This module provides a simulated bulk-capable courier for testing the dispatch
workflow. It exposes a FastAPI application that mimics the Steadfast merchant API.

Simulation Scenarios:
    • Successful single and bulk consignment creation
    • Rejected consignment (HTTP 200 with an error status in the body)
    • Rejected bulk batch (HTTP 422 for the whole batch)
    • Missing or wrong credentials (HTTP 401)
    • Timeout simulation (simulates client read timeout)

Endpoints:
    POST /create_order             — Creates one consignment.
    POST /create_order/bulk-order  — Creates up to 500 consignments.
    GET  /status_by_cid/{id}       — Delivery status of a consignment.

Port:
    Default: 8002 (HTTP)
"""

import logging
import time
import uuid
from typing import List

from fastapi import FastAPI, Header, HTTPException
from pydantic import BaseModel

app = FastAPI(title="Mock Steadfast Courier")
logging.basicConfig(level=logging.INFO)

API_KEY = "mock-api-key"
SECRET_KEY = "mock-secret-key"

consignments = {}


class Consignment(BaseModel):
    """
    Represents one consignment in the Steadfast payload shape.

    Attributes:
        invoice (str): Merchant order reference.
        recipient_name (str): Recipient full name.
        recipient_phone (str): 11-digit mobile number.
        recipient_address (str): Free-text address.
        cod_amount (float): Cash to collect on delivery.
    """
    invoice: str
    recipient_name: str
    recipient_phone: str
    recipient_address: str
    cod_amount: float = 0
    note: str = ""


class BulkRequest(BaseModel):
    data: List[Consignment]


def _authorize(api_key: str, secret_key: str):
    if api_key != API_KEY or secret_key != SECRET_KEY:
        raise HTTPException(status_code=401, detail={"message": "Unauthorized"})


def _store(consignment: Consignment) -> dict:
    consignment_id = int(time.time() * 1000) % 10_000_000 + len(consignments)
    record = {
        "consignment_id": consignment_id,
        "invoice": consignment.invoice,
        "tracking_code": uuid.uuid4().hex[:8].upper(),
        "recipient_name": consignment.recipient_name,
        "cod_amount": consignment.cod_amount,
        "status": "in_review",
    }
    consignments[str(consignment_id)] = record
    return record


@app.post("/create_order")
def create_order(
        consignment: Consignment,
        api_key: str = Header(None, alias="Api-Key"),
        secret_key: str = Header(None, alias="Secret-Key"),
):
    """
    Creates a single consignment.

    Behavior by invoice prefix:
        - "FAIL-"    → HTTP 200 with {"status": 400, "message": ...}
        - "TIMEOUT-" → sleeps 20s before answering
        - otherwise  → consignment created
    """
    _authorize(api_key, secret_key)
    logging.info(f"[Steadfast] Neue Sendung für {consignment.invoice}")

    if consignment.invoice.startswith("FAIL-"):
        logging.warning(f"[Steadfast] Sendung {consignment.invoice} abgelehnt.")
        return {"status": 400, "message": "Invalid recipient address"}

    if consignment.invoice.startswith("TIMEOUT-"):
        time.sleep(20)

    return {
        "status": 200,
        "message": "Consignment has been created successfully.",
        "consignment": _store(consignment),
    }


@app.post("/create_order/bulk-order")
def create_bulk(
        request: BulkRequest,
        api_key: str = Header(None, alias="Api-Key"),
        secret_key: str = Header(None, alias="Secret-Key"),
):
    """
    Creates a batch of consignments. A single "FAIL-" invoice rejects the batch (HTTP 422).
    """
    _authorize(api_key, secret_key)
    logging.info(f"[Steadfast] Bulk-Anfrage mit {len(request.data)} Sendungen")

    if len(request.data) > 500:
        raise HTTPException(status_code=422, detail={"message": "Max 500 orders per bulk request"})
    if any(c.invoice.startswith("FAIL-") for c in request.data):
        raise HTTPException(status_code=422, detail={"message": "Batch rejected: invalid consignment"})

    return [{**_store(c), "status": "success"} for c in request.data]


@app.get("/status_by_cid/{consignment_id}")
def status_by_cid(
        consignment_id: str,
        api_key: str = Header(None, alias="Api-Key"),
        secret_key: str = Header(None, alias="Secret-Key"),
):
    _authorize(api_key, secret_key)
    record = consignments.get(consignment_id)
    if record is None:
        raise HTTPException(status_code=404, detail={"message": "Consignment not found"})
    return {"status": 200, "delivery_status": record["status"]}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8002)
