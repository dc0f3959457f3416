"""
Shared fixtures: an in-memory Mongo (mongomock), a small catalog and actors.
"""

import mongomock
import pytest
from fastapi.testclient import TestClient

from auth.schemas import Actor
from auth.security import create_access_token
from Connections.db_mongo import ensure_indexes
from Models.complaints_models import SERVICES_COLLECTION, TECHNICIANS_COLLECTION


@pytest.fixture
def db():
    client = mongomock.MongoClient()
    database = client["repair_shop_test"]
    ensure_indexes(database)
    yield database
    client.close()


@pytest.fixture
def service(db):
    doc = {"name": "AC Repair", "base_price": 800.0, "technician_price": 350.0, "is_active": True}
    doc["_id"] = db[SERVICES_COLLECTION].insert_one(doc).inserted_id
    return doc


@pytest.fixture
def other_service(db):
    doc = {"name": "Washing Machine Repair", "base_price": 600.0, "technician_price": 250.0, "is_active": True}
    doc["_id"] = db[SERVICES_COLLECTION].insert_one(doc).inserted_id
    return doc


@pytest.fixture
def technician(db):
    doc = {"name": "Ravi", "phone": "9000000001", "is_active": True}
    doc["_id"] = db[TECHNICIANS_COLLECTION].insert_one(doc).inserted_id
    return doc


@pytest.fixture
def admin():
    return Actor(id="user-admin", role="admin")


@pytest.fixture
def employee():
    return Actor(id="user-employee", role="employee")


@pytest.fixture
def complaint_payload(service, technician):
    return {
        "customer_name": "Asha Verma",
        "phone": "9876543210",
        "phone2": "",
        "address": "12 MG Road",
        "pin_code": "226001",
        "service_id": str(service["_id"]),
        "technician_id": str(technician["_id"]),
        "problem_description": "Not cooling",
        "complaint_type": "out_of_warranty",
    }


@pytest.fixture
def client(db):
    from main import app

    app.state.mongo_sync_db = db
    return TestClient(app)


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {create_access_token('user-admin', 'admin')}"}


@pytest.fixture
def employee_headers():
    return {"Authorization": f"Bearer {create_access_token('user-employee', 'employee')}"}
