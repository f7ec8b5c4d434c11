"""Shared pytest fixtures."""

import os

# must be set before saludlibre.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SMTP_HOST"] = "smtp.saludlibre.test"
os.environ["GEMINI_API_KEY"] = ""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from main import app
from saludlibre import models
from saludlibre.database import Base, SessionLocal, engine

DOCTOR_EMAIL = "laura.perez@gmail.com"
DOCTOR_PASSWORD = "secreta123"


@pytest.fixture(autouse=True)
def reset_database():
    """Fresh schema for every test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture(autouse=True)
def smtp():
    """Mock the SMTP client so no email leaves the test run."""
    with patch("saludlibre.notifications.smtplib.SMTP") as mock_smtp:
        yield mock_smtp


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def login(client, email, password):
    resp = client.post("/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    return bearer(resp.json()["access_token"])


@pytest.fixture
def doctor(client, db):
    """A verified doctor and its auth headers."""
    resp = client.post("/auth/signup", json={
        "full_name": "Laura Perez",
        "email": DOCTOR_EMAIL,
        "password": DOCTOR_PASSWORD,
        "specialty": "Cardiología",
        "license_number": "MN 12345",
        "phone": "11 2345 6789",
    })
    assert resp.status_code == 200, resp.text
    doctor_id = resp.json()["doctor_id"]
    row = db.get(models.Doctor, doctor_id)
    row.verified = True
    row.address = "Av. Corrientes 1234"
    row.city = "CABA"
    db.commit()
    return {"id": doctor_id, "headers": login(client, DOCTOR_EMAIL, DOCTOR_PASSWORD)}


@pytest.fixture
def patient(client, doctor):
    """A patient provisioned by ``doctor``, logged in with the temporary password."""
    resp = client.post("/patients/", headers=doctor["headers"], json={
        "full_name": "Juan Gomez",
        "email": "juan.gomez@gmail.com",
        "phone": "1187654321",
        "date_of_birth": "1990-05-17",
        "dni": "30123456",
        "gender": "Masculino",
        "insurance_provider": "OSDE",
        "insurance_plan": "210",
    })
    assert resp.status_code == 201, resp.text
    body = resp.json()
    return {
        "id": body["patient"]["patient_id"],
        "user_id": body["user_id"],
        "password": body["temporary_password"],
        "headers": login(client, "juan.gomez@gmail.com", body["temporary_password"]),
    }
