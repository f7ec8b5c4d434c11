# main.py
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from saludlibre import config
from saludlibre.database import Base, engine
from saludlibre import appointments as appointments_router
from saludlibre import auth as auth_router
from saludlibre import chat as chat_router
from saludlibre import doctors as doctors_router
from saludlibre import documents as documents_router
from saludlibre import patients as patients_router
from saludlibre import prescriptions as prescriptions_router

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

Base.metadata.create_all(bind=engine)

app = FastAPI(title="Salud Libre API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router.router)
app.include_router(doctors_router.router)
app.include_router(patients_router.router)
app.include_router(appointments_router.router)
app.include_router(documents_router.router)
app.include_router(prescriptions_router.router)
app.include_router(chat_router.router)

@app.get("/health")
def health():
    return {"status": "ok"}
