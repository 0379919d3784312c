import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from config import settings
from database import engine, Base
from errors import ServiceError

# --- IMPORT ROUTERS (APIs) ---
from routers import packages, notifications, classes, billing, payments, salaries, students

# --- IMPORT MODELS (registers tables on Base) ---
from models.students import Student
from models.teachers import Teacher
from models.packages import Package
from models.classes import ClassRecord
from models.bills import Bill
from models.notifications import NotificationRecord, NotificationLog

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("tutoring")

# --- CREATE DATABASE TABLES ---
Base.metadata.create_all(bind=engine)

app = FastAPI(title="Tutoring Packages & Billing")

# ==========================================
# CORS MIDDLEWARE (Admin console)
# ==========================================
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ==========================================
# ERROR HANDLERS
# ==========================================
@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.warning("%s %s rejected (%s): %s", request.method, request.url.path, exc.kind, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    # A concurrent writer won the race on a unique constraint
    logger.warning("%s %s hit a constraint: %s", request.method, request.url.path, exc.orig)
    return JSONResponse(
        status_code=409,
        content={"status": "error", "kind": "conflict", "message": "The record was changed by another request"},
    )

# --- REGISTER ROUTERS ---
app.include_router(packages.router)
app.include_router(notifications.router)
app.include_router(classes.router)
app.include_router(billing.router)
app.include_router(payments.router)
app.include_router(salaries.router)
app.include_router(students.router)


@app.get("/health")
def health():
    return {"status": "success"}
