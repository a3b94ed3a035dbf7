import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlmodel import Session

load_dotenv()

logging.basicConfig(
  level=os.getenv("LOG_LEVEL", "INFO").upper(),
  format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

from auth import ensure_admin_user  # noqa: E402
from auth_route import router as auth_router  # noqa: E402
from billing_route import router as billing_router  # noqa: E402
from data_route import router as data_router  # noqa: E402
from db import engine, init_db  # noqa: E402
from errors import BillingError  # noqa: E402
from payments_route import router as payments_router  # noqa: E402

logger = logging.getLogger(__name__)

CORS_ORIGINS = [
  x.strip()
  for x in os.getenv("CORS_ORIGINS", "http://127.0.0.1:3000,http://localhost:3000").split(",")
  if x.strip()
]


@asynccontextmanager
async def lifespan(app: FastAPI):
  init_db()
  with Session(engine) as session:
    ensure_admin_user(session)
  logger.info("Invoice ledger backend started")
  yield


app = FastAPI(title="Invoice Ledger Backend", version="1.0.0", lifespan=lifespan)
app.add_middleware(
  CORSMiddleware,
  allow_origins=CORS_ORIGINS,
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(billing_router)
app.include_router(payments_router)
app.include_router(data_router)


@app.exception_handler(BillingError)
async def billing_error_handler(request: Request, exc: BillingError):
  logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
  return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.get("/health")
def health():
  return {"ok": True}
