from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
import os, logging

load_dotenv()

from log import setup_global_logger

setup_global_logger(
    log_file_path=os.getenv("LOG_FILE", "app.log"),
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
    console=os.getenv("LOG_CONSOLE", "false").lower() == "true",
)

from routers.search_api import s_api
from routers.book_api import b_api
from routers.user_api import u_api
from lib.mongo import DBClient

DB_NAME = os.getenv("DB_NAME", "book-tracker")
MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017")

@asynccontextmanager
async def lifespan(fapp: FastAPI):
    mongo = DBClient.get_instance(uri=MONGO_URI, db_name=DB_NAME)
    mongo.ensure_indexes()
    yield
    mongo.close()

app = FastAPI(title="Book Tracker API", lifespan=lifespan)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(loc) for loc in e["loc"] if loc != "body"), "msg": e["msg"]}
        for e in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=jsonable_encoder({"detail": {"kind": "validation_error", "message": "Validation failed", "errors": errors}}),
    )


@app.get("/health")
async def health():
    return {"status": "OK", "version": "1.0.0"}


app.include_router(s_api, prefix="/books")
app.include_router(b_api, prefix="/books")
app.include_router(u_api, prefix="/user")
