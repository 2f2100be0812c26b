import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from auth import AuthError, UserService
from config import get_settings
from database import SessionLocal
from entity_store import EntityStore, RecordNotFoundError, UnknownEntityError
from models import User
from scheduler import SchedulerManager
from schemas import FilterIn, LoginIn, SignupIn

logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Membership Ledger")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def current_user(request: Request, db: Session = Depends(get_db)) -> User:
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    try:
        return UserService(db).from_token(token.strip())
    except AuthError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc


scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"message": str(exc)})


async def _json_body(request: Request) -> Any:
    raw = await request.body()
    if not raw:
        return None
    try:
        return await request.json()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid JSON body") from exc


def _int_param(value: Optional[str], name: str) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid {name}") from exc


auth_router = APIRouter(prefix="/api/auth")


@auth_router.post("/signup")
async def signup(request: Request, db: Session = Depends(get_db)):
    try:
        data = SignupIn.model_validate(await _json_body(request) or {})
        return UserService(db).signup(data).model_dump()
    except ValidationError as exc:
        raise HTTPException(
            status_code=400,
            detail="email and password (min 6 characters) are required",
        ) from exc
    except AuthError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc


@auth_router.post("/login")
async def login(request: Request, db: Session = Depends(get_db)):
    try:
        data = LoginIn.model_validate(await _json_body(request) or {})
        return UserService(db).login(data).model_dump()
    except ValidationError as exc:
        raise HTTPException(
            status_code=400, detail="email and password are required"
        ) from exc
    except AuthError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc


@auth_router.get("/me")
def me(user: User = Depends(current_user)):
    return user.to_public()


entities_router = APIRouter(prefix="/api/entities", dependencies=[Depends(current_user)])


@entities_router.get("/{entity}")
def list_entities(entity: str, request: Request, db: Session = Depends(get_db)):
    params = request.query_params
    try:
        return EntityStore(db).list(
            entity,
            params.get("sort") or None,
            _int_param(params.get("limit"), "limit"),
            _int_param(params.get("page"), "page"),
        )
    except UnknownEntityError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@entities_router.post("/{entity}/filter")
async def filter_entities(entity: str, request: Request, db: Session = Depends(get_db)):
    body = await _json_body(request) or {}
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Expected a JSON object")
    # a bare predicate object is accepted as the where clause
    if not isinstance(body.get("where"), dict):
        body = {"where": body}
    try:
        query = FilterIn.model_validate(body)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail="Invalid filter") from exc
    try:
        return EntityStore(db).filter(
            entity, query.where, query.sort, query.limit, query.page
        )
    except UnknownEntityError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@entities_router.post("/{entity}/bulk", status_code=201)
async def bulk_create_entities(
    entity: str, request: Request, db: Session = Depends(get_db)
):
    body = await _json_body(request)
    items = body if isinstance(body, list) else (body or {}).get("items")
    if not isinstance(items, list):
        raise HTTPException(status_code=400, detail="Expected an array or { items: [] }")
    try:
        return EntityStore(db).bulk_create(entity, items)
    except UnknownEntityError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail="Duplicate id") from exc


@entities_router.post("/{entity}", status_code=201)
async def create_entity(entity: str, request: Request, db: Session = Depends(get_db)):
    body = await _json_body(request) or {}
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Expected a JSON object")
    try:
        return EntityStore(db).create(entity, body)
    except UnknownEntityError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail="Duplicate id") from exc


@entities_router.patch("/{entity}/{record_id}")
async def update_entity(
    entity: str, record_id: str, request: Request, db: Session = Depends(get_db)
):
    body = await _json_body(request) or {}
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Expected a JSON object")
    try:
        return EntityStore(db).update(entity, record_id, body)
    except (UnknownEntityError, RecordNotFoundError) as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@entities_router.delete("/{entity}/{record_id}", status_code=204)
def delete_entity(entity: str, record_id: str, db: Session = Depends(get_db)):
    try:
        deleted = EntityStore(db).remove(entity, record_id)
    except UnknownEntityError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if not deleted:
        raise HTTPException(status_code=404, detail=f"{entity} not found")
    return Response(status_code=204)


app.include_router(auth_router)
app.include_router(entities_router)


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=3001, reload=False)


if __name__ == "__main__":
    main()
