import time
import uuid
from typing import List
from fastapi import APIRouter, FastAPI, HTTPException, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST
from models import User
from schemas import UserCreate, UserResponse, UserUpdate
from settings import API_PREFIX, HOST, LOG_FILE, LOG_LEVEL, PORT, SERVICE_NAME
from store import UserConflict, UserNotFound, users_store

# Config logging JSON (niveaux INFO, WARNING, ERROR)
logger.remove()  # Supprime le handler par défaut
logger.add(
    sink=LOG_FILE,
    format="{time:YYYY-MM-DDTHH:mm:ss.SSSZ} | {level} | {message} | {extra}",
    level=LOG_LEVEL,
    serialize=True,  # Format JSON
    rotation="1 day",  # Rotation quotidienne
)

# Prometheus metrics
REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "method", "endpoint", "status"]
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["service", "method", "endpoint"]
)
ERROR_COUNT = Counter(
    "http_errors_total",
    "Total HTTP errors",
    ["service", "endpoint", "error_type"]
)
STORE_SIZE = Gauge(
    "users_store_size",
    "Number of users held in memory",
    ["service"]
)
STORE_SIZE.labels(service=SERVICE_NAME).set(len(users_store))

app = FastAPI(
    title="Users CRUD API",
    version="1.0",
    description="In-memory user records with list, create, read, update and delete operations.",
    terms_of_service="http://swagger.io/terms/",
    contact={
        "name": "API Support",
        "url": "http://www.swagger.io/support",
        "email": "support@swagger.io",
    },
    license_info={
        "name": "Apache 2.0",
        "url": "http://www.apache.org/licenses/LICENSE-2.0.html",
    },
    docs_url="/swagger",
)

router = APIRouter(prefix=f"{API_PREFIX}/users", tags=["users"])

NOT_FOUND = {404: {"description": "User not found"}}
BAD_REQUEST = {400: {"description": "Malformed request"}}


# Middleware pour logger les requests avec correlation ID (observabilité)
@app.middleware("http")
async def log_requests(request: Request, call_next):
    # Generate or propagate correlation ID (trace-id)
    trace_id = request.headers.get("X-Trace-ID", str(uuid.uuid4()))
    start_time = time.time()

    # Bind trace_id to logger context
    with logger.contextualize(trace_id=trace_id, service=SERVICE_NAME):
        logger.info(
            f"Request: {request.method} {request.url.path}",
            extra={"method": request.method, "url": str(request.url), "trace_id": trace_id}
        )

        response = await call_next(request)

        latency = time.time() - start_time

        REQUEST_COUNT.labels(
            service=SERVICE_NAME,
            method=request.method,
            endpoint=request.url.path,
            status=response.status_code
        ).inc()
        REQUEST_LATENCY.labels(
            service=SERVICE_NAME,
            method=request.method,
            endpoint=request.url.path
        ).observe(latency)

        logger.info(
            f"Response status: {response.status_code}",
            extra={"status": response.status_code, "latency": latency, "trace_id": trace_id}
        )

        # Add trace_id to response headers for tracing
        response.headers["X-Trace-ID"] = trace_id
        return response


@app.exception_handler(RequestValidationError)
async def decode_error_handler(request: Request, exc: RequestValidationError):
    """Body qui ne se décode pas en User, ou id non numérique: 400 au lieu du 422 de FastAPI."""
    logger.warning(f"Malformed request on {request.url.path}", extra={"errors": str(exc.errors())})
    ERROR_COUNT.labels(service=SERVICE_NAME, endpoint=request.url.path, error_type="decode_error").inc()
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


def user_not_found(exc: UserNotFound, endpoint: str) -> HTTPException:
    logger.warning(f"User {exc.user_id} not found")
    ERROR_COUNT.labels(service=SERVICE_NAME, endpoint=endpoint, error_type="not_found").inc()
    return HTTPException(status_code=404, detail="User not found")


def track_store_size():
    STORE_SIZE.labels(service=SERVICE_NAME).set(len(users_store))


@app.get("/metrics")
async def metrics():
    """Endpoint /metrics compatible Prometheus"""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/health")
async def health():
    """Health check endpoint"""
    return {"status": "healthy", "service": SERVICE_NAME}


@router.get("", response_model=List[UserResponse], summary="Get all users")
async def get_users():
    """Get all users from the system, in creation order."""
    logger.info("Fetching all users")
    return users_store.list()


@router.post(
    "",
    response_model=UserResponse,
    status_code=201,
    summary="Create a new user",
    responses=BAD_REQUEST,
)
async def create_user(user: UserCreate):
    """Create a new user. Any id sent by the client is ignored."""
    logger.info(f"Creating user: {user.name}")
    new_user = users_store.create(name=user.name, email=user.email)
    track_store_size()
    logger.info(f"User created with ID {new_user.id}")
    return new_user


@router.get(
    "/{user_id}",
    response_model=UserResponse,
    summary="Get a user by ID",
    responses={**BAD_REQUEST, **NOT_FOUND},
)
async def get_user(user_id: int):
    logger.info(f"Fetching user {user_id}")
    try:
        return users_store.get(user_id)
    except UserNotFound as exc:
        raise user_not_found(exc, "/users/{user_id}")


@router.put(
    "/{user_id}",
    response_model=UserResponse,
    summary="Update a user by ID",
    responses={**BAD_REQUEST, **NOT_FOUND, 409: {"description": "Id already used by another user"}},
)
async def update_user(user_id: int, user: UserUpdate):
    """
    Update a user by ID. Only the fields present in the body are changed.

    Sending an `id` moves the user to that id; the user is then no longer
    reachable under the old one.
    """
    logger.info(f"Updating user {user_id}")
    try:
        updated: User = users_store.update(user_id, user.changes())
    except UserNotFound as exc:
        raise user_not_found(exc, "/users/{user_id}")
    except UserConflict as exc:
        logger.error(f"Cannot move user {user_id} to id {exc.user_id}: already taken")
        ERROR_COUNT.labels(service=SERVICE_NAME, endpoint="/users/{user_id}", error_type="id_conflict").inc()
        raise HTTPException(status_code=409, detail="User id already exists")
    if updated.id != user_id:
        logger.warning(f"User {user_id} now has ID {updated.id}")
    return updated


@router.delete(
    "/{user_id}",
    status_code=204,
    summary="Delete a user by ID",
    responses={**BAD_REQUEST, **NOT_FOUND},
)
async def delete_user(user_id: int):
    logger.info(f"Deleting user {user_id}")
    try:
        users_store.delete(user_id)
    except UserNotFound as exc:
        raise user_not_found(exc, "/users/{user_id}")
    track_store_size()
    logger.info(f"User {user_id} deleted")
    return Response(status_code=204)


app.include_router(router)


if __name__ == "__main__":
    logger.info(f"Starting Users Service on port {PORT}")
    import uvicorn
    uvicorn.run(app, host=HOST, port=PORT)
