import time
import uuid
from typing import List
from fastapi import Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as SchemaError
from loguru import logger
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from config import HOST, LOG_FILE, LOG_LEVEL, LOG_ROTATION, PORT, SERVICE_NAME
from errors import NotFoundError, ValidationError
from schemas import UserCreate, UserResponse, UserUpdate
from store import UserStore

# Config logging JSON (niveaux INFO, WARNING, ERROR)
logger.remove()  # Supprime le handler par défaut
logger.add(
    sink=LOG_FILE,
    format="{time:YYYY-MM-DDTHH:mm:ss.SSSZ} | {level} | {message} | {extra}",
    level=LOG_LEVEL,
    serialize=True,  # Format JSON
    rotation=LOG_ROTATION,
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

app = FastAPI(title="Users Service")

# Stockage en mémoire, partagé par les handlers via get_store
app.state.store = UserStore()


def get_store(request: Request) -> UserStore:
    return request.app.state.store


def endpoint_label(request: Request) -> str:
    # Label fixe pour les chemins inconnus (cardinalité bornée)
    route = request.scope.get("route")
    return getattr(route, "path", "unmatched")


def parse_user_id(raw: str) -> int:
    # Un id non numérique ne correspond à aucun utilisateur: 404, pas 400
    try:
        user_id = int(raw) if raw.isascii() and raw.isdigit() else 0
    except ValueError:
        # Au-delà de la limite de conversion int/str de Python
        user_id = 0
    if user_id < 1:
        logger.warning("Invalid user id {!r}", raw[:32])
        raise NotFoundError("User not found")
    return user_id


def parse_changes(raw: bytes) -> dict:
    # Corps absent: aucune modification
    if not raw.strip():
        return {}
    try:
        changes = UserUpdate.model_validate_json(raw)
    except SchemaError as exc:
        logger.warning("Invalid update body: {} errors", exc.error_count())
        raise ValidationError("Invalid fields") from exc
    return changes.model_dump(exclude_unset=True)


# Middleware pour logger les requests avec correlation ID (observabilité)
@app.middleware("http")
async def log_requests(request: Request, call_next):
    # Generate or propagate correlation ID (trace-id)
    trace_id = request.headers.get("X-Trace-ID", str(uuid.uuid4()))
    start_time = time.time()

    # Bind trace_id to logger context
    with logger.contextualize(trace_id=trace_id, service=SERVICE_NAME):
        logger.info(
            "Request: {} {}", request.method, request.url.path,
            extra={"method": request.method, "url": str(request.url), "trace_id": trace_id}
        )

        response = await call_next(request)

        # Calculate latency
        latency = time.time() - start_time
        endpoint = endpoint_label(request)

        # Record metrics
        REQUEST_COUNT.labels(
            service=SERVICE_NAME,
            method=request.method,
            endpoint=endpoint,
            status=response.status_code
        ).inc()
        REQUEST_LATENCY.labels(
            service=SERVICE_NAME,
            method=request.method,
            endpoint=endpoint
        ).observe(latency)

        logger.info(
            f"Response status: {response.status_code}",
            extra={"status": response.status_code, "latency": latency, "trace_id": trace_id}
        )

        # Add trace_id to response headers for tracing
        response.headers["X-Trace-ID"] = trace_id
        return response


def error_response(request: Request, status_code: int, error_type: str, message: str) -> JSONResponse:
    ERROR_COUNT.labels(service=SERVICE_NAME, endpoint=endpoint_label(request), error_type=error_type).inc()
    return JSONResponse(status_code=status_code, content={"error": message})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return error_response(request, 400, "validation", exc.message)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return error_response(request, 404, "not_found", exc.message)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Corps de requête invalide: 400 avec le format d'erreur du service."""
    logger.warning(f"Invalid request body on {request.method} {request.url.path}")
    # Seul POST /users déclare un corps typé
    return error_response(request, 400, "invalid_body", "Missing fields")


@app.get("/metrics")
async def metrics():
    """Endpoint /metrics compatible Prometheus"""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/health")
async def health():
    """Health check endpoint"""
    return {"status": "healthy", "service": SERVICE_NAME}


@app.get("/users", response_model=List[UserResponse])
async def get_users(store: UserStore = Depends(get_store)):
    logger.info("Fetching all users")
    return store.list()


@app.get("/users/{user_id}", response_model=UserResponse)
async def get_user(user_id: str, store: UserStore = Depends(get_store)):
    logger.info(f"Fetching user {user_id}")
    return store.get(parse_user_id(user_id))


@app.post("/users", response_model=UserResponse, status_code=201)
async def create_user(user: UserCreate, store: UserStore = Depends(get_store)):
    logger.info(f"Creating user: {user.name}")
    return store.create(user.name, user.email)


@app.put("/users/{user_id}", response_model=UserResponse)
async def update_user(user_id: str, request: Request, store: UserStore = Depends(get_store)):
    """
    Mise à jour partielle: seuls les champs envoyés sont modifiés.
    Un corps vide est accepté et renvoie l'utilisateur inchangé.
    L'existence de l'utilisateur est vérifiée avant le corps (404 avant 400).
    """
    uid = parse_user_id(user_id)
    store.get(uid)
    fields = parse_changes(await request.body())
    logger.info("Updating user {}", uid, extra={"fields": sorted(fields)})
    return store.update(uid, fields)


@app.delete("/users/{user_id}", status_code=204)
async def delete_user(user_id: str, store: UserStore = Depends(get_store)):
    logger.info(f"Deleting user {user_id}")
    store.delete(parse_user_id(user_id))
    return Response(status_code=204)


# Endpoint de test: vide le store et remet le compteur d'ids à 1
@app.post("/test/reset", status_code=204)
async def reset_users(store: UserStore = Depends(get_store)):
    logger.warning("Resetting users store")
    store.reset()
    return Response(status_code=204)


if __name__ == "__main__":
    logger.info(f"Starting Users Service on port {PORT}")
    import uvicorn
    uvicorn.run(app, host=HOST, port=PORT)
