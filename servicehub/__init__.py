from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from servicehub.core.logging import configure_logging
from servicehub.db.database import init_db
from servicehub.exceptions import (
    create_exception_handler,
    ActorRequiredException,
    ConcurrentModificationException,
    DependencyBlockedException,
    IllegalTransitionException,
    QuoteOnlyServiceException,
    StaleCartItemException,
    UnauthorizedActionException,
    UpstreamServiceException,
)
from servicehub.routers.bookings import router as bookings_router
from servicehub.routers.cart import router as cart_router
from servicehub.routers.catalog import router as catalog_router
from servicehub.routers.notifications import router as notifications_router
from servicehub.routers.quotes import router as quotes_router
from servicehub.services.invalidation import InvalidationHub
from dotenv import load_dotenv

load_dotenv()
configure_logging()

api_version = "v1"
swagger_docs_url = f"/api/{api_version}/docs"
redoc_docs_url = f"/api/{api_version}/redoc"
openapi_url = f"/api/{api_version}/openapi.json"


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield


app = FastAPI(
    docs_url=swagger_docs_url,
    redoc_url=redoc_docs_url,
    openapi_url=openapi_url,
    title="ServiceHub Booking API",
    description="Cart, booking lifecycle and catalog safety checks for a local-services marketplace.",
    version="1.0.0",
    lifespan=lifespan,
)

app.state.invalidation_hub = InvalidationHub()

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        'http://localhost',
        'http://localhost:3000',
    ],
    allow_credentials=True,
    allow_methods=['GET', 'POST', 'PUT', 'PATCH', 'DELETE'],
    allow_headers=["*"],
)

# Register endpoints
app.include_router(cart_router, prefix=f'/api/{api_version}/cart', tags=["Cart"])
app.include_router(bookings_router, prefix=f'/api/{api_version}/bookings', tags=["Bookings"])
app.include_router(quotes_router, prefix=f'/api/{api_version}/quotes', tags=["Quote Requests"])
app.include_router(catalog_router, prefix=f'/api/{api_version}/catalog', tags=["Catalog"])
app.include_router(notifications_router, prefix=f'/api/{api_version}/notifications', tags=["Notifications"])

# Add a root endpoint for health check
@app.get("/")
async def root():
    return {
        "message": "ServiceHub Booking API",
        "version": "1.0.0",
        "docs": swagger_docs_url,
        "status": "running"
    }

@app.get("/health")
async def health_check():
    return {"status": "healthy"}

# Register custom exceptions

# Identity and permission handlers
app.add_exception_handler(ActorRequiredException, create_exception_handler(401))
app.add_exception_handler(UnauthorizedActionException, create_exception_handler(403))

# Cart and pricing handlers
app.add_exception_handler(QuoteOnlyServiceException, create_exception_handler(422))
app.add_exception_handler(StaleCartItemException, create_exception_handler(409))

# Booking lifecycle handlers
app.add_exception_handler(IllegalTransitionException, create_exception_handler(409))
app.add_exception_handler(ConcurrentModificationException, create_exception_handler(409))

# Catalog handlers
app.add_exception_handler(DependencyBlockedException, create_exception_handler(409))

# Collaborator handlers
app.add_exception_handler(UpstreamServiceException, create_exception_handler(502))
