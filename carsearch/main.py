from contextlib import asynccontextmanager
import logging

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from carsearch.api.endpoints import cars, chat
from carsearch.config import settings
from carsearch.db.session import async_session_factory, close_db, init_db
from carsearch.services.conversation_service import ConversationService
from carsearch.services.criteria_extractor import CriteriaExtractor
from carsearch.services.openai_service import OpenAIService
from carsearch.services.reply_composer import ReplyComposer
from carsearch.services.turn_orchestrator import TurnOrchestrator
from carsearch.tools.car_inventory import CarInventory

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def build_orchestrator(inventory: CarInventory) -> TurnOrchestrator:
    llm = OpenAIService()
    return TurnOrchestrator.from_settings(
        settings,
        store=ConversationService(async_session_factory),
        extractor=CriteriaExtractor(llm, settings.EXTRACTION_MODEL),
        composer=ReplyComposer(llm, settings.COMPOSER_MODEL),
        inventory=inventory,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    app.state.inventory = CarInventory(async_session_factory)
    app.state.orchestrator = build_orchestrator(app.state.inventory)
    logger.info(f"🚀 Car search API started ({settings.ENVIRONMENT})")
    yield
    await app.state.orchestrator.shutdown()
    await close_db()


# Initialize the App
app = FastAPI(
    title="Car Search Chat API",
    description="Conversational car search with streamed replies",
    version="1.0.0",
    lifespan=lifespan,
)

# --- CORS MIDDLEWARE ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, replace with specific domains
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- ROUTER REGISTRATION ---
# Resulting URL: http://localhost:8000/api/v1/chats
app.include_router(
    chat.router,
    prefix="/api/v1",
    tags=["Chats"]
)
app.include_router(
    cars.router,
    prefix="/api/v1",
    tags=["Cars"]
)

# --- ROOT ENDPOINT ---
@app.get("/")
async def health_check():
    return {
        "status": "active",
        "service": "Car Search Chat API",
        "version": "1.0.0"
    }

# --- ENTRY POINT ---
# Allows you to run: python -m carsearch.main
if __name__ == "__main__":
    uvicorn.run("carsearch.main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
