from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from datetime import datetime
from typing import Optional
from dotenv import load_dotenv
import logging
from contextlib import asynccontextmanager

from ..config.database import AppConfig, app_config
from ..repositories.base import PersonaStore
from ..repositories.persona_repository import PersonaRepository
from ..services.action_log import ActionLogService
from ..services.database import DatabaseManager, db_manager
from ..services.persona_service import PersonaService, load_template_catalog
from ..services.reputation_engine import ReputationEngine
from ..services.scoring_rules import ScoringRuleBook
from .routes import personas

load_dotenv()

logging.basicConfig(level=app_config.log_level)
logger = logging.getLogger(__name__)


def create_app(store: Optional[PersonaStore] = None, config: Optional[AppConfig] = None) -> FastAPI:
    """Build the API application.

    Without a store the PostgreSQL repository is used and the database is
    connected, migrated and seeded on startup.
    """
    config = config or app_config
    database = db_manager if config is app_config else DatabaseManager(config.postgresql)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        persona_store = store
        if persona_store is None:
            if not config.is_configured:
                logger.warning("PostgreSQL password or host is not set")
            try:
                await database.initialize()
                persona_store = PersonaRepository(database)
                await persona_store.create_schema()
            except Exception as e:
                logger.error(f"Failed to initialize application: {e}")
                raise

        engine = ReputationEngine(
            persona_store,
            config=config.reputation,
            scoring_rules=ScoringRuleBook.from_yaml(config.reputation.scoring_rules_path)
        )
        service = PersonaService(persona_store, engine)
        await service.seed_templates(load_template_catalog(
            config.reputation.template_catalog_path,
            default_kudos_quota=config.reputation.default_kudos_quota_daily
        ))

        app.state.persona_store = persona_store
        app.state.reputation_engine = engine
        app.state.persona_service = service
        app.state.action_log = ActionLogService(
            persona_store,
            clock=engine.clock,
            default_limit=config.reputation.action_history_limit
        )
        logger.info("Application startup complete")

        yield

        # Shutdown
        if store is None:
            await database.close()
            logger.info("Application shutdown complete")

    app = FastAPI(title="Persona Reputation Ledger API", lifespan=lifespan)

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3020", "https://localhost:3020"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(personas.router)

    @app.get("/api/health")
    async def health_check():
        """Basic health check, with database status when PostgreSQL is in use"""
        health = {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "config": config.get_health_check_config()
        }
        if store is None:
            databases = await database.health_check()
            health["databases"] = databases
            health["connection_pools"] = database.get_pool_status()
            if not all(databases.values()):
                health["status"] = "degraded"
        return health

    return app


app = create_app()
