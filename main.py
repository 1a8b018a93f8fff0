import logging
from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import FastAPI, Request
from strawberry.fastapi import GraphQLRouter

from ethtrade.config import KNOWN_CHAINS, Settings, configure_logging
from ethtrade.errors import TradingError
from ethtrade.schema import schema
from ethtrade.services.trading import build_trading_service

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = Settings()
    configure_logging(settings)
    trading = build_trading_service(settings)
    app.state.trading = trading
    try:
        try:
            chain_id = await trading.gateway.get_chain_id()
        except TradingError as e:
            logger.warning(f"Could not read chain id from {settings.masked_rpc_url()}: {e.message}")
        else:
            if chain_id != settings.CHAIN_ID:
                logger.warning(
                    f"Node reports chain {chain_id} ({KNOWN_CHAINS.get(chain_id, 'unknown')}), "
                    f"configured CHAIN_ID is {settings.CHAIN_ID}"
                )
            else:
                logger.info(f"Connected to {KNOWN_CHAINS.get(chain_id, 'chain ' + str(chain_id))}")
        yield
    finally:
        logger.info("Shutting down trading service...")
        await trading.close()


# Create context for GraphQL
async def get_context(request: Request) -> Dict[str, Any]:
    return {
        "trading": request.app.state.trading
    }


# Create FastAPI app
app = FastAPI(lifespan=lifespan)

# Add GraphQL route with context
graphql_app = GraphQLRouter(
    schema,
    context_getter=get_context,
)
app.include_router(graphql_app, prefix="/graphql")

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
