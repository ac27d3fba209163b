from fastapi import FastAPI
from brokerdesk.core.logging_config import configure_logging
from brokerdesk.routers import lead, load, keyword, metrics, agent

configure_logging()

app = FastAPI(
    title="BrokerDesk Lead/Load Resolution Engine",
    version="1.0.0"
)

# --- Register Routers ---
app.include_router(lead.router)     # /api/v1/leads/*
app.include_router(load.router)     # /api/v1/loads/*
app.include_router(keyword.router)  # /api/v1/keywords/*
app.include_router(metrics.router)  # /api/v1/metrics
app.include_router(agent.router)    # /api/v1/agents/*


# --- Root health check ---
@app.get("/")
async def root():
    return {"message": "BrokerDesk API is running"}
