from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from geoprice.core.config import CORS_ORIGINS
from geoprice.core.state import cached_data
from geoprice.services.data_loader import initialize_data
from geoprice.api.routes import router as api_router

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Load regions and model on startup; a bad artifact aborts startup
    initialize_data()
    yield

app = FastAPI(
    title="Home Price Prediction API",
    lifespan=lifespan
)

# Form widget is served from another origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router)

@app.get("/")
def health_check():
    return {
        "status": "Price Prediction Service Running",
        "data_loaded": cached_data.get('regions') is not None and cached_data.get('model') is not None,
    }

if __name__ == '__main__':
    import uvicorn
    uvicorn.run("geoprice.main:app", host='0.0.0.0', port=5000, reload=True)
