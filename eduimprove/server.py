from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from eduimprove.config import settings
from eduimprove.db.database import init_db
from eduimprove.middleware.auth import AuthMiddleware

# CORS: use CORS_ORIGINS (comma-separated) or local dev defaults.
if settings.cors_origins:
    _allowed_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
else:
    _allowed_origins = [
        "http://localhost:8080",
        "http://127.0.0.1:8080",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield


app = FastAPI(title="EduImprove AI", lifespan=lifespan)

app.add_middleware(AuthMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

# Import and register routes
from eduimprove.routes.auth import router as auth_router
from eduimprove.routes.chat import router as chat_router
from eduimprove.routes.quiz import router as quiz_router
from eduimprove.routes.sessions import router as sessions_router
from eduimprove.routes.students import router as students_router
from eduimprove.routes.reports import router as reports_router
from eduimprove.routes.leaderboard import router as leaderboard_router

app.include_router(auth_router)
app.include_router(chat_router)
app.include_router(quiz_router)
app.include_router(sessions_router)
app.include_router(students_router)
app.include_router(reports_router)
app.include_router(leaderboard_router)


@app.get("/health")
async def health_check():
    return {"status": "ok"}
