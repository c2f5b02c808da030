import logging
import os
from contextlib import asynccontextmanager
from typing import List, Optional

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

# Project Imports
from database.database import init_db, get_db
from services.ai import ai_service
from services.auth import AuthError, AuthService, AuthState, filter_users, sort_users
from services.mutators import Status, new_milestone
from services.schemas import QuestCategory
from services.storage import SqlKeyValueStore, export_all, reset_all
from services.store import AppStore, completed_count

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Initialize Database on Startup
    init_db()
    yield


app = FastAPI(title="LifeLeveler", description="Gamified Productivity Tracker", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

bearer = HTTPBearer(auto_error=False)
_auth_service: Optional[AuthService] = None


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError):
    return JSONResponse(
        status_code=400,
        content={"detail": str(exc), "toast": exc.notification.to_json()},
    )


# ------------------------- Dependencies -------------------------

def get_auth_service() -> AuthService:
    global _auth_service
    if _auth_service is None:
        _auth_service = AuthService()
    return _auth_service


def require_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
                 auth: AuthService = Depends(get_auth_service)) -> AuthState:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    state = auth.user_for_token(credentials.credentials)
    if not state.is_authenticated:
        raise HTTPException(status_code=401, detail="Invalid or expired session")
    return state


def require_admin(state: AuthState = Depends(require_user)) -> AuthState:
    if not state.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return state


def get_store(state: AuthState = Depends(require_user), db: Session = Depends(get_db)) -> AppStore:
    return AppStore(SqlKeyValueStore(db, namespace=str(state.user.id))).load()


# ------------------------- Request bodies -------------------------

class Credentials(BaseModel):
    email: str
    password: str
    metadata: Optional[dict] = None


class QuestCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = ""
    xp_reward: int = Field(10, ge=0)
    gold_reward: Optional[int] = Field(None, ge=0)
    category: QuestCategory = "side-hustle"


class MilestoneCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    xp_reward: int = Field(10, ge=0)
    gold_reward: Optional[int] = Field(None, ge=0)


class MissionCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = ""
    milestones: List[MilestoneCreate] = Field(..., min_length=1)


class PlanUpdate(BaseModel):
    plan: str


# ------------------------- Public -------------------------

@app.get("/")
def root():
    return {"message": "LifeLeveler API running"}


@app.post("/api/auth/signin")
def sign_in(payload: Credentials, auth: AuthService = Depends(get_auth_service)):
    state = auth.sign_in(payload.email, payload.password)
    return _session_json(state)


@app.post("/api/auth/signup")
def sign_up(payload: Credentials, auth: AuthService = Depends(get_auth_service)):
    state = auth.sign_up(payload.email, payload.password, payload.metadata)
    return _session_json(state)


@app.post("/api/auth/signout")
def sign_out(state: AuthState = Depends(require_user), auth: AuthService = Depends(get_auth_service)):
    auth.sign_out(state.access_token)
    return {"signed_out": True}


def _session_json(state: AuthState) -> dict:
    user = state.user
    session = state.session
    return {
        "user": {"id": str(user.id), "email": getattr(user, "email", None)} if user else None,
        "access_token": getattr(session, "access_token", None) if session else None,
        "is_admin": state.is_admin,
    }


# ------------------------- Dashboard -------------------------

@app.get("/api/dashboard")
async def dashboard(store: AppStore = Depends(get_store)):
    summary = store.dashboard()
    pending = [q for q in summary["daily_quests"] if not q.completed]
    quote = await ai_service.generate_motivation(pending[0].title if pending else None)
    return {
        "stats": summary["stats"].to_json(),
        "xp_percent": summary["xp_percent"],
        "daily_quests": [q.to_json() for q in summary["daily_quests"]],
        "daily_completed": summary["daily_completed"],
        "missions": [m.to_json() for m in summary["missions"]],
        "quote": quote,
    }


@app.get("/api/stats")
def get_stats(store: AppStore = Depends(get_store)):
    return store.stats.to_json()


# ------------------------- Quests -------------------------

@app.get("/api/quests")
def list_quests(category: Optional[QuestCategory] = None, store: AppStore = Depends(get_store)):
    quests = store.quests_by_category(category) if category else store.quests
    return {
        "quests": [q.to_json() for q in quests],
        "completed": completed_count(quests),
        "total": len(quests),
    }


@app.post("/api/quests", status_code=201)
def create_quest(payload: QuestCreate, store: AppStore = Depends(get_store)):
    quest = store.add_quest(
        title=payload.title.strip(),
        description=payload.description,
        xp_reward=payload.xp_reward,
        gold_reward=payload.gold_reward,
        category=payload.category,
    )
    return quest.to_json()


@app.post("/api/quests/reset-daily")
def reset_daily(store: AppStore = Depends(get_store)):
    store.reset_daily_quests()
    return {"quests": [q.to_json() for q in store.quests_by_category("daily")]}


@app.post("/api/quests/{quest_id}/toggle")
def toggle_quest(quest_id: str, store: AppStore = Depends(get_store)):
    result = store.toggle_quest_completion(quest_id)
    if result.status is Status.NOT_FOUND:
        raise HTTPException(status_code=404, detail="Quest not found")
    return {
        "status": result.status.value,
        "quest": result.quest.to_json(),
        "stats": result.stats.to_json(),
    }


@app.get("/api/side-hustle")
def side_hustle(store: AppStore = Depends(get_store)):
    return {
        "weeks": [
            {
                "week_start": week["week_start"].isoformat(),
                "week_end": week["week_end"].isoformat(),
                "quests": [q.to_json() for q in week["quests"]],
                "completed": week["completed"],
                "total_xp": week["total_xp"],
                "total_gold": week["total_gold"],
            }
            for week in store.side_hustle_weeks()
        ]
    }


# ------------------------- Missions -------------------------

@app.get("/api/missions")
def list_missions(store: AppStore = Depends(get_store)):
    return {"missions": [m.to_json() for m in store.missions]}


@app.post("/api/missions", status_code=201)
def create_mission(payload: MissionCreate, store: AppStore = Depends(get_store)):
    milestones = [
        new_milestone(m.title.strip(), index, m.xp_reward, m.gold_reward, m.description)
        for index, m in enumerate(payload.milestones)
    ]
    mission = store.add_mission(payload.title.strip(), milestones, payload.description)
    return mission.to_json()


@app.post("/api/missions/{mission_id}/milestones/{milestone_id}/toggle")
def toggle_milestone(mission_id: str, milestone_id: str, store: AppStore = Depends(get_store)):
    result = store.toggle_milestone_completion(mission_id, milestone_id)
    if result.status is Status.NOT_FOUND:
        raise HTTPException(status_code=404, detail="Mission or milestone not found")
    return {
        "status": result.status.value,
        "mission": result.mission.to_json(),
        "stats": result.stats.to_json(),
    }


# ------------------------- Rewards -------------------------

@app.get("/api/rewards")
def list_rewards(store: AppStore = Depends(get_store)):
    return {"rewards": [r.to_json() for r in store.rewards]}


@app.post("/api/rewards/{reward_id}/purchase")
def purchase_reward(reward_id: str, store: AppStore = Depends(get_store)):
    if not any(r.id == reward_id for r in store.rewards):
        raise HTTPException(status_code=404, detail="Reward not found")
    purchased = store.purchase_reward_item(reward_id)
    reward = next(r for r in store.rewards if r.id == reward_id)
    body = {"purchased": purchased, "reward": reward.to_json(), "stats": store.stats.to_json()}
    if not purchased:
        reason = "Already purchased" if reward.purchased else "Not enough XP or gold"
        body["toast"] = {"title": "Cannot purchase reward", "description": reason, "variant": "destructive"}
    return body


# ------------------------- Settings -------------------------

@app.get("/api/settings/export")
def export_data(state: AuthState = Depends(require_user), db: Session = Depends(get_db)):
    """
    Exports all user data (stats, quests, missions, rewards) as a JSON file download.
    """
    data = export_all(SqlKeyValueStore(db, namespace=str(state.user.id)))
    return JSONResponse(content=data, headers={"Content-Disposition": "attachment; filename=lifeleveler_backup.json"})


@app.post("/api/settings/reset")
def reset_data(state: AuthState = Depends(require_user), db: Session = Depends(get_db)):
    """
    Deletes all data; the next load seeds the defaults again.
    """
    reset_all(SqlKeyValueStore(db, namespace=str(state.user.id)))
    return {"reset": True}


# ------------------------- Admin -------------------------

@app.get("/api/admin/users")
def admin_users(q: str = "", sort: str = "created_at", order: str = "asc",
                _: AuthState = Depends(require_admin), auth: AuthService = Depends(get_auth_service)):
    users = auth.list_profiles()
    try:
        shown = sort_users(filter_users(users, q), sort, order)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {
        "users": [u.model_dump() for u in shown],
        "total": len(users),
        "pro": sum(1 for u in users if u.plan == "pro"),
        "free": sum(1 for u in users if u.plan == "free"),
    }


@app.put("/api/admin/users/{user_id}/plan")
def admin_update_plan(user_id: str, payload: PlanUpdate,
                      _: AuthState = Depends(require_admin), auth: AuthService = Depends(get_auth_service)):
    auth.update_plan(user_id, payload.plan)
    return {"id": user_id, "plan": payload.plan}


if __name__ == "__main__":
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
