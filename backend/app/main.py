import logging
import threading
from typing import Any

from fastapi import Body, FastAPI, HTTPException
from pydantic import BaseModel

from app.logging_config import setup_logging
from gm_os.bootstrap import build_manager_from_env
from gm_os.schemas import ActionError, ComplexAction, parse_action
from rules.registry import RuleError
from state import encoder

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="hybrid-runner API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

# The manager is not reentrant; every call that touches it holds this lock.
manager_lock = threading.Lock()
manager = build_manager_from_env()


class ActionRequest(BaseModel):
    action: dict[str, Any]
    context: dict[str, Any] | None = None


class ResetRequest(BaseModel):
    state: dict[str, Any] | None = None


def _parse(payload: dict[str, Any]):
    try:
        return parse_action(payload)
    except ActionError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.post("/actions")
def process_action(request: ActionRequest) -> dict:
    action = _parse(request.action)
    with manager_lock:
        result = manager.process_action(action, request.context or {})
    return result.as_dict()


@app.post("/classify")
def classify_action(payload: dict[str, Any] = Body(...)) -> dict:
    action = _parse(payload)
    with manager_lock:
        if isinstance(action, ComplexAction):
            classification = manager.classifier.classify_complex(action.steps)
            requirements = None
        else:
            classification = manager.classifier.classify(action, manager.state)
            requirements = manager.classifier.requirements(action)
    return {"classification": classification.as_dict(), "requirements": requirements}


@app.get("/state")
def current_state() -> dict:
    with manager_lock:
        return manager.state_for_narrative()


@app.get("/rules")
def current_rules() -> dict:
    with manager_lock:
        return manager.rules_for_narrative()


@app.post("/rules/custom")
def add_custom_rule(payload: dict[str, Any] = Body(...)) -> dict:
    with manager_lock:
        try:
            rule = manager.registry.add_custom_rule(payload)
        except RuleError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"domain": payload["domain"], "name": payload["name"], "rule": rule.as_dict()}


@app.get("/diff/last")
def last_diff() -> dict:
    with manager_lock:
        diff = manager.last_diff()
        if diff is None:
            return {"diff": None}
        return {"diff": manager.differ.for_narrative_generator(diff)}


@app.get("/report")
def system_report() -> dict:
    with manager_lock:
        return manager.system_report()


@app.post("/reset")
def reset(request: ResetRequest | None = None) -> dict:
    global manager
    state = None
    if request is not None and request.state is not None:
        if not encoder.validate(request.state):
            raise HTTPException(status_code=400, detail="State record failed schema validation")
        state = encoder.decode(request.state)

    with manager_lock:
        manager.teardown()
        manager = build_manager_from_env(state)
    logger.info("Manager reset")
    return {"status": "reset", "state": encoder.encode(manager.state)}
