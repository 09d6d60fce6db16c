from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Response, status
from pydantic import BaseModel, Field, validator

from ezfuck.compiler import EzfuckSyntaxError, compile_source
from ezfuck.interpreter import EzfuckInterpreter, ExecutionState, PointerUnderflow, Snapshot, StepLimitExceeded
from ezfuck.visualizer import VisualizerSession

from .session import SessionRecord, SessionStore

logger = logging.getLogger(__name__)

DIALECTS = {"ezfuck", "brainfuck"}


def _string_to_input_bytes(data: str) -> List[int]:
    return list(data.encode("utf-8"))


def _state_to_dict(state: Snapshot) -> dict:
    return {
        "step": state.step,
        "pc": state.pc,
        "instruction": None if state.instruction is None else str(state.instruction),
        "pointer": state.pointer,
        "tape_start": state.tape_start,
        "tape": list(state.tape),
        "output": state.output,
        "code_length": state.code_length,
        "debugging": state.debugging,
    }


def _calculate_total_steps(
    code: str,
    input_template: List[int],
    brainfuck: bool,
    cap: int = 10000,
) -> tuple[int, bool]:
    interpreter = EzfuckInterpreter()
    interpreter.reset(list(input_template))
    program = compile_source(code, brainfuck=brainfuck)
    total = 0
    try:
        for state in interpreter.step(program, ExecutionState(), max_steps=cap):
            if state.step > total:
                total = state.step
    except StepLimitExceeded:
        return cap, True
    except PointerUnderflow:
        # the run stops at the failing instruction
        pass
    return total, total >= cap


class SessionConfiguration(BaseModel):
    code: str = ""
    input: str = ""
    tape_window: int = Field(default=10, ge=0)
    max_steps: Optional[int] = Field(default=None, ge=1)
    history_limit: int = Field(default=200, ge=1)
    dialect: str = "ezfuck"

    @validator("dialect")
    def validate_dialect(cls, value: str) -> str:
        normalized = value.lower()
        if normalized not in DIALECTS:
            raise ValueError("dialect must be either 'ezfuck' or 'brainfuck'")
        return normalized


class SessionState(BaseModel):
    step: int
    pc: int
    instruction: Optional[str]
    pointer: int
    tape_start: int
    tape: List[int]
    output: str
    code_length: int
    debugging: bool


class SessionPayload(BaseModel):
    session_id: str
    dialect: str
    code: str
    listing: List[str]
    state: SessionState
    history: List[SessionState]
    finished: bool
    history_size: int
    breakpoints: List[int]
    hit_breakpoint: Optional[int]
    total_steps: int
    total_steps_capped: bool


class StepRequest(BaseModel):
    count: int = Field(default=1, ge=1)


class StepResponse(BaseModel):
    session_id: str
    states: List[SessionState]
    history: List[SessionState]
    finished: bool
    history_size: int
    breakpoints: List[int]
    hit_breakpoint: Optional[int]
    total_steps: int
    total_steps_capped: bool


class RunRequest(BaseModel):
    limit: Optional[int] = Field(default=None, ge=1)
    ignore_breakpoints: bool = False


class InjectRequest(BaseModel):
    code: str


class InjectResponse(BaseModel):
    session_id: str
    state: SessionState
    errors: List[str]


class BreakpointRequest(BaseModel):
    pc: int = Field(ge=0)


def create_app(store: Optional[SessionStore] = None) -> FastAPI:
    session_store = store or SessionStore()
    app = FastAPI(title="Ezfuck WebUI API", version="0.1.0")

    def _get_record(session_id: str) -> SessionRecord:
        try:
            return session_store.get(session_id)
        except KeyError as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    def _history_states(session: VisualizerSession) -> List[SessionState]:
        return [SessionState(**_state_to_dict(state)) for state in session.history]

    def _build_payload(record: SessionRecord) -> SessionPayload:
        session = record.session
        return SessionPayload(
            session_id=record.session_id,
            dialect=record.dialect,
            code=session.code,
            listing=[str(instruction) for instruction in session.program],
            state=SessionState(**_state_to_dict(session.current_state())),
            history=_history_states(session),
            finished=session.is_finished(),
            history_size=len(session.history),
            breakpoints=session.list_breakpoints(),
            hit_breakpoint=session.hit_breakpoint,
            total_steps=record.total_steps,
            total_steps_capped=record.total_steps_capped,
        )

    def _build_step_response(record: SessionRecord, states: List[Snapshot]) -> StepResponse:
        session = record.session
        return StepResponse(
            session_id=record.session_id,
            states=[SessionState(**_state_to_dict(state)) for state in states],
            history=_history_states(session),
            finished=session.is_finished(),
            history_size=len(session.history),
            breakpoints=session.list_breakpoints(),
            hit_breakpoint=session.hit_breakpoint,
            total_steps=record.total_steps,
            total_steps_capped=record.total_steps_capped,
        )

    @app.post("/api/session", response_model=SessionPayload, status_code=status.HTTP_201_CREATED)
    def create_session(payload: SessionConfiguration) -> SessionPayload:
        brainfuck = payload.dialect == "brainfuck"
        input_bytes = _string_to_input_bytes(payload.input)
        try:
            total_steps, total_steps_capped = _calculate_total_steps(
                payload.code,
                input_bytes,
                brainfuck,
            )
        except EzfuckSyntaxError as exc:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=str(exc),
            ) from exc

        session = VisualizerSession(
            code=payload.code,
            input_template=input_bytes,
            tape_window=payload.tape_window,
            max_steps=payload.max_steps,
            history_limit=payload.history_limit,
            brainfuck=brainfuck,
        )
        record = session_store.add(
            session,
            total_steps=total_steps,
            total_steps_capped=total_steps_capped,
        )
        logger.debug("created session %s (%s)", record.session_id, record.dialect)
        return _build_payload(record)

    @app.get("/api/session/{session_id}", response_model=SessionPayload)
    def get_session(session_id: str) -> SessionPayload:
        return _build_payload(_get_record(session_id))

    @app.post("/api/session/{session_id}/reset", response_model=SessionPayload)
    def reset_session(session_id: str) -> SessionPayload:
        try:
            record = session_store.reset(session_id)
        except KeyError as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
        return _build_payload(record)

    @app.post("/api/session/{session_id}/step", response_model=StepResponse)
    def step_session(session_id: str, payload: StepRequest) -> StepResponse:
        record = _get_record(session_id)
        try:
            states = record.session.step_forward(payload.count)
        except (StepLimitExceeded, PointerUnderflow) as exc:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=str(exc),
            ) from exc
        return _build_step_response(record, list(states))

    @app.post("/api/session/{session_id}/run", response_model=StepResponse)
    def run_session(session_id: str, payload: RunRequest) -> StepResponse:
        record = _get_record(session_id)
        session = record.session
        original_breakpoints: Optional[set[int]] = None
        if payload.ignore_breakpoints:
            original_breakpoints = set(session.breakpoints)
            session.clear_breakpoints()
            session.hit_breakpoint = None

        try:
            states = list(session.run_until_break(payload.limit))
        except (StepLimitExceeded, PointerUnderflow) as exc:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=str(exc),
            ) from exc
        finally:
            if original_breakpoints is not None:
                session.breakpoints = original_breakpoints

        return _build_step_response(record, states)

    @app.post("/api/session/{session_id}/inject", response_model=InjectResponse)
    def inject_code(session_id: str, payload: InjectRequest) -> InjectResponse:
        record = _get_record(session_id)
        snapshot = record.session.inject(payload.code)
        return InjectResponse(
            session_id=record.session_id,
            state=SessionState(**_state_to_dict(snapshot)),
            errors=record.session.injection_errors(),
        )

    @app.post("/api/session/{session_id}/breakpoints", response_model=SessionPayload)
    def add_breakpoint(session_id: str, payload: BreakpointRequest) -> SessionPayload:
        record = _get_record(session_id)
        record.session.add_breakpoint(payload.pc)
        return _build_payload(record)

    @app.delete("/api/session/{session_id}/breakpoints/{pc}", response_model=SessionPayload)
    def remove_breakpoint(session_id: str, pc: int) -> SessionPayload:
        record = _get_record(session_id)
        if not record.session.remove_breakpoint(pc):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Breakpoint not found at pc={pc}",
            )
        return _build_payload(record)

    @app.delete("/api/session/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_session(session_id: str) -> Response:
        removed = session_store.remove(session_id)
        if not removed:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Unknown session id: {session_id}",
            )
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return app


__all__ = ["create_app"]
