import json
import time
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from showpicks.core.config import settings
from showpicks.core.errors import NoRecommendationError, WorkflowError
from showpicks.core.telemetry import get_telemetry
from showpicks.orchestration.nodes import parse_recommendations
from showpicks.orchestration.services import WorkflowServices, build_services
from showpicks.orchestration.state import GENERATOR, AssistantMessage, count_refinements, latest_query, message_to_dict
from showpicks.orchestration.workflow import arun_state, astream_run

app = FastAPI(title="ShowPicks Recommendation API")

# the web frontend runs on a different origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

telemetry = get_telemetry("api.server")

_services: Optional[WorkflowServices] = None


def get_services() -> WorkflowServices:
    """Built on first use; overridden in tests via app.dependency_overrides."""
    global _services
    if _services is None:
        try:
            _services = build_services(settings)
        except ValueError as e:
            telemetry.log_error("Workflow services failed to load", error=e)
            raise HTTPException(status_code=503, detail=f"Recommendation engine is offline: {e}")
    return _services


class RecommendationRequest(BaseModel):
    preferences: str = Field(
        ...,
        min_length=settings.MIN_INPUT_CHARS,
        max_length=settings.MAX_INPUT_CHARS,
        description="Free-text TV show preferences, e.g. 'I like sci-fi shows with complex plots'",
    )
    thread_id: Optional[str] = None


class RecommendationItem(BaseModel):
    title: str
    platform: Optional[str] = None


class RecommendationResponse(BaseModel):
    answer: str
    recommendations: List[RecommendationItem]
    success: bool = True
    metadata: dict = Field(default_factory=dict)


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.post("/recommendations", response_model=RecommendationResponse)
async def recommend(payload: RecommendationRequest, services: WorkflowServices = Depends(get_services)):
    """JSON endpoint: answer, parsed items and run metadata."""
    telemetry.log_info("Incoming recommendation request", preferences=payload.preferences[:100], thread_id=payload.thread_id)
    start_time = time.time()
    try:
        state = await arun_state(payload.preferences, services, thread_id=payload.thread_id)
    except WorkflowError as e:
        duration_ms = round((time.time() - start_time) * 1000, 2)
        telemetry.log_error("Recommendation failed", error=e, duration_ms=duration_ms)
        raise HTTPException(status_code=500, detail=f"Failed to generate recommendations: {e}")

    messages = state["messages"]
    answer = messages[-1].content
    return RecommendationResponse(
        answer=answer,
        recommendations=[RecommendationItem(title=r.title, platform=r.platform) for r in parse_recommendations(answer)],
        metadata={
            "duration_ms": round((time.time() - start_time) * 1000, 2),
            "steps": len(messages),
            "refinements": count_refinements(messages),
            "final_query": latest_query(messages),
            "thread_id": payload.thread_id,
        },
    )


def _sse(payload: dict) -> str:
    return f"data: {json.dumps(payload)}\n\n"


@app.post("/recommendations/stream")
async def recommend_stream(payload: RecommendationRequest, services: WorkflowServices = Depends(get_services)):
    """SSE endpoint: one event per executed node, then the answer or a single error."""
    telemetry.log_info("Incoming streaming request", preferences=payload.preferences[:100], thread_id=payload.thread_id)

    async def generate_stream():
        final = None
        try:
            async for node_name, new_messages in astream_run(payload.preferences, services, thread_id=payload.thread_id):
                yield _sse({"type": "node", "node": node_name, "messages": [message_to_dict(m) for m in new_messages]})
                if new_messages:
                    final = new_messages[-1]
            if not (isinstance(final, AssistantMessage) and final.name == GENERATOR):
                raise NoRecommendationError("agent finished without retrieving context for a recommendation")
            items = [{"title": r.title, "platform": r.platform} for r in parse_recommendations(final.content)]
            yield _sse({"type": "answer", "answer": final.content, "recommendations": items})
        except WorkflowError as e:
            telemetry.log_error("Streaming recommendation failed", error=e)
            yield _sse({"type": "error", "message": f"Failed to generate recommendations: {e}"})
        except Exception as e:
            telemetry.log_error("Unexpected error while streaming recommendations", error=e, error_type=type(e).__name__)
            yield _sse({"type": "error", "message": f"Failed to generate recommendations: {e}"})
        yield "data: [DONE]\n\n"

    return StreamingResponse(generate_stream(), media_type="text/event-stream")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
