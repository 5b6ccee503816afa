# api/main.py
"""
FastAPI backend for BridgeCraft - exposes the mini_bridge engine as a REST API.

Analyses are queued (api.jobs) and polled:

    POST /api/analyses               -> job handle (202)
    GET  /api/jobs/{id}              -> status + summary
    GET  /api/jobs/{id}/detail       -> full payload (completed jobs)
    GET  /api/jobs/{id}/events       -> progress events
    POST /api/jobs/{id}/cancel
"""

import io
import logging
import math
from typing import List

import pandas as pd
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from mini_bridge.analysis import (DEFAULT_SETTINGS, Tier, build_design, build_model,
                                  check_plan)
from mini_bridge.catalog import DEFAULT_CATALOGS
from mini_bridge.errors import InvalidGeometryError, PlanLimitError

from .config import CONFIG
from .jobs import Job, JobManager, JobStatus
from .schemas import AnalysisRequestModel, EventModel, JobResponse

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


app = FastAPI(
    title=CONFIG.app_name,
    description=CONFIG.description,
    version=CONFIG.version,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(CONFIG.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

jobs = JobManager(max_workers=CONFIG.max_workers, retain=CONFIG.job_retention,
                  catalogs=DEFAULT_CATALOGS, settings=DEFAULT_SETTINGS)


def _job_response(job: Job) -> JobResponse:
    return JobResponse(
        job_id=job.id,
        status=job.status.value,
        tier=job.tier.value if job.tier else None,
        summary=_json_safe(job.summary) if job.summary is not None else None,
        error=job.error,
    )


def _json_safe(value):
    """Replace non-finite floats (e.g. an infinite rating factor) with None."""
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return value


def _get_job(job_id: str) -> Job:
    try:
        return jobs.get(job_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown job '{job_id}'")


# =============================================================================
# API Endpoints
# =============================================================================

@app.get("/")
async def root():
    """Health check."""
    return {"status": "ok", "service": CONFIG.app_name}


@app.post("/api/analyses", response_model=JobResponse, status_code=202)
async def submit_analysis(params: AnalysisRequestModel):
    """Validate a request, check the plan limit and queue it."""
    request = params.to_request()
    try:
        build_model(request, build_design(request, DEFAULT_CATALOGS))
        tier = check_plan(request, [Tier(t) for t in CONFIG.allowed_tiers],
                          DEFAULT_SETTINGS, DEFAULT_CATALOGS)
    except KeyError as exc:
        raise HTTPException(status_code=422, detail=str(exc.args[0]))
    except InvalidGeometryError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except PlanLimitError as exc:
        raise HTTPException(status_code=403, detail=str(exc))
    return _job_response(jobs.submit(request, tier))


@app.get("/api/jobs/{job_id}", response_model=JobResponse)
async def get_job(job_id: str):
    return _job_response(_get_job(job_id))


@app.get("/api/jobs/{job_id}/detail")
async def get_job_detail(job_id: str):
    """Full result payload: influence ordinates, stage stresses, rating table."""
    job = _get_job(job_id)
    if job.status is not JobStatus.COMPLETED:
        raise HTTPException(status_code=409, detail=f"Job is {job.status.value}")
    return _json_safe(job.detail)


@app.get("/api/jobs/{job_id}/events", response_model=List[EventModel])
async def get_job_events(job_id: str, after: int = 0):
    _get_job(job_id)
    return [EventModel(**e.as_dict()) for e in jobs.events(job_id, after)]


@app.post("/api/jobs/{job_id}/cancel", response_model=JobResponse)
async def cancel_job(job_id: str):
    _get_job(job_id)
    return _job_response(jobs.cancel(job_id))


@app.get("/api/jobs/{job_id}/export/rating.csv")
async def export_rating_csv(job_id: str):
    """Export the rating table as CSV."""
    job = _get_job(job_id)
    if job.status is not JobStatus.COMPLETED or not job.detail.get('rating'):
        raise HTTPException(status_code=409, detail="No rating table for this job")

    output = io.StringIO()
    pd.DataFrame(job.detail['rating']).to_csv(output, index=False)
    output.seek(0)
    return StreamingResponse(
        iter([output.getvalue()]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=rating_{job_id}.csv"}
    )


@app.get("/api/catalog/vehicles")
async def list_vehicles():
    return [
        {
            'name': v.name,
            'axle_weights': list(v.axle_weights),
            'spacings': list(v.spacings),
            'variable_spacing': None if v.variable_spacing is None else {
                'index': v.variable_spacing.index,
                'minimum': v.variable_spacing.minimum,
                'maximum': v.variable_spacing.maximum,
            },
            'lane_load': v.lane_load,
            'impact': v.impact,
            'gross_weight': v.gross_weight,
        }
        for v in DEFAULT_CATALOGS.vehicles.values()
    ]


@app.get("/api/catalog/girders")
async def list_girders():
    return [
        {'name': g.name, 'A': g.A, 'I': g.I, 'yb': g.yb, 'h': g.h,
         'web_width': g.web_width, 'top_flange_width': g.top_flange_width}
        for g in DEFAULT_CATALOGS.girders.values()
    ]


@app.get("/api/catalog/materials")
async def list_materials():
    return [
        {'name': m.name, 'kind': m.kind.value, 'E': m.E, 'fc': m.fc, 'fci': m.fci,
         'fpu': m.fpu, 'fpy': m.fpy, 'fy': m.fy}
        for m in DEFAULT_CATALOGS.materials.values()
    ]


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
