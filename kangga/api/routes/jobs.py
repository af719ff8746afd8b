"""
Ride & delivery endpoints
=========================

POST  /api/v1/rides                       -- request a ride (202, search starts async)
POST  /api/v1/deliveries                  -- request a delivery
GET   /api/v1/rides/open                  -- open rides for drivers
GET   /api/v1/deliveries/open             -- open deliveries for couriers
GET   /api/v1/jobs?requester_id=|assignee_id=
GET   /api/v1/jobs/{job_id}
POST  /api/v1/jobs/{job_id}/search        -- (re)start beaming
POST  /api/v1/jobs/{job_id}/accept        -- direct acceptance
PATCH /api/v1/jobs/{job_id}/status        -- pickup / transit / completion
POST  /api/v1/jobs/{job_id}/cancel
GET   /api/v1/jobs/{job_id}/proposals
POST  /api/v1/jobs/{job_id}/proposals
POST  /api/v1/jobs/{job_id}/proposals/{assignee_id}/accept
POST  /api/v1/jobs/{job_id}/negotiation   -- counter-offer
POST  /api/v1/jobs/{job_id}/negotiation/accept
POST  /api/v1/jobs/{job_id}/negotiation/reject  -- decline; search resumes
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from kangga.api.dependencies import (
    get_job_service,
    get_matching_service,
    get_negotiation_service,
)
from kangga.api.middleware import limiter
from kangga.api.schemas import (
    AcceptRequest,
    CancelRequest,
    CancelResponse,
    CounterOfferRequest,
    DeliveryCreateRequest,
    JobResponse,
    NegotiationDecisionRequest,
    ProposalCreateRequest,
    ProposalResponse,
    RefundResponse,
    RideCreateRequest,
    SearchResponse,
    StatusUpdateRequest,
)
from kangga.domain.enums import JobKind
from kangga.infrastructure.models import JobModel
from kangga.services.jobs import JobService
from kangga.services.matching import MatchingService
from kangga.services.negotiation import NegotiationService
from kangga.workers import beaming as beaming_worker

router = APIRouter(tags=["jobs"])

_CREATE_ONLY = {"start_search"}


async def _create(
    service: JobService, kind: JobKind, body: RideCreateRequest | DeliveryCreateRequest
) -> JobModel:
    fields = body.model_dump(exclude=_CREATE_ONLY, exclude_none=True, mode="json")
    job = await service.create_job(kind=kind, **fields)
    if body.start_search and job.pickup_lat is not None and job.pickup_lng is not None:
        beaming_worker.schedule_beaming(job.id)
    return job


# ── Creation & reads ──────────────────────────────────────────────────


@router.post(
    "/rides",
    status_code=202,
    response_model=JobResponse,
    summary="Request a ride",
    responses={202: {"description": "Ride requested; driver search is async."}},
)
@limiter.limit("100/minute")
async def create_ride(
    request: Request,
    body: RideCreateRequest,
    service: JobService = Depends(get_job_service),
):
    return await _create(service, JobKind.RIDE, body)


@router.post(
    "/deliveries",
    status_code=202,
    response_model=JobResponse,
    summary="Request a delivery",
)
@limiter.limit("100/minute")
async def create_delivery(
    request: Request,
    body: DeliveryCreateRequest,
    service: JobService = Depends(get_job_service),
):
    return await _create(service, JobKind.DELIVERY, body)


@router.get("/rides/open", response_model=list[JobResponse], summary="Open rides")
@limiter.limit("100/minute")
async def open_rides(request: Request, service: JobService = Depends(get_job_service)):
    return await service.list_open(JobKind.RIDE)


@router.get(
    "/deliveries/open", response_model=list[JobResponse], summary="Open deliveries"
)
@limiter.limit("100/minute")
async def open_deliveries(
    request: Request, service: JobService = Depends(get_job_service)
):
    return await service.list_open(JobKind.DELIVERY)


@router.get("/jobs", response_model=list[JobResponse], summary="List a user's jobs")
@limiter.limit("100/minute")
async def list_jobs(
    request: Request,
    requester_id: Optional[int] = None,
    assignee_id: Optional[int] = None,
    service: JobService = Depends(get_job_service),
):
    if (requester_id is None) == (assignee_id is None):
        raise HTTPException(
            status_code=422, detail="Pass exactly one of requester_id, assignee_id"
        )
    if requester_id is not None:
        return await service.list_for_requester(requester_id)
    return await service.list_for_assignee(assignee_id)


@router.get("/jobs/{job_id}", response_model=JobResponse, summary="Get a job")
@limiter.limit("100/minute")
async def get_job(
    request: Request, job_id: int, service: JobService = Depends(get_job_service)
):
    return await service.get_job(job_id)


# ── Lifecycle ─────────────────────────────────────────────────────────


@router.post(
    "/jobs/{job_id}/search",
    status_code=202,
    response_model=SearchResponse,
    summary="Start searching for an assignee",
)
@limiter.limit("20/minute")
async def start_search(
    request: Request, job_id: int, service: JobService = Depends(get_job_service)
):
    await service.get_job(job_id)
    return SearchResponse(
        job_id=job_id, scheduled=beaming_worker.schedule_beaming(job_id)
    )


@router.post(
    "/jobs/{job_id}/accept", response_model=JobResponse, summary="Accept an open job"
)
@limiter.limit("100/minute")
async def accept_job(
    request: Request,
    job_id: int,
    body: AcceptRequest,
    service: JobService = Depends(get_job_service),
):
    return await service.accept_job(job_id, body.assignee_id, body.actor_user_id)


@router.patch(
    "/jobs/{job_id}/status", response_model=JobResponse, summary="Advance a job"
)
@limiter.limit("100/minute")
async def update_status(
    request: Request,
    job_id: int,
    body: StatusUpdateRequest,
    service: JobService = Depends(get_job_service),
):
    return await service.update_status(job_id, body.status, body.actor_user_id)


@router.post(
    "/jobs/{job_id}/cancel",
    response_model=CancelResponse,
    summary="Cancel a job",
    description=(
        "Requires a cancellation reason.  A driver / courier no-show also "
        "refunds the platform fee if it was charged."
    ),
)
@limiter.limit("100/minute")
async def cancel_job(
    request: Request,
    job_id: int,
    body: CancelRequest,
    service: JobService = Depends(get_job_service),
):
    outcome = await service.cancel_job(job_id, body.reason, body.actor_user_id)
    return CancelResponse(
        job=JobResponse.model_validate(outcome.job),
        refund=(
            RefundResponse.model_validate(outcome.refund)
            if outcome.refund is not None
            else None
        ),
    )


# ── Proposals ─────────────────────────────────────────────────────────


@router.get(
    "/jobs/{job_id}/proposals",
    response_model=list[ProposalResponse],
    summary="List bids on a job",
)
@limiter.limit("100/minute")
async def list_proposals(
    request: Request,
    job_id: int,
    service: MatchingService = Depends(get_matching_service),
):
    return await service.list_proposals(job_id)


@router.post(
    "/jobs/{job_id}/proposals",
    status_code=201,
    response_model=ProposalResponse,
    summary="Bid on an open job",
)
@limiter.limit("100/minute")
async def submit_proposal(
    request: Request,
    job_id: int,
    body: ProposalCreateRequest,
    service: MatchingService = Depends(get_matching_service),
):
    return await service.submit_proposal(
        job_id, body.assignee_id, body.top_up_fare, body.notes
    )


@router.post(
    "/jobs/{job_id}/proposals/{assignee_id}/accept",
    response_model=JobResponse,
    summary="Pick a bid",
)
@limiter.limit("100/minute")
async def accept_proposal(
    request: Request,
    job_id: int,
    assignee_id: int,
    body: NegotiationDecisionRequest,
    service: MatchingService = Depends(get_matching_service),
):
    return await service.accept_proposal(job_id, assignee_id, body.actor_user_id)


# ── Negotiation ───────────────────────────────────────────────────────


@router.post(
    "/jobs/{job_id}/negotiation",
    response_model=JobResponse,
    summary="Send a counter-offer",
)
@limiter.limit("100/minute")
async def propose_counter_offer(
    request: Request,
    job_id: int,
    body: CounterOfferRequest,
    service: NegotiationService = Depends(get_negotiation_service),
):
    return await service.propose_counter_offer(
        job_id, body.assignee_id, body.proposed_top_up_fare, body.notes
    )


@router.post(
    "/jobs/{job_id}/negotiation/accept",
    response_model=JobResponse,
    summary="Accept the pending counter-offer",
)
@limiter.limit("100/minute")
async def accept_negotiation(
    request: Request,
    job_id: int,
    body: NegotiationDecisionRequest,
    service: NegotiationService = Depends(get_negotiation_service),
):
    return await service.accept_negotiation(job_id, body.actor_user_id)


@router.post(
    "/jobs/{job_id}/negotiation/reject",
    response_model=JobResponse,
    summary="Decline the pending counter-offer",
)
@limiter.limit("100/minute")
async def reject_negotiation(
    request: Request,
    job_id: int,
    service: NegotiationService = Depends(get_negotiation_service),
):
    job = await service.reject_negotiation(job_id)
    # the search stopped when the offer arrived; the job is open again
    if job.pickup_lat is not None and job.pickup_lng is not None:
        beaming_worker.schedule_beaming(job_id)
    return job
