"""
Expanding-radius search tests.

The per-wave wait is replaced by an injected coroutine, so each test
controls what "other requests" do while the engine sleeps.
"""

from __future__ import annotations

import pytest

from kangga.domain.entities import BeamingConfig, Candidate
from kangga.domain.enums import JobStatus
from kangga.domain.exceptions import InvalidInput
from kangga.infrastructure.repositories import JobRepository
from kangga.services.jobs import JobService
from kangga.services.matching import BeamingEngine, MatchingService
from kangga.services.negotiation import NegotiationService

PICKUP = (10.3157, 123.8854)

CONFIG = BeamingConfig(
    initial_radius_m=200,
    max_radius_m=1000,
    radius_increment_m=200,
    timeout_per_radius_s=45.0,
    max_candidates_per_wave=3,
)


class NoCandidates:
    def __init__(self):
        self.radii: list[int] = []

    async def find_candidates(self, session, job, radius_m, exclude, limit):
        self.radii.append(radius_m)
        return []


class FixedCandidates:
    """Returns the given assignees on the first wave only."""

    def __init__(self, *assignees):
        self.assignees = assignees
        self.calls = 0

    async def find_candidates(self, session, job, radius_m, exclude, limit):
        self.calls += 1
        if self.calls > 1:
            return []
        return [
            Candidate(
                assignee_id=a.id,
                user_id=a.user_id,
                vehicle_type=a.vehicle_type,
                rating=a.rating,
                distance_m=100.0,
            )
            for a in self.assignees
        ]


class RecordingSleep:
    def __init__(self, action=None):
        self.action = action
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.action is not None:
            await self.action()


async def _stored(session_factory, job_id):
    async with session_factory() as session:
        return await JobRepository(session).get_fresh(job_id)


class TestTermination:
    @pytest.mark.asyncio
    async def test_exhaustion_cancels_job(self, seed, session_factory, notifier):
        job = await seed.job()
        source = NoCandidates()
        sleep = RecordingSleep()
        engine = BeamingEngine(
            session_factory, CONFIG, candidates=source, notifier=notifier, sleep=sleep
        )

        result = await engine.start_beaming(job.id)

        assert result.success is False
        assert result.final_radius_m == 1000
        assert source.radii == [200, 400, 600, 800, 1000]
        assert sleep.calls == []  # nobody to wait for

        stored = await _stored(session_factory, job.id)
        assert stored.status == JobStatus.CANCELLED.value
        assert stored.max_radius_reached is True
        assert stored.cancellation_reason == "no_assignee_found"
        assert stored.platform_fee_charged is False

    @pytest.mark.asyncio
    async def test_default_config_terminates(self, seed, session_factory):
        job = await seed.job()
        source = NoCandidates()
        engine = BeamingEngine(session_factory, BeamingConfig(), candidates=source)

        result = await engine.start_beaming(job.id)

        assert result.success is False
        assert len(source.radii) == 50
        assert source.radii[-1] == 10_000

    @pytest.mark.asyncio
    async def test_waits_after_each_notified_wave(self, seed, session_factory):
        driver = await seed.assignee()
        job = await seed.job()
        sleep = RecordingSleep()
        engine = BeamingEngine(
            session_factory, CONFIG, candidates=FixedCandidates(driver), sleep=sleep
        )

        result = await engine.start_beaming(job.id)

        assert result.success is False
        assert sleep.calls == [45.0]
        stored = await _stored(session_factory, job.id)
        assert stored.notified_assignee_ids == [driver.id]
        assert stored.search_radius_m == 200

    @pytest.mark.asyncio
    async def test_pickup_coordinates_required(self, seed, session_factory):
        job = await seed.job(pickup=None)
        engine = BeamingEngine(session_factory, CONFIG, candidates=NoCandidates())
        with pytest.raises(InvalidInput):
            await engine.start_beaming(job.id)


class TestInterleaving:
    @pytest.mark.asyncio
    async def test_proposal_during_wait_ends_search(self, seed, session_factory):
        driver = await seed.assignee()
        job = await seed.job()

        async def driver_bids():
            async with session_factory() as session:
                await MatchingService(session).submit_proposal(job.id, driver.id, 20.0)

        engine = BeamingEngine(
            session_factory,
            CONFIG,
            candidates=FixedCandidates(driver),
            sleep=RecordingSleep(driver_bids),
        )
        result = await engine.start_beaming(job.id)

        assert result.success is True
        assert result.message == "Proposals received"
        assert result.final_radius_m == 200
        assert result.notified == (driver.id,)
        stored = await _stored(session_factory, job.id)
        assert stored.status == JobStatus.REQUESTED.value
        assert stored.max_radius_reached is False

    @pytest.mark.asyncio
    async def test_cancellation_during_wait_stops_search(self, seed, session_factory):
        driver = await seed.assignee()
        job = await seed.job()

        async def passenger_cancels():
            async with session_factory() as session:
                await JobService(session).cancel_job(
                    job.id, "cancelled_by_passenger_before_accept"
                )

        source = FixedCandidates(driver)
        engine = BeamingEngine(
            session_factory,
            CONFIG,
            candidates=source,
            sleep=RecordingSleep(passenger_cancels),
        )
        result = await engine.start_beaming(job.id)

        assert result.success is False
        assert result.message == "Job was cancelled"
        assert source.calls == 1
        stored = await _stored(session_factory, job.id)
        assert stored.cancellation_reason == "cancelled_by_passenger_before_accept"
        assert stored.max_radius_reached is False

    @pytest.mark.asyncio
    async def test_direct_accept_during_wait(self, seed, session_factory):
        driver = await seed.assignee()
        job = await seed.job()

        async def driver_accepts():
            async with session_factory() as session:
                await JobService(session).accept_job(job.id, driver.id)

        engine = BeamingEngine(
            session_factory,
            CONFIG,
            candidates=FixedCandidates(driver),
            sleep=RecordingSleep(driver_accepts),
        )
        result = await engine.start_beaming(job.id)

        assert result.success is True
        assert result.message == "Job already assigned"
        assert (await _stored(session_factory, job.id)).status == JobStatus.ACCEPTED.value

    @pytest.mark.asyncio
    async def test_job_cancelled_before_start(self, seed, session_factory):
        job = await seed.job()
        async with session_factory() as session:
            await JobService(session).cancel_job(job.id, "cancelled_by_system")

        source = NoCandidates()
        engine = BeamingEngine(session_factory, CONFIG, candidates=source)
        result = await engine.start_beaming(job.id)

        assert result.message == "Job was cancelled"
        assert source.radii == []


class TestNearbyAssignees:
    """Default candidate source against real rows and H3 cells."""

    @pytest.mark.asyncio
    async def test_waves_widen_and_skip_notified(self, seed, session_factory, notifier):
        lat, lng = PICKUP
        near = await seed.assignee(lat=lat + 0.0009, lng=lng)  # ~100 m
        far = await seed.assignee(lat=lat + 0.0045, lng=lng, full_name="Liza Manalo")  # ~500 m
        await seed.assignee(lat=lat + 0.0005, lng=lng, vehicle_type="CAR")
        await seed.assignee(lat=lat + 0.0005, lng=lng, available=False)
        await seed.assignee()  # never shared a location
        await seed.assignee(role="courier", lat=lat, lng=lng)
        job = await seed.job(vehicle_type="TRICYCLE")

        sleep = RecordingSleep()
        engine = BeamingEngine(session_factory, CONFIG, notifier=notifier, sleep=sleep)
        result = await engine.start_beaming(job.id)

        assert result.notified == (near.id, far.id)
        assert len(sleep.calls) == 2  # waves at 200 m and 600 m
        assert notifier.redis.publish.await_count >= 2

        stored = await _stored(session_factory, job.id)
        assert stored.notified_assignee_ids == [near.id, far.id]
        assert stored.search_radius_m == 600
        assert stored.status == JobStatus.CANCELLED.value


class TestSearchAfterRejectedOffer:
    @pytest.mark.asyncio
    async def test_rejected_offer_leaves_job_searchable(self, seed, session_factory):
        driver = await seed.assignee()
        job = await seed.job()

        async def driver_counters():
            async with session_factory() as session:
                await NegotiationService(session).propose_counter_offer(
                    job.id, driver.id, 30.0
                )

        first = BeamingEngine(
            session_factory,
            CONFIG,
            candidates=FixedCandidates(driver),
            sleep=RecordingSleep(driver_counters),
        )
        paused = await first.start_beaming(job.id)
        assert paused.message == "Negotiation in progress"

        async with session_factory() as session:
            await NegotiationService(session).reject_negotiation(job.id)

        source = NoCandidates()
        resumed = await BeamingEngine(
            session_factory, CONFIG, candidates=source
        ).start_beaming(job.id)

        assert source.radii == [200, 400, 600, 800, 1000]
        assert resumed.success is False
        stored = await _stored(session_factory, job.id)
        assert stored.status == JobStatus.CANCELLED.value
        assert stored.max_radius_reached is True
        assert stored.negotiation_status == "rejected"
