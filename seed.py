"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 4 passengers / senders
  - 8 drivers and 4 couriers (spread around Cebu City), each with a wallet
  - fare configs for every service type
  - 3 sample jobs (an open ride, an accepted ride, an open delivery)
"""

import asyncio

from sqlalchemy import text

from kangga.config import settings
from kangga.domain.enums import (
    AssigneeRole,
    JobKind,
    JobStatus,
    PackageSize,
    ServiceType,
    TransactionType,
    VehicleType,
)
from kangga.domain.matching import assignee_h3_cell
from kangga.infrastructure.database import async_session_factory, engine
from kangga.infrastructure.models import (
    AssigneeModel,
    FareConfigModel,
    JobModel,
    UserModel,
)
from kangga.services.wallet import WalletService, generate_account_number

# Cebu City centre (approx)
CENTER_LAT, CENTER_LNG = 10.3157, 123.8854


REQUESTERS = [
    {"full_name": "Maria Santos", "email": "maria@example.com"},
    {"full_name": "Jose Reyes", "email": "jose@example.com"},
    {"full_name": "Ana Cruz", "email": "ana@example.com"},
    {"full_name": "Paolo Garcia", "email": "paolo@example.com"},
]

ASSIGNEES = [
    # Drivers
    {"name": "Ramon Dela Cruz", "role": AssigneeRole.DRIVER, "vehicle": VehicleType.TRICYCLE, "plate": "TRI-1001", "lat": 10.3160, "lng": 123.8860},
    {"name": "Liza Manalo", "role": AssigneeRole.DRIVER, "vehicle": VehicleType.TRICYCLE, "plate": "TRI-1002", "lat": 10.3172, "lng": 123.8871},
    {"name": "Nestor Aquino", "role": AssigneeRole.DRIVER, "vehicle": VehicleType.MOTORCYCLE, "plate": "MC-2001", "lat": 10.3140, "lng": 123.8840},
    {"name": "Grace Villanueva", "role": AssigneeRole.DRIVER, "vehicle": VehicleType.MOTORCYCLE, "plate": "MC-2002", "lat": 10.3201, "lng": 123.8902},
    {"name": "Edgar Ramos", "role": AssigneeRole.DRIVER, "vehicle": VehicleType.CAR, "plate": "CAR-3001", "lat": 10.3105, "lng": 123.8801},
    {"name": "Joy Fernandez", "role": AssigneeRole.DRIVER, "vehicle": VehicleType.CAR, "plate": "CAR-3002", "lat": 10.3250, "lng": 123.8950},
    {"name": "Rico Bautista", "role": AssigneeRole.DRIVER, "vehicle": VehicleType.TRICYCLE, "plate": "TRI-1003", "lat": 10.3300, "lng": 123.9000},
    {"name": "Carmen Lopez", "role": AssigneeRole.DRIVER, "vehicle": VehicleType.CAR, "plate": "CAR-3003", "lat": 10.2900, "lng": 123.8700},
    # Couriers
    {"name": "Dennis Torres", "role": AssigneeRole.COURIER, "vehicle": VehicleType.MOTORCYCLE, "plate": "MC-4001", "lat": 10.3165, "lng": 123.8845},
    {"name": "Mylene Castro", "role": AssigneeRole.COURIER, "vehicle": VehicleType.MOTORCYCLE, "plate": "MC-4002", "lat": 10.3180, "lng": 123.8830},
    {"name": "Arnel Mendoza", "role": AssigneeRole.COURIER, "vehicle": VehicleType.MOTORCYCLE, "plate": "MC-4003", "lat": 10.3120, "lng": 123.8890},
    {"name": "Rowena Navarro", "role": AssigneeRole.COURIER, "vehicle": VehicleType.MOTORCYCLE, "plate": "MC-4004", "lat": 10.3350, "lng": 123.9050},
]

FARES = [
    {"service_type": ServiceType.TRICYCLE, "base_fare": 20.0, "per_km": 8.0, "per_min": 1.0, "min_fare": 30.0},
    {"service_type": ServiceType.MOTORCYCLE, "base_fare": 40.0, "per_km": 10.0, "per_min": 1.5, "min_fare": 50.0},
    {"service_type": ServiceType.CAR, "base_fare": 40.0, "per_km": 15.0, "per_min": 2.0, "min_fare": 80.0},
    {"service_type": ServiceType.SEND_PACKAGE, "base_fare": 50.0, "per_km": 10.0, "per_min": 0.0, "min_fare": 60.0},
]

STARTING_LOAD = 200.0


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM users"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        # ── Requesters ────────────────────────────────────────────────
        requesters = []
        for r in REQUESTERS:
            m = UserModel(full_name=r["full_name"], email=r["email"], role="passenger")
            session.add(m)
            requesters.append(m)
        await session.flush()
        print(f"  Created {len(requesters)} requesters")

        # ── Drivers & couriers with wallets ───────────────────────────
        wallets = WalletService(session)
        assignees = []
        for a in ASSIGNEES:
            email = a["name"].lower().replace(" ", ".") + "@example.com"
            user = UserModel(full_name=a["name"], email=email, role=a["role"].value)
            session.add(user)
            await session.flush()
            user.account_number = generate_account_number(a["role"], str(user.id))

            m = AssigneeModel(
                user_id=user.id,
                role=a["role"].value,
                vehicle_type=a["vehicle"].value,
                vehicle_plate=a["plate"],
                is_available=True,
                current_lat=a["lat"],
                current_lng=a["lng"],
                h3_cell=assignee_h3_cell(a["lat"], a["lng"], settings.h3_resolution),
            )
            session.add(m)
            assignees.append(m)

            await wallets.open_account(user.id, a["role"])
            await wallets.apply_transaction(
                user_id=user.id,
                amount=STARTING_LOAD,
                tx_type=TransactionType.LOAD,
                reference="Opening load",
            )
        await session.flush()
        print(f"  Created {len(assignees)} assignees with {STARTING_LOAD:.2f} wallets")

        # ── Fare configs ──────────────────────────────────────────────
        for f in FARES:
            session.add(
                FareConfigModel(
                    service_type=f["service_type"].value,
                    region_code="DEFAULT",
                    base_fare=f["base_fare"],
                    per_km=f["per_km"],
                    per_min=f["per_min"],
                    min_fare=f["min_fare"],
                    platform_fee_type="FLAT",
                    platform_fee_value=settings.platform_fee,
                )
            )
        print(f"  Created {len(FARES)} fare configs")

        # ── Jobs ──────────────────────────────────────────────────────
        jobs = [
            JobModel(
                kind=JobKind.RIDE.value,
                requester_id=requesters[0].id,
                status=JobStatus.REQUESTED.value,
                service_type=ServiceType.TRICYCLE.value,
                vehicle_type=VehicleType.TRICYCLE.value,
                pickup_address="Colon St, Cebu City",
                dropoff_address="Fuente Osmena Circle",
                pickup_lat=10.2960, pickup_lng=123.9010,
                dropoff_lat=10.3106, dropoff_lng=123.8930,
                base_fare=45.0, total_fare=45.0,
                passenger_count=2,
            ),
            JobModel(
                kind=JobKind.RIDE.value,
                requester_id=requesters[1].id,
                assignee_id=assignees[4].id,
                status=JobStatus.ACCEPTED.value,
                version=2,
                service_type=ServiceType.CAR.value,
                vehicle_type=VehicleType.CAR.value,
                pickup_address="IT Park, Lahug",
                dropoff_address="Mactan-Cebu International Airport",
                pickup_lat=10.3302, pickup_lng=123.9056,
                dropoff_lat=10.3075, dropoff_lng=123.9790,
                base_fare=260.0, top_up_fare=20.0, total_fare=280.0,
            ),
            JobModel(
                kind=JobKind.DELIVERY.value,
                requester_id=requesters[2].id,
                status=JobStatus.REQUESTED.value,
                service_type=ServiceType.SEND_PACKAGE.value,
                vehicle_type=VehicleType.MOTORCYCLE.value,
                pickup_address="Ayala Center Cebu",
                dropoff_address="SM Seaside City",
                pickup_lat=10.3181, pickup_lng=123.9050,
                dropoff_lat=10.2820, dropoff_lng=123.8810,
                base_fare=95.0, total_fare=95.0,
                package_description="Documents",
                package_size=PackageSize.SMALL.value,
                receiver_name="Leo Tan",
                receiver_phone="+639171234567",
            ),
        ]
        session.add_all(jobs)
        await session.flush()
        print(f"  Created {len(jobs)} jobs")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
