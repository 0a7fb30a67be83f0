"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 6 sample passengers
  - 10 sample drivers around People's Square, Shanghai (mix of online,
    offline and unapproved, so nearby search has something to filter)
  - 4 sample orders placed through the lifecycle engine (pending,
    accepted, completed + paid, cancelled)
"""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal

from ridehail.config import settings
from ridehail.domain.entities import Location, PaymentInfo
from ridehail.domain.enums import DriverStatus, DriverVerifyStatus
from ridehail.domain.matching import location_cell
from ridehail.infrastructure.database import async_session_factory, engine
from ridehail.infrastructure.models import DriverModel, PassengerModel
from ridehail.infrastructure.notifications import LoggingNotificationSink
from ridehail.services.lifecycle import OrderLifecycle

# People's Square, Shanghai (approx)
CENTER_LAT, CENTER_LNG = 31.2304, 121.4737


PASSENGERS = [
    {"name": "Li Wei", "phone": "13800000001"},
    {"name": "Wang Fang", "phone": "13800000002"},
    {"name": "Zhang Min", "phone": "13800000003"},
    {"name": "Liu Yang", "phone": "13800000004"},
    {"name": "Chen Jing", "phone": "13800000005"},
    {"name": "Zhao Lei", "phone": "13800000006"},
]

APPROVED, PENDING = DriverVerifyStatus.APPROVED, DriverVerifyStatus.PENDING
ONLINE, OFFLINE = DriverStatus.ONLINE, DriverStatus.OFFLINE

DRIVERS = [
    {"name": "Sun Hao", "plate": "沪A10001", "verify": APPROVED, "status": ONLINE, "lat": 31.2310, "lng": 121.4745, "rating": 4.9},
    {"name": "Zhou Qiang", "plate": "沪A10002", "verify": APPROVED, "status": ONLINE, "lat": 31.2285, "lng": 121.4700, "rating": 4.7},
    {"name": "Wu Jun", "plate": "沪A10003", "verify": APPROVED, "status": ONLINE, "lat": 31.2400, "lng": 121.4900, "rating": 4.8},
    {"name": "Xu Tao", "plate": "沪A10004", "verify": APPROVED, "status": OFFLINE, "lat": 31.2320, "lng": 121.4760, "rating": 5.0},
    {"name": "Hu Gang", "plate": "沪A10005", "verify": PENDING, "status": OFFLINE, "lat": 31.2295, "lng": 121.4725, "rating": 5.0},
    {"name": "Guo Bin", "plate": "沪A10006", "verify": APPROVED, "status": ONLINE, "lat": 31.2150, "lng": 121.4500, "rating": 4.6},
    {"name": "He Lin", "plate": "沪A10007", "verify": APPROVED, "status": ONLINE, "lat": 31.2500, "lng": 121.5000, "rating": 4.9},
    {"name": "Lin Feng", "plate": "沪A10008", "verify": APPROVED, "status": ONLINE, "lat": 31.1900, "lng": 121.4400, "rating": 4.5},
    {"name": "Ma Chao", "plate": "沪A10009", "verify": APPROVED, "status": OFFLINE, "lat": None, "lng": None, "rating": 5.0},
    {"name": "Luo Yi", "plate": "沪A10010", "verify": APPROVED, "status": ONLINE, "lat": 31.2330, "lng": 121.4780, "rating": 4.8},
]

# (passenger index, start, end, start address, end address)
TRIPS = [
    (0, (31.2304, 121.4737), (31.2397, 121.4998), "People's Square", "Lujiazui"),
    (1, (31.2243, 121.4768), (31.1979, 121.3364), "Xintiandi", "Hongqiao Station"),
    (2, (31.2335, 121.4855), (31.2222, 121.4581), "The Bund", "Jing'an Temple"),
    (3, (31.2304, 121.4737), (31.1443, 121.8083), "People's Square", "Pudong Airport"),
]


async def seed_directory() -> tuple[list[int], list[int]]:
    now = datetime.now(timezone.utc)
    async with async_session_factory() as session:
        passengers = [PassengerModel(**p) for p in PASSENGERS]
        session.add_all(passengers)

        drivers = []
        for d in DRIVERS:
            located = d["lat"] is not None
            drivers.append(
                DriverModel(
                    name=d["name"],
                    car_plate=d["plate"],
                    verify_status=d["verify"],
                    status=d["status"],
                    current_latitude=d["lat"],
                    current_longitude=d["lng"],
                    h3_cell=(
                        location_cell(Location(d["lat"], d["lng"]), settings.h3_resolution)
                        if located
                        else None
                    ),
                    last_location_update=now if located else None,
                    online_at=now if d["status"] == ONLINE else None,
                    rating=d["rating"],
                )
            )
        session.add_all(drivers)
        await session.commit()
        print(f"  Created {len(passengers)} passengers")
        print(f"  Created {len(drivers)} drivers")
        return [p.id for p in passengers], [d.id for d in drivers]


async def seed_orders(passenger_ids: list[int], driver_ids: list[int]) -> None:
    lifecycle = OrderLifecycle(async_session_factory, LoggingNotificationSink())

    orders = []
    for idx, start, end, start_address, end_address in TRIPS:
        orders.append(
            await lifecycle.create_order(
                passenger_ids[idx],
                Location(*start),
                Location(*end),
                start_address,
                end_address,
            )
        )

    # order 0 stays pending; order 1 accepted
    await lifecycle.accept_order(orders[1].id, driver_ids[0])

    # order 2 runs to completion, paid and rated
    await lifecycle.accept_order(orders[2].id, driver_ids[1])
    await lifecycle.driver_arrived(orders[2].id)
    await lifecycle.start_trip(orders[2].id)
    await lifecycle.complete_trip(orders[2].id, Decimal("28.50"))
    await lifecycle.pay_order(orders[2].id, PaymentInfo("wechat", "WX-SEED-0001"))
    await lifecycle.rate_order(orders[2].id, True, 5, "Smooth ride")

    # order 3 cancelled by the passenger
    await lifecycle.cancel_order(orders[3].id, "Plans changed", passenger_ids[3])

    await lifecycle.drain()
    print(f"  Created {len(orders)} orders")


async def main():
    print("Seeding database...")
    passenger_ids, driver_ids = await seed_directory()
    await seed_orders(passenger_ids, driver_ids)
    print("\nSeed complete!")
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
