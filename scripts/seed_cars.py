"""
Seed script: populates the demo car inventory.

Usage (from the repo root):
    python -m scripts.seed_cars

Idempotent: creates missing tables, then replaces all rows of `cars` on each run.
"""

import asyncio

from sqlalchemy import text

from carsearch.db.session import async_session_factory, close_db, init_db

# brand, model, year, price, body_type, engine_type, engine_volume, power_hp, transmission, drive, seats, fuel_consumption, description
CARS = [
    # Crossovers
    ("Toyota", "RAV4", 2023, 3500000, "SUV", "PETROL", 2.5, 199, "AUTOMATIC", "AWD", 5, 8.1, "Popular family crossover with a reputation for reliability"),
    ("Mazda", "CX-5", 2023, 3200000, "SUV", "PETROL", 2.5, 194, "AUTOMATIC", "AWD", 5, 7.8, "Stylish crossover with sharp handling"),
    ("Kia", "Sportage", 2023, 2900000, "SUV", "PETROL", 2.0, 150, "AUTOMATIC", "AWD", 5, 8.4, "Modern crossover with a generous feature list"),
    ("Hyundai", "Tucson", 2023, 2800000, "SUV", "PETROL", 2.0, 150, "AUTOMATIC", "AWD", 5, 8.2, "Dependable Korean crossover"),
    ("Toyota", "Highlander", 2022, 5200000, "SUV", "HYBRID", 2.5, 243, "AUTOMATIC", "AWD", 7, 7.2, "Three-row hybrid SUV for a big family"),
    ("Haval", "F7", 2023, 2100000, "SUV", "PETROL", 1.5, 150, "ROBOT", "AWD", 5, 8.0, "Affordable all-wheel-drive crossover"),

    # Sedans
    ("Toyota", "Camry", 2023, 3000000, "SEDAN", "PETROL", 2.5, 200, "AUTOMATIC", "FWD", 5, 8.5, "Classic business sedan with a comfortable ride"),
    ("Kia", "K5", 2023, 2600000, "SEDAN", "PETROL", 2.0, 150, "AUTOMATIC", "FWD", 5, 7.9, "Sporty sedan with a modern design"),
    ("Hyundai", "Sonata", 2022, 2400000, "SEDAN", "PETROL", 2.0, 150, "AUTOMATIC", "FWD", 5, 8.0, "Roomy family sedan"),

    # Hatchbacks
    ("Volkswagen", "Golf", 2022, 2500000, "HATCHBACK", "PETROL", 1.4, 150, "AUTOMATIC", "FWD", 5, 6.5, "Compact city car with great handling"),
    ("Kia", "Ceed", 2022, 2200000, "HATCHBACK", "PETROL", 1.6, 128, "AUTOMATIC", "FWD", 5, 6.9, "Practical hatchback for the city"),

    # Minivan
    ("Kia", "Carnival", 2023, 4200000, "MINIVAN", "DIESEL", 2.2, 199, "AUTOMATIC", "FWD", 8, 7.5, "Spacious minivan for a large family"),

    # Electric
    ("Tesla", "Model 3", 2023, 4500000, "SEDAN", "ELECTRIC", None, 283, "AUTOMATIC", "AWD", 5, None, "Electric sedan with a 500 km range"),
    ("Zeekr", "001", 2023, 4800000, "WAGON", "ELECTRIC", None, 544, "AUTOMATIC", "AWD", 5, None, "Powerful premium electric wagon"),
]

COLUMNS = [
    "brand", "model", "year", "price", "body_type", "engine_type", "engine_volume",
    "power_hp", "transmission", "drive", "seats", "fuel_consumption", "description",
]


async def seed():
    await init_db()

    async with async_session_factory() as db:
        async with db.begin():
            print("Clearing existing cars...")
            await db.execute(text("DELETE FROM cars"))

            print("Inserting cars...")
            insert = text(f"""
                INSERT INTO cars (id, {", ".join(COLUMNS)})
                VALUES (gen_random_uuid(), {", ".join(":" + c for c in COLUMNS)})
            """)
            await db.execute(insert, [dict(zip(COLUMNS, car)) for car in CARS])

    print(f"Done! Seeded {len(CARS)} cars.")
    await close_db()


if __name__ == "__main__":
    asyncio.run(seed())
