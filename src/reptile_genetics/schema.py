"""PostgreSQL schema management for animal and locus catalog storage."""

import json

import asyncpg

from .models import Animal, Locus


class GeneticsSchemaManager:
    """Manages the tables the PostgreSQL animal repository reads."""

    async def create_schema(self, conn: asyncpg.Connection) -> None:
        """Create complete schema including locus catalog and animals tables."""
        await self.create_species_loci_table(conn)
        await self.create_animals_table(conn)
        await self.create_indexes(conn)

    async def create_species_loci_table(self, conn: asyncpg.Connection) -> None:
        """Create the per-species locus catalog table."""
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS species_loci (
                species_id TEXT NOT NULL,
                name TEXT NOT NULL,
                dominance VARCHAR(32) NOT NULL CHECK (dominance IN (
                    'dominant', 'recessive', 'co-dominant', 'polygenic-incomplete'
                )),
                homozygous_name TEXT,
                transmission_rate DOUBLE PRECISION NOT NULL DEFAULT 0.5
                    CHECK (transmission_rate BETWEEN 0 AND 1),
                position INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (species_id, name)
            )
        """)

    async def create_animals_table(self, conn: asyncpg.Connection) -> None:
        """Create the animals table.

        Parent ids are not foreign keys: a parent may be outside the
        collection.
        """
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS animals (
                id TEXT PRIMARY KEY,
                species_id TEXT NOT NULL,
                name TEXT,
                sex VARCHAR(10) NOT NULL DEFAULT 'unknown',
                dam_id TEXT,
                sire_id TEXT,
                visual_traits TEXT[] NOT NULL DEFAULT '{}',
                het_traits JSONB NOT NULL DEFAULT '[]'::jsonb,
                created_at TIMESTAMPTZ DEFAULT NOW(),
                CHECK (dam_id IS DISTINCT FROM id AND sire_id IS DISTINCT FROM id)
            )
        """)

    async def create_indexes(self, conn: asyncpg.Connection) -> None:
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_animals_species
            ON animals(species_id)
        """)

        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_animals_dam
            ON animals(dam_id)
            WHERE dam_id IS NOT NULL
        """)

        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_animals_sire
            ON animals(sire_id)
            WHERE sire_id IS NOT NULL
        """)

    async def drop_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute("DROP TABLE IF EXISTS animals CASCADE")
        await conn.execute("DROP TABLE IF EXISTS species_loci CASCADE")

    async def verify_schema(self, conn: asyncpg.Connection) -> bool:
        """Verify both tables exist."""
        existing = await conn.fetch("""
            SELECT table_name FROM information_schema.tables
            WHERE table_name IN ('species_loci', 'animals')
        """)
        return {row["table_name"] for row in existing} == {"species_loci", "animals"}

    async def upsert_locus(
        self, conn: asyncpg.Connection, species_id: str, locus: Locus, position: int
    ) -> None:
        await conn.execute(
            """
            INSERT INTO species_loci (
                species_id, name, dominance, homozygous_name,
                transmission_rate, position
            ) VALUES ($1, $2, $3, $4, $5, $6)
            ON CONFLICT (species_id, name) DO UPDATE SET
                dominance = EXCLUDED.dominance,
                homozygous_name = EXCLUDED.homozygous_name,
                transmission_rate = EXCLUDED.transmission_rate,
                position = EXCLUDED.position
            """,
            species_id,
            locus.name,
            locus.dominance.value,
            locus.homozygous_name,
            locus.transmission_rate,
            position,
        )

    async def upsert_animal(self, conn: asyncpg.Connection, animal: Animal) -> None:
        await conn.execute(
            """
            INSERT INTO animals (
                id, species_id, name, sex, dam_id, sire_id,
                visual_traits, het_traits
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8::jsonb)
            ON CONFLICT (id) DO UPDATE SET
                species_id = EXCLUDED.species_id,
                name = EXCLUDED.name,
                sex = EXCLUDED.sex,
                dam_id = EXCLUDED.dam_id,
                sire_id = EXCLUDED.sire_id,
                visual_traits = EXCLUDED.visual_traits,
                het_traits = EXCLUDED.het_traits
            """,
            animal.id,
            animal.species_id,
            animal.name,
            animal.sex.value,
            animal.dam_id,
            animal.sire_id,
            sorted(animal.genotype.visual_traits),
            json.dumps([het.to_dict() for het in animal.genotype.het_traits]),
        )

    async def count_animals(self, conn: asyncpg.Connection, species_id: str) -> int:
        return await conn.fetchval(
            "SELECT COUNT(*) FROM animals WHERE species_id = $1", species_id
        )
