"""Neo4j constraints the repositories rely on. Idempotent; run at startup."""

import logging

logger = logging.getLogger(__name__)

_CONSTRAINT_QUERIES = (
    """
    CREATE CONSTRAINT actor_id_unique IF NOT EXISTS
    FOR (a:Actor) REQUIRE a.id IS UNIQUE
    """,
    """
    CREATE CONSTRAINT share_id_unique IF NOT EXISTS
    FOR (s:Share) REQUIRE s.id IS UNIQUE
    """,
    """
    CREATE CONSTRAINT related_to_id_unique IF NOT EXISTS
    FOR ()-[r:RELATED_TO]-() REQUIRE r.id IS UNIQUE
    """,
    """
    CREATE CONSTRAINT holds_id_unique IF NOT EXISTS
    FOR ()-[h:HOLDS]-() REQUIRE h.id IS UNIQUE
    """,
    # Lock nodes: MERGE on a unique key makes concurrent writers for the same key queue up.
    """
    CREATE CONSTRAINT relationship_lock_unique IF NOT EXISTS
    FOR (l:RelationshipLock) REQUIRE l.actor_id IS UNIQUE
    """,
    """
    CREATE CONSTRAINT assignment_lock_unique IF NOT EXISTS
    FOR (l:AssignmentLock) REQUIRE l.share_id IS UNIQUE
    """,
)


def ensure_schema(driver) -> None:
    """Create unique constraints on Actor, Share, edge ids and lock nodes if missing."""
    with driver.session() as session:
        for query in _CONSTRAINT_QUERIES:
            session.run(query).consume()
    logger.info("Neo4j schema ensured (%d constraints)", len(_CONSTRAINT_QUERIES))
