"""
Seed test data into the database
Run: python seed_data.py
"""
import asyncio
from datetime import datetime, timedelta
from sqlalchemy import select
from app.database.postgres import async_session_factory, init_db
from app.database.models import Post
from app.models.post import PostCreate
from app.services.interaction_store import interaction_store
from loguru import logger


# Sample adoption / donation posts
SAMPLE_POSTS = [
    {"id": 1, "author_id": "alice", "post_type": "pet"},
    {"id": 2, "author_id": "bob", "post_type": "post"},
    {"id": 3, "author_id": "charlie", "post_type": "donation"},
    {"id": 4, "author_id": "alice", "post_type": "post"},
    {"id": 5, "author_id": "diana", "post_type": "vet_help"},
    {"id": 6, "author_id": "bob", "post_type": "pet"},
]

# user123 likes and saves a few posts and leaves comments
SAMPLE_FLAGS = [
    {"user_id": "user123", "post_id": 1, "type": "like"},
    {"user_id": "user123", "post_id": 2, "type": "like"},
    {"user_id": "user123", "post_id": 6, "type": "like"},
    {"user_id": "user123", "post_id": 1, "type": "save"},
    {"user_id": "bob", "post_id": 1, "type": "like"},
    {"user_id": "diana", "post_id": 3, "type": "like"},
]

SAMPLE_COMMENTS = [
    {"user_id": "user123", "post_id": 1, "content": "What a sweet dog! Is he still up for adoption?"},
    {"user_id": "alice", "post_id": 1, "content": "Yes, he is! Send me a message."},
    {"user_id": "bob", "post_id": 5, "content": "Donated, hope she gets better soon."},
]


async def seed_data():
    """Seed test data into database"""
    logger.info("Initializing database...")

    await init_db()

    async with async_session_factory() as session:
        result = await session.execute(select(Post))
        existing_posts = result.scalars().all()

        if existing_posts:
            logger.warning("⚠️  Database already contains posts. Skipping seed.")
            return

        logger.info("Creating sample posts...")
        for post_data in SAMPLE_POSTS:
            await interaction_store.create_post(
                PostCreate(
                    created_at=datetime.utcnow() - timedelta(days=len(SAMPLE_POSTS) - post_data["id"]),
                    **post_data
                ),
                session
            )
        logger.info(f"✅ Created {len(SAMPLE_POSTS)} posts")

        logger.info("Creating sample likes and saves...")
        for flag in SAMPLE_FLAGS:
            post_type = next(p["post_type"] for p in SAMPLE_POSTS if p["id"] == flag["post_id"])
            await interaction_store.create(flag["user_id"], post_type, flag["post_id"], flag["type"], session)

        comment_ids = []
        for comment in SAMPLE_COMMENTS:
            result = await interaction_store.create_comment(
                comment["user_id"], comment["post_id"], comment["content"], session
            )
            comment_ids.append(result.interaction.comment_id)

        await interaction_store.create_comment_like("alice", comment_ids[0], session)
        logger.info(f"✅ Created {len(SAMPLE_FLAGS)} flags and {len(SAMPLE_COMMENTS)} comments")

        logger.info("\n🎉 Database seeded successfully!")
        logger.info("\n💡 Try it:")
        logger.info("   GET http://localhost:8001/interactions/snapshot?postIds=1&postIds=2")
        logger.info('   with header  X-User-Id: user123')


if __name__ == "__main__":
    asyncio.run(seed_data())
