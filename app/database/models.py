from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Text, BigInteger, Index
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# SQLite only autoincrements INTEGER PRIMARY KEY columns
IdType = BigInteger().with_variant(Integer, "sqlite")


class Post(Base):
    """SQLAlchemy model for posts"""
    __tablename__ = "posts"

    id = Column(IdType, primary_key=True, index=True)
    author_id = Column(String, nullable=False, index=True)
    post_type = Column(String(32), nullable=False, default="post")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    # Cached counters, only ever adjusted together with the matching interaction row
    likes_count = Column(BigInteger, default=0, nullable=False)
    comments_count = Column(BigInteger, default=0, nullable=False)

    def __repr__(self):
        return f"<Post(id={self.id}, likes={self.likes_count}, comments={self.comments_count})>"


class Interaction(Base):
    """SQLAlchemy model for likes, saves, comments and comment likes"""
    __tablename__ = "interactions"

    id = Column(IdType, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False, index=True)
    post_type = Column(String(32), nullable=False, default="post")
    post_id = Column(BigInteger, nullable=False, index=True)
    type = Column(String(20), nullable=False)

    # comment: own id; comment_like: the liked comment
    comment_id = Column(BigInteger, nullable=True, index=True)
    content = Column(Text, nullable=True)
    parent_id = Column(BigInteger, nullable=True)

    # One row per presence flag: like:<user>:<post_id>, save:<user>:<post_id>,
    # comment_like:<user>:<comment_id>. NULL for comments
    dedupe_key = Column(String, nullable=True, unique=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("idx_interactions_post_type", "post_id", "type"),
    )

    def __repr__(self):
        return f"<Interaction(id={self.id}, type={self.type}, user_id={self.user_id}, post_id={self.post_id})>"
