from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'posts',
        sa.Column('id', sa.BigInteger(), nullable=False),
        sa.Column('author_id', sa.String(), nullable=False),
        sa.Column('post_type', sa.String(length=32), nullable=False, server_default='post'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('likes_count', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('comments_count', sa.BigInteger(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('likes_count >= 0', name='ck_posts_likes_count_non_negative'),
        sa.CheckConstraint('comments_count >= 0', name='ck_posts_comments_count_non_negative'),
        schema='public'
    )

    op.create_index('ix_posts_author_id', 'posts', ['author_id'], unique=False)
    op.create_index('ix_posts_created_at', 'posts', ['created_at'], unique=False)

    op.create_table(
        'interactions',
        sa.Column('id', sa.BigInteger(), sa.Identity(), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('post_type', sa.String(length=32), nullable=False, server_default='post'),
        sa.Column('post_id', sa.BigInteger(), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('comment_id', sa.BigInteger(), nullable=True),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('parent_id', sa.BigInteger(), nullable=True),
        # like:<user>:<post_id>, save:<user>:<post_id>, comment_like:<user>:<comment_id>;
        # NULL for comments, which may repeat
        sa.Column('dedupe_key', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('dedupe_key', name='uq_interactions_dedupe_key'),
        schema='public'
    )

    op.create_index('ix_interactions_user_id', 'interactions', ['user_id'], unique=False)
    op.create_index('ix_interactions_post_id', 'interactions', ['post_id'], unique=False)
    op.create_index('ix_interactions_comment_id', 'interactions', ['comment_id'], unique=False)
    op.create_index('idx_interactions_post_type', 'interactions', ['post_id', 'type'], unique=False)


def downgrade() -> None:
    op.drop_table('interactions', schema='public')
    op.drop_table('posts', schema='public')
