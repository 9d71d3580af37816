"""create email lists, subscribers, campaigns and campaign analytics

Revision ID: 3b1f6d2a9c47
Revises:
Create Date: 2026-10-18 14:02:11.418305

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3b1f6d2a9c47'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade():
    op.create_table(
        "email_lists",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("subscriber_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "subscribers",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email_list_id", sa.Uuid(), sa.ForeignKey("email_lists.id"), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("first_name", sa.String(), nullable=True),
        sa.Column("last_name", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="active"),
        sa.Column("subscribed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_subscribers_email_list_id", "subscribers", ["email_list_id"])
    op.create_index("ix_subscribers_email", "subscribers", ["email"])

    op.create_table(
        "campaigns",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email_list_id", sa.Uuid(), sa.ForeignKey("email_lists.id"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("subject", sa.String(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("template_id", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="draft"),
        sa.Column("sent_at", sa.DateTime(), nullable=True),
        sa.Column("recipient_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "campaign_analytics",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("campaign_id", sa.Uuid(), sa.ForeignKey("campaigns.id"), nullable=False),
        sa.Column("subscriber_id", sa.Uuid(), sa.ForeignKey("subscribers.id"), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("event_data", sa.JSON(), nullable=True),
        sa.Column("provider_message_id", sa.String(), nullable=True),
        sa.Column("timestamp", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_campaign_analytics_campaign_id", "campaign_analytics", ["campaign_id"])
    op.create_index("ix_campaign_analytics_provider_message_id", "campaign_analytics", ["provider_message_id"])


def downgrade():
    op.drop_index("ix_campaign_analytics_provider_message_id", table_name="campaign_analytics")
    op.drop_index("ix_campaign_analytics_campaign_id", table_name="campaign_analytics")
    op.drop_table("campaign_analytics")
    op.drop_table("campaigns")
    op.drop_index("ix_subscribers_email", table_name="subscribers")
    op.drop_index("ix_subscribers_email_list_id", table_name="subscribers")
    op.drop_table("subscribers")
    op.drop_table("email_lists")
