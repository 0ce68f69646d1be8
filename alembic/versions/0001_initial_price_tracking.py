"""Initial price tracking schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create tracked_items table
    op.create_table('tracked_items',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('product_name', sa.String(length=200), nullable=False),
        sa.Column('product_brand', sa.String(length=100), nullable=True),
        sa.Column('product_category', sa.String(length=50), nullable=True),
        sa.Column('product_image', sa.String(length=500), nullable=True),
        sa.Column('original_price', sa.Float(), nullable=False),
        sa.Column('current_price', sa.Float(), nullable=False),
        sa.Column('lowest_price', sa.Float(), nullable=True),
        sa.Column('highest_price', sa.Float(), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=True),
        sa.Column('is_tracking', sa.Boolean(), nullable=True),
        sa.Column('check_frequency', sa.String(length=10), nullable=True),
        sa.Column('last_checked', sa.DateTime(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=True),
        sa.Column('purchased_at', sa.DateTime(), nullable=True),
        sa.Column('purchase_price', sa.Float(), nullable=True),
        sa.Column('alerts_enabled', sa.Boolean(), nullable=True),
        sa.Column('price_drop_threshold', sa.Float(), nullable=True),
        sa.Column('target_price', sa.Float(), nullable=True),
        sa.Column('email_alerts', sa.Boolean(), nullable=True),
        sa.Column('push_alerts', sa.Boolean(), nullable=True),
        sa.Column('last_alert_sent', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_tracked_items_user_id'), 'tracked_items', ['user_id'], unique=False)
    op.create_index(op.f('ix_tracked_items_check_frequency'), 'tracked_items', ['check_frequency'], unique=False)
    op.create_index(op.f('ix_tracked_items_last_checked'), 'tracked_items', ['last_checked'], unique=False)
    op.create_index(op.f('ix_tracked_items_status'), 'tracked_items', ['status'], unique=False)

    # Create item_sources table
    op.create_table('item_sources',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('domain', sa.String(length=200), nullable=False),
        sa.Column('url', sa.String(length=1000), nullable=False),
        sa.Column('last_observed_price', sa.Float(), nullable=True),
        sa.Column('availability', sa.String(length=20), nullable=True),
        sa.Column('last_checked_at', sa.DateTime(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.ForeignKeyConstraint(['item_id'], ['tracked_items.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_item_sources_id'), 'item_sources', ['id'], unique=False)
    op.create_index(op.f('ix_item_sources_item_id'), 'item_sources', ['item_id'], unique=False)

    # Create price_history table
    op.create_table('price_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.String(length=36), nullable=False),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=True),
        sa.Column('source', sa.String(length=100), nullable=False),
        sa.Column('url', sa.String(length=1000), nullable=True),
        sa.Column('availability', sa.String(length=20), nullable=True),
        sa.Column('recorded_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['item_id'], ['tracked_items.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_price_history_id'), 'price_history', ['id'], unique=False)
    op.create_index(op.f('ix_price_history_item_id'), 'price_history', ['item_id'], unique=False)
    op.create_index(op.f('ix_price_history_recorded_at'), 'price_history', ['recorded_at'], unique=False)

    # Create price_alerts table
    op.create_table('price_alerts',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('item_id', sa.String(length=36), nullable=False),
        sa.Column('alert_type', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=True),
        sa.Column('priority', sa.String(length=10), nullable=True),
        sa.Column('previous_price', sa.Float(), nullable=True),
        sa.Column('current_price', sa.Float(), nullable=False),
        sa.Column('target_price', sa.Float(), nullable=True),
        sa.Column('drop_amount', sa.Float(), nullable=True),
        sa.Column('drop_percentage', sa.Float(), nullable=True),
        sa.Column('product_name', sa.String(length=200), nullable=False),
        sa.Column('product_brand', sa.String(length=100), nullable=True),
        sa.Column('product_image', sa.String(length=500), nullable=True),
        sa.Column('product_category', sa.String(length=50), nullable=True),
        sa.Column('source_name', sa.String(length=100), nullable=True),
        sa.Column('source_domain', sa.String(length=200), nullable=True),
        sa.Column('source_url', sa.String(length=1000), nullable=True),
        sa.Column('email_requested', sa.Boolean(), nullable=True),
        sa.Column('email_sent', sa.Boolean(), nullable=True),
        sa.Column('email_sent_at', sa.DateTime(), nullable=True),
        sa.Column('email_attempts', sa.Integer(), nullable=True),
        sa.Column('push_requested', sa.Boolean(), nullable=True),
        sa.Column('push_sent', sa.Boolean(), nullable=True),
        sa.Column('push_sent_at', sa.DateTime(), nullable=True),
        sa.Column('push_attempts', sa.Integer(), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=True),
        sa.Column('read_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_price_alerts_user_id'), 'price_alerts', ['user_id'], unique=False)
    op.create_index(op.f('ix_price_alerts_item_id'), 'price_alerts', ['item_id'], unique=False)
    op.create_index(op.f('ix_price_alerts_alert_type'), 'price_alerts', ['alert_type'], unique=False)
    op.create_index(op.f('ix_price_alerts_status'), 'price_alerts', ['status'], unique=False)
    op.create_index(op.f('ix_price_alerts_created_at'), 'price_alerts', ['created_at'], unique=False)
    op.create_index(op.f('ix_price_alerts_expires_at'), 'price_alerts', ['expires_at'], unique=False)

    # Create user_preferences table
    op.create_table('user_preferences',
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('display_name', sa.String(length=100), nullable=True),
        sa.Column('email_enabled', sa.Boolean(), nullable=True),
        sa.Column('push_enabled', sa.Boolean(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint('user_id')
    )


def downgrade() -> None:
    op.drop_table('user_preferences')
    op.drop_index(op.f('ix_price_alerts_expires_at'), table_name='price_alerts')
    op.drop_index(op.f('ix_price_alerts_created_at'), table_name='price_alerts')
    op.drop_index(op.f('ix_price_alerts_status'), table_name='price_alerts')
    op.drop_index(op.f('ix_price_alerts_alert_type'), table_name='price_alerts')
    op.drop_index(op.f('ix_price_alerts_item_id'), table_name='price_alerts')
    op.drop_index(op.f('ix_price_alerts_user_id'), table_name='price_alerts')
    op.drop_table('price_alerts')
    op.drop_index(op.f('ix_price_history_recorded_at'), table_name='price_history')
    op.drop_index(op.f('ix_price_history_item_id'), table_name='price_history')
    op.drop_index(op.f('ix_price_history_id'), table_name='price_history')
    op.drop_table('price_history')
    op.drop_index(op.f('ix_item_sources_item_id'), table_name='item_sources')
    op.drop_index(op.f('ix_item_sources_id'), table_name='item_sources')
    op.drop_table('item_sources')
    op.drop_index(op.f('ix_tracked_items_status'), table_name='tracked_items')
    op.drop_index(op.f('ix_tracked_items_last_checked'), table_name='tracked_items')
    op.drop_index(op.f('ix_tracked_items_check_frequency'), table_name='tracked_items')
    op.drop_index(op.f('ix_tracked_items_user_id'), table_name='tracked_items')
    op.drop_table('tracked_items')
