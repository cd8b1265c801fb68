"""initial workshop tables

Revision ID: 0001_initial_workshop
Revises: 
Create Date: 2026-10-18
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0001_initial_workshop'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    ]


def _soft_delete():
    return _timestamps() + [
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.Column('deleted_by', sa.Integer(), nullable=True),
    ]


def _vehicle():
    return [
        sa.Column('vehicle_brand', sa.String(length=100), nullable=False),
        sa.Column('vehicle_model', sa.String(length=100), nullable=False),
        sa.Column('vehicle_year', sa.Integer(), nullable=False),
        sa.Column('vehicle_plate', sa.String(length=20), nullable=False),
        sa.Column('vehicle_mileage', sa.Integer(), nullable=True),
    ]


def upgrade():
    op.create_table('users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(length=50), nullable=False, unique=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='mechanic'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('login_attempts', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('lock_until', sa.DateTime(), nullable=True),
        sa.Column('last_login_at', sa.DateTime(), nullable=True),
        *_soft_delete(),
    )
    op.create_index('ix_users_username', 'users', ['username'])
    op.create_index('ix_users_is_deleted', 'users', ['is_deleted'])

    op.create_table('clients',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name_paternal', sa.String(length=100), nullable=False),
        sa.Column('last_name_maternal', sa.String(length=100), nullable=True),
        sa.Column('phone', sa.String(length=20), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False, unique=True),
        *_soft_delete(),
    )
    op.create_index('ix_clients_email', 'clients', ['email'])
    op.create_index('ix_clients_is_deleted', 'clients', ['is_deleted'])

    op.create_table('mechanics',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False, unique=True),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name_paternal', sa.String(length=100), nullable=False),
        sa.Column('last_name_maternal', sa.String(length=100), nullable=True),
        sa.Column('phone', sa.String(length=20), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        *_soft_delete(),
    )
    op.create_index('ix_mechanics_is_deleted', 'mechanics', ['is_deleted'])

    op.create_table('quotes',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('number', sa.String(length=16), nullable=True, unique=True),
        sa.Column('client_id', sa.Integer(), sa.ForeignKey('clients.id'), nullable=False),
        *_vehicle(),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('proposed_work', sa.Text(), nullable=False),
        sa.Column('estimated_cost', sa.Integer(), nullable=False),
        sa.Column('valid_until', sa.DateTime(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('email_sent', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('email_sent_at', sa.DateTime(), nullable=True),
        sa.Column('email_attempts', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('work_order_id', sa.Integer(), nullable=True),
        sa.Column('notes', sa.String(length=1000), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        *_soft_delete(),
    )
    op.create_index('ix_quotes_number', 'quotes', ['number'])
    op.create_index('ix_quotes_client_id', 'quotes', ['client_id'])
    op.create_index('ix_quotes_vehicle_plate', 'quotes', ['vehicle_plate'])
    op.create_index('ix_quotes_status', 'quotes', ['status'])
    op.create_index('ix_quotes_is_deleted', 'quotes', ['is_deleted'])

    op.create_table('quote_approval_tokens',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('quote_id', sa.Integer(), sa.ForeignKey('quotes.id', ondelete='CASCADE'), nullable=False),
        sa.Column('token', sa.String(length=64), nullable=False, unique=True),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('used', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('used_at', sa.DateTime(), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_quote_approval_tokens_quote_id', 'quote_approval_tokens', ['quote_id'])
    op.create_index('ix_quote_approval_tokens_token', 'quote_approval_tokens', ['token'])

    op.create_table('work_orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('number', sa.String(length=16), nullable=True, unique=True),
        sa.Column('quote_id', sa.Integer(), sa.ForeignKey('quotes.id'), nullable=False, unique=True),
        sa.Column('client_id', sa.Integer(), sa.ForeignKey('clients.id'), nullable=False),
        sa.Column('mechanic_id', sa.Integer(), sa.ForeignKey('mechanics.id'), nullable=True),
        *_vehicle(),
        sa.Column('work_description', sa.Text(), nullable=False),
        sa.Column('estimated_cost', sa.Integer(), nullable=False),
        sa.Column('final_cost', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='pendiente_asignacion'),
        sa.Column('estimated_delivery', sa.DateTime(), nullable=True),
        sa.Column('actual_delivery', sa.DateTime(), nullable=True),
        sa.Column('additional_notes', sa.String(length=2000), nullable=True),
        sa.Column('additional_work', sa.String(length=2000), nullable=True),
        sa.Column('ready_email_sent', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('ready_email_sent_at', sa.DateTime(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        *_soft_delete(),
    )
    op.create_index('ix_work_orders_number', 'work_orders', ['number'])
    op.create_index('ix_work_orders_client_id', 'work_orders', ['client_id'])
    op.create_index('ix_work_orders_mechanic_id', 'work_orders', ['mechanic_id'])
    op.create_index('ix_work_orders_vehicle_plate', 'work_orders', ['vehicle_plate'])
    op.create_index('ix_work_orders_status', 'work_orders', ['status'])
    op.create_index('ix_work_orders_is_deleted', 'work_orders', ['is_deleted'])

    op.create_table('work_order_status_history',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('work_order_id', sa.Integer(), sa.ForeignKey('work_orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('previous_status', sa.String(length=32), nullable=True),
        sa.Column('new_status', sa.String(length=32), nullable=False),
        sa.Column('changed_by', sa.Integer(), nullable=True),
        sa.Column('changed_at', sa.DateTime(), nullable=False),
        sa.Column('note', sa.String(length=500), nullable=True),
    )
    op.create_index('ix_work_order_status_history_work_order_id', 'work_order_status_history', ['work_order_id'])

    op.create_table('work_order_notifications',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('work_order_id', sa.Integer(), sa.ForeignKey('work_orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('method', sa.String(length=16), nullable=False, server_default='email'),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('sent_at', sa.DateTime(), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_work_order_notifications_work_order_id', 'work_order_notifications', ['work_order_id'])

    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('level', sa.String(length=8), nullable=False, server_default='info'),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('module', sa.String(length=32), nullable=False),
        sa.Column('actor_user_id', sa.Integer(), nullable=True),
        sa.Column('entity', sa.String(length=64), nullable=True),
        sa.Column('entity_id', sa.String(length=64), nullable=True),
        sa.Column('meta', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('request_id', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    for col in ('level', 'action', 'module', 'actor_user_id', 'created_at'):
        op.create_index(f'ix_audit_logs_{col}', 'audit_logs', [col])


def downgrade():
    op.drop_table('audit_logs')
    op.drop_table('work_order_notifications')
    op.drop_table('work_order_status_history')
    op.drop_table('work_orders')
    op.drop_table('quote_approval_tokens')
    op.drop_table('quotes')
    op.drop_table('mechanics')
    op.drop_table('clients')
    op.drop_table('users')
