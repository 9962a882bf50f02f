"""create users, calculators, properties, investments, analyses and settings tables

Revision ID: 3f1c9a2e7b40
Revises:
Create Date: 2026-10-19 10:12:41.513907

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c9a2e7b40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


user_role = sa.Enum('advisor', 'investor', name='userrole')
user_status = sa.Enum('active', 'inactive', name='userstatus')
calculator_status = sa.Enum('draft', 'active', 'archived', name='calculatorstatus')
analysis_type = sa.Enum('mortgage', 'cashflow', 'sensitivity', 'comparison', 'yield', name='analysistype')
analysis_status = sa.Enum('draft', 'active', 'archived', name='analysisstatus')


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('username', sa.String(100), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(50), nullable=False),
        sa.Column('role', user_role, nullable=False),
        sa.Column('status', user_status, nullable=False),
        sa.Column('calculators_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime, nullable=True),
        sa.Column('updated_at', sa.DateTime, nullable=True),
        sa.UniqueConstraint('username', name='uq_user_username'),
    )
    op.create_index('idx_users_role', 'users', ['role'])

    op.create_table(
        'calculators',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('self_equity', sa.DECIMAL(15, 2), nullable=False),
        sa.Column('has_mortgage', sa.Boolean, nullable=False),
        sa.Column('has_property_in_israel', sa.Boolean, nullable=False),
        sa.Column('investment_preference', sa.String(50), nullable=False),
        sa.Column('exchange_rate', sa.DECIMAL(10, 4), nullable=False),
        sa.Column('vat_rate', sa.DECIMAL(5, 2), nullable=False),
        sa.Column('status', calculator_status, nullable=False),
        sa.Column('investor_name', sa.String(255), nullable=False),
        sa.Column('investment_options_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('analyses_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime, nullable=True),
        sa.Column('updated_at', sa.DateTime, nullable=True),
    )
    op.create_index('idx_calculators_user', 'calculators', ['user_id'])
    op.create_index('idx_calculators_updated', 'calculators', ['updated_at'])

    op.create_table(
        'properties',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('price_without_vat', sa.DECIMAL(15, 2), nullable=False),
        sa.Column('monthly_rent', sa.DECIMAL(15, 2), nullable=False),
        sa.Column('guaranteed_rent', sa.Boolean, nullable=False),
        sa.Column('delivery_date', sa.Date, nullable=False),
        sa.Column('bedrooms', sa.Integer, nullable=False),
        sa.Column('location', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=True),
        sa.Column('updated_at', sa.DateTime, nullable=True),
    )

    op.create_table(
        'investments',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('calculator_id', sa.Integer, sa.ForeignKey('calculators.id'), nullable=False),
        sa.Column('property_id', sa.Integer, sa.ForeignKey('properties.id'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('is_selected', sa.Boolean, nullable=False),
        sa.Column('price_override', sa.DECIMAL(15, 2), nullable=True),
        sa.Column('monthly_rent_override', sa.DECIMAL(15, 2), nullable=True),
        sa.Column('has_furniture', sa.Boolean, nullable=False),
        sa.Column('has_property_management', sa.Boolean, nullable=False),
        sa.Column('has_real_estate_agent', sa.Boolean, nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=True),
        sa.Column('updated_at', sa.DateTime, nullable=True),
    )
    op.create_index('idx_investments_calculator', 'investments', ['calculator_id'])
    op.create_index('idx_investments_property', 'investments', ['property_id'])

    op.create_table(
        'analyses',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('calculator_id', sa.Integer, sa.ForeignKey('calculators.id'), nullable=False),
        sa.Column('investment_id', sa.Integer, sa.ForeignKey('investments.id'), nullable=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('type', analysis_type, nullable=False),
        sa.Column('parameters', sa.JSON, nullable=False),
        sa.Column('results', sa.JSON, nullable=False),
        sa.Column('is_default', sa.Boolean, nullable=False),
        sa.Column('status', analysis_status, nullable=False),
        sa.Column('calculator_name', sa.String(255), nullable=False),
        sa.Column('investment_name', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=True),
        sa.Column('updated_at', sa.DateTime, nullable=True),
    )
    op.create_index('idx_analyses_calculator_type', 'analyses', ['calculator_id', 'type'])
    op.create_index('idx_analyses_investment', 'analyses', ['investment_id'])

    op.create_table(
        'settings',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('key', sa.String(100), nullable=False),
        sa.Column('value', sa.Text, nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('updated_at', sa.DateTime, nullable=True),
        sa.UniqueConstraint('key', name='uq_setting_key'),
    )


def downgrade() -> None:
    op.drop_table('settings')
    op.drop_index('idx_analyses_investment', table_name='analyses')
    op.drop_index('idx_analyses_calculator_type', table_name='analyses')
    op.drop_table('analyses')
    op.drop_index('idx_investments_property', table_name='investments')
    op.drop_index('idx_investments_calculator', table_name='investments')
    op.drop_table('investments')
    op.drop_table('properties')
    op.drop_index('idx_calculators_updated', table_name='calculators')
    op.drop_index('idx_calculators_user', table_name='calculators')
    op.drop_table('calculators')
    op.drop_index('idx_users_role', table_name='users')
    op.drop_table('users')

    bind = op.get_bind()
    for enum_type in (analysis_status, analysis_type, calculator_status, user_status, user_role):
        enum_type.drop(bind, checkfirst=True)
