"""Initial schema - SafePrag

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

Cria as tabelas:
- companies (dados e licenças da empresa prestadora)
- service_order_counters (numeração sequencial de OS por empresa)
- service_order_reports (PDFs finalizados e metadados)
- schedules (visitas agendadas)
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create initial database schema."""

    # ==========================================================================
    # COMPANIES
    # ==========================================================================
    op.create_table(
        'companies',
        sa.Column('id', sa.String(100), primary_key=True),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('cnpj', sa.String(20), nullable=True),
        sa.Column('phone', sa.String(30), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('logo_url', sa.Text(), nullable=True),
        sa.Column('environmental_license_number', sa.String(100), nullable=True),
        sa.Column('environmental_license_date', sa.String(20), nullable=True),
        sa.Column('sanitary_permit_number', sa.String(100), nullable=True),
        sa.Column('sanitary_permit_expiry_date', sa.String(20), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )

    # ==========================================================================
    # SERVICE ORDER COUNTERS
    # ==========================================================================
    op.create_table(
        'service_order_counters',
        sa.Column('company_id', sa.String(100), primary_key=True),
        sa.Column('last_number', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )

    # ==========================================================================
    # SERVICE ORDER REPORTS
    # ==========================================================================
    op.create_table(
        'service_order_reports',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('company_id', sa.String(100), nullable=False),
        sa.Column('order_number', sa.Integer(), nullable=False),
        sa.Column('client_name', sa.String(255), nullable=True),
        sa.Column('client_code', sa.String(50), nullable=True),
        sa.Column('service_type', sa.String(200), nullable=True),
        sa.Column('services', sa.JSON(), nullable=True),
        sa.Column('technician_name', sa.String(200), nullable=True),
        sa.Column('service_date', sa.String(20), nullable=True),
        sa.Column('filename', sa.String(500), nullable=False),
        sa.Column('content_hash', sa.String(64), nullable=False),
        sa.Column('size_bytes', sa.Integer(), nullable=False),
        sa.Column('pdf', sa.LargeBinary(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('company_id', 'order_number', name='uq_service_order_reports_company_order'),
    )
    op.create_index(
        'idx_service_order_reports_company_created',
        'service_order_reports',
        ['company_id', 'created_at'],
    )

    # ==========================================================================
    # SCHEDULES
    # ==========================================================================
    op.create_table(
        'schedules',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('company_id', sa.String(100), nullable=False),
        sa.Column('client_name', sa.String(255), nullable=False),
        sa.Column('client_code', sa.String(50), nullable=True),
        sa.Column('service_type', sa.String(200), nullable=True),
        sa.Column('date', sa.String(10), nullable=False),
        sa.Column('time', sa.String(5), nullable=True),
        sa.Column('technician_name', sa.String(200), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_schedules_company_id', 'schedules', ['company_id'])
    op.create_index('idx_schedules_company_date', 'schedules', ['company_id', 'date', 'time'])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_index('idx_schedules_company_date', table_name='schedules')
    op.drop_index('ix_schedules_company_id', table_name='schedules')
    op.drop_table('schedules')
    op.drop_index('idx_service_order_reports_company_created', table_name='service_order_reports')
    op.drop_table('service_order_reports')
    op.drop_table('service_order_counters')
    op.drop_table('companies')
