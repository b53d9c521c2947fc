"""Initial schema - tenants, cases, proposals, approvals, appointments, jobs

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-18

Creates every table used by triage, contractor matching and appointment approval.
"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '0001_initial_schema'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all tables."""

    op.execute('CREATE EXTENSION IF NOT EXISTS pgcrypto')  # For gen_random_uuid()

    # ==========================================================================
    # Tenants and identities
    # ==========================================================================
    op.execute('''
        CREATE TABLE organizations (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            name VARCHAR(255) NOT NULL,
            slug VARCHAR(100) UNIQUE NOT NULL,
            timezone VARCHAR(50) NOT NULL DEFAULT 'America/Los_Angeles',
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')

    op.execute('''
        CREATE TABLE users (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            email VARCHAR(255) UNIQUE NOT NULL,
            display_name VARCHAR(255) NOT NULL,
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            token_version INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')

    op.execute('''
        CREATE TABLE memberships (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            role VARCHAR(30) NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_membership_user UNIQUE (user_id)
        )
    ''')
    op.execute('CREATE INDEX idx_memberships_org_id ON memberships(organization_id)')

    # ==========================================================================
    # Providers (contractors)
    # ==========================================================================
    op.execute('''
        CREATE TABLE providers (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            user_id UUID REFERENCES users(id) ON DELETE SET NULL,
            name VARCHAR(255) NOT NULL,
            email VARCHAR(255),
            category VARCHAR(100) NOT NULL,
            specializations JSONB NOT NULL DEFAULT '[]'::jsonb,
            availability_pattern VARCHAR(50) NOT NULL DEFAULT 'weekdays_9to5',
            response_time_hours INTEGER DEFAULT 24,
            hourly_rate NUMERIC(10, 2),
            rating DOUBLE PRECISION,
            max_jobs_per_day INTEGER NOT NULL DEFAULT 3,
            emergency_available BOOLEAN NOT NULL DEFAULT FALSE,
            is_active_contractor BOOLEAN NOT NULL DEFAULT TRUE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute(
        'CREATE INDEX idx_providers_org_active ON providers(organization_id, is_active_contractor)'
    )

    # ==========================================================================
    # Cases and history
    # ==========================================================================
    op.execute('''
        CREATE TABLE cases (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            reported_by_user_id UUID REFERENCES users(id) ON DELETE SET NULL,
            property_id UUID,
            unit_id UUID,
            title VARCHAR(255) NOT NULL,
            description TEXT NOT NULL,
            photos JSONB NOT NULL DEFAULT '[]'::jsonb,
            category VARCHAR(100),
            urgency VARCHAR(20) NOT NULL DEFAULT 'Medium',
            status VARCHAR(20) NOT NULL DEFAULT 'New',
            assigned_provider_id UUID REFERENCES providers(id) ON DELETE SET NULL,
            classification JSONB,
            classified_at TIMESTAMPTZ,
            estimated_duration VARCHAR(50),
            ai_suggested_time TIMESTAMPTZ,
            ai_suggested_duration_minutes INTEGER,
            ai_time_confidence DOUBLE PRECISION,
            triage_status VARCHAR(20) NOT NULL DEFAULT 'pending',
            triage_error TEXT,
            version INTEGER NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX idx_cases_org_status ON cases(organization_id, status)')
    op.execute(
        'CREATE INDEX idx_cases_assigned_provider ON cases(assigned_provider_id, status)'
    )

    op.execute('''
        CREATE TABLE case_events (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            case_id UUID NOT NULL REFERENCES cases(id) ON DELETE CASCADE,
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            event_type VARCHAR(40) NOT NULL,
            from_status VARCHAR(20),
            to_status VARCHAR(20),
            actor_user_id UUID REFERENCES users(id) ON DELETE SET NULL,
            reason TEXT,
            details JSONB NOT NULL DEFAULT '{}'::jsonb,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX idx_case_events_case ON case_events(case_id, created_at)')

    # ==========================================================================
    # Proposals and slots
    # ==========================================================================
    op.execute('''
        CREATE TABLE proposals (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            case_id UUID NOT NULL REFERENCES cases(id) ON DELETE CASCADE,
            provider_id UUID NOT NULL REFERENCES providers(id) ON DELETE CASCADE,
            estimated_cost NUMERIC(10, 2),
            estimated_duration_minutes INTEGER NOT NULL,
            notes TEXT,
            status VARCHAR(20) NOT NULL DEFAULT 'pending',
            selected_slot_id UUID,
            auto_approved BOOLEAN NOT NULL DEFAULT FALSE,
            auto_approval_reason TEXT,
            decided_at TIMESTAMPTZ,
            decided_by_user_id UUID REFERENCES users(id) ON DELETE SET NULL,
            expires_at TIMESTAMPTZ,
            version INTEGER NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX idx_proposals_case ON proposals(case_id, status)')
    # One pending offer per provider per case
    op.execute('''
        CREATE UNIQUE INDEX uq_proposals_pending_case_provider
        ON proposals(case_id, provider_id)
        WHERE status = 'pending'
    ''')

    op.execute('''
        CREATE TABLE proposal_slots (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            proposal_id UUID NOT NULL REFERENCES proposals(id) ON DELETE CASCADE,
            slot_number INTEGER NOT NULL,
            start_time TIMESTAMPTZ NOT NULL,
            end_time TIMESTAMPTZ NOT NULL,
            status VARCHAR(20) NOT NULL DEFAULT 'proposed',
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_proposal_slot_number UNIQUE (proposal_id, slot_number),
            CONSTRAINT ck_proposal_slot_number CHECK (slot_number BETWEEN 1 AND 3),
            CONSTRAINT ck_proposal_slot_window CHECK (end_time > start_time)
        )
    ''')

    # ==========================================================================
    # Approval policies
    # ==========================================================================
    op.execute('''
        CREATE TABLE approval_policies (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            name VARCHAR(255) NOT NULL,
            involvement_mode VARCHAR(20) NOT NULL DEFAULT 'balanced',
            cost_threshold NUMERIC(10, 2),
            preferred_start_hour INTEGER,
            preferred_end_hour INTEGER,
            trusted_provider_ids JSONB NOT NULL DEFAULT '[]'::jsonb,
            urgency_gate VARCHAR(20),
            timezone VARCHAR(50) NOT NULL DEFAULT 'America/Los_Angeles',
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            created_by_user_id UUID REFERENCES users(id) ON DELETE SET NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT ck_policy_start_hour CHECK (
                preferred_start_hour IS NULL OR (preferred_start_hour BETWEEN 0 AND 23)
            ),
            CONSTRAINT ck_policy_end_hour CHECK (
                preferred_end_hour IS NULL OR (preferred_end_hour BETWEEN 0 AND 23)
            )
        )
    ''')
    # At most one active policy per organization
    op.execute('''
        CREATE UNIQUE INDEX uq_approval_policies_active_org
        ON approval_policies(organization_id)
        WHERE is_active
    ''')

    # ==========================================================================
    # Appointments
    # ==========================================================================
    op.execute('''
        CREATE TABLE appointments (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            case_id UUID NOT NULL REFERENCES cases(id) ON DELETE CASCADE,
            provider_id UUID NOT NULL REFERENCES providers(id) ON DELETE CASCADE,
            proposal_id UUID REFERENCES proposals(id) ON DELETE SET NULL,
            slot_id UUID,
            title VARCHAR(255) NOT NULL,
            scheduled_start TIMESTAMPTZ NOT NULL,
            scheduled_end TIMESTAMPTZ NOT NULL,
            status VARCHAR(20) NOT NULL DEFAULT 'Confirmed',
            external_event_id VARCHAR(255),
            calendar_sync_error TEXT,
            cancelled_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT ck_appointment_window CHECK (scheduled_end > scheduled_start)
        )
    ''')
    op.execute('CREATE INDEX idx_appointments_case ON appointments(case_id, status)')
    op.execute(
        'CREATE INDEX idx_appointments_provider_start '
        'ON appointments(provider_id, scheduled_start)'
    )

    # ==========================================================================
    # Background jobs
    # ==========================================================================
    op.execute('''
        CREATE TABLE jobs (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            job_type VARCHAR(50) NOT NULL,
            payload JSONB NOT NULL DEFAULT '{}'::jsonb,
            run_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            status VARCHAR(20) NOT NULL DEFAULT 'pending',
            attempts INTEGER NOT NULL DEFAULT 0,
            max_attempts INTEGER NOT NULL DEFAULT 3,
            last_error TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            completed_at TIMESTAMPTZ,
            idempotency_key VARCHAR(255)
        )
    ''')
    op.execute('''
        CREATE INDEX idx_jobs_pending ON jobs(status, run_at)
        WHERE status = 'pending'
    ''')
    op.execute('CREATE INDEX idx_jobs_org ON jobs(organization_id, created_at)')
    op.execute('''
        CREATE UNIQUE INDEX uq_job_idempotency ON jobs(idempotency_key)
        WHERE idempotency_key IS NOT NULL
    ''')


def downgrade() -> None:
    """Drop all tables."""
    for table in (
        'jobs',
        'appointments',
        'approval_policies',
        'proposal_slots',
        'proposals',
        'case_events',
        'cases',
        'providers',
        'memberships',
        'users',
        'organizations',
    ):
        op.execute(f'DROP TABLE IF EXISTS {table} CASCADE')
