"""Baseline migration - tenants, studies, reports

Revision ID: 0001_baseline
Revises:
Create Date: 2026-10-19

Creates tenant, user, patient, study, report, note, attachment and audit
tables for the report lifecycle service.
"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '0001_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all tables."""

    op.execute('CREATE EXTENSION IF NOT EXISTS pgcrypto')  # For gen_random_uuid()

    # ==========================================================================
    # Tenancy
    # ==========================================================================
    op.execute('''
        CREATE TABLE organizations (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            identifier VARCHAR(32) UNIQUE NOT NULL,
            name VARCHAR(255) NOT NULL,
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')

    op.execute('''
        CREATE TABLE labs (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            identifier VARCHAR(32) NOT NULL,
            name VARCHAR(255) NOT NULL,
            require_report_verification BOOLEAN NOT NULL DEFAULT FALSE,
            header_image_key VARCHAR(512),
            footer_image_key VARCHAR(512),
            branding JSONB,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_labs_org_identifier UNIQUE (organization_id, identifier)
        )
    ''')

    op.execute('''
        CREATE TABLE users (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID REFERENCES organizations(id) ON DELETE CASCADE,
            organization_identifier VARCHAR(32),
            email VARCHAR(255) UNIQUE NOT NULL,
            full_name VARCHAR(255) NOT NULL,
            role VARCHAR(50) NOT NULL,
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            token_version INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX idx_users_org_role ON users(organization_id, role)')

    op.execute('''
        CREATE TABLE doctor_profiles (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id UUID UNIQUE NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            organization_id UUID REFERENCES organizations(id) ON DELETE CASCADE,
            specialization VARCHAR(255),
            require_report_verification BOOLEAN NOT NULL DEFAULT TRUE,
            signature_storage_key VARCHAR(512),
            signature_text TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')

    # ==========================================================================
    # Patients
    # ==========================================================================
    op.execute('''
        CREATE TABLE patients (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID NOT NULL REFERENCES organizations(id) ON DELETE CASCADE,
            organization_identifier VARCHAR(32) NOT NULL,
            patient_external_id VARCHAR(128) NOT NULL,
            full_name VARCHAR(255),
            age VARCHAR(32),
            gender VARCHAR(16),
            date_of_birth VARCHAR(32),
            current_workflow_status VARCHAR(64),
            active_study_id UUID,
            last_activity_at TIMESTAMPTZ,
            status_notes TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_patients_org_external_id UNIQUE (organization_id, patient_external_id)
        )
    ''')

    # ==========================================================================
    # Studies
    # ==========================================================================
    op.execute('''
        CREATE TABLE studies (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            external_id VARCHAR(128) UNIQUE NOT NULL,
            organization_id UUID REFERENCES organizations(id) ON DELETE CASCADE,
            organization_identifier VARCHAR(32),
            source_lab_id UUID REFERENCES labs(id) ON DELETE SET NULL,

            patient_id UUID REFERENCES patients(id) ON DELETE SET NULL,
            patient_external_id VARCHAR(128),
            patient_name VARCHAR(255),
            patient_age VARCHAR(32),
            patient_gender VARCHAR(16),

            study_instance_uid VARCHAR(128),
            accession_number VARCHAR(64),
            study_date TIMESTAMPTZ,
            modality VARCHAR(32),
            study_description VARCHAR(512),
            exam_description VARCHAR(512),
            series_count INTEGER NOT NULL DEFAULT 0,
            instance_count INTEGER NOT NULL DEFAULT 0,
            clinical_history TEXT,
            referring_physician JSONB,
            institution_name VARCHAR(255),
            priority VARCHAR(32) NOT NULL DEFAULT 'NORMAL',

            workflow_status VARCHAR(64) NOT NULL,
            current_category VARCHAR(32) NOT NULL,

            drafted_at TIMESTAMPTZ,
            finalized_at TIMESTAMPTZ,
            sent_for_verification_at TIMESTAMPTZ,
            completed_at TIMESTAMPTZ,
            downloaded_at TIMESTAMPTZ,
            printed_at TIMESTAMPTZ,
            archived_at TIMESTAMPTZ,
            reporter_name VARCHAR(255),
            completed_without_verification BOOLEAN NOT NULL DEFAULT FALSE,

            verification_status VARCHAR(32),
            verified_by_user_id UUID,
            verified_at TIMESTAMPTZ,
            verification_notes TEXT,
            rejection_reason TEXT,

            is_reverted BOOLEAN NOT NULL DEFAULT FALSE,
            revert_count INTEGER NOT NULL DEFAULT 0,
            revert_history JSONB NOT NULL DEFAULT '[]'::jsonb,

            has_reports BOOLEAN NOT NULL DEFAULT FALSE,
            latest_report_id UUID,
            latest_report_status VARCHAR(32),
            latest_report_type VARCHAR(32),
            report_count INTEGER NOT NULL DEFAULT 0,
            last_reported_at TIMESTAMPTZ,
            last_reported_by_user_id UUID,
            report_refs JSONB NOT NULL DEFAULT '[]'::jsonb,

            is_copied_study BOOLEAN NOT NULL DEFAULT FALSE,
            copied_from_study_id UUID,
            copied_from JSONB,
            copied_to JSONB NOT NULL DEFAULT '[]'::jsonb,

            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX idx_studies_org_category ON studies(organization_id, current_category)')
    op.execute('CREATE INDEX idx_studies_org_status ON studies(organization_id, workflow_status)')
    op.execute('CREATE INDEX idx_studies_patient ON studies(patient_id)')

    op.execute('''
        CREATE TABLE study_assignments (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            study_id UUID NOT NULL REFERENCES studies(id) ON DELETE CASCADE,
            assigned_to_user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            assigned_by_user_id UUID REFERENCES users(id) ON DELETE SET NULL,
            priority VARCHAR(32) NOT NULL DEFAULT 'NORMAL',
            assigned_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX idx_study_assignments_study ON study_assignments(study_id, assigned_at)')

    op.execute('''
        CREATE TABLE study_status_history (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            study_id UUID NOT NULL REFERENCES studies(id) ON DELETE CASCADE,
            organization_id UUID,
            event VARCHAR(64) NOT NULL,
            from_status VARCHAR(64),
            to_status VARCHAR(64) NOT NULL,
            category VARCHAR(32) NOT NULL,
            changed_by_user_id UUID REFERENCES users(id) ON DELETE SET NULL,
            note TEXT,
            changed_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX idx_study_status_history_study ON study_status_history(study_id, changed_at)')

    # ==========================================================================
    # Reports
    # ==========================================================================
    op.execute('''
        CREATE TABLE reports (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            report_id VARCHAR(128) UNIQUE NOT NULL,
            organization_id UUID REFERENCES organizations(id) ON DELETE CASCADE,
            organization_identifier VARCHAR(32),
            study_id UUID NOT NULL REFERENCES studies(id) ON DELETE CASCADE,
            patient_id UUID REFERENCES patients(id) ON DELETE SET NULL,
            patient_external_id VARCHAR(128),

            doctor_id UUID REFERENCES users(id) ON DELETE SET NULL,
            created_by_user_id UUID REFERENCES users(id) ON DELETE SET NULL,
            owner_resolution VARCHAR(32) NOT NULL DEFAULT 'self',

            report_type VARCHAR(32) NOT NULL DEFAULT 'draft',
            report_status VARCHAR(32) NOT NULL DEFAULT 'draft',

            html_content TEXT NOT NULL DEFAULT '',
            template_info JSONB,
            placeholders JSONB,
            captured_images JSONB NOT NULL DEFAULT '[]'::jsonb,

            word_count INTEGER NOT NULL DEFAULT 0,
            character_count INTEGER NOT NULL DEFAULT 0,
            page_count INTEGER NOT NULL DEFAULT 1,
            image_count INTEGER NOT NULL DEFAULT 0,

            export_format VARCHAR(8) NOT NULL DEFAULT 'docx',
            file_name VARCHAR(255),
            download_url VARCHAR(2048),
            rendered_storage_key VARCHAR(512),

            patient_info JSONB,
            study_info JSONB,

            drafted_at TIMESTAMPTZ,
            finalized_at TIMESTAMPTZ,
            status_history JSONB NOT NULL DEFAULT '[]'::jsonb,

            verification_status VARCHAR(32),
            verifier_id UUID REFERENCES users(id) ON DELETE SET NULL,
            verified_at TIMESTAMPTZ,
            verification_notes TEXT,
            rejection_reason TEXT,
            corrections JSONB NOT NULL DEFAULT '[]'::jsonb,
            verification_history JSONB NOT NULL DEFAULT '[]'::jsonb,

            download_count INTEGER NOT NULL DEFAULT 0,
            last_downloaded_at TIMESTAMPTZ,
            download_history JSONB NOT NULL DEFAULT '[]'::jsonb,
            print_count INTEGER NOT NULL DEFAULT 0,
            last_printed_at TIMESTAMPTZ,
            print_history JSONB NOT NULL DEFAULT '[]'::jsonb,

            copied_from_report_id UUID,

            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX idx_reports_study_doctor ON reports(study_id, doctor_id, created_at)')
    op.execute('CREATE INDEX idx_reports_org_status ON reports(organization_id, report_status)')

    # ==========================================================================
    # Notes, attachments, audit
    # ==========================================================================
    op.execute('''
        CREATE TABLE study_notes (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID REFERENCES organizations(id) ON DELETE CASCADE,
            study_id UUID NOT NULL REFERENCES studies(id) ON DELETE CASCADE,
            note_text TEXT NOT NULL,
            note_type VARCHAR(32) NOT NULL DEFAULT 'general',
            priority VARCHAR(16) NOT NULL DEFAULT 'normal',
            is_private BOOLEAN NOT NULL DEFAULT FALSE,
            created_by_user_id UUID REFERENCES users(id) ON DELETE SET NULL,
            created_by_name VARCHAR(255) NOT NULL,
            created_by_role VARCHAR(50),
            copied_from_note_id UUID,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX idx_study_notes_study ON study_notes(study_id, created_at)')

    op.execute('''
        CREATE TABLE attachments (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID REFERENCES organizations(id) ON DELETE CASCADE,
            organization_identifier VARCHAR(32),
            study_id UUID NOT NULL REFERENCES studies(id) ON DELETE CASCADE,
            uploaded_by_user_id UUID REFERENCES users(id) ON DELETE SET NULL,
            file_name VARCHAR(255) NOT NULL,
            storage_key VARCHAR(512) UNIQUE NOT NULL,
            content_type VARCHAR(100) NOT NULL,
            file_size INTEGER NOT NULL DEFAULT 0,
            document_type VARCHAR(32) NOT NULL DEFAULT 'clinical',
            storage_metadata JSONB,
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            copied_from_attachment_id UUID,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX idx_attachments_study_active ON attachments(study_id, is_active)')

    op.execute('''
        CREATE TABLE audit_logs (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            organization_id UUID,
            actor_user_id UUID,
            event_type VARCHAR(64) NOT NULL,
            target_type VARCHAR(32) NOT NULL,
            target_id UUID,
            details JSONB,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX idx_audit_logs_org_created ON audit_logs(organization_id, created_at)')
    op.execute('CREATE INDEX idx_audit_logs_target ON audit_logs(target_type, target_id)')


def downgrade() -> None:
    """Drop all tables."""
    for table in (
        'audit_logs',
        'attachments',
        'study_notes',
        'reports',
        'study_status_history',
        'study_assignments',
        'studies',
        'patients',
        'doctor_profiles',
        'users',
        'labs',
        'organizations',
    ):
        op.execute(f'DROP TABLE IF EXISTS {table} CASCADE')
