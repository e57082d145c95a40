"""create code catalog, cbo and capability tables

Revision ID: a7c1e9d2b4f0
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = 'a7c1e9d2b4f0'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

STRATA = ('S1', 'S2', 'S3', 'S4', 'S5', 'S6', 'S7', 'S8')


# Enums criados uma única vez, antes das tabelas
enum_metadata = sa.MetaData()
codesystemkind = sa.Enum('CID10', 'CID11', 'CIAP2', 'NURSING', name='codesystemkind', metadata=enum_metadata)
sexrestriction = sa.Enum('M', 'F', name='sexrestriction', metadata=enum_metadata)
crossasterisk = sa.Enum('ETIOLOGY', 'MANIFESTATION', name='crossasterisk', metadata=enum_metadata)
stratumlevel = sa.Enum(*STRATA, name='stratumlevel', metadata=enum_metadata)
auditaction = sa.Enum(
    'DATA_IMPORT', 'code_deactivated', 'job_role_created', 'job_role_assigned',
    'CAPABILITY_EVALUATION_CREATE', name='auditaction', metadata=enum_metadata
)
ENUM_TYPES = (codesystemkind, sexrestriction, crossasterisk, stratumlevel, auditaction)


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in ENUM_TYPES:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        'code_systems',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('kind', codesystemkind, nullable=False),
        sa.Column('version', sa.String(length=50), nullable=True),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('kind', 'version', name='uq_code_system_kind_version')
    )
    op.create_index('ix_code_systems_id', 'code_systems', ['id'], unique=False)

    op.create_table(
        'medical_codes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('system_id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=20), nullable=False),
        sa.Column('display', sa.String(length=500), nullable=False),
        sa.Column('short_description', sa.String(length=500), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_category', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('chapter', sa.String(length=20), nullable=True),
        sa.Column('parent_id', sa.Integer(), nullable=True),
        sa.Column('sex_restriction', sexrestriction, nullable=True),
        sa.Column('cross_asterisk', crossasterisk, nullable=True),
        sa.Column('synonyms', sa.JSON(), nullable=True),
        sa.Column('searchable_text', sa.Text(), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['system_id'], ['code_systems.id']),
        sa.ForeignKeyConstraint(['parent_id'], ['medical_codes.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('system_id', 'code', name='uq_medical_code_system_code')
    )
    op.create_index('ix_medical_codes_id', 'medical_codes', ['id'], unique=False)
    op.create_index('ix_medical_codes_chapter', 'medical_codes', ['chapter'], unique=False)
    op.create_index('ix_medical_codes_system_category', 'medical_codes', ['system_id', 'is_category'], unique=False)

    op.create_table(
        'cbo_groups',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=30), nullable=False),
        sa.Column('name', sa.String(length=300), nullable=False),
        sa.Column('level', sa.Integer(), nullable=False),
        sa.Column('parent_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['parent_id'], ['cbo_groups.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_cbo_groups_id', 'cbo_groups', ['id'], unique=False)
    op.create_index('ix_cbo_groups_code', 'cbo_groups', ['code'], unique=True)

    op.create_table(
        'occupations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=30), nullable=False),
        sa.Column('title', sa.String(length=300), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('group_id', sa.Integer(), nullable=True),
        sa.Column('synonyms', sa.JSON(), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['group_id'], ['cbo_groups.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_occupations_id', 'occupations', ['id'], unique=False)
    op.create_index('ix_occupations_code', 'occupations', ['code'], unique=True)

    op.create_table(
        'job_roles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('occupation_id', sa.Integer(), nullable=True),
        sa.Column('required_min_stratum', stratumlevel, nullable=False),
        sa.Column('required_max_stratum', stratumlevel, nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('tasks', sa.Text(), nullable=True),
        sa.Column('capabilities', sa.JSON(), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['occupation_id'], ['occupations.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_job_roles_id', 'job_roles', ['id'], unique=False)

    op.create_table(
        'user_job_roles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=100), nullable=False),
        sa.Column('job_role_id', sa.Integer(), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['job_role_id'], ['job_roles.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'job_role_id', name='uq_user_job_role')
    )
    op.create_index('ix_user_job_roles_id', 'user_job_roles', ['id'], unique=False)

    op.create_table(
        'capability_evaluations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('subject_user_id', sa.String(length=100), nullable=False),
        sa.Column('evaluator_user_id', sa.String(length=100), nullable=False),
        sa.Column('job_role_id', sa.Integer(), nullable=True),
        sa.Column('stratum_assessed', stratumlevel, nullable=False),
        sa.Column('potential_stratum', stratumlevel, nullable=True),
        sa.Column('time_span_months', sa.Integer(), nullable=True),
        sa.Column('evidence', sa.Text(), nullable=True),
        sa.Column('gaps', sa.JSON(), nullable=True),
        sa.Column('recommendations', sa.Text(), nullable=True),
        sa.Column('capability_scores', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['job_role_id'], ['job_roles.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_capability_evaluations_id', 'capability_evaluations', ['id'], unique=False)
    op.create_index(
        'ix_capability_evaluations_subject_created', 'capability_evaluations',
        ['subject_user_id', 'created_at'], unique=False
    )

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('action', auditaction, nullable=False),
        sa.Column('entity_type', sa.String(length=50), nullable=False),
        sa.Column('entity_key', sa.String(length=50), nullable=True),
        sa.Column('actor_id', sa.String(length=100), nullable=False),
        sa.Column('actor_email', sa.String(length=200), nullable=True),
        sa.Column('actor_role', sa.String(length=50), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('new_values', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_audit_logs_id', 'audit_logs', ['id'], unique=False)
    op.create_index('ix_audit_logs_entity_key', 'audit_logs', ['entity_key'], unique=False)
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'], unique=False)
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'], unique=False)


def downgrade() -> None:
    for table in (
        'audit_logs', 'capability_evaluations', 'user_job_roles', 'job_roles',
        'occupations', 'cbo_groups', 'medical_codes', 'code_systems'
    ):
        op.drop_table(table)
    bind = op.get_bind()
    for enum_type in reversed(ENUM_TYPES):
        enum_type.drop(bind, checkfirst=True)
