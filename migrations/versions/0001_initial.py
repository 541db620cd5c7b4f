"""initial timetable tables

Revision ID: 0001
Revises: 
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001'
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table('academic_periods',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('0')),
    )

    op.create_table('teachers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('subjects', sa.JSON(), nullable=False),
        sa.Column('supervised_classes', sa.JSON(), nullable=False),
        sa.Column('work_days', sa.JSON(), nullable=False),
        sa.Column('is_part_time', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_teachers_name', 'teachers', ['name'])

    op.create_table('subjects',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False, unique=True),
        sa.Column('is_subgroup', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('is_extracurricular', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )

    op.create_table('rooms',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('room_number', sa.String(length=50), nullable=False, unique=True),
        sa.Column('subject_id', sa.Integer(), sa.ForeignKey('subjects.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )

    op.create_table('teacher_rooms',
        sa.Column('teacher_id', sa.Integer(), sa.ForeignKey('teachers.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('room_id', sa.Integer(), sa.ForeignKey('rooms.id', ondelete='CASCADE'), primary_key=True),
        sa.UniqueConstraint('teacher_id', 'room_id', name='uq_teacher_rooms_teacher_room'),
    )

    op.create_table('classes',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=50), nullable=False, unique=True),
        sa.Column('grade', sa.Integer(), nullable=False),
        sa.Column('literal', sa.String(length=10), nullable=False, server_default=''),
        sa.Column('room_id', sa.Integer(), sa.ForeignKey('rooms.id', ondelete='SET NULL'), nullable=True),
        sa.Column('supervisor_teacher_id', sa.Integer(), sa.ForeignKey('teachers.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_classes_name', 'classes', ['name'])

    op.create_table('lessons',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('lesson_number', sa.Integer(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('lesson_number', name='uq_lessons_lesson_number'),
    )
    op.create_index('ix_lessons_lesson_number', 'lessons', ['lesson_number'])

    op.create_table('syllabus',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('class_id', sa.Integer(), sa.ForeignKey('classes.id', ondelete='CASCADE'), nullable=False),
        sa.Column('subject_id', sa.Integer(), sa.ForeignKey('subjects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('teacher_id', sa.Integer(), sa.ForeignKey('teachers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('hours_per_week', sa.Integer(), nullable=True),
        sa.UniqueConstraint('class_id', 'subject_id', 'teacher_id', name='uq_syllabus_tuple'),
    )
    op.create_index('ix_syllabus_class_id', 'syllabus', ['class_id'])

    op.create_table('subject_teachers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('class_id', sa.Integer(), sa.ForeignKey('classes.id', ondelete='CASCADE'), nullable=False),
        sa.Column('subject_id', sa.Integer(), sa.ForeignKey('subjects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('teacher_id', sa.Integer(), sa.ForeignKey('teachers.id', ondelete='CASCADE'), nullable=False),
        sa.UniqueConstraint('class_id', 'subject_id', 'teacher_id', name='uq_subject_teachers_tuple'),
    )
    op.create_index('ix_subject_teachers_class_id', 'subject_teachers', ['class_id'])

    op.create_table('time_slots',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('class_id', sa.Integer(), sa.ForeignKey('classes.id', ondelete='CASCADE'), nullable=False),
        sa.Column('academic_period_id', sa.Integer(), sa.ForeignKey('academic_periods.id', ondelete='CASCADE'), nullable=False),
        sa.Column('day', sa.String(length=16), nullable=False),
        sa.Column('lesson_id', sa.Integer(), sa.ForeignKey('lessons.id', ondelete='CASCADE'), nullable=False),
        sa.Column('subject', sa.String(length=255), nullable=False),
        sa.Column('teacher_id', sa.Integer(), sa.ForeignKey('teachers.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('room_id', sa.Integer(), sa.ForeignKey('rooms.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('subgroup', sa.Integer(), nullable=True),
        sa.Column('is_extracurricular', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('subgroup IS NULL OR subgroup IN (1, 2)', name='ck_time_slots_subgroup'),
    )
    op.create_index('ix_time_slots_scope', 'time_slots', ['class_id', 'academic_period_id'])
    op.create_index('ix_time_slots_cell', 'time_slots', ['academic_period_id', 'day', 'lesson_id'])

def downgrade():
    op.drop_index('ix_time_slots_cell', table_name='time_slots')
    op.drop_index('ix_time_slots_scope', table_name='time_slots')
    op.drop_table('time_slots')
    op.drop_index('ix_subject_teachers_class_id', table_name='subject_teachers')
    op.drop_table('subject_teachers')
    op.drop_index('ix_syllabus_class_id', table_name='syllabus')
    op.drop_table('syllabus')
    op.drop_index('ix_lessons_lesson_number', table_name='lessons')
    op.drop_table('lessons')
    op.drop_index('ix_classes_name', table_name='classes')
    op.drop_table('classes')
    op.drop_table('teacher_rooms')
    op.drop_table('rooms')
    op.drop_table('subjects')
    op.drop_index('ix_teachers_name', table_name='teachers')
    op.drop_table('teachers')
    op.drop_table('academic_periods')
