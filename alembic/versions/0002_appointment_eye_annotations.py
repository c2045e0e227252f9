"""Add eye annotation columns to appointments

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-20 11:03:27.514902

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0002'
down_revision: Union[str, Sequence[str], None] = '0001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ANNOTATION_COLUMNS = (
    'left_eye_annotation_paths',
    'left_eye_annotation_image',
    'right_eye_annotation_paths',
    'right_eye_annotation_image',
)


def upgrade() -> None:
    """Upgrade schema."""
    with op.batch_alter_table('appointments') as batch_op:
        for name in ANNOTATION_COLUMNS:
            batch_op.add_column(sa.Column(name, sa.Text(), nullable=True))


def downgrade() -> None:
    """Downgrade schema."""
    with op.batch_alter_table('appointments') as batch_op:
        for name in reversed(ANNOTATION_COLUMNS):
            batch_op.drop_column(name)
