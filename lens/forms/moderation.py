"""Moderation forms."""

from __future__ import annotations

from wtforms import StringField
from wtforms.validators import DataRequired, Length, Optional

from lens.forms import APIForm


class ApproveForm(APIForm):
    notes = StringField("Notes", validators=[Optional(), Length(max=1000)])


class RejectForm(APIForm):
    reason = StringField(
        "Reason",
        validators=[
            DataRequired(message="Rejection reason is required"),
            Length(max=500, message="Reason must not exceed 500 characters"),
        ],
    )
    notes = StringField("Notes", validators=[Optional(), Length(max=1000)])
