"""Photo metadata and upload forms."""

from __future__ import annotations

from wtforms import IntegerField, SelectField, StringField
from wtforms.validators import DataRequired, Length, NumberRange, Optional

from lens.forms import APIForm, FlagField, StringListField
from lens.models import PhotoCategory

CATEGORY_CHOICES = [c.value for c in PhotoCategory]


class PhotoForm(APIForm):
    title = StringField("Title", validators=[Optional(), Length(min=1, max=100)])
    description = StringField("Description", validators=[Optional(), Length(max=500)])
    alt_text = StringField("Alt text", validators=[Optional(), Length(max=125)])
    portfolio_id = StringField("Portfolio", validators=[Optional(), Length(max=36)])
    category = SelectField("Category", choices=CATEGORY_CHOICES, validators=[Optional()])
    tags = StringListField("Tags")
    is_public = FlagField("Public")
    is_featured = FlagField("Featured")
    allow_download = FlagField("Allow download")
    show_metadata = FlagField("Show metadata")
    position = IntegerField("Position", validators=[Optional(), NumberRange(min=0)])


class PhotoUploadForm(APIForm):
    """Multipart fields that accompany an uploaded image."""

    title = StringField("Title", validators=[Optional(), Length(max=100)])
    description = StringField("Description", validators=[Optional(), Length(max=500)])
    alt_text = StringField("Alt text", validators=[Optional(), Length(max=125)])
    portfolio_id = StringField("Portfolio", validators=[Optional(), Length(max=36)])
    category = SelectField("Category", choices=CATEGORY_CHOICES, validators=[Optional()])
    tags = StringListField("Tags")
    is_public = FlagField("Public")


class ReorderForm(APIForm):
    portfolio_id = StringField("Portfolio", validators=[DataRequired()])
    photo_ids = StringListField("Photos", validators=[DataRequired(message="photo_ids must be a non-empty list")])


class PresignedUploadForm(APIForm):
    filename = StringField("File name", validators=[DataRequired(), Length(max=200)])
    content_type = StringField("Content type", validators=[DataRequired(), Length(max=100)])
    folder = SelectField("Folder", choices=["photos", "avatars"], validators=[Optional()])


class DownloadUrlForm(APIForm):
    key = StringField("Key", validators=[DataRequired(), Length(max=512)])
    expires_in = IntegerField("Expires in", validators=[Optional(), NumberRange(min=60, max=7 * 24 * 3600)])
