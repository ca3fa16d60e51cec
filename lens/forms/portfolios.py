"""Portfolio forms."""

from __future__ import annotations

from wtforms import IntegerField, SelectField, StringField
from wtforms.validators import DataRequired, Length, NumberRange, Optional

from lens.forms import APIForm, FlagField, JSONObjectField, StringListField
from lens.models import LayoutType, PhotoCategory


class PortfolioForm(APIForm):
    """Partial update; every field is optional."""

    title = StringField("Title", validators=[Optional(), Length(min=1, max=100)])
    description = StringField("Description", validators=[Optional(), Length(max=1000)])
    is_public = FlagField("Public")
    is_default = FlagField("Default")
    cover_photo_id = StringField("Cover photo", validators=[Optional(), Length(max=36)])
    layout_type = SelectField("Layout", choices=[t.value for t in LayoutType], validators=[Optional()])
    layout_columns = IntegerField("Columns", validators=[Optional(), NumberRange(min=1, max=6)])
    layout_spacing = IntegerField("Spacing", validators=[Optional(), NumberRange(min=0, max=50)])
    theme = JSONObjectField("Theme")
    settings = JSONObjectField("Settings")
    custom_domain = StringField("Custom domain", validators=[Optional(), Length(max=255)])
    seo_title = StringField("SEO title", validators=[Optional(), Length(max=60)])
    seo_description = StringField("SEO description", validators=[Optional(), Length(max=160)])
    seo_keywords = StringListField("SEO keywords")
    category = SelectField("Category", choices=[c.value for c in PhotoCategory], validators=[Optional()])
    tags = StringListField("Tags")


class PortfolioCreateForm(PortfolioForm):
    title = StringField(
        "Title",
        validators=[DataRequired(message="Portfolio title is required"), Length(max=100)],
    )
