"""Account and profile forms."""

from __future__ import annotations

from wtforms import PasswordField, SelectField, StringField
from wtforms.validators import DataRequired, Email, EqualTo, Length, Optional, Regexp, URL

from lens.forms import APIForm, FlagField
from lens.models import ThemePreference, UserRole

USERNAME_RULES = [
    Length(min=3, max=30, message="Username must be between 3 and 30 characters"),
    Regexp(
        r"^[a-zA-Z0-9_-]+$",
        message="Username can only contain letters, numbers, underscores, and hyphens",
    ),
]


class RegisterForm(APIForm):
    username = StringField("Username", validators=[DataRequired()] + USERNAME_RULES)
    email = StringField("Email", validators=[DataRequired(), Email(message="Please enter a valid email")])
    password = PasswordField(
        "Password",
        validators=[DataRequired(), Length(min=6, message="Password must be at least 6 characters")],
    )
    first_name = StringField("First name", validators=[Optional(), Length(max=50)])
    last_name = StringField("Last name", validators=[Optional(), Length(max=50)])


class LoginForm(APIForm):
    identifier = StringField("Email or username", validators=[DataRequired(message="Email or username is required")])
    password = PasswordField("Password", validators=[DataRequired(message="Password is required")])


class ProfileForm(APIForm):
    first_name = StringField("First name", validators=[Optional(), Length(max=50)])
    last_name = StringField("Last name", validators=[Optional(), Length(max=50)])
    bio = StringField("Bio", validators=[Optional(), Length(max=500)])
    website = StringField(
        "Website",
        validators=[
            Optional(),
            Regexp(r"^https?://", message="Please enter a valid URL"),
            URL(message="Please enter a valid URL"),
        ],
    )
    location = StringField("Location", validators=[Optional(), Length(max=100)])
    theme = SelectField("Theme", choices=[t.value for t in ThemePreference], validators=[Optional()])
    email_notifications = FlagField("Email notifications")
    public_profile = FlagField("Public profile")


class ChangePasswordForm(APIForm):
    current_password = PasswordField("Current password", validators=[DataRequired()])
    new_password = PasswordField(
        "New password",
        validators=[DataRequired(), Length(min=6, message="Password must be at least 6 characters")],
    )
    confirm_password = PasswordField(
        "Confirm password",
        validators=[DataRequired(), EqualTo("new_password", message="Passwords do not match")],
    )


class DeleteAccountForm(APIForm):
    password = PasswordField("Password", validators=[DataRequired(message="Password is required")])


class StaffAccountForm(RegisterForm):
    role = SelectField(
        "Role",
        choices=[UserRole.ADMIN.value, UserRole.SUPER_ADMIN.value],
        default=UserRole.ADMIN.value,
        validators=[Optional()],
    )


class RoleForm(APIForm):
    role = SelectField("Role", choices=[r.value for r in UserRole], validators=[DataRequired()])
