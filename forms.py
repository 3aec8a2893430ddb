from flask_wtf import FlaskForm
from wtforms import StringField, IntegerField, SelectField, TextAreaField
from wtforms.validators import DataRequired, Length, NumberRange, Optional, Regexp, ValidationError # Import standard validators.
from models.user import TierEnum

# Product and feature keys are stored upper-case, e.g. "PRO_MONTHLY", "MAX_PLANS".
KEY_PATTERN = r'^[A-Z][A-Z0-9_]*$'
ROLE_CHOICES = [('user', 'User'), ('admin', 'Admin')]


class JSONForm(FlaskForm):
    """
    Base class for forms that validate JSON API bodies.

    Flask-WTF reads request.get_json() when the request is JSON. There is no rendered page
    to carry a CSRF token, and these endpoints are protected by the session cookie's
    SameSite policy and the login requirement instead, so CSRF is off.
    """
    class Meta:
        csrf = False

    def first_error(self):
        """Returns the first validation message, for single-message JSON error responses."""
        for errors in self.errors.values():
            if errors:
                return errors[0]
        return "Invalid request."


class CreateOrderForm(JSONForm):
    """Checkout start: which product to buy."""
    productKey = StringField('Product Key', validators=[DataRequired(message="productKey is required.")])


class VerifyPaymentForm(JSONForm):
    """
    Checkout confirmation posted by the browser after the provider's widget succeeds.
    Field names follow the provider's callback payload.
    """
    razorpay_order_id = StringField('Order ID', validators=[DataRequired(message="Missing parameters")])
    razorpay_payment_id = StringField('Payment ID', validators=[DataRequired(message="Missing parameters")])
    razorpay_signature = StringField('Signature', validators=[DataRequired(message="Missing parameters")])


class PlanForm(JSONForm):
    """Manual plan creation. Dates are YYYY-MM-DD strings and parsed by the plan service."""
    title = StringField('Title', validators=[DataRequired(message="Title is required."), Length(max=255)])
    description = TextAreaField('Description', validators=[Optional()])
    startDate = StringField('Start Date', validators=[Optional()])
    endDate = StringField('End Date', validators=[Optional()])


class AIPlanForm(JSONForm):
    """AI plan request. Older clients send the prompt as 'text'."""
    prompt = StringField('Prompt', validators=[Length(max=4000)])
    text = StringField('Text', validators=[Optional(), Length(max=4000)])

    def validate_prompt(self, prompt):
        """Requires a non-blank prompt in either field."""
        if not (prompt.data or '').strip() and not (self.text.data or '').strip():
            raise ValidationError('Missing prompt')

    @property
    def prompt_text(self):
        return (self.prompt.data or self.text.data or '').strip()


class ProductForm(JSONForm):
    """Admin: create a product. Price is in minor currency units (paise for INR)."""
    key = StringField('Key', validators=[DataRequired(message="Key is required."), Length(max=64),
                                         Regexp(KEY_PATTERN, message="Key must be upper-case letters, digits and underscores.")])
    name = StringField('Name', validators=[DataRequired(message="Name is required."), Length(max=120)])
    price = IntegerField('Price', validators=[DataRequired(message="Price is required."), NumberRange(min=1, message="Price must be positive.")])
    currency = StringField('Currency', validators=[Optional(), Length(min=3, max=3)])
    description = TextAreaField('Description', validators=[Optional()])


class FeatureForm(JSONForm):
    """Admin: create a feature or update its description."""
    key = StringField('Key', validators=[DataRequired(message="Key is required."), Length(max=64),
                                         Regexp(KEY_PATTERN, message="Key must be upper-case letters, digits and underscores.")])
    description = StringField('Description', validators=[Optional(), Length(max=255)])


class TierForm(JSONForm):
    """Admin: overwrite a user's tier cache."""
    tier = SelectField('Tier', choices=[(t.value, t.value) for t in TierEnum],
                       validators=[DataRequired(message="tier is required.")])


class RoleForm(JSONForm):
    role = SelectField('Role', choices=ROLE_CHOICES, validators=[DataRequired(message="role is required.")])


class AssignPlanForm(JSONForm):
    """Admin: grant a product to a user without payment."""
    productId = IntegerField('Product', validators=[DataRequired(message="productId is required.")])
