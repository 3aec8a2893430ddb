import pytest
from forms import (
    CreateOrderForm, VerifyPaymentForm, PlanForm, AIPlanForm, ProductForm,
    FeatureForm, TierForm, RoleForm, AssignPlanForm,
)

# Forms are built from keyword data here; in requests Flask-WTF fills them from the JSON body.

# --- Checkout forms ---

def test_create_order_form_valid(app_context):
    form = CreateOrderForm(productKey="PRO_MONTHLY")
    assert form.validate() == True
    assert not form.errors

def test_create_order_form_missing_key(app_context):
    form = CreateOrderForm()
    assert form.validate() == False
    assert "productKey is required." in form.errors["productKey"]
    assert form.first_error() == "productKey is required."

def test_verify_payment_form_requires_all_fields(app_context):
    form = VerifyPaymentForm(razorpay_order_id="order_1", razorpay_payment_id="pay_1")
    assert form.validate() == False
    assert "razorpay_signature" in form.errors
    assert form.first_error() == "Missing parameters"

def test_verify_payment_form_valid(app_context):
    form = VerifyPaymentForm(razorpay_order_id="order_1", razorpay_payment_id="pay_1", razorpay_signature="abc")
    assert form.validate() == True

# --- Plan forms ---

def test_plan_form_requires_title(app_context):
    form = PlanForm(description="No title")
    assert form.validate() == False
    assert "Title is required." in form.errors["title"]

def test_plan_form_dates_optional(app_context):
    form = PlanForm(title="Week 1")
    assert form.validate() == True

def test_ai_plan_form_accepts_text_alias(app_context):
    form = AIPlanForm(text="  Make me a 5 day study plan ")
    assert form.validate() == True
    assert form.prompt_text == "Make me a 5 day study plan"

def test_ai_plan_form_missing_prompt(app_context):
    form = AIPlanForm(prompt="   ")
    assert form.validate() == False
    assert "Missing prompt" in form.errors["prompt"]

# --- Admin forms ---

def test_product_form_valid(app_context):
    form = ProductForm(key="PRO_YEARLY", name="Pro (Yearly)", price=199900, currency="INR")
    assert form.validate() == True

@pytest.mark.parametrize("key", ["pro_monthly", "PRO-MONTHLY", "1PRO", ""])
def test_product_form_rejects_bad_keys(app_context, key):
    form = ProductForm(key=key, name="Bad", price=100)
    assert form.validate() == False
    assert "key" in form.errors

def test_product_form_rejects_non_positive_price(app_context):
    form = ProductForm(key="FREEBIE", name="Free", price=-5)
    assert form.validate() == False
    assert "price" in form.errors

def test_feature_form_valid(app_context):
    assert FeatureForm(key="MAX_PLAN_DAYS", description="Longest plan, in days").validate() == True

def test_tier_form_choices(app_context):
    assert TierForm(tier="TEAM").validate() == True
    form = TierForm(tier="GOLD")
    assert form.validate() == False
    assert "tier" in form.errors

def test_role_form_choices(app_context):
    assert RoleForm(role="admin").validate() == True
    assert RoleForm(role="superuser").validate() == False

def test_assign_plan_form_requires_product(app_context):
    assert AssignPlanForm(productId=3).validate() == True
    assert AssignPlanForm().validate() == False
