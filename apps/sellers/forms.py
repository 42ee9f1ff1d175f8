"""
Sellers App Forms
Validation for the JSON payloads of checkout, payment, order status and withdrawal requests
"""

from django import forms
from django.core.exceptions import ValidationError
from django.core.validators import RegexValidator
from decimal import Decimal

from .models import Order, WithdrawalRequest


class StrictJSONForm(forms.Form):
    """
    Form for a decoded JSON object. Keys the form does not declare are rejected.
    """

    def __init__(self, data=None, *args, **kwargs):
        self.payload_is_object = data is None or isinstance(data, dict)
        if not self.payload_is_object:
            data = {}
        super().__init__(data, *args, **kwargs)

    def clean(self):
        cleaned_data = super().clean()
        if not self.payload_is_object:
            raise ValidationError('Expected a JSON object')
        unknown = sorted(set(self.data) - set(self.fields))
        if unknown:
            raise ValidationError(f'Unknown fields: {", ".join(unknown)}')
        return cleaned_data


# ==========================================
# CHECKOUT FORMS
# ==========================================

class AddressForm(StrictJSONForm):
    """
    Delivery address snapshot copied onto the order
    """
    full_name = forms.CharField(max_length=150)
    phone = forms.CharField(
        validators=[RegexValidator(regex=r'^[6-9]\d{9}$', message='Phone must be a 10-digit mobile number')]
    )
    address_line1 = forms.CharField(max_length=255)
    address_line2 = forms.CharField(max_length=255, required=False)
    city = forms.CharField(max_length=100)
    state = forms.CharField(max_length=100)
    pincode = forms.CharField(
        validators=[RegexValidator(regex=r'^\d{6}$', message='Pincode must be exactly 6 digits')]
    )
    landmark = forms.CharField(max_length=255, required=False)


class OrderItemForm(StrictJSONForm):
    product_id = forms.IntegerField(min_value=1)
    quantity = forms.IntegerField(min_value=1, max_value=100)
    gift_packaging = forms.BooleanField(required=False)
    customizations = forms.JSONField(required=False)

    def clean_customizations(self):
        """Ordered list of {question, answer} string pairs"""
        customizations = self.cleaned_data.get('customizations') or []

        if not isinstance(customizations, list):
            raise ValidationError('Customizations must be a list')

        pairs = []
        for pair in customizations:
            if not isinstance(pair, dict) or set(pair) != {'question', 'answer'}:
                raise ValidationError('Each customization needs exactly a question and an answer')
            if not all(isinstance(pair[key], str) for key in ('question', 'answer')):
                raise ValidationError('Customization question and answer must be text')
            if not pair['question'].strip():
                raise ValidationError('Customization question cannot be empty')
            pairs.append({'question': pair['question'].strip(), 'answer': pair['answer'].strip()})

        return pairs


class CheckoutForm(StrictJSONForm):
    """
    Top-level checkout body: {items, address, payment_method, total_amount}
    Items and address are checked by OrderItemForm and AddressForm.
    """
    items = forms.JSONField()
    address = forms.JSONField(required=False)
    payment_method = forms.ChoiceField(choices=Order.PAYMENT_METHOD_CHOICES)
    total_amount = forms.DecimalField(max_digits=12, decimal_places=2, required=False)

    def clean_items(self):
        items = self.cleaned_data.get('items')
        if not isinstance(items, list) or not items:
            raise ValidationError('Order must contain at least one item', code='invalid_items')

        cleaned = []
        for index, item in enumerate(items):
            item_form = OrderItemForm(item)
            if not item_form.is_valid():
                raise ValidationError(
                    f'Item {index + 1}: {item_form.errors.as_text()}',
                    code='invalid_items'
                )
            cleaned.append(item_form.cleaned_data)
        return cleaned

    def clean_address(self):
        address = self.cleaned_data.get('address')
        if not address:
            raise ValidationError('A delivery address is required', code='address_required')

        address_form = AddressForm(address)
        if not address_form.is_valid():
            raise ValidationError(address_form.errors.as_text(), code='address_required')
        return {key: value for key, value in address_form.cleaned_data.items() if value}


# ==========================================
# PAYMENT FORMS
# ==========================================

class PaymentIntentForm(StrictJSONForm):
    order_id = forms.UUIDField()
    amount = forms.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))


class PaymentVerifyForm(StrictJSONForm):
    order_id = forms.UUIDField()
    gateway_order_id = forms.CharField(max_length=100)
    gateway_payment_id = forms.CharField(max_length=100)
    gateway_signature = forms.CharField(max_length=128)


# ==========================================
# ORDER STATUS FORMS
# ==========================================

class OrderStatusUpdateForm(StrictJSONForm):
    status = forms.ChoiceField(choices=[
        (Order.STATUS_CONFIRMED, 'Confirmed'),
        (Order.STATUS_DISPATCHED, 'Dispatched'),
        (Order.STATUS_CANCELLED, 'Cancelled'),
    ])


# ==========================================
# WITHDRAWAL FORMS
# ==========================================

class WithdrawalRequestForm(StrictJSONForm):
    """
    Seller withdrawal with the bank account to pay into
    """
    amount = forms.DecimalField(max_digits=12, decimal_places=2)
    bank_account_number = forms.CharField(
        validators=[RegexValidator(regex=r'^\d{9,18}$', message='Account number must be 9 to 18 digits')]
    )
    ifsc_code = forms.CharField(max_length=11)
    account_holder_name = forms.CharField(max_length=200)

    def clean_ifsc_code(self):
        ifsc_code = self.cleaned_data['ifsc_code'].strip().upper()
        RegexValidator(
            regex=r'^[A-Z]{4}0[A-Z0-9]{6}$',
            message='Invalid IFSC code format'
        )(ifsc_code)
        return ifsc_code

    def clean_account_holder_name(self):
        name = self.cleaned_data['account_holder_name'].strip()
        if not name:
            raise ValidationError('Account holder name is required')
        return name

    def bank_details(self):
        return {
            'account_number': self.cleaned_data['bank_account_number'],
            'ifsc_code': self.cleaned_data['ifsc_code'],
            'account_holder_name': self.cleaned_data['account_holder_name'],
        }


class WithdrawalResolveForm(StrictJSONForm):
    outcome = forms.ChoiceField(choices=[
        (WithdrawalRequest.STATUS_APPROVED, 'Approve'),
        (WithdrawalRequest.STATUS_REJECTED, 'Reject'),
        (WithdrawalRequest.STATUS_COMPLETED, 'Complete'),
    ])
    failure_reason = forms.CharField(max_length=500, required=False)
