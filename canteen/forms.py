from django import forms

from aws_config import MEAL_TYPES, TOKEN_LENGTH

from .fulfillment import TOKEN_PATTERN, normalize_token
from .models import MENU_STATUSES


class MenuForm(forms.Form):
    """
    Form used for creating or editing a menu.
    With partial=True (edits) only the submitted fields are validated.
    """
    title = forms.CharField(max_length=200)
    description = forms.CharField(max_length=2000, required=False)
    image_url = forms.URLField(required=False, assume_scheme="https")
    menu_date = forms.DateField()
    meal_type = forms.ChoiceField(choices=[(m, m.title()) for m in MEAL_TYPES])
    order_deadline = forms.DateTimeField()
    total_quantity = forms.IntegerField(min_value=0)
    price = forms.DecimalField(min_value=0, max_digits=10, decimal_places=2)
    status = forms.ChoiceField(choices=[(s, s.title()) for s in MENU_STATUSES], required=False)

    def __init__(self, *args, partial=False, **kwargs):
        super().__init__(*args, **kwargs)
        self.partial = partial

        if partial:
            # Drop fields that were not submitted, the rest keep their rules
            submitted = set(self.data.keys()) if self.is_bound else set()
            for name in list(self.fields):
                if name not in submitted:
                    del self.fields[name]

    def clean_status(self):
        """Blank status on create means open."""
        return self.cleaned_data.get("status") or ("open" if not self.partial else None)

    def menu_fields(self):
        """Cleaned values ready for the menu store."""
        data = dict(self.cleaned_data)
        if data.get("status") is None:
            data.pop("status", None)
        return data


class PlaceOrderForm(forms.Form):
    """
    Form used by a student to order a menu.
    """
    menu_id = forms.CharField(max_length=100)
    quantity = forms.IntegerField(min_value=1)


class ApproveOrderForm(forms.Form):
    """
    Admin approval, optionally for fewer portions than requested.
    """
    approved_quantity = forms.IntegerField(min_value=1, required=False)


class TokenForm(forms.Form):
    token = forms.CharField(max_length=TOKEN_LENGTH + 10)

    def clean_token(self):
        """
        Tokens are matched case-insensitively.
        """
        token = normalize_token(self.cleaned_data["token"])
        if not TOKEN_PATTERN.match(token):
            raise forms.ValidationError(f"A token is {TOKEN_LENGTH} letters or digits.")
        return token


class MenuImageForm(forms.Form):
    # stored on S3, the menu keeps the public URL
    image = forms.ImageField()
