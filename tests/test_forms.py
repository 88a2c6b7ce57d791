from canteen.forms import MenuForm, TokenForm


def test_image_url_without_scheme_gets_https():
    form = MenuForm({"image_url": "cdn.uni.test/menus/thali.png"}, partial=True)

    assert form.is_valid(), form.errors
    assert form.menu_fields() == {"image_url": "https://cdn.uni.test/menus/thali.png"}


def test_partial_form_validates_only_submitted_fields():
    form = MenuForm({"total_quantity": "-1"}, partial=True)

    assert not form.is_valid()
    assert list(form.errors) == ["total_quantity"]


def test_token_form_normalizes():
    form = TokenForm({"token": " ab12cd34 "})
    assert form.is_valid()
    assert form.cleaned_data["token"] == "AB12CD34"
