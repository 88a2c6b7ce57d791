import json
import logging
from functools import wraps

from django.http import JsonResponse
from django.views.decorators.http import require_http_methods

from .errors import PortalError
from .forms import ApproveOrderForm, MenuForm, MenuImageForm, PlaceOrderForm, TokenForm
from .identity import admin_required, identity_required
from .services import get_portal

logger = logging.getLogger(__name__)


# utility helpers for payloads and errors
def payload(request):
    """Request body as a dict: JSON bodies and form posts are both accepted."""
    if request.content_type == "application/json":
        try:
            body = json.loads(request.body or b"{}")
        except ValueError:
            return None
        return body if isinstance(body, dict) else None
    return request.POST


def form_errors(form):
    return JsonResponse({"error": "Invalid input", "fields": form.errors.get_json_data()}, status=400)


def portal_errors(view):
    """Map service errors to JSON responses; anything unexpected is a logged 500."""
    @wraps(view)
    def wrapped(request, *args, **kwargs):
        try:
            return view(request, *args, **kwargs)
        except PortalError as e:
            logger.info("%s %s refused: %s", request.method, request.path, e.message)
            return JsonResponse({"error": e.message}, status=e.status_code)
        except Exception:
            logger.exception("%s %s failed", request.method, request.path)
            return JsonResponse({"error": "Something went wrong, please try again"}, status=500)
    return wrapped


def bound_form(form_class, request, **kwargs):
    data = payload(request)
    if data is None:
        return None
    return form_class(data, request.FILES or None, **kwargs)


# menu views
@require_http_methods(["GET", "POST"])
@portal_errors
def menus(request):
    """
    GET: live menus, optionally filtered by ?date=YYYY-MM-DD and ?meal_type=.
    POST (admin): create a menu.
    """
    if request.method == "POST":
        return create_menu(request)
    if request.GET.get("available"):
        found = get_portal().menus.available_menus()
    else:
        found = get_portal().menus.list_menus(
            menu_date=request.GET.get("date"),
            meal_type=request.GET.get("meal_type"),
        )
    return JsonResponse({"menus": found})


@admin_required
def create_menu(request):
    form = bound_form(MenuForm, request)
    if form is None:
        return JsonResponse({"error": "Malformed JSON body"}, status=400)
    if not form.is_valid():
        return form_errors(form)
    menu = get_portal().menus.create_menu(form.menu_fields(), created_by=request.identity.user_id)
    return JsonResponse({"menu": menu}, status=201)


@require_http_methods(["GET"])
@portal_errors
def menu_detail(request, menu_id):
    return JsonResponse({"menu": get_portal().menus.get_menu(menu_id)})


@require_http_methods(["POST"])
@portal_errors
@admin_required
def edit_menu(request, menu_id):
    form = bound_form(MenuForm, request, partial=True)
    if form is None:
        return JsonResponse({"error": "Malformed JSON body"}, status=400)
    if not form.is_valid():
        return form_errors(form)
    menu = get_portal().menus.update_menu(menu_id, form.menu_fields())
    return JsonResponse({"menu": menu})


@require_http_methods(["POST"])
@portal_errors
@admin_required
def delete_menu(request, menu_id):
    menu = get_portal().menus.delete_menu(menu_id)
    return JsonResponse({"menu": menu})


@require_http_methods(["POST"])
@portal_errors
@admin_required
def upload_menu_image(request, menu_id):
    form = MenuImageForm(request.POST, request.FILES)
    if not form.is_valid():
        return form_errors(form)
    image = form.cleaned_data["image"]
    menu = get_portal().menus.attach_image(menu_id, image.name, image, image.content_type)
    return JsonResponse({"menu": menu})


# order views
@require_http_methods(["GET", "POST"])
@portal_errors
def orders(request):
    """
    GET (admin): all orders with profiles, optional ?status= and ?menu_id=.
    POST (student): place an order.
    """
    if request.method == "POST":
        return place_order(request)
    return list_orders(request)


@admin_required
def list_orders(request):
    found = get_portal().ledger.orders_with_profiles(
        status=request.GET.get("status"),
        menu_id=request.GET.get("menu_id"),
    )
    return JsonResponse({"orders": found})


@identity_required()
def place_order(request):
    form = bound_form(PlaceOrderForm, request)
    if form is None:
        return JsonResponse({"error": "Malformed JSON body"}, status=400)
    if not form.is_valid():
        return form_errors(form)

    portal = get_portal()
    identity = request.identity
    portal.profiles.sync(identity.user_id, name=identity.name, email=identity.email)
    order = portal.engine.place_order(
        form.cleaned_data["menu_id"], identity.user_id, form.cleaned_data["quantity"]
    )
    return JsonResponse({"order": order}, status=201)


@require_http_methods(["GET"])
@portal_errors
@identity_required()
def my_orders(request):
    return JsonResponse({"orders": get_portal().ledger.orders_for_user(request.identity.user_id)})


@require_http_methods(["POST"])
@portal_errors
@identity_required()
def withdraw_order(request, order_id):
    order = get_portal().ledger.withdraw_order(order_id, request.identity.user_id)
    return JsonResponse({"order": order})


@require_http_methods(["POST"])
@portal_errors
@identity_required()
def request_cancellation(request, order_id):
    order = get_portal().engine.request_cancellation(order_id, user_id=request.identity.user_id)
    return JsonResponse({"order": order})


@require_http_methods(["POST"])
@portal_errors
@admin_required
def approve_order(request, order_id):
    form = bound_form(ApproveOrderForm, request)
    if form is None:
        return JsonResponse({"error": "Malformed JSON body"}, status=400)
    if not form.is_valid():
        return form_errors(form)
    order = get_portal().engine.approve_order(order_id, form.cleaned_data.get("approved_quantity"))
    return JsonResponse({"order": order})


@require_http_methods(["POST"])
@portal_errors
@admin_required
def reject_order(request, order_id):
    return JsonResponse({"order": get_portal().engine.reject_order(order_id)})


@require_http_methods(["POST"])
@portal_errors
@admin_required
def approve_cancellation(request, order_id):
    return JsonResponse({"order": get_portal().engine.approve_cancellation(order_id)})


@require_http_methods(["POST"])
@portal_errors
@admin_required
def reject_cancellation(request, order_id):
    return JsonResponse({"order": get_portal().engine.reject_cancellation(order_id)})


# token verification views
def _token_or_error(token):
    form = TokenForm({"token": token})
    if not form.is_valid():
        return None, form_errors(form)
    return form.cleaned_data["token"], None


@require_http_methods(["GET"])
@portal_errors
@admin_required
def lookup_token(request, token):
    token, error = _token_or_error(token)
    if error:
        return error
    return JsonResponse({"order": get_portal().tokens.lookup_by_token(token)})


@require_http_methods(["POST"])
@portal_errors
@admin_required
def fulfil_token(request, token):
    token, error = _token_or_error(token)
    if error:
        return error
    return JsonResponse({"order": get_portal().tokens.verify_and_fulfill(token)})


@require_http_methods(["POST"])
@portal_errors
@admin_required
def release_tokens(request):
    released = get_portal().tokens.release_collected_tokens()
    return JsonResponse({"released": released, "count": len(released)})


# billing & statistics views
@require_http_methods(["GET"])
@portal_errors
@identity_required()
def my_bills(request):
    portal = get_portal()
    user_id = request.identity.user_id
    return JsonResponse({
        "history": portal.billing.bill_history(user_id=user_id),
        "live": portal.billing.live_bill(user_id),
    })


@require_http_methods(["GET"])
@portal_errors
@admin_required
def all_bills(request):
    return JsonResponse(get_portal().billing.bill_history())


@require_http_methods(["GET"])
@portal_errors
@admin_required
def statistics(request):
    return JsonResponse(get_portal().statistics.order_statistics())


@require_http_methods(["GET"])
@portal_errors
@admin_required
def dashboard(request):
    return JsonResponse(get_portal().statistics.dashboard_summary())
