import json
import logging
from functools import wraps

from django.core.exceptions import ValidationError
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from .forms import PaymentInitiationForm, StatusQueryForm, WebhookRegistrationForm
from .models import WebhookSubscription
from .services.callbacks import CallbackReconciler
from .services.initiator import PaymentInitiator
from .services.mpesa import get_gateway_client
from .services.status import get_status

logger = logging.getLogger(__name__)

# What the gateway gets back from the callback endpoint, always.
CALLBACK_ACK = {"ResultCode": 0, "ResultDesc": "Accepted"}


def _json_body(request):
    try:
        data = json.loads(request.body.decode('utf-8') or '{}')
    except (ValueError, UnicodeDecodeError):
        return None
    return data if isinstance(data, dict) else None


def _error(message, status, **extra):
    return JsonResponse({"success": False, "message": message, **extra}, status=status)


def api_login_required(view):
    @wraps(view)
    def wrapper(request, *args, **kwargs):
        if not request.user.is_authenticated:
            logger.warning("Unauthenticated request to %s", request.path)
            return _error("Not authenticated", 401)
        return view(request, *args, **kwargs)
    return wrapper


def api_staff_required(view):
    @wraps(view)
    def wrapper(request, *args, **kwargs):
        if not request.user.is_authenticated:
            return _error("Not authenticated", 401)
        if not request.user.is_staff:
            return _error("Forbidden", 403)
        return view(request, *args, **kwargs)
    return wrapper


@require_POST
@api_login_required
def mpesa_initiate(request):
    data = _json_body(request)
    if data is None:
        return _error("Invalid JSON", 400)

    form = PaymentInitiationForm(data)
    if not form.is_valid():
        logger.warning("Payment validation failed for user %s: %s", request.user.pk, form.errors.as_json())
        return _error("Validation failed", 400, errors=form.errors.get_json_data())

    initiator = PaymentInitiator(get_gateway_client())
    try:
        result = initiator.initiate(
            user=request.user,
            phone=form.cleaned_data['phone'],
            amount=form.cleaned_data['amount'],
            package_id=form.cleaned_data.get('package_id'),
        )
    except ValidationError as e:
        return _error(" ".join(e.messages), 400)

    return JsonResponse({
        "success": result.accepted,
        "reference_code": result.reference,
        "message": result.message,
    }, status=200 if result.accepted else 502)


@csrf_exempt
@require_POST
def mpesa_callback(request):
    # Reconciliation problems stay on our side; the gateway is always told
    # the callback was accepted so it does not keep resending it.
    try:
        payload = json.loads(request.body.decode('utf-8'))
        outcome = CallbackReconciler().reconcile(payload)
        logger.info("M-Pesa callback handled: %s", outcome.value)
    except Exception:
        logger.exception("Error processing M-Pesa callback")
    return JsonResponse(CALLBACK_ACK)


def _status_response(request, reference):
    result = get_status(reference, user=request.user)
    return JsonResponse({
        "success": result.success,
        "status": result.status,
        "message": result.message,
        "reference_code": result.reference,
    }, status=200 if result.found else 404)


@require_POST
@api_login_required
def payment_status_query(request):
    data = _json_body(request)
    if data is None:
        return _error("Invalid JSON", 400)
    form = StatusQueryForm(data)
    if not form.is_valid():
        return _error("Validation failed", 400, errors=form.errors.get_json_data())
    return _status_response(request, form.cleaned_data['reference_code'])


@require_GET
@api_login_required
def payment_status(request, reference):
    return _status_response(request, reference)


@require_http_methods(["GET", "POST"])
@api_staff_required
def webhooks(request):
    if request.method == "GET":
        return JsonResponse({
            "success": True,
            "webhooks": [
                {
                    "id": w.pk,
                    "url": w.url,
                    "events": w.events,
                    "description": w.description,
                    "is_active": w.is_active,
                    "created_at": w.created_at.isoformat(),
                }
                for w in WebhookSubscription.objects.order_by('created_at')
            ],
        })

    data = _json_body(request)
    if data is None:
        return _error("Invalid JSON", 400)
    form = WebhookRegistrationForm(data)
    if not form.is_valid():
        return _error("Validation failed", 400, errors=form.errors.get_json_data())

    subscription, secret = WebhookSubscription.objects.register(
        url=form.cleaned_data['url'],
        events=form.cleaned_data['events'],
        description=form.cleaned_data['description'],
    )
    logger.info("New webhook subscription %s for %s (%s)", subscription.pk, subscription.url, subscription.events)
    return JsonResponse({
        "success": True,
        "message": "Webhook subscription created",
        "webhook": {
            "id": subscription.pk,
            "url": subscription.url,
            "events": subscription.events,
            "secret": secret,
        },
    }, status=201)
